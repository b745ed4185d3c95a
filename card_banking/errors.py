"""
Error Taxonomy

Every failure raised by the card banking core is a CardBankingError tagged
with an ErrorKind and carrying structured context. Kinds are mapped to
transport status codes only at the API boundary.

Context values and messages never include card numbers or key material.
"""

from enum import Enum
from typing import Any, Dict


class ErrorKind(Enum):
    """Closed set of error categories"""
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    INVALID_STATE = "invalid_state"
    INVALID_INPUT = "invalid_input"
    INVALID_TRANSFER = "invalid_transfer"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    CRYPTO = "crypto"
    CONFLICT = "conflict"
    TRANSFER_FAILED = "transfer_failed"


class CardBankingError(Exception):
    """Base class for all domain errors"""

    kind: ErrorKind = ErrorKind.TRANSFER_FAILED

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        """User-safe representation"""
        return {
            "error": self.kind.value,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()}
        }


# Not found

class NotFoundError(CardBankingError):
    kind = ErrorKind.NOT_FOUND


class CardNotFoundError(NotFoundError):
    def __init__(self, message: str = "Card not found", **context: Any):
        super().__init__(message, **context)


class TransferNotFoundError(NotFoundError):
    def __init__(self, message: str = "Transfer not found", **context: Any):
        super().__init__(message, **context)


# Authorization

class ForbiddenError(CardBankingError):
    kind = ErrorKind.FORBIDDEN


class OwnershipError(ForbiddenError):
    """Authenticated user does not own the card"""


# State

class InvalidStateError(CardBankingError):
    kind = ErrorKind.INVALID_STATE


class CardNotActiveError(InvalidStateError):
    def __init__(self, card_id: str, status: Any, role: str = "card"):
        status_value = getattr(status, "value", status)
        super().__init__(
            f"{role.capitalize()} is not active (status: {status_value})",
            card_id=card_id, status=status_value
        )
        self.status = status


# Input

class InvalidInputError(CardBankingError):
    kind = ErrorKind.INVALID_INPUT


class InvalidTransferError(CardBankingError):
    kind = ErrorKind.INVALID_TRANSFER


class InsufficientFundsError(CardBankingError):
    kind = ErrorKind.INSUFFICIENT_FUNDS

    def __init__(self, available, requested, **context: Any):
        super().__init__(
            f"Insufficient funds: available {available}, requested {requested}",
            available=available, requested=requested, **context
        )
        self.available = available
        self.requested = requested


# Crypto

class CryptoError(CardBankingError):
    kind = ErrorKind.CRYPTO


class EncryptionError(CryptoError):
    pass


class DecryptionError(CryptoError):
    pass


# Concurrency and transfer execution

class StaleCardError(CardBankingError):
    """Card changed since it was read; the compare-and-swap save was refused"""
    kind = ErrorKind.CONFLICT

    def __init__(self, card_id: str, expected_version: int, actual_version: int):
        super().__init__(
            "Card was modified concurrently",
            card_id=card_id, expected_version=expected_version,
            actual_version=actual_version
        )


class TransferFailedError(CardBankingError):
    kind = ErrorKind.TRANSFER_FAILED

    def __init__(self, message: str = "Transfer failed", **context: Any):
        super().__init__(message, **context)
