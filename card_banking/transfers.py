"""
Transfer Engine Module

Moves funds between two cards owned by the same user. Validation runs
against card snapshots; the debit, credit and SUCCESS ledger record are then
committed in one storage transaction guarded by per-card version checks.
A snapshot that went stale in between is reloaded, re-validated and retried.

Rejections during validation leave no trace in the ledger. A failure while
applying the transfer rolls everything back and leaves one FAILED record.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Union

from .amounts import parse_amount
from .cards import Card, CardDirectory
from .encryption import MASK_PLACEHOLDER, CardNumberCipher
from .errors import (
    CardNotActiveError, CardNotFoundError, ForbiddenError,
    InsufficientFundsError, InvalidInputError, InvalidTransferError,
    OwnershipError, StaleCardError, TransferFailedError
)
from .ledger import TransferLedger, TransferOutcome, TransferRecord
from .logging_config import get_logger, log_action
from .storage import StorageInterface


DEFAULT_MAX_RETRIES = 5


@dataclass(frozen=True)
class TransferResult:
    """Outward view of a transfer; card numbers are masked"""
    id: str
    source_card_id: str
    destination_card_id: Optional[str]
    masked_source_number: str
    masked_destination_number: str
    amount: Decimal
    outcome: TransferOutcome
    description: Optional[str]
    transferred_at: datetime
    created_at: datetime


class TransferEngine:
    """
    Card-to-card transfer processing.

    create_transfer checks, in order: amount, source exists, source owned by
    the requester, source active, destination exists, destination owned by
    the requester, destination active, distinct cards, sufficient funds.
    The first failing check decides the error.
    """

    def __init__(
        self,
        storage: StorageInterface,
        directory: CardDirectory,
        ledger: TransferLedger,
        cipher: CardNumberCipher,
        max_retries: int = DEFAULT_MAX_RETRIES
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.storage = storage
        self.directory = directory
        self.ledger = ledger
        self.cipher = cipher
        self.max_retries = max_retries
        self.logger = get_logger("card_banking.transfers")

    def create_transfer(
        self,
        username: str,
        source_card_id: str,
        destination_card_number: str,
        amount: Union[str, int, Decimal],
        description: Optional[str] = None
    ) -> TransferResult:
        """
        Transfer funds from one of the user's cards to another.

        Args:
            username: Authenticated requester
            source_card_id: Id of the card to debit
            destination_card_number: Plaintext number of the card to credit
            amount: Positive amount with at most two fractional digits
            description: Optional free text stored on the record

        Returns:
            TransferResult with masked card numbers

        Raises:
            InvalidInputError: bad amount or blank destination number
            CardNotFoundError: source or destination does not exist
            OwnershipError: either card belongs to someone else
            CardNotActiveError: either card is not ACTIVE
            InvalidTransferError: source and destination are the same card
            InsufficientFundsError: source balance below amount
            TransferFailedError: applying the transfer failed; nothing changed
        """
        amount = parse_amount(amount)
        if destination_card_number is None or not destination_card_number.strip():
            raise InvalidInputError("Destination card number is required")

        source = self.directory.find_by_id(source_card_id)
        self._check_source(source, username)

        destination = self.directory.find_by_plaintext_number(destination_card_number)
        self._check_destination(source, destination, username, amount)

        return self._execute(username, source, destination, amount, description)

    # Validation

    def _check_source(self, source: Card, username: str) -> None:
        if not source.is_owned_by(username):
            raise OwnershipError("Source card does not belong to the current user",
                                 card_id=source.id)
        if not source.is_active:
            raise CardNotActiveError(source.id, source.status, role="source card")

    def _check_destination(self, source: Card, destination: Card,
                           username: str, amount: Decimal) -> None:
        if not destination.is_owned_by(username):
            raise OwnershipError("Destination card does not belong to the current user",
                                 card_id=destination.id)
        if not destination.is_active:
            raise CardNotActiveError(destination.id, destination.status,
                                     role="destination card")
        if source.id == destination.id:
            raise InvalidTransferError("Cannot transfer to the same card", card_id=source.id)
        if source.balance < amount:
            raise InsufficientFundsError(source.balance, amount, card_id=source.id)

    # Execution

    def _execute(self, username: str, source: Card, destination: Card,
                 amount: Decimal, description: Optional[str]) -> TransferResult:
        attempt = 0
        while True:
            attempt += 1
            record = TransferRecord(
                source_card_id=source.id,
                destination_card_id=destination.id,
                amount=amount,
                transferred_at=datetime.now(timezone.utc),
                outcome=TransferOutcome.SUCCESS,
                source_owner=source.owner_username,
                destination_owner=destination.owner_username,
                description=description
            )
            try:
                stored = self._apply_transfer_atomically(source, destination, record)
            except StaleCardError as e:
                if attempt >= self.max_retries:
                    self._fail(username, record, attempt, e,
                               "Card was modified concurrently too many times")
                log_action(
                    self.logger, "debug", "Card snapshot stale, retrying transfer",
                    username=username, action="create_transfer",
                    extra={"attempt": attempt, "card_id": e.context.get("card_id")}
                )
                source = self.directory.find_by_id(source.id)
                destination = self.directory.find_by_id(destination.id)
                self._check_source(source, username)
                self._check_destination(source, destination, username, amount)
                continue
            except Exception as e:
                self._fail(username, record, attempt, e, "Transfer could not be applied")

            result = self._to_result(stored, source, destination)
            log_action(
                self.logger, "info", "Transfer completed",
                username=username, action="create_transfer",
                resource=f"transfer:{stored.id}",
                extra={
                    "source_card_id": source.id,
                    "destination_card_id": destination.id,
                    "source": result.masked_source_number,
                    "destination": result.masked_destination_number,
                    "amount": str(amount),
                    "attempts": attempt
                }
            )
            return result

    def _apply_transfer_atomically(self, source: Card, destination: Card,
                                   record: TransferRecord) -> TransferRecord:
        """Debit, credit and append the SUCCESS record in one transaction"""
        with self.storage.atomic():
            self.directory.save(replace(source, balance=source.balance - record.amount))
            self.directory.save(replace(destination, balance=destination.balance + record.amount))
            return self.ledger.append(record)

    def _fail(self, username: str, record: TransferRecord, attempt: int,
              error: Exception, reason: str) -> None:
        """Log the failure, leave a FAILED record and raise TransferFailedError"""
        log_action(
            self.logger, "error", "Transfer failed and was rolled back",
            username=username, action="create_transfer",
            extra={
                "source_card_id": record.source_card_id,
                "destination_card_id": record.destination_card_id,
                "amount": str(record.amount),
                "attempts": attempt,
                "error_type": type(error).__name__
            },
            exc_info=True
        )

        failed = replace(record, outcome=TransferOutcome.FAILED, failure_reason=reason,
                         transferred_at=datetime.now(timezone.utc))
        try:
            self.ledger.append(failed)
        except Exception:
            log_action(
                self.logger, "error", "Failed transfer could not be recorded",
                username=username, action="create_transfer",
                extra={"source_card_id": record.source_card_id},
                exc_info=True
            )

        raise TransferFailedError() from error

    # Reads

    def list_user_transfers(self, username: str) -> List[TransferResult]:
        """Transfers where the user owns either card, newest first"""
        return self._to_results(self.ledger.find_by_user(username))

    def list_card_transfers(self, card_id: str, username: str) -> List[TransferResult]:
        """Transfers touching one of the user's cards, newest first"""
        card = self.directory.find_by_id(card_id)
        if not card.is_owned_by(username):
            raise OwnershipError("Card does not belong to the current user", card_id=card_id)
        return self._to_results(self.ledger.find_by_card(card_id))

    def get_transfer(self, transfer_id: str, username: str) -> TransferResult:
        record = self.ledger.find_by_id(transfer_id)
        if not record.involves_user(username):
            raise ForbiddenError("Access to this transfer is denied", transfer_id=transfer_id)
        return self._to_results([record])[0]

    # Result assembly

    def _to_result(self, record: TransferRecord, source: Card,
                   destination: Optional[Card]) -> TransferResult:
        return TransferResult(
            id=record.id,
            source_card_id=record.source_card_id,
            destination_card_id=record.destination_card_id,
            masked_source_number=self.cipher.mask(source.encrypted_number),
            masked_destination_number=(
                self.cipher.mask(destination.encrypted_number)
                if destination is not None else MASK_PLACEHOLDER
            ),
            amount=record.amount,
            outcome=record.outcome,
            description=record.description,
            transferred_at=record.transferred_at,
            created_at=record.created_at
        )

    def _to_results(self, records: List[TransferRecord]) -> List[TransferResult]:
        masks: Dict[Optional[str], str] = {None: MASK_PLACEHOLDER}

        def masked(card_id: Optional[str]) -> str:
            if card_id not in masks:
                try:
                    card = self.directory.find_by_id(card_id)
                    masks[card_id] = self.cipher.mask(card.encrypted_number)
                except CardNotFoundError:
                    masks[card_id] = MASK_PLACEHOLDER
            return masks[card_id]

        return [
            TransferResult(
                id=record.id,
                source_card_id=record.source_card_id,
                destination_card_id=record.destination_card_id,
                masked_source_number=masked(record.source_card_id),
                masked_destination_number=masked(record.destination_card_id),
                amount=record.amount,
                outcome=record.outcome,
                description=record.description,
                transferred_at=record.transferred_at,
                created_at=record.created_at
            )
            for record in records
        ]
