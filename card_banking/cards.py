"""
Card Module

Card records, the card directory (lookup and compare-and-swap persistence)
and the card manager (issuing cards, status changes, masked views).

Card numbers are stored only as CardNumberCipher ciphertext. Looking a card
up by its plaintext number therefore means decrypting every stored number in
turn: find_by_plaintext_number is O(n) in the number of cards.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import uuid

from .amounts import parse_balance, to_decimal
from .encryption import CardNumberCipher
from .errors import (
    CardNotFoundError, InvalidInputError, InvalidStateError, OwnershipError,
    StaleCardError
)
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


class CardStatus(Enum):
    """Card lifecycle states"""
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"
    EXPIRED = "EXPIRED"
    PENDING_BLOCK = "PENDING_BLOCK"
    PENDING_UNBLOCK = "PENDING_UNBLOCK"


@dataclass
class Card(StorageRecord):
    """
    Bank card. `encrypted_number` is the only form of the card number that
    is ever held or persisted.
    """
    encrypted_number: str
    holder_name: str
    expiry_date: date
    owner_username: str
    balance: Decimal = Decimal("0.00")
    status: CardStatus = CardStatus.ACTIVE
    version: int = 0

    @property
    def is_active(self) -> bool:
        return self.status == CardStatus.ACTIVE

    def is_owned_by(self, username: str) -> bool:
        return self.owner_username == username

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['expiry_date'] = self.expiry_date.isoformat()
        result['status'] = self.status.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Card':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            encrypted_number=data['encrypted_number'],
            holder_name=data['holder_name'],
            expiry_date=date.fromisoformat(data['expiry_date']),
            owner_username=data['owner_username'],
            balance=to_decimal(data['balance']),
            status=CardStatus(data['status']),
            version=int(data.get('version', 0))
        )


@dataclass(frozen=True)
class CardView:
    """Display-safe projection of a card"""
    id: str
    masked_number: str
    holder_name: str
    expiry_date: date
    status: CardStatus
    balance: Decimal
    owner_username: str


class CardDirectory:
    """
    Storage access for cards. Holds no business rules.

    save() is a compare-and-swap on Card.version: a card loaded at version N
    can only be written while the stored copy is still at version N.
    """

    def __init__(self, storage: StorageInterface, cipher: CardNumberCipher):
        self.storage = storage
        self.cipher = cipher
        self.table_name = "cards"

    def find_by_id(self, card_id: str) -> Card:
        data = self.storage.load(self.table_name, card_id)
        if not data:
            raise CardNotFoundError(card_id=card_id)
        return Card.from_dict(data)

    def find_by_plaintext_number(self, plaintext: str) -> Card:
        """
        Linear scan decrypting every stored number.

        TODO: add a keyed HMAC lookup column next to the ciphertext so this
        becomes an indexed query instead of a full decrypting scan.
        """
        for data in self.storage.load_all(self.table_name):
            if self.cipher.matches(plaintext, data.get('encrypted_number')):
                return Card.from_dict(data)
        raise CardNotFoundError()

    def list_by_owner(self, username: str) -> List[Card]:
        records = self.storage.find(self.table_name, {"owner_username": username})
        cards = [Card.from_dict(data) for data in records]
        cards.sort(key=lambda c: c.created_at)
        return cards

    def list_all(self) -> List[Card]:
        return [Card.from_dict(data) for data in self.storage.load_all(self.table_name)]

    def save(self, card: Card) -> Card:
        """
        Persist a card whose stored version still equals card.version.

        Returns:
            The saved card, at version card.version + 1

        Raises:
            StaleCardError: the stored card has moved on since it was read
        """
        with self.storage.atomic():
            current = self.storage.load(self.table_name, card.id)
            if current is not None:
                stored_version = int(current.get('version', 0))
                if stored_version != card.version:
                    raise StaleCardError(card.id, card.version, stored_version)
            elif card.version != 0:
                raise StaleCardError(card.id, card.version, 0)

            saved = replace(
                card,
                version=card.version + 1,
                updated_at=datetime.now(timezone.utc)
            )
            self.storage.save(self.table_name, saved.id, saved.to_dict())
        return saved


class CardManager:
    """
    Card lifecycle outside the transfer engine: issuing cards, changing
    their status and building masked views. Never touches balances of
    existing cards.
    """

    def __init__(self, directory: CardDirectory, cipher: CardNumberCipher):
        self.directory = directory
        self.cipher = cipher
        self.logger = get_logger("card_banking.cards")

    def issue_card(
        self,
        owner_username: str,
        card_number: str,
        holder_name: str,
        expiry_date: Union[date, str],
        initial_balance: Union[str, int, Decimal] = "0.00"
    ) -> Card:
        """
        Issue a new ACTIVE card.

        Raises:
            InvalidInputError: bad number, negative balance, missing owner or
                holder, or the number is already issued
        """
        if not owner_username:
            raise InvalidInputError("Card owner is required")
        if not holder_name or not holder_name.strip():
            raise InvalidInputError("Card holder name is required")
        if isinstance(expiry_date, str):
            try:
                expiry_date = date.fromisoformat(expiry_date)
            except ValueError:
                raise InvalidInputError("Expiry date must be an ISO date") from None

        balance = parse_balance(initial_balance)
        encrypted_number = self.cipher.encrypt(card_number)

        # Duplicate scan and insert share one transaction
        with self.directory.storage.atomic():
            try:
                self.directory.find_by_plaintext_number(card_number)
            except CardNotFoundError:
                pass
            else:
                raise InvalidInputError("Card number is already issued")

            now = datetime.now(timezone.utc)
            card = Card(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                encrypted_number=encrypted_number,
                holder_name=holder_name.strip(),
                expiry_date=expiry_date,
                owner_username=owner_username,
                balance=balance,
                status=CardStatus.ACTIVE
            )
            card = self.directory.save(card)

        log_action(
            self.logger, "info", "Card issued",
            username=owner_username, action="issue_card", resource=f"card:{card.id}",
            extra={"masked_number": self.cipher.mask(card.encrypted_number)}
        )
        return card

    def change_status(self, card_id: str, status: Union[CardStatus, str]) -> Card:
        """Set a card's status (block, unblock, expire...)"""
        if isinstance(status, str):
            try:
                status = CardStatus(status.upper())
            except ValueError:
                raise InvalidInputError(f"Unknown card status '{status}'") from None

        card = self.directory.find_by_id(card_id)
        previous = card.status
        card = self.directory.save(replace(card, status=status))

        log_action(
            self.logger, "info", "Card status changed",
            action="change_card_status", resource=f"card:{card.id}",
            extra={"from": previous.value, "to": status.value}
        )
        return card

    def request_block(self, card_id: str, username: str) -> Card:
        """
        Owner asks for a card to be blocked; the card moves to PENDING_BLOCK
        until an administrator sets its final status.

        Raises:
            CardNotFoundError: no such card
            OwnershipError: card belongs to someone else
            InvalidStateError: card is already blocked or awaiting a block
        """
        card = self._owned_card(card_id, username)
        if card.status in (CardStatus.BLOCKED, CardStatus.PENDING_BLOCK):
            raise InvalidStateError("Card is already blocked",
                                    card_id=card_id, status=card.status.value)
        return self._request_status(card, username, CardStatus.PENDING_BLOCK, "request_block")

    def request_unblock(self, card_id: str, username: str) -> Card:
        """
        Owner asks for a blocked card to be unblocked (moves to PENDING_UNBLOCK).

        Raises:
            CardNotFoundError, OwnershipError
            InvalidStateError: card is not BLOCKED
        """
        card = self._owned_card(card_id, username)
        if card.status != CardStatus.BLOCKED:
            raise InvalidStateError("Card is not blocked",
                                    card_id=card_id, status=card.status.value)
        return self._request_status(card, username, CardStatus.PENDING_UNBLOCK, "request_unblock")

    def _owned_card(self, card_id: str, username: str) -> Card:
        card = self.directory.find_by_id(card_id)
        if not card.is_owned_by(username):
            raise OwnershipError("Card does not belong to the current user", card_id=card_id)
        return card

    def _request_status(self, card: Card, username: str, status: CardStatus, action: str) -> Card:
        saved = self.directory.save(replace(card, status=status))
        log_action(
            self.logger, "info", f"Card status change requested: {status.value}",
            username=username, action=action, resource=f"card:{card.id}",
            extra={"masked_number": self.cipher.mask(card.encrypted_number)}
        )
        return saved

    def total_balance(self, username: str) -> Decimal:
        """Sum of the balances of the user's ACTIVE cards"""
        return sum(
            (card.balance for card in self.directory.list_by_owner(username) if card.is_active),
            Decimal("0.00")
        )

    def list_all_cards(self) -> List[CardView]:
        """Every card in the system (administrative view)"""
        cards = sorted(self.directory.list_all(), key=lambda c: c.created_at)
        return [self.to_view(card) for card in cards]

    def to_view(self, card: Card) -> CardView:
        return CardView(
            id=card.id,
            masked_number=self.cipher.mask(card.encrypted_number),
            holder_name=card.holder_name,
            expiry_date=card.expiry_date,
            status=card.status,
            balance=card.balance,
            owner_username=card.owner_username
        )

    def list_cards(self, username: str) -> List[CardView]:
        return [self.to_view(card) for card in self.directory.list_by_owner(username)]

    def get_card(self, card_id: str, username: Optional[str] = None) -> CardView:
        """Masked view of a card; restricted to its owner when username is given"""
        card = self.directory.find_by_id(card_id)
        if username is not None and not card.is_owned_by(username):
            raise OwnershipError("Card does not belong to the current user", card_id=card_id)
        return self.to_view(card)
