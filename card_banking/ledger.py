"""
Transfer Ledger Module

Append-only record of card-to-card transfer attempts. Records are frozen;
the ledger exposes no update or delete operation.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from .amounts import to_decimal
from .errors import InvalidInputError, TransferNotFoundError
from .storage import StorageInterface


class TransferOutcome(Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass(frozen=True)
class TransferRecord:
    """
    One transfer attempt. `id`, `sequence` and `created_at` are assigned by
    TransferLedger.append; records built by callers leave them unset.

    `source_owner` / `destination_owner` are copied from the cards when the
    record is built. Card ownership never changes, so they stay accurate.
    """
    source_card_id: str
    destination_card_id: Optional[str]
    amount: Decimal
    transferred_at: datetime
    outcome: TransferOutcome
    source_owner: str
    destination_owner: Optional[str] = None
    description: Optional[str] = None
    failure_reason: Optional[str] = None
    id: Optional[str] = None
    sequence: int = 0
    created_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == TransferOutcome.SUCCESS

    def involves_user(self, username: str) -> bool:
        return username in (self.source_owner, self.destination_owner)

    def involves_card(self, card_id: str) -> bool:
        return card_id in (self.source_card_id, self.destination_card_id)


def _record_to_dict(record: TransferRecord) -> Dict[str, Any]:
    return {
        'id': record.id,
        'source_card_id': record.source_card_id,
        'destination_card_id': record.destination_card_id,
        'amount': str(record.amount),
        'transferred_at': record.transferred_at.isoformat(),
        'outcome': record.outcome.value,
        'source_owner': record.source_owner,
        'destination_owner': record.destination_owner,
        'description': record.description,
        'failure_reason': record.failure_reason,
        'sequence': record.sequence,
        'created_at': record.created_at.isoformat(),
        # Required by the storage backends' timestamp columns
        'updated_at': record.created_at.isoformat(),
    }


def _record_from_dict(data: Dict[str, Any]) -> TransferRecord:
    return TransferRecord(
        id=data['id'],
        source_card_id=data['source_card_id'],
        destination_card_id=data.get('destination_card_id'),
        amount=to_decimal(data['amount']),
        transferred_at=datetime.fromisoformat(data['transferred_at']),
        outcome=TransferOutcome(data['outcome']),
        source_owner=data['source_owner'],
        destination_owner=data.get('destination_owner'),
        description=data.get('description'),
        failure_reason=data.get('failure_reason'),
        sequence=int(data['sequence']),
        created_at=datetime.fromisoformat(data['created_at'])
    )


def _newest_first(records: List[TransferRecord]) -> List[TransferRecord]:
    return sorted(records, key=lambda r: (r.transferred_at, r.sequence), reverse=True)


class TransferLedger:
    """Persistence for TransferRecords"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "transfers"

    def append(self, record: TransferRecord) -> TransferRecord:
        """
        Persist a new record, assigning its id, sequence and created_at.

        Joins the caller's transaction when called inside storage.atomic().

        Raises:
            InvalidInputError: the record was already appended
        """
        if record.id is not None:
            raise InvalidInputError("Transfer record has already been appended",
                                    transfer_id=record.id)

        with self.storage.atomic():
            stored = replace(
                record,
                id=str(uuid.uuid4()),
                sequence=self.storage.count(self.table_name) + 1,
                created_at=datetime.now(timezone.utc)
            )
            self.storage.save(self.table_name, stored.id, _record_to_dict(stored))
        return stored

    def find_by_id(self, transfer_id: str) -> TransferRecord:
        data = self.storage.load(self.table_name, transfer_id)
        if not data:
            raise TransferNotFoundError(transfer_id=transfer_id)
        return _record_from_dict(data)

    def find_by_user(self, username: str) -> List[TransferRecord]:
        """Records where the user owns the source or destination card, newest first"""
        records = [_record_from_dict(data) for data in self.storage.load_all(self.table_name)]
        return _newest_first([r for r in records if r.involves_user(username)])

    def find_by_card(self, card_id: str) -> List[TransferRecord]:
        """Records touching the card on either side, newest first"""
        records = [_record_from_dict(data) for data in self.storage.load_all(self.table_name)]
        return _newest_first([r for r in records if r.involves_card(card_id)])

    def count(self) -> int:
        return self.storage.count(self.table_name)
