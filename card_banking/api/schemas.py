"""
Pydantic schemas for API requests and responses
"""

from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, Field

from ..cards import CardView
from ..transfers import TransferResult


# Transfer schemas
class TransferRequest(BaseModel):
    from_card_id: str
    to_card_number: str = Field(..., description="Plaintext destination card number")
    amount: Union[str, int] = Field(..., description="Decimal amount as string or whole number")
    description: Optional[str] = Field(None, max_length=255)


class TransferResponse(BaseModel):
    id: str
    from_card_id: str
    to_card_id: Optional[str] = None
    from_card_number: str = Field(..., description="Masked source card number")
    to_card_number: str = Field(..., description="Masked destination card number")
    amount: str
    status: str
    description: Optional[str] = None
    transferred_at: datetime
    created_at: datetime

    @classmethod
    def from_result(cls, result: TransferResult) -> 'TransferResponse':
        return cls(
            id=result.id,
            from_card_id=result.source_card_id,
            to_card_id=result.destination_card_id,
            from_card_number=result.masked_source_number,
            to_card_number=result.masked_destination_number,
            amount=str(result.amount),
            status=result.outcome.value,
            description=result.description,
            transferred_at=result.transferred_at,
            created_at=result.created_at
        )


# Card schemas
class IssueCardRequest(BaseModel):
    owner_username: str
    card_number: str
    holder_name: str
    expiry_date: date
    initial_balance: Union[str, int] = Field("0.00", description="Decimal amount as string or whole number")


class CardStatusRequest(BaseModel):
    status: str = Field(..., description="ACTIVE, BLOCKED, EXPIRED, PENDING_BLOCK or PENDING_UNBLOCK")


class CardResponse(BaseModel):
    id: str
    masked_number: str
    holder_name: str
    expiry_date: date
    status: str
    balance: str
    owner_username: str

    @classmethod
    def from_view(cls, view: CardView) -> 'CardResponse':
        return cls(
            id=view.id,
            masked_number=view.masked_number,
            holder_name=view.holder_name,
            expiry_date=view.expiry_date,
            status=view.status.value,
            balance=str(view.balance),
            owner_username=view.owner_username
        )


class TotalBalanceResponse(BaseModel):
    username: str
    total_balance: str = Field(..., description="Sum over the user's ACTIVE cards")
