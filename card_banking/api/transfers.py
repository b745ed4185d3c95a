"""
Transfer endpoints
"""

from typing import List

from fastapi import APIRouter, Depends, status

from .auth import CardBankingSystem, get_card_banking_system, get_current_username
from .schemas import TransferRequest, TransferResponse


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=TransferResponse)
def create_transfer(
    request: TransferRequest,
    username: str = Depends(get_current_username),
    system: CardBankingSystem = Depends(get_card_banking_system)
):
    """Transfer funds between two of the caller's cards"""
    result = system.transfer_engine.create_transfer(
        username=username,
        source_card_id=request.from_card_id,
        destination_card_number=request.to_card_number,
        amount=request.amount,
        description=request.description
    )
    return TransferResponse.from_result(result)


@router.get("/my", response_model=List[TransferResponse])
def list_my_transfers(
    username: str = Depends(get_current_username),
    system: CardBankingSystem = Depends(get_card_banking_system)
):
    """All transfers touching the caller's cards, newest first"""
    results = system.transfer_engine.list_user_transfers(username)
    return [TransferResponse.from_result(r) for r in results]


@router.get("/card/{card_id}", response_model=List[TransferResponse])
def list_card_transfers(
    card_id: str,
    username: str = Depends(get_current_username),
    system: CardBankingSystem = Depends(get_card_banking_system)
):
    results = system.transfer_engine.list_card_transfers(card_id, username)
    return [TransferResponse.from_result(r) for r in results]


@router.get("/{transfer_id}", response_model=TransferResponse)
def get_transfer(
    transfer_id: str,
    username: str = Depends(get_current_username),
    system: CardBankingSystem = Depends(get_card_banking_system)
):
    result = system.transfer_engine.get_transfer(transfer_id, username)
    return TransferResponse.from_result(result)
