"""
Card endpoints
"""

from typing import List

from fastapi import APIRouter, Depends, status

from .auth import (
    CardBankingSystem, Principal, get_card_banking_system,
    get_current_principal, require_admin
)
from .schemas import (
    CardResponse, CardStatusRequest, IssueCardRequest, TotalBalanceResponse
)


router = APIRouter()


@router.get("", response_model=List[CardResponse])
def list_cards(
    principal: Principal = Depends(get_current_principal),
    system: CardBankingSystem = Depends(get_card_banking_system)
):
    """The caller's cards with masked numbers"""
    views = system.card_manager.list_cards(principal.username)
    return [CardResponse.from_view(v) for v in views]


@router.get("/balance", response_model=TotalBalanceResponse)
def get_total_balance(
    principal: Principal = Depends(get_current_principal),
    system: CardBankingSystem = Depends(get_card_banking_system)
):
    """Total balance over the caller's ACTIVE cards"""
    total = system.card_manager.total_balance(principal.username)
    return TotalBalanceResponse(username=principal.username, total_balance=str(total))


@router.get("/all", response_model=List[CardResponse])
def list_all_cards(
    admin: Principal = Depends(require_admin),
    system: CardBankingSystem = Depends(get_card_banking_system)
):
    """Every card in the system (administrators only)"""
    return [CardResponse.from_view(v) for v in system.card_manager.list_all_cards()]


@router.get("/{card_id}", response_model=CardResponse)
def get_card(
    card_id: str,
    principal: Principal = Depends(get_current_principal),
    system: CardBankingSystem = Depends(get_card_banking_system)
):
    """A single card; administrators may view any card"""
    owner = None if principal.is_admin else principal.username
    return CardResponse.from_view(system.card_manager.get_card(card_id, owner))


@router.post("/{card_id}/block-request", response_model=CardResponse)
def request_block(
    card_id: str,
    principal: Principal = Depends(get_current_principal),
    system: CardBankingSystem = Depends(get_card_banking_system)
):
    card = system.card_manager.request_block(card_id, principal.username)
    return CardResponse.from_view(system.card_manager.to_view(card))


@router.post("/{card_id}/unblock-request", response_model=CardResponse)
def request_unblock(
    card_id: str,
    principal: Principal = Depends(get_current_principal),
    system: CardBankingSystem = Depends(get_card_banking_system)
):
    card = system.card_manager.request_unblock(card_id, principal.username)
    return CardResponse.from_view(system.card_manager.to_view(card))


@router.post("", status_code=status.HTTP_201_CREATED, response_model=CardResponse)
def issue_card(
    request: IssueCardRequest,
    admin: Principal = Depends(require_admin),
    system: CardBankingSystem = Depends(get_card_banking_system)
):
    """Issue a card to a user (administrators only)"""
    card = system.card_manager.issue_card(
        owner_username=request.owner_username,
        card_number=request.card_number,
        holder_name=request.holder_name,
        expiry_date=request.expiry_date,
        initial_balance=request.initial_balance
    )
    return CardResponse.from_view(system.card_manager.to_view(card))


@router.patch("/{card_id}/status", response_model=CardResponse)
def change_card_status(
    card_id: str,
    request: CardStatusRequest,
    admin: Principal = Depends(require_admin),
    system: CardBankingSystem = Depends(get_card_banking_system)
):
    """Block, unblock or expire a card (administrators only)"""
    card = system.card_manager.change_status(card_id, request.status)
    return CardResponse.from_view(system.card_manager.to_view(card))
