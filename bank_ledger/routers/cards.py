"""
Cards router — the caller's virtual card.

Endpoints:
  GET  /card         — The active card (issued on first request)
  POST /card/refresh — Replace the card with a new number

Card numbers are derived from the account number and a generation
counter, so the same account always sees the same number until it
refreshes. Refreshing is allowed once per cooldown period (24 hours by
default); an early refresh returns 429 with retry_after_seconds.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.database import get_db
from bank_ledger.dependencies import get_card_service, get_current_member
from bank_ledger.models.account import Account
from bank_ledger.models.card import Card
from bank_ledger.schemas.card import CardResponse
from bank_ledger.services.card_service import CardService

router = APIRouter()


def _card_response(card: Card, cards: CardService) -> CardResponse:
    remaining = cards.time_until_next_refresh(card)
    return CardResponse(
        id=card.id,
        card_number=cards.reveal_card_number(card),
        last_four=card.card_number_last_four,
        expiry=card.expiry,
        generation=card.generation,
        is_active=card.is_active,
        last_refresh_at=card.last_refresh_at,
        created_at=card.created_at,
        can_refresh=remaining is None,
        seconds_until_refresh=int(remaining.total_seconds()) if remaining else None,
    )


@router.get(
    "",
    response_model=CardResponse,
    summary="Get own card",
)
async def get_card(
    account: Account = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
    cards: CardService = Depends(get_card_service),
):
    """
    Get the caller's active card.

    The first call issues generation 0. can_refresh and
    seconds_until_refresh describe the refresh cooldown.
    """
    card = await cards.get_active_card(db, account)
    return _card_response(card, cards)


@router.post(
    "/refresh",
    response_model=CardResponse,
    summary="Refresh own card",
)
async def refresh_card(
    account: Account = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
    cards: CardService = Depends(get_card_service),
):
    """
    Deactivate the current card and issue the next generation.

    Returns 429 if the last refresh was less than the cooldown ago.
    """
    await cards.get_active_card(db, account)
    card = await cards.refresh_card(db, account)
    return _card_response(card, cards)
