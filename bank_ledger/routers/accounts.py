"""
Account router — the authenticated member's own account.

Endpoints:
  GET /account              — Account details
  GET /account/balance      — Current balance
  GET /account/transactions — Transaction history, newest first

Everything here is scoped to the caller; there is no way to read another
member's account through these routes. Amounts in the history are signed
from the caller's point of view: negative when the caller paid.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.database import get_db
from bank_ledger.dependencies import get_current_member, get_ledger
from bank_ledger.models.account import Account
from bank_ledger.schemas.account import AccountResponse, BalanceResponse
from bank_ledger.schemas.transaction import TransactionResponse
from bank_ledger.services.ledger_service import LedgerEngine, signed_amount_for

router = APIRouter()


@router.get(
    "",
    response_model=AccountResponse,
    summary="Get own account details",
)
async def get_account(account: Account = Depends(get_current_member)):
    return account


@router.get(
    "/balance",
    response_model=BalanceResponse,
    summary="Get own balance",
)
async def get_balance(
    account: Account = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerEngine = Depends(get_ledger),
):
    """Current balance in cents, read fresh from the store."""
    balance = await ledger.get_balance(db, account.id)
    return BalanceResponse(account_number=account.account_number, balance_cents=balance)


@router.get(
    "/transactions",
    response_model=list[TransactionResponse],
    summary="List own transactions",
)
async def list_transactions(
    limit: int = Query(50, ge=1, le=200),
    account: Account = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerEngine = Depends(get_ledger),
):
    """
    The caller's transactions, newest first.

    Each amount is negative when the caller paid and positive when the
    caller received.
    """
    transactions = await ledger.list_transactions(db, account.id, limit=limit)
    return [
        TransactionResponse.model_validate(txn).model_copy(
            update={"amount_cents": signed_amount_for(txn, account.id)}
        )
        for txn in transactions
    ]
