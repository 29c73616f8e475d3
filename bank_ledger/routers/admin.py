"""
Admin router — organization-wide visibility and balance operations.

All endpoints require the ADMIN role. Admins don't move their own money;
every balance change they make has the reserve account as counterparty.

Endpoints:
  GET  /admin/accounts                   — List ALL accounts
  GET  /admin/accounts/{account_number}  — Get any account by number
  GET  /admin/transactions               — List ALL transactions
  POST /admin/adjust-balance             — Credit or debit any account
  POST /admin/bank-transfer              — Pay out from the reserve
  POST /admin/reconcile                  — Re-pin the reserve balance now

By consolidating all admin routes in one router, we avoid route-ordering
conflicts that arise when multiple routers share a prefix and have
overlapping parameterized paths.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.database import get_db
from bank_ledger.dependencies import get_ledger, require_admin
from bank_ledger.models.account import Account
from bank_ledger.models.transaction import TransactionType
from bank_ledger.schemas.account import AccountResponse
from bank_ledger.schemas.admin import (
    AdjustBalanceRequest,
    BankTransferRequest,
    ReconcileResponse,
)
from bank_ledger.schemas.transaction import TransactionResponse
from bank_ledger.services import account_service
from bank_ledger.services.ledger_service import LedgerEngine

router = APIRouter()


# ---------------------------------------------------------------------------
# Account admin endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/accounts",
    response_model=list[AccountResponse],
    summary="[Admin] List all accounts",
)
async def admin_list_all_accounts(
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """List every account in the system, the reserve included."""
    return await account_service.admin_get_all_accounts(db)


@router.get(
    "/accounts/{account_number}",
    response_model=AccountResponse,
    summary="[Admin] Get any account by number",
)
async def admin_get_account(
    account_number: str,
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await account_service.admin_get_account_by_number(db, account_number)


# ---------------------------------------------------------------------------
# Transaction admin endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/transactions",
    response_model=list[TransactionResponse],
    summary="[Admin] List ALL transactions",
)
async def admin_list_all_transactions(
    type: TransactionType | None = Query(None, description="Filter by type"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerEngine = Depends(get_ledger),
):
    """
    List every transaction in the system, newest first.

    Supports filtering by type (transfer/deposit/admin_adjustment) plus
    pagination.
    """
    return await ledger.admin_list_transactions(
        db=db,
        type_filter=type,
        limit=limit,
        offset=offset,
    )


@router.post(
    "/adjust-balance",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="[Admin] Credit or debit an account",
)
async def admin_adjust_balance(
    request: AdjustBalanceRequest,
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerEngine = Depends(get_ledger),
):
    """
    Apply a signed adjustment to any account.

    - **amount_cents**: Positive credits, negative debits; never zero
    - A debit larger than the balance is refused with 422
    """
    return await ledger.create_admin_transaction(
        db=db,
        target_account_id=request.account_id,
        signed_amount_cents=request.amount_cents,
        description=request.description,
        merchant_name=request.merchant_name,
    )


@router.post(
    "/bank-transfer",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="[Admin] Pay out from the reserve",
)
async def admin_bank_transfer(
    request: BankTransferRequest,
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerEngine = Depends(get_ledger),
):
    return await ledger.bank_transfer(
        db=db,
        destination=request.to,
        amount_cents=request.amount_cents,
        description=request.description,
    )


@router.post(
    "/reconcile",
    response_model=ReconcileResponse,
    summary="[Admin] Re-pin the reserve balance",
)
async def admin_reconcile(
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerEngine = Depends(get_ledger),
):
    """Force the reserve back to its sentinel balance, repairing out-of-band writes."""
    repinned = await ledger.ensure_reserve_invariant(db)
    return ReconcileResponse(
        reserve_username=ledger.reserve_username,
        reserve_balance_cents=ledger.reserve_balance_cents,
        repinned=repinned,
    )
