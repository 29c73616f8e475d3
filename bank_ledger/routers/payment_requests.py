"""
Payment requests router — asking another member for money.

Endpoints:
  POST /payment-requests               — Ask another account to pay you
  GET  /payment-requests               — Incoming and outgoing requests
  POST /payment-requests/{id}/approve  — Pay a request addressed to you
  POST /payment-requests/{id}/reject   — Decline a request addressed to you
  POST /payment-requests/{id}/cancel   — Withdraw a request you made

A request stays "pending" until exactly one of approve, reject or cancel
succeeds. Approving moves the money in the same unit as the status change,
so a failed payment leaves the request pending.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.database import get_db
from bank_ledger.dependencies import get_current_member, get_ledger
from bank_ledger.models.account import Account
from bank_ledger.schemas.payment_request import (
    ApprovalResponse,
    PaymentRequestCreate,
    PaymentRequestListResponse,
    PaymentRequestResponse,
)
from bank_ledger.schemas.transaction import TransactionResponse
from bank_ledger.services.ledger_service import LedgerEngine

router = APIRouter()


@router.post(
    "",
    response_model=PaymentRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request money from another account",
)
async def create_payment_request(
    request: PaymentRequestCreate,
    account: Account = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerEngine = Depends(get_ledger),
):
    """
    Ask another account to pay you. No money moves until it is approved.

    - **to**: Account number or username of the account asked to pay
    - **amount_cents**: Positive integer in cents
    - **reason**: Required; becomes "Payment for: <reason>" on approval
    """
    return await ledger.create_payment_request(
        db=db,
        requester_id=account.id,
        target=request.to,
        amount_cents=request.amount_cents,
        reason=request.reason,
        message=request.message,
    )


@router.get(
    "",
    response_model=PaymentRequestListResponse,
    summary="List own payment requests",
)
async def list_payment_requests(
    account: Account = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerEngine = Depends(get_ledger),
):
    incoming, outgoing = await ledger.list_payment_requests(db, account.id)
    return PaymentRequestListResponse(
        incoming=[PaymentRequestResponse.model_validate(pr) for pr in incoming],
        outgoing=[PaymentRequestResponse.model_validate(pr) for pr in outgoing],
    )


@router.post(
    "/{request_id}/approve",
    response_model=ApprovalResponse,
    summary="Approve and pay a request",
)
async def approve_payment_request(
    request_id: int,
    account: Account = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerEngine = Depends(get_ledger),
):
    """
    Pay a pending request addressed to you.

    Fails with 409 if the request was already approved, rejected or
    cancelled, and with 422 if your balance doesn't cover it. In both
    cases nothing changes.
    """
    txn = await ledger.approve_payment_request(db, request_id, account.id)
    payment_request = await ledger.get_payment_request(db, request_id)
    return ApprovalResponse(
        payment_request=PaymentRequestResponse.model_validate(payment_request),
        transaction=TransactionResponse.model_validate(txn),
    )


@router.post(
    "/{request_id}/reject",
    response_model=PaymentRequestResponse,
    summary="Reject a request",
)
async def reject_payment_request(
    request_id: int,
    account: Account = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerEngine = Depends(get_ledger),
):
    return await ledger.reject_payment_request(db, request_id, account.id)


@router.post(
    "/{request_id}/cancel",
    response_model=PaymentRequestResponse,
    summary="Cancel a request you made",
)
async def cancel_payment_request(
    request_id: int,
    account: Account = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerEngine = Depends(get_ledger),
):
    return await ledger.cancel_payment_request(db, request_id, account.id)
