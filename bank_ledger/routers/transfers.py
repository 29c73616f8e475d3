"""
Transfers router — peer-to-peer money transfers.

Endpoints:
  POST /transfers — Send money to another account

A transfer debits the caller, credits the recipient and records one
"transfer" transaction, all in one atomic unit. The recipient is named by
account number or username.

Only members can initiate transfers (admins are blocked from member
endpoints and use /admin/bank-transfer to pay out from the reserve).
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.database import get_db
from bank_ledger.dependencies import get_current_member, get_ledger
from bank_ledger.models.account import Account
from bank_ledger.schemas.transaction import TransactionResponse, TransferRequest
from bank_ledger.services.ledger_service import LedgerEngine

router = APIRouter()


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Transfer money to another account",
)
async def create_transfer(
    request: TransferRequest,
    account: Account = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerEngine = Depends(get_ledger),
):
    """
    Transfer money from the caller's account.

    Either the debit, the credit and the transaction record all happen,
    or none of them do.

    - **to**: Recipient account number or username (not yourself)
    - **amount_cents**: Positive integer in cents (e.g., $50.00 = 5000)
    - **description**: Optional memo
    """
    return await ledger.transfer(
        db=db,
        source_account_id=account.id,
        destination=request.to,
        amount_cents=request.amount_cents,
        description=request.description,
    )
