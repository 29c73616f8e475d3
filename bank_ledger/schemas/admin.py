"""
Pydantic schemas for admin endpoints.
"""

import uuid

from pydantic import BaseModel, Field


class AdjustBalanceRequest(BaseModel):
    """
    Request body for POST /admin/adjust-balance.

    amount_cents is signed: positive credits the account, negative debits it.
    """
    account_id: uuid.UUID
    amount_cents: int = Field(description="Signed amount in cents, non-zero")
    description: str = Field(min_length=1, max_length=255)
    merchant_name: str | None = Field(None, max_length=100)


class BankTransferRequest(BaseModel):
    """Request body for POST /admin/bank-transfer (payout from the reserve)."""
    to: str = Field(min_length=1, max_length=50)
    amount_cents: int = Field(gt=0)
    description: str | None = Field(None, max_length=255)


class ReconcileResponse(BaseModel):
    reserve_username: str
    reserve_balance_cents: int
    repinned: bool
