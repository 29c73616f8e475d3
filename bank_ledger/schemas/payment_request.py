"""
Pydantic schemas for payment request endpoints.

A payment request is created by the requester ("from") and addressed to
the target ("to"), who pays if they approve it.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from bank_ledger.schemas.transaction import TransactionResponse


class PaymentRequestCreate(BaseModel):
    """Request body for POST /payment-requests."""
    to: str = Field(
        min_length=1,
        max_length=50,
        description="Account number or username of the account asked to pay",
    )
    amount_cents: int = Field(gt=0, description="Amount in cents (must be positive)")
    reason: str = Field(min_length=1, max_length=255)
    message: str | None = Field(None, max_length=1000)


class PaymentRequestResponse(BaseModel):
    id: int
    from_account_id: uuid.UUID
    from_username: str
    to_account_id: uuid.UUID
    to_username: str
    amount_cents: int
    reason: str
    message: str | None
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentRequestListResponse(BaseModel):
    """Requests addressed to the caller and requests the caller made."""
    incoming: list[PaymentRequestResponse]
    outgoing: list[PaymentRequestResponse]


class ApprovalResponse(BaseModel):
    payment_request: PaymentRequestResponse
    transaction: TransactionResponse
