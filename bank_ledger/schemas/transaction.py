"""
Pydantic schemas for Transaction and Transfer endpoints.

All monetary amounts are in integer cents (e.g., $10.50 = 1050).
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class TransferRequest(BaseModel):
    """Request body for POST /transfers."""
    to: str = Field(
        min_length=1,
        max_length=50,
        description="Recipient account number or username",
    )
    amount_cents: int = Field(gt=0, description="Amount in cents (must be positive)")
    description: str | None = Field(None, max_length=255)


class TransactionResponse(BaseModel):
    """
    Public representation of a transaction.

    amount_cents is the stored amount. In an account's own history it is
    signed from that account's point of view (negative when it paid).
    """
    id: int
    type: str
    status: str
    amount_cents: int
    from_account_id: uuid.UUID
    from_username: str
    to_account_id: uuid.UUID
    to_username: str
    description: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
