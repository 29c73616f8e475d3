"""
Pydantic schemas for Account endpoints.

All monetary amounts are expressed in integer cents.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel


class AccountResponse(BaseModel):
    """Public representation of an account (never includes the password hash)."""
    id: uuid.UUID
    username: str
    email: str
    user_type: str
    account_number: str
    balance_cents: int
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    account_number: str
    balance_cents: int
