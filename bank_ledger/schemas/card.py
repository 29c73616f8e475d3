"""
Pydantic schemas for Card endpoints.

The full card number is decrypted only for its owner's GET /card and
refresh responses; everything else sees the last four digits.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel


class CardResponse(BaseModel):
    id: uuid.UUID
    card_number: str
    last_four: str
    expiry: str
    generation: int
    is_active: bool
    last_refresh_at: datetime | None
    created_at: datetime
    can_refresh: bool
    seconds_until_refresh: int | None
