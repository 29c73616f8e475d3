"""
Card model — one generation of an account's virtual card.

The card number is not random: it is derived from the account number and
the generation counter (see services/card_service.derive_card_number), so
the same account and generation always yield the same number.

Generations:
  The first card an account sees is generation 0. Refreshing deactivates
  the current row and inserts a new one with generation + 1. Rows are never
  modified after creation except for clearing is_active, so the table is
  the complete history of an account's cards.

  A partial unique index guarantees at most one active card per account
  at the store level, whatever the application does.

Encryption strategy:
  - card_number_encrypted: Full 16-digit card number, Fernet-encrypted
  - card_number_last_four: Last 4 digits in plaintext (for "ending in ****")
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, LargeBinary, String, text
from sqlalchemy.orm import Mapped, mapped_column

from bank_ledger.database import Base


class Card(Base):
    __tablename__ = "cards"

    __table_args__ = (
        Index(
            "uq_cards_one_active_per_account",
            "account_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    # Full card number, Fernet-encrypted (AES-128-CBC + HMAC-SHA256)
    card_number_encrypted: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
    )

    # Last four digits in plaintext for display ("ending in 4242")
    card_number_last_four: Mapped[str] = mapped_column(
        String(4),
        nullable=False,
    )

    # "MM/YY", three years after issuance
    expiry: Mapped[str] = mapped_column(
        String(5),
        nullable=False,
    )

    # Refresh seed: 0 for the first card, +1 on every refresh
    generation: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # NULL until the account refreshes for the first time
    last_refresh_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
