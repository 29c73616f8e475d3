"""
Transaction model — the immutable record of a completed balance movement.

A row is written only as a side effect of a successful ledger operation,
in the same database transaction as the balance updates it explains. Rows
are never updated or deleted afterwards.

Key fields:
  - type: "transfer", "deposit" (onboarding credit) or "admin_adjustment"
  - amount_cents: Positive for transfers and deposits. For admin adjustments
    it is the signed delta that was applied to the customer's balance.
  - from_account_id / to_account_id: Both always set. The reserve account is
    the counterparty of deposits and admin adjustments.
  - status: "completed" for every row the ledger writes. "failed" exists in
    the vocabulary but refused operations leave no row behind.

Why an integer primary key?
  History is displayed newest first, tie-broken by id. An autoincrementing
  id gives a stable insertion order where timestamps collide.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bank_ledger.database import Base


class TransactionType(str, enum.Enum):
    TRANSFER = "transfer"
    DEPOSIT = "deposit"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class TransactionStatus(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    from_account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    to_account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    amount_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus),
        nullable=False,
        default=TransactionStatus.COMPLETED,
    )

    # Indexed for history queries (newest first)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    # --- Relationships ---
    # Eagerly joined so both parties' usernames are available after the
    # session has committed (no lazy loads in async context).
    from_account: Mapped["Account"] = relationship(
        foreign_keys=[from_account_id],
        lazy="joined",
    )
    to_account: Mapped["Account"] = relationship(
        foreign_keys=[to_account_id],
        lazy="joined",
    )

    @property
    def from_username(self) -> str:
        return self.from_account.username

    @property
    def to_username(self) -> str:
        return self.to_account.username
