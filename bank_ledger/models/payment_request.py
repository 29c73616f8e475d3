"""
PaymentRequest model — one account asking another for money.

Lifecycle:
    pending ──approve (target)──> approved
            ──reject  (target)──> rejected
            ──cancel  (requester)─> cancelled

Terminal states are final. Every transition is a conditional UPDATE that
only matches a row which is still "pending" and belongs to the acting party,
so of two concurrent actions on the same request exactly one can win.

Field naming follows the direction of the request, not of the money:
  - from_account_id is the requester (who will receive the money)
  - to_account_id is the target (who is asked to pay)
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bank_ledger.database import Base


class PaymentRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class PaymentRequest(Base):
    __tablename__ = "payment_requests"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    # Requester
    from_account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    # Target, the account asked to pay
    to_account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    amount_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    reason: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    status: Mapped[PaymentRequestStatus] = mapped_column(
        Enum(PaymentRequestStatus),
        nullable=False,
        default=PaymentRequestStatus.PENDING,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # --- Relationships ---
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
