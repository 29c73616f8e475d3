"""
Account model — the single record per bank customer.

Each account carries:
  - Login identity (unique username and email, Argon2 password hash, role)
  - A unique 10-digit account number (the public handle for transfers, and
    the seed for the account's virtual card)
  - A balance in integer cents, written only by the ledger engine

Balance management:
  The `balance_cents` column stores the current balance as an integer
  (in cents, e.g., 10.50 = 1050). All arithmetic is exact. Every change is
  made by a conditional UPDATE inside the same database transaction as the
  Transaction row that explains it.

  A CHECK constraint at the database level enforces that the balance can
  never go negative. The ledger checks before debiting too; the constraint
  is the final safety net.

The reserve account:
  One row represents the bank itself. It is an ordinary Account whose
  username (settings.RESERVE_USERNAME) can never be registered. The ledger
  re-pins its balance to a large sentinel after every mutation touching it,
  so it behaves as if it had inexhaustible funds.

User types:
  - ADMIN: Operator who may adjust balances and pay out from the reserve
  - MEMBER: Bank customer, the default role for signup
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from bank_ledger.database import Base


class UserType(str, enum.Enum):
    """
    Defines the role an account holds within the banking system.

    Inherits from str so the enum value serializes naturally to JSON
    and can be stored as a simple string in the database.
    """
    ADMIN = "admin"
    MEMBER = "member"


class Account(Base):
    __tablename__ = "accounts"

    # Database-level constraint: balance can never be negative
    __table_args__ = (
        CheckConstraint(
            "balance_cents >= 0",
            name="ck_accounts_non_negative_balance",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    username: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    # Argon2id hash of the password (never store plaintext)
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    user_type: Mapped[UserType] = mapped_column(
        Enum(UserType),
        default=UserType.MEMBER,
        nullable=False,
    )

    # Unique 10-digit account number (generated at creation time)
    account_number: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True,
    )

    balance_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    # Soft-disable: deactivated accounts can't log in but their data is preserved
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Audit timestamps
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
