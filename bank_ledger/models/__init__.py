"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all() runs
  2. String relationship targets (e.g. "Account") resolve
  3. Other modules can import from bank_ledger.models directly
"""

from bank_ledger.models.account import Account, UserType  # noqa: F401
from bank_ledger.models.transaction import (  # noqa: F401
    Transaction,
    TransactionStatus,
    TransactionType,
)
from bank_ledger.models.payment_request import (  # noqa: F401
    PaymentRequest,
    PaymentRequestStatus,
)
from bank_ledger.models.card import Card  # noqa: F401
from bank_ledger.models.session import Session  # noqa: F401
