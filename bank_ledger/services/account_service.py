"""
Account service — the account store.

This module handles:
  - Account creation (with unique account number generation)
  - Account lookup by id, username, account number, or either of the last two
  - Reserved-username checks
  - Admin listing and operator promotion

It never touches balances. New accounts are created with a zero balance
and the ledger engine funds them (see LedgerEngine.grant_onboarding_credit).
Functions here only flush; the caller's atomic() unit decides when the
new row is committed.
"""

import random
import string
import unicodedata
import uuid

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.config import settings
from bank_ledger.database import atomic
from bank_ledger.exceptions import (
    AccountNotFoundError,
    DuplicateEmailError,
    DuplicateUsernameError,
    RecipientNotFoundError,
    ReservedIdentityError,
)
from bank_ledger.models.account import Account, UserType


def _generate_account_number() -> str:
    """
    Generate a random 10-digit account number.

    Random rather than sequential so numbers can't be guessed by counting.
    """
    return "".join(random.choices(string.digits, k=10))


def is_reserved_username(username: str, reserve_username: str | None = None) -> bool:
    """True if the name collides with the reserve account's, ignoring case and accents."""
    reserved = reserve_username or settings.RESERVE_USERNAME
    return _fold(username) == _fold(reserved)


def _fold(name: str) -> str:
    decomposed = unicodedata.normalize("NFKD", name)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()


async def create_account(
    db: AsyncSession,
    username: str,
    email: str,
    hashed_password: str,
    user_type: UserType = UserType.MEMBER,
    allow_reserved: bool = False,
) -> Account:
    """
    Insert a new account with a unique account number and zero balance.

    Args:
        db: Database session.
        username: Login name, unique.
        email: Contact email, unique.
        hashed_password: Already-hashed password.
        user_type: Role of the new account.
        allow_reserved: Only the ledger's bootstrap may create the reserve row.

    Returns:
        The flushed Account instance.

    Raises:
        ReservedIdentityError: If the username is the reserve account's.
        DuplicateUsernameError / DuplicateEmailError: If already taken.
    """
    if not allow_reserved and is_reserved_username(username):
        raise ReservedIdentityError(username)

    if await get_account_by_username(db, username) is not None:
        raise DuplicateUsernameError(username)

    existing_email = await db.execute(select(Account).where(Account.email == email))
    if existing_email.scalar_one_or_none() is not None:
        raise DuplicateEmailError(email)

    # Generate a unique account number (retry if collision, extremely unlikely)
    for _ in range(10):
        account_number = _generate_account_number()
        if await get_account_by_number(db, account_number) is None:
            break
    else:
        raise RuntimeError("Failed to generate a unique account number")

    account = Account(
        username=username,
        email=email,
        hashed_password=hashed_password,
        user_type=user_type,
        account_number=account_number,
        balance_cents=0,
    )
    db.add(account)
    await db.flush()
    return account


async def get_account(db: AsyncSession, account_id: uuid.UUID) -> Account:
    """
    Get a single account by id.

    Raises:
        AccountNotFoundError: If the account doesn't exist.
    """
    result = await db.execute(select(Account).where(Account.id == account_id))
    account = result.scalar_one_or_none()

    if account is None:
        raise AccountNotFoundError(account_id)

    return account


async def get_account_by_username(db: AsyncSession, username: str) -> Account | None:
    result = await db.execute(select(Account).where(Account.username == username))
    return result.scalar_one_or_none()


async def get_account_by_number(db: AsyncSession, account_number: str) -> Account | None:
    result = await db.execute(
        select(Account).where(Account.account_number == account_number)
    )
    return result.scalar_one_or_none()


async def find_account(db: AsyncSession, identifier: str) -> Account | None:
    """
    Look up a counterparty given as an account number or a username.

    Account numbers take precedence: usernames may contain digits, but a
    10-digit string is looked up as an account number first.
    """
    identifier = identifier.strip()
    result = await db.execute(
        select(Account).where(
            or_(Account.account_number == identifier, Account.username == identifier)
        )
    )
    matches = list(result.scalars().all())
    for account in matches:
        if account.account_number == identifier:
            return account
    return matches[0] if matches else None


async def resolve_account(db: AsyncSession, identifier: str) -> Account:
    """
    Like find_account, but an unknown identifier is an error.

    Raises:
        RecipientNotFoundError: If nothing matches.
    """
    account = await find_account(db, identifier)
    if account is None:
        raise RecipientNotFoundError(identifier.strip())
    return account


# ---------------------------------------------------------------------------
# Admin read-only functions
# ---------------------------------------------------------------------------

async def admin_get_all_accounts(db: AsyncSession) -> list[Account]:
    """
    [ADMIN ONLY] List all accounts, oldest first.

    The router layer enforces that only ADMIN users can call this.
    """
    result = await db.execute(select(Account).order_by(Account.created_at, Account.username))
    return list(result.scalars().all())


async def admin_get_account_by_number(db: AsyncSession, account_number: str) -> Account:
    """
    [ADMIN ONLY] Look up any account by its account number.

    Raises:
        AccountNotFoundError: If the number is unknown.
    """
    account = await get_account_by_number(db, account_number)
    if account is None:
        raise AccountNotFoundError(account_number)
    return account


# ---------------------------------------------------------------------------
# Operator functions
# ---------------------------------------------------------------------------

async def promote_to_admin(db: AsyncSession, username: str) -> bool:
    """
    Grant the ADMIN role to an existing account. Commits.

    Admins are provisioned by an operator (see demo/promote_admin.py),
    never through signup. The reserve account is never promoted.

    Returns:
        True if an account was promoted.
    """
    if is_reserved_username(username):
        return False
    async with atomic(db):
        result = await db.execute(
            update(Account)
            .where(Account.username == username)
            .values(user_type=UserType.ADMIN)
            .execution_options(synchronize_session=False)
        )
    return result.rowcount > 0
