"""
Authentication service — signup, login, logout and password changes.

This module contains the core auth logic, separated from HTTP concerns.
The router calls these functions and translates the results into HTTP
responses, so the logic can be tested without spinning up a web server.

Signup flow:
  1. Refuse the reserve account's username
  2. Hash the password with Argon2id
  3. Create the Account and fund it with the onboarding credit in a
     single atomic unit (both or neither)
  4. Open a Session and return a bearer token so the user is logged in

Login flow:
  1. Look up the account by username
  2. Verify the password against the stored hash
  3. Open a Session and return a bearer token

Sessions:
  Each token is a signed JWT naming a Session row ("sid"). Deleting the
  row revokes the token: logout deletes the caller's session, a password
  change deletes all of the account's sessions. Opening a session also
  deletes the account's expired ones.

Security notes:
  - Passwords are hashed before storage (never stored in plaintext)
  - Login returns the same error for "wrong password" and "unknown user"
    to prevent user enumeration attacks
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.config import settings
from bank_ledger.database import atomic
from bank_ledger.exceptions import InvalidCredentialsError, ValidationError
from bank_ledger.models.account import Account
from bank_ledger.models.session import Session
from bank_ledger.notifications import USER_AUTH, WebhookNotifier
from bank_ledger.security import (
    create_access_token,
    hash_password,
    new_token_id,
    verify_password,
)
from bank_ledger.services import account_service
from bank_ledger.services.ledger_service import LedgerEngine

logger = logging.getLogger(__name__)


def _auth_payload(account: Account, action: str) -> dict:
    return {
        "account_id": str(account.id),
        "username": account.username,
        "email": account.email,
        "action": action,
    }


async def _open_session(db: AsyncSession, account: Account) -> str:
    """
    Add a Session row for the account and return the token bound to it.

    The account's expired sessions are deleted in the same unit, so the
    table holds at most the live sessions plus those expired since the
    last login.
    """
    now = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    await db.execute(
        delete(Session)
        .where(Session.account_id == account.id)
        .where(Session.expires_at <= now)
        .execution_options(synchronize_session=False)
    )
    token_id = new_token_id()
    db.add(
        Session(
            account_id=account.id,
            token_id=token_id,
            expires_at=now + lifetime,
        )
    )
    return create_access_token(
        data={"sub": str(account.id), "sid": token_id},
        expires_delta=lifetime,
    )


async def signup(
    db: AsyncSession,
    ledger: LedgerEngine,
    username: str,
    email: str,
    password: str,
) -> tuple[Account, str]:
    """
    Register a new member, fund the account, and log them in.

    Args:
        db: Database session.
        ledger: Engine that grants the onboarding credit.
        username: Login name (must be unique and not the reserve's).
        email: Contact email (must be unique).
        password: Plaintext password (hashed before storage).

    Returns:
        Tuple of (Account instance, bearer token string).

    Raises:
        ReservedIdentityError: If the username is the reserve account's.
        DuplicateUsernameError / DuplicateEmailError: If already taken.
    """
    hashed = hash_password(password)

    async with atomic(db):
        account = await account_service.create_account(
            db,
            username=username,
            email=email,
            hashed_password=hashed,
        )
        await ledger.grant_onboarding_credit(db, account)
        token = await _open_session(db, account)

    logger.info("Registered account %s (%s)", account.username, account.account_number)
    ledger.notifier.publish(USER_AUTH, _auth_payload(account, "register"))
    return account, token


async def login(
    db: AsyncSession,
    username: str,
    password: str,
    notifier: WebhookNotifier | None = None,
) -> tuple[Account, str]:
    """
    Authenticate an account and return a bearer token.

    Security: Returns the same error for both "wrong password" and
    "unknown username" to prevent attackers from enumerating accounts.
    The reserve account can never log in.

    Raises:
        InvalidCredentialsError: Unknown user, wrong password, inactive
            account, or the reserve account.
    """
    account = await account_service.get_account_by_username(db, username)

    # Same error for every case so usernames cannot be enumerated
    if account is None or account_service.is_reserved_username(account.username):
        raise InvalidCredentialsError()

    if not verify_password(password, account.hashed_password):
        logger.info("Failed login for %s", username)
        raise InvalidCredentialsError()

    if not account.is_active:
        raise InvalidCredentialsError()

    async with atomic(db):
        token = await _open_session(db, account)

    if notifier is not None:
        notifier.publish(USER_AUTH, _auth_payload(account, "login"))
    return account, token


async def logout(db: AsyncSession, token_id: str) -> None:
    """Revoke the session behind one token. Idempotent."""
    async with atomic(db):
        await db.execute(delete(Session).where(Session.token_id == token_id))


async def change_password(
    db: AsyncSession,
    account: Account,
    current_password: str,
    new_password: str,
    notifier: WebhookNotifier | None = None,
) -> None:
    """
    Replace an account's password and revoke all of its sessions.

    The caller must log in again with the new password afterwards.

    Raises:
        ValidationError: Current password wrong, or new equals current.
    """
    if not verify_password(current_password, account.hashed_password):
        raise ValidationError("Current password is incorrect")
    if current_password == new_password:
        raise ValidationError("New password must be different from current password")

    hashed = hash_password(new_password)
    async with atomic(db):
        account.hashed_password = hashed
        await db.execute(delete(Session).where(Session.account_id == account.id))

    logger.info("Password changed for %s, sessions revoked", account.username)
    if notifier is not None:
        notifier.publish(USER_AUTH, _auth_payload(account, "password_change"))
