"""
FastAPI dependencies for authentication and authorization.

Dependencies are reusable functions that FastAPI injects into route handlers.
They form a dependency chain that enforces both authentication and
role-based access control:

  get_token_claims (JWT -> claims)
      └── get_current_account (claims -> live Session -> Account)
              ├── get_current_member (Account)   [MEMBER role]
              └── require_admin (Account)        [ADMIN role]

Role-based access control:
  - MEMBER: Can only access their own account, card and payment requests.
    Member endpoints use get_current_member, which scopes every query to
    the authenticated account.
  - ADMIN: Can list accounts and transactions, adjust balances and pay out
    from the reserve through /admin/*, but is blocked from member banking
    endpoints.

The engine and card service are built once at startup and kept on
app.state; get_ledger and get_card_service hand them to route handlers.
"""

import uuid
from datetime import datetime, timezone

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.database import get_db
from bank_ledger.models.account import Account, UserType
from bank_ledger.models.session import Session
from bank_ledger.notifications import WebhookNotifier
from bank_ledger.security import decode_access_token
from bank_ledger.services.card_service import CardService
from bank_ledger.services.ledger_service import LedgerEngine


# OAuth2PasswordBearer tells FastAPI where to look for the token:
# the "Authorization: Bearer <token>" header.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_token_claims(token: str = Depends(oauth2_scheme)) -> dict:
    """
    Verify the bearer token's signature and expiry.

    Raises:
        HTTPException 401: If the token is missing, expired, or tampered with.
    """
    try:
        payload = decode_access_token(token)
        account_id = uuid.UUID(payload["sub"])
        token_id = payload["sid"]
    except (JWTError, KeyError, TypeError, ValueError):
        raise _credentials_exception()

    return {"account_id": account_id, "token_id": token_id}


async def get_current_account(
    claims: dict = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
) -> Account:
    """
    Resolve the token to its Session row and then to the Account.

    A validly signed token is still refused once its session was deleted
    (logout, password change) or has expired.

    Raises:
        HTTPException 401: If the session or the account is gone or inactive.
    """
    result = await db.execute(
        select(Session).where(
            Session.token_id == claims["token_id"],
            Session.account_id == claims["account_id"],
        )
    )
    session = result.scalar_one_or_none()
    if session is None:
        raise _credentials_exception()

    expires_at = session.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at <= datetime.now(timezone.utc):
        raise _credentials_exception()

    result = await db.execute(select(Account).where(Account.id == claims["account_id"]))
    account = result.scalar_one_or_none()
    if account is None or not account.is_active:
        raise _credentials_exception()

    return account


async def get_current_member(
    account: Account = Depends(get_current_account),
) -> Account:
    """
    Require a member account for banking endpoints.

    Admin accounts are explicitly blocked: they have their own /admin/*
    endpoints and never hold or move money as customers.

    Raises:
        HTTPException 403: If the account is an admin.
    """
    if account.user_type == UserType.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin accounts cannot access member banking endpoints. "
                   "Use /admin/* endpoints instead.",
        )
    return account


async def require_admin(
    account: Account = Depends(get_current_account),
) -> Account:
    """
    Require the authenticated account to have the ADMIN role.

    Raises:
        HTTPException 403: If the account is not an admin.
    """
    if account.user_type != UserType.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return account


def get_ledger(request: Request) -> LedgerEngine:
    return request.app.state.ledger


def get_card_service(request: Request) -> CardService:
    return request.app.state.card_service


def get_notifier(request: Request) -> WebhookNotifier:
    return request.app.state.notifier
