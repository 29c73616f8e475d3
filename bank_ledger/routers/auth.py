"""
Authentication router — signup, login, logout and password changes.

Signup and login are the only public (unauthenticated) endpoints in the
API. Everything else requires a valid bearer token whose session is live.

Endpoints:
  POST /auth/signup          — Register, receive the onboarding credit and a token
  POST /auth/login           — Authenticate and get a token
  POST /auth/logout          — Revoke the current token
  POST /auth/change-password — Change password and revoke every session

Security audit notes:
  - Plaintext passwords exist only in memory during request processing;
    they are hashed before any database operation and never logged.
  - Tokens appear only in response bodies, which are not logged by
    uvicorn (it logs method, path, and status code only).
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.database import get_db
from bank_ledger.dependencies import (
    get_current_account,
    get_ledger,
    get_notifier,
    get_token_claims,
)
from bank_ledger.models.account import Account
from bank_ledger.notifications import WebhookNotifier
from bank_ledger.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    SignupRequest,
    SignupResponse,
    TokenResponse,
)
from bank_ledger.services import auth_service
from bank_ledger.services.ledger_service import LedgerEngine

router = APIRouter()


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new member",
)
async def signup(
    request: SignupRequest,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerEngine = Depends(get_ledger),
):
    """
    Register a new bank member.

    Creates the account and funds it with the onboarding credit in a
    single atomic unit. Returns a bearer token so the member is logged in
    right away.

    - **username**: 3-20 letters, digits or underscores; unique; never the reserve's
    - **email**: Must be a valid email format and not already registered
    - **password**: Minimum 8 characters
    """
    account, token = await auth_service.signup(
        db=db,
        ledger=ledger,
        username=request.username,
        email=request.email,
        password=request.password,
    )

    return SignupResponse(
        account_id=account.id,
        username=account.username,
        email=account.email,
        account_number=account.account_number,
        balance_cents=account.balance_cents,
        token=token,
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Authenticate and get a token",
)
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
    notifier: WebhookNotifier = Depends(get_notifier),
):
    """
    Authenticate with username and password.

    Returns a bearer token that must be included in the Authorization
    header for all subsequent requests:

        Authorization: Bearer <token>

    The token is valid until logout, a password change, or
    ACCESS_TOKEN_EXPIRE_MINUTES (default: 24 hours), whichever comes first.
    """
    _, token = await auth_service.login(
        db=db,
        username=request.username,
        password=request.password,
        notifier=notifier,
    )
    return TokenResponse(token=token)


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Revoke the current token",
)
async def logout(
    claims: dict = Depends(get_token_claims),
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    await auth_service.logout(db, claims["token_id"])
    return MessageResponse(message="Logged out successfully")


@router.post(
    "/change-password",
    response_model=MessageResponse,
    summary="Change password",
)
async def change_password(
    request: ChangePasswordRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    notifier: WebhookNotifier = Depends(get_notifier),
):
    """
    Change the caller's password.

    Every session of the account is revoked, including the one used for
    this request; log in again with the new password.
    """
    await auth_service.change_password(
        db=db,
        account=account,
        current_password=request.current_password,
        new_password=request.new_password,
        notifier=notifier,
    )
    return MessageResponse(
        message="Password changed successfully. Please log in again with your new password."
    )
