"""
Custom exception classes and FastAPI exception handlers.

Why custom exceptions?
  The ledger, card and auth services raise domain-specific errors (like
  InsufficientFundsError) without importing HTTP concepts. The handlers at the
  bottom of this module translate them into HTTP responses, so:
    - Service code is testable without HTTP
    - Error responses are consistent across all endpoints
    - Adding new error types is straightforward

Exception hierarchy:
    BankAPIError (base)
    ├── ValidationError            — malformed input, rejected before the store
    ├── NotFoundError
    │   ├── AccountNotFoundError
    │   ├── RecipientNotFoundError
    │   ├── PaymentRequestNotFoundError
    │   └── CardNotFoundError
    ├── ConflictError
    │   ├── SelfTransferError
    │   ├── AlreadyProcessedError
    │   ├── ReservedIdentityError
    │   ├── DuplicateUsernameError
    │   └── DuplicateEmailError
    ├── InsufficientFundsError
    ├── CooldownError              — card refreshed too soon
    ├── StoreError                 — infrastructure failure inside a unit
    ├── InvalidCredentialsError
    └── UnauthorizedAccessError

None of these are retried by the services. The caller decides.
"""

import uuid
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class BankAPIError(Exception):
    """Base exception for all Bank Ledger domain errors."""

    error_type = "bank_error"

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class ValidationError(BankAPIError):
    """Raised when input is malformed or out of range."""

    error_type = "validation_error"


class NotFoundError(BankAPIError):
    """Raised when a referenced account, request or card does not exist."""

    error_type = "not_found"


class AccountNotFoundError(NotFoundError):
    """Raised when a requested account does not exist."""

    error_type = "account_not_found"

    def __init__(self, account_id: uuid.UUID | str):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


class RecipientNotFoundError(NotFoundError):
    """Raised when a transfer or request counterparty cannot be resolved."""

    error_type = "recipient_not_found"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Recipient account '{identifier}' not found")


class PaymentRequestNotFoundError(NotFoundError):
    """Raised when no payment request with that id exists for the actor."""

    error_type = "payment_request_not_found"

    def __init__(self, request_id: int):
        self.request_id = request_id
        super().__init__(f"Payment request {request_id} not found")


class CardNotFoundError(NotFoundError):
    """Raised when an account has no active card to refresh."""

    error_type = "card_not_found"

    def __init__(self, account_id: uuid.UUID):
        self.account_id = account_id
        super().__init__(f"No active card found for account {account_id}")


class ConflictError(BankAPIError):
    """Raised when the request conflicts with the current state."""

    error_type = "conflict"


class SelfTransferError(ConflictError):
    """Raised when the source and destination are the same account."""

    error_type = "self_transfer"

    def __init__(self, detail: str = "Cannot transfer to yourself"):
        super().__init__(detail)


class AlreadyProcessedError(ConflictError):
    """
    Raised when a payment request is no longer pending.

    This is also what the loser of a race observes: the conditional
    status update matched zero rows because another action got there first.
    """

    error_type = "already_processed"

    def __init__(self, request_id: int, status: str | None = None):
        self.request_id = request_id
        self.status = status
        detail = f"Payment request {request_id} has already been processed"
        if status:
            detail += f" (status: {status})"
        super().__init__(detail)


class ReservedIdentityError(ConflictError):
    """Raised when signing up with the reserve account's username."""

    error_type = "reserved_identity"

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Username {username} is reserved and cannot be used")


class DuplicateUsernameError(ConflictError):
    """Raised when attempting to register a username that's already taken."""

    error_type = "duplicate_username"

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Username {username} is already taken")


class DuplicateEmailError(ConflictError):
    """Raised when attempting to register with an email that's already in use."""

    error_type = "duplicate_email"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email {email} is already registered")


class InsufficientFundsError(BankAPIError):
    """
    Raised when a debit, transfer or approval would cause a negative balance.

    Attributes:
        account_id: The account that lacks sufficient funds.
        requested_cents: The amount the caller tried to move.
        available_cents: The balance of the account at the time of the check.
    """

    error_type = "insufficient_funds"

    def __init__(
        self,
        account_id: uuid.UUID,
        requested_cents: int,
        available_cents: int,
    ):
        self.account_id = account_id
        self.requested_cents = requested_cents
        self.available_cents = available_cents
        super().__init__(
            f"Insufficient funds: requested {requested_cents} cents, "
            f"available {available_cents} cents"
        )


class CooldownError(BankAPIError):
    """Raised when a card is refreshed before its cooldown has elapsed."""

    error_type = "refresh_too_soon"

    def __init__(self, remaining: timedelta):
        self.remaining = remaining
        self.retry_after_seconds = max(int(remaining.total_seconds()), 1)
        hours, rest = divmod(self.retry_after_seconds, 3600)
        minutes = rest // 60
        super().__init__(
            f"Card can only be refreshed once per day. "
            f"Try again in {hours}h {minutes}m"
        )


class StoreError(BankAPIError):
    """Raised when the database fails inside an atomic unit."""

    error_type = "store_error"


class InvalidCredentialsError(BankAPIError):
    """Raised when login credentials are incorrect."""

    error_type = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid username or password")


class UnauthorizedAccessError(BankAPIError):
    """Raised when a caller attempts an action outside their role."""

    error_type = "unauthorized_access"

    def __init__(self, detail: str = "You do not have access to this resource"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def _error_response(status_code: int, exc: BankAPIError, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.detail, "error_type": exc.error_type, **extra},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Each handler maps a family of domain exceptions to an HTTP status code
    and a consistent JSON body: {"detail": "...", "error_type": "..."}.
    Starlette resolves handlers by walking the exception's MRO, so the
    subclasses of NotFoundError and ConflictError share their base's handler.

    This is called once during app construction in main.py.
    """

    @app.exception_handler(InsufficientFundsError)
    async def insufficient_funds_handler(
        request: Request, exc: InsufficientFundsError
    ) -> JSONResponse:
        # Unprocessable Entity: the request was well-formed but business rules reject it
        return _error_response(
            422,
            exc,
            requested_cents=exc.requested_cents,
            available_cents=exc.available_cents,
        )

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return _error_response(422, exc)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error_response(404, exc)

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
        return _error_response(409, exc)

    @app.exception_handler(CooldownError)
    async def cooldown_handler(request: Request, exc: CooldownError) -> JSONResponse:
        response = _error_response(
            429, exc, retry_after_seconds=exc.retry_after_seconds
        )
        response.headers["Retry-After"] = str(exc.retry_after_seconds)
        return response

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
        return _error_response(503, exc)

    @app.exception_handler(InvalidCredentialsError)
    async def invalid_credentials_handler(
        request: Request, exc: InvalidCredentialsError
    ) -> JSONResponse:
        return _error_response(401, exc)

    @app.exception_handler(UnauthorizedAccessError)
    async def unauthorized_access_handler(
        request: Request, exc: UnauthorizedAccessError
    ) -> JSONResponse:
        return _error_response(403, exc)
