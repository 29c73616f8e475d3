"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Components — the notifier, ledger engine and card service, built once
     from settings and kept on app.state
  2. Lifespan manager — logging, table creation, reserve bootstrap, the
     optional reconciliation loop, and cleanup
  3. CORS middleware — allows frontend origins to make cross-origin requests
  4. Exception handlers — maps domain errors to HTTP responses
  5. Router registration — mounts all API endpoint groups

Running locally:
    uvicorn bank_ledger.main:app --reload
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bank_ledger.config import settings
from bank_ledger.database import AsyncSessionLocal, Base, engine
from bank_ledger.exceptions import register_exception_handlers
from bank_ledger.logging_config import setup_logging
from bank_ledger.notifications import WebhookNotifier
from bank_ledger.routers import accounts, admin, auth, cards, payment_requests, transfers
from bank_ledger.services.card_service import CardService
from bank_ledger.services.ledger_service import LedgerEngine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Components (configuration is read here and nowhere else)
# ---------------------------------------------------------------------------

notifier = WebhookNotifier(
    url=settings.WEBHOOK_URL,
    timeout=settings.WEBHOOK_TIMEOUT_SECONDS,
)
ledger = LedgerEngine(
    reserve_username=settings.RESERVE_USERNAME,
    reserve_balance_cents=settings.RESERVE_BALANCE_CENTS,
    onboarding_credit_cents=settings.ONBOARDING_CREDIT_CENTS,
    notifier=notifier,
)
card_service = CardService(
    cooldown=timedelta(hours=settings.CARD_REFRESH_COOLDOWN_HOURS),
    notifier=notifier,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager (replaces deprecated @app.on_event).

    Startup:
      Configures logging, creates all database tables if they don't exist,
      provisions the reserve account and pins its balance, and starts the
      reconciliation loop when RECONCILE_INTERVAL_SECONDS > 0.

    Shutdown:
      Stops the loop, flushes pending webhooks and disposes of the engine.
    """
    # --- Startup ---
    setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        reserve = await ledger.bootstrap(db)
    logger.info("Reserve account %s ready", reserve.account_number)

    reconcile_task = None
    if settings.RECONCILE_INTERVAL_SECONDS > 0:
        reconcile_task = asyncio.create_task(
            ledger.run_reconciliation(AsyncSessionLocal, settings.RECONCILE_INTERVAL_SECONDS)
        )

    yield

    # --- Shutdown ---
    if reconcile_task is not None:
        reconcile_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reconcile_task
    await notifier.aclose()
    await engine.dispose()


# Create the FastAPI application instance
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Bank ledger API with transfers, payment requests and virtual cards",
    lifespan=lifespan,
)

app.state.notifier = notifier
app.state.ledger = ledger
app.state.card_service = card_service

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

# CORS: Allow specified frontend origins to make requests.
# In production, lock this down to your actual frontend domain(s).
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(accounts.router, prefix="/account", tags=["Account"])
app.include_router(transfers.router, prefix="/transfers", tags=["Transfers"])
app.include_router(payment_requests.router, prefix="/payment-requests", tags=["Payment Requests"])
app.include_router(cards.router, prefix="/card", tags=["Card"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint for deployment probes (Kubernetes, Docker, etc.).

    Returns a simple JSON response indicating the service is running.
    """
    return {"status": "ok", "version": settings.APP_VERSION}
