"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - engine: The async database engine (connection pool for production DBs)
  - AsyncSessionLocal: Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - get_db(): FastAPI dependency that provides a session per request
  - atomic(): Unit-of-work context manager used by every ledger mutation

Session lifecycle:
  Each API request gets its own session via get_db(). Mutating services
  open an atomic() block on that session: the block commits when it exits
  normally and rolls back every write it made when anything raises. Because
  the services commit their own units, notifications can be published
  strictly after the commit, outside the atomic boundary.
"""

import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from bank_ledger.config import settings
from bank_ledger.exceptions import BankAPIError, StoreError

logger = logging.getLogger(__name__)


# Create the async engine.
# echo=True in debug mode logs all SQL statements.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
)

# Session factory: creates new AsyncSession instances.
# expire_on_commit=False prevents lazy-load errors after commit. Without it,
# reading an attribute on a committed object would trigger a synchronous DB
# call, which fails in async context.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    All models inherit from this class, which provides metadata tracking
    for create_all() and future migrations.
    """
    pass


@asynccontextmanager
async def atomic(db: AsyncSession):
    """
    Run a block of store operations as one all-or-nothing unit.

    Commits on normal exit. On any exception the session is rolled back so
    no partial balance update is ever observable. Raw SQLAlchemy failures
    (lost connection, constraint violation) surface as StoreError; domain
    errors are re-raised unchanged.

    Usage:
        async with atomic(db):
            ...  # reads and writes
    """
    try:
        yield db
        await db.commit()
    except BankAPIError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Store failure, unit rolled back: %s", exc.__class__.__name__)
        raise StoreError("The ledger store is unavailable, nothing was changed") from exc
    except BaseException:
        await db.rollback()
        raise


async def get_db():
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/items")
        async def list_items(db: AsyncSession = Depends(get_db)):
            ...

    Mutations commit inside their own atomic() units. Whatever is left
    (read-only work) is committed when the request completes; any exception
    rolls the session back. The session is closed afterwards.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
