"""
Tracklane Backend: Database Session Management
==================================================

What:  Async SQLAlchemy engine, session factory, FastAPI dependencies and the
       retrying transaction runner used by every mutating route.
How:   Creates an async engine with connection pooling, provides a session
       dependency that auto-commits on success and auto-rolls-back on error,
       and a `run_in_transaction` helper that re-runs a whole unit of work
       after transient store failures.
Who:   Used by route handlers via FastAPI's dependency injection system.
When:  Engine is created at module import; sessions are created per-request.

Connection Pooling Strategy:
    pool_size=20:      Persistent connections for normal load
    max_overflow=10:   Temporary connections for traffic spikes (total max = 30)
    pool_pre_ping:     Validates connections before use
    pool_recycle=3600: Recycles connections every hour

    SQLite URLs (tests, local experiments) get the driver defaults instead and
    a generous busy timeout so concurrent writers queue instead of failing.
"""

import logging
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar

from fastapi import Depends
from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from tracklane.config import settings
from tracklane.exceptions import DatabaseError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ── Engine Configuration ──────────────────────────────────────────────────
def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for `url`.

    PostgreSQL gets the configured pool; SQLite gets a 30 second busy timeout
    and SQLAlchemy's default pool for the URL (file or memory).

    SQLite transactions are started explicitly with BEGIN IMMEDIATE instead of
    the driver's implicit BEGIN, so SAVEPOINTs behave and concurrent writers
    queue on the database lock rather than failing with "database is locked".
    """
    if url.startswith("sqlite"):
        sqlite_engine = create_async_engine(
            url,
            connect_args={"timeout": 30},
            echo=echo,
        )

        @event.listens_for(sqlite_engine.sync_engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(sqlite_engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return sqlite_engine

    return create_async_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_recycle=3600,
        echo=echo,
    )


engine = build_engine(settings.database_url, echo=settings.log_level == "DEBUG")

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: attributes stay readable after commit, which the
# response builders rely on.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    All models inherit from this class so they share one metadata object,
    which Alembic and the test fixtures use to build the schema.
    """
    pass


# ── Session Dependencies ──────────────────────────────────────────────────
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """FastAPI dependency returning the session factory (overridden in tests)."""
    return async_session_factory


async def get_db_session(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the route handler (the handler performs queries)
        3. On success: commits the transaction
        4. On error: rolls back the transaction and re-raises
        5. Always: closes the session (returns connection to pool)

    Read-only routes use this directly; mutating routes go through
    `run_in_transaction` so a transient failure re-runs the whole unit of work.
    """
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Transaction Runner ────────────────────────────────────────────────────
def is_transient_error(exc: BaseException) -> bool:
    """
    True for store failures worth retrying with a fresh transaction.

    OperationalError covers lost connections, lock timeouts and serialization
    failures; any DBAPIError whose connection was invalidated is also safe to
    retry. Domain errors and integrity violations are not.
    """
    if isinstance(exc, OperationalError):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


async def run_in_transaction(
    work: Callable[[AsyncSession], Awaitable[T]],
    factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> T:
    """
    Run `work(session)` in one transaction, retrying transient failures.

    What:    Every attempt opens a brand-new session, so an aborted attempt
             rolls back everything it did, including sequence increments.
    How:     tenacity.AsyncRetrying with exponential backoff and jitter,
             bounded by settings.tx_retry_max_attempts.

    Args:
        work:    Coroutine function receiving the session. It must not commit.
        factory: Session factory; defaults to the application factory.

    Returns:
        Whatever `work` returns from the committed attempt.

    Raises:
        DatabaseError: Transient failures persisted through every attempt.
        Anything else raised by `work`, unchanged and without retry.
    """
    factory = factory or async_session_factory

    retrying = AsyncRetrying(
        stop=stop_after_attempt(settings.tx_retry_max_attempts),
        # min_wait * 2^attempt capped at max_wait, plus up to min_wait of jitter
        wait=wait_exponential(
            multiplier=settings.tx_retry_min_wait,
            max=settings.tx_retry_max_wait,
        ) + wait_random(0, settings.tx_retry_min_wait),
        retry=retry_if_exception(is_transient_error),
        reraise=False,
    )

    try:
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "Retrying transaction (attempt %d/%d)",
                        attempt.retry_state.attempt_number,
                        settings.tx_retry_max_attempts,
                    )
                async with factory() as session:
                    async with session.begin():
                        return await work(session)
    except RetryError as e:
        last = e.last_attempt.exception()
        logger.error("Transaction failed after %d attempts: %s",
                     settings.tx_retry_max_attempts, last)
        raise DatabaseError(
            context={"error_type": type(last).__name__},
        ) from last

    raise DatabaseError(context={"error_type": "NoAttempt"})  # pragma: no cover


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """Gracefully closes all connections in the pool at shutdown."""
    await engine.dispose()
