from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import TypeVar

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_fixed

from cityatlas.core.config import settings
from cityatlas.core.errors import StoreUnavailable

logger = logging.getLogger(__name__)

# -----------------------------
# Async engine (FastAPI)
# -----------------------------
# Use CLEAN URL to avoid asyncpg errors with sslmode/channel_binding query params.
DATABASE_URL_ASYNC = settings.DATABASE_URL_ASYNC_CLEAN

engine: AsyncEngine = create_async_engine(
    DATABASE_URL_ASYNC,
    echo=False,
    future=True,
    pool_pre_ping=True,  # detects dead connections before using them
    pool_recycle=300,    # recycle connections periodically (seconds)
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides one AsyncSession per request.
    Always closes the session after the request completes.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


# -----------------------------
# Unit of work
# -----------------------------
# serialization_failure, deadlock_detected, lock_not_available
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})

T = TypeVar("T")


def is_transient_store_error(exc: BaseException) -> bool:
    """
    Lock contention and lost connections are worth another attempt.
    Constraint violations, bad SQL, etc. are not.
    """
    if not isinstance(exc, DBAPIError):
        return False
    if exc.connection_invalidated:
        return True
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True
    return isinstance(exc, OperationalError)


async def run_in_transaction(
    db: AsyncSession,
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    operation: str,
    retry_on_conflict: bool = False,
) -> T:
    """
    Run `work` as one atomic unit: commit on success, roll back on ANY error.

    Only transient store failures are retried (bounded by STORE_RETRY_ATTEMPTS);
    domain errors propagate on the first attempt. With retry_on_conflict=True a
    unique-constraint race (two writers inserting the same row) is retried too,
    so the later writer re-reads and observes the earlier one's effect.
    """

    def _should_retry(exc: BaseException) -> bool:
        if retry_on_conflict and isinstance(exc, IntegrityError):
            return True
        return is_transient_store_error(exc)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(settings.STORE_RETRY_ATTEMPTS),
        wait=wait_fixed(settings.STORE_RETRY_WAIT_SECONDS),
        retry=retry_if_exception(_should_retry),
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "retrying %s (attempt %s/%s)",
                        operation,
                        attempt.retry_state.attempt_number,
                        settings.STORE_RETRY_ATTEMPTS,
                    )
                try:
                    result = await work(db)
                    await db.commit()
                except BaseException:
                    await db.rollback()
                    raise
                return result
    except DBAPIError as exc:
        if _should_retry(exc):
            logger.error("%s failed after %s attempts: %s", operation, settings.STORE_RETRY_ATTEMPTS, exc)
            raise StoreUnavailable() from exc
        raise

    raise StoreUnavailable()  # unreachable: AsyncRetrying either returns or raises
