"""
Operation-scoped database sessions.

Sessions are acquired lazily and released right after each operation, so no
connection is held while a payment provider is being called.

Usage:
    # Single operation - acquires and releases immediately
    async with get_session() as session:
        result = await session.get(Model, id)

    # Multiple operations in a transaction - share one session
    async with transaction():
        await repo.save(thing1)
        await repo.save(thing2)
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import get_logger
from common.db.session import AsyncSessionLocal
from common.db.context import (
    get_current_session,
    set_current_session,
    reset_current_session,
)

logger = get_logger(__name__)


@asynccontextmanager
async def transaction() -> AsyncGenerator[AsyncSession, None]:
    """
    Explicit transaction boundary.

    All DB operations inside share one session/connection.
    Commits on success, rolls back on exception.
    """
    existing = get_current_session()
    if existing is not None:
        # Nested transaction() joins the outer one
        yield existing
        return

    start = time.perf_counter()
    async with AsyncSessionLocal() as session:
        logger.debug(
            f"Transaction session acquire: {(time.perf_counter() - start) * 1000:.2f}ms"
        )

        token = set_current_session(session)
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Transaction rollback due to: {e}")
            await session.rollback()
            raise
        finally:
            reset_current_session(token)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Get a session for a single DB operation.

    Reuses the session of an enclosing transaction() without committing;
    otherwise acquires a new session, commits and releases it.
    """
    existing = get_current_session()

    if existing is not None:
        yield existing
        return

    start = time.perf_counter()
    async with AsyncSessionLocal() as session:
        logger.debug(
            f"Operation session acquire: {(time.perf_counter() - start) * 1000:.2f}ms"
        )

        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Operation rollback due to: {e}")
            await session.rollback()
            raise
