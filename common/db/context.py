"""
Database session context management.

Holds the session of the enclosing ``transaction()`` (if any) in a ContextVar
so repositories called inside it share one session and commit together.

Usage:
    async with transaction():
        await repo.save(thing1)
        await repo.save(thing2)  # Same session, commits together

    @transactional
    async def promote(...):
        ...  # Every repository call shares one transaction
"""

from contextvars import ContextVar, Token
from functools import wraps
from typing import Awaitable, Optional, Callable, TypeVar, ParamSpec

from sqlalchemy.ext.asyncio import AsyncSession


# Holds the current write session (if inside a transaction)
_current_session: ContextVar[Optional[AsyncSession]] = ContextVar(
    "db_session", default=None
)


def get_current_session() -> Optional[AsyncSession]:
    """Return the enclosing transaction's session, or None."""
    return _current_session.get()


def set_current_session(session: AsyncSession) -> Token:
    return _current_session.set(session)


def reset_current_session(token: Token) -> None:
    _current_session.reset(token)


def in_transaction() -> bool:
    return get_current_session() is not None


P = ParamSpec("P")
T = TypeVar("T")


def transactional(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """
    Decorator that wraps function in an explicit transaction.

    All DB operations within the decorated function share one session.
    The transaction commits on success, rolls back on exception.
    """

    @wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        from common.db.scoped import transaction as tx  # noqa: PLC0415

        async with tx():
            return await func(*args, **kwargs)

    return wrapper
