"""
Async helpers for running async code in synchronous contexts.

Celery tasks run synchronously; these helpers give each task a fresh event
loop and database session.

Usage:
    from shipyard.core.async_helpers import run_async_with_db

    async def my_db_operation(db: AsyncSession):
        ...

    result = run_async_with_db(my_db_operation)
"""
import asyncio
import logging
from typing import TypeVar, Callable, Awaitable

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

T = TypeVar("T")

_POOL_LOGGERS = ("sqlalchemy.pool", "sqlalchemy.pool.impl")


def run_async(coro: Awaitable[T]) -> T:
    """
    Run an async coroutine in a new event loop.

    The global engine is disposed first so pooled asyncpg connections bound
    to a previous (closed) loop are not reused.

    Args:
        coro: The coroutine to execute

    Returns:
        The result of the coroutine
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    try:
        from shipyard.core.database import engine
        # Disposing connections created on a closed loop logs spurious
        # "Event loop is closed" tracebacks from the pool.
        pool_loggers = [logging.getLogger(n) for n in _POOL_LOGGERS]
        prev_levels = [pl.level for pl in pool_loggers]
        for pl in pool_loggers:
            pl.setLevel(logging.CRITICAL)
        try:
            loop.run_until_complete(engine.dispose())
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
        finally:
            for pl, lv in zip(pool_loggers, prev_levels):
                pl.setLevel(lv)

        return loop.run_until_complete(coro)
    finally:
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()


def run_async_with_db(
    func: Callable[[AsyncSession], Awaitable[T]],
    *,
    commit: bool = False,
) -> T:
    """
    Run an async function with a database session.

    Args:
        func: Async function that takes a database session and returns a result
        commit: If True, commits the session after the function completes

    Returns:
        The result of the function
    """
    async def wrapper():
        from shipyard.core.database import async_session_maker
        async with async_session_maker() as db:
            result = await func(db)
            if commit:
                await db.commit()
            return result

    return run_async(wrapper())
