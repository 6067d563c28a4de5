"""Shared router plumbing: the command runner and the rate limiter."""

import logging
from typing import Awaitable, Callable, TypeVar

from fastapi import HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_finance.database import run_in_transaction
from campus_finance.services.error_logger import log_error_standalone
from campus_finance.services.errors import FinanceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

limiter = Limiter(key_func=get_remote_address)


async def run_command(
    factory: async_sessionmaker[AsyncSession],
    fn: Callable[[AsyncSession], Awaitable[T]],
    *,
    module: str,
    function_name: str,
    user_id: int | None = None,
) -> T:
    """Run one finance command in its own transaction.

    FinanceError is left to the app-level handler (structured ``{kind, message}``
    body); anything unexpected is persisted to error_logs and re-raised.
    """
    try:
        return await run_in_transaction(fn, session_factory=factory)
    except (FinanceError, HTTPException):
        raise
    except Exception as e:
        await log_error_standalone(
            e,
            session_factory=factory,
            source=f"{module}.{function_name}",
            user_id=user_id,
        )
        raise
