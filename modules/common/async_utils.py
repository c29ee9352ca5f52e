from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, TypeVar

from .logging import log_event

T = TypeVar("T")


async def guarded_call(
    action: Callable[[], Awaitable[T] | T],
    *,
    logger: logging.Logger | None,
    event: str,
    message: str,
    level: str = "warning",
    default: T | None = None,
    reraise: bool = False,
    timeout_seconds: float | None = None,
    **fields: Any,
) -> T | None:
    """Run a best-effort side effect; failures are logged and replaced by ``default``.

    With ``timeout_seconds`` an awaitable result that does not finish in time counts
    as a failure.
    """
    try:
        result = action()
        if not inspect.isawaitable(result):
            return result
        if timeout_seconds is None:
            return await result
        return await asyncio.wait_for(result, timeout=timeout_seconds)
    except asyncio.CancelledError:
        raise
    except Exception as error:
        log_event(
            logger,
            level=level,
            event=event,
            message=message,
            error=str(error) or type(error).__name__,
            error_type=type(error).__name__,
            **fields,
        )
        if reraise:
            raise
        return default
