from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, TypeVar

from .logging import log_event

T = TypeVar("T")

ErrorWrapper = Callable[[Exception], Exception]


async def guarded_call(
    action: Callable[[], Awaitable[T] | T],
    *,
    logger: logging.Logger,
    event: str,
    message: str,
    level: str = "warning",
    default: T | None = None,
    reraise: bool = False,
    wrap_error: ErrorWrapper | None = None,
    **fields: Any,
) -> T | None:
    try:
        result = action()
        if inspect.isawaitable(result):
            return await result
        return result
    except asyncio.CancelledError:
        raise
    except Exception as error:
        reported = wrap_error(error) if wrap_error is not None else error
        log_event(
            logger,
            level=level,
            event=event,
            message=message,
            error=str(reported),
            error_type=type(reported).__name__,
            **fields,
        )
        if reraise:
            if reported is error:
                raise
            raise reported from error
        return default
