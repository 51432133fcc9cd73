from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from launchpad.common import log_event

from .errors import (
    NON_RETRYABLE_KINDS,
    ChainError,
    NonRetryableChainError,
    RetryableChainError,
    TokenCreationError,
    classify_chain_error,
)
from .types import RetryableOperation

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY_SECONDS = 1.0

Sleeper = Callable[[float], Awaitable[Any]]


def backoff_delay(initial_delay_seconds: float, attempt: int) -> float:
    return initial_delay_seconds * (2 ** max(0, attempt - 1))


async def with_retry(
    operation: RetryableOperation[T],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay_seconds: float = DEFAULT_INITIAL_DELAY_SECONDS,
    logger: logging.Logger | None = None,
    operation_name: str = "operation",
    sleep: Sleeper = asyncio.sleep,
) -> T:
    attempts = max(1, max_retries)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as error:
            if isinstance(error, TokenCreationError) and not isinstance(error, ChainError):
                raise

            kind = classify_chain_error(error)
            if kind in NON_RETRYABLE_KINDS:
                if isinstance(error, NonRetryableChainError):
                    raise
                raise NonRetryableChainError(kind, str(error)) from error

            if attempt >= attempts:
                raise RetryableChainError(kind, str(error), attempts=attempt) from error

            delay = backoff_delay(initial_delay_seconds, attempt)
            if logger is not None:
                log_event(
                    logger,
                    level="warning",
                    event="retry_scheduled",
                    message=f"{operation_name} failed; retrying",
                    operation=operation_name,
                    attempt=attempt,
                    max_attempts=attempts,
                    delay_seconds=delay,
                    error_kind=kind.value,
                    error=str(error),
                )
            await sleep(delay)

    raise RuntimeError(f"{operation_name} exhausted retries without raising.")
