from __future__ import annotations

import contextlib
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable

from launchpad.common import guarded_call, log_event

from .errors import DatabaseError, RateLimitError
from .types import CreationGuardStore, TokenRecordStore

RATE_LIMIT_MESSAGE = "Rate limit exceeded: Only 1 token per wallet per minute allowed"
CONCURRENT_REQUEST_MESSAGE = "Rate limit exceeded: a token creation for this wallet is already in progress"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RateLimiter:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        records: TokenRecordStore,
        guards: CreationGuardStore | None = None,
        window_seconds: float = 60.0,
        guard_ttl_seconds: int = 300,
        clock: Clock = utc_now,
    ) -> None:
        self._logger = logger
        self._records = records
        self._guards = guards
        self._window = timedelta(seconds=window_seconds)
        self._guard_ttl_seconds = max(1, guard_ttl_seconds)
        self._clock = clock

    def cutoff(self) -> datetime:
        return self._clock() - self._window

    async def check(self, wallet_address: str) -> None:
        # Inclusive: a record created exactly one window ago still counts.
        try:
            recent = await self._records.count_recent_tokens(wallet_address=wallet_address, since=self.cutoff())
        except Exception as error:
            log_event(
                self._logger,
                level="error",
                event="rate_limit_check_failed",
                message="Rate limit lookup failed",
                wallet_address=wallet_address,
                error=str(error),
            )
            raise DatabaseError("Rate limit check failed") from error
        if recent > 0:
            log_event(
                self._logger,
                level="info",
                event="rate_limit_rejected",
                message="Token creation rejected by rate limiter",
                wallet_address=wallet_address,
                recent_tokens=recent,
            )
            raise RateLimitError(RATE_LIMIT_MESSAGE)

    @contextlib.asynccontextmanager
    async def admit(self, wallet_address: str) -> AsyncIterator[None]:
        if self._guards is None:
            await self.check(wallet_address)
            yield
            return

        guards = self._guards
        owner_id = uuid.uuid4().hex
        acquired = await guards.acquire_creation_guard(
            wallet_address=wallet_address,
            owner_id=owner_id,
            ttl_seconds=self._guard_ttl_seconds,
        )
        if not acquired:
            log_event(
                self._logger,
                level="info",
                event="creation_guard_busy",
                message="Token creation already in progress for wallet",
                wallet_address=wallet_address,
            )
            raise RateLimitError(CONCURRENT_REQUEST_MESSAGE)

        try:
            await self.check(wallet_address)
            yield
        finally:
            await guarded_call(
                lambda: guards.release_creation_guard(wallet_address=wallet_address, owner_id=owner_id),
                logger=self._logger,
                event="creation_guard_release_failed",
                message="Failed to release creation guard",
                wallet_address=wallet_address,
            )
