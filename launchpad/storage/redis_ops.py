from __future__ import annotations

from redis.asyncio.client import Redis


class RedisStorageOps:
    @staticmethod
    def _creation_guard_key(prefix: str, wallet_address: str) -> str:
        return f"{prefix}:{wallet_address}"

    async def acquire_creation_guard(
        self,
        *,
        wallet_address: str,
        owner_id: str,
        ttl_seconds: int,
    ) -> bool:
        redis_client = self._require_redis()
        guard_key = self._creation_guard_key(self.settings.creation_guard_prefix, wallet_address)

        acquired = await redis_client.set(
            guard_key,
            owner_id,
            ex=max(1, ttl_seconds),
            nx=True,
        )
        return bool(acquired)

    async def release_creation_guard(
        self,
        *,
        wallet_address: str,
        owner_id: str,
    ) -> bool:
        redis_client = self._require_redis()
        guard_key = self._creation_guard_key(self.settings.creation_guard_prefix, wallet_address)
        deleted = await redis_client.eval(
            """
            if redis.call('get', KEYS[1]) == ARGV[1] then
              return redis.call('del', KEYS[1])
            end
            return 0
            """,
            1,
            guard_key,
            owner_id,
        )
        return bool(deleted)

    def _require_redis(self) -> Redis:
        if self._redis is None:
            raise RuntimeError("Redis client is not initialized.")
        return self._redis
