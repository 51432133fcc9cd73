from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any


def to_int(value: Any, default: int) -> int:
    try:
        if value is None or value == "":
            return default
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return default


def _sanitize_collection(value: str, default: str) -> str:
    normalized = value.strip().strip("/")
    return normalized or default


@dataclass(slots=True)
class StorageSettings:
    redis_url: str
    firestore_project_id: str | None
    tokens_collection: str
    service_env: str
    creation_guard_prefix: str
    creation_guard_ttl_seconds: int

    @classmethod
    def from_env(cls) -> "StorageSettings":
        return cls(
            redis_url=os.getenv("REDIS_URL", "redis://redis:6379/0"),
            firestore_project_id=os.getenv("FIRESTORE_PROJECT_ID") or None,
            tokens_collection=_sanitize_collection(os.getenv("TOKENS_COLLECTION", "tokens"), "tokens"),
            service_env=os.getenv("SERVICE_ENV", "dev"),
            creation_guard_prefix=os.getenv("REDIS_CREATION_GUARD_PREFIX", "tokens:creation_guard"),
            creation_guard_ttl_seconds=max(
                10,
                to_int(os.getenv("CREATION_GUARD_TTL_SECONDS"), 300),
            ),
        )
