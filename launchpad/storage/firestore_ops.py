from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Any

from google.cloud import firestore

from launchpad.minting.types import TokenRecord

from .helpers import now_utc, to_iso

CREATOR_WALLET_FIELD = "creator_wallet"
CREATED_AT_FIELD = "created_at"


class FirestoreStorageOps:
    async def count_recent_tokens(self, *, wallet_address: str, since: datetime) -> int:
        tokens_ref = self._require_tokens_collection()
        # Served by the composite index in firestore.indexes.json.
        query = (
            tokens_ref.where(filter=firestore.FieldFilter(CREATOR_WALLET_FIELD, "==", wallet_address))
            .where(filter=firestore.FieldFilter(CREATED_AT_FIELD, ">=", since))
            .limit(1)
        )
        snapshots = await asyncio.to_thread(lambda: list(query.stream()))
        return len(snapshots)

    async def insert_token(self, *, record: TokenRecord) -> TokenRecord:
        tokens_ref = self._require_tokens_collection()
        created_at = now_utc()

        doc_ref = tokens_ref.document()
        payload: dict[str, Any] = record.to_dict()
        payload.pop("id", None)
        payload[CREATED_AT_FIELD] = created_at
        payload["env"] = self.settings.service_env
        payload["server_created_at"] = firestore.SERVER_TIMESTAMP

        await asyncio.to_thread(doc_ref.set, payload)
        return replace(record, id=doc_ref.id, created_at=to_iso(created_at))

    def _require_tokens_collection(self) -> Any:
        if self._tokens_collection_ref is None:
            raise RuntimeError("Firestore client is not initialized.")
        return self._tokens_collection_ref
