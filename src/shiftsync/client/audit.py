from __future__ import annotations

import time
import uuid
from typing import Any

from shiftsync.client.store import Record, RecordStore


class AuditLogger:
    """Queues business actions for the next sync round."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def log(
        self, actor: str, action: str, details: dict[str, Any] | None = None
    ) -> Record:
        entry: Record = {
            "id": str(uuid.uuid4()),
            "timestamp": int(time.time() * 1000),
            "actorUsername": actor,
            "action": action,
            "details": details,
        }
        await self._store.enqueue_audit_log(entry)
        return entry
