from __future__ import annotations

from .audit import AuditLogger
from .engine import (
    ENTITY_KINDS,
    WATERMARK_KEY,
    SyncEngine,
    SyncNotice,
    SyncReport,
    SyncState,
)
from .store import MemoryRecordStore, Record, RecordStore, SqliteRecordStore
from .transport import SyncApiClient, SyncTransportError

__all__ = [
    "AuditLogger",
    "ENTITY_KINDS",
    "MemoryRecordStore",
    "Record",
    "RecordStore",
    "SqliteRecordStore",
    "SyncApiClient",
    "SyncEngine",
    "SyncNotice",
    "SyncReport",
    "SyncState",
    "SyncTransportError",
    "WATERMARK_KEY",
]
