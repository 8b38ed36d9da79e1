from __future__ import annotations

from datetime import datetime, timezone

from shiftsync.config import settings
from shiftsync.domain.arbitration import clamp_last_modified


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def clamp_client_last_modified(value: int | None) -> int:
    return clamp_last_modified(
        value,
        server_now_ms=now_ms(),
        max_skew_ms=settings.sync_max_client_clock_skew_seconds * 1000,
    )
