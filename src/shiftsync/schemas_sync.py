from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuditLogEntry(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1, max_length=128)
    timestamp: int = Field(ge=0)
    actor_username: str = Field(min_length=1, max_length=64)
    action: str = Field(min_length=1, max_length=200)
    details: dict[str, Any] | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _iso_to_ms(cls, v: object) -> object:
        # Older clients send ISO-8601 strings.
        if isinstance(v, str) and not v.strip().isdigit():
            return int(datetime.fromisoformat(v.replace("Z", "+00:00")).timestamp() * 1000)
        return v


class SyncRequest(_CamelModel):
    last_sync_timestamp: int = Field(default=0, ge=0)
    # Records stay raw here; each one is validated on its own so that a bad record
    # is reported in `errors` instead of failing the whole request.
    changes: dict[str, list[Any]] = Field(default_factory=dict)
    audit_logs: list[Any] = Field(default_factory=list)


class SyncIssue(_CamelModel):
    client_record_id: str
    message: str
    entity_kind: str | None = None


class SyncResponse(_CamelModel):
    new_sync_timestamp: int
    # {entity tag: [records]} plus "auditLogs": [{"id": ...}]
    updates: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    conflicts: list[SyncIssue] = Field(default_factory=list)
    errors: list[SyncIssue] = Field(default_factory=list)


class BootstrapResponse(_CamelModel):
    new_sync_timestamp: int
    data: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
