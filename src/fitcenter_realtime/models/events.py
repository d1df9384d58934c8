"""Row-change event models.

Postgres change payloads arrive in two shapes depending on the client:

- nested: ``{"data": {"type": "INSERT", "record": {...}, "old_record": {...},
  "table": ..., "schema": ..., "commit_timestamp": ...}, "ids": [...]}``
- flat: ``{"eventType": "INSERT", "new": {...}, "old": {...}, "table": ...}``

Both are normalized into a single RowChangeEvent.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from .base import RealtimeBaseModel


class ChangeType(str, Enum):
    """Database mutation kind."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class RowChangeEvent(RealtimeBaseModel):
    """Normalized database mutation event."""

    event_type: ChangeType
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None
    table: str = ""
    schema_name: str = Field(default="public", alias="schema")
    commit_timestamp: datetime | None = None

    @field_validator("event_type", mode="before")
    @classmethod
    def normalize_event_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("new", "old", mode="before")
    @classmethod
    def empty_row_is_none(cls, v: Any) -> Any:
        # DELETE events carry an empty "record", INSERT events an empty "old_record"
        return v or None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RowChangeEvent":
        """Build an event from a raw postgres_changes payload.

        Raises:
            pydantic.ValidationError: If the payload has no usable event type
        """
        data = payload.get("data")
        if not isinstance(data, dict):
            data = payload

        return cls.model_validate({
            "event_type": data.get("type") or data.get("eventType"),
            "new": data.get("record", data.get("new")),
            "old": data.get("old_record", data.get("old")),
            "table": data.get("table") or "",
            "schema": data.get("schema") or "public",
            "commit_timestamp": data.get("commit_timestamp"),
        })
