"""Presence models."""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import Field, ValidationError

from fitcenter_realtime.observability import get_logger

from .base import RealtimeBaseModel

logger = get_logger(__name__)


class PresenceEntry(RealtimeBaseModel):
    """One tracked participant connection."""

    user_id: str
    name: str
    role: str
    avatar: str | None = None
    online_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


# Presence key (one per connection) -> entries announced under that key
PresenceState = dict[str, list[PresenceEntry]]


def normalize_presence_state(raw: Mapping[str, Any] | None) -> PresenceState:
    """Convert a transport presence map into PresenceEntry lists.

    Entries that do not look like a tracked participant are skipped.
    """
    state: PresenceState = {}
    for key, presences in (raw or {}).items():
        entries = []
        for presence in presences or []:
            try:
                entries.append(PresenceEntry.model_validate(presence))
            except ValidationError as e:
                logger.warning(
                    "Ignoring malformed presence entry",
                    presence_key=key,
                    error=str(e),
                )
        if entries:
            state[key] = entries
    return state
