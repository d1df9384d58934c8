"""Pydantic data models for the realtime layer."""

from .base import RealtimeBaseModel
from .channels import ChannelKind, ChannelStatus
from .events import ChangeType, RowChangeEvent
from .notifications import NotificationPayload, NotificationSeverity
from .presence import PresenceEntry, PresenceState, normalize_presence_state
from .users import SessionUser

__all__ = [
    # Base
    "RealtimeBaseModel",
    # Channels
    "ChannelKind",
    "ChannelStatus",
    # Events
    "ChangeType",
    "RowChangeEvent",
    # Notifications
    "NotificationPayload",
    "NotificationSeverity",
    # Presence
    "PresenceEntry",
    "PresenceState",
    "normalize_presence_state",
    # Users
    "SessionUser",
]
