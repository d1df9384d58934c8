"""Channel kind and lifecycle enums."""

from enum import Enum


class ChannelKind(str, Enum):
    """What a registered channel carries."""

    ROW_CHANGE = "row_change"
    PRESENCE = "presence"
    BROADCAST = "broadcast"
    HEARTBEAT = "heartbeat"


class ChannelStatus(str, Enum):
    """Lifecycle status of a registered channel."""

    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    CLOSED = "closed"
    ERRORED = "errored"
