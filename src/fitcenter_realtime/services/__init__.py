"""Services for the realtime layer."""

from .hub import ConnectionHub, HubNotifier
from .notifier import LoggingNotifier, Notifier
from .realtime import RECONNECT_FAILED_MESSAGE, RealtimeClient, RealtimeService, Unsubscribe
from .reconnect import ReconnectPolicy, ReconnectState
from .registry import ChannelHandle, ChannelRegistry
from .session import RealtimeSession, SessionState

__all__ = [
    "ChannelHandle",
    "ChannelRegistry",
    "ReconnectPolicy",
    "ReconnectState",
    "RealtimeClient",
    "RealtimeService",
    "RECONNECT_FAILED_MESSAGE",
    "Unsubscribe",
    "RealtimeSession",
    "SessionState",
    "Notifier",
    "LoggingNotifier",
    "ConnectionHub",
    "HubNotifier",
]
