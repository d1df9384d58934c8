"""Realtime session bound to the authenticated user.

State machine:

    UNAUTHENTICATED --set_user(user)--> INITIALIZING --> ACTIVE
    ACTIVE --set_user(None) / stop()--> UNAUTHENTICATED

While ACTIVE a liveness loop probes the connection every
``liveness_interval`` seconds. A failed probe tears every subscription down
and opens them again from scratch.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from enum import Enum
from typing import Any

from fitcenter_realtime.config import RealtimeSettings
from fitcenter_realtime.models import (
    NotificationPayload,
    PresenceState,
    RowChangeEvent,
    SessionUser,
)
from fitcenter_realtime.observability import get_logger

from .notifier import LoggingNotifier, Notifier
from .realtime import RealtimeService, Unsubscribe

logger = get_logger(__name__)


class SessionState(str, Enum):
    """Lifecycle of a realtime session."""

    UNAUTHENTICATED = "unauthenticated"
    INITIALIZING = "initializing"
    ACTIVE = "active"


class RealtimeSession:
    """Opens and closes the user's subscriptions as identity changes."""

    def __init__(
        self,
        service: RealtimeService,
        notifier: Notifier | None = None,
        liveness_interval: float = 30.0,
        reinitialize_delay: float = 1.0,
        presence_channel: str = "workspace_presence",
        chat_event: str = "message",
        on_task_change: Callable[[RowChangeEvent], None] | None = None,
        on_announcement_change: Callable[[RowChangeEvent], None] | None = None,
        on_schedule_change: Callable[[RowChangeEvent], None] | None = None,
        on_presence_change: Callable[[PresenceState], None] | None = None,
    ):
        """Initialize the session.

        Args:
            service: Realtime service owned by the same composition root
            notifier: Toast sink for inbound notifications
            liveness_interval: Seconds between connection probes while active
            reinitialize_delay: Pause between teardown and reinitialization
            presence_channel: Workspace-wide presence channel
            chat_event: Broadcast event used by chat channels
            on_task_change: Hook for task row changes
            on_announcement_change: Hook for announcement row changes
            on_schedule_change: Hook for schedule row changes
            on_presence_change: Hook receiving the full presence map
        """
        self.service = service
        self._notifier: Notifier = notifier or LoggingNotifier()
        self.liveness_interval = liveness_interval
        self.reinitialize_delay = reinitialize_delay
        self.presence_channel = presence_channel
        self.chat_event = chat_event

        self._on_task_change = on_task_change
        self._on_announcement_change = on_announcement_change
        self._on_schedule_change = on_schedule_change
        self._on_presence_change = on_presence_change

        self._state = SessionState.UNAUTHENTICATED
        self._user: SessionUser | None = None
        self._is_connected = False
        self._online_users: PresenceState = {}
        self._notification_callbacks: set[Callable[[NotificationPayload], None]] = set()
        self._unsubscribers: list[Unsubscribe] = []
        self._liveness_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        service: RealtimeService,
        settings: RealtimeSettings,
        notifier: Notifier | None = None,
        **hooks: Any,
    ) -> RealtimeSession:
        return cls(
            service,
            notifier=notifier,
            liveness_interval=settings.liveness_interval_seconds,
            reinitialize_delay=settings.reinitialize_delay_seconds,
            presence_channel=settings.presence_channel,
            chat_event=settings.chat_event,
            **hooks,
        )

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> SessionUser | None:
        return self._user

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    @property
    def online_users(self) -> PresenceState:
        return self._online_users

    def debug_status(self) -> dict[str, Any]:
        """Summary used by status endpoints and debug logging."""
        return {
            "state": self._state.value,
            "user_id": self._user.id if self._user else None,
            "is_connected": self._is_connected,
            "online_users_count": sum(len(v) for v in self._online_users.values()),
            "connection_status": "connected" if self._is_connected else "disconnected",
            "channels": self.service.active_channels(),
        }

    # =========================================================================
    # Identity transitions
    # =========================================================================

    async def set_user(self, user: SessionUser | None) -> None:
        """React to the authenticated identity changing."""
        if user is None:
            await self.stop()
            return

        if (
            self._state == SessionState.ACTIVE
            and self._user is not None
            and self._user.id == user.id
        ):
            return

        await self.start(user)

    async def start(self, user: SessionUser) -> None:
        """Open every subscription for user and start the liveness loop."""
        async with self._lock:
            if self._state != SessionState.UNAUTHENTICATED:
                await self._teardown()

            self._user = user
            self._state = SessionState.INITIALIZING
            await self._initialize()
            self._state = SessionState.ACTIVE

            if self._liveness_task is None or self._liveness_task.done():
                self._liveness_task = asyncio.create_task(self._liveness_loop())

        logger.info("Realtime session active", user_id=user.id)

    async def stop(self) -> None:
        """Close every subscription. Safe to call when already stopped."""
        task = self._liveness_task
        self._liveness_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        async with self._lock:
            await self._teardown()
            self._user = None
            self._state = SessionState.UNAUTHENTICATED

        logger.info("Realtime session stopped")

    async def refresh_connection(self) -> bool:
        """Probe the connection and rebuild every subscription if it is down.

        Returns:
            Connection status reported by the probe
        """
        connected = await self.service.check_connection()
        self._is_connected = connected

        if not connected and self._user is not None:
            logger.warning("Realtime connection lost, reinitializing", user_id=self._user.id)
            async with self._lock:
                if self._state != SessionState.ACTIVE or self._user is None:
                    return connected
                await self._teardown()
                await asyncio.sleep(self.reinitialize_delay)
                self._state = SessionState.INITIALIZING
                await self._initialize()
                self._state = SessionState.ACTIVE

        return connected

    async def _initialize(self) -> None:
        user = self._user
        if user is None:
            return

        logger.info("Initializing realtime subscriptions", user_id=user.id)
        try:
            self._unsubscribers.append(
                await self.service.subscribe_to_user_notifications(
                    user.id, self._handle_notification
                )
            )
            self._unsubscribers.append(
                await self.service.subscribe_to_task_changes(user.id, self._handle_task_change)
            )
            self._unsubscribers.append(
                await self.service.subscribe_to_announcements(self._handle_announcement_change)
            )
            self._unsubscribers.append(
                await self.service.subscribe_to_schedule_changes(
                    user.id, self._handle_schedule_change
                )
            )
            self._unsubscribers.append(
                await self.service.subscribe_to_presence(
                    self.presence_channel,
                    user.id,
                    user.presence_info(),
                    self._handle_presence,
                )
            )

            self._is_connected = await self.service.check_connection()
            logger.info(
                "Realtime subscriptions initialized",
                user_id=user.id,
                connected=self._is_connected,
            )
        except Exception as e:
            logger.error("Realtime initialization failed", user_id=user.id, error=str(e))
            self._is_connected = False

    async def _teardown(self) -> None:
        unsubscribers = self._unsubscribers
        self._unsubscribers = []
        for unsubscribe in unsubscribers:
            try:
                await unsubscribe()
            except Exception as e:
                logger.error("Unsubscribe failed", error=str(e))

        self._online_users = {}
        self._is_connected = False

    async def _liveness_loop(self) -> None:
        """Periodic connection probe while the session is active."""
        while True:
            try:
                await asyncio.sleep(self.liveness_interval)
                if self._state == SessionState.ACTIVE:
                    await self.refresh_connection()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Liveness check error", error=str(e))

    # =========================================================================
    # Fan-out
    # =========================================================================

    def subscribe_to_notifications(
        self,
        callback: Callable[[NotificationPayload], None],
    ) -> Callable[[], None]:
        """Register a notification listener.

        Returns:
            Function removing the listener again
        """
        self._notification_callbacks.add(callback)

        def unregister() -> None:
            self._notification_callbacks.discard(callback)

        return unregister

    async def send_message(
        self,
        channel_name: str,
        event_name: str,
        payload: dict[str, Any],
    ) -> None:
        """Send a broadcast message on an open channel."""
        await self.service.send_broadcast_message(channel_name, event_name, payload)

    async def subscribe_to_chat_channel(
        self,
        channel_name: str,
        on_message: Callable[[dict[str, Any]], None],
    ) -> Unsubscribe:
        """Listen to chat messages; closed together with the session."""
        unsubscribe = await self.service.subscribe_to_broadcast(
            channel_name, self.chat_event, on_message
        )
        self._unsubscribers.append(unsubscribe)
        return unsubscribe

    def _handle_notification(self, notification: NotificationPayload) -> None:
        for callback in list(self._notification_callbacks):
            try:
                callback(notification)
            except Exception:
                logger.exception(
                    "Notification listener failed",
                    notification_id=notification.id,
                )

        self._notifier.show(notification.type, notification.toast_text)

    def _handle_task_change(self, event: RowChangeEvent) -> None:
        logger.info("Task changed", event_type=event.event_type)
        if self._on_task_change:
            self._on_task_change(event)

    def _handle_announcement_change(self, event: RowChangeEvent) -> None:
        logger.info("Announcement changed", event_type=event.event_type)
        if self._on_announcement_change:
            self._on_announcement_change(event)

    def _handle_schedule_change(self, event: RowChangeEvent) -> None:
        logger.info("Schedule changed", event_type=event.event_type)
        if self._on_schedule_change:
            self._on_schedule_change(event)

    def _handle_presence(self, state: PresenceState) -> None:
        self._online_users = state
        if self._on_presence_change:
            self._on_presence_change(state)
