"""Realtime Facade over Supabase realtime channels.

RealtimeService is constructed explicitly by the composition root (one per
realtime client) and passed to whoever needs it. It owns:

- the ChannelRegistry holding every open channel
- one ReconnectState per logical subscription name
- the last-known connection status

Transport callbacks are synchronous; async follow-up work (presence
announcements, reconnect attempts) runs in tasks kept in ``_tasks``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import uuid4

from pydantic import ValidationError

from fitcenter_realtime.config import RealtimeSettings
from fitcenter_realtime.models import (
    ChangeType,
    ChannelKind,
    ChannelStatus,
    NotificationPayload,
    NotificationSeverity,
    PresenceEntry,
    PresenceState,
    RowChangeEvent,
    normalize_presence_state,
)
from fitcenter_realtime.observability import get_logger

from .notifier import LoggingNotifier, Notifier
from .reconnect import ReconnectPolicy, ReconnectState
from .registry import ChannelHandle, ChannelRegistry

logger = get_logger(__name__)

Unsubscribe = Callable[[], Awaitable[None]]
RowChangeCallback = Callable[[RowChangeEvent], None]
NotificationCallback = Callable[[NotificationPayload], None]
PresenceCallback = Callable[[PresenceState], None]
BroadcastCallback = Callable[[dict[str, Any]], None]

SUBSCRIBED = "SUBSCRIBED"
FAILURE_STATES = {"CLOSED", "CHANNEL_ERROR", "TIMED_OUT"}

RECONNECT_FAILED_MESSAGE = (
    "Connection error: realtime notifications could not be restored. Please reload the page."
)


class RealtimeClient(Protocol):
    """The part of ``realtime.AsyncRealtimeClient`` the service uses."""

    def channel(self, topic: str, params: Any = None) -> Any: ...

    async def remove_channel(self, channel: Any) -> None: ...


def _status_value(status: Any) -> str:
    """Normalize RealtimeSubscribeStates members and plain strings."""
    return str(getattr(status, "value", status)).upper()


async def _noop_unsubscribe() -> None:
    return None


@dataclass(eq=False)
class _Subscription:
    """One logical subscription, surviving across reconnects."""

    name: str
    kind: ChannelKind
    setup: Callable[[Any], None]
    reconnect: bool = False
    on_subscribed: Callable[[Any], Awaitable[None]] | None = None
    handle: ChannelHandle | None = None
    retry_task: asyncio.Task | None = None
    active: bool = True


class RealtimeService:
    """Subscribe/unsubscribe/send/check-connection access point."""

    def __init__(
        self,
        client: RealtimeClient,
        policy: ReconnectPolicy | None = None,
        notifier: Notifier | None = None,
        heartbeat_timeout: float = 5.0,
        heartbeat_channel: str = "connection_test",
        teardown_timeout: float = 5.0,
        schedule_filter_column: str | None = None,
    ):
        """Initialize the service.

        Args:
            client: Connected realtime client
            policy: Reconnection policy (defaults to 5 attempts, 1s..30s)
            notifier: Sink for the terminal reconnect error
            heartbeat_timeout: Seconds check_connection waits for SUBSCRIBED
            heartbeat_channel: Name prefix for connection probe channels
            teardown_timeout: Seconds a single channel removal may take
            schedule_filter_column: Column on schedules matched against the user id
        """
        self._client = client
        self.registry = ChannelRegistry(client, teardown_timeout=teardown_timeout)
        self.policy = policy or ReconnectPolicy()
        self._notifier: Notifier = notifier or LoggingNotifier()
        self.heartbeat_timeout = heartbeat_timeout
        self.heartbeat_channel = heartbeat_channel
        self.schedule_filter_column = schedule_filter_column

        self._connected = False
        self._subscriptions: dict[str, _Subscription] = {}
        self._retry_states: dict[str, ReconnectState] = {}
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        client: RealtimeClient,
        settings: RealtimeSettings,
        notifier: Notifier | None = None,
    ) -> RealtimeService:
        return cls(
            client,
            policy=ReconnectPolicy.from_settings(settings),
            notifier=notifier,
            heartbeat_timeout=settings.heartbeat_timeout_seconds,
            heartbeat_channel=settings.heartbeat_channel,
            teardown_timeout=settings.teardown_timeout_seconds,
            schedule_filter_column=settings.schedule_filter_column,
        )

    # =========================================================================
    # Connection status
    # =========================================================================

    def get_connection_status(self) -> bool:
        """Last-known connection status.

        Updated by subscription status callbacks; only check_connection()
        gives a fresh answer.
        """
        return self._connected

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def check_connection(self) -> bool:
        """Probe the transport with a throwaway channel.

        Returns:
            True if the probe channel reached SUBSCRIBED within the timeout
        """
        name = f"{self.heartbeat_channel}:{uuid4().hex[:8]}"
        result: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        handle = ChannelHandle(
            name=name,
            kind=ChannelKind.HEARTBEAT,
            channel=self._client.channel(name),
        )

        def on_status(status: Any, err: Exception | None = None) -> None:
            if not result.done():
                result.set_result(_status_value(status) == SUBSCRIBED)

        async def probe() -> bool:
            await self.registry.register(handle)
            await handle.channel.subscribe(on_status)
            return await result

        connected = False
        try:
            connected = await asyncio.wait_for(probe(), timeout=self.heartbeat_timeout)
        except TimeoutError:
            logger.warning(
                "Connection check timed out",
                timeout_seconds=self.heartbeat_timeout,
            )
        except Exception as e:
            logger.error("Connection check failed", error=str(e))
        finally:
            # The probe may time out before register() installed the handle
            await self.registry.discard(handle)

        self._connected = connected
        logger.debug("Connection checked", connected=connected)
        return connected

    # =========================================================================
    # Row-change subscriptions
    # =========================================================================

    async def subscribe_to_user_notifications(
        self,
        user_id: str,
        on_notification: NotificationCallback,
    ) -> Unsubscribe:
        """Subscribe to notifications addressed to one user.

        Only INSERTs are delivered; the recipient filter runs server-side.
        """

        def handle_change(event: RowChangeEvent) -> None:
            if event.event_type != ChangeType.INSERT or not event.new:
                return
            try:
                notification = NotificationPayload.model_validate(event.new)
            except ValidationError as e:
                logger.warning(
                    "Ignoring malformed notification",
                    user_id=user_id,
                    error=str(e),
                )
                return

            logger.info(
                "Notification received",
                user_id=user_id,
                notification_id=notification.id,
                severity=notification.type,
            )
            on_notification(notification)

        return await self._subscribe_rows(
            f"user_notifications_{user_id}",
            table="notifications",
            filter=f"user_id=eq.{user_id}",
            on_change=handle_change,
            reconnect=True,
        )

    async def subscribe_to_task_changes(
        self,
        user_id: str,
        on_change: RowChangeCallback,
    ) -> Unsubscribe:
        """Subscribe to changes of tasks assigned to a user."""
        return await self._subscribe_rows(
            f"task_changes_{user_id}",
            table="tasks",
            filter=f"assigned_to=eq.{user_id}",
            on_change=on_change,
        )

    async def subscribe_to_announcements(self, on_change: RowChangeCallback) -> Unsubscribe:
        """Subscribe to organization-wide announcement changes."""
        return await self._subscribe_rows(
            "announcements_global",
            table="announcements",
            on_change=on_change,
        )

    async def subscribe_to_schedule_changes(
        self,
        user_id: str,
        on_change: RowChangeCallback,
    ) -> Unsubscribe:
        """Subscribe to schedule changes for a user's session."""
        filter = None
        if self.schedule_filter_column:
            filter = f"{self.schedule_filter_column}=eq.{user_id}"

        return await self._subscribe_rows(
            f"schedule_changes_{user_id}",
            table="schedules",
            filter=filter,
            on_change=on_change,
        )

    async def subscribe_to_table(
        self,
        table: str,
        on_change: RowChangeCallback,
        event: str = "*",
        filter: str | None = None,
        schema: str = "public",
        reconnect: bool = False,
    ) -> Unsubscribe:
        """Subscribe to changes on any table.

        Args:
            table: Table name
            on_change: Called once per matching mutation
            event: INSERT, UPDATE, DELETE or * for all
            filter: Optional PostgREST-style filter (e.g. ``status=eq.open``)
            schema: Database schema
            reconnect: Retry with backoff when the channel is lost
        """
        return await self._subscribe_rows(
            f"{table}:{event}:{filter or 'all'}",
            table=table,
            filter=filter,
            on_change=on_change,
            event=event,
            schema=schema,
            reconnect=reconnect,
        )

    async def _subscribe_rows(
        self,
        name: str,
        table: str,
        on_change: RowChangeCallback,
        filter: str | None = None,
        event: str = "*",
        schema: str = "public",
        reconnect: bool = False,
    ) -> Unsubscribe:
        handler = self._row_change_handler(name, on_change)

        def setup(channel: Any) -> None:
            channel.on_postgres_changes(
                event,
                callback=handler,
                table=table,
                schema=schema,
                filter=filter,
            )

        return await self._start(
            _Subscription(
                name=name,
                kind=ChannelKind.ROW_CHANGE,
                setup=setup,
                reconnect=reconnect,
            )
        )

    def _row_change_handler(
        self,
        name: str,
        on_change: RowChangeCallback,
    ) -> Callable[[dict[str, Any]], None]:
        def handler(payload: dict[str, Any]) -> None:
            try:
                event = RowChangeEvent.from_payload(payload)
            except ValidationError as e:
                logger.warning("Ignoring malformed row change", channel=name, error=str(e))
                return

            logger.debug(
                "Row change received",
                channel=name,
                table=event.table,
                event_type=event.event_type,
            )
            self._dispatch(name, on_change, event)

        return handler

    # =========================================================================
    # Presence and broadcast
    # =========================================================================

    async def subscribe_to_presence(
        self,
        channel_name: str,
        user_id: str,
        user_info: dict[str, Any],
        on_presence_change: PresenceCallback,
    ) -> Unsubscribe:
        """Track this user on a presence channel.

        Every sync, join and leave delivers the complete presence map.

        Args:
            channel_name: Presence channel name
            user_id: Local user id
            user_info: name, role and optional avatar to announce
            on_presence_change: Receives the full presence state
        """

        def deliver(channel: Any, trigger: str) -> None:
            state = normalize_presence_state(channel.presence_state())
            logger.debug(
                "Presence changed",
                channel=channel_name,
                trigger=trigger,
                connections=len(state),
            )
            self._dispatch(channel_name, on_presence_change, state)

        def setup(channel: Any) -> None:
            channel.on_presence_sync(lambda: deliver(channel, "sync"))
            channel.on_presence_join(
                lambda key, current, joined: deliver(channel, "join")
            )
            channel.on_presence_leave(
                lambda key, current, left: deliver(channel, "leave")
            )

        async def announce(channel: Any) -> None:
            entry = PresenceEntry(user_id=user_id, **user_info)
            await channel.track(entry.model_dump(mode="json", exclude_none=True))
            logger.info("Presence announced", channel=channel_name, user_id=user_id)

        return await self._start(
            _Subscription(
                name=channel_name,
                kind=ChannelKind.PRESENCE,
                setup=setup,
                on_subscribed=announce,
            )
        )

    async def subscribe_to_broadcast(
        self,
        channel_name: str,
        event_name: str,
        on_message: BroadcastCallback,
    ) -> Unsubscribe:
        """Listen for broadcast messages of one event on a channel."""

        def handle_message(payload: dict[str, Any]) -> None:
            logger.debug("Broadcast received", channel=channel_name, broadcast_event=event_name)
            self._dispatch(channel_name, on_message, payload)

        def setup(channel: Any) -> None:
            channel.on_broadcast(event_name, handle_message)

        return await self._start(
            _Subscription(
                name=channel_name,
                kind=ChannelKind.BROADCAST,
                setup=setup,
            )
        )

    async def send_broadcast_message(
        self,
        channel_name: str,
        event_name: str,
        payload: dict[str, Any],
    ) -> None:
        """Send a broadcast on an already open channel.

        Failures are logged, never raised.
        """
        handle = self.registry.get(channel_name)
        if handle is None:
            logger.error(
                "Broadcast channel not found",
                channel=channel_name,
                broadcast_event=event_name,
            )
            return

        try:
            await handle.channel.send_broadcast(event_name, payload)
            logger.info("Broadcast sent", channel=channel_name, broadcast_event=event_name)
        except Exception as e:
            logger.error(
                "Broadcast send failed",
                channel=channel_name,
                broadcast_event=event_name,
                error=str(e),
            )

    # =========================================================================
    # Teardown and inspection
    # =========================================================================

    async def unsubscribe_all(self) -> None:
        """Close every subscription and pending retry. Safe to repeat."""
        logger.info("Unsubscribing from all channels", channels=len(self.registry))

        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for sub in subscriptions:
            sub.active = False
            sub.retry_task = None
        self._retry_states.clear()

        for task in list(self._tasks):
            task.cancel()

        await self.registry.unregister_all()
        self._connected = False

    def get_retry_state(self, name: str) -> ReconnectState | None:
        """Get the retry state of a logical subscription."""
        return self._retry_states.get(name)

    def active_channels(self) -> dict[str, str]:
        """Get registered channel names and their status."""
        channels = {}
        for name in self.registry.names():
            handle = self.registry.get(name)
            if handle is not None:
                channels[name] = handle.status.value
        return channels

    # =========================================================================
    # Subscription lifecycle
    # =========================================================================

    async def _start(self, sub: _Subscription) -> Unsubscribe:
        previous = self._subscriptions.get(sub.name)
        if previous is not None:
            await self._close(previous)

        self._subscriptions[sub.name] = sub
        self._retry_states.setdefault(sub.name, ReconnectState()).reset()

        try:
            await self._open(sub)
        except asyncio.CancelledError:
            # No teardown reaches the caller, so close before propagating
            await self._close(sub)
            raise
        except Exception as e:
            logger.error(
                "Subscription failed",
                channel=sub.name,
                kind=sub.kind.value,
                error=str(e),
            )
            await self._close(sub)
            return _noop_unsubscribe

        logger.info("Subscription started", channel=sub.name, kind=sub.kind.value)

        async def unsubscribe() -> None:
            await self._close(sub)

        return unsubscribe

    async def _open(self, sub: _Subscription) -> None:
        """Create, register and subscribe a fresh channel for sub."""
        channel = self._client.channel(sub.name)
        sub.setup(channel)

        handle = ChannelHandle(name=sub.name, kind=sub.kind, channel=channel)
        sub.handle = handle
        # The previous channel is fully removed before this one subscribes
        await self.registry.register(handle)
        await channel.subscribe(self._status_callback(sub, handle))

    async def _close(self, sub: _Subscription) -> None:
        if not sub.active:
            return
        sub.active = False

        if sub.retry_task is not None:
            sub.retry_task.cancel()
            sub.retry_task = None

        if self._subscriptions.get(sub.name) is sub:
            del self._subscriptions[sub.name]

        if sub.handle is not None:
            await self.registry.discard(sub.handle)

        logger.info("Subscription closed", channel=sub.name)

    def _status_callback(
        self,
        sub: _Subscription,
        handle: ChannelHandle,
    ) -> Callable[..., None]:
        def on_status(status: Any, err: Exception | None = None) -> None:
            self._handle_status(sub, handle, _status_value(status), err)

        return on_status

    def _handle_status(
        self,
        sub: _Subscription,
        handle: ChannelHandle,
        status: str,
        err: Exception | None,
    ) -> None:
        if not sub.active or self.registry.get(sub.name) is not handle:
            logger.debug("Ignoring status of retired channel", channel=sub.name, status=status)
            return

        if status == SUBSCRIBED:
            handle.status = ChannelStatus.SUBSCRIBED
            self._connected = True
            if state := self._retry_states.get(sub.name):
                state.reset()
            logger.info("Channel subscribed", channel=sub.name)

            if sub.on_subscribed is not None:
                self._spawn(self._run_on_subscribed(sub, handle))

        elif status in FAILURE_STATES:
            handle.status = ChannelStatus.CLOSED if status == "CLOSED" else ChannelStatus.ERRORED
            self._connected = False
            logger.warning(
                "Channel lost",
                channel=sub.name,
                status=status,
                error=str(err) if err else None,
            )
            if sub.reconnect:
                self._schedule_reconnect(sub)

    async def _run_on_subscribed(self, sub: _Subscription, handle: ChannelHandle) -> None:
        if not sub.active or self.registry.get(sub.name) is not handle:
            return
        try:
            await sub.on_subscribed(handle.channel)
        except Exception as e:
            logger.error("Post-subscribe action failed", channel=sub.name, error=str(e))

    # =========================================================================
    # Reconnection
    # =========================================================================

    def _schedule_reconnect(self, sub: _Subscription) -> None:
        if sub.retry_task is not None and not sub.retry_task.done():
            logger.debug("Reconnect already pending", channel=sub.name)
            return

        state = self._retry_states.setdefault(sub.name, ReconnectState())
        if not self.policy.should_retry(state):
            if not state.exhausted:
                self.policy.exhaust(state)
                logger.error(
                    "Reconnect attempts exhausted",
                    channel=sub.name,
                    attempts=state.attempts,
                )
                self._notifier.show(
                    NotificationSeverity.ERROR,
                    RECONNECT_FAILED_MESSAGE,
                    persistent=True,
                )
            return

        delay = self.policy.schedule(state)
        logger.info(
            "Reconnect scheduled",
            channel=sub.name,
            attempt=state.attempts,
            max_attempts=self.policy.max_attempts,
            delay_seconds=delay,
        )
        sub.retry_task = self._spawn(self._reconnect(sub, delay))

    async def _reconnect(self, sub: _Subscription, delay: float) -> None:
        if sub.handle is not None:
            await self.registry.unregister(sub.name, sub.handle)

        await asyncio.sleep(delay)
        sub.retry_task = None

        if not sub.active or self._subscriptions.get(sub.name) is not sub:
            return

        try:
            await self._open(sub)
        except Exception as e:
            logger.error("Reconnect attempt failed", channel=sub.name, error=str(e))
            if sub.handle is not None:
                await self.registry.unregister(sub.name, sub.handle)
            self._schedule_reconnect(sub)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    def _dispatch(name: str, callback: Callable[..., None], *args: Any) -> None:
        """Run a subscriber callback without letting it break the transport."""
        try:
            callback(*args)
        except Exception:
            logger.exception("Subscription callback failed", channel=name)
