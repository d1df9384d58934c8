"""WebSocket Hub for UI client connections.

Each connected UI client owns one RealtimeSession. Messages for a client go
through a bounded per-client queue that drops the oldest message when full,
so a slow client never blocks the realtime transport.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from fitcenter_realtime.models import NotificationSeverity
from fitcenter_realtime.observability import get_logger

from .transport import close_realtime_client

if TYPE_CHECKING:
    from fastapi import WebSocket

    from .session import RealtimeSession

logger = get_logger(__name__)


class ConnectionHub:
    """Manages WebSocket clients and their realtime sessions."""

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._connections: dict[str, WebSocket] = {}
        self._sessions: dict[str, RealtimeSession] = {}
        self._realtime_clients: dict[str, Any] = {}
        self._client_info: dict[str, dict[str, Any]] = {}
        self._message_queues: dict[str, asyncio.Queue] = {}
        self._lock = asyncio.Lock()
        self.messages_dropped = 0
        self.notifications_delivered = 0

    async def connect(
        self,
        websocket: WebSocket,
        client_id: str,
        user_id: str,
    ) -> None:
        """Handle new connection.

        Args:
            websocket: The WebSocket connection
            client_id: Unique client identifier
            user_id: Authenticated user id
        """
        async with self._lock:
            self._connections[client_id] = websocket
            self._client_info[client_id] = {
                "connected_at": datetime.now(UTC).isoformat(),
                "user_id": user_id,
            }
            self._message_queues[client_id] = asyncio.Queue(maxsize=self.max_queue_size)

        logger.info(
            "Client connected to hub",
            client_id=client_id,
            total_clients=len(self._connections),
        )

    def attach_session(
        self,
        client_id: str,
        session: RealtimeSession,
        realtime_client: Any = None,
    ) -> None:
        self._sessions[client_id] = session
        if realtime_client is not None:
            self._realtime_clients[client_id] = realtime_client

    async def disconnect(self, client_id: str) -> None:
        """Handle disconnection.

        Args:
            client_id: Client identifier
        """
        async with self._lock:
            self._connections.pop(client_id, None)
            self._sessions.pop(client_id, None)
            self._realtime_clients.pop(client_id, None)
            self._client_info.pop(client_id, None)
            self._message_queues.pop(client_id, None)

        logger.info(
            "Client disconnected from hub",
            client_id=client_id,
            total_clients=len(self._connections),
        )

    def enqueue(self, client_id: str, message: dict[str, Any]) -> bool:
        """Queue a message for a client without blocking.

        Returns:
            True if the message was queued
        """
        queue = self._message_queues.get(client_id)
        if queue is None:
            return False

        if queue.full():
            queue.get_nowait()
            self.messages_dropped += 1
            logger.warning("Client queue full, dropped oldest message", client_id=client_id)

        queue.put_nowait(message)
        if message.get("type") == "notification":
            self.notifications_delivered += 1
        return True

    async def next_message(self, client_id: str) -> dict[str, Any]:
        """Wait for the next queued message of a client.

        Raises:
            KeyError: If the client is not connected
        """
        return await self._message_queues[client_id].get()

    def get_client_count(self) -> int:
        """Get number of connected clients."""
        return len(self._connections)

    def get_clients(self) -> dict[str, dict[str, Any]]:
        """Get all connected clients info."""
        return self._client_info.copy()

    def get_sessions(self) -> dict[str, RealtimeSession]:
        """Get the realtime session of every connected client."""
        return self._sessions.copy()

    def is_connected(self, client_id: str) -> bool:
        """Check if client is connected."""
        return client_id in self._connections

    async def shutdown(self) -> None:
        """Close the session and realtime client of every attached client."""
        for client_id, session in self.get_sessions().items():
            await close_session(session, self._realtime_clients.get(client_id))


async def close_session(session: RealtimeSession, realtime_client: Any = None) -> None:
    """Stop a session and release everything it holds on the realtime client."""
    await session.stop()
    await session.service.unsubscribe_all()
    if realtime_client is not None:
        await close_realtime_client(realtime_client)


class HubNotifier:
    """Notifier delivering toasts to one WebSocket client."""

    def __init__(self, hub: ConnectionHub, client_id: str):
        self.hub = hub
        self.client_id = client_id

    def show(
        self,
        severity: NotificationSeverity | str,
        text: str,
        *,
        persistent: bool = False,
    ) -> None:
        severity_str = severity.value if hasattr(severity, "value") else str(severity)
        self.hub.enqueue(
            self.client_id,
            {
                "type": "toast",
                "severity": severity_str,
                "text": text,
                "persistent": persistent,
            },
        )
