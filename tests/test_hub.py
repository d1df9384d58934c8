"""Tests for the WebSocket connection hub."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from fitcenter_realtime.models import NotificationSeverity
from fitcenter_realtime.services import (
    ConnectionHub,
    HubNotifier,
    RealtimeSession,
    SessionState,
)


class TestConnectionHub:
    """Tests for ConnectionHub."""

    async def test_client_count_starts_at_zero(self):
        hub = ConnectionHub()
        assert hub.get_client_count() == 0

    async def test_is_connected_false_for_unknown_client(self):
        hub = ConnectionHub()
        assert hub.is_connected("unknown") is False

    async def test_connect_and_disconnect(self):
        hub = ConnectionHub()

        await hub.connect(MagicMock(), "client-1", "user-a")

        assert hub.is_connected("client-1")
        assert hub.get_clients()["client-1"]["user_id"] == "user-a"

        await hub.disconnect("client-1")

        assert hub.get_client_count() == 0
        assert hub.enqueue("client-1", {"type": "pong"}) is False

    async def test_enqueue_and_receive_in_order(self):
        hub = ConnectionHub()
        await hub.connect(MagicMock(), "client-1", "user-a")

        hub.enqueue("client-1", {"type": "connected"})
        hub.enqueue("client-1", {"type": "notification", "notification": {}})

        assert (await hub.next_message("client-1"))["type"] == "connected"
        assert (await hub.next_message("client-1"))["type"] == "notification"
        assert hub.notifications_delivered == 1

    async def test_full_queue_drops_oldest(self):
        hub = ConnectionHub(max_queue_size=2)
        await hub.connect(MagicMock(), "client-1", "user-a")

        for i in range(3):
            assert hub.enqueue("client-1", {"type": "row_change", "seq": i})

        assert hub.messages_dropped == 1
        assert (await hub.next_message("client-1"))["seq"] == 1
        assert (await hub.next_message("client-1"))["seq"] == 2

    async def test_attach_session(self):
        hub = ConnectionHub()
        session = MagicMock()
        await hub.connect(MagicMock(), "client-1", "user-a")

        hub.attach_session("client-1", session)

        assert hub.get_sessions() == {"client-1": session}
        await hub.disconnect("client-1")
        assert hub.get_sessions() == {}

    async def test_shutdown_closes_sessions_and_clients(
        self, service, notifier, fake_client, sample_user
    ):
        hub = ConnectionHub()
        session = RealtimeSession(service, notifier=notifier, liveness_interval=60.0)
        await hub.connect(MagicMock(), "client-1", "user-a")
        hub.attach_session("client-1", session, fake_client)
        await session.set_user(sample_user)
        await service.subscribe_to_broadcast("chat_room_1", "message", lambda p: None)

        await hub.shutdown()

        assert session.state == SessionState.UNAUTHENTICATED
        assert len(service.registry) == 0
        assert all(c.removed for c in fake_client.channels)
        assert fake_client.closed is True

    async def test_shutdown_without_realtime_client(self):
        hub = ConnectionHub()
        session = MagicMock()
        session.stop = AsyncMock()
        session.service.unsubscribe_all = AsyncMock()
        hub.attach_session("client-1", session)

        await hub.shutdown()

        session.stop.assert_awaited_once()
        session.service.unsubscribe_all.assert_awaited_once()

    async def test_next_message_unknown_client(self):
        hub = ConnectionHub()

        with pytest.raises(KeyError):
            await hub.next_message("ghost")


class TestHubNotifier:
    async def test_show_enqueues_toast(self):
        hub = ConnectionHub()
        await hub.connect(MagicMock(), "client-1", "user-a")
        notifier = HubNotifier(hub, "client-1")

        notifier.show(NotificationSeverity.ERROR, "Connection lost", persistent=True)
        notifier.show("success", "Saved")

        assert await hub.next_message("client-1") == {
            "type": "toast",
            "severity": "error",
            "text": "Connection lost",
            "persistent": True,
        }
        assert (await hub.next_message("client-1"))["severity"] == "success"
