"""Tests for RealtimeSession."""

import pytest
from fakes import settle, wait_until

from fitcenter_realtime.config import RealtimeSettings
from fitcenter_realtime.models import SessionUser
from fitcenter_realtime.services import RealtimeSession, SessionState

PRESENCE = "workspace_presence"


@pytest.fixture
async def session(service, notifier):
    session = RealtimeSession(
        service,
        notifier=notifier,
        liveness_interval=60.0,
        reinitialize_delay=0.0,
    )
    yield session
    await session.stop()


def topics(client, prefix: str) -> list:
    return [c for c in client.channels if c.topic.startswith(prefix)]


class TestLifecycle:
    """Tests for identity-driven state transitions."""

    async def test_initial_state(self, session):
        assert session.state == SessionState.UNAUTHENTICATED
        assert session.user is None
        assert session.is_connected is False
        assert session.online_users == {}

    async def test_start_opens_all_subscriptions(self, session, service, sample_user):
        await session.set_user(sample_user)

        assert session.state == SessionState.ACTIVE
        assert session.is_connected is True
        assert set(service.registry.names()) == {
            "user_notifications_user-a",
            "task_changes_user-a",
            "announcements_global",
            "schedule_changes_user-a",
            PRESENCE,
        }

    async def test_same_user_is_noop(self, session, fake_client, sample_user):
        await session.set_user(sample_user)
        calls = len(fake_client.subscribe_calls)

        await session.set_user(sample_user)

        assert len(fake_client.subscribe_calls) == calls

    async def test_logout_closes_everything(self, session, service, fake_client, sample_user):
        await session.set_user(sample_user)

        await session.set_user(None)

        assert session.state == SessionState.UNAUTHENTICATED
        assert session.user is None
        assert session.is_connected is False
        assert len(service.registry) == 0
        assert all(c.removed for c in fake_client.channels)

    async def test_stop_twice(self, session):
        await session.stop()
        await session.stop()

        assert session.state == SessionState.UNAUTHENTICATED

    async def test_logout_then_login_leaves_single_presence(
        self, session, fake_client, sample_user
    ):
        await session.set_user(sample_user)
        await session.set_user(None)
        await session.set_user(sample_user)
        await settle()

        presence = fake_client.presence_for(PRESENCE)
        assert len(presence) == 1
        assert next(iter(presence.values()))[0]["user_id"] == "user-a"
        assert len(fake_client.live(PRESENCE)) == 1
        assert sum(len(v) for v in session.online_users.values()) == 1

    async def test_switch_user(self, session, service, fake_client, sample_user):
        other = SessionUser(id="user-b", name="Bob")
        await session.set_user(sample_user)

        await session.set_user(other)
        await settle()

        assert session.user.id == "user-b"
        assert "task_changes_user-a" not in service.registry
        assert "task_changes_user-b" in service.registry
        presence = fake_client.presence_for(PRESENCE)
        assert [entries[0]["user_id"] for entries in presence.values()] == ["user-b"]

    async def test_initialization_failure_is_contained(self, session, fake_client, sample_user):
        fake_client.fail_subscribe = True

        await session.set_user(sample_user)

        assert session.state == SessionState.ACTIVE
        assert session.is_connected is False


class TestRefresh:
    """Tests for connection refresh and the liveness loop."""

    async def test_refresh_when_connected(self, session, fake_client, sample_user):
        await session.set_user(sample_user)

        assert await session.refresh_connection() is True
        assert len(topics(fake_client, "task_changes")) == 1

    async def test_refresh_reinitializes_when_down(self, session, service, fake_client,
                                                   sample_user):
        await session.set_user(sample_user)
        fake_client.set_statuses("connection_test", ["CHANNEL_ERROR"])

        assert await session.refresh_connection() is False

        first, second = topics(fake_client, "task_changes")
        assert first.removed is True
        assert service.registry.get("task_changes_user-a").channel is second
        assert session.state == SessionState.ACTIVE
        assert session.is_connected is True

    async def test_refresh_without_user(self, session, fake_client):
        fake_client.set_statuses("connection_test", ["CHANNEL_ERROR"])

        assert await session.refresh_connection() is False
        assert topics(fake_client, "task_changes") == []

    async def test_liveness_loop_reinitializes(self, service, notifier, fake_client, sample_user):
        session = RealtimeSession(
            service,
            notifier=notifier,
            liveness_interval=0.01,
            reinitialize_delay=0.0,
        )
        await session.set_user(sample_user)
        fake_client.set_statuses("connection_test", ["TIMED_OUT"])

        await wait_until(
            lambda: len(topics(fake_client, "task_changes")) == 2
            and session.state == SessionState.ACTIVE
        )
        await session.stop()

        assert session.state == SessionState.UNAUTHENTICATED
        assert len(service.registry) == 0

    async def test_stop_during_reinitialize_closes_everything(
        self, service, notifier, fake_client, sample_user
    ):
        session = RealtimeSession(
            service,
            notifier=notifier,
            liveness_interval=0.01,
            reinitialize_delay=0.0,
        )
        await session.set_user(sample_user)
        fake_client.block_subscribe("task_changes")
        fake_client.set_statuses("connection_test", ["TIMED_OUT"])

        # the liveness loop is reinitializing and stuck subscribing to tasks
        await wait_until(lambda: len(topics(fake_client, "task_changes")) == 2)
        await session.stop()

        assert session.state == SessionState.UNAUTHENTICATED
        assert service.registry.names() == []
        assert all(c.removed for c in fake_client.channels)

        other = SessionUser(id="user-b", name="Bob")
        fake_client.subscribe_gates.clear()
        await session.set_user(other)
        assert "task_changes_user-a" not in service.registry
        assert "task_changes_user-b" in service.registry
        await session.stop()


class TestFanOut:
    """Tests for notification, row-change and presence fan-out."""

    async def test_notification_callback_and_toast(
        self, session, fake_client, notifier, sample_user, notification_insert
    ):
        received = []
        session.subscribe_to_notifications(received.append)
        await session.set_user(sample_user)

        fake_client.latest("user_notifications_user-a").emit_postgres(
            notification_insert("user-a", type="success", title="T", message="M")
        )

        assert len(received) == 1
        assert received[0].title == "T"
        assert notifier.toasts == [{"severity": "success", "text": "T: M", "persistent": False}]

    async def test_unregister_notification_callback(
        self, session, fake_client, sample_user, notification_insert
    ):
        received = []
        unregister = session.subscribe_to_notifications(received.append)
        await session.set_user(sample_user)

        unregister()
        fake_client.latest("user_notifications_user-a").emit_postgres(
            notification_insert("user-a")
        )

        assert received == []

    async def test_failing_listener_does_not_block_others(
        self, session, fake_client, notifier, sample_user, notification_insert
    ):
        received = []

        def broken(notification):
            raise ValueError("broken listener")

        session.subscribe_to_notifications(broken)
        session.subscribe_to_notifications(received.append)
        await session.set_user(sample_user)

        fake_client.latest("user_notifications_user-a").emit_postgres(
            notification_insert("user-a", type="warning")
        )

        assert len(received) == 1
        assert notifier.toasts[0]["severity"] == "warning"

    async def test_listeners_survive_logout(
        self, session, fake_client, sample_user, notification_insert
    ):
        received = []
        session.subscribe_to_notifications(received.append)
        await session.set_user(sample_user)
        await session.set_user(None)
        await session.set_user(sample_user)

        fake_client.latest("user_notifications_user-a").emit_postgres(
            notification_insert("user-a")
        )

        assert len(received) == 1

    async def test_row_change_hooks(self, service, notifier, fake_client, sample_user):
        tasks, schedules = [], []
        session = RealtimeSession(
            service,
            notifier=notifier,
            on_task_change=tasks.append,
            on_schedule_change=schedules.append,
        )
        await session.set_user(sample_user)

        fake_client.latest("task_changes_user-a").emit_postgres(
            {"data": {"type": "UPDATE", "table": "tasks", "record": {"id": "t1"}}}
        )
        fake_client.latest("schedule_changes_user-a").emit_postgres(
            {"data": {"type": "INSERT", "table": "schedules", "record": {"id": "s1"}}}
        )
        await session.stop()

        assert [e.new for e in tasks] == [{"id": "t1"}]
        assert [e.table for e in schedules] == ["schedules"]

    async def test_presence_hook(self, service, notifier, fake_client, sample_user):
        states = []
        session = RealtimeSession(service, notifier=notifier, on_presence_change=states.append)
        await session.set_user(sample_user)
        await settle()

        fake_client.join_remote(PRESENCE, {"user_id": "user-b", "name": "Bob", "role": "member"})
        await session.stop()

        assert len(states[-1]) == 2
        assert session.online_users == {}

    async def test_chat_channel_closed_with_session(self, session, service, fake_client,
                                                    sample_user):
        messages = []
        await session.set_user(sample_user)
        await session.subscribe_to_chat_channel("chat_room_1", messages.append)

        await session.send_message("chat_room_1", session.chat_event, {"text": "hi"})
        fake_client.latest("chat_room_1").emit_broadcast("message", {"text": "yo"})
        await session.set_user(None)

        assert fake_client.latest("chat_room_1").sent == [("message", {"text": "hi"})]
        assert messages == [{"text": "yo"}]
        assert fake_client.latest("chat_room_1").removed is True

    async def test_debug_status(self, session, sample_user):
        await session.set_user(sample_user)
        await settle()

        status = session.debug_status()

        assert status["state"] == "active"
        assert status["user_id"] == "user-a"
        assert status["connection_status"] == "connected"
        assert status["online_users_count"] == 1
        assert status["channels"]["task_changes_user-a"] == "subscribed"


def test_from_settings(service):
    settings = RealtimeSettings(presence_channel="gym_floor", chat_event="chat")

    session = RealtimeSession.from_settings(service, settings)

    assert session.presence_channel == "gym_floor"
    assert session.chat_event == "chat"
    assert session.liveness_interval == 30.0
