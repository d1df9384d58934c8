"""Pytest configuration and shared fixtures."""

import os
from collections.abc import Callable
from typing import Any
from uuid import uuid4

import pytest

# Set test environment before importing settings
os.environ["ENV"] = "development"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_FORMAT"] = "text"

from fakes import FakeRealtimeClient, RecordingNotifier  # noqa: E402
from fitcenter_realtime.models import SessionUser  # noqa: E402
from fitcenter_realtime.services import ReconnectPolicy, RealtimeService  # noqa: E402


@pytest.fixture
def fake_client() -> FakeRealtimeClient:
    return FakeRealtimeClient()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def fast_policy() -> ReconnectPolicy:
    return ReconnectPolicy(max_attempts=3, base_delay=0.001, max_delay=0.004)


@pytest.fixture
def service(fake_client, notifier, fast_policy) -> RealtimeService:
    return RealtimeService(
        fake_client,
        policy=fast_policy,
        notifier=notifier,
        heartbeat_timeout=0.05,
        teardown_timeout=0.5,
    )


@pytest.fixture
def sample_user() -> SessionUser:
    return SessionUser(id="user-a", name="Alice Trainer", email="alice@example.com", role="trainer")


@pytest.fixture
def notification_insert() -> Callable[..., dict[str, Any]]:
    """Build a nested postgres_changes INSERT payload for notifications."""

    def build(user_id: str, **fields: Any) -> dict[str, Any]:
        record = {
            "id": str(uuid4()),
            "user_id": user_id,
            "type": "info",
            "title": "Title",
            "message": "Message",
            "is_read": False,
            "created_at": "2026-10-19T09:00:00+00:00",
            **fields,
        }
        return {
            "ids": [1],
            "data": {
                "type": "INSERT",
                "table": "notifications",
                "schema": "public",
                "record": record,
                "old_record": {},
                "commit_timestamp": "2026-10-19T09:00:00Z",
            },
        }

    return build


# =============================================================================
# Markers
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line(
        "markers", "integration: Integration tests (require external services)"
    )
    config.addinivalue_line("markers", "slow: Slow tests")
