"""Tests for settings."""

import pytest

from fitcenter_realtime.config import (
    Environment,
    RealtimeSettings,
    Settings,
    SupabaseSettings,
)


class TestSupabaseSettings:
    def test_realtime_url_https(self):
        settings = SupabaseSettings(url="https://abc.supabase.co/", anon_key="anon")

        assert settings.realtime_url == "wss://abc.supabase.co/realtime/v1"
        assert settings.jwks_url == "https://abc.supabase.co/auth/v1/.well-known/jwks.json"
        assert settings.is_configured

    def test_realtime_url_http(self):
        settings = SupabaseSettings(url="http://localhost:54321", anon_key="anon")

        assert settings.realtime_url == "ws://localhost:54321/realtime/v1"

    def test_not_configured(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)

        assert not SupabaseSettings().is_configured


class TestRealtimeSettings:
    def test_defaults(self):
        settings = RealtimeSettings()

        assert settings.max_reconnect_attempts == 5
        assert settings.reconnect_base_delay_seconds == 1.0
        assert settings.reconnect_max_delay_seconds == 30.0
        assert settings.heartbeat_timeout_seconds == 5.0
        assert settings.liveness_interval_seconds == 30.0
        assert settings.presence_channel == "workspace_presence"
        assert settings.schedule_filter_column is None

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("REALTIME_SCHEDULE_FILTER_COLUMN", "trainer_id")
        monkeypatch.setenv("REALTIME_LIVENESS_INTERVAL_SECONDS", "10")

        settings = RealtimeSettings()

        assert settings.schedule_filter_column == "trainer_id"
        assert settings.liveness_interval_seconds == 10.0

    def test_counters_at_least_one(self):
        settings = RealtimeSettings(max_reconnect_attempts=0, client_queue_size=-3)

        assert settings.max_reconnect_attempts == 1
        assert settings.client_queue_size == 1


class TestSettings:
    def test_environment_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("ENV", "production")

        settings = Settings()

        assert settings.environment == Environment.PRODUCTION
        assert settings.is_production
        assert not settings.is_development

    def test_nested_sections(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("SUPABASE_URL", "https://xyz.supabase.co")
        monkeypatch.setenv("REALTIME_MAX_RECONNECT_ATTEMPTS", "7")

        settings = Settings()

        assert settings.supabase.url == "https://xyz.supabase.co"
        assert settings.realtime.max_reconnect_attempts == 7
