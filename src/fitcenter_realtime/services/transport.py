"""Supabase realtime client construction."""

from __future__ import annotations

import time

from realtime import AsyncRealtimeClient

from fitcenter_realtime.config import SupabaseSettings
from fitcenter_realtime.observability import (
    get_logger,
    log_external_call_end,
    log_external_call_start,
)

logger = get_logger(__name__)


async def create_realtime_client(
    settings: SupabaseSettings,
    access_token: str | None = None,
) -> AsyncRealtimeClient:
    """Create and connect a realtime client.

    Args:
        settings: Supabase project settings
        access_token: The user's JWT; row-level security applies to it

    Returns:
        Connected AsyncRealtimeClient

    Raises:
        ValueError: If the Supabase URL or anon key is missing
    """
    if not settings.is_configured:
        raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")

    client = AsyncRealtimeClient(
        settings.realtime_url,
        token=settings.anon_key,
        # Socket reconnects stay with the client; channel retries live in RealtimeService
        auto_reconnect=True,
    )

    start = time.perf_counter()
    log_external_call_start(logger, "supabase-realtime", "connect")
    try:
        await client.connect()
        if access_token:
            await client.set_auth(access_token)
    except Exception as e:
        log_external_call_end(
            logger,
            "supabase-realtime",
            "connect",
            success=False,
            duration_ms=(time.perf_counter() - start) * 1000,
            error=str(e),
        )
        raise

    log_external_call_end(
        logger,
        "supabase-realtime",
        "connect",
        success=True,
        duration_ms=(time.perf_counter() - start) * 1000,
    )
    return client


async def close_realtime_client(client: AsyncRealtimeClient) -> None:
    """Close the socket, logging instead of raising."""
    try:
        await client.close()
    except Exception as e:
        logger.warning("Realtime client close failed", error=str(e))
