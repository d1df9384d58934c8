"""Channel Registry for active realtime channels.

The registry is the only component allowed to remove a channel from the
transport. Every mutation goes through register/unregister so that replacing
a channel is atomic from the caller's point of view.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from fitcenter_realtime.models import ChannelKind, ChannelStatus
from fitcenter_realtime.observability import get_logger

logger = get_logger(__name__)


class ChannelRemover(Protocol):
    """The part of the realtime client the registry needs."""

    async def remove_channel(self, channel: Any) -> None: ...


@dataclass(eq=False)
class ChannelHandle:
    """A registered realtime channel."""

    name: str
    kind: ChannelKind
    channel: Any
    status: ChannelStatus = ChannelStatus.CONNECTING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_live(self) -> bool:
        return self.status in (ChannelStatus.CONNECTING, ChannelStatus.SUBSCRIBED)


class ChannelRegistry:
    """Tracks active channel handles keyed by logical channel name."""

    def __init__(self, client: ChannelRemover, teardown_timeout: float = 5.0):
        """Initialize the registry.

        Args:
            client: Realtime client used for transport-level removal
            teardown_timeout: Seconds a single channel removal may take
        """
        self._client = client
        self.teardown_timeout = teardown_timeout
        self._handles: dict[str, ChannelHandle] = {}
        self._lock = asyncio.Lock()

    async def register(self, handle: ChannelHandle) -> None:
        """Install a handle, tearing down any handle already under its name.

        Args:
            handle: Handle to install
        """
        async with self._lock:
            previous = self._handles.pop(handle.name, None)
            if previous is not None and previous is not handle:
                logger.info("Replacing channel", channel=handle.name)
                await self._teardown(previous)
            self._handles[handle.name] = handle

        logger.debug("Channel registered", channel=handle.name, kind=handle.kind.value)

    async def unregister(self, name: str, handle: ChannelHandle | None = None) -> bool:
        """Remove a channel by name.

        Args:
            name: Channel name
            handle: Only remove if this exact handle is the registered one

        Returns:
            True if a handle was removed
        """
        async with self._lock:
            return await self._remove(name, handle)

    async def discard(self, handle: ChannelHandle) -> bool:
        """Tear down a handle whether or not it was ever installed.

        A handle whose register() call was cancelled never reaches the
        index but its channel already exists on the client.

        Returns:
            True if the channel was torn down by this call
        """
        async with self._lock:
            if self._handles.get(handle.name) is handle:
                return await self._remove(handle.name, handle)
            if handle.status == ChannelStatus.CLOSED:
                return False
            await self._teardown(handle)
            return True

    async def unregister_all(self) -> int:
        """Remove every registered channel.

        Returns:
            Number of channels removed
        """
        async with self._lock:
            names = list(self._handles)
            removed = 0
            for name in names:
                if await self._remove(name):
                    removed += 1

        logger.info("All channels unregistered", removed=removed)
        return removed

    def get(self, name: str) -> ChannelHandle | None:
        """Get the handle registered under a name."""
        return self._handles.get(name)

    def names(self) -> list[str]:
        """Get all registered channel names."""
        return list(self._handles)

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, name: object) -> bool:
        return name in self._handles

    async def _remove(self, name: str, handle: ChannelHandle | None = None) -> bool:
        current = self._handles.get(name)
        if current is None:
            return False
        if handle is not None and current is not handle:
            return False

        # Drop from the index before touching the transport
        del self._handles[name]
        await self._teardown(current)
        return True

    async def _teardown(self, handle: ChannelHandle) -> None:
        """Remove a channel from the transport, logging any failure."""
        handle.status = ChannelStatus.CLOSED
        try:
            await asyncio.wait_for(
                self._client.remove_channel(handle.channel),
                timeout=self.teardown_timeout,
            )
            logger.debug("Channel removed", channel=handle.name)
        except TimeoutError:
            logger.error(
                "Channel removal timed out",
                channel=handle.name,
                timeout_seconds=self.teardown_timeout,
            )
        except Exception as e:
            logger.error(
                "Channel removal failed",
                channel=handle.name,
                error=str(e),
            )
