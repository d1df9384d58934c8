"""User-facing toast sinks."""

from __future__ import annotations

from typing import Protocol

from fitcenter_realtime.models import NotificationSeverity
from fitcenter_realtime.observability import get_logger

logger = get_logger(__name__)


class Notifier(Protocol):
    """Shows a toast to the user.

    Implementations must not block: the realtime transport calls into
    notifiers from its receive loop.
    """

    def show(
        self,
        severity: NotificationSeverity | str,
        text: str,
        *,
        persistent: bool = False,
    ) -> None: ...


class LoggingNotifier:
    """Notifier used when no UI is attached; writes toasts to the log."""

    _LEVELS = {
        NotificationSeverity.INFO.value: "info",
        NotificationSeverity.SUCCESS.value: "info",
        NotificationSeverity.WARNING.value: "warning",
        NotificationSeverity.ERROR.value: "error",
    }

    def show(
        self,
        severity: NotificationSeverity | str,
        text: str,
        *,
        persistent: bool = False,
    ) -> None:
        severity_str = severity.value if hasattr(severity, "value") else str(severity)
        level = self._LEVELS.get(severity_str, "info")
        getattr(logger, level)("Toast", severity=severity_str, text=text, persistent=persistent)
