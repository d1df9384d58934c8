"""User notification models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from .base import RealtimeBaseModel


class NotificationSeverity(str, Enum):
    """Severity of a notification, also used for toasts."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class NotificationPayload(RealtimeBaseModel):
    """A notification row delivered to its recipient."""

    id: str
    user_id: str
    type: NotificationSeverity = NotificationSeverity.INFO
    title: str = ""
    message: str = ""
    link: str | None = None
    is_read: bool = False
    created_at: datetime | None = None
    metadata: dict[str, Any] | None = Field(default=None)

    @property
    def toast_text(self) -> str:
        """Text shown in the user-facing toast."""
        return f"{self.title}: {self.message}"
