"""Authenticated session user."""

from pydantic import Field

from .base import RealtimeBaseModel


class SessionUser(RealtimeBaseModel):
    """Identity driving a realtime session."""

    id: str
    name: str = "User"
    email: str | None = None
    role: str = "member"
    avatar: str | None = Field(default=None)

    def presence_info(self) -> dict[str, str | None]:
        """Metadata announced on the presence channel."""
        return {"name": self.name, "role": self.role, "avatar": self.avatar}
