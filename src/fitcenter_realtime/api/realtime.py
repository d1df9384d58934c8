"""Realtime status API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from fitcenter_realtime.services.session import SessionState

router = APIRouter()


class RealtimeStatus(BaseModel):
    """Realtime service status."""

    connected_clients: int
    active_sessions: int
    notifications_delivered: int
    messages_dropped: int


@router.get(
    "/realtime/status",
    response_model=RealtimeStatus,
    summary="Get realtime service status",
    description="Returns current status of the realtime service.",
)
async def get_status(request: Request):
    """Get realtime service status."""
    hub = request.app.state.hub
    sessions = hub.get_sessions().values()

    return RealtimeStatus(
        connected_clients=hub.get_client_count(),
        active_sessions=sum(1 for s in sessions if s.state == SessionState.ACTIVE),
        notifications_delivered=hub.notifications_delivered,
        messages_dropped=hub.messages_dropped,
    )


@router.get(
    "/realtime/sessions",
    summary="List realtime sessions",
    description="Returns the realtime session of every connected client.",
)
async def list_sessions(request: Request):
    """List connected clients with their session state."""
    hub = request.app.state.hub
    clients = hub.get_clients()

    sessions = []
    for client_id, session in hub.get_sessions().items():
        sessions.append({
            "client_id": client_id,
            "connected_at": clients.get(client_id, {}).get("connected_at"),
            **session.debug_status(),
        })

    return {"sessions": sessions, "total": len(sessions)}
