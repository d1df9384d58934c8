"""WebSocket endpoint serving one realtime session per UI client."""

from __future__ import annotations

import asyncio
import contextlib
import json
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, WebSocketException, status
from starlette.websockets import WebSocketState

from fitcenter_realtime.config import get_settings
from fitcenter_realtime.models import NotificationPayload, PresenceState, RowChangeEvent
from fitcenter_realtime.observability import SessionContextManager, get_logger
from fitcenter_realtime.services.hub import ConnectionHub, HubNotifier, close_session
from fitcenter_realtime.services.realtime import RealtimeService
from fitcenter_realtime.services.session import RealtimeSession

from ..middleware.ws_auth import authenticate_websocket

router = APIRouter()
logger = get_logger(__name__)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket connection endpoint with session lifecycle management.

    Protocol:
    1. Client connects with its Supabase access token
    2. Server validates the token before accepting
    3. Server opens a realtime client and session for the user
    4. Notifications, toasts, presence and row changes are pushed
    5. Client may send broadcasts, join chat channels and refresh
    """
    settings = get_settings()
    hub: ConnectionHub = websocket.app.state.hub
    client_factory = websocket.app.state.client_factory

    # Authenticate before accepting connection
    try:
        claims, token = await authenticate_websocket(websocket)
    except WebSocketException as e:
        await websocket.close(code=e.code, reason=e.reason)
        return

    user = claims.to_session_user()
    client_id = str(uuid4())

    try:
        client = await client_factory(token)
    except Exception as e:
        logger.error("Realtime backend connection failed", user_id=user.id, error=str(e))
        await websocket.close(
            code=status.WS_1011_INTERNAL_ERROR,
            reason="Realtime backend unavailable",
        )
        return

    await websocket.accept()
    await hub.connect(websocket, client_id, user.id)

    notifier = HubNotifier(hub, client_id)
    service = RealtimeService.from_settings(client, settings.realtime, notifier=notifier)
    session = RealtimeSession.from_settings(
        service,
        settings.realtime,
        notifier=notifier,
        on_task_change=lambda e: hub.enqueue(client_id, _row_change_message("tasks", e)),
        on_announcement_change=lambda e: hub.enqueue(
            client_id, _row_change_message("announcements", e)
        ),
        on_schedule_change=lambda e: hub.enqueue(client_id, _row_change_message("schedules", e)),
        on_presence_change=lambda s: hub.enqueue(client_id, _presence_message(s)),
    )
    session.subscribe_to_notifications(
        lambda n: hub.enqueue(client_id, _notification_message(n))
    )
    hub.attach_session(client_id, session, client)

    # Start message sender task
    sender_task = asyncio.create_task(_message_sender(websocket, hub, client_id))

    async with SessionContextManager(client_id=client_id, user_id=user.id):
        logger.info("WebSocket client connected", client_id=client_id, user_id=user.id)
        try:
            hub.enqueue(client_id, {
                "type": "connected",
                "client_id": client_id,
                "user_id": user.id,
                "server_time": datetime.now(UTC).isoformat(),
            })

            await session.set_user(user)
            hub.enqueue(client_id, {
                "type": "connection_status",
                "connected": session.is_connected,
            })

            # Message handling loop
            while True:
                try:
                    data = await websocket.receive_text()
                    message = json.loads(data)
                    if not isinstance(message, dict):
                        hub.enqueue(client_id, {
                            "type": "error",
                            "code": "INVALID_MESSAGE",
                            "message": "Message must be a JSON object",
                        })
                        continue
                    await handle_message(client_id, message, hub, session)
                except json.JSONDecodeError:
                    hub.enqueue(client_id, {
                        "type": "error",
                        "code": "INVALID_MESSAGE",
                        "message": "Invalid JSON message",
                    })

        except WebSocketDisconnect:
            logger.info("WebSocket client disconnected", client_id=client_id)
        except Exception as e:
            logger.error("WebSocket error", client_id=client_id, error=str(e))
        finally:
            # Cleanup
            sender_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sender_task

            await close_session(session, client)
            await hub.disconnect(client_id)


async def _message_sender(websocket: WebSocket, hub: ConnectionHub, client_id: str) -> None:
    """Background task sending queued messages to the client."""
    while True:
        try:
            if websocket.client_state != WebSocketState.CONNECTED:
                break

            message = await hub.next_message(client_id)
            await websocket.send_json(message)

        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Message sender error", client_id=client_id, error=str(e))
            break


async def handle_message(
    client_id: str,
    message: dict,
    hub: ConnectionHub,
    session: RealtimeSession,
) -> None:
    """Handle incoming WebSocket message.

    Message types:
    - send: Broadcast ``payload`` as ``event`` on an open ``channel``
    - chat_subscribe: Listen to chat messages on ``channel``
    - refresh: Probe the connection, reinitializing if it is down
    - status: Report the session state
    - ping: Client ping

    Args:
        client_id: Client identifier
        message: Received message
        hub: Connection hub
        session: The client's realtime session
    """
    msg_type = message.get("type")

    if msg_type == "send":
        await session.send_message(
            message.get("channel", ""),
            message.get("event", session.chat_event),
            message.get("payload", {}),
        )

    elif msg_type == "chat_subscribe":
        channel = message.get("channel")
        if not channel:
            hub.enqueue(client_id, {
                "type": "error",
                "code": "MISSING_CHANNEL",
                "message": "chat_subscribe requires a channel",
            })
            return

        await session.subscribe_to_chat_channel(
            channel,
            lambda payload: hub.enqueue(client_id, {
                "type": "broadcast",
                "channel": channel,
                "payload": payload,
            }),
        )
        hub.enqueue(client_id, {"type": "chat_subscribed", "channel": channel})

    elif msg_type == "refresh":
        connected = await session.refresh_connection()
        hub.enqueue(client_id, {"type": "connection_status", "connected": connected})

    elif msg_type == "status":
        hub.enqueue(client_id, {"type": "status", **session.debug_status()})

    elif msg_type == "ping":
        hub.enqueue(client_id, {
            "type": "pong",
            "timestamp": message.get("timestamp"),
            "server_time": datetime.now(UTC).isoformat(),
        })

    else:
        hub.enqueue(client_id, {
            "type": "error",
            "code": "UNKNOWN_MESSAGE_TYPE",
            "message": f"Unknown message type: {msg_type}",
        })


def _notification_message(notification: NotificationPayload) -> dict[str, Any]:
    return {"type": "notification", "notification": notification.model_dump(mode="json")}


def _row_change_message(source: str, event: RowChangeEvent) -> dict[str, Any]:
    return {
        "type": "row_change",
        "source": source,
        "event": event.model_dump(mode="json", by_alias=True),
    }


def _presence_message(state: PresenceState) -> dict[str, Any]:
    return {
        "type": "presence",
        "online_users": {
            key: [entry.model_dump(mode="json") for entry in entries]
            for key, entries in state.items()
        },
        "count": sum(len(entries) for entries in state.values()),
    }
