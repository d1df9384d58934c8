"""Middleware for the realtime service."""

from .ws_auth import (
    WebSocketAuthenticator,
    WSTokenPayload,
    authenticate_websocket,
    ws_authenticator,
)

__all__ = [
    "WSTokenPayload",
    "WebSocketAuthenticator",
    "authenticate_websocket",
    "ws_authenticator",
]
