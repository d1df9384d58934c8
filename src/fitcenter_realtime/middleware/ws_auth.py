"""WebSocket Authentication Middleware.

Validates Supabase access tokens. Projects with a legacy JWT secret sign
tokens with HS256; newer projects publish asymmetric keys at the auth JWKS
endpoint.
"""

from typing import Any
from urllib.parse import parse_qs

import httpx
from fastapi import WebSocket, WebSocketException, status
from jose import JWTError, jwt
from pydantic import BaseModel

from fitcenter_realtime.config import get_settings
from fitcenter_realtime.models import SessionUser
from fitcenter_realtime.observability import get_logger

logger = get_logger(__name__)

AUDIENCE = "authenticated"


class WSTokenPayload(BaseModel):
    """Supabase access token claims."""

    sub: str
    email: str | None = None
    role: str = AUDIENCE
    exp: int
    user_metadata: dict[str, Any] = {}
    app_metadata: dict[str, Any] = {}

    def to_session_user(self) -> SessionUser:
        """Derive the session identity from the claims."""
        name = self.user_metadata.get("name") or self.email or "User"
        role = self.user_metadata.get("role") or self.app_metadata.get("role") or "member"
        return SessionUser(
            id=self.sub,
            name=name,
            email=self.email,
            role=role,
            avatar=self.user_metadata.get("avatar_url") or self.user_metadata.get("avatar"),
        )


class WebSocketAuthenticator:
    """WebSocket connection authenticator."""

    def __init__(self):
        self.settings = get_settings()
        self._jwks_cache: dict | None = None

    async def get_jwks(self) -> dict:
        """Fetch the project's JWKS."""
        if self._jwks_cache:
            return self._jwks_cache

        async with httpx.AsyncClient(verify=True, timeout=10.0) as client:
            response = await client.get(
                self.settings.supabase.jwks_url,
                headers={"apikey": self.settings.supabase.anon_key},
            )
            response.raise_for_status()
            self._jwks_cache = response.json()

            return self._jwks_cache

    def extract_token(self, websocket: WebSocket) -> str | None:
        """Extract token from WebSocket connection.

        Token can be provided via:
        1. Query parameter: ?token=xxx
        2. Sec-WebSocket-Protocol header: bearer, <token>
        """
        # Try query parameter first
        query_string = websocket.scope.get("query_string", b"").decode()
        params = parse_qs(query_string)

        if "token" in params:
            return params["token"][0]

        # Try Sec-WebSocket-Protocol header
        protocols = websocket.headers.get("sec-websocket-protocol", "")
        if protocols.startswith("bearer,"):
            parts = protocols.split(",", 1)
            if len(parts) == 2:
                return parts[1].strip()

        return None

    async def validate_token(self, token: str) -> WSTokenPayload:
        """Validate a Supabase access token."""
        try:
            secret = self.settings.supabase.jwt_secret
            if secret:
                payload = jwt.decode(
                    token,
                    secret,
                    algorithms=["HS256"],
                    audience=AUDIENCE,
                )
                return WSTokenPayload(**payload)

            jwks = await self.get_jwks()

            unverified_header = jwt.get_unverified_header(token)
            kid = unverified_header.get("kid")

            signing_key = None
            for key in jwks.get("keys", []):
                if key.get("kid") == kid:
                    signing_key = key
                    break

            if not signing_key:
                raise WebSocketException(
                    code=status.WS_1008_POLICY_VIOLATION,
                    reason="Invalid token signing key",
                )

            payload = jwt.decode(
                token,
                signing_key,
                algorithms=[signing_key.get("alg", "ES256")],
                audience=AUDIENCE,
            )

            return WSTokenPayload(**payload)

        except JWTError as e:
            logger.warning("WebSocket JWT validation failed", error=str(e))
            raise WebSocketException(
                code=status.WS_1008_POLICY_VIOLATION,
                reason="Invalid or expired token",
            ) from e

    async def authenticate(self, websocket: WebSocket) -> tuple[WSTokenPayload, str]:
        """Authenticate WebSocket connection.

        Returns token payload and raw token if valid, raises
        WebSocketException otherwise.
        """
        token = self.extract_token(websocket)

        if not token:
            logger.warning(
                "WebSocket connection without token",
                client=websocket.client.host if websocket.client else "unknown",
            )
            raise WebSocketException(
                code=status.WS_1008_POLICY_VIOLATION,
                reason="Authentication required",
            )

        payload = await self.validate_token(token)

        logger.info(
            "WebSocket authenticated",
            user_id=payload.sub,
            email=payload.email,
        )

        return payload, token


# Shared instance
ws_authenticator = WebSocketAuthenticator()


async def authenticate_websocket(websocket: WebSocket) -> tuple[WSTokenPayload, str]:
    """Authenticate WebSocket connection before accepting."""
    return await ws_authenticator.authenticate(websocket)
