"""
WebSocket authentication middleware.

Provides JWT authentication for WebSocket connections using simplejwt
access tokens.

Related files:
    - routing.py: WebSocket URL patterns
    - consumers.py: WebSocket handlers
    - config/asgi.py: ASGI configuration

Token Passing Methods (in order of precedence):
    1. Query string: ws://host/ws/chat/?token=<jwt_token>
    2. Header: Authorization: Bearer <jwt_token>
    3. Subprotocol: Sec-WebSocket-Protocol: bearer.<jwt_token>

The middleware never rejects a handshake itself. On failure it attaches
AnonymousUser plus ``scope["auth_error"]`` describing the problem, and the
consumer reports it to the client before closing with code 4001.

Usage in config/asgi.py:
    from chat.middleware import JWTAuthMiddleware

    application = ProtocolTypeRouter({
        "websocket": JWTAuthMiddleware(
            URLRouter(websocket_urlpatterns)
        ),
    })
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

from authentication.models import User
from core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

SUBPROTOCOL_PREFIX = "bearer."

NO_TOKEN = "Authentication error: No token provided"
INVALID_TOKEN = "Authentication error: Invalid token"
USER_NOT_FOUND = "Authentication error: User not found"


class WebSocketAuthError(AuthenticationError):
    """Handshake credential could not be resolved to an active user."""


def get_token_from_scope(scope) -> str | None:
    """Extract the bearer token from query string, header or subprotocol."""
    query_string = scope.get("query_string", b"").decode()
    token_list = parse_qs(query_string).get("token", [])
    if token_list and token_list[0]:
        return token_list[0]

    for name, value in scope.get("headers", []):
        if name.lower() == b"authorization":
            parts = value.decode().split()
            if len(parts) == 2 and parts[0].lower() == "bearer":
                return parts[1]

    for subprotocol in scope.get("subprotocols", []):
        if subprotocol.startswith(SUBPROTOCOL_PREFIX):
            return subprotocol[len(SUBPROTOCOL_PREFIX):]

    return None


@database_sync_to_async
def get_user_for_token(token: str) -> User:
    """
    Validate an access token and load its user.

    Raises:
        WebSocketAuthError: Token invalid/expired, or user missing/inactive
    """
    try:
        access_token = AccessToken(token)
        user_id = access_token[api_settings.USER_ID_CLAIM]
    except (TokenError, KeyError) as e:
        logger.warning(f"Invalid JWT on WebSocket handshake: {e}")
        raise WebSocketAuthError(INVALID_TOKEN) from e

    user = User.objects.filter(pk=user_id, is_active=True).first()
    if user is None:
        logger.warning(f"WebSocket token for unknown or inactive user {user_id}")
        raise WebSocketAuthError(USER_NOT_FOUND)
    return user


class JWTAuthMiddleware(BaseMiddleware):
    """
    JWT authentication middleware for WebSocket connections.

    Resolves the token to a user once per connection and attaches it as
    ``scope["user"]``.
    """

    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        token = get_token_from_scope(scope)

        if not token:
            scope["user"] = AnonymousUser()
            scope["auth_error"] = NO_TOKEN
        else:
            try:
                scope["user"] = await get_user_for_token(token)
            except WebSocketAuthError as e:
                scope["user"] = AnonymousUser()
                scope["auth_error"] = e.message

        return await super().__call__(scope, receive, send)
