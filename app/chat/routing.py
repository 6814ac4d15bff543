"""
WebSocket URL routing for the chat application.

URL Patterns:
    ws/chat/ - Single per-user connection carrying events for all chats

Authentication:
    JWTAuthMiddleware (chat/middleware.py) resolves the bearer token from
    ``?token=``, the Authorization header or a ``bearer.<token>``
    subprotocol and attaches the user to the consumer's scope.
"""

from django.urls import path

from chat import consumers
from chat.apps import get_registry

websocket_urlpatterns = [
    path(
        "ws/chat/",
        consumers.ChatConsumer.as_asgi(registry=get_registry()),
    ),
]
