"""
ASGI config for the chat backend.

This file exposes the ASGI callable as a module-level variable named
`application`. Uvicorn serves it:

    uvicorn config.asgi:application --host 0.0.0.0 --port 8000

This configuration supports:
- HTTP requests via Django (REST API, admin, docs)
- WebSocket connections via Django Channels (real-time chat events)

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/asgi/
"""

import os

from django.core.asgi import get_asgi_application

# Set the default Django settings module for the ASGI application
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Initialize Django ASGI application early to ensure settings are loaded
# before importing any models or other Django components
django_asgi_app = get_asgi_application()

# Import Channels components after Django is initialized
from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.security.websocket import AllowedHostsOriginValidator  # noqa: E402

from chat.middleware import JWTAuthMiddleware  # noqa: E402
from chat.routing import websocket_urlpatterns  # noqa: E402

# ASGI application that routes HTTP and WebSocket protocols
application = ProtocolTypeRouter(
    {
        # HTTP requests are handled by Django's ASGI application
        "http": django_asgi_app,
        # WebSocket connections are routed through:
        # 1. AllowedHostsOriginValidator - ensures origin matches ALLOWED_HOSTS
        # 2. JWTAuthMiddleware - resolves the bearer token to a user
        # 3. URLRouter - routes to the chat consumer
        "websocket": AllowedHostsOriginValidator(
            JWTAuthMiddleware(URLRouter(websocket_urlpatterns))
        ),
    }
)
