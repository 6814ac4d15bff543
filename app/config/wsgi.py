"""
WSGI config for the chat backend.

Only the REST API works under WSGI; WebSocket connections need the ASGI
entry point in config/asgi.py. Kept for management tooling and for
deployments that split HTTP and WebSocket traffic across servers.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
