"""
Chat application configuration.

This app provides the chat system with:
- Direct (1:1) and group chats
- Real-time events over WebSockets (see consumers.py)
- Presence and typing indicators
- Message reactions, read receipts, editing and soft deletion
"""

from django.apps import AppConfig, apps

from chat.registry import ConnectionRegistry


class ChatConfig(AppConfig):
    """
    Configuration for the chat application.

    Owns the process-wide ConnectionRegistry; it starts empty on every
    process start.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"

    def __init__(self, app_name, app_module):
        super().__init__(app_name, app_module)
        self.registry = ConnectionRegistry()


def get_registry() -> ConnectionRegistry:
    """Return the registry held by the installed chat app."""
    return apps.get_app_config("chat").registry
