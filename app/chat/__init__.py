"""
Chat app for real-time messaging.

This app handles:
- Direct and group chats
- Message sending, history, editing, deletion and search
- WebSocket real-time events (messages, typing, presence, reactions)
- Read receipts and unread counters

Related apps:
    - authentication: User model, JWT issuing
    - core: ServiceResult, response envelope, soft delete

WebSocket Support:
    Uses Django Channels for real-time communication.
    See consumers.py for the event handlers.
    See routing.py for WebSocket URL patterns.

Usage:
    from chat.services import ChatService, MessageService

    result = ChatService.access_direct_chat(user, other_user.id)
    chat = result.data

    result = MessageService.send_message(
        sender=user,
        chat_id=chat.id,
        content="Hello!",
    )
"""
