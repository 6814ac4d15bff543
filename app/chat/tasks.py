"""
Celery tasks for chat app.

This module defines async tasks for:
- Offline push notifications for new messages

Related files:
    - broadcast.py: Queues the task for members with no live connection

Usage:
    from chat.tasks import send_offline_notification

    send_offline_notification.delay(user_id, chat_id, message_id, sender_name)
"""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def send_offline_notification(
    self, user_id: str, chat_id: int, message_id: int, sender_name: str = ""
) -> bool:
    """
    Notify a member who was offline when a message arrived.

    Push delivery is not wired to a provider; the notification is logged.

    Args:
        user_id: Recipient
        chat_id: Chat the message was sent to
        message_id: The new message
        sender_name: Display name of the sender

    Returns:
        True once the notification has been handed off
    """
    logger.info(
        f"User {user_id} is offline - send push notification "
        f"(chat {chat_id}, message {message_id}, from {sender_name or 'unknown'})"
    )
    return True
