"""
Fan-out of chat events through the channel layer.

Groups:
    user_<user id>: every connection of one user (targeted delivery)
    chat_<chat id>: connections subscribed to one chat

Every group message has the shape::

    {"type": "chat.event", "event": <name>, "data": {...}, "exclude_user": <id or None>}

ChatConsumer.chat_event forwards it to the client as
``{"event": <name>, "data": {...}}``, skipping the connection of
``exclude_user``.

``chat.membership_ended`` is server-internal: sent to ``user_<id>`` when the
user leaves or is removed from a chat, it makes their live connection drop
the ``chat_<id>`` group. Nothing is forwarded to the client.

The async ``send_*`` / ``deliver_*`` coroutines are used by the consumer.
The ``broadcast_*`` functions are their synchronous counterparts for REST
views; they build the same payloads and push them through the same
coroutines, so a REST mutation looks the same to connected clients as a
WebSocket one.

Payload builders hit the database and must run in sync context.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from asgiref.sync import async_to_sync, sync_to_async
from channels.layers import get_channel_layer
from django.core.serializers.json import DjangoJSONEncoder

from authentication.serializers import UserSummarySerializer
from chat.apps import get_registry
from chat.events import OutboundEvent
from chat.serializers import MessageSerializer, ReactionSerializer
from chat.services import PresenceService, ReactionService
from chat.tasks import send_offline_notification

if TYPE_CHECKING:
    from authentication.models import User
    from chat.models import Message
    from chat.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

CHAT_EVENT_TYPE = "chat.event"
MEMBERSHIP_ENDED_TYPE = "chat.membership_ended"


def user_group(user_id) -> str:
    return f"user_{user_id}"


def chat_group(chat_id) -> str:
    return f"chat_{chat_id}"


def to_wire(data):
    """Convert a payload to plain JSON types (UUIDs, datetimes -> str)."""
    return json.loads(json.dumps(data, cls=DjangoJSONEncoder))


def build_event(event: str, data: dict, exclude_user=None) -> dict:
    return {
        "type": CHAT_EVENT_TYPE,
        "event": event,
        "data": to_wire(data),
        "exclude_user": str(exclude_user) if exclude_user else None,
    }


# =============================================================================
# Async senders
# =============================================================================


async def send_to_user(user_id, event: str, data: dict) -> None:
    await get_channel_layer().group_send(user_group(user_id), build_event(event, data))


async def send_to_chat(chat_id, event: str, data: dict, exclude_user=None) -> None:
    await get_channel_layer().group_send(
        chat_group(chat_id), build_event(event, data, exclude_user)
    )


async def send_to_chats(chat_ids, event: str, data: dict, exclude_user=None) -> None:
    for chat_id in chat_ids:
        await send_to_chat(chat_id, event, data, exclude_user)


async def send_status_change(user_id, chat_ids, is_online: bool, user_data: dict) -> None:
    """user_status_change to the other members of each chat, once per chat."""
    await send_to_chats(
        chat_ids,
        OutboundEvent.USER_STATUS_CHANGE,
        {"userId": str(user_id), "isOnline": bool(is_online), "user": user_data},
        exclude_user=user_id,
    )


async def send_stopped_typing(chat_id, user_id) -> None:
    await send_to_chat(
        chat_id,
        OutboundEvent.USER_STOPPED_TYPING,
        {"userId": str(user_id), "chatId": chat_id},
        exclude_user=user_id,
    )


# =============================================================================
# Message fan-out
# =============================================================================


@dataclass
class MessageFanout:
    """Everything needed to deliver a new message without touching the DB."""

    chat_id: int
    message_id: int
    sender_id: str
    sender: dict
    message: dict
    member_ids: list[str] = field(default_factory=list)


def prepare_message_fanout(message: Message) -> MessageFanout:
    """Serialize a new message and snapshot the chat's members. Sync only."""
    member_ids = [str(uid) for uid in message.chat.member_ids()]
    return MessageFanout(
        chat_id=message.chat_id,
        message_id=message.pk,
        sender_id=str(message.sender_id),
        sender=to_wire(UserSummarySerializer(message.sender).data),
        message=to_wire(MessageSerializer(message).data),
        member_ids=member_ids,
    )


async def deliver_message(fanout: MessageFanout, registry: ConnectionRegistry) -> None:
    """
    Deliver a new message.

    - message_received to every member, the sender included, through their
      private group so other devices of the sender converge too
    - notification to other members who are connected but not subscribed
      to the chat
    - the offline push task for other members with no connection

    The message is already stored when this runs, so a failure to queue the
    push is logged and does not fail the send.
    """
    payload = {"message": fanout.message, "chatId": fanout.chat_id}
    for member_id in fanout.member_ids:
        await send_to_user(member_id, OutboundEvent.MESSAGE_RECEIVED, payload)

    for member_id in fanout.member_ids:
        if member_id == fanout.sender_id:
            continue
        if registry.lookup(member_id) is None:
            await queue_offline_notification(member_id, fanout)
        elif not registry.is_subscribed(member_id, fanout.chat_id):
            await send_to_user(
                member_id,
                OutboundEvent.NOTIFICATION,
                {
                    "type": "new_message",
                    "chatId": fanout.chat_id,
                    "message": fanout.message,
                    "sender": fanout.sender,
                },
            )


async def queue_offline_notification(member_id: str, fanout: MessageFanout) -> None:
    try:
        await sync_to_async(send_offline_notification.delay)(
            member_id,
            fanout.chat_id,
            fanout.message_id,
            fanout.sender.get("name", ""),
        )
    except Exception:
        logger.exception(
            f"Failed to queue offline notification of message {fanout.message_id} "
            f"for user {member_id}"
        )


async def end_membership(chat_id, user_id) -> None:
    """Make the user's live connection unsubscribe from the chat."""
    await get_channel_layer().group_send(
        user_group(user_id), {"type": MEMBERSHIP_ENDED_TYPE, "chat_id": chat_id}
    )


# =============================================================================
# Payload builders
# =============================================================================


def user_payload(user: User) -> dict:
    return to_wire(UserSummarySerializer(user).data)


def reactions_payload(message_id) -> dict:
    reactions = ReactionSerializer(ReactionService.reactions_for(message_id), many=True).data
    return to_wire({"messageId": message_id, "reactions": reactions})


def edited_payload(message: Message) -> dict:
    return {
        "messageId": message.pk,
        "newContent": message.content,
        "isEdited": message.is_edited,
        "editedAt": message.edited_at,
    }


def deleted_payload(message: Message) -> dict:
    return {"messageId": message.pk, "chatId": message.chat_id}


# =============================================================================
# Sync entry points (REST views)
# =============================================================================


def broadcast_new_message(message: Message, registry: ConnectionRegistry | None = None) -> None:
    if registry is None:
        registry = get_registry()
    async_to_sync(deliver_message)(prepare_message_fanout(message), registry)


def broadcast_stopped_typing(chat_id, user_id) -> None:
    async_to_sync(send_stopped_typing)(chat_id, user_id)


def broadcast_membership_ended(chat_id, user_id) -> None:
    async_to_sync(end_membership)(chat_id, user_id)


def broadcast_reactions(message: Message, event: str) -> None:
    """reaction_added / reaction_removed with the full reaction list."""
    async_to_sync(send_to_chat)(message.chat_id, event, reactions_payload(message.pk))


def broadcast_message_edited(message: Message) -> None:
    async_to_sync(send_to_chat)(
        message.chat_id, OutboundEvent.MESSAGE_EDITED, edited_payload(message)
    )


def broadcast_message_deleted(message: Message) -> None:
    async_to_sync(send_to_chat)(
        message.chat_id, OutboundEvent.MESSAGE_DELETED, deleted_payload(message)
    )


def broadcast_status_change(user: User) -> None:
    """Tell the user's chats about a status change made over REST."""
    chat_ids = PresenceService.chat_ids_for(user.pk)
    async_to_sync(send_status_change)(user.pk, chat_ids, user.is_online, user_payload(user))
    logger.debug(f"Broadcast status of user {user.id} to {len(chat_ids)} chats")
