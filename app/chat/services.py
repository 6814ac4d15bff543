"""
Chat services.

This module provides the business logic shared by the REST views and the
WebSocket consumer:
- ChatService: direct/group chat lifecycle, membership, unread counters
- MessageService: send, history, search, edit, delete, read receipts
- ReactionService: one reaction per (message, user)
- TypingService: membership-checked access to the typing store
- PresenceService: connect/disconnect presence transitions

Every method re-checks membership itself; a connection having been
authenticated is not proof that the user may act on a given chat.

Related files:
    - models.py: Chat, ChatMembership, Message, ...
    - broadcast.py: Fan-out of the resulting events
    - typing.py: TypingIndicatorStore

Usage:
    from chat.services import MessageService

    result = MessageService.send_message(sender=user, chat_id=chat.id, content="hi")
    if result.success:
        message = result.data.message
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING
from urllib.parse import quote

from django.conf import settings
from django.db import IntegrityError
from django.db.models import F
from django.utils import timezone

from authentication.models import User
from chat.constants import CHAT_CONFIG, MESSAGE_CONFIG
from chat.models import (
    Chat,
    ChatMembership,
    DirectChatPair,
    Message,
    MessageReaction,
    MessageReadReceipt,
    MessageType,
)
from chat.typing import TypingIndicatorStore
from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from django.db.models import QuerySet


NOT_MEMBER_MESSAGE = "You are not a member of this chat"


@dataclass
class SentMessage:
    """Result of a send: the stored message and whether a typing entry was cleared."""

    message: Message
    stopped_typing: bool = False


def _normalize_ids(ids) -> list[str]:
    """Deduplicate ids as strings, keeping first-seen order."""
    seen: dict[str, None] = {}
    for value in ids or []:
        seen.setdefault(str(value), None)
    return list(seen)


def _is_uuid(value) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class ChatService(BaseService):
    """
    Chat lifecycle and membership.

    Methods:
        chats_for_user: Chats of a user, most recently active first
        get_member_chat: Chat lookup that requires membership
        access_direct_chat: Return or lazily create the direct chat of a pair
        create_group: Create a group with the creator as admin
        rename_group / add_member / remove_member: Admin-only group changes
        leave_group: Leave, transferring admin or deleting the empty group
        delete_chat: Delete a chat and its messages
        mark_read: Reset the caller's unread counter
    """

    @staticmethod
    def chats_for_user(user: User) -> QuerySet[Chat]:
        return (
            Chat.objects.for_user(user)
            .select_related(
                "admin",
                "latest_message__sender",
                "latest_message__reply_to__sender",
            )
            .prefetch_related(
                "memberships__user",
                "latest_message__reactions__user",
                "latest_message__read_receipts",
            )
            .order_by("-updated_at", "-id")
        )

    @staticmethod
    def with_members(chat_id) -> Chat:
        """Reload a chat with what ChatSerializer reads."""
        return (
            Chat.objects.select_related("admin", "latest_message__sender")
            .prefetch_related("memberships__user")
            .get(pk=chat_id)
        )

    @classmethod
    def get_member_chat(
        cls, chat_id, user: User, not_member_message: str = NOT_MEMBER_MESSAGE
    ) -> ServiceResult[Chat]:
        """
        Return the chat if ``user`` is a member.

        Returns:
            ServiceResult with the chat, or CHAT_NOT_FOUND / NOT_MEMBER
        """
        chat = Chat.objects.filter(pk=chat_id).first()
        if chat is None:
            return ServiceResult.failure("Chat not found", error_code="CHAT_NOT_FOUND")
        if not chat.is_member(user):
            return ServiceResult.failure(not_member_message, error_code="NOT_MEMBER")
        return ServiceResult.success(chat)

    @classmethod
    def _get_admin_group(cls, chat_id, user: User) -> ServiceResult[Chat]:
        chat = Chat.objects.filter(pk=chat_id).first()
        if chat is None:
            return ServiceResult.failure("Chat not found", error_code="CHAT_NOT_FOUND")
        if not chat.is_group:
            return ServiceResult.failure(
                "This is not a group chat", error_code="NOT_GROUP_CHAT"
            )
        if chat.admin_id != user.pk:
            return ServiceResult.failure(
                "Only group admin can perform this action", error_code="NOT_ADMIN"
            )
        return ServiceResult.success(chat)

    @classmethod
    def access_direct_chat(cls, user: User, other_user_id) -> ServiceResult[Chat]:
        """
        Return the direct chat between ``user`` and ``other_user_id``,
        creating it on first contact.

        Idempotent in either direction: the pair is stored in canonical
        order behind a unique constraint, so two simultaneous first
        contacts end up with the same chat.
        """
        if not other_user_id:
            return ServiceResult.failure(
                "UserId parameter is required", error_code="USER_ID_REQUIRED"
            )
        if str(other_user_id) == str(user.pk):
            return ServiceResult.failure(
                "Cannot create chat with yourself", error_code="CANNOT_CHAT_WITH_SELF"
            )

        other = (
            User.objects.filter(pk=other_user_id, is_active=True).first()
            if _is_uuid(other_user_id)
            else None
        )
        if other is None:
            return ServiceResult.failure("User not found", error_code="USER_NOT_FOUND")

        lower, higher = DirectChatPair.canonical(user.pk, other.pk)
        pair = DirectChatPair.objects.filter(user_lower_id=lower, user_higher_id=higher).first()
        if pair is not None:
            return ServiceResult.success(pair.chat)

        try:
            with cls.atomic():
                chat = Chat.objects.create(is_group=False)
                ChatMembership.objects.create(chat=chat, user=user)
                ChatMembership.objects.create(chat=chat, user=other)
                DirectChatPair.objects.create(
                    chat=chat, user_lower_id=lower, user_higher_id=higher
                )
        except IntegrityError:
            # Lost the race against the other user's request
            pair = DirectChatPair.objects.select_related("chat").get(
                user_lower_id=lower, user_higher_id=higher
            )
            return ServiceResult.success(pair.chat)

        cls.get_logger().info(f"Created direct chat {chat.id} between {user.id} and {other.id}")
        return ServiceResult.success(chat)

    @classmethod
    def create_group(
        cls, creator: User, user_ids, name: str, description: str = ""
    ) -> ServiceResult[Chat]:
        """
        Create a group chat.

        The creator becomes admin and first member, followed by the given
        users in order. Duplicate ids and the creator's own id are ignored.
        """
        name = (name or "").strip()
        if not name:
            return ServiceResult.failure(
                "Group chat name is required", error_code="NAME_REQUIRED"
            )

        others = [uid for uid in _normalize_ids(user_ids) if uid != str(creator.pk)]
        if len(others) < CHAT_CONFIG.MIN_GROUP_OTHER_MEMBERS:
            return ServiceResult.failure(
                "Group chat must have at least 2 other users",
                error_code="NOT_ENOUGH_MEMBERS",
            )

        if not all(_is_uuid(uid) for uid in others):
            return ServiceResult.failure(
                "One or more user IDs are invalid", error_code="INVALID_USERS"
            )
        found = {str(u.pk): u for u in User.objects.filter(pk__in=others, is_active=True)}
        if len(found) != len(others):
            return ServiceResult.failure(
                "One or more user IDs are invalid", error_code="INVALID_USERS"
            )

        with cls.atomic():
            chat = Chat.objects.create(
                is_group=True,
                name=name,
                description=(description or "").strip(),
                avatar=CHAT_CONFIG.GROUP_AVATAR_URL.format(name=quote(name, safe="")),
                admin=creator,
            )
            ChatMembership.objects.create(chat=chat, user=creator)
            for uid in others:
                ChatMembership.objects.create(chat=chat, user=found[uid])

        cls.get_logger().info(
            f"User {creator.id} created group chat {chat.id} with {len(others) + 1} members"
        )
        return ServiceResult.success(chat)

    @classmethod
    def rename_group(cls, chat_id, user: User, name: str) -> ServiceResult[Chat]:
        name = (name or "").strip()
        if not name:
            return ServiceResult.failure(
                "Group chat name is required", error_code="NAME_REQUIRED"
            )

        result = cls._get_admin_group(chat_id, user)
        if not result:
            return result

        chat = result.data
        chat.name = name
        chat.save(update_fields=["name", "updated_at"])
        cls.get_logger().info(f"Renamed chat {chat.id}")
        return ServiceResult.success(chat)

    @classmethod
    def add_member(cls, chat_id, user: User, new_user_id) -> ServiceResult[Chat]:
        result = cls._get_admin_group(chat_id, user)
        if not result:
            return result
        chat = result.data

        new_user = (
            User.objects.filter(pk=new_user_id, is_active=True).first()
            if _is_uuid(new_user_id)
            else None
        )
        if new_user is None:
            return ServiceResult.failure("User not found", error_code="USER_NOT_FOUND")
        if chat.is_member(new_user):
            return ServiceResult.failure(
                "User is already in the group", error_code="ALREADY_MEMBER"
            )

        ChatMembership.objects.create(chat=chat, user=new_user)
        cls.get_logger().info(f"User {user.id} added {new_user.id} to chat {chat.id}")
        return ServiceResult.success(chat)

    @classmethod
    def remove_member(cls, chat_id, user: User, target_id) -> ServiceResult[Chat]:
        result = cls._get_admin_group(chat_id, user)
        if not result:
            return result
        chat = result.data

        membership = (
            chat.memberships.filter(user_id=target_id).first() if _is_uuid(target_id) else None
        )
        if membership is None:
            return ServiceResult.failure(
                "User is not in the group", error_code="USER_NOT_IN_CHAT"
            )
        if membership.user_id == chat.admin_id:
            return ServiceResult.failure(
                "Cannot remove group admin. Transfer admin rights first.",
                error_code="CANNOT_REMOVE_ADMIN",
            )

        membership.delete()
        cls.get_logger().info(f"User {user.id} removed {target_id} from chat {chat.id}")
        return ServiceResult.success(chat)

    @classmethod
    def leave_group(cls, chat_id, user: User) -> ServiceResult[Chat | None]:
        """
        Leave a group chat.

        If the admin leaves, the earliest-joined remaining member becomes
        admin. If nobody remains the chat is deleted along with its
        messages.
        The leaver's typing entry is ended by their live connection once
        it is told the membership ended.

        Returns:
            ServiceResult with the chat, or None when it was deleted
        """
        chat = Chat.objects.filter(pk=chat_id).first()
        if chat is None:
            return ServiceResult.failure("Chat not found", error_code="CHAT_NOT_FOUND")
        if not chat.is_group:
            return ServiceResult.failure(
                "This is not a group chat", error_code="NOT_GROUP_CHAT"
            )

        membership = chat.get_membership(user)
        if membership is None:
            return ServiceResult.failure(
                "You are not a member of this group", error_code="NOT_MEMBER"
            )

        with cls.atomic():
            membership.delete()
            successor = chat.memberships.order_by("id").first()
            if successor is None:
                chat.delete()
                cls.get_logger().info(
                    f"Deleted group chat {chat_id}: last member {user.id} left"
                )
                return ServiceResult.success(None)

            if chat.admin_id == user.pk:
                chat.admin_id = successor.user_id
                chat.save(update_fields=["admin", "updated_at"])
                cls.get_logger().info(
                    f"Transferred admin of chat {chat.id} from {user.id} to {successor.user_id}"
                )

        cls.get_logger().info(f"User {user.id} left chat {chat.id}")
        return ServiceResult.success(chat)

    @classmethod
    def delete_chat(cls, chat_id, user: User) -> ServiceResult[None]:
        """Delete a chat and its messages. Group chats: admin only."""
        chat = Chat.objects.filter(pk=chat_id).first()
        if chat is None:
            return ServiceResult.failure("Chat not found", error_code="CHAT_NOT_FOUND")
        if not chat.is_member(user):
            return ServiceResult.failure(
                "You are not authorized to delete this chat", error_code="NOT_MEMBER"
            )
        if chat.is_group and chat.admin_id != user.pk:
            return ServiceResult.failure(
                "Only group admin can delete the group", error_code="NOT_ADMIN"
            )

        with cls.atomic():
            chat.delete()
        cls.get_logger().info(f"User {user.id} deleted chat {chat_id}")
        return ServiceResult.success(None)

    @classmethod
    def mark_read(
        cls, chat_id, user: User, not_member_message: str = NOT_MEMBER_MESSAGE
    ) -> ServiceResult[Chat]:
        """Reset the user's unread counter for the chat."""
        result = cls.get_member_chat(chat_id, user, not_member_message)
        if not result:
            return result

        ChatMembership.objects.filter(chat_id=result.data.pk, user=user).update(
            unread_count=0,
            last_read_at=timezone.now(),
        )
        return result


class MessageService(BaseService):
    """
    Message operations.

    Sending a message stores it, points the chat's latest_message at it
    and increments every other member's unread counter in one transaction.
    """

    @classmethod
    def _validate_content(cls, content: str, has_attachment: bool) -> ServiceResult[str]:
        content = (content or "").strip()
        if not content and not has_attachment:
            return ServiceResult.failure(
                "Message content is required", error_code="CONTENT_REQUIRED"
            )
        if len(content) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
            return ServiceResult.failure(
                f"Message cannot exceed {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters",
                error_code="CONTENT_TOO_LONG",
            )
        return ServiceResult.success(content)

    @classmethod
    def send_message(
        cls,
        sender: User,
        chat_id,
        content: str = "",
        message_type: str = MessageType.TEXT,
        reply_to_id=None,
        attachment: dict | None = None,
    ) -> ServiceResult[SentMessage]:
        """
        Send a message to a chat.

        Args:
            reply_to_id: Message being replied to; must be in the same chat
            attachment: {"url", "filename", "mimetype", "size"}

        Returns:
            ServiceResult with SentMessage, or CHAT_NOT_FOUND / NOT_MEMBER /
            CONTENT_REQUIRED / CONTENT_TOO_LONG / INVALID_REPLY
        """
        result = ChatService.get_member_chat(
            chat_id, sender, "Not authorized to send message to this chat"
        )
        if not result:
            return result
        chat = result.data

        content_result = cls._validate_content(content, bool(attachment))
        if not content_result:
            return content_result

        reply_to = None
        if reply_to_id:
            reply_to = Message.objects.filter(pk=reply_to_id, chat=chat).first()
            if reply_to is None:
                return ServiceResult.failure(
                    "Invalid reply message", error_code="INVALID_REPLY"
                )

        with cls.atomic():
            message = Message.objects.create(
                chat=chat,
                sender=sender,
                content=content_result.data,
                message_type=message_type,
                attachment=attachment or None,
                reply_to=reply_to,
            )
            chat.latest_message = message
            chat.save(update_fields=["latest_message", "updated_at"])
            ChatMembership.objects.filter(chat=chat).exclude(user=sender).update(
                unread_count=F("unread_count") + 1
            )

        stopped_typing = TypingIndicatorStore.stop(chat.pk, sender.pk)
        cls.get_logger().info(f"User {sender.id} sent message {message.id} to chat {chat.id}")
        return ServiceResult.success(
            SentMessage(
                message=Message.objects.with_relations().get(pk=message.pk),
                stopped_typing=stopped_typing,
            )
        )

    @classmethod
    def history(cls, chat_id, user: User) -> ServiceResult[QuerySet[Message]]:
        """
        Non-deleted messages of the chat, newest first.

        Views paginate this and reverse each page, so page 1 holds the
        most recent messages in chronological order.
        """
        result = ChatService.get_member_chat(chat_id, user)
        if not result:
            return result

        messages = (
            Message.objects.active()
            .filter(chat=result.data)
            .with_relations()
            .order_by("-created_at", "-id")
        )
        return ServiceResult.success(messages)

    @classmethod
    def search(cls, chat_id, user: User, query: str | None) -> ServiceResult[list[Message]]:
        """Case-insensitive content search, newest first, deleted messages excluded."""
        query = (query or "").strip()
        if len(query) < MESSAGE_CONFIG.SEARCH_MIN_QUERY_LENGTH:
            return ServiceResult.failure(
                "Search query must be at least 2 characters long",
                error_code="QUERY_TOO_SHORT",
            )

        result = ChatService.get_member_chat(chat_id, user)
        if not result:
            return result

        messages = (
            Message.objects.active()
            .filter(chat=result.data)
            .search(query)
            .with_relations()
            .order_by("-created_at", "-id")[: MESSAGE_CONFIG.SEARCH_MAX_RESULTS]
        )
        return ServiceResult.success(list(messages))

    @classmethod
    def edit_message(cls, message_id, user: User, content: str) -> ServiceResult[Message]:
        """
        Edit the content of one's own message within the edit window.

        Returns:
            ServiceResult with the message, or MESSAGE_NOT_FOUND / NOT_OWNER /
            EDIT_WINDOW_EXPIRED / CONTENT_REQUIRED
        """
        message = Message.objects.active().filter(pk=message_id).first()
        if message is None:
            return ServiceResult.failure("Message not found", error_code="MESSAGE_NOT_FOUND")
        if message.sender_id != user.pk:
            return ServiceResult.failure(
                "You can only edit your own messages", error_code="NOT_OWNER"
            )

        window_hours = settings.CHAT_EDIT_WINDOW_HOURS
        if timezone.now() - message.created_at > timedelta(hours=window_hours):
            return ServiceResult.failure(
                f"Cannot edit messages older than {window_hours} hours",
                error_code="EDIT_WINDOW_EXPIRED",
            )

        content_result = cls._validate_content(content, has_attachment=False)
        if not content_result:
            return content_result

        message.edit_content(content_result.data)
        cls.get_logger().info(f"User {user.id} edited message {message.id}")
        return ServiceResult.success(Message.objects.with_relations().get(pk=message.pk))

    @classmethod
    def delete_message(cls, message_id, user: User) -> ServiceResult[Message]:
        """
        Soft-delete a message. Allowed for the sender, and for the admin of
        a group chat. If it was the chat's latest message the pointer moves
        to the newest remaining message.
        """
        message = Message.objects.active().select_related("chat").filter(pk=message_id).first()
        if message is None:
            return ServiceResult.failure("Message not found", error_code="MESSAGE_NOT_FOUND")

        chat = message.chat
        is_group_admin = chat.is_group and chat.admin_id == user.pk
        if message.sender_id != user.pk and not is_group_admin:
            return ServiceResult.failure(
                "You can only delete your own messages or as group admin",
                error_code="NOT_OWNER",
            )

        with cls.atomic():
            message.soft_delete(deleted_by=user)
            if chat.latest_message_id == message.pk:
                chat.latest_message = (
                    Message.objects.active()
                    .filter(chat=chat)
                    .order_by("-created_at", "-id")
                    .first()
                )
                chat.save(update_fields=["latest_message"])

        cls.get_logger().info(f"User {user.id} deleted message {message.id}")
        return ServiceResult.success(message)

    @classmethod
    def mark_message_read(cls, message_id, user: User) -> ServiceResult[MessageReadReceipt]:
        """Record a read receipt. Repeated calls keep the first receipt."""
        message = Message.objects.active().filter(pk=message_id).first()
        if message is None:
            return ServiceResult.failure("Message not found", error_code="MESSAGE_NOT_FOUND")

        result = ChatService.get_member_chat(message.chat_id, user)
        if not result:
            return result

        receipt, created = MessageReadReceipt.objects.get_or_create(message=message, user=user)
        if created:
            cls.get_logger().debug(f"User {user.id} read message {message.id}")
        return ServiceResult.success(receipt)


class ReactionService(BaseService):
    """Emoji reactions; a user holds at most one reaction per message."""

    @staticmethod
    def reactions_for(message_id) -> QuerySet[MessageReaction]:
        return MessageReaction.objects.filter(message_id=message_id).select_related("user")

    @classmethod
    def add_reaction(cls, message_id, user: User, emoji: str) -> ServiceResult[Message]:
        """Set the user's reaction, replacing any previous emoji."""
        emoji = (emoji or "").strip()
        if not emoji:
            return ServiceResult.failure("Emoji is required", error_code="EMOJI_REQUIRED")

        message = Message.objects.active().filter(pk=message_id).first()
        if message is None:
            return ServiceResult.failure("Message not found", error_code="MESSAGE_NOT_FOUND")

        result = ChatService.get_member_chat(message.chat_id, user)
        if not result:
            return result

        MessageReaction.objects.update_or_create(
            message=message, user=user, defaults={"emoji": emoji}
        )
        cls.get_logger().info(f"User {user.id} reacted {emoji} to message {message.id}")
        return ServiceResult.success(message)

    @classmethod
    def remove_reaction(cls, message_id, user: User) -> ServiceResult[Message]:
        """Remove the user's reaction. Only requires the message to exist."""
        message = Message.objects.active().filter(pk=message_id).first()
        if message is None:
            return ServiceResult.failure("Message not found", error_code="MESSAGE_NOT_FOUND")

        deleted, _ = MessageReaction.objects.filter(message=message, user=user).delete()
        if deleted:
            cls.get_logger().info(f"User {user.id} removed reaction from message {message.id}")
        return ServiceResult.success(message)


class TypingService(BaseService):
    """Typing indicators gated on chat membership."""

    @classmethod
    def start_typing(cls, chat_id, user: User) -> ServiceResult[float]:
        """Stamp the user as typing. Returns the stamp the expiry must match."""
        result = ChatService.get_member_chat(chat_id, user)
        if not result:
            return result
        return ServiceResult.success(TypingIndicatorStore.start(chat_id, user.pk))

    @classmethod
    def stop_typing(cls, chat_id, user: User) -> ServiceResult[bool]:
        result = ChatService.get_member_chat(chat_id, user)
        if not result:
            return result
        return ServiceResult.success(TypingIndicatorStore.stop(chat_id, user.pk))

    @staticmethod
    def expire(chat_id, user_id, stamp: float) -> bool:
        """
        Clear an entry whose deadline passed.

        No-op (False) if the entry was refreshed, stopped, or the chat is
        gone.
        """
        return TypingIndicatorStore.stop(chat_id, user_id, stamp=stamp)

    @staticmethod
    def clear(chat_id, user_id) -> bool:
        """Clear the entry regardless of its stamp. True if one was removed."""
        return TypingIndicatorStore.stop(chat_id, user_id)

    @classmethod
    def clear_for_user(cls, user_id, chat_ids) -> None:
        for chat_id in chat_ids:
            cls.clear(chat_id, user_id)


class PresenceService(BaseService):
    """
    Persisted side of connect/disconnect.

    ``channel_name`` on the user row is the handle of the user's current
    connection, or empty when none.
    """

    @staticmethod
    def chat_ids_for(user_id) -> list[int]:
        """Current memberships, queried fresh."""
        return list(
            ChatMembership.objects.filter(user_id=user_id)
            .order_by("chat_id")
            .values_list("chat_id", flat=True)
        )

    @classmethod
    def mark_online(cls, user_id, channel_name: str) -> list[int]:
        """
        Record a new connection.

        Returns:
            Ids of the user's chats
        """
        User.objects.filter(pk=user_id).update(
            is_online=True,
            last_seen=timezone.now(),
            channel_name=channel_name,
            updated_at=timezone.now(),
        )
        cls.get_logger().info(f"User {user_id} online via {channel_name}")
        return cls.chat_ids_for(user_id)

    @classmethod
    def mark_offline(cls, user_id, channel_name: str) -> bool:
        """
        Record a closed connection.

        The user is marked offline only while the stored handle is still
        this connection's; a newer connection that already called
        mark_online keeps the user online.

        Returns:
            True if this connection's handle was released
        """
        now = timezone.now()
        released = User.objects.filter(pk=user_id, channel_name=channel_name).update(
            is_online=False, last_seen=now, channel_name="", updated_at=now
        )
        if not released:
            cls.get_logger().info(
                f"User {user_id} kept its presence: {channel_name} no longer current"
            )
            return False
        cls.get_logger().info(f"User {user_id} offline ({channel_name} closed)")
        return True

    @classmethod
    def set_status(cls, user: User, is_online: bool) -> list[int]:
        """Persist a manual status change. Returns the user's chat ids."""
        now = timezone.now()
        User.objects.filter(pk=user.pk).update(
            is_online=bool(is_online), last_seen=now, updated_at=now
        )
        user.is_online = bool(is_online)
        user.last_seen = now
        return cls.chat_ids_for(user.pk)
