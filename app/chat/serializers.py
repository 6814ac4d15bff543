"""
Serializers for chat API and real-time payloads.

This module provides serializers for the chat system:
- Message serializers (read, create, edit)
- Chat serializers (read, direct access, group create/update)
- Reaction and read receipt serializers

The read serializers produce the exact payloads pushed over WebSockets
(``message_received``, ``reaction_added``, ...) as well as the REST
responses, so both paths show clients the same shapes.

Serializer Hierarchy:
    MessageSerializer: Full message with sender, reply preview, reactions
    ReactionSerializer: One reaction with its user
    ChatSerializer: Chat with members, admin and latest message; adds
        per-viewer fields (displayName, chatAvatar, unreadCount,
        typingUsers) when the viewer is in the serializer context

    SendMessageSerializer / EditMessageSerializer: Message input
    AccessChatSerializer / CreateGroupSerializer / RenameGroupSerializer /
    GroupMemberSerializer: Chat input

Design Decisions:
    - Field names are camelCase on the wire
    - Read and write serializers are separate
    - Deleted messages already carry the placeholder content in the row
"""

from __future__ import annotations

from rest_framework import serializers

from authentication.models import User
from authentication.serializers import UserSummarySerializer
from chat.constants import CHAT_CONFIG, MESSAGE_CONFIG, REACTION_CONFIG
from chat.models import Chat, Message, MessageReaction, MessageReadReceipt, MessageType
from chat.typing import TypingIndicatorStore


# =============================================================================
# Nested Serializers
# =============================================================================


class UserBriefSerializer(serializers.ModelSerializer):
    """Name and avatar only; used inside reactions and reply previews."""

    class Meta:
        model = User
        fields = ["id", "name", "avatar"]
        read_only_fields = fields


class ReactionSerializer(serializers.ModelSerializer):
    user = UserBriefSerializer(read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = MessageReaction
        fields = ["user", "emoji", "createdAt"]
        read_only_fields = fields


class ReadReceiptSerializer(serializers.ModelSerializer):
    user = serializers.UUIDField(source="user_id", read_only=True)
    readAt = serializers.DateTimeField(source="read_at", read_only=True)

    class Meta:
        model = MessageReadReceipt
        fields = ["user", "readAt"]
        read_only_fields = fields


class ReplyPreviewSerializer(serializers.ModelSerializer):
    """The message being replied to, trimmed to what a quote needs."""

    sender = UserBriefSerializer(read_only=True)

    class Meta:
        model = Message
        fields = ["id", "content", "sender"]
        read_only_fields = fields


# =============================================================================
# Message Serializers
# =============================================================================


class MessageSerializer(serializers.ModelSerializer):
    """
    Full message representation.

    Used for history pages, search results and the ``message_received``
    payload.
    """

    chatId = serializers.IntegerField(source="chat_id", read_only=True)
    sender = UserSummarySerializer(read_only=True)
    messageType = serializers.CharField(source="message_type", read_only=True)
    replyTo = ReplyPreviewSerializer(source="reply_to", read_only=True)
    reactions = ReactionSerializer(many=True, read_only=True)
    readBy = ReadReceiptSerializer(source="read_receipts", many=True, read_only=True)
    isEdited = serializers.BooleanField(source="is_edited", read_only=True)
    editedAt = serializers.DateTimeField(source="edited_at", read_only=True)
    isDeleted = serializers.BooleanField(source="is_deleted", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Message
        fields = [
            "id",
            "chatId",
            "sender",
            "content",
            "messageType",
            "attachment",
            "replyTo",
            "reactions",
            "readBy",
            "isEdited",
            "editedAt",
            "isDeleted",
            "createdAt",
            "updatedAt",
        ]
        read_only_fields = fields


class AttachmentSerializer(serializers.Serializer):
    url = serializers.URLField(max_length=500)
    filename = serializers.CharField(max_length=255)
    mimetype = serializers.CharField(max_length=100)
    size = serializers.IntegerField(min_value=0)


class SendMessageSerializer(serializers.Serializer):
    """
    Input for sending a message over REST.

    Content may be empty only when an attachment is present; the service
    enforces that rule for both REST and WebSocket callers.
    """

    chatId = serializers.IntegerField(min_value=1)
    content = serializers.CharField(
        max_length=MESSAGE_CONFIG.MAX_CONTENT_LENGTH,
        required=False,
        allow_blank=True,
        default="",
    )
    messageType = serializers.ChoiceField(
        choices=[MessageType.TEXT, MessageType.IMAGE, MessageType.FILE],
        required=False,
        default=MessageType.TEXT,
    )
    replyTo = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    attachment = AttachmentSerializer(required=False, allow_null=True)


class EditMessageSerializer(serializers.Serializer):
    content = serializers.CharField(max_length=MESSAGE_CONFIG.MAX_CONTENT_LENGTH)


class AddReactionSerializer(serializers.Serializer):
    emoji = serializers.CharField(max_length=REACTION_CONFIG.MAX_EMOJI_LENGTH)


# =============================================================================
# Chat Serializers
# =============================================================================


class ChatSerializer(serializers.ModelSerializer):
    """
    Chat with members and latest message.

    When ``context["user"]`` is set the viewer-specific fields are filled:
        displayName: Group name, or the other member's name
        chatAvatar: Group avatar, or the other member's avatar
        unreadCount: The viewer's unread counter
        typingUsers: Ids of other members currently typing
    """

    isGroup = serializers.BooleanField(source="is_group", read_only=True)
    admin = UserSummarySerializer(read_only=True)
    users = serializers.SerializerMethodField()
    latestMessage = MessageSerializer(source="latest_message", read_only=True)
    displayName = serializers.SerializerMethodField()
    chatAvatar = serializers.SerializerMethodField()
    unreadCount = serializers.SerializerMethodField()
    typingUsers = serializers.SerializerMethodField()
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Chat
        fields = [
            "id",
            "isGroup",
            "name",
            "description",
            "avatar",
            "admin",
            "users",
            "latestMessage",
            "displayName",
            "chatAvatar",
            "unreadCount",
            "typingUsers",
            "createdAt",
            "updatedAt",
        ]
        read_only_fields = fields

    def _viewer(self):
        return self.context.get("user")

    def _memberships(self, obj):
        # memberships__user is prefetched by ChatService.chats_for_user
        return sorted(obj.memberships.all(), key=lambda m: m.id)

    def get_users(self, obj) -> list[dict]:
        return [UserSummarySerializer(m.user).data for m in self._memberships(obj)]

    def _other_member(self, obj):
        viewer = self._viewer()
        for membership in self._memberships(obj):
            if viewer is None or membership.user_id != viewer.pk:
                return membership.user
        return None

    def get_displayName(self, obj) -> str:
        if obj.is_group:
            return obj.name
        other = self._other_member(obj)
        return other.name if other else "Unknown User"

    def get_chatAvatar(self, obj) -> str:
        if obj.is_group:
            return obj.avatar
        other = self._other_member(obj)
        return other.avatar if other else ""

    def get_unreadCount(self, obj) -> int:
        viewer = self._viewer()
        if viewer is None:
            return 0
        for membership in self._memberships(obj):
            if membership.user_id == viewer.pk:
                return membership.unread_count
        return 0

    def get_typingUsers(self, obj) -> list[str]:
        viewer = self._viewer()
        return TypingIndicatorStore.active_typers(
            obj.pk, exclude=viewer.pk if viewer else None
        )


class AccessChatSerializer(serializers.Serializer):
    """Input for opening (or lazily creating) a direct chat."""

    userId = serializers.UUIDField(required=False, allow_null=True)


class CreateGroupSerializer(serializers.Serializer):
    users = serializers.ListField(child=serializers.UUIDField(), allow_empty=True)
    chatName = serializers.CharField(max_length=CHAT_CONFIG.MAX_NAME_LENGTH)
    groupDescription = serializers.CharField(
        max_length=CHAT_CONFIG.MAX_DESCRIPTION_LENGTH,
        required=False,
        allow_blank=True,
        default="",
    )


class RenameGroupSerializer(serializers.Serializer):
    chatName = serializers.CharField(max_length=CHAT_CONFIG.MAX_NAME_LENGTH)


class GroupMemberSerializer(serializers.Serializer):
    userId = serializers.UUIDField()
