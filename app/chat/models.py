"""
Chat system models.

This module defines the data models for the chat system supporting:
- Direct (1:1) chats between exactly two users
- Group chats with a single admin

Models:
    Chat: Container for messages between members
    ChatMembership: A user's membership in a chat, with their unread counter
    DirectChatPair: Helper for enforcing uniqueness of direct chats
    Message: Individual message within a chat
    MessageReaction: One emoji reaction per (message, user)
    MessageReadReceipt: When a user read a message

Design Decisions:
    - The membership row is the unread-counter entry, so a user is a member
      exactly when they have an unread counter.
    - Direct chats are created lazily on first contact and never change
      membership.
    - A group's admin is always a member; on admin departure the earliest
      remaining member takes over.
    - Typing indicators are ephemeral and live in the cache (chat.typing),
      not on the Chat row.
    - Soft delete replaces message content with a placeholder and records
      who deleted it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.core.validators import MaxLengthValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from chat.constants import CHAT_CONFIG, MESSAGE_CONFIG, REACTION_CONFIG
from core.managers import SoftDeleteQuerySet
from core.model_mixins import SoftDeleteMixin
from core.models import BaseModel

if TYPE_CHECKING:
    from authentication.models import User


class MessageType(models.TextChoices):
    """
    Type of message content.

    TEXT: User-authored text message
    IMAGE: Image attachment, optional caption
    FILE: File attachment, optional caption
    SYSTEM: Generated notice
    """

    TEXT = "text", "Text"
    IMAGE = "image", "Image"
    FILE = "file", "File"
    SYSTEM = "system", "System"


class ChatQuerySet(models.QuerySet):
    def for_user(self, user: User) -> ChatQuerySet:
        """Chats ``user`` is currently a member of."""
        return self.filter(memberships__user=user)


class Chat(BaseModel):
    """
    A chat between two or more users.

    Chat Types:
        Direct (is_group=False): Exactly 2 members, no name, no admin.
            Unique per user pair (enforced via DirectChatPair).

        Group (is_group=True): Creator plus at least two others.
            Creator becomes admin. Deleted when the last member leaves.

    Fields:
        is_group: Whether this is a group chat
        name: Group name (empty for direct chats)
        description: Group description
        avatar: Group avatar URL
        admin: Group admin (null for direct chats)
        latest_message: Most recent non-deleted message, for chat lists

    Relationships:
        memberships: ChatMembership rows (ordered by join)
        members: Users, through ChatMembership
        messages: All Message records for this chat
        direct_pair: DirectChatPair for direct chats
    """

    is_group = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether this is a group chat",
    )

    name = models.CharField(
        max_length=CHAT_CONFIG.MAX_NAME_LENGTH,
        blank=True,
        default="",
        help_text="Name for group chats (empty for direct)",
    )

    description = models.CharField(
        max_length=CHAT_CONFIG.MAX_DESCRIPTION_LENGTH,
        blank=True,
        default="",
        help_text="Description for group chats",
    )

    avatar = models.URLField(
        max_length=500,
        blank=True,
        default="",
        help_text="Avatar URL for group chats",
    )

    admin = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="administered_chats",
        help_text="Group admin (null for direct chats)",
    )

    members = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        through="ChatMembership",
        related_name="chats",
        help_text="Current members",
    )

    latest_message = models.ForeignKey(
        "Message",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Most recent message (for chat lists)",
    )

    objects = ChatQuerySet.as_manager()

    class Meta:
        db_table = "chat_chat"
        ordering = ["-updated_at"]

    def __str__(self) -> str:
        """Return human-readable representation."""
        if not self.is_group:
            return f"Direct({self.pk})"
        return f"Group: {self.name}" if self.name else f"Group({self.pk})"

    def is_member(self, user: User) -> bool:
        return self.memberships.filter(user=user).exists()

    def member_ids(self) -> list:
        """Member user ids in join order."""
        return list(self.memberships.order_by("id").values_list("user_id", flat=True))

    def get_membership(self, user: User) -> ChatMembership | None:
        return self.memberships.filter(user=user).first()

    def other_member(self, user: User) -> User | None:
        """For a direct chat, the member who is not ``user``."""
        membership = (
            self.memberships.select_related("user").exclude(user=user).order_by("id").first()
        )
        return membership.user if membership else None

    def display_name_for(self, user: User) -> str:
        """Group name, or the other member's name for direct chats."""
        if self.is_group:
            return self.name
        other = self.other_member(user)
        return other.name if other else "Unknown User"

    def display_avatar_for(self, user: User) -> str:
        if self.is_group:
            return self.avatar
        other = self.other_member(user)
        return other.avatar if other else ""


class ChatMembership(BaseModel):
    """
    A user's membership in a chat.

    Holds the user's unread counter for the chat: incremented for every
    message another member sends, reset to zero when the user reads the
    chat. Deleting the row removes both the membership and the counter.

    Fields:
        chat: Chat this membership belongs to
        user: Member
        unread_count: Messages from others since the last read
        last_read_at: Last time the user read the chat
        created_at: When the user joined (join order decides admin succession)
    """

    chat = models.ForeignKey(
        Chat,
        on_delete=models.CASCADE,
        related_name="memberships",
        help_text="Chat this membership belongs to",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_memberships",
        help_text="Member",
    )

    unread_count = models.PositiveIntegerField(
        default=0,
        help_text="Messages from other members since the user last read the chat",
    )

    last_read_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last time the user read the chat",
    )

    class Meta:
        db_table = "chat_membership"
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["chat", "user"],
                name="unique_chat_membership",
            ),
        ]
        indexes = [
            models.Index(fields=["user", "chat"], name="chat_member_user_idx"),
        ]

    def __str__(self) -> str:
        return f"Membership: {self.user_id} in {self.chat_id} (unread={self.unread_count})"


class DirectChatPair(models.Model):
    """
    Enforces uniqueness of direct chats between two users.

    Stores user pairs in canonical order (lower user id first), so that
    regardless of who opens the chat there is only one per pair, even when
    both users open it at the same moment.

    Fields:
        chat: The direct chat (OneToOne, serves as PK)
        user_lower: User with lower id
        user_higher: User with higher id
    """

    chat = models.OneToOneField(
        Chat,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="direct_pair",
        help_text="The direct chat this pair represents",
    )

    user_lower = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with lower id in this pair",
    )

    user_higher = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with higher id in this pair",
    )

    class Meta:
        db_table = "chat_direct_pair"
        constraints = [
            models.UniqueConstraint(
                fields=["user_lower", "user_higher"],
                name="unique_direct_chat_pair",
            ),
            models.CheckConstraint(
                condition=Q(user_lower_id__lt=F("user_higher_id")),
                name="direct_pair_user_lower_less_than_higher",
            ),
        ]

    def __str__(self) -> str:
        return f"DirectPair({self.user_lower_id}, {self.user_higher_id})"

    @staticmethod
    def canonical(user_a_id, user_b_id) -> tuple:
        """Return the two ids ordered (lower, higher)."""
        return (user_a_id, user_b_id) if user_a_id < user_b_id else (user_b_id, user_a_id)


class MessageQuerySet(SoftDeleteQuerySet):
    def with_relations(self) -> MessageQuerySet:
        """Load everything the message serializer touches."""
        return self.select_related("sender", "reply_to__sender").prefetch_related(
            "reactions__user", "read_receipts__user"
        )

    def search(self, text: str) -> MessageQuerySet:
        """Case-insensitive substring match on content."""
        return self.filter(content__icontains=text)


class Message(SoftDeleteMixin, BaseModel):
    """
    A message within a chat.

    Soft Delete Behavior:
        When is_deleted=True the content is replaced by
        MESSAGE_CONFIG.DELETED_PLACEHOLDER and deleted_by records the actor.
        Deleted messages are left out of history and search.

    Fields:
        chat: Chat this message belongs to
        sender: User who sent the message (null for system messages)
        message_type: text, image, file or system
        content: Message text (may be empty when an attachment is present)
        attachment: {"url", "filename", "mimetype", "size"} or null
        reply_to: Message in the same chat this one replies to
        is_edited / edited_at: Edit state
        deleted_by: Who soft-deleted the message
    """

    chat = models.ForeignKey(
        Chat,
        on_delete=models.CASCADE,
        related_name="messages",
        help_text="Chat this message belongs to",
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sent_messages",
        help_text="User who sent this message (null for system messages)",
    )

    message_type = models.CharField(
        max_length=10,
        choices=MessageType.choices,
        default=MessageType.TEXT,
        help_text="Type of message",
    )

    content = models.TextField(
        blank=True,
        default="",
        validators=[MaxLengthValidator(MESSAGE_CONFIG.MAX_CONTENT_LENGTH)],
        help_text="Message text (required unless an attachment is present)",
    )

    attachment = models.JSONField(
        null=True,
        blank=True,
        help_text="Attachment metadata: url, filename, mimetype, size",
    )

    reply_to = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="replies",
        help_text="Message in the same chat this message replies to",
    )

    is_edited = models.BooleanField(
        default=False,
        help_text="Whether the content was edited after sending",
    )

    edited_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the content was last edited",
    )

    deleted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who deleted this message",
    )

    objects = MessageQuerySet.as_manager()

    class Meta:
        db_table = "chat_message"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["chat", "created_at", "id"],
                name="chat_msg_chat_created_idx",
            ),
            models.Index(
                fields=["chat", "is_deleted"],
                name="chat_msg_chat_deleted_idx",
            ),
        ]

    def __str__(self) -> str:
        """Return human-readable representation."""
        sender_str = f"User {self.sender_id}" if self.sender_id else "System"
        content_preview = (
            self.content[:50] + "..." if len(self.content) > 50 else self.content
        )
        deleted_str = " [deleted]" if self.is_deleted else ""
        return f"{sender_str}: {content_preview}{deleted_str}"

    def edit_content(self, content: str) -> None:
        self.content = content
        self.is_edited = True
        self.edited_at = timezone.now()
        self.save(update_fields=["content", "is_edited", "edited_at", "updated_at"])

    def soft_delete(self, deleted_by: User | None = None) -> None:
        """Replace content with the placeholder and record the actor."""
        self.content = MESSAGE_CONFIG.DELETED_PLACEHOLDER
        self.deleted_by = deleted_by
        super().soft_delete(update_fields=["content", "deleted_by"])


class MessageReaction(BaseModel):
    """
    An emoji reaction. At most one per (message, user): reacting again
    replaces the emoji.
    """

    message = models.ForeignKey(
        Message,
        on_delete=models.CASCADE,
        related_name="reactions",
        help_text="Message reacted to",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="message_reactions",
        help_text="User who reacted",
    )

    emoji = models.CharField(
        max_length=REACTION_CONFIG.MAX_EMOJI_LENGTH,
        help_text="Emoji character(s)",
    )

    class Meta:
        db_table = "chat_message_reaction"
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["message", "user"],
                name="unique_reaction_per_user",
            ),
        ]

    def __str__(self) -> str:
        return f"Reaction {self.emoji} by {self.user_id} on {self.message_id}"


class MessageReadReceipt(models.Model):
    """Records that a user has read a message."""

    message = models.ForeignKey(
        Message,
        on_delete=models.CASCADE,
        related_name="read_receipts",
        help_text="Message that was read",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="read_receipts",
        help_text="Reader",
    )

    read_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the message was read",
    )

    class Meta:
        db_table = "chat_message_read_receipt"
        ordering = ["read_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["message", "user"],
                name="unique_read_receipt",
            ),
        ]

    def __str__(self) -> str:
        return f"Read {self.message_id} by {self.user_id}"
