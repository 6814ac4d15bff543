"""
Django admin configuration for chat models.

Provides admin interfaces for:
- Chat management with inline memberships
- Message moderation
- Reactions
"""

from django.contrib import admin

from chat.models import Chat, ChatMembership, DirectChatPair, Message, MessageReaction


class ChatMembershipInline(admin.TabularInline):
    """Inline display of members in chat admin."""

    model = ChatMembership
    extra = 0
    readonly_fields = ["created_at", "last_read_at"]
    raw_id_fields = ["user"]


@admin.register(Chat)
class ChatAdmin(admin.ModelAdmin):
    """Admin interface for Chat model."""

    list_display = [
        "id",
        "is_group",
        "name",
        "admin",
        "member_count",
        "created_at",
        "updated_at",
    ]
    list_filter = ["is_group", "created_at"]
    search_fields = ["name", "id"]
    readonly_fields = ["created_at", "updated_at", "latest_message"]
    raw_id_fields = ["admin"]
    inlines = [ChatMembershipInline]
    ordering = ["-updated_at"]

    @admin.display(description="Members")
    def member_count(self, obj: Chat) -> int:
        return obj.memberships.count()


@admin.register(DirectChatPair)
class DirectChatPairAdmin(admin.ModelAdmin):
    """Admin interface for DirectChatPair model."""

    list_display = ["chat", "user_lower", "user_higher"]
    raw_id_fields = ["chat", "user_lower", "user_higher"]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin interface for Message model."""

    list_display = [
        "id",
        "chat",
        "sender",
        "message_type",
        "content_preview",
        "is_edited",
        "is_deleted",
        "created_at",
    ]
    list_filter = ["message_type", "is_edited", "is_deleted", "created_at"]
    search_fields = ["content", "sender__email"]
    readonly_fields = ["created_at", "updated_at", "edited_at", "deleted_at", "deleted_by"]
    raw_id_fields = ["chat", "sender", "reply_to"]
    ordering = ["-created_at"]

    @admin.display(description="Content Preview")
    def content_preview(self, obj: Message) -> str:
        """Return truncated content for list display."""
        max_length = 50
        if len(obj.content) > max_length:
            return obj.content[:max_length] + "..."
        return obj.content


@admin.register(MessageReaction)
class MessageReactionAdmin(admin.ModelAdmin):
    """Admin interface for MessageReaction model."""

    list_display = ["id", "message", "user", "emoji", "created_at"]
    search_fields = ["user__email", "emoji"]
    raw_id_fields = ["message", "user"]
