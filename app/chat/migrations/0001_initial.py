"""
Initial schema for the chat app.

Creates:
    - Chat with admin and latest_message pointers
    - ChatMembership (member + unread counter), unique per (chat, user)
    - DirectChatPair enforcing one direct chat per user pair
    - Message with soft delete, edit state, reply and attachment
    - MessageReaction, unique per (message, user)
    - MessageReadReceipt, unique per (message, user)
"""

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Chat",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "is_group",
                    models.BooleanField(
                        db_index=True,
                        default=False,
                        help_text="Whether this is a group chat",
                    ),
                ),
                (
                    "name",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Name for group chats (empty for direct)",
                        max_length=100,
                    ),
                ),
                (
                    "description",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Description for group chats",
                        max_length=500,
                    ),
                ),
                (
                    "avatar",
                    models.URLField(
                        blank=True,
                        default="",
                        help_text="Avatar URL for group chats",
                        max_length=500,
                    ),
                ),
                (
                    "admin",
                    models.ForeignKey(
                        blank=True,
                        help_text="Group admin (null for direct chats)",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="administered_chats",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_chat",
                "ordering": ["-updated_at"],
            },
        ),
        migrations.CreateModel(
            name="ChatMembership",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "unread_count",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Messages from other members since the user last read the chat",
                    ),
                ),
                (
                    "last_read_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Last time the user read the chat",
                        null=True,
                    ),
                ),
                (
                    "chat",
                    models.ForeignKey(
                        help_text="Chat this membership belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="memberships",
                        to="chat.chat",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="Member",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="chat_memberships",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_membership",
                "ordering": ["id"],
                "indexes": [
                    models.Index(fields=["user", "chat"], name="chat_member_user_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("chat", "user"), name="unique_chat_membership"
                    ),
                ],
            },
        ),
        migrations.AddField(
            model_name="chat",
            name="members",
            field=models.ManyToManyField(
                help_text="Current members",
                related_name="chats",
                through="chat.ChatMembership",
                to=settings.AUTH_USER_MODEL,
            ),
        ),
        migrations.CreateModel(
            name="DirectChatPair",
            fields=[
                (
                    "chat",
                    models.OneToOneField(
                        help_text="The direct chat this pair represents",
                        on_delete=django.db.models.deletion.CASCADE,
                        primary_key=True,
                        related_name="direct_pair",
                        serialize=False,
                        to="chat.chat",
                    ),
                ),
                (
                    "user_lower",
                    models.ForeignKey(
                        help_text="User with lower id in this pair",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "user_higher",
                    models.ForeignKey(
                        help_text="User with higher id in this pair",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_direct_pair",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user_lower", "user_higher"),
                        name="unique_direct_chat_pair",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("user_lower_id__lt", models.F("user_higher_id"))),
                        name="direct_pair_user_lower_less_than_higher",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Message",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "is_deleted",
                    models.BooleanField(
                        db_index=True,
                        default=False,
                        help_text="Whether this record has been soft deleted",
                    ),
                ),
                (
                    "deleted_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Timestamp when this record was soft deleted",
                        null=True,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "message_type",
                    models.CharField(
                        choices=[
                            ("text", "Text"),
                            ("image", "Image"),
                            ("file", "File"),
                            ("system", "System"),
                        ],
                        default="text",
                        help_text="Type of message",
                        max_length=10,
                    ),
                ),
                (
                    "content",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Message text (required unless an attachment is present)",
                        validators=[django.core.validators.MaxLengthValidator(1000)],
                    ),
                ),
                (
                    "attachment",
                    models.JSONField(
                        blank=True,
                        help_text="Attachment metadata: url, filename, mimetype, size",
                        null=True,
                    ),
                ),
                (
                    "is_edited",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the content was edited after sending",
                    ),
                ),
                (
                    "edited_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the content was last edited",
                        null=True,
                    ),
                ),
                (
                    "chat",
                    models.ForeignKey(
                        help_text="Chat this message belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="messages",
                        to="chat.chat",
                    ),
                ),
                (
                    "deleted_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who deleted this message",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "reply_to",
                    models.ForeignKey(
                        blank=True,
                        help_text="Message in the same chat this message replies to",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="replies",
                        to="chat.message",
                    ),
                ),
                (
                    "sender",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who sent this message (null for system messages)",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="sent_messages",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_message",
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["chat", "created_at", "id"],
                        name="chat_msg_chat_created_idx",
                    ),
                    models.Index(
                        fields=["chat", "is_deleted"],
                        name="chat_msg_chat_deleted_idx",
                    ),
                ],
            },
        ),
        migrations.AddField(
            model_name="chat",
            name="latest_message",
            field=models.ForeignKey(
                blank=True,
                help_text="Most recent message (for chat lists)",
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to="chat.message",
            ),
        ),
        migrations.CreateModel(
            name="MessageReaction",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "emoji",
                    models.CharField(help_text="Emoji character(s)", max_length=16),
                ),
                (
                    "message",
                    models.ForeignKey(
                        help_text="Message reacted to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="reactions",
                        to="chat.message",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="User who reacted",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="message_reactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_message_reaction",
                "ordering": ["created_at", "id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("message", "user"), name="unique_reaction_per_user"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="MessageReadReceipt",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "read_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When the message was read",
                    ),
                ),
                (
                    "message",
                    models.ForeignKey(
                        help_text="Message that was read",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="read_receipts",
                        to="chat.message",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="Reader",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="read_receipts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_message_read_receipt",
                "ordering": ["read_at", "id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("message", "user"), name="unique_read_receipt"
                    ),
                ],
            },
        ),
    ]
