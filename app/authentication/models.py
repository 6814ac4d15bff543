"""
Authentication models.

This module defines the User model: an email-based account that also
carries the user's presence state.

Presence fields:
    - is_online / last_seen are persisted on every connect, disconnect and
      status update.
    - channel_name is the Channels channel of the user's live WebSocket
      connection. It is empty whenever the user has no connection.

Related files:
    - managers.py: Custom user manager for email-based creation
    - services.py: AuthService / UserService business logic
    - chat/registry.py: In-process registry that mirrors channel_name
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager
from core.model_mixins import UUIDPrimaryKeyMixin


class User(UUIDPrimaryKeyMixin, AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        name: Display name shown to other users
        avatar: Avatar image URL
        bio: Short free-text description
        is_online: Whether the user is currently reachable
        last_seen: Last presence transition
        channel_name: Channel of the live connection, empty when offline
        blocked_users: Users this user has blocked (one-directional)
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user account was created
        updated_at: When the user record was last modified

    Usage:
        user = User.objects.create_user(
            email='alice@example.com',
            password='securepassword',
            name='Alice',
        )
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )
    name = models.CharField(
        max_length=50,
        help_text="Display name shown to other users",
    )
    avatar = models.URLField(
        max_length=500,
        blank=True,
        help_text="Avatar image URL",
    )
    bio = models.CharField(
        max_length=200,
        blank=True,
        help_text="Short description shown on the user's profile",
    )

    # Presence
    is_online = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether the user is currently online",
    )
    last_seen = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the user last connected, disconnected or changed status",
    )
    channel_name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Channels channel of the live WebSocket connection, empty when none",
    )

    blocked_users = models.ManyToManyField(
        "self",
        symmetrical=False,
        related_name="blocked_by",
        blank=True,
        help_text="Users this user has blocked",
    )

    # Account status flags
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    # Timestamps
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        db_table = "authentication_user"
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]
        indexes = [
            models.Index(fields=["name"], name="auth_user_name_idx"),
        ]

    def __str__(self):
        """Return the user's email as string representation."""
        return self.email

    def get_full_name(self):
        return self.name or self.email

    def get_short_name(self):
        return self.name or self.email.split("@")[0]

    def has_blocked(self, other):
        """Return True if this user has blocked ``other``."""
        return self.blocked_users.filter(pk=other.pk).exists()
