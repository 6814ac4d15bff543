"""
Django admin configuration for the User model.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from authentication.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin for email-based users, including presence state."""

    list_display = (
        "email",
        "name",
        "is_online",
        "last_seen",
        "is_active",
        "is_staff",
        "date_joined",
    )
    list_filter = (
        "is_online",
        "is_active",
        "is_staff",
        "is_superuser",
        "date_joined",
    )
    search_fields = ("email", "name")
    ordering = ("-date_joined",)
    filter_horizontal = ("groups", "user_permissions", "blocked_users")

    fieldsets = (
        (None, {"fields": ("email", "password")}),
        ("Profile", {"fields": ("name", "avatar", "bio")}),
        ("Presence", {"fields": ("is_online", "last_seen", "channel_name")}),
        ("Blocking", {"fields": ("blocked_users",)}),
        (
            "Status",
            {"fields": ("is_active", "is_staff", "is_superuser")},
        ),
        (
            "Permissions",
            {"fields": ("groups", "user_permissions")},
        ),
        (
            "Important dates",
            {"fields": ("date_joined", "last_login")},
        ),
    )
    readonly_fields = ("date_joined", "last_login", "last_seen", "channel_name")

    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "name", "password1", "password2"),
            },
        ),
    )
