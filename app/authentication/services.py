"""
Authentication services.

This module provides:
- AuthService: registration, login, logout, password changes, token issue
- UserService: directory queries, status updates and blocking

Related files:
    - models.py: User
    - views.py: REST endpoints calling these services
    - chat/services.py: PresenceService (connect/disconnect transitions)

Security:
    - Passwords hashed with Django's configured hasher
    - Refresh tokens are blacklisted on logout (simplejwt token_blacklist)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.contrib.auth import authenticate
from django.db.models import Q
from django.utils import timezone
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.models import User
from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from django.db.models import QuerySet


MIN_SEARCH_LENGTH = 2
SEARCH_RESULT_LIMIT = 10


class AuthService(BaseService):
    """
    Account lifecycle operations.

    Usage:
        result = AuthService.register("Alice", "alice@example.com", "secret1")
        if result.success:
            user = result.data
            tokens = AuthService.issue_tokens(user)
    """

    @staticmethod
    def issue_tokens(user: User) -> dict[str, str]:
        """Issue a refresh/access JWT pair for the user."""
        refresh = RefreshToken.for_user(user)
        return {"refresh": str(refresh), "access": str(refresh.access_token)}

    @classmethod
    def register(cls, name: str, email: str, password: str) -> ServiceResult[User]:
        """
        Create an account.

        Returns:
            ServiceResult with the new user, or EMAIL_EXISTS
        """
        email = User.objects.normalize_email(email).lower()
        if User.objects.filter(email__iexact=email).exists():
            return ServiceResult.failure(
                "User already exists with this email",
                error_code="EMAIL_EXISTS",
            )

        user = User.objects.create_user(email=email, password=password, name=name)
        cls.get_logger().info(f"Registered user {user.id}")
        return ServiceResult.success(user)

    @classmethod
    def login(cls, email: str, password: str) -> ServiceResult[User]:
        """
        Verify credentials and mark the user online.

        Returns:
            ServiceResult with the user, or INVALID_CREDENTIALS
        """
        user = authenticate(email=email.lower(), password=password)
        if user is None:
            return ServiceResult.failure(
                "Invalid email or password",
                error_code="INVALID_CREDENTIALS",
            )

        user.is_online = True
        user.last_seen = timezone.now()
        user.save(update_fields=["is_online", "last_seen", "updated_at"])

        cls.get_logger().info(f"User {user.id} logged in")
        return ServiceResult.success(user)

    @classmethod
    def logout(cls, user: User, refresh_token: str | None = None) -> ServiceResult[None]:
        """
        Mark the user offline and blacklist the refresh token if given.

        An unusable refresh token does not fail the logout; the presence
        transition is what clients depend on.
        """
        user.is_online = False
        user.last_seen = timezone.now()
        user.channel_name = ""
        user.save(update_fields=["is_online", "last_seen", "channel_name", "updated_at"])

        if refresh_token:
            try:
                RefreshToken(refresh_token).blacklist()
            except TokenError as e:
                cls.get_logger().warning(
                    f"Logout for user {user.id} with unusable refresh token: {e}"
                )

        cls.get_logger().info(f"User {user.id} logged out")
        return ServiceResult.success(None)

    @classmethod
    def update_profile(cls, user: User, **fields) -> ServiceResult[User]:
        """Update name, bio and/or avatar."""
        changed = []
        for field_name in ("name", "bio", "avatar"):
            if field_name in fields and fields[field_name] is not None:
                value = fields[field_name]
                setattr(user, field_name, value.strip() if isinstance(value, str) else value)
                changed.append(field_name)

        if changed:
            user.save(update_fields=[*changed, "updated_at"])
            cls.get_logger().info(f"Updated profile fields {changed} for user {user.id}")
        return ServiceResult.success(user)

    @classmethod
    def change_password(
        cls, user: User, current_password: str, new_password: str
    ) -> ServiceResult[None]:
        """Change the password after verifying the current one."""
        if not user.check_password(current_password):
            return ServiceResult.failure(
                "Current password is incorrect",
                error_code="INVALID_PASSWORD",
            )

        user.set_password(new_password)
        user.save(update_fields=["password", "updated_at"])
        cls.get_logger().info(f"Password changed for user {user.id}")
        return ServiceResult.success(None)


class UserService(BaseService):
    """User directory, status and blocking."""

    @staticmethod
    def directory(user: User, search: str | None = None) -> QuerySet[User]:
        """
        All active users except ``user``, online users first, then by name.

        Args:
            search: Optional case-insensitive filter on name or email
        """
        queryset = User.objects.filter(is_active=True).exclude(pk=user.pk)
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) | Q(email__icontains=search)
            )
        return queryset.order_by("-is_online", "name")

    @classmethod
    def search(cls, user: User, query: str | None) -> ServiceResult[list[User]]:
        """
        Search users by name or email.

        Users that ``user`` blocked, and users that blocked ``user``, are
        left out of the results.
        """
        query = (query or "").strip()
        if len(query) < MIN_SEARCH_LENGTH:
            return ServiceResult.failure(
                "Search query must be at least 2 characters long",
                error_code="QUERY_TOO_SHORT",
            )

        results = (
            User.objects.filter(is_active=True)
            .filter(Q(name__icontains=query) | Q(email__icontains=query))
            .exclude(pk=user.pk)
            .exclude(pk__in=user.blocked_users.values("pk"))
            .exclude(blocked_users=user)
            .order_by("-is_online", "name")[:SEARCH_RESULT_LIMIT]
        )
        return ServiceResult.success(list(results))

    @staticmethod
    def online(user: User) -> QuerySet[User]:
        """Online users other than ``user``."""
        return (
            User.objects.filter(is_active=True, is_online=True)
            .exclude(pk=user.pk)
            .order_by("name")
        )

    @classmethod
    def get_user(cls, user_id) -> ServiceResult[User]:
        user = User.objects.filter(pk=user_id, is_active=True).first()
        if user is None:
            return ServiceResult.failure("User not found", error_code="USER_NOT_FOUND")
        return ServiceResult.success(user)

    @classmethod
    def set_status(cls, user: User, is_online: bool) -> ServiceResult[User]:
        """Persist a manual presence change and refresh last_seen."""
        user.is_online = bool(is_online)
        user.last_seen = timezone.now()
        user.save(update_fields=["is_online", "last_seen", "updated_at"])
        cls.get_logger().info(f"User {user.id} set status online={user.is_online}")
        return ServiceResult.success(user)

    @classmethod
    def toggle_block(cls, user: User, target_id) -> ServiceResult[bool]:
        """
        Block ``target_id`` or, if already blocked, unblock it.

        Returns:
            ServiceResult with True if the target is now blocked
        """
        if str(target_id) == str(user.pk):
            return ServiceResult.failure(
                "You cannot block yourself",
                error_code="CANNOT_BLOCK_SELF",
            )

        target = User.objects.filter(pk=target_id).first()
        if target is None:
            return ServiceResult.failure("User not found", error_code="USER_NOT_FOUND")

        if user.has_blocked(target):
            user.blocked_users.remove(target)
            cls.get_logger().info(f"User {user.id} unblocked {target.id}")
            return ServiceResult.success(False)

        user.blocked_users.add(target)
        cls.get_logger().info(f"User {user.id} blocked {target.id}")
        return ServiceResult.success(True)
