"""
Serializers for authentication models.

Field names on the wire are camelCase (isOnline, lastSeen, ...) because the
same user representations are embedded in real-time event payloads, whose
shapes existing clients depend on.

Related files:
    - models.py: User
    - views.py: Views that use these serializers
    - chat/serializers.py: Embeds UserSummarySerializer in chats and messages

Security:
    - Password fields are write-only
    - channel_name and blocked_users never leave the server
"""

from rest_framework import serializers

from authentication.models import User


class UserSummarySerializer(serializers.ModelSerializer):
    """
    Public view of a user, embedded in chats, messages and events.
    """

    isOnline = serializers.BooleanField(source="is_online", read_only=True)
    lastSeen = serializers.DateTimeField(source="last_seen", read_only=True)

    class Meta:
        model = User
        fields = ["id", "name", "email", "avatar", "isOnline", "lastSeen"]
        read_only_fields = fields


class UserSerializer(UserSummarySerializer):
    """Full profile of a user."""

    createdAt = serializers.DateTimeField(source="date_joined", read_only=True)

    class Meta(UserSummarySerializer.Meta):
        fields = [*UserSummarySerializer.Meta.fields, "bio", "createdAt"]
        read_only_fields = fields


class RegisterSerializer(serializers.Serializer):
    """Registration input."""

    name = serializers.CharField(max_length=50, trim_whitespace=True)
    email = serializers.EmailField()
    password = serializers.CharField(min_length=6, write_only=True)


class LoginSerializer(serializers.Serializer):
    """Login input."""

    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)


class LogoutSerializer(serializers.Serializer):
    """Logout input. The refresh token is optional."""

    refresh = serializers.CharField(required=False, allow_blank=True)


class ProfileUpdateSerializer(serializers.Serializer):
    """Profile update input; every field is optional."""

    name = serializers.CharField(max_length=50, required=False)
    bio = serializers.CharField(max_length=200, required=False, allow_blank=True)
    avatar = serializers.URLField(max_length=500, required=False, allow_blank=True)


class ChangePasswordSerializer(serializers.Serializer):
    """Password change input."""

    currentPassword = serializers.CharField(write_only=True)
    newPassword = serializers.CharField(min_length=6, write_only=True)


class StatusUpdateSerializer(serializers.Serializer):
    """Manual presence update input."""

    isOnline = serializers.BooleanField()


class AuthPayloadSerializer(serializers.Serializer):
    """Response body of register/login: the user plus a token pair."""

    user = UserSerializer()
    access = serializers.CharField()
    refresh = serializers.CharField()
