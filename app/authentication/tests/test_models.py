"""
Tests for the User model and UserManager.

Covers:
- Email-based creation, normalization and password hashing
- Default display name and generated avatar
- Superuser flags
- Blocking relation
"""

import pytest

from authentication.managers import default_avatar_url
from authentication.models import User
from authentication.tests.factories import UserFactory


@pytest.mark.django_db
class TestUserManager:
    """Tests for UserManager.create_user / create_superuser."""

    def test_create_user_hashes_password(self):
        """Passwords are stored hashed, never as plain text."""
        user = User.objects.create_user(email="dana@example.com", password="secret1")

        assert user.password != "secret1"
        assert user.check_password("secret1")

    def test_create_user_normalizes_email_domain(self):
        """The domain part of the email is lowercased."""
        user = User.objects.create_user(email="dana@EXAMPLE.COM", password="secret1")

        assert user.email == "dana@example.com"

    def test_create_user_without_email_raises(self):
        """Email is the username field and is required."""
        with pytest.raises(ValueError, match="Email"):
            User.objects.create_user(email="", password="secret1")

    def test_name_defaults_to_email_local_part(self):
        """Users created without a name display their email local part."""
        user = User.objects.create_user(email="erin@example.com", password="secret1")

        assert user.name == "erin"

    def test_generated_avatar_uses_name(self):
        """Users without an avatar get a generated initials avatar."""
        user = User.objects.create_user(
            email="frank@example.com", password="secret1", name="Frank Ocean"
        )

        assert user.avatar == default_avatar_url("Frank Ocean")
        assert "Frank%20Ocean" in user.avatar

    def test_explicit_avatar_is_kept(self):
        """An avatar passed at creation is not replaced."""
        user = User.objects.create_user(
            email="gina@example.com",
            password="secret1",
            avatar="https://cdn.example.com/gina.png",
        )

        assert user.avatar == "https://cdn.example.com/gina.png"

    def test_create_user_without_password_is_unusable(self):
        user = User.objects.create_user(email="hank@example.com")

        assert not user.has_usable_password()

    def test_create_superuser_sets_flags(self):
        """Superusers are staff and superuser."""
        admin = User.objects.create_superuser(email="root@example.com", password="secret1")

        assert admin.is_staff
        assert admin.is_superuser

    def test_create_superuser_rejects_non_staff(self):
        with pytest.raises(ValueError, match="is_staff"):
            User.objects.create_superuser(
                email="root@example.com", password="secret1", is_staff=False
            )


@pytest.mark.django_db
class TestUserModel:
    """Tests for User fields and helpers."""

    def test_new_user_is_offline(self):
        """Presence starts offline with no live connection."""
        user = UserFactory()

        assert user.is_online is False
        assert user.last_seen is None
        assert user.channel_name == ""

    def test_str_is_email(self):
        user = UserFactory(email="ivy@example.com")

        assert str(user) == "ivy@example.com"

    def test_primary_key_is_uuid(self):
        user = UserFactory()

        assert len(str(user.pk)) == 36

    def test_blocking_is_one_directional(self):
        """Blocking someone does not make them block you."""
        alice = UserFactory()
        bob = UserFactory()

        alice.blocked_users.add(bob)

        assert alice.has_blocked(bob)
        assert not bob.has_blocked(alice)
        assert list(bob.blocked_by.all()) == [alice]
