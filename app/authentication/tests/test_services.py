"""
Tests for AuthService and UserService.

Test Organization:
    - Each service method has its own test class
    - Tests use descriptive names following the pattern: test_<scenario>_<expected_outcome>
"""

import pytest
from freezegun import freeze_time
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.models import User
from authentication.services import AuthService, UserService
from authentication.tests.factories import TEST_PASSWORD, UserFactory


# =============================================================================
# AuthService
# =============================================================================


@pytest.mark.django_db
class TestRegister:
    """Tests for AuthService.register."""

    def test_register_creates_user(self):
        result = AuthService.register("Carol", "carol@example.com", "secret1")

        assert result.success
        assert result.data.name == "Carol"
        assert result.data.check_password("secret1")

    def test_register_lowercases_email(self):
        result = AuthService.register("Carol", "Carol@Example.com", "secret1")

        assert result.data.email == "carol@example.com"

    def test_register_duplicate_email_fails(self, user):
        """Emails are unique regardless of case."""
        result = AuthService.register("Other", user.email.upper(), "secret1")

        assert not result.success
        assert result.error_code == "EMAIL_EXISTS"
        assert result.error == "User already exists with this email"
        assert User.objects.count() == 1


@pytest.mark.django_db
class TestLogin:
    """Tests for AuthService.login."""

    @freeze_time("2026-03-01 12:00:00")
    def test_login_marks_user_online(self, user):
        result = AuthService.login(user.email, TEST_PASSWORD)

        assert result.success
        user.refresh_from_db()
        assert user.is_online is True
        assert user.last_seen.isoformat().startswith("2026-03-01T12:00:00")

    def test_login_wrong_password_fails(self, user):
        result = AuthService.login(user.email, "wrong-password")

        assert not result.success
        assert result.error_code == "INVALID_CREDENTIALS"
        assert result.error == "Invalid email or password"

    def test_login_unknown_email_fails(self, db):
        result = AuthService.login("nobody@example.com", TEST_PASSWORD)

        assert result.error_code == "INVALID_CREDENTIALS"

    def test_login_inactive_user_fails(self, deactivated_user):
        result = AuthService.login(deactivated_user.email, TEST_PASSWORD)

        assert result.error_code == "INVALID_CREDENTIALS"

    def test_login_email_is_case_insensitive(self, user):
        result = AuthService.login(user.email.upper(), TEST_PASSWORD)

        assert result.success


@pytest.mark.django_db
class TestLogout:
    """Tests for AuthService.logout."""

    def test_logout_marks_user_offline(self, user):
        user.is_online = True
        user.channel_name = "specific.abc"
        user.save()

        result = AuthService.logout(user)

        assert result.success
        user.refresh_from_db()
        assert user.is_online is False
        assert user.channel_name == ""
        assert user.last_seen is not None

    def test_logout_blacklists_refresh_token(self, user):
        refresh = RefreshToken.for_user(user)

        AuthService.logout(user, str(refresh))

        assert BlacklistedToken.objects.filter(token__jti=refresh["jti"]).exists()

    def test_logout_with_garbage_token_still_succeeds(self, user):
        """An unusable refresh token does not prevent going offline."""
        result = AuthService.logout(user, "not-a-token")

        assert result.success
        user.refresh_from_db()
        assert user.is_online is False


@pytest.mark.django_db
class TestUpdateProfile:
    """Tests for AuthService.update_profile."""

    def test_update_profile_changes_given_fields_only(self, user):
        result = AuthService.update_profile(user, bio="  Hello there  ")

        assert result.success
        user.refresh_from_db()
        assert user.bio == "Hello there"
        assert user.name == "Alice"

    def test_update_profile_ignores_none(self, user):
        AuthService.update_profile(user, name=None, avatar="https://cdn.example.com/a.png")

        user.refresh_from_db()
        assert user.name == "Alice"
        assert user.avatar == "https://cdn.example.com/a.png"


@pytest.mark.django_db
class TestChangePassword:
    """Tests for AuthService.change_password."""

    def test_change_password_success(self, user):
        result = AuthService.change_password(user, TEST_PASSWORD, "newsecret")

        assert result.success
        user.refresh_from_db()
        assert user.check_password("newsecret")

    def test_change_password_wrong_current_fails(self, user):
        result = AuthService.change_password(user, "wrong", "newsecret")

        assert result.error_code == "INVALID_PASSWORD"
        user.refresh_from_db()
        assert user.check_password(TEST_PASSWORD)


# =============================================================================
# UserService
# =============================================================================


@pytest.mark.django_db
class TestDirectory:
    """Tests for UserService.directory."""

    def test_directory_excludes_self_and_inactive(self, user, other_user, deactivated_user):
        users = list(UserService.directory(user))

        assert users == [other_user]

    def test_directory_lists_online_users_first(self, user):
        zed = UserFactory(name="Zed", is_online=True)
        amy = UserFactory(name="Amy")

        assert list(UserService.directory(user)) == [zed, amy]

    def test_directory_search_filters_by_name_or_email(self, user):
        match_name = UserFactory(name="Marley")
        match_email = UserFactory(email="marley.fan@example.com", name="Fan")
        UserFactory(name="Other")

        users = set(UserService.directory(user, "marley"))

        assert users == {match_name, match_email}


@pytest.mark.django_db
class TestSearch:
    """Tests for UserService.search."""

    def test_search_short_query_fails(self, user):
        result = UserService.search(user, "a")

        assert result.error_code == "QUERY_TOO_SHORT"
        assert result.error == "Search query must be at least 2 characters long"

    def test_search_excludes_blocked_in_both_directions(self, user):
        blocked = UserFactory(name="Sam Blocked")
        blocker = UserFactory(name="Sam Blocker")
        visible = UserFactory(name="Sam Visible")
        user.blocked_users.add(blocked)
        blocker.blocked_users.add(user)

        result = UserService.search(user, "sam")

        assert result.data == [visible]

    def test_search_caps_results(self, user):
        for i in range(12):
            UserFactory(name=f"Robin {i:02d}")

        result = UserService.search(user, "robin")

        assert len(result.data) == 10


@pytest.mark.django_db
class TestSetStatus:
    """Tests for UserService.set_status."""

    def test_set_status_persists_and_touches_last_seen(self, user):
        result = UserService.set_status(user, True)

        assert result.success
        user.refresh_from_db()
        assert user.is_online is True
        assert user.last_seen is not None


@pytest.mark.django_db
class TestToggleBlock:
    """Tests for UserService.toggle_block."""

    def test_first_toggle_blocks(self, user, other_user):
        result = UserService.toggle_block(user, other_user.pk)

        assert result.data is True
        assert user.has_blocked(other_user)

    def test_second_toggle_unblocks(self, user, other_user):
        UserService.toggle_block(user, other_user.pk)

        result = UserService.toggle_block(user, other_user.pk)

        assert result.data is False
        assert not user.has_blocked(other_user)

    def test_cannot_block_self(self, user):
        result = UserService.toggle_block(user, user.pk)

        assert result.error_code == "CANNOT_BLOCK_SELF"

    def test_unknown_target_fails(self, user):
        result = UserService.toggle_block(user, "00000000-0000-0000-0000-000000000000")

        assert result.error_code == "USER_NOT_FOUND"
