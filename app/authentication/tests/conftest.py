"""
Test configuration and fixtures for authentication tests.

Usage:
    def test_example(user, authenticated_client):
        response = authenticated_client.get('/api/v1/auth/me/')
        assert response.status_code == 200
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.models import User
from authentication.tests.factories import UserFactory


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a basic active user with the default test password."""
    return UserFactory(name="Alice", email="alice@example.com")


@pytest.fixture
def other_user(db):
    """Create a second active user."""
    return UserFactory(name="Bob", email="bob@example.com")


@pytest.fixture
def superuser(db):
    """Create a superuser with admin privileges."""
    return User.objects.create_superuser(
        email="admin@example.com", password="AdminPass123!"
    )


@pytest.fixture
def deactivated_user(db):
    """Create a deactivated user (is_active=False)."""
    return UserFactory(is_active=False)


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def authenticated_client(user):
    """API client authenticated as ``user`` with a JWT access token."""
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client


@pytest.fixture
def authenticated_client_factory(db):
    """
    Factory fixture building an authenticated client for any user.

    Usage:
        def test_something(authenticated_client_factory, other_user):
            client = authenticated_client_factory(other_user)
    """

    def _make(user):
        client = APIClient()
        refresh = RefreshToken.for_user(user)
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
        return client

    return _make


# =============================================================================
# Request Data Fixtures
# =============================================================================


@pytest.fixture
def registration_data():
    """Valid registration payload."""
    return {"name": "Carol", "email": "carol@example.com", "password": "secret1"}
