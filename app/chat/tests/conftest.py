"""
Test configuration and fixtures for chat tests.

This module provides:
- User fixtures (alice, bob, carol, dave)
- Chat fixtures (direct and group)
- Authenticated API clients
- A fresh ConnectionRegistry per test

Usage:
    def test_example(group_chat, alice_client):
        response = alice_client.get(f'/api/v1/chats/{group_chat.id}/messages/')
        assert response.status_code == 200
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from authentication.tests.factories import UserFactory
from chat.registry import ConnectionRegistry
from chat.tests.factories import DirectChatFactory, GroupChatFactory


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def alice(db):
    return UserFactory(name="Alice", email="alice@example.com")


@pytest.fixture
def bob(db):
    return UserFactory(name="Bob", email="bob@example.com")


@pytest.fixture
def carol(db):
    return UserFactory(name="Carol", email="carol@example.com")


@pytest.fixture
def dave(db):
    """A user who is not a member of any fixture chat."""
    return UserFactory(name="Dave", email="dave@example.com")


# =============================================================================
# Chat Fixtures
# =============================================================================


@pytest.fixture
def direct_chat(alice, bob):
    """Direct chat between alice and bob."""
    return DirectChatFactory(user1=alice, user2=bob)


@pytest.fixture
def group_chat(alice, bob, carol):
    """Group chat administered by alice with bob and carol."""
    return GroupChatFactory(name="Weekend Trip", admin=alice, members=[bob, carol])


# =============================================================================
# API Client Fixtures
# =============================================================================


def make_client(user) -> APIClient:
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {AccessToken.for_user(user)}")
    return client


@pytest.fixture
def alice_client(alice):
    return make_client(alice)


@pytest.fixture
def bob_client(bob):
    return make_client(bob)


@pytest.fixture
def dave_client(dave):
    return make_client(dave)


# =============================================================================
# Realtime Fixtures
# =============================================================================


@pytest.fixture
def registry():
    """An empty connection registry, isolated from the app-wide one."""
    return ConnectionRegistry()
