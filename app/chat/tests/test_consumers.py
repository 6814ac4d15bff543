"""
Tests for ChatConsumer.

Full WebSocket sessions through JWTAuthMiddleware and an in-memory
channel layer. Each test builds its own application around an isolated
ConnectionRegistry.

Test Organization:
    - TestConnect: authentication and presence on connect/disconnect
    - TestRooms: join_chat / leave_chat
    - TestMessaging: send_message fan-out and notifications
    - TestTyping: typing indicators and their expiry
    - TestStatusAndReactions: user_status_update, add/remove_reaction
    - TestInvalidFrames: malformed input keeps the connection open
"""

from unittest.mock import patch

import pytest
from channels.db import database_sync_to_async
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.urls import path
from rest_framework_simplejwt.tokens import AccessToken

from chat.consumers import AUTH_FAILED_CLOSE_CODE, ChatConsumer
from chat.events import OutboundEvent
from chat.middleware import INVALID_TOKEN, NO_TOKEN, JWTAuthMiddleware
from chat.models import ChatMembership, Message, MessageReaction
from chat.services import MessageService, PresenceService
from chat.tests.factories import MessageFactory
from chat.typing import TypingIndicatorStore, typing_timeout

TIMEOUT = 3
MESSAGES_URL = "/api/v1/messages/"


def quiet_period() -> float:
    """Long enough for any pending typing expiry to have fired."""
    return typing_timeout() * 3


def build_application(registry):
    return JWTAuthMiddleware(
        URLRouter([path("ws/chat/", ChatConsumer.as_asgi(registry=registry))])
    )


async def open_socket(application, user=None, token=None):
    """Connect and return the communicator; fails the test if not accepted."""
    if token is None and user is not None:
        token = str(AccessToken.for_user(user))
    url = f"ws/chat/?token={token}" if token else "ws/chat/"
    communicator = WebsocketCommunicator(application, url)
    connected, _ = await communicator.connect(timeout=TIMEOUT)
    assert connected
    return communicator


async def receive(communicator) -> dict:
    return await communicator.receive_json_from(timeout=TIMEOUT)


async def receive_event(communicator, event: str) -> dict:
    """Skip frames until ``event`` arrives and return its data."""
    while True:
        frame = await receive(communicator)
        if frame["event"] == event:
            return frame["data"]


@pytest.fixture
def application(registry):
    return build_application(registry)


@pytest.fixture
def offline_task():
    with patch("chat.broadcast.send_offline_notification") as task:
        yield task


@pytest.mark.django_db(transaction=True)
class TestConnect:
    """Authentication and presence."""

    @pytest.mark.asyncio
    async def test_missing_token_rejected_with_4001(self, application):
        communicator = await open_socket(application)

        frame = await receive(communicator)
        assert frame == {"event": "error", "data": {"message": NO_TOKEN}}
        closed = await communicator.receive_output(timeout=TIMEOUT)
        assert closed["type"] == "websocket.close"
        assert closed["code"] == AUTH_FAILED_CLOSE_CODE

    @pytest.mark.asyncio
    async def test_invalid_token_rejected(self, application):
        communicator = await open_socket(application, token="not-a-jwt")

        frame = await receive(communicator)
        assert frame["data"]["message"] == INVALID_TOKEN
        closed = await communicator.receive_output(timeout=TIMEOUT)
        assert closed["code"] == AUTH_FAILED_CLOSE_CODE

    @pytest.mark.asyncio
    async def test_connect_registers_and_marks_online(self, application, registry, alice):
        communicator = await open_socket(application, alice)

        connection = registry.lookup(alice.pk)
        assert connection is not None
        await alice.arefresh_from_db()
        assert alice.is_online is True
        assert alice.channel_name == connection.channel_name
        assert await communicator.receive_nothing()

        await communicator.disconnect()

    @pytest.mark.asyncio
    async def test_co_members_see_connect_and_disconnect(
        self, application, registry, group_chat, alice, bob
    ):
        bob_socket = await open_socket(application, bob)
        alice_socket = await open_socket(application, alice)

        online = await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)
        assert online["userId"] == str(alice.pk)
        assert online["isOnline"] is True
        assert online["user"]["name"] == "Alice"

        await alice_socket.disconnect()

        offline = await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)
        assert offline["userId"] == str(alice.pk)
        assert offline["isOnline"] is False
        stopped = await receive_event(bob_socket, OutboundEvent.USER_STOPPED_TYPING)
        assert stopped == {"userId": str(alice.pk), "chatId": group_chat.pk}

        assert registry.lookup(alice.pk) is None
        await alice.arefresh_from_db()
        assert alice.is_online is False
        assert alice.channel_name == ""

        await bob_socket.disconnect()

    @pytest.mark.asyncio
    async def test_superseded_connection_close_keeps_user_online(
        self, application, registry, group_chat, alice, bob
    ):
        bob_socket = await open_socket(application, bob)
        first = await open_socket(application, alice)
        await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)
        second = await open_socket(application, alice)
        await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)
        current = registry.lookup(alice.pk).channel_name

        await first.disconnect()

        assert await bob_socket.receive_nothing(timeout=0.5)
        assert registry.lookup(alice.pk).channel_name == current
        await alice.arefresh_from_db()
        assert alice.is_online is True

        await second.disconnect()
        await bob_socket.disconnect()

    @pytest.mark.asyncio
    async def test_replaced_connection_ends_its_typing(
        self, settings, application, group_chat, alice, bob
    ):
        settings.CHAT_TYPING_TIMEOUT_SECONDS = 1
        bob_socket = await open_socket(application, bob)
        first = await open_socket(application, alice)
        await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)
        await first.send_json_to({"event": "typing", "data": {"chatId": group_chat.pk}})
        await receive_event(bob_socket, OutboundEvent.USER_TYPING)
        second = await open_socket(application, alice)
        await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)

        await first.disconnect()

        stopped = await receive_event(bob_socket, OutboundEvent.USER_STOPPED_TYPING)
        assert stopped == {"userId": str(alice.pk), "chatId": group_chat.pk}
        assert await bob_socket.receive_nothing(timeout=typing_timeout() + 0.5)
        assert TypingIndicatorStore.stamp_of(group_chat.pk, alice.pk) is None
        await alice.arefresh_from_db()
        assert alice.is_online is True

        await second.disconnect()
        await bob_socket.disconnect()

    @pytest.mark.asyncio
    async def test_reconnect_during_disconnect_keeps_user_online(
        self, application, registry, group_chat, alice, bob
    ):
        bob_socket = await open_socket(application, bob)
        alice_socket = await open_socket(application, alice)
        await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)
        mark_offline = PresenceService.mark_offline

        def reconnect_first(user_id, channel_name):
            # A new connection binds while the old one is being torn down
            registry.register(user_id, "specific.alice-new")
            PresenceService.mark_online(user_id, "specific.alice-new")
            return mark_offline(user_id, channel_name)

        with patch.object(PresenceService, "mark_offline", side_effect=reconnect_first):
            await alice_socket.disconnect()

        assert await bob_socket.receive_nothing(timeout=0.5)
        await alice.arefresh_from_db()
        assert alice.is_online is True
        assert alice.channel_name == "specific.alice-new"
        assert registry.lookup(alice.pk).channel_name == "specific.alice-new"

        await bob_socket.disconnect()


@pytest.mark.django_db(transaction=True)
class TestRooms:
    """join_chat / leave_chat."""

    @pytest.mark.asyncio
    async def test_join_chat_resets_unread(self, application, registry, group_chat, alice, bob):
        await database_sync_to_async(MessageService.send_message)(alice, group_chat.pk, "Hi")
        bob_socket = await open_socket(application, bob)

        await bob_socket.send_json_to({"event": "join_chat", "data": {"chatId": group_chat.pk}})

        assert await receive_event(bob_socket, OutboundEvent.JOINED_CHAT) == {
            "chatId": group_chat.pk
        }
        membership = await ChatMembership.objects.aget(chat=group_chat, user=bob)
        assert membership.unread_count == 0
        assert registry.is_subscribed(bob.pk, group_chat.pk)

        await bob_socket.disconnect()

    @pytest.mark.asyncio
    async def test_non_member_cannot_join(self, application, registry, group_chat, dave):
        dave_socket = await open_socket(application, dave)

        await dave_socket.send_json_to({"event": "join_chat", "data": {"chatId": group_chat.pk}})

        frame = await receive(dave_socket)
        assert frame == {
            "event": "error",
            "data": {"message": "Not authorized to join this chat"},
        }
        assert not registry.is_subscribed(dave.pk, group_chat.pk)

        await dave_socket.disconnect()

    @pytest.mark.asyncio
    async def test_leave_chat(self, application, registry, group_chat, bob):
        bob_socket = await open_socket(application, bob)
        assert registry.is_subscribed(bob.pk, group_chat.pk)

        await bob_socket.send_json_to({"event": "leave_chat", "data": {"chatId": group_chat.pk}})

        assert await receive_event(bob_socket, OutboundEvent.LEFT_CHAT) == {
            "chatId": group_chat.pk
        }
        assert not registry.is_subscribed(bob.pk, group_chat.pk)

        await bob_socket.disconnect()

    @pytest.mark.asyncio
    async def test_removed_member_stops_receiving_chat_events(
        self, application, registry, group_chat, alice, bob, alice_client
    ):
        bob_socket = await open_socket(application, bob)
        alice_socket = await open_socket(application, alice)
        await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)

        response = await database_sync_to_async(alice_client.put)(
            f"/api/v1/chats/{group_chat.pk}/remove/", {"userId": str(bob.pk)}, format="json"
        )
        assert response.status_code == 200
        assert await bob_socket.receive_nothing(timeout=0.3)
        assert not registry.is_subscribed(bob.pk, group_chat.pk)

        await alice_socket.send_json_to({"event": "typing", "data": {"chatId": group_chat.pk}})

        assert await bob_socket.receive_nothing(timeout=quiet_period())

        await alice_socket.disconnect()
        await bob_socket.disconnect()

    @pytest.mark.asyncio
    async def test_member_leaving_while_typing_is_announced_once(
        self, application, group_chat, alice, bob, bob_client
    ):
        alice_socket = await open_socket(application, alice)
        bob_socket = await open_socket(application, bob)
        await receive_event(alice_socket, OutboundEvent.USER_STATUS_CHANGE)
        await bob_socket.send_json_to({"event": "typing", "data": {"chatId": group_chat.pk}})
        await receive_event(alice_socket, OutboundEvent.USER_TYPING)

        response = await database_sync_to_async(bob_client.delete)(
            f"/api/v1/chats/{group_chat.pk}/leave/"
        )
        assert response.status_code == 200

        stopped = await receive_event(alice_socket, OutboundEvent.USER_STOPPED_TYPING)
        assert stopped == {"userId": str(bob.pk), "chatId": group_chat.pk}
        assert await alice_socket.receive_nothing(timeout=quiet_period())

        await alice_socket.disconnect()
        await bob_socket.disconnect()


@pytest.mark.django_db(transaction=True)
class TestMessaging:
    """send_message."""

    @pytest.mark.asyncio
    async def test_message_reaches_sender_and_members(
        self, application, offline_task, group_chat, alice, bob, carol
    ):
        bob_socket = await open_socket(application, bob)
        alice_socket = await open_socket(application, alice)
        await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)

        await alice_socket.send_json_to(
            {"event": "send_message", "data": {"chatId": group_chat.pk, "content": "Hello"}}
        )

        for socket in (alice_socket, bob_socket):
            data = await receive_event(socket, OutboundEvent.MESSAGE_RECEIVED)
            assert data["chatId"] == group_chat.pk
            assert data["message"]["content"] == "Hello"
            assert data["message"]["sender"]["id"] == str(alice.pk)
        assert await bob_socket.receive_nothing(timeout=0.2)
        offline_task.delay.assert_called_once()
        assert offline_task.delay.call_args.args[0] == str(carol.pk)
        assert await Message.objects.filter(chat=group_chat).acount() == 1

        await alice_socket.disconnect()
        await bob_socket.disconnect()

    @pytest.mark.asyncio
    async def test_unsubscribed_member_gets_notification(
        self, application, offline_task, group_chat, alice, bob
    ):
        bob_socket = await open_socket(application, bob)
        await bob_socket.send_json_to({"event": "leave_chat", "data": {"chatId": group_chat.pk}})
        await receive_event(bob_socket, OutboundEvent.LEFT_CHAT)
        alice_socket = await open_socket(application, alice)

        await alice_socket.send_json_to(
            {"event": "send_message", "data": {"chatId": group_chat.pk, "content": "Ping"}}
        )

        await receive_event(bob_socket, OutboundEvent.MESSAGE_RECEIVED)
        notification = await receive_event(bob_socket, OutboundEvent.NOTIFICATION)
        assert notification["type"] == "new_message"
        assert notification["chatId"] == group_chat.pk
        assert notification["message"]["content"] == "Ping"
        assert notification["sender"]["id"] == str(alice.pk)

        await alice_socket.disconnect()
        await bob_socket.disconnect()

    @pytest.mark.asyncio
    async def test_non_member_send_is_refused(self, application, group_chat, dave):
        dave_socket = await open_socket(application, dave)

        await dave_socket.send_json_to(
            {"event": "send_message", "data": {"chatId": group_chat.pk, "content": "Hi"}}
        )

        frame = await receive(dave_socket)
        assert frame["data"]["message"] == "Not authorized to send message to this chat"
        assert await Message.objects.acount() == 0

        await dave_socket.disconnect()

    @pytest.mark.asyncio
    async def test_send_clears_typing(self, application, offline_task, group_chat, alice, bob):
        bob_socket = await open_socket(application, bob)
        alice_socket = await open_socket(application, alice)
        await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)

        await alice_socket.send_json_to({"event": "typing", "data": {"chatId": group_chat.pk}})
        await receive_event(bob_socket, OutboundEvent.USER_TYPING)
        await alice_socket.send_json_to(
            {"event": "send_message", "data": {"chatId": group_chat.pk, "content": "Done"}}
        )

        frame = await receive(bob_socket)
        assert frame["event"] == OutboundEvent.USER_STOPPED_TYPING
        frame = await receive(bob_socket)
        assert frame["event"] == OutboundEvent.MESSAGE_RECEIVED
        assert TypingIndicatorStore.stamp_of(group_chat.pk, alice.pk) is None

        await alice_socket.disconnect()
        await bob_socket.disconnect()

    @pytest.mark.asyncio
    async def test_rest_send_while_typing_announces_stop_once(
        self, application, offline_task, group_chat, alice, bob, alice_client
    ):
        bob_socket = await open_socket(application, bob)
        alice_socket = await open_socket(application, alice)
        await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)
        await alice_socket.send_json_to({"event": "typing", "data": {"chatId": group_chat.pk}})
        await receive_event(bob_socket, OutboundEvent.USER_TYPING)

        response = await database_sync_to_async(alice_client.post)(
            MESSAGES_URL, {"chatId": group_chat.pk, "content": "Sent over REST"}, format="json"
        )
        assert response.status_code == 201

        frame = await receive(bob_socket)
        assert frame == {
            "event": OutboundEvent.USER_STOPPED_TYPING,
            "data": {"userId": str(alice.pk), "chatId": group_chat.pk},
        }
        data = await receive_event(bob_socket, OutboundEvent.MESSAGE_RECEIVED)
        assert data["message"]["content"] == "Sent over REST"
        # Alice's socket deadline finds the entry gone and stays silent
        assert await bob_socket.receive_nothing(timeout=quiet_period())

        await alice_socket.disconnect()
        await bob_socket.disconnect()


@pytest.mark.django_db(transaction=True)
class TestTyping:
    """typing / stop_typing and server-side expiry."""

    @pytest.mark.asyncio
    async def test_typing_reaches_others_only(self, application, group_chat, alice, bob):
        bob_socket = await open_socket(application, bob)
        alice_socket = await open_socket(application, alice)
        await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)

        await alice_socket.send_json_to({"event": "typing", "data": {"chatId": group_chat.pk}})

        data = await receive_event(bob_socket, OutboundEvent.USER_TYPING)
        assert data["userId"] == str(alice.pk)
        assert data["chatId"] == group_chat.pk
        assert data["user"]["name"] == "Alice"
        await alice_socket.send_json_to(
            {"event": "stop_typing", "data": {"chatId": group_chat.pk}}
        )

        stopped = await receive_event(bob_socket, OutboundEvent.USER_STOPPED_TYPING)
        assert stopped == {"userId": str(alice.pk), "chatId": group_chat.pk}
        # The cancelled deadline must not produce a second stop
        assert await bob_socket.receive_nothing(timeout=quiet_period())
        assert await alice_socket.receive_nothing(timeout=0.1)

        await alice_socket.disconnect()
        await bob_socket.disconnect()

    @pytest.mark.asyncio
    async def test_typing_expires(self, application, group_chat, alice, bob):
        bob_socket = await open_socket(application, bob)
        alice_socket = await open_socket(application, alice)
        await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)

        await alice_socket.send_json_to({"event": "typing", "data": {"chatId": group_chat.pk}})
        await receive_event(bob_socket, OutboundEvent.USER_TYPING)

        stopped = await receive_event(bob_socket, OutboundEvent.USER_STOPPED_TYPING)
        assert stopped["userId"] == str(alice.pk)
        assert TypingIndicatorStore.active_typers(group_chat.pk) == []
        assert await bob_socket.receive_nothing(timeout=quiet_period())

        await alice_socket.disconnect()
        await bob_socket.disconnect()

    @pytest.mark.asyncio
    async def test_non_member_typing_refused(self, application, group_chat, dave):
        dave_socket = await open_socket(application, dave)

        await dave_socket.send_json_to({"event": "typing", "data": {"chatId": group_chat.pk}})

        frame = await receive(dave_socket)
        assert frame["event"] == OutboundEvent.ERROR
        assert TypingIndicatorStore.active_typers(group_chat.pk) == []

        await dave_socket.disconnect()


@pytest.mark.django_db(transaction=True)
class TestStatusAndReactions:
    """user_status_update and reactions."""

    @pytest.mark.asyncio
    async def test_manual_status_update(self, application, group_chat, alice, bob):
        bob_socket = await open_socket(application, bob)
        alice_socket = await open_socket(application, alice)
        await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)

        await alice_socket.send_json_to(
            {"event": "user_status_update", "data": {"isOnline": False}}
        )

        data = await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)
        assert data["userId"] == str(alice.pk)
        assert data["isOnline"] is False
        await alice.arefresh_from_db()
        assert alice.is_online is False

        await alice_socket.disconnect()
        await bob_socket.disconnect()

    @pytest.mark.asyncio
    async def test_add_and_remove_reaction(self, application, group_chat, alice, bob):
        message = await database_sync_to_async(MessageFactory)(chat=group_chat, sender=alice)
        bob_socket = await open_socket(application, bob)
        alice_socket = await open_socket(application, alice)
        await receive_event(bob_socket, OutboundEvent.USER_STATUS_CHANGE)

        await bob_socket.send_json_to(
            {"event": "add_reaction", "data": {"messageId": message.pk, "emoji": "🔥"}}
        )

        for socket in (alice_socket, bob_socket):
            data = await receive_event(socket, OutboundEvent.REACTION_ADDED)
            assert data["messageId"] == message.pk
            assert [r["emoji"] for r in data["reactions"]] == ["🔥"]
            assert data["reactions"][0]["user"]["id"] == str(bob.pk)

        await bob_socket.send_json_to(
            {"event": "remove_reaction", "data": {"messageId": message.pk}}
        )

        data = await receive_event(alice_socket, OutboundEvent.REACTION_REMOVED)
        assert data == {"messageId": message.pk, "reactions": []}
        assert await MessageReaction.objects.acount() == 0

        await alice_socket.disconnect()
        await bob_socket.disconnect()

    @pytest.mark.asyncio
    async def test_reaction_on_missing_message(self, application, alice):
        alice_socket = await open_socket(application, alice)

        await alice_socket.send_json_to(
            {"event": "add_reaction", "data": {"messageId": 999999, "emoji": "👍"}}
        )

        frame = await receive(alice_socket)
        assert frame == {"event": "error", "data": {"message": "Message not found"}}

        await alice_socket.disconnect()


@pytest.mark.django_db(transaction=True)
class TestInvalidFrames:
    """Malformed input is answered with an error and the socket stays open."""

    @pytest.mark.asyncio
    async def test_unknown_event(self, application, alice):
        alice_socket = await open_socket(application, alice)

        await alice_socket.send_json_to({"event": "launch_rockets", "data": {}})

        frame = await receive(alice_socket)
        assert frame["data"]["message"] == "Unknown event: launch_rockets"

        await alice_socket.send_json_to({"event": "leave_chat", "data": {"chatId": 5}})
        assert await receive_event(alice_socket, OutboundEvent.LEFT_CHAT) == {"chatId": 5}

        await alice_socket.disconnect()

    @pytest.mark.asyncio
    async def test_non_json_text(self, application, alice):
        alice_socket = await open_socket(application, alice)

        await alice_socket.send_to(text_data="hello?")

        frame = await receive(alice_socket)
        assert frame["data"]["message"] == "Invalid frame: expected JSON text"

        await alice_socket.disconnect()

    @pytest.mark.asyncio
    async def test_invalid_payload(self, application, alice):
        alice_socket = await open_socket(application, alice)

        await alice_socket.send_json_to({"event": "join_chat", "data": {"chatId": "abc"}})

        frame = await receive(alice_socket)
        assert frame["event"] == OutboundEvent.ERROR
        assert frame["data"]["message"].startswith("Invalid payload for join_chat")

        await alice_socket.disconnect()
