"""
WebSocket consumer for the chat application.

One connection per user carries events for all of the user's chats.

Consumers:
    ChatConsumer: Presence binding, inbound event dispatch, typing timers

Authentication:
    JWTAuthMiddleware resolves the handshake token. If it failed, the
    consumer accepts, sends ``error{message}`` and closes with code 4001
    before any event is processed.

Channel Groups:
    user_<user id>: joined on connect; targeted events (messages,
        notifications)
    chat_<chat id>: joined on connect for every current membership and on
        join_chat; chat-wide events (typing, presence, reactions, edits)

Frames:
    Inbound and outbound frames are ``{"event": <name>, "data": {...}}``.
    See events.py for the accepted inbound events.

Lifecycle:
    connect: register in the ConnectionRegistry, persist online state and
        join groups before accepting, then tell co-members the user is
        online
    disconnect: exactly once; persist offline state, unregister, clear
        typing entries and tell co-members; failures are logged and
        swallowed. A connection replaced by a newer one of the same user
        (before or during teardown) leaves presence alone and only ends
        the typing episodes it started
    chat.membership_ended: sent to user_<id> when the user leaves or is
        removed from a chat; the connection drops that chat_<id> group
"""

from __future__ import annotations

import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from chat.apps import get_registry
from chat.broadcast import (
    chat_group,
    deliver_message,
    prepare_message_fanout,
    reactions_payload,
    send_status_change,
    send_stopped_typing,
    send_to_chat,
    user_group,
    user_payload,
)
from chat.events import InvalidEvent, OutboundEvent, parse_event
from chat.middleware import NO_TOKEN, SUBPROTOCOL_PREFIX
from chat.services import (
    ChatService,
    MessageService,
    PresenceService,
    ReactionService,
    TypingService,
)
from chat.typing import TypingTimer

logger = logging.getLogger(__name__)

AUTH_FAILED_CLOSE_CODE = 4001

# Messages for membership failures, per event
DENIED_MESSAGES = {
    "join_chat": "Not authorized to join this chat",
    "send_message": "Not authorized to send message to this chat",
}

# Messages for unexpected failures, per event
FAILURE_MESSAGES = {
    "join_chat": "Failed to join chat",
    "leave_chat": "Failed to leave chat",
    "send_message": "Failed to send message",
    "typing": "Failed to update typing status",
    "stop_typing": "Failed to update typing status",
    "user_status_update": "Failed to update status",
    "add_reaction": "Failed to add reaction",
    "remove_reaction": "Failed to remove reaction",
}

MEMBERSHIP_ERROR_CODES = {"CHAT_NOT_FOUND", "NOT_MEMBER"}


class ChatConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for real-time chat.

    Handles:
        - Connection authentication result and presence
        - Joining/leaving chat rooms
        - Sending messages
        - Typing indicators with server-side expiry
        - Manual status updates
        - Reactions

    Attributes:
        registry: ConnectionRegistry shared by the process
        user: Authenticated user (None when authentication failed)
        user_id: String form of the user's id
        typing_timer: Pending typing expiries of this connection
    """

    def __init__(self, *args, registry=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.registry = registry if registry is not None else get_registry()
        self.user = None
        self.user_id: str | None = None
        self.user_data: dict = {}
        self.joined_groups: set[str] = set()
        self.typing_timer: TypingTimer | None = None
        self.torn_down = False

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def _offered_subprotocol(self) -> str | None:
        for subprotocol in self.scope.get("subprotocols", []):
            if subprotocol.startswith(SUBPROTOCOL_PREFIX):
                return subprotocol
        return None

    async def connect(self):
        user = self.scope.get("user")
        auth_error = self.scope.get("auth_error")

        if auth_error or user is None or not user.is_authenticated:
            message = auth_error or NO_TOKEN
            logger.warning(f"Rejected WebSocket connection: {message}")
            await self.accept(self._offered_subprotocol())
            await self.send_event(OutboundEvent.ERROR, {"message": message})
            await self.close(code=AUTH_FAILED_CLOSE_CODE)
            return

        # Presence and groups are bound before the handshake completes
        self.user = user
        self.user_id = str(user.pk)
        self.typing_timer = TypingTimer(self._expire_typing)

        self.registry.register(self.user_id, self.channel_name)
        chat_ids = await database_sync_to_async(PresenceService.mark_online)(
            user.pk, self.channel_name
        )

        await self._join_group(user_group(self.user_id))
        for chat_id in chat_ids:
            await self._join_chat_room(chat_id)

        await self.accept(self._offered_subprotocol())

        user.is_online = True
        self.user_data = await database_sync_to_async(user_payload)(user)
        await send_status_change(self.user_id, chat_ids, True, self.user_data)

        logger.info(
            f"User {self.user_id} connected with {self.channel_name} ({len(chat_ids)} chats)"
        )

    async def disconnect(self, close_code):
        if self.user_id is None or self.torn_down:
            return
        self.torn_down = True

        try:
            pending_typing = self.typing_timer.drain() if self.typing_timer is not None else []
            await self._teardown(pending_typing)
        except Exception:
            logger.exception(f"Disconnect handling failed for user {self.user_id}")
        finally:
            await self._leave_all_groups()

        logger.info(f"User {self.user_id} disconnected ({close_code})")

    def _superseded(self) -> bool:
        current = self.registry.lookup(self.user_id)
        return current is not None and current.channel_name != self.channel_name

    async def _teardown(self, pending_typing) -> None:
        if self._superseded():
            logger.info(f"Superseded connection of user {self.user_id} closed")
            await self._expire_pending(pending_typing)
            return

        released = await database_sync_to_async(PresenceService.mark_offline)(
            self.user_id, self.channel_name
        )
        self.registry.unregister(self.user_id, self.channel_name)
        if not released or self._superseded():
            # Another connection took over the stored handle while this one closed
            logger.info(f"User {self.user_id} presence owned by another connection")
            await self._expire_pending(pending_typing)
            return

        chat_ids = await database_sync_to_async(PresenceService.chat_ids_for)(self.user_id)
        await database_sync_to_async(TypingService.clear_for_user)(self.user_id, chat_ids)

        self.user.is_online = False
        user_data = await database_sync_to_async(user_payload)(self.user)
        await send_status_change(self.user_id, chat_ids, False, user_data)
        for chat_id in chat_ids:
            await send_stopped_typing(chat_id, self.user_id)

    async def _join_group(self, group: str) -> None:
        await self.channel_layer.group_add(group, self.channel_name)
        self.joined_groups.add(group)

    async def _join_chat_room(self, chat_id) -> None:
        await self._join_group(chat_group(chat_id))
        self.registry.join_room(self.user_id, chat_id)

    async def _leave_all_groups(self) -> None:
        for group in list(self.joined_groups):
            try:
                await self.channel_layer.group_discard(group, self.channel_name)
            except Exception:
                logger.exception(f"Failed to leave group {group}")
        self.joined_groups.clear()

    # =========================================================================
    # Inbound frames
    # =========================================================================

    async def receive(self, text_data=None, bytes_data=None, **kwargs):
        if self.user is None:
            return
        try:
            content = json.loads(text_data) if text_data is not None else None
        except ValueError:
            await self.send_error("Invalid frame: expected JSON text")
            return
        if content is None:
            await self.send_error("Invalid frame: expected JSON text")
            return
        await self.receive_json(content, **kwargs)

    async def receive_json(self, content, **kwargs):
        try:
            name, data = parse_event(content)
        except InvalidEvent as e:
            logger.info(f"Rejected frame from user {self.user_id}: {e.message}")
            await self.send_error(e.message)
            return

        handler = getattr(self, f"handle_{name}")
        try:
            await handler(data)
        except Exception:
            logger.exception(f"Error handling {name} for user {self.user_id}")
            await self.send_error(FAILURE_MESSAGES.get(name, "Failed to process event"))

    async def send_event(self, event: str, data: dict) -> None:
        await self.send_json({"event": event, "data": data})

    async def send_error(self, message: str) -> None:
        await self.send_event(OutboundEvent.ERROR, {"message": message})

    async def _send_failure(self, event: str, result) -> None:
        if result.error_code in MEMBERSHIP_ERROR_CODES and event in DENIED_MESSAGES:
            message = DENIED_MESSAGES[event]
        else:
            message = result.error
        logger.info(f"{event} by user {self.user_id} refused: {result.error_code}")
        await self.send_error(message)

    # =========================================================================
    # Event handlers
    # =========================================================================

    async def handle_join_chat(self, data: dict) -> None:
        chat_id = data["chatId"]
        result = await database_sync_to_async(ChatService.mark_read)(chat_id, self.user)
        if not result:
            await self._send_failure("join_chat", result)
            return

        await self._join_chat_room(chat_id)
        await self.send_event(OutboundEvent.JOINED_CHAT, {"chatId": chat_id})

    async def handle_leave_chat(self, data: dict) -> None:
        chat_id = data["chatId"]
        group = chat_group(chat_id)
        await self.channel_layer.group_discard(group, self.channel_name)
        self.joined_groups.discard(group)
        self.registry.leave_room(self.user_id, chat_id)
        await self.send_event(OutboundEvent.LEFT_CHAT, {"chatId": chat_id})

    async def handle_send_message(self, data: dict) -> None:
        chat_id = data["chatId"]
        result = await database_sync_to_async(MessageService.send_message)(
            sender=self.user,
            chat_id=chat_id,
            content=data.get("content", ""),
            message_type=data.get("messageType"),
            reply_to_id=data.get("replyTo"),
        )
        if not result:
            await self._send_failure("send_message", result)
            return

        sent = result.data
        fanout = await database_sync_to_async(prepare_message_fanout)(sent.message)
        if sent.stopped_typing:
            self.typing_timer.cancel(chat_id, self.user_id)
            await send_stopped_typing(chat_id, self.user_id)
        await deliver_message(fanout, self.registry)

    async def handle_typing(self, data: dict) -> None:
        chat_id = data["chatId"]
        result = await database_sync_to_async(TypingService.start_typing)(chat_id, self.user)
        if not result:
            await self._send_failure("typing", result)
            return

        self.typing_timer.arm(chat_id, self.user_id, result.data)
        await send_to_chat(
            chat_id,
            OutboundEvent.USER_TYPING,
            {"userId": self.user_id, "user": self.user_data, "chatId": chat_id},
            exclude_user=self.user_id,
        )

    async def handle_stop_typing(self, data: dict) -> None:
        chat_id = data["chatId"]
        result = await database_sync_to_async(TypingService.stop_typing)(chat_id, self.user)
        if not result:
            await self._send_failure("stop_typing", result)
            return

        self.typing_timer.cancel(chat_id, self.user_id)
        await send_stopped_typing(chat_id, self.user_id)

    async def handle_user_status_update(self, data: dict) -> None:
        is_online = data["isOnline"]
        chat_ids = await database_sync_to_async(PresenceService.set_status)(
            self.user, is_online
        )
        self.user_data = await database_sync_to_async(user_payload)(self.user)
        await send_status_change(self.user_id, chat_ids, is_online, self.user_data)

    async def handle_add_reaction(self, data: dict) -> None:
        message_id = data["messageId"]
        result = await database_sync_to_async(ReactionService.add_reaction)(
            message_id, self.user, data["emoji"]
        )
        if not result:
            await self._send_failure("add_reaction", result)
            return

        payload = await database_sync_to_async(reactions_payload)(message_id)
        await send_to_chat(result.data.chat_id, OutboundEvent.REACTION_ADDED, payload)

    async def handle_remove_reaction(self, data: dict) -> None:
        message_id = data["messageId"]
        result = await database_sync_to_async(ReactionService.remove_reaction)(
            message_id, self.user
        )
        if not result:
            await self._send_failure("remove_reaction", result)
            return

        payload = await database_sync_to_async(reactions_payload)(message_id)
        await send_to_chat(result.data.chat_id, OutboundEvent.REACTION_REMOVED, payload)

    async def _expire_typing(self, chat_id: str, user_id: str, stamp: float) -> None:
        cleared = await database_sync_to_async(TypingService.expire)(chat_id, user_id, stamp)
        if cleared:
            await send_stopped_typing(int(chat_id), user_id)

    async def _expire_pending(self, pending_typing) -> None:
        """End typing episodes this connection started and never saw expire."""
        for chat_id, user_id, stamp in pending_typing:
            await self._expire_typing(chat_id, user_id, stamp)

    # =========================================================================
    # Channel layer events
    # =========================================================================

    async def chat_event(self, event):
        """Forward a chat.event group message unless it excludes this user."""
        if event.get("exclude_user") and event["exclude_user"] == self.user_id:
            return
        await self.send_event(event["event"], event["data"])

    async def chat_membership_ended(self, event):
        """Stop receiving a chat's events after leaving or being removed."""
        chat_id = event["chat_id"]
        group = chat_group(chat_id)
        await self.channel_layer.group_discard(group, self.channel_name)
        self.joined_groups.discard(group)
        self.registry.leave_room(self.user_id, chat_id)
        if self.typing_timer is not None:
            self.typing_timer.cancel(chat_id, self.user_id)
        # Whichever of this and a firing deadline clears the entry announces the stop
        cleared = await database_sync_to_async(TypingService.clear)(chat_id, self.user_id)
        if cleared:
            await send_stopped_typing(chat_id, self.user_id)
        logger.info(f"User {self.user_id} unsubscribed from chat {chat_id}: membership ended")
