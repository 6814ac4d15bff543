"""
Inbound WebSocket event schemas.

Clients send JSON text frames of the form::

    {"event": "<name>", "data": {...}}

Each event name maps to a serializer that validates ``data`` before any
handler runs. The set of accepted events is closed: anything not in
INBOUND_EVENTS is rejected with an ``error`` frame.

Outbound frames use the same envelope; the names are listed in
OutboundEvent.
"""

from rest_framework import serializers

from chat.constants import MESSAGE_CONFIG, REACTION_CONFIG
from chat.models import MessageType
from core.exceptions import ValidationError


class OutboundEvent:
    """Names of events pushed to clients."""

    JOINED_CHAT = "joined_chat"
    LEFT_CHAT = "left_chat"
    MESSAGE_RECEIVED = "message_received"
    MESSAGE_EDITED = "message_edited"
    MESSAGE_DELETED = "message_deleted"
    USER_TYPING = "user_typing"
    USER_STOPPED_TYPING = "user_stopped_typing"
    USER_STATUS_CHANGE = "user_status_change"
    NOTIFICATION = "notification"
    REACTION_ADDED = "reaction_added"
    REACTION_REMOVED = "reaction_removed"
    ERROR = "error"


class ChatRefEventSerializer(serializers.Serializer):
    """Payload of join_chat, leave_chat, typing and stop_typing."""

    chatId = serializers.IntegerField(min_value=1)


class SendMessageEventSerializer(serializers.Serializer):
    chatId = serializers.IntegerField(min_value=1)
    content = serializers.CharField(
        max_length=MESSAGE_CONFIG.MAX_CONTENT_LENGTH,
        required=False,
        allow_blank=True,
        default="",
    )
    messageType = serializers.ChoiceField(
        choices=[
            MessageType.TEXT,
            MessageType.IMAGE,
            MessageType.FILE,
        ],
        required=False,
        default=MessageType.TEXT,
    )
    replyTo = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class StatusUpdateEventSerializer(serializers.Serializer):
    isOnline = serializers.BooleanField()


class AddReactionEventSerializer(serializers.Serializer):
    messageId = serializers.IntegerField(min_value=1)
    emoji = serializers.CharField(max_length=REACTION_CONFIG.MAX_EMOJI_LENGTH)


class RemoveReactionEventSerializer(serializers.Serializer):
    messageId = serializers.IntegerField(min_value=1)


INBOUND_EVENTS: dict[str, type[serializers.Serializer]] = {
    "join_chat": ChatRefEventSerializer,
    "leave_chat": ChatRefEventSerializer,
    "send_message": SendMessageEventSerializer,
    "typing": ChatRefEventSerializer,
    "stop_typing": ChatRefEventSerializer,
    "user_status_update": StatusUpdateEventSerializer,
    "add_reaction": AddReactionEventSerializer,
    "remove_reaction": RemoveReactionEventSerializer,
}


class InvalidEvent(ValidationError):
    """Raised when an inbound frame is not a known, well-formed event."""

    default_error_code = "INVALID_EVENT"


def first_error(errors) -> str:
    """Flatten DRF errors into one 'field: message' string."""
    if isinstance(errors, dict):
        for field, value in errors.items():
            detail = first_error(value)
            return detail if field == "non_field_errors" else f"{field}: {detail}"
    if isinstance(errors, list) and errors:
        return first_error(errors[0])
    return str(errors)


def parse_event(frame) -> tuple[str, dict]:
    """
    Validate an inbound frame.

    Returns:
        (event name, validated payload)

    Raises:
        InvalidEvent: Frame is not an object, the event is unknown, or the
            payload fails validation
    """
    if not isinstance(frame, dict):
        raise InvalidEvent("Invalid frame: expected a JSON object")

    name = frame.get("event")
    serializer_class = INBOUND_EVENTS.get(name) if isinstance(name, str) else None
    if serializer_class is None:
        raise InvalidEvent(f"Unknown event: {name}")

    data = frame.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InvalidEvent(f"Invalid payload for {name}: expected a JSON object")

    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise InvalidEvent(f"Invalid payload for {name}: {first_error(serializer.errors)}")
    return name, dict(serializer.validated_data)
