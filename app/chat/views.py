"""
ViewSets for chat API.

This module provides REST API endpoints for the chat system:
- ChatViewSet: Chat listing, direct/group creation, group administration,
  message history and search
- MessageViewSet: Send, edit, delete, reactions, read receipts

URL Structure:
    /api/v1/chats/                          GET, POST (direct chat)
    /api/v1/chats/group/                    POST
    /api/v1/chats/{id}/                     DELETE
    /api/v1/chats/{id}/rename/              PUT
    /api/v1/chats/{id}/add/                 PUT
    /api/v1/chats/{id}/remove/              PUT
    /api/v1/chats/{id}/leave/               DELETE
    /api/v1/chats/{id}/read/                PUT
    /api/v1/chats/{id}/messages/            GET (?page=, ?limit=)
    /api/v1/chats/{id}/messages/search/     GET (?q=)
    /api/v1/messages/                       POST
    /api/v1/messages/{id}/                  PUT, DELETE
    /api/v1/messages/{id}/reactions/        POST, DELETE
    /api/v1/messages/{id}/read/             POST

Design Decisions:
    - All operations use the service layer, the same one the WebSocket
      consumer uses
    - Mutations with a real-time counterpart push their events through
      chat.broadcast, so connected clients cannot tell REST from WebSocket
    - All responses use the {success, message, data} envelope
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from chat.broadcast import (
    broadcast_membership_ended,
    broadcast_message_deleted,
    broadcast_message_edited,
    broadcast_new_message,
    broadcast_reactions,
    broadcast_stopped_typing,
    reactions_payload,
)
from chat.events import OutboundEvent
from chat.pagination import MessagePagination
from chat.serializers import (
    AccessChatSerializer,
    AddReactionSerializer,
    ChatSerializer,
    CreateGroupSerializer,
    EditMessageSerializer,
    GroupMemberSerializer,
    MessageSerializer,
    RenameGroupSerializer,
    SendMessageSerializer,
)
from chat.services import ChatService, MessageService, ReactionService
from core.responses import error_response, success_response


# =============================================================================
# Chats
# =============================================================================


@extend_schema_view(
    list=extend_schema(
        summary="List my chats",
        description="Chats ordered by latest activity, with unread counts and typing users.",
        tags=["Chats"],
        responses={200: ChatSerializer(many=True)},
    ),
    create=extend_schema(
        summary="Open a direct chat",
        description="Return the direct chat with the given user, creating it on first contact.",
        tags=["Chats"],
        request=AccessChatSerializer,
        responses={200: ChatSerializer},
    ),
    destroy=extend_schema(
        summary="Delete chat",
        description="Delete a chat and all its messages. Group chats: admin only.",
        tags=["Chats"],
    ),
)
class ChatViewSet(viewsets.GenericViewSet):
    """
    ViewSet for chats.

    Chat ids in URLs are integers; membership and admin rights are checked
    by ChatService.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = ChatSerializer
    pagination_class = MessagePagination
    lookup_value_regex = "[0-9]+"

    def _chat_response(self, chat, message="", status_code=status.HTTP_200_OK):
        chat = ChatService.with_members(chat.pk)
        data = ChatSerializer(chat, context={"user": self.request.user}).data
        return success_response(data, message, status_code)

    def list(self, request):
        chats = ChatService.chats_for_user(request.user)
        data = ChatSerializer(chats, many=True, context={"user": request.user}).data
        return success_response(data)

    def create(self, request):
        serializer = AccessChatSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ChatService.access_direct_chat(
            request.user, serializer.validated_data.get("userId")
        )
        if not result.success:
            return error_response(result)
        return self._chat_response(result.data, "Chat accessed successfully")

    def destroy(self, request, pk=None):
        result = ChatService.delete_chat(pk, request.user)
        if not result.success:
            return error_response(result)
        return success_response(message="Chat deleted successfully")

    @extend_schema(
        summary="Create group chat",
        tags=["Chats - Groups"],
        request=CreateGroupSerializer,
        responses={201: ChatSerializer},
    )
    @action(detail=False, methods=["post"])
    def group(self, request):
        serializer = CreateGroupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ChatService.create_group(
            creator=request.user,
            user_ids=serializer.validated_data["users"],
            name=serializer.validated_data["chatName"],
            description=serializer.validated_data.get("groupDescription", ""),
        )
        if not result.success:
            return error_response(result)
        return self._chat_response(
            result.data, "Group chat created successfully", status.HTTP_201_CREATED
        )

    @extend_schema(
        summary="Rename group",
        tags=["Chats - Groups"],
        request=RenameGroupSerializer,
        responses={200: ChatSerializer},
    )
    @action(detail=True, methods=["put"])
    def rename(self, request, pk=None):
        serializer = RenameGroupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ChatService.rename_group(pk, request.user, serializer.validated_data["chatName"])
        if not result.success:
            return error_response(result)
        return self._chat_response(result.data, "Group chat renamed successfully")

    @extend_schema(
        summary="Add member to group",
        tags=["Chats - Groups"],
        request=GroupMemberSerializer,
        responses={200: ChatSerializer},
    )
    @action(detail=True, methods=["put"], url_path="add")
    def add_member(self, request, pk=None):
        serializer = GroupMemberSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ChatService.add_member(pk, request.user, serializer.validated_data["userId"])
        if not result.success:
            return error_response(result)
        return self._chat_response(result.data, "User added to group successfully")

    @extend_schema(
        summary="Remove member from group",
        tags=["Chats - Groups"],
        request=GroupMemberSerializer,
        responses={200: ChatSerializer},
    )
    @action(detail=True, methods=["put"], url_path="remove")
    def remove_member(self, request, pk=None):
        serializer = GroupMemberSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ChatService.remove_member(pk, request.user, serializer.validated_data["userId"])
        if not result.success:
            return error_response(result)
        broadcast_membership_ended(result.data.pk, serializer.validated_data["userId"])
        return self._chat_response(result.data, "User removed from group successfully")

    @extend_schema(summary="Leave group", tags=["Chats - Groups"], request=None)
    @action(detail=True, methods=["delete"])
    def leave(self, request, pk=None):
        result = ChatService.leave_group(pk, request.user)
        if not result.success:
            return error_response(result)
        broadcast_membership_ended(int(pk), request.user.pk)
        if result.data is None:
            return success_response(message="Group deleted as you were the last member")
        return success_response(message="Left group successfully")

    @extend_schema(summary="Mark chat as read", tags=["Chats"], request=None)
    @action(detail=True, methods=["put"])
    def read(self, request, pk=None):
        result = ChatService.mark_read(pk, request.user)
        if not result.success:
            return error_response(result)
        return success_response(message="Chat marked as read")

    @extend_schema(
        summary="Message history",
        description=(
            "Non-deleted messages, paged from the newest. Each page is in "
            "chronological order."
        ),
        tags=["Messages"],
        responses={200: MessageSerializer(many=True)},
    )
    @action(detail=True, methods=["get"])
    def messages(self, request, pk=None):
        result = MessageService.history(pk, request.user)
        if not result.success:
            return error_response(result)

        page = self.paginate_queryset(result.data)
        data = MessageSerializer(list(reversed(page)), many=True).data
        return self.get_paginated_response(data)

    @extend_schema(
        summary="Search messages",
        tags=["Messages"],
        parameters=[
            OpenApiParameter(
                name="q",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description="Search text (at least 2 characters)",
                required=True,
            ),
        ],
        responses={200: MessageSerializer(many=True)},
    )
    @action(detail=True, methods=["get"], url_path="messages/search")
    def search_messages(self, request, pk=None):
        result = MessageService.search(pk, request.user, request.query_params.get("q"))
        if not result.success:
            return error_response(result)
        return success_response(MessageSerializer(result.data, many=True).data)


# =============================================================================
# Messages
# =============================================================================


@extend_schema_view(
    create=extend_schema(
        summary="Send message",
        tags=["Messages"],
        request=SendMessageSerializer,
        responses={201: MessageSerializer},
    ),
    update=extend_schema(
        summary="Edit message",
        description="Sender only, within the edit window.",
        tags=["Messages"],
        request=EditMessageSerializer,
        responses={200: MessageSerializer},
    ),
    destroy=extend_schema(
        summary="Delete message",
        description="Sender, or the admin of a group chat. Soft delete.",
        tags=["Messages"],
    ),
)
class MessageViewSet(viewsets.GenericViewSet):
    """
    ViewSet for messages.

    Sending and reactions fan out exactly as their WebSocket counterparts;
    edits and deletions push message_edited / message_deleted to the chat.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = MessageSerializer
    lookup_value_regex = "[0-9]+"

    def create(self, request):
        serializer = SendMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = MessageService.send_message(
            sender=request.user,
            chat_id=data["chatId"],
            content=data.get("content", ""),
            message_type=data.get("messageType"),
            reply_to_id=data.get("replyTo"),
            attachment=data.get("attachment"),
        )
        if not result.success:
            return error_response(result)

        message = result.data.message
        if result.data.stopped_typing:
            broadcast_stopped_typing(message.chat_id, request.user.pk)
        broadcast_new_message(message)
        return success_response(
            MessageSerializer(message).data,
            "Message sent successfully",
            status.HTTP_201_CREATED,
        )

    def update(self, request, pk=None):
        serializer = EditMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MessageService.edit_message(pk, request.user, serializer.validated_data["content"])
        if not result.success:
            return error_response(result)

        broadcast_message_edited(result.data)
        return success_response(MessageSerializer(result.data).data, "Message edited successfully")

    def destroy(self, request, pk=None):
        result = MessageService.delete_message(pk, request.user)
        if not result.success:
            return error_response(result)

        broadcast_message_deleted(result.data)
        return success_response(message="Message deleted successfully")

    @extend_schema(
        summary="Add or remove my reaction",
        description=(
            "POST sets the caller's reaction, replacing any previous one. "
            "DELETE removes it."
        ),
        tags=["Messages - Reactions"],
        request=AddReactionSerializer,
    )
    @action(detail=True, methods=["post", "delete"])
    def reactions(self, request, pk=None):
        if request.method == "DELETE":
            result = ReactionService.remove_reaction(pk, request.user)
            event, message = OutboundEvent.REACTION_REMOVED, "Reaction removed successfully"
        else:
            serializer = AddReactionSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            result = ReactionService.add_reaction(
                pk, request.user, serializer.validated_data["emoji"]
            )
            event, message = OutboundEvent.REACTION_ADDED, "Reaction added successfully"

        if not result.success:
            return error_response(result)

        broadcast_reactions(result.data, event)
        return success_response(reactions_payload(result.data.pk), message)

    @extend_schema(summary="Mark message as read", tags=["Messages"], request=None)
    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        result = MessageService.mark_message_read(pk, request.user)
        if not result.success:
            return error_response(result)
        return success_response(message="Message marked as read")
