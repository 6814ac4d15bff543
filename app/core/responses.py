"""
Response helpers for the uniform API envelope.

Every REST endpoint answers with:

    {"success": true,  "message": "...", "data": ...}
    {"success": false, "message": "...", "error_code": "..."}

Services report expected failures as ServiceResult objects carrying an
error_code; error_response() picks the HTTP status for that code.

Usage:
    from core.responses import error_response, success_response

    result = ChatService.rename_group(chat, request.user, name)
    if not result.success:
        return error_response(result)
    return success_response(ChatSerializer(result.data).data, "Group chat renamed successfully")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import status
from rest_framework.response import Response

from core.exceptions import (
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    ServerError,
)

if TYPE_CHECKING:
    from typing import Any

    from core.services import ServiceResult

# Error codes that are not plain validation failures, by exception category
ERROR_STATUS_CODES: dict[str, int] = {
    **dict.fromkeys(
        ["AUTHENTICATION_FAILED", "INVALID_CREDENTIALS"], AuthenticationError.status_code
    ),
    **dict.fromkeys(
        ["NOT_MEMBER", "NOT_ADMIN", "NOT_OWNER", "PERMISSION_DENIED"],
        PermissionDeniedError.status_code,
    ),
    **dict.fromkeys(
        ["USER_NOT_FOUND", "CHAT_NOT_FOUND", "MESSAGE_NOT_FOUND", "NOT_FOUND"],
        NotFoundError.status_code,
    ),
    "SERVER_ERROR": ServerError.status_code,
}


def status_for_error(error_code: str | None) -> int:
    """Return the HTTP status for a service error code (400 when unmapped)."""
    return ERROR_STATUS_CODES.get(error_code or "", status.HTTP_400_BAD_REQUEST)


def success_response(
    data: Any = None,
    message: str = "",
    status_code: int = status.HTTP_200_OK,
) -> Response:
    """Wrap data in the success envelope."""
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return Response(body, status=status_code)


def error_response(result: ServiceResult) -> Response:
    """Render a failed ServiceResult with the status its error code maps to."""
    return Response(result.to_response(), status=status_for_error(result.error_code))
