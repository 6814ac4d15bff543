"""
Base exception classes for application-wide error handling.

This module provides a standardized exception hierarchy that enables:
- Consistent error responses across REST and WebSocket entry points
- Machine-readable error codes for client handling
- An HTTP status per error category

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Malformed input (400)
    ├── AuthenticationError - Missing/invalid/expired credentials (401)
    ├── PermissionDeniedError - Not a member / not the admin / not the owner (403)
    ├── NotFoundError - Chat, message or user absent (404)
    └── ServerError - Unexpected persistence failure (500)

Usage:
    from core.exceptions import NotFoundError

    raise NotFoundError("Chat not found", error_code="CHAT_NOT_FOUND")

    # Convert to dict for API response
    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.status_code)

Note:
    REST views do not need to catch these: envelope_exception_handler (wired
    in REST_FRAMEWORK["EXCEPTION_HANDLER"]) renders them, and DRF's own
    exceptions, as {"success": false, "message": ...}.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, metadata, etc.)
        status_code: HTTP status used when the error reaches a REST client
    """

    default_error_code: str = "APPLICATION_ERROR"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to the failure envelope.

        Example:
            {
                "success": False,
                "message": "Chat not found",
                "error_code": "CHAT_NOT_FOUND",
            }
        """
        result: dict[str, Any] = {
            "success": False,
            "message": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for malformed payloads: missing content, unknown event types,
    search queries that are too short.
    """

    default_error_code: str = "VALIDATION_ERROR"
    status_code: int = status.HTTP_400_BAD_REQUEST


class AuthenticationError(BaseApplicationError):
    """
    Raised when a credential is missing, malformed, expired, or refers to a
    user that no longer exists.

    On a WebSocket this rejects the connection before any event is processed.
    """

    default_error_code: str = "AUTHENTICATION_FAILED"
    status_code: int = status.HTTP_401_UNAUTHORIZED


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when user lacks permission for an operation.

    Use for:
    - Acting on a chat the user is not a member of
    - Group administration by a non-admin
    - Editing or deleting someone else's message
    """

    default_error_code: str = "PERMISSION_DENIED"
    status_code: int = status.HTTP_403_FORBIDDEN


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Example:
        chat = Chat.objects.filter(id=chat_id).first()
        if not chat:
            raise NotFoundError("Chat not found", error_code="CHAT_NOT_FOUND")
    """

    default_error_code: str = "NOT_FOUND"
    status_code: int = status.HTTP_404_NOT_FOUND


class ServerError(BaseApplicationError):
    """
    Raised for unexpected failures, usually from the persistence store.

    The message is safe to show to clients; the original exception belongs
    in the log, not in the payload.
    """

    default_error_code: str = "SERVER_ERROR"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


def envelope_exception_handler(exc: Exception, context: dict) -> Response | None:
    """
    DRF exception handler producing the {success, message, data} envelope.

    Application errors are rendered from to_dict(). DRF errors (authentication,
    permission, parse and serializer errors) go through DRF's default handler
    first so headers such as WWW-Authenticate are kept, then get reshaped.
    Anything else becomes a ServerError envelope unless DEBUG is on.
    """
    if isinstance(exc, BaseApplicationError):
        if exc.status_code >= 500:
            logger.error(f"Unhandled application error: {exc!r}")
        return Response(exc.to_dict(), status=exc.status_code)

    response = exception_handler(exc, context)
    if response is None:
        if settings.DEBUG:
            # Let Django render the traceback page
            return None
        view = context.get("view")
        logger.error(
            f"Unhandled error in {view.__class__.__name__ if view else 'unknown view'}",
            exc_info=exc,
        )
        error = ServerError("Internal server error")
        return Response(error.to_dict(), status=error.status_code)

    detail = response.data
    if isinstance(detail, dict) and "detail" in detail:
        message = str(detail["detail"])
        errors = None
    elif isinstance(detail, dict) and detail:
        # Surface the first field error as the human-readable message
        field, messages = next(iter(detail.items()))
        first = messages[0] if isinstance(messages, list) and messages else messages
        message = str(first) if field == "non_field_errors" else f"{field}: {first}"
        errors = detail
    elif isinstance(detail, list) and detail:
        message = str(detail[0])
        errors = None
    else:
        message = str(detail)
        errors = None

    response.data = {"success": False, "message": message}
    if errors:
        response.data["errors"] = errors
    return response
