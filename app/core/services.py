"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with common service utilities

Service Layer Philosophy:
    Services encapsulate business logic separate from views, consumers and
    models. Both the REST views and the WebSocket consumer call the same
    service methods, so a mutation behaves identically whichever way it
    arrives.

Pattern Comparison:
    - ServiceResult: Use for expected failures (validation, business rules)
    - Exceptions: Use for unexpected failures (database errors, bugs)

Usage:
    from core.services import BaseService, ServiceResult

    class ChatService(BaseService):
        @classmethod
        def rename_group(cls, chat, user, name) -> ServiceResult[Chat]:
            if chat.admin_id != user.id:
                return ServiceResult.failure(
                    "Only group admin can perform this action",
                    error_code="NOT_ADMIN",
                )
            chat.name = name
            chat.save(update_fields=["name", "updated_at"])
            cls.get_logger().info(f"Renamed chat {chat.id}")
            return ServiceResult.success(chat)

    # In view
    result = ChatService.rename_group(chat, request.user, name)
    if not result.success:
        return error_response(result)

Related:
    - core.exceptions: For unexpected/exceptional errors
    - core.responses: Rendering results into the API envelope
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

# Generic type for ServiceResult data
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Provides consistent success/failure handling without exceptions.
    Use this for expected failures (validation errors, business rule violations).

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures

    Usage:
        # Success case
        return ServiceResult.success(message)

        # Failure case
        return ServiceResult.failure("Chat not found", "CHAT_NOT_FOUND")

        # Check result
        result = MessageService.send_message(...)
        if result.success:
            message = result.data
        else:
            print(f"Error: {result.error} ({result.error_code})")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T = None) -> ServiceResult[T]:
        """
        Create a successful result.

        Args:
            data: The result data

        Returns:
            ServiceResult with success=True and data set
        """
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            errors: Field-level errors (for validation failures)

        Returns:
            ServiceResult with success=False and error details
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    def to_response(self) -> dict[str, Any]:
        """
        Convert to the API envelope.

        Returns:
            Dict with success status and data or error details
        """
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "message": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def __bool__(self) -> bool:
        """
        Allow using result in boolean context.

        Example:
            result = ReactionService.add_reaction(message, user, "👍")
            if result:  # Same as: if result.success
                ...
        """
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging setup per service
    - Database transaction management

    Design Notes:
        - Use @staticmethod or @classmethod (no instance state)
        - Services should be stateless
        - Use ServiceResult for expected failures
        - Raise exceptions for unexpected failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        All database operations within this context manager are
        wrapped in a transaction. If any operation fails, all
        changes are rolled back.

        Example:
            with cls.atomic():
                message = Message.objects.create(...)
                chat.latest_message = message
                chat.save(update_fields=["latest_message", "updated_at"])
        """
        with transaction.atomic():
            yield
