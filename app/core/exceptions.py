"""
Base exception classes for application-wide error handling.

This module provides the typed failures surfaced by the chat core:
- Consistent error payloads across WebSocket and service callers
- Machine-readable error codes for client handling
- Detailed error information for debugging

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Malformed input
    ├── NotFoundError - Referenced conversation/group/message/account absent
    ├── PermissionDeniedError - Actor lacks the required role or membership
    ├── ConflictError - Canonical-key race that exhausted its retries
    └── StorageError - Persistence failure

Usage:
    from core.exceptions import NotFoundError, PermissionDeniedError

    # Raise with message only
    raise NotFoundError("Group not found")

    # Raise with error code for client handling
    raise PermissionDeniedError("Only admins can update the group", error_code="ADMIN_REQUIRED")

    # Convert to dict for a transport error frame
    try:
        ...
    except BaseApplicationError as e:
        await self.send_json({"type": "error", **e.to_dict()})

Note:
    Only primary failures are raised. Push notifications and media cleanup
    failures are logged by the caller and never converted to these errors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (identities, ids, etc.)

    Example:
        try:
            registry.update(group_id, requester="dave", name="New name")
        except PermissionDeniedError as e:
            logger.warning(f"Update refused: {e.error_code}")
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for an error payload.

        Returns:
            Dict with error, error_code, and details keys

        Example:
            {
                "error": "Group not found",
                "error_code": "GROUP_NOT_FOUND",
                "details": {"group_id": "5f0c..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
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
    Raised when input is malformed.

    Use for:
    - Blank group names or empty message content
    - Media messages without a media reference
    - A direct conversation requested between an identity and itself

    Example:
        raise ValidationError("Group name cannot be blank", error_code="NAME_REQUIRED")
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a referenced resource is absent.

    Use for single-resource lookups where existence is expected (a group
    being posted to, an account being added). List queries return empty
    results instead.

    Example:
        raise NotFoundError(
            "Group not found",
            error_code="GROUP_NOT_FOUND",
            details={"group_id": str(group_id)},
        )
    """

    default_error_code: str = "NOT_FOUND"


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the actor lacks the required role or membership.

    Example:
        if not group.is_admin(requester):
            raise PermissionDeniedError(
                "Only admins can update group details",
                error_code="ADMIN_REQUIRED",
            )

    Note:
        Authentication (who the caller is) happens upstream. This is for
        authorization only.
    """

    default_error_code: str = "PERMISSION_DENIED"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with concurrent state changes.

    The conversation resolver raises this when a canonical-key race kept
    failing after its bounded retries. Callers should retry the resolve.

    Example:
        raise ConflictError(
            "Conversation creation raced too many times",
            error_code="CONVERSATION_CONFLICT",
            details={"conversation_id": key},
        )
    """

    default_error_code: str = "CONFLICT"


class StorageError(BaseApplicationError):
    """
    Raised when the persistent store fails.

    Wraps django.db.DatabaseError so callers see one typed failure
    regardless of the backend.

    Example:
        try:
            Conversation.objects.create(...)
        except DatabaseError as e:
            raise StorageError("Failed to persist conversation") from e
    """

    default_error_code: str = "STORAGE_ERROR"
