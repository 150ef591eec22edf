"""
Exception classes for the tracking core.

Every error the core raises derives from TrackingError and carries the
HTTP status the API layer answers with.
"""
from typing import Any, Dict, Optional

from fastapi import status


class TrackingError(Exception):
    """Base exception class for all tracking errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(TrackingError):
    """Malformed identifier, malformed URL or missing required field."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(TrackingError):
    """Referenced tenant or email does not exist."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource_type: str, resource_id: Any = None, tenant_id: Optional[str] = None):
        message = f"{resource_type} not found"
        if resource_id is not None:
            message = f"{resource_type} with id '{resource_id}' not found"
        details: Dict[str, Any] = {"resource_type": resource_type, "resource_id": resource_id}
        if tenant_id is not None:
            details["tenant_id"] = tenant_id
        super().__init__(message, details)


class StoreError(TrackingError):
    """The store failed to complete an operation."""


class StoreBusyError(StoreError):
    """A writer could not acquire the store within the write timeout. Safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Store is busy, retry later", timeout: Optional[float] = None):
        details = {"timeout": timeout} if timeout is not None else {}
        super().__init__(message, details)


class StoreCorruptionError(StoreError):
    """The store file is unreadable or inconsistent."""
