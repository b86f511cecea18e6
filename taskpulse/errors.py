"""
Error taxonomy.

Services raise these; the Api boundary turns them into status codes. Store
detail never leaves the process: StoreFailure carries a generic message and
the original exception is only logged.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TaskPulseError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(TaskPulseError):
    """Task or open entry is absent, or not owned by the caller."""
    status_code = 404


class AuthenticationError(TaskPulseError):
    """No verified user id reached the boundary."""
    status_code = 401


class ConflictError(TaskPulseError):
    """A timer is already running for the task."""
    status_code = 400


class ValidationError(TaskPulseError):
    """Malformed id, date range or field value."""
    status_code = 400


class StoreFailure(TaskPulseError):
    """The underlying database failed."""
    status_code = 500


class AlreadyOpenError(Exception):
    """
    Raised by the store when the open-entry insert loses to another writer.

    Only the TimeTrackingManager sees this; it becomes a ConflictError.
    """
