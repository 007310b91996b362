"""
Exceptions raised by recurring pattern detection and lifecycle operations.
"""

from typing import Optional


class RecurringPatternError(Exception):
    """Base class for recurring pattern errors."""


class ValidationError(RecurringPatternError, ValueError):
    """Bad caller input (maps to HTTP 400)."""


class PatternNotFound(ValidationError):
    """No pattern with the requested id exists in the space (maps to HTTP 404)."""

    def __init__(self, pattern_id: str, space_id: Optional[str] = None):
        self.pattern_id = pattern_id
        self.space_id = space_id
        super().__init__(f"Recurring pattern {pattern_id} not found")


class InvalidStateError(RecurringPatternError):
    """A user action is not allowed from the pattern's current status (HTTP 409)."""


class DetectionSkipped(RecurringPatternError):
    """A merchant group could not be classified; counted and logged, never fatal."""

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or reason)


class StorageError(RecurringPatternError):
    """A persistence collaborator failed."""


class ConflictError(StorageError):
    """A conditional write lost a race with another writer."""


class DetectionFailed(RecurringPatternError):
    """
    A collaborator failed during a detection run.

    Carries how many patterns were already written before the failure so
    the caller can decide whether to retry.
    """

    def __init__(self, space_id: str, created: int = 0, updated: int = 0,
                 cause: Optional[BaseException] = None):
        self.space_id = space_id
        self.created = created
        self.updated = updated
        self.cause = cause
        super().__init__(
            f"Detection failed for space {space_id} after creating {created} "
            f"and updating {updated} patterns: {cause}"
        )
