"""
Collaborator interfaces for recurring pattern services.

The detection core depends only on these protocols. DynamoDB
implementations live in ``utils.db``; tests use in-memory ones.
"""

import uuid
from typing import List, Optional, Protocol, Union

from models.recurring_pattern import PatternStatus, RecurringPattern
from models.transaction_record import TransactionRecord


class TransactionSource(Protocol):
    """Read-only access to posted transactions."""

    def list_transactions(
        self, space_id: str, account_id: Optional[str] = None
    ) -> List[TransactionRecord]:
        ...


class PatternStore(Protocol):
    """Persistence for recurring patterns, keyed uniquely by (account_id, merchant_key)."""

    def find_by_account_and_key(
        self, account_id: str, merchant_key: str
    ) -> Optional[RecurringPattern]:
        ...

    def get(
        self, space_id: str, pattern_id: Union[str, uuid.UUID]
    ) -> Optional[RecurringPattern]:
        ...

    def list_by_space(
        self,
        space_id: str,
        status: Optional[PatternStatus] = None,
        include_detected: bool = False
    ) -> List[RecurringPattern]:
        """
        Patterns of a space ordered by next expected date.

        Without a status filter only confirmed and paused patterns are
        returned, plus detected ones when ``include_detected`` is set.
        """
        ...

    def list_all(self, space_id: str) -> List[RecurringPattern]:
        """Every pattern of a space, any status."""
        ...

    def create(self, pattern: RecurringPattern) -> RecurringPattern:
        """Insert a new pattern; raises ConflictError if the key is taken."""
        ...

    def upsert(self, pattern: RecurringPattern) -> RecurringPattern:
        """Write the whole pattern, replacing any stored version."""
        ...

    def update_tracking(self, pattern: RecurringPattern) -> RecurringPattern:
        """
        Write detection-owned fields only.

        Raises ConflictError if the stored status is no longer detected or
        confirmed.
        """
        ...

    def update_status(self, pattern: RecurringPattern) -> RecurringPattern:
        """Write status and its timestamps only, leaving tracking fields alone."""
        ...

    def delete(self, pattern: RecurringPattern) -> None:
        ...
