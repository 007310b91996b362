"""
Recurring Pattern Models.

This module provides Pydantic models for rule-based recurring transaction
detection: the persisted pattern, the transient detection candidate, the
DTOs used for manual entry and user edits, and the result/summary shapes
returned to callers.
"""

import datetime as dt
import logging
import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing_extensions import Self

logger = logging.getLogger(__name__)

# Constants
TIMESTAMP_ERROR_MESSAGE = "Timestamp must be a positive integer representing milliseconds since epoch"
UNKNOWN_MERCHANT_KEY = "unknown"


def current_timestamp_ms() -> int:
    return int(dt.datetime.now(dt.timezone.utc).timestamp() * 1000)


class RecurrenceFrequency(str, Enum):
    """Recurrence interval of a pattern."""
    WEEKLY = "weekly"          # 7 days
    BIWEEKLY = "biweekly"      # 14 days
    MONTHLY = "monthly"        # +1 calendar month
    QUARTERLY = "quarterly"    # +3 calendar months
    YEARLY = "yearly"          # +12 calendar months


class PatternStatus(str, Enum):
    """Lifecycle status of a recurring pattern."""
    DETECTED = "detected"      # Found by a detection run, awaiting review
    CONFIRMED = "confirmed"    # User confirmed (or entered manually)
    DISMISSED = "dismissed"    # User said this is not recurring
    PAUSED = "paused"          # Tracking suspended by the user


# Statuses a detection run is allowed to refresh
TRACKED_STATUSES = (PatternStatus.DETECTED, PatternStatus.CONFIRMED)


class CandidatePattern(BaseModel):
    """
    In-memory detection result, prior to reconciliation with stored patterns.
    """
    space_id: str = Field(alias="spaceId")
    account_id: str = Field(alias="accountId")
    merchant_key: str = Field(alias="merchantKey")
    display_name: str = Field(alias="displayName")
    frequency: RecurrenceFrequency
    confidence: Decimal = Field(ge=0, le=1)
    expected_amount: Decimal = Field(alias="expectedAmount")
    amount_tolerance: Decimal = Field(alias="amountTolerance", ge=0)
    first_seen_date: dt.date = Field(alias="firstSeenDate")
    last_seen_date: dt.date = Field(alias="lastSeenDate")
    next_expected_date: dt.date = Field(alias="nextExpectedDate")
    occurrences: int = Field(ge=1)
    linked_transaction_ids: List[str] = Field(default_factory=list, alias="linkedTransactionIds")
    currency: Optional[str] = None

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str
        },
        use_enum_values=False
    )

    @property
    def identity(self) -> tuple:
        return (self.account_id, self.merchant_key)


class RecurringPattern(BaseModel):
    """
    A stored recurring pattern.

    Created by a detection run (status DETECTED) or manually by a user
    (status CONFIRMED). Detection runs may refresh amounts, dates and
    counters but never change ``status``.
    """
    pattern_id: uuid.UUID = Field(default_factory=uuid.uuid4, alias="patternId")
    space_id: str = Field(alias="spaceId")
    account_id: str = Field(alias="accountId")

    # Identity and labelling
    merchant_key: str = Field(alias="merchantKey")
    display_name: str = Field(alias="displayName")
    frequency: RecurrenceFrequency

    # Amount band
    expected_amount: Decimal = Field(alias="expectedAmount")
    amount_tolerance: Decimal = Field(default=Decimal("0"), alias="amountTolerance", ge=0)
    currency: Optional[str] = None

    status: PatternStatus = Field(default=PatternStatus.DETECTED)

    # Tracking
    first_seen_date: Optional[dt.date] = Field(default=None, alias="firstSeenDate")
    last_seen_date: Optional[dt.date] = Field(default=None, alias="lastSeenDate")
    next_expected_date: Optional[dt.date] = Field(default=None, alias="nextExpectedDate")
    occurrences: int = Field(default=0, ge=0)
    confidence: Decimal = Field(default=Decimal("0"), ge=0, le=1)
    linked_transaction_ids: List[str] = Field(default_factory=list, alias="linkedTransactionIds")

    # User-owned settings
    category_id: Optional[str] = Field(default=None, alias="categoryId")
    notes: Optional[str] = Field(default=None, max_length=1000)
    alert_enabled: bool = Field(default=True, alias="alertEnabled")
    alert_before_days: int = Field(default=3, alias="alertBeforeDays", ge=0, le=60)

    confirmed_at: Optional[int] = Field(default=None, alias="confirmedAt")
    dismissed_at: Optional[int] = Field(default=None, alias="dismissedAt")
    created_at: int = Field(default_factory=current_timestamp_ms, alias="createdAt")
    updated_at: int = Field(default_factory=current_timestamp_ms, alias="updatedAt")

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str,
            uuid.UUID: str
        },
        use_enum_values=False  # Preserve enum objects (not strings) for type safety
    )

    @field_validator('confirmed_at', 'dismissed_at', 'created_at', 'updated_at')
    @classmethod
    def check_positive_timestamp(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError(TIMESTAMP_ERROR_MESSAGE)
        return v

    @property
    def identity(self) -> tuple:
        return (self.account_id, self.merchant_key)

    def touch(self) -> None:
        self.updated_at = current_timestamp_ms()

    def update_model_details(self, update_data: 'RecurringPatternUpdate') -> bool:
        """
        Updates the pattern with data from a RecurringPatternUpdate DTO.
        Returns True if any fields were changed, False otherwise.
        """
        updated_fields = False

        update_dict = update_data.model_dump(exclude_unset=True, exclude_none=True, by_alias=False)

        for key, value in update_dict.items():
            if key not in ["pattern_id", "space_id", "account_id", "status", "created_at"] and hasattr(self, key):
                if getattr(self, key) != value:
                    setattr(self, key, value)
                    updated_fields = True

        if updated_fields:
            self.touch()
        return updated_fields

    def to_dynamodb_item(self) -> Dict[str, Any]:
        """Convert to DynamoDB item format."""
        data = self.model_dump(by_alias=True, exclude_none=True)

        data['patternId'] = str(self.pattern_id)
        data['frequency'] = self.frequency.value
        data['status'] = self.status.value

        # DynamoDB has no date type; ISO strings keep lexical ordering
        for key in ('firstSeenDate', 'lastSeenDate', 'nextExpectedDate'):
            if key in data:
                data[key] = data[key].isoformat()

        # Empty lists are legal in DynamoDB but pointless to store
        if not data.get('linkedTransactionIds'):
            data.pop('linkedTransactionIds', None)

        return data

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        """Create from DynamoDB item data."""
        converted_data = data.copy()

        int_fields = ['occurrences', 'alertBeforeDays', 'confirmedAt', 'dismissedAt',
                      'createdAt', 'updatedAt']
        for field in int_fields:
            if field in converted_data and isinstance(converted_data[field], Decimal):
                converted_data[field] = int(converted_data[field])

        if 'patternId' in converted_data and isinstance(converted_data['patternId'], str):
            converted_data['patternId'] = uuid.UUID(converted_data['patternId'])

        if 'status' in converted_data and isinstance(converted_data['status'], str):
            try:
                converted_data['status'] = PatternStatus(converted_data['status'])
            except ValueError:
                logger.warning(f"Invalid PatternStatus value: {converted_data['status']}")
                converted_data['status'] = PatternStatus.DETECTED

        if 'linkedTransactionIds' in converted_data:
            converted_data['linkedTransactionIds'] = [
                str(tid) for tid in converted_data['linkedTransactionIds'] or []
            ]

        return cls.model_validate(converted_data)


class RecurringPatternCreate(BaseModel):
    """
    Data Transfer Object for a manually entered recurring pattern.

    Manual patterns start CONFIRMED with full confidence.
    """
    account_id: str = Field(alias="accountId")
    merchant_name: str = Field(alias="merchantName", min_length=1, max_length=200)
    expected_amount: Decimal = Field(alias="expectedAmount")
    frequency: RecurrenceFrequency
    amount_tolerance: Optional[Decimal] = Field(default=None, alias="amountTolerance", ge=0)
    currency: Optional[str] = None
    last_seen_date: Optional[dt.date] = Field(default=None, alias="lastSeenDate")
    category_id: Optional[str] = Field(default=None, alias="categoryId")
    notes: Optional[str] = Field(default=None, max_length=1000)
    alert_enabled: bool = Field(default=True, alias="alertEnabled")
    alert_before_days: int = Field(default=3, alias="alertBeforeDays", ge=0, le=60)

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str
        },
        use_enum_values=False
    )

    @field_validator('expected_amount')
    @classmethod
    def check_non_zero_amount(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("expectedAmount must not be zero")
        return v


class RecurringPatternUpdate(BaseModel):
    """
    Data Transfer Object for user edits to a recurring pattern.

    All fields are optional to allow partial updates. Status changes go
    through the dedicated confirm/dismiss/toggle-pause actions instead.
    """
    display_name: Optional[str] = Field(default=None, alias="displayName", min_length=1, max_length=200)
    frequency: Optional[RecurrenceFrequency] = None
    expected_amount: Optional[Decimal] = Field(default=None, alias="expectedAmount")
    amount_tolerance: Optional[Decimal] = Field(default=None, alias="amountTolerance", ge=0)
    category_id: Optional[str] = Field(default=None, alias="categoryId")
    notes: Optional[str] = Field(default=None, max_length=1000)
    alert_enabled: Optional[bool] = Field(default=None, alias="alertEnabled")
    alert_before_days: Optional[int] = Field(default=None, alias="alertBeforeDays", ge=0, le=60)

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str
        },
        use_enum_values=False
    )


class RecurringPatternConfirm(BaseModel):
    """Settings the user may adjust while confirming a detected pattern."""
    frequency: Optional[RecurrenceFrequency] = None
    category_id: Optional[str] = Field(default=None, alias="categoryId")
    alert_enabled: Optional[bool] = Field(default=None, alias="alertEnabled")

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=False
    )

    def to_update(self) -> RecurringPatternUpdate:
        return RecurringPatternUpdate(**self.model_dump(exclude_unset=True, exclude_none=True))


class ReconcileResult(BaseModel):
    """Outcome of merging detection candidates with stored patterns."""
    to_create: List[RecurringPattern] = Field(default_factory=list, alias="toCreate")
    to_update: List[RecurringPattern] = Field(default_factory=list, alias="toUpdate")
    unchanged: List[RecurringPattern] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class DetectionReport(BaseModel):
    """Candidates from one detector pass plus why other groups were skipped."""
    space_id: str = Field(alias="spaceId")
    candidates: List[CandidatePattern] = Field(default_factory=list)
    groups_analyzed: int = Field(default=0, alias="groupsAnalyzed")
    skipped: Dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def skipped_count(self) -> int:
        return sum(self.skipped.values())


class DetectionResult(BaseModel):
    """What a detection trigger returns to its caller."""
    detected: List[CandidatePattern] = Field(default_factory=list)
    total: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str
        }
    )


class UpcomingRecurring(BaseModel):
    """A confirmed pattern expected within the summary window."""
    pattern_id: uuid.UUID = Field(alias="patternId")
    display_name: str = Field(alias="displayName")
    expected_amount: Decimal = Field(alias="expectedAmount")
    currency: Optional[str] = None
    expected_date: dt.date = Field(alias="expectedDate")
    days_until: int = Field(alias="daysUntil")

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str,
            uuid.UUID: str
        }
    )


class RecurringSummary(BaseModel):
    """Aggregate view of a space's recurring patterns for the dashboard."""
    space_id: str = Field(alias="spaceId")
    as_of: dt.date = Field(alias="asOf")
    window_days: int = Field(alias="windowDays")
    monthly_outflow: Decimal = Field(alias="monthlyOutflow")
    monthly_inflow: Decimal = Field(alias="monthlyInflow")
    annual_outflow: Decimal = Field(alias="annualOutflow")
    counts_by_status: Dict[str, int] = Field(alias="countsByStatus")
    upcoming: List[UpcomingRecurring] = Field(default_factory=list)

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str
        }
    )
