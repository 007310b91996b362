"""
Recurring Pattern database operations.

Table layout:
- partition key ``accountId``, sort key ``merchantKey``; the key pair is the
  uniqueness constraint for a pattern
- ``SpaceIdIndex`` GSI on ``spaceId`` for per-space listing
- ``PatternIdIndex`` GSI on ``patternId`` for id lookups from the API
"""

import logging
import uuid
from datetime import date
from typing import List, Dict, Any, Optional, Union

from boto3.dynamodb.conditions import Key, Attr

from models.recurring_pattern import (
    PatternStatus,
    RecurringPattern,
    TRACKED_STATUSES,
)
from .base import (
    tables,
    dynamodb_operation,
    retry_on_throttle,
    monitor_performance,
    require_table,
)
from .helpers import paginated_query, build_update_expression

logger = logging.getLogger(__name__)

TABLE_NAME = "RecurringPatterns"
SPACE_INDEX = "SpaceIdIndex"
PATTERN_ID_INDEX = "PatternIdIndex"

# Attributes owned by detection runs, written by update_pattern_tracking
TRACKING_ATTRIBUTES = (
    'frequency',
    'displayName',
    'expectedAmount',
    'amountTolerance',
    'currency',
    'firstSeenDate',
    'lastSeenDate',
    'nextExpectedDate',
    'occurrences',
    'confidence',
    'linkedTransactionIds',
    'updatedAt',
)

STATUS_ATTRIBUTES = ('status', 'confirmedAt', 'dismissedAt', 'updatedAt')

# Statuses returned by default when listing without a status filter
DEFAULT_LIST_STATUSES = (PatternStatus.CONFIRMED, PatternStatus.PAUSED)


def _table() -> Any:
    return require_table(tables.recurring_patterns, TABLE_NAME)


def _key(pattern: RecurringPattern) -> Dict[str, str]:
    return {'accountId': pattern.account_id, 'merchantKey': pattern.merchant_key}


def _sort_for_listing(patterns: List[RecurringPattern]) -> List[RecurringPattern]:
    # Patterns without a next expected date go last
    return sorted(
        patterns,
        key=lambda p: (p.next_expected_date is None, p.next_expected_date or date.max, p.display_name)
    )


def _partial_update(
    pattern: RecurringPattern,
    attributes: tuple,
    condition: str,
    condition_values: Dict[str, Any]
) -> None:
    item = pattern.to_dynamodb_item()
    updates = {name: item[name] for name in attributes if name in item}
    removes = [name for name in attributes if name not in item]
    expr, names, values = build_update_expression(updates, remove_fields=removes)

    names['#cond_status'] = 'status'
    values.update(condition_values)
    _table().update_item(
        Key=_key(pattern),
        UpdateExpression=expr,
        ConditionExpression=condition,
        ExpressionAttributeNames=names,
        ExpressionAttributeValues=values
    )


# ============================================================================
# Reads
# ============================================================================

@monitor_performance(warn_threshold_ms=200)
@dynamodb_operation("find_pattern_by_account_and_key")
@retry_on_throttle(max_attempts=3)
def find_pattern_by_account_and_key(account_id: str, merchant_key: str) -> Optional[RecurringPattern]:
    """
    Retrieve the pattern tracking a merchant on an account.

    Args:
        account_id: Account ID
        merchant_key: Normalized merchant key

    Returns:
        RecurringPattern if found, None otherwise
    """
    response = _table().get_item(Key={'accountId': account_id, 'merchantKey': merchant_key})
    item = response.get('Item')
    if item:
        return RecurringPattern.from_dynamodb_item(item)
    return None


@monitor_performance(warn_threshold_ms=200)
@dynamodb_operation("get_pattern")
@retry_on_throttle(max_attempts=3)
def get_pattern(space_id: str, pattern_id: Union[str, uuid.UUID]) -> Optional[RecurringPattern]:
    """
    Retrieve a pattern by ID, scoped to a space.

    Returns:
        RecurringPattern if found in the space, None otherwise
    """
    logger.debug(f"DB: Getting pattern {str(pattern_id)}")
    response = _table().query(
        IndexName=PATTERN_ID_INDEX,
        KeyConditionExpression=Key('patternId').eq(str(pattern_id))
    )

    for item in response.get('Items', []):
        if item.get('spaceId') == space_id:
            return RecurringPattern.from_dynamodb_item(item)
    return None


@monitor_performance(operation_type="query", warn_threshold_ms=500)
@dynamodb_operation("list_space_patterns")
@retry_on_throttle(max_attempts=3)
def list_space_patterns(space_id: str) -> List[RecurringPattern]:
    """
    List every pattern of a space, any status.

    Args:
        space_id: Space ID

    Returns:
        List of RecurringPattern objects
    """
    patterns = paginated_query(
        table=_table(),
        query_params={
            'IndexName': SPACE_INDEX,
            'KeyConditionExpression': Key('spaceId').eq(space_id)
        },
        transform=RecurringPattern.from_dynamodb_item
    )
    logger.info(f"DB: Found {len(patterns)} recurring patterns for space {space_id}")
    return patterns


def list_patterns_by_space(
    space_id: str,
    status: Optional[PatternStatus] = None,
    include_detected: bool = False
) -> List[RecurringPattern]:
    """
    List patterns of a space for display, ordered by next expected date.

    Args:
        space_id: Space ID
        status: Only return patterns with this status
        include_detected: Without a status filter, also return detected patterns

    Returns:
        List of RecurringPattern objects
    """
    if status is not None:
        wanted = {status}
    else:
        wanted = set(DEFAULT_LIST_STATUSES)
        if include_detected:
            wanted.add(PatternStatus.DETECTED)

    patterns = [p for p in list_space_patterns(space_id) if p.status in wanted]
    return _sort_for_listing(patterns)


# ============================================================================
# Writes
# ============================================================================

@monitor_performance(warn_threshold_ms=300)
@dynamodb_operation("create_pattern")
@retry_on_throttle(max_attempts=3)
def create_pattern(pattern: RecurringPattern) -> RecurringPattern:
    """
    Insert a new pattern.

    Raises:
        ConflictError: If a pattern with the same (accountId, merchantKey) exists
    """
    _table().put_item(
        Item=pattern.to_dynamodb_item(),
        ConditionExpression=Attr('accountId').not_exists()
    )
    logger.info(
        f"DB: Created pattern {str(pattern.pattern_id)} for {pattern.account_id}/{pattern.merchant_key}"
    )
    return pattern


@monitor_performance(warn_threshold_ms=300)
@dynamodb_operation("upsert_pattern")
@retry_on_throttle(max_attempts=3)
def upsert_pattern(pattern: RecurringPattern) -> RecurringPattern:
    """Write the whole pattern, replacing any stored version."""
    _table().put_item(Item=pattern.to_dynamodb_item())
    logger.info(f"DB: Saved pattern {str(pattern.pattern_id)}")
    return pattern


@monitor_performance(warn_threshold_ms=300)
@dynamodb_operation("update_pattern_tracking")
@retry_on_throttle(max_attempts=3)
def update_pattern_tracking(pattern: RecurringPattern) -> RecurringPattern:
    """
    Write detection-owned attributes only.

    The write only succeeds while the stored status is still detected or
    confirmed, so a concurrent dismiss or pause is never overwritten.

    Raises:
        ConflictError: If the stored pattern is missing or no longer tracked
    """
    _partial_update(
        pattern,
        TRACKING_ATTRIBUTES,
        condition="#cond_status IN (:cond_detected, :cond_confirmed)",
        condition_values={
            ':cond_detected': TRACKED_STATUSES[0].value,
            ':cond_confirmed': TRACKED_STATUSES[1].value,
        }
    )
    logger.info(f"DB: Refreshed tracking for pattern {str(pattern.pattern_id)}")
    return pattern


@monitor_performance(warn_threshold_ms=300)
@dynamodb_operation("update_pattern_status")
@retry_on_throttle(max_attempts=3)
def update_pattern_status(pattern: RecurringPattern) -> RecurringPattern:
    """
    Write status and its timestamps only.

    Raises:
        ConflictError: If the pattern no longer exists
    """
    _partial_update(
        pattern,
        STATUS_ATTRIBUTES,
        condition="attribute_exists(#cond_status)",
        condition_values={}
    )
    logger.info(f"DB: Pattern {str(pattern.pattern_id)} status set to {pattern.status.value}")
    return pattern


@monitor_performance(warn_threshold_ms=300)
@dynamodb_operation("delete_pattern")
@retry_on_throttle(max_attempts=3)
def delete_pattern(pattern: RecurringPattern) -> None:
    _table().delete_item(Key=_key(pattern))
    logger.info(f"DB: Deleted pattern {str(pattern.pattern_id)}")


class DynamoDBPatternStore:
    """PatternStore backed by the recurring patterns table."""

    def find_by_account_and_key(self, account_id: str, merchant_key: str) -> Optional[RecurringPattern]:
        return find_pattern_by_account_and_key(account_id, merchant_key)

    def get(self, space_id: str, pattern_id: Union[str, uuid.UUID]) -> Optional[RecurringPattern]:
        return get_pattern(space_id, pattern_id)

    def list_by_space(
        self,
        space_id: str,
        status: Optional[PatternStatus] = None,
        include_detected: bool = False
    ) -> List[RecurringPattern]:
        return list_patterns_by_space(space_id, status=status, include_detected=include_detected)

    def list_all(self, space_id: str) -> List[RecurringPattern]:
        return list_space_patterns(space_id)

    def create(self, pattern: RecurringPattern) -> RecurringPattern:
        return create_pattern(pattern)

    def upsert(self, pattern: RecurringPattern) -> RecurringPattern:
        return upsert_pattern(pattern)

    def update_tracking(self, pattern: RecurringPattern) -> RecurringPattern:
        return update_pattern_tracking(pattern)

    def update_status(self, pattern: RecurringPattern) -> RecurringPattern:
        return update_pattern_status(pattern)

    def delete(self, pattern: RecurringPattern) -> None:
        delete_pattern(pattern)
