"""
Transaction database operations.

Read-only access to posted transactions for recurring pattern detection.
Transactions are found through the ``SpaceIdIndex`` GSI (partition key
``spaceId``, sort key ``date``).
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from boto3.dynamodb.conditions import Key, Attr
from pydantic import ValidationError

from models.transaction_record import TransactionRecord
from .base import (
    tables,
    dynamodb_operation,
    retry_on_throttle,
    monitor_performance,
    require_table,
)
from .helpers import paginated_query

logger = logging.getLogger(__name__)

TABLE_NAME = "Transactions"
SPACE_INDEX = "SpaceIdIndex"


def _parse_transactions(items: List[Dict[str, Any]]) -> Tuple[List[TransactionRecord], int]:
    """Convert raw items, dropping the ones that do not validate."""
    transactions: List[TransactionRecord] = []
    invalid = 0
    for item in items:
        try:
            transactions.append(TransactionRecord.from_dynamodb_item(item))
        except ValidationError as e:
            invalid += 1
            logger.warning(
                f"DB: Skipping malformed transaction {item.get('transactionId', 'unknown')}: "
                f"{e.error_count()} invalid fields"
            )
    return transactions, invalid


@monitor_performance(operation_type="query", warn_threshold_ms=1000, error_threshold_ms=5000)
@dynamodb_operation("list_space_transactions")
@retry_on_throttle(max_attempts=5, base_delay=0.1)
def list_space_transactions(space_id: str, account_id: Optional[str] = None) -> List[TransactionRecord]:
    """
    List all transactions of a space, oldest first.

    Args:
        space_id: Space ID
        account_id: Restrict to one account (optional)

    Returns:
        List of TransactionRecord objects sorted by (date, transactionId).
        Items that fail validation are logged and left out.
    """
    query_params = {
        'IndexName': SPACE_INDEX,
        'KeyConditionExpression': Key('spaceId').eq(space_id),
        'ScanIndexForward': True
    }
    if account_id:
        query_params['FilterExpression'] = Attr('accountId').eq(account_id)

    items = paginated_query(
        table=require_table(tables.transactions, TABLE_NAME),
        query_params=query_params
    )
    transactions, invalid = _parse_transactions(items)
    if invalid:
        logger.warning(
            f"DB: Skipped {invalid} malformed transactions in space {space_id}",
            extra={'space_id': space_id, 'invalid_count': invalid}
        )
    transactions.sort(key=lambda t: t.sort_key)

    logger.info(
        f"DB: Found {len(transactions)} transactions for space {space_id}"
        + (f", account {account_id}" if account_id else "")
    )
    return transactions


class DynamoDBTransactionSource:
    """TransactionSource backed by the transactions table."""

    def list_transactions(self, space_id: str, account_id: Optional[str] = None) -> List[TransactionRecord]:
        return list_space_transactions(space_id, account_id)
