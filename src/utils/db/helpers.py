"""
Helper functions for database operations.

This module provides:
- Pagination helpers
- Update expression building
"""

import logging
from typing import List, Dict, Any, Optional, Tuple, Callable, TypeVar

logger = logging.getLogger(__name__)

# Type variable for generic functions
T = TypeVar('T')


def paginated_query(
    table: Any,
    query_params: Dict[str, Any],
    transform: Optional[Callable[[Dict], T]] = None
) -> List[T]:
    """
    Execute a DynamoDB query and follow pagination to the end.

    Args:
        table: DynamoDB table resource
        query_params: Query parameters (KeyConditionExpression, etc.)
        transform: Optional function to transform each item

    Returns:
        All items, transformed if a transformer was provided

    Example:
        from boto3.dynamodb.conditions import Key

        patterns = paginated_query(
            table=tables.recurring_patterns,
            query_params={
                'IndexName': 'SpaceIdIndex',
                'KeyConditionExpression': Key('spaceId').eq(space_id)
            },
            transform=RecurringPattern.from_dynamodb_item
        )
    """
    items: List[Any] = []
    current_params = query_params.copy()

    while True:
        response = table.query(**current_params)
        batch = response.get('Items', [])

        if transform:
            batch = [transform(item) for item in batch]
        items.extend(batch)

        last_evaluated_key = response.get('LastEvaluatedKey')
        if not last_evaluated_key:
            break
        current_params['ExclusiveStartKey'] = last_evaluated_key

    logger.debug(f"Paginated query returned {len(items)} items")
    return items


def build_update_expression(
    updates: Dict[str, Any],
    remove_fields: Optional[List[str]] = None
) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
    """
    Build DynamoDB UpdateExpression from update dictionary.

    Attribute names are always aliased, so reserved words such as ``status``
    are safe to use.

    Args:
        updates: Dictionary of attribute names to new values
        remove_fields: Attribute names to remove (optional)

    Returns:
        Tuple of (update_expression, expression_attribute_names, expression_attribute_values)

    Example:
        expr, names, values = build_update_expression(
            updates={'status': 'confirmed', 'updatedAt': 1700000000000},
            remove_fields=['dismissedAt']
        )
    """
    if not updates and not remove_fields:
        raise ValueError("Either updates or remove_fields must be provided")

    set_parts: List[str] = []
    remove_parts: List[str] = []
    expr_attr_names: Dict[str, str] = {}
    expr_attr_values: Dict[str, Any] = {}

    for key, value in updates.items():
        safe_key = key.replace('-', '_').replace('.', '_')
        set_parts.append(f"#{safe_key} = :{safe_key}")
        expr_attr_names[f"#{safe_key}"] = key
        expr_attr_values[f":{safe_key}"] = value

    for field in remove_fields or []:
        safe_field = field.replace('-', '_').replace('.', '_')
        remove_parts.append(f"#{safe_field}")
        expr_attr_names[f"#{safe_field}"] = field

    expression_parts = []
    if set_parts:
        expression_parts.append("SET " + ", ".join(set_parts))
    if remove_parts:
        expression_parts.append("REMOVE " + ", ".join(remove_parts))

    return " ".join(expression_parts), expr_attr_names, expr_attr_values
