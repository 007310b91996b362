"""
Recurring Pattern Operations Handler.

This module provides API endpoints for recurring pattern detection,
review actions and the recurring summary of a space.
"""

import datetime as dt
import logging
from typing import Dict, Any, Optional

from models.recurring_pattern import (
    PatternStatus,
    RecurringPattern,
    RecurringPatternConfirm,
    RecurringPatternCreate,
    RecurringPatternUpdate,
)
from services.recurring_patterns.config import DetectionConfig
from services.recurring_patterns.pattern_service import RecurringPatternService
from utils.db.recurring_patterns import DynamoDBPatternStore
from utils.db.transactions import DynamoDBTransactionSource
from utils.lambda_utils import (
    create_response,
    mandatory_path_parameter,
    optional_query_parameter,
    optional_bool_query_parameter,
    optional_int_query_parameter,
    optional_body_parameter,
    parse_and_validate_json,
)
from utils.handler_decorators import (
    log_request_response,
    standard_error_handling,
    require_authenticated_user,
)

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

_service: Optional[RecurringPatternService] = None


def get_service() -> RecurringPatternService:
    """Lazily build the service so cold starts only pay for it once."""
    global _service
    if _service is None:
        _service = RecurringPatternService(
            store=DynamoDBPatternStore(),
            source=DynamoDBTransactionSource(),
            config=DetectionConfig.from_environment(),
        )
    return _service


def _pattern_body(pattern: RecurringPattern) -> Dict[str, Any]:
    return pattern.model_dump(by_alias=True, mode="json")


# ============================================================================
# Handler Functions
# ============================================================================

def detect_patterns_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Run recurring pattern detection for a space.

    POST /spaces/{spaceId}/recurring/detect

    Request body (optional):
    {
        "accountId": "optional-account-id"   # Restrict to one account
    }

    Returns:
    {
        "detected": [...],
        "total": 4,
        "created": 1,
        "updated": 2,
        "unchanged": 1,
        "skipped": 7
    }
    """
    space_id = mandatory_path_parameter(event, "spaceId")
    account_id = optional_body_parameter(event, "accountId")

    result = get_service().run_detection(space_id, account_id=account_id)
    logger.info(
        f"User {user_id} ran detection for space {space_id}: "
        f"{result.total} detected, {result.created} created, {result.updated} updated"
    )
    return result.model_dump(by_alias=True, mode="json")


def list_patterns_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    List recurring patterns of a space.

    GET /spaces/{spaceId}/recurring?status=confirmed&includeDetected=true

    Query parameters:
    - status: Only patterns with this status (optional)
    - includeDetected: Without a status filter, also list detected patterns

    Returns:
    {
        "patterns": [...],
        "metadata": {"totalPatterns": 10}
    }
    """
    space_id = mandatory_path_parameter(event, "spaceId")
    status_param = optional_query_parameter(event, "status")
    include_detected = optional_bool_query_parameter(event, "includeDetected")

    status: Optional[PatternStatus] = None
    if status_param:
        try:
            status = PatternStatus(status_param)
        except ValueError:
            raise ValueError(f"Invalid status: {status_param}")

    patterns = get_service().list_patterns(space_id, status=status, include_detected=include_detected)
    return {
        "patterns": [_pattern_body(p) for p in patterns],
        "metadata": {"totalPatterns": len(patterns)},
    }


def get_summary_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Recurring summary of a space.

    GET /spaces/{spaceId}/recurring/summary?asOf=2024-07-01&windowDays=30
    """
    space_id = mandatory_path_parameter(event, "spaceId")
    as_of_param = optional_query_parameter(event, "asOf")
    window_days = optional_int_query_parameter(event, "windowDays")

    as_of: Optional[dt.date] = None
    if as_of_param:
        try:
            as_of = dt.date.fromisoformat(as_of_param)
        except ValueError:
            raise ValueError(f"asOf must be an ISO date (YYYY-MM-DD), got {as_of_param}")
    if window_days is not None and not 0 <= window_days <= 365:
        raise ValueError("windowDays must be between 0 and 365")

    summary = get_service().get_summary(space_id, as_of=as_of, window_days=window_days)
    return summary.model_dump(by_alias=True, mode="json")


def get_pattern_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    GET /spaces/{spaceId}/recurring/{id}
    """
    space_id = mandatory_path_parameter(event, "spaceId")
    pattern_id = mandatory_path_parameter(event, "id")
    return {"pattern": _pattern_body(get_service().get_pattern(space_id, pattern_id))}


def create_pattern_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Manually add a recurring pattern (starts confirmed).

    POST /spaces/{spaceId}/recurring

    Request body:
    {
        "accountId": "acct-1",
        "merchantName": "Gym Membership",
        "expectedAmount": "-45.00",
        "frequency": "monthly",
        "lastSeenDate": "2024-06-03"     # optional
    }
    """
    space_id = mandatory_path_parameter(event, "spaceId")
    data = parse_and_validate_json(event, RecurringPatternCreate)

    pattern = get_service().create_pattern(space_id, data)
    return create_response(201, {
        "message": "Recurring pattern created",
        "pattern": _pattern_body(pattern),
    })


def update_pattern_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Edit user-owned fields of a pattern.

    PATCH /spaces/{spaceId}/recurring/{id}
    """
    space_id = mandatory_path_parameter(event, "spaceId")
    pattern_id = mandatory_path_parameter(event, "id")
    data = parse_and_validate_json(event, RecurringPatternUpdate)

    pattern = get_service().update_pattern(space_id, pattern_id, data)
    return {
        "message": "Pattern updated successfully",
        "pattern": _pattern_body(pattern),
    }


def delete_pattern_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    DELETE /spaces/{spaceId}/recurring/{id}
    """
    space_id = mandatory_path_parameter(event, "spaceId")
    pattern_id = mandatory_path_parameter(event, "id")
    get_service().remove(space_id, pattern_id)
    return {"message": "Pattern deleted successfully"}


def confirm_pattern_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Confirm a detected pattern.

    POST /spaces/{spaceId}/recurring/{id}/confirm

    Request body (optional):
    {
        "frequency": "monthly",
        "categoryId": "cat-1",
        "alertEnabled": false
    }
    """
    space_id = mandatory_path_parameter(event, "spaceId")
    pattern_id = mandatory_path_parameter(event, "id")
    overrides = parse_and_validate_json(event, RecurringPatternConfirm)
    pattern = get_service().confirm(space_id, pattern_id, overrides)
    return {"message": "Pattern confirmed", "pattern": _pattern_body(pattern)}


def dismiss_pattern_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    POST /spaces/{spaceId}/recurring/{id}/dismiss
    """
    space_id = mandatory_path_parameter(event, "spaceId")
    pattern_id = mandatory_path_parameter(event, "id")
    pattern = get_service().dismiss(space_id, pattern_id)
    return {"message": "Pattern dismissed", "pattern": _pattern_body(pattern)}


def toggle_pause_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    POST /spaces/{spaceId}/recurring/{id}/toggle-pause
    """
    space_id = mandatory_path_parameter(event, "spaceId")
    pattern_id = mandatory_path_parameter(event, "id")
    pattern = get_service().toggle_pause(space_id, pattern_id)
    action = "paused" if pattern.status == PatternStatus.PAUSED else "resumed"
    return {"message": f"Pattern {action}", "pattern": _pattern_body(pattern)}


# ============================================================================
# Main Handler
# ============================================================================

ROUTE_MAP = {
    "POST /spaces/{spaceId}/recurring/detect": detect_patterns_handler,
    "GET /spaces/{spaceId}/recurring": list_patterns_handler,
    "GET /spaces/{spaceId}/recurring/summary": get_summary_handler,
    "POST /spaces/{spaceId}/recurring": create_pattern_handler,
    "GET /spaces/{spaceId}/recurring/{id}": get_pattern_handler,
    "PATCH /spaces/{spaceId}/recurring/{id}": update_pattern_handler,
    "DELETE /spaces/{spaceId}/recurring/{id}": delete_pattern_handler,
    "POST /spaces/{spaceId}/recurring/{id}/confirm": confirm_pattern_handler,
    "POST /spaces/{spaceId}/recurring/{id}/dismiss": dismiss_pattern_handler,
    "POST /spaces/{spaceId}/recurring/{id}/toggle-pause": toggle_pause_handler,
}


@log_request_response
@require_authenticated_user
@standard_error_handling
def handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Main handler for recurring pattern operations.

    Routes requests to appropriate handler functions based on route.
    """
    route = event.get("routeKey")
    if not route:
        raise ValueError("Route not specified")

    handler_func = ROUTE_MAP.get(route)
    if not handler_func:
        raise ValueError(f"Unsupported route: {route}")

    return handler_func(event, user_id)
