"""
Scheduled Recurring Detection Lambda.

Invoked by an EventBridge schedule to refresh recurring patterns for a
batch of spaces. Each space is detected independently; a failure in one
space is reported and does not stop the others.

Expected event format:
{
    "version": "0",
    "detail-type": "Scheduled Event",
    "source": "aws.events",
    "detail": {
        "spaceIds": ["space-1", "space-2"]
    }
}
"""

import json
import logging
from typing import Dict, Any, List

from handlers.recurring_pattern_operations import get_service
from services.recurring_patterns.exceptions import DetectionFailed, RecurringPatternError

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _space_ids(event: Dict[str, Any]) -> List[str]:
    detail = event.get("detail")
    if isinstance(detail, str):
        detail = json.loads(detail)
    detail = detail or {}
    space_ids = detail.get("spaceIds", event.get("spaceIds")) or []
    if not isinstance(space_ids, list) or not all(isinstance(s, str) and s for s in space_ids):
        raise ValueError("spaceIds must be a list of non-empty strings")
    return space_ids


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Run detection for every space named in the event.

    Returns:
        {"statusCode": 200 | 207 | 400, "processed": [...], "failures": [...]}
    """
    try:
        space_ids = _space_ids(event)
    except (ValueError, json.JSONDecodeError) as e:
        logger.error(f"Invalid scheduled detection event: {str(e)}")
        return {"statusCode": 400, "processed": [], "failures": [], "message": str(e)}

    logger.info(f"Scheduled detection started for {len(space_ids)} spaces")
    service = get_service()
    processed: List[Dict[str, Any]] = []
    failures: List[Dict[str, Any]] = []

    for space_id in space_ids:
        try:
            result = service.run_detection(space_id)
            processed.append({
                "spaceId": space_id,
                "total": result.total,
                "created": result.created,
                "updated": result.updated,
            })
        except DetectionFailed as e:
            logger.error(f"Scheduled detection failed for space {space_id}: {str(e)}")
            failures.append({
                "spaceId": space_id,
                "error": str(e.cause or e),
                "created": e.created,
                "updated": e.updated,
            })
        except RecurringPatternError as e:
            logger.error(f"Scheduled detection rejected for space {space_id}: {str(e)}")
            failures.append({"spaceId": space_id, "error": str(e)})

    logger.info(
        f"Scheduled detection finished: {len(processed)} succeeded, {len(failures)} failed"
    )
    return {
        "statusCode": 207 if failures else 200,
        "processed": processed,
        "failures": failures,
    }
