"""
Handler decorators for reducing boilerplate code in Lambda handlers.

These decorators take care of authentication, error-to-status mapping and
request logging so handlers can focus on calling the recurring pattern
service and returning raw data.
"""

import logging
import traceback
from datetime import datetime, timezone
from functools import wraps
from typing import Dict, Any, Callable

from pydantic import ValidationError

from services.recurring_patterns.exceptions import (
    DetectionFailed,
    InvalidStateError,
    PatternNotFound,
)
from utils.auth import get_user_from_event
from utils.lambda_utils import create_response

logger = logging.getLogger(__name__)


def standard_error_handling(func: Callable) -> Callable:
    """
    Decorator that provides standard error handling for Lambda handlers.

    Maps exceptions to HTTP status codes:
    - PatternNotFound -> 404 Not Found
    - ValidationError, ValueError, KeyError -> 400 Bad Request
    - InvalidStateError -> 409 Conflict
    - DetectionFailed -> 503 Service Unavailable
    - Exception -> 500 Internal Server Error

    Handlers decorated with this can focus on business logic and return raw data.
    The decorator will wrap the result in a proper API Gateway response.
    """
    @wraps(func)
    def wrapper(*args, **kwargs) -> Dict[str, Any]:
        try:
            result = func(*args, **kwargs)

            # If handler returns a dict with statusCode, it's already a response
            if isinstance(result, dict) and "statusCode" in result:
                return result

            # Otherwise, wrap in success response
            return create_response(200, result)

        # PatternNotFound is a ValueError; it must be matched first
        except PatternNotFound as e:
            logger.warning(f"Resource not found in {func.__name__}: {str(e)}")
            return create_response(404, {"message": str(e)})

        except (ValidationError, ValueError, KeyError) as e:
            logger.error(f"Validation error in {func.__name__}: {str(e)}")
            return create_response(400, {"message": str(e)})

        except InvalidStateError as e:
            logger.warning(f"Invalid state in {func.__name__}: {str(e)}")
            return create_response(409, {"message": str(e)})

        except DetectionFailed as e:
            logger.error(f"Detection failed in {func.__name__}: {str(e)}")
            return create_response(503, {
                "message": "Recurring detection could not complete",
                "created": e.created,
                "updated": e.updated,
            })

        except Exception as e:
            logger.error(f"Unexpected error in {func.__name__}: {str(e)}")
            logger.error(f"Stacktrace: {traceback.format_exc()}")
            return create_response(500, {"message": f"Error in {func.__name__.replace('_handler', '')}"})

    return wrapper


def log_request_response(func: Callable) -> Callable:
    """
    Decorator that logs request and response details for debugging and monitoring.

    Logs:
    - Request ID, method, route
    - Request duration
    - Response status code
    """
    @wraps(func)
    def wrapper(event: Dict[str, Any], *args, **kwargs) -> Dict[str, Any]:
        request_context = event.get("requestContext") or {}
        request_id = request_context.get("requestId", "unknown")
        method = (request_context.get("http") or {}).get("method", "unknown")
        route = event.get("routeKey", "unknown")

        start_time = datetime.now(timezone.utc)
        logger.info(f"[{request_id}] {method} {route} - Request started")

        try:
            result = func(event, *args, **kwargs)
        except Exception as e:
            duration_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
            logger.error(f"[{request_id}] {method} {route} - Error after {duration_ms:.1f}ms: {str(e)}")
            raise

        duration_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
        status_code = result.get("statusCode", "unknown") if isinstance(result, dict) else "unknown"
        logger.info(f"[{request_id}] {method} {route} - Response {status_code} in {duration_ms:.1f}ms")
        return result

    return wrapper


def require_authenticated_user(func: Callable) -> Callable:
    """
    Decorator that extracts and validates authenticated user from event.

    Passes the user id as the second parameter to the handler; responds 401
    when the request carries no authenticated user.
    """
    @wraps(func)
    def wrapper(event: Dict[str, Any], context: Any, *args, **kwargs) -> Dict[str, Any]:
        user = get_user_from_event(event)
        if not user:
            logger.warning("Authentication required but no user found in event")
            return create_response(401, {"message": "Unauthorized"})

        return func(event, user["id"], *args, **kwargs)

    return wrapper
