from typing import Dict, Any, Optional, Type, TypeVar
import datetime as dt
import json
from decimal import Decimal
import uuid

from pydantic import BaseModel

TModel = TypeVar('TModel', bound=BaseModel)


class DecimalEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, Decimal):
            # Always return as string to preserve precision and ensure consistent type
            return str(obj)
        if isinstance(obj, uuid.UUID):
            return str(obj)
        if isinstance(obj, dt.date):
            return obj.isoformat()
        return super(DecimalEncoder, self).default(obj)


def create_response(status_code: int, body: Any) -> Dict[str, Any]:
    """Create a standardized API response."""
    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Headers": "Content-Type,Authorization",
            "Access-Control-Allow-Methods": "GET,POST,PATCH,DELETE,OPTIONS"
        },
        "body": json.dumps(body, cls=DecimalEncoder)
    }


# extract path parameters from the event
def optional_path_parameter(event: Dict[str, Any], parameter_name: str) -> Optional[str]:
    """Extract a path parameter from the event."""
    return (event.get('pathParameters') or {}).get(parameter_name)


def mandatory_path_parameter(event: Dict[str, Any], parameter_name: str) -> str:
    """Extract a mandatory path parameter from the event.
    Raises ValueError if the parameter is not found.
    """
    if not parameter_name:
        raise KeyError("Parameter name is required")
    parameter = optional_path_parameter(event, parameter_name)
    if not parameter:
        raise ValueError(f"Path parameter {parameter_name} not found")
    return parameter


# extract query parameters from the event
def optional_query_parameter(event: Dict[str, Any], parameter_name: str) -> Optional[str]:
    """Extract a query parameter from the event."""
    return (event.get('queryStringParameters') or {}).get(parameter_name)


def optional_bool_query_parameter(event: Dict[str, Any], parameter_name: str, default: bool = False) -> bool:
    value = optional_query_parameter(event, parameter_name)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


def optional_int_query_parameter(event: Dict[str, Any], parameter_name: str) -> Optional[int]:
    value = optional_query_parameter(event, parameter_name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Query parameter {parameter_name} must be an integer")


# extract parameters from json payload body
def parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """Decode the JSON body; an absent body is an empty object."""
    raw = event.get('body') or '{}'
    try:
        body = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in request body: {e.msg}")
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


def optional_body_parameter(event: Dict[str, Any], parameter_name: str) -> Any:
    """Extract a json-encoded body parameter from the event."""
    return parse_body(event).get(parameter_name)


def parse_and_validate_json(event: Dict[str, Any], model: Type[TModel]) -> TModel:
    """
    Decode the body and validate it into a pydantic model.

    Raises:
        ValueError: For malformed JSON
        pydantic.ValidationError: For a body that does not fit the model
    """
    return model.model_validate(parse_body(event))
