"""
Property Bag Encoding.

Converts submitted form values to and from the JSON stored in
the properties column. Two value kinds need tagging because
JSON has no type for them:

- ResourceReference -> {"__resource__": {...}}
- datetime          -> {"__datetime__": "<ISO 8601>"}

Everything else must already be JSON compatible. Key order of
the mapping is preserved in both directions.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterator, Mapping

from storage.resources import ResourceReference

RESOURCE_TAG = "__resource__"
DATETIME_TAG = "__datetime__"


def encode_value(value: Any) -> Any:
    if isinstance(value, ResourceReference):
        return {RESOURCE_TAG: value.to_dict()}
    if isinstance(value, datetime):
        return {DATETIME_TAG: value.isoformat()}
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Mapping):
        return {str(k): encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        if len(value) == 1 and RESOURCE_TAG in value:
            return ResourceReference.from_dict(value[RESOURCE_TAG])
        if len(value) == 1 and DATETIME_TAG in value:
            return datetime.fromisoformat(value[DATETIME_TAG])
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


def encode_properties(properties: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(key): encode_value(value) for key, value in properties.items()}


def decode_properties(raw: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: decode_value(value) for key, value in (raw or {}).items()}


def iter_resources(value: Any) -> Iterator[ResourceReference]:
    """Yield every resource reference contained in a decoded value."""
    if isinstance(value, ResourceReference):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from iter_resources(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_resources(item)
