"""Codec between plain Python values and Firestore REST typed values.

The REST API wraps every field in a one-key object naming its type
(``{"stringValue": "x"}``, ``{"integerValue": "3"}`` ...). Integers travel
as strings; maps and arrays nest.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict

_SIMPLE_FIELD = re.compile(r"^[A-Za-z_][A-Za-z_0-9]*$")


def encode_value(value: Any) -> Dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return {"timestampValue": value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")}
    if isinstance(value, (list, tuple)):
        values = [encode_value(v) for v in value]
        return {"arrayValue": {"values": values} if values else {}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)} if value else {}}
    raise TypeError(f"Cannot encode {type(value).__name__} as a Firestore value")


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {str(key): encode_value(value) for key, value in data.items()}


def decode_value(value: Dict[str, Any]) -> Any:
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return value["timestampValue"]
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "referenceValue" in value:
        return value["referenceValue"]
    if "geoPointValue" in value:
        return dict(value["geoPointValue"])
    if "bytesValue" in value:
        return value["bytesValue"]
    raise ValueError(f"Unknown Firestore value type: {sorted(value)}")


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: decode_value(value) for key, value in fields.items()}


def field_path(name: str) -> str:
    """Quote a top-level field name for update masks and transforms."""
    if _SIMPLE_FIELD.match(name):
        return name
    escaped = name.replace("\\", "\\\\").replace("`", "\\`")
    return f"`{escaped}`"
