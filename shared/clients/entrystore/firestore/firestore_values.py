"""Codec for Firestore REST typed values.

Firestore's REST API wraps every value in a single-key object naming its
type, e.g. ``{"stringValue": "x"}`` or ``{"mapValue": {"fields": {...}}}``.
These helpers convert between that representation and plain Python values.
"""

import base64
from datetime import datetime
from typing import Any


def parse_timestamp(raw: str) -> datetime:
    # Firestore emits RFC 3339 with up to nanosecond precision and a "Z" suffix
    raw = raw.replace("Z", "+00:00")
    if "." in raw:
        head, _, tail = raw.partition(".")
        digits = ""
        rest = ""
        for i, char in enumerate(tail):
            if not char.isdigit():
                rest = tail[i:]
                break
            digits += char
        raw = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
    return datetime.fromisoformat(raw)


def decode_value(value: dict) -> Any:
    """
    Decodes one Firestore typed value.

    Args:
        value (dict): The typed value, e.g. {"integerValue": "3"}.

    Returns:
        Any: The plain Python value.

    Raises:
        ValueError: If the value type is unknown.
    """
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "timestampValue" in value:
        return parse_timestamp(value["timestampValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "bytesValue" in value:
        return base64.b64decode(value["bytesValue"])
    if "referenceValue" in value:
        return value["referenceValue"]
    if "geoPointValue" in value:
        point = value["geoPointValue"]
        return {"latitude": point.get("latitude", 0.0), "longitude": point.get("longitude", 0.0)}
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    raise ValueError(f"Unsupported Firestore value: {value!r}")


def decode_fields(fields: dict) -> dict:
    """Decodes a Firestore ``fields`` map into a plain dict."""
    return {key: decode_value(val) for key, val in fields.items()}


def encode_value(value: Any) -> dict:
    """
    Encodes a plain Python value as a Firestore typed value.

    Args:
        value (Any): None, bool, int, float, str, datetime, bytes, list or dict.

    Returns:
        dict: The typed value.

    Raises:
        TypeError: If the value cannot be represented.
    """
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
        return {"timestampValue": value.isoformat()}
    if isinstance(value, bytes):
        return {"bytesValue": base64.b64encode(value).decode("ascii")}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": {k: encode_value(v) for k, v in value.items()}}}
    raise TypeError(f"Cannot encode {type(value).__name__} as a Firestore value")
