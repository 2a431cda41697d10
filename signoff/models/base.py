"""
Shared model helpers for signoff.

This module provides identifier generation, timezone-aware timestamps
and serialization helpers shared by the workflow, directory and
notification models.
"""

import uuid
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any


def generate_uuid() -> str:
    """Generate a new UUID4 string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to UTC.

    Naive datetimes are taken to already be in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """
    Parse an ISO-8601 string (or pass through a datetime) as UTC.

    Args:
        value: ISO-8601 string, datetime, or None.

    Returns:
        A timezone-aware UTC datetime, or None.

    Raises:
        ValueError: If the string is not valid ISO-8601.
        TypeError: If the value is neither a string nor a datetime.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise TypeError(f"Expected an ISO-8601 string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def serialize_value(value: Any, exclude_none: bool = False) -> Any:
    """
    Serialize a single value to a JSON-compatible type.

    Args:
        value: Value to serialize.
        exclude_none: If True, exclude None values in nested dicts/lists.

    Returns:
        JSON-compatible representation of the value.
    """
    if isinstance(value, datetime):
        return value.isoformat()
    elif isinstance(value, dict):
        result = {}
        for k, v in value.items():
            if exclude_none and v is None:
                continue
            result[k] = serialize_value(v, exclude_none)
        return result
    elif isinstance(value, (list, tuple)):
        return [serialize_value(item, exclude_none) for item in value]
    elif hasattr(value, "to_dict"):
        return value.to_dict()
    elif hasattr(value, "value"):
        # Handle enums
        return value.value
    return value


def model_to_dict(instance: Any, exclude_none: bool = False) -> dict[str, Any]:
    """
    Convert a dataclass instance to a dictionary.

    Args:
        instance: A dataclass instance to convert.
        exclude_none: If True, exclude keys with None values from the output.

    Returns:
        A dictionary representation of the instance with all fields serialized
        to JSON-compatible types.
    """
    result = asdict(instance)
    return {
        k: serialize_value(v, exclude_none)
        for k, v in result.items()
        if not (exclude_none and v is None)
    }


def format_timestamp(value: datetime | None) -> str | None:
    """
    Format a datetime as a sortable UTC ISO-8601 string.

    Microseconds are always included so that lexical order of the
    stored strings matches chronological order.
    """
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")
