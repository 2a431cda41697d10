"""
Shared model helpers for signoff.

Domain models live beside the code that owns them
(``signoff.workflows.models``, ``signoff.directory.models``).
"""

from signoff.models.base import (
    ensure_utc,
    format_timestamp,
    generate_uuid,
    model_to_dict,
    parse_datetime,
    serialize_value,
    utc_now,
)

__all__ = [
    "ensure_utc",
    "format_timestamp",
    "generate_uuid",
    "model_to_dict",
    "parse_datetime",
    "serialize_value",
    "utc_now",
]
