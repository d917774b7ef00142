from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Collection, Optional

if TYPE_CHECKING:
    from crm.backup.codec import Row

TIMESTAMP_SUFFIX = "_at"
DATE_FIELDS = frozenset({"close_date", "actual_close_date", "est_close_date"})
ENUM_FIELDS = frozenset({"status", "priority", "type", "stage", "rating", "account_type", "source"})

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def column_name(key: str) -> str:
    """Map a camelCase key (closeDate) to its column name (close_date)."""
    if "_" in key or key.islower():
        return key
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def is_timestamp_field(name: str) -> bool:
    return name.endswith(TIMESTAMP_SUFFIX) or name in DATE_FIELDS


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a serialized timestamp back into a naive UTC datetime.

    Anything that cannot be parsed becomes None instead of failing the row.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def normalize_row(row: Row, columns: Optional[Collection[str]] = None) -> Row:
    out: Row = {}
    for key, value in row.items():
        name = key
        if columns is None:
            name = column_name(key)
        elif name not in columns:
            name = column_name(key)
            if name not in columns:
                continue
        if is_timestamp_field(name):
            value = parse_timestamp(value)
        elif name in ENUM_FIELDS and isinstance(value, str):
            value = value.lower()
        out[name] = value
    return out


__all__ = [
    "DATE_FIELDS",
    "ENUM_FIELDS",
    "column_name",
    "is_timestamp_field",
    "parse_timestamp",
    "normalize_row",
]
