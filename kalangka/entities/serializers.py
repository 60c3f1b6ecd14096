"""Serialization between stored records and the remote wire format.

Timestamps are kept as naive UTC in the local database and travel as
ISO 8601 strings with an explicit UTC offset.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from kalangka.entities.kinds import EntityKind


def serialize_datetime(dt: datetime | None) -> str | None:
    """Convert a stored datetime to an ISO 8601 string.

    Args:
        dt: Naive UTC (or aware) datetime, or None.

    Returns:
        ISO 8601 formatted string with offset, or None.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def deserialize_datetime(s: str | datetime | None) -> datetime | None:
    """Convert an ISO 8601 string to a naive UTC datetime.

    Args:
        s: ISO 8601 string (a trailing 'Z' is accepted), datetime, or None.

    Returns:
        Naive UTC datetime or None.

    Raises:
        ValueError: If the string is not ISO 8601.
    """
    if s is None or s == "":
        return None
    dt = s if isinstance(s, datetime) else datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def serialize_date(d: date | None) -> str | None:
    """Convert a date to an ISO 8601 string."""
    if d is None:
        return None
    if isinstance(d, datetime):
        d = d.date()
    return d.isoformat()


def deserialize_date(s: str | date | None) -> date | None:
    """Convert an ISO 8601 date or datetime string to a date.

    Raises:
        ValueError: If the string is not ISO 8601.
    """
    if s is None or s == "":
        return None
    if isinstance(s, datetime):
        return s.date()
    if isinstance(s, date):
        return s
    if len(s) > 10:
        return deserialize_datetime(s).date()
    return date.fromisoformat(s)


def serialize_enum(e: Enum | None) -> str | None:
    """Convert enum to its value string."""
    if e is None:
        return None
    return e.value


def serialize_value(value: Any) -> Any:
    """Convert a single field value to its JSON representation."""
    if isinstance(value, datetime):
        return serialize_datetime(value)
    if isinstance(value, date):
        return serialize_date(value)
    if isinstance(value, Enum):
        return serialize_enum(value)
    return value


def to_payload(kind: "EntityKind", record: BaseModel, image_ref: str | None = None) -> dict:
    """Build the sync payload sent to the remote API.

    Args:
        kind: Entity kind descriptor.
        record: Stored record.
        image_ref: Resolved remote image URL (never a local path).

    Returns:
        dict: JSON-serializable payload with ``is_synced`` set to True.
    """
    payload = {name: serialize_value(getattr(record, name)) for name in kind.payload_fields}
    if kind.image_field:
        payload[kind.image_field] = image_ref
    payload["is_synced"] = True
    return payload


def from_payload(kind: "EntityKind", data: dict) -> dict[str, Any]:
    """Convert a remote record into column values for the local table.

    Unknown keys are ignored; ``is_synced`` is not taken from the remote.

    Args:
        kind: Entity kind descriptor.
        data: Remote record.

    Returns:
        dict: Column values.

    Raises:
        ValueError: If a date or timestamp cannot be parsed.
    """
    values: dict[str, Any] = {}
    for name in kind.payload_fields:
        if name not in data:
            continue
        value = data[name]
        if name in kind.datetime_fields:
            value = deserialize_datetime(value)
        elif name in kind.date_fields:
            value = deserialize_date(value)
        elif name in kind.enum_fields and value is not None:
            value = kind.enum_fields[name](value)
        values[name] = value
    return values
