"""
Time helpers shared by the availability engine, workflow and scheduler.

All timestamps are persisted as naive UTC. Aware values coming in from the
API are converted once at the boundary so comparisons inside the services
never mix aware and naive datetimes.
"""

from datetime import datetime, timezone
from typing import Callable, Union

Clock = Callable[[], datetime]

SECONDS_PER_HOUR = 3600


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize a datetime to naive UTC; naive input is assumed to be UTC."""
    if value.tzinfo is None or value.utcoffset() is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(name: str, value: Union[str, datetime]) -> datetime:
    """
    Resolve an ISO 8601 string or datetime to naive UTC.

    Raises:
        ValueError: if the value cannot be resolved to a timestamp
    """
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} must be an ISO 8601 timestamp")

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ValueError(f"{name} is not a valid ISO 8601 timestamp: {value!r}") from e
    return to_naive_utc(parsed)


def isoformat_z(value: datetime) -> str:
    """Render a naive UTC datetime with an explicit Z suffix."""
    return to_naive_utc(value).isoformat() + "Z"


def hours_between(later: datetime, earlier: datetime) -> float:
    """Signed number of hours from `earlier` to `later`."""
    return (later - earlier).total_seconds() / SECONDS_PER_HOUR
