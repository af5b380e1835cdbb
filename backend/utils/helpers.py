import math
from datetime import datetime, timezone


def round_half_up(value):
    """Round to the nearest integer, halves away from zero for non-negative input."""
    return int(math.floor(value + 0.5))


def percent(part, whole):
    """Integer percentage of ``part`` in ``whole``; 0 when ``whole`` is empty."""
    if not whole:
        return 0
    return round_half_up(100 * part / whole)


def parse_datetime(value):
    """Parse an ISO-8601 string (or pass through None/datetime). Raises ValueError."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Expected an ISO date string, got {value!r}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        # Stored timestamps are naive UTC.
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)
