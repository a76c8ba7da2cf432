"""Duration parsing for cache ages."""

import re
from datetime import timedelta

from directus_sdk.types import Duration

_DURATION_PATTERN = re.compile(r"^(\d+)(ms|s|m|h|d)$")
_MS_PER_UNIT: dict[str, int] = {
    "ms": 1,
    "s": 1000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}


def parse_duration(duration: Duration) -> int:
    """Convert "30s", "5m", "24h", a timedelta or raw milliseconds to milliseconds."""
    if isinstance(duration, timedelta):
        duration = int(duration.total_seconds() * 1000)
    if isinstance(duration, int):
        if duration < 0:
            raise ValueError(f"Invalid duration: {duration!r}")
        return duration

    match = _DURATION_PATTERN.match(duration.strip())
    if not match:
        raise ValueError(f"Invalid duration: {duration!r}")

    amount, unit = match.groups()
    return int(amount) * _MS_PER_UNIT[unit]
