"""Timezone helpers for reference dates and model-produced timestamps.

Users think in local wall-clock time. Models frequently return local times with
a ``Z`` suffix or with no offset at all; those are reinterpreted as wall-clock
time in the user's timezone. Timestamps that already carry an explicit offset
are kept.
"""

import re
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from daylight.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_TIMEZONE = "UTC"

_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})$")
_EXPLICIT_OFFSET_RE = re.compile(r"[+-]\d{2}:\d{2}$")
_LOCAL_TIMESTAMP_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})(?:[T ](\d{2}):(\d{2})(?::(\d{2}))?(?:\.\d+)?)?$"
)
_RELATIVE_RE = re.compile(
    r"^(today|yesterday|tomorrow|(\d+)\s+days?\s+ago)"
    r"(?:\s+at\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)?)?$",
    re.IGNORECASE,
)


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """Resolve an IANA zone name or a fixed ``±HH:MM`` offset.

    Unknown or empty values fall back to UTC.
    """
    if not name or name.strip().upper() in ("UTC", "Z", "GMT"):
        return timezone.utc

    value = name.strip()
    match = _OFFSET_RE.match(value)
    if match:
        sign, hours, minutes = match.groups()
        delta = timedelta(hours=int(hours), minutes=int(minutes))
        return timezone(-delta if sign == "-" else delta)

    try:
        return ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        LOGGER.warning(f"Unknown timezone '{value}', falling back to UTC")
        return timezone.utc


def resolve_reference_date(reference_date: Optional[str], tz_name: Optional[str], now: datetime) -> str:
    """Return the user's reference date, or today's date in their timezone.

    Args:
        reference_date: User-declared date (e.g. ``2026-01-30``), may be blank
        tz_name: The user's timezone
        now: Current instant; must be timezone-aware

    Returns:
        The reference date as ``YYYY-MM-DD`` (or the user's value verbatim)
    """
    if reference_date and reference_date.strip():
        return reference_date.strip()
    return now.astimezone(resolve_timezone(tz_name)).date().isoformat()


def resolve_local_timestamp(raw: Optional[str], tz_name: Optional[str]) -> Optional[str]:
    """Normalize a model timestamp into the user's local offset.

    ``2026-01-29T19:00:00`` and ``2026-01-29T19:00:00Z`` in ``America/New_York``
    both become ``2026-01-29T19:00:00-05:00``.

    Returns:
        ISO-8601 string with an explicit offset, or None when the value is
        missing or unparseable.
    """
    if raw is None or not raw.strip():
        return None

    value = raw.strip()
    if _EXPLICIT_OFFSET_RE.search(value):
        try:
            datetime.fromisoformat(value)
        except ValueError:
            LOGGER.warning(f"Discarding unparseable timestamp: {raw}")
            return None
        return value

    match = _LOCAL_TIMESTAMP_RE.match(value.removesuffix("Z").removesuffix("z"))
    if not match:
        LOGGER.warning(f"Discarding unparseable timestamp: {raw}")
        return None

    year, month, day, hour, minute, second = match.groups()
    try:
        local = datetime(
            int(year), int(month), int(day),
            int(hour or 0), int(minute or 0), int(second or 0),
            tzinfo=resolve_timezone(tz_name),
        )
    except ValueError:
        LOGGER.warning(f"Discarding out-of-range timestamp: {raw}")
        return None
    return local.isoformat(timespec="seconds")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an offset-bearing ISO string into an aware UTC datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def resolve_relative_phrase(phrase: str, reference_date: str, tz_name: Optional[str]) -> Optional[str]:
    """Resolve phrases like "yesterday at 7pm" against a reference date.

    Returns an ISO timestamp in the user's offset when a time is given, a bare
    ``YYYY-MM-DD`` date when only the day is known, or None if the phrase is
    not understood.
    """
    match = _RELATIVE_RE.match(phrase.strip())
    if not match:
        return None

    try:
        base = date.fromisoformat(reference_date.strip()[:10])
    except ValueError:
        return None

    day_word, days_ago, hour, minute, meridiem = match.groups()
    day_word = day_word.lower()
    if days_ago is not None:
        target = base - timedelta(days=int(days_ago))
    elif day_word == "yesterday":
        target = base - timedelta(days=1)
    elif day_word == "tomorrow":
        target = base + timedelta(days=1)
    else:
        target = base

    if hour is None:
        return target.isoformat()

    hour_value = int(hour)
    if meridiem:
        if not 1 <= hour_value <= 12:
            return None
        hour_value = hour_value % 12 + (12 if meridiem.lower() == "pm" else 0)
    if hour_value > 23:
        return None

    local = datetime(
        target.year, target.month, target.day, hour_value, int(minute or 0),
        tzinfo=resolve_timezone(tz_name),
    )
    return local.isoformat(timespec="seconds")
