"""Shared utilities for date handling and display formatting."""

from __future__ import annotations

import re
from datetime import datetime, time, timedelta
from decimal import Decimal, InvalidOperation

from .const import PERMIT_DATE_FORMAT, PERMIT_DAY_FORMAT
from .exceptions import ValidationError

_LICENSE_PLATE_RE = re.compile(r"[^A-Z0-9]")
_PRICE_RE = re.compile(r"-?\d+(?:[.,]\d+)?")

_SECOND = 1000
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR


def mask_license_plate(plate: str) -> str:
    if not isinstance(plate, str):
        return "***"
    normalized = _LICENSE_PLATE_RE.sub("", plate.upper())
    if not normalized:
        return "***"
    if len(normalized) <= 2:
        return "*" * len(normalized)
    if len(normalized) <= 4:
        return f"{normalized[:1]}{'*' * (len(normalized) - 2)}{normalized[-1:]}"
    masked = "*" * (len(normalized) - 4)
    return f"{normalized[:2]}{masked}{normalized[-2:]}"


def parse_permit_date(value: str, *, end_of_day: bool = False) -> datetime:
    """Parse a permit timestamp such as ``"Dec 30, 2025: 00:00"``.

    Values without a time component (``"Dec 30, 2025"``) are accepted too and
    resolve to midnight, or to the last minute of the day when
    ``end_of_day`` is set. Returned datetimes are naive local time, matching
    how the permit source writes them.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Permit date must be a non-empty string.")
    raw = value.strip()
    try:
        return datetime.strptime(raw, PERMIT_DATE_FORMAT)
    except ValueError:
        pass
    day_part = raw.split(":", 1)[0].strip()
    try:
        parsed = datetime.strptime(day_part, PERMIT_DAY_FORMAT)
    except ValueError as exc:
        raise ValidationError(f"Unrecognised permit date {value!r}.") from exc
    if end_of_day:
        return datetime.combine(parsed.date(), time(23, 59))
    return parsed


def format_permit_day(value: datetime) -> str:
    return value.strftime(PERMIT_DAY_FORMAT)


def format_permit_date(value: datetime) -> str:
    return value.strftime(PERMIT_DATE_FORMAT)


def days_remaining(until: datetime, now: datetime) -> int:
    """Whole days between ``now`` and ``until``, truncated toward zero."""
    seconds = (until - now).total_seconds()
    return int(seconds / timedelta(days=1).total_seconds())


def parse_price(value: str) -> Decimal | None:
    if not isinstance(value, str) or not value.strip():
        return None
    match = _PRICE_RE.search(value.replace(",", "") if "." in value else value)
    if match is None:
        return None
    try:
        return Decimal(match.group(0).replace(",", "."))
    except InvalidOperation:
        return None


def relative_time(timestamp_ms: int, now_ms: int) -> str:
    if timestamp_ms == 0:
        return "Never"
    diff = now_ms - timestamp_ms
    if diff < 0:
        return "Just now"
    seconds = diff // _SECOND
    minutes = diff // _MINUTE
    hours = diff // _HOUR
    days = diff // _DAY
    if seconds < 5:
        return "Just now"
    if seconds < 60:
        return f"{seconds} sec ago"
    if minutes < 60:
        return "1 min ago" if minutes == 1 else f"{minutes} min ago"
    if hours < 24:
        return "1 hour ago" if hours == 1 else f"{hours} hours ago"
    if days < 7:
        return "1 day ago" if days == 1 else f"{days} days ago"
    weeks = days // 7
    return "1 week ago" if weeks == 1 else f"{weeks} weeks ago"
