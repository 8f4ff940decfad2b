"""What to show for the three permit tiers.

Everything here is a pure function of a ``StoreSnapshot`` and a clock
reading; nothing writes to the store.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from .const import EXPIRY_WARNING_DAYS, PENDING_PERMIT_DAYS, PENDING_PERMIT_NUMBER
from .exceptions import ValidationError
from .models import Permit, PermitBadge, ScheduledPermit, StoreSnapshot
from .util import (
    days_remaining,
    format_permit_date,
    format_permit_day,
    parse_permit_date,
    parse_price,
)


def current_permit(snapshot: StoreSnapshot) -> Permit | None:
    """Return the permit physically on the display where that differs from remote."""
    display = snapshot.display_permit
    if snapshot.is_display_out_of_sync() and display is not None and display.is_valid():
        return display
    return snapshot.remote_permit


def scheduled_permit(snapshot: StoreSnapshot, now: datetime) -> ScheduledPermit | None:
    current = current_permit(snapshot)
    if current is None or not current.is_valid():
        return None
    remote = snapshot.remote_permit
    if (
        remote is not None
        and remote.is_valid()
        and remote.permit_number != current.permit_number
    ):
        return ScheduledPermit(permit=remote, estimated=False)
    # Without a display permit the remote one is already shown as current.
    if snapshot.display_permit is None:
        return None
    try:
        valid_to = parse_permit_date(current.valid_to, end_of_day=True)
    except ValidationError:
        return None
    expires_today = valid_to.date() == now.date()
    if not expires_today and days_remaining(valid_to, now) > EXPIRY_WARNING_DAYS:
        return None
    next_start = datetime.combine(valid_to.date() + timedelta(days=1), datetime.min.time())
    next_end = next_start + timedelta(days=PENDING_PERMIT_DAYS - 1)
    placeholder = Permit(
        permit_number=PENDING_PERMIT_NUMBER,
        plate_number=current.plate_number,
        vehicle_name=current.vehicle_name,
        valid_from=format_permit_date(next_start),
        valid_to=format_permit_date(next_end.replace(hour=23, minute=59)),
        price=f"~{current.price}" if current.price else "",
    )
    return ScheduledPermit(permit=placeholder, estimated=True)


def permit_badge(permit: Permit, now: datetime) -> PermitBadge:
    """Classify ``permit`` by how close ``now`` is to its end.

    Unparseable dates are reported as current.
    """
    try:
        valid_to = parse_permit_date(permit.valid_to, end_of_day=True)
    except ValidationError:
        return PermitBadge.CURRENT
    if now > valid_to:
        return PermitBadge.EXPIRED
    if valid_to.date() == now.date():
        return PermitBadge.EXPIRING_TODAY
    if days_remaining(valid_to, now) <= 1:
        return PermitBadge.EXPIRING
    return PermitBadge.CURRENT


def format_date_range(valid_from: str, valid_to: str) -> str:
    try:
        start = parse_permit_date(valid_from)
        end = parse_permit_date(valid_to)
    except ValidationError:
        return f"{_strip_time(valid_from)} - {_strip_time(valid_to)}"
    return f"{format_permit_day(start)} - {format_permit_day(end)}"


def _strip_time(value: str) -> str:
    return value.split(":", 1)[0].strip()


def price_change_message(previous: Permit | None, current: Permit) -> str | None:
    """Describe how ``current``'s price compares to ``previous``'s."""
    if previous is None:
        return None
    old = parse_price(previous.price)
    new = parse_price(current.price)
    if old is None or new is None:
        return None
    delta = new - old
    if delta == 0:
        return f"Price unchanged at {current.price}"
    direction = "up" if delta > 0 else "down"
    return f"Price {direction} {abs(delta):.2f} ({previous.price} -> {current.price})"
