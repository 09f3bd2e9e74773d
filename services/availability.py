"""Per-day availability ledger for spaces.

Entries are sparse: a day with no row is implicitly available. Owners
write AVAILABLE/BLOCKED rows; BOOKED rows are written only by the booking
lifecycle (mark_booked / release_booked) and never touched by owner
operations.
"""
from flask import current_app
from sqlalchemy import or_

from models import db
from models.availability import AvailabilityEntry, AvailabilityType
from models.booking import Booking, BookingStatus, ACTIVE_STATUSES
from models.space import Space
from services.errors import (
    DateAlreadyBooked,
    Forbidden,
    InvalidDate,
    InvalidDateRange,
    SpaceNotFound,
    ValidationError,
)
from services.storage import conflict_on_write
from utils.dates import iter_days, parse_date, today

OWNER_WRITABLE_TYPES = {AvailabilityType.AVAILABLE.value, AvailabilityType.BLOCKED.value}
UNAVAILABLE_TYPES = (AvailabilityType.BLOCKED.value, AvailabilityType.BOOKED.value)


def get_live_space(space_id, lock=False) -> Space:
    q = Space.live().filter(Space.id == space_id)
    if lock:
        q = q.with_for_update()
    space = q.first()
    if space is None:
        raise SpaceNotFound()
    return space


def _owned_space(space_id, owner_id) -> Space:
    space = get_live_space(space_id)
    if space.owner_user_id != owner_id:
        raise Forbidden("Only the space owner can manage availability")
    return space


def _coerce_days(values):
    if not isinstance(values, (list, tuple, set)) or not values:
        raise ValidationError("dates must be a non-empty list")
    try:
        days = {parse_date(v) for v in values}
    except (TypeError, ValueError):
        raise ValidationError("dates must be ISO dates (YYYY-MM-DD)")
    return sorted(days)


def _coerce_range(start, end):
    try:
        start_day, end_day = parse_date(start), parse_date(end)
    except (TypeError, ValueError):
        raise ValidationError("startDate and endDate must be ISO dates (YYYY-MM-DD)")
    if end_day < start_day:
        raise InvalidDateRange("endDate must not be before startDate")
    return start_day, end_day


def query_range(space_id, start, end):
    start_day, end_day = _coerce_range(start, end)
    space = get_live_space(space_id)

    entries = (
        AvailabilityEntry.query
        .filter(
            AvailabilityEntry.space_id == space.id,
            AvailabilityEntry.date >= start_day,
            AvailabilityEntry.date <= end_day,
        )
        .order_by(AvailabilityEntry.date.asc())
        .all()
    )

    bookings = (
        Booking.query
        .filter(
            Booking.space_id == space.id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.start_date <= end_day,
            Booking.end_date >= start_day,
        )
        .order_by(Booking.start_date.asc())
        .all()
    )

    return {
        "space_id": space.id,
        "base_price": space.base_price,
        "availability": entries,
        "bookings": bookings,
    }


def check_range_available(space_id, start, end):
    start_day, end_day = _coerce_range(start, end)
    space = get_live_space(space_id)

    rows = (
        AvailabilityEntry.query
        .filter(
            AvailabilityEntry.space_id == space.id,
            AvailabilityEntry.date >= start_day,
            AvailabilityEntry.date <= end_day,
            AvailabilityEntry.type.in_(UNAVAILABLE_TYPES),
        )
        .order_by(AvailabilityEntry.date.asc())
        .all()
    )
    conflicts = [r.date for r in rows]
    return {"available": not conflicts, "conflicts": conflicts}


def set_availability(space_id, owner_id, dates, type, notes=None, price_override=None):
    space = _owned_space(space_id, owner_id)

    entry_type = type.value if isinstance(type, AvailabilityType) else str(type or "").upper()
    if entry_type not in OWNER_WRITABLE_TYPES:
        raise ValidationError("type must be AVAILABLE or BLOCKED")

    if price_override is not None:
        if isinstance(price_override, bool) or not isinstance(price_override, int) or price_override <= 0:
            raise ValidationError("priceOverride must be a positive integer")

    days = _coerce_days(dates)
    current = today()
    if any(d < current for d in days):
        raise InvalidDate()

    existing = {
        e.date: e
        for e in AvailabilityEntry.query.filter(
            AvailabilityEntry.space_id == space.id,
            AvailabilityEntry.date.in_(days),
        ).all()
    }
    booked = sorted(d for d, e in existing.items() if e.type == AvailabilityType.BOOKED.value)
    if booked:
        raise DateAlreadyBooked(
            "Dates held by a confirmed booking: " + ", ".join(d.isoformat() for d in booked)
        )

    results = []
    # a confirmation racing this write can insert the same (space, date) first
    with conflict_on_write():
        for day in days:
            entry = existing.get(day)
            if entry is None:
                entry = AvailabilityEntry(space_id=space.id, date=day)
                db.session.add(entry)
            entry.type = entry_type
            entry.notes = notes
            entry.price_override = price_override
            entry.booking_id = None
            results.append(entry)
        db.session.commit()
    current_app.logger.info(
        "Availability updated for space %s: %d dates (%s)", space.id, len(results), entry_type
    )
    return results


def block_dates(space_id, owner_id, dates, notes=None):
    return set_availability(space_id, owner_id, dates, AvailabilityType.BLOCKED, notes=notes)


def set_price_override(space_id, owner_id, dates, price):
    return set_availability(
        space_id, owner_id, dates, AvailabilityType.AVAILABLE, price_override=price
    )


def unblock_dates(space_id, owner_id, dates):
    space = _owned_space(space_id, owner_id)
    days = _coerce_days(dates)

    with conflict_on_write():
        deleted = (
            AvailabilityEntry.query
            .filter(
                AvailabilityEntry.space_id == space.id,
                AvailabilityEntry.date.in_(days),
                AvailabilityEntry.type != AvailabilityType.BOOKED.value,
            )
            .delete(synchronize_session="fetch")
        )
        db.session.commit()

    current_app.logger.info("Availability cleared for space %s: %d dates", space.id, deleted)
    return {"deleted": deleted}


def mark_booked(space_id, booking_id, start_date, end_date):
    """
    Materialize a confirmed booking: one BOOKED row per day in
    [start_date, end_date]. Does not commit.
    A day already BOOKED by another confirmed booking (shared turnover day)
    stays with that booking.
    """
    days = list(iter_days(start_date, end_date))
    existing = {
        e.date: e
        for e in AvailabilityEntry.query.filter(
            AvailabilityEntry.space_id == space_id,
            AvailabilityEntry.date.in_(days),
        ).all()
    }

    marked = 0
    for day in days:
        entry = existing.get(day)
        if entry is None:
            entry = AvailabilityEntry(space_id=space_id, date=day)
            db.session.add(entry)
        elif entry.type == AvailabilityType.BOOKED.value and entry.booking_id not in (None, booking_id):
            continue
        entry.type = AvailabilityType.BOOKED.value
        entry.booking_id = booking_id
        marked += 1

    db.session.flush()
    current_app.logger.info("Marked %d dates as booked for booking %s", marked, booking_id)
    return marked


def release_booked(booking_id):
    """
    Delete the BOOKED rows of a booking. Does not commit.
    Released days still covered by another confirmed booking of the same
    space are handed over to it.
    """
    entries = AvailabilityEntry.query.filter_by(
        booking_id=booking_id, type=AvailabilityType.BOOKED.value
    ).all()
    if not entries:
        return 0

    space_id = entries[0].space_id
    days = [e.date for e in entries]
    for e in entries:
        db.session.delete(e)
    db.session.flush()

    others = (
        Booking.query
        .filter(
            Booking.space_id == space_id,
            Booking.id != booking_id,
            Booking.status == BookingStatus.CONFIRMED.value,
            Booking.start_date <= max(days),
            Booking.end_date >= min(days),
        )
        .order_by(Booking.start_date.asc())
        .all()
    )
    for day in days:
        holder = next((b for b in others if b.start_date <= day <= b.end_date), None)
        if holder is not None:
            db.session.add(AvailabilityEntry(
                space_id=space_id,
                date=day,
                type=AvailabilityType.BOOKED.value,
                booking_id=holder.id,
            ))
    db.session.flush()

    current_app.logger.info("Released %d booked dates for booking %s", len(entries), booking_id)
    return len(entries)


def reconcile(space_id=None):
    """Bring BOOKED rows back in line with CONFIRMED bookings."""
    stale_q = (
        AvailabilityEntry.query
        .outerjoin(Booking, Booking.id == AvailabilityEntry.booking_id)
        .filter(
            AvailabilityEntry.type == AvailabilityType.BOOKED.value,
            or_(Booking.id.is_(None), Booking.status != BookingStatus.CONFIRMED.value),
        )
    )
    if space_id is not None:
        stale_q = stale_q.filter(AvailabilityEntry.space_id == space_id)

    released = 0
    for entry in stale_q.all():
        db.session.delete(entry)
        released += 1
    db.session.flush()

    confirmed_q = Booking.query.filter(Booking.status == BookingStatus.CONFIRMED.value)
    if space_id is not None:
        confirmed_q = confirmed_q.filter(Booking.space_id == space_id)

    materialized = 0
    for booking in confirmed_q.order_by(Booking.start_date.asc()).all():
        by_day = {
            e.date: e
            for e in AvailabilityEntry.query.filter(
                AvailabilityEntry.space_id == booking.space_id,
                AvailabilityEntry.date >= booking.start_date,
                AvailabilityEntry.date <= booking.end_date,
            ).all()
        }
        for day in iter_days(booking.start_date, booking.end_date):
            entry = by_day.get(day)
            if entry is not None and entry.type == AvailabilityType.BOOKED.value:
                continue
            if entry is None:
                entry = AvailabilityEntry(space_id=booking.space_id, date=day)
                db.session.add(entry)
            entry.type = AvailabilityType.BOOKED.value
            entry.booking_id = booking.id
            materialized += 1
        db.session.flush()

    db.session.commit()
    current_app.logger.info(
        "Ledger reconciled: %d materialized, %d released", materialized, released
    )
    return {"materialized": materialized, "released": released}
