"""Booking lifecycle: creation with overlap protection and status transitions.

A booking claims the half-open day range [start_date, end_date) for conflict
purposes. Only CONFIRMED bookings are written into the availability ledger,
and every ledger write shares the transaction of the status change that
caused it.
"""
import math
from datetime import datetime

from flask import current_app

from models import db
from models.booking import Booking, BookingStatus, PaymentStatus, ACTIVE_STATUSES
from models.conversation import Conversation
from models.space import Space
from security.rbac import ADMIN_ROLE
from services import availability
from services.errors import (
    AlreadyCancelled,
    BookingConflict,
    BookingError,
    BookingOwnSpace,
    Forbidden,
    InvalidDateRange,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from services.storage import conflict_on_write
from utils.dates import nights_between, parse_date, today
from utils.events import booking_confirmed, emit_best_effort

PENDING = BookingStatus.PENDING.value
CONFIRMED = BookingStatus.CONFIRMED.value
REJECTED = BookingStatus.REJECTED.value
CANCELLED = BookingStatus.CANCELLED.value

OWNER = "owner"
REQUESTER = "requester"
ADMIN = "admin"

# (from, to) -> parties allowed to make the move; anything absent is illegal
TRANSITIONS = {
    (PENDING, CONFIRMED): {OWNER, ADMIN},
    (PENDING, REJECTED): {OWNER, ADMIN},
    (PENDING, CANCELLED): {REQUESTER, ADMIN},
    (CONFIRMED, CANCELLED): {REQUESTER, ADMIN},
}

SORTABLE_FIELDS = {
    "start_date": Booking.start_date,
    "end_date": Booking.end_date,
    "created_at": Booking.created_at,
    "status": Booking.status,
}


def _parse_status(value) -> str:
    if isinstance(value, BookingStatus):
        return value.value
    try:
        return BookingStatus(str(value or "").upper()).value
    except ValueError:
        raise ValidationError("Invalid booking status")


def _parties(booking, actor_id, actor_role):
    parties = set()
    if actor_role == ADMIN_ROLE:
        parties.add(ADMIN)
    if booking.user_id == actor_id:
        parties.add(REQUESTER)
    if booking.space is not None and booking.space.owner_user_id == actor_id:
        parties.add(OWNER)
    return parties


def check_transition(current: str, target: str, parties) -> None:
    """Raise unless `parties` may move a booking from `current` to `target`."""
    if current == CANCELLED and target == CANCELLED:
        raise AlreadyCancelled()

    allowed = TRANSITIONS.get((current, target))
    if allowed is None:
        raise InvalidTransition(f"Cannot change booking from {current} to {target}")

    if not allowed & set(parties):
        if target == CANCELLED:
            raise Forbidden("Only the booking user can cancel their booking")
        raise Forbidden("Only the space owner can confirm or reject bookings")


def _apply_status(booking, target: str) -> None:
    previous = booking.status
    booking.status = target

    if target == CONFIRMED:
        availability.mark_booked(booking.space_id, booking.id, booking.start_date, booking.end_date)
    elif target == CANCELLED:
        booking.cancelled_at = datetime.utcnow()
        if previous == CONFIRMED:
            availability.release_booked(booking.id)


def _load_for_update(booking_id) -> Booking:
    booking = Booking.query.filter(Booking.id == booking_id).with_for_update().first()
    if booking is None:
        raise NotFound()
    return booking


def create_booking(space_id, requester_id, start_date, end_date, message=None) -> Booking:
    try:
        start, end = parse_date(start_date), parse_date(end_date)
    except (TypeError, ValueError):
        raise ValidationError("startDate and endDate must be ISO dates (YYYY-MM-DD)")

    max_len = current_app.config.get("BOOKING_MESSAGE_MAX_LENGTH", 1000)
    if message is not None and len(message) > max_len:
        raise ValidationError(f"message must be at most {max_len} characters")

    if end <= start:
        raise InvalidDateRange("End date must be after start date")
    if start < today():
        raise InvalidDateRange("Start date cannot be in the past")

    try:
        # row lock serializes concurrent creations for the same space
        space = availability.get_live_space(space_id, lock=True)

        if space.owner_user_id == requester_id:
            raise BookingOwnSpace()

        overlapping = (
            Booking.query
            .filter(
                Booking.space_id == space.id,
                Booking.status.in_(ACTIVE_STATUSES),
                Booking.start_date < end,
                Booking.end_date > start,
            )
            .first()
        )
        if overlapping is not None:
            raise BookingConflict()
    except BookingError:
        db.session.rollback()
        raise

    booking = Booking(
        space_id=space.id,
        user_id=requester_id,
        start_date=start,
        end_date=end,
        status=PENDING,
        total_price=nights_between(start, end) * space.base_price,
        message=message,
    )
    db.session.add(booking)
    with conflict_on_write():
        db.session.commit()

    current_app.logger.info(
        "Booking %s created for space %s (%s..%s)", booking.id, space.id, start, end
    )
    return booking


def find_visible(booking_id, actor_id, actor_role) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFound()
    if not _parties(booking, actor_id, actor_role):
        raise Forbidden("You are not authorized to view this booking")
    return booking


def transition_status(booking_id, new_status, actor_id, actor_role) -> Booking:
    target = _parse_status(new_status)

    try:
        booking = _load_for_update(booking_id)
        parties = _parties(booking, actor_id, actor_role)
        if not parties:
            raise Forbidden("You are not authorized to view this booking")
        check_transition(booking.status, target, parties)
    except BookingError:
        db.session.rollback()
        raise

    previous = booking.status
    # ledger flushes can hit UNIQUE(space_id, date) against a concurrent owner write
    with conflict_on_write():
        _apply_status(booking, target)
        db.session.commit()

    current_app.logger.info(
        "Booking %s moved %s -> %s by user %s", booking.id, previous, target, actor_id
    )
    if target == CONFIRMED:
        emit_best_effort(booking_confirmed, booking)
    return booking


def cancel(booking_id, actor_id, actor_role) -> Booking:
    return transition_status(booking_id, CANCELLED, actor_id, actor_role)


def apply_external_status(booking_id, new_status=None, payment_status=None,
                          payment_intent_id=None) -> Booking:
    """
    Status write coming from outside the request flow (payment webhooks).
    Treated as an admin transition so the ledger stays reconciled; moving to
    the status the booking already has is a no-op.

    Payment fields are always recorded. If the status move itself is
    illegal, they are committed on their own and the transition error is
    raised afterwards.
    """
    target = _parse_status(new_status) if new_status is not None else None

    try:
        booking = _load_for_update(booking_id)
    except BookingError:
        db.session.rollback()
        raise

    previous = booking.status
    changes_status = target is not None and target != previous
    rejected = None
    if changes_status:
        try:
            check_transition(previous, target, {ADMIN})
        except BookingError as exc:
            rejected = exc
            changes_status = False

    with conflict_on_write():
        if payment_status is not None:
            booking.payment_status = PaymentStatus(payment_status).value
            if booking.payment_status == PaymentStatus.SUCCEEDED.value:
                booking.paid_at = datetime.utcnow()
        if payment_intent_id:
            booking.stripe_payment_intent_id = payment_intent_id
        if changes_status:
            _apply_status(booking, target)
        db.session.commit()

    if rejected is not None:
        current_app.logger.warning(
            "Booking %s kept status %s; payment recorded as %s",
            booking.id, previous, booking.payment_status,
        )
        raise rejected

    current_app.logger.info(
        "Booking %s external update: status %s -> %s, payment %s",
        booking.id, previous, booking.status, booking.payment_status,
    )
    if changes_status and target == CONFIRMED:
        emit_best_effort(booking_confirmed, booking)
    return booking


def delete_booking(booking_id, actor_id, actor_role):
    if actor_role != ADMIN_ROLE:
        raise Forbidden("Only administrators can delete bookings")

    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFound()

    with conflict_on_write():
        availability.release_booked(booking.id)
        Conversation.query.filter_by(booking_id=booking.id).update(
            {"booking_id": None}, synchronize_session=False
        )
        db.session.delete(booking)
        db.session.commit()

    current_app.logger.info("Booking %s deleted by admin %s", booking_id, actor_id)


def list_bookings(actor_id, actor_role, status=None, space_id=None,
                  start_date_from=None, start_date_to=None,
                  page=1, limit=20, sort_by="created_at", sort_order="desc"):
    max_limit = current_app.config.get("BOOKINGS_PAGE_MAX_LIMIT", 100)
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1 or limit > max_limit:
        raise ValidationError(f"limit must be between 1 and {max_limit}")
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError("sortBy must be one of " + ", ".join(sorted(SORTABLE_FIELDS)))
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sortOrder must be asc or desc")

    q = Booking.query
    # non-admin users only see their own bookings
    if actor_role != ADMIN_ROLE:
        q = q.filter(Booking.user_id == actor_id)
    if status:
        q = q.filter(Booking.status == _parse_status(status))
    if space_id is not None:
        q = q.filter(Booking.space_id == space_id)
    try:
        if start_date_from:
            q = q.filter(Booking.start_date >= parse_date(start_date_from))
        if start_date_to:
            q = q.filter(Booking.start_date <= parse_date(start_date_to))
    except (TypeError, ValueError):
        raise ValidationError("startDateFrom/startDateTo must be ISO dates (YYYY-MM-DD)")

    total = q.count()
    column = SORTABLE_FIELDS[sort_by]
    rows = (
        q.order_by(column.asc() if sort_order == "asc" else column.desc(), Booking.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "data": rows,
        "meta": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit),
        },
    }


def list_for_requester(user_id):
    return (
        Booking.query
        .filter(Booking.user_id == user_id)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .all()
    )


def list_for_owner(owner_id):
    return (
        Booking.query
        .join(Space, Booking.space_id == Space.id)
        .filter(Space.owner_user_id == owner_id)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .all()
    )
