import random
from datetime import timedelta

import pytest

from conftest import day, next_january
from models import db
from models.availability import AvailabilityEntry
from models.booking import Booking, ACTIVE_STATUSES
from security.rbac import ADMIN_ROLE, USER_ROLE
from services import bookings as booking_service
from services.errors import (
    BookingConflict,
    BookingOwnSpace,
    InvalidDateRange,
    SpaceNotFound,
    ValidationError,
)
from utils.dates import ranges_overlap


def _create(space, user, start, end, message=None):
    return booking_service.create_booking(space.id, user.id, start, end, message=message)


def test_create_is_pending_and_priced_per_night(space, advertiser):
    booking = _create(space, advertiser, next_january(10), next_january(13), message="Spring campaign")

    assert booking.status == "PENDING"
    assert booking.payment_status == "PENDING"
    assert booking.total_price == 300
    assert booking.message == "Spring campaign"
    # pending bookings never touch the ledger
    assert AvailabilityEntry.query.count() == 0


def test_create_accepts_iso_strings(space, advertiser):
    start = next_january(10)
    booking = _create(space, advertiser, start.isoformat() + "T00:00:00Z", (start + timedelta(days=2)).isoformat())
    assert booking.start_date == start
    assert booking.total_price == 200


@pytest.mark.parametrize("offset", [0, -1, -30])
def test_end_not_after_start_is_invalid_range(space, advertiser, offset):
    start = day(5)
    with pytest.raises(InvalidDateRange):
        _create(space, advertiser, start, start + timedelta(days=offset))


def test_end_not_after_start_fails_for_any_pair(space, advertiser):
    rng = random.Random(11)
    for _ in range(25):
        start = day(rng.randint(0, 400))
        end = start - timedelta(days=rng.randint(0, 60))
        with pytest.raises(InvalidDateRange):
            _create(space, advertiser, start, end)


def test_start_in_the_past_is_invalid_range(space, advertiser):
    with pytest.raises(InvalidDateRange):
        _create(space, advertiser, day(-1), day(2))


def test_start_today_is_allowed(space, advertiser):
    booking = _create(space, advertiser, day(0), day(1))
    assert booking.total_price == 100


def test_unparseable_dates_are_validation_errors(space, advertiser):
    with pytest.raises(ValidationError):
        _create(space, advertiser, "soon", "later")


def test_message_length_is_capped(space, advertiser):
    with pytest.raises(ValidationError):
        _create(space, advertiser, day(1), day(2), message="x" * 1001)


def test_missing_or_deleted_space(space, advertiser):
    with pytest.raises(SpaceNotFound):
        booking_service.create_booking(9999, advertiser.id, day(1), day(3))

    space.deleted_at = space.created_at
    db.session.commit()
    with pytest.raises(SpaceNotFound):
        _create(space, advertiser, day(1), day(3))


def test_owner_cannot_book_own_space_for_any_dates(space, owner):
    for start_offset, nights in [(0, 1), (3, 10), (200, 2)]:
        with pytest.raises(BookingOwnSpace):
            _create(space, owner, day(start_offset), day(start_offset + nights))


def test_overlap_with_confirmed_booking_conflicts(space, owner, advertiser, make_user):
    first = _create(space, advertiser, next_january(10), next_january(15))
    booking_service.transition_status(first.id, "CONFIRMED", owner.id, USER_ROLE)

    with pytest.raises(BookingConflict):
        _create(space, make_user(), next_january(14), next_january(18))


def test_shared_endpoint_is_not_a_conflict(space, owner, advertiser, make_user):
    first = _create(space, advertiser, next_january(10), next_january(15))
    booking_service.transition_status(first.id, "CONFIRMED", owner.id, USER_ROLE)

    second = _create(space, make_user(), next_january(15), next_january(20))
    assert second.status == "PENDING"

    # and the same on the other side
    third = _create(space, make_user(), next_january(5), next_january(10))
    assert third.status == "PENDING"


def test_pending_bookings_also_block(space, advertiser, make_user):
    _create(space, advertiser, day(10), day(20))
    with pytest.raises(BookingConflict):
        _create(space, make_user(), day(12), day(14))
    with pytest.raises(BookingConflict):
        _create(space, make_user(), day(5), day(30))


def test_cancelled_and_rejected_bookings_free_the_range(space, owner, advertiser, make_user):
    a = _create(space, advertiser, day(10), day(20))
    booking_service.cancel(a.id, advertiser.id, USER_ROLE)
    b = _create(space, make_user(), day(10), day(20))
    booking_service.transition_status(b.id, "REJECTED", owner.id, USER_ROLE)

    c = _create(space, make_user(), day(12), day(14))
    assert c.status == "PENDING"


def test_other_spaces_do_not_conflict(space, make_space, owner, advertiser):
    other = make_space(owner, title="Bus shelter")
    _create(space, advertiser, day(10), day(20))
    assert _create(other, advertiser, day(10), day(20)).space_id == other.id


def test_no_two_active_bookings_ever_overlap(space, owner, make_user):
    rng = random.Random(2024)
    users = [make_user() for _ in range(4)]
    accepted = []

    for _ in range(120):
        start = day(rng.randint(0, 60))
        end = start + timedelta(days=rng.randint(1, 7))
        expected_conflict = any(ranges_overlap(b.start_date, b.end_date, start, end) for b in accepted)
        try:
            booking = _create(space, rng.choice(users), start, end)
        except BookingConflict:
            assert expected_conflict
            continue
        assert not expected_conflict
        accepted.append(booking)

        roll = rng.random()
        if roll < 0.4:
            booking_service.transition_status(booking.id, "CONFIRMED", owner.id, USER_ROLE)
        elif roll < 0.55:
            booking_service.cancel(booking.id, booking.user_id, USER_ROLE)
            accepted.remove(booking)

    active = Booking.query.filter(Booking.space_id == space.id, Booking.status.in_(ACTIVE_STATUSES)).all()
    assert len(active) == len(accepted)
    for i, a in enumerate(active):
        for b in active[i + 1:]:
            assert not ranges_overlap(a.start_date, a.end_date, b.start_date, b.end_date)


def test_list_bookings_scopes_and_paginates(space, owner, advertiser, admin, make_user):
    other = make_user()
    for n in range(5):
        _create(space, advertiser, day(10 * n + 1), day(10 * n + 3))
    _create(space, other, day(100), day(101))

    mine = booking_service.list_bookings(advertiser.id, USER_ROLE, limit=2, sort_by="start_date", sort_order="asc")
    assert mine["meta"] == {"page": 1, "limit": 2, "total": 5, "totalPages": 3}
    assert [b.start_date for b in mine["data"]] == [day(1), day(11)]

    everyone = booking_service.list_bookings(admin.id, ADMIN_ROLE)
    assert everyone["meta"]["total"] == 6

    filtered = booking_service.list_bookings(
        admin.id, ADMIN_ROLE, start_date_from=day(20).isoformat(), start_date_to=day(40).isoformat()
    )
    assert filtered["meta"]["total"] == 2

    with pytest.raises(ValidationError):
        booking_service.list_bookings(admin.id, ADMIN_ROLE, limit=500)
    with pytest.raises(ValidationError):
        booking_service.list_bookings(admin.id, ADMIN_ROLE, sort_by="total_price")


def test_owner_and_requester_listings(space, make_space, owner, advertiser, make_user):
    other_owner = make_user()
    elsewhere = make_space(other_owner, title="Rooftop")
    a = _create(space, advertiser, day(1), day(2))
    b = _create(elsewhere, advertiser, day(1), day(2))

    assert {x.id for x in booking_service.list_for_requester(advertiser.id)} == {a.id, b.id}
    assert [x.id for x in booking_service.list_for_owner(owner.id)] == [a.id]
    assert [x.id for x in booking_service.list_for_owner(other_owner.id)] == [b.id]
