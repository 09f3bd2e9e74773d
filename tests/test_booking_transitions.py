import pytest
from sqlalchemy.exc import IntegrityError

from conftest import day, next_january
from models import db
from models.availability import AvailabilityEntry
from models.booking import Booking
from models.conversation import Conversation
from security.rbac import ADMIN_ROLE, USER_ROLE
from services import availability as ledger
from services import bookings as booking_service
from services.errors import (
    AlreadyCancelled,
    BookingConflict,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from utils.events import booking_confirmed


@pytest.fixture
def pending(space, advertiser):
    return booking_service.create_booking(space.id, advertiser.id, day(10), day(14))


def _booked_rows(booking_id):
    return (
        AvailabilityEntry.query
        .filter_by(booking_id=booking_id, type="BOOKED")
        .order_by(AvailabilityEntry.date)
        .all()
    )


def test_owner_confirms_and_ledger_is_materialized(pending, owner):
    booking = booking_service.transition_status(pending.id, "CONFIRMED", owner.id, USER_ROLE)

    assert booking.status == "CONFIRMED"
    rows = _booked_rows(booking.id)
    assert [r.date for r in rows] == [day(10), day(11), day(12), day(13), day(14)]


def test_confirm_then_cancel_round_trip_touches_only_its_days(space, owner, advertiser, make_user):
    booking = booking_service.create_booking(space.id, advertiser.id, next_january(1), next_january(5))
    ledger.block_dates(space.id, owner.id, [next_january(20)], notes="maintenance")

    booking_service.transition_status(booking.id, "CONFIRMED", owner.id, USER_ROLE)
    assert len(_booked_rows(booking.id)) == 5
    assert AvailabilityEntry.query.count() == 6

    booking_service.cancel(booking.id, advertiser.id, USER_ROLE)
    assert _booked_rows(booking.id) == []
    remaining = AvailabilityEntry.query.all()
    assert [(r.date, r.type) for r in remaining] == [(next_january(20), "BLOCKED")]


def test_admin_can_confirm_and_cancel(pending, admin):
    booking_service.transition_status(pending.id, "CONFIRMED", admin.id, ADMIN_ROLE)
    booking = booking_service.transition_status(pending.id, "CANCELLED", admin.id, ADMIN_ROLE)
    assert booking.status == "CANCELLED"
    assert booking.cancelled_at is not None
    assert _booked_rows(booking.id) == []


def test_requester_cannot_confirm_or_reject(pending, advertiser):
    for target in ("CONFIRMED", "REJECTED"):
        with pytest.raises(Forbidden):
            booking_service.transition_status(pending.id, target, advertiser.id, USER_ROLE)
    assert db.session.get(Booking, pending.id).status == "PENDING"


def test_owner_cannot_cancel_for_the_requester(pending, owner):
    with pytest.raises(Forbidden):
        booking_service.transition_status(pending.id, "CANCELLED", owner.id, USER_ROLE)


def test_strangers_are_forbidden(pending, make_user):
    stranger = make_user()
    with pytest.raises(Forbidden):
        booking_service.transition_status(pending.id, "CANCELLED", stranger.id, USER_ROLE)
    with pytest.raises(Forbidden):
        booking_service.find_visible(pending.id, stranger.id, USER_ROLE)


def test_find_visible(pending, owner, advertiser, admin):
    for actor, role in ((owner, USER_ROLE), (advertiser, USER_ROLE), (admin, ADMIN_ROLE)):
        assert booking_service.find_visible(pending.id, actor.id, role).id == pending.id
    with pytest.raises(NotFound):
        booking_service.find_visible(424242, admin.id, ADMIN_ROLE)


def test_cancel_twice_reports_already_cancelled(pending, advertiser):
    booking_service.cancel(pending.id, advertiser.id, USER_ROLE)
    with pytest.raises(AlreadyCancelled):
        booking_service.cancel(pending.id, advertiser.id, USER_ROLE)


def test_cancelled_booking_cannot_move_elsewhere(pending, advertiser, owner):
    booking_service.cancel(pending.id, advertiser.id, USER_ROLE)
    for target in ("CONFIRMED", "REJECTED", "PENDING"):
        with pytest.raises(InvalidTransition):
            booking_service.transition_status(pending.id, target, owner.id, USER_ROLE)


@pytest.mark.parametrize("actor_name,role", [("owner", USER_ROLE), ("advertiser", USER_ROLE), ("admin", ADMIN_ROLE)])
def test_rejected_booking_refuses_every_target(request, pending, owner, actor_name, role):
    booking_service.transition_status(pending.id, "REJECTED", owner.id, USER_ROLE)
    actor = request.getfixturevalue(actor_name)
    for target in ("PENDING", "CONFIRMED", "REJECTED", "CANCELLED"):
        with pytest.raises(InvalidTransition):
            booking_service.transition_status(pending.id, target, actor.id, role)
    assert db.session.get(Booking, pending.id).status == "REJECTED"


def test_confirmed_cannot_be_rejected_or_reconfirmed(pending, owner):
    booking_service.transition_status(pending.id, "CONFIRMED", owner.id, USER_ROLE)
    for target in ("REJECTED", "CONFIRMED", "PENDING"):
        with pytest.raises(InvalidTransition):
            booking_service.transition_status(pending.id, target, owner.id, USER_ROLE)
    assert len(_booked_rows(pending.id)) == 5


def test_pending_cancel_has_no_ledger_effect(pending, advertiser, space, owner):
    ledger.block_dates(space.id, owner.id, [day(30)])
    booking_service.cancel(pending.id, advertiser.id, USER_ROLE)
    assert AvailabilityEntry.query.count() == 1


def test_unknown_booking_and_status(pending, owner):
    with pytest.raises(NotFound):
        booking_service.transition_status(99999, "CONFIRMED", owner.id, USER_ROLE)
    with pytest.raises(ValidationError):
        booking_service.transition_status(pending.id, "ARCHIVED", owner.id, USER_ROLE)


def test_ledger_failure_rolls_back_the_status(pending, owner, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(ledger, "mark_booked", boom)
    with pytest.raises(RuntimeError):
        booking_service.transition_status(pending.id, "CONFIRMED", owner.id, USER_ROLE)

    db.session.expire_all()
    assert db.session.get(Booking, pending.id).status == "PENDING"
    assert AvailabilityEntry.query.count() == 0


def test_ledger_constraint_violation_is_a_conflict(pending, owner, monkeypatch):
    def duplicate_day(*args, **kwargs):
        raise IntegrityError("INSERT INTO space_availability", {}, Exception("UNIQUE constraint failed"))

    monkeypatch.setattr(db.session, "flush", duplicate_day)
    with pytest.raises(BookingConflict):
        booking_service.transition_status(pending.id, "CONFIRMED", owner.id, USER_ROLE)
    monkeypatch.undo()

    db.session.expire_all()
    assert db.session.get(Booking, pending.id).status == "PENDING"
    assert AvailabilityEntry.query.count() == 0


def test_confirmation_opens_a_conversation(pending, owner, advertiser):
    booking_service.transition_status(pending.id, "CONFIRMED", owner.id, USER_ROLE)

    conversation = Conversation.query.one()
    assert {conversation.participant_one_id, conversation.participant_two_id} == {owner.id, advertiser.id}
    assert conversation.participant_one_id < conversation.participant_two_id
    assert conversation.booking_id == pending.id
    assert len(conversation.messages) == 1
    assert "has been confirmed" in conversation.messages[0].body


def test_failing_confirmation_receiver_does_not_undo_confirmation(pending, owner):
    seen = []

    def broken_receiver(sender, **kwargs):
        seen.append(sender.id)
        raise RuntimeError("messaging is down")

    with booking_confirmed.connected_to(broken_receiver):
        booking = booking_service.transition_status(pending.id, "CONFIRMED", owner.id, USER_ROLE)

    assert seen == [pending.id]
    assert booking.status == "CONFIRMED"
    db.session.expire_all()
    assert db.session.get(Booking, pending.id).status == "CONFIRMED"
    assert len(_booked_rows(pending.id)) == 5


def test_shared_turnover_day_stays_with_a_confirmed_booking(space, owner, advertiser, make_user):
    first = booking_service.create_booking(space.id, advertiser.id, next_january(10), next_january(15))
    second = booking_service.create_booking(space.id, make_user().id, next_january(15), next_january(20))
    booking_service.transition_status(first.id, "CONFIRMED", owner.id, USER_ROLE)
    booking_service.transition_status(second.id, "CONFIRMED", owner.id, USER_ROLE)

    # Jan 15 is held by the booking confirmed first
    assert len(_booked_rows(first.id)) == 6
    assert len(_booked_rows(second.id)) == 5

    booking_service.cancel(first.id, advertiser.id, USER_ROLE)
    rows = _booked_rows(second.id)
    assert [r.date for r in rows] == [next_january(d) for d in range(15, 21)]


def test_external_status_confirms_like_an_admin(pending):
    booking = booking_service.apply_external_status(
        pending.id, new_status="CONFIRMED", payment_status="SUCCEEDED", payment_intent_id="pi_123"
    )
    assert booking.status == "CONFIRMED"
    assert booking.payment_status == "SUCCEEDED"
    assert booking.paid_at is not None
    assert booking.stripe_payment_intent_id == "pi_123"
    assert len(_booked_rows(pending.id)) == 5

    # replaying the same event changes nothing
    again = booking_service.apply_external_status(pending.id, new_status="CONFIRMED", payment_status="SUCCEEDED")
    assert again.status == "CONFIRMED"
    assert len(_booked_rows(pending.id)) == 5

    refunded = booking_service.apply_external_status(pending.id, new_status="CANCELLED", payment_status="REFUNDED")
    assert refunded.status == "CANCELLED"
    assert _booked_rows(pending.id) == []


def test_external_status_respects_terminal_states(pending, owner):
    booking_service.transition_status(pending.id, "REJECTED", owner.id, USER_ROLE)
    with pytest.raises(InvalidTransition):
        booking_service.apply_external_status(
            pending.id, new_status="CONFIRMED", payment_status="SUCCEEDED", payment_intent_id="pi_late"
        )
    db.session.expire_all()
    booking = db.session.get(Booking, pending.id)
    assert booking.status == "REJECTED"
    assert booking.payment_status == "SUCCEEDED"
    assert booking.stripe_payment_intent_id == "pi_late"
    assert AvailabilityEntry.query.count() == 0


def test_admin_delete_releases_ledger(pending, owner, admin, advertiser):
    booking_service.transition_status(pending.id, "CONFIRMED", owner.id, USER_ROLE)

    with pytest.raises(Forbidden):
        booking_service.delete_booking(pending.id, advertiser.id, USER_ROLE)

    booking_id = pending.id
    booking_service.delete_booking(booking_id, admin.id, ADMIN_ROLE)
    assert db.session.get(Booking, booking_id) is None
    assert AvailabilityEntry.query.count() == 0
    assert Conversation.query.one().booking_id is None

    with pytest.raises(NotFound):
        booking_service.delete_booking(booking_id, admin.id, ADMIN_ROLE)
