from flask import Blueprint, request, jsonify, g

from security.rbac import actor_role, require_roles, ADMIN_ROLE
from services import bookings as booking_service
from services.errors import ValidationError
from utils.auth_context import login_required
from utils.audit import log_event

bookings_bp = Blueprint("bookings", __name__, url_prefix="/bookings")


def _actor():
    return g.user.id, actor_role(g.user)


# ---------- ADVERTISERS: request a booking ----------
@bookings_bp.post("")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    space_id = data.get("spaceId")
    start_date = data.get("startDate")
    end_date = data.get("endDate")
    message = data.get("message")

    if not space_id or not start_date or not end_date:
        raise ValidationError("spaceId, startDate, endDate are required")
    if message is not None and not isinstance(message, str):
        raise ValidationError("message must be a string")

    try:
        space_id = int(space_id)
    except (TypeError, ValueError):
        raise ValidationError("spaceId must be an integer")

    booking = booking_service.create_booking(
        space_id, g.user.id, start_date, end_date, message=(message or "").strip() or None
    )

    log_event(
        "BOOKING_CREATE", user_id=g.user.id, entity="booking", entity_id=booking.id,
        metadata={"space_id": booking.space_id, "total_price": booking.total_price},
    )
    return jsonify(booking.to_dict(include_space=True)), 201


@bookings_bp.get("")
@login_required
def list_bookings():
    actor_id, role = _actor()
    result = booking_service.list_bookings(
        actor_id,
        role,
        status=request.args.get("status"),
        space_id=request.args.get("spaceId", type=int),
        start_date_from=request.args.get("startDateFrom"),
        start_date_to=request.args.get("startDateTo"),
        page=request.args.get("page", default=1, type=int),
        limit=request.args.get("limit", default=20, type=int),
        sort_by=request.args.get("sortBy", "created_at"),
        sort_order=request.args.get("sortOrder", "desc"),
    )
    return jsonify(
        data=[b.to_dict(include_space=True) for b in result["data"]],
        meta=result["meta"],
    ), 200


@bookings_bp.get("/my-bookings")
@login_required
def my_bookings():
    rows = booking_service.list_for_requester(g.user.id)
    return jsonify([b.to_dict(include_space=True) for b in rows]), 200


# ---------- OWNERS: bookings on my spaces ----------
@bookings_bp.get("/owner-bookings")
@login_required
def owner_bookings():
    rows = booking_service.list_for_owner(g.user.id)
    return jsonify([b.to_dict(include_space=True) for b in rows]), 200


@bookings_bp.get("/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    actor_id, role = _actor()
    booking = booking_service.find_visible(booking_id, actor_id, role)
    return jsonify(booking.to_dict(include_space=True)), 200


@bookings_bp.patch("/<int:booking_id>/status")
@login_required
def update_status(booking_id: int):
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if not status:
        raise ValidationError("status is required")

    actor_id, role = _actor()
    booking = booking_service.transition_status(booking_id, status, actor_id, role)

    log_event(f"BOOKING_STATUS_{booking.status}", user_id=actor_id, entity="booking", entity_id=booking.id)
    return jsonify(booking.to_dict(include_space=True)), 200


@bookings_bp.patch("/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    actor_id, role = _actor()
    booking = booking_service.cancel(booking_id, actor_id, role)

    log_event("BOOKING_STATUS_CANCELLED", user_id=actor_id, entity="booking", entity_id=booking.id)
    return jsonify(booking.to_dict(include_space=True)), 200


# ---------- ADMIN: hard delete ----------
@bookings_bp.delete("/<int:booking_id>")
@require_roles(ADMIN_ROLE)
def delete_booking(booking_id: int):
    actor_id, role = _actor()
    booking_service.delete_booking(booking_id, actor_id, role)

    log_event("BOOKING_DELETE", user_id=actor_id, entity="booking", entity_id=booking_id)
    return jsonify(message="Booking deleted successfully"), 200
