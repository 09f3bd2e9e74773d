from datetime import timedelta

from flask import Blueprint, request, jsonify, g, current_app

from services import availability as ledger
from services.errors import ValidationError
from utils.auth_context import login_required
from utils.audit import log_event
from utils.dates import today

availability_bp = Blueprint("availability", __name__, url_prefix="/availability")


def _dates_from_body(data):
    dates = data.get("dates")
    if not isinstance(dates, list) or not dates:
        raise ValidationError("dates must be a non-empty list")
    return dates


def _price(value, field):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be a positive integer")
    return value


NOTES_MAX_LENGTH = 255  # space_availability.notes column


def _notes(value):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("notes must be a string")
    value = value.strip()
    if len(value) > NOTES_MAX_LENGTH:
        raise ValidationError(f"notes must be at most {NOTES_MAX_LENGTH} characters")
    return value or None


# ---------- PUBLIC: calendar for a space ----------
@availability_bp.get("/<int:space_id>")
def get_availability(space_id: int):
    window = current_app.config.get("AVAILABILITY_DEFAULT_WINDOW_DAYS", 90)
    start = request.args.get("startDate") or today()
    end = request.args.get("endDate") or (today() + timedelta(days=window))

    result = ledger.query_range(space_id, start, end)
    return jsonify(
        spaceId=result["space_id"],
        basePrice=result["base_price"],
        availability=[e.to_dict() for e in result["availability"]],
        bookings=[
            {
                "id": b.id,
                "startDate": b.start_date.isoformat(),
                "endDate": b.end_date.isoformat(),
                "status": b.status,
            }
            for b in result["bookings"]
        ],
    ), 200


@availability_bp.get("/<int:space_id>/check")
def check_availability(space_id: int):
    start = request.args.get("startDate")
    end = request.args.get("endDate")
    if not start or not end:
        raise ValidationError("startDate and endDate are required")

    result = ledger.check_range_available(space_id, start, end)
    return jsonify(
        available=result["available"],
        conflicts=[d.isoformat() for d in result["conflicts"]],
    ), 200


# ---------- OWNERS: manage the calendar ----------
@availability_bp.post("/<int:space_id>")
@login_required
def set_availability(space_id: int):
    data = request.get_json(silent=True) or {}
    entries = ledger.set_availability(
        space_id,
        g.user.id,
        _dates_from_body(data),
        data.get("type"),
        notes=_notes(data.get("notes")),
        price_override=_price(data.get("priceOverride"), "priceOverride"),
    )

    log_event(
        "AVAILABILITY_SET", user_id=g.user.id, entity="space", entity_id=space_id,
        metadata={"type": entries[0].type, "dates": len(entries)},
    )
    return jsonify([e.to_dict() for e in entries]), 200


@availability_bp.post("/<int:space_id>/block")
@login_required
def block_dates(space_id: int):
    data = request.get_json(silent=True) or {}
    entries = ledger.block_dates(
        space_id, g.user.id, _dates_from_body(data),
        notes=_notes(data.get("notes")),
    )

    log_event(
        "AVAILABILITY_SET", user_id=g.user.id, entity="space", entity_id=space_id,
        metadata={"type": "BLOCKED", "dates": len(entries)},
    )
    return jsonify([e.to_dict() for e in entries]), 200


@availability_bp.delete("/<int:space_id>/block")
@login_required
def unblock_dates(space_id: int):
    data = request.get_json(silent=True) or {}
    result = ledger.unblock_dates(space_id, g.user.id, _dates_from_body(data))

    log_event(
        "AVAILABILITY_UNBLOCK", user_id=g.user.id, entity="space", entity_id=space_id,
        metadata=result,
    )
    return jsonify(deleted=result["deleted"]), 200


@availability_bp.post("/<int:space_id>/price")
@login_required
def set_price_override(space_id: int):
    data = request.get_json(silent=True) or {}
    price = _price(data.get("price"), "price")
    if price is None:
        raise ValidationError("price is required")

    entries = ledger.set_price_override(space_id, g.user.id, _dates_from_body(data), price)

    log_event(
        "AVAILABILITY_SET", user_id=g.user.id, entity="space", entity_id=space_id,
        metadata={"type": "AVAILABLE", "price": price, "dates": len(entries)},
    )
    return jsonify([e.to_dict() for e in entries]), 200
