import stripe
from flask import Blueprint, request, jsonify, current_app

from models import db
from models.booking import Booking, BookingStatus, PaymentStatus
from services import bookings as booking_service
from services.errors import BookingError
from utils.audit import log_event

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")


def _booking_from_metadata(obj):
    meta = obj.get("metadata") or {}
    raw = obj.get("client_reference_id") or meta.get("bookingId")
    try:
        return db.session.get(Booking, int(raw)) if raw else None
    except (TypeError, ValueError):
        return None


def _outcome_for(event_type, obj):
    """Map a Stripe event to (booking, new_status, payment_status, payment_intent_id)."""
    if event_type == "checkout.session.completed":
        return (_booking_from_metadata(obj), BookingStatus.CONFIRMED.value,
                PaymentStatus.SUCCEEDED.value, obj.get("payment_intent"))

    if event_type == "payment_intent.succeeded":
        return (_booking_from_metadata(obj), BookingStatus.CONFIRMED.value,
                PaymentStatus.SUCCEEDED.value, obj.get("id"))

    if event_type == "payment_intent.payment_failed":
        return _booking_from_metadata(obj), None, PaymentStatus.FAILED.value, None

    if event_type == "charge.refunded":
        intent_id = obj.get("payment_intent")
        booking = Booking.query.filter_by(stripe_payment_intent_id=intent_id).first() if intent_id else None
        if obj.get("amount_refunded") == obj.get("amount"):
            return booking, BookingStatus.CANCELLED.value, PaymentStatus.REFUNDED.value, None
        return booking, None, PaymentStatus.PARTIALLY_REFUNDED.value, None

    return None, None, None, None


@webhook_bp.post("/stripe")
def stripe_webhook():
    endpoint_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    sig_header = request.headers.get("Stripe-Signature")
    payload = request.data

    if not endpoint_secret:
        return jsonify(error="Webhook secret not configured", code="WEBHOOK_NOT_CONFIGURED"), 500

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, endpoint_secret)
    except Exception:
        return jsonify(error="Invalid webhook signature", code="INVALID_SIGNATURE"), 400

    event_type = event["type"]
    booking, new_status, payment_status, intent_id = _outcome_for(event_type, event["data"]["object"])

    if payment_status is None:
        current_app.logger.info("Unhandled Stripe event type: %s", event_type)
        return jsonify(received=True), 200

    if booking is None:
        current_app.logger.warning("Stripe event %s without a known booking", event_type)
        return jsonify(received=True), 200

    booking_id = booking.id
    try:
        booking = booking_service.apply_external_status(
            booking_id,
            new_status=new_status,
            payment_status=payment_status,
            payment_intent_id=intent_id,
        )
    except BookingError as exc:
        # acknowledged so Stripe stops retrying; the booking keeps its state
        current_app.logger.warning(
            "Stripe event %s could not update booking %s: %s", event_type, booking_id, exc.message
        )
        log_event(
            "PAYMENT_STATUS_REJECTED", entity="booking", entity_id=booking_id,
            metadata={"event": event_type, "code": exc.code},
        )
        return jsonify(received=True), 200

    log_event(
        f"PAYMENT_{booking.payment_status}", entity="booking", entity_id=booking.id,
        metadata={"event": event_type, "status": booking.status},
    )
    return jsonify(received=True), 200
