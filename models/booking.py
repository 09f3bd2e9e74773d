import enum
from datetime import datetime
from models.db import db


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


# statuses that hold a claim on the space's calendar
ACTIVE_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    space_id = db.Column(db.Integer, db.ForeignKey("spaces.id"), nullable=False, index=True)

    start_date = db.Column(db.Date, nullable=False, index=True)
    end_date = db.Column(db.Date, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=BookingStatus.PENDING.value)
    # status values: PENDING, CONFIRMED, REJECTED, CANCELLED

    total_price = db.Column(db.Integer, nullable=False)  # smallest unit
    message = db.Column(db.Text, nullable=True)

    payment_status = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING.value)
    paid_at = db.Column(db.DateTime, nullable=True)
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True, unique=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    space = db.relationship("Space")
    user = db.relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        db.CheckConstraint("end_date > start_date", name="ck_booking_dates_ordered"),
        db.Index("ix_bookings_space_status", "space_id", "status"),
    )

    def to_dict(self, include_space=False):
        out = {
            "id": self.id,
            "spaceId": self.space_id,
            "userId": self.user_id,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "status": self.status,
            "totalPrice": self.total_price,
            "message": self.message,
            "paymentStatus": self.payment_status,
            "createdAt": self.created_at.isoformat(),
            "cancelledAt": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }
        if include_space and self.space is not None:
            out["space"] = {
                "id": self.space.id,
                "title": self.space.title,
                "location": self.space.location,
                "basePrice": self.space.base_price,
                "ownerId": self.space.owner_user_id,
            }
        return out
