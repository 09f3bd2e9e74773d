import enum
from datetime import datetime
from models.db import db


class AvailabilityType(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    BLOCKED = "BLOCKED"
    BOOKED = "BOOKED"


class AvailabilityEntry(db.Model):
    __tablename__ = "space_availability"

    id = db.Column(db.Integer, primary_key=True)
    space_id = db.Column(db.Integer, db.ForeignKey("spaces.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)

    type = db.Column(db.String(20), nullable=False, default=AvailabilityType.AVAILABLE.value)
    notes = db.Column(db.String(255), nullable=True)
    price_override = db.Column(db.Integer, nullable=True)  # smallest unit, replaces base price for the day

    # back-reference only; set when type is BOOKED
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("space_id", "date", name="uq_space_availability_day"),
        db.CheckConstraint(
            "price_override IS NULL OR price_override > 0", name="ck_availability_price_positive"
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "spaceId": self.space_id,
            "date": self.date.isoformat(),
            "type": self.type,
            "notes": self.notes,
            "priceOverride": self.price_override,
            "bookingId": self.booking_id,
        }
