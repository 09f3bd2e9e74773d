from datetime import datetime
from models.db import db

class Space(db.Model):
    __tablename__ = "spaces"

    id = db.Column(db.Integer, primary_key=True)
    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text, nullable=True)
    location = db.Column(db.String(255), nullable=False)

    base_price = db.Column(db.Integer, nullable=False, default=0)  # per day, smallest unit

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    owner = db.relationship("User", foreign_keys=[owner_user_id])

    @classmethod
    def live(cls):
        """Query over spaces that are active and not soft-deleted."""
        return cls.query.filter(cls.deleted_at.is_(None), cls.is_active.is_(True))

    def to_dict(self):
        return {
            "id": self.id,
            "ownerId": self.owner_user_id,
            "title": self.title,
            "description": self.description,
            "location": self.location,
            "basePrice": self.base_price,
            "createdAt": self.created_at.isoformat(),
        }
