from datetime import datetime
from models.db import db


class Conversation(db.Model):
    __tablename__ = "conversations"

    id = db.Column(db.Integer, primary_key=True)
    # participant_one_id is always the smaller user id
    participant_one_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    participant_two_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    space_id = db.Column(db.Integer, db.ForeignKey("spaces.id"), nullable=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    last_message_at = db.Column(db.DateTime, nullable=True)

    messages = db.relationship(
        "ConversationMessage", back_populates="conversation", order_by="ConversationMessage.id"
    )

    __table_args__ = (
        db.UniqueConstraint("participant_one_id", "participant_two_id", name="uq_conversation_pair"),
    )


class ConversationMessage(db.Model):
    __tablename__ = "conversation_messages"

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey("conversations.id"), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    body = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    conversation = db.relationship("Conversation", back_populates="messages")
