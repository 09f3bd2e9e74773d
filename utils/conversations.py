from datetime import datetime

from flask import current_app

from models import db
from models.conversation import Conversation, ConversationMessage


def find_or_create_conversation(user_id: int, participant_id: int, space_id=None, booking_id=None):
    if user_id == participant_id:
        raise ValueError("Cannot create conversation with yourself")

    one, two = sorted((user_id, participant_id))
    conversation = Conversation.query.filter_by(
        participant_one_id=one, participant_two_id=two
    ).first()
    if conversation is None:
        conversation = Conversation(
            participant_one_id=one,
            participant_two_id=two,
            space_id=space_id,
            booking_id=booking_id,
        )
        db.session.add(conversation)
        db.session.flush()
    elif booking_id is not None:
        # keep the thread pointed at the most recent booking
        conversation.booking_id = booking_id
        conversation.space_id = space_id or conversation.space_id
    return conversation


def open_thread_for_confirmed_booking(booking, **_):
    """booking_confirmed receiver: start (or reuse) the owner/requester thread."""
    space = booking.space
    try:
        conversation = find_or_create_conversation(
            space.owner_user_id, booking.user_id, space_id=space.id, booking_id=booking.id
        )
        now = datetime.utcnow()
        db.session.add(ConversationMessage(
            conversation_id=conversation.id,
            sender_id=space.owner_user_id,
            body=(
                f'Your booking for "{space.title}" has been confirmed! '
                "Feel free to reach out with any questions."
            ),
            created_at=now,
        ))
        conversation.last_message_at = now
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Conversation %s opened for booking %s", conversation.id, booking.id
    )
    return conversation
