from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError

from models import db
from services.errors import BookingConflict


@contextmanager
def conflict_on_write():
    """
    Run a block of session writes (flushes and the final commit).
    Constraint and lock failures roll back and surface as BookingConflict;
    anything else rolls back and propagates unchanged.
    """
    try:
        yield
    except (IntegrityError, OperationalError):
        db.session.rollback()
        current_app.logger.warning("Booking write rejected by the database", exc_info=True)
        raise BookingConflict()
    except Exception:
        db.session.rollback()
        raise
