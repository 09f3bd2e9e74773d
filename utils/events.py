from blinker import Namespace
from flask import current_app

_signals = Namespace()

# sent after a booking is committed as CONFIRMED; sender is the Booking
booking_confirmed = _signals.signal("booking-confirmed")


def emit_best_effort(signal, sender, **kwargs):
    """
    Deliver a signal to each receiver independently.
    A failing receiver is logged and skipped so the caller's already
    committed work is never undone by a downstream side effect.
    Returns the number of receivers that completed.
    """
    delivered = 0
    for receiver in list(signal.receivers_for(sender)):
        try:
            receiver(sender, **kwargs)
            delivered += 1
        except Exception:
            current_app.logger.exception(
                "Receiver %r failed for signal %s", receiver, signal.name
            )
    return delivered
