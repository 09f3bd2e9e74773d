from .health import health_bp
from .spaces import spaces_bp
from .bookings import bookings_bp
from .availability import availability_bp
from .stripe_webhook import webhook_bp
