import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as adspot.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "adspot.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # create tables at startup instead of running migrations (local dev, tests)
    AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "false").lower() == "true"

    # Session cookie issued by the upstream auth service
    AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "adspot_session")

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    # Bookings
    BOOKING_MESSAGE_MAX_LENGTH = 1000
    BOOKINGS_PAGE_MAX_LIMIT = 100

    # Calendar window returned when no range is given
    AVAILABILITY_DEFAULT_WINDOW_DAYS = int(os.getenv("AVAILABILITY_DEFAULT_WINDOW_DAYS", "90"))

    # Stripe (payment status webhooks)
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False
