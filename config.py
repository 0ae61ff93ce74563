import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as sportslot.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "sportslot.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Local development without migrations
    AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "false").lower() == "true"

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "sportslot_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = False  # set True when using HTTPS

    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
    PASSWORD_MIN_LENGTH = 8

    # Approved bookings can be cancelled until this many hours before start
    CANCEL_CUTOFF_HOURS = int(os.getenv("CANCEL_CUTOFF_HOURS", "0"))

    # Search
    DEFAULT_SEARCH_RADIUS_METERS = 5000
    SEARCH_DEFAULT_PAGE_SIZE = 20
    SEARCH_MAX_PAGE_SIZE = 100

    # Promotion plans, shared by academies, coaches and turfs
    PROMOTION_PLANS = {
        "basic": {"priority_value": 25, "amount": 999, "duration_days": 30},
        "premium": {"priority_value": 50, "amount": 1999, "duration_days": 30},
        "platinum": {"priority_value": 100, "amount": 2999, "duration_days": 30},
    }
    PROMOTION_CURRENCY = os.getenv("PROMOTION_CURRENCY", "inr")

    # Notifications
    NOTIFICATION_TTL_DAYS = 30

    # Realtime connections
    WS_HEARTBEAT_TIMEOUT_SECONDS = 5 * 60
    WS_SWEEP_INTERVAL_SECONDS = 60
    CONNECTION_SWEEP_ENABLED = os.getenv("CONNECTION_SWEEP_ENABLED", "true").lower() == "true"

    # Stripe checkout for promotions
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_SUCCESS_URL = os.getenv("STRIPE_SUCCESS_URL")
    STRIPE_CANCEL_URL = os.getenv("STRIPE_CANCEL_URL")

    # Basic app settings
    DEBUG = False
