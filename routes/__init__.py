from routes.health import health_bp
from routes.auth import auth_bp
from routes.listings import listings_bp
from routes.slots import slots_bp
from routes.promotions import promotions_bp
from routes.payments import payments_bp
from routes.stripe_webhook import webhook_bp
from routes.notifications import notifications_bp
from routes.realtime import sock

__all__ = [
    "health_bp",
    "auth_bp",
    "listings_bp",
    "slots_bp",
    "promotions_bp",
    "payments_bp",
    "webhook_bp",
    "notifications_bp",
    "sock",
]
