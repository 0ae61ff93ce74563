from datetime import datetime
from models.db import db

NOTIFICATION_TYPES = (
    "new_request",
    "booking_confirmation",
    "booking_rejection",
    "booking_cancellation",
    "promotion_confirmation",
    "general",
)
NOTIFICATION_PRIORITIES = ("low", "medium", "high", "urgent")

class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    recipient_type = db.Column(db.String(20), nullable=False, default="user")  # user, supplier

    type = db.Column(db.String(40), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.String(1000), nullable=False)
    data = db.Column(db.JSON, nullable=False, default=dict)
    priority = db.Column(db.String(10), nullable=False, default="medium")

    is_read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True, index=True)
    action_url = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.Index("ix_notifications_recipient_read", "recipient_id", "is_read", "created_at"),
    )


class DeviceToken(db.Model):
    __tablename__ = "device_tokens"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    token = db.Column(db.String(512), unique=True, nullable=False)
    device_type = db.Column(db.String(10), nullable=False)  # android, ios, web
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    last_used_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
