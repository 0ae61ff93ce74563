from datetime import datetime
from models.db import db

SLOT_STATUSES = ("AVAILABLE", "PENDING", "BOOKED", "BLOCKED")
PAYMENT_STATUSES = ("PENDING", "CONFIRMED", "REFUNDED", "CANCELLED")

class Slot(db.Model):
    __tablename__ = "slots"

    id = db.Column(db.Integer, primary_key=True)

    # parent resource: ground, turf or coach (see SLOT_RESOURCE_MODELS)
    resource_type = db.Column(db.String(20), nullable=False)
    resource_id = db.Column(db.Integer, nullable=False)

    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False)

    price = db.Column(db.Integer, nullable=False, default=0)  # smallest unit

    # AVAILABLE -> PENDING (request) -> BOOKED (accepted); BLOCKED replaces deletion
    status = db.Column(db.String(20), nullable=False, default="AVAILABLE", index=True)
    booked_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    payment_status = db.Column(db.String(20), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        # Prevent duplicate windows for the same resource
        db.UniqueConstraint("resource_type", "resource_id", "start_time", "end_time", name="uq_resource_timeslot"),
        db.Index("ix_slots_resource", "resource_type", "resource_id"),
    )
