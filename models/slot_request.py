from datetime import datetime
from models.db import db

class SlotRequest(db.Model):
    __tablename__ = "slot_requests"

    id = db.Column(db.Integer, primary_key=True)

    slot_id = db.Column(db.Integer, db.ForeignKey("slots.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default="PENDING", index=True)
    # status values: PENDING, APPROVED, REJECTED, CANCELLED

    notes = db.Column(db.String(500), nullable=True)
    team_size = db.Column(db.Integer, nullable=True)

    requested_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    responded_at = db.Column(db.DateTime, nullable=True)
    responded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    slot = db.relationship("Slot", foreign_keys=[slot_id])
