from datetime import datetime
from models.db import db

class PromotionTransaction(db.Model):
    __tablename__ = "promotion_transactions"

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # weak reference to a listing, resolved through LISTING_MODELS
    service_type = db.Column(db.String(20), nullable=False)
    service_id = db.Column(db.Integer, nullable=False)

    promotion_plan = db.Column(db.String(20), nullable=False)  # basic, premium, platinum
    priority_value = db.Column(db.Integer, nullable=False, default=0)
    amount = db.Column(db.Integer, nullable=False)  # smallest unit

    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)

    status = db.Column(db.String(20), nullable=False, default="PENDING")
    # status values: PENDING, PAID, EXPIRED, CANCELLED (informational; liveness is the date window)

    payment_method = db.Column(db.String(50), nullable=True)
    transaction_ref = db.Column(db.String(255), nullable=True)
    paid_amount = db.Column(db.Integer, nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)
    stripe_session_id = db.Column(db.String(255), nullable=True, unique=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.Index("ix_promotion_service", "service_type", "service_id", "status"),
    )
