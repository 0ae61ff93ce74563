from datetime import datetime
from models.db import db

class Review(db.Model):
    __tablename__ = "reviews"

    id = db.Column(db.Integer, primary_key=True)

    # weak reference to a listing, resolved through LISTING_MODELS
    listing_type = db.Column(db.String(20), nullable=False)
    listing_id = db.Column(db.Integer, nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    rating = db.Column(db.Integer, nullable=False)  # 1..5
    comment = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        # One review per user per listing
        db.UniqueConstraint("listing_type", "listing_id", "user_id", name="uq_review_user_listing"),
        db.Index("ix_reviews_listing", "listing_type", "listing_id"),
    )
