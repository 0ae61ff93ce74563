from dataclasses import dataclass
from datetime import datetime
from sqlalchemy.orm import declared_attr

from models.db import db


class ListingMixin:
    """Columns shared by every supplier service (academy, coach, turf)."""

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    name_normalized = db.Column(db.String(120), nullable=False)
    city = db.Column(db.String(120), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)

    # lowercase sport names, e.g. ["football", "cricket"]
    sports = db.Column(db.JSON, nullable=False, default=list)

    rating = db.Column(db.Float, nullable=False, default=0.0)
    price = db.Column(db.Integer, nullable=False, default=0)  # smallest unit

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="ACTIVE")
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @declared_attr
    def owner_user_id(cls):
        return db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)


class Academy(ListingMixin, db.Model):
    __tablename__ = "academies"
    kind = "academy"


class Coach(ListingMixin, db.Model):
    __tablename__ = "coaches"
    kind = "coach"

    experience_years = db.Column(db.Integer, nullable=True)


class Turf(ListingMixin, db.Model):
    __tablename__ = "turfs"
    kind = "turf"

    opening_time = db.Column(db.String(5), nullable=False, default="06:00")  # HH:MM
    closing_time = db.Column(db.String(5), nullable=False, default="22:00")

    grounds = db.relationship("Ground", back_populates="turf", lazy="dynamic")


class Ground(db.Model):
    __tablename__ = "grounds"
    kind = "ground"

    id = db.Column(db.Integer, primary_key=True)
    turf_id = db.Column(db.Integer, db.ForeignKey("turfs.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    sport = db.Column(db.String(40), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    turf = db.relationship("Turf", back_populates="grounds")

    @property
    def owner_user_id(self):
        return self.turf.owner_user_id if self.turf else None


# Kinds a promotion can point at
LISTING_MODELS = {
    "academy": Academy,
    "coach": Coach,
    "turf": Turf,
}

# Kinds a slot can belong to
SLOT_RESOURCE_MODELS = {
    "ground": Ground,
    "turf": Turf,
    "coach": Coach,
}


@dataclass(frozen=True)
class ServiceRef:
    """Tagged reference to a listing: kind in LISTING_MODELS plus its id."""

    kind: str
    id: int

    @property
    def model(self):
        return LISTING_MODELS[self.kind]

    def resolve(self):
        return db.session.get(self.model, self.id)
