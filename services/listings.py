import logging

from sqlalchemy import func

from models import db
from models.listing import LISTING_MODELS, Turf
from utils.errors import NotFound, ValidationError, Conflict

logger = logging.getLogger(__name__)


def _normalize(text: str) -> str:
    return (text or "").strip().lower()


def _optional_float(data: dict, key: str, low: float, high: float):
    value = data.get(key)
    if value is None or value == "":
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")
    if not low <= value <= high:
        raise ValidationError(f"{key} out of range")
    return value


def _hhmm(value: str, key: str) -> str:
    parts = (value or "").split(":")
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except (IndexError, ValueError):
        raise ValidationError(f"{key} must be HH:MM")
    if not (0 <= hours <= 24 and 0 <= minutes < 60):
        raise ValidationError(f"{key} must be HH:MM")
    return f"{hours:02d}:{minutes:02d}"


def create_listing(owner_id: int, kind: str, data: dict):
    model = LISTING_MODELS.get(kind)
    if model is None:
        raise ValidationError("Unknown listing type")

    name = (data.get("name") or "").strip()
    city = (data.get("city") or "").strip()
    if not name or not city:
        raise ValidationError("name and city are required")

    sports = data.get("sports") or []
    if isinstance(sports, str):
        sports = sports.split(",")
    if not isinstance(sports, list):
        raise ValidationError("sports must be a list")
    sports = sorted({_normalize(s) for s in sports if isinstance(s, str) and s.strip()})

    try:
        price = int(data.get("price") or 0)
    except (TypeError, ValueError):
        raise ValidationError("price must be an integer")
    if price < 0:
        raise ValidationError("price must not be negative")

    duplicate = model.query.filter(
        model.owner_user_id == owner_id,
        model.name_normalized == _normalize(name),
        func.lower(model.city) == city.lower(),
    ).first()
    if duplicate:
        raise Conflict(f"{kind.capitalize()} already exists")

    listing = model(
        owner_user_id=owner_id,
        name=name,
        name_normalized=_normalize(name),
        city=city,
        description=(data.get("description") or "").strip() or None,
        sports=sports,
        price=price,
        latitude=_optional_float(data, "latitude", -90, 90),
        longitude=_optional_float(data, "longitude", -180, 180),
    )
    if model is Turf:
        listing.opening_time = _hhmm(data.get("opening_time") or "06:00", "opening_time")
        listing.closing_time = _hhmm(data.get("closing_time") or "22:00", "closing_time")
        if listing.closing_time <= listing.opening_time:
            raise ValidationError("closing_time must be after opening_time")
    elif kind == "coach" and data.get("experience_years") is not None:
        try:
            listing.experience_years = int(data["experience_years"])
        except (TypeError, ValueError):
            raise ValidationError("experience_years must be an integer")

    db.session.add(listing)
    db.session.commit()
    logger.info("%s %s created by supplier %s", kind.capitalize(), listing.id, owner_id)
    return listing


def get_listing(kind: str, listing_id: int):
    model = LISTING_MODELS.get(kind)
    if model is None:
        raise ValidationError("Unknown listing type")
    listing = db.session.get(model, listing_id)
    if listing is None or not listing.is_active:
        raise NotFound(f"{kind.capitalize()} not found")
    return listing
