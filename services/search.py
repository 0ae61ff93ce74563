"""
Listing search: SQL filters, a bounding-box prefilter and an exact great-circle
radius check, then ordering and pagination.

sortBy=priority (default) puts the promotion boost first; rating and price
ignore boosts entirely.
"""
import math
from datetime import datetime

from flask import current_app

from models.listing import LISTING_MODELS
from services.promotions import active_boosts
from utils.errors import ValidationError

EARTH_RADIUS_METERS = 6371000.0
SORT_MODES = ("priority", "rating", "price", "distance")


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(min(1.0, a)))


def _bounding_box(lat: float, lon: float, radius: float):
    d_lat = math.degrees(radius / EARTH_RADIUS_METERS)
    cos_lat = math.cos(math.radians(lat))
    d_lon = 180.0 if cos_lat < 1e-6 else min(180.0, math.degrees(radius / (EARTH_RADIUS_METERS * cos_lat)))
    return lat - d_lat, lat + d_lat, lon - d_lon, lon + d_lon


def _number(filters: dict, key: str, cast=float):
    value = filters.get(key)
    if value is None or value == "":
        return None
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")


def escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _timestamp(value: datetime) -> float:
    return value.timestamp() if value else 0.0


def search_listings(kind: str, filters: dict, now: datetime = None) -> dict:
    model = LISTING_MODELS.get(kind)
    if model is None:
        raise ValidationError("Unknown listing type")

    city = (filters.get("city") or "").strip()
    sport = (filters.get("sport") or "").strip().lower()
    min_rating = _number(filters, "rating")
    min_price = _number(filters, "minPrice")
    max_price = _number(filters, "maxPrice")
    latitude = _number(filters, "latitude")
    longitude = _number(filters, "longitude")
    radius = _number(filters, "radius")
    if radius is None:
        radius = current_app.config.get("DEFAULT_SEARCH_RADIUS_METERS", 5000)
    if radius <= 0:
        raise ValidationError("radius must be positive")

    page = _number(filters, "page", int)
    if page is None:
        page = 1
    limit = _number(filters, "limit", int)
    if limit is None:
        limit = current_app.config.get("SEARCH_DEFAULT_PAGE_SIZE", 20)
    page = max(1, page)
    limit = max(1, min(limit, current_app.config.get("SEARCH_MAX_PAGE_SIZE", 100)))

    sort_by = (filters.get("sortBy") or "priority").strip().lower()
    if sort_by not in SORT_MODES:
        raise ValidationError("sortBy must be one of: " + ", ".join(SORT_MODES),
                              details={"allowed": list(SORT_MODES)})

    geo = latitude is not None and longitude is not None
    if geo and not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        raise ValidationError("latitude/longitude out of range")
    if sort_by == "distance" and not geo:
        sort_by = "priority"

    q = model.query.filter(model.is_active.is_(True), model.status == "ACTIVE")
    if city:
        q = q.filter(model.city.ilike(f"%{escape_like(city)}%", escape="\\"))
    if min_rating is not None:
        q = q.filter(model.rating >= min_rating)
    if min_price is not None:
        q = q.filter(model.price >= min_price)
    if max_price is not None:
        q = q.filter(model.price <= max_price)
    if geo:
        lat_min, lat_max, lon_min, lon_max = _bounding_box(latitude, longitude, radius)
        q = q.filter(
            model.latitude.isnot(None),
            model.longitude.isnot(None),
            model.latitude.between(lat_min, lat_max),
        )
        # the longitude window wraps near the antimeridian; the exact check below handles it
        if lon_min >= -180 and lon_max <= 180:
            q = q.filter(model.longitude.between(lon_min, lon_max))

    rows = []
    for listing in q.all():
        if sport and sport not in [s.lower() for s in (listing.sports or [])]:
            continue
        distance = None
        if geo:
            distance = haversine_meters(latitude, longitude, listing.latitude, listing.longitude)
            if distance > radius:
                continue
        rows.append((listing, distance))

    boosts = active_boosts(kind, [listing.id for listing, _ in rows], now=now)

    def recency(item):
        listing, _ = item
        return (-_timestamp(listing.created_at), -listing.id)

    if sort_by == "priority":
        rows.sort(key=lambda item: (
            -boosts.get(item[0].id, 0),
            -(item[0].rating or 0.0),
            item[1] if item[1] is not None else 0.0,
        ) + recency(item))
    elif sort_by == "rating":
        rows.sort(key=lambda item: (-(item[0].rating or 0.0),) + recency(item))
    elif sort_by == "price":
        rows.sort(key=lambda item: (item[0].price,) + recency(item))
    else:
        rows.sort(key=lambda item: (item[1],) + recency(item))

    total = len(rows)
    offset = (page - 1) * limit
    return {
        "results": [
            {"listing": listing, "boost": boosts.get(listing.id, 0), "distance_meters": distance}
            for listing, distance in rows[offset:offset + limit]
        ],
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit) if total else 0,
        },
    }
