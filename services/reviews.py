"""
Listing reviews. Each user may review a listing once; the listing's `rating`
column holds the average of its reviews and is rewritten in the same
transaction as the review itself.
"""
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from models import db
from models.review import Review
from services.listings import get_listing
from utils.errors import Conflict, Forbidden, ValidationError

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def _rating(value) -> int:
    # 4.5 is not a valid star count; "4" from a form post is
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError("rating must be an integer between 1 and 5")
    try:
        rating = int(value)
    except (TypeError, ValueError):
        raise ValidationError("rating must be an integer between 1 and 5")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError("rating must be an integer between 1 and 5",
                              details={"min": MIN_RATING, "max": MAX_RATING})
    return rating


def _average_rating(kind: str, listing_id: int) -> float:
    avg = (
        db.session.query(func.avg(Review.rating))
        .filter(Review.listing_type == kind, Review.listing_id == listing_id)
        .scalar()
    )
    return round(float(avg), 2) if avg is not None else 0.0


def create_review(user_id: int, kind: str, listing_id: int, rating, comment: str = None) -> Review:
    listing = get_listing(kind, listing_id)
    if listing.owner_user_id == user_id:
        raise Forbidden("You cannot review your own listing")
    rating = _rating(rating)

    exists = Review.query.filter_by(listing_type=kind, listing_id=listing_id, user_id=user_id).first()
    if exists:
        raise Conflict("You have already reviewed this listing")

    review = Review(
        listing_type=kind,
        listing_id=listing_id,
        user_id=user_id,
        rating=rating,
        comment=(comment or "").strip()[:2000] or None,
    )
    try:
        db.session.add(review)
        db.session.flush()
        listing.rating = _average_rating(kind, listing_id)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("You have already reviewed this listing")

    logger.info("Review %s on %s %s by user %s (avg now %.2f)", review.id, kind, listing_id, user_id, listing.rating)
    return review


def list_reviews(kind: str, listing_id: int, page: int = 1, limit: int = 20) -> dict:
    get_listing(kind, listing_id)
    page = max(1, page or 1)
    limit = max(1, min(limit or 20, 100))

    q = Review.query.filter_by(listing_type=kind, listing_id=listing_id)
    total = q.count()
    rows = q.order_by(Review.created_at.desc(), Review.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "reviews": [
            {
                "id": r.id,
                "user_id": r.user_id,
                "rating": r.rating,
                "comment": r.comment,
                "created_at": r.created_at.isoformat(),
            }
            for r in rows
        ],
        "pagination": {"total": total, "page": page, "limit": limit, "pages": -(-total // limit)},
    }
