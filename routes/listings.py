from flask import Blueprint, request, g

from models.listing import Turf, Ground
from security.rbac import require_roles
from services import listings as listing_service
from services import reviews as review_service
from services.search import search_listings
from services.slots import create_ground
from utils.auth_context import login_required
from utils.audit import log_event
from utils.responses import success_response

listings_bp = Blueprint("listings", __name__)

# URL segment -> listing kind
COLLECTIONS = {"academies": "academy", "coaches": "coach", "turfs": "turf"}


def _listing_json(listing) -> dict:
    out = {
        "id": listing.id,
        "kind": listing.kind,
        "owner_user_id": listing.owner_user_id,
        "name": listing.name,
        "city": listing.city,
        "description": listing.description,
        "sports": listing.sports or [],
        "rating": listing.rating,
        "price": listing.price,
        "latitude": listing.latitude,
        "longitude": listing.longitude,
        "status": listing.status,
        "created_at": listing.created_at.isoformat(),
    }
    if isinstance(listing, Turf):
        out["opening_time"] = listing.opening_time
        out["closing_time"] = listing.closing_time
    elif listing.kind == "coach":
        out["experience_years"] = listing.experience_years
    return out


def _ground_json(ground) -> dict:
    return {
        "id": ground.id,
        "turf_id": ground.turf_id,
        "name": ground.name,
        "sport": ground.sport,
        "created_at": ground.created_at.isoformat(),
    }


@listings_bp.post("/<any(academies, coaches, turfs):collection>")
@require_roles("SUPPLIER")
def create_listing(collection: str):
    kind = COLLECTIONS[collection]
    data = request.get_json(silent=True) or {}
    listing = listing_service.create_listing(g.user.id, kind, data)
    log_event("LISTING_CREATE", user_id=g.user.id, entity=kind, entity_id=listing.id)
    return success_response(f"{kind.capitalize()} created", _listing_json(listing), 201)


@listings_bp.get("/<any(academies, coaches, turfs):collection>")
def search(collection: str):
    kind = COLLECTIONS[collection]
    result = search_listings(kind, request.args.to_dict())
    items = []
    for row in result["results"]:
        item = _listing_json(row["listing"])
        item["boost"] = row["boost"]
        if row["distance_meters"] is not None:
            item["distance_meters"] = round(row["distance_meters"], 1)
        items.append(item)
    return success_response(
        f"{collection.capitalize()} fetched",
        {collection: items, "pagination": result["pagination"]},
    )


@listings_bp.get("/<any(academies, coaches, turfs):collection>/<int:listing_id>")
def get_listing(collection: str, listing_id: int):
    kind = COLLECTIONS[collection]
    listing = listing_service.get_listing(kind, listing_id)
    return success_response(f"{kind.capitalize()} fetched", _listing_json(listing))


@listings_bp.post("/turfs/<int:turf_id>/grounds")
@require_roles("SUPPLIER")
def add_ground(turf_id: int):
    data = request.get_json(silent=True) or {}
    turf = listing_service.get_listing("turf", turf_id)
    ground = create_ground(g.user.id, turf, (data.get("name") or "").strip(), data.get("sport"))
    log_event("GROUND_CREATE", user_id=g.user.id, entity="ground", entity_id=ground.id)
    return success_response("Ground created", _ground_json(ground), 201)


@listings_bp.get("/turfs/<int:turf_id>/grounds")
def list_grounds(turf_id: int):
    turf = listing_service.get_listing("turf", turf_id)
    grounds = turf.grounds.filter_by(is_active=True).order_by(Ground.id).all()
    return success_response("Grounds fetched", [_ground_json(gr) for gr in grounds])


@listings_bp.post("/<any(academies, coaches, turfs):collection>/<int:listing_id>/reviews")
@login_required
def add_review(collection: str, listing_id: int):
    kind = COLLECTIONS[collection]
    data = request.get_json(silent=True) or {}
    review = review_service.create_review(g.user.id, kind, listing_id, data.get("rating"), data.get("comment"))
    log_event("REVIEW_CREATE", user_id=g.user.id, entity=kind, entity_id=listing_id,
              metadata={"rating": review.rating})
    listing = listing_service.get_listing(kind, listing_id)
    return success_response("Review added", {
        "id": review.id,
        "rating": review.rating,
        "listing_rating": listing.rating,
    }, 201)


@listings_bp.get("/<any(academies, coaches, turfs):collection>/<int:listing_id>/reviews")
def list_reviews(collection: str, listing_id: int):
    result = review_service.list_reviews(
        COLLECTIONS[collection],
        listing_id,
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
    )
    return success_response("Reviews fetched", result)
