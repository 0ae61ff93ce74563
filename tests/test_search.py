from datetime import datetime, timedelta

import pytest

from conftest import make_listing
from models.listing import Academy, Turf
from services import promotions as promo
from services.listings import create_listing
from services.search import haversine_meters, search_listings
from utils.errors import Conflict, ValidationError

PUNE = (18.5204, 73.8567)


def _ids(result):
    return [row["listing"].id for row in result["results"]]


def _boost(supplier, listing, plan, kind="academy"):
    tx = promo.create_promotion_transaction(supplier.id, kind, listing.id, plan)
    promo.process_promotion_payment(tx.id)
    return tx


def test_haversine_known_distance():
    # Pune to Mumbai is roughly 120 km as the crow flies
    d = haversine_meters(18.5204, 73.8567, 19.0760, 72.8777)
    assert 115_000 < d < 125_000
    assert haversine_meters(*PUNE, *PUNE) == 0


def test_boost_outranks_rating(supplier):
    star = make_listing(Academy, supplier, "Star", rating=4.9)
    boosted = make_listing(Academy, supplier, "Boosted", rating=3.0)
    _boost(supplier, boosted, "basic")

    assert _ids(search_listings("academy", {})) == [boosted.id, star.id]


def test_higher_plan_ranks_first(supplier):
    basic = make_listing(Academy, supplier, "Basic")
    platinum = make_listing(Academy, supplier, "Platinum")
    _boost(supplier, basic, "basic")
    _boost(supplier, platinum, "platinum")

    result = search_listings("academy", {})
    assert _ids(result) == [platinum.id, basic.id]
    assert [row["boost"] for row in result["results"]] == [100, 25]


def test_expired_boost_is_ignored(supplier):
    old = make_listing(Academy, supplier, "Old", rating=1.0)
    fresh = make_listing(Academy, supplier, "Fresh", rating=2.0)
    start = datetime.utcnow() - timedelta(days=60)
    tx = promo.create_promotion_transaction(supplier.id, "academy", old.id, "platinum", now=start)
    promo.process_promotion_payment(tx.id, now=start)

    assert _ids(search_listings("academy", {})) == [fresh.id, old.id]


def test_ties_break_on_recency(supplier):
    first = make_listing(Academy, supplier, "First", created_at=datetime(2026, 1, 1))
    second = make_listing(Academy, supplier, "Second", created_at=datetime(2026, 2, 1))
    assert _ids(search_listings("academy", {})) == [second.id, first.id]


def test_rating_and_price_sorts_ignore_boost(supplier):
    cheap = make_listing(Academy, supplier, "Cheap", price=500, rating=3.5)
    pricey = make_listing(Academy, supplier, "Pricey", price=3000, rating=4.5)
    _boost(supplier, cheap, "platinum")

    assert _ids(search_listings("academy", {"sortBy": "rating"})) == [pricey.id, cheap.id]
    assert _ids(search_listings("academy", {"sortBy": "price"})) == [cheap.id, pricey.id]
    with pytest.raises(ValidationError):
        search_listings("academy", {"sortBy": "popularity"})


def test_radius_filter_and_distance_sort(supplier):
    near = make_listing(Turf, supplier, "Near", latitude=18.5250, longitude=73.8600)
    nearer = make_listing(Turf, supplier, "Nearer", latitude=18.5210, longitude=73.8570)
    make_listing(Turf, supplier, "Mumbai", latitude=19.0760, longitude=72.8777)
    make_listing(Turf, supplier, "No coordinates")

    result = search_listings("turf", {
        "latitude": PUNE[0], "longitude": PUNE[1], "radius": 2000, "sortBy": "distance",
    })
    assert _ids(result) == [nearer.id, near.id]
    assert all(row["distance_meters"] <= 2000 for row in result["results"])


def test_geo_default_radius(app, supplier):
    inside = make_listing(Turf, supplier, "Inside", latitude=18.55, longitude=73.86)
    make_listing(Turf, supplier, "Outside", latitude=18.75, longitude=73.86)

    assert app.config["DEFAULT_SEARCH_RADIUS_METERS"] == 5000
    result = search_listings("turf", {"latitude": PUNE[0], "longitude": PUNE[1]})
    assert _ids(result) == [inside.id]


def test_filters(supplier):
    match = make_listing(Academy, supplier, "Match", city="Pune", sports=["cricket"], rating=4.0, price=1000)
    make_listing(Academy, supplier, "Wrong city", city="Delhi", sports=["cricket"], rating=4.0, price=1000)
    make_listing(Academy, supplier, "Wrong sport", sports=["tennis"], rating=4.0, price=1000)
    make_listing(Academy, supplier, "Low rating", sports=["cricket"], rating=2.0, price=1000)
    make_listing(Academy, supplier, "Too pricey", sports=["cricket"], rating=4.0, price=5000)

    result = search_listings("academy", {
        "city": "pune", "sport": "Cricket", "rating": "3.5", "minPrice": "500", "maxPrice": "2000",
    })
    assert _ids(result) == [match.id]


def test_inactive_listings_hidden(supplier):
    make_listing(Academy, supplier, "Closed", is_active=False)
    assert search_listings("academy", {})["results"] == []


def test_pagination(supplier):
    for i in range(5):
        make_listing(Academy, supplier, f"Academy {i}", created_at=datetime(2026, 1, 1 + i))

    page = search_listings("academy", {"page": "2", "limit": "2"})
    assert page["pagination"] == {"total": 5, "page": 2, "limit": 2, "pages": 3}
    assert len(page["results"]) == 2

    clamped = search_listings("academy", {"page": "0", "limit": "1000"})
    assert clamped["pagination"]["page"] == 1
    assert clamped["pagination"]["limit"] == 100

    smallest = search_listings("academy", {"limit": "0"})
    assert smallest["pagination"]["limit"] == 1
    assert len(smallest["results"]) == 1
    assert search_listings("academy", {"limit": "-3"})["pagination"]["limit"] == 1


def test_bad_numbers_rejected(app):
    with pytest.raises(ValidationError):
        search_listings("academy", {"rating": "high"})
    with pytest.raises(ValidationError):
        search_listings("academy", {"latitude": "95", "longitude": "10"})
    with pytest.raises(ValidationError):
        search_listings("stadium", {})


def test_far_listing_excluded_despite_top_boost(supplier):
    bengaluru = (12.9716, 77.5946)
    near = make_listing(Academy, supplier, "Near", latitude=12.9800, longitude=77.6000)
    # about 10 km due north
    far = make_listing(Academy, supplier, "Far", latitude=bengaluru[0] + 0.0899, longitude=bengaluru[1])
    _boost(supplier, far, "platinum")

    result = search_listings("academy", {
        "latitude": bengaluru[0], "longitude": bengaluru[1], "radius": 5000,
    })
    assert _ids(result) == [near.id]


def test_city_wildcards_are_literal(supplier):
    pune = make_listing(Academy, supplier, "Pune Academy", city="Pune")
    odd = make_listing(Academy, supplier, "Odd Name", city="100% Sports_Town")

    assert _ids(search_listings("academy", {"city": "%"})) == [odd.id]
    assert _ids(search_listings("academy", {"city": "_une"})) == []
    assert _ids(search_listings("academy", {"city": "sports_t"})) == [odd.id]
    assert _ids(search_listings("academy", {"city": "PUN"})) == [pune.id]


def test_duplicate_check_matches_city_exactly(supplier):
    create_listing(supplier.id, "turf", {"name": "Box Arena", "city": "Pune"})
    other_city = create_listing(supplier.id, "turf", {"name": "Box Arena", "city": "P_ne"})
    assert other_city.city == "P_ne"

    with pytest.raises(Conflict):
        create_listing(supplier.id, "turf", {"name": "box arena", "city": "PUNE"})
