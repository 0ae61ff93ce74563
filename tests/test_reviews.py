import pytest

from conftest import make_listing
from models import db
from models.listing import Academy
from models.review import Review
from services.reviews import create_review, list_reviews
from services.search import search_listings
from utils.errors import Conflict, Forbidden, NotFound, ValidationError


def _ids(result):
    return [row["listing"].id for row in result["results"]]


def test_review_sets_average_rating(supplier, player, other_player, academy):
    create_review(player.id, "academy", academy.id, 5, " great coaches ")
    db.session.expire_all()
    assert db.session.get(Academy, academy.id).rating == 5.0

    create_review(other_player.id, "academy", academy.id, "2")
    db.session.expire_all()
    assert db.session.get(Academy, academy.id).rating == 3.5
    assert Review.query.filter_by(listing_id=academy.id).count() == 2


def test_reviews_reorder_rating_sort(supplier, player, other_player):
    first = make_listing(Academy, supplier, "First")
    second = make_listing(Academy, supplier, "Second")
    assert _ids(search_listings("academy", {"sortBy": "rating"})) == [second.id, first.id]

    create_review(player.id, "academy", first.id, 5)
    assert _ids(search_listings("academy", {"sortBy": "rating"})) == [first.id, second.id]

    create_review(other_player.id, "academy", first.id, 2)
    create_review(player.id, "academy", second.id, 4)
    assert _ids(search_listings("academy", {"sortBy": "rating"})) == [second.id, first.id]
    assert _ids(search_listings("academy", {"rating": "3.6"})) == [second.id]


def test_one_review_per_user(player, academy):
    create_review(player.id, "academy", academy.id, 4)
    with pytest.raises(Conflict):
        create_review(player.id, "academy", academy.id, 1)

    db.session.expire_all()
    assert db.session.get(Academy, academy.id).rating == 4.0


def test_owner_cannot_review_own_listing(supplier, academy):
    with pytest.raises(Forbidden):
        create_review(supplier.id, "academy", academy.id, 5)


@pytest.mark.parametrize("rating", [0, 6, 4.5, "abc", None, True])
def test_rating_must_be_one_to_five(player, academy, rating):
    with pytest.raises(ValidationError):
        create_review(player.id, "academy", academy.id, rating)
    assert Review.query.count() == 0


def test_review_unknown_listing(player):
    with pytest.raises(NotFound):
        create_review(player.id, "coach", 999, 3)


def test_list_reviews_newest_first(player, other_player, academy):
    create_review(player.id, "academy", academy.id, 3, "ok")
    create_review(other_player.id, "academy", academy.id, 5, "superb")

    result = list_reviews("academy", academy.id)
    assert [r["comment"] for r in result["reviews"]] == ["superb", "ok"]
    assert result["pagination"]["total"] == 2


def test_review_over_http(login_as, client, player, academy):
    c, headers = login_as(player)

    resp = c.post(f"/academies/{academy.id}/reviews", json={"rating": 4, "comment": "Nice"}, headers=headers)
    assert resp.status_code == 201
    assert resp.get_json()["data"]["listing_rating"] == 4.0

    again = c.post(f"/academies/{academy.id}/reviews", json={"rating": 5}, headers=headers)
    assert again.status_code == 409

    listed = client.get(f"/academies/{academy.id}/reviews").get_json()["data"]
    assert [r["rating"] for r in listed["reviews"]] == [4]
    assert client.get(f"/academies/{academy.id}").get_json()["data"]["rating"] == 4.0


def test_review_errors_carry_details(login_as, player, coach):
    c, headers = login_as(player)
    resp = c.post(f"/coaches/{coach.id}/reviews", json={"rating": 9}, headers=headers)

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["error"] == "validation_error"
    assert body["details"] == {"min": 1, "max": 5}


def test_review_needs_login(client, academy):
    assert client.post(f"/academies/{academy.id}/reviews", json={"rating": 5}).status_code == 401
