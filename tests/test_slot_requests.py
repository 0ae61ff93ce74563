import threading
from datetime import datetime, timedelta

import pytest

from app import create_app
import conftest
from conftest import make_listing, make_slot, make_user
from models import db
from models.listing import Ground, Turf
from models.notification import Notification
from models.slot import Slot
from models.slot_request import SlotRequest
from services import slot_requests as workflow
from utils.errors import Conflict, Forbidden, InvalidState, NotFound, ValidationError


def _slot(slot_id):
    db.session.expire_all()
    return db.session.get(Slot, slot_id)


def test_request_locks_slot_and_notifies_supplier(slot, player, supplier, push_sender):
    req = workflow.request_slot(slot.id, player.id, {"team_size": 10, "notes": " bring bibs "})

    assert req.status == "PENDING"
    assert req.team_size == 10
    assert req.notes == "bring bibs"
    assert _slot(slot.id).status == "PENDING"

    n = Notification.query.filter_by(recipient_id=supplier.id).one()
    assert n.type == "new_request"
    assert n.priority == "high"
    assert n.data["slot_id"] == slot.id


def test_second_request_on_locked_slot_conflicts(slot, player, other_player):
    workflow.request_slot(slot.id, player.id)

    with pytest.raises(Conflict):
        workflow.request_slot(slot.id, other_player.id)

    assert SlotRequest.query.filter_by(slot_id=slot.id).count() == 1


def test_concurrent_requests_have_exactly_one_winner(tmp_path):
    racers = 8

    class FileConfig(conftest.TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'race.db'}"

    app = create_app(FileConfig)
    with app.app_context():
        owner = make_user("owner@example.com", role="SUPPLIER")
        turf = make_listing(Turf, owner, "Race Turf")
        ground = Ground(turf_id=turf.id, name="Pitch 1", sport="football")
        db.session.add(ground)
        db.session.commit()
        slot_id = make_slot(ground).id
        user_ids = [make_user(f"racer{i}@example.com").id for i in range(racers)]

    barrier = threading.Barrier(racers)
    results = []

    def attempt(user_id):
        with app.app_context():
            barrier.wait()
            try:
                workflow.request_slot(slot_id, user_id)
                results.append("ok")
            except Conflict:
                results.append("conflict")
            except Exception as exc:
                results.append(repr(exc))
            finally:
                db.session.remove()

    threads = [threading.Thread(target=attempt, args=(uid,)) for uid in user_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(results) == ["conflict"] * (racers - 1) + ["ok"]
    with app.app_context():
        assert SlotRequest.query.filter_by(slot_id=slot_id).count() == 1
        assert db.session.get(Slot, slot_id).status == "PENDING"
        db.engine.dispose()



def test_request_unknown_slot(player):
    with pytest.raises(NotFound):
        workflow.request_slot(9999, player.id)


def test_request_past_slot_rejected(ground, player):
    past = make_slot(ground, hours_ahead=-2)
    with pytest.raises(ValidationError):
        workflow.request_slot(past.id, player.id)
    assert _slot(past.id).status == "AVAILABLE"


def test_request_blocked_slot_conflicts(ground, player):
    blocked = make_slot(ground, status="BLOCKED")
    with pytest.raises(Conflict):
        workflow.request_slot(blocked.id, player.id)


def test_invalid_team_size(slot, player):
    with pytest.raises(ValidationError):
        workflow.request_slot(slot.id, player.id, {"team_size": 0})
    assert _slot(slot.id).status == "AVAILABLE"


def test_accept_books_slot(slot, player, supplier):
    req = workflow.request_slot(slot.id, player.id)
    req = workflow.respond_to_request(req.id, "accept", supplier.id)

    assert req.status == "APPROVED"
    assert req.responded_by == supplier.id
    booked = _slot(slot.id)
    assert booked.status == "BOOKED"
    assert booked.booked_by_user_id == player.id
    assert booked.payment_status == "PENDING"
    assert Notification.query.filter_by(recipient_id=player.id, type="booking_confirmation").count() == 1


def test_decline_releases_slot_for_a_new_request(slot, player, other_player, supplier):
    req = workflow.request_slot(slot.id, player.id)
    req = workflow.respond_to_request(req.id, "decline", supplier.id)

    assert req.status == "REJECTED"
    assert _slot(slot.id).status == "AVAILABLE"
    assert Notification.query.filter_by(recipient_id=player.id, type="booking_rejection").count() == 1

    again = workflow.request_slot(slot.id, other_player.id)
    assert again.status == "PENDING"


def test_respond_requires_slot_owner(slot, player, other_supplier):
    req = workflow.request_slot(slot.id, player.id)
    with pytest.raises(Forbidden):
        workflow.respond_to_request(req.id, "accept", other_supplier.id)
    assert _slot(slot.id).status == "PENDING"


def test_respond_rejects_unknown_action(slot, player, supplier):
    req = workflow.request_slot(slot.id, player.id)
    with pytest.raises(ValidationError):
        workflow.respond_to_request(req.id, "maybe", supplier.id)


def test_respond_twice_is_invalid_state(slot, player, supplier):
    req = workflow.request_slot(slot.id, player.id)
    workflow.respond_to_request(req.id, "accept", supplier.id)
    with pytest.raises(InvalidState):
        workflow.respond_to_request(req.id, "decline", supplier.id)
    assert _slot(slot.id).status == "BOOKED"


def test_cancel_pending_request_frees_slot(slot, player, supplier):
    req = workflow.request_slot(slot.id, player.id)
    req = workflow.cancel_request(req.id, player.id)

    assert req.status == "CANCELLED"
    assert req.cancelled_at is not None
    assert _slot(slot.id).status == "AVAILABLE"
    assert Notification.query.filter_by(recipient_id=supplier.id, type="booking_cancellation").count() == 1


def test_cancel_approved_request_before_start(slot, player, supplier):
    req = workflow.request_slot(slot.id, player.id)
    workflow.respond_to_request(req.id, "accept", supplier.id)

    workflow.cancel_request(req.id, player.id)
    freed = _slot(slot.id)
    assert freed.status == "AVAILABLE"
    assert freed.booked_by_user_id is None


def test_cancel_approved_request_inside_cutoff(app, slot, player, supplier):
    app.config["CANCEL_CUTOFF_HOURS"] = 72
    req = workflow.request_slot(slot.id, player.id)
    workflow.respond_to_request(req.id, "accept", supplier.id)

    with pytest.raises(InvalidState):
        workflow.cancel_request(req.id, player.id)
    assert _slot(slot.id).status == "BOOKED"


def test_cancel_after_start_is_invalid(slot, player, supplier):
    req = workflow.request_slot(slot.id, player.id)
    workflow.respond_to_request(req.id, "accept", supplier.id)

    later = datetime.utcnow() + timedelta(days=5)
    with pytest.raises(InvalidState):
        workflow.cancel_request(req.id, player.id, now=later)


def test_only_requester_can_cancel(slot, player, other_player):
    req = workflow.request_slot(slot.id, player.id)
    with pytest.raises(Forbidden):
        workflow.cancel_request(req.id, other_player.id)


def test_cancelled_request_cannot_be_cancelled_again(slot, player):
    req = workflow.request_slot(slot.id, player.id)
    workflow.cancel_request(req.id, player.id)
    with pytest.raises(InvalidState):
        workflow.cancel_request(req.id, player.id)


def test_cancel_slot_booking_finds_live_request(slot, player):
    workflow.request_slot(slot.id, player.id)
    req = workflow.cancel_slot_booking(slot.id, player.id)
    assert req.status == "CANCELLED"

    with pytest.raises(NotFound):
        workflow.cancel_slot_booking(slot.id, player.id)


def test_at_most_one_live_request_per_slot(slot, player, other_player, supplier):
    first = workflow.request_slot(slot.id, player.id)
    workflow.respond_to_request(first.id, "decline", supplier.id)
    second = workflow.request_slot(slot.id, other_player.id)
    workflow.respond_to_request(second.id, "accept", supplier.id)

    live = SlotRequest.query.filter(
        SlotRequest.slot_id == slot.id,
        SlotRequest.status.in_(("PENDING", "APPROVED")),
    ).count()
    assert live == 1


def test_payment_status_update(slot, player, other_player, supplier):
    req = workflow.request_slot(slot.id, player.id)
    workflow.respond_to_request(req.id, "accept", supplier.id)

    updated = workflow.update_payment_status(slot.id, "confirmed", player.id)
    assert updated.payment_status == "CONFIRMED"

    with pytest.raises(Forbidden):
        workflow.update_payment_status(slot.id, "REFUNDED", other_player.id)
    with pytest.raises(ValidationError):
        workflow.update_payment_status(slot.id, "PAID", supplier.id)


def test_payment_status_needs_booked_slot(slot, supplier):
    with pytest.raises(InvalidState):
        workflow.update_payment_status(slot.id, "CONFIRMED", supplier.id)


def test_supplier_sees_incoming_requests_for_owned_resources(slot, coach, player, supplier, other_supplier):
    coach_slot = make_slot(coach, resource_type="coach")
    workflow.request_slot(slot.id, player.id)
    workflow.request_slot(coach_slot.id, player.id)

    incoming = workflow.list_supplier_requests(supplier.id)
    assert {r.slot_id for r in incoming} == {slot.id, coach_slot.id}
    assert workflow.list_supplier_requests(other_supplier.id) == []
    assert len(workflow.list_user_requests(player.id, "pending")) == 2
