"""
Booking workflow between a user and the supplier owning a slot.

Request states: PENDING -> APPROVED | REJECTED | CANCELLED, APPROVED -> CANCELLED.
A slot is locked (AVAILABLE -> PENDING) the moment a request is created, using
a conditional UPDATE so two concurrent requests can never both win.
"""
import logging
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import and_, or_

from models import db
from models.listing import Turf, Coach, Ground
from models.slot import Slot, PAYMENT_STATUSES
from models.slot_request import SlotRequest
from services.notifications import queue_notification, dispatch
from services.slots import get_slot, slot_owner_id
from utils.errors import NotFound, Conflict, InvalidState, Forbidden, ValidationError

logger = logging.getLogger(__name__)

RESPONSE_ACTIONS = {"accept": "APPROVED", "decline": "REJECTED"}
LIVE_REQUEST_STATUSES = ("PENDING", "APPROVED")


def _swap_slot_status(slot_id: int, expected: str, values: dict) -> bool:
    values = dict(values, updated_at=datetime.utcnow())
    updated = (
        Slot.query
        .filter(Slot.id == slot_id, Slot.status == expected)
        .update(values, synchronize_session=False)
    )
    return updated == 1


def _swap_request_status(request_id: int, expected: str, values: dict) -> bool:
    values = dict(values, updated_at=datetime.utcnow())
    updated = (
        SlotRequest.query
        .filter(SlotRequest.id == request_id, SlotRequest.status == expected)
        .update(values, synchronize_session=False)
    )
    return updated == 1


def _slot_label(slot: Slot) -> str:
    return slot.start_time.strftime("%Y-%m-%d %H:%M")


def request_slot(slot_id: int, user_id: int, details: dict = None, now: datetime = None) -> SlotRequest:
    now = now or datetime.utcnow()
    details = details or {}

    team_size = details.get("team_size")
    if team_size is not None:
        try:
            team_size = int(team_size)
        except (TypeError, ValueError):
            raise ValidationError("team_size must be an integer")
        if team_size < 1:
            raise ValidationError("team_size must be positive")
    notes = (details.get("notes") or "").strip()[:500] or None

    slot = get_slot(slot_id)
    if slot.start_time <= now:
        raise ValidationError("Cannot book past/started slots")
    supplier_id = slot_owner_id(slot)

    if not _swap_slot_status(slot_id, "AVAILABLE", {"status": "PENDING"}):
        db.session.rollback()
        logger.info("Slot %s request by user %s lost: slot not available", slot_id, user_id)
        raise Conflict("Slot is not available")

    try:
        req = SlotRequest(
            slot_id=slot_id,
            user_id=user_id,
            status="PENDING",
            notes=notes,
            team_size=team_size,
            requested_at=now,
        )
        db.session.add(req)
        db.session.flush()

        notification = queue_notification(
            supplier_id,
            "new_request",
            "New Booking Request",
            f"You have a new booking request for {_slot_label(slot)}",
            recipient_type="supplier",
            data={"request_id": req.id, "slot_id": slot_id, "user_id": user_id, "team_size": team_size},
            priority="high",
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Slot request %s created for slot %s by user %s", req.id, slot_id, user_id)
    dispatch([notification])
    return req


def get_request(request_id: int) -> SlotRequest:
    req = db.session.get(SlotRequest, request_id)
    if req is None:
        raise NotFound("Slot request not found")
    return req


def respond_to_request(request_id: int, action: str, actor_id: int) -> SlotRequest:
    new_status = RESPONSE_ACTIONS.get((action or "").strip().lower())
    if new_status is None:
        raise ValidationError("Invalid action. Must be 'accept' or 'decline'")

    req = get_request(request_id)
    slot = get_slot(req.slot_id)
    if slot_owner_id(slot) != actor_id:
        raise Forbidden("You do not own this slot")
    if req.status != "PENDING":
        raise InvalidState(f"Request is already {req.status.lower()}")

    now = datetime.utcnow()
    try:
        if not _swap_request_status(request_id, "PENDING", {
            "status": new_status,
            "responded_at": now,
            "responded_by": actor_id,
        }):
            raise InvalidState("Request is no longer pending")

        if new_status == "APPROVED":
            if not _swap_slot_status(slot.id, "PENDING", {
                "status": "BOOKED",
                "booked_by_user_id": req.user_id,
                "payment_status": "PENDING",
            }):
                raise Conflict("Slot is no longer held for this request")
            notification = queue_notification(
                req.user_id,
                "booking_confirmation",
                "Booking Confirmed",
                f"Your booking for {_slot_label(slot)} has been confirmed",
                data={"request_id": req.id, "slot_id": slot.id},
                priority="high",
            )
        else:
            _swap_slot_status(slot.id, "PENDING", {"status": "AVAILABLE", "booked_by_user_id": None})
            notification = queue_notification(
                req.user_id,
                "booking_rejection",
                "Booking Declined",
                f"Your booking request for {_slot_label(slot)} was declined",
                data={"request_id": req.id, "slot_id": slot.id},
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.refresh(req)
    logger.info("Slot request %s %s by supplier %s", request_id, new_status.lower(), actor_id)
    dispatch([notification])
    return req


def cancel_request(request_id: int, user_id: int, now: datetime = None) -> SlotRequest:
    now = now or datetime.utcnow()
    req = get_request(request_id)
    if req.user_id != user_id:
        raise Forbidden("Only the requesting user can cancel this request")
    if req.status not in LIVE_REQUEST_STATUSES:
        raise InvalidState(f"Request is already {req.status.lower()}")

    slot = get_slot(req.slot_id)
    if req.status == "APPROVED":
        cutoff_hours = current_app.config.get("CANCEL_CUTOFF_HOURS", 0)
        if slot.start_time - timedelta(hours=cutoff_hours) <= now:
            raise InvalidState("Booking can no longer be cancelled")

    held_status = "BOOKED" if req.status == "APPROVED" else "PENDING"
    try:
        if not _swap_request_status(request_id, req.status, {"status": "CANCELLED", "cancelled_at": now}):
            raise InvalidState("Request changed while cancelling")
        _swap_slot_status(slot.id, held_status, {
            "status": "AVAILABLE",
            "booked_by_user_id": None,
            "payment_status": None,
        })
        notification = queue_notification(
            slot_owner_id(slot),
            "booking_cancellation",
            "Booking Cancelled",
            f"A booking for {_slot_label(slot)} was cancelled by the user",
            recipient_type="supplier",
            data={"request_id": req.id, "slot_id": slot.id},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.refresh(req)
    logger.info("Slot request %s cancelled by user %s", request_id, user_id)
    dispatch([notification])
    return req


def cancel_slot_booking(slot_id: int, user_id: int, now: datetime = None) -> SlotRequest:
    get_slot(slot_id)
    req = (
        SlotRequest.query
        .filter(
            SlotRequest.slot_id == slot_id,
            SlotRequest.user_id == user_id,
            SlotRequest.status.in_(LIVE_REQUEST_STATUSES),
        )
        .order_by(SlotRequest.requested_at.desc())
        .first()
    )
    if req is None:
        raise NotFound("No active booking for this slot")
    return cancel_request(req.id, user_id, now=now)


def update_payment_status(slot_id: int, status: str, actor_id: int) -> Slot:
    status = (status or "").strip().upper()
    if status not in PAYMENT_STATUSES:
        raise ValidationError("status must be one of: " + ", ".join(PAYMENT_STATUSES))

    slot = get_slot(slot_id)
    if slot.status != "BOOKED":
        raise InvalidState("Slot is not booked")
    if actor_id not in (slot.booked_by_user_id, slot_owner_id(slot)):
        raise Forbidden("Not allowed to update payment for this slot")

    slot.payment_status = status
    db.session.commit()
    logger.info("Slot %s payment status set to %s", slot_id, status)
    return slot


def list_user_requests(user_id: int, status: str = None) -> list:
    q = SlotRequest.query.filter_by(user_id=user_id)
    if status:
        q = q.filter_by(status=status.upper())
    return q.order_by(SlotRequest.requested_at.desc(), SlotRequest.id.desc()).limit(200).all()


def _owned_slot_filter(supplier_id: int):
    turf_ids = [t.id for t in Turf.query.filter_by(owner_user_id=supplier_id)]
    coach_ids = [c.id for c in Coach.query.filter_by(owner_user_id=supplier_id)]
    ground_ids = [g.id for g in Ground.query.filter(Ground.turf_id.in_(turf_ids))] if turf_ids else []
    return or_(
        and_(Slot.resource_type == "turf", Slot.resource_id.in_(turf_ids)),
        and_(Slot.resource_type == "ground", Slot.resource_id.in_(ground_ids)),
        and_(Slot.resource_type == "coach", Slot.resource_id.in_(coach_ids)),
    )


def list_supplier_requests(supplier_id: int, status: str = None) -> list:
    q = (
        SlotRequest.query
        .join(Slot, SlotRequest.slot_id == Slot.id)
        .filter(_owned_slot_filter(supplier_id))
    )
    if status:
        q = q.filter(SlotRequest.status == status.upper())
    return q.order_by(SlotRequest.requested_at.desc(), SlotRequest.id.desc()).limit(200).all()
