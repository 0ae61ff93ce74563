from datetime import datetime

from flask import Blueprint, request, g

from security.rbac import require_roles
from services import slots as slot_service
from services import slot_requests as workflow
from utils.audit import log_event
from utils.auth_context import login_required
from utils.errors import ValidationError
from utils.responses import success_response

slots_bp = Blueprint("slots", __name__)


def _parse_iso(dt_str, field: str) -> datetime:
    # Expect ISO format like "2026-01-20T18:00:00"
    try:
        return datetime.fromisoformat(dt_str)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}. Use ISO e.g. 2026-01-20T18:00:00")


def _parse_day(day_str):
    if not day_str:
        return None
    try:
        return datetime.fromisoformat(day_str).date()
    except ValueError:
        raise ValidationError("Invalid date. Use YYYY-MM-DD")


def _int_field(data: dict, key: str) -> int:
    try:
        return int(data.get(key))
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer")


def slot_json(s) -> dict:
    return {
        "id": s.id,
        "resource_type": s.resource_type,
        "resource_id": s.resource_id,
        "start_time": s.start_time.isoformat(),
        "end_time": s.end_time.isoformat(),
        "price": s.price,
        "status": s.status,
        "available": s.status == "AVAILABLE",
        "payment_status": s.payment_status,
    }


def request_json(r) -> dict:
    return {
        "id": r.id,
        "slot_id": r.slot_id,
        "user_id": r.user_id,
        "status": r.status,
        "notes": r.notes,
        "team_size": r.team_size,
        "requested_at": r.requested_at.isoformat(),
        "responded_at": r.responded_at.isoformat() if r.responded_at else None,
        "cancelled_at": r.cancelled_at.isoformat() if r.cancelled_at else None,
    }


# ---------- SUPPLIERS: define availability ----------
@slots_bp.post("/slots")
@require_roles("SUPPLIER")
def create_slot():
    data = request.get_json(silent=True) or {}
    resource_type = (data.get("resource_type") or "").strip().lower()
    if not resource_type or not data.get("start_time") or not data.get("end_time"):
        raise ValidationError("resource_type, resource_id, start_time, end_time are required")

    slot = slot_service.create_slot(
        g.user.id,
        resource_type,
        _int_field(data, "resource_id"),
        _parse_iso(data.get("start_time"), "start_time"),
        _parse_iso(data.get("end_time"), "end_time"),
        _int_field(data, "price") if data.get("price") is not None else 0,
    )
    log_event("SLOT_CREATE", user_id=g.user.id, entity="slot", entity_id=slot.id)
    return success_response("Slot created", slot_json(slot), 201)


@slots_bp.post("/grounds/<int:ground_id>/slots/generate")
@require_roles("SUPPLIER")
def generate_slots(ground_id: int):
    data = request.get_json(silent=True) or {}
    day = _parse_day(data.get("date"))
    if day is None:
        raise ValidationError("date is required")
    price = _int_field(data, "price") if data.get("price") is not None else None

    created = slot_service.generate_slots_for_date(g.user.id, ground_id, day, price=price)
    log_event("SLOT_GENERATE", user_id=g.user.id, entity="ground", entity_id=ground_id,
              metadata={"date": day.isoformat(), "created": len(created)})
    return success_response(f"{len(created)} slots generated", [slot_json(s) for s in created], 201)


@slots_bp.post("/slots/<int:slot_id>/block")
@require_roles("SUPPLIER")
def block_slot(slot_id: int):
    slot = slot_service.block_slot(slot_id, g.user.id)
    log_event("SLOT_BLOCK", user_id=g.user.id, entity="slot", entity_id=slot_id)
    return success_response("Slot blocked", slot_json(slot))


# ---------- PLAYERS: browse and book ----------
@slots_bp.get("/slots")
def list_slots():
    resource_id = request.args.get("resource_id", type=int)
    slots = slot_service.list_slots(
        resource_type=(request.args.get("resource_type") or "").strip().lower() or None,
        resource_id=resource_id,
        day=_parse_day(request.args.get("date")),
        status=request.args.get("status"),
    )
    return success_response("Slots fetched", [slot_json(s) for s in slots])


@slots_bp.post("/slots/<int:slot_id>/book")
@login_required
def book_slot(slot_id: int):
    data = request.get_json(silent=True) or {}
    req = workflow.request_slot(slot_id, g.user.id, {
        "notes": data.get("notes"),
        "team_size": data.get("team_size"),
    })
    log_event("SLOT_REQUEST_CREATE", user_id=g.user.id, entity="slot_request", entity_id=req.id,
              metadata={"slot_id": slot_id})
    return success_response("Booking request submitted", request_json(req), 201)


@slots_bp.post("/slots/<int:slot_id>/cancel")
@login_required
def cancel_slot_booking(slot_id: int):
    req = workflow.cancel_slot_booking(slot_id, g.user.id)
    log_event("SLOT_REQUEST_CANCEL", user_id=g.user.id, entity="slot_request", entity_id=req.id)
    return success_response("Booking cancelled", request_json(req))


@slots_bp.patch("/slots/<int:slot_id>/payment")
@login_required
def update_payment(slot_id: int):
    data = request.get_json(silent=True) or {}
    slot = workflow.update_payment_status(slot_id, data.get("status"), g.user.id)
    log_event("SLOT_PAYMENT_UPDATE", user_id=g.user.id, entity="slot", entity_id=slot_id,
              metadata={"status": slot.payment_status})
    return success_response("Payment status updated", slot_json(slot))


# ---------- Slot requests ----------
@slots_bp.get("/slot-requests/me")
@login_required
def my_requests():
    rows = workflow.list_user_requests(g.user.id, request.args.get("status"))
    return success_response("Requests fetched", [request_json(r) for r in rows])


@slots_bp.get("/slot-requests/incoming")
@require_roles("SUPPLIER")
def incoming_requests():
    rows = workflow.list_supplier_requests(g.user.id, request.args.get("status"))
    return success_response("Requests fetched", [request_json(r) for r in rows])


@slots_bp.post("/slot-requests/<int:request_id>/respond")
@require_roles("SUPPLIER")
def respond(request_id: int):
    data = request.get_json(silent=True) or {}
    req = workflow.respond_to_request(request_id, data.get("action"), g.user.id)
    log_event("SLOT_REQUEST_RESPOND", user_id=g.user.id, entity="slot_request", entity_id=request_id,
              metadata={"status": req.status})
    return success_response(f"Request {req.status.lower()}", request_json(req))


@slots_bp.post("/slot-requests/<int:request_id>/cancel")
@login_required
def cancel_request(request_id: int):
    req = workflow.cancel_request(request_id, g.user.id)
    log_event("SLOT_REQUEST_CANCEL", user_id=g.user.id, entity="slot_request", entity_id=request_id)
    return success_response("Request cancelled", request_json(req))
