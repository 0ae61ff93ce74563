import logging
from datetime import datetime, timedelta, date

from sqlalchemy.exc import IntegrityError

from models import db
from models.listing import SLOT_RESOURCE_MODELS, Ground
from models.slot import Slot, SLOT_STATUSES
from utils.errors import NotFound, Forbidden, ValidationError, Conflict, InvalidState

logger = logging.getLogger(__name__)


def get_resource(resource_type: str, resource_id: int):
    model = SLOT_RESOURCE_MODELS.get(resource_type)
    if model is None:
        raise ValidationError("resource_type must be one of: " + ", ".join(SLOT_RESOURCE_MODELS))
    resource = db.session.get(model, resource_id)
    if resource is None or not resource.is_active:
        raise NotFound(f"{resource_type.capitalize()} not found")
    return resource


def resource_owner_id(resource_type: str, resource_id: int) -> int:
    return get_resource(resource_type, resource_id).owner_user_id


def slot_owner_id(slot: Slot) -> int:
    return resource_owner_id(slot.resource_type, slot.resource_id)


def get_slot(slot_id: int) -> Slot:
    slot = db.session.get(Slot, slot_id)
    if slot is None:
        raise NotFound("Slot not found")
    return slot


def create_slot(owner_id: int, resource_type: str, resource_id: int,
                start_time: datetime, end_time: datetime, price: int = 0) -> Slot:
    resource = get_resource(resource_type, resource_id)
    if resource.owner_user_id != owner_id:
        raise Forbidden("You do not own this resource")
    if end_time <= start_time:
        raise ValidationError("end_time must be after start_time")
    if price < 0:
        raise ValidationError("price must not be negative")

    slot = Slot(
        resource_type=resource_type,
        resource_id=resource_id,
        start_time=start_time,
        end_time=end_time,
        price=price,
    )
    db.session.add(slot)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("Slot already exists for that resource and time")

    logger.info("Slot %s created for %s %s", slot.id, resource_type, resource_id)
    return slot


def _parse_hhmm(value: str, fallback: str):
    try:
        hours, minutes = (int(part) for part in (value or fallback).split(":")[:2])
    except ValueError:
        hours, minutes = (int(part) for part in fallback.split(":"))
    return hours, minutes


def generate_slots_for_date(owner_id: int, ground_id: int, day: date, price: int = None) -> list:
    """Hourly slots for one ground between its turf's opening and closing time."""
    ground = get_resource("ground", ground_id)
    if ground.owner_user_id != owner_id:
        raise Forbidden("You do not own this ground")

    turf = ground.turf
    open_h, open_m = _parse_hhmm(turf.opening_time, "06:00")
    close_h, close_m = _parse_hhmm(turf.closing_time, "22:00")
    day_start = datetime(day.year, day.month, day.day)
    cursor = day_start + timedelta(hours=open_h, minutes=open_m)
    closing = day_start + timedelta(hours=close_h, minutes=close_m)
    slot_price = turf.price if price is None else price

    existing = {
        (s.start_time, s.end_time)
        for s in Slot.query.filter(
            Slot.resource_type == "ground",
            Slot.resource_id == ground_id,
            Slot.start_time >= day_start,
            Slot.start_time < day_start + timedelta(days=1),
        )
    }

    created = []
    while cursor + timedelta(hours=1) <= closing:
        window = (cursor, cursor + timedelta(hours=1))
        if window not in existing:
            slot = Slot(
                resource_type="ground",
                resource_id=ground_id,
                start_time=window[0],
                end_time=window[1],
                price=slot_price,
            )
            db.session.add(slot)
            created.append(slot)
        cursor = window[1]

    db.session.commit()
    logger.info("Generated %s slots for ground %s on %s", len(created), ground_id, day.isoformat())
    return created


def block_slot(slot_id: int, owner_id: int) -> Slot:
    slot = get_slot(slot_id)
    if slot_owner_id(slot) != owner_id:
        raise Forbidden("You do not own this slot")

    updated = (
        Slot.query
        .filter_by(id=slot_id, status="AVAILABLE")
        .update({"status": "BLOCKED", "updated_at": datetime.utcnow()}, synchronize_session=False)
    )
    if not updated:
        db.session.rollback()
        raise InvalidState("Only available slots can be blocked")
    db.session.commit()
    db.session.refresh(slot)
    return slot


def list_slots(resource_type: str = None, resource_id: int = None, day: date = None, status: str = None) -> list:
    q = Slot.query.filter(Slot.status != "BLOCKED")
    if resource_type:
        if resource_type not in SLOT_RESOURCE_MODELS:
            raise ValidationError("resource_type must be one of: " + ", ".join(SLOT_RESOURCE_MODELS))
        q = q.filter(Slot.resource_type == resource_type)
    if resource_id:
        q = q.filter(Slot.resource_id == resource_id)
    if status:
        status = status.upper()
        if status not in SLOT_STATUSES:
            raise ValidationError("status must be one of: " + ", ".join(SLOT_STATUSES),
                                  details={"allowed": list(SLOT_STATUSES)})
        q = q.filter(Slot.status == status)
    if day:
        start = datetime(day.year, day.month, day.day)
        q = q.filter(Slot.start_time >= start, Slot.start_time < start + timedelta(days=1))
    return q.order_by(Slot.start_time.asc(), Slot.id.asc()).limit(500).all()


def create_ground(owner_id: int, turf, name: str, sport: str = None) -> Ground:
    if turf.owner_user_id != owner_id:
        raise Forbidden("You do not own this turf")
    if not name:
        raise ValidationError("Ground name required")
    ground = Ground(turf_id=turf.id, name=name, sport=(sport or "").strip().lower() or None)
    db.session.add(ground)
    db.session.commit()
    return ground
