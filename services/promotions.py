"""
Paid promotions and the ranking boost they grant.

A transaction boosts its listing while it is PAID and the current time lies
inside [start_date, end_date]. `_live_filter` is the only place that decides
this; the stored status is corrected to EXPIRED lazily and is informational.
"""
import logging
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from models import db
from models.listing import LISTING_MODELS, ServiceRef
from models.promotion import PromotionTransaction
from services.notifications import queue_notification, dispatch
from utils.errors import NotFound, InvalidState, InvalidPlan, ValidationError, Forbidden

logger = logging.getLogger(__name__)

PROMOTION_STATUSES = ("PENDING", "PAID", "EXPIRED", "CANCELLED")


def get_promotion_plans() -> dict:
    return current_app.config["PROMOTION_PLANS"]


def get_available_plans() -> list:
    return [
        {
            "name": name,
            "priority_value": plan["priority_value"],
            "amount": plan["amount"],
            "duration_days": plan["duration_days"],
        }
        for name, plan in get_promotion_plans().items()
    ]


def service_ref(service_type: str, service_id) -> ServiceRef:
    if service_type not in LISTING_MODELS:
        raise ValidationError("service_type must be one of: " + ", ".join(LISTING_MODELS))
    try:
        return ServiceRef(service_type, int(service_id))
    except (TypeError, ValueError):
        raise ValidationError("service_id must be an integer")


def create_promotion_transaction(supplier_id: int, service_type: str, service_id, promotion_plan: str,
                                 now: datetime = None) -> PromotionTransaction:
    plan = get_promotion_plans().get(promotion_plan)
    if plan is None:
        raise InvalidPlan("Invalid promotion plan")

    ref = service_ref(service_type, service_id)
    listing = ref.resolve()
    if listing is None or not listing.is_active:
        raise NotFound(f"{ref.kind.capitalize()} not found")
    if listing.owner_user_id != supplier_id:
        raise Forbidden("You do not own this listing")

    start = now or datetime.utcnow()
    tx = PromotionTransaction(
        supplier_id=supplier_id,
        service_type=ref.kind,
        service_id=ref.id,
        promotion_plan=promotion_plan,
        priority_value=plan["priority_value"],
        amount=plan["amount"],
        start_date=start,
        end_date=start + timedelta(days=plan["duration_days"]),
        status="PENDING",
    )
    db.session.add(tx)
    db.session.commit()
    logger.info("Promotion %s (%s) created for %s %s", tx.id, promotion_plan, ref.kind, ref.id)
    return tx


def get_promotion(transaction_id: int) -> PromotionTransaction:
    tx = db.session.get(PromotionTransaction, transaction_id)
    if tx is None:
        raise NotFound("Promotion transaction not found")
    return tx


def process_promotion_payment(transaction_id: int, payment_data: dict = None,
                              now: datetime = None) -> PromotionTransaction:
    """Mark a pending transaction PAID and retire any other paid boost for the same listing."""
    payment_data = payment_data or {}
    now = now or datetime.utcnow()

    tx = get_promotion(transaction_id)
    if tx.status != "PENDING":
        raise InvalidState(f"Promotion is already {tx.status.lower()}")
    if tx.end_date < now:
        raise InvalidState("Promotion period has already ended")

    try:
        updated = (
            PromotionTransaction.query
            .filter_by(id=transaction_id, status="PENDING")
            .update({
                "status": "PAID",
                "paid_at": now,
                "paid_amount": tx.amount,
                "payment_method": payment_data.get("payment_method"),
                "transaction_ref": payment_data.get("transaction_id"),
                "updated_at": now,
            }, synchronize_session=False)
        )
        if not updated:
            raise InvalidState("Promotion is no longer pending")

        superseded = (
            PromotionTransaction.query
            .filter(
                PromotionTransaction.service_type == tx.service_type,
                PromotionTransaction.service_id == tx.service_id,
                PromotionTransaction.status == "PAID",
                PromotionTransaction.id != transaction_id,
            )
            .update({"status": "EXPIRED", "updated_at": now}, synchronize_session=False)
        )

        notification = queue_notification(
            tx.supplier_id,
            "promotion_confirmation",
            "Promotion Activated",
            f"Your {tx.promotion_plan} promotion is active until {tx.end_date.strftime('%Y-%m-%d')}",
            recipient_type="supplier",
            data={"promotion_id": tx.id, "service_type": tx.service_type, "service_id": tx.service_id},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.refresh(tx)
    logger.info("Promotion %s paid; %s earlier boost(s) retired", transaction_id, superseded)
    dispatch([notification])
    return tx


def cancel_promotion(transaction_id: int, supplier_id: int) -> PromotionTransaction:
    tx = get_promotion(transaction_id)
    if tx.supplier_id != supplier_id:
        raise Forbidden("Not your promotion")
    updated = (
        PromotionTransaction.query
        .filter_by(id=transaction_id, status="PENDING")
        .update({"status": "CANCELLED", "updated_at": datetime.utcnow()}, synchronize_session=False)
    )
    if not updated:
        db.session.rollback()
        raise InvalidState("Only pending promotions can be cancelled")
    db.session.commit()
    db.session.refresh(tx)
    return tx


def _live_filter(now: datetime):
    return (
        PromotionTransaction.status == "PAID",
        PromotionTransaction.start_date <= now,
        PromotionTransaction.end_date >= now,
    )


def ranking_boost_for(service_type: str, service_id: int, now: datetime = None) -> int:
    """Priority value of the live promotion for a listing, or 0. Read-only."""
    now = now or datetime.utcnow()
    tx = (
        PromotionTransaction.query
        .filter(
            PromotionTransaction.service_type == service_type,
            PromotionTransaction.service_id == service_id,
            *_live_filter(now),
        )
        .order_by(PromotionTransaction.paid_at.desc(), PromotionTransaction.id.desc())
        .first()
    )
    return tx.priority_value if tx else 0


def active_boosts(service_type: str, service_ids, now: datetime = None) -> dict:
    """Batched ranking_boost_for: {service_id: priority_value} for listings with a live promotion."""
    service_ids = list(service_ids)
    if not service_ids:
        return {}
    now = now or datetime.utcnow()
    # at most one live row per listing, max() only guards against stale duplicates
    rows = (
        db.session.query(PromotionTransaction.service_id, func.max(PromotionTransaction.priority_value))
        .filter(
            PromotionTransaction.service_type == service_type,
            PromotionTransaction.service_id.in_(service_ids),
            *_live_filter(now),
        )
        .group_by(PromotionTransaction.service_id)
        .all()
    )
    return {service_id: value for service_id, value in rows}


def expire_lapsed_promotions(now: datetime = None) -> int:
    now = now or datetime.utcnow()
    expired = (
        PromotionTransaction.query
        .filter(PromotionTransaction.status == "PAID", PromotionTransaction.end_date < now)
        .update({"status": "EXPIRED", "updated_at": now}, synchronize_session=False)
    )
    db.session.commit()
    if expired:
        logger.info("Marked %s lapsed promotion(s) as expired", expired)
    return expired


def get_supplier_promotions(supplier_id: int, status: str = None) -> list:
    expire_lapsed_promotions()
    q = PromotionTransaction.query.filter_by(supplier_id=supplier_id)
    if status:
        status = status.upper()
        if status not in PROMOTION_STATUSES:
            raise ValidationError("Unknown promotion status")
        q = q.filter_by(status=status)
    return q.order_by(PromotionTransaction.created_at.desc(), PromotionTransaction.id.desc()).all()


def attach_checkout_session(transaction_id: int, session_id: str) -> PromotionTransaction:
    tx = get_promotion(transaction_id)
    tx.stripe_session_id = session_id
    db.session.commit()
    return tx
