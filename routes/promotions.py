from flask import Blueprint, request, g

from security.rbac import require_roles, has_role
from services import promotions as promo_service
from utils.audit import log_event
from utils.errors import Forbidden
from utils.responses import success_response

promotions_bp = Blueprint("promotions", __name__, url_prefix="/promotions")


def promotion_json(tx) -> dict:
    return {
        "id": tx.id,
        "supplier_id": tx.supplier_id,
        "service_type": tx.service_type,
        "service_id": tx.service_id,
        "promotion_plan": tx.promotion_plan,
        "priority_value": tx.priority_value,
        "amount": tx.amount,
        "start_date": tx.start_date.isoformat(),
        "end_date": tx.end_date.isoformat(),
        "status": tx.status,
        "payment_method": tx.payment_method,
        "transaction_ref": tx.transaction_ref,
        "paid_amount": tx.paid_amount,
        "paid_at": tx.paid_at.isoformat() if tx.paid_at else None,
        "created_at": tx.created_at.isoformat(),
    }


def _owned_promotion(transaction_id: int):
    tx = promo_service.get_promotion(transaction_id)
    if tx.supplier_id != g.user.id and not has_role("ADMIN"):
        raise Forbidden("Not your promotion")
    return tx


@promotions_bp.get("/plans")
def plans():
    return success_response("Promotion plans", promo_service.get_available_plans())


@promotions_bp.post("")
@require_roles("SUPPLIER")
def create_promotion():
    data = request.get_json(silent=True) or {}
    tx = promo_service.create_promotion_transaction(
        g.user.id,
        (data.get("service_type") or "").strip().lower(),
        data.get("service_id"),
        (data.get("promotion_plan") or "").strip().lower(),
    )
    log_event("PROMOTION_CREATE", user_id=g.user.id, entity="promotion", entity_id=tx.id,
              metadata={"plan": tx.promotion_plan})
    return success_response("Promotion created", promotion_json(tx), 201)


@promotions_bp.get("/me")
@require_roles("SUPPLIER")
def my_promotions():
    rows = promo_service.get_supplier_promotions(g.user.id, request.args.get("status"))
    return success_response("Promotions fetched", [promotion_json(tx) for tx in rows])


@promotions_bp.get("/<int:transaction_id>")
@require_roles("SUPPLIER")
def get_promotion(transaction_id: int):
    return success_response("Promotion fetched", promotion_json(_owned_promotion(transaction_id)))


@promotions_bp.post("/<int:transaction_id>/payment")
@require_roles("SUPPLIER")
def record_payment(transaction_id: int):
    _owned_promotion(transaction_id)
    data = request.get_json(silent=True) or {}
    tx = promo_service.process_promotion_payment(transaction_id, {
        "payment_method": data.get("payment_method"),
        "transaction_id": data.get("transaction_id"),
    })
    log_event("PROMOTION_PAID", user_id=g.user.id, entity="promotion", entity_id=tx.id,
              metadata={"transaction_ref": tx.transaction_ref})
    return success_response("Promotion activated", promotion_json(tx))


@promotions_bp.post("/<int:transaction_id>/cancel")
@require_roles("SUPPLIER")
def cancel(transaction_id: int):
    tx = promo_service.cancel_promotion(transaction_id, g.user.id)
    log_event("PROMOTION_CANCEL", user_id=g.user.id, entity="promotion", entity_id=tx.id)
    return success_response("Promotion cancelled", promotion_json(tx))


@promotions_bp.get("/boost/<service_type>/<int:service_id>")
def boost(service_type: str, service_id: int):
    ref = promo_service.service_ref(service_type.lower(), service_id)
    value = promo_service.ranking_boost_for(ref.kind, ref.id)
    return success_response("Ranking boost", {
        "service_type": ref.kind,
        "service_id": ref.id,
        "priority_value": value,
    })
