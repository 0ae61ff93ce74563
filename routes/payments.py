import logging

import stripe
from flask import Blueprint, current_app, g

from routes.promotions import promotion_json
from security.rbac import require_roles
from services import promotions as promo_service
from utils.audit import log_event
from utils.errors import Forbidden, InvalidState
from utils.responses import success_response, error_response

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__, url_prefix="/promotions")


@payments_bp.post("/<int:transaction_id>/checkout")
@require_roles("SUPPLIER")
def start_checkout(transaction_id: int):
    stripe.api_key = current_app.config.get("STRIPE_SECRET_KEY")
    success_url = current_app.config.get("STRIPE_SUCCESS_URL")
    cancel_url = current_app.config.get("STRIPE_CANCEL_URL")
    if not stripe.api_key:
        return error_response("Stripe secret key missing (STRIPE_SECRET_KEY)", error="payment_unavailable",
                              status_code=500)
    if not success_url or not cancel_url:
        return error_response("Stripe success/cancel URLs not configured", error="payment_unavailable",
                              status_code=500)

    tx = promo_service.get_promotion(transaction_id)
    if tx.supplier_id != g.user.id:
        raise Forbidden("Not your promotion")
    if tx.status != "PENDING":
        raise InvalidState(f"Promotion is already {tx.status.lower()}")

    currency = current_app.config.get("PROMOTION_CURRENCY", "inr")
    session = stripe.checkout.Session.create(
        mode="payment",
        line_items=[{
            "price_data": {
                "currency": currency,
                "product_data": {"name": f"{tx.promotion_plan.capitalize()} promotion ({tx.service_type} #{tx.service_id})"},
                # Stripe expects the smallest currency unit
                "unit_amount": int(tx.amount) * 100,
            },
            "quantity": 1,
        }],
        success_url=success_url,
        cancel_url=cancel_url,
        metadata={
            "promotion_id": str(tx.id),
            "supplier_id": str(g.user.id),
        },
    )

    promo_service.attach_checkout_session(tx.id, session["id"])
    log_event("PAYMENT_SESSION_CREATED", user_id=g.user.id, entity="promotion", entity_id=tx.id,
              metadata={"stripe_session_id": session["id"]})
    logger.info("Checkout session %s created for promotion %s", session["id"], tx.id)
    return success_response("Checkout session created", {
        "checkout_url": session["url"],
        "promotion": promotion_json(tx),
    })
