import logging

import stripe
from flask import Blueprint, request, current_app

from models import db
from models.promotion import PromotionTransaction
from services.promotions import process_promotion_payment
from utils.audit import log_event
from utils.errors import InvalidState
from utils.responses import success_response, error_response

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")


def _find_promotion(session):
    meta = session.get("metadata", {}) or {}
    promotion_id = meta.get("promotion_id")
    tx = None
    if promotion_id:
        tx = db.session.get(PromotionTransaction, int(promotion_id))
    if tx is None and session.get("id"):
        tx = PromotionTransaction.query.filter_by(stripe_session_id=session.get("id")).first()
    return tx


@webhook_bp.post("/stripe")
def stripe_webhook():
    endpoint_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    sig_header = request.headers.get("Stripe-Signature")
    payload = request.data

    if not endpoint_secret:
        return error_response("Webhook secret not configured", error="payment_unavailable", status_code=500)

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, endpoint_secret)
    except (ValueError, stripe.SignatureVerificationError):
        logger.warning("Rejected Stripe webhook with invalid signature")
        return error_response("Invalid webhook signature", error="invalid_signature", status_code=400)

    event_type = event.get("type")
    if event_type not in ("checkout.session.completed", "checkout.session.expired"):
        return success_response("Event ignored", {"received": True})

    session = event["data"]["object"]
    tx = _find_promotion(session)
    if tx is None:
        logger.warning("Stripe session %s does not match any promotion", session.get("id"))
        return success_response("Event ignored", {"received": True})

    if event_type == "checkout.session.completed":
        try:
            process_promotion_payment(tx.id, {
                "payment_method": "stripe",
                "transaction_id": session.get("payment_intent") or session.get("id"),
            })
        except InvalidState as err:
            # redelivered events land here once the promotion is already paid
            logger.info("Promotion %s not activated: %s", tx.id, err.message)
            return success_response("Event already processed", {"received": True})
        log_event("PROMOTION_PAID", entity="promotion", entity_id=tx.id,
                  metadata={"stripe_session_id": session.get("id")})
    else:
        log_event("PAYMENT_EXPIRED", entity="promotion", entity_id=tx.id,
                  metadata={"stripe_session_id": session.get("id")})

    return success_response("Event processed", {"received": True})
