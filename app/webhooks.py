# app/webhooks.py
from __future__ import annotations

import json

import stripe
from flask import Blueprint, abort, current_app, jsonify, request

from .extensions import db
from .services.payments import handle_webhook_event

webhooks = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


def _parse_event(payload: bytes) -> dict:
    try:
        event = json.loads(payload)
    except ValueError:
        abort(400, description="Invalid payload")
    if not isinstance(event, dict):
        abort(400, description="Invalid payload")
    return event


@webhooks.route("/stripe", methods=["POST"])
def stripe_webhook():
    payload = request.get_data()
    signature = request.headers.get("Stripe-Signature", "")
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")

    # Unsigned events are never trusted, not even locally
    if not secret:
        current_app.logger.error("STRIPE_WEBHOOK_SECRET is not configured; rejecting webhook")
        abort(400, description="Invalid signature")

    try:
        stripe.Webhook.construct_event(payload, signature, secret)
    except stripe.SignatureVerificationError:
        current_app.logger.warning("Stripe webhook signature verification failed")
        abort(400, description="Invalid signature")
    except ValueError:
        abort(400, description="Invalid payload")

    # Handlers read the verified body as plain dicts
    event = _parse_event(payload)

    try:
        handle_webhook_event(event)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Stripe webhook handler failed")
        abort(500, description="Webhook handler failed")

    return jsonify({"received": True}), 200
