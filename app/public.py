# app/public.py
from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, request

from .extensions import limiter
from .models import CustomerLink, Payment


public = Blueprint("public", __name__)


def _public_rate_limit() -> str:
    return current_app.config.get("PUBLIC_LINK_RATE_LIMIT") or "60 per minute"


# =========================================================
# Checkout return page
# GET /c/<token>/payment-success?session_id=cs_...
# =========================================================
@public.route("/c/<token>/payment-success", methods=["GET"])
@limiter.limit(_public_rate_limit)
def payment_success(token: str):
    token = (token or "").strip()
    session_id = (request.args.get("session_id") or "").strip()
    if not token or not session_id:
        abort(404, description="Payment not found")

    # Session id alone is not enough: it must belong to this link
    payment = (
        Payment.query.join(CustomerLink, Payment.customer_link_id == CustomerLink.id)
        .filter(
            CustomerLink.token == token,
            Payment.stripe_checkout_session_id == session_id,
        )
        .first()
    )
    if payment is None:
        abort(404, description="Payment not found")

    # The webhook may not have landed yet; "pending" is a normal answer here.
    return jsonify({"success": True, "data": payment.to_dict()}), 200
