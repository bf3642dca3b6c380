# app/services/payments.py
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

import stripe
from flask import Flask, current_app

from app.config.company import checkout_product_name
from app.extensions import db
from app.models import CustomerLink, Payment, Quote, QuoteAcceptance, utcnow_naive

from .customer_links import public_base_url

# Checkout replaces this placeholder with the real session id on redirect.
CHECKOUT_SESSION_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


class PaymentProviderUnavailable(RuntimeError):
    """Stripe is not configured for this deployment."""


# =========================================================
# Setup
# =========================================================
def init_stripe(app: Flask) -> None:
    secret_key = app.config.get("STRIPE_SECRET_KEY")
    stripe.api_key = secret_key or None


def stripe_active() -> bool:
    return bool(current_app.config.get("STRIPE_SECRET_KEY"))


def to_cents(amount) -> int:
    value = Decimal(str(amount or 0)) * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def payment_type_for(payment_option: str) -> str:
    return "deposit" if payment_option == "pay_deposit" else "full"


# =========================================================
# Checkout
# =========================================================
def create_checkout_session(
    *,
    quote: Quote,
    link: CustomerLink,
    acceptance: QuoteAcceptance,
    amount: float,
    payment_type: str,
    customer_email: str,
):
    """
    Hosted Checkout for one quote payment.

    Raises PaymentProviderUnavailable without a secret key; Stripe errors
    propagate to the caller.
    """
    if not stripe_active():
        raise PaymentProviderUnavailable("Stripe secret key is not configured")

    base = public_base_url()
    currency = (current_app.config.get("STRIPE_CURRENCY") or "usd").lower()

    return stripe.checkout.Session.create(
        payment_method_types=["card"],
        mode="payment",
        line_items=[
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {
                        "name": checkout_product_name(quote.quote_number),
                        "description": "Deposit payment" if payment_type == "deposit" else "Full payment",
                    },
                    "unit_amount": to_cents(amount),
                },
                "quantity": 1,
            }
        ],
        success_url=f"{base}/c/{link.token}/payment-success?session_id={CHECKOUT_SESSION_PLACEHOLDER}",
        cancel_url=f"{base}/c/{link.token}",
        customer_email=customer_email,
        metadata={
            "quote_id": str(quote.id),
            "quote_number": quote.quote_number,
            "customer_link_id": str(link.id),
            "acceptance_id": str(acceptance.id),
            "payment_type": payment_type,
        },
    )


def record_pending_payment(
    *,
    session,
    quote: Quote,
    link: CustomerLink,
    acceptance: QuoteAcceptance,
    amount: float,
    payment_type: str,
    customer_email: str,
    customer_name: str,
) -> Payment:
    payment = Payment(
        team_id=link.team_id,
        quote_id=quote.id,
        customer_link_id=link.id,
        quote_acceptance_id=acceptance.id,
        stripe_checkout_session_id=session["id"],
        amount=amount,
        payment_type=payment_type,
        status="pending",
        customer_email=customer_email,
        customer_name=customer_name,
    )
    db.session.add(payment)
    return payment


# =========================================================
# Webhook reconciliation
# =========================================================
def _handle_checkout_completed(session) -> None:
    """
    Settle the pending payment opened for this Checkout session.

    The quote is only moved through that payment row; session metadata
    alone never marks a quote paid.
    """
    session_id = session.get("id")
    payment = Payment.query.filter(
        Payment.stripe_checkout_session_id == session_id,
        Payment.status == "pending",
    ).first()
    if payment is None:
        current_app.logger.warning("Checkout session %s has no pending payment record", session_id)
        return

    now = utcnow_naive()
    payment.status = "succeeded"
    payment.stripe_payment_intent_id = session.get("payment_intent")
    payment.paid_at = now

    quote = db.session.get(Quote, payment.quote_id) if payment.quote_id else None
    if quote is None:
        return

    if payment.payment_type == "deposit":
        quote.deposit_paid = True
        quote.deposit_paid_at = now
        quote.payment_status = "deposit_paid"
    else:
        quote.status = "paid"
        quote.payment_status = "paid"


def _handle_payment_succeeded(intent) -> None:
    payment = Payment.query.filter(Payment.stripe_payment_intent_id == intent.get("id")).first()
    if payment is None:
        return

    # latest_charge is an id unless the event was expanded
    charge = intent.get("latest_charge")
    if isinstance(charge, dict):
        payment.stripe_charge_id = charge.get("id")
        payment.receipt_url = charge.get("receipt_url") or payment.receipt_url
    elif isinstance(charge, str):
        payment.stripe_charge_id = charge

    payment.status = "succeeded"
    if payment.paid_at is None:
        payment.paid_at = utcnow_naive()


def _handle_payment_failed(intent) -> None:
    payment = Payment.query.filter(Payment.stripe_payment_intent_id == intent.get("id")).first()
    if payment is None:
        return

    last_error = intent.get("last_payment_error") or {}
    payment.status = "failed"
    payment.failure_reason = last_error.get("message") or "Payment failed"
    payment.failed_at = utcnow_naive()


def _handle_refund(charge) -> None:
    payment = Payment.query.filter(Payment.stripe_charge_id == charge.get("id")).first()
    if payment is None and charge.get("payment_intent"):
        payment = Payment.query.filter(
            Payment.stripe_payment_intent_id == charge.get("payment_intent")
        ).first()
    if payment is None:
        current_app.logger.warning("Refund for unknown charge %s", charge.get("id"))
        return

    full_refund = bool(charge.get("refunded"))
    payment.stripe_charge_id = charge.get("id")
    payment.status = "refunded" if full_refund else "partially_refunded"
    payment.refund_amount = (charge.get("amount_refunded") or 0) / 100
    payment.refunded_at = utcnow_naive()

    if full_refund and payment.quote_id:
        quote = db.session.get(Quote, payment.quote_id)
        if quote is not None:
            quote.payment_status = "refunded"


_EVENT_HANDLERS = {
    "checkout.session.completed": _handle_checkout_completed,
    "payment_intent.succeeded": _handle_payment_succeeded,
    "payment_intent.payment_failed": _handle_payment_failed,
    "charge.refunded": _handle_refund,
}


def handle_webhook_event(event) -> str | None:
    """
    Apply a Stripe event to local payment/quote rows (caller commits).
    Returns the event type when handled, None when ignored.
    """
    event_type = event.get("type")
    handler = _EVENT_HANDLERS.get(event_type)
    if handler is None:
        current_app.logger.info("Unhandled Stripe event type: %s", event_type)
        return None

    obj = (event.get("data") or {}).get("object") or {}
    current_app.logger.info("Stripe event %s for %s", event_type, obj.get("id"))
    handler(obj)
    return event_type
