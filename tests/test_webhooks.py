import hashlib
import hmac
import json
import time

from app.extensions import db
from app.models import Payment, Quote

from conftest import WEBHOOK_SECRET, make_link, make_payment, make_quote


def _signature(payload, secret=WEBHOOK_SECRET, timestamp=None):
    timestamp = timestamp or int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _post_raw(client, payload, signature=None):
    headers = {"Stripe-Signature": signature} if signature is not None else {}
    return client.post(
        "/api/webhooks/stripe",
        data=payload,
        content_type="application/json",
        headers=headers,
    )


def _post_event(client, event):
    payload = json.dumps(event)
    return _post_raw(client, payload, _signature(payload))


def _event(event_type, obj):
    return {"id": "evt_test", "type": event_type, "data": {"object": obj}}


def _payment(app, payment_id):
    with app.app_context():
        payment = db.session.get(Payment, payment_id)
        db.session.expunge(payment)
        return payment


def _quote(app, quote_id):
    with app.app_context():
        quote = db.session.get(Quote, quote_id)
        db.session.expunge(quote)
        return quote


def test_checkout_completed_marks_deposit_paid(app, client):
    quote_id = make_quote(app, status="accepted")
    token = make_link(app, quote_id=quote_id)
    payment_id = make_payment(app, token, session_id="cs_test_dep")

    resp = _post_event(
        client,
        _event(
            "checkout.session.completed",
            {
                "id": "cs_test_dep",
                "payment_intent": "pi_123",
                "metadata": {"quote_id": str(quote_id), "payment_type": "deposit"},
            },
        ),
    )

    assert resp.status_code == 200
    assert resp.get_json() == {"received": True}

    payment = _payment(app, payment_id)
    assert payment.status == "succeeded"
    assert payment.stripe_payment_intent_id == "pi_123"
    assert payment.paid_at is not None

    quote = _quote(app, quote_id)
    assert quote.deposit_paid is True
    assert quote.deposit_paid_at is not None
    assert quote.payment_status == "deposit_paid"
    assert quote.status == "accepted"


def test_checkout_completed_full_payment_marks_quote_paid(app, client):
    quote_id = make_quote(app, status="accepted")
    token = make_link(app, quote_id=quote_id)
    make_payment(app, token, session_id="cs_test_full", payment_type="full", amount=2000.0)

    _post_event(
        client,
        _event(
            "checkout.session.completed",
            {
                "id": "cs_test_full",
                "payment_intent": "pi_full",
                "metadata": {"quote_id": str(quote_id), "payment_type": "full"},
            },
        ),
    )

    quote = _quote(app, quote_id)
    assert quote.status == "paid"
    assert quote.payment_status == "paid"


def test_payment_intent_succeeded_records_charge_and_receipt(app, client):
    token = make_link(app, quote_id=make_quote(app, status="accepted"))
    payment_id = make_payment(app, token, stripe_payment_intent_id="pi_ok")

    _post_event(
        client,
        _event(
            "payment_intent.succeeded",
            {
                "id": "pi_ok",
                "latest_charge": {"id": "ch_ok", "receipt_url": "https://pay.stripe.com/receipts/ch_ok"},
            },
        ),
    )

    payment = _payment(app, payment_id)
    assert payment.status == "succeeded"
    assert payment.stripe_charge_id == "ch_ok"
    assert payment.receipt_url == "https://pay.stripe.com/receipts/ch_ok"
    assert payment.paid_at is not None


def test_payment_failed_records_reason(app, client):
    token = make_link(app, quote_id=make_quote(app, status="accepted"))
    payment_id = make_payment(app, token, stripe_payment_intent_id="pi_bad")

    _post_event(
        client,
        _event(
            "payment_intent.payment_failed",
            {"id": "pi_bad", "last_payment_error": {"message": "Your card was declined."}},
        ),
    )

    payment = _payment(app, payment_id)
    assert payment.status == "failed"
    assert payment.failure_reason == "Your card was declined."
    assert payment.failed_at is not None


def test_full_refund_marks_quote_refunded(app, client):
    quote_id = make_quote(app, status="paid")
    token = make_link(app, quote_id=quote_id)
    payment_id = make_payment(
        app,
        token,
        status="succeeded",
        stripe_payment_intent_id="pi_r",
        stripe_charge_id="ch_r",
        payment_type="full",
        amount=2000.0,
    )

    _post_event(
        client,
        _event("charge.refunded", {"id": "ch_r", "payment_intent": "pi_r", "refunded": True, "amount_refunded": 200000}),
    )

    payment = _payment(app, payment_id)
    assert payment.status == "refunded"
    assert payment.refund_amount == 2000.0
    assert payment.refunded_at is not None
    assert _quote(app, quote_id).payment_status == "refunded"


def test_partial_refund_found_by_payment_intent(app, client):
    quote_id = make_quote(app, status="paid")
    token = make_link(app, quote_id=quote_id)
    payment_id = make_payment(app, token, status="succeeded", stripe_payment_intent_id="pi_p")

    _post_event(
        client,
        _event("charge.refunded", {"id": "ch_p", "payment_intent": "pi_p", "refunded": False, "amount_refunded": 2500}),
    )

    payment = _payment(app, payment_id)
    assert payment.status == "partially_refunded"
    assert payment.stripe_charge_id == "ch_p"
    assert payment.refund_amount == 25.0
    assert _quote(app, quote_id).payment_status == "unpaid"


def test_unhandled_event_is_acknowledged(client):
    resp = _post_event(client, _event("customer.created", {"id": "cus_1"}))
    assert resp.status_code == 200
    assert resp.get_json() == {"received": True}


def test_malformed_body_is_rejected(client):
    resp = _post_raw(client, "not json", _signature("not json"))
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid payload"


def test_bad_signature_is_rejected(client):
    payload = json.dumps(_event("customer.created", {"id": "cus_1"}))

    resp = _post_raw(client, payload, "t=1,v1=deadbeef")

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid signature"


def test_signature_from_another_secret_is_rejected(client):
    payload = json.dumps(_event("customer.created", {"id": "cus_1"}))

    resp = _post_raw(client, payload, _signature(payload, secret="whsec_other"))

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid signature"


def test_unsigned_event_cannot_mark_quote_paid(app, client):
    quote_id = make_quote(app, status="accepted")
    token = make_link(app, quote_id=quote_id)
    payment_id = make_payment(app, token, session_id="cs_unsigned", payment_type="full", amount=2000.0)
    payload = json.dumps(
        _event(
            "checkout.session.completed",
            {"id": "cs_unsigned", "metadata": {"quote_id": str(quote_id), "payment_type": "full"}},
        )
    )

    resp = _post_raw(client, payload)

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid signature"
    assert _payment(app, payment_id).status == "pending"
    quote = _quote(app, quote_id)
    assert quote.status == "accepted"
    assert quote.payment_status == "unpaid"


def test_events_are_refused_without_a_webhook_secret(app, client):
    app.config["STRIPE_WEBHOOK_SECRET"] = None
    quote_id = make_quote(app, status="accepted")
    payload = json.dumps(
        _event(
            "checkout.session.completed",
            {"id": "cs_any", "metadata": {"quote_id": str(quote_id), "payment_type": "full"}},
        )
    )

    resp = _post_raw(client, payload)

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid signature"
    assert _quote(app, quote_id).status == "accepted"


def test_checkout_completed_without_pending_payment_leaves_quote_alone(app, client):
    quote_id = make_quote(app, status="sent")

    resp = _post_event(
        client,
        _event(
            "checkout.session.completed",
            {
                "id": "cs_unknown",
                "payment_intent": "pi_unknown",
                "metadata": {"quote_id": str(quote_id), "payment_type": "full"},
            },
        ),
    )

    assert resp.status_code == 200
    quote = _quote(app, quote_id)
    assert quote.status == "sent"
    assert quote.payment_status == "unpaid"
    assert quote.deposit_paid is False


def test_checkout_completed_ignores_metadata_for_payment_type(app, client):
    quote_id = make_quote(app, status="accepted")
    token = make_link(app, quote_id=quote_id)
    make_payment(app, token, session_id="cs_dep_only", payment_type="deposit")

    _post_event(
        client,
        _event(
            "checkout.session.completed",
            {
                "id": "cs_dep_only",
                "payment_intent": "pi_dep_only",
                "metadata": {"quote_id": str(quote_id), "payment_type": "full"},
            },
        ),
    )

    quote = _quote(app, quote_id)
    assert quote.status == "accepted"
    assert quote.payment_status == "deposit_paid"


def test_replayed_checkout_completion_does_not_restamp_payment(app, client):
    quote_id = make_quote(app, status="accepted")
    token = make_link(app, quote_id=quote_id)
    payment_id = make_payment(app, token, session_id="cs_once")
    event = _event("checkout.session.completed", {"id": "cs_once", "payment_intent": "pi_once"})

    _post_event(client, event)
    first_paid_at = _payment(app, payment_id).paid_at
    resp = _post_event(client, event)

    assert resp.status_code == 200
    assert _payment(app, payment_id).paid_at == first_paid_at
