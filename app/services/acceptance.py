# app/services/acceptance.py
"""
Quote approval through a customer link.

The signed consent, the quote status move and the "approve" audit row commit
together. The quote is claimed with a conditional UPDATE (only from sent or
viewed), so a second approval racing the first finds no row to update and is
rejected instead of writing a duplicate acceptance.

Checkout is started after that commit; the provider cannot be rolled back,
so any failure there leaves the approval in place and only drops the
checkout URL.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

import sqlalchemy as sa
import stripe
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import BadRequest, Forbidden, InternalServerError, NotFound

from app.extensions import db
from app.models import (
    PAYMENT_OPTIONS,
    QUOTE_ACCEPTABLE_STATUSES,
    Quote,
    QuoteAcceptance,
    utcnow_naive,
)

from .customer_links import get_link_by_token, record_access
from .link_validity import REASON_EXPIRED, reconcile_link_status
from .payments import (
    PaymentProviderUnavailable,
    create_checkout_session,
    payment_type_for,
    record_pending_payment,
)

ALREADY_PROCESSED = "This quote has already been processed"
NAME_MAXLEN = 160
EMAIL_MAXLEN = 255


@dataclass(frozen=True)
class AcceptanceResult:
    acceptance_id: uuid.UUID
    message: str
    checkout_url: str | None = None


def _persist_lazy_expiry(link) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not mark link %s expired", link.id)


def accept_quote(
    token: str,
    *,
    signature_name: str | None,
    signature_email: str | None,
    payment_option: str | None,
    ip_address: str,
    user_agent: str,
    now: datetime | None = None,
) -> AcceptanceResult:
    now = now or utcnow_naive()

    signature_name = (signature_name or "").strip()[:NAME_MAXLEN]
    signature_email = (signature_email or "").strip().lower()[:EMAIL_MAXLEN]
    if not signature_name or not signature_email:
        raise BadRequest("Name and email are required")

    payment_option = (payment_option or "pay_later").strip()
    if payment_option not in PAYMENT_OPTIONS:
        raise BadRequest("Invalid payment option")

    link = get_link_by_token(token)
    if link is None:
        raise NotFound("Invalid link")

    if reconcile_link_status(link, now):
        _persist_lazy_expiry(link)
        raise Forbidden(REASON_EXPIRED)

    if link.status != "active":
        raise Forbidden("This link is no longer active")

    quote = link.quote
    if quote is None:
        raise NotFound("Quote not found")

    if quote.status not in QUOTE_ACCEPTABLE_STATUSES:
        raise BadRequest(ALREADY_PROCESSED)

    deposit_amount = quote.deposit_amount or 0
    amount = deposit_amount if payment_option == "pay_deposit" else (quote.total or 0)

    # -----------------------------
    # Consent: one transaction
    # -----------------------------
    acceptance_id = uuid.uuid4()
    try:
        claimed = db.session.execute(
            sa.update(Quote)
            .where(Quote.id == quote.id, Quote.status.in_(QUOTE_ACCEPTABLE_STATUSES))
            .values(status="accepted", accepted_at=now, accepted_by=signature_name)
        )
        if claimed.rowcount != 1:
            db.session.rollback()
            raise BadRequest(ALREADY_PROCESSED)

        acceptance = QuoteAcceptance(
            id=acceptance_id,
            quote_id=quote.id,
            customer_link_id=link.id,
            accepted_by_name=signature_name,
            accepted_by_email=signature_email,
            accepted_by_ip=ip_address,
            user_agent=user_agent,
            signature_type="typed",
            signature_data=signature_name,
            terms_accepted=True,
            payment_option=payment_option,
            deposit_amount=deposit_amount if payment_option == "pay_deposit" else None,
            created_at=now,
        )
        db.session.add(acceptance)
        record_access(link, "approve", ip_address=ip_address, user_agent=user_agent, now=now)

        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Recording acceptance failed for link %s", link.id)
        raise InternalServerError("Failed to record acceptance")

    current_app.logger.info(
        "Quote %s accepted via link %s (%s)", quote.quote_number, link.id, payment_option
    )

    if payment_option == "pay_later" or amount <= 0:
        return AcceptanceResult(acceptance_id, "Quote approved successfully")

    # -----------------------------
    # Payment handoff (best effort)
    # -----------------------------
    payment_type = payment_type_for(payment_option)
    try:
        session = create_checkout_session(
            quote=quote,
            link=link,
            acceptance=acceptance,
            amount=amount,
            payment_type=payment_type,
            customer_email=signature_email,
        )
        record_pending_payment(
            session=session,
            quote=quote,
            link=link,
            acceptance=acceptance,
            amount=amount,
            payment_type=payment_type,
            customer_email=signature_email,
            customer_name=signature_name,
        )
        db.session.commit()
    except (PaymentProviderUnavailable, stripe.StripeError, SQLAlchemyError):
        db.session.rollback()
        current_app.logger.exception("Checkout unavailable for quote %s", quote.quote_number)
        return AcceptanceResult(acceptance_id, "Quote approved. Payment processing unavailable.")

    return AcceptanceResult(acceptance_id, "Quote approved", checkout_url=session["url"])
