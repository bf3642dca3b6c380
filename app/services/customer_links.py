# app/services/customer_links.py
from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta

from flask import current_app
from werkzeug.exceptions import BadRequest, NotFound

from app.extensions import db
from app.models import (
    LINK_TYPES,
    CustomerLink,
    CustomerLinkAccessLog,
    Job,
    Quote,
    User,
    utcnow_naive,
)
from app.utils.client import text_field

from .link_validity import LinkValidity

DEFAULT_REVOKE_REASON = "Revoked by admin"
REVOKE_REASON_MAXLEN = 255

# Upper bound for expires_in_days / extends_days (ten years)
MAX_LINK_DAYS = 3650
MAX_LINK_USES = 100_000


# =========================================================
# Helpers
# =========================================================
def generate_link_token() -> str:
    """URL-safe, unguessable token (~43 chars)."""
    return secrets.token_urlsafe(32)


def default_link_days() -> int:
    return int(current_app.config.get("CUSTOMER_LINK_DEFAULT_DAYS") or 30)


def public_base_url() -> str:
    return (current_app.config.get("PUBLIC_BASE_URL") or "").strip().rstrip("/")


def _parse_uuid(value, field: str) -> uuid.UUID | None:
    if value in (None, ""):
        return None
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise BadRequest(f"Invalid {field}")


def _parse_positive_int(value, field: str, maximum: int | None = None) -> int | None:
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        raise BadRequest(f"{field} must be a positive integer")
    try:
        n = int(value)
    except (TypeError, ValueError, OverflowError):
        raise BadRequest(f"{field} must be a positive integer")
    if n <= 0:
        raise BadRequest(f"{field} must be a positive integer")
    if maximum is not None and n > maximum:
        raise BadRequest(f"{field} cannot exceed {maximum}")
    return n


# =========================================================
# Token store
# =========================================================
def get_link_by_token(token: str) -> CustomerLink | None:
    token = (token or "").strip()
    if not token:
        return None
    return CustomerLink.query.filter(CustomerLink.token == token).first()


def get_link_or_404(token: str) -> CustomerLink:
    link = get_link_by_token(token)
    if link is None:
        raise NotFound("Link not found")
    return link


def list_links(
    staff: User,
    *,
    quote_id: str | None = None,
    job_id: str | None = None,
    status: str | None = None,
) -> list[CustomerLink]:
    qry = CustomerLink.query

    if staff.team_id is not None:
        qry = qry.filter(CustomerLink.team_id == staff.team_id)

    quote_uuid = _parse_uuid(quote_id, "quote_id")
    if quote_uuid:
        qry = qry.filter(CustomerLink.quote_id == quote_uuid)

    job_uuid = _parse_uuid(job_id, "job_id")
    if job_uuid:
        qry = qry.filter(CustomerLink.job_id == job_uuid)

    if status:
        qry = qry.filter(CustomerLink.status == status)

    return qry.order_by(CustomerLink.created_at.desc(), CustomerLink.id).all()


def create_link(staff: User, payload: dict, now: datetime | None = None) -> CustomerLink:
    """
    Issue a new link for a quote or a job.

    ``expires_in_days`` defaults to CUSTOMER_LINK_DEFAULT_DAYS; an explicit
    0/null means the link never expires.
    """
    now = now or utcnow_naive()

    customer_email = text_field(payload, "customer_email", maxlen=255).lower()
    if not customer_email:
        raise BadRequest("Customer email is required")

    quote_uuid = _parse_uuid(payload.get("quote_id"), "quote_id")
    job_uuid = _parse_uuid(payload.get("job_id"), "job_id")
    if not quote_uuid and not job_uuid:
        raise BadRequest("Either quote_id or job_id is required")
    if quote_uuid and job_uuid:
        raise BadRequest("A link can target a quote or a job, not both")

    link_type = text_field(payload, "link_type") or "quote_approval"
    if link_type not in LINK_TYPES:
        raise BadRequest("Invalid link_type")

    if quote_uuid and db.session.get(Quote, quote_uuid) is None:
        raise NotFound("Quote not found")
    if job_uuid and db.session.get(Job, job_uuid) is None:
        raise NotFound("Job not found")

    if "expires_in_days" in payload:
        days = payload.get("expires_in_days")
        days = _parse_positive_int(days, "expires_in_days", MAX_LINK_DAYS) if days else None
    else:
        days = default_link_days()

    link = CustomerLink(
        token=generate_link_token(),
        link_type=link_type,
        status="active",
        customer_name=text_field(payload, "customer_name", maxlen=160) or None,
        customer_email=customer_email,
        customer_phone=text_field(payload, "customer_phone", maxlen=30) or None,
        quote_id=quote_uuid,
        job_id=job_uuid,
        expires_at=(now + timedelta(days=days)) if days else None,
        max_uses=_parse_positive_int(payload.get("max_uses"), "max_uses", MAX_LINK_USES),
        use_count=0,
        created_by=staff.id,
        team_id=staff.team_id,
    )
    db.session.add(link)
    return link


# =========================================================
# Public view
# =========================================================
def public_payload(link: CustomerLink, validity: LinkValidity) -> dict:
    """Public-safe subset: no revoke metadata, staff ids or audit trail."""
    return {
        "token": link.token,
        "link_type": link.link_type,
        "customer_name": link.customer_name,
        "customer_email": link.customer_email,
        "quote": link.quote.snapshot() if link.quote else None,
        "job": link.job.snapshot() if link.job else None,
        "is_valid": validity.valid,
    }


# =========================================================
# Access recorder
# =========================================================
def record_access(
    link: CustomerLink,
    action: str,
    *,
    ip_address: str,
    user_agent: str,
    now: datetime | None = None,
) -> CustomerLinkAccessLog:
    now = now or utcnow_naive()

    entry = CustomerLinkAccessLog(
        customer_link_id=link.id,
        ip_address=ip_address,
        user_agent=user_agent,
        action=action,
        created_at=now,
    )
    db.session.add(entry)

    if action == "view":
        link.last_accessed_at = now
        # SQL-side increment so concurrent views are not lost
        link.use_count = CustomerLink.use_count + 1

    return entry


# =========================================================
# Staff actions
# =========================================================
def revoke_link(link: CustomerLink, staff: User, reason: str | None = None, now: datetime | None = None) -> None:
    """Revoking an already revoked link re-stamps the metadata."""
    now = now or utcnow_naive()
    reason = (reason or "").strip()[:REVOKE_REASON_MAXLEN]

    link.status = "revoked"
    link.revoked_at = now
    link.revoked_by = staff.id
    link.revoke_reason = reason or DEFAULT_REVOKE_REASON


def extend_link(link: CustomerLink, days=None, now: datetime | None = None) -> tuple[datetime, int]:
    """Push expiry out from the current expiry (or now) and mark active."""
    now = now or utcnow_naive()
    days = _parse_positive_int(days, "extends_days", MAX_LINK_DAYS) if days else default_link_days()

    base = link.expires_at or now
    try:
        new_expiry = base + timedelta(days=days)
    except OverflowError:
        raise BadRequest("extends_days pushes the expiry out of range")

    link.expires_at = new_expiry
    link.status = "active"
    return new_expiry, days


def reactivate_link(link: CustomerLink, now: datetime | None = None) -> datetime:
    if link.status not in ("revoked", "expired"):
        raise BadRequest("Link is already active")

    now = now or utcnow_naive()
    new_expiry = now + timedelta(days=default_link_days())

    link.status = "active"
    link.expires_at = new_expiry
    link.revoked_at = None
    link.revoked_by = None
    link.revoke_reason = None
    return new_expiry


def delete_link(link: CustomerLink) -> None:
    db.session.delete(link)
