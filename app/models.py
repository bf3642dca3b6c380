# app/models.py
from __future__ import annotations

import uuid
from datetime import date, datetime

import sqlalchemy as sa
from flask_login import UserMixin
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.mutable import MutableList

from .extensions import db


# Naive UTC everywhere: DB columns are "timestamp without time zone".
def utcnow_naive() -> datetime:
    return datetime.utcnow()


# jsonb on Postgres, plain JSON elsewhere (SQLite in tests).
JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


def _iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _str_or_none(value) -> str | None:
    return str(value) if value is not None else None


# =========================================================
# Constants
# =========================================================
STAFF_ROLES = {"admin", "manager"}
USER_ROLES = {"admin", "manager", "technician"}

LINK_TYPES = {"quote_approval", "job_status", "payment", "document_access", "full_access"}
LINK_STATUSES = {"active", "expired", "revoked", "used"}

QUOTE_STATUSES = {"draft", "sent", "viewed", "accepted", "rejected", "paid", "expired"}
QUOTE_ACCEPTABLE_STATUSES = ("sent", "viewed")

PAYMENT_OPTIONS = {"pay_later", "pay_now", "pay_deposit"}
PAYMENT_STATUSES = {"pending", "succeeded", "failed", "refunded", "partially_refunded"}


# =========================================================
# Team (tenant)
# =========================================================
class Team(db.Model):
    __tablename__ = "team"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    def __repr__(self) -> str:
        return f"<Team {self.id} {self.name}>"


# =========================================================
# User model (staff authentication + roles)
# =========================================================
class User(UserMixin, db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    # admin / manager / technician
    role = db.Column(db.String(30), nullable=False, default="technician")

    team_id = db.Column(db.Integer, db.ForeignKey("team.id", ondelete="SET NULL"), nullable=True, index=True)
    team = db.relationship("Team", foreign_keys=[team_id], lazy="joined")

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utcnow_naive,
        onupdate=utcnow_naive,
    )

    __table_args__ = (
        db.UniqueConstraint("email", name="user_email_key"),
        db.CheckConstraint(
            "role in ('admin','manager','technician')",
            name="ck_user_role",
        ),
    )

    @property
    def is_staff(self) -> bool:
        return (self.role or "") in STAFF_ROLES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "team_id": self.team_id,
        }

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email}>"


# =========================================================
# Quote
# =========================================================
class Quote(db.Model):
    __tablename__ = "quote"

    id = db.Column(sa.Uuid, primary_key=True, default=uuid.uuid4)

    team_id = db.Column(db.Integer, db.ForeignKey("team.id", ondelete="SET NULL"), nullable=True, index=True)

    quote_number = db.Column(db.String(40), unique=True, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="draft", index=True)

    customer_name = db.Column(db.String(160), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    site_address = db.Column(db.String(255), nullable=True)
    template_name = db.Column(db.String(120), nullable=True)

    line_items = db.Column(MutableList.as_mutable(JSONType), nullable=True)

    subtotal = db.Column(db.Float, default=0.0, nullable=False)
    tax = db.Column(db.Float, default=0.0, nullable=False)
    total = db.Column(db.Float, default=0.0, nullable=False)
    deposit_amount = db.Column(db.Float, nullable=True)

    valid_until = db.Column(db.Date, nullable=True)

    # unpaid / deposit_paid / paid / refunded
    payment_status = db.Column(db.String(20), nullable=False, default="unpaid")
    deposit_paid = db.Column(db.Boolean, nullable=False, default=False)
    deposit_paid_at = db.Column(db.DateTime, nullable=True)

    accepted_at = db.Column(db.DateTime, nullable=True)
    accepted_by = db.Column(db.String(160), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint(
            "status in ('draft','sent','viewed','accepted','rejected','paid','expired')",
            name="ck_quote_status",
        ),
    )

    def snapshot(self) -> dict:
        """Customer-facing view of the quote."""
        return {
            "id": str(self.id),
            "quote_number": self.quote_number,
            "status": self.status,
            "totals": {
                "subtotal": self.subtotal,
                "tax": self.tax,
                "total": self.total,
            },
            "line_items": list(self.line_items or []),
            "customer_name": self.customer_name,
            "site_address": self.site_address,
            "template_name": self.template_name,
            "valid_until": _iso(self.valid_until),
            "created_at": _iso(self.created_at),
            "accepted_at": _iso(self.accepted_at),
            "deposit_amount": self.deposit_amount,
            "payment_status": self.payment_status,
        }

    def __repr__(self) -> str:
        return f"<Quote {self.quote_number} {self.status}>"


# =========================================================
# Job
# =========================================================
class Job(db.Model):
    __tablename__ = "job"

    id = db.Column(sa.Uuid, primary_key=True, default=uuid.uuid4)

    team_id = db.Column(db.Integer, db.ForeignKey("team.id", ondelete="SET NULL"), nullable=True, index=True)

    job_number = db.Column(db.String(40), unique=True, nullable=False)
    status = db.Column(db.String(30), nullable=False, default="scheduled")
    job_type = db.Column(db.String(60), nullable=True)  # install, inspection, service...

    scheduled_date = db.Column(db.Date, nullable=True)
    scheduled_time_start = db.Column(db.String(10), nullable=True)

    customer_name = db.Column(db.String(160), nullable=True)
    site_address = db.Column(db.String(255), nullable=True)
    site_city = db.Column(db.String(120), nullable=True)
    site_state = db.Column(db.String(40), nullable=True)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    def snapshot(self) -> dict:
        return {
            "id": str(self.id),
            "job_number": self.job_number,
            "status": self.status,
            "job_type": self.job_type,
            "scheduled_date": _iso(self.scheduled_date),
            "scheduled_time_start": self.scheduled_time_start,
            "customer_name": self.customer_name,
            "site_address": self.site_address,
            "site_city": self.site_city,
            "site_state": self.site_state,
            "description": self.description,
        }

    def __repr__(self) -> str:
        return f"<Job {self.job_number} {self.status}>"


# =========================================================
# Customer links (tokenized portal access)
# =========================================================
class CustomerLink(db.Model):
    __tablename__ = "customer_link"

    id = db.Column(sa.Uuid, primary_key=True, default=uuid.uuid4)

    token = db.Column(db.String(128), nullable=False, unique=True, index=True)

    link_type = db.Column(db.String(30), nullable=False, default="quote_approval")
    status = db.Column(db.String(20), nullable=False, default="active", index=True)

    # Denormalized so the portal can render without joining the customer
    customer_name = db.Column(db.String(160), nullable=True)
    customer_email = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(30), nullable=True)

    expires_at = db.Column(db.DateTime, nullable=True)
    max_uses = db.Column(db.Integer, nullable=True)
    use_count = db.Column(db.Integer, nullable=False, default=0)
    last_accessed_at = db.Column(db.DateTime, nullable=True)

    quote_id = db.Column(sa.Uuid, db.ForeignKey("quote.id", ondelete="CASCADE"), nullable=True, index=True)
    quote = db.relationship("Quote", foreign_keys=[quote_id], lazy="joined")

    job_id = db.Column(sa.Uuid, db.ForeignKey("job.id", ondelete="CASCADE"), nullable=True, index=True)
    job = db.relationship("Job", foreign_keys=[job_id], lazy="joined")

    revoked_at = db.Column(db.DateTime, nullable=True)
    revoked_by = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    revoke_reason = db.Column(db.String(255), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    team_id = db.Column(db.Integer, db.ForeignKey("team.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utcnow_naive,
        onupdate=utcnow_naive,
    )

    access_logs = db.relationship(
        "CustomerLinkAccessLog",
        back_populates="customer_link",
        lazy="select",
        cascade="all, delete-orphan",
        order_by="CustomerLinkAccessLog.id",
    )

    __table_args__ = (
        db.CheckConstraint(
            "status in ('active','expired','revoked','used')",
            name="ck_customer_link_status",
        ),
        db.CheckConstraint(
            "link_type in ('quote_approval','job_status','payment','document_access','full_access')",
            name="ck_customer_link_type",
        ),
        db.CheckConstraint(
            "quote_id is null or job_id is null",
            name="ck_customer_link_single_target",
        ),
    )

    def portal_url(self, base_url: str) -> str:
        return f"{base_url.rstrip('/')}/c/{self.token}"

    def to_dict(self) -> dict:
        """Full staff view of the row."""
        return {
            "id": str(self.id),
            "token": self.token,
            "link_type": self.link_type,
            "status": self.status,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "expires_at": _iso(self.expires_at),
            "max_uses": self.max_uses,
            "use_count": self.use_count,
            "last_accessed_at": _iso(self.last_accessed_at),
            "quote_id": _str_or_none(self.quote_id),
            "job_id": _str_or_none(self.job_id),
            "quote": self.quote.snapshot() if self.quote else None,
            "job": self.job.snapshot() if self.job else None,
            "revoked_at": _iso(self.revoked_at),
            "revoked_by": self.revoked_by,
            "revoke_reason": self.revoke_reason,
            "created_by": self.created_by,
            "team_id": self.team_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<CustomerLink {self.id} {self.link_type} {self.status}>"


class CustomerLinkAccessLog(db.Model):
    """Append-only audit trail; one row per unauthenticated interaction."""

    __tablename__ = "customer_link_access_log"

    id = db.Column(db.Integer, primary_key=True)

    customer_link_id = db.Column(
        sa.Uuid,
        db.ForeignKey("customer_link.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_link = db.relationship("CustomerLink", back_populates="access_logs")

    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    action = db.Column(db.String(30), nullable=False)  # view|approve

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    def __repr__(self) -> str:
        return f"<CustomerLinkAccessLog {self.id} {self.action}>"


# =========================================================
# Quote acceptance (signed consent)
# =========================================================
class QuoteAcceptance(db.Model):
    __tablename__ = "quote_acceptance"

    id = db.Column(sa.Uuid, primary_key=True, default=uuid.uuid4)

    quote_id = db.Column(sa.Uuid, db.ForeignKey("quote.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_link_id = db.Column(
        sa.Uuid,
        db.ForeignKey("customer_link.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    accepted_by_name = db.Column(db.String(160), nullable=False)
    accepted_by_email = db.Column(db.String(255), nullable=False)
    accepted_by_ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    signature_type = db.Column(db.String(20), nullable=False, default="typed")  # typed|drawn
    signature_data = db.Column(db.Text, nullable=True)
    terms_accepted = db.Column(db.Boolean, nullable=False, default=True)

    payment_option = db.Column(db.String(20), nullable=False, default="pay_later")
    deposit_amount = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint("terms_accepted", name="ck_quote_acceptance_terms"),
        db.CheckConstraint(
            "payment_option in ('pay_later','pay_now','pay_deposit')",
            name="ck_quote_acceptance_payment_option",
        ),
        db.CheckConstraint(
            "signature_type in ('typed','drawn')",
            name="ck_quote_acceptance_signature_type",
        ),
    )

    def __repr__(self) -> str:
        return f"<QuoteAcceptance {self.id} {self.payment_option}>"


# =========================================================
# Payment (Stripe Checkout)
# =========================================================
class Payment(db.Model):
    __tablename__ = "payment"

    id = db.Column(sa.Uuid, primary_key=True, default=uuid.uuid4)

    team_id = db.Column(db.Integer, db.ForeignKey("team.id", ondelete="SET NULL"), nullable=True, index=True)

    quote_id = db.Column(sa.Uuid, db.ForeignKey("quote.id", ondelete="SET NULL"), nullable=True, index=True)
    customer_link_id = db.Column(
        sa.Uuid,
        db.ForeignKey("customer_link.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    quote_acceptance_id = db.Column(
        sa.Uuid,
        db.ForeignKey("quote_acceptance.id", ondelete="SET NULL"),
        nullable=True,
    )

    stripe_checkout_session_id = db.Column(db.String(255), unique=True, nullable=True)
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True, index=True)
    stripe_charge_id = db.Column(db.String(255), nullable=True, index=True)

    amount = db.Column(db.Float, nullable=False)
    payment_type = db.Column(db.String(20), nullable=False)  # deposit|full
    status = db.Column(db.String(30), nullable=False, default="pending", index=True)

    customer_email = db.Column(db.String(255), nullable=True)
    customer_name = db.Column(db.String(160), nullable=True)

    failure_reason = db.Column(db.Text, nullable=True)
    refund_amount = db.Column(db.Float, nullable=True)
    receipt_url = db.Column(db.String(500), nullable=True)

    paid_at = db.Column(db.DateTime, nullable=True)
    failed_at = db.Column(db.DateTime, nullable=True)
    refunded_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint(
            "payment_type in ('deposit','full')",
            name="ck_payment_type",
        ),
        db.CheckConstraint(
            "status in ('pending','succeeded','failed','refunded','partially_refunded')",
            name="ck_payment_status",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "quote_id": _str_or_none(self.quote_id),
            "amount": self.amount,
            "payment_type": self.payment_type,
            "status": self.status,
            "paid_at": _iso(self.paid_at),
            "receipt_url": self.receipt_url,
        }

    def __repr__(self) -> str:
        return f"<Payment {self.id} {self.payment_type} {self.status}>"
