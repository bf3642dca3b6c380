"""initial schema: teams, staff, quotes, jobs, customer links, acceptances, payments

Revision ID: a1c4e7f20b31
Revises:
Create Date: 2026-10-19 09:12:44.120391

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "a1c4e7f20b31"
down_revision = None
branch_labels = None
depends_on = None


JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade():
    op.create_table(
        "team",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=160), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=30), nullable=False),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("team.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email", name="user_email_key"),
        sa.CheckConstraint("role in ('admin','manager','technician')", name="ck_user_role"),
    )
    op.create_index("ix_user_team_id", "user", ["team_id"])

    op.create_table(
        "quote",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("team.id", ondelete="SET NULL"), nullable=True),
        sa.Column("quote_number", sa.String(length=40), nullable=False, unique=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("customer_name", sa.String(length=160), nullable=True),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("site_address", sa.String(length=255), nullable=True),
        sa.Column("template_name", sa.String(length=120), nullable=True),
        sa.Column("line_items", JSONType, nullable=True),
        sa.Column("subtotal", sa.Float(), nullable=False),
        sa.Column("tax", sa.Float(), nullable=False),
        sa.Column("total", sa.Float(), nullable=False),
        sa.Column("deposit_amount", sa.Float(), nullable=True),
        sa.Column("valid_until", sa.Date(), nullable=True),
        sa.Column("payment_status", sa.String(length=20), nullable=False),
        sa.Column("deposit_paid", sa.Boolean(), nullable=False),
        sa.Column("deposit_paid_at", sa.DateTime(), nullable=True),
        sa.Column("accepted_at", sa.DateTime(), nullable=True),
        sa.Column("accepted_by", sa.String(length=160), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "status in ('draft','sent','viewed','accepted','rejected','paid','expired')",
            name="ck_quote_status",
        ),
    )
    op.create_index("ix_quote_team_id", "quote", ["team_id"])
    op.create_index("ix_quote_status", "quote", ["status"])

    op.create_table(
        "job",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("team.id", ondelete="SET NULL"), nullable=True),
        sa.Column("job_number", sa.String(length=40), nullable=False, unique=True),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("job_type", sa.String(length=60), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("scheduled_time_start", sa.String(length=10), nullable=True),
        sa.Column("customer_name", sa.String(length=160), nullable=True),
        sa.Column("site_address", sa.String(length=255), nullable=True),
        sa.Column("site_city", sa.String(length=120), nullable=True),
        sa.Column("site_state", sa.String(length=40), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_job_team_id", "job", ["team_id"])

    op.create_table(
        "customer_link",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("token", sa.String(length=128), nullable=False),
        sa.Column("link_type", sa.String(length=30), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("customer_name", sa.String(length=160), nullable=True),
        sa.Column("customer_email", sa.String(length=255), nullable=False),
        sa.Column("customer_phone", sa.String(length=30), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("use_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_accessed_at", sa.DateTime(), nullable=True),
        sa.Column("quote_id", sa.Uuid(), sa.ForeignKey("quote.id", ondelete="CASCADE"), nullable=True),
        sa.Column("job_id", sa.Uuid(), sa.ForeignKey("job.id", ondelete="CASCADE"), nullable=True),
        sa.Column("revoked_at", sa.DateTime(), nullable=True),
        sa.Column("revoked_by", sa.Integer(), sa.ForeignKey("user.id", ondelete="SET NULL"), nullable=True),
        sa.Column("revoke_reason", sa.String(length=255), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("user.id", ondelete="SET NULL"), nullable=True),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("team.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("status in ('active','expired','revoked','used')", name="ck_customer_link_status"),
        sa.CheckConstraint(
            "link_type in ('quote_approval','job_status','payment','document_access','full_access')",
            name="ck_customer_link_type",
        ),
        sa.CheckConstraint("quote_id is null or job_id is null", name="ck_customer_link_single_target"),
    )
    op.create_index("ix_customer_link_token", "customer_link", ["token"], unique=True)
    op.create_index("ix_customer_link_status", "customer_link", ["status"])
    op.create_index("ix_customer_link_quote_id", "customer_link", ["quote_id"])
    op.create_index("ix_customer_link_job_id", "customer_link", ["job_id"])
    op.create_index("ix_customer_link_team_id", "customer_link", ["team_id"])

    op.create_table(
        "customer_link_access_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "customer_link_id",
            sa.Uuid(),
            sa.ForeignKey("customer_link.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=255), nullable=True),
        sa.Column("action", sa.String(length=30), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_customer_link_access_log_customer_link_id",
        "customer_link_access_log",
        ["customer_link_id"],
    )

    op.create_table(
        "quote_acceptance",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("quote_id", sa.Uuid(), sa.ForeignKey("quote.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "customer_link_id",
            sa.Uuid(),
            sa.ForeignKey("customer_link.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("accepted_by_name", sa.String(length=160), nullable=False),
        sa.Column("accepted_by_email", sa.String(length=255), nullable=False),
        sa.Column("accepted_by_ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=255), nullable=True),
        sa.Column("signature_type", sa.String(length=20), nullable=False),
        sa.Column("signature_data", sa.Text(), nullable=True),
        sa.Column("terms_accepted", sa.Boolean(), nullable=False),
        sa.Column("payment_option", sa.String(length=20), nullable=False),
        sa.Column("deposit_amount", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("terms_accepted", name="ck_quote_acceptance_terms"),
        sa.CheckConstraint(
            "payment_option in ('pay_later','pay_now','pay_deposit')",
            name="ck_quote_acceptance_payment_option",
        ),
        sa.CheckConstraint(
            "signature_type in ('typed','drawn')",
            name="ck_quote_acceptance_signature_type",
        ),
    )
    op.create_index("ix_quote_acceptance_quote_id", "quote_acceptance", ["quote_id"])
    op.create_index("ix_quote_acceptance_customer_link_id", "quote_acceptance", ["customer_link_id"])

    op.create_table(
        "payment",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("team.id", ondelete="SET NULL"), nullable=True),
        sa.Column("quote_id", sa.Uuid(), sa.ForeignKey("quote.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "customer_link_id",
            sa.Uuid(),
            sa.ForeignKey("customer_link.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "quote_acceptance_id",
            sa.Uuid(),
            sa.ForeignKey("quote_acceptance.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("stripe_checkout_session_id", sa.String(length=255), nullable=True, unique=True),
        sa.Column("stripe_payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_charge_id", sa.String(length=255), nullable=True),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("payment_type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("customer_name", sa.String(length=160), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("refund_amount", sa.Float(), nullable=True),
        sa.Column("receipt_url", sa.String(length=500), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("failed_at", sa.DateTime(), nullable=True),
        sa.Column("refunded_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("payment_type in ('deposit','full')", name="ck_payment_type"),
        sa.CheckConstraint(
            "status in ('pending','succeeded','failed','refunded','partially_refunded')",
            name="ck_payment_status",
        ),
    )
    op.create_index("ix_payment_team_id", "payment", ["team_id"])
    op.create_index("ix_payment_quote_id", "payment", ["quote_id"])
    op.create_index("ix_payment_customer_link_id", "payment", ["customer_link_id"])
    op.create_index("ix_payment_stripe_payment_intent_id", "payment", ["stripe_payment_intent_id"])
    op.create_index("ix_payment_stripe_charge_id", "payment", ["stripe_charge_id"])
    op.create_index("ix_payment_status", "payment", ["status"])


def downgrade():
    op.drop_table("payment")
    op.drop_table("quote_acceptance")
    op.drop_table("customer_link_access_log")
    op.drop_table("customer_link")
    op.drop_table("job")
    op.drop_table("quote")
    op.drop_table("user")
    op.drop_table("team")
