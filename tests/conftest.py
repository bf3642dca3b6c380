import itertools
import uuid
from datetime import datetime, timedelta

import pytest

from app import create_app
from app.extensions import db
from app.models import CustomerLink, Job, Payment, Quote, Team, User
from app.services.customer_links import generate_link_token
from app.utils.passwords import hash_password


STAFF_PASSWORD = "SecurePass123!"
PUBLIC_BASE_URL = "https://portal.example.com"
WEBHOOK_SECRET = "whsec_test"

_numbers = itertools.count(1)


@pytest.fixture
def app(tmp_path):
    test_db_path = tmp_path / "test.db"

    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret",
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{test_db_path}",
            "RATELIMIT_ENABLED": False,
            "PUBLIC_BASE_URL": PUBLIC_BASE_URL,
            "STRIPE_SECRET_KEY": "sk_test",
            "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
            "CUSTOMER_LINK_DEFAULT_DAYS": 30,
        }
    )

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


# =========================================================
# Factories (each opens its own app context, returns plain values)
# =========================================================
def make_team(app, name: str | None = None) -> int:
    with app.app_context():
        team = Team(name=name or f"Team {next(_numbers)}")
        db.session.add(team)
        db.session.commit()
        return team.id


def make_user(
    app,
    email: str,
    role: str = "admin",
    password: str = STAFF_PASSWORD,
    team_id: int | None = None,
    is_active: bool = True,
) -> int:
    with app.app_context():
        user = User(
            name=email.split("@")[0].title(),
            email=email.lower(),
            password_hash=hash_password(password),
            role=role,
            team_id=team_id,
            is_active=is_active,
        )
        db.session.add(user)
        db.session.commit()
        return user.id


def make_quote(
    app,
    status: str = "sent",
    total: float = 2000.0,
    deposit_amount: float | None = 500.0,
    team_id: int | None = None,
) -> uuid.UUID:
    with app.app_context():
        quote = Quote(
            quote_number=f"Q-{next(_numbers):05d}",
            status=status,
            customer_name="Dana Customer",
            customer_email="dana@example.com",
            site_address="12 Alarm Way",
            line_items=[{"description": "Panel install", "quantity": 1, "unit_price": total}],
            subtotal=total,
            tax=0.0,
            total=total,
            deposit_amount=deposit_amount,
            team_id=team_id,
        )
        db.session.add(quote)
        db.session.commit()
        return quote.id


def make_job(app, team_id: int | None = None) -> uuid.UUID:
    with app.app_context():
        job = Job(
            job_number=f"J-{next(_numbers):05d}",
            status="scheduled",
            job_type="inspection",
            customer_name="Dana Customer",
            site_address="12 Alarm Way",
            team_id=team_id,
        )
        db.session.add(job)
        db.session.commit()
        return job.id


def make_link(app, quote_id=None, job_id=None, **overrides) -> str:
    """Insert a link row directly and return its token."""
    with app.app_context():
        fields = {
            "token": generate_link_token(),
            "link_type": "quote_approval" if quote_id else "job_status",
            "status": "active",
            "customer_name": "Dana Customer",
            "customer_email": "dana@example.com",
            "quote_id": quote_id,
            "job_id": job_id,
            "expires_at": datetime.utcnow() + timedelta(days=30),
            "use_count": 0,
        }
        fields.update(overrides)
        link = CustomerLink(**fields)
        db.session.add(link)
        db.session.commit()
        return link.token


def make_payment(app, token: str, session_id: str = "cs_test_1", **overrides) -> uuid.UUID:
    with app.app_context():
        link = CustomerLink.query.filter_by(token=token).one()
        fields = {
            "quote_id": link.quote_id,
            "customer_link_id": link.id,
            "stripe_checkout_session_id": session_id,
            "amount": 500.0,
            "payment_type": "deposit",
            "status": "pending",
        }
        fields.update(overrides)
        payment = Payment(**fields)
        db.session.add(payment)
        db.session.commit()
        return payment.id


def get_link(app, token: str) -> CustomerLink:
    """Detached snapshot of a link row for assertions."""
    with app.app_context():
        link = CustomerLink.query.filter_by(token=token).one_or_none()
        if link is not None:
            db.session.expunge(link)
        return link


def login(client, email: str, password: str = STAFF_PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


@pytest.fixture
def admin(app):
    team_id = make_team(app, "North Branch")
    user_id = make_user(app, "admin@chatman.test", role="admin", team_id=team_id)
    return {"id": user_id, "team_id": team_id, "email": "admin@chatman.test"}


@pytest.fixture
def admin_client(app, client, admin):
    resp = login(client, admin["email"])
    assert resp.status_code == 200
    return client
