import pytest

from app.extensions import db
from app.models import Team, User
from app.utils.passwords import hash_password, password_problems, verify_password

from conftest import STAFF_PASSWORD, login, make_user


def test_login_returns_staff_profile(app, client, admin):
    resp = login(client, "ADMIN@chatman.test")

    assert resp.status_code == 200
    assert resp.get_json() == {
        "success": True,
        "user": {
            "id": admin["id"],
            "email": "admin@chatman.test",
            "name": "Admin",
            "role": "admin",
            "team_id": admin["team_id"],
        },
    }
    with app.app_context():
        assert db.session.get(User, admin["id"]).last_login_at is not None


def test_login_rejects_wrong_password(client, admin):
    resp = login(client, admin["email"], "WrongPass123!")
    assert resp.status_code == 401
    assert resp.get_json() == {"success": False, "error": "Invalid email or password"}


def test_login_rejects_inactive_user(app, client):
    make_user(app, "gone@chatman.test", role="manager", is_active=False)

    resp = login(client, "gone@chatman.test")

    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Invalid email or password"


def test_login_requires_email_and_password(client):
    resp = client.post("/api/auth/login", json={"email": "admin@chatman.test"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Email and password are required"


def test_login_rejects_non_string_credentials(client, admin):
    numeric_email = client.post("/api/auth/login", json={"email": 123, "password": STAFF_PASSWORD})
    assert numeric_email.status_code == 400
    assert numeric_email.get_json()["error"] == "email must be a string"

    list_password = client.post("/api/auth/login", json={"email": admin["email"], "password": [STAFF_PASSWORD]})
    assert list_password.status_code == 400
    assert list_password.get_json()["error"] == "password must be a string"


def test_me_and_logout(client, admin):
    assert client.get("/api/auth/me").status_code == 401

    login(client, admin["email"])
    resp = client.get("/api/auth/me")
    assert resp.status_code == 200
    assert resp.get_json()["user"]["email"] == admin["email"]

    assert client.post("/api/auth/logout").get_json() == {"success": True}
    assert client.get("/api/auth/me").get_json() == {"success": False, "user": None}


# =========================================================
# Passwords
# =========================================================
def test_password_hash_roundtrip():
    hashed = hash_password(STAFF_PASSWORD)
    assert hashed.startswith("scrypt:")
    assert verify_password(hashed, STAFF_PASSWORD) is True
    assert verify_password(hashed, "nope") is False
    assert verify_password(None, STAFF_PASSWORD) is False


@pytest.mark.parametrize(
    "password, fragment",
    [
        ("", "cannot be empty"),
        ("Sh0rt!", "at least 10 characters"),
        ("alllowercase1!", "an uppercase letter"),
        ("NoDigitsHere!!", "a number"),
        ("NoSymbols12345", "a symbol"),
    ],
)
def test_password_policy(password, fragment):
    problems = password_problems(password)
    assert problems
    assert any(fragment in p for p in problems)


def test_strong_password_passes_policy():
    assert password_problems(STAFF_PASSWORD) == []


# =========================================================
# CLI
# =========================================================
def test_create_admin_command_creates_user_and_team(app):
    runner = app.test_cli_runner()

    result = runner.invoke(
        args=[
            "create-admin",
            "--email", "Boss@Chatman.test",
            "--name", "Boss",
            "--password", STAFF_PASSWORD,
            "--team", "Central",
        ]
    )

    assert result.exit_code == 0, result.output
    assert "Admin created: boss@chatman.test" in result.output
    with app.app_context():
        user = User.query.filter_by(email="boss@chatman.test").one()
        assert user.role == "admin"
        assert user.team.name == "Central"
        assert verify_password(user.password_hash, STAFF_PASSWORD)
        assert Team.query.count() == 1


def test_create_admin_command_promotes_existing_user(app):
    make_user(app, "tech@chatman.test", role="technician")
    runner = app.test_cli_runner()

    result = runner.invoke(
        args=["create-admin", "--email", "tech@chatman.test", "--password", "AnotherPass456?"]
    )

    assert result.exit_code == 0, result.output
    assert "Admin updated" in result.output
    with app.app_context():
        user = User.query.filter_by(email="tech@chatman.test").one()
        assert user.role == "admin"
        assert verify_password(user.password_hash, "AnotherPass456?")


def test_create_admin_command_enforces_password_policy(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["create-admin", "--email", "x@chatman.test", "--password", "weak"])

    assert result.exit_code != 0
    assert "at least 10 characters" in result.output
    with app.app_context():
        assert User.query.count() == 0
