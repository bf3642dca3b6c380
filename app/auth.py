# app/auth.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_user, logout_user
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db, limiter, login_manager
from .models import User, utcnow_naive
from .utils.client import json_body, text_field
from .utils.passwords import verify_password

auth = Blueprint("auth", __name__, url_prefix="/api/auth")


# =========================================================
# Flask-Login hooks
# =========================================================
@login_manager.user_loader
def load_user(user_id: str):
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"success": False, "error": "Unauthorized"}), 401


def _login_rate_limit() -> str:
    return current_app.config.get("LOGIN_RATE_LIMIT") or "5 per minute"


# =========================================================
# Login / Logout / Me
# =========================================================
@auth.route("/login", methods=["POST"])
@limiter.limit(_login_rate_limit)
def login():
    body = json_body()
    email = text_field(body, "email").lower()
    password = text_field(body, "password", strip=False)

    if not email or not password:
        return jsonify({"success": False, "error": "Email and password are required"}), 400

    user = User.query.filter(db.func.lower(User.email) == email).first()

    # Same answer for unknown, inactive and wrong-password accounts
    if not user or not user.is_active or not verify_password(user.password_hash, password):
        current_app.logger.warning("Failed staff login for %s", email)
        return jsonify({"success": False, "error": "Invalid email or password"}), 401

    login_user(user)

    try:
        user.last_login_at = utcnow_naive()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not stamp last_login_at for user %s", user.id)

    return jsonify({"success": True, "user": user.to_dict()}), 200


@auth.route("/logout", methods=["POST"])
def logout():
    """Not login_required: logging out twice is harmless."""
    logout_user()
    return jsonify({"success": True}), 200


@auth.route("/me", methods=["GET"])
def me():
    if not getattr(current_user, "is_authenticated", False):
        return jsonify({"success": False, "user": None}), 401
    return jsonify({"success": True, "user": current_user.to_dict()}), 200
