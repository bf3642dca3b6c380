# app/utils/passwords.py
from __future__ import annotations

import re

from werkzeug.security import check_password_hash, generate_password_hash

MIN_PASSWORD_LENGTH = 10


def hash_password(plain_password: str) -> str:
    """Werkzeug scrypt hash (memory-hard KDF)."""
    if not isinstance(plain_password, str) or not plain_password.strip():
        raise ValueError("Password must be a non-empty string.")
    return generate_password_hash(plain_password, method="scrypt")


def verify_password(password_hash: str | None, plain_password: str | None) -> bool:
    if not password_hash or not plain_password:
        return False
    return check_password_hash(password_hash, plain_password)


# =========================
# Staff password policy
# =========================
_POLICY = (
    (re.compile(r"[A-Z]"), "an uppercase letter"),
    (re.compile(r"[a-z]"), "a lowercase letter"),
    (re.compile(r"\d"), "a number"),
    (re.compile(r"[^\w\s]"), "a symbol (e.g. !@#$)"),
)


def password_problems(plain_password: str | None) -> list[str]:
    """Every policy rule the password breaks; empty list means acceptable."""
    pw = (plain_password or "").strip()
    if not pw:
        return ["Password cannot be empty."]

    problems: list[str] = []
    if len(pw) < MIN_PASSWORD_LENGTH:
        problems.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    missing = [label for pattern, label in _POLICY if not pattern.search(pw)]
    if missing:
        problems.append("Include " + ", ".join(missing) + ".")
    return problems
