# app/utils/client.py
from __future__ import annotations

from flask import request
from werkzeug.exceptions import BadRequest


# =========================================================
# Client metadata helpers
# =========================================================
def client_ip() -> str:
    """
    Prefer X-Forwarded-For, then X-Real-IP (behind proxy/LB).
    Configure ProxyFix in production so remote_addr is trustworthy too.
    """
    xff = (request.headers.get("X-Forwarded-For") or "").strip()
    if xff:
        return xff.split(",")[0].strip()
    real_ip = (request.headers.get("X-Real-IP") or "").strip()
    if real_ip:
        return real_ip
    return (request.remote_addr or "").strip()


def safe_user_agent(maxlen: int = 255) -> str:
    ua = (request.headers.get("User-Agent") or "").strip()
    return ua[:maxlen]


def json_body() -> dict:
    """Request JSON as a dict; anything else (missing, malformed, list) is {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def text_field(body: dict, key: str, *, maxlen: int | None = None, strip: bool = True) -> str:
    """
    String value of ``body[key]``; missing/null is "".
    Numbers, lists and objects are a 400, not a crash further down.
    """
    value = body.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise BadRequest(f"{key} must be a string")
    if strip:
        value = value.strip()
    return value[:maxlen] if maxlen else value
