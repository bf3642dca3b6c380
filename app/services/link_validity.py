# app/services/link_validity.py
"""
Validity rules for customer links.

The stored ``status`` is only a cache of the derived state: a link can still
read ``active`` after its expiry has passed. ``evaluate_link`` always derives
the real answer from the row and the clock; ``reconcile_link_status`` is the
one place that writes the lazy ``active -> expired`` transition back.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

REASON_REVOKED = "This link has been revoked"
REASON_EXPIRED = "This link has expired"
REASON_USED = "This link has already been used"
REASON_USAGE_LIMIT = "This link has reached its usage limit"


@dataclass(frozen=True)
class LinkValidity:
    valid: bool
    reason: str | None = None


def _utcnow_naive() -> datetime:
    return datetime.utcnow()


def _as_naive_utc(dt: datetime | None) -> datetime | None:
    """Normalize an aware datetime to naive UTC; leave naive as-is."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def is_time_expired(link, now: datetime | None = None) -> bool:
    expires_at = _as_naive_utc(link.expires_at)
    if expires_at is None:
        return False
    now = _as_naive_utc(now) or _utcnow_naive()
    return expires_at < now


def evaluate_link(link, now: datetime | None = None) -> LinkValidity:
    """
    Classify a link row. First matching rule wins:

    1. stored status revoked
    2. stored status expired
    3. stored status used
    4. expires_at in the past (lazy expiry, independent of stored status)
    5. max_uses reached
    """
    status = link.status
    if status == "revoked":
        return LinkValidity(False, REASON_REVOKED)
    if status == "expired":
        return LinkValidity(False, REASON_EXPIRED)
    if status == "used":
        return LinkValidity(False, REASON_USED)
    if is_time_expired(link, now):
        return LinkValidity(False, REASON_EXPIRED)
    if link.max_uses is not None and (link.use_count or 0) >= link.max_uses:
        return LinkValidity(False, REASON_USAGE_LIMIT)
    return LinkValidity(True)


def reconcile_link_status(link, now: datetime | None = None) -> bool:
    """
    Persist the time-based expiry onto the ORM object.

    Returns True when the status changed; the caller owns the commit.
    """
    if link.status == "active" and is_time_expired(link, now):
        link.status = "expired"
        return True
    return False
