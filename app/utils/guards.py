# app/utils/guards.py

from __future__ import annotations

from functools import wraps
from typing import Callable, Any

from flask import abort
from flask_login import login_required, current_user

from app.models import STAFF_ROLES


def is_staff(user) -> bool:
    """
    True for a signed-in admin or manager.
    Anyone else (anonymous, technician, inactive session) is a public caller
    as far as customer links are concerned.
    """
    if not user or not getattr(user, "is_authenticated", False):
        return False
    return (getattr(user, "role", None) or "") in STAFF_ROLES


def role_required(
    *allowed_roles: str,
    message: str = "Insufficient permissions",
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Generic role gate:
        @role_required("admin", message="Only admins can delete links")
        def view(): ...

    401 when not signed in (via the login manager), 403 for other roles.
    """
    def decorator(view: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            role = getattr(current_user, "role", None)
            if role not in allowed_roles:
                abort(403, description=message)
            return view(*args, **kwargs)
        return wrapped
    return decorator


def staff_required(view: Callable[..., Any]) -> Callable[..., Any]:
    """Allow only admin and manager."""
    return role_required(*sorted(STAFF_ROLES))(view)
