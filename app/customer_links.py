# app/customer_links.py
from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, request
from flask_login import current_user

from .extensions import db, limiter
from .models import utcnow_naive
from .services.acceptance import accept_quote
from .services.customer_links import (
    create_link,
    delete_link,
    extend_link,
    get_link_or_404,
    list_links,
    public_base_url,
    public_payload,
    reactivate_link,
    record_access,
    revoke_link,
)
from .services.link_validity import evaluate_link, reconcile_link_status
from .utils.client import client_ip, json_body, safe_user_agent, text_field
from .utils.guards import is_staff, role_required, staff_required

customer_links_bp = Blueprint("customer_links", __name__, url_prefix="/api/customer-links")


def _public_rate_limit() -> str:
    return current_app.config.get("PUBLIC_LINK_RATE_LIMIT") or "60 per minute"


# =========================================================
# Small DB helper
# =========================================================
def _commit_or_rollback(action: str) -> bool:
    try:
        db.session.commit()
        return True
    except Exception:
        db.session.rollback()
        current_app.logger.exception("%s failed", action)
        return False


# =========================================================
# Staff: list / create
# GET  /api/customer-links?quote_id=&job_id=&status=
# POST /api/customer-links
# =========================================================
@customer_links_bp.route("", methods=["GET"])
@staff_required
def links_list():
    links = list_links(
        current_user,
        quote_id=request.args.get("quote_id"),
        job_id=request.args.get("job_id"),
        status=(request.args.get("status") or "").strip() or None,
    )
    return jsonify({"success": True, "data": [link.to_dict() for link in links]}), 200


@customer_links_bp.route("", methods=["POST"])
@staff_required
def links_create():
    link = create_link(current_user, json_body())
    if not _commit_or_rollback("Create customer link"):
        abort(500, description="Failed to create customer link")

    current_app.logger.info("Customer link %s created by user %s", link.id, current_user.id)

    data = link.to_dict()
    data["portal_url"] = link.portal_url(public_base_url())
    return jsonify({"success": True, "data": data}), 201


# =========================================================
# Public or staff: view
# GET /api/customer-links/<token>
# =========================================================
@customer_links_bp.route("/<token>", methods=["GET"])
@limiter.limit(_public_rate_limit)
def link_detail(token: str):
    link = get_link_or_404(token)
    staff = is_staff(current_user)
    now = utcnow_naive()

    if reconcile_link_status(link, now):
        _commit_or_rollback("Expire customer link")

    # Staff previews: full row, no usage tracking
    if staff:
        return jsonify({"success": True, "data": link.to_dict()}), 200

    validity = evaluate_link(link, now)
    if not validity.valid:
        abort(403, description=validity.reason)

    record_access(
        link,
        "view",
        ip_address=client_ip(),
        user_agent=safe_user_agent(255),
        now=now,
    )
    if not _commit_or_rollback("Record link access"):
        abort(500, description="Failed to fetch link")

    return jsonify({"success": True, "data": public_payload(link, validity)}), 200


# =========================================================
# Staff: revoke / extend / reactivate
# PATCH /api/customer-links/<token>
# =========================================================
@customer_links_bp.route("/<token>", methods=["PATCH"])
@staff_required
def link_update(token: str):
    body = json_body()
    action = text_field(body, "action").lower()

    link = get_link_or_404(token)
    reconcile_link_status(link)

    data = None
    if action == "revoke":
        revoke_link(link, current_user, text_field(body, "reason"))
        message = "Link revoked successfully"
    elif action == "extend":
        new_expiry, days = extend_link(link, body.get("extends_days"))
        message = f"Link extended by {days} days"
        data = {"expires_at": new_expiry.isoformat()}
    elif action == "reactivate":
        new_expiry = reactivate_link(link)
        message = "Link reactivated"
        data = {"expires_at": new_expiry.isoformat()}
    else:
        abort(400, description="Invalid action")

    if not _commit_or_rollback(f"{action.capitalize()} customer link"):
        abort(500, description=f"Failed to {action} link")

    current_app.logger.info("Customer link %s: %s by user %s", link.id, action, current_user.id)

    payload = {"success": True, "message": message}
    if data is not None:
        payload["data"] = data
    return jsonify(payload), 200


# =========================================================
# Admin: delete
# DELETE /api/customer-links/<token>
# =========================================================
@customer_links_bp.route("/<token>", methods=["DELETE"])
@role_required("admin", message="Only admins can delete links")
def link_delete(token: str):
    link = get_link_or_404(token)
    link_id = link.id

    delete_link(link)
    if not _commit_or_rollback("Delete customer link"):
        abort(500, description="Failed to delete link")

    current_app.logger.info("Customer link %s deleted by user %s", link_id, current_user.id)
    return jsonify({"success": True, "message": "Link deleted successfully"}), 200


# =========================================================
# Public: approve quote
# POST /api/customer-links/<token>/accept
# =========================================================
@customer_links_bp.route("/<token>/accept", methods=["POST"])
@limiter.limit(_public_rate_limit)
def link_accept(token: str):
    body = json_body()

    result = accept_quote(
        token,
        signature_name=text_field(body, "signature_name"),
        signature_email=text_field(body, "signature_email"),
        payment_option=text_field(body, "payment_option"),
        ip_address=client_ip(),
        user_agent=safe_user_agent(255),
    )

    payload = {
        "success": True,
        "message": result.message,
        "acceptance_id": str(result.acceptance_id),
    }
    if result.checkout_url:
        payload["checkout_url"] = result.checkout_url
    return jsonify(payload), 200
