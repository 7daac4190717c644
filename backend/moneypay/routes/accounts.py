# backend/moneypay/routes/accounts.py
"""
Self-service endpoints for the acting account.
"""
from flask import Blueprint, request, jsonify, g, current_app
from moneypay.extensions import db
from moneypay.decorators import require_actor
from moneypay.errors import LedgerError
from moneypay.services import account_service, notification_service


accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


@accounts_bp.route("/me", methods=["GET"])
@require_actor
def me():
    return jsonify({"account": g.actor.to_dict()}), 200


@accounts_bp.route("/me/location", methods=["PUT"])
@require_actor
def update_location():
    """
    Record where the account holder is. Copied onto transactions they take part in.

    Request body:
    {
        "latitude": number,
        "longitude": number,
        "city": str (optional),
        "country": str (optional)
    }

    An empty body clears the location.
    """
    data = request.get_json(silent=True) or None

    try:
        account = account_service.update_location(g.actor.id, data)
        return jsonify({"account": account.to_dict()}), 200

    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Location update failed")
        return jsonify({"error": "Unexpected error"}), 500


@accounts_bp.route("/me/notifications", methods=["GET"])
@require_actor
def list_notifications():
    """
    Query params:
    - unread: "1" to return unread notifications only
    """
    notifications = notification_service.list_notifications(
        g.actor.id, unread_only=request.args.get("unread") == "1",
    )
    return jsonify({"notifications": [n.to_dict() for n in notifications]}), 200


@accounts_bp.route("/me/notifications/<int:notification_id>/read", methods=["POST"])
@require_actor
def mark_notification_read(notification_id: int):
    if not notification_service.mark_read(g.actor.id, notification_id):
        return jsonify({"error": "Notification not found", "code": "NOT_FOUND"}), 404
    return jsonify({"message": "Notification marked as read"}), 200
