# backend/moneypay/routes/state_push.py
"""
Admin-to-admin state push API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app
from moneypay.extensions import db
from moneypay.decorators import require_actor, require_role
from moneypay.errors import LedgerError
from moneypay.models.ledger import DEDUCTION_ADDED_ON_TOP
from moneypay.money import parse_amount_cents
from moneypay.services import state_push_service


state_push_bp = Blueprint("state_push", __name__, url_prefix="/api/state-push")


@state_push_bp.route("", methods=["POST"])
@require_actor
@require_role("admin")
def create_state_push():
    """
    Create a pending transfer to another admin.

    Request body:
    {
        "receiver_id": int,
        "amount": number | str,
        "state_id": int (optional, defaults to the sender's state),
        "deduction_mode": "added_on_top" | "deducted_from_amount" (optional),
        "description": str (optional)
    }

    Returns:
        201: Pending transfer created
        404: Destination admin or state not found
    """
    data = request.get_json(silent=True) or {}

    try:
        record = state_push_service.create_state_push(
            sender_id=g.actor.id,
            receiver_id=data["receiver_id"],
            amount_cents=parse_amount_cents(data.get("amount")),
            state_id=data.get("state_id"),
            deduction_mode=data.get("deduction_mode") or DEDUCTION_ADDED_ON_TOP,
            description=data.get("description"),
            currency=data.get("currency"),
        )
        return jsonify({"message": "Transfer created and pending", "transaction": record.to_dict()}), 201

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("State push create failed")
        return jsonify({"error": "Unexpected error"}), 500


@state_push_bp.route("", methods=["GET"])
@require_actor
@require_role("admin")
def list_state_pushes():
    records = state_push_service.list_state_pushes(g.actor.id)
    return jsonify({"transactions": [r.to_dict() for r in records]}), 200


@state_push_bp.route("/pending-count", methods=["GET"])
@require_actor
@require_role("admin")
def pending_count():
    return jsonify({"count": state_push_service.count_pending_state_pushes(g.actor.id)}), 200


@state_push_bp.route("/<int:transaction_id>/receive", methods=["POST"])
@require_actor
@require_role("admin")
def receive_state_push(transaction_id: int):
    """
    Receiver confirms the transfer arrived.

    Returns:
        200: Completed
        403: Actor is not the receiver
        409: Transfer is not pending
    """
    try:
        record = state_push_service.receive_state_push(transaction_id, g.actor.id)
        return jsonify({"message": "Transaction marked as received", "transaction": record.to_dict()}), 200

    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("State push receive failed")
        return jsonify({"error": "Unexpected error"}), 500


@state_push_bp.route("/<int:transaction_id>/cancel", methods=["POST"])
@require_actor
@require_role("admin")
def cancel_state_push(transaction_id: int):
    try:
        record = state_push_service.cancel_state_push(transaction_id, g.actor.id)
        return jsonify({"message": "Pending transfer cancelled", "transaction": record.to_dict()}), 200

    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("State push cancel failed")
        return jsonify({"error": "Unexpected error"}), 500


@state_push_bp.route("/<int:transaction_id>", methods=["PATCH"])
@require_actor
@require_role("admin")
def edit_state_push(transaction_id: int):
    """
    Sender edits a pending transfer.

    Request body (all optional):
    {
        "amount": number | str,
        "receiver_id": int,
        "deduction_mode": str,
        "description": str
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        amount = data.get("amount")
        record = state_push_service.edit_state_push(
            transaction_id,
            g.actor.id,
            amount_cents=parse_amount_cents(amount) if amount is not None else None,
            receiver_id=data.get("receiver_id"),
            deduction_mode=data.get("deduction_mode"),
            description=data.get("description"),
        )
        return jsonify({"message": "Transaction updated", "transaction": record.to_dict()}), 200

    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("State push edit failed")
        return jsonify({"error": "Unexpected error"}), 500
