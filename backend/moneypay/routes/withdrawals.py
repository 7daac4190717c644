# backend/moneypay/routes/withdrawals.py
"""
Withdrawal request API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app
from moneypay.extensions import db
from moneypay.decorators import require_actor, require_role
from moneypay.errors import LedgerError
from moneypay.money import parse_amount_cents
from moneypay.services import withdrawal_service


withdrawals_bp = Blueprint("withdrawals", __name__, url_prefix="/api/withdrawals")


@withdrawals_bp.route("/request", methods=["POST"])
@require_actor
@require_role("agent", "admin")
def request_withdrawal():
    """
    Request a withdrawal from a counterparty.

    Request body:
    {
        "amount": number | str,
        "user_phone": str (agents),
        "agent_id": int (admins),
        "description": str (optional)
    }

    Returns:
        201: Pending request created
        200: Agent allows instant admin cash-out; transaction executed
        400: Insufficient balance
        404: Counterparty not found
    """
    data = request.get_json(silent=True) or {}

    try:
        outcome = withdrawal_service.request_withdrawal(
            g.actor.id,
            parse_amount_cents(data.get("amount")),
            user_phone=data.get("user_phone"),
            agent_id=data.get("agent_id"),
            description=data.get("description"),
        )
        if outcome.executed:
            return jsonify({"message": "Withdrawal processed", "transaction": outcome.transaction.to_dict()}), 200
        return jsonify({"message": "Withdrawal request created", "request": outcome.request.to_dict()}), 201

    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Withdrawal request failed")
        return jsonify({"error": "Unexpected error"}), 500


@withdrawals_bp.route("/<int:request_id>/approve", methods=["POST"])
@require_actor
def approve_withdrawal(request_id: int):
    """
    Paying party approves a pending request.

    Returns:
        200: Approved, balances moved
        400: Balance fell short; the request is now rejected
        403: Actor is not the paying party
        409: Request is not pending
    """
    try:
        withdrawal = withdrawal_service.approve_withdrawal(request_id, g.actor.id)
        return jsonify({"message": "Withdrawal request approved", "request": withdrawal.to_dict()}), 200

    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Withdrawal approval failed")
        return jsonify({"error": "Unexpected error"}), 500


@withdrawals_bp.route("/<int:request_id>/reject", methods=["POST"])
@require_actor
def reject_withdrawal(request_id: int):
    data = request.get_json(silent=True) or {}

    try:
        withdrawal = withdrawal_service.reject_withdrawal(request_id, g.actor.id, reason=data.get("reason"))
        return jsonify({"message": "Withdrawal request rejected", "request": withdrawal.to_dict()}), 200

    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Withdrawal rejection failed")
        return jsonify({"error": "Unexpected error"}), 500


@withdrawals_bp.route("/pending", methods=["GET"])
@require_actor
def pending_requests():
    """Requests waiting on the actor's approval."""
    requests = withdrawal_service.list_pending_requests(g.actor.id)
    return jsonify({"requests": [r.to_dict() for r in requests]}), 200


@withdrawals_bp.route("/outgoing", methods=["GET"])
@require_actor
@require_role("agent", "admin")
def outgoing_requests():
    requests = withdrawal_service.list_outgoing_requests(g.actor.id)
    return jsonify({"requests": [r.to_dict() for r in requests]}), 200
