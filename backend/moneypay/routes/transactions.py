# backend/moneypay/routes/transactions.py
"""
Send money, user withdrawals at an agent, and transaction history.
"""
from flask import Blueprint, request, jsonify, g, current_app
from moneypay.extensions import db
from moneypay.decorators import require_actor, require_role
from moneypay.errors import LedgerError, ForbiddenError
from moneypay.models.ledger import DEDUCTION_ADDED_ON_TOP
from moneypay.money import parse_amount_cents
from moneypay.services import ledger_service, reporting_service


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.route("/send", methods=["POST"])
@require_actor
def send_money():
    """
    Send money to another account by phone number.

    Request body:
    {
        "recipient_phone": str,
        "amount": number | str,
        "description": str (optional),
        "deduction_mode": "added_on_top" | "deducted_from_amount" (optional),
        "currency": {"code", "symbol", "exchange_rate", "tier"} (optional)
    }

    Returns:
        201: Transaction completed
        400: Invalid amount, insufficient balance or forbidden counterparty
        404: Recipient not found
    """
    data = request.get_json(silent=True) or {}

    try:
        record = ledger_service.send_money(
            sender_id=g.actor.id,
            recipient_phone=data["recipient_phone"],
            amount_cents=parse_amount_cents(data.get("amount")),
            description=data.get("description"),
            deduction_mode=data.get("deduction_mode") or DEDUCTION_ADDED_ON_TOP,
            currency=data.get("currency"),
        )
        return jsonify({"message": "Money sent successfully", "transaction": record.to_dict()}), 201

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Send money failed")
        return jsonify({"error": "Unexpected error"}), 500


@transactions_bp.route("/withdraw", methods=["POST"])
@require_actor
@require_role("user")
def withdraw_to_agent():
    """
    Cash out at an agent identified by their public agent number.

    Request body:
    {
        "agent_code": str,
        "amount": number | str
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        record = ledger_service.withdraw_user_to_agent(
            user_id=g.actor.id,
            agent_code=data["agent_code"],
            amount_cents=parse_amount_cents(data.get("amount")),
        )
        return jsonify({"message": "Withdrawal initiated", "transaction": record.to_dict()}), 201

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("User withdrawal failed")
        return jsonify({"error": "Unexpected error"}), 500


@transactions_bp.route("", methods=["GET"])
@require_actor
def list_my_transactions():
    """Latest 50 transactions where the actor is sender or receiver."""
    records = ledger_service.list_transactions(g.actor.id)
    return jsonify({"transactions": [r.to_dict() for r in records]}), 200


@transactions_bp.route("/stats", methods=["GET"])
@require_actor
def my_stats():
    return jsonify(reporting_service.account_stats(g.actor.id)), 200


@transactions_bp.route("/<int:transaction_id>", methods=["GET"])
@require_actor
def get_transaction(transaction_id: int):
    try:
        record = ledger_service.get_transaction(transaction_id)
        if not g.actor.is_admin and g.actor.id not in (record.sender_id, record.receiver_id):
            raise ForbiddenError()
        return jsonify(record.to_dict()), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
