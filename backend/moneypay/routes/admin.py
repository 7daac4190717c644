# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/moneypay/routes/admin.py
"""
Admin routes for money movement, commission configuration and accounts.

Provides endpoints for:
- Top-ups, withdrawals from users, pushes between users, money exchange
- Commission configuration (flat and tiered) and state settings
- Account management (register, suspend, agent cash-out setting)
- Reporting and ledger maintenance

All endpoints require an admin actor.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_actor, require_role
from ..errors import LedgerError
from ..money import parse_amount_cents
from ..services import (
    account_service,
    commission_service,
    ledger_service,
    reporting_service,
)
from ..services.concurrency import reconcile_open_intents

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _ledger_error(e: LedgerError):
    db.session.rollback()
    return jsonify(e.to_dict()), e.http_status


def _unexpected(label: str):
    db.session.rollback()
    current_app.logger.exception(label)
    return jsonify({"error": "Unexpected error"}), 500


# =============================================================================
# MONEY MOVEMENT
# =============================================================================

@admin_bp.post("/topup")
@require_actor
@require_role("admin")
def top_up():
    """
    Credit an account from admin float.

    Request body:
    {
        "account_id": int,
        "amount": number | str,
        "description": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        record = ledger_service.top_up(
            g.actor.id,
            data["account_id"],
            parse_amount_cents(data.get("amount")),
            description=data.get("description"),
        )
        return jsonify({"message": "Top-up successful", "transaction": record.to_dict()}), 201
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _unexpected("Top-up failed")


@admin_bp.post("/withdraw-from-user")
@require_actor
@require_role("admin")
def withdraw_from_user():
    data = request.get_json(silent=True) or {}
    try:
        record = ledger_service.admin_withdraw_from_user(
            g.actor.id,
            data["account_id"],
            parse_amount_cents(data.get("amount")),
            description=data.get("description"),
        )
        return jsonify({"message": "Withdrawal successful", "transaction": record.to_dict()}), 201
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _unexpected("Admin withdrawal failed")


@admin_bp.post("/push")
@require_actor
@require_role("admin")
def push_between_users():
    """
    Move money between two accounts by phone number, no commission.

    Request body:
    {
        "from_phone": str,
        "to_phone": str,
        "amount": number | str,
        "description": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        record = ledger_service.push_between_users(
            g.actor.id,
            data["from_phone"],
            data["to_phone"],
            parse_amount_cents(data.get("amount")),
            description=data.get("description"),
        )
        return jsonify({"message": "Push successful", "transaction": record.to_dict()}), 201
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _unexpected("Admin push failed")


@admin_bp.post("/money-exchange")
@require_actor
@require_role("admin")
def money_exchange():
    data = request.get_json(silent=True) or {}
    try:
        record = ledger_service.record_money_exchange(
            g.actor.id,
            parse_amount_cents(data.get("amount")),
            from_currency=data["from_currency"],
            to_currency=data["to_currency"],
            converted_amount_cents=parse_amount_cents(data.get("converted_amount")),
            exchange_rate=data.get("exchange_rate"),
            price_mode=data.get("price_mode"),
        )
        return jsonify({"message": "Exchange recorded", "transaction": record.to_dict()}), 201
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _unexpected("Money exchange failed")


@admin_bp.get("/transactions")
@require_actor
@require_role("admin")
def list_transactions():
    """
    Query params:
    - limit: int (default 200)
    - type: transaction kind filter
    """
    limit = request.args.get("limit", 200, type=int)
    records = ledger_service.list_all_transactions(limit=max(1, min(limit, 1000)), kind=request.args.get("type"))
    return jsonify({"transactions": [r.to_dict() for r in records]}), 200


# =============================================================================
# COMMISSION CONFIGURATION
# =============================================================================

@admin_bp.get("/commission")
@require_actor
@require_role("admin")
def get_commission():
    return jsonify(commission_service.get_commission_config()), 200


@admin_bp.put("/commission")
@require_actor
@require_role("admin")
def set_flat_commission():
    """
    Request body (all optional, omitted values unchanged):
    {
        "percent": number,
        "send_percent": number,
        "withdraw_percent": number
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        rule = commission_service.set_flat_commission(
            percent=data.get("percent"),
            send_percent=data.get("send_percent"),
            withdraw_percent=data.get("withdraw_percent"),
        )
        return jsonify({"message": "Commission updated", "commission": rule.to_dict()}), 200
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _unexpected("Commission update failed")


@admin_bp.put("/commission/tiers")
@require_actor
@require_role("admin")
def set_tiered_commission():
    """
    Request body:
    {
        "send_tiers": [{"min_amount", "company_percent"}, ...] (optional),
        "withdraw_tiers": [{"min_amount", "agent_percent", "company_percent"}, ...] (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        config = commission_service.set_tiered_commission(
            send_tiers=data.get("send_tiers"),
            withdraw_tiers=data.get("withdraw_tiers"),
        )
        return jsonify({"message": "Tiered commission updated", "commission": config}), 200
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _unexpected("Tiered commission update failed")


# =============================================================================
# STATE SETTINGS
# =============================================================================

@admin_bp.get("/states")
@require_actor
@require_role("admin")
def list_states():
    return jsonify({"states": [s.to_dict() for s in commission_service.list_states()]}), 200


@admin_bp.post("/states")
@require_actor
@require_role("admin")
def create_state():
    data = request.get_json(silent=True) or {}
    try:
        state = commission_service.create_state(data.get("name"), data.get("commission_percent", 0))
        return jsonify({"message": "State created", "state": state.to_dict()}), 201
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _unexpected("State create failed")


@admin_bp.put("/states/<int:state_id>")
@require_actor
@require_role("admin")
def update_state(state_id: int):
    data = request.get_json(silent=True) or {}
    try:
        state = commission_service.update_state(
            state_id,
            name=data.get("name"),
            commission_percent=data.get("commission_percent"),
        )
        return jsonify({"message": "State updated", "state": state.to_dict()}), 200
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _unexpected("State update failed")


# =============================================================================
# ACCOUNT MANAGEMENT
# =============================================================================

@admin_bp.get("/accounts")
@require_actor
@require_role("admin")
def list_accounts():
    """
    Query params:
    - role: user | agent | admin
    """
    accounts = account_service.list_accounts(request.args.get("role"))
    return jsonify({"accounts": [a.to_dict() for a in accounts]}), 200


@admin_bp.post("/accounts")
@require_actor
@require_role("admin")
def create_account():
    """
    Register an account.

    Request body:
    {
        "name": str,
        "phone": str,
        "role": "user" | "agent" | "admin" (default user),
        "email": str (optional),
        "state_id": int (admins only, optional),
        "auto_admin_cashout": bool (agents only, optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        account = account_service.create_account(
            data.get("name"),
            data.get("phone"),
            data.get("role") or "user",
            email=data.get("email"),
            state_id=data.get("state_id"),
            auto_admin_cashout=bool(data.get("auto_admin_cashout", False)),
        )
        return jsonify({"message": "Account created", "account": account.to_dict()}), 201
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _unexpected("Account create failed")


@admin_bp.post("/accounts/<int:account_id>/suspend")
@require_actor
@require_role("admin")
def suspend_account(account_id: int):
    try:
        account = account_service.set_suspended(account_id, True)
        return jsonify({"message": "Account suspended", "account": account.to_dict()}), 200
    except LedgerError as e:
        return _ledger_error(e)


@admin_bp.post("/accounts/<int:account_id>/unsuspend")
@require_actor
@require_role("admin")
def unsuspend_account(account_id: int):
    try:
        account = account_service.set_suspended(account_id, False)
        return jsonify({"message": "Account reactivated", "account": account.to_dict()}), 200
    except LedgerError as e:
        return _ledger_error(e)


@admin_bp.put("/accounts/<int:account_id>/state")
@require_actor
@require_role("admin")
def assign_state(account_id: int):
    data = request.get_json(silent=True) or {}
    try:
        account = account_service.assign_state(account_id, data.get("state_id"))
        return jsonify({"message": "State assigned", "account": account.to_dict()}), 200
    except LedgerError as e:
        return _ledger_error(e)


@admin_bp.put("/accounts/<int:account_id>/auto-cashout")
@require_actor
@require_role("admin", "agent")
def set_auto_cashout(account_id: int):
    """Agents may only change their own setting."""
    data = request.get_json(silent=True) or {}
    if g.actor.role == "agent" and g.actor.id != account_id:
        return jsonify({"error": "Not allowed", "code": "FORBIDDEN"}), 403
    try:
        account = account_service.set_auto_admin_cashout(account_id, bool(data.get("enabled")))
        return jsonify({"message": "Setting updated", "account": account.to_dict()}), 200
    except LedgerError as e:
        return _ledger_error(e)


# =============================================================================
# REPORTING AND MAINTENANCE
# =============================================================================

@admin_bp.get("/stats")
@require_actor
@require_role("admin")
def system_stats():
    return jsonify(reporting_service.system_stats()), 200


@admin_bp.get("/my-commission")
@require_actor
@require_role("admin")
def my_commission():
    return jsonify({"commission_cents": reporting_service.admin_commission_total(g.actor.id)}), 200


@admin_bp.get("/my-cashout")
@require_actor
@require_role("admin")
def my_cashout():
    return jsonify({"cashout_cents": reporting_service.admin_cashout_total(g.actor.id)}), 200


@admin_bp.post("/reconcile")
@require_actor
@require_role("admin")
def reconcile():
    """
    Resolve ledger intents left open by a crashed worker.

    Request body:
    {
        "older_than_seconds": int (default 300)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        summary = reconcile_open_intents(older_than_seconds=int(data.get("older_than_seconds", 300)))
        return jsonify(summary), 200
    except (TypeError, ValueError):
        return jsonify({"error": "older_than_seconds must be an integer"}), 400
    except Exception:
        return _unexpected("Reconcile failed")
