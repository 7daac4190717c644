# Overview: Account store lookups, registration and suspension.

from __future__ import annotations

import secrets

from moneypay.errors import ForbiddenError, NotFoundError, ValidationError
from moneypay.extensions import db
from moneypay.models import Account, StateSetting
from moneypay.models.accounts import ROLE_ADMIN, ROLE_AGENT, VALID_ROLES
from moneypay.services.concurrency import commit_with_retry


AGENT_CODE_ATTEMPTS = 20


def _generate_agent_code() -> str:
    for _ in range(AGENT_CODE_ATTEMPTS):
        code = f"{secrets.randbelow(900000) + 100000}"
        if not db.session.query(Account.id).filter_by(agent_code=code).first():
            return code
    raise ValidationError("Could not allocate an agent number, please retry")


def create_account(
    name: str,
    phone: str,
    role: str = "user",
    *,
    email: str | None = None,
    state_id: int | None = None,
    auto_admin_cashout: bool = False,
) -> Account:
    """
    Register an account with a zero balance.

    Agents get a unique public 6-digit agent number. state_id is only
    meaningful for admins.
    """
    name = (name or "").strip()
    phone = (phone or "").strip()
    if not name or not phone:
        raise ValidationError("name and phone are required")
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role: {role}")
    if db.session.query(Account.id).filter_by(phone=phone).first():
        raise ValidationError("Phone number already registered")
    if email and db.session.query(Account.id).filter_by(email=email).first():
        raise ValidationError("Email already registered")
    if state_id is not None:
        if role != ROLE_ADMIN:
            raise ValidationError("Only admins are assigned a state")
        if db.session.get(StateSetting, state_id) is None:
            raise NotFoundError("State not found")

    account = Account(
        name=name,
        phone=phone,
        email=email or None,
        role=role,
        balance_cents=0,
        state_id=state_id,
        auto_admin_cashout=bool(auto_admin_cashout) if role == ROLE_AGENT else False,
        agent_code=_generate_agent_code() if role == ROLE_AGENT else None,
    )
    db.session.add(account)
    commit_with_retry()
    return account


def get_account(account_id: int) -> Account:
    account = db.session.get(Account, account_id)
    if account is None:
        raise NotFoundError("Account not found")
    return account


def find_by_phone(phone: str | None) -> Account | None:
    if not phone:
        return None
    return db.session.query(Account).filter_by(phone=phone.strip()).first()


def find_agent_by_code(agent_code: str | None) -> Account | None:
    if not agent_code:
        return None
    return db.session.query(Account).filter_by(agent_code=str(agent_code).strip(), role=ROLE_AGENT).first()


def list_accounts(role: str | None = None) -> list[Account]:
    query = db.session.query(Account)
    if role:
        query = query.filter_by(role=role)
    return query.order_by(Account.id).all()


def ensure_active(account: Account) -> None:
    """Suspended accounts may not initiate or approve anything."""
    if account.is_suspended:
        raise ForbiddenError("Account is suspended")


def set_suspended(account_id: int, suspended: bool) -> Account:
    account = get_account(account_id)
    if account.is_admin and suspended:
        raise ForbiddenError("Admins cannot be suspended")
    account.is_suspended = suspended
    commit_with_retry()
    return account


def set_auto_admin_cashout(agent_id: int, enabled: bool) -> Account:
    agent = get_account(agent_id)
    if agent.role != ROLE_AGENT:
        raise ValidationError("Only agents have an admin cash-out setting")
    agent.auto_admin_cashout = bool(enabled)
    commit_with_retry()
    return agent


def assign_state(admin_id: int, state_id: int | None) -> Account:
    admin = get_account(admin_id)
    if not admin.is_admin:
        raise ValidationError("Only admins are assigned a state")
    if state_id is not None and db.session.get(StateSetting, state_id) is None:
        raise NotFoundError("State not found")
    admin.state_id = state_id
    commit_with_retry()
    return admin


def update_location(account_id: int, location: dict | None) -> Account:
    account = get_account(account_id)
    if location is not None:
        location = {
            key: location.get(key)
            for key in ("latitude", "longitude", "city", "country")
        }
    account.current_location = location
    commit_with_retry()
    return account
