# Overview: Commission resolution plus flat/tiered commission and state-setting configuration.

"""
Commission Resolver

WHY: Every money movement that carries a fee asks one place how much the
agent and the company take. Rules are configured by admins and resolved at
request time; the resolved split is frozen on the record it produced.

RESOLUTION ORDER:
1. Explicit override percent (admin state push): company takes it, agent 0.
2. Tier table for the class, when it has tiers.
   - send:     tier with the smallest min_amount >= amount
   - withdraw: tier with the largest  min_amount <= amount
   No qualifying tier means 0%.
3. Flat rule. No flat rule means 0%.
"""

from __future__ import annotations

from dataclasses import dataclass

from moneypay.errors import NotFoundError, ValidationError
from moneypay.extensions import db
from moneypay.models import CommissionRule, CommissionTier, StateSetting, TieredCommission
from moneypay.models.commissions import CLASS_SEND, CLASS_WITHDRAW, VALID_COMMISSION_CLASSES
from moneypay.money import cents_to_str, parse_min_amount_cents, parse_percent_bps, percent_of
from moneypay.services.concurrency import commit_with_retry


@dataclass(frozen=True)
class CommissionSplit:
    agent_percent_bps: int = 0
    company_percent_bps: int = 0
    agent_cents: int = 0
    company_cents: int = 0

    @property
    def total_cents(self) -> int:
        return self.agent_cents + self.company_cents

    @classmethod
    def from_percents(cls, amount_cents: int, agent_percent_bps: int, company_percent_bps: int) -> "CommissionSplit":
        return cls(
            agent_percent_bps=agent_percent_bps,
            company_percent_bps=company_percent_bps,
            agent_cents=percent_of(amount_cents, agent_percent_bps),
            company_cents=percent_of(amount_cents, company_percent_bps),
        )


NO_COMMISSION = CommissionSplit()


def _select_tier(tiers: list[CommissionTier], amount_cents: int, transaction_class: str) -> CommissionTier | None:
    if transaction_class == CLASS_SEND:
        candidates = [t for t in tiers if t.min_amount_cents >= amount_cents]
        return min(candidates, key=lambda t: t.min_amount_cents) if candidates else None
    candidates = [t for t in tiers if t.min_amount_cents <= amount_cents]
    return max(candidates, key=lambda t: t.min_amount_cents) if candidates else None


def resolve(amount_cents: int, transaction_class: str, override_bps: int | None = None) -> CommissionSplit:
    """
    Resolve the commission split for an amount.

    Args:
        amount_cents: Transaction amount in cents
        transaction_class: "send" or "withdraw"
        override_bps: Fixed company percent that bypasses the rule tables

    Returns:
        CommissionSplit with percents and rounded cent amounts
    """
    if transaction_class not in VALID_COMMISSION_CLASSES:
        raise ValueError(f"Unknown commission class: {transaction_class}")

    if override_bps is not None:
        return CommissionSplit.from_percents(amount_cents, 0, override_bps)

    table = db.session.query(TieredCommission).filter_by(transaction_class=transaction_class).first()
    if table is not None and table.tiers:
        tier = _select_tier(table.tiers, amount_cents, transaction_class)
        if tier is None:
            return NO_COMMISSION
        agent_bps = tier.agent_percent_bps if transaction_class == CLASS_WITHDRAW else 0
        return CommissionSplit.from_percents(amount_cents, agent_bps, tier.company_percent_bps)

    rule = db.session.query(CommissionRule).order_by(CommissionRule.id).first()
    if rule is None:
        return NO_COMMISSION
    if transaction_class == CLASS_SEND:
        return CommissionSplit.from_percents(amount_cents, 0, rule.send_percent_bps)
    return CommissionSplit.from_percents(amount_cents, rule.percent_bps, rule.withdraw_percent_bps)


# =============================================================================
# CONFIGURATION
# =============================================================================

# Shown to admins before anything is configured. Display only: resolve()
# still treats a missing table as 0%.
DEFAULT_SEND_TIERS = [
    {"min_amount": cents_to_str(step * 10000), "agent_percent": 0.0, "company_percent": float(step)}
    for step in range(1, 11)
]
DEFAULT_WITHDRAW_TIERS = [
    {"min_amount": cents_to_str(step * 10000), "agent_percent": float(step), "company_percent": 0.0}
    for step in range(1, 11)
]


def set_flat_commission(percent=None, send_percent=None, withdraw_percent=None) -> CommissionRule:
    """
    Create or update the flat rule. Omitted values are left unchanged.

    On first creation, omitted send and withdraw percents start at `percent`.
    """
    rule = db.session.query(CommissionRule).order_by(CommissionRule.id).first()
    if rule is None:
        if send_percent is None:
            send_percent = percent
        if withdraw_percent is None:
            withdraw_percent = percent
        rule = CommissionRule(percent_bps=0, send_percent_bps=0, withdraw_percent_bps=0)
        db.session.add(rule)

    if percent is not None:
        rule.percent_bps = parse_percent_bps(percent)
    if send_percent is not None:
        rule.send_percent_bps = parse_percent_bps(send_percent)
    if withdraw_percent is not None:
        rule.withdraw_percent_bps = parse_percent_bps(withdraw_percent)

    commit_with_retry()
    return rule


def _parse_tiers(raw_tiers, transaction_class: str) -> list[dict]:
    if not isinstance(raw_tiers, list) or not raw_tiers:
        raise ValidationError(f"{transaction_class} tiers must be a non-empty list")

    parsed = []
    for raw in raw_tiers:
        if not isinstance(raw, dict):
            raise ValidationError("Each tier must be an object")
        agent_bps = 0
        if transaction_class == CLASS_WITHDRAW:
            agent_bps = parse_percent_bps(raw.get("agent_percent", 0))
        parsed.append({
            "min_amount_cents": parse_min_amount_cents(raw.get("min_amount")),
            "agent_percent_bps": agent_bps,
            "company_percent_bps": parse_percent_bps(raw.get("company_percent", 0)),
        })
    parsed.sort(key=lambda t: t["min_amount_cents"])
    return parsed


def set_tiered_commission(send_tiers=None, withdraw_tiers=None) -> dict:
    """
    Replace the tier table of each class that is given.

    Tiers are validated (min_amount >= 0), percents clamped to [0, 100] and
    stored ascending by min_amount.

    Returns:
        Current configuration (see get_commission_config)
    """
    if send_tiers is None and withdraw_tiers is None:
        raise ValidationError("Provide send_tiers or withdraw_tiers")

    updates = {}
    if send_tiers is not None:
        updates[CLASS_SEND] = _parse_tiers(send_tiers, CLASS_SEND)
    if withdraw_tiers is not None:
        updates[CLASS_WITHDRAW] = _parse_tiers(withdraw_tiers, CLASS_WITHDRAW)

    for transaction_class, tiers in updates.items():
        table = db.session.query(TieredCommission).filter_by(transaction_class=transaction_class).first()
        if table is None:
            table = TieredCommission(transaction_class=transaction_class)
            db.session.add(table)
        table.tiers = [CommissionTier(**tier) for tier in tiers]

    commit_with_retry()
    return get_commission_config()


def get_commission_config() -> dict:
    rule = db.session.query(CommissionRule).order_by(CommissionRule.id).first()
    config = {
        "flat": rule.to_dict() if rule else None,
        "send_tiers": DEFAULT_SEND_TIERS,
        "withdraw_tiers": DEFAULT_WITHDRAW_TIERS,
        "send_tiers_configured": False,
        "withdraw_tiers_configured": False,
    }
    for table in db.session.query(TieredCommission).all():
        if not table.tiers:
            continue
        tiers = [tier.to_dict() for tier in table.tiers]
        if table.transaction_class == CLASS_SEND:
            config["send_tiers"] = tiers
            config["send_tiers_configured"] = True
        else:
            config["withdraw_tiers"] = tiers
            config["withdraw_tiers_configured"] = True
    return config


# =============================================================================
# STATE SETTINGS
# =============================================================================

def create_state(name: str, commission_percent) -> StateSetting:
    name = (name or "").strip()
    if not name:
        raise ValidationError("State name is required")
    if db.session.query(StateSetting.id).filter_by(name=name).first():
        raise ValidationError(f"State {name} already exists")
    state = StateSetting(name=name, commission_percent_bps=parse_percent_bps(commission_percent))
    db.session.add(state)
    commit_with_retry()
    return state


def update_state(state_id: int, *, name: str | None = None, commission_percent=None) -> StateSetting:
    state = db.session.get(StateSetting, state_id)
    if state is None:
        raise NotFoundError("State not found")
    if name is not None and name.strip():
        state.name = name.strip()
    if commission_percent is not None:
        state.commission_percent_bps = parse_percent_bps(commission_percent)
    commit_with_retry()
    return state


def list_states() -> list[StateSetting]:
    return db.session.query(StateSetting).order_by(StateSetting.name).all()
