from __future__ import annotations

from ..extensions import db
from ..money import cents_to_str, bps_to_percent
from ..time_utils import to_utc_z


CLASS_SEND = "send"
CLASS_WITHDRAW = "withdraw"
VALID_COMMISSION_CLASSES = (CLASS_SEND, CLASS_WITHDRAW)


class CommissionRule(db.Model):
    """
    Flat commission fallback (singleton row).

    - send: company takes send_percent_bps, agent nothing
    - withdraw: agent takes percent_bps, company takes withdraw_percent_bps
    """
    __tablename__ = "commission_rules"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    percent_bps = db.Column(db.Integer, nullable=False, default=0)
    send_percent_bps = db.Column(db.Integer, nullable=False, default=0)
    withdraw_percent_bps = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "percent": bps_to_percent(self.percent_bps),
            "send_percent": bps_to_percent(self.send_percent_bps),
            "withdraw_percent": bps_to_percent(self.withdraw_percent_bps),
            "updated_at": to_utc_z(self.updated_at),
        }


class TieredCommission(db.Model):
    """
    Active tier table for one transaction class. At most one per class.
    """
    __tablename__ = "tiered_commissions"
    __table_args__ = (
        db.UniqueConstraint("transaction_class", name="uq_tiered_commissions_class"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_class = db.Column(db.String(16), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    tiers = db.relationship(
        "CommissionTier",
        backref="table",
        lazy=True,
        order_by="CommissionTier.min_amount_cents",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "transaction_class": self.transaction_class,
            "tiers": [tier.to_dict() for tier in self.tiers],
            "updated_at": to_utc_z(self.updated_at),
        }


class CommissionTier(db.Model):
    __tablename__ = "commission_tiers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tiered_commission_id = db.Column(db.Integer, db.ForeignKey("tiered_commissions.id"), nullable=False, index=True)
    min_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    agent_percent_bps = db.Column(db.Integer, nullable=False, default=0)
    company_percent_bps = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "min_amount": cents_to_str(self.min_amount_cents),
            "agent_percent": bps_to_percent(self.agent_percent_bps),
            "company_percent": bps_to_percent(self.company_percent_bps),
        }
