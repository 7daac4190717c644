from __future__ import annotations

from ..extensions import db
from ..money import cents_to_str, bps_to_percent
from ..time_utils import to_utc_z


# Request kinds
REQUEST_AGENT_FROM_USER = "agent_from_user"
REQUEST_ADMIN_FROM_AGENT = "admin_from_agent"
VALID_REQUEST_KINDS = (REQUEST_AGENT_FROM_USER, REQUEST_ADMIN_FROM_AGENT)

# Request statuses; CANCELLED is reserved and no transition reaches it
REQUEST_STATUS_PENDING = "pending"
REQUEST_STATUS_APPROVED = "approved"
REQUEST_STATUS_REJECTED = "rejected"
REQUEST_STATUS_CANCELLED = "cancelled"


class WithdrawalRequest(db.Model):
    """
    Cash-out proposal awaiting counterparty approval.

    LIFECYCLE:
    1. PENDING: Created by an agent (against a user) or an admin (against an agent)
    2. APPROVED: Counterparty approved, balances moved, transaction written
    3. REJECTED: Counterparty rejected, or balance fell short at approval time

    WHY: Balances are NOT touched until approval. Commission is resolved when
    the request is made and frozen on the row, so the approver sees exactly
    what will be charged.

    PARTIES:
    - agent_id is always the agent.
    - user_id is the other party (the admin for admin_from_agent requests).
    - The approving counterparty is user_id for agent_from_user and agent_id
      for admin_from_agent; the approver is also the party debited.
    """
    __tablename__ = "withdrawal_requests"
    __table_args__ = (
        db.Index("ix_withdrawal_requests_user_status", "user_id", "status"),
        db.Index("ix_withdrawal_requests_agent_status", "agent_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(32), nullable=False, default=REQUEST_AGENT_FROM_USER)

    agent_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)

    amount_cents = db.Column(db.BigInteger, nullable=False)
    agent_commission_cents = db.Column(db.BigInteger, nullable=False, default=0)
    agent_commission_percent_bps = db.Column(db.Integer, nullable=False, default=0)
    company_commission_cents = db.Column(db.BigInteger, nullable=False, default=0)
    company_commission_percent_bps = db.Column(db.Integer, nullable=False, default=0)

    # Legacy fields kept for older clients; mirror the agent commission
    commission_cents = db.Column(db.BigInteger, nullable=False, default=0)
    commission_percent_bps = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=REQUEST_STATUS_PENDING)
    reason = db.Column(db.Text, nullable=True)
    description = db.Column(db.Text, nullable=True)

    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)
    intent_key = db.Column(db.String(32), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    agent = db.relationship("Account", foreign_keys=[agent_id])
    user = db.relationship("Account", foreign_keys=[user_id])
    transaction = db.relationship("TransactionRecord", foreign_keys=[transaction_id])

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def approver_id(self) -> int:
        return self.agent_id if self.kind == REQUEST_ADMIN_FROM_AGENT else self.user_id

    @property
    def payee_id(self) -> int:
        return self.user_id if self.kind == REQUEST_ADMIN_FROM_AGENT else self.agent_id

    @property
    def total_debit_cents(self) -> int:
        return self.amount_cents + self.agent_commission_cents + self.company_commission_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "agent_id": self.agent_id,
            "user_id": self.user_id,
            "amount_cents": self.amount_cents,
            "amount": cents_to_str(self.amount_cents),
            "agent_commission_cents": self.agent_commission_cents,
            "agent_commission_percent": bps_to_percent(self.agent_commission_percent_bps),
            "company_commission_cents": self.company_commission_cents,
            "company_commission_percent": bps_to_percent(self.company_commission_percent_bps),
            "commission_cents": self.commission_cents,
            "commission_percent": bps_to_percent(self.commission_percent_bps),
            "status": self.status,
            "reason": self.reason,
            "description": self.description,
            "transaction_id": self.transaction_id,
            "created_at": to_utc_z(self.created_at),
            "approved_at": to_utc_z(self.approved_at),
            "rejected_at": to_utc_z(self.rejected_at),
            "version_id": self.version_id,
        }
