from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..money import cents_to_str, bps_to_percent
from ..time_utils import to_utc_z


# Transaction kinds (closed set)
KIND_TRANSFER = "transfer"
KIND_TOPUP = "topup"
KIND_WITHDRAWAL = "withdrawal"
KIND_USER_WITHDRAW = "user_withdraw"
KIND_AGENT_CASH_OUT = "agent_cash_out_money"
KIND_ADMIN_PUSH = "admin_push"
KIND_ADMIN_STATE_PUSH = "admin_state_push"
KIND_MONEY_EXCHANGE = "money_exchange"

# Transaction statuses
TX_STATUS_PENDING = "pending"
TX_STATUS_COMPLETED = "completed"
TX_STATUS_FAILED = "failed"
TX_STATUS_CANCELLED = "cancelled"
VALID_TX_STATUSES = (TX_STATUS_PENDING, TX_STATUS_COMPLETED, TX_STATUS_FAILED, TX_STATUS_CANCELLED)

# How commission is charged
DEDUCTION_ADDED_ON_TOP = "added_on_top"
DEDUCTION_FROM_AMOUNT = "deducted_from_amount"
VALID_DEDUCTION_MODES = (DEDUCTION_ADDED_ON_TOP, DEDUCTION_FROM_AMOUNT)

COMMISSION_FIELDS = (
    "commission_cents",
    "commission_percent_bps",
    "agent_commission_cents",
    "agent_commission_percent_bps",
    "company_commission_cents",
    "company_commission_percent_bps",
)


@dataclass(frozen=True)
class TransactionKindRule:
    requires_receiver: bool
    allows_commission: bool
    initial_status: str = TX_STATUS_COMPLETED
    moves_money: bool = True


TRANSACTION_KINDS: dict[str, TransactionKindRule] = {
    KIND_TRANSFER: TransactionKindRule(requires_receiver=True, allows_commission=True),
    KIND_TOPUP: TransactionKindRule(requires_receiver=True, allows_commission=False),
    KIND_WITHDRAWAL: TransactionKindRule(requires_receiver=True, allows_commission=False),
    KIND_USER_WITHDRAW: TransactionKindRule(requires_receiver=True, allows_commission=True),
    KIND_AGENT_CASH_OUT: TransactionKindRule(requires_receiver=True, allows_commission=True),
    KIND_ADMIN_PUSH: TransactionKindRule(requires_receiver=True, allows_commission=False),
    KIND_ADMIN_STATE_PUSH: TransactionKindRule(
        requires_receiver=True,
        allows_commission=True,
        initial_status=TX_STATUS_PENDING,
    ),
    KIND_MONEY_EXCHANGE: TransactionKindRule(requires_receiver=False, allows_commission=False, moves_money=False),
}


class TransactionRecord(db.Model):
    """
    One money movement in the auditable ledger.

    LIFECYCLE:
    - admin_state_push: PENDING -> COMPLETED (receiver confirms) or CANCELLED (sender)
    - every other kind is written COMPLETED

    DESIGN PRINCIPLES:
    - Rows are never deleted.
    - sender_balance_cents / receiver_balance_cents snapshot the balances
      right after the mutation that produced them.
    - deduction_mode records how commission was charged so a cancel or edit
      can reverse the sender debit exactly.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_sender_created", "sender_id", "created_at"),
        db.Index("ix_transactions_receiver_created", "receiver_id", "created_at"),
        db.Index("ix_transactions_type_status", "type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(40), nullable=False, unique=True)

    type = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=TX_STATUS_COMPLETED)
    description = db.Column(db.Text, nullable=True)

    sender_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    receiver_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)

    amount_cents = db.Column(db.BigInteger, nullable=False)
    deduction_mode = db.Column(db.String(32), nullable=False, default=DEDUCTION_ADDED_ON_TOP)
    sender_debit_cents = db.Column(db.BigInteger, nullable=False, default=0)
    receiver_credit_cents = db.Column(db.BigInteger, nullable=True)

    # Legacy flat commission; for state pushes, the commission kept by the sending admin
    commission_cents = db.Column(db.BigInteger, nullable=False, default=0)
    commission_percent_bps = db.Column(db.Integer, nullable=False, default=0)
    agent_commission_cents = db.Column(db.BigInteger, nullable=False, default=0)
    agent_commission_percent_bps = db.Column(db.Integer, nullable=False, default=0)
    company_commission_cents = db.Column(db.BigInteger, nullable=False, default=0)
    company_commission_percent_bps = db.Column(db.Integer, nullable=False, default=0)

    sender_balance_cents = db.Column(db.BigInteger, nullable=True)
    receiver_balance_cents = db.Column(db.BigInteger, nullable=True)

    # Currency recorded at time of transfer (no settlement)
    currency_code = db.Column(db.String(8), nullable=True)
    currency_symbol = db.Column(db.String(8), nullable=True)
    exchange_rate = db.Column(db.Numeric(18, 8), nullable=True)
    currency_tier = db.Column(db.String(64), nullable=True)
    # money_exchange only: target side of the conversion
    to_currency_code = db.Column(db.String(8), nullable=True)
    converted_amount_cents = db.Column(db.BigInteger, nullable=True)

    sender_location = db.Column(db.JSON, nullable=True)
    receiver_location = db.Column(db.JSON, nullable=True)

    state_id = db.Column(db.Integer, db.ForeignKey("state_settings.id"), nullable=True)
    intent_key = db.Column(db.String(32), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    sender = db.relationship("Account", foreign_keys=[sender_id])
    receiver = db.relationship("Account", foreign_keys=[receiver_id])
    state = db.relationship("StateSetting", foreign_keys=[state_id])

    __mapper_args__ = {"version_id_col": version_id}

    @classmethod
    def build(cls, kind: str, **fields) -> "TransactionRecord":
        """
        Construct a record for a transaction kind, enforcing that kind's shape.

        Raises ValueError when the fields do not fit the kind; that is a
        programming error in the calling service, not a client error.
        """
        rule = TRANSACTION_KINDS.get(kind)
        if rule is None:
            raise ValueError(f"Unknown transaction kind: {kind}")

        if rule.requires_receiver and not fields.get("receiver_id"):
            raise ValueError(f"{kind} requires a receiver")
        if not rule.requires_receiver and fields.get("receiver_id"):
            raise ValueError(f"{kind} does not take a receiver")

        if not rule.allows_commission:
            charged = [name for name in COMMISSION_FIELDS if fields.get(name)]
            if charged:
                raise ValueError(f"{kind} cannot carry commission ({', '.join(charged)})")

        mode = fields.setdefault("deduction_mode", DEDUCTION_ADDED_ON_TOP)
        if mode not in VALID_DEDUCTION_MODES:
            raise ValueError(f"Invalid deduction mode: {mode}")

        amount_cents = fields.get("amount_cents")
        if not isinstance(amount_cents, int) or amount_cents <= 0:
            raise ValueError("amount_cents must be a positive integer")

        fields.setdefault("status", rule.initial_status)
        if fields["status"] != rule.initial_status:
            raise ValueError(f"{kind} must start {rule.initial_status}")

        return cls(type=kind, **fields)

    @property
    def kind_rule(self) -> TransactionKindRule:
        return TRANSACTION_KINDS[self.type]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference": self.reference,
            "type": self.type,
            "status": self.status,
            "description": self.description,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "amount_cents": self.amount_cents,
            "amount": cents_to_str(self.amount_cents),
            "deduction_mode": self.deduction_mode,
            "sender_debit_cents": self.sender_debit_cents,
            "receiver_credit_cents": self.receiver_credit_cents,
            "commission_cents": self.commission_cents,
            "commission_percent": bps_to_percent(self.commission_percent_bps),
            "agent_commission_cents": self.agent_commission_cents,
            "agent_commission_percent": bps_to_percent(self.agent_commission_percent_bps),
            "company_commission_cents": self.company_commission_cents,
            "company_commission_percent": bps_to_percent(self.company_commission_percent_bps),
            "sender_balance_cents": self.sender_balance_cents,
            "receiver_balance_cents": self.receiver_balance_cents,
            "currency_code": self.currency_code,
            "currency_symbol": self.currency_symbol,
            "exchange_rate": str(self.exchange_rate) if self.exchange_rate is not None else None,
            "currency_tier": self.currency_tier,
            "to_currency_code": self.to_currency_code,
            "converted_amount_cents": self.converted_amount_cents,
            "sender_location": self.sender_location,
            "receiver_location": self.receiver_location,
            "state_id": self.state_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "version_id": self.version_id,
        }


# Intent journal statuses
INTENT_OPEN = "open"
INTENT_COMMITTED = "committed"
INTENT_ABORTED = "aborted"


class LedgerIntent(db.Model):
    """
    Write-ahead journal entry for one logical ledger operation.

    WHY: An operation touches several rows. The intent is committed OPEN
    before any balance moves; the mutation and the COMMITTED transition commit
    together. An intent still OPEN after a crash is resolved by
    reconciliation on restart.
    """
    __tablename__ = "ledger_intents"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(32), nullable=False, unique=True)
    operation = db.Column(db.String(64), nullable=False)
    actor_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=INTENT_OPEN, index=True)
    error_code = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "operation": self.operation,
            "actor_id": self.actor_id,
            "status": self.status,
            "error_code": self.error_code,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at),
        }
