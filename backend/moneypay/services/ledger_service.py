# Overview: Ledger engine; balance mutation and transaction records for every completed money movement.

"""
Ledger Engine

WHY: Every money movement debits and credits account rows and appends one
TransactionRecord describing it. Both happen inside one database
transaction (see run_ledger_operation), so a record is never completed
without its balance mutation and vice versa.

DESIGN PRINCIPLES:
- Amounts are integer cents; commission is resolved before the mutation.
- Accounts are locked in ascending id order and re-read before any check.
- Users and agents never go below zero. Admins have unlimited send rights.
- deduction_mode is stored on the record:
    added_on_top:          debit = amount + agent + company, credit = amount + agent
    deducted_from_amount:  debit = amount,                   credit = amount - company
- Notifications, SMS and broadcasts are queued on ctx.outbox and delivered
  after commit.
"""

from __future__ import annotations

import secrets
import time
from decimal import Decimal, InvalidOperation

from flask import current_app

from moneypay.errors import (
    ForbiddenCounterpartyError,
    ForbiddenError,
    InsufficientBalanceError,
    NotFoundError,
    RecipientNotFoundError,
    ValidationError,
)
from moneypay.extensions import db
from moneypay.models import Account, TransactionRecord
from moneypay.models.accounts import ROLE_ADMIN, ROLE_USER
from moneypay.models.commissions import CLASS_SEND, CLASS_WITHDRAW
from moneypay.models.ledger import (
    DEDUCTION_ADDED_ON_TOP,
    DEDUCTION_FROM_AMOUNT,
    KIND_ADMIN_PUSH,
    KIND_AGENT_CASH_OUT,
    KIND_MONEY_EXCHANGE,
    KIND_TOPUP,
    KIND_TRANSFER,
    KIND_USER_WITHDRAW,
    KIND_WITHDRAWAL,
    TX_STATUS_PENDING,
    VALID_DEDUCTION_MODES,
)
from moneypay.models.notifications import NOTIFICATION_SYSTEM, NOTIFICATION_TRANSACTION
from moneypay.money import ensure_amount_cents, format_amount
from moneypay.services.account_service import ensure_active, find_agent_by_code, find_by_phone
from moneypay.services.commission_service import NO_COMMISSION, CommissionSplit, resolve
from moneypay.services.concurrency import OperationContext, lock_accounts, run_ledger_operation
from moneypay.time_utils import utcnow


REFERENCE_PREFIX = "TXN"
EXCHANGE_REFERENCE_PREFIX = "ME-"
REFERENCE_ATTEMPTS = 10
DEFAULT_HISTORY_LIMIT = 50


def money(cents: int) -> str:
    """Human-readable amount for notification and SMS text."""
    return format_amount(cents, current_app.config.get("CURRENCY_LABEL", "SSP"))


def generate_reference(prefix: str = REFERENCE_PREFIX) -> str:
    """
    Public transaction id: prefix + last 6 digits of the ms timestamp + 3 random digits.

    Collisions are possible under load, so the candidate is checked against
    existing records.
    """
    for _ in range(REFERENCE_ATTEMPTS):
        stamp = str(int(time.time() * 1000))[-6:]
        candidate = f"{prefix}{stamp}{secrets.randbelow(1000):03d}"
        if not db.session.query(TransactionRecord.id).filter_by(reference=candidate).first():
            return candidate
    raise ValidationError("Could not allocate a transaction reference, please retry")


def compute_flow(amount_cents: int, split: CommissionSplit, deduction_mode: str) -> tuple[int, int]:
    """Return (sender_debit_cents, receiver_credit_cents) for a mode."""
    if deduction_mode not in VALID_DEDUCTION_MODES:
        raise ValueError(f"Invalid deduction mode: {deduction_mode}")
    if deduction_mode == DEDUCTION_FROM_AMOUNT:
        return amount_cents, amount_cents - split.company_cents
    return amount_cents + split.agent_cents + split.company_cents, amount_cents + split.agent_cents


def compute_counter_withdraw_flow(amount_cents: int, split: CommissionSplit) -> tuple[int, int]:
    """
    Cash-out at an agent counter: the user covers the company commission only,
    the agent commission is credited on top of the amount.
    """
    return amount_cents + split.company_cents, amount_cents + split.agent_cents


def require_funds(account: Account, debit_cents: int, message: str | None = None) -> None:
    if account.role != ROLE_ADMIN and account.balance_cents < debit_cents:
        raise InsufficientBalanceError(message)


def _require_role(account: Account, *roles: str) -> None:
    if account.role not in roles:
        raise ForbiddenError(f"Only {' or '.join(roles)} accounts may do this")


def write_record(ctx: OperationContext, kind: str, sender: Account, receiver: Account | None, amount_cents: int,
                 **fields) -> TransactionRecord:
    """Build, add and flush a record so its id is available to the outbox."""
    record = TransactionRecord.build(
        kind,
        reference=fields.pop("reference", None) or generate_reference(),
        sender_id=sender.id,
        receiver_id=receiver.id if receiver is not None else None,
        amount_cents=amount_cents,
        sender_location=sender.current_location,
        receiver_location=receiver.current_location if receiver is not None else None,
        intent_key=ctx.intent_key,
        **fields,
    )
    if record.status != TX_STATUS_PENDING and record.completed_at is None:
        record.completed_at = utcnow()
    db.session.add(record)
    db.session.flush()
    return record


def transfer(
    ctx: OperationContext,
    sender: Account,
    receiver: Account,
    amount_cents: int,
    split: CommissionSplit = NO_COMMISSION,
    *,
    kind: str = KIND_TRANSFER,
    deduction_mode: str = DEDUCTION_ADDED_ON_TOP,
    insufficient_message: str | None = None,
    flow: tuple[int, int] | None = None,
    **fields,
) -> TransactionRecord:
    """
    Move money between two locked accounts and append a completed record.

    Args:
        ctx: Operation context of the surrounding ledger operation
        sender: Locked sender row
        receiver: Locked receiver row
        amount_cents: Positive amount
        split: Resolved commission
        kind: Transaction kind
        deduction_mode: How commission is charged
        flow: Precomputed (debit, credit) overriding the deduction mode

    Returns:
        TransactionRecord: The completed record

    Raises:
        ForbiddenCounterpartyError: Sender and receiver are the same account
        InsufficientBalanceError: Non-admin sender cannot cover the debit
    """
    if sender.id == receiver.id:
        raise ForbiddenCounterpartyError()

    debit_cents, credit_cents = flow or compute_flow(amount_cents, split, deduction_mode)
    require_funds(sender, debit_cents, insufficient_message)

    sender.balance_cents -= debit_cents
    receiver.balance_cents += credit_cents

    record = write_record(
        ctx,
        kind,
        sender,
        receiver,
        amount_cents,
        deduction_mode=deduction_mode,
        sender_debit_cents=debit_cents,
        receiver_credit_cents=credit_cents,
        agent_commission_cents=split.agent_cents,
        agent_commission_percent_bps=split.agent_percent_bps,
        company_commission_cents=split.company_cents,
        company_commission_percent_bps=split.company_percent_bps,
        sender_balance_cents=sender.balance_cents,
        receiver_balance_cents=receiver.balance_cents,
        **fields,
    )
    ctx.outbox.balance_changed(sender)
    ctx.outbox.balance_changed(receiver)
    return record


# =============================================================================
# SEND MONEY
# =============================================================================

def send_money(
    sender_id: int,
    recipient_phone: str,
    amount_cents: int,
    *,
    description: str | None = None,
    deduction_mode: str = DEDUCTION_ADDED_ON_TOP,
    currency: dict | None = None,
) -> TransactionRecord:
    """
    Person-to-person transfer with the send commission.

    Users may only send to other users; agents and admins may send to anyone.
    """
    ensure_amount_cents(amount_cents)
    if deduction_mode not in VALID_DEDUCTION_MODES:
        raise ValidationError(f"Invalid deduction mode: {deduction_mode}")

    def _op(ctx: OperationContext):
        recipient = find_by_phone(recipient_phone)
        if recipient is None:
            raise RecipientNotFoundError()

        accounts = lock_accounts(sender_id, recipient.id)
        sender = accounts.get(sender_id)
        if sender is None:
            raise NotFoundError("Sender not found")
        ensure_active(sender)
        recipient = accounts[recipient.id]

        if sender.id == recipient.id:
            raise ForbiddenCounterpartyError()
        if sender.role == ROLE_USER and recipient.role != ROLE_USER:
            raise ForbiddenCounterpartyError()

        split = resolve(amount_cents, CLASS_SEND)
        record = transfer(
            ctx,
            sender,
            recipient,
            amount_cents,
            split,
            kind=KIND_TRANSFER,
            deduction_mode=deduction_mode,
            description=description,
            **currency_fields(currency),
        )

        ctx.outbox.notify(
            sender.id, "Money Sent", f"You sent {money(amount_cents)} to {recipient.phone}",
            related_record_id=record.id, kind=NOTIFICATION_TRANSACTION,
        )
        ctx.outbox.notify(
            recipient.id, "Money Received", f"You received {money(record.receiver_credit_cents)} from {sender.phone}",
            related_record_id=record.id, kind=NOTIFICATION_TRANSACTION,
        )
        ctx.outbox.text(sender.phone, f"MoneyPay: You sent {money(amount_cents)} to {recipient.phone}. TX: {record.reference}")
        ctx.outbox.text(
            recipient.phone,
            f"MoneyPay: You received {money(record.receiver_credit_cents)} from {sender.phone}. TX: {record.reference}",
        )
        return record

    return run_ledger_operation("send_money", _op, actor_id=sender_id)


def currency_fields(currency: dict | None) -> dict:
    if not currency:
        return {}
    fields = {
        "currency_code": currency.get("code"),
        "currency_symbol": currency.get("symbol"),
        "currency_tier": currency.get("tier"),
    }
    rate = currency.get("exchange_rate")
    if rate is not None:
        fields["exchange_rate"] = _parse_rate(rate)
    return fields


def _parse_rate(value) -> Decimal:
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("Invalid exchange rate")
    if not rate.is_finite() or rate <= 0:
        raise ValidationError("Invalid exchange rate")
    return rate


# =============================================================================
# USER WITHDRAW TO AGENT
# =============================================================================

def withdraw_user_to_agent(user_id: int, agent_code: str, amount_cents: int) -> TransactionRecord:
    """
    A user cashes out at an agent, identified by the agent's public number.

    The user pays amount + company commission; the agent is credited
    amount + agent commission.
    """
    ensure_amount_cents(amount_cents)

    def _op(ctx: OperationContext):
        agent = find_agent_by_code(agent_code)
        if agent is None:
            raise NotFoundError("Agent not found")

        accounts = lock_accounts(user_id, agent.id)
        user = accounts.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        ensure_active(user)
        agent = accounts[agent.id]

        split = resolve(amount_cents, CLASS_WITHDRAW)
        record = transfer(
            ctx,
            user,
            agent,
            amount_cents,
            split,
            kind=KIND_USER_WITHDRAW,
            flow=compute_counter_withdraw_flow(amount_cents, split),
            commission_cents=split.agent_cents,
            commission_percent_bps=split.agent_percent_bps,
        )

        ctx.outbox.notify(
            user.id, "Withdrawal Initiated", f"Withdrawal of {money(amount_cents)} initiated. Meet agent {agent.name}",
            related_record_id=record.id, kind=NOTIFICATION_TRANSACTION,
        )
        ctx.outbox.notify(
            agent.id, "Withdrawal Request", f"{user.name} requested withdrawal of {money(amount_cents)}",
            related_record_id=record.id, kind=NOTIFICATION_TRANSACTION,
        )
        return record

    return run_ledger_operation("withdraw_user_to_agent", _op, actor_id=user_id)


# =============================================================================
# ADMIN OPERATIONS
# =============================================================================

def top_up(admin_id: int, account_id: int, amount_cents: int, *, description: str | None = None) -> TransactionRecord:
    """Credit an account out of admin float. The admin balance is not debited."""
    ensure_amount_cents(amount_cents)

    def _op(ctx: OperationContext):
        accounts = lock_accounts(admin_id, account_id)
        admin = accounts.get(admin_id)
        target = accounts.get(account_id)
        if admin is None:
            raise NotFoundError("Admin not found")
        _require_role(admin, ROLE_ADMIN)
        ensure_active(admin)
        if target is None:
            raise RecipientNotFoundError("User not found")
        if target.id == admin.id:
            raise ForbiddenCounterpartyError()

        target.balance_cents += amount_cents
        record = write_record(
            ctx,
            KIND_TOPUP,
            admin,
            target,
            amount_cents,
            description=description,
            sender_debit_cents=0,
            receiver_credit_cents=amount_cents,
            sender_balance_cents=admin.balance_cents,
            receiver_balance_cents=target.balance_cents,
        )

        ctx.outbox.balance_changed(target)
        ctx.outbox.notify(
            target.id, "Account Topped Up", f"Your account has been topped up with {money(amount_cents)}",
            related_record_id=record.id, kind=NOTIFICATION_SYSTEM,
        )
        ctx.outbox.text(target.phone, f"MoneyPay: Your account has been credited with {money(amount_cents)}")
        return record

    return run_ledger_operation("top_up", _op, actor_id=admin_id)


def admin_withdraw_from_user(admin_id: int, account_id: int, amount_cents: int, *,
                             description: str | None = None) -> TransactionRecord:
    """Admin hands out cash and debits the account. The admin is not credited."""
    ensure_amount_cents(amount_cents)

    def _op(ctx: OperationContext):
        accounts = lock_accounts(admin_id, account_id)
        admin = accounts.get(admin_id)
        target = accounts.get(account_id)
        if admin is None:
            raise NotFoundError("Admin not found")
        _require_role(admin, ROLE_ADMIN)
        ensure_active(admin)
        if target is None:
            raise NotFoundError("User not found")
        if target.id == admin.id:
            raise ForbiddenCounterpartyError()
        require_funds(target, amount_cents, "Insufficient user balance")

        target.balance_cents -= amount_cents
        record = write_record(
            ctx,
            KIND_WITHDRAWAL,
            target,
            admin,
            amount_cents,
            description=description,
            sender_debit_cents=amount_cents,
            receiver_credit_cents=0,
            sender_balance_cents=target.balance_cents,
            receiver_balance_cents=admin.balance_cents,
        )

        ctx.outbox.balance_changed(target)
        ctx.outbox.notify(
            target.id, "Withdrawal Processed", f"{money(amount_cents)} has been withdrawn from your account",
            related_record_id=record.id, kind=NOTIFICATION_SYSTEM,
        )
        ctx.outbox.text(target.phone, f"MoneyPay: {money(amount_cents)} has been withdrawn from your account")
        return record

    return run_ledger_operation("admin_withdraw_from_user", _op, actor_id=admin_id)


def push_between_users(admin_id: int, from_phone: str, to_phone: str, amount_cents: int, *,
                       description: str | None = None) -> TransactionRecord:
    """Admin moves funds from one account to another without commission."""
    ensure_amount_cents(amount_cents)

    def _op(ctx: OperationContext):
        admin = db.session.get(Account, admin_id)
        if admin is None:
            raise NotFoundError("Admin not found")
        _require_role(admin, ROLE_ADMIN)
        ensure_active(admin)

        if (from_phone or "").strip() == (to_phone or "").strip():
            raise ForbiddenCounterpartyError("Source and destination cannot be the same")
        source = find_by_phone(from_phone)
        if source is None:
            raise NotFoundError("Source user not found")
        destination = find_by_phone(to_phone)
        if destination is None:
            raise RecipientNotFoundError("Destination user not found")

        accounts = lock_accounts(source.id, destination.id)
        source, destination = accounts[source.id], accounts[destination.id]

        record = transfer(
            ctx,
            source,
            destination,
            amount_cents,
            kind=KIND_ADMIN_PUSH,
            insufficient_message="Insufficient balance on source user",
            description=description or f"Admin pushed money from {source.phone} to {destination.phone}",
        )

        ctx.outbox.notify(
            source.id, "Debit by Admin", f"{money(amount_cents)} was debited from your account by admin",
            related_record_id=record.id, kind=NOTIFICATION_SYSTEM,
        )
        ctx.outbox.notify(
            destination.id, "Credit by Admin", f"{money(amount_cents)} was credited to your account by admin",
            related_record_id=record.id, kind=NOTIFICATION_SYSTEM,
        )
        ctx.outbox.text(source.phone, f"MoneyPay: {money(amount_cents)} debited from your account by admin.")
        ctx.outbox.text(destination.phone, f"MoneyPay: {money(amount_cents)} credited to your account by admin.")
        return record

    return run_ledger_operation("push_between_users", _op, actor_id=admin_id)


def execute_agent_cash_out(ctx: OperationContext, admin: Account, agent: Account, amount_cents: int,
                           *, description: str | None = None) -> TransactionRecord:
    """
    Move cash-out money from a locked agent to a locked admin, no commission.

    Runs inside the caller's ledger operation.
    """
    record = transfer(
        ctx,
        agent,
        admin,
        amount_cents,
        kind=KIND_AGENT_CASH_OUT,
        insufficient_message="Insufficient agent balance",
        description=description,
    )
    ctx.outbox.notify(
        agent.id, "Withdrawal Processed by Admin", f"Admin withdrew {money(amount_cents)} from your account.",
        related_record_id=record.id, kind=NOTIFICATION_TRANSACTION,
    )
    ctx.outbox.text(agent.phone, f"MoneyPay: Admin withdrew {money(amount_cents)} from your account.")
    return record


def record_money_exchange(
    admin_id: int,
    amount_cents: int,
    *,
    from_currency: str,
    to_currency: str,
    converted_amount_cents: int,
    exchange_rate=None,
    price_mode: str | None = None,
) -> TransactionRecord:
    """
    Record a currency conversion done at the counter. No balance moves.
    """
    ensure_amount_cents(amount_cents)
    ensure_amount_cents(converted_amount_cents)
    from_currency = (from_currency or "").strip().upper()
    to_currency = (to_currency or "").strip().upper()
    if not from_currency or not to_currency:
        raise ValidationError("from_currency and to_currency are required")

    def _op(ctx: OperationContext):
        admin = db.session.get(Account, admin_id)
        if admin is None:
            raise NotFoundError("Admin not found")
        _require_role(admin, ROLE_ADMIN)
        ensure_active(admin)

        description = f"{from_currency} to {to_currency}: {amount_cents / 100:.2f} -> {converted_amount_cents / 100:.2f}"
        if price_mode:
            description = f"{description} ({price_mode})"

        return write_record(
            ctx,
            KIND_MONEY_EXCHANGE,
            admin,
            None,
            amount_cents,
            reference=generate_reference(EXCHANGE_REFERENCE_PREFIX),
            description=description,
            sender_debit_cents=0,
            currency_code=from_currency,
            to_currency_code=to_currency,
            converted_amount_cents=converted_amount_cents,
            exchange_rate=_parse_rate(exchange_rate) if exchange_rate is not None else Decimal(1),
        )

    return run_ledger_operation("record_money_exchange", _op, actor_id=admin_id)


# =============================================================================
# QUERIES
# =============================================================================

def get_transaction(transaction_id: int) -> TransactionRecord:
    record = db.session.get(TransactionRecord, transaction_id)
    if record is None:
        raise NotFoundError("Transaction not found")
    return record


def list_transactions(account_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> list[TransactionRecord]:
    """Latest records where the account is sender or receiver."""
    return (
        db.session.query(TransactionRecord)
        .filter(db.or_(TransactionRecord.sender_id == account_id, TransactionRecord.receiver_id == account_id))
        .order_by(TransactionRecord.created_at.desc(), TransactionRecord.id.desc())
        .limit(limit)
        .all()
    )


def list_all_transactions(limit: int = 200, kind: str | None = None) -> list[TransactionRecord]:
    query = db.session.query(TransactionRecord)
    if kind:
        query = query.filter_by(type=kind)
    return query.order_by(TransactionRecord.id.desc()).limit(limit).all()
