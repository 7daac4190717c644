# Overview: Admin-to-admin "state push" transfers that wait for the receiving admin to confirm.

"""
Pending State Push

WHY: Admins move float between each other across states. The sender is
debited at once, but the money only lands when the receiving admin
confirms it physically arrived. Until then the sender may cancel or edit.

LIFECYCLE:
1. PENDING: Created; sender debited, receiver untouched
2. PENDING -> PENDING: Edited by the sender; only the debit delta moves
3. COMPLETED: Receiver confirmed; receiver credited receiver_credit_cents
4. CANCELLED: Sender cancelled; creation debit refunded, commission zeroed

COMMISSION:
The percent comes from a StateSetting (default: the sender's state).
- deducted_from_amount: debit = amount, credit = amount - commission,
  commission is company commission.
- added_on_top: debit = amount - commission, credit = amount, the sending
  admin keeps the commission (commission_cents).
"""

from __future__ import annotations

from dataclasses import dataclass

from moneypay.errors import (
    ForbiddenCounterpartyError,
    ForbiddenError,
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    RecipientNotFoundError,
    ValidationError,
)
from moneypay.extensions import db
from moneypay.models import Account, StateSetting, TransactionRecord
from moneypay.models.ledger import (
    COMMISSION_FIELDS,
    DEDUCTION_ADDED_ON_TOP,
    DEDUCTION_FROM_AMOUNT,
    KIND_ADMIN_STATE_PUSH,
    TX_STATUS_CANCELLED,
    TX_STATUS_COMPLETED,
    TX_STATUS_PENDING,
    VALID_DEDUCTION_MODES,
)
from moneypay.models.notifications import NOTIFICATION_SYSTEM
from moneypay.money import ensure_amount_cents, percent_of
from moneypay.services.account_service import ensure_active
from moneypay.services.concurrency import OperationContext, lock_accounts, lock_for_update, run_ledger_operation
from moneypay.services.ledger_service import currency_fields, money, write_record
from moneypay.time_utils import utcnow


VISIBLE_STATUSES = (TX_STATUS_PENDING, TX_STATUS_COMPLETED, TX_STATUS_CANCELLED)


@dataclass(frozen=True)
class StatePushFlow:
    percent_bps: int
    commission_cents: int
    sender_debit_cents: int
    receiver_credit_cents: int
    deduction_mode: str

    def commission_fields(self) -> dict:
        """Commission lands on the company side or the sending admin's side."""
        fields = dict.fromkeys(COMMISSION_FIELDS, 0)
        if self.deduction_mode == DEDUCTION_FROM_AMOUNT:
            fields["company_commission_cents"] = self.commission_cents
            fields["company_commission_percent_bps"] = self.percent_bps
        else:
            fields["commission_cents"] = self.commission_cents
            fields["commission_percent_bps"] = self.percent_bps
        return fields


def compute_state_push(amount_cents: int, percent_bps: int, deduction_mode: str) -> StatePushFlow:
    if deduction_mode not in VALID_DEDUCTION_MODES:
        raise ValidationError(f"Invalid deduction mode: {deduction_mode}")
    commission = percent_of(amount_cents, percent_bps)
    if deduction_mode == DEDUCTION_FROM_AMOUNT:
        debit, credit = amount_cents, amount_cents - commission
    else:
        debit, credit = amount_cents - commission, amount_cents
    return StatePushFlow(percent_bps, commission, debit, credit, deduction_mode)


def creation_debit(record: TransactionRecord) -> int:
    """Reconstruct what the sender was debited from the stored amount, commission and mode."""
    if record.deduction_mode == DEDUCTION_FROM_AMOUNT:
        return record.amount_cents
    return record.amount_cents - (record.commission_cents or 0)


def stored_percent(record: TransactionRecord) -> int:
    if record.deduction_mode == DEDUCTION_FROM_AMOUNT:
        return record.company_commission_percent_bps or 0
    return record.commission_percent_bps or 0


def _lock_push(transaction_id: int) -> TransactionRecord:
    record = (
        lock_for_update(db.session.query(TransactionRecord).filter_by(id=transaction_id))
        .populate_existing()
        .first()
    )
    if record is None or record.type != KIND_ADMIN_STATE_PUSH:
        raise NotFoundError("Transaction not found")
    return record


def _check_pending(record: TransactionRecord, actor_id: int, party_id: int, message: str) -> None:
    if actor_id != party_id:
        raise ForbiddenError(message)
    if record.status != TX_STATUS_PENDING:
        raise InvalidStateError("Transaction is not pending")


def _destination_admin(receiver_id) -> Account:
    receiver = db.session.get(Account, receiver_id) if receiver_id else None
    if receiver is None or not receiver.is_admin:
        raise RecipientNotFoundError("Destination admin not found")
    return receiver


# =============================================================================
# CREATE
# =============================================================================

def create_state_push(
    sender_id: int,
    receiver_id: int,
    amount_cents: int,
    *,
    state_id: int | None = None,
    deduction_mode: str = DEDUCTION_ADDED_ON_TOP,
    description: str | None = None,
    currency: dict | None = None,
) -> TransactionRecord:
    """
    Create a pending admin-to-admin transfer and debit the sender.

    Args:
        sender_id: Sending admin
        receiver_id: Receiving admin
        amount_cents: Transfer amount
        state_id: StateSetting supplying the percent (default: sender's state)
        deduction_mode: How the state commission is charged

    Returns:
        TransactionRecord: The pending record

    Raises:
        ForbiddenError: Sender is not an active admin
        RecipientNotFoundError: Receiver is not an admin
    """
    ensure_amount_cents(amount_cents)
    if deduction_mode not in VALID_DEDUCTION_MODES:
        raise ValidationError(f"Invalid deduction mode: {deduction_mode}")

    def _op(ctx: OperationContext):
        receiver = _destination_admin(receiver_id)
        accounts = lock_accounts(sender_id, receiver.id)
        sender = accounts.get(sender_id)
        if sender is None or not sender.is_admin:
            raise ForbiddenError("Sender must be an admin")
        ensure_active(sender)
        receiver = accounts[receiver.id]
        if receiver.id == sender.id:
            raise ForbiddenCounterpartyError()

        state = None
        resolved_state_id = state_id if state_id is not None else sender.state_id
        if resolved_state_id is not None:
            state = db.session.get(StateSetting, resolved_state_id)
            if state is None:
                raise NotFoundError("State not found")
        percent_bps = state.commission_percent_bps if state else 0

        flow = compute_state_push(amount_cents, percent_bps, deduction_mode)
        # Admins have unlimited send rights: no balance check on create.
        sender.balance_cents -= flow.sender_debit_cents

        record = write_record(
            ctx,
            KIND_ADMIN_STATE_PUSH,
            sender,
            receiver,
            amount_cents,
            status=TX_STATUS_PENDING,
            deduction_mode=deduction_mode,
            description=description or f"Admin transfer using state {state.name if state else '-'}",
            sender_debit_cents=flow.sender_debit_cents,
            receiver_credit_cents=flow.receiver_credit_cents,
            sender_balance_cents=sender.balance_cents,
            receiver_balance_cents=receiver.balance_cents,
            state_id=state.id if state else None,
            **flow.commission_fields(),
            **currency_fields(currency),
        )

        ctx.outbox.balance_changed(sender)
        ctx.outbox.request_changed(record.id, record.status)
        ctx.outbox.notify(
            receiver.id, "Admin Transfer Pending",
            f"You have a pending transfer of {money(flow.receiver_credit_cents)} from admin {sender.name}",
            related_record_id=record.id, kind=NOTIFICATION_SYSTEM,
        )
        ctx.outbox.notify(
            sender.id, "Admin Transfer Created",
            f"You created a pending transfer of {money(amount_cents)} to admin {receiver.name}",
            related_record_id=record.id, kind=NOTIFICATION_SYSTEM,
        )
        ctx.outbox.text(
            receiver.phone,
            f"MoneyPay: You have a pending transfer of {money(flow.receiver_credit_cents)} from admin {sender.name}",
        )
        return record

    return run_ledger_operation("create_state_push", _op, actor_id=sender_id)


# =============================================================================
# RECEIVE
# =============================================================================

def receive_state_push(transaction_id: int, actor_id: int) -> TransactionRecord:
    """Designated receiver confirms the push; credits the stored receiver_credit_cents."""
    def _op(ctx: OperationContext):
        record = _lock_push(transaction_id)
        _check_pending(record, actor_id, record.receiver_id, "Only the receiver can mark as received")

        receiver = lock_accounts(record.receiver_id)[record.receiver_id]
        ensure_active(receiver)
        receiver.balance_cents += record.receiver_credit_cents

        record.status = TX_STATUS_COMPLETED
        record.completed_at = utcnow()
        record.receiver_balance_cents = receiver.balance_cents

        ctx.outbox.balance_changed(receiver)
        ctx.outbox.request_changed(record.id, record.status)
        ctx.outbox.notify(
            receiver.id, "Transfer Received",
            f"You received {money(record.receiver_credit_cents)} from admin transfer",
            related_record_id=record.id, kind=NOTIFICATION_SYSTEM,
        )
        ctx.outbox.text(receiver.phone, f"MoneyPay: You have received {money(record.receiver_credit_cents)}")
        return record

    return run_ledger_operation("receive_state_push", _op, actor_id=actor_id)


# =============================================================================
# CANCEL
# =============================================================================

def cancel_state_push(transaction_id: int, actor_id: int) -> TransactionRecord:
    """Original sender cancels; refunds exactly the creation debit."""
    def _op(ctx: OperationContext):
        record = _lock_push(transaction_id)
        _check_pending(record, actor_id, record.sender_id, "Only the sender can cancel this transfer")

        sender = lock_accounts(record.sender_id)[record.sender_id]
        ensure_active(sender)
        sender.balance_cents += creation_debit(record)

        record.status = TX_STATUS_CANCELLED
        record.cancelled_at = utcnow()
        record.sender_balance_cents = sender.balance_cents
        # Cancelled pushes must not count toward commission totals.
        for name in COMMISSION_FIELDS:
            setattr(record, name, 0)

        ctx.outbox.balance_changed(sender)
        ctx.outbox.request_changed(record.id, record.status)
        ctx.outbox.notify(
            sender.id, "Transfer Cancelled", f"You cancelled the pending transfer of {money(record.amount_cents)}",
            related_record_id=record.id, kind=NOTIFICATION_SYSTEM,
        )
        ctx.outbox.notify(
            record.receiver_id, "Pending Transfer Cancelled",
            f"Pending transfer of {money(record.receiver_credit_cents)} was cancelled by sender",
            related_record_id=record.id, kind=NOTIFICATION_SYSTEM,
        )
        ctx.outbox.text(
            sender.phone, f"MoneyPay: Your pending transfer of {money(record.amount_cents)} was cancelled and refunded."
        )
        return record

    return run_ledger_operation("cancel_state_push", _op, actor_id=actor_id)


# =============================================================================
# EDIT
# =============================================================================

def edit_state_push(
    transaction_id: int,
    actor_id: int,
    *,
    amount_cents: int | None = None,
    receiver_id: int | None = None,
    deduction_mode: str | None = None,
    description: str | None = None,
) -> TransactionRecord:
    """
    Original sender rewrites a pending push in place.

    The split is recomputed with the percent stored at creation; only the
    difference between the new and the current sender debit touches the
    sender's balance.

    Raises:
        InsufficientBalanceError: Extra debit exceeds the sender's balance
    """
    if amount_cents is not None:
        ensure_amount_cents(amount_cents)
    if deduction_mode is not None and deduction_mode not in VALID_DEDUCTION_MODES:
        raise ValidationError(f"Invalid deduction mode: {deduction_mode}")

    def _op(ctx: OperationContext):
        record = _lock_push(transaction_id)
        _check_pending(record, actor_id, record.sender_id, "Only the sender can edit this transaction")

        new_receiver_id = record.receiver_id
        if receiver_id is not None and receiver_id != record.receiver_id:
            new_receiver_id = _destination_admin(receiver_id).id
        if new_receiver_id == record.sender_id:
            raise ForbiddenCounterpartyError()

        sender = lock_accounts(record.sender_id)[record.sender_id]
        ensure_active(sender)

        flow = compute_state_push(
            amount_cents if amount_cents is not None else record.amount_cents,
            stored_percent(record),
            deduction_mode or record.deduction_mode,
        )
        delta = flow.sender_debit_cents - creation_debit(record)
        if delta > 0 and sender.balance_cents < delta:
            raise InsufficientBalanceError("Insufficient sender balance for updated amount")
        sender.balance_cents -= delta

        previous_receiver_id = record.receiver_id
        record.amount_cents = amount_cents if amount_cents is not None else record.amount_cents
        record.receiver_id = new_receiver_id
        record.deduction_mode = flow.deduction_mode
        record.sender_debit_cents = flow.sender_debit_cents
        record.receiver_credit_cents = flow.receiver_credit_cents
        for name, value in flow.commission_fields().items():
            setattr(record, name, value)
        if description is not None:
            record.description = description
        record.sender_balance_cents = sender.balance_cents

        if delta:
            ctx.outbox.balance_changed(sender)
        ctx.outbox.request_changed(record.id, record.status)
        ctx.outbox.notify(
            sender.id, "Transfer Updated", f"You updated the pending transfer {record.reference}",
            related_record_id=record.id, kind=NOTIFICATION_SYSTEM,
        )
        ctx.outbox.notify(
            new_receiver_id, "Pending Transfer Updated",
            f"A pending transfer to you ({money(flow.receiver_credit_cents)}) was updated by the sender.",
            related_record_id=record.id, kind=NOTIFICATION_SYSTEM,
        )
        if previous_receiver_id != new_receiver_id:
            ctx.outbox.notify(
                previous_receiver_id, "Pending Transfer Cancelled",
                "A pending transfer to you was redirected by the sender",
                related_record_id=record.id, kind=NOTIFICATION_SYSTEM,
            )
        return record

    return run_ledger_operation("edit_state_push", _op, actor_id=actor_id)


# =============================================================================
# QUERIES
# =============================================================================

def list_state_pushes(account_id: int) -> list[TransactionRecord]:
    """Pushes the account sent or receives, newest first."""
    return (
        db.session.query(TransactionRecord)
        .filter(
            TransactionRecord.type == KIND_ADMIN_STATE_PUSH,
            TransactionRecord.status.in_(VISIBLE_STATUSES),
            db.or_(TransactionRecord.sender_id == account_id, TransactionRecord.receiver_id == account_id),
        )
        .order_by(TransactionRecord.created_at.desc(), TransactionRecord.id.desc())
        .all()
    )


def count_pending_state_pushes(receiver_id: int) -> int:
    return (
        db.session.query(TransactionRecord)
        .filter_by(type=KIND_ADMIN_STATE_PUSH, status=TX_STATUS_PENDING, receiver_id=receiver_id)
        .count()
    )
