# Overview: Withdrawal-request workflow; cash-out proposals approved or rejected by the paying party.

"""
Withdrawal Requests

WHY: Cash leaves the system through agents. An agent asks a user for a
withdrawal (the user pays), or an admin asks an agent to hand over float
(the agent pays). The paying party must approve before any balance moves.

LIFECYCLE:
1. PENDING: Requested; commission resolved and frozen, balances untouched
2. APPROVED: Payer approved; payer debited, payee credited, record written
3. REJECTED: Payer rejected, or the payer's balance fell short on approval

CANCELLED exists on the model but nothing transitions to it.

SHORTCUT: An admin request against an agent with auto_admin_cashout set
skips the request and moves the money at once.
"""

from __future__ import annotations

from dataclasses import dataclass

from moneypay.errors import (
    ForbiddenCounterpartyError,
    ForbiddenError,
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
)
from moneypay.extensions import db
from moneypay.models import Account, TransactionRecord, WithdrawalRequest
from moneypay.models.accounts import ROLE_ADMIN, ROLE_AGENT, ROLE_USER
from moneypay.models.commissions import CLASS_WITHDRAW
from moneypay.models.ledger import KIND_AGENT_CASH_OUT, KIND_USER_WITHDRAW
from moneypay.models.notifications import NOTIFICATION_TRANSACTION, NOTIFICATION_WITHDRAWAL_REQUEST
from moneypay.models.withdrawals import (
    REQUEST_ADMIN_FROM_AGENT,
    REQUEST_AGENT_FROM_USER,
    REQUEST_STATUS_APPROVED,
    REQUEST_STATUS_PENDING,
    REQUEST_STATUS_REJECTED,
)
from moneypay.money import ensure_amount_cents
from moneypay.services.account_service import ensure_active, find_by_phone
from moneypay.services.commission_service import CommissionSplit, resolve
from moneypay.services.concurrency import OperationContext, lock_accounts, lock_for_update, run_ledger_operation
from moneypay.services.event_service import RECORD_WITHDRAWAL_REQUEST
from moneypay.services.ledger_service import execute_agent_cash_out, money, require_funds, transfer
from moneypay.time_utils import utcnow


SHORTFALL_REASON = "Insufficient balance at approval"


@dataclass
class WithdrawalOutcome:
    """Either a pending request, or the transaction of an immediate cash-out."""
    request: WithdrawalRequest | None = None
    transaction: TransactionRecord | None = None

    @property
    def executed(self) -> bool:
        return self.transaction is not None


# =============================================================================
# REQUEST
# =============================================================================

def request_withdrawal(
    actor_id: int,
    amount_cents: int,
    *,
    user_phone: str | None = None,
    agent_id: int | None = None,
    description: str | None = None,
) -> WithdrawalOutcome:
    """
    Ask a counterparty for a withdrawal.

    - Agent actor: requests from the user identified by user_phone.
      Withdraw commission is resolved and frozen on the request.
    - Admin actor: requests from agent_id, without commission. When the
      agent has auto_admin_cashout, the cash-out executes immediately.

    The balance check here is a pre-check only; approval re-validates.

    Raises:
        ForbiddenError: Actor is neither an agent nor an admin
        InsufficientBalanceError: Counterparty cannot cover the total debit
    """
    ensure_amount_cents(amount_cents)

    def _op(ctx: OperationContext):
        actor = db.session.get(Account, actor_id)
        if actor is None:
            raise NotFoundError("Account not found")
        ensure_active(actor)
        if actor.role == ROLE_AGENT:
            return _request_from_user(ctx, actor, user_phone, amount_cents, description)
        if actor.role == ROLE_ADMIN:
            return _request_from_agent(ctx, actor, agent_id, amount_cents, description)
        raise ForbiddenError("Only agents and admins can request withdrawals")

    return run_ledger_operation("request_withdrawal", _op, actor_id=actor_id)


def _request_from_user(ctx: OperationContext, agent: Account, user_phone: str | None, amount_cents: int,
                       description: str | None) -> WithdrawalOutcome:
    user = find_by_phone(user_phone)
    if user is None:
        raise NotFoundError("User not found")
    if user.role != ROLE_USER:
        raise ForbiddenCounterpartyError("Withdrawals can only be requested from users")

    user = lock_accounts(user.id)[user.id]
    split = resolve(amount_cents, CLASS_WITHDRAW)
    require_funds(user, amount_cents + split.total_cents, "User has insufficient balance")

    request = WithdrawalRequest(
        kind=REQUEST_AGENT_FROM_USER,
        agent_id=agent.id,
        user_id=user.id,
        amount_cents=amount_cents,
        agent_commission_cents=split.agent_cents,
        agent_commission_percent_bps=split.agent_percent_bps,
        company_commission_cents=split.company_cents,
        company_commission_percent_bps=split.company_percent_bps,
        commission_cents=split.agent_cents,
        commission_percent_bps=split.agent_percent_bps,
        status=REQUEST_STATUS_PENDING,
        description=description,
        intent_key=ctx.intent_key,
    )
    db.session.add(request)
    db.session.flush()

    ctx.outbox.request_changed(request.id, request.status, RECORD_WITHDRAWAL_REQUEST)
    ctx.outbox.notify(
        user.id, "Withdrawal Request",
        f"Agent {agent.name} requested {money(amount_cents)} withdrawal. Commission: {money(split.agent_cents)}",
        related_record_id=request.id, kind=NOTIFICATION_WITHDRAWAL_REQUEST,
    )
    ctx.outbox.text(
        user.phone, f"MoneyPay: Agent {agent.name} requested {money(amount_cents)} withdrawal. Please approve or reject."
    )
    return WithdrawalOutcome(request=request)


def _request_from_agent(ctx: OperationContext, admin: Account, agent_id: int | None, amount_cents: int,
                        description: str | None) -> WithdrawalOutcome:
    agent = db.session.get(Account, agent_id) if agent_id else None
    if agent is None or agent.role != ROLE_AGENT:
        raise NotFoundError("Agent not found")

    accounts = lock_accounts(admin.id, agent.id)
    admin, agent = accounts[admin.id], accounts[agent.id]
    require_funds(agent, amount_cents, "Insufficient agent balance")

    if agent.auto_admin_cashout:
        record = execute_agent_cash_out(ctx, admin, agent, amount_cents, description=description)
        return WithdrawalOutcome(transaction=record)

    request = WithdrawalRequest(
        kind=REQUEST_ADMIN_FROM_AGENT,
        agent_id=agent.id,
        user_id=admin.id,
        amount_cents=amount_cents,
        status=REQUEST_STATUS_PENDING,
        description=description or "Admin cash out request",
        intent_key=ctx.intent_key,
    )
    db.session.add(request)
    db.session.flush()

    ctx.outbox.request_changed(request.id, request.status, RECORD_WITHDRAWAL_REQUEST)
    ctx.outbox.notify(
        agent.id, "Cash Out Request from Admin",
        f"Admin requested to cash out {money(amount_cents)} from your agent account. Please approve or reject.",
        related_record_id=request.id, kind=NOTIFICATION_WITHDRAWAL_REQUEST,
    )
    ctx.outbox.text(
        agent.phone,
        f"MoneyPay: Admin requested to cash out {money(amount_cents)} from your agent account. Please approve or reject.",
    )
    return WithdrawalOutcome(request=request)


# =============================================================================
# APPROVE / REJECT
# =============================================================================

def _lock_request(request_id: int) -> WithdrawalRequest:
    request = (
        lock_for_update(db.session.query(WithdrawalRequest).filter_by(id=request_id))
        .populate_existing()
        .first()
    )
    if request is None:
        raise NotFoundError("Request not found")
    return request


def _check_approver(request: WithdrawalRequest, actor_id: int, action: str) -> None:
    if actor_id != request.approver_id:
        raise ForbiddenError(f"Only the paying party can {action} this withdrawal")
    if request.status != REQUEST_STATUS_PENDING:
        raise InvalidStateError("Request is not pending")


def approve_withdrawal(request_id: int, actor_id: int) -> WithdrawalRequest:
    """
    Payer approves a pending request.

    Re-validates the payer balance against amount + agent commission +
    company commission. On a shortfall the request is committed as REJECTED
    and InsufficientBalanceError is raised afterwards.

    Returns:
        WithdrawalRequest: The approved request (transaction_id set)
    """
    def _op(ctx: OperationContext):
        request = _lock_request(request_id)
        _check_approver(request, actor_id, "approve")

        accounts = lock_accounts(request.approver_id, request.payee_id)
        payer, payee = accounts[request.approver_id], accounts[request.payee_id]
        ensure_active(payer)

        total = request.total_debit_cents
        if payer.balance_cents < total:
            request.status = REQUEST_STATUS_REJECTED
            request.reason = SHORTFALL_REASON
            request.rejected_at = utcnow()
            ctx.outbox.request_changed(request.id, request.status, RECORD_WITHDRAWAL_REQUEST)
            ctx.outbox.notify(
                request.payee_id, "Withdrawal Rejected",
                f"Withdrawal of {money(request.amount_cents)} was rejected: insufficient balance",
                related_record_id=request.id, kind=NOTIFICATION_WITHDRAWAL_REQUEST,
            )
            return request, False

        split = CommissionSplit(
            agent_percent_bps=request.agent_commission_percent_bps,
            company_percent_bps=request.company_commission_percent_bps,
            agent_cents=request.agent_commission_cents,
            company_cents=request.company_commission_cents,
        )
        kind = KIND_AGENT_CASH_OUT if request.kind == REQUEST_ADMIN_FROM_AGENT else KIND_USER_WITHDRAW
        record = transfer(
            ctx,
            payer,
            payee,
            request.amount_cents,
            split,
            kind=kind,
            description=request.description,
            commission_cents=request.commission_cents,
            commission_percent_bps=request.commission_percent_bps,
        )

        request.status = REQUEST_STATUS_APPROVED
        request.approved_at = utcnow()
        request.transaction_id = record.id

        ctx.outbox.request_changed(request.id, request.status, RECORD_WITHDRAWAL_REQUEST)
        ctx.outbox.notify(
            payer.id, "Withdrawal Approved",
            f"Your withdrawal of {money(request.amount_cents)} to {payee.name} has been approved",
            related_record_id=record.id, kind=NOTIFICATION_TRANSACTION,
        )
        ctx.outbox.notify(
            payee.id, "Withdrawal Approved",
            f"{payer.name} approved your withdrawal request of {money(request.amount_cents)}",
            related_record_id=record.id, kind=NOTIFICATION_TRANSACTION,
        )
        return request, True

    request, approved = run_ledger_operation("approve_withdrawal", _op, actor_id=actor_id)
    if not approved:
        raise InsufficientBalanceError("Balance no longer covers this withdrawal; request rejected")
    return request


def reject_withdrawal(request_id: int, actor_id: int, reason: str | None = None) -> WithdrawalRequest:
    """Payer rejects a pending request. No balance effect."""
    def _op(ctx: OperationContext):
        request = _lock_request(request_id)
        _check_approver(request, actor_id, "reject")

        payer = db.session.get(Account, request.approver_id)
        ensure_active(payer)

        request.status = REQUEST_STATUS_REJECTED
        request.reason = reason
        request.rejected_at = utcnow()

        ctx.outbox.request_changed(request.id, request.status, RECORD_WITHDRAWAL_REQUEST)
        ctx.outbox.notify(
            payer.id, "Withdrawal Rejected", "Your withdrawal request has been rejected",
            related_record_id=request.id, kind=NOTIFICATION_WITHDRAWAL_REQUEST,
        )
        ctx.outbox.notify(
            request.payee_id, "Withdrawal Rejected",
            f"{payer.name} rejected your withdrawal request of {money(request.amount_cents)}",
            related_record_id=request.id, kind=NOTIFICATION_WITHDRAWAL_REQUEST,
        )
        return request

    return run_ledger_operation("reject_withdrawal", _op, actor_id=actor_id)


# =============================================================================
# QUERIES
# =============================================================================

def get_request(request_id: int) -> WithdrawalRequest:
    request = db.session.get(WithdrawalRequest, request_id)
    if request is None:
        raise NotFoundError("Request not found")
    return request


def list_pending_requests(account_id: int) -> list[WithdrawalRequest]:
    """Pending requests waiting on this account's approval."""
    return (
        db.session.query(WithdrawalRequest)
        .filter(
            WithdrawalRequest.status == REQUEST_STATUS_PENDING,
            db.or_(
                db.and_(WithdrawalRequest.kind == REQUEST_AGENT_FROM_USER, WithdrawalRequest.user_id == account_id),
                db.and_(WithdrawalRequest.kind == REQUEST_ADMIN_FROM_AGENT, WithdrawalRequest.agent_id == account_id),
            ),
        )
        .order_by(WithdrawalRequest.created_at.desc(), WithdrawalRequest.id.desc())
        .all()
    )


def list_outgoing_requests(account_id: int) -> list[WithdrawalRequest]:
    """Requests this account made, newest first."""
    return (
        db.session.query(WithdrawalRequest)
        .filter(
            db.or_(
                db.and_(WithdrawalRequest.kind == REQUEST_AGENT_FROM_USER, WithdrawalRequest.agent_id == account_id),
                db.and_(WithdrawalRequest.kind == REQUEST_ADMIN_FROM_AGENT, WithdrawalRequest.user_id == account_id),
            )
        )
        .order_by(WithdrawalRequest.created_at.desc(), WithdrawalRequest.id.desc())
        .all()
    )
