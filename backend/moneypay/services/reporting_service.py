# Overview: Read-only aggregates over the ledger for dashboards.

from __future__ import annotations

from sqlalchemy import and_, case, func, or_

from moneypay.extensions import db
from moneypay.models import Account, TransactionRecord, WithdrawalRequest
from moneypay.models.ledger import (
    KIND_AGENT_CASH_OUT,
    KIND_TRANSFER,
    KIND_USER_WITHDRAW,
    KIND_WITHDRAWAL,
    TX_STATUS_COMPLETED,
    TX_STATUS_PENDING,
)
from moneypay.models.withdrawals import REQUEST_STATUS_PENDING


def _sum_if(condition, column):
    return func.coalesce(func.sum(case((condition, column), else_=0)), 0)


def _count_if(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def account_stats(account_id: int) -> dict:
    """
    Per-account totals for the home screen.

    commission_earned counts agent commission on completed user withdrawals
    the account received. pending_* sum commission frozen on the agent's
    pending withdrawal requests.
    """
    tx = TransactionRecord
    is_sender = tx.sender_id == account_id
    is_receiver = tx.receiver_id == account_id
    completed = tx.status == TX_STATUS_COMPLETED

    row = (
        db.session.query(
            func.count(tx.id),
            _sum_if(is_sender, tx.amount_cents),
            _sum_if(is_receiver, tx.amount_cents),
            _count_if(and_(tx.type == KIND_WITHDRAWAL, completed)),
            _sum_if(and_(tx.type == KIND_WITHDRAWAL, completed), tx.amount_cents),
            _count_if(and_(tx.type == KIND_TRANSFER, completed)),
            _sum_if(and_(tx.type == KIND_TRANSFER, completed), tx.amount_cents),
            _count_if(and_(tx.type == KIND_TRANSFER, completed, is_sender)),
            _sum_if(and_(tx.type == KIND_TRANSFER, completed, is_sender), tx.amount_cents),
            _sum_if(and_(tx.type == KIND_TRANSFER, completed, is_receiver), tx.amount_cents),
            _sum_if(and_(tx.type == KIND_USER_WITHDRAW, completed, is_receiver), tx.agent_commission_cents),
            _sum_if(and_(tx.type == KIND_USER_WITHDRAW, completed, is_receiver), tx.amount_cents),
        )
        .filter(or_(is_sender, is_receiver))
        .one()
    )

    pending = (
        db.session.query(
            func.coalesce(func.sum(WithdrawalRequest.agent_commission_cents), 0),
            func.coalesce(func.sum(WithdrawalRequest.company_commission_cents), 0),
        )
        .filter(WithdrawalRequest.agent_id == account_id, WithdrawalRequest.status == REQUEST_STATUS_PENDING)
        .one()
    )

    return {
        "total_transactions": int(row[0] or 0),
        "total_sent_cents": int(row[1]),
        "total_received_cents": int(row[2]),
        "withdrawals_completed_count": int(row[3]),
        "withdrawals_completed_cents": int(row[4]),
        "transfers_completed_count": int(row[5]),
        "transfers_completed_cents": int(row[6]),
        "transfers_sent_count": int(row[7]),
        "transfers_sent_cents": int(row[8]),
        "transfers_received_cents": int(row[9]),
        "commission_earned_cents": int(row[10]),
        "pulls_received_cents": int(row[11]),
        "pending_agent_commission_cents": int(pending[0]),
        "pending_company_commission_cents": int(pending[1]),
    }


def admin_commission_total(admin_id: int) -> int:
    """Commission kept by an admin as sender. Cancelled pushes carry zeroed commission."""
    total = (
        db.session.query(func.coalesce(func.sum(TransactionRecord.commission_cents), 0))
        .filter(TransactionRecord.sender_id == admin_id, TransactionRecord.commission_cents > 0)
        .scalar()
    )
    return int(total or 0)


def admin_cashout_total(admin_id: int) -> int:
    """Agent float cashed out to this admin."""
    total = (
        db.session.query(func.coalesce(func.sum(TransactionRecord.amount_cents), 0))
        .filter(TransactionRecord.type == KIND_AGENT_CASH_OUT, TransactionRecord.receiver_id == admin_id)
        .scalar()
    )
    return int(total or 0)


def system_stats() -> dict:
    """Totals across every account for the admin dashboard."""
    tx = TransactionRecord
    row = db.session.query(
        func.count(tx.id),
        func.coalesce(func.sum(tx.amount_cents), 0),
        _count_if(tx.status == TX_STATUS_COMPLETED),
        _count_if(tx.status == TX_STATUS_PENDING),
        _sum_if(tx.type == KIND_AGENT_CASH_OUT, tx.amount_cents),
        _sum_if(tx.status == TX_STATUS_COMPLETED, tx.company_commission_cents),
    ).one()

    users_by_role = dict(
        db.session.query(Account.role, func.count(Account.id)).group_by(Account.role).all()
    )

    return {
        "total_accounts": sum(users_by_role.values()),
        "accounts_by_role": users_by_role,
        "total_transactions": int(row[0] or 0),
        "total_volume_cents": int(row[1]),
        "completed_transactions": int(row[2]),
        "pending_transactions": int(row[3]),
        "total_admin_cashout_cents": int(row[4]),
        "company_commission_cents": int(row[5]),
    }
