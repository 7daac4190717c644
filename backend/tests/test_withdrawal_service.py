"""
Withdrawal request workflow: agent-from-user and admin-from-agent.
"""

import pytest

from moneypay.errors import (
    ForbiddenError,
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
)
from moneypay.models import TransactionRecord, WithdrawalRequest
from moneypay.models.ledger import KIND_AGENT_CASH_OUT, KIND_USER_WITHDRAW
from moneypay.models.withdrawals import (
    REQUEST_ADMIN_FROM_AGENT,
    REQUEST_AGENT_FROM_USER,
    REQUEST_STATUS_APPROVED,
    REQUEST_STATUS_PENDING,
    REQUEST_STATUS_REJECTED,
)
from moneypay.services import account_service, commission_service, reporting_service, withdrawal_service
from moneypay.services.withdrawal_service import SHORTFALL_REASON


# =============================================================================
# AGENT REQUESTS FROM USER
# =============================================================================


class TestAgentFromUser:

    def test_request_freezes_commission(self, agent, user, balance):
        commission_service.set_flat_commission(percent=1, withdraw_percent=2)

        outcome = withdrawal_service.request_withdrawal(agent.id, 10_000, user_phone=user.phone)

        assert not outcome.executed
        request = outcome.request
        assert request.kind == REQUEST_AGENT_FROM_USER
        assert request.status == REQUEST_STATUS_PENDING
        assert request.agent_commission_cents == 100
        assert request.company_commission_cents == 200
        assert request.commission_cents == 100
        assert balance(user.id) == 100_000
        assert balance(agent.id) == 100_000

    def test_approve_moves_money(self, agent, user, balance, db_session):
        commission_service.set_flat_commission(percent=1, withdraw_percent=2)
        request = withdrawal_service.request_withdrawal(agent.id, 10_000, user_phone=user.phone).request

        # A later rule change must not affect the frozen split.
        commission_service.set_flat_commission(percent=10, withdraw_percent=10)
        request = withdrawal_service.approve_withdrawal(request.id, user.id)

        assert request.status == REQUEST_STATUS_APPROVED
        assert request.approved_at is not None
        record = db_session.get(TransactionRecord, request.transaction_id)
        assert record.type == KIND_USER_WITHDRAW
        assert record.sender_id == user.id
        assert record.receiver_id == agent.id
        assert balance(user.id) == 100_000 - 10_300
        assert balance(agent.id) == 100_000 + 10_100

    def test_precheck_uses_total_debit(self, agent, make_account, db_session):
        commission_service.set_flat_commission(percent=1, withdraw_percent=2)
        user = make_account('user', 10_000)
        with pytest.raises(InsufficientBalanceError):
            withdrawal_service.request_withdrawal(agent.id, 10_000, user_phone=user.phone)
        assert db_session.query(WithdrawalRequest).count() == 0

    def test_user_with_too_little(self, agent, make_account, db_session):
        user = make_account('user', 50)
        with pytest.raises(InsufficientBalanceError):
            withdrawal_service.request_withdrawal(agent.id, 60, user_phone=user.phone)
        assert db_session.query(WithdrawalRequest).count() == 0

    def test_unknown_user(self, agent):
        with pytest.raises(NotFoundError):
            withdrawal_service.request_withdrawal(agent.id, 100, user_phone="+000")

    def test_only_user_can_approve(self, agent, user):
        request = withdrawal_service.request_withdrawal(agent.id, 100, user_phone=user.phone).request
        with pytest.raises(ForbiddenError):
            withdrawal_service.approve_withdrawal(request.id, agent.id)

    def test_users_cannot_request(self, user, make_account):
        other = make_account('user', 100)
        with pytest.raises(ForbiddenError):
            withdrawal_service.request_withdrawal(user.id, 100, user_phone=other.phone)

    def test_shortfall_at_approval_rejects(self, agent, user, balance, db_session):
        request = withdrawal_service.request_withdrawal(agent.id, 80_000, user_phone=user.phone).request
        account_service.get_account(user.id).balance_cents = 10_000
        db_session.commit()

        with pytest.raises(InsufficientBalanceError):
            withdrawal_service.approve_withdrawal(request.id, user.id)

        request = withdrawal_service.get_request(request.id)
        assert request.status == REQUEST_STATUS_REJECTED
        assert request.reason == SHORTFALL_REASON
        assert request.transaction_id is None
        assert balance(user.id) == 10_000
        assert balance(agent.id) == 100_000

    def test_reject(self, agent, user, balance):
        request = withdrawal_service.request_withdrawal(agent.id, 100, user_phone=user.phone).request
        request = withdrawal_service.reject_withdrawal(request.id, user.id, reason="Not today")
        assert request.status == REQUEST_STATUS_REJECTED
        assert request.reason == "Not today"
        assert request.rejected_at is not None
        assert balance(user.id) == 100_000

    @pytest.mark.parametrize("first", ["approve", "reject"])
    def test_terminal_requests_stay_terminal(self, agent, user, balance, first):
        request = withdrawal_service.request_withdrawal(agent.id, 100, user_phone=user.phone).request
        if first == "approve":
            withdrawal_service.approve_withdrawal(request.id, user.id)
        else:
            withdrawal_service.reject_withdrawal(request.id, user.id)
        before = (balance(user.id), balance(agent.id))

        with pytest.raises(InvalidStateError):
            withdrawal_service.approve_withdrawal(request.id, user.id)
        with pytest.raises(InvalidStateError):
            withdrawal_service.reject_withdrawal(request.id, user.id)
        assert (balance(user.id), balance(agent.id)) == before

    def test_pending_commission_stats(self, agent, user):
        commission_service.set_flat_commission(percent=1, withdraw_percent=2)
        withdrawal_service.request_withdrawal(agent.id, 10_000, user_phone=user.phone)
        stats = reporting_service.account_stats(agent.id)
        assert stats["pending_agent_commission_cents"] == 100
        assert stats["pending_company_commission_cents"] == 200


# =============================================================================
# ADMIN REQUESTS FROM AGENT
# =============================================================================


class TestAdminFromAgent:

    def test_request_and_approve(self, admin, agent, balance, db_session):
        outcome = withdrawal_service.request_withdrawal(admin.id, 30_000, agent_id=agent.id)
        request = outcome.request
        assert request.kind == REQUEST_ADMIN_FROM_AGENT
        assert request.description == "Admin cash out request"
        assert request.agent_commission_cents == 0

        assert [r.id for r in withdrawal_service.list_pending_requests(agent.id)] == [request.id]
        assert [r.id for r in withdrawal_service.list_outgoing_requests(admin.id)] == [request.id]

        request = withdrawal_service.approve_withdrawal(request.id, agent.id)
        record = db_session.get(TransactionRecord, request.transaction_id)
        assert record.type == KIND_AGENT_CASH_OUT
        assert balance(agent.id) == 70_000
        assert balance(admin.id) == 1_030_000
        assert reporting_service.admin_cashout_total(admin.id) == 30_000

    def test_agent_with_too_little(self, admin, make_account, db_session):
        agent = make_account('agent', 50)
        with pytest.raises(InsufficientBalanceError):
            withdrawal_service.request_withdrawal(admin.id, 60, agent_id=agent.id)
        assert db_session.query(WithdrawalRequest).count() == 0
        assert db_session.query(TransactionRecord).count() == 0

    def test_auto_cashout_executes_immediately(self, admin, make_account, balance, db_session):
        agent = make_account('agent', 10_000, auto_admin_cashout=True)

        outcome = withdrawal_service.request_withdrawal(admin.id, 4_000, agent_id=agent.id)

        assert outcome.executed
        assert outcome.transaction.type == KIND_AGENT_CASH_OUT
        assert balance(agent.id) == 6_000
        assert db_session.query(WithdrawalRequest).count() == 0

    def test_unknown_agent(self, admin, user):
        with pytest.raises(NotFoundError):
            withdrawal_service.request_withdrawal(admin.id, 100, agent_id=user.id)

    def test_only_agent_can_approve(self, admin, agent):
        request = withdrawal_service.request_withdrawal(admin.id, 100, agent_id=agent.id).request
        with pytest.raises(ForbiddenError):
            withdrawal_service.approve_withdrawal(request.id, admin.id)

    def test_reject(self, admin, agent):
        request = withdrawal_service.request_withdrawal(admin.id, 100, agent_id=agent.id).request
        request = withdrawal_service.reject_withdrawal(request.id, agent.id)
        assert request.status == REQUEST_STATUS_REJECTED
        assert withdrawal_service.list_pending_requests(agent.id) == []
