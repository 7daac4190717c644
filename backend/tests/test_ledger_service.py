"""
Ledger engine: transfers, deduction modes, admin operations and the intent journal.
"""

import pytest

from moneypay.errors import (
    ForbiddenCounterpartyError,
    ForbiddenError,
    InsufficientBalanceError,
    InvalidAmountError,
    NotFoundError,
    RecipientNotFoundError,
    ValidationError,
)
from moneypay.models import LedgerIntent, TransactionRecord
from moneypay.models.ledger import (
    DEDUCTION_FROM_AMOUNT,
    INTENT_ABORTED,
    INTENT_COMMITTED,
    KIND_ADMIN_PUSH,
    KIND_MONEY_EXCHANGE,
    KIND_TOPUP,
    KIND_TRANSFER,
    KIND_USER_WITHDRAW,
    KIND_WITHDRAWAL,
    TX_STATUS_COMPLETED,
)
from moneypay.services import account_service, commission_service, ledger_service
from moneypay.services.commission_service import CommissionSplit, NO_COMMISSION
from moneypay.services.ledger_service import compute_counter_withdraw_flow, compute_flow


# =============================================================================
# FLOW ARITHMETIC
# =============================================================================


class TestComputeFlow:

    def test_added_on_top(self):
        split = CommissionSplit(agent_cents=100, company_cents=200)
        assert compute_flow(10000, split, "added_on_top") == (10300, 10100)

    def test_deducted_from_amount(self):
        split = CommissionSplit(agent_cents=0, company_cents=200)
        assert compute_flow(10000, split, DEDUCTION_FROM_AMOUNT) == (10000, 9800)

    def test_no_commission(self):
        assert compute_flow(500, NO_COMMISSION, "added_on_top") == (500, 500)

    def test_counter_withdraw(self):
        split = CommissionSplit(agent_cents=100, company_cents=200)
        assert compute_counter_withdraw_flow(10000, split) == (10200, 10100)

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            compute_flow(500, NO_COMMISSION, "sideways")


# =============================================================================
# SEND MONEY
# =============================================================================


class TestSendMoney:

    def test_added_on_top(self, make_account, balance):
        commission_service.set_flat_commission(send_percent=2)
        alice = make_account('user', 100_000)
        bob = make_account('user', 0)

        record = ledger_service.send_money(alice.id, bob.phone, 10_000)

        assert record.type == KIND_TRANSFER
        assert record.status == TX_STATUS_COMPLETED
        assert record.reference.startswith("TXN")
        assert record.sender_debit_cents == 10_200
        assert record.receiver_credit_cents == 10_000
        assert record.company_commission_cents == 200
        assert record.sender_balance_cents == 89_800
        assert record.receiver_balance_cents == 10_000
        assert balance(alice.id) == 89_800
        assert balance(bob.id) == 10_000

    def test_deducted_from_amount(self, make_account, balance):
        commission_service.set_flat_commission(send_percent=2)
        alice = make_account('user', 10_000)
        bob = make_account('user', 0)

        record = ledger_service.send_money(alice.id, bob.phone, 10_000, deduction_mode=DEDUCTION_FROM_AMOUNT)

        assert record.deduction_mode == DEDUCTION_FROM_AMOUNT
        assert balance(alice.id) == 0
        assert balance(bob.id) == 9_800

    def test_money_is_conserved_up_to_company_commission(self, make_account, balance):
        commission_service.set_flat_commission(send_percent=3)
        alice = make_account('user', 50_000)
        bob = make_account('user', 20_000)

        record = ledger_service.send_money(alice.id, bob.phone, 12_345)

        total = balance(alice.id) + balance(bob.id)
        assert total == 70_000 - record.company_commission_cents
        assert record.sender_debit_cents - record.receiver_credit_cents == record.company_commission_cents

    def test_insufficient_balance_leaves_no_trace(self, make_account, balance, db_session):
        commission_service.set_flat_commission(send_percent=2)
        alice = make_account('user', 10_000)
        bob = make_account('user', 0)

        with pytest.raises(InsufficientBalanceError):
            ledger_service.send_money(alice.id, bob.phone, 10_000)

        assert balance(alice.id) == 10_000
        assert balance(bob.id) == 0
        assert db_session.query(TransactionRecord).count() == 0
        intent = db_session.query(LedgerIntent).one()
        assert intent.status == INTENT_ABORTED
        assert intent.error_code == "INSUFFICIENT_BALANCE"

    def test_successful_operation_commits_intent(self, make_account, db_session):
        alice = make_account('user', 10_000)
        bob = make_account('user', 0)
        record = ledger_service.send_money(alice.id, bob.phone, 100)
        intent = db_session.query(LedgerIntent).one()
        assert intent.status == INTENT_COMMITTED
        assert record.intent_key == intent.key

    def test_unknown_recipient(self, user):
        with pytest.raises(RecipientNotFoundError):
            ledger_service.send_money(user.id, "+000", 100)

    def test_recipient_not_found_is_a_not_found(self, user):
        with pytest.raises(NotFoundError):
            ledger_service.send_money(user.id, "+000", 100)

    def test_self_transfer(self, user):
        with pytest.raises(ForbiddenCounterpartyError):
            ledger_service.send_money(user.id, user.phone, 100)

    def test_user_cannot_send_to_agent(self, user, agent):
        with pytest.raises(ForbiddenCounterpartyError):
            ledger_service.send_money(user.id, agent.phone, 100)

    def test_agent_can_send_to_user(self, user, agent, balance):
        ledger_service.send_money(agent.id, user.phone, 100)
        assert balance(user.id) == 100_100

    def test_admin_may_go_negative(self, admin, user, balance):
        ledger_service.send_money(admin.id, user.phone, 2_000_000)
        assert balance(admin.id) == -1_000_000

    def test_suspended_sender(self, make_account):
        alice = make_account('user', 10_000)
        bob = make_account('user', 0)
        account_service.set_suspended(alice.id, True)
        with pytest.raises(ForbiddenError):
            ledger_service.send_money(alice.id, bob.phone, 100)

    @pytest.mark.parametrize("amount", [0, -100, 1.5])
    def test_invalid_amount(self, user, agent, amount):
        with pytest.raises(InvalidAmountError):
            ledger_service.send_money(agent.id, user.phone, amount)

    def test_invalid_mode(self, user, agent):
        with pytest.raises(ValidationError):
            ledger_service.send_money(agent.id, user.phone, 100, deduction_mode="sideways")

    def test_currency_metadata_recorded(self, user, agent):
        record = ledger_service.send_money(
            agent.id, user.phone, 100,
            currency={"code": "USD", "symbol": "$", "exchange_rate": "1300.5", "tier": "retail"},
        )
        data = record.to_dict()
        assert data["currency_code"] == "USD"
        assert data["currency_tier"] == "retail"
        assert float(data["exchange_rate"]) == 1300.5


# =============================================================================
# USER WITHDRAW AT AGENT
# =============================================================================


class TestWithdrawUserToAgent:

    def test_user_pays_amount_plus_company_commission(self, user, agent, balance):
        commission_service.set_flat_commission(percent=1, withdraw_percent=2)

        record = ledger_service.withdraw_user_to_agent(user.id, agent.agent_code, 10_000)

        assert record.type == KIND_USER_WITHDRAW
        assert record.agent_commission_cents == 100
        assert record.company_commission_cents == 200
        assert record.commission_cents == 100
        assert record.sender_debit_cents == 10_200
        assert record.receiver_credit_cents == 10_100
        assert balance(user.id) == 100_000 - 10_200
        assert balance(agent.id) == 100_000 + 10_100

    def test_exact_balance_covers_company_commission(self, make_account, agent, balance):
        commission_service.set_flat_commission(percent=1, withdraw_percent=2)
        exact = make_account('user', 10_200)

        ledger_service.withdraw_user_to_agent(exact.id, agent.agent_code, 10_000)

        assert balance(exact.id) == 0
        assert balance(agent.id) == 100_000 + 10_100

    def test_unknown_agent(self, user):
        with pytest.raises(NotFoundError):
            ledger_service.withdraw_user_to_agent(user.id, "000000", 100)

    def test_insufficient(self, make_account, agent):
        poor = make_account('user', 50)
        with pytest.raises(InsufficientBalanceError):
            ledger_service.withdraw_user_to_agent(poor.id, agent.agent_code, 60)


# =============================================================================
# ADMIN OPERATIONS
# =============================================================================


class TestAdminOperations:

    def test_top_up_does_not_debit_admin(self, admin, user, balance):
        record = ledger_service.top_up(admin.id, user.id, 5_000)
        assert record.type == KIND_TOPUP
        assert record.sender_debit_cents == 0
        assert balance(admin.id) == 1_000_000
        assert balance(user.id) == 105_000

    def test_top_up_requires_admin(self, agent, user):
        with pytest.raises(ForbiddenError):
            ledger_service.top_up(agent.id, user.id, 5_000)

    def test_top_up_unknown_target(self, admin):
        with pytest.raises(RecipientNotFoundError):
            ledger_service.top_up(admin.id, 999_999, 5_000)

    def test_withdraw_from_user(self, admin, user, balance):
        record = ledger_service.admin_withdraw_from_user(admin.id, user.id, 40_000)
        assert record.type == KIND_WITHDRAWAL
        assert record.sender_id == user.id
        assert record.receiver_credit_cents == 0
        assert balance(user.id) == 60_000
        assert balance(admin.id) == 1_000_000

    def test_withdraw_from_user_insufficient(self, admin, user):
        with pytest.raises(InsufficientBalanceError):
            ledger_service.admin_withdraw_from_user(admin.id, user.id, 100_001)

    def test_push_between_users(self, admin, make_account, balance):
        source = make_account('user', 10_000)
        destination = make_account('agent', 0)

        record = ledger_service.push_between_users(admin.id, source.phone, destination.phone, 2_500)

        assert record.type == KIND_ADMIN_PUSH
        assert record.company_commission_cents == 0
        assert balance(source.id) == 7_500
        assert balance(destination.id) == 2_500

    def test_push_same_phone(self, admin, user):
        with pytest.raises(ForbiddenCounterpartyError):
            ledger_service.push_between_users(admin.id, user.phone, user.phone, 100)

    def test_push_insufficient(self, admin, make_account):
        source = make_account('user', 100)
        destination = make_account('user', 0)
        with pytest.raises(InsufficientBalanceError):
            ledger_service.push_between_users(admin.id, source.phone, destination.phone, 101)

    def test_money_exchange_moves_nothing(self, admin, balance):
        record = ledger_service.record_money_exchange(
            admin.id, 10_000, from_currency="usd", to_currency="ssp", converted_amount_cents=13_000_000,
            exchange_rate="1300",
        )
        assert record.type == KIND_MONEY_EXCHANGE
        assert record.reference.startswith("ME-")
        assert record.receiver_id is None
        assert record.currency_code == "USD"
        assert record.to_currency_code == "SSP"
        assert record.currency_symbol is None
        assert record.converted_amount_cents == 13_000_000
        assert balance(admin.id) == 1_000_000

    def test_money_exchange_requires_currencies(self, admin):
        with pytest.raises(ValidationError):
            ledger_service.record_money_exchange(
                admin.id, 10_000, from_currency="", to_currency="SSP", converted_amount_cents=1,
            )


# =============================================================================
# HISTORY
# =============================================================================


class TestHistory:

    def test_list_transactions_newest_first(self, agent, user):
        first = ledger_service.send_money(agent.id, user.phone, 100)
        second = ledger_service.send_money(agent.id, user.phone, 200)
        ids = [r.id for r in ledger_service.list_transactions(user.id)]
        assert ids == [second.id, first.id]

    def test_get_transaction_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            ledger_service.get_transaction(12345)

    def test_record_kind_rules(self):
        with pytest.raises(ValueError):
            TransactionRecord.build(KIND_TOPUP, sender_id=1, receiver_id=2, amount_cents=100, company_commission_cents=5)
        with pytest.raises(ValueError):
            TransactionRecord.build(KIND_MONEY_EXCHANGE, sender_id=1, receiver_id=2, amount_cents=100)
        with pytest.raises(ValueError):
            TransactionRecord.build(KIND_TRANSFER, sender_id=1, amount_cents=100)
        with pytest.raises(ValueError):
            TransactionRecord.build("refund", sender_id=1, receiver_id=2, amount_cents=100)
