"""
Flask CLI command tests.
"""

import json
from datetime import timedelta

import pytest

from moneypay.models import Account, LedgerIntent
from moneypay.models.ledger import INTENT_ABORTED, INTENT_OPEN
from moneypay.services import commission_service
from moneypay.time_utils import utcnow


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestAccountCommands:

    def test_create_and_list(self, runner, db_session):
        result = runner.invoke(args=["accounts", "create", "--name", "Kiosk", "--phone", "+211977000001", "--role", "agent"])
        assert result.exit_code == 0
        assert "OK Created agent" in result.output
        assert "Agent number:" in result.output

        result = runner.invoke(args=["accounts", "list", "--role", "agent"])
        assert "+211977000001" in result.output

    def test_duplicate_phone(self, runner, user):
        result = runner.invoke(args=["accounts", "create", "--name", "Again", "--phone", user.phone])
        assert "FAIL Phone number already registered" in result.output

    def test_suspend_and_unsuspend(self, runner, user, db_session):
        runner.invoke(args=["accounts", "suspend", str(user.id)])
        db_session.expire_all()
        assert db_session.get(Account, user.id).is_suspended

        result = runner.invoke(args=["accounts", "unsuspend", str(user.id)])
        assert "reactivated" in result.output
        db_session.expire_all()
        assert not db_session.get(Account, user.id).is_suspended

    def test_empty_list(self, runner, db_session):
        assert "No accounts found." in runner.invoke(args=["accounts", "list"]).output


class TestCommissionCommands:

    def test_set_flat_and_show(self, runner, db_session):
        result = runner.invoke(args=["commission", "set-flat", "--send-percent", "2.5"])
        assert result.exit_code == 0

        result = runner.invoke(args=["commission", "show"])
        assert "send=2.5" in result.output
        assert "defaults, not applied" in result.output

    def test_set_tiers_from_file(self, runner, db_session, tmp_path):
        tiers = tmp_path / "withdraw.json"
        tiers.write_text(json.dumps([{"min_amount": 0, "agent_percent": 1, "company_percent": 0.5}]))

        result = runner.invoke(args=["commission", "set-tiers", "--withdraw", str(tiers)])
        assert "OK Tier tables updated" in result.output
        assert commission_service.get_commission_config()["withdraw_tiers_configured"]

    def test_set_tiers_bad_json(self, runner, db_session, tmp_path):
        tiers = tmp_path / "send.json"
        tiers.write_text("[{")
        result = runner.invoke(args=["commission", "set-tiers", "--send", str(tiers)])
        assert "FAIL Invalid JSON" in result.output


class TestStateAndLedgerCommands:

    def test_states(self, runner, db_session):
        result = runner.invoke(args=["states", "create", "--name", "Jonglei", "--percent", "2"])
        assert "OK Created state" in result.output
        assert "Jonglei" in runner.invoke(args=["states", "list"]).output

    def test_reconcile(self, runner, db_session):
        db_session.add(LedgerIntent(
            key="d" * 32,
            operation="top_up",
            status=INTENT_OPEN,
            created_at=utcnow() - timedelta(hours=1),
        ))
        db_session.commit()

        result = runner.invoke(args=["ledger", "reconcile", "--older-than", "60"])
        assert "1 aborted" in result.output
        db_session.expire_all()
        assert db_session.query(LedgerIntent).one().status == INTENT_ABORTED

    def test_reset_requires_confirmation(self, runner, db_session):
        assert "FAIL" in runner.invoke(args=["system", "reset-db"]).output
