"""
HTTP API tests.

Verifies:
- Requests without a resolvable actor return 401
- Role restrictions return 403
- Ledger errors map to their HTTP status and error code
- Happy paths for every blueprint
"""

import pytest

from moneypay.services import account_service, commission_service


# =============================================================================
# AUTHENTICATION / ROLES
# =============================================================================


class TestActorResolution:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/transactions/send"),
            ("GET", "/api/transactions"),
            ("POST", "/api/state-push"),
            ("GET", "/api/withdrawals/pending"),
            ("POST", "/api/admin/topup"),
            ("GET", "/api/admin/stats"),
        ],
    )
    def test_requires_actor(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "UNAUTHENTICATED"

    def test_unknown_actor(self, client, db_session):
        resp = client.get("/api/transactions", headers={"X-Actor-Id": "424242"})
        assert resp.status_code == 401

    def test_suspended_actor(self, client, user, headers):
        account_service.set_suspended(user.id, True)
        resp = client.get("/api/transactions", headers=headers(user))
        assert resp.status_code == 403

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/admin/topup"),
            ("GET", "/api/admin/accounts"),
            ("PUT", "/api/admin/commission"),
            ("POST", "/api/state-push"),
            ("POST", "/api/withdrawals/request"),
        ],
    )
    def test_user_denied_privileged(self, client, user, headers, method, path):
        resp = getattr(client, method.lower())(path, json={}, headers=headers(user))
        assert resp.status_code == 403


class TestSystem:

    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["ledger"]["details"]["open_intents"] == 0

    def test_version(self, client):
        assert client.get("/api/version").status_code == 200


# =============================================================================
# TRANSACTIONS
# =============================================================================


class TestTransactionRoutes:

    def test_send(self, client, agent, user, headers, balance):
        resp = client.post(
            "/api/transactions/send",
            json={"recipient_phone": user.phone, "amount": "25.50"},
            headers=headers(agent),
        )
        assert resp.status_code == 201
        tx = resp.get_json()["transaction"]
        assert tx["amount_cents"] == 2_550
        assert tx["amount"] == "25.50"
        assert balance(user.id) == 102_550

    def test_send_missing_field(self, client, agent, headers):
        resp = client.post("/api/transactions/send", json={"amount": 1}, headers=headers(agent))
        assert resp.status_code == 400

    def test_send_bad_amount(self, client, agent, user, headers):
        resp = client.post(
            "/api/transactions/send",
            json={"recipient_phone": user.phone, "amount": "-3"},
            headers=headers(agent),
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_AMOUNT"

    def test_send_unknown_recipient(self, client, agent, headers):
        resp = client.post(
            "/api/transactions/send",
            json={"recipient_phone": "+000", "amount": 1},
            headers=headers(agent),
        )
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "RECIPIENT_NOT_FOUND"

    def test_send_insufficient(self, client, make_account, headers):
        alice = make_account('user', 100)
        bob = make_account('user', 0)
        resp = client.post(
            "/api/transactions/send",
            json={"recipient_phone": bob.phone, "amount": 5},
            headers=headers(alice),
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INSUFFICIENT_BALANCE"

    def test_user_to_agent_forbidden(self, client, user, agent, headers):
        resp = client.post(
            "/api/transactions/send",
            json={"recipient_phone": agent.phone, "amount": 1},
            headers=headers(user),
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "FORBIDDEN_COUNTERPARTY"

    def test_withdraw_at_agent(self, client, user, agent, headers, balance):
        resp = client.post(
            "/api/transactions/withdraw",
            json={"agent_code": agent.agent_code, "amount": 10},
            headers=headers(user),
        )
        assert resp.status_code == 201
        assert balance(agent.id) == 101_000

    def test_history_and_stats(self, client, agent, user, headers):
        client.post(
            "/api/transactions/send",
            json={"recipient_phone": user.phone, "amount": 1},
            headers=headers(agent),
        )
        history = client.get("/api/transactions", headers=headers(user)).get_json()["transactions"]
        assert len(history) == 1

        stats = client.get("/api/transactions/stats", headers=headers(user)).get_json()
        assert stats["transfers_received_cents"] == 100

    def test_get_transaction_visibility(self, client, agent, user, make_account, headers):
        stranger = make_account('user', 0)
        tx_id = client.post(
            "/api/transactions/send",
            json={"recipient_phone": user.phone, "amount": 1},
            headers=headers(agent),
        ).get_json()["transaction"]["id"]

        assert client.get(f"/api/transactions/{tx_id}", headers=headers(user)).status_code == 200
        assert client.get(f"/api/transactions/{tx_id}", headers=headers(stranger)).status_code == 403
        assert client.get("/api/transactions/999999", headers=headers(user)).status_code == 404


# =============================================================================
# STATE PUSH
# =============================================================================


class TestStatePushRoutes:

    def test_lifecycle(self, client, make_account, headers, balance):
        state = commission_service.create_state("Lakes", 5)
        admin_a = make_account('admin', 100_000, state_id=state.id)
        admin_b = make_account('admin', 0)

        resp = client.post(
            "/api/state-push",
            json={"receiver_id": admin_b.id, "amount": 100, "deduction_mode": "deducted_from_amount"},
            headers=headers(admin_a),
        )
        assert resp.status_code == 201
        tx = resp.get_json()["transaction"]
        assert tx["status"] == "pending"
        assert tx["receiver_credit_cents"] == 9_500

        count = client.get("/api/state-push/pending-count", headers=headers(admin_b)).get_json()["count"]
        assert count == 1

        resp = client.patch(f"/api/state-push/{tx['id']}", json={"amount": 200}, headers=headers(admin_a))
        assert resp.status_code == 200
        assert resp.get_json()["transaction"]["receiver_credit_cents"] == 19_000

        resp = client.post(f"/api/state-push/{tx['id']}/receive", headers=headers(admin_b))
        assert resp.status_code == 200
        assert balance(admin_b.id) == 19_000

        resp = client.post(f"/api/state-push/{tx['id']}/receive", headers=headers(admin_b))
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "INVALID_STATE"

    def test_cancel_by_receiver_forbidden(self, client, make_account, headers):
        admin_a = make_account('admin', 0)
        admin_b = make_account('admin', 0)
        tx_id = client.post(
            "/api/state-push", json={"receiver_id": admin_b.id, "amount": 1}, headers=headers(admin_a),
        ).get_json()["transaction"]["id"]

        resp = client.post(f"/api/state-push/{tx_id}/cancel", headers=headers(admin_b))
        assert resp.status_code == 403

        resp = client.post(f"/api/state-push/{tx_id}/cancel", headers=headers(admin_a))
        assert resp.status_code == 200
        assert resp.get_json()["transaction"]["status"] == "cancelled"


# =============================================================================
# WITHDRAWALS
# =============================================================================


class TestWithdrawalRoutes:

    def test_request_and_approve(self, client, agent, user, headers, balance):
        resp = client.post(
            "/api/withdrawals/request",
            json={"amount": 50, "user_phone": user.phone},
            headers=headers(agent),
        )
        assert resp.status_code == 201
        request_id = resp.get_json()["request"]["id"]

        pending = client.get("/api/withdrawals/pending", headers=headers(user)).get_json()["requests"]
        assert [r["id"] for r in pending] == [request_id]

        resp = client.post(f"/api/withdrawals/{request_id}/approve", headers=headers(user))
        assert resp.status_code == 200
        assert resp.get_json()["request"]["status"] == "approved"
        assert balance(user.id) == 95_000

    def test_approve_shortfall(self, client, agent, user, headers, db_session):
        request_id = client.post(
            "/api/withdrawals/request",
            json={"amount": 900, "user_phone": user.phone},
            headers=headers(agent),
        ).get_json()["request"]["id"]
        account_service.get_account(user.id).balance_cents = 0
        db_session.commit()

        resp = client.post(f"/api/withdrawals/{request_id}/approve", headers=headers(user))
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INSUFFICIENT_BALANCE"

        outgoing = client.get("/api/withdrawals/outgoing", headers=headers(agent)).get_json()["requests"]
        assert outgoing[0]["status"] == "rejected"

    def test_admin_request_auto_cashout(self, client, admin, make_account, headers):
        agent = make_account('agent', 10_000, auto_admin_cashout=True)
        resp = client.post(
            "/api/withdrawals/request",
            json={"amount": 20, "agent_id": agent.id},
            headers=headers(admin),
        )
        assert resp.status_code == 200
        assert resp.get_json()["transaction"]["type"] == "agent_cash_out_money"

    def test_reject(self, client, admin, agent, headers):
        request_id = client.post(
            "/api/withdrawals/request",
            json={"amount": 20, "agent_id": agent.id},
            headers=headers(admin),
        ).get_json()["request"]["id"]
        resp = client.post(
            f"/api/withdrawals/{request_id}/reject", json={"reason": "busy"}, headers=headers(agent),
        )
        assert resp.status_code == 200
        assert resp.get_json()["request"]["reason"] == "busy"


# =============================================================================
# ADMIN
# =============================================================================


class TestAdminRoutes:

    def test_topup_and_push(self, client, admin, make_account, headers, balance):
        alice = make_account('user', 0)
        bob = make_account('user', 0)

        resp = client.post("/api/admin/topup", json={"account_id": alice.id, "amount": 30}, headers=headers(admin))
        assert resp.status_code == 201

        resp = client.post(
            "/api/admin/push",
            json={"from_phone": alice.phone, "to_phone": bob.phone, "amount": 10},
            headers=headers(admin),
        )
        assert resp.status_code == 201
        assert (balance(alice.id), balance(bob.id)) == (2_000, 1_000)

    def test_withdraw_from_user(self, client, admin, user, headers, balance):
        resp = client.post(
            "/api/admin/withdraw-from-user", json={"account_id": user.id, "amount": 100}, headers=headers(admin),
        )
        assert resp.status_code == 201
        assert balance(user.id) == 90_000

    def test_money_exchange(self, client, admin, headers):
        resp = client.post(
            "/api/admin/money-exchange",
            json={"amount": 100, "from_currency": "USD", "to_currency": "SSP", "converted_amount": 130000},
            headers=headers(admin),
        )
        assert resp.status_code == 201
        assert resp.get_json()["transaction"]["reference"].startswith("ME-")

    def test_commission_configuration(self, client, admin, headers):
        resp = client.put("/api/admin/commission", json={"send_percent": 2}, headers=headers(admin))
        assert resp.status_code == 200
        assert resp.get_json()["commission"]["send_percent"] == 2

        resp = client.put(
            "/api/admin/commission/tiers",
            json={"withdraw_tiers": [{"min_amount": 100, "agent_percent": 1, "company_percent": 0}]},
            headers=headers(admin),
        )
        assert resp.status_code == 200

        config = client.get("/api/admin/commission", headers=headers(admin)).get_json()
        assert config["withdraw_tiers_configured"] is True

        resp = client.put("/api/admin/commission/tiers", json={"send_tiers": []}, headers=headers(admin))
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

    def test_states(self, client, admin, headers):
        resp = client.post("/api/admin/states", json={"name": "Warrap", "commission_percent": 3}, headers=headers(admin))
        assert resp.status_code == 201
        state_id = resp.get_json()["state"]["id"]

        resp = client.put(f"/api/admin/states/{state_id}", json={"commission_percent": 4}, headers=headers(admin))
        assert resp.get_json()["state"]["commission_percent_bps"] == 400

        resp = client.put(f"/api/admin/accounts/{admin.id}/state", json={"state_id": state_id}, headers=headers(admin))
        assert resp.status_code == 200
        assert resp.get_json()["account"]["state_id"] == state_id

    def test_account_management(self, client, admin, headers):
        resp = client.post(
            "/api/admin/accounts",
            json={"name": "Kiosk 7", "phone": "+211955555555", "role": "agent"},
            headers=headers(admin),
        )
        assert resp.status_code == 201
        agent = resp.get_json()["account"]
        assert len(agent["agent_code"]) == 6

        resp = client.post(f"/api/admin/accounts/{agent['id']}/suspend", headers=headers(admin))
        assert resp.get_json()["account"]["is_suspended"] is True

        resp = client.post(f"/api/admin/accounts/{admin.id}/suspend", headers=headers(admin))
        assert resp.status_code == 403

        agents = client.get("/api/admin/accounts?role=agent", headers=headers(admin)).get_json()["accounts"]
        assert [a["id"] for a in agents] == [agent["id"]]

    def test_agent_sets_own_auto_cashout(self, client, agent, make_account, headers):
        other = make_account('agent', 0)
        resp = client.put(f"/api/admin/accounts/{agent.id}/auto-cashout", json={"enabled": True}, headers=headers(agent))
        assert resp.status_code == 200
        assert resp.get_json()["account"]["auto_admin_cashout"] is True

        resp = client.put(f"/api/admin/accounts/{other.id}/auto-cashout", json={"enabled": True}, headers=headers(agent))
        assert resp.status_code == 403

    def test_reporting(self, client, admin, user, headers):
        client.post("/api/admin/topup", json={"account_id": user.id, "amount": 1}, headers=headers(admin))

        stats = client.get("/api/admin/stats", headers=headers(admin)).get_json()
        assert stats["total_transactions"] == 1
        assert stats["accounts_by_role"] == {"admin": 1, "user": 1}

        assert client.get("/api/admin/my-commission", headers=headers(admin)).get_json()["commission_cents"] == 0
        assert client.get("/api/admin/my-cashout", headers=headers(admin)).get_json()["cashout_cents"] == 0

        txs = client.get("/api/admin/transactions?type=topup", headers=headers(admin)).get_json()["transactions"]
        assert len(txs) == 1

    def test_reconcile(self, client, admin, headers):
        resp = client.post("/api/admin/reconcile", json={"older_than_seconds": 60}, headers=headers(admin))
        assert resp.status_code == 200
        assert resp.get_json() == {"committed": 0, "aborted": 0}

        resp = client.post("/api/admin/reconcile", json={"older_than_seconds": "soon"}, headers=headers(admin))
        assert resp.status_code == 400


# =============================================================================
# SELF SERVICE
# =============================================================================


class TestAccountRoutes:

    def test_me(self, client, user, headers):
        resp = client.get("/api/accounts/me", headers=headers(user))
        assert resp.status_code == 200
        assert resp.get_json()["account"]["phone"] == user.phone

    def test_location_is_copied_onto_transactions(self, client, agent, user, headers):
        resp = client.put(
            "/api/accounts/me/location",
            json={"latitude": 4.85, "longitude": 31.58, "city": "Juba", "ignored": True},
            headers=headers(agent),
        )
        assert resp.status_code == 200
        assert resp.get_json()["account"]["current_location"] == {
            "latitude": 4.85, "longitude": 31.58, "city": "Juba", "country": None,
        }

        tx = client.post(
            "/api/transactions/send",
            json={"recipient_phone": user.phone, "amount": 1},
            headers=headers(agent),
        ).get_json()["transaction"]
        assert tx["sender_location"]["city"] == "Juba"
        assert tx["receiver_location"] is None

    def test_notifications_inbox(self, client, agent, user, headers):
        client.post(
            "/api/transactions/send",
            json={"recipient_phone": user.phone, "amount": 1},
            headers=headers(agent),
        )
        inbox = client.get("/api/accounts/me/notifications?unread=1", headers=headers(user)).get_json()["notifications"]
        assert [n["title"] for n in inbox] == ["Money Received"]

        resp = client.post(f"/api/accounts/me/notifications/{inbox[0]['id']}/read", headers=headers(user))
        assert resp.status_code == 200
        assert client.get("/api/accounts/me/notifications?unread=1", headers=headers(user)).get_json()["notifications"] == []

        resp = client.post(f"/api/accounts/me/notifications/{inbox[0]['id']}/read", headers=headers(agent))
        assert resp.status_code == 404
