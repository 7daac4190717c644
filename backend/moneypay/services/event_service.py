# Overview: Real-time event signals consumed by the socket/broadcast layer.

"""
The ledger never talks to sockets directly. It emits blinker signals after a
commit; whatever pushes events to connected clients subscribes here:

    from moneypay.services.event_service import balance_changed

    @balance_changed.connect
    def push_balance(sender, account_id, balance_cents):
        ...
"""

from __future__ import annotations

from blinker import Namespace

_signals = Namespace()

balance_changed = _signals.signal("balance-changed")
request_changed = _signals.signal("request-changed")

RECORD_TRANSACTION = "transaction"
RECORD_WITHDRAWAL_REQUEST = "withdrawal_request"


def broadcast_balance_changed(account_id: int, new_balance_cents: int) -> None:
    balance_changed.send("ledger", account_id=account_id, balance_cents=new_balance_cents)


def broadcast_request_changed(record_id: int, new_status: str, record_type: str = RECORD_TRANSACTION) -> None:
    """Announce a state change of a pending transfer or withdrawal request."""
    request_changed.send("ledger", record_id=record_id, status=new_status, record_type=record_type)
