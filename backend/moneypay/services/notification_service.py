# Overview: Best-effort delivery of notifications, SMS and broadcasts after a ledger commit.

"""
Notification Delivery

WHY: Every balance change is announced to the parties involved, but a slow
or failing notifier must never hold a lock, block the caller, or undo a
committed mutation.

DESIGN PRINCIPLES:
- Ledger operations only *collect* side effects into an Outbox.
- The Outbox is flushed after the ledger transaction commits.
- In-app notifications are rows written in their own short transaction.
- SMS and broadcasts run on a small thread pool (inline when
  SIDE_EFFECTS_SYNC is set); every failure is logged and dropped.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client as TwilioClient

from moneypay.extensions import db
from moneypay.models import Notification
from moneypay.models.notifications import NOTIFICATION_SYSTEM
from moneypay.services.event_service import (
    RECORD_TRANSACTION,
    broadcast_balance_changed,
    broadcast_request_changed,
)

logger = logging.getLogger(__name__)

_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


def _get_executor(max_workers: int) -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="LedgerSideEffects")
        return _executor


# =============================================================================
# NOTIFY USER
# =============================================================================

def notify_user(
    account_id: int,
    title: str,
    message: str,
    related_record_id: int | None = None,
    kind: str = NOTIFICATION_SYSTEM,
) -> Notification | None:
    """Persist one in-app notification. Never raises."""
    try:
        notification = Notification(
            account_id=account_id,
            title=title,
            message=message,
            kind=kind,
            related_record_id=related_record_id,
        )
        db.session.add(notification)
        db.session.commit()
        return notification
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to store notification for account %s", account_id)
        return None


def list_notifications(account_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    query = db.session.query(Notification).filter_by(account_id=account_id)
    if unread_only:
        query = query.filter_by(is_read=False)
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def mark_read(account_id: int, notification_id: int) -> bool:
    """Returns False when the notification does not belong to the account."""
    notification = db.session.get(Notification, notification_id)
    if notification is None or notification.account_id != account_id:
        return False
    notification.is_read = True
    db.session.commit()
    return True


# =============================================================================
# SEND TEXT
# =============================================================================

class SmsSender:
    """Thin wrapper over the Twilio REST client."""

    def __init__(self, account_sid: str | None, auth_token: str | None, from_number: str | None,
                 timeout: float | None = None):
        self.from_number = from_number
        self.client = None
        if account_sid and auth_token and from_number:
            self.client = TwilioClient(account_sid, auth_token, http_client=TwilioHttpClient(timeout=timeout))

    @classmethod
    def from_config(cls, config) -> "SmsSender":
        return cls(
            config.get("TWILIO_ACCOUNT_SID"),
            config.get("TWILIO_AUTH_TOKEN"),
            config.get("TWILIO_PHONE_NUMBER"),
            timeout=config.get("SIDE_EFFECT_TIMEOUT_SECONDS"),
        )

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def send(self, phone_number: str, message: str) -> bool:
        response = self.client.messages.create(body=message, from_=self.from_number, to=phone_number)
        return response.sid is not None


def send_text(phone_number: str | None, message: str, *, sender: SmsSender) -> bool:
    """Send one SMS. Best-effort: returns False instead of raising."""
    if not phone_number:
        return False
    if not sender.enabled:
        logger.warning("Skipping SMS send - Twilio not configured")
        return False
    try:
        return sender.send(phone_number, message)
    except TwilioException:
        logger.exception("SMS to %s failed", phone_number)
        return False
    except Exception:
        logger.exception("Unexpected SMS failure for %s", phone_number)
        return False


# =============================================================================
# OUTBOX
# =============================================================================

@dataclass
class _PendingNotification:
    account_id: int
    title: str
    message: str
    related_record_id: int | None
    kind: str


def _guarded(task, label: str) -> None:
    try:
        task()
    except Exception:
        logger.exception("Side effect %s failed", label)


def _guarded_in_app(app, task, label: str) -> None:
    # Pool threads have no context of their own; subscribers may use current_app or db.
    with app.app_context():
        _guarded(task, label)


class Outbox:
    """
    Side effects collected while a ledger operation runs.

    Nothing here touches the outside world until flush(), which the
    operation runner calls only after a successful commit.
    """

    def __init__(self):
        self.notifications: list[_PendingNotification] = []
        self.texts: list[tuple[str, str]] = []
        self.events: list[tuple[str, partial]] = []

    def notify(self, account_id: int, title: str, message: str, *, related_record_id: int | None = None,
               kind: str = NOTIFICATION_SYSTEM) -> None:
        self.notifications.append(_PendingNotification(account_id, title, message, related_record_id, kind))

    def text(self, phone_number: str | None, message: str) -> None:
        if phone_number:
            self.texts.append((phone_number, message))

    def balance_changed(self, account) -> None:
        # Capture the balance now; the object may be expired after commit.
        self.events.append(
            ("balance-changed", partial(broadcast_balance_changed, account.id, account.balance_cents))
        )

    def request_changed(self, record_id: int, status: str, record_type: str = RECORD_TRANSACTION) -> None:
        self.events.append(
            ("request-changed", partial(broadcast_request_changed, record_id, status, record_type))
        )

    def __len__(self) -> int:
        return len(self.notifications) + len(self.texts) + len(self.events)

    def flush(self) -> None:
        for pending in self.notifications:
            notify_user(
                pending.account_id,
                pending.title,
                pending.message,
                related_record_id=pending.related_record_id,
                kind=pending.kind,
            )

        config = current_app.config
        sender = SmsSender.from_config(config)
        tasks = [(f"sms:{phone}", partial(send_text, phone, message, sender=sender)) for phone, message in self.texts]
        tasks.extend(self.events)

        self.notifications.clear()
        self.texts.clear()
        self.events.clear()

        if config.get("SIDE_EFFECTS_SYNC"):
            for label, task in tasks:
                _guarded(task, label)
            return

        # Fire and forget: the caller never waits on the pool.
        app = current_app._get_current_object()
        executor = _get_executor(config.get("SIDE_EFFECT_WORKERS", 4))
        for label, task in tasks:
            executor.submit(_guarded_in_app, app, task, label)
