# Overview: Locking, retry and intent-journal helpers shared by every ledger operation.

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from moneypay.errors import LedgerError, OperationFailedError
from moneypay.extensions import db
from moneypay.models import Account, LedgerIntent, TransactionRecord, WithdrawalRequest
from moneypay.models.ledger import INTENT_ABORTED, INTENT_COMMITTED, INTENT_OPEN
from moneypay.time_utils import utcnow
from moneypay.services.notification_service import Outbox


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id check
    on UPDATE catches the race instead.
    """
    return query.with_for_update()


def lock_accounts(*account_ids: int | None) -> dict[int, Account]:
    """
    Lock and reload every account an operation touches.

    Rows are always locked in ascending id order so two operations touching
    the same pair of accounts cannot deadlock. populate_existing() discards
    any stale copy in the identity map: balance checks must see the row as
    it is right before the write.
    """
    ids = sorted({account_id for account_id in account_ids if account_id is not None})
    if not ids:
        return {}
    rows = (
        lock_for_update(db.session.query(Account).filter(Account.id.in_(ids)).order_by(Account.id))
        .populate_existing()
        .all()
    )
    return {row.id: row for row in rows}


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def commit_with_retry(*, attempts: int = 3, backoff_base: float = 0.1):
    """Commit current session with retry handling."""
    def _op():
        db.session.commit()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)


# =============================================================================
# INTENT JOURNAL
# =============================================================================

@dataclass
class OperationContext:
    """Handed to each ledger operation body."""
    intent_key: str
    actor_id: int | None = None
    outbox: Outbox = field(default_factory=Outbox)


def begin_intent(operation: str, actor_id: int | None = None) -> str:
    key = uuid.uuid4().hex
    db.session.add(LedgerIntent(key=key, operation=operation, actor_id=actor_id, status=INTENT_OPEN))
    try:
        commit_with_retry()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise OperationFailedError() from exc
    return key


def _resolve_intent(key: str, status: str, error_code: str | None = None) -> None:
    (
        db.session.query(LedgerIntent)
        .filter(LedgerIntent.key == key, LedgerIntent.status == INTENT_OPEN)
        .update(
            {"status": status, "error_code": error_code, "resolved_at": utcnow()},
            synchronize_session=False,
        )
    )


def abort_intent(key: str, error_code: str) -> None:
    """Mark an intent aborted after its transaction was rolled back."""
    try:
        _resolve_intent(key, INTENT_ABORTED, error_code)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        # Left OPEN; reconcile_open_intents() resolves it later.
        current_app.logger.exception("Failed to mark ledger intent %s aborted", key)


def run_ledger_operation(operation: str, func, *, actor_id: int | None = None):
    """
    Run one logical ledger operation as a single unit of work.

    1. Commit an OPEN intent.
    2. Run func(ctx) inside a transaction; the intent flips to COMMITTED in
       the same commit as the balance mutation.
    3. On any failure roll back and mark the intent ABORTED. Persistence
       failures surface as OperationFailedError; LedgerErrors propagate.
    4. After commit, deliver the side effects collected in ctx.outbox.

    Optimistic-lock conflicts re-run func with a fresh context.
    """
    key = begin_intent(operation, actor_id)
    attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)

    def _op():
        ctx = OperationContext(intent_key=key, actor_id=actor_id)
        result = func(ctx)
        _resolve_intent(key, INTENT_COMMITTED)
        db.session.commit()
        return result, ctx.outbox

    try:
        result, outbox = run_with_retry(_op, attempts=attempts)
    except LedgerError as exc:
        db.session.rollback()
        abort_intent(key, exc.code)
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        abort_intent(key, OperationFailedError.code)
        current_app.logger.exception("Ledger operation %s failed", operation)
        raise OperationFailedError() from exc
    except Exception:
        db.session.rollback()
        abort_intent(key, "UNEXPECTED")
        raise

    outbox.flush()
    return result


def reconcile_open_intents(*, older_than_seconds: int = 300) -> dict:
    """
    Resolve intents left OPEN by a crashed process.

    The mutation and the COMMITTED transition share one transaction, so an
    OPEN intent normally means nothing was written. A record carrying the
    intent key proves otherwise and the intent is closed as COMMITTED.
    """
    cutoff = utcnow() - timedelta(seconds=older_than_seconds)
    stale = (
        db.session.query(LedgerIntent)
        .filter(LedgerIntent.status == INTENT_OPEN, LedgerIntent.created_at <= cutoff)
        .order_by(LedgerIntent.id)
        .all()
    )

    summary = {"committed": 0, "aborted": 0}
    for intent in stale:
        written = (
            db.session.query(TransactionRecord.id).filter_by(intent_key=intent.key).first()
            or db.session.query(WithdrawalRequest.id).filter_by(intent_key=intent.key).first()
        )
        intent.resolved_at = utcnow()
        if written:
            intent.status = INTENT_COMMITTED
            summary["committed"] += 1
        else:
            intent.status = INTENT_ABORTED
            intent.error_code = "RECONCILED"
            summary["aborted"] += 1
    commit_with_retry()
    return summary
