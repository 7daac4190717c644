from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


NOTIFICATION_TRANSACTION = "transaction"
NOTIFICATION_WITHDRAWAL_REQUEST = "withdrawal_request"
NOTIFICATION_SYSTEM = "system"


class Notification(db.Model):
    """
    In-app notification shown to an account holder.

    Written after the ledger commit; a failure here never affects balances.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_account_created", "account_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    kind = db.Column(db.String(32), nullable=False, default=NOTIFICATION_SYSTEM)
    # Transaction or withdrawal request id, depending on kind
    related_record_id = db.Column(db.Integer, nullable=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "title": self.title,
            "message": self.message,
            "kind": self.kind,
            "related_record_id": self.related_record_id,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
        }
