from __future__ import annotations

from ..extensions import db
from ..money import cents_to_str, bps_to_percent
from ..time_utils import to_utc_z


ROLE_USER = "user"
ROLE_AGENT = "agent"
ROLE_ADMIN = "admin"
VALID_ROLES = (ROLE_USER, ROLE_AGENT, ROLE_ADMIN)


class Account(db.Model):
    """
    A party that holds money: end user, cash agent or admin.

    WHY: The account row is the unit of mutation for every ledger operation.
    Users and agents never go below zero; admins have unlimited send rights
    and may go negative.

    CONCURRENCY: version_id is checked and incremented on every UPDATE, so two
    writers racing on the same balance cannot both succeed.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.CheckConstraint("role IN ('user', 'agent', 'admin')", name="ck_accounts_role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)
    phone = db.Column(db.String(32), nullable=False, unique=True, index=True)

    role = db.Column(db.String(16), nullable=False, default=ROLE_USER, index=True)
    balance_cents = db.Column(db.BigInteger, nullable=False, default=0)

    # Agent-level: admins may cash out without asking the agent first
    auto_admin_cashout = db.Column(db.Boolean, nullable=False, default=False)

    # Public 6-digit agent number users type in when withdrawing
    agent_code = db.Column(db.String(16), nullable=True, unique=True)

    # Admin-level: assigned state, drives the state-push commission percent
    state_id = db.Column(db.Integer, db.ForeignKey("state_settings.id"), nullable=True, index=True)

    is_suspended = db.Column(db.Boolean, nullable=False, default=False)

    # {"latitude", "longitude", "city", "country"}
    current_location = db.Column(db.JSON, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    state = db.relationship("StateSetting", backref=db.backref("admins", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Account id={self.id} role={self.role} phone={self.phone!r}>"

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "balance_cents": self.balance_cents,
            "balance": cents_to_str(self.balance_cents),
            "auto_admin_cashout": self.auto_admin_cashout,
            "agent_code": self.agent_code,
            "state_id": self.state_id,
            "is_suspended": self.is_suspended,
            "current_location": self.current_location,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class StateSetting(db.Model):
    """
    Commission percent applied to admin-to-admin transfers within/between states.
    """
    __tablename__ = "state_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    commission_percent_bps = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "commission_percent_bps": self.commission_percent_bps,
            "commission_percent": bps_to_percent(self.commission_percent_bps),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
