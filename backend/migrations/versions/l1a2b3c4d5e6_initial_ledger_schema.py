"""initial ledger schema

Revision ID: l1a2b3c4d5e6
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete MoneyPay schema from scratch:
- accounts / state_settings: Balance holders and admin state commission
- transactions: Auditable ledger of every money movement
- ledger_intents: Write-ahead journal for multi-row operations
- withdrawal_requests: Cash-out proposals awaiting approval
- commission_rules / tiered_commissions / commission_tiers: Fee configuration
- notifications: In-app notices written after commit
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'l1a2b3c4d5e6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """
    Create all tables.

    WHY: Money columns are BigInteger cents and percents Integer basis points;
    every mutable money row carries version_id for optimistic locking.
    """

    # ============================================================================
    # state_settings: Commission percent per admin state
    # ============================================================================
    op.create_table(
        'state_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('commission_percent_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # accounts: Users, agents and admins
    # ============================================================================
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='user'),
        sa.Column('balance_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('auto_admin_cashout', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('agent_code', sa.String(length=16), nullable=True),
        sa.Column('state_id', sa.Integer(), nullable=True),
        sa.Column('is_suspended', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('current_location', sa.JSON(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['state_id'], ['state_settings.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sa.UniqueConstraint('phone'),
        sa.UniqueConstraint('agent_code'),
        sa.CheckConstraint("role IN ('user', 'agent', 'admin')", name='ck_accounts_role'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_accounts_phone', 'accounts', ['phone'])
    op.create_index('ix_accounts_role', 'accounts', ['role'])
    op.create_index('ix_accounts_state_id', 'accounts', ['state_id'])

    # ============================================================================
    # transactions: Ledger records
    # ============================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=40), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('sender_id', sa.Integer(), nullable=False),
        sa.Column('receiver_id', sa.Integer(), nullable=True),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('deduction_mode', sa.String(length=32), nullable=False, server_default='added_on_top'),
        sa.Column('sender_debit_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('receiver_credit_cents', sa.BigInteger(), nullable=True),
        sa.Column('commission_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('commission_percent_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('agent_commission_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('agent_commission_percent_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('company_commission_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('company_commission_percent_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sender_balance_cents', sa.BigInteger(), nullable=True),
        sa.Column('receiver_balance_cents', sa.BigInteger(), nullable=True),
        sa.Column('currency_code', sa.String(length=8), nullable=True),
        sa.Column('currency_symbol', sa.String(length=8), nullable=True),
        sa.Column('exchange_rate', sa.Numeric(18, 8), nullable=True),
        sa.Column('currency_tier', sa.String(length=64), nullable=True),
        sa.Column('sender_location', sa.JSON(), nullable=True),
        sa.Column('receiver_location', sa.JSON(), nullable=True),
        sa.Column('state_id', sa.Integer(), nullable=True),
        sa.Column('intent_key', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['sender_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['receiver_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['state_id'], ['state_settings.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transactions_sender_id', 'transactions', ['sender_id'])
    op.create_index('ix_transactions_receiver_id', 'transactions', ['receiver_id'])
    op.create_index('ix_transactions_intent_key', 'transactions', ['intent_key'])
    op.create_index('ix_transactions_created_at', 'transactions', ['created_at'])
    op.create_index('ix_transactions_sender_created', 'transactions', ['sender_id', 'created_at'])
    op.create_index('ix_transactions_receiver_created', 'transactions', ['receiver_id', 'created_at'])
    op.create_index('ix_transactions_type_status', 'transactions', ['type', 'status'])

    # ============================================================================
    # ledger_intents: Operation journal
    # ============================================================================
    op.create_table(
        'ledger_intents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=32), nullable=False),
        sa.Column('operation', sa.String(length=64), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='open'),
        sa.Column('error_code', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['actor_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_ledger_intents_status', 'ledger_intents', ['status'])

    # ============================================================================
    # withdrawal_requests: Pending cash-outs
    # ============================================================================
    op.create_table(
        'withdrawal_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=32), nullable=False, server_default='agent_from_user'),
        sa.Column('agent_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('agent_commission_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('agent_commission_percent_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('company_commission_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('company_commission_percent_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('commission_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('commission_percent_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        sa.Column('intent_key', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['agent_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['user_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_withdrawal_requests_intent_key', 'withdrawal_requests', ['intent_key'])
    op.create_index('ix_withdrawal_requests_user_status', 'withdrawal_requests', ['user_id', 'status'])
    op.create_index('ix_withdrawal_requests_agent_status', 'withdrawal_requests', ['agent_id', 'status'])

    # ============================================================================
    # commission configuration
    # ============================================================================
    op.create_table(
        'commission_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('percent_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('send_percent_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('withdraw_percent_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'tiered_commissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_class', sa.String(length=16), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_class', name='uq_tiered_commissions_class'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'commission_tiers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tiered_commission_id', sa.Integer(), nullable=False),
        sa.Column('min_amount_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('agent_percent_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('company_percent_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['tiered_commission_id'], ['tiered_commissions.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_commission_tiers_tiered_commission_id', 'commission_tiers', ['tiered_commission_id'])

    # ============================================================================
    # notifications
    # ============================================================================
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('kind', sa.String(length=32), nullable=False, server_default='system'),
        sa.Column('related_record_id', sa.Integer(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_notifications_account_created', 'notifications', ['account_id', 'created_at'])


def downgrade():
    op.drop_table('notifications')
    op.drop_table('commission_tiers')
    op.drop_table('tiered_commissions')
    op.drop_table('commission_rules')
    op.drop_table('withdrawal_requests')
    op.drop_table('ledger_intents')
    op.drop_table('transactions')
    op.drop_table('accounts')
    op.drop_table('state_settings')
