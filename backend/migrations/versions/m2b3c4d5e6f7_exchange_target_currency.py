"""Store the target side of money exchanges

Revision ID: m2b3c4d5e6f7
Revises: l1a2b3c4d5e6
Create Date: 2026-10-19 00:00:00.000000

money_exchange records kept the target currency in currency_symbol and the
converted amount only in the description.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'm2b3c4d5e6f7'
down_revision = 'l1a2b3c4d5e6'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('transactions', schema=None) as batch_op:
        batch_op.add_column(sa.Column('to_currency_code', sa.String(length=8), nullable=True))
        batch_op.add_column(sa.Column('converted_amount_cents', sa.BigInteger(), nullable=True))

    op.execute(
        "UPDATE transactions SET to_currency_code = currency_symbol, currency_symbol = NULL "
        "WHERE type = 'money_exchange'"
    )


def downgrade():
    op.execute(
        "UPDATE transactions SET currency_symbol = to_currency_code "
        "WHERE type = 'money_exchange'"
    )

    with op.batch_alter_table('transactions', schema=None) as batch_op:
        batch_op.drop_column('converted_amount_cents')
        batch_op.drop_column('to_currency_code')
