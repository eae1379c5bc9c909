"""Initial debt, installment and transaction ledger tables

Revision ID: 0001_initial_debt_ledger
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001_initial_debt_ledger'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

installment_status = sa.Enum('upcoming', 'overdue', 'paid', name='installmentstatus')
payment_method = sa.Enum('bank_transfer', 'cash', 'check', 'online', 'auto_debit', 'system', name='paymentmethod')
# El mismo tipo se reutiliza en la tabla transaction; no volver a crearlo
ledger_payment_method = postgresql.ENUM('bank_transfer', 'cash', 'check', 'online', 'auto_debit', 'system', name='paymentmethod', create_type=False)
transaction_type = sa.Enum('loan', 'payment', 'update', 'close', name='transactiontype')
transaction_status = sa.Enum('pending', 'completed', 'failed', 'cancelled', name='transactionstatus')


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('role', sa.String(), nullable=False, server_default='user'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_email', 'user', ['email'], unique=True)

    op.create_table(
        'debt',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('bank_name', sa.String(length=100), nullable=False),
        sa.Column('total_loan_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('total_paid_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('is_open', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('loan_start_date', sa.Date(), nullable=False),
        sa.Column('months_to_pay', sa.Integer(), nullable=False),
        sa.Column('monthly_amortization', sa.Numeric(14, 2), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('first_payment_month_offset', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_debt_user_id', 'debt', ['user_id'])
    op.create_index('ix_debt_bank_name', 'debt', ['bank_name'])
    op.create_index('ix_debt_is_open', 'debt', ['is_open'])

    op.create_table(
        'installment',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('debt_id', sa.Integer(), sa.ForeignKey('debt.id'), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('due_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('status', installment_status, nullable=False, server_default='upcoming'),
        sa.Column('bank_reference', sa.String(), nullable=True),
        sa.Column('payment_method', payment_method, nullable=True),
        sa.Column('payment_date', sa.DateTime(), nullable=True),
        sa.Column('description', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_installment_debt_id', 'installment', ['debt_id'])
    op.create_index('ix_installment_status', 'installment', ['status'])

    op.create_table(
        'transaction',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('type', transaction_type, nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('transaction_date', sa.DateTime(), nullable=False),
        sa.Column('status', transaction_status, nullable=False, server_default='completed'),
        sa.Column('debt_id', sa.Integer(), sa.ForeignKey('debt.id'), nullable=False),
        sa.Column('payment_schedule_index', sa.Integer(), nullable=True),
        sa.Column('bank_reference', sa.String(length=100), nullable=True),
        sa.Column('payment_method', ledger_payment_method, nullable=False, server_default='bank_transfer'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_transaction_user_id', 'transaction', ['user_id'])
    op.create_index('ix_transaction_type', 'transaction', ['type'])
    op.create_index('ix_transaction_status', 'transaction', ['status'])
    op.create_index('ix_transaction_debt_id', 'transaction', ['debt_id'])
    op.create_index('ix_transaction_transaction_date', 'transaction', ['transaction_date'])


def downgrade():
    op.drop_table('transaction')
    op.drop_table('installment')
    op.drop_table('debt')
    op.drop_table('user')
    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        op.execute('DROP TYPE transactionstatus')
        op.execute('DROP TYPE transactiontype')
        op.execute('DROP TYPE paymentmethod')
        op.execute('DROP TYPE installmentstatus')
