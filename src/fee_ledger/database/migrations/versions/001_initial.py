"""Initial migration - create fee_accounts and payment_entries tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'fee_accounts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('student_id', sa.String(64), nullable=False),
        sa.Column('admission_number', sa.String(64), nullable=True),
        sa.Column('semester', sa.Integer(), nullable=True),
        sa.Column('academic_year', sa.String(20), nullable=True),
        sa.Column('total_owed', sa.Integer(), nullable=False),
        sa.Column('paid_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pending_amount', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('fee_structure_json', sa.Text(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('active_order_id', sa.String(64), nullable=True),
        sa.Column('active_order_amount', sa.Integer(), nullable=True),
        sa.Column('active_order_payment_id', sa.String(64), nullable=True),
        sa.Column('active_order_signature', sa.String(128), nullable=True),
        sa.Column('active_order_method', sa.String(20), nullable=True),
        sa.Column('active_order_captured', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_index('ix_fee_accounts_student_id', 'fee_accounts', ['student_id'])
    op.create_index('ix_fee_accounts_status', 'fee_accounts', ['status'])
    op.create_index('ix_fee_accounts_active_order_id', 'fee_accounts', ['active_order_id'])

    op.create_table(
        'payment_entries',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('fee_account_id', sa.String(36), sa.ForeignKey('fee_accounts.id'), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=False),
        sa.Column('method', sa.String(20), nullable=False, server_default='online'),
        sa.Column('transaction_id', sa.String(128), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='completed'),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('gateway_order_id', sa.String(64), nullable=True),
        sa.Column('gateway_payment_id', sa.String(64), nullable=True),
        sa.Column('gateway_signature', sa.String(128), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            'fee_account_id', 'gateway_order_id', 'gateway_payment_id',
            name='uq_payment_entries_gateway_pair',
        ),
    )

    op.create_index('ix_payment_entries_fee_account_id', 'payment_entries', ['fee_account_id'])


def downgrade() -> None:
    op.drop_index('ix_payment_entries_fee_account_id', table_name='payment_entries')
    op.drop_table('payment_entries')

    op.drop_index('ix_fee_accounts_active_order_id', table_name='fee_accounts')
    op.drop_index('ix_fee_accounts_status', table_name='fee_accounts')
    op.drop_index('ix_fee_accounts_student_id', table_name='fee_accounts')
    op.drop_table('fee_accounts')
