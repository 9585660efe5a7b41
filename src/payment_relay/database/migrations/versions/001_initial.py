"""Initial migration - create payment_records and status_history tables

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
        'payment_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('conversation_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('paid_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('gateway_payment_id', sa.String(255), nullable=True),
        sa.Column('gateway_transaction_id', sa.String(255), nullable=True),
        sa.Column('raw_response_json', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_index('ix_payment_records_conversation_id', 'payment_records', ['conversation_id'], unique=True)
    op.create_index('ix_payment_records_gateway_payment_id', 'payment_records', ['gateway_payment_id'])
    op.create_index('ix_payment_records_status', 'payment_records', ['status'])
    op.create_index('ix_payment_records_created_at', 'payment_records', ['created_at'])

    op.create_table(
        'status_history',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('conversation_id', sa.String(255), nullable=False),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('new_status', sa.String(20), nullable=True),
        sa.Column('event_type', sa.String(50), nullable=True),
        sa.Column('detail_json', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_index('ix_status_history_conversation_id', 'status_history', ['conversation_id'])
    op.create_index('ix_status_history_action', 'status_history', ['action'])


def downgrade() -> None:
    op.drop_index('ix_status_history_action', table_name='status_history')
    op.drop_index('ix_status_history_conversation_id', table_name='status_history')

    op.drop_index('ix_payment_records_created_at', table_name='payment_records')
    op.drop_index('ix_payment_records_status', table_name='payment_records')
    op.drop_index('ix_payment_records_gateway_payment_id', table_name='payment_records')
    op.drop_index('ix_payment_records_conversation_id', table_name='payment_records')

    op.drop_table('status_history')
    op.drop_table('payment_records')
