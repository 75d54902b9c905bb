"""Initial migration - queue, batch runs, transaction history, aggregates

Revision ID: 001
Revises: 
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

WEI = sa.Numeric(precision=78, scale=0)


def upgrade() -> None:
    # Create projects table
    op.create_table('projects',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('app_id', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='Row creation time'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='Last row update time'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('app_id')
    )

    # Create campaigns table
    op.create_table('campaigns',
        sa.Column('campaign_id', sa.Integer(), autoincrement=False, nullable=False, comment='On-chain campaign id'),
        sa.Column('name', sa.String(length=200), nullable=True),
        sa.Column('total_transactions', sa.Integer(), nullable=False),
        sa.Column('total_fees', WEI, nullable=False),
        sa.Column('total_volume', WEI, nullable=False),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('campaign_id')
    )

    # Create sdk_batch_runs table
    op.create_table('sdk_batch_runs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('run_date', sa.Date(), nullable=False),
        sa.Column('status', sa.Enum('running', 'completed', 'partial', 'failed', name='sdk_batch_run_status', native_enum=False, length=20), nullable=False),
        sa.Column('triggered_by', sa.String(length=50), nullable=False),
        sa.Column('total_transactions', sa.Integer(), nullable=False),
        sa.Column('successful_transactions', sa.Integer(), nullable=False),
        sa.Column('failed_transactions', sa.Integer(), nullable=False),
        sa.Column('skipped_transactions', sa.Integer(), nullable=False),
        sa.Column('total_gas_used', WEI, nullable=False),
        sa.Column('total_fees_generated', WEI, nullable=False),
        sa.Column('total_rewards_calculated', WEI, nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_summary', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_sdk_batch_runs_started', 'sdk_batch_runs', ['started_at'])

    # Create sdk_pending_transactions table
    op.create_table('sdk_pending_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('transaction_hash', sa.String(length=66), nullable=False, comment='Submitted transaction hash (0x + 64 hex)'),
        sa.Column('app_id', sa.String(length=100), nullable=False, comment='Owning application identifier'),
        sa.Column('project_id', sa.String(length=36), nullable=True, comment='Project reference, resolved from app_id when absent'),
        sa.Column('user_address', sa.String(length=42), nullable=True, comment='Sender address reported at submission'),
        sa.Column('network', sa.String(length=32), nullable=False, comment='Network label'),
        sa.Column('status', sa.Enum('pending', 'processing', 'completed', 'failed', 'skipped', name='sdk_pending_status', native_enum=False, length=20), nullable=False, comment='Processing status'),
        sa.Column('retry_count', sa.Integer(), nullable=False),
        sa.Column('max_retries', sa.Integer(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True, comment='Last error message'),
        sa.Column('process_tx_hash', sa.String(length=66), nullable=True, comment='Ledger confirmation hash'),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processing_started_at', sa.DateTime(timezone=True), nullable=True, comment='When the current run claimed the row'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('batch_id', sa.Integer(), nullable=True, comment='Batch run that last touched the row'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='Row creation time'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='Last row update time'),
        sa.ForeignKeyConstraint(['batch_id'], ['sdk_batch_runs.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_hash')
    )
    op.create_index('idx_sdk_pending_status_order', 'sdk_pending_transactions', ['status', 'network', 'submitted_at'])
    op.create_index('idx_sdk_pending_app', 'sdk_pending_transactions', ['app_id'])

    # Create transactions table
    op.create_table('transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tx_hash', sa.String(length=66), nullable=False),
        sa.Column('app_id', sa.String(length=100), nullable=False),
        sa.Column('project_id', sa.String(length=36), nullable=True),
        sa.Column('campaign_id', sa.Integer(), nullable=False),
        sa.Column('from_address', sa.String(length=42), nullable=False),
        sa.Column('to_address', sa.String(length=42), nullable=True),
        sa.Column('user_address', sa.String(length=42), nullable=False, comment='Lower-cased sender address'),
        sa.Column('amount', WEI, nullable=False),
        sa.Column('gas_used', WEI, nullable=False),
        sa.Column('gas_price', WEI, nullable=False),
        sa.Column('fee_generated', WEI, nullable=False),
        sa.Column('block_number', sa.BigInteger(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('process_tx_hash', sa.String(length=66), nullable=False, comment='Ledger confirmation hash'),
        sa.Column('is_unique_user', sa.Boolean(), nullable=False),
        sa.Column('reward_calculated', WEI, nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tx_hash', 'campaign_id', name='uq_transactions_hash_campaign')
    )
    op.create_index('idx_transactions_project_user', 'transactions', ['project_id', 'user_address'])
    op.create_index('idx_transactions_campaign', 'transactions', ['campaign_id'])

    # Create project_unique_users table
    op.create_table('project_unique_users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('project_id', sa.String(length=36), nullable=False),
        sa.Column('user_address', sa.String(length=42), nullable=False),
        sa.Column('total_transactions', sa.Integer(), nullable=False),
        sa.Column('total_volume', WEI, nullable=False),
        sa.Column('total_fees', WEI, nullable=False),
        sa.Column('total_rewards', WEI, nullable=False),
        sa.Column('first_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('project_id', 'user_address', name='uq_project_unique_users')
    )


def downgrade() -> None:
    op.drop_table('project_unique_users')
    op.drop_index('idx_transactions_campaign', table_name='transactions')
    op.drop_index('idx_transactions_project_user', table_name='transactions')
    op.drop_table('transactions')
    op.drop_index('idx_sdk_pending_app', table_name='sdk_pending_transactions')
    op.drop_index('idx_sdk_pending_status_order', table_name='sdk_pending_transactions')
    op.drop_table('sdk_pending_transactions')
    op.drop_index('idx_sdk_batch_runs_started', table_name='sdk_batch_runs')
    op.drop_table('sdk_batch_runs')
    op.drop_table('campaigns')
    op.drop_table('projects')
