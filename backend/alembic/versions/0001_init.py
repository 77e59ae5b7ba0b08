"""billing sync, cache and signal tables

Revision ID: 0001_init
Revises:
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa


revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'billing_connections',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('business_name', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_billing_connections_account_id', 'billing_connections', ['account_id'], unique=True)
    op.create_index('ix_billing_connections_user_id', 'billing_connections', ['user_id'])
    op.create_index('ix_billing_connections_is_active', 'billing_connections', ['is_active'])

    op.create_table(
        'sync_status',
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('stage', sa.String(length=16), nullable=False),
        sa.Column('progress', sa.Integer(), nullable=False),
        sa.Column('message', sa.String(length=512), nullable=False),
        sa.Column('job_id', sa.String(length=64), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('last_sync_attempt_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('account_id'),
    )

    op.create_table(
        'sync_jobs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('job_id', sa.String(length=64), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('force', sa.Boolean(), nullable=False),
        sa.Column('actor', sa.String(length=128), nullable=False),
        sa.Column('locked_by', sa.String(length=128), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sync_jobs_job_id', 'sync_jobs', ['job_id'], unique=True)
    op.create_index('ix_sync_jobs_account_id', 'sync_jobs', ['account_id'])
    op.create_index('ix_sync_jobs_status', 'sync_jobs', ['status'])
    op.create_index('ix_sync_jobs_created_at', 'sync_jobs', ['created_at'])
    op.create_index('ix_sync_jobs_status_created', 'sync_jobs', ['status', 'created_at'])

    op.create_table(
        'sync_locks',
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('job_id', sa.String(length=64), nullable=False),
        sa.Column('acquired_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('account_id'),
    )

    op.create_table(
        'subscriptions_cache',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('subscription_id', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('mrr_amount', sa.Float(), nullable=False),
        sa.Column('interval', sa.String(length=16), nullable=True),
        sa.Column('currency', sa.String(length=8), nullable=True),
        sa.Column('plan_name', sa.String(length=255), nullable=True),
        sa.Column('price_id', sa.String(length=64), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('current_period_start', sa.DateTime(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('created_at_remote', sa.DateTime(), nullable=True),
        sa.Column('canceled_at', sa.DateTime(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('synced_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'subscription_id', name='uq_subscriptions_cache_account_sub'),
    )
    op.create_index('ix_subscriptions_cache_account_id', 'subscriptions_cache', ['account_id'])
    op.create_index('ix_subscriptions_cache_customer_id', 'subscriptions_cache', ['customer_id'])
    op.create_index('ix_subscriptions_cache_status', 'subscriptions_cache', ['status'])

    op.create_table(
        'customers_cache',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('created_at_remote', sa.DateTime(), nullable=True),
        sa.Column('synced_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'customer_id', name='uq_customers_cache_account_customer'),
    )
    op.create_index('ix_customers_cache_account_id', 'customers_cache', ['account_id'])

    op.create_table(
        'invoices_cache',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('invoice_id', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=True),
        sa.Column('subscription_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('amount_due_cents', sa.Integer(), nullable=False),
        sa.Column('amount_paid_cents', sa.Integer(), nullable=False),
        sa.Column('attempt_count', sa.Integer(), nullable=False),
        sa.Column('next_payment_attempt', sa.DateTime(), nullable=True),
        sa.Column('hosted_invoice_url', sa.Text(), nullable=True),
        sa.Column('created_at_remote', sa.DateTime(), nullable=True),
        sa.Column('paid_at_remote', sa.DateTime(), nullable=True),
        sa.Column('synced_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'invoice_id', name='uq_invoices_cache_account_invoice'),
    )
    op.create_index('ix_invoices_cache_account_id', 'invoices_cache', ['account_id'])

    op.create_table(
        'metrics_snapshots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('snapshot_date', sa.Date(), nullable=False),
        sa.Column('mrr', sa.Float(), nullable=False),
        sa.Column('arr', sa.Float(), nullable=False),
        sa.Column('arpu', sa.Float(), nullable=False),
        sa.Column('ltv', sa.Float(), nullable=False),
        sa.Column('total_customers', sa.Integer(), nullable=False),
        sa.Column('active_subscriptions', sa.Integer(), nullable=False),
        sa.Column('churned_mrr', sa.Float(), nullable=False),
        sa.Column('customer_churn_rate', sa.Float(), nullable=False),
        sa.Column('revenue_churn_rate', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'snapshot_date', name='uq_metrics_snapshots_account_date'),
    )
    op.create_index('ix_metrics_snapshots_account_id', 'metrics_snapshots', ['account_id'])
    op.create_index('ix_metrics_snapshots_snapshot_date', 'metrics_snapshots', ['snapshot_date'])

    op.create_table(
        'revenue_signals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('severity', sa.String(length=16), nullable=False),
        sa.Column('value', sa.Float(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=False),
        sa.Column('detected_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'type', 'detected_at', name='uq_revenue_signals_user_type_detected'),
    )
    op.create_index('ix_revenue_signals_user_id', 'revenue_signals', ['user_id'])
    op.create_index('ix_revenue_signals_detected_at', 'revenue_signals', ['detected_at'])


def downgrade() -> None:
    op.drop_table('revenue_signals')
    op.drop_table('metrics_snapshots')
    op.drop_table('invoices_cache')
    op.drop_table('customers_cache')
    op.drop_table('subscriptions_cache')
    op.drop_table('sync_locks')
    op.drop_table('sync_jobs')
    op.drop_table('sync_status')
    op.drop_table('billing_connections')
