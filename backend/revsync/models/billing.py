from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Float, Index, Integer, String, Text, UniqueConstraint

from revsync.db.base import Base, utcnow


class BillingConnection(Base):
    __tablename__ = 'billing_connections'

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String(64), nullable=False, unique=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    business_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class SyncStatus(Base):
    __tablename__ = 'sync_status'

    account_id = Column(String(64), primary_key=True)
    stage = Column(String(16), nullable=False, default='idle')
    progress = Column(Integer, nullable=False, default=0)
    message = Column(String(512), nullable=False, default='')
    job_id = Column(String(64), nullable=True)
    last_synced_at = Column(DateTime, nullable=True)
    last_sync_attempt_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


class SyncJob(Base):
    __tablename__ = 'sync_jobs'
    __table_args__ = (
        Index('ix_sync_jobs_status_created', 'status', 'created_at'),
    )

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(String(64), nullable=False, unique=True, index=True)
    account_id = Column(String(64), nullable=False, index=True)
    status = Column(String(16), nullable=False, default='pending', index=True)
    force = Column(Boolean, nullable=False, default=False)
    actor = Column(String(128), nullable=False, default='system')
    locked_by = Column(String(128), nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)


class SyncLock(Base):
    __tablename__ = 'sync_locks'

    account_id = Column(String(64), primary_key=True)
    job_id = Column(String(64), nullable=False)
    acquired_at = Column(DateTime, nullable=False, default=utcnow)


class SubscriptionCache(Base):
    __tablename__ = 'subscriptions_cache'
    __table_args__ = (
        UniqueConstraint('account_id', 'subscription_id', name='uq_subscriptions_cache_account_sub'),
    )

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String(64), nullable=False, index=True)
    subscription_id = Column(String(64), nullable=False)
    customer_id = Column(String(64), nullable=True, index=True)
    status = Column(String(32), nullable=False, index=True)
    mrr_amount = Column(Float, nullable=False, default=0.0)
    interval = Column(String(16), nullable=True)
    currency = Column(String(8), nullable=True)
    plan_name = Column(String(255), nullable=True)
    price_id = Column(String(64), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    created_at_remote = Column(DateTime, nullable=True)
    canceled_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    synced_at = Column(DateTime, nullable=False, default=utcnow)


class CustomerCache(Base):
    __tablename__ = 'customers_cache'
    __table_args__ = (
        UniqueConstraint('account_id', 'customer_id', name='uq_customers_cache_account_customer'),
    )

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String(64), nullable=False, index=True)
    customer_id = Column(String(64), nullable=False)
    email = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    created_at_remote = Column(DateTime, nullable=True)
    synced_at = Column(DateTime, nullable=False, default=utcnow)


class InvoiceCache(Base):
    __tablename__ = 'invoices_cache'
    __table_args__ = (
        UniqueConstraint('account_id', 'invoice_id', name='uq_invoices_cache_account_invoice'),
    )

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String(64), nullable=False, index=True)
    invoice_id = Column(String(64), nullable=False)
    customer_id = Column(String(64), nullable=True)
    subscription_id = Column(String(64), nullable=True)
    status = Column(String(32), nullable=False, default='unknown')
    amount_due_cents = Column(Integer, nullable=False, default=0)
    amount_paid_cents = Column(Integer, nullable=False, default=0)
    attempt_count = Column(Integer, nullable=False, default=0)
    next_payment_attempt = Column(DateTime, nullable=True)
    hosted_invoice_url = Column(Text, nullable=True)
    created_at_remote = Column(DateTime, nullable=True)
    paid_at_remote = Column(DateTime, nullable=True)
    synced_at = Column(DateTime, nullable=False, default=utcnow)


class MetricsSnapshot(Base):
    __tablename__ = 'metrics_snapshots'
    __table_args__ = (
        UniqueConstraint('account_id', 'snapshot_date', name='uq_metrics_snapshots_account_date'),
    )

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String(64), nullable=False, index=True)
    snapshot_date = Column(Date, nullable=False, index=True)
    mrr = Column(Float, nullable=False, default=0.0)
    arr = Column(Float, nullable=False, default=0.0)
    arpu = Column(Float, nullable=False, default=0.0)
    ltv = Column(Float, nullable=False, default=0.0)
    total_customers = Column(Integer, nullable=False, default=0)
    active_subscriptions = Column(Integer, nullable=False, default=0)
    churned_mrr = Column(Float, nullable=False, default=0.0)
    customer_churn_rate = Column(Float, nullable=False, default=0.0)
    revenue_churn_rate = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class RevenueSignal(Base):
    __tablename__ = 'revenue_signals'
    __table_args__ = (
        UniqueConstraint('user_id', 'type', 'detected_at', name='uq_revenue_signals_user_type_detected'),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    type = Column(String(32), nullable=False)
    severity = Column(String(16), nullable=False)
    value = Column(Float, nullable=True)
    meta = Column(JSON, nullable=False, default=dict)
    detected_at = Column(DateTime, nullable=False, default=utcnow, index=True)
