from revsync.models.billing import (
    BillingConnection,
    CustomerCache,
    InvoiceCache,
    MetricsSnapshot,
    RevenueSignal,
    SubscriptionCache,
    SyncJob,
    SyncLock,
    SyncStatus,
)

__all__ = [
    'BillingConnection',
    'CustomerCache',
    'InvoiceCache',
    'MetricsSnapshot',
    'RevenueSignal',
    'SubscriptionCache',
    'SyncJob',
    'SyncLock',
    'SyncStatus',
]
