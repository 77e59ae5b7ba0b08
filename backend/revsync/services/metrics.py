"""
Revenue aggregates computed from cached subscriptions and customers.

Amounts are in major currency units (cents / 100). No currency conversion
is attempted; a multi-currency account gets a naive sum.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from revsync.db.base import utcnow

CHURN_WINDOW_DAYS = 30
LTV_MONTHS = 12

# Monthly multiplier per billing interval.
INTERVAL_TO_MONTHLY = {
    'month': 1.0,
    'year': 1.0 / 12.0,
    'week': 4.33,
    'day': 30.0,
}


def subscription_mrr(subscription: dict[str, Any]) -> float:
    """Monthly recurring amount of a raw subscription, from its first item."""
    items = ((subscription.get('items') or {}).get('data')) or []
    if not items:
        return 0.0
    item = items[0] or {}
    price = item.get('price') or {}
    if not price:
        return 0.0
    quantity = int(item.get('quantity') or 1)
    unit_amount = int(price.get('unit_amount') or 0)
    interval = str((price.get('recurring') or {}).get('interval') or 'month')
    monthly = (unit_amount / 100.0) * quantity
    return monthly * INTERVAL_TO_MONTHLY.get(interval, 1.0)


def _canceled_within(row: dict[str, Any], since: datetime) -> bool:
    canceled_at = row.get('canceled_at')
    return row.get('status') != 'active' and canceled_at is not None and canceled_at >= since


def compute_metrics(subscriptions: list[dict[str, Any]], total_customers: int, now: datetime | None = None) -> dict[str, Any]:
    now = now or utcnow()
    since = now - timedelta(days=CHURN_WINDOW_DAYS)

    active = [row for row in subscriptions if row.get('status') == 'active']
    churned = [row for row in subscriptions if _canceled_within(row, since)]

    mrr = sum(float(row.get('mrr_amount') or 0.0) for row in active)
    churned_mrr = sum(float(row.get('mrr_amount') or 0.0) for row in churned)
    arr = mrr * 12
    arpu = mrr / total_customers if total_customers > 0 else 0.0
    ltv = arpu * LTV_MONTHS

    active_customers = {row.get('customer_id') for row in active if row.get('customer_id')}
    churned_customers = {
        row.get('customer_id') for row in churned if row.get('customer_id')
    } - active_customers

    revenue_base = mrr + churned_mrr
    customer_base = len(active_customers) + len(churned_customers)

    return {
        'mrr': round(mrr, 2),
        'arr': round(arr, 2),
        'arpu': round(arpu, 2),
        'ltv': round(ltv, 2),
        'total_customers': int(total_customers),
        'active_subscriptions': len(active),
        'churned_mrr': round(churned_mrr, 2),
        'revenue_churn_rate': round(churned_mrr / revenue_base, 4) if revenue_base > 0 else 0.0,
        'customer_churn_rate': round(len(churned_customers) / customer_base, 4) if customer_base > 0 else 0.0,
    }


def is_fresh(snapshot_created_at: datetime | None, freshness_minutes: int, now: datetime | None = None) -> bool:
    if snapshot_created_at is None or freshness_minutes <= 0:
        return False
    now = now or utcnow()
    return now - snapshot_created_at < timedelta(minutes=freshness_minutes)
