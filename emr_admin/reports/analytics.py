"""
Billing analytics derived from payment records.

Every function accepts Payment instances or plain dicts with the same keys
(invoice_number, amount, payment_status, payment_method, payment_date,
due_date, created_at, organization_id, organization_name). Nothing here
touches the database.
"""
import math
from collections import defaultdict
from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

ZERO = Decimal('0.00')
PAID_STATUSES = ('completed',)
OUTSTANDING_STATUSES = ('pending', 'failed', 'refunded')
AGING_BUCKETS = ('0-7', '8-30', '31-60', '60+')
SECONDS_PER_DAY = 86400


def _get(record, key, default=None):
    if isinstance(record, dict):
        return record.get(key, default)
    return getattr(record, key, default)


def _amount(record):
    value = _get(record, 'amount')
    if value is None:
        return ZERO
    return Decimal(str(value))


def _organization(record):
    if isinstance(record, dict):
        return record.get('organization_id'), record.get('organization_name') or ''
    organization = getattr(record, 'organization', None)
    return getattr(record, 'organization_id', None), getattr(organization, 'name', '')


def reference_date(record):
    """Date a payment counts towards: when it was paid, else when it was raised"""
    return _get(record, 'payment_date') or _get(record, 'created_at')


def is_overdue(record, now=None):
    now = now or timezone.now()
    due_date = _get(record, 'due_date')
    return _get(record, 'payment_status') == 'pending' and due_date is not None and due_date < now


def days_overdue(record, now=None):
    now = now or timezone.now()
    due_date = _get(record, 'due_date')
    if due_date is None:
        return 0
    return max(math.floor((now - due_date).total_seconds() / SECONDS_PER_DAY), 0)


def aging_bucket(days):
    if days <= 7:
        return '0-7'
    if days <= 30:
        return '8-30'
    if days <= 60:
        return '31-60'
    return '60+'


def filter_payments(records, organization_id=None, status=None):
    result = list(records)
    if organization_id is not None:
        result = [r for r in result if str(_organization(r)[0]) == str(organization_id)]
    if status:
        result = [r for r in result if _get(r, 'payment_status') == status]
    return result


def split_periods(records, now, range_days):
    """Partition records into the current window and the equally long one before it"""
    window = timedelta(days=range_days)
    current_start = now - window
    previous_start = current_start - window
    current, previous = [], []
    for record in records:
        when = reference_date(record)
        if when is None:
            continue
        if current_start <= when <= now:
            current.append(record)
        elif previous_start <= when < current_start:
            previous.append(record)
    return current, previous


def _sum(records):
    return sum((_amount(r) for r in records), ZERO)


def revenue_change_percent(current_total, previous_total, previous_count):
    if not previous_count:
        return 0.0
    change = (current_total - previous_total) / max(Decimal('1'), previous_total) * 100
    return round(float(change), 1)


def payment_behavior(records):
    """On-time settlement across every invoice in the window; unpaid invoices count as late"""
    records = list(records)
    dated = [r for r in records if _get(r, 'payment_date') is not None and _get(r, 'due_date') is not None]
    on_time = sum(1 for r in dated if _get(r, 'payment_date') <= _get(r, 'due_date'))
    total_delay = sum(
        max((_get(r, 'payment_date') - _get(r, 'due_date')).total_seconds() / SECONDS_PER_DAY, 0)
        for r in dated
    )
    return {
        'on_time': on_time,
        'late': len(records) - on_time,
        'avg_delay_days': round(total_delay / max(1, len(records)), 1),
    }


def aging_report(records, now=None):
    now = now or timezone.now()
    buckets = {bucket: {'count': 0, 'amount': ZERO} for bucket in AGING_BUCKETS}
    for record in records:
        if not is_overdue(record, now):
            continue
        bucket = buckets[aging_bucket(days_overdue(record, now))]
        bucket['count'] += 1
        bucket['amount'] += _amount(record)
    return buckets


def top_organizations(records, limit=5):
    totals = defaultdict(lambda: {'organization_id': None, 'organization_name': '', 'paid': ZERO, 'outstanding': ZERO, 'count': 0})
    for record in records:
        organization_id, name = _organization(record)
        entry = totals[organization_id]
        entry['organization_id'] = organization_id
        entry['organization_name'] = name
        entry['count'] += 1
        status = _get(record, 'payment_status')
        if status in PAID_STATUSES:
            entry['paid'] += _amount(record)
        else:
            entry['outstanding'] += _amount(record)
    ranked = sorted(totals.values(), key=lambda e: (-e['paid'], str(e['organization_name'])))
    return ranked[:limit]


def best_revenue_day(records):
    by_day = defaultdict(lambda: ZERO)
    for record in records:
        if _get(record, 'payment_status') not in PAID_STATUSES:
            continue
        when = reference_date(record)
        if when is None:
            continue
        by_day[timezone.localtime(when).date() if timezone.is_aware(when) else when.date()] += _amount(record)
    if not by_day:
        return None
    day, amount = max(by_day.items(), key=lambda pair: (pair[1], pair[0]))
    return {'date': day.isoformat(), 'amount': amount}


def recent_payments(records, limit=5):
    dated = [r for r in records if reference_date(r) is not None]
    dated.sort(key=reference_date, reverse=True)
    return [
        {
            'invoice_number': _get(r, 'invoice_number'),
            'organization_name': _organization(r)[1],
            'amount': _amount(r),
            'payment_status': _get(r, 'payment_status'),
            'payment_method': _get(r, 'payment_method'),
            'date': reference_date(r),
        }
        for r in dated[:limit]
    ]


def billing_analytics(records, now=None, range_days=30, organization_id=None, status=None):
    """Full billing analytics summary for the SaaS billing screen"""
    now = now or timezone.now()
    records = filter_payments(records, organization_id=organization_id, status=status)
    current, previous = split_periods(records, now, range_days)

    total_revenue = _sum(current)
    paid = [r for r in current if _get(r, 'payment_status') in PAID_STATUSES]
    outstanding = [r for r in current if _get(r, 'payment_status') in OUTSTANDING_STATUSES]
    overdue = [r for r in records if is_overdue(r, now)]

    by_method = defaultdict(lambda: ZERO)
    status_counts = defaultdict(int)
    for record in current:
        by_method[_get(record, 'payment_method') or 'unknown'] += _amount(record)
        status_counts[_get(record, 'payment_status')] += 1

    return {
        'range_days': range_days,
        'period_start': now - timedelta(days=range_days),
        'period_end': now,
        'invoice_count': len(current),
        'total_revenue': total_revenue,
        'paid_amount': _sum(paid),
        'outstanding_amount': _sum(outstanding),
        'overdue_amount': _sum(overdue),
        'overdue_count': len(overdue),
        'previous_total_revenue': _sum(previous),
        'revenue_change_percent': revenue_change_percent(total_revenue, _sum(previous), len(previous)),
        'payment_methods': dict(by_method),
        'status_counts': dict(status_counts),
        'success_rate': round(len(paid) / len(current) * 100, 1) if current else 0.0,
        'aging': aging_report(records, now),
        'top_organizations': top_organizations(current),
        'payment_behavior': payment_behavior(current),
        'best_revenue_day': best_revenue_day(current),
        'recent_payments': recent_payments(records),
        'critically_overdue_count': sum(1 for r in overdue if days_overdue(r, now) > 30),
    }
