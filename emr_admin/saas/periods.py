"""
Subscription period, expiry and grace period arithmetic
"""
import calendar
import math
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

BILLING_CYCLE_MONTHS = {
    'monthly': 1,
    'quarterly': 3,
    'half-yearly': 6,
    'yearly': 12,
    '2 years': 24,
    '3 years': 36,
}

ACCESS_STATUSES = ('active', 'trial')


def cycle_months(billing_cycle):
    return BILLING_CYCLE_MONTHS.get((billing_cycle or '').lower(), 1)


def add_months(value, months):
    """Shift a date/datetime by whole months, clamping to the last day of the month"""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def calculate_period_end(start, billing_cycle):
    return add_months(start, cycle_months(billing_cycle))


def grace_period_days():
    return settings.SAAS_GRACE_PERIOD_DAYS


def days_remaining(expires_at, now=None):
    """Whole days until expiry, rounded up; zero or negative once expired"""
    if expires_at is None:
        return None
    now = now or timezone.now()
    return math.ceil((expires_at - now).total_seconds() / 86400)


def grace_period_end(expires_at):
    if expires_at is None:
        return None
    return expires_at + timedelta(days=grace_period_days())


def is_within_grace_period(expires_at, now=None):
    if expires_at is None:
        return False
    now = now or timezone.now()
    return expires_at < now <= grace_period_end(expires_at)


def has_access(subscription, now=None):
    """Active and trial subscriptions, and expired ones still inside the grace period"""
    if subscription is None:
        return False
    now = now or timezone.now()
    if subscription.status == 'expired':
        return is_within_grace_period(subscription.expires_at, now)
    if subscription.status not in ACCESS_STATUSES:
        return False
    if subscription.expires_at is None:
        return True
    return now <= grace_period_end(subscription.expires_at)


def format_days_left(days):
    if days is None:
        return 'No expiry'
    if days == 0:
        return 'Expiring today'
    if days < 0:
        overdue = abs(days)
        return f"{overdue} day{'s' if overdue != 1 else ''} overdue"
    return f"{days} day{'s' if days != 1 else ''} left"


def subscription_timing(subscription, now=None):
    """Expiry summary shown next to a subscription"""
    now = now or timezone.now()
    remaining = days_remaining(subscription.expires_at, now)
    return {
        'days_remaining': remaining,
        'days_left_text': format_days_left(remaining),
        'grace_period_days': grace_period_days(),
        'grace_period_ends_at': grace_period_end(subscription.expires_at),
        'in_grace_period': is_within_grace_period(subscription.expires_at, now),
        'has_access': has_access(subscription, now),
    }
