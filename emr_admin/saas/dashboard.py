"""
SaaS owner dashboard aggregates
"""
import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Count, Q, Sum
from django.utils import timezone

from emr_admin.core.cache_utils import DASHBOARD_STATS_CACHE_TTL, cached_query
from emr_admin.core.models import AuditLog
from emr_admin.tenants.models import Organization
from .billing import get_overdue_payments, monthly_recurring_revenue
from .models import Payment, Subscription
from .periods import days_remaining, format_days_left, grace_period_days, grace_period_end

logger = logging.getLogger(__name__)

User = get_user_model()

EXPIRY_ALERT_DAYS = 7


@cached_query(cache_ttl=DASHBOARD_STATS_CACHE_TTL, key_prefix="dashboard_stats")
def dashboard_stats():
    now = timezone.now()
    organizations = Organization.objects.aggregate(
        total=Count('id'),
        active=Count('id', filter=Q(subscription_status='active')),
        trial=Count('id', filter=Q(subscription_status='trial')),
        suspended=Count('id', filter=Q(subscription_status='suspended')),
    )
    revenue = Payment.objects.filter(
        payment_status='completed',
        payment_date__gte=now - timedelta(days=30),
    ).aggregate(total=Sum('amount'))['total'] or Decimal('0')
    overdue = get_overdue_payments(now).aggregate(count=Count('id'), amount=Sum('amount'))

    return {
        'total_customers': organizations['total'] or 0,
        'active_customers': organizations['active'] or 0,
        'trial_customers': organizations['trial'] or 0,
        'suspended_customers': organizations['suspended'] or 0,
        'active_subscriptions': Subscription.objects.filter(status='active').count(),
        'total_users': User.objects.filter(organization__isnull=False).count(),
        'monthly_recurring_revenue': monthly_recurring_revenue(),
        'revenue_last_30_days': revenue,
        'overdue_payments': overdue['count'] or 0,
        'overdue_amount': overdue['amount'] or Decimal('0'),
        'currency': settings.SAAS_DEFAULT_CURRENCY,
        'calculated_at': now.isoformat(),
    }


def system_alerts(now=None):
    """Expiring, grace-period, overdue and suspended conditions needing attention"""
    now = now or timezone.now()
    alerts = []

    expiring = Subscription.objects.filter(
        status__in=('active', 'trial'),
        expires_at__gt=now,
        expires_at__lte=now + timedelta(days=EXPIRY_ALERT_DAYS),
    ).select_related('organization', 'package').order_by('expires_at')
    for subscription in expiring:
        days = days_remaining(subscription.expires_at, now)
        alerts.append({
            'type': 'subscription_expiring',
            'severity': 'warning' if days > 1 else 'critical',
            'organization_id': subscription.organization_id,
            'organization_name': subscription.organization.name,
            'subscription_id': subscription.id,
            'message': f"{subscription.organization.name}: {subscription.package.name} {format_days_left(days).lower()}",
        })

    in_grace = Subscription.objects.filter(
        status__in=('active', 'trial', 'expired'),
        expires_at__lte=now,
        expires_at__gt=now - timedelta(days=grace_period_days()),
    ).select_related('organization').order_by('expires_at')
    for subscription in in_grace:
        grace_end = grace_period_end(subscription.expires_at)
        alerts.append({
            'type': 'grace_period',
            'severity': 'critical',
            'organization_id': subscription.organization_id,
            'organization_name': subscription.organization.name,
            'subscription_id': subscription.id,
            'message': f"{subscription.organization.name} is in its grace period until {grace_end.date().isoformat()}",
        })

    overdue = get_overdue_payments(now).select_related('organization').order_by('due_date')
    for payment in overdue:
        alerts.append({
            'type': 'payment_overdue',
            'severity': 'critical',
            'organization_id': payment.organization_id,
            'organization_name': payment.organization.name,
            'payment_id': payment.id,
            'message': f"Invoice {payment.invoice_number} for {payment.organization.name} is overdue",
        })

    for organization in Organization.objects.filter(subscription_status='suspended').order_by('name'):
        alerts.append({
            'type': 'organization_suspended',
            'severity': 'info',
            'organization_id': organization.id,
            'organization_name': organization.name,
            'message': f"{organization.name} is suspended",
        })

    return alerts


def recent_activity():
    """Audit trail across every tenant, newest first"""
    return AuditLog.objects.select_related('user', 'organization').order_by('-created_at', '-id')
