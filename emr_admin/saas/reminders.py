"""
Subscription expiry reminders and expiry automation
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from emr_admin.core.emails import EmailDeliveryError, render_email, send_email
from emr_admin.core.utils import create_audit_log
from .models import Subscription
from .periods import days_remaining, format_days_left, grace_period_end

logger = logging.getLogger(__name__)

User = get_user_model()

REMINDER_LEVELS = [
    {
        'key': 'reminder_7d',
        'days_before': 7,
        'subject': 'Your subscription expires in 7 days',
        'template': 'saas/emails/reminder_7d.html',
    },
    {
        'key': 'reminder_1d',
        'days_before': 1,
        'subject': 'Your subscription expires tomorrow',
        'template': 'saas/emails/reminder_1d.html',
    },
    {
        'key': 'reminder_day_of',
        'days_before': 0,
        'subject': 'Your subscription expires today',
        'template': 'saas/emails/reminder_day_of.html',
    },
]

REMINDER_LEVELS_BY_KEY = {level['key']: level for level in REMINDER_LEVELS}


def sent_reminders(subscription):
    return (subscription.metadata or {}).get('expiryReminders', {})


def due_reminder_level(subscription, now=None):
    """The first reminder level that is due and has not been sent yet"""
    days = days_remaining(subscription.expires_at, now)
    if days is None:
        return None
    already_sent = sent_reminders(subscription)
    for level in REMINDER_LEVELS:
        due = days == level['days_before'] or (level['days_before'] == 0 and days <= 0)
        if due and not already_sent.get(level['key']):
            return level
    return None


def get_reminder_recipient(organization):
    """Newest active admin of the organization, else the organization's own email"""
    admin = User.objects.filter(
        organization=organization,
        role='admin',
        is_active=True,
    ).exclude(email='').order_by('-date_joined', '-id').first()
    if admin is not None:
        return admin.email
    if organization.email:
        return organization.email
    raise ValidationError('No admin email configured')


def send_reminder(subscription, level, now=None, user=None):
    """
    Email one reminder level and record it on the subscription metadata.

    Raises:
        ValidationError: no recipient
        EmailDeliveryError: the mail backend failed
    """
    now = now or timezone.now()
    organization = subscription.organization
    recipient = get_reminder_recipient(organization)
    days = days_remaining(subscription.expires_at, now)

    html = render_email(level['template'], {
        'organization': organization,
        'subscription': subscription,
        'package': subscription.package,
        'days_remaining': days,
        'days_left_text': format_days_left(days),
        'expires_at': subscription.expires_at,
        'grace_period_ends_at': grace_period_end(subscription.expires_at),
        'renew_url': f"{settings.FRONTEND_URL}/subscription",
    })
    send_email(recipient, level['subject'], html)

    metadata = dict(subscription.metadata or {})
    reminders = dict(metadata.get('expiryReminders', {}))
    reminders[level['key']] = now.isoformat()
    metadata['expiryReminders'] = reminders
    metadata['expiryAlertLevel'] = level['key']
    subscription.metadata = metadata
    subscription.save(update_fields=['metadata', 'updated_at'])

    create_audit_log(
        user=user,
        organization=organization,
        action='reminder_sent',
        model_name='Subscription',
        object_id=subscription.id,
        object_name=organization.name,
        changes={'level': level['key'], 'recipient': recipient, 'days_remaining': days}
    )
    logger.info(f"Sent {level['key']} reminder for subscription {subscription.id} to {recipient}")
    return recipient


def send_manual_reminder(subscription, level_key, now=None, user=None):
    level = REMINDER_LEVELS_BY_KEY.get(level_key)
    if level is None:
        raise ValidationError(f"Unknown reminder level. Must be one of: {', '.join(REMINDER_LEVELS_BY_KEY)}")
    if subscription.expires_at is None:
        raise ValidationError('Subscription has no expiry date')
    return send_reminder(subscription, level, now=now, user=user)


def run_expiry_reminders(now=None):
    """Send at most one due reminder per expiring subscription"""
    now = now or timezone.now()
    subscriptions = Subscription.objects.filter(
        status__in=('active', 'trial'),
        expires_at__isnull=False,
        expires_at__gt=now - timedelta(days=1),
        expires_at__lte=now + timedelta(days=REMINDER_LEVELS[0]['days_before'] + 1),
    ).select_related('organization', 'package')

    sent = 0
    failed = 0
    for subscription in subscriptions:
        level = due_reminder_level(subscription, now)
        if level is None:
            continue
        try:
            send_reminder(subscription, level, now=now)
            sent += 1
        except (ValidationError, EmailDeliveryError) as e:
            failed += 1
            logger.warning(f"Could not send {level['key']} reminder for subscription {subscription.id}: {e}")
    return {'sent': sent, 'failed': failed}


def _organization_lapsed(organization, now):
    """True when no other current subscription keeps the organization active"""
    if organization.subscription_status in ('suspended', 'cancelled'):
        return False
    return not Subscription.objects.filter(
        organization=organization,
        status__in=('active', 'trial'),
    ).filter(Q(expires_at__isnull=True) | Q(expires_at__gt=now)).exists()


def expire_subscriptions(now=None):
    """Mark lapsed subscriptions expired and deactivate organizations left without one"""
    now = now or timezone.now()
    expired = 0
    with transaction.atomic():
        subscriptions = Subscription.objects.select_for_update().select_related('organization').filter(
            expires_at__isnull=False,
            expires_at__lte=now,
        ).exclude(status__in=('expired', 'cancelled', 'suspended'))
        for subscription in subscriptions:
            previous_status = subscription.status
            subscription.status = 'expired'
            subscription.save(update_fields=['status', 'updated_at'])

            organization = subscription.organization
            organization.refresh_from_db(fields=['subscription_status'])
            if _organization_lapsed(organization, now):
                organization.subscription_status = 'inactive'
                organization.save(update_fields=['subscription_status', 'updated_at'])

            create_audit_log(
                organization=organization,
                action='subscription_expire',
                model_name='Subscription',
                object_id=subscription.id,
                object_name=organization.name,
                changes={'status': {'old': previous_status, 'new': 'expired'}}
            )
            expired += 1

    if expired:
        logger.info(f"Expired {expired} subscription(s)")
    return expired
