"""
Customer (tenant organization) onboarding and lifecycle
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone
from django.utils.crypto import get_random_string
from django.utils.text import slugify

from emr_admin.core.emails import EmailDeliveryError, render_email, send_email
from emr_admin.tenants.models import Organization
from .models import Subscription
from .periods import calculate_period_end

logger = logging.getLogger(__name__)

User = get_user_model()

CUSTOMER_STATUSES = ('active', 'inactive', 'suspended', 'cancelled')
TRIAL_DAYS = 14


def normalise_subdomain(value):
    return slugify(value or '')[:100]


def _unique_username(email):
    base = email.split('@')[0][:140] or 'admin'
    username = base
    counter = 1
    while User.objects.filter(username=username).exists():
        counter += 1
        username = f"{base}{counter}"
    return username


def start_subscription(organization, package, status='active', now=None, **fields):
    """Open a subscription period for the package's billing cycle"""
    now = now or timezone.now()
    start = fields.pop('current_period_start', None) or now
    if status == 'trial':
        end = fields.pop('current_period_end', None) or start + timedelta(days=TRIAL_DAYS)
        fields.setdefault('trial_end', end)
        payment_status = fields.pop('payment_status', None) or 'trial'
    else:
        end = fields.pop('current_period_end', None) or calculate_period_end(start, package.billing_cycle)
        payment_status = fields.pop('payment_status', None) or 'pending'
    expires_at = fields.pop('expires_at', None) or end

    subscription = Subscription.objects.create(
        organization=organization,
        package=package,
        status=status,
        payment_status=payment_status,
        current_period_start=start,
        current_period_end=end,
        expires_at=expires_at,
        **fields
    )
    organization.subscription_status = 'trial' if status == 'trial' else 'active'
    organization.save(update_fields=['subscription_status', 'updated_at'])
    return subscription


def create_customer(name, subdomain, admin_email, package=None, admin_first_name='', admin_last_name='',
                    email=None, region='UK', brand_name='', trial=False):
    """
    Create an organization with its first admin user and optional subscription,
    then send the welcome email.

    Returns (organization, admin_user, email_sent).
    """
    subdomain = normalise_subdomain(subdomain)
    if not name or not subdomain or not admin_email:
        raise ValidationError('Name, subdomain and admin email are required')
    if Organization.objects.filter(subdomain=subdomain).exists():
        raise ValidationError(f"Title '{subdomain}' is already taken")

    temporary_password = get_random_string(12)
    with transaction.atomic():
        organization = Organization.objects.create(
            name=name,
            subdomain=subdomain,
            email=email or admin_email,
            region=region or 'UK',
            brand_name=brand_name or '',
            subscription_status='trial',
            payment_status='trial',
        )
        admin_user = User.objects.create_user(
            username=_unique_username(admin_email),
            email=admin_email,
            password=temporary_password,
            first_name=admin_first_name or '',
            last_name=admin_last_name or '',
            organization=organization,
            role='admin',
        )
        if package is not None:
            start_subscription(organization, package, status='trial' if trial else 'active')

    email_sent = send_welcome_email(organization, admin_user, temporary_password)
    logger.info(f"Customer organization {organization.subdomain} created (welcome email sent: {email_sent})")
    return organization, admin_user, email_sent


def send_welcome_email(organization, admin_user, temporary_password):
    """Welcome email with login details; failures are logged, never raised"""
    html = render_email('saas/emails/welcome.html', {
        'organization': organization,
        'admin_user': admin_user,
        'temporary_password': temporary_password,
        'login_url': f"{settings.FRONTEND_URL}/auth/login",
    })
    try:
        send_email(admin_user.email, f"Welcome to {organization.display_name}", html)
    except (EmailDeliveryError, ValidationError) as e:
        logger.warning(f"Welcome email for organization {organization.id} was not sent: {e}")
        return False
    return True


def update_customer_status(organization, status):
    if status not in CUSTOMER_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(CUSTOMER_STATUSES)}")

    with transaction.atomic():
        organization.subscription_status = status
        organization.save(update_fields=['subscription_status', 'updated_at'])

        latest = organization.subscriptions.order_by('-created_at', '-id').first()
        if latest is not None:
            if status in ('suspended', 'cancelled'):
                latest.status = status
                latest.save(update_fields=['status', 'updated_at'])
            elif status == 'active' and latest.status == 'suspended':
                latest.status = 'active'
                latest.save(update_fields=['status', 'updated_at'])
    return organization


def latest_subscription(organization):
    return organization.subscriptions.select_related('package').order_by('-created_at', '-id').first()
