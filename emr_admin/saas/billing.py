"""
SaaS billing: payments, invoices, overdue detection, suspension and exports
"""
import csv
import io
import logging
import uuid
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from emr_admin.core.emails import render_email, send_email
from emr_admin.reports.analytics import is_overdue
from emr_admin.tenants.models import Organization
from .models import Invoice, Payment, Subscription
from .periods import cycle_months, grace_period_days

logger = logging.getLogger(__name__)

PAYMENT_STATUSES = [choice for choice, _ in Payment.PAYMENT_STATUS_CHOICES]
PAYMENT_METHODS = [choice for choice, _ in Payment.PAYMENT_METHOD_CHOICES]
DEFAULT_DUE_DAYS = 30

EXPORT_HEADERS = [
    'Invoice Number', 'Customer', 'Amount', 'Currency', 'Payment Method',
    'Status', 'Created Date', 'Due Date', 'Description',
]


def generate_invoice_number():
    number = f"INV-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    while (Payment.objects.filter(invoice_number=number).exists()
           or Invoice.objects.filter(invoice_number=number).exists()):
        number = f"INV-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    return number


def create_payment(organization, amount, payment_method, now=None, **fields):
    """
    Record a payment for an organization.

    Defaults: GBP, pending, due in 30 days, billing period now to now + 30 days.
    payment_date is only set for completed payments.
    """
    now = now or timezone.now()
    amount = Decimal(str(amount))
    if amount <= 0:
        raise ValidationError('Amount must be greater than zero')
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method. Must be one of: {', '.join(PAYMENT_METHODS)}")

    payment_status = fields.pop('payment_status', None) or 'pending'
    if payment_status not in PAYMENT_STATUSES:
        raise ValidationError(f"Invalid payment status. Must be one of: {', '.join(PAYMENT_STATUSES)}")

    payment_date = fields.pop('payment_date', None)
    if payment_status == 'completed':
        payment_date = payment_date or now
    else:
        payment_date = None

    period_start = fields.pop('period_start', None) or now
    payment = Payment.objects.create(
        organization=organization,
        amount=amount,
        payment_method=payment_method,
        payment_status=payment_status,
        payment_date=payment_date,
        invoice_number=fields.pop('invoice_number', None) or generate_invoice_number(),
        currency=fields.pop('currency', None) or settings.SAAS_DEFAULT_CURRENCY,
        due_date=fields.pop('due_date', None) or now + timedelta(days=DEFAULT_DUE_DAYS),
        period_start=period_start,
        period_end=fields.pop('period_end', None) or period_start + timedelta(days=DEFAULT_DUE_DAYS),
        **fields
    )
    if payment_status == 'completed':
        _mark_organization_paid(organization, now)
    logger.info(f"Payment {payment.invoice_number} of {payment.amount} {payment.currency} recorded for organization {organization.id}")
    return payment


def _mark_organization_paid(organization, now):
    """Restore a paid-up organization, lifting a payment suspension"""
    organization.refresh_from_db(fields=['subscription_status', 'payment_status'])
    if get_overdue_payments(now).filter(organization=organization).exists():
        return
    organization.payment_status = 'paid'
    if organization.subscription_status == 'suspended':
        organization.subscription_status = 'active'
        Subscription.objects.filter(organization=organization, status='suspended').update(
            status='active', payment_status='paid', updated_at=now
        )
    organization.save(update_fields=['payment_status', 'subscription_status', 'updated_at'])


def update_payment_status(payment, new_status, now=None):
    now = now or timezone.now()
    if new_status not in PAYMENT_STATUSES:
        raise ValidationError(f"Invalid payment status. Must be one of: {', '.join(PAYMENT_STATUSES)}")

    with transaction.atomic():
        payment.payment_status = new_status
        if new_status == 'completed' and payment.payment_date is None:
            payment.payment_date = now
        payment.save(update_fields=['payment_status', 'payment_date', 'updated_at'])

        organization = payment.organization
        if new_status == 'completed':
            _mark_organization_paid(organization, now)
        elif new_status == 'failed':
            organization.payment_status = 'failed'
            organization.save(update_fields=['payment_status', 'updated_at'])
    return payment


def create_invoice(organization, amount, now=None, **fields):
    now = now or timezone.now()
    amount = Decimal(str(amount))
    if amount <= 0:
        raise ValidationError('Amount must be greater than zero')

    line_items = fields.pop('line_items', None) or [
        {'description': fields.get('notes') or 'Subscription', 'quantity': 1, 'amount': str(amount)}
    ]
    issue_date = fields.pop('issue_date', None) or now
    return Invoice.objects.create(
        organization=organization,
        amount=amount,
        invoice_number=fields.pop('invoice_number', None) or generate_invoice_number(),
        currency=fields.pop('currency', None) or settings.SAAS_DEFAULT_CURRENCY,
        status=fields.pop('status', None) or 'draft',
        issue_date=issue_date,
        due_date=fields.pop('due_date', None) or issue_date + timedelta(days=DEFAULT_DUE_DAYS),
        line_items=line_items,
        **fields
    )


def get_overdue_payments(now=None):
    now = now or timezone.now()
    return Payment.objects.filter(payment_status='pending', due_date__isnull=False, due_date__lt=now)


def monthly_recurring_revenue():
    """Active subscription revenue normalised to one month"""
    total = Decimal('0')
    for subscription in Subscription.objects.filter(status='active').select_related('package'):
        total += subscription.package.price / cycle_months(subscription.package.billing_cycle)
    return total.quantize(Decimal('0.01'))


def billing_stats(range_days=30, now=None):
    now = now or timezone.now()
    payments = Payment.objects.all()
    if range_days:
        payments = payments.filter(created_at__gte=now - timedelta(days=range_days))

    totals = payments.aggregate(
        total_invoices=Count('id'),
        total_revenue=Sum('amount', filter=Q(payment_status='completed')),
        pending_amount=Sum('amount', filter=Q(payment_status='pending')),
        failed_count=Count('id', filter=Q(payment_status='failed')),
        completed_count=Count('id', filter=Q(payment_status='completed')),
    )
    overdue = get_overdue_payments(now).aggregate(count=Count('id'), amount=Sum('amount'))
    status_counts = {
        row['payment_status']: row['count']
        for row in payments.order_by().values('payment_status').annotate(count=Count('id'))
    }
    return {
        'range_days': range_days,
        'total_invoices': totals['total_invoices'] or 0,
        'total_revenue': totals['total_revenue'] or Decimal('0'),
        'pending_amount': totals['pending_amount'] or Decimal('0'),
        'completed_count': totals['completed_count'] or 0,
        'failed_count': totals['failed_count'] or 0,
        'overdue_count': overdue['count'] or 0,
        'overdue_amount': overdue['amount'] or Decimal('0'),
        'status_counts': status_counts,
        'monthly_recurring_revenue': monthly_recurring_revenue(),
        'currency': settings.SAAS_DEFAULT_CURRENCY,
    }


def suspend_unpaid_subscriptions(now=None):
    """
    Suspend organizations whose pending payments are overdue beyond the grace period.
    Returns the number of subscriptions suspended.
    """
    now = now or timezone.now()
    cutoff = now - timedelta(days=grace_period_days())
    organization_ids = set(
        get_overdue_payments(now).filter(due_date__lt=cutoff).values_list('organization_id', flat=True)
    )
    if not organization_ids:
        return 0

    suspended = 0
    with transaction.atomic():
        subscriptions = Subscription.objects.select_for_update().select_related('organization').filter(
            organization_id__in=organization_ids,
            status__in=('active', 'trial'),
        )
        for subscription in subscriptions:
            subscription.status = 'suspended'
            subscription.payment_status = 'unpaid'
            subscription.save(update_fields=['status', 'payment_status', 'updated_at'])
            suspended += 1

        for organization_id in organization_ids:
            Organization.objects.filter(pk=organization_id).exclude(subscription_status='cancelled').update(
                subscription_status='suspended', payment_status='unpaid', updated_at=now
            )

    logger.info(f"Suspended {suspended} subscription(s) for {len(organization_ids)} unpaid organization(s)")
    return suspended


def export_payments_csv(payments):
    """CSV export of payments with every field quoted"""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL)
    writer.writerow(EXPORT_HEADERS)
    for payment in payments:
        writer.writerow([
            payment.invoice_number,
            payment.organization.name,
            f"{payment.amount:.2f}",
            payment.currency,
            payment.payment_method,
            payment.payment_status,
            timezone.localtime(payment.created_at).date().isoformat() if payment.created_at else '',
            timezone.localtime(payment.due_date).date().isoformat() if payment.due_date else '',
            payment.description,
        ])
    return output.getvalue()


def share_payment_document(payment, recipient, message='', shared_by=None, now=None):
    """
    Email the rendered invoice document for a payment.

    Raises:
        ValidationError: invalid recipient address
        EmailDeliveryError: the mail backend failed
    """
    now = now or timezone.now()
    recipient = (recipient or '').strip()
    if not recipient:
        raise ValidationError('Recipient email is required')
    validate_email(recipient)

    organization = payment.organization
    html = render_email('saas/emails/payment_document.html', {
        'payment': payment,
        'organization': organization,
        'message': message,
        'overdue': is_overdue(payment, now),
    })
    send_email(recipient, f"Invoice {payment.invoice_number} - {organization.display_name}", html)

    shares = list(payment.metadata.get('shares', []))
    shares.append({
        'recipient': recipient,
        'shared_at': now.isoformat(),
        'shared_by': shared_by.username if shared_by is not None else None,
    })
    payment.metadata = {**payment.metadata, 'shares': shares}
    payment.save(update_fields=['metadata', 'updated_at'])
    return payment
