import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db.models import ProtectedError, Q
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from emr_admin.core.cache_utils import PUBLIC_PACKAGES_CACHE_TTL, cached_query, invalidate_saas_cache
from emr_admin.core.emails import EmailDeliveryError, render_email, send_email
from emr_admin.core.models import Setting
from emr_admin.core.permissions import IsSaaSOwner
from emr_admin.core.serializers import AuditLogSerializer, SettingSerializer, UserSerializer
from emr_admin.core.utils import create_audit_log, paginate_queryset, validation_message
from emr_admin.reports.analytics import billing_analytics, days_overdue
from emr_admin.tenants.models import Organization
from .models import Invoice, Package, Payment, Subscription
from .serializers import (
    CustomerCreateSerializer, InvoiceCreateSerializer, InvoiceSerializer, OrganizationSerializer,
    PackageSerializer, PaymentCreateSerializer, PaymentSerializer, PublicPackageSerializer,
    SubscriptionCreateSerializer, SubscriptionSerializer,
)
from . import billing, customers, dashboard, reminders
from .periods import days_remaining, has_access

logger = logging.getLogger(__name__)

SAAS_PERMISSIONS = [IsAuthenticated, IsSaaSOwner]


def _range_days(request, default=30):
    try:
        return max(int(request.query_params.get('range', default)), 1)
    except (TypeError, ValueError):
        return default


# Dashboard views
@api_view(['GET'])
@permission_classes(SAAS_PERMISSIONS)
def dashboard_stats(request):
    """Headline numbers for the SaaS owner dashboard"""
    return Response(dashboard.dashboard_stats())


@api_view(['GET'])
@permission_classes(SAAS_PERMISSIONS)
def dashboard_activity(request):
    return Response(paginate_queryset(request, dashboard.recent_activity(), AuditLogSerializer, default_limit=10))


@api_view(['GET'])
@permission_classes(SAAS_PERMISSIONS)
def dashboard_alerts(request):
    alerts = dashboard.system_alerts()
    return Response({'alerts': alerts, 'count': len(alerts)})


# Customer views
@api_view(['GET', 'POST'])
@permission_classes(SAAS_PERMISSIONS)
def customer_list_create(request):
    """List tenant organizations or onboard a new customer"""
    if request.method == 'GET':
        queryset = Organization.objects.all().order_by('-created_at', '-id')

        search = request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) |
                Q(subdomain__icontains=search) |
                Q(email__icontains=search)
            )

        status_filter = request.query_params.get('status', None)
        if status_filter:
            queryset = queryset.filter(subscription_status=status_filter)

        return Response(paginate_queryset(request, queryset, OrganizationSerializer))

    serializer = CustomerCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        organization, admin_user, email_sent = customers.create_customer(**serializer.validated_data)
    except ValidationError as e:
        return Response({'error': validation_message(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(
        request=request,
        action='create',
        model_name='Organization',
        object_id=organization.id,
        object_name=organization.name,
        organization=organization,
        changes={'subdomain': organization.subdomain, 'admin_email': admin_user.email}
    )
    invalidate_saas_cache()
    return Response({
        'organization': OrganizationSerializer(organization).data,
        'admin_user': UserSerializer(admin_user).data,
        'email_sent': email_sent,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes(SAAS_PERMISSIONS)
def customer_detail(request, pk):
    organization = get_object_or_404(Organization, pk=pk)

    if request.method == 'GET':
        return Response(OrganizationSerializer(organization).data)
    elif request.method == 'PATCH':
        serializer = OrganizationSerializer(organization, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            create_audit_log(
                request=request,
                action='update',
                model_name='Organization',
                object_id=organization.id,
                object_name=organization.name,
                organization=organization,
                changes=dict(request.data)
            )
            invalidate_saas_cache()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        organization_id = organization.id
        name = organization.name
        organization.delete()
        create_audit_log(
            request=request,
            action='delete',
            model_name='Organization',
            object_id=organization_id,
            object_name=name
        )
        invalidate_saas_cache()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST', 'PATCH'])
@permission_classes(SAAS_PERMISSIONS)
def customer_status(request, pk):
    """Activate, suspend, cancel or deactivate a customer"""
    organization = get_object_or_404(Organization, pk=pk)
    new_status = request.data.get('status')
    old_status = organization.subscription_status

    try:
        customers.update_customer_status(organization, new_status)
    except ValidationError as e:
        return Response({'error': validation_message(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(
        request=request,
        action='status_change',
        model_name='Organization',
        object_id=organization.id,
        object_name=organization.name,
        organization=organization,
        changes={'subscription_status': {'old': old_status, 'new': new_status}}
    )
    invalidate_saas_cache()
    return Response(OrganizationSerializer(organization).data)


@api_view(['GET'])
@permission_classes(SAAS_PERMISSIONS)
def organization_subscription(request, pk):
    """Latest subscription of an organization with its access state"""
    organization = get_object_or_404(Organization, pk=pk)
    subscription = customers.latest_subscription(organization)
    now = timezone.now()
    return Response({
        'organization_id': organization.id,
        'subscription': SubscriptionSerializer(subscription, context={'now': now}).data if subscription else None,
        'has_active_subscription': has_access(subscription, now),
        'days_remaining': days_remaining(subscription.expires_at, now) if subscription else None,
    })


# Package views
@api_view(['GET', 'POST'])
@permission_classes(SAAS_PERMISSIONS)
def package_list_create(request):
    if request.method == 'GET':
        packages = Package.objects.all()
        if request.query_params.get('active_only', '').lower() in ('1', 'true', 'yes'):
            packages = packages.filter(is_active=True)
        return Response(PackageSerializer(packages, many=True).data)

    serializer = PackageSerializer(data=request.data)
    if serializer.is_valid():
        package = serializer.save()
        create_audit_log(
            request=request,
            action='create',
            model_name='Package',
            object_id=package.id,
            object_name=package.name
        )
        invalidate_saas_cache()
        return Response(PackageSerializer(package).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(SAAS_PERMISSIONS)
def package_detail(request, pk):
    package = get_object_or_404(Package, pk=pk)

    if request.method == 'GET':
        return Response(PackageSerializer(package).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = PackageSerializer(package, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            invalidate_saas_cache()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        try:
            package.delete()
        except ProtectedError:
            return Response(
                {'error': 'Package has subscriptions and cannot be deleted. Deactivate it instead.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        invalidate_saas_cache()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Subscription views
@api_view(['GET', 'POST'])
@permission_classes(SAAS_PERMISSIONS)
def subscription_list_create(request):
    now = timezone.now()
    if request.method == 'GET':
        queryset = Subscription.objects.select_related('organization', 'package')

        organization_id = request.query_params.get('organization', None)
        if organization_id:
            queryset = queryset.filter(organization_id=organization_id)

        status_filter = request.query_params.get('status', None)
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        return Response(paginate_queryset(request, queryset, SubscriptionSerializer, context={'now': now}))

    serializer = SubscriptionCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = dict(serializer.validated_data)
    organization = data.pop('organization')
    package = data.pop('package')
    subscription_status = data.pop('status')
    subscription = customers.start_subscription(organization, package, status=subscription_status, now=now, **data)

    create_audit_log(
        request=request,
        action='create',
        model_name='Subscription',
        object_id=subscription.id,
        object_name=organization.name,
        organization=organization,
        changes={'package': package.name, 'status': subscription_status}
    )
    invalidate_saas_cache()
    return Response(SubscriptionSerializer(subscription, context={'now': now}).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(SAAS_PERMISSIONS)
def subscription_detail(request, pk):
    subscription = get_object_or_404(Subscription.objects.select_related('organization', 'package'), pk=pk)
    context = {'now': timezone.now()}

    if request.method == 'GET':
        return Response(SubscriptionSerializer(subscription, context=context).data)
    elif request.method in ('PUT', 'PATCH'):
        old_status = subscription.status
        serializer = SubscriptionSerializer(
            subscription, data=request.data, partial=request.method == 'PATCH', context=context
        )
        if serializer.is_valid():
            subscription = serializer.save()
            if subscription.status != old_status:
                create_audit_log(
                    request=request,
                    action='status_change',
                    model_name='Subscription',
                    object_id=subscription.id,
                    object_name=subscription.organization.name,
                    organization=subscription.organization,
                    changes={'status': {'old': old_status, 'new': subscription.status}}
                )
            invalidate_saas_cache()
            return Response(SubscriptionSerializer(subscription, context=context).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        subscription.delete()
        invalidate_saas_cache()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes(SAAS_PERMISSIONS)
def subscription_remind(request, pk):
    """Send an expiry reminder now, at the requested or currently due level"""
    subscription = get_object_or_404(Subscription.objects.select_related('organization', 'package'), pk=pk)
    level_key = request.data.get('level')
    if not level_key:
        due = reminders.due_reminder_level(subscription)
        level_key = (due or reminders.REMINDER_LEVELS[0])['key']

    try:
        recipient = reminders.send_manual_reminder(subscription, level_key, user=request.user)
    except ValidationError as e:
        return Response({'error': validation_message(e)}, status=status.HTTP_400_BAD_REQUEST)
    except EmailDeliveryError as e:
        return Response({'error': f'Failed to send reminder: {str(e)}'}, status=status.HTTP_502_BAD_GATEWAY)

    return Response({'message': 'Reminder sent', 'level': level_key, 'recipient': recipient})


# Billing views
@api_view(['GET'])
@permission_classes(SAAS_PERMISSIONS)
def billing_stats(request):
    return Response(billing.billing_stats(range_days=_range_days(request)))


@api_view(['GET'])
@permission_classes(SAAS_PERMISSIONS)
def billing_data(request):
    """Payments with search, status and date range filters"""
    queryset = Payment.objects.select_related('organization')

    search = request.query_params.get('search', '').strip()
    if search:
        queryset = queryset.filter(
            Q(invoice_number__icontains=search) |
            Q(organization__name__icontains=search) |
            Q(description__icontains=search)
        )

    status_filter = request.query_params.get('status', None)
    if status_filter:
        queryset = queryset.filter(payment_status=status_filter)

    organization_id = request.query_params.get('organization', None)
    if organization_id:
        queryset = queryset.filter(organization_id=organization_id)

    date_from = request.query_params.get('date_from', None)
    date_to = request.query_params.get('date_to', None)
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    return Response(paginate_queryset(request, queryset, PaymentSerializer, default_limit=20))


@api_view(['GET'])
@permission_classes(SAAS_PERMISSIONS)
def billing_overdue(request):
    now = timezone.now()
    payments = billing.get_overdue_payments(now).select_related('organization').order_by('due_date')
    results = []
    for payment in payments:
        data = PaymentSerializer(payment).data
        data['days_overdue'] = days_overdue(payment, now)
        results.append(data)
    return Response({'results': results, 'count': len(results)})


@api_view(['GET'])
@permission_classes(SAAS_PERMISSIONS)
def billing_analytics_view(request):
    payments = Payment.objects.select_related('organization')
    return Response(billing_analytics(
        payments,
        range_days=_range_days(request),
        organization_id=request.query_params.get('organization') or None,
        status=request.query_params.get('status') or None,
    ))


@api_view(['POST'])
@permission_classes(SAAS_PERMISSIONS)
def billing_suspend_unpaid(request):
    suspended = billing.suspend_unpaid_subscriptions()
    if suspended:
        invalidate_saas_cache()
    return Response({'suspended': suspended})


@api_view(['GET'])
@permission_classes(SAAS_PERMISSIONS)
def billing_mrr(request):
    return Response({
        'monthlyRecurringRevenue': billing.monthly_recurring_revenue(),
        'currency': settings.SAAS_DEFAULT_CURRENCY,
        'calculatedAt': timezone.now().isoformat(),
    })


@api_view(['GET'])
@permission_classes(SAAS_PERMISSIONS)
def billing_export(request):
    """Export payments as CSV"""
    export_format = request.query_params.get('format', 'csv')
    if export_format != 'csv':
        return Response({'error': 'Unsupported export format'}, status=status.HTTP_400_BAD_REQUEST)

    payments = Payment.objects.select_related('organization').order_by('-created_at', '-id')
    status_filter = request.query_params.get('status', None)
    if status_filter:
        payments = payments.filter(payment_status=status_filter)

    response = HttpResponse(billing.export_payments_csv(payments), content_type='text/csv')
    filename = f"payments-{timezone.localdate().isoformat()}.csv"
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


# Payment views
@api_view(['POST'])
@permission_classes(SAAS_PERMISSIONS)
def payment_create(request):
    serializer = PaymentCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = dict(serializer.validated_data)
    organization = data.pop('organization')
    try:
        payment = billing.create_payment(organization, data.pop('amount'), data.pop('payment_method'), **data)
    except ValidationError as e:
        return Response({'error': validation_message(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(
        request=request,
        action='payment_add',
        model_name='Payment',
        object_id=payment.id,
        object_name=organization.name,
        object_reference=payment.invoice_number,
        organization=organization,
        changes={'amount': str(payment.amount), 'status': payment.payment_status}
    )
    invalidate_saas_cache()
    return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'DELETE'])
@permission_classes(SAAS_PERMISSIONS)
def payment_detail(request, pk):
    payment = get_object_or_404(Payment.objects.select_related('organization'), pk=pk)

    if request.method == 'GET':
        return Response(PaymentSerializer(payment).data)

    payment_id = payment.id
    invoice_number = payment.invoice_number
    organization = payment.organization
    payment.delete()
    create_audit_log(
        request=request,
        action='delete',
        model_name='Payment',
        object_id=payment_id,
        object_reference=invoice_number,
        organization=organization
    )
    invalidate_saas_cache()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST', 'PATCH'])
@permission_classes(SAAS_PERMISSIONS)
def payment_status(request, pk):
    payment = get_object_or_404(Payment.objects.select_related('organization'), pk=pk)
    old_status = payment.payment_status
    new_status = request.data.get('status') or request.data.get('payment_status')

    try:
        billing.update_payment_status(payment, new_status)
    except ValidationError as e:
        return Response({'error': validation_message(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(
        request=request,
        action='payment_status',
        model_name='Payment',
        object_id=payment.id,
        object_reference=payment.invoice_number,
        organization=payment.organization,
        changes={'payment_status': {'old': old_status, 'new': new_status}}
    )
    invalidate_saas_cache()
    return Response(PaymentSerializer(payment).data)


@api_view(['POST'])
@permission_classes(SAAS_PERMISSIONS)
def payment_share(request, pk):
    """Email the invoice document of a payment"""
    payment = get_object_or_404(Payment.objects.select_related('organization'), pk=pk)
    recipient = request.data.get('email') or request.data.get('recipient')

    try:
        billing.share_payment_document(payment, recipient, message=request.data.get('message', ''),
                                       shared_by=request.user)
    except ValidationError as e:
        return Response({'error': validation_message(e)}, status=status.HTTP_400_BAD_REQUEST)
    except EmailDeliveryError as e:
        return Response({'error': f'Failed to send document: {str(e)}'}, status=status.HTTP_502_BAD_GATEWAY)

    create_audit_log(
        request=request,
        action='document_share',
        model_name='Payment',
        object_id=payment.id,
        object_reference=payment.invoice_number,
        organization=payment.organization,
        changes={'recipient': recipient}
    )
    return Response({'message': f'Document sent to {recipient}'})


# Invoice views
@api_view(['GET', 'POST'])
@permission_classes(SAAS_PERMISSIONS)
def invoice_list_create(request):
    if request.method == 'GET':
        queryset = Invoice.objects.select_related('organization')
        organization_id = request.query_params.get('organization', None)
        if organization_id:
            queryset = queryset.filter(organization_id=organization_id)
        status_filter = request.query_params.get('status', None)
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return Response(paginate_queryset(request, queryset, InvoiceSerializer, default_limit=20))

    serializer = InvoiceCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = dict(serializer.validated_data)
    organization = data.pop('organization')
    try:
        invoice = billing.create_invoice(organization, data.pop('amount'), **data)
    except ValidationError as e:
        return Response({'error': validation_message(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(
        request=request,
        action='create',
        model_name='Invoice',
        object_id=invoice.id,
        object_name=organization.name,
        object_reference=invoice.invoice_number,
        organization=organization
    )
    return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)


# Settings views
@api_view(['GET', 'PUT'])
@permission_classes(SAAS_PERMISSIONS)
def settings_view(request):
    """Read or upsert SaaS settings; PUT takes a mapping of key to value"""
    if request.method == 'PUT':
        if not isinstance(request.data, dict) or not request.data:
            return Response({'error': 'Expected an object of setting keys and values'},
                            status=status.HTTP_400_BAD_REQUEST)
        for key, value in request.data.items():
            Setting.objects.update_or_create(key=key, defaults={'value': value})
        create_audit_log(
            request=request,
            action='update',
            model_name='Setting',
            object_id=','.join(sorted(request.data)),
            changes={'keys': sorted(request.data)}
        )
    return Response(SettingSerializer(Setting.objects.all(), many=True).data)


@api_view(['POST'])
@permission_classes(SAAS_PERMISSIONS)
def settings_test_email(request):
    """Send a test message with the configured sender"""
    recipient = request.data.get('email') or request.user.email
    if not recipient:
        return Response({'error': 'Recipient email is required'}, status=status.HTTP_400_BAD_REQUEST)

    html = render_email('saas/emails/test_email.html', {'user': request.user, 'sent_at': timezone.now()})
    try:
        send_email(recipient, 'Test email', html)
    except ValidationError as e:
        return Response({'error': validation_message(e)}, status=status.HTTP_400_BAD_REQUEST)
    except EmailDeliveryError as e:
        return Response({'error': f'Failed to send test email: {str(e)}'}, status=status.HTTP_502_BAD_GATEWAY)
    return Response({'message': f'Test email sent to {recipient}'})


# Public website views
@cached_query(cache_ttl=PUBLIC_PACKAGES_CACHE_TTL, key_prefix="public_packages")
def get_public_packages():
    packages = Package.objects.filter(is_active=True, show_on_website=True)
    return list(PublicPackageSerializer(packages, many=True).data)


@api_view(['GET'])
@permission_classes([AllowAny])
def public_packages(request):
    """Packages advertised on the marketing website"""
    return Response(get_public_packages())
