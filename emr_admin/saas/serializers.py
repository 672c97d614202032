from rest_framework import serializers

from emr_admin.tenants.models import Organization
from .models import Package, Subscription, Payment, Invoice
from .periods import subscription_timing
from .billing import PAYMENT_METHODS, PAYMENT_STATUSES


class PackageSerializer(serializers.ModelSerializer):
    class Meta:
        model = Package
        fields = ['id', 'name', 'description', 'price', 'billing_cycle', 'features', 'is_active',
                  'show_on_website', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate_price(self, value):
        if value < 0:
            raise serializers.ValidationError('Price must not be negative')
        return value

    def validate_features(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError('Features must be a list')
        return value


class PublicPackageSerializer(serializers.ModelSerializer):
    class Meta:
        model = Package
        fields = ['id', 'name', 'description', 'price', 'billing_cycle', 'features']


class SubscriptionSerializer(serializers.ModelSerializer):
    organization_name = serializers.CharField(source='organization.name', read_only=True)
    package_name = serializers.CharField(source='package.name', read_only=True)
    timing = serializers.SerializerMethodField()

    class Meta:
        model = Subscription
        fields = ['id', 'organization', 'organization_name', 'package', 'package_name', 'status',
                  'payment_status', 'current_period_start', 'current_period_end', 'expires_at',
                  'trial_end', 'cancel_at_period_end', 'max_users', 'max_patients', 'details',
                  'metadata', 'timing', 'created_at', 'updated_at']
        read_only_fields = ['organization', 'metadata', 'created_at', 'updated_at']

    def get_timing(self, obj):
        return subscription_timing(obj, self.context.get('now'))


class SubscriptionCreateSerializer(serializers.Serializer):
    organization_id = serializers.PrimaryKeyRelatedField(queryset=Organization.objects.all(), source='organization')
    package_id = serializers.PrimaryKeyRelatedField(queryset=Package.objects.all(), source='package')
    status = serializers.ChoiceField(choices=['trial', 'active'], default='active')
    current_period_start = serializers.DateTimeField(required=False)
    expires_at = serializers.DateTimeField(required=False)
    max_users = serializers.IntegerField(min_value=1, required=False)
    max_patients = serializers.IntegerField(min_value=1, required=False)
    details = serializers.CharField(required=False, allow_blank=True)


class OrganizationSerializer(serializers.ModelSerializer):
    user_count = serializers.SerializerMethodField()
    subscription = serializers.SerializerMethodField()

    class Meta:
        model = Organization
        fields = ['id', 'name', 'subdomain', 'email', 'region', 'brand_name', 'settings', 'features',
                  'access_level', 'subscription_status', 'payment_status', 'user_count',
                  'subscription', 'created_at', 'updated_at']
        read_only_fields = ['subdomain', 'subscription_status', 'payment_status', 'created_at', 'updated_at']

    def get_user_count(self, obj):
        return obj.users.count()

    def get_subscription(self, obj):
        latest = obj.subscriptions.select_related('package').order_by('-created_at', '-id').first()
        if latest is None:
            return None
        return {
            'id': latest.id,
            'package': latest.package.name,
            'status': latest.status,
            'expires_at': latest.expires_at,
        }


class CustomerCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    subdomain = serializers.CharField(max_length=100)
    admin_email = serializers.EmailField()
    admin_first_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    admin_last_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    email = serializers.EmailField(required=False, allow_blank=True)
    region = serializers.ChoiceField(choices=[choice for choice, _ in Organization.REGION_CHOICES], default='UK')
    brand_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    package_id = serializers.PrimaryKeyRelatedField(
        queryset=Package.objects.filter(is_active=True), source='package', required=False, allow_null=True
    )
    trial = serializers.BooleanField(default=False)


class PaymentSerializer(serializers.ModelSerializer):
    organization_name = serializers.CharField(source='organization.name', read_only=True)

    class Meta:
        model = Payment
        fields = ['id', 'organization', 'organization_name', 'subscription', 'invoice_number', 'amount',
                  'currency', 'payment_method', 'payment_status', 'payment_date', 'due_date',
                  'period_start', 'period_end', 'payment_provider', 'provider_transaction_id',
                  'description', 'metadata', 'created_at', 'updated_at']


class PaymentCreateSerializer(serializers.Serializer):
    organization_id = serializers.PrimaryKeyRelatedField(queryset=Organization.objects.all(), source='organization')
    subscription_id = serializers.PrimaryKeyRelatedField(
        queryset=Subscription.objects.all(), source='subscription', required=False, allow_null=True
    )
    amount = serializers.DecimalField(max_digits=10, decimal_places=2)
    payment_method = serializers.ChoiceField(choices=PAYMENT_METHODS)
    payment_status = serializers.ChoiceField(choices=PAYMENT_STATUSES, required=False)
    invoice_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    currency = serializers.CharField(max_length=3, required=False, allow_blank=True)
    due_date = serializers.DateTimeField(required=False, allow_null=True)
    period_start = serializers.DateTimeField(required=False, allow_null=True)
    period_end = serializers.DateTimeField(required=False, allow_null=True)
    payment_provider = serializers.CharField(max_length=50, required=False, allow_blank=True)
    provider_transaction_id = serializers.CharField(max_length=255, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError('Amount must be greater than zero')
        return value

    def validate_invoice_number(self, value):
        if value and (Payment.objects.filter(invoice_number=value).exists()
                      or Invoice.objects.filter(invoice_number=value).exists()):
            raise serializers.ValidationError(f"Invoice number '{value}' already exists")
        return value

    def validate(self, attrs):
        subscription = attrs.get('subscription')
        if subscription is not None and subscription.organization_id != attrs['organization'].id:
            raise serializers.ValidationError({'subscription_id': 'Subscription does not belong to the organization'})
        return attrs


class InvoiceSerializer(serializers.ModelSerializer):
    organization_name = serializers.CharField(source='organization.name', read_only=True)

    class Meta:
        model = Invoice
        fields = ['id', 'organization', 'organization_name', 'subscription', 'invoice_number', 'amount',
                  'currency', 'status', 'issue_date', 'due_date', 'paid_date', 'period_start',
                  'period_end', 'line_items', 'notes', 'created_at', 'updated_at']


class InvoiceCreateSerializer(serializers.Serializer):
    organization_id = serializers.PrimaryKeyRelatedField(queryset=Organization.objects.all(), source='organization')
    subscription_id = serializers.PrimaryKeyRelatedField(
        queryset=Subscription.objects.all(), source='subscription', required=False, allow_null=True
    )
    amount = serializers.DecimalField(max_digits=10, decimal_places=2)
    status = serializers.ChoiceField(choices=[choice for choice, _ in Invoice.STATUS_CHOICES], required=False)
    currency = serializers.CharField(max_length=3, required=False, allow_blank=True)
    issue_date = serializers.DateTimeField(required=False, allow_null=True)
    due_date = serializers.DateTimeField(required=False, allow_null=True)
    period_start = serializers.DateTimeField(required=False, allow_null=True)
    period_end = serializers.DateTimeField(required=False, allow_null=True)
    line_items = serializers.ListField(child=serializers.DictField(), required=False)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError('Amount must be greater than zero')
        return value
