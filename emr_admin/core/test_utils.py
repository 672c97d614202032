"""
Test utilities and factories for creating test data
"""
from datetime import timedelta
from decimal import Decimal
import random
import string

from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from emr_admin.tenants.models import Organization
from emr_admin.inventory.models import Category, Supplier, InventoryItem, Batch
from emr_admin.purchasing.models import PurchaseOrder, PurchaseOrderItem
from emr_admin.purchasing.services import generate_po_number, refresh_order_totals
from emr_admin.saas.models import Package, Subscription, Payment
from emr_admin.saas.billing import generate_invoice_number

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_lowercase + string.digits, k=length))

    @staticmethod
    def create_organization(name=None, subdomain=None, email=None, **fields):
        """Create a tenant organization"""
        if not name:
            name = f'Clinic {TestDataFactory.random_string(6)}'
        if not subdomain:
            subdomain = f'clinic-{TestDataFactory.random_string(8)}'
        return Organization.objects.create(
            name=name,
            subdomain=subdomain,
            email=email if email is not None else f'{subdomain}@test.com',
            **fields
        )

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', organization=None,
                    role='staff', is_saas_owner=False, is_active=True):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if email is None:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            organization=organization,
            role=role,
            is_saas_owner=is_saas_owner,
            is_active=is_active,
        )

    @staticmethod
    def create_org_admin(organization=None, **kwargs):
        """Create an organization with an admin user"""
        organization = organization or TestDataFactory.create_organization()
        return TestDataFactory.create_user(organization=organization, role='admin', **kwargs)

    @staticmethod
    def create_saas_owner(**kwargs):
        return TestDataFactory.create_user(is_saas_owner=True, role='admin', **kwargs)

    @staticmethod
    def create_category(organization, name=None, description=''):
        """Create a test category"""
        if not name:
            name = f'Category {TestDataFactory.random_string(6)}'
        return Category.objects.create(organization=organization, name=name, description=description)

    @staticmethod
    def create_supplier(organization, name=None, email='orders@supplier.test', **fields):
        """Create a test supplier"""
        if not name:
            name = f'Supplier {TestDataFactory.random_string(6)}'
        return Supplier.objects.create(organization=organization, name=name, email=email, **fields)

    @staticmethod
    def create_item(organization, name=None, sku=None, category=None, current_stock=0,
                    minimum_stock=10, purchase_price=Decimal('5.00'), sale_price=Decimal('8.00'), **fields):
        """Create a test inventory item"""
        if not name:
            name = f'Item {TestDataFactory.random_string(6)}'
        if not sku:
            sku = f'SKU-{TestDataFactory.random_string(8).upper()}'
        return InventoryItem.objects.create(
            organization=organization,
            category=category,
            name=name,
            sku=sku,
            current_stock=current_stock,
            minimum_stock=minimum_stock,
            purchase_price=purchase_price,
            sale_price=sale_price,
            **fields
        )

    @staticmethod
    def create_batch(item, quantity, expiry_date=None, batch_number=None, remaining_quantity=None, **fields):
        """Create a batch; the item's current_stock is left untouched"""
        if not batch_number:
            batch_number = f'B-{TestDataFactory.random_string(6).upper()}'
        return Batch.objects.create(
            organization=item.organization,
            item=item,
            batch_number=batch_number,
            expiry_date=expiry_date,
            quantity=quantity,
            remaining_quantity=quantity if remaining_quantity is None else remaining_quantity,
            received_date=fields.pop('received_date', timezone.now()),
            **fields
        )

    @staticmethod
    def create_purchase_order(organization, supplier=None, lines=None, user=None, **fields):
        """
        Create a purchase order.

        lines: list of (item, quantity, unit_price) tuples
        """
        supplier = supplier or TestDataFactory.create_supplier(organization)
        order = PurchaseOrder.objects.create(
            organization=organization,
            supplier=supplier,
            po_number=fields.pop('po_number', None) or generate_po_number(),
            created_by=user,
            **fields
        )
        for item, quantity, unit_price in lines or []:
            PurchaseOrderItem.objects.create(
                purchase_order=order,
                item=item,
                quantity=quantity,
                unit_price=Decimal(str(unit_price)),
            )
        if lines:
            refresh_order_totals(order)
        return order

    @staticmethod
    def create_package(name=None, price=Decimal('100.00'), billing_cycle='monthly', **fields):
        if not name:
            name = f'Package {TestDataFactory.random_string(6)}'
        return Package.objects.create(name=name, price=price, billing_cycle=billing_cycle, **fields)

    @staticmethod
    def create_subscription(organization, package=None, status='active', expires_at=None, **fields):
        """Create a subscription expiring in 30 days unless told otherwise"""
        package = package or TestDataFactory.create_package()
        now = timezone.now()
        if expires_at is None:
            expires_at = now + timedelta(days=30)
        return Subscription.objects.create(
            organization=organization,
            package=package,
            status=status,
            current_period_start=fields.pop('current_period_start', now),
            current_period_end=fields.pop('current_period_end', expires_at),
            expires_at=expires_at,
            **fields
        )

    @staticmethod
    def create_payment(organization, amount=Decimal('100.00'), payment_status='pending',
                       payment_method='bank_transfer', **fields):
        """Create a payment row directly, bypassing billing side effects"""
        return Payment.objects.create(
            organization=organization,
            amount=amount,
            payment_status=payment_status,
            payment_method=payment_method,
            invoice_number=fields.pop('invoice_number', None) or generate_invoice_number(),
            **fields
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
