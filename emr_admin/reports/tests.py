"""
Tests for billing analytics and the inventory summary report
"""
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO

from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from emr_admin.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from emr_admin.inventory.models import StockAlert
from emr_admin.reports import analytics

NOW = datetime(2024, 6, 30, 12, tzinfo=dt_timezone.utc)


def payment(invoice_number, amount, payment_status, organization_id=1, organization_name='Alpha',
            payment_method='stripe', days_ago=0, paid_days_ago=None, due_in_days=None):
    return {
        'invoice_number': invoice_number,
        'amount': Decimal(amount),
        'payment_status': payment_status,
        'payment_method': payment_method,
        'organization_id': organization_id,
        'organization_name': organization_name,
        'created_at': NOW - timedelta(days=days_ago),
        'payment_date': NOW - timedelta(days=paid_days_ago) if paid_days_ago is not None else None,
        'due_date': NOW + timedelta(days=due_in_days) if due_in_days is not None else None,
    }


class AnalyticsHelperTests(TestCase):

    def test_aging_bucket_boundaries(self):
        self.assertEqual(analytics.aging_bucket(0), '0-7')
        self.assertEqual(analytics.aging_bucket(7), '0-7')
        self.assertEqual(analytics.aging_bucket(8), '8-30')
        self.assertEqual(analytics.aging_bucket(30), '8-30')
        self.assertEqual(analytics.aging_bucket(31), '31-60')
        self.assertEqual(analytics.aging_bucket(61), '60+')

    def test_days_overdue_floors(self):
        record = {'due_date': NOW - timedelta(days=1, hours=12)}
        self.assertEqual(analytics.days_overdue(record, NOW), 1)
        self.assertEqual(analytics.days_overdue({'due_date': NOW + timedelta(days=3)}, NOW), 0)
        self.assertEqual(analytics.days_overdue({'due_date': None}, NOW), 0)

    def test_only_pending_payments_are_overdue(self):
        self.assertTrue(analytics.is_overdue(payment('A', '1', 'pending', due_in_days=-1), NOW))
        self.assertFalse(analytics.is_overdue(payment('B', '1', 'failed', due_in_days=-1), NOW))
        self.assertFalse(analytics.is_overdue(payment('C', '1', 'pending'), NOW))

    def test_revenue_change_without_previous_period(self):
        self.assertEqual(analytics.revenue_change_percent(Decimal('50'), Decimal('0'), 0), 0.0)

    def test_filter_payments_by_organization_and_status(self):
        records = [
            payment('A', '10', 'completed', organization_id=1),
            payment('B', '10', 'pending', organization_id=2),
        ]
        self.assertEqual(len(analytics.filter_payments(records, organization_id='2')), 1)
        self.assertEqual(analytics.filter_payments(records, status='completed')[0]['invoice_number'], 'A')


class BillingAnalyticsTests(TestCase):
    """Test the billing analytics summary over a fixed set of payments"""

    def setUp(self):
        self.records = [
            payment('INV-1', '100.00', 'completed', paid_days_ago=2, due_in_days=-4, days_ago=10),
            payment('INV-2', '50.00', 'completed', payment_method='cash', paid_days_ago=5, due_in_days=-3, days_ago=6),
            payment('INV-3', '30.00', 'pending', organization_id=2, organization_name='Beta',
                    payment_method='bank_transfer', days_ago=10, due_in_days=-9),
            payment('INV-4', '20.00', 'failed', organization_id=2, organization_name='Beta', days_ago=1, due_in_days=10),
            payment('INV-5', '160.00', 'completed', paid_days_ago=40, days_ago=45),
            payment('INV-6', '70.00', 'pending', organization_id=2, organization_name='Beta', days_ago=70, due_in_days=-65),
        ]

    def test_summary_totals(self):
        result = analytics.billing_analytics(self.records, now=NOW, range_days=30)
        self.assertEqual(result['invoice_count'], 4)
        self.assertEqual(result['total_revenue'], Decimal('200.00'))
        self.assertEqual(result['paid_amount'], Decimal('150.00'))
        self.assertEqual(result['outstanding_amount'], Decimal('50.00'))
        self.assertEqual(result['overdue_amount'], Decimal('100.00'))
        self.assertEqual(result['overdue_count'], 2)
        self.assertEqual(result['critically_overdue_count'], 1)
        self.assertEqual(result['previous_total_revenue'], Decimal('160.00'))
        self.assertEqual(result['revenue_change_percent'], 25.0)
        self.assertEqual(result['success_rate'], 50.0)

    def test_breakdowns(self):
        result = analytics.billing_analytics(self.records, now=NOW, range_days=30)
        self.assertEqual(result['payment_methods'], {
            'stripe': Decimal('120.00'), 'cash': Decimal('50.00'), 'bank_transfer': Decimal('30.00'),
        })
        self.assertEqual(result['status_counts'], {'completed': 2, 'pending': 1, 'failed': 1})
        self.assertEqual(result['aging']['8-30'], {'count': 1, 'amount': Decimal('30.00')})
        self.assertEqual(result['aging']['60+'], {'count': 1, 'amount': Decimal('70.00')})
        self.assertEqual(result['aging']['0-7']['count'], 0)

    def test_payment_behavior(self):
        result = analytics.billing_analytics(self.records, now=NOW, range_days=30)
        self.assertEqual(result['payment_behavior'], {'on_time': 1, 'late': 3, 'avg_delay_days': 0.5})

    def test_rankings(self):
        result = analytics.billing_analytics(self.records, now=NOW, range_days=30)
        top = result['top_organizations']
        self.assertEqual(top[0]['organization_name'], 'Alpha')
        self.assertEqual(top[0]['paid'], Decimal('150.00'))
        self.assertEqual(top[1]['outstanding'], Decimal('50.00'))
        self.assertEqual(result['best_revenue_day'], {'date': '2024-06-28', 'amount': Decimal('100.00')})
        self.assertEqual(result['recent_payments'][0]['invoice_number'], 'INV-4')

    def test_organization_filter(self):
        result = analytics.billing_analytics(self.records, now=NOW, range_days=30, organization_id=2)
        self.assertEqual(result['invoice_count'], 2)
        self.assertEqual(result['paid_amount'], Decimal('0.00'))
        self.assertEqual(result['success_rate'], 0.0)
        self.assertIsNone(result['best_revenue_day'])

    def test_empty_records(self):
        result = analytics.billing_analytics([], now=NOW)
        self.assertEqual(result['total_revenue'], Decimal('0.00'))
        self.assertEqual(result['success_rate'], 0.0)
        self.assertEqual(result['revenue_change_percent'], 0.0)
        self.assertEqual(result['top_organizations'], [])

    def test_unpaid_invoices_count_as_late(self):
        records = [
            payment('A', '10', 'completed', paid_days_ago=5, due_in_days=-3),
            payment('B', '10', 'pending', due_in_days=-2),
            payment('C', '10', 'completed', paid_days_ago=1, due_in_days=-5),
        ]
        self.assertEqual(analytics.payment_behavior(records), {'on_time': 1, 'late': 2, 'avg_delay_days': 1.3})

    def test_cancelled_payments_are_outstanding(self):
        records = [
            payment('A', '40', 'completed'),
            payment('B', '15', 'cancelled'),
        ]
        top = analytics.top_organizations(records)
        self.assertEqual(top[0]['paid'], Decimal('40'))
        self.assertEqual(top[0]['outstanding'], Decimal('15'))


class InventorySummaryTests(TestCase):
    """Test the tenant inventory summary endpoint"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.organization = TestDataFactory.create_organization()
        self.user = TestDataFactory.create_user(organization=self.organization)

    def test_summary(self):
        low = TestDataFactory.create_item(self.organization, current_stock=4, minimum_stock=10,
                                          purchase_price=Decimal('5.00'))
        TestDataFactory.create_item(self.organization, current_stock=20, minimum_stock=5,
                                    purchase_price=Decimal('2.50'))
        StockAlert.objects.create(organization=self.organization, item=low, alert_type='low_stock', message='Low')
        StockAlert.objects.create(organization=self.organization, item=low, alert_type='expired',
                                  message='Gone', is_resolved=True)
        today = timezone.localdate()
        TestDataFactory.create_batch(low, 4, expiry_date=today + timedelta(days=10))
        TestDataFactory.create_batch(low, 4, expiry_date=today + timedelta(days=90))
        TestDataFactory.create_purchase_order(self.organization, lines=[(low, 5, '2.00')])
        TestDataFactory.create_purchase_order(self.organization, status='cancelled')

        other = TestDataFactory.create_organization()
        TestDataFactory.create_item(other, current_stock=100)

        self.client.authenticate_user(self.user)
        response = self.client.get('/api/reports/inventory-summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['inventory_value'], Decimal('70.00'))
        self.assertEqual(response.data['total_items'], 2)
        self.assertEqual(response.data['total_stock'], 24)
        self.assertEqual(response.data['low_stock_count'], 1)
        self.assertEqual(response.data['alerts_by_type'], {'low_stock': 1})
        self.assertEqual(response.data['unresolved_alerts'], 1)
        self.assertEqual(response.data['expiring_batches'], 1)
        self.assertEqual(response.data['purchase_orders_by_status']['pending']['count'], 1)
        self.assertEqual(response.data['purchase_orders_by_status']['cancelled']['count'], 1)
        self.assertEqual(response.data['open_purchase_orders'], 1)

    def test_requires_organization(self):
        self.client.authenticate_user(TestDataFactory.create_saas_owner())
        response = self.client.get('/api/reports/inventory-summary/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_requires_authentication(self):
        response = self.client.get('/api/reports/inventory-summary/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_resolving_alert_refreshes_summary(self):
        item = TestDataFactory.create_item(self.organization, current_stock=2, minimum_stock=10)
        alert = StockAlert.objects.create(organization=self.organization, item=item, alert_type='low_stock',
                                          message='Low')
        self.client.authenticate_user(self.user)
        self.assertEqual(self.client.get('/api/reports/inventory-summary/').data['unresolved_alerts'], 1)

        response = self.client.post(f'/api/inventory/alerts/{alert.id}/resolve/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.get('/api/reports/inventory-summary/').data['unresolved_alerts'], 0)

    def test_expiry_scan_refreshes_summary(self):
        item = TestDataFactory.create_item(self.organization, current_stock=8, minimum_stock=1)
        self.client.authenticate_user(self.user)
        self.assertEqual(self.client.get('/api/reports/inventory-summary/').data['alerts_by_type'], {})

        TestDataFactory.create_batch(item, 8, expiry_date=timezone.localdate() - timedelta(days=1))
        call_command('check_batch_expiry', stdout=StringIO())
        response = self.client.get('/api/reports/inventory-summary/')
        self.assertIn('expired', response.data['alerts_by_type'])
        self.assertEqual(response.data['total_stock'], 0)
