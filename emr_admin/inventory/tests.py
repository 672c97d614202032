"""
Test suite for the Inventory module
Tests: stock movements, low stock alerts, FEFO batch issue, expiry scan, API and export
"""
from datetime import timedelta
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from emr_admin.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from emr_admin.inventory import services
from emr_admin.inventory.models import Batch, InventoryItem, StockAlert, StockMovement


class UpdateStockTests(TestCase):
    """Test update_stock and low stock alerting"""

    def setUp(self):
        self.organization = TestDataFactory.create_organization()
        self.user = TestDataFactory.create_user(organization=self.organization)
        self.item = TestDataFactory.create_item(self.organization, current_stock=50, minimum_stock=10)

    def test_positive_adjustment_records_movement(self):
        movement = services.update_stock(self.item, 25, 'purchase', user=self.user, notes='Delivery')
        self.item.refresh_from_db()
        self.assertEqual(self.item.current_stock, 75)
        self.assertEqual(movement.previous_stock, 50)
        self.assertEqual(movement.new_stock, 75)
        self.assertEqual(movement.quantity, 25)
        self.assertEqual(movement.created_by, self.user)

    def test_movement_chain_is_consistent(self):
        services.update_stock(self.item, -5, 'issue')
        services.update_stock(self.item, 12, 'purchase')
        services.update_stock(self.item, -7, 'adjustment')
        movements = list(StockMovement.objects.filter(item=self.item).order_by('id'))
        for previous, current in zip(movements, movements[1:]):
            self.assertEqual(previous.new_stock, current.previous_stock)
        for movement in movements:
            self.assertEqual(movement.previous_stock + movement.quantity, movement.new_stock)
        self.item.refresh_from_db()
        self.assertEqual(self.item.current_stock, movements[-1].new_stock)

    def test_zero_quantity_rejected(self):
        with self.assertRaises(ValidationError):
            services.update_stock(self.item, 0, 'adjustment')

    def test_negative_stock_rejected(self):
        with self.assertRaises(services.InsufficientStockError) as ctx:
            services.update_stock(self.item, -51, 'issue')
        self.assertEqual(ctx.exception.available, 50)
        self.assertEqual(ctx.exception.requested, 51)
        self.item.refresh_from_db()
        self.assertEqual(self.item.current_stock, 50)
        self.assertFalse(StockMovement.objects.filter(item=self.item).exists())

    def test_low_stock_alert_raised_once(self):
        services.update_stock(self.item, -40, 'issue')
        services.update_stock(self.item, -1, 'issue')
        alerts = StockAlert.objects.filter(item=self.item, alert_type='low_stock', is_resolved=False)
        self.assertEqual(alerts.count(), 1)
        self.assertEqual(alerts.first().threshold_value, 10)

    def test_low_stock_alert_resolved_on_restock(self):
        services.update_stock(self.item, -45, 'issue')
        services.update_stock(self.item, 30, 'purchase')
        self.assertFalse(StockAlert.objects.filter(item=self.item, alert_type='low_stock', is_resolved=False).exists())
        self.assertTrue(StockAlert.objects.filter(item=self.item, alert_type='low_stock', is_resolved=True).exists())

    def test_inventory_value(self):
        TestDataFactory.create_item(self.organization, current_stock=4, purchase_price=Decimal('2.50'), minimum_stock=5)
        totals = services.get_inventory_value(self.organization)
        self.assertEqual(totals['total_value'], Decimal('260.00'))
        self.assertEqual(totals['total_items'], 2)
        self.assertEqual(totals['low_stock_items'], 1)


class SkuAndBarcodeTests(TestCase):

    def test_generate_sku_format(self):
        sku = services.generate_sku('Antibiotics', 'Amoxicillin 500mg')
        prefix, name, suffix = sku.split('-')
        self.assertEqual(prefix, 'ANT')
        self.assertEqual(name, 'AMOXIC')
        self.assertEqual(len(suffix), 4)

    def test_generate_sku_without_category(self):
        self.assertTrue(services.generate_sku('', 'Gauze').startswith('GEN-GAUZE-'))

    def test_barcode_is_twelve_digits(self):
        barcode = services.generate_barcode()
        self.assertEqual(len(barcode), 12)
        self.assertTrue(barcode.isdigit())


class FefoIssueTests(TestCase):
    """Test First-Expired-First-Out issuing of batch tracked stock"""

    def setUp(self):
        self.organization = TestDataFactory.create_organization()
        self.today = timezone.localdate()
        self.item = TestDataFactory.create_item(
            self.organization, current_stock=30, minimum_stock=0, batch_tracking=True, expiry_tracking=True
        )
        self.late = TestDataFactory.create_batch(self.item, 10, expiry_date=self.today + timedelta(days=90), batch_number='LATE')
        self.early = TestDataFactory.create_batch(self.item, 10, expiry_date=self.today + timedelta(days=10), batch_number='EARLY')
        self.no_expiry = TestDataFactory.create_batch(self.item, 10, expiry_date=None, batch_number='NOEXP')

    def test_available_batches_order(self):
        batches = list(services.get_available_batches(self.item, today=self.today))
        self.assertEqual([b.batch_number for b in batches], ['EARLY', 'LATE', 'NOEXP'])

    def test_expired_batch_not_available(self):
        TestDataFactory.create_batch(self.item, 5, expiry_date=self.today, batch_number='TODAY')
        batch_numbers = [b.batch_number for b in services.get_available_batches(self.item, today=self.today)]
        self.assertNotIn('TODAY', batch_numbers)

    def test_issue_spans_batches_earliest_first(self):
        movements = services.issue_stock(self.item, 15, today=self.today)
        self.assertEqual([(m.batch.batch_number, m.quantity) for m in movements], [('EARLY', -10), ('LATE', -5)])

        self.early.refresh_from_db()
        self.late.refresh_from_db()
        self.assertEqual(self.early.remaining_quantity, 0)
        self.assertEqual(self.early.status, 'depleted')
        self.assertEqual(self.late.remaining_quantity, 5)
        self.item.refresh_from_db()
        self.assertEqual(self.item.current_stock, 15)

    def test_issue_more_than_batches_hold(self):
        with self.assertRaises(services.InsufficientStockError):
            services.issue_stock(self.item, 31, today=self.today)
        self.early.refresh_from_db()
        self.assertEqual(self.early.remaining_quantity, 10)

    def test_untracked_item_issue(self):
        plain = TestDataFactory.create_item(self.organization, current_stock=8, minimum_stock=0)
        movements = services.issue_stock(plain, 3)
        self.assertEqual(len(movements), 1)
        self.assertIsNone(movements[0].batch)
        plain.refresh_from_db()
        self.assertEqual(plain.current_stock, 5)


class BatchExpiryScanTests(TestCase):
    """Test expiry write-off and expiring-soon alerts"""

    def setUp(self):
        self.organization = TestDataFactory.create_organization()
        self.today = timezone.localdate()
        self.item = TestDataFactory.create_item(self.organization, current_stock=20, minimum_stock=0, expiry_tracking=True)

    def test_expired_batch_written_off(self):
        batch = TestDataFactory.create_batch(self.item, 8, expiry_date=self.today - timedelta(days=1))
        result = services.scan_batch_expiry(today=self.today)
        self.assertEqual(result['expired'], 1)

        batch.refresh_from_db()
        self.item.refresh_from_db()
        self.assertEqual(batch.status, 'expired')
        self.assertEqual(batch.remaining_quantity, 0)
        self.assertEqual(self.item.current_stock, 12)
        movement = StockMovement.objects.get(item=self.item, movement_type='expired')
        self.assertEqual(movement.quantity, -8)
        self.assertTrue(StockAlert.objects.filter(item=self.item, alert_type='expired', batch=batch).exists())

    def test_write_off_never_below_zero(self):
        self.item.current_stock = 3
        self.item.save()
        TestDataFactory.create_batch(self.item, 8, expiry_date=self.today)
        services.scan_batch_expiry(today=self.today)
        self.item.refresh_from_db()
        self.assertEqual(self.item.current_stock, 0)

    def test_expiring_soon_alert_not_duplicated(self):
        TestDataFactory.create_batch(self.item, 5, expiry_date=self.today + timedelta(days=5))
        first = services.scan_batch_expiry(today=self.today, warning_days=30)
        second = services.scan_batch_expiry(today=self.today, warning_days=30)
        self.assertEqual(first['expiring_soon'], 1)
        self.assertEqual(second['expiring_soon'], 0)
        self.assertEqual(StockAlert.objects.filter(alert_type='expiring_soon').count(), 1)

    def test_outside_warning_window_ignored(self):
        TestDataFactory.create_batch(self.item, 5, expiry_date=self.today + timedelta(days=60))
        result = services.scan_batch_expiry(today=self.today, warning_days=30)
        self.assertEqual(result, {'expired': 0, 'expiring_soon': 0})

    def test_management_command(self):
        TestDataFactory.create_batch(self.item, 2, expiry_date=self.today - timedelta(days=3))
        call_command('check_batch_expiry', organization=self.organization.subdomain, days=10)
        self.assertEqual(Batch.objects.get(item=self.item).status, 'expired')


class InventoryAPITests(TestCase):
    """Test inventory endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.organization = TestDataFactory.create_organization()
        self.user = TestDataFactory.create_user(organization=self.organization)
        self.client.authenticate_user(self.user)
        self.category = TestDataFactory.create_category(self.organization, name='Analgesics')

    def test_create_item_generates_sku_and_barcode(self):
        response = self.client.post('/api/inventory/items/', {
            'name': 'Paracetamol 500mg',
            'category': self.category.id,
            'purchase_price': '1.20',
            'sale_price': '2.00',
            'current_stock': 40,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['sku'].startswith('ANA-PARACE-'))
        self.assertEqual(len(response.data['barcode']), 12)
        self.assertEqual(response.data['current_stock'], 40)
        movement = StockMovement.objects.get(item_id=response.data['id'])
        self.assertEqual(movement.notes, 'Opening stock')

    def test_create_item_without_stock_raises_low_stock_alert(self):
        response = self.client.post('/api/inventory/items/', {'name': 'Bandage'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(StockAlert.objects.filter(item_id=response.data['id'], alert_type='low_stock').exists())

    def test_duplicate_sku_rejected(self):
        TestDataFactory.create_item(self.organization, sku='DUP-1')
        response = self.client.post('/api/inventory/items/', {'name': 'Other', 'sku': 'DUP-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_cannot_change_stock(self):
        item = TestDataFactory.create_item(self.organization, current_stock=5)
        response = self.client.patch(f'/api/inventory/items/{item.id}/', {'current_stock': 50}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_items_are_tenant_scoped(self):
        other_item = TestDataFactory.create_item(TestDataFactory.create_organization())
        TestDataFactory.create_item(self.organization)
        response = self.client.get('/api/inventory/items/')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get(f'/api/inventory/items/{other_item.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_filter_low_stock(self):
        TestDataFactory.create_item(self.organization, name='Low', current_stock=1, minimum_stock=5)
        TestDataFactory.create_item(self.organization, name='Plenty', current_stock=100, minimum_stock=5)
        response = self.client.get('/api/inventory/items/', {'low_stock': 'true'})
        self.assertEqual([row['name'] for row in response.data['results']], ['Low'])

    def test_adjust_stock_endpoint(self):
        item = TestDataFactory.create_item(self.organization, current_stock=10, minimum_stock=0)
        response = self.client.post(f'/api/inventory/items/{item.id}/stock/', {'quantity': -4, 'notes': 'Damaged'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['item']['current_stock'], 6)
        self.assertEqual(response.data['movement']['movement_type'], 'adjustment')

    def test_adjust_stock_insufficient(self):
        item = TestDataFactory.create_item(self.organization, current_stock=2)
        response = self.client.post(f'/api/inventory/items/{item.id}/stock/', {'quantity': -5}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Insufficient stock', response.data['error'])

    def test_issue_endpoint_uses_fefo(self):
        item = TestDataFactory.create_item(self.organization, current_stock=10, minimum_stock=0, batch_tracking=True)
        today = timezone.localdate()
        TestDataFactory.create_batch(item, 5, expiry_date=today + timedelta(days=100), batch_number='B2')
        TestDataFactory.create_batch(item, 5, expiry_date=today + timedelta(days=20), batch_number='B1')
        response = self.client.post(f'/api/inventory/items/{item.id}/issue/', {'quantity': 6}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([m['batch_number'] for m in response.data['movements']], ['B1', 'B2'])

    def test_alert_resolve(self):
        item = TestDataFactory.create_item(self.organization, current_stock=0)
        alert = services.check_low_stock(item)
        response = self.client.post(f'/api/inventory/alerts/{alert.id}/resolve/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['is_resolved'])
        response = self.client.get('/api/inventory/alerts/')
        self.assertEqual(response.data, [])

    def test_export_csv(self):
        TestDataFactory.create_item(self.organization, name='Syringe', sku='SYR-1', current_stock=3)
        response = self.client.get('/api/inventory/items/export/', {'format': 'csv'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'text/csv')
        lines = response.content.decode().strip().splitlines()
        self.assertTrue(lines[0].startswith('SKU,Name,Category'))
        self.assertIn('SYR-1', lines[1])

    def test_export_other_format_rejected(self):
        response = self.client.get('/api/inventory/items/export/', {'format': 'xlsx'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_user_without_organization_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get('/api/inventory/items/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_value_endpoint(self):
        TestDataFactory.create_item(self.organization, current_stock=10, purchase_price=Decimal('3.00'))
        response = self.client.get('/api/inventory/value/')
        self.assertEqual(response.data['total_value'], '30.00')
