"""
Test suite for the Purchasing module
Tests: order totals, PO lifecycle, supplier email, goods receipts and edge cases
"""
from datetime import timedelta
from decimal import Decimal

from django.core import mail
from django.core.exceptions import ValidationError
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from emr_admin.core.models import AuditLog
from emr_admin.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from emr_admin.inventory.models import Batch, StockMovement
from emr_admin.purchasing import services
from emr_admin.purchasing.models import PurchaseOrder


class OrderTotalsTests(TestCase):
    """Test calculate_order_totals"""

    def test_subtotal_tax_and_discount(self):
        subtotal, total = services.calculate_order_totals(
            [(10, Decimal('2.50')), (3, Decimal('1.99'))], Decimal('4.00'), Decimal('1.00')
        )
        self.assertEqual(subtotal, Decimal('30.97'))
        self.assertEqual(total, Decimal('33.97'))

    def test_rounding_half_up(self):
        subtotal, _ = services.calculate_order_totals([(1, '0.125')])
        self.assertEqual(subtotal, Decimal('0.13'))

    def test_negative_tax_rejected(self):
        with self.assertRaises(ValidationError):
            services.calculate_order_totals([(1, '10.00')], tax_amount='-1')

    def test_discount_above_total_rejected(self):
        with self.assertRaises(ValidationError):
            services.calculate_order_totals([(1, '10.00')], discount_amount='10.01')

    def test_number_formats(self):
        today = timezone.now().strftime('%Y%m%d')
        po_number = services.generate_po_number()
        self.assertTrue(po_number.startswith(f'PO-{today}-'))
        self.assertEqual(len(po_number.split('-')[-1]), 8)
        self.assertTrue(services.generate_receipt_number().startswith(f'GR-{today}-'))


class PurchaseOrderModelTests(TestCase):

    def setUp(self):
        self.organization = TestDataFactory.create_organization()
        self.item = TestDataFactory.create_item(self.organization)

    def test_str_and_totals(self):
        order = TestDataFactory.create_purchase_order(
            self.organization, lines=[(self.item, 4, '2.25')], po_number='PO-TEST-1'
        )
        self.assertEqual(str(order), 'PO-TEST-1')
        self.assertEqual(order.get_subtotal(), Decimal('9.00'))
        self.assertEqual(order.total_amount, Decimal('9.00'))

    def test_line_total_price_set_on_save(self):
        order = TestDataFactory.create_purchase_order(self.organization, lines=[(self.item, 3, '1.50')])
        line = order.items.get()
        self.assertEqual(line.total_price, Decimal('4.50'))
        self.assertEqual(line.outstanding_quantity, 3)


class SendPurchaseOrderEmailTests(TestCase):

    def setUp(self):
        self.organization = TestDataFactory.create_organization(name='Riverside Clinic')
        self.item = TestDataFactory.create_item(self.organization, name='Gloves')
        self.supplier = TestDataFactory.create_supplier(self.organization, email='sales@medsupply.test')
        self.order = TestDataFactory.create_purchase_order(
            self.organization, supplier=self.supplier, lines=[(self.item, 100, '0.10')]
        )

    def test_email_sent_and_order_marked_sent(self):
        services.send_purchase_order_email(self.order)
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ['sales@medsupply.test'])
        self.assertIn(self.order.po_number, message.subject)
        self.assertIn('Gloves', message.alternatives[0][0])

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, 'sent')
        self.assertTrue(self.order.email_sent)
        self.assertIsNotNone(self.order.email_sent_at)

    def test_supplier_without_email(self):
        self.supplier.email = ''
        self.supplier.save()
        with self.assertRaisesMessage(ValidationError, 'Supplier email not found'):
            services.send_purchase_order_email(self.order)
        self.assertEqual(len(mail.outbox), 0)

    def test_cancelled_order_cannot_be_sent(self):
        services.cancel_purchase_order(self.order)
        with self.assertRaises(ValidationError):
            services.send_purchase_order_email(self.order)


class ReceiveGoodsTests(TestCase):
    """Test receive_goods stock, batch and order status effects"""

    def setUp(self):
        self.organization = TestDataFactory.create_organization()
        self.user = TestDataFactory.create_user(organization=self.organization)
        self.item = TestDataFactory.create_item(self.organization, current_stock=0, minimum_stock=0)
        self.order = TestDataFactory.create_purchase_order(self.organization, lines=[(self.item, 10, '3.00')])
        self.line = self.order.items.get()

    def _line(self, quantity, **extra):
        return {'item': self.item, 'quantity': quantity, 'purchase_order_item': self.line, **extra}

    def test_partial_then_full_receipt(self):
        services.receive_goods(self.organization, self.user, [self._line(4)], purchase_order=self.order)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, 'partially_received')

        services.receive_goods(self.organization, self.user, [self._line(6)], purchase_order=self.order)
        self.order.refresh_from_db()
        self.line.refresh_from_db()
        self.assertEqual(self.order.status, 'received')
        self.assertEqual(self.line.received_quantity, 10)
        self.item.refresh_from_db()
        self.assertEqual(self.item.current_stock, 10)

    def test_stock_movement_references_receipt(self):
        receipt = services.receive_goods(self.organization, self.user, [self._line(2)], purchase_order=self.order)
        movement = StockMovement.objects.get(item=self.item)
        self.assertEqual(movement.movement_type, 'purchase')
        self.assertEqual(movement.reference_type, 'goods_receipt')
        self.assertEqual(movement.reference_id, str(receipt.id))
        self.assertEqual(movement.unit_cost, Decimal('3.00'))

    def test_over_receipt_rejected(self):
        with self.assertRaises(ValidationError):
            services.receive_goods(self.organization, self.user, [self._line(11)], purchase_order=self.order)
        self.item.refresh_from_db()
        self.assertEqual(self.item.current_stock, 0)

    def test_batch_created_with_expiry(self):
        expiry = timezone.localdate() + timedelta(days=365)
        receipt = services.receive_goods(
            self.organization, self.user, [self._line(5, batch_number='LOT-9', expiry_date=expiry)],
            purchase_order=self.order
        )
        batch = Batch.objects.get(item=self.item)
        self.assertEqual(batch.batch_number, 'LOT-9')
        self.assertEqual(batch.remaining_quantity, 5)
        self.assertEqual(receipt.items.get().batch, batch)

    def test_generated_batch_number(self):
        expiry = timezone.localdate() + timedelta(days=30)
        services.receive_goods(self.organization, self.user, [self._line(1, expiry_date=expiry)], purchase_order=self.order)
        self.assertTrue(Batch.objects.get(item=self.item).batch_number.startswith('BATCH-'))

    def test_expiry_must_follow_received_date(self):
        with self.assertRaises(ValidationError):
            services.receive_goods(
                self.organization, self.user,
                [self._line(1, expiry_date=timezone.localdate())],
                purchase_order=self.order
            )

    def test_cancelled_order_rejected(self):
        services.cancel_purchase_order(self.order)
        with self.assertRaises(ValidationError):
            services.receive_goods(self.organization, self.user, [self._line(1)], purchase_order=self.order)

    def test_receipt_without_order(self):
        supplier = TestDataFactory.create_supplier(self.organization)
        receipt = services.receive_goods(
            self.organization, self.user, [{'item': self.item, 'quantity': 7, 'unit_price': Decimal('1.10')}],
            supplier=supplier
        )
        self.assertIsNone(receipt.purchase_order)
        self.assertEqual(receipt.get_total(), Decimal('7.70'))


class PurchaseOrderAPITests(TestCase):
    """Test purchase order and goods receipt endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.organization = TestDataFactory.create_organization()
        self.user = TestDataFactory.create_user(organization=self.organization)
        self.client.authenticate_user(self.user)
        self.supplier = TestDataFactory.create_supplier(self.organization)
        self.item = TestDataFactory.create_item(self.organization, current_stock=0, minimum_stock=0)

    def _create_order(self, **overrides):
        payload = {
            'supplier': self.supplier.id,
            'tax_amount': '2.00',
            'discount_amount': '1.00',
            'items': [{'item': self.item.id, 'quantity': 5, 'unit_price': '4.00'}],
        }
        payload.update(overrides)
        return self.client.post('/api/inventory/purchase-orders/', payload, format='json')

    def test_create_computes_totals(self):
        response = self._create_order()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['subtotal'], '20.00')
        self.assertEqual(response.data['total_amount'], '21.00')
        self.assertEqual(response.data['status'], 'pending')
        self.assertTrue(response.data['po_number'].startswith('PO-'))
        self.assertTrue(AuditLog.objects.filter(model_name='PurchaseOrder', action='create').exists())

    def test_create_requires_items(self):
        response = self._create_order(items=[])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_rejects_other_tenant_item(self):
        foreign = TestDataFactory.create_item(TestDataFactory.create_organization())
        response = self._create_order(items=[{'item': foreign.id, 'quantity': 1, 'unit_price': '1.00'}])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_also_mounted_under_purchasing(self):
        self._create_order()
        response = self.client.get('/api/purchasing/purchase-orders/')
        self.assertEqual(response.data['count'], 1)

    def test_update_replaces_lines(self):
        order_id = self._create_order().data['id']
        response = self.client.patch(f'/api/inventory/purchase-orders/{order_id}/', {
            'items': [{'item': self.item.id, 'quantity': 2, 'unit_price': '10.00'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(response.data['subtotal'], '20.00')

    def test_send_email_endpoint(self):
        order_id = self._create_order().data['id']
        response = self.client.post(f'/api/inventory/purchase-orders/{order_id}/send-email/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['purchase_order']['status'], 'sent')
        self.assertEqual(len(mail.outbox), 1)

    def test_send_email_without_supplier_email(self):
        self.supplier.email = ''
        self.supplier.save()
        order_id = self._create_order().data['id']
        response = self.client.post(f'/api/inventory/purchase-orders/{order_id}/send-email/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Supplier email not found')

    def test_receive_through_api(self):
        order = self._create_order().data
        response = self.client.post('/api/inventory/goods-receipts/', {
            'purchase_order': order['id'],
            'items': [{
                'item': self.item.id,
                'purchase_order_item': order['items'][0]['id'],
                'quantity': 5,
            }],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['receipt_number'].startswith('GR-'))
        self.assertEqual(PurchaseOrder.objects.get(pk=order['id']).status, 'received')
        self.item.refresh_from_db()
        self.assertEqual(self.item.current_stock, 5)

    def test_over_receipt_through_api(self):
        order = self._create_order().data
        response = self.client.post('/api/inventory/goods-receipts/', {
            'purchase_order': order['id'],
            'items': [{'item': self.item.id, 'purchase_order_item': order['items'][0]['id'], 'quantity': 6}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_received_order_cannot_be_edited_or_deleted(self):
        order = TestDataFactory.create_purchase_order(self.organization, supplier=self.supplier, lines=[(self.item, 1, '1.00')])
        services.receive_goods(
            self.organization, self.user,
            [{'item': self.item, 'quantity': 1, 'purchase_order_item': order.items.get()}],
            purchase_order=order
        )
        response = self.client.patch(f'/api/inventory/purchase-orders/{order.id}/', {'notes': 'x'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.delete(f'/api/inventory/purchase-orders/{order.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_pending_order(self):
        order_id = self._create_order().data['id']
        response = self.client.delete(f'/api/inventory/purchase-orders/{order_id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(PurchaseOrder.objects.filter(pk=order_id).exists())

    def test_cancel_endpoint(self):
        order_id = self._create_order().data['id']
        response = self.client.post(f'/api/inventory/purchase-orders/{order_id}/cancel/')
        self.assertEqual(response.data['status'], 'cancelled')
        response = self.client.post(f'/api/inventory/purchase-orders/{order_id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
