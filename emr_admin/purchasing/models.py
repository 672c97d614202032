from django.db import models
from django.utils import timezone
from decimal import Decimal


class PurchaseOrder(models.Model):
    """Purchase order placed with a supplier"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('sent', 'Sent'),
        ('partially_received', 'Partially Received'),
        ('received', 'Received'),
        ('cancelled', 'Cancelled'),
    ]

    organization = models.ForeignKey('tenants.Organization', on_delete=models.CASCADE, related_name='purchase_orders')
    po_number = models.CharField(max_length=100, unique=True)
    supplier = models.ForeignKey('inventory.Supplier', on_delete=models.PROTECT, related_name='purchase_orders')
    order_date = models.DateField(default=timezone.localdate)
    expected_delivery_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, related_name='purchase_orders')
    approved_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='approved_purchase_orders')
    approved_at = models.DateTimeField(null=True, blank=True)
    email_sent = models.BooleanField(default=False)
    email_sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.po_number

    def get_subtotal(self):
        return sum((item.get_line_total() for item in self.items.all()), Decimal('0.00'))

    def get_total(self):
        return self.get_subtotal() + self.tax_amount - self.discount_amount

    def is_fully_received(self):
        items = list(self.items.all())
        return bool(items) and all(item.received_quantity >= item.quantity for item in items)

    def has_receipts(self):
        return self.items.filter(received_quantity__gt=0).exists() or self.goods_receipts.exists()

    class Meta:
        db_table = 'purchase_orders'
        ordering = ['-created_at']


class PurchaseOrderItem(models.Model):
    """Line on a purchase order"""
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name='items')
    item = models.ForeignKey('inventory.InventoryItem', on_delete=models.PROTECT, related_name='purchase_order_items')
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    received_quantity = models.PositiveIntegerField(default=0)

    def get_line_total(self):
        return Decimal(self.quantity) * self.unit_price

    @property
    def outstanding_quantity(self):
        return max(self.quantity - self.received_quantity, 0)

    def save(self, *args, **kwargs):
        self.total_price = self.get_line_total()
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'purchase_order_items'
        ordering = ['id']


class GoodsReceipt(models.Model):
    """Goods received into stock, against a purchase order or direct from a supplier"""
    organization = models.ForeignKey('tenants.Organization', on_delete=models.CASCADE, related_name='goods_receipts')
    receipt_number = models.CharField(max_length=100, unique=True)
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.PROTECT, null=True, blank=True, related_name='goods_receipts')
    supplier = models.ForeignKey('inventory.Supplier', on_delete=models.PROTECT, null=True, blank=True, related_name='goods_receipts')
    received_date = models.DateField()
    notes = models.TextField(blank=True)
    received_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, related_name='goods_receipts')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.receipt_number

    def get_total(self):
        return sum((line.get_line_total() for line in self.items.all()), Decimal('0.00'))

    class Meta:
        db_table = 'goods_receipts'
        ordering = ['-created_at']


class GoodsReceiptItem(models.Model):
    """Line on a goods receipt"""
    receipt = models.ForeignKey(GoodsReceipt, on_delete=models.CASCADE, related_name='items')
    item = models.ForeignKey('inventory.InventoryItem', on_delete=models.PROTECT, related_name='goods_receipt_items')
    purchase_order_item = models.ForeignKey(PurchaseOrderItem, on_delete=models.SET_NULL, null=True, blank=True, related_name='receipt_lines')
    batch = models.ForeignKey('inventory.Batch', on_delete=models.SET_NULL, null=True, blank=True, related_name='receipt_lines')
    quantity_received = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    batch_number = models.CharField(max_length=100, blank=True)
    manufacture_date = models.DateField(null=True, blank=True)
    expiry_date = models.DateField(null=True, blank=True)

    def get_line_total(self):
        return Decimal(self.quantity_received) * self.unit_price

    class Meta:
        db_table = 'goods_receipt_items'
        ordering = ['id']
