from django.db import models
from decimal import Decimal


class Category(models.Model):
    """Inventory item categories (medicines, consumables, equipment, ...)"""
    organization = models.ForeignKey('tenants.Organization', on_delete=models.CASCADE, related_name='inventory_categories')
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    parent = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='children')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'inventory_categories'
        verbose_name_plural = 'Categories'
        ordering = ['name']
        unique_together = [['organization', 'name']]


class Supplier(models.Model):
    """Suppliers purchase orders are placed with"""
    organization = models.ForeignKey('tenants.Organization', on_delete=models.CASCADE, related_name='suppliers')
    name = models.CharField(max_length=255)
    contact_person = models.CharField(max_length=255, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    address = models.TextField(blank=True)
    city = models.CharField(max_length=100, blank=True)
    country = models.CharField(max_length=100, default='UK')
    tax_id = models.CharField(max_length=50, blank=True)
    payment_terms = models.CharField(max_length=100, default='Net 30')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'inventory_suppliers'
        ordering = ['name']


class InventoryItem(models.Model):
    """Stocked item (medicine, consumable, equipment)"""
    organization = models.ForeignKey('tenants.Organization', on_delete=models.CASCADE, related_name='inventory_items')
    category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='items')
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    sku = models.CharField(max_length=100)
    barcode = models.CharField(max_length=100, blank=True)
    generic_name = models.CharField(max_length=255, blank=True)
    brand_name = models.CharField(max_length=255, blank=True)
    manufacturer = models.CharField(max_length=255, blank=True)
    unit_of_measurement = models.CharField(max_length=50, default='pieces')
    pack_size = models.PositiveIntegerField(default=1)
    purchase_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    sale_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    mrp = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    current_stock = models.IntegerField(default=0)
    minimum_stock = models.IntegerField(default=10)
    maximum_stock = models.IntegerField(default=1000)
    reorder_point = models.IntegerField(default=20)
    prescription_required = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    is_discontinued = models.BooleanField(default=False)
    expiry_tracking = models.BooleanField(default=False)
    batch_tracking = models.BooleanField(default=False)
    storage_conditions = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.sku})"

    @property
    def is_low_stock(self):
        return self.current_stock <= self.minimum_stock

    @property
    def needs_reorder(self):
        return self.current_stock <= self.reorder_point

    def get_stock_value(self):
        return Decimal(self.current_stock) * self.purchase_price

    class Meta:
        db_table = 'inventory_items'
        ordering = ['name']
        unique_together = [['organization', 'sku']]
        indexes = [
            models.Index(fields=['organization', 'name'], name='idx_item_org_name'),
            models.Index(fields=['barcode'], name='idx_item_barcode'),
        ]


class Batch(models.Model):
    """Received batch of an item with expiry tracking"""
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('depleted', 'Depleted'),
        ('expired', 'Expired'),
    ]

    organization = models.ForeignKey('tenants.Organization', on_delete=models.CASCADE, related_name='inventory_batches')
    item = models.ForeignKey(InventoryItem, on_delete=models.CASCADE, related_name='batches')
    supplier = models.ForeignKey(Supplier, on_delete=models.SET_NULL, null=True, blank=True, related_name='batches')
    batch_number = models.CharField(max_length=100)
    manufacture_date = models.DateField(null=True, blank=True)
    expiry_date = models.DateField(null=True, blank=True)
    quantity = models.IntegerField()
    remaining_quantity = models.IntegerField()
    purchase_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    received_date = models.DateTimeField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.batch_number} ({self.item.name})"

    def is_expired_on(self, day):
        return self.expiry_date is not None and self.expiry_date <= day

    class Meta:
        db_table = 'inventory_batches'
        ordering = ['expiry_date', 'received_date']
        indexes = [
            models.Index(fields=['item', 'status', 'expiry_date'], name='idx_batch_item_status_expiry'),
        ]


class StockMovement(models.Model):
    """Every change to an item's stock level"""
    MOVEMENT_TYPE_CHOICES = [
        ('purchase', 'Purchase'),
        ('sale', 'Sale'),
        ('issue', 'Issue'),
        ('adjustment', 'Adjustment'),
        ('transfer', 'Transfer'),
        ('expired', 'Expired'),
        ('return', 'Return'),
    ]

    organization = models.ForeignKey('tenants.Organization', on_delete=models.CASCADE, related_name='stock_movements')
    item = models.ForeignKey(InventoryItem, on_delete=models.CASCADE, related_name='movements')
    batch = models.ForeignKey(Batch, on_delete=models.SET_NULL, null=True, blank=True, related_name='movements')
    movement_type = models.CharField(max_length=20, choices=MOVEMENT_TYPE_CHOICES)
    quantity = models.IntegerField(help_text="Signed quantity: positive adds stock, negative removes it")
    previous_stock = models.IntegerField()
    new_stock = models.IntegerField()
    unit_cost = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    reference_type = models.CharField(max_length=50, blank=True)
    reference_id = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, related_name='stock_movements')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'inventory_stock_movements'
        ordering = ['-created_at', '-id']


class StockAlert(models.Model):
    """Low stock and expiry alerts"""
    ALERT_TYPE_CHOICES = [
        ('low_stock', 'Low Stock'),
        ('expiring_soon', 'Expiring Soon'),
        ('expired', 'Expired'),
    ]

    organization = models.ForeignKey('tenants.Organization', on_delete=models.CASCADE, related_name='stock_alerts')
    item = models.ForeignKey(InventoryItem, on_delete=models.CASCADE, related_name='alerts')
    batch = models.ForeignKey(Batch, on_delete=models.CASCADE, null=True, blank=True, related_name='alerts')
    alert_type = models.CharField(max_length=20, choices=ALERT_TYPE_CHOICES)
    threshold_value = models.IntegerField(null=True, blank=True)
    current_value = models.IntegerField(null=True, blank=True)
    message = models.TextField()
    is_read = models.BooleanField(default=False)
    is_resolved = models.BooleanField(default=False)
    resolved_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='resolved_stock_alerts')
    resolved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.get_alert_type_display()}: {self.item.name}"

    class Meta:
        db_table = 'inventory_stock_alerts'
        ordering = ['-created_at']
