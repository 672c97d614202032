from django.contrib import admin
from .models import Category, Supplier, InventoryItem, Batch, StockMovement, StockAlert


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'organization', 'parent', 'is_active']
    list_filter = ['is_active', 'organization']
    search_fields = ['name']


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ['name', 'organization', 'email', 'phone', 'payment_terms', 'is_active']
    list_filter = ['is_active', 'organization']
    search_fields = ['name', 'email', 'contact_person']


@admin.register(InventoryItem)
class InventoryItemAdmin(admin.ModelAdmin):
    list_display = ['name', 'sku', 'organization', 'category', 'current_stock', 'minimum_stock', 'is_active']
    list_filter = ['is_active', 'prescription_required', 'batch_tracking', 'organization']
    search_fields = ['name', 'sku', 'barcode', 'generic_name']
    readonly_fields = ['current_stock', 'created_at', 'updated_at']


@admin.register(Batch)
class BatchAdmin(admin.ModelAdmin):
    list_display = ['batch_number', 'item', 'expiry_date', 'quantity', 'remaining_quantity', 'status']
    list_filter = ['status', 'expiry_date']
    search_fields = ['batch_number', 'item__name']


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ['item', 'movement_type', 'quantity', 'previous_stock', 'new_stock', 'created_by', 'created_at']
    list_filter = ['movement_type', 'created_at']
    search_fields = ['item__name', 'item__sku', 'reference_id']
    readonly_fields = [f.name for f in StockMovement._meta.fields]


@admin.register(StockAlert)
class StockAlertAdmin(admin.ModelAdmin):
    list_display = ['item', 'alert_type', 'is_read', 'is_resolved', 'created_at']
    list_filter = ['alert_type', 'is_read', 'is_resolved']
    search_fields = ['item__name', 'message']
