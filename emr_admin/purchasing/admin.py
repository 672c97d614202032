from django.contrib import admin
from .models import PurchaseOrder, PurchaseOrderItem, GoodsReceipt, GoodsReceiptItem


class PurchaseOrderItemInline(admin.TabularInline):
    model = PurchaseOrderItem
    extra = 0
    readonly_fields = ['total_price', 'received_quantity']


@admin.register(PurchaseOrder)
class PurchaseOrderAdmin(admin.ModelAdmin):
    list_display = ['po_number', 'organization', 'supplier', 'order_date', 'status', 'total_amount', 'email_sent']
    list_filter = ['status', 'email_sent', 'order_date']
    search_fields = ['po_number', 'supplier__name']
    readonly_fields = ['po_number', 'subtotal', 'total_amount', 'email_sent_at', 'created_at', 'updated_at']
    inlines = [PurchaseOrderItemInline]


class GoodsReceiptItemInline(admin.TabularInline):
    model = GoodsReceiptItem
    extra = 0


@admin.register(GoodsReceipt)
class GoodsReceiptAdmin(admin.ModelAdmin):
    list_display = ['receipt_number', 'organization', 'purchase_order', 'supplier', 'received_date', 'received_by']
    list_filter = ['received_date']
    search_fields = ['receipt_number', 'purchase_order__po_number']
    inlines = [GoodsReceiptItemInline]
