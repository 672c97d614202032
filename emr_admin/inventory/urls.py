from django.urls import path
from .views import (
    category_list_create, category_detail,
    supplier_list_create, supplier_detail,
    item_list_create, item_detail, item_adjust_stock, item_issue_stock, item_batches, item_export,
    batch_list, movement_list,
    alert_list, alert_mark_read, alert_resolve,
    low_stock_list, inventory_value,
)

urlpatterns = [
    path('categories/', category_list_create, name='inventory-category-list-create'),
    path('categories/<int:pk>/', category_detail, name='inventory-category-detail'),
    path('suppliers/', supplier_list_create, name='supplier-list-create'),
    path('suppliers/<int:pk>/', supplier_detail, name='supplier-detail'),
    path('items/', item_list_create, name='item-list-create'),
    path('items/export/', item_export, name='item-export'),
    path('items/<int:pk>/', item_detail, name='item-detail'),
    path('items/<int:pk>/stock/', item_adjust_stock, name='item-adjust-stock'),
    path('items/<int:pk>/issue/', item_issue_stock, name='item-issue-stock'),
    path('items/<int:pk>/batches/', item_batches, name='item-batches'),
    path('batches/', batch_list, name='batch-list'),
    path('movements/', movement_list, name='movement-list'),
    path('alerts/', alert_list, name='stock-alert-list'),
    path('alerts/<int:pk>/read/', alert_mark_read, name='stock-alert-read'),
    path('alerts/<int:pk>/resolve/', alert_resolve, name='stock-alert-resolve'),
    path('low-stock/', low_stock_list, name='low-stock-list'),
    path('value/', inventory_value, name='inventory-value'),
]
