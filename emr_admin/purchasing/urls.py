from django.urls import path
from .views import (
    purchase_order_list_create, purchase_order_detail, purchase_order_send_email, purchase_order_cancel,
    goods_receipt_list_create, goods_receipt_detail,
)

urlpatterns = [
    path('purchase-orders/', purchase_order_list_create, name='purchase-order-list-create'),
    path('purchase-orders/<int:pk>/', purchase_order_detail, name='purchase-order-detail'),
    path('purchase-orders/<int:pk>/send-email/', purchase_order_send_email, name='purchase-order-send-email'),
    path('purchase-orders/<int:pk>/cancel/', purchase_order_cancel, name='purchase-order-cancel'),
    path('goods-receipts/', goods_receipt_list_create, name='goods-receipt-list-create'),
    path('goods-receipts/<int:pk>/', goods_receipt_detail, name='goods-receipt-detail'),
]
