import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from emr_admin.core.cache_utils import invalidate_inventory_cache
from emr_admin.core.emails import EmailDeliveryError
from emr_admin.core.permissions import HasOrganization, get_request_organization
from emr_admin.core.utils import create_audit_log, paginate_queryset, validation_message
from .models import PurchaseOrder, GoodsReceipt
from .serializers import PurchaseOrderSerializer, GoodsReceiptSerializer, GoodsReceiptCreateSerializer
from . import services

logger = logging.getLogger(__name__)


def _split_items(request):
    data = request.data.copy() if hasattr(request.data, 'copy') else dict(request.data)
    items_data = data.pop('items', None)
    return data, items_data


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, HasOrganization])
def purchase_order_list_create(request):
    """List purchase orders or create a new one"""
    organization = get_request_organization(request)
    if request.method == 'GET':
        queryset = PurchaseOrder.objects.filter(organization=organization).select_related(
            'supplier', 'created_by'
        ).prefetch_related('items', 'items__item')

        supplier = request.query_params.get('supplier', None)
        status_filter = request.query_params.get('status', None)
        date_from = request.query_params.get('date_from', None)
        date_to = request.query_params.get('date_to', None)
        if supplier:
            queryset = queryset.filter(supplier_id=supplier)
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        if date_from:
            queryset = queryset.filter(order_date__gte=date_from)
        if date_to:
            queryset = queryset.filter(order_date__lte=date_to)

        queryset = queryset.order_by('-created_at', '-id')
        return Response(paginate_queryset(request, queryset, PurchaseOrderSerializer))

    data, items_data = _split_items(request)
    serializer = PurchaseOrderSerializer(data=data, context={'items_data': items_data, 'request': request})
    if serializer.is_valid():
        order = serializer.save(created_by=request.user)
        invalidate_inventory_cache()
        return Response(PurchaseOrderSerializer(order, context={'request': request}).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, HasOrganization])
def purchase_order_detail(request, pk):
    """Retrieve, update or delete a purchase order"""
    order = get_object_or_404(
        PurchaseOrder.objects.select_related('supplier').prefetch_related('items', 'items__item'),
        pk=pk,
        organization=request.user.organization,
    )

    if request.method == 'GET':
        return Response(PurchaseOrderSerializer(order, context={'request': request}).data)
    elif request.method in ('PUT', 'PATCH'):
        if order.status in ('received', 'cancelled'):
            return Response(
                {'error': f"A {order.get_status_display().lower()} purchase order cannot be edited"},
                status=status.HTTP_400_BAD_REQUEST
            )
        data, items_data = _split_items(request)
        serializer = PurchaseOrderSerializer(
            order,
            data=data,
            partial=request.method == 'PATCH',
            context={'items_data': items_data, 'request': request}
        )
        if serializer.is_valid():
            order = serializer.save()
            invalidate_inventory_cache()
            order = PurchaseOrder.objects.prefetch_related('items', 'items__item').get(pk=order.pk)
            return Response(PurchaseOrderSerializer(order, context={'request': request}).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if order.has_receipts():
            return Response(
                {'error': 'Goods have been received against this purchase order; cancel it instead'},
                status=status.HTTP_400_BAD_REQUEST
            )
        po_number = order.po_number
        order_id = order.id
        with transaction.atomic():
            line_count = order.items.count()
            order.items.all().delete()
            order.delete()
        create_audit_log(
            request=request,
            action='delete',
            model_name='PurchaseOrder',
            object_id=order_id,
            object_reference=po_number,
            changes={'lines_deleted': line_count}
        )
        invalidate_inventory_cache()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasOrganization])
def purchase_order_send_email(request, pk):
    """Email the purchase order to its supplier"""
    order = get_object_or_404(
        PurchaseOrder.objects.select_related('supplier', 'organization'),
        pk=pk,
        organization=request.user.organization,
    )
    try:
        services.send_purchase_order_email(order, user=request.user)
    except ValidationError as e:
        return Response({'error': validation_message(e)}, status=status.HTTP_400_BAD_REQUEST)
    except EmailDeliveryError as e:
        return Response({'error': f'Failed to send purchase order email: {e}'}, status=status.HTTP_502_BAD_GATEWAY)

    create_audit_log(
        request=request,
        action='po_send',
        model_name='PurchaseOrder',
        object_id=order.id,
        object_name=order.supplier.name,
        object_reference=order.po_number,
        changes={'recipient': order.supplier.email}
    )
    invalidate_inventory_cache()
    return Response({
        'message': 'Purchase order sent successfully',
        'purchase_order': PurchaseOrderSerializer(order, context={'request': request}).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasOrganization])
def purchase_order_cancel(request, pk):
    order = get_object_or_404(PurchaseOrder, pk=pk, organization=request.user.organization)
    previous_status = order.status
    try:
        services.cancel_purchase_order(order)
    except ValidationError as e:
        return Response({'error': validation_message(e)}, status=status.HTTP_400_BAD_REQUEST)
    create_audit_log(
        request=request,
        action='po_cancel',
        model_name='PurchaseOrder',
        object_id=order.id,
        object_reference=order.po_number,
        changes={'status': {'old': previous_status, 'new': order.status}}
    )
    invalidate_inventory_cache()
    return Response(PurchaseOrderSerializer(order, context={'request': request}).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, HasOrganization])
def goods_receipt_list_create(request):
    """List goods receipts or receive goods into stock"""
    organization = get_request_organization(request)
    if request.method == 'GET':
        queryset = GoodsReceipt.objects.filter(organization=organization).select_related(
            'purchase_order', 'supplier', 'received_by'
        ).prefetch_related('items', 'items__item')
        purchase_order = request.query_params.get('purchase_order', None)
        if purchase_order:
            queryset = queryset.filter(purchase_order_id=purchase_order)
        queryset = queryset.order_by('-created_at', '-id')
        return Response(paginate_queryset(request, queryset, GoodsReceiptSerializer))

    serializer = GoodsReceiptCreateSerializer(data=request.data, context={'organization': organization})
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        receipt = services.receive_goods(
            organization,
            request.user,
            data['items'],
            purchase_order=data.get('purchase_order'),
            supplier=data.get('supplier'),
            received_date=data.get('received_date'),
            notes=data.get('notes', ''),
        )
    except ValidationError as e:
        return Response({'error': validation_message(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(
        request=request,
        action='goods_receipt',
        model_name='GoodsReceipt',
        object_id=receipt.id,
        object_name=receipt.supplier.name if receipt.supplier else None,
        object_reference=receipt.receipt_number,
        changes={
            'purchase_order': receipt.purchase_order.po_number if receipt.purchase_order else None,
            'lines': [
                {'item_id': line['item'].id, 'quantity': line['quantity']}
                for line in data['items']
            ],
        }
    )
    invalidate_inventory_cache()
    receipt = GoodsReceipt.objects.prefetch_related('items', 'items__item').get(pk=receipt.pk)
    return Response(GoodsReceiptSerializer(receipt).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasOrganization])
def goods_receipt_detail(request, pk):
    receipt = get_object_or_404(
        GoodsReceipt.objects.prefetch_related('items', 'items__item'),
        pk=pk,
        organization=request.user.organization,
    )
    return Response(GoodsReceiptSerializer(receipt).data)
