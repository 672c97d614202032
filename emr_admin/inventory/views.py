import logging
from datetime import timedelta

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import ProtectedError
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from emr_admin.core.cache_utils import invalidate_inventory_cache
from emr_admin.core.permissions import HasOrganization, get_request_organization
from emr_admin.core.utils import create_audit_log, paginate_queryset, validation_message
from .filters import InventoryItemFilter
from .models import Batch, Category, InventoryItem, StockAlert, Supplier
from .serializers import (
    BatchSerializer, CategorySerializer, InventoryItemSerializer, StockAdjustmentSerializer,
    StockAlertSerializer, StockIssueSerializer, StockMovementSerializer, SupplierSerializer,
)
from . import services

logger = logging.getLogger(__name__)


def _flag(request, name):
    return request.query_params.get(name, '').lower() in ('1', 'true', 'yes')


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, HasOrganization])
def category_list_create(request):
    """List all categories or create a new category"""
    organization = get_request_organization(request)
    context = {'organization': organization, 'request': request}
    if request.method == 'GET':
        categories = Category.objects.filter(organization=organization)
        if not _flag(request, 'include_inactive'):
            categories = categories.filter(is_active=True)
        serializer = CategorySerializer(categories, many=True, context=context)
        return Response(serializer.data)
    else:
        serializer = CategorySerializer(data=request.data, context=context)
        if serializer.is_valid():
            category = serializer.save(organization=organization)
            return Response(CategorySerializer(category, context=context).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, HasOrganization])
def category_detail(request, pk):
    """Retrieve, update or delete a category"""
    organization = get_request_organization(request)
    category = get_object_or_404(Category, pk=pk, organization=organization)
    context = {'organization': organization, 'request': request}

    if request.method == 'GET':
        return Response(CategorySerializer(category, context=context).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH', context=context)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        category.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Supplier views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, HasOrganization])
def supplier_list_create(request):
    """List all suppliers or create a new supplier"""
    organization = get_request_organization(request)
    if request.method == 'GET':
        suppliers = Supplier.objects.filter(organization=organization)
        search = request.query_params.get('search', '').strip()
        if search:
            suppliers = suppliers.filter(name__icontains=search)
        if not _flag(request, 'include_inactive'):
            suppliers = suppliers.filter(is_active=True)
        return Response(SupplierSerializer(suppliers, many=True).data)
    else:
        serializer = SupplierSerializer(data=request.data)
        if serializer.is_valid():
            supplier = serializer.save(organization=organization)
            create_audit_log(
                request=request,
                action='create',
                model_name='Supplier',
                object_id=supplier.id,
                object_name=supplier.name,
            )
            return Response(SupplierSerializer(supplier).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, HasOrganization])
def supplier_detail(request, pk):
    """Retrieve, update or delete a supplier"""
    supplier = get_object_or_404(Supplier, pk=pk, organization=request.user.organization)

    if request.method == 'GET':
        return Response(SupplierSerializer(supplier).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = SupplierSerializer(supplier, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        try:
            supplier.delete()
        except ProtectedError:
            return Response(
                {'error': 'Supplier has purchase orders and cannot be deleted. Deactivate it instead.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        return Response(status=status.HTTP_204_NO_CONTENT)


# Inventory item views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, HasOrganization])
def item_list_create(request):
    """List inventory items or create a new item"""
    organization = get_request_organization(request)
    context = {'organization': organization, 'request': request}

    if request.method == 'GET':
        queryset = InventoryItem.objects.filter(organization=organization).select_related('category')
        filterset = InventoryItemFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        queryset = filterset.qs.order_by('name')
        return Response(paginate_queryset(request, queryset, InventoryItemSerializer, default_limit=25, context=context))

    serializer = InventoryItemSerializer(data=request.data, context=context)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    opening_stock = data.pop('current_stock', 0)
    category = data.get('category')
    with transaction.atomic():
        if not data.get('sku'):
            data['sku'] = services.generate_unique_sku(organization, category.name if category else '', data['name'])
        if not data.get('barcode'):
            data['barcode'] = services.generate_barcode()
        item = InventoryItem.objects.create(organization=organization, current_stock=0, **data)
        if opening_stock > 0:
            services.update_stock(item, opening_stock, 'adjustment', user=request.user, notes='Opening stock')
        else:
            services.check_low_stock(item)

    create_audit_log(
        request=request,
        action='create',
        model_name='InventoryItem',
        object_id=item.id,
        object_name=item.name,
        object_reference=item.sku,
        changes={'opening_stock': opening_stock}
    )
    invalidate_inventory_cache()
    return Response(InventoryItemSerializer(item, context=context).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, HasOrganization])
def item_detail(request, pk):
    """Retrieve, update or delete an inventory item"""
    organization = get_request_organization(request)
    item = get_object_or_404(InventoryItem.objects.select_related('category'), pk=pk, organization=organization)
    context = {'organization': organization, 'request': request}

    if request.method == 'GET':
        return Response(InventoryItemSerializer(item, context=context).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = InventoryItemSerializer(item, data=request.data, partial=request.method == 'PATCH', context=context)
        if serializer.is_valid():
            old_values = {field: str(getattr(item, field)) for field in serializer.validated_data}
            item = serializer.save()
            services.check_low_stock(item, user=request.user)
            create_audit_log(
                request=request,
                action='update',
                model_name='InventoryItem',
                object_id=item.id,
                object_name=item.name,
                object_reference=item.sku,
                changes={
                    field: {'old': old_values[field], 'new': str(getattr(item, field))}
                    for field in serializer.validated_data
                    if old_values[field] != str(getattr(item, field))
                }
            )
            invalidate_inventory_cache()
            return Response(InventoryItemSerializer(item, context=context).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        try:
            item.delete()
        except ProtectedError:
            return Response(
                {'error': 'Item is referenced by purchase orders or goods receipts. Deactivate it instead.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        create_audit_log(
            request=request,
            action='delete',
            model_name='InventoryItem',
            object_id=pk,
            object_name=item.name,
            object_reference=item.sku,
        )
        invalidate_inventory_cache()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasOrganization])
def item_adjust_stock(request, pk):
    """Apply a signed stock change to an item"""
    item = get_object_or_404(InventoryItem, pk=pk, organization=request.user.organization)
    serializer = StockAdjustmentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        movement = services.update_stock(
            item,
            serializer.validated_data['quantity'],
            serializer.validated_data['movement_type'],
            user=request.user,
            notes=serializer.validated_data['notes'],
        )
    except ValidationError as e:
        return Response({'error': validation_message(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(
        request=request,
        action='stock_adjust',
        model_name='InventoryItem',
        object_id=item.id,
        object_name=item.name,
        object_reference=item.sku,
        changes={
            'movement_type': movement.movement_type,
            'quantity': movement.quantity,
            'previous_stock': movement.previous_stock,
            'new_stock': movement.new_stock,
        }
    )
    invalidate_inventory_cache()
    return Response({
        'item': InventoryItemSerializer(item, context={'organization': request.user.organization}).data,
        'movement': StockMovementSerializer(movement).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasOrganization])
def item_issue_stock(request, pk):
    """Issue stock from an item, consuming batches earliest-expiry first"""
    item = get_object_or_404(InventoryItem, pk=pk, organization=request.user.organization)
    serializer = StockIssueSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        movements = services.issue_stock(item, user=request.user, **serializer.validated_data)
    except ValidationError as e:
        return Response({'error': validation_message(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(
        request=request,
        action='stock_issue',
        model_name='InventoryItem',
        object_id=item.id,
        object_name=item.name,
        object_reference=item.sku,
        changes={
            'quantity': serializer.validated_data['quantity'],
            'batches': [m.batch.batch_number for m in movements if m.batch_id],
        }
    )
    invalidate_inventory_cache()
    return Response({
        'item': InventoryItemSerializer(item, context={'organization': request.user.organization}).data,
        'movements': StockMovementSerializer(movements, many=True).data,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasOrganization])
def item_batches(request, pk):
    """Batches of an item; usable ones in FEFO order when available=true"""
    item = get_object_or_404(InventoryItem, pk=pk, organization=request.user.organization)
    if _flag(request, 'available'):
        batches = services.get_available_batches(item)
    else:
        batches = item.batches.select_related('supplier').order_by('-received_date')
    return Response(BatchSerializer(batches, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasOrganization])
def item_export(request):
    """Export the item list as CSV"""
    export_format = request.query_params.get('format', 'csv')
    if export_format != 'csv':
        return Response({'error': 'Unsupported export format'}, status=status.HTTP_400_BAD_REQUEST)

    queryset = InventoryItem.objects.filter(organization=request.user.organization)
    filterset = InventoryItemFilter(request.query_params, queryset=queryset)
    content = services.export_items_csv(filterset.qs.order_by('name'))

    response = HttpResponse(content, content_type='text/csv')
    filename = f"inventory-{timezone.localdate().isoformat()}.csv"
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasOrganization])
def batch_list(request):
    """List batches, optionally only those expiring within N days"""
    queryset = Batch.objects.filter(organization=request.user.organization).select_related('item', 'supplier')

    status_filter = request.query_params.get('status', None)
    if status_filter:
        queryset = queryset.filter(status=status_filter)

    expiring_within = request.query_params.get('expiring_within', None)
    if expiring_within:
        try:
            days = int(expiring_within)
        except ValueError:
            return Response({'error': 'expiring_within must be a number of days'}, status=status.HTTP_400_BAD_REQUEST)
        today = timezone.localdate()
        queryset = queryset.filter(
            status='active',
            remaining_quantity__gt=0,
            expiry_date__isnull=False,
            expiry_date__lte=today + timedelta(days=days),
        )

    queryset = queryset.order_by('expiry_date', 'received_date')
    return Response(paginate_queryset(request, queryset, BatchSerializer, default_limit=25))


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasOrganization])
def movement_list(request):
    """Latest stock movements, optionally for a single item"""
    organization = get_request_organization(request)
    item = None
    item_id = request.query_params.get('item', None)
    if item_id:
        item = get_object_or_404(InventoryItem, pk=item_id, organization=organization)
    try:
        limit = min(int(request.query_params.get('limit', 50)), 500)
    except ValueError:
        limit = 50
    movements = services.get_stock_movements(organization, item=item, limit=limit)
    return Response(StockMovementSerializer(movements, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasOrganization])
def alert_list(request):
    """List unresolved stock alerts"""
    queryset = StockAlert.objects.filter(organization=request.user.organization).select_related('item')
    if not _flag(request, 'include_resolved'):
        queryset = queryset.filter(is_resolved=False)
    if _flag(request, 'unread_only'):
        queryset = queryset.filter(is_read=False)
    alert_type = request.query_params.get('type', None)
    if alert_type:
        queryset = queryset.filter(alert_type=alert_type)
    return Response(StockAlertSerializer(queryset.order_by('-created_at'), many=True).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasOrganization])
def alert_mark_read(request, pk):
    alert = get_object_or_404(StockAlert, pk=pk, organization=request.user.organization)
    alert.is_read = True
    alert.save(update_fields=['is_read'])
    invalidate_inventory_cache()
    return Response(StockAlertSerializer(alert).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasOrganization])
def alert_resolve(request, pk):
    alert = get_object_or_404(StockAlert, pk=pk, organization=request.user.organization)
    if not alert.is_resolved:
        alert.is_resolved = True
        alert.is_read = True
        alert.resolved_by = request.user
        alert.resolved_at = timezone.now()
        alert.save(update_fields=['is_resolved', 'is_read', 'resolved_by', 'resolved_at'])
        invalidate_inventory_cache()
    return Response(StockAlertSerializer(alert).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasOrganization])
def low_stock_list(request):
    """Active items at or below their minimum stock"""
    items = services.get_low_stock_items(request.user.organization)
    serializer = InventoryItemSerializer(items, many=True, context={'organization': request.user.organization})
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasOrganization])
def inventory_value(request):
    """Total stock valuation"""
    totals = services.get_inventory_value(request.user.organization)
    totals['total_value'] = f"{totals['total_value']:.2f}"
    return Response(totals)
