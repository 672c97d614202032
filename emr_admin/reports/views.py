import logging
from datetime import timedelta

from django.conf import settings
from django.db.models import Count, Sum
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from emr_admin.core.cache_utils import INVENTORY_SUMMARY_CACHE_TTL, cached_query
from emr_admin.core.permissions import HasOrganization
from emr_admin.inventory.models import Batch, StockAlert
from emr_admin.inventory.services import get_inventory_value
from emr_admin.purchasing.models import PurchaseOrder

logger = logging.getLogger('emr_admin.reports')


@cached_query(cache_ttl=INVENTORY_SUMMARY_CACHE_TTL, key_prefix="inventory_summary")
def build_inventory_summary(organization_id):
    today = timezone.localdate()
    value = get_inventory_value(organization_id)

    alerts = StockAlert.objects.filter(organization_id=organization_id, is_resolved=False)
    alerts_by_type = {
        row['alert_type']: row['count']
        for row in alerts.order_by().values('alert_type').annotate(count=Count('id'))
    }

    orders = PurchaseOrder.objects.filter(organization_id=organization_id).order_by()
    orders_by_status = {
        row['status']: {'count': row['count'], 'total': row['total']}
        for row in orders.values('status').annotate(count=Count('id'), total=Sum('total_amount'))
    }

    expiring_batches = Batch.objects.filter(
        organization_id=organization_id,
        status='active',
        remaining_quantity__gt=0,
        expiry_date__gt=today,
        expiry_date__lte=today + timedelta(days=settings.INVENTORY_EXPIRY_WARNING_DAYS),
    ).count()

    return {
        'inventory_value': value['total_value'],
        'total_items': value['total_items'],
        'total_stock': value['total_stock'],
        'low_stock_count': value['low_stock_items'],
        'alerts_by_type': alerts_by_type,
        'unresolved_alerts': sum(alerts_by_type.values()),
        'expiring_batches': expiring_batches,
        'purchase_orders_by_status': orders_by_status,
        'open_purchase_orders': sum(
            entry['count'] for key, entry in orders_by_status.items()
            if key in ('pending', 'sent', 'partially_received')
        ),
        'calculated_at': timezone.now().isoformat(),
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasOrganization])
def inventory_summary(request):
    """Inventory value, low stock, open alerts and purchase orders for the user's organization"""
    return Response(build_inventory_summary(request.user.organization_id))
