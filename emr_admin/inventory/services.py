"""
Stock level services: movements, low stock and expiry alerts, FEFO batch allocation
"""
import csv
import io
import logging
import random
import re
import string
import time
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, DecimalField, ExpressionWrapper, F, Q, Sum
from django.utils import timezone

from .models import Batch, InventoryItem, StockAlert, StockMovement

logger = logging.getLogger(__name__)


class InsufficientStockError(ValidationError):
    """Raised when a stock removal exceeds what is available"""

    def __init__(self, available, requested):
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient stock. Available: {available}, Requested: {requested}")


def generate_sku(category_name, item_name):
    """SKU of the form CAT-ITEMNA-1234 built from category and item names"""
    category_part = re.sub(r'[^A-Z0-9]', '', (category_name or '').upper())[:3] or 'GEN'
    item_part = re.sub(r'[^A-Z0-9]', '', (item_name or '').upper())[:6] or 'ITEM'
    suffix = str(int(time.time() * 1000))[-4:]
    return f"{category_part}-{item_part}-{suffix}"


def generate_unique_sku(organization, category_name, item_name):
    sku = generate_sku(category_name, item_name)
    while InventoryItem.objects.filter(organization=organization, sku=sku).exists():
        sku = f"{sku.rsplit('-', 1)[0]}-{random.randint(1000, 9999)}"
    return sku


def generate_barcode():
    """12 digit numeric barcode"""
    return ''.join(random.choices(string.digits, k=12))


def create_stock_alert(item, alert_type, message, threshold_value=None, current_value=None, batch=None):
    """
    Create an alert unless an unresolved one of the same type already exists for the item
    (and batch, for expiry alerts).

    Returns (alert, created).
    """
    existing = StockAlert.objects.filter(
        organization_id=item.organization_id,
        item=item,
        alert_type=alert_type,
        is_resolved=False,
    )
    if batch is not None:
        existing = existing.filter(batch=batch)
    alert = existing.first()
    if alert:
        return alert, False

    alert = StockAlert.objects.create(
        organization_id=item.organization_id,
        item=item,
        batch=batch,
        alert_type=alert_type,
        threshold_value=threshold_value,
        current_value=current_value,
        message=message,
    )
    logger.info(f"Stock alert '{alert_type}' raised for item {item.id} ({item.name})")
    return alert, True


def resolve_stock_alerts(item, alert_type, user=None):
    return StockAlert.objects.filter(item=item, alert_type=alert_type, is_resolved=False).update(
        is_resolved=True,
        resolved_by=user,
        resolved_at=timezone.now(),
    )


def check_low_stock(item, user=None):
    """Raise a low stock alert at or below the minimum, resolve open ones above it"""
    if item.current_stock <= item.minimum_stock:
        alert, _ = create_stock_alert(
            item,
            'low_stock',
            f"{item.name} is running low. Current stock: {item.current_stock}, minimum: {item.minimum_stock}",
            threshold_value=item.minimum_stock,
            current_value=item.current_stock,
        )
        return alert
    resolve_stock_alerts(item, 'low_stock', user=user)
    return None


def update_stock(item, quantity, movement_type, user=None, notes='', batch=None,
                 reference_type='', reference_id='', unit_cost=None):
    """
    Apply a signed quantity to an item's stock and record the movement.

    Raises:
        ValidationError: zero quantity
        InsufficientStockError: the change would take stock below zero
    """
    quantity = int(quantity)
    if quantity == 0:
        raise ValidationError('Quantity must not be zero')

    with transaction.atomic():
        locked = InventoryItem.objects.select_for_update().get(pk=item.pk)
        previous_stock = locked.current_stock
        new_stock = previous_stock + quantity
        if new_stock < 0:
            raise InsufficientStockError(previous_stock, -quantity)

        locked.current_stock = new_stock
        locked.save(update_fields=['current_stock', 'updated_at'])

        movement = StockMovement.objects.create(
            organization_id=locked.organization_id,
            item=locked,
            batch=batch,
            movement_type=movement_type,
            quantity=quantity,
            previous_stock=previous_stock,
            new_stock=new_stock,
            unit_cost=unit_cost if unit_cost is not None else locked.purchase_price,
            reference_type=reference_type,
            reference_id=str(reference_id) if reference_id else '',
            notes=notes or '',
            created_by=user if user is not None and user.is_authenticated else None,
        )
        check_low_stock(locked, user=user)

    item.current_stock = new_stock
    return movement


def get_inventory_value(organization):
    """Aggregate stock valuation for an organization's active items"""
    value_expression = ExpressionWrapper(
        F('current_stock') * F('purchase_price'),
        output_field=DecimalField(max_digits=18, decimal_places=2),
    )
    totals = InventoryItem.objects.filter(organization=organization, is_active=True).aggregate(
        total_value=Sum(value_expression),
        total_items=Count('id'),
        total_stock=Sum('current_stock'),
        low_stock_items=Count('id', filter=Q(current_stock__lte=F('minimum_stock'))),
    )
    return {
        'total_value': (totals['total_value'] or Decimal('0')).quantize(Decimal('0.01')),
        'total_items': totals['total_items'] or 0,
        'total_stock': totals['total_stock'] or 0,
        'low_stock_items': totals['low_stock_items'] or 0,
    }


def get_low_stock_items(organization):
    return InventoryItem.objects.filter(
        organization=organization,
        is_active=True,
        current_stock__lte=F('minimum_stock'),
    ).select_related('category').order_by('current_stock', 'name')


def get_stock_movements(organization, item=None, limit=50):
    queryset = StockMovement.objects.filter(organization=organization).select_related('item', 'batch', 'created_by')
    if item is not None:
        queryset = queryset.filter(item=item)
    return queryset.order_by('-created_at', '-id')[:limit]


def get_available_batches(item, today=None):
    """Usable batches in First-Expired-First-Out order"""
    today = today or timezone.localdate()
    return Batch.objects.filter(
        item=item,
        status='active',
        remaining_quantity__gt=0,
    ).filter(
        Q(expiry_date__isnull=True) | Q(expiry_date__gt=today)
    ).order_by(F('expiry_date').asc(nulls_last=True), 'received_date', 'id')


def allocate_fefo(item, quantity, today=None, lock=False):
    """
    Split a requested quantity across usable batches, earliest expiry first.

    Returns a list of (batch, quantity) tuples.
    """
    quantity = int(quantity)
    if quantity <= 0:
        raise ValidationError('Quantity must be greater than zero')

    batches = get_available_batches(item, today=today)
    if lock:
        batches = batches.select_for_update()
    batches = list(batches)

    available = sum(batch.remaining_quantity for batch in batches)
    if available < quantity:
        raise InsufficientStockError(available, quantity)

    allocations = []
    remaining = quantity
    for batch in batches:
        if remaining == 0:
            break
        take = min(batch.remaining_quantity, remaining)
        allocations.append((batch, take))
        remaining -= take
    return allocations


def issue_stock(item, quantity, user=None, notes='', reference_type='', reference_id='', today=None):
    """Remove stock for use; batch tracked items consume batches by FEFO"""
    quantity = int(quantity)
    if quantity <= 0:
        raise ValidationError('Quantity must be greater than zero')

    movements = []
    with transaction.atomic():
        if item.batch_tracking or item.expiry_tracking:
            for batch, take in allocate_fefo(item, quantity, today=today, lock=True):
                batch.remaining_quantity -= take
                if batch.remaining_quantity == 0:
                    batch.status = 'depleted'
                batch.save(update_fields=['remaining_quantity', 'status'])
                movements.append(update_stock(
                    item, -take, 'issue', user=user, notes=notes, batch=batch,
                    reference_type=reference_type, reference_id=reference_id,
                    unit_cost=batch.purchase_price,
                ))
        else:
            movements.append(update_stock(
                item, -quantity, 'issue', user=user, notes=notes,
                reference_type=reference_type, reference_id=reference_id,
            ))
    return movements


def scan_batch_expiry(organization=None, today=None, warning_days=None):
    """
    Expire past-date batches (writing off their remaining stock) and raise
    expiring-soon alerts for batches inside the warning window.
    """
    today = today or timezone.localdate()
    if warning_days is None:
        warning_days = settings.INVENTORY_EXPIRY_WARNING_DAYS

    queryset = Batch.objects.filter(
        status='active',
        remaining_quantity__gt=0,
        expiry_date__isnull=False,
    ).select_related('item')
    if organization is not None:
        queryset = queryset.filter(organization=organization)

    expired_count = 0
    for batch in queryset.filter(expiry_date__lte=today):
        with transaction.atomic():
            item = InventoryItem.objects.select_for_update().get(pk=batch.item_id)
            write_off = min(batch.remaining_quantity, item.current_stock)
            if write_off > 0:
                update_stock(
                    item, -write_off, 'expired', batch=batch,
                    notes=f"Batch {batch.batch_number} expired on {batch.expiry_date.isoformat()}",
                    reference_type='batch', reference_id=batch.id,
                    unit_cost=batch.purchase_price,
                )
            batch.status = 'expired'
            batch.remaining_quantity = 0
            batch.save(update_fields=['status', 'remaining_quantity'])
            create_stock_alert(
                item,
                'expired',
                f"Batch {batch.batch_number} of {item.name} expired on {batch.expiry_date.isoformat()}",
                current_value=write_off,
                batch=batch,
            )
            expired_count += 1

    expiring_count = 0
    warning_end = today + timedelta(days=warning_days)
    for batch in queryset.filter(expiry_date__gt=today, expiry_date__lte=warning_end):
        days_left = (batch.expiry_date - today).days
        _, created = create_stock_alert(
            batch.item,
            'expiring_soon',
            f"Batch {batch.batch_number} of {batch.item.name} expires in {days_left} day(s)",
            threshold_value=warning_days,
            current_value=batch.remaining_quantity,
            batch=batch,
        )
        if created:
            expiring_count += 1

    if expired_count or expiring_count:
        logger.info(f"Batch expiry scan: {expired_count} expired, {expiring_count} expiring soon")
    return {'expired': expired_count, 'expiring_soon': expiring_count}


ITEM_EXPORT_HEADERS = [
    'SKU', 'Name', 'Category', 'Barcode', 'Unit', 'Purchase Price', 'Sale Price',
    'Current Stock', 'Minimum Stock', 'Reorder Point', 'Stock Value', 'Status',
]


def export_items_csv(queryset):
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(ITEM_EXPORT_HEADERS)
    for item in queryset.select_related('category'):
        writer.writerow([
            item.sku,
            item.name,
            item.category.name if item.category else '',
            item.barcode,
            item.unit_of_measurement,
            f"{item.purchase_price:.2f}",
            f"{item.sale_price:.2f}",
            item.current_stock,
            item.minimum_stock,
            item.reorder_point,
            f"{item.get_stock_value():.2f}",
            'Low stock' if item.is_low_stock else 'OK',
        ])
    return output.getvalue()
