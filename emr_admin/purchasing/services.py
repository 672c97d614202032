"""
Purchase order totals, numbering, supplier emails and goods receiving
"""
import logging
import time
import uuid
from decimal import Decimal, ROUND_HALF_UP

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from emr_admin.core.emails import render_email, send_email
from emr_admin.inventory.models import Batch
from emr_admin.inventory.services import update_stock
from .models import GoodsReceipt, GoodsReceiptItem, PurchaseOrder

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


def _money(value):
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_order_totals(lines, tax_amount=0, discount_amount=0):
    """
    Compute order totals from (quantity, unit_price) pairs.

    total = sum(quantity * unit_price) + tax - discount, rounded to cents.
    Returns (subtotal, total).
    """
    tax_amount = Decimal(str(tax_amount or 0))
    discount_amount = Decimal(str(discount_amount or 0))
    if tax_amount < 0:
        raise ValidationError('Tax amount must not be negative')
    if discount_amount < 0:
        raise ValidationError('Discount amount must not be negative')

    subtotal = sum((Decimal(quantity) * Decimal(str(unit_price)) for quantity, unit_price in lines), Decimal('0'))
    total = subtotal + tax_amount - discount_amount
    if total < 0:
        raise ValidationError('Discount must not exceed the order subtotal plus tax')
    return _money(subtotal), _money(total)


def _unique_number(prefix, model, field):
    number = f"{prefix}-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    while model.objects.filter(**{field: number}).exists():
        number = f"{prefix}-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    return number


def generate_po_number():
    return _unique_number('PO', PurchaseOrder, 'po_number')


def generate_receipt_number():
    return _unique_number('GR', GoodsReceipt, 'receipt_number')


def refresh_order_totals(order):
    subtotal, total = calculate_order_totals(
        [(line.quantity, line.unit_price) for line in order.items.all()],
        order.tax_amount,
        order.discount_amount,
    )
    order.subtotal = subtotal
    order.total_amount = total
    order.save(update_fields=['subtotal', 'total_amount', 'updated_at'])
    return order


def send_purchase_order_email(order, user=None):
    """
    Email the purchase order document to the supplier and mark the order sent.

    Raises:
        ValidationError: the order cannot be sent or the supplier has no email
        EmailDeliveryError: the mail backend failed
    """
    if order.status in ('cancelled', 'received'):
        raise ValidationError(f"A {order.get_status_display().lower()} purchase order cannot be sent")
    supplier = order.supplier
    if not supplier.email:
        raise ValidationError('Supplier email not found')

    organization = order.organization
    html = render_email('purchasing/purchase_order_email.html', {
        'order': order,
        'organization': organization,
        'supplier': supplier,
        'lines': order.items.select_related('item'),
    })
    send_email(
        supplier.email,
        f"Purchase Order {order.po_number} from {organization.display_name}",
        html,
        reply_to=organization.email or None,
    )

    order.email_sent = True
    order.email_sent_at = timezone.now()
    if order.status == 'pending':
        order.status = 'sent'
    order.save(update_fields=['email_sent', 'email_sent_at', 'status', 'updated_at'])
    logger.info(f"Purchase order {order.po_number} emailed to {supplier.email}")
    return order


def cancel_purchase_order(order):
    if order.status not in ('pending', 'sent'):
        raise ValidationError(f"Only pending or sent purchase orders can be cancelled (status: {order.status})")
    order.status = 'cancelled'
    order.save(update_fields=['status', 'updated_at'])
    return order


def _refresh_order_status(order):
    lines = list(order.items.all())
    if lines and all(line.received_quantity >= line.quantity for line in lines):
        order.status = 'received'
    elif any(line.received_quantity > 0 for line in lines):
        order.status = 'partially_received'
    order.save(update_fields=['status', 'updated_at'])


def receive_goods(organization, user, lines, purchase_order=None, supplier=None,
                  received_date=None, notes=''):
    """
    Receive goods into stock.

    Each line is a dict with: item, quantity, unit_price, optional purchase_order_item,
    batch_number, expiry_date and manufacture_date. A batch is created for lines with a
    batch number or expiry date.

    Raises:
        ValidationError: invalid lines, cancelled order or over-receipt
    """
    if not lines:
        raise ValidationError('At least one item must be received')
    if purchase_order is not None:
        if purchase_order.organization_id != organization.id:
            raise ValidationError('Purchase order not found')
        if purchase_order.status == 'cancelled':
            raise ValidationError('Cannot receive goods against a cancelled purchase order')
        supplier = supplier or purchase_order.supplier

    received_date = received_date or timezone.localdate()

    with transaction.atomic():
        if purchase_order is not None:
            purchase_order = PurchaseOrder.objects.select_for_update().get(pk=purchase_order.pk)

        receipt = GoodsReceipt.objects.create(
            organization=organization,
            receipt_number=generate_receipt_number(),
            purchase_order=purchase_order,
            supplier=supplier,
            received_date=received_date,
            notes=notes or '',
            received_by=user,
        )

        for index, line in enumerate(lines, start=1):
            item = line['item']
            quantity = int(line['quantity'])
            if item.organization_id != organization.id:
                raise ValidationError(f"Line {index}: item not found")
            if quantity <= 0:
                raise ValidationError(f"Line {index}: quantity must be greater than zero")

            order_line = line.get('purchase_order_item')
            if order_line is not None:
                if purchase_order is None or order_line.purchase_order_id != purchase_order.id:
                    raise ValidationError(f"Line {index}: purchase order line does not belong to this order")
                if order_line.item_id != item.id:
                    raise ValidationError(f"Line {index}: item does not match the purchase order line")
                order_line.refresh_from_db(fields=['received_quantity'])
                if order_line.received_quantity + quantity > order_line.quantity:
                    raise ValidationError(
                        f"Line {index}: cannot receive {quantity} of {item.name}; "
                        f"only {order_line.outstanding_quantity} outstanding"
                    )

            unit_price = line.get('unit_price')
            if unit_price is None:
                unit_price = order_line.unit_price if order_line is not None else item.purchase_price

            batch = None
            batch_number = (line.get('batch_number') or '').strip()
            expiry_date = line.get('expiry_date')
            if batch_number or expiry_date:
                if expiry_date is not None and expiry_date <= received_date:
                    raise ValidationError(f"Line {index}: expiry date must be after the received date")
                batch = Batch.objects.create(
                    organization=organization,
                    item=item,
                    supplier=supplier,
                    batch_number=batch_number or f"BATCH-{int(time.time() * 1000)}",
                    manufacture_date=line.get('manufacture_date'),
                    expiry_date=expiry_date,
                    quantity=quantity,
                    remaining_quantity=quantity,
                    purchase_price=unit_price,
                    received_date=timezone.now(),
                )

            GoodsReceiptItem.objects.create(
                receipt=receipt,
                item=item,
                purchase_order_item=order_line,
                batch=batch,
                quantity_received=quantity,
                unit_price=unit_price,
                batch_number=batch.batch_number if batch else '',
                manufacture_date=line.get('manufacture_date'),
                expiry_date=expiry_date,
            )

            update_stock(
                item,
                quantity,
                'purchase',
                user=user,
                notes=f"Goods receipt {receipt.receipt_number}",
                batch=batch,
                reference_type='goods_receipt',
                reference_id=receipt.id,
                unit_cost=unit_price,
            )

            if order_line is not None:
                order_line.received_quantity += quantity
                order_line.save(update_fields=['received_quantity'])

        if purchase_order is not None:
            _refresh_order_status(purchase_order)

    logger.info(f"Goods receipt {receipt.receipt_number} recorded with {len(lines)} line(s)")
    return receipt
