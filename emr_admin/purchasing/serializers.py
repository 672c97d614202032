from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from rest_framework import serializers

from emr_admin.core.utils import create_audit_log, validation_message
from emr_admin.inventory.models import InventoryItem, Supplier
from .models import PurchaseOrder, PurchaseOrderItem, GoodsReceipt, GoodsReceiptItem
from .services import calculate_order_totals, generate_po_number


class PurchaseOrderItemSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    item_sku = serializers.CharField(source='item.sku', read_only=True)
    outstanding_quantity = serializers.IntegerField(read_only=True)

    class Meta:
        model = PurchaseOrderItem
        fields = ['id', 'item', 'item_name', 'item_sku', 'quantity', 'unit_price', 'total_price',
                  'received_quantity', 'outstanding_quantity']
        read_only_fields = ['total_price', 'received_quantity']


class PurchaseOrderSerializer(serializers.ModelSerializer):
    """
    Purchase order with its lines.

    Lines are passed through context['items_data'] as a list of
    {'item': id, 'quantity': n, 'unit_price': price}; totals are always computed here.
    """
    items = PurchaseOrderItemSerializer(many=True, read_only=True)
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    supplier_email = serializers.CharField(source='supplier.email', read_only=True)
    created_by_name = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = PurchaseOrder
        fields = ['id', 'po_number', 'supplier', 'supplier_name', 'supplier_email', 'order_date',
                  'expected_delivery_date', 'status', 'subtotal', 'tax_amount', 'discount_amount',
                  'total_amount', 'notes', 'email_sent', 'email_sent_at', 'created_by',
                  'created_by_name', 'approved_by', 'approved_at', 'created_at', 'updated_at', 'items']
        read_only_fields = ['po_number', 'status', 'subtotal', 'total_amount', 'email_sent',
                            'email_sent_at', 'created_by', 'approved_by', 'approved_at',
                            'created_at', 'updated_at']

    def _organization(self):
        return self.context['request'].user.organization

    def validate_supplier(self, value):
        if value.organization_id != self._organization().id:
            raise serializers.ValidationError('Supplier not found')
        if not value.is_active:
            raise serializers.ValidationError('Supplier is inactive')
        return value

    def _validate_lines(self, items_data):
        organization = self._organization()
        errors = []
        lines = []
        for index, raw in enumerate(items_data, start=1):
            line_serializer = PurchaseOrderLineInputSerializer(data=raw, context={'organization': organization})
            if not line_serializer.is_valid():
                errors.append({f'line_{index}': line_serializer.errors})
                continue
            lines.append(line_serializer.validated_data)
        if errors:
            raise serializers.ValidationError({'items': errors})
        return lines

    def validate(self, attrs):
        items_data = self.context.get('items_data')
        if self.instance is None and not items_data:
            raise serializers.ValidationError({'items': 'At least one item is required'})

        if items_data is not None:
            if self.instance is not None and self.instance.status != 'pending':
                raise serializers.ValidationError({'items': 'Lines can only be changed while the order is pending'})
            if not items_data:
                raise serializers.ValidationError({'items': 'At least one item is required'})
            lines = self._validate_lines(items_data)
            pairs = [(line['quantity'], line['unit_price']) for line in lines]
        else:
            lines = None
            pairs = [(line.quantity, line.unit_price) for line in self.instance.items.all()]

        tax_amount = attrs.get('tax_amount', getattr(self.instance, 'tax_amount', 0))
        discount_amount = attrs.get('discount_amount', getattr(self.instance, 'discount_amount', 0))
        try:
            subtotal, total = calculate_order_totals(pairs, tax_amount, discount_amount)
        except DjangoValidationError as e:
            raise serializers.ValidationError({'total_amount': validation_message(e)})

        attrs['subtotal'] = subtotal
        attrs['total_amount'] = total
        self._lines = lines
        return attrs

    def _write_lines(self, order):
        if self._lines is None:
            return
        order.items.all().delete()
        for line in self._lines:
            PurchaseOrderItem.objects.create(purchase_order=order, **line)

    def create(self, validated_data):
        request = self.context['request']
        with transaction.atomic():
            order = PurchaseOrder.objects.create(
                organization=self._organization(),
                po_number=generate_po_number(),
                **validated_data
            )
            self._write_lines(order)

        create_audit_log(
            request=request,
            action='create',
            model_name='PurchaseOrder',
            object_id=order.id,
            object_name=order.supplier.name,
            object_reference=order.po_number,
            changes={'total_amount': str(order.total_amount), 'lines': len(self._lines)}
        )
        return order

    def update(self, instance, validated_data):
        request = self.context['request']
        old_total = instance.total_amount
        with transaction.atomic():
            for field, value in validated_data.items():
                setattr(instance, field, value)
            instance.save()
            self._write_lines(instance)

        create_audit_log(
            request=request,
            action='update',
            model_name='PurchaseOrder',
            object_id=instance.id,
            object_name=instance.supplier.name,
            object_reference=instance.po_number,
            changes={'total_amount': {'old': str(old_total), 'new': str(instance.total_amount)}}
        )
        return instance


class PurchaseOrderLineInputSerializer(serializers.Serializer):
    item = serializers.PrimaryKeyRelatedField(queryset=InventoryItem.objects.all())
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)

    def validate_item(self, value):
        if value.organization_id != self.context['organization'].id:
            raise serializers.ValidationError('Item not found')
        return value


class GoodsReceiptItemSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    line_total = serializers.SerializerMethodField()

    class Meta:
        model = GoodsReceiptItem
        fields = ['id', 'item', 'item_name', 'purchase_order_item', 'batch', 'quantity_received',
                  'unit_price', 'line_total', 'batch_number', 'manufacture_date', 'expiry_date']

    def get_line_total(self, obj):
        return f"{obj.get_line_total():.2f}"


class GoodsReceiptSerializer(serializers.ModelSerializer):
    items = GoodsReceiptItemSerializer(many=True, read_only=True)
    po_number = serializers.CharField(source='purchase_order.po_number', read_only=True, default=None)
    supplier_name = serializers.CharField(source='supplier.name', read_only=True, default=None)
    received_by_name = serializers.CharField(source='received_by.username', read_only=True, default=None)
    total_amount = serializers.SerializerMethodField()

    class Meta:
        model = GoodsReceipt
        fields = ['id', 'receipt_number', 'purchase_order', 'po_number', 'supplier', 'supplier_name',
                  'received_date', 'notes', 'received_by', 'received_by_name', 'total_amount',
                  'created_at', 'items']

    def get_total_amount(self, obj):
        return f"{obj.get_total():.2f}"


class GoodsReceiptLineInputSerializer(serializers.Serializer):
    item = serializers.PrimaryKeyRelatedField(queryset=InventoryItem.objects.all())
    purchase_order_item = serializers.PrimaryKeyRelatedField(
        queryset=PurchaseOrderItem.objects.all(), required=False, allow_null=True
    )
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    batch_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    expiry_date = serializers.DateField(required=False, allow_null=True)
    manufacture_date = serializers.DateField(required=False, allow_null=True)


class GoodsReceiptCreateSerializer(serializers.Serializer):
    purchase_order = serializers.PrimaryKeyRelatedField(
        queryset=PurchaseOrder.objects.all(), required=False, allow_null=True
    )
    supplier = serializers.PrimaryKeyRelatedField(
        queryset=Supplier.objects.all(), required=False, allow_null=True
    )
    received_date = serializers.DateField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    items = GoodsReceiptLineInputSerializer(many=True)

    def validate(self, attrs):
        organization = self.context['organization']
        order = attrs.get('purchase_order')
        supplier = attrs.get('supplier')
        if order is not None and order.organization_id != organization.id:
            raise serializers.ValidationError({'purchase_order': 'Purchase order not found'})
        if supplier is not None and supplier.organization_id != organization.id:
            raise serializers.ValidationError({'supplier': 'Supplier not found'})
        if order is None and supplier is None:
            raise serializers.ValidationError({'supplier': 'A supplier or purchase order is required'})
        if not attrs.get('items'):
            raise serializers.ValidationError({'items': 'At least one item is required'})
        return attrs
