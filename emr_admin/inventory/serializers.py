from rest_framework import serializers
from .models import Category, Supplier, InventoryItem, Batch, StockMovement, StockAlert


class CategorySerializer(serializers.ModelSerializer):
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ['id', 'name', 'description', 'parent', 'is_active', 'item_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_item_count(self, obj):
        return obj.items.count()

    def validate_parent(self, value):
        organization = self.context.get('organization')
        if value is not None and organization is not None and value.organization_id != organization.id:
            raise serializers.ValidationError('Parent category not found')
        return value

    def validate_name(self, value):
        organization = self.context.get('organization')
        queryset = Category.objects.filter(organization=organization, name__iexact=value)
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if organization is not None and queryset.exists():
            raise serializers.ValidationError('A category with this name already exists')
        return value


class SupplierSerializer(serializers.ModelSerializer):
    class Meta:
        model = Supplier
        fields = ['id', 'name', 'contact_person', 'email', 'phone', 'address', 'city', 'country',
                  'tax_id', 'payment_terms', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']


class InventoryItemSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    is_low_stock = serializers.BooleanField(read_only=True)
    stock_value = serializers.SerializerMethodField()
    sku = serializers.CharField(max_length=100, required=False, allow_blank=True)

    class Meta:
        model = InventoryItem
        fields = ['id', 'name', 'description', 'category', 'category_name', 'sku', 'barcode',
                  'generic_name', 'brand_name', 'manufacturer', 'unit_of_measurement', 'pack_size',
                  'purchase_price', 'sale_price', 'mrp', 'tax_rate',
                  'current_stock', 'minimum_stock', 'maximum_stock', 'reorder_point',
                  'prescription_required', 'is_active', 'is_discontinued', 'expiry_tracking',
                  'batch_tracking', 'storage_conditions', 'is_low_stock', 'stock_value',
                  'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_stock_value(self, obj):
        return f"{obj.get_stock_value():.2f}"

    def validate_category(self, value):
        organization = self.context.get('organization')
        if value is not None and organization is not None and value.organization_id != organization.id:
            raise serializers.ValidationError('Category not found')
        return value

    def validate_sku(self, value):
        organization = self.context.get('organization')
        if not value:
            return value
        queryset = InventoryItem.objects.filter(organization=organization, sku=value)
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError(f"SKU '{value}' is already in use")
        return value

    def validate(self, attrs):
        for field in ('current_stock', 'minimum_stock', 'maximum_stock', 'reorder_point'):
            if field in attrs and attrs[field] < 0:
                raise serializers.ValidationError({field: 'Must not be negative'})
        for field in ('purchase_price', 'sale_price', 'tax_rate'):
            if field in attrs and attrs[field] < 0:
                raise serializers.ValidationError({field: 'Must not be negative'})

        minimum = attrs.get('minimum_stock', getattr(self.instance, 'minimum_stock', 10))
        maximum = attrs.get('maximum_stock', getattr(self.instance, 'maximum_stock', 1000))
        if maximum < minimum:
            raise serializers.ValidationError({'maximum_stock': 'Maximum stock must not be below minimum stock'})
        if self.instance is not None and 'current_stock' in attrs and attrs['current_stock'] != self.instance.current_stock:
            raise serializers.ValidationError({'current_stock': 'Use a stock adjustment to change stock levels'})
        return attrs


class BatchSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    supplier_name = serializers.CharField(source='supplier.name', read_only=True, default=None)

    class Meta:
        model = Batch
        fields = ['id', 'item', 'item_name', 'supplier', 'supplier_name', 'batch_number',
                  'manufacture_date', 'expiry_date', 'quantity', 'remaining_quantity',
                  'purchase_price', 'received_date', 'status', 'created_at']


class StockMovementSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    batch_number = serializers.CharField(source='batch.batch_number', read_only=True, default=None)
    created_by_name = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = StockMovement
        fields = ['id', 'item', 'item_name', 'batch', 'batch_number', 'movement_type', 'quantity',
                  'previous_stock', 'new_stock', 'unit_cost', 'reference_type', 'reference_id',
                  'notes', 'created_by', 'created_by_name', 'created_at']


class StockAlertSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    item_sku = serializers.CharField(source='item.sku', read_only=True)

    class Meta:
        model = StockAlert
        fields = ['id', 'item', 'item_name', 'item_sku', 'batch', 'alert_type', 'threshold_value',
                  'current_value', 'message', 'is_read', 'is_resolved', 'resolved_by', 'resolved_at',
                  'created_at']


class StockAdjustmentSerializer(serializers.Serializer):
    """Input for a manual stock change"""
    MOVEMENT_TYPES = ['purchase', 'adjustment', 'transfer', 'return', 'sale']

    quantity = serializers.IntegerField()
    movement_type = serializers.ChoiceField(choices=MOVEMENT_TYPES, default='adjustment')
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_quantity(self, value):
        if value == 0:
            raise serializers.ValidationError('Quantity must not be zero')
        return value


class StockIssueSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    reference_type = serializers.CharField(required=False, allow_blank=True, default='')
    reference_id = serializers.CharField(required=False, allow_blank=True, default='')
