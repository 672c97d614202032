import django_filters
from django.db.models import F, Q
from .models import InventoryItem


class InventoryItemFilter(django_filters.FilterSet):
    """Filters for the inventory item list"""

    search = django_filters.CharFilter(method='filter_search', label='Search')
    category = django_filters.NumberFilter(field_name='category_id', lookup_expr='exact')
    is_active = django_filters.BooleanFilter(field_name='is_active')
    low_stock = django_filters.BooleanFilter(method='filter_low_stock', label='Low Stock')
    prescription_required = django_filters.BooleanFilter(field_name='prescription_required')

    class Meta:
        model = InventoryItem
        fields = ['search', 'category', 'is_active', 'low_stock', 'prescription_required']

    def filter_search(self, queryset, name, value):
        """Search across name, generic and brand names, SKU and barcode"""
        value = (value or '').strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(name__icontains=value) |
            Q(generic_name__icontains=value) |
            Q(brand_name__icontains=value) |
            Q(sku__icontains=value) |
            Q(barcode=value)
        )

    def filter_low_stock(self, queryset, name, value):
        if value is None:
            return queryset
        if value:
            return queryset.filter(current_stock__lte=F('minimum_stock'))
        return queryset.filter(current_stock__gt=F('minimum_stock'))
