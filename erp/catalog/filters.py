import django_filters
from django.db.models import Q, F
from .models import Product


class ProductFilter(django_filters.FilterSet):
    """Filter for Product model using django-filter"""

    # Basic search - searches across name, SKU, HSN code, brand, category
    search = django_filters.CharFilter(method='filter_search', label='Search')

    category = django_filters.NumberFilter(field_name='category_id', lookup_expr='exact')
    sub_category = django_filters.NumberFilter(field_name='sub_category_id', lookup_expr='exact')
    brand = django_filters.NumberFilter(field_name='brand_id', lookup_expr='exact')
    unit = django_filters.NumberFilter(field_name='unit_id', lookup_expr='exact')
    item_type = django_filters.ChoiceFilter(field_name='item_type', choices=Product.ITEM_TYPE_CHOICES)
    active = django_filters.CharFilter(method='filter_active', label='Active')

    # Stock status filters
    low_stock = django_filters.CharFilter(method='filter_low_stock', label='Low Stock')
    out_of_stock = django_filters.CharFilter(method='filter_out_of_stock', label='Out of Stock')

    class Meta:
        model = Product
        fields = ['search', 'category', 'sub_category', 'brand', 'unit', 'item_type',
                  'active', 'low_stock', 'out_of_stock']

    def filter_search(self, queryset, name, value):
        """Match every word of the search string against name, SKU, HSN, brand or category"""
        search = (value or '').strip()
        if not search:
            return queryset

        for word in search.split():
            queryset = queryset.filter(
                Q(name__icontains=word) |
                Q(sku__icontains=word) |
                Q(hsn_code__icontains=word) |
                Q(brand__name__icontains=word) |
                Q(category__name__icontains=word)
            )
        return queryset.distinct()

    def filter_active(self, queryset, name, value):
        if value is None or value == '':
            return queryset
        return queryset.filter(is_active=value.lower() in ('true', '1', 'yes'))

    def filter_low_stock(self, queryset, name, value):
        if value and value.lower() in ('true', '1', 'yes'):
            return queryset.filter(
                item_type='product',
                alert_quantity__isnull=False,
                current_stock__lte=F('alert_quantity'),
            )
        return queryset

    def filter_out_of_stock(self, queryset, name, value):
        if value and value.lower() in ('true', '1', 'yes'):
            return queryset.filter(item_type='product', current_stock__lte=0)
        return queryset
