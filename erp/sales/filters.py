import django_filters
from django.db.models import Q
from .models import SalesOrder


class SalesOrderFilter(django_filters.FilterSet):
    """Filter for sales documents"""

    search = django_filters.CharFilter(method='filter_search', label='Search')
    document_type = django_filters.ChoiceFilter(field_name='document_type', choices=SalesOrder.DOCUMENT_TYPE_CHOICES)
    status = django_filters.ChoiceFilter(field_name='status', choices=SalesOrder.STATUS_CHOICES)
    payment_status = django_filters.ChoiceFilter(field_name='payment_status', choices=SalesOrder.PAYMENT_STATUS_CHOICES)
    channel = django_filters.ChoiceFilter(field_name='channel', choices=SalesOrder.CHANNEL_CHOICES)
    customer = django_filters.NumberFilter(field_name='customer_id', lookup_expr='exact')
    store = django_filters.NumberFilter(field_name='store_id', lookup_expr='exact')
    date_from = django_filters.DateFilter(field_name='order_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='order_date', lookup_expr='lte')

    class Meta:
        model = SalesOrder
        fields = ['search', 'document_type', 'status', 'payment_status', 'channel',
                  'customer', 'store', 'date_from', 'date_to']

    def filter_search(self, queryset, name, value):
        search = (value or '').strip()
        if not search:
            return queryset
        return queryset.filter(
            Q(order_number__icontains=search) |
            Q(customer__name__icontains=search) |
            Q(customer__phone__icontains=search)
        )
