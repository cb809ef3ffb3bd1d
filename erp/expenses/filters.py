import django_filters
from django.db.models import Q
from .models import Expense


class ExpenseFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search', label='Search')
    category = django_filters.NumberFilter(field_name='category_id', lookup_expr='exact')
    store = django_filters.NumberFilter(field_name='store_id', lookup_expr='exact')
    payment_method = django_filters.ChoiceFilter(field_name='payment_method', choices=Expense.PAYMENT_METHOD_CHOICES)
    date_from = django_filters.DateFilter(field_name='expense_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='expense_date', lookup_expr='lte')

    class Meta:
        model = Expense
        fields = ['search', 'category', 'store', 'payment_method', 'date_from', 'date_to']

    def filter_search(self, queryset, name, value):
        search = (value or '').strip()
        if not search:
            return queryset
        return queryset.filter(Q(reference_number__icontains=search) | Q(description__icontains=search))
