from rest_framework import serializers
from .models import ExpenseCategory, Expense


class ExpenseCategorySerializer(serializers.ModelSerializer):
    expense_count = serializers.IntegerField(source='expenses.count', read_only=True)

    class Meta:
        model = ExpenseCategory
        fields = ['id', 'name', 'description', 'expense_count', 'created_at']


class ExpenseSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True)
    reference_number = serializers.CharField(required=False, allow_blank=True)

    class Meta:
        model = Expense
        fields = [
            'id', 'reference_number', 'category', 'category_name', 'amount', 'expense_date',
            'payment_method', 'description', 'store', 'created_by', 'created_at', 'updated_at'
        ]
        read_only_fields = ['created_by']

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError('Amount must be greater than zero')
        return value

    def validate_reference_number(self, value):
        value = (value or '').strip()
        if value:
            queryset = Expense.objects.filter(reference_number=value)
            if self.instance is not None:
                queryset = queryset.exclude(pk=self.instance.pk)
            if queryset.exists():
                raise serializers.ValidationError('An expense with this reference already exists')
        return value
