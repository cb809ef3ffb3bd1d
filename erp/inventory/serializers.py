from rest_framework import serializers
from django.db import transaction
from erp.catalog.serializers import LineItemInputSerializer
from erp.core.utils import generate_document_number
from .models import StockAdjustment, StockAdjustmentItem
from .utils import stock_in, stock_out, reverse_adjustment


class StockAdjustmentItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)

    class Meta:
        model = StockAdjustmentItem
        fields = ['id', 'product', 'product_name', 'product_sku', 'quantity', 'adjustment_type']


class AdjustmentItemInputSerializer(LineItemInputSerializer):
    adjustment_type = serializers.ChoiceField(choices=StockAdjustmentItem.ADJUSTMENT_TYPE_CHOICES)


class StockAdjustmentSerializer(serializers.ModelSerializer):
    items = StockAdjustmentItemSerializer(many=True, read_only=True)
    created_by_name = serializers.CharField(source='created_by.username', read_only=True)
    reference_number = serializers.CharField(required=False, allow_blank=True)

    class Meta:
        model = StockAdjustment
        fields = ['id', 'reference_number', 'adjustment_date', 'reason', 'notes', 'store',
                  'created_by', 'created_by_name', 'created_at', 'updated_at', 'items']
        read_only_fields = ['created_by']

    def validate_reference_number(self, value):
        value = (value or '').strip()
        if value:
            queryset = StockAdjustment.objects.filter(reference_number=value)
            if self.instance is not None:
                queryset = queryset.exclude(pk=self.instance.pk)
            if queryset.exists():
                raise serializers.ValidationError('An adjustment with this reference already exists')
        return value

    def _validated_items(self):
        items_data = self.context.get('items_data')
        if not items_data:
            raise serializers.ValidationError({'items': 'At least one item is required'})
        items = AdjustmentItemInputSerializer(data=items_data, many=True)
        if not items.is_valid():
            raise serializers.ValidationError({'items': items.errors})
        for item in items.validated_data:
            if item['product'].is_service:
                raise serializers.ValidationError({'items': f"{item['product'].name} is a service and has no stock"})
        return items.validated_data

    def _apply_items(self, adjustment, items):
        request = self.context.get('request')
        for item in items:
            StockAdjustmentItem.objects.create(
                adjustment=adjustment,
                product=item['product'],
                quantity=item['quantity'],
                adjustment_type=item['adjustment_type'],
            )
            move = stock_in if item['adjustment_type'] == 'increase' else stock_out
            move(item['product'], item['quantity'], request=request,
                 reason=f"Adjustment ({adjustment.get_reason_display()})",
                 reference=adjustment.reference_number)

    def create(self, validated_data):
        items = self._validated_items()
        if not validated_data.get('reference_number'):
            validated_data['reference_number'] = generate_document_number('ADJ', StockAdjustment, 'reference_number')

        with transaction.atomic():
            adjustment = super().create(validated_data)
            self._apply_items(adjustment, items)
        return adjustment

    def update(self, instance, validated_data):
        """Header changes save in place; new items replace the old ones after reversing their stock"""
        items = self._validated_items() if self.context.get('items_data') is not None else None
        if not validated_data.get('reference_number', instance.reference_number):
            validated_data.pop('reference_number', None)

        with transaction.atomic():
            if items is not None:
                reverse_adjustment(instance, request=self.context.get('request'), reason='Adjustment edited')
                instance.items.all().delete()
            adjustment = super().update(instance, validated_data)
            if items is not None:
                self._apply_items(adjustment, items)
        return adjustment
