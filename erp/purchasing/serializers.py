from decimal import Decimal
from django.db import transaction
from rest_framework import serializers
from erp.catalog.serializers import validate_line_items, LineItemInputSerializer
from erp.core.utils import generate_document_number
from erp.inventory.utils import stock_out
from erp.parties.models import Contact
from .models import PurchaseOrder, PurchaseItem, PurchaseReturn, PurchaseReturnItem
from .utils import replace_items, receive_purchase_order


class PurchaseItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)

    class Meta:
        model = PurchaseItem
        fields = ['id', 'product', 'product_name', 'product_sku', 'quantity', 'unit_price',
                  'tax_rate', 'tax_amount', 'subtotal']


class PurchaseOrderListSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)

    class Meta:
        model = PurchaseOrder
        fields = ['id', 'order_number', 'supplier', 'supplier_name', 'order_date', 'bill_number',
                  'status', 'subtotal', 'tax_amount', 'total_amount', 'received_at', 'created_at']


class PurchaseOrderSerializer(serializers.ModelSerializer):
    items = PurchaseItemSerializer(many=True, read_only=True)
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    store_name = serializers.CharField(source='store.name', read_only=True)
    order_number = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=[('pending', 'Pending'), ('received', 'Received')], required=False)

    class Meta:
        model = PurchaseOrder
        fields = [
            'id', 'order_number', 'supplier', 'supplier_name', 'store', 'store_name', 'order_date',
            'bill_number', 'status', 'subtotal', 'tax_amount', 'total_amount', 'notes',
            'received_at', 'created_by', 'created_at', 'updated_at', 'items'
        ]
        read_only_fields = ['subtotal', 'tax_amount', 'total_amount', 'received_at', 'created_by']

    def validate_supplier(self, value):
        if not value.is_supplier:
            raise serializers.ValidationError(f"{value.name} is not a supplier")
        return value

    def validate_order_number(self, value):
        value = (value or '').strip()
        if value:
            queryset = PurchaseOrder.objects.filter(order_number=value)
            if self.instance is not None:
                queryset = queryset.exclude(pk=self.instance.pk)
            if queryset.exists():
                raise serializers.ValidationError('A purchase order with this number already exists')
        return value

    def create(self, validated_data):
        """
        Create a pending purchase order, or a direct purchase when status is
        'received' (stock is added immediately).
        """
        lines = validate_line_items(self.context.get('items_data'), price_field='purchase_price')
        receive_now = validated_data.pop('status', 'pending') == 'received'

        if not validated_data.get('order_number'):
            validated_data['order_number'] = generate_document_number('PO', PurchaseOrder, 'order_number')

        with transaction.atomic():
            purchase_order = super().create(dict(validated_data, status='pending'))
            replace_items(purchase_order, lines)
            if receive_now:
                receive_purchase_order(purchase_order, request=self.context.get('request'))
        return purchase_order

    def update(self, instance, validated_data):
        validated_data.pop('status', None)
        if not validated_data.get('order_number'):
            validated_data.pop('order_number', None)
        items_data = self.context.get('items_data')
        if instance.status != 'pending':
            locked = set(validated_data) - {'notes', 'bill_number'}
            if items_data or locked:
                raise serializers.ValidationError(
                    f"A {instance.status} purchase order only allows notes and bill number changes"
                )
        with transaction.atomic():
            instance = super().update(instance, validated_data)
            if items_data is not None:
                replace_items(instance, validate_line_items(items_data, price_field='purchase_price'))
        return instance


class PurchaseReturnItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)

    class Meta:
        model = PurchaseReturnItem
        fields = ['id', 'product', 'product_name', 'quantity', 'unit_price', 'subtotal']


class PurchaseReturnSerializer(serializers.ModelSerializer):
    items = PurchaseReturnItemSerializer(many=True, read_only=True)
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    order_number = serializers.CharField(source='purchase_order.order_number', read_only=True)
    return_number = serializers.CharField(required=False, allow_blank=True)
    supplier = serializers.PrimaryKeyRelatedField(queryset=Contact.objects.all(), required=False)

    class Meta:
        model = PurchaseReturn
        fields = ['id', 'return_number', 'purchase_order', 'order_number', 'supplier', 'supplier_name',
                  'return_date', 'reason', 'total_amount', 'created_by', 'created_at', 'items']
        read_only_fields = ['total_amount', 'created_by']

    def validate(self, attrs):
        purchase_order = attrs.get('purchase_order')
        if purchase_order is not None:
            if purchase_order.status != 'received':
                raise serializers.ValidationError({'purchase_order': 'Only received purchase orders can be returned'})
            attrs['supplier'] = purchase_order.supplier
        elif attrs.get('supplier') is None:
            raise serializers.ValidationError({'supplier': 'Supplier or purchase order is required'})
        return attrs

    def _validate_against_order(self, purchase_order, lines):
        """Returned quantities may not exceed what was received minus earlier returns"""
        received = {}
        for item in purchase_order.items.all():
            received[item.product_id] = received.get(item.product_id, Decimal('0')) + item.quantity
        returned = purchase_order.get_returned_quantities()
        requested = {}
        for line in lines:
            product = line['product']
            requested[product.pk] = requested.get(product.pk, Decimal('0')) + line['quantity']
            available = received.get(product.pk, Decimal('0')) - returned.get(product.pk, Decimal('0'))
            if product.pk not in received:
                raise serializers.ValidationError({'items': f"{product.name} is not on purchase order {purchase_order.order_number}"})
            if requested[product.pk] > available:
                raise serializers.ValidationError({'items': f"Cannot return {requested[product.pk]} of {product.name}; only {available} available"})

    def create(self, validated_data):
        items_data = self.context.get('items_data')
        if not items_data:
            raise serializers.ValidationError({'items': 'At least one item is required'})
        items = LineItemInputSerializer(data=items_data, many=True)
        if not items.is_valid():
            raise serializers.ValidationError({'items': items.errors})
        lines = items.validated_data

        purchase_order = validated_data.get('purchase_order')
        if purchase_order is not None:
            self._validate_against_order(purchase_order, lines)
            order_prices = {item.product_id: item.unit_price for item in purchase_order.items.all()}
        else:
            order_prices = {}

        if not validated_data.get('return_number'):
            validated_data['return_number'] = generate_document_number('PR', PurchaseReturn, 'return_number')

        request = self.context.get('request')
        with transaction.atomic():
            purchase_return = super().create(validated_data)
            for line in lines:
                product = line['product']
                unit_price = line.get('unit_price')
                if unit_price is None:
                    unit_price = order_prices.get(product.pk, product.purchase_price)
                PurchaseReturnItem.objects.create(
                    purchase_return=purchase_return,
                    product=product,
                    quantity=line['quantity'],
                    unit_price=unit_price,
                )
                stock_out(product, line['quantity'], request=request,
                          reason='Returned to supplier', reference=purchase_return.return_number)
            purchase_return.recalculate_totals()
        return purchase_return
