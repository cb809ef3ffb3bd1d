from decimal import Decimal
from django.db import transaction
from rest_framework import serializers
from erp.catalog.models import Product
from erp.catalog.serializers import validate_line_items
from erp.core.utils import generate_document_number, money
from erp.inventory.utils import stock_in, stock_out
from .models import SalesOrder, SalesItem, SalesPayment, SalesReturn, SalesReturnItem
from .utils import next_document_number, replace_items, issue_stock, restore_stock


class SalesItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)
    item_type = serializers.CharField(source='product.item_type', read_only=True)

    class Meta:
        model = SalesItem
        fields = ['id', 'product', 'product_name', 'product_sku', 'item_type', 'description',
                  'quantity', 'unit_price', 'tax_rate', 'tax_amount', 'subtotal']


class SalesPaymentSerializer(serializers.ModelSerializer):
    payment_date = serializers.DateField(required=False)
    created_by_username = serializers.CharField(source='created_by.username', read_only=True)

    class Meta:
        model = SalesPayment
        fields = ['id', 'sales_order', 'amount', 'payment_date', 'payment_method', 'reference', 'notes',
                  'created_by', 'created_by_username', 'created_at']
        read_only_fields = ['sales_order', 'created_by']

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError('Payment amount must be greater than zero')
        return value


class SalesOrderListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    balance_due = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = SalesOrder
        fields = ['id', 'order_number', 'document_type', 'customer', 'customer_name', 'order_date', 'due_date',
                  'status', 'channel', 'total_amount', 'paid_amount', 'balance_due', 'payment_status', 'created_at']


class SalesOrderSerializer(serializers.ModelSerializer):
    items = SalesItemSerializer(many=True, read_only=True)
    payments = SalesPaymentSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    store_name = serializers.CharField(source='store.name', read_only=True)
    source_document_number = serializers.CharField(source='source_document.order_number', read_only=True)
    balance_due = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    order_number = serializers.CharField(required=False, allow_blank=True)

    class Meta:
        model = SalesOrder
        fields = [
            'id', 'order_number', 'document_type', 'customer', 'customer_name', 'store', 'store_name',
            'order_date', 'due_date', 'status', 'channel', 'place_of_supply',
            'subtotal', 'tax_amount', 'discount_amount', 'total_amount', 'paid_amount', 'balance_due',
            'payment_status', 'notes', 'source_document', 'source_document_number',
            'created_by', 'created_at', 'updated_at', 'items', 'payments'
        ]
        read_only_fields = ['status', 'subtotal', 'tax_amount', 'total_amount', 'paid_amount',
                            'payment_status', 'source_document', 'created_by']

    def validate_customer(self, value):
        if value is not None and not value.is_customer:
            raise serializers.ValidationError(f"{value.name} is not a customer")
        return value

    def validate_discount_amount(self, value):
        if value is not None and value < 0:
            raise serializers.ValidationError('Discount cannot be negative')
        return value

    def validate_order_number(self, value):
        value = (value or '').strip()
        if value:
            queryset = SalesOrder.objects.filter(order_number=value)
            if self.instance is not None:
                queryset = queryset.exclude(pk=self.instance.pk)
            if queryset.exists():
                raise serializers.ValidationError('A sales document with this number already exists')
        return value

    def validate(self, attrs):
        allowed = self.context.get('document_types')
        document_type = attrs.get('document_type')
        if self.instance is not None:
            if document_type and document_type != self.instance.document_type:
                raise serializers.ValidationError({'document_type': 'Document type cannot be changed; convert the document instead'})
        elif allowed:
            document_type = document_type or allowed[0]
            if document_type not in allowed:
                raise serializers.ValidationError({'document_type': f"Must be one of: {', '.join(allowed)}"})
            attrs['document_type'] = document_type
        return attrs

    def create(self, validated_data):
        """
        Create a sales document with its items

        Totals come from the items. Invoices take their goods out of stock;
        quotations, challans and orders leave stock untouched.
        """
        lines = validate_line_items(self.context.get('items_data'), price_field='sale_price')
        if not validated_data.get('order_number'):
            validated_data['order_number'] = next_document_number(validated_data.get('document_type', 'order'))

        request = self.context.get('request')
        with transaction.atomic():
            sales_order = super().create(validated_data)
            replace_items(sales_order, lines)
            issue_stock(sales_order, request=request)
        return sales_order

    def update(self, instance, validated_data):
        """Open documents can be edited; invoice stock follows item changes"""
        if instance.status != 'open':
            raise serializers.ValidationError({'status': f"A {instance.status} document cannot be edited"})
        if not validated_data.get('order_number'):
            validated_data.pop('order_number', None)

        items_data = self.context.get('items_data')
        request = self.context.get('request')
        with transaction.atomic():
            instance = super().update(instance, validated_data)
            if items_data is not None:
                lines = validate_line_items(items_data, price_field='sale_price')
                if instance.returns.exists():
                    raise serializers.ValidationError({'items': 'Items of an invoice with returns cannot be changed'})
                restore_stock(instance, request=request, reason='Invoice edited')
                replace_items(instance, lines)
                issue_stock(instance, request=request)
            else:
                instance.recalculate_totals()
        return instance


class SalesReturnItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)

    class Meta:
        model = SalesReturnItem
        fields = ['id', 'product', 'product_name', 'quantity', 'refund_amount']


class SalesReturnItemInputSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal('0.001'))
    refund_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'),
                                             required=False, allow_null=True)


class SalesReturnSerializer(serializers.ModelSerializer):
    items = SalesReturnItemSerializer(many=True, read_only=True)
    order_number = serializers.CharField(source='sales_order.order_number', read_only=True)
    customer_name = serializers.CharField(source='sales_order.customer.name', read_only=True)
    return_number = serializers.CharField(required=False, allow_blank=True)

    class Meta:
        model = SalesReturn
        fields = ['id', 'return_number', 'sales_order', 'order_number', 'customer_name', 'return_date',
                  'reason', 'total_refund_amount', 'created_by', 'created_at', 'items']
        read_only_fields = ['total_refund_amount', 'created_by']

    def validate_sales_order(self, value):
        if not value.is_invoice:
            raise serializers.ValidationError('Returns can only be recorded against invoices')
        if value.status == 'cancelled':
            raise serializers.ValidationError('Cancelled invoices cannot be returned')
        if self.instance is not None and value.pk != self.instance.sales_order_id:
            raise serializers.ValidationError('A return cannot be moved to another invoice')
        return value

    def validate_return_number(self, value):
        value = (value or '').strip()
        if value:
            queryset = SalesReturn.objects.filter(return_number=value)
            if self.instance is not None:
                queryset = queryset.exclude(pk=self.instance.pk)
            if queryset.exists():
                raise serializers.ValidationError('A return with this number already exists')
        return value

    def _validated_lines(self, sales_order, items_data):
        """
        Check requested quantities against what the invoice sold minus other
        returns, and price each line (the refund defaults to the line's
        tax-inclusive price)
        """
        if not items_data:
            raise serializers.ValidationError({'items': 'At least one item is required'})
        items = SalesReturnItemInputSerializer(data=items_data, many=True)
        if not items.is_valid():
            raise serializers.ValidationError({'items': items.errors})

        sold = {}
        line_value = {}
        for item in sales_order.items.all():
            sold[item.product_id] = sold.get(item.product_id, Decimal('0')) + item.quantity
            line_value[item.product_id] = line_value.get(item.product_id, Decimal('0')) + item.subtotal
        returned = sales_order.get_returned_quantities()
        if self.instance is not None:
            for item in self.instance.items.all():
                returned[item.product_id] = returned.get(item.product_id, Decimal('0')) - item.quantity

        requested = {}
        lines = []
        for line in items.validated_data:
            product = line['product']
            if product.pk not in sold:
                raise serializers.ValidationError({'items': f"{product.name} is not on invoice {sales_order.order_number}"})
            requested[product.pk] = requested.get(product.pk, Decimal('0')) + line['quantity']
            available = sold[product.pk] - returned.get(product.pk, Decimal('0'))
            if requested[product.pk] > available:
                raise serializers.ValidationError({'items': f"Cannot return {requested[product.pk]} of {product.name}; only {available} available"})
            refund = line.get('refund_amount')
            if refund is None:
                refund = line_value[product.pk] / sold[product.pk] * line['quantity']
            lines.append((product, line['quantity'], money(refund)))
        return lines

    def _add_lines(self, sales_return, lines):
        request = self.context.get('request')
        for product, quantity, refund in lines:
            SalesReturnItem.objects.create(sales_return=sales_return, product=product,
                                           quantity=quantity, refund_amount=refund)
            stock_in(product, quantity, request=request,
                     reason='Customer return', reference=sales_return.return_number)
        sales_return.recalculate_totals()

    def create(self, validated_data):
        """Record a customer return; stock goes back up"""
        lines = self._validated_lines(validated_data['sales_order'], self.context.get('items_data'))
        if not validated_data.get('return_number'):
            validated_data['return_number'] = generate_document_number('SR', SalesReturn, 'return_number')

        with transaction.atomic():
            sales_return = super().create(validated_data)
            self._add_lines(sales_return, lines)
        return sales_return

    def update(self, instance, validated_data):
        """
        Edit a return. When items are sent the old lines' stock is taken out
        again and the new lines are booked in their place.
        """
        items_data = self.context.get('items_data')
        lines = self._validated_lines(instance.sales_order, items_data) if items_data is not None else None
        if not validated_data.get('return_number', instance.return_number):
            validated_data.pop('return_number', None)

        request = self.context.get('request')
        with transaction.atomic():
            instance = super().update(instance, validated_data)
            if lines is not None:
                for item in instance.items.select_related('product'):
                    stock_out(item.product, item.quantity, request=request,
                              reason='Customer return edited', reference=instance.return_number)
                instance.items.all().delete()
                self._add_lines(instance, lines)
        return instance
