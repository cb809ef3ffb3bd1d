from decimal import Decimal
from rest_framework import serializers
from .models import Category, SubCategory, Brand, Unit, TaxRate, Product
from .utils import generate_unique_sku


class CategorySerializer(serializers.ModelSerializer):
    product_count = serializers.IntegerField(source='products.count', read_only=True)

    class Meta:
        model = Category
        fields = ['id', 'name', 'description', 'is_active', 'product_count', 'created_at', 'updated_at']


class SubCategorySerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True)

    class Meta:
        model = SubCategory
        fields = ['id', 'category', 'category_name', 'name', 'description', 'is_active', 'created_at', 'updated_at']


class BrandSerializer(serializers.ModelSerializer):
    class Meta:
        model = Brand
        fields = ['id', 'name', 'description', 'is_active', 'created_at', 'updated_at']


class UnitSerializer(serializers.ModelSerializer):
    class Meta:
        model = Unit
        fields = ['id', 'name', 'short_name', 'allow_decimal', 'created_at', 'updated_at']


class TaxRateSerializer(serializers.ModelSerializer):
    class Meta:
        model = TaxRate
        fields = ['id', 'name', 'percentage', 'description', 'is_active', 'created_at', 'updated_at']

    def validate_percentage(self, value):
        if value < 0 or value > 100:
            raise serializers.ValidationError('Percentage must be between 0 and 100')
        return value


class ProductSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True)
    sub_category_name = serializers.CharField(source='sub_category.name', read_only=True)
    brand_name = serializers.CharField(source='brand.name', read_only=True)
    unit_name = serializers.CharField(source='unit.short_name', read_only=True)
    tax_percentage = serializers.DecimalField(source='get_tax_percentage', max_digits=5, decimal_places=2, read_only=True)
    is_low_stock = serializers.BooleanField(read_only=True)
    stock_value = serializers.DecimalField(source='get_stock_value', max_digits=14, decimal_places=2, read_only=True)
    sku = serializers.CharField(max_length=100, required=False, allow_blank=True)

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'sku', 'item_type', 'category', 'category_name', 'sub_category',
            'sub_category_name', 'brand', 'brand_name', 'unit', 'unit_name', 'tax_rate',
            'tax_percentage', 'hsn_code', 'purchase_price', 'sale_price', 'current_stock',
            'alert_quantity', 'is_low_stock', 'stock_value', 'description', 'image_url',
            'is_active', 'created_at', 'updated_at',
        ]

    def validate_sku(self, value):
        value = (value or '').strip()
        if not value:
            return value
        queryset = Product.objects.filter(sku=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A product with this SKU already exists')
        return value

    def validate(self, attrs):
        category = attrs.get('category', getattr(self.instance, 'category', None))
        sub_category = attrs.get('sub_category', getattr(self.instance, 'sub_category', None))
        if sub_category is not None:
            if category is None:
                attrs['category'] = sub_category.category
            elif sub_category.category_id != category.pk:
                raise serializers.ValidationError({'sub_category': 'Sub-category does not belong to the selected category'})

        for field in ('purchase_price', 'sale_price', 'current_stock', 'alert_quantity'):
            value = attrs.get(field)
            if value is not None and value < 0:
                raise serializers.ValidationError({field: 'Cannot be negative'})

        item_type = attrs.get('item_type', getattr(self.instance, 'item_type', 'product'))
        if item_type == 'service':
            # Services are never stocked
            attrs['current_stock'] = 0
            attrs['alert_quantity'] = None
        return attrs

    def create(self, validated_data):
        if not validated_data.get('sku'):
            validated_data['sku'] = generate_unique_sku(validated_data.get('name'))
        return super().create(validated_data)

    def update(self, instance, validated_data):
        if 'sku' in validated_data and not validated_data['sku']:
            validated_data.pop('sku')
        return super().update(instance, validated_data)


class LineItemInputSerializer(serializers.Serializer):
    """Validates one incoming document line (purchase, sale, adjustment)"""
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal('0.001'))
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'), required=False)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=Decimal('0'),
                                        max_value=Decimal('100'), required=False, allow_null=True)
    description = serializers.CharField(required=False, allow_blank=True, default='')


def validate_line_items(items_data, price_field='sale_price', allow_empty=False):
    """
    Validate a list of line items, filling in price and tax defaults from the product

    Raises serializers.ValidationError({'items': ...}) when the list is empty
    or any line is invalid.
    """
    if not items_data:
        if allow_empty:
            return []
        raise serializers.ValidationError({'items': 'At least one item is required'})
    serializer = LineItemInputSerializer(data=items_data, many=True)
    if not serializer.is_valid():
        raise serializers.ValidationError({'items': serializer.errors})
    lines = []
    for line in serializer.validated_data:
        product = line['product']
        if line.get('unit_price') is None:
            line['unit_price'] = getattr(product, price_field)
        if line.get('tax_rate') is None:
            line['tax_rate'] = product.get_tax_percentage()
        lines.append(line)
    return lines
