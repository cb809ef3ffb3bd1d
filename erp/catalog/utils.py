"""
Utility functions for catalog operations
"""
from decimal import Decimal, InvalidOperation
from django.utils import timezone
import uuid
from erp.catalog.models import Product, Category, SubCategory, Brand, Unit, TaxRate


def generate_unique_sku(base_name=None):
    """Generate a unique SKU"""
    prefix = base_name[:4].upper().replace(' ', '') if base_name else 'PRD'
    timestamp = timezone.now().strftime('%Y%m%d')
    unique_id = str(uuid.uuid4())[:8].upper()
    sku = f"{prefix}-{timestamp}-{unique_id}"

    # Ensure uniqueness
    while Product.objects.filter(sku=sku).exists():
        unique_id = str(uuid.uuid4())[:8].upper()
        sku = f"{prefix}-{timestamp}-{unique_id}"

    return sku


def parse_decimal(value, field, default=None, allow_negative=False):
    """Parse a CSV/text value into a Decimal, raising ValueError with a readable message"""
    if value is None or str(value).strip() == '':
        if default is None:
            raise ValueError(f"{field} is required")
        return default
    try:
        result = Decimal(str(value).strip().replace(',', ''))
    except InvalidOperation:
        raise ValueError(f"{field} must be a number, got '{value}'")
    if not allow_negative and result < 0:
        raise ValueError(f"{field} cannot be negative")
    return result


PRODUCT_CSV_HEADERS = [
    'name', 'sku', 'type', 'category', 'sub_category', 'brand', 'unit', 'hsn_code',
    'purchase_price', 'sale_price', 'current_stock', 'alert_quantity', 'tax_rate', 'description',
]


def map_product_row(row):
    """Validate one product CSV row; lookups by name happen when the row is saved"""
    name = row.get('name', '')
    if not name:
        raise ValueError('name is required')

    item_type = (row.get('type') or 'product').lower()
    if item_type not in ('product', 'service'):
        raise ValueError(f"type must be 'product' or 'service', got '{row.get('type')}'")

    alert_quantity = row.get('alert_quantity')
    return {
        'name': name,
        'sku': row.get('sku') or None,
        'item_type': item_type,
        'category': row.get('category') or None,
        'sub_category': row.get('sub_category') or None,
        'brand': row.get('brand') or None,
        'unit': row.get('unit') or None,
        'hsn_code': row.get('hsn_code', ''),
        'purchase_price': parse_decimal(row.get('purchase_price'), 'purchase_price', Decimal('0')),
        'sale_price': parse_decimal(row.get('sale_price'), 'sale_price', Decimal('0')),
        'current_stock': parse_decimal(row.get('current_stock'), 'current_stock', Decimal('0')),
        'alert_quantity': parse_decimal(alert_quantity, 'alert_quantity') if alert_quantity else None,
        'tax_rate': parse_decimal(row.get('tax_rate'), 'tax_rate') if row.get('tax_rate') else None,
        'description': row.get('description', ''),
    }


def save_imported_product(data):
    """
    Create or update a product from a mapped CSV row.

    Rows are matched on SKU; categories, brands and units are looked up by
    name (case-insensitive) and created when missing. Tax rates are matched
    on percentage.
    """
    category = None
    if data['category']:
        category = Category.objects.filter(name__iexact=data['category']).first() \
            or Category.objects.create(name=data['category'])
    sub_category = None
    if data['sub_category'] and category:
        sub_category, _ = SubCategory.objects.get_or_create(category=category, name=data['sub_category'])
    brand = None
    if data['brand']:
        brand = Brand.objects.filter(name__iexact=data['brand']).first() \
            or Brand.objects.create(name=data['brand'])
    unit = None
    if data['unit']:
        unit = Unit.objects.filter(name__iexact=data['unit']).first() \
            or Unit.objects.filter(short_name__iexact=data['unit']).first() \
            or Unit.objects.create(name=data['unit'], short_name=data['unit'][:20])
    tax_rate = None
    rate = data['tax_rate']
    if rate is not None:
        label = int(rate) if rate == rate.to_integral_value() else rate
        tax_rate = TaxRate.objects.filter(percentage=rate).first() \
            or TaxRate.objects.create(name=f"GST {label}%", percentage=rate)

    fields = {
        'name': data['name'],
        'item_type': data['item_type'],
        'category': category,
        'sub_category': sub_category,
        'brand': brand,
        'unit': unit,
        'tax_rate': tax_rate,
        'hsn_code': data['hsn_code'],
        'purchase_price': data['purchase_price'],
        'sale_price': data['sale_price'],
        'current_stock': Decimal('0') if data['item_type'] == 'service' else data['current_stock'],
        'alert_quantity': data['alert_quantity'],
        'description': data['description'],
    }
    sku = data['sku'] or generate_unique_sku(data['name'])
    product, created = Product.objects.update_or_create(sku=sku, defaults=fields)
    return product, created
