from django.db import models
from django.db.models import F
from decimal import Decimal


class Category(models.Model):
    """Product categories"""
    name = models.CharField(max_length=200, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'categories'
        ordering = ['name']


class SubCategory(models.Model):
    """Second level of the category tree"""
    category = models.ForeignKey(Category, on_delete=models.CASCADE, related_name='sub_categories')
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.category.name} / {self.name}"

    class Meta:
        db_table = 'sub_categories'
        verbose_name_plural = 'sub categories'
        ordering = ['name']
        unique_together = [['category', 'name']]


class Brand(models.Model):
    """Product brands"""
    name = models.CharField(max_length=200, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'brands'
        ordering = ['name']


class Unit(models.Model):
    """Units of measure (Pieces/pcs, Kilogram/kg, ...)"""
    name = models.CharField(max_length=100, unique=True)
    short_name = models.CharField(max_length=20)
    allow_decimal = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.short_name})"

    class Meta:
        db_table = 'units'
        ordering = ['name']


class TaxRate(models.Model):
    """Tax rates"""
    name = models.CharField(max_length=100)
    percentage = models.DecimalField(max_digits=5, decimal_places=2)  # e.g., 18.00 for 18%
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.percentage}%)"

    class Meta:
        db_table = 'tax_rates'
        ordering = ['percentage', 'name']


class ProductQuerySet(models.QuerySet):
    def stocked(self):
        return self.filter(item_type='product')

    def services(self):
        return self.filter(item_type='service')

    def low_stock(self):
        """Stocked products at or below their alert quantity"""
        return self.stocked().filter(
            alert_quantity__isnull=False,
            current_stock__lte=F('alert_quantity'),
        )


class Product(models.Model):
    """Product and service master"""
    ITEM_TYPE_CHOICES = [
        ('product', 'Product'),
        ('service', 'Service'),
    ]

    name = models.CharField(max_length=200, db_index=True)
    sku = models.CharField(max_length=100, unique=True, db_index=True)
    item_type = models.CharField(max_length=20, choices=ITEM_TYPE_CHOICES, default='product', db_index=True)
    category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    sub_category = models.ForeignKey(SubCategory, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    brand = models.ForeignKey(Brand, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    unit = models.ForeignKey(Unit, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    tax_rate = models.ForeignKey(TaxRate, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    hsn_code = models.CharField(max_length=20, blank=True, help_text="HSN code for goods, SAC code for services")
    purchase_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    sale_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    current_stock = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0.000'))
    alert_quantity = models.DecimalField(max_digits=12, decimal_places=3, null=True, blank=True)
    description = models.TextField(blank=True)
    image_url = models.CharField(max_length=500, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ProductQuerySet.as_manager()

    def __str__(self):
        return f"{self.name} ({self.sku})"

    class Meta:
        db_table = 'products'
        ordering = ['name']

    @property
    def is_service(self):
        return self.item_type == 'service'

    @property
    def is_low_stock(self):
        if self.is_service or self.alert_quantity is None:
            return False
        return self.current_stock <= self.alert_quantity

    def get_tax_percentage(self):
        return self.tax_rate.percentage if self.tax_rate_id else Decimal('0.00')

    def get_stock_value(self):
        """Stock valued at purchase price"""
        if self.is_service:
            return Decimal('0.00')
        return (self.current_stock * self.purchase_price).quantize(Decimal('0.01'))
