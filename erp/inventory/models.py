from django.db import models
from erp.catalog.models import Product


class StockAdjustment(models.Model):
    """Manual stock correction document; each item moves one product up or down"""
    REASON_CHOICES = [
        ('damage', 'Damage'),
        ('theft', 'Theft'),
        ('count_correction', 'Count Correction'),
        ('expired', 'Expired'),
        ('opening_stock', 'Opening Stock'),
        ('other', 'Other'),
    ]

    reference_number = models.CharField(max_length=100, unique=True)
    adjustment_date = models.DateField()
    reason = models.CharField(max_length=50, choices=REASON_CHOICES, default='other')
    notes = models.TextField(blank=True)
    store = models.ForeignKey('locations.Store', on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_adjustments')
    created_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, related_name='stock_adjustments')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'stock_adjustments'
        ordering = ['-adjustment_date', '-id']

    def __str__(self):
        return self.reference_number


class StockAdjustmentItem(models.Model):
    """Items in a stock adjustment"""
    ADJUSTMENT_TYPE_CHOICES = [
        ('increase', 'Increase'),
        ('decrease', 'Decrease'),
    ]

    adjustment = models.ForeignKey(StockAdjustment, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='adjustment_items')
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    adjustment_type = models.CharField(max_length=10, choices=ADJUSTMENT_TYPE_CHOICES)

    class Meta:
        db_table = 'stock_adjustment_items'

    def __str__(self):
        return f"{self.adjustment_type} {self.quantity} x {self.product.name}"
