from django.db import models
from django.db.models import Sum
from decimal import Decimal
from erp.catalog.models import Product
from erp.core.models import User
from erp.core.utils import line_amounts, money
from erp.locations.models import Store
from erp.parties.models import Contact


class PurchaseOrder(models.Model):
    """Purchase order / bill from a supplier. Stock is added when it is received."""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('received', 'Received'),
        ('cancelled', 'Cancelled'),
    ]

    order_number = models.CharField(max_length=100, unique=True)
    supplier = models.ForeignKey(Contact, on_delete=models.PROTECT, related_name='purchase_orders')
    store = models.ForeignKey(Store, on_delete=models.SET_NULL, null=True, blank=True, related_name='purchase_orders')
    order_date = models.DateField()
    bill_number = models.CharField(max_length=100, blank=True)  # Bill/Invoice number from supplier
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)
    received_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='purchase_orders')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.order_number

    def recalculate_totals(self):
        """Roll item amounts up into the header and save it"""
        totals = self.items.aggregate(tax=Sum('tax_amount'), total=Sum('subtotal'))
        self.tax_amount = money(totals['tax'])
        self.total_amount = money(totals['total'])
        self.subtotal = self.total_amount - self.tax_amount
        self.save(update_fields=['subtotal', 'tax_amount', 'total_amount', 'updated_at'])

    def get_returned_quantities(self):
        """Quantity already returned to the supplier, per product id"""
        rows = PurchaseReturnItem.objects.filter(purchase_return__purchase_order=self) \
            .values('product_id').annotate(quantity=Sum('quantity'))
        return {row['product_id']: row['quantity'] for row in rows}

    class Meta:
        db_table = 'purchase_orders'
        ordering = ['-order_date', '-created_at']
        indexes = [
            models.Index(fields=['status'], name='idx_po_status'),
            models.Index(fields=['supplier', 'status'], name='idx_po_supplier_status'),
        ]


class PurchaseItem(models.Model):
    """Purchase line items"""
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='purchase_items')
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    def save(self, *args, **kwargs):
        _, self.tax_amount, self.subtotal = line_amounts(self.quantity, self.unit_price, self.tax_rate)
        super().save(*args, **kwargs)

    def get_taxable_amount(self):
        return self.subtotal - self.tax_amount

    class Meta:
        db_table = 'purchase_items'
        ordering = ['id']


class PurchaseReturn(models.Model):
    """Goods sent back to a supplier; stock goes down when it is recorded"""
    return_number = models.CharField(max_length=100, unique=True)
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.SET_NULL, null=True, blank=True, related_name='returns')
    supplier = models.ForeignKey(Contact, on_delete=models.PROTECT, related_name='purchase_returns')
    return_date = models.DateField()
    reason = models.TextField(blank=True)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='purchase_returns')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.return_number

    def recalculate_totals(self):
        self.total_amount = money(self.items.aggregate(total=Sum('subtotal'))['total'])
        self.save(update_fields=['total_amount'])

    class Meta:
        db_table = 'purchase_returns'
        ordering = ['-return_date', '-created_at']


class PurchaseReturnItem(models.Model):
    purchase_return = models.ForeignKey(PurchaseReturn, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='purchase_return_items')
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    def save(self, *args, **kwargs):
        _, _, self.subtotal = line_amounts(self.quantity, self.unit_price, 0)
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'purchase_return_items'
        ordering = ['id']
