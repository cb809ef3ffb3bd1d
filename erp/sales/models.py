from django.db import models
from django.db.models import Sum
from decimal import Decimal
from erp.catalog.models import Product
from erp.core.models import User
from erp.core.utils import line_amounts, money
from erp.locations.models import Store
from erp.parties.models import Contact


class SalesOrderQuerySet(models.QuerySet):
    def quotations(self):
        return self.filter(document_type='quotation')

    def challans(self):
        return self.filter(document_type='delivery_challan')

    def orders_and_invoices(self):
        return self.filter(document_type__in=['order', 'invoice'])

    def invoices(self):
        return self.filter(document_type='invoice')

    def billable(self):
        """Documents that count towards revenue and customer balances"""
        return self.orders_and_invoices().exclude(status__in=['cancelled', 'converted'])

    def outstanding(self):
        return self.billable().exclude(payment_status='paid')


class SalesOrder(models.Model):
    """
    Every sales document lives in this table: quotations, delivery challans,
    sales orders and invoices. Only invoices move stock and only orders and
    invoices take payments.
    """
    DOCUMENT_TYPE_CHOICES = [
        ('quotation', 'Quotation'),
        ('delivery_challan', 'Delivery Challan'),
        ('order', 'Sales Order'),
        ('invoice', 'Invoice'),
    ]

    STATUS_CHOICES = [
        ('open', 'Open'),
        ('converted', 'Converted'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    PAYMENT_STATUS_CHOICES = [
        ('unpaid', 'Unpaid'),
        ('partial', 'Partially Paid'),
        ('paid', 'Paid'),
    ]

    CHANNEL_CHOICES = [
        ('direct', 'Direct'),
        ('pos', 'Point of Sale'),
        ('online', 'Online'),
        ('task', 'Field Task'),
    ]

    PAYABLE_TYPES = ('order', 'invoice')

    order_number = models.CharField(max_length=100, unique=True)
    document_type = models.CharField(max_length=20, choices=DOCUMENT_TYPE_CHOICES, default='order')
    customer = models.ForeignKey(Contact, on_delete=models.PROTECT, null=True, blank=True, related_name='sales_orders')
    store = models.ForeignKey(Store, on_delete=models.SET_NULL, null=True, blank=True, related_name='sales_orders')
    order_date = models.DateField()
    due_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='open')
    channel = models.CharField(max_length=20, choices=CHANNEL_CHOICES, default='direct')
    place_of_supply = models.CharField(max_length=100, blank=True)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='unpaid')
    notes = models.TextField(blank=True)
    source_document = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='converted_documents')
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='sales_orders')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = SalesOrderQuerySet.as_manager()

    def __str__(self):
        return self.order_number

    @property
    def is_invoice(self):
        return self.document_type == 'invoice'

    @property
    def accepts_payments(self):
        return self.document_type in self.PAYABLE_TYPES and self.status not in ('cancelled', 'converted')

    @property
    def balance_due(self):
        return max(self.total_amount - self.paid_amount, Decimal('0.00'))

    def recalculate_totals(self):
        """Roll item amounts up into the header; the discount comes off the grand total"""
        totals = self.items.aggregate(tax=Sum('tax_amount'), total=Sum('subtotal'))
        self.tax_amount = money(totals['tax'])
        self.subtotal = money(totals['total']) - self.tax_amount
        self.total_amount = max(self.subtotal + self.tax_amount - money(self.discount_amount), Decimal('0.00'))
        self.save(update_fields=['subtotal', 'tax_amount', 'total_amount', 'updated_at'])
        self.refresh_payment_status()

    def refresh_payment_status(self):
        """
        Recompute paid amount and payment status from the recorded payments.

        paid >= total is 'paid' (an empty document counts as unpaid), any
        positive amount below the total is 'partial'. Invoices follow their
        payment: a fully paid invoice is completed.
        """
        self.paid_amount = money(self.payments.aggregate(total=Sum('amount'))['total'])
        if self.paid_amount > 0 and self.paid_amount >= self.total_amount:
            self.payment_status = 'paid'
        elif self.paid_amount > 0:
            self.payment_status = 'partial'
        else:
            self.payment_status = 'unpaid'

        if self.is_invoice and self.status in ('open', 'completed'):
            self.status = 'completed' if self.payment_status == 'paid' else 'open'
        self.save(update_fields=['paid_amount', 'payment_status', 'status', 'updated_at'])

    def get_returned_quantities(self):
        """Quantity already returned by the customer, per product id"""
        rows = SalesReturnItem.objects.filter(sales_return__sales_order=self) \
            .values('product_id').annotate(quantity=Sum('quantity'))
        return {row['product_id']: row['quantity'] for row in rows}

    class Meta:
        db_table = 'sales_orders'
        ordering = ['-order_date', '-created_at']
        indexes = [
            models.Index(fields=['document_type', 'status'], name='idx_so_type_status'),
            models.Index(fields=['customer', 'payment_status'], name='idx_so_customer_payment'),
            models.Index(fields=['order_date'], name='idx_so_order_date'),
        ]


class SalesItem(models.Model):
    """Sales document line items"""
    sales_order = models.ForeignKey(SalesOrder, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='sales_items')
    description = models.CharField(max_length=500, blank=True)
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
        db_table = 'sales_items'
        ordering = ['id']


class SalesPayment(models.Model):
    """Payments received against a sales order or invoice"""
    PAYMENT_METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('card', 'Card'),
        ('upi', 'UPI'),
        ('bank_transfer', 'Bank Transfer'),
        ('cheque', 'Cheque'),
        ('other', 'Other'),
    ]

    sales_order = models.ForeignKey(SalesOrder, on_delete=models.CASCADE, related_name='payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_date = models.DateField()
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default='cash')
    reference = models.CharField(max_length=200, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='sales_payments')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.amount} for {self.sales_order.order_number}"

    class Meta:
        db_table = 'sales_payments'
        ordering = ['-payment_date', '-created_at']


class SalesReturn(models.Model):
    """Goods returned by a customer against an invoice; stock goes back up"""
    return_number = models.CharField(max_length=100, unique=True)
    sales_order = models.ForeignKey(SalesOrder, on_delete=models.PROTECT, related_name='returns')
    return_date = models.DateField()
    reason = models.TextField(blank=True)
    total_refund_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='sales_returns')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.return_number

    def recalculate_totals(self):
        self.total_refund_amount = money(self.items.aggregate(total=Sum('refund_amount'))['total'])
        self.save(update_fields=['total_refund_amount'])

    class Meta:
        db_table = 'sales_returns'
        ordering = ['-return_date', '-created_at']


class SalesReturnItem(models.Model):
    sales_return = models.ForeignKey(SalesReturn, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='sales_return_items')
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    class Meta:
        db_table = 'sales_return_items'
        ordering = ['id']
