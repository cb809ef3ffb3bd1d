from django.contrib import admin
from .models import SalesOrder, SalesItem, SalesPayment, SalesReturn, SalesReturnItem


class SalesItemInline(admin.TabularInline):
    model = SalesItem
    extra = 0
    fields = ['product', 'description', 'quantity', 'unit_price', 'tax_rate', 'tax_amount', 'subtotal']
    readonly_fields = ['tax_amount', 'subtotal']
    raw_id_fields = ['product']


class SalesPaymentInline(admin.TabularInline):
    model = SalesPayment
    extra = 0
    fields = ['amount', 'payment_date', 'payment_method', 'reference']


@admin.register(SalesOrder)
class SalesOrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'document_type', 'customer', 'order_date', 'status', 'get_total',
                    'paid_amount', 'payment_status', 'channel', 'created_at']
    list_filter = ['document_type', 'status', 'payment_status', 'channel', 'order_date']
    search_fields = ['order_number', 'customer__name', 'customer__phone', 'notes']
    ordering = ['-order_date', '-created_at']
    inlines = [SalesItemInline, SalesPaymentInline]
    readonly_fields = ['subtotal', 'tax_amount', 'total_amount', 'paid_amount', 'payment_status',
                       'created_at', 'updated_at']

    def get_total(self, obj):
        return f"₹{obj.total_amount:.2f}"
    get_total.short_description = 'Total'


class SalesReturnItemInline(admin.TabularInline):
    model = SalesReturnItem
    extra = 0
    raw_id_fields = ['product']


@admin.register(SalesReturn)
class SalesReturnAdmin(admin.ModelAdmin):
    list_display = ['return_number', 'sales_order', 'return_date', 'total_refund_amount', 'created_at']
    list_filter = ['return_date']
    search_fields = ['return_number', 'sales_order__order_number', 'reason']
    inlines = [SalesReturnItemInline]
