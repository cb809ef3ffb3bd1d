from django.contrib import admin
from .models import PurchaseOrder, PurchaseItem, PurchaseReturn, PurchaseReturnItem


class PurchaseItemInline(admin.TabularInline):
    model = PurchaseItem
    extra = 0
    fields = ['product', 'quantity', 'unit_price', 'tax_rate', 'tax_amount', 'subtotal']
    readonly_fields = ['tax_amount', 'subtotal']
    raw_id_fields = ['product']


@admin.register(PurchaseOrder)
class PurchaseOrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'supplier', 'order_date', 'bill_number', 'status', 'get_total', 'created_by', 'created_at']
    list_filter = ['status', 'order_date', 'created_at']
    search_fields = ['order_number', 'bill_number', 'supplier__name', 'notes']
    ordering = ['-order_date', '-created_at']
    inlines = [PurchaseItemInline]
    readonly_fields = ['subtotal', 'tax_amount', 'total_amount', 'received_at', 'created_at', 'updated_at']

    def get_total(self, obj):
        return f"₹{obj.total_amount:.2f}"
    get_total.short_description = 'Total'


class PurchaseReturnItemInline(admin.TabularInline):
    model = PurchaseReturnItem
    extra = 0
    readonly_fields = ['subtotal']
    raw_id_fields = ['product']


@admin.register(PurchaseReturn)
class PurchaseReturnAdmin(admin.ModelAdmin):
    list_display = ['return_number', 'supplier', 'purchase_order', 'return_date', 'total_amount', 'created_at']
    list_filter = ['return_date']
    search_fields = ['return_number', 'supplier__name', 'reason']
    inlines = [PurchaseReturnItemInline]
