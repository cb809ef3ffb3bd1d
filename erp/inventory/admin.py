from django.contrib import admin
from .models import StockAdjustment, StockAdjustmentItem


class StockAdjustmentItemInline(admin.TabularInline):
    model = StockAdjustmentItem
    extra = 0
    raw_id_fields = ['product']


@admin.register(StockAdjustment)
class StockAdjustmentAdmin(admin.ModelAdmin):
    list_display = ['reference_number', 'adjustment_date', 'reason', 'created_by', 'created_at']
    list_filter = ['reason', 'adjustment_date']
    search_fields = ['reference_number', 'notes']
    ordering = ['-adjustment_date']
    inlines = [StockAdjustmentItemInline]
