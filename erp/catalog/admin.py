from django.contrib import admin
from .models import Category, SubCategory, Brand, Unit, TaxRate, Product


class SubCategoryInline(admin.TabularInline):
    model = SubCategory
    extra = 0


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'is_active', 'created_at']
    list_filter = ['is_active', 'created_at']
    search_fields = ['name']
    ordering = ['name']
    inlines = [SubCategoryInline]


@admin.register(SubCategory)
class SubCategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'is_active', 'created_at']
    list_filter = ['is_active', 'category']
    search_fields = ['name', 'category__name']
    ordering = ['category__name', 'name']


@admin.register(Brand)
class BrandAdmin(admin.ModelAdmin):
    list_display = ['name', 'is_active', 'created_at']
    list_filter = ['is_active', 'created_at']
    search_fields = ['name']
    ordering = ['name']


@admin.register(Unit)
class UnitAdmin(admin.ModelAdmin):
    list_display = ['name', 'short_name', 'allow_decimal']
    search_fields = ['name', 'short_name']
    ordering = ['name']


@admin.register(TaxRate)
class TaxRateAdmin(admin.ModelAdmin):
    list_display = ['name', 'percentage', 'is_active', 'created_at']
    list_filter = ['is_active', 'created_at']
    search_fields = ['name']
    ordering = ['percentage']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'sku', 'item_type', 'category', 'brand', 'sale_price', 'current_stock',
                    'alert_quantity', 'is_active', 'created_at']
    list_filter = ['is_active', 'item_type', 'category', 'brand', 'created_at']
    search_fields = ['name', 'sku', 'hsn_code', 'description']
    ordering = ['name']
    readonly_fields = ['created_at', 'updated_at']
