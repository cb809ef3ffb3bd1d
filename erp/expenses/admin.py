from django.contrib import admin
from .models import ExpenseCategory, Expense


@admin.register(ExpenseCategory)
class ExpenseCategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'description']
    search_fields = ['name']


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    list_display = ['reference_number', 'category', 'amount', 'expense_date', 'payment_method', 'store']
    list_filter = ['category', 'payment_method', 'expense_date']
    search_fields = ['reference_number', 'description']
    ordering = ['-expense_date']
