from django.contrib import admin
from .models import Contact


@admin.register(Contact)
class ContactAdmin(admin.ModelAdmin):
    list_display = ['name', 'role', 'phone', 'email', 'company', 'state', 'gstin', 'is_active', 'created_at']
    list_filter = ['role', 'is_active', 'state', 'created_at']
    search_fields = ['name', 'phone', 'email', 'company', 'gstin']
    ordering = ['name']
