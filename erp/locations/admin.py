from django.contrib import admin
from .models import Store


@admin.register(Store)
class StoreAdmin(admin.ModelAdmin):
    list_display = ['name', 'domain', 'phone', 'email', 'currency', 'is_active', 'onboarding_completed', 'created_at']
    list_filter = ['is_active', 'onboarding_completed', 'currency', 'created_at']
    search_fields = ['name', 'domain', 'email', 'gstin']
    ordering = ['name']
