from django.contrib import admin
from .models import Deal, Booking


@admin.register(Deal)
class DealAdmin(admin.ModelAdmin):
    list_display = ['title', 'contact', 'value', 'stage', 'position', 'owner', 'expected_close_date']
    list_filter = ['stage']
    search_fields = ['title', 'contact__name', 'contact__company']
    ordering = ['stage', 'position']


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ['customer_name', 'customer_phone', 'service_type', 'store', 'preferred_date', 'status']
    list_filter = ['status', 'store', 'preferred_date']
    search_fields = ['customer_name', 'customer_phone', 'service_type']
