from django.contrib import admin
from .models import Employee, EmployeeTask, Attendance


@admin.register(Employee)
class EmployeeAdmin(admin.ModelAdmin):
    list_display = ['full_name', 'store', 'role', 'status', 'phone', 'joining_date']
    list_filter = ['role', 'status', 'store']
    search_fields = ['full_name', 'email', 'phone']
    raw_id_fields = ['user']


@admin.register(EmployeeTask)
class EmployeeTaskAdmin(admin.ModelAdmin):
    list_display = ['title', 'employee', 'status', 'payment_status', 'payment_amount', 'amount_collected', 'due_date']
    list_filter = ['status', 'payment_status', 'store']
    search_fields = ['title', 'customer_name', 'customer_phone']
    readonly_fields = ['completed_at', 'sales_order', 'created_at', 'updated_at']


@admin.register(Attendance)
class AttendanceAdmin(admin.ModelAdmin):
    list_display = ['employee', 'date', 'status', 'check_in', 'check_out']
    list_filter = ['status', 'date']
    search_fields = ['employee__full_name']
