from decimal import Decimal
from rest_framework import serializers
from .models import Employee, EmployeeTask, Attendance


class EmployeeSerializer(serializers.ModelSerializer):
    store_name = serializers.CharField(source='store.name', read_only=True)
    username = serializers.CharField(source='user.username', read_only=True)

    class Meta:
        model = Employee
        fields = [
            'id', 'user', 'username', 'store', 'store_name', 'role', 'full_name', 'email', 'phone',
            'address', 'joining_date', 'status', 'shift_start', 'salary', 'created_at', 'updated_at'
        ]

    def validate_user(self, value):
        if value is None:
            return value
        queryset = Employee.objects.filter(user=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('This user is already linked to another employee')
        return value

    def validate_salary(self, value):
        if value is not None and value < 0:
            raise serializers.ValidationError('Salary cannot be negative')
        return value


class EmployeeTaskSerializer(serializers.ModelSerializer):
    employee_name = serializers.CharField(source='employee.full_name', read_only=True)
    service_name = serializers.CharField(source='service.name', read_only=True)
    invoice_number = serializers.CharField(source='sales_order.order_number', read_only=True)

    class Meta:
        model = EmployeeTask
        fields = [
            'id', 'employee', 'employee_name', 'store', 'title', 'description',
            'customer_name', 'customer_phone', 'customer_address', 'status', 'payment_status',
            'payment_amount', 'amount_collected', 'payment_mode', 'service', 'service_name',
            'sales_order', 'invoice_number', 'due_date', 'completed_at', 'created_by', 'created_at', 'updated_at'
        ]
        read_only_fields = ['status', 'payment_status', 'amount_collected', 'payment_mode', 'sales_order',
                            'completed_at', 'created_by']

    def validate_payment_amount(self, value):
        if value is not None and value < 0:
            raise serializers.ValidationError('Payment amount cannot be negative')
        return value

    def validate_service(self, value):
        if value is not None and not value.is_service:
            raise serializers.ValidationError(f"{value.name} is not a service")
        return value

    def validate(self, attrs):
        if self.instance is not None and self.instance.status in ('completed', 'cancelled'):
            raise serializers.ValidationError(f"A {self.instance.status} task cannot be edited")
        return attrs


class TaskStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=EmployeeTask.STATUS_CHOICES)


class TaskCompleteSerializer(serializers.Serializer):
    amount_collected = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'),
                                                required=False, default=Decimal('0.00'))
    payment_mode = serializers.ChoiceField(choices=EmployeeTask.PAYMENT_MODE_CHOICES, required=False, default='cash')


class AttendanceSerializer(serializers.ModelSerializer):
    employee_name = serializers.CharField(source='employee.full_name', read_only=True)
    hours_worked = serializers.FloatField(read_only=True)

    class Meta:
        model = Attendance
        fields = [
            'id', 'employee', 'employee_name', 'date', 'check_in', 'check_out', 'status',
            'location_check_in', 'notes', 'hours_worked', 'created_at', 'updated_at'
        ]

    def validate(self, attrs):
        check_in = attrs.get('check_in', getattr(self.instance, 'check_in', None))
        check_out = attrs.get('check_out', getattr(self.instance, 'check_out', None))
        if check_in and check_out and check_out < check_in:
            raise serializers.ValidationError({'check_out': 'Check-out cannot be before check-in'})
        return attrs


class CheckInSerializer(serializers.Serializer):
    employee = serializers.PrimaryKeyRelatedField(queryset=Employee.objects.all(), required=False)
    location = serializers.JSONField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
