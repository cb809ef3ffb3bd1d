from rest_framework import serializers
from .models import Store


class StoreSerializer(serializers.ModelSerializer):
    employee_count = serializers.SerializerMethodField()

    class Meta:
        model = Store
        fields = ['id', 'name', 'domain', 'description', 'address', 'phone', 'email', 'website',
                  'logo_url', 'gstin', 'currency', 'is_active', 'onboarding_completed',
                  'employee_count', 'created_at', 'updated_at']
        read_only_fields = ['onboarding_completed', 'created_at', 'updated_at']

    def get_employee_count(self, obj):
        return obj.employees.count()

    def validate_domain(self, value):
        value = (value or '').strip().lower()
        return value or None

    def validate_gstin(self, value):
        value = (value or '').strip().upper()
        if value and len(value) != 15:
            raise serializers.ValidationError('GSTIN must be 15 characters')
        return value
