from rest_framework import serializers
from erp.staff.models import Employee
from .models import Deal, Booking


class DealSerializer(serializers.ModelSerializer):
    contact_name = serializers.CharField(source='contact.name', read_only=True)
    contact_company = serializers.CharField(source='contact.company', read_only=True)
    owner_username = serializers.CharField(source='owner.username', read_only=True)

    class Meta:
        model = Deal
        fields = [
            'id', 'title', 'contact', 'contact_name', 'contact_company', 'value', 'stage', 'position',
            'expected_close_date', 'notes', 'owner', 'owner_username', 'created_at', 'updated_at'
        ]
        read_only_fields = ['position']

    def validate_value(self, value):
        if value < 0:
            raise serializers.ValidationError('Deal value cannot be negative')
        return value

    def validate_stage(self, value):
        if self.instance is not None and value != self.instance.stage:
            raise serializers.ValidationError('Use the move action to change a deal\'s stage')
        return value


class DealMoveSerializer(serializers.Serializer):
    stage = serializers.ChoiceField(choices=Deal.STAGE_CHOICES)
    position = serializers.IntegerField(min_value=0)


class BookingSerializer(serializers.ModelSerializer):
    store_name = serializers.CharField(source='store.name', read_only=True)

    class Meta:
        model = Booking
        fields = [
            'id', 'customer_name', 'customer_phone', 'service_type', 'store', 'store_name',
            'preferred_date', 'preferred_time', 'address', 'notes', 'status', 'task',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['task']


class BookingConvertSerializer(serializers.Serializer):
    employee = serializers.PrimaryKeyRelatedField(queryset=Employee.objects.all(), required=False, allow_null=True)
    payment_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)
    due_date = serializers.DateField(required=False, allow_null=True)
