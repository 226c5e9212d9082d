from django.db import IntegrityError, transaction
from rest_framework import serializers

from studiodesk.core.serializers import UserSummarySerializer
from .models import Equipment, EquipmentCheckout, CheckoutItem, CheckoutExtension, MaintenanceRecord


class EquipmentSerializer(serializers.ModelSerializer):
    actual_available_quantity = serializers.IntegerField(read_only=True)
    maintenance_status = serializers.SerializerMethodField()
    department_name = serializers.CharField(source='department.name', read_only=True)
    assigned_to = UserSummarySerializer(read_only=True)
    created_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = Equipment
        fields = ['id', 'name', 'category', 'description', 'specifications',
                  'studio_daily_rate', 'studio_hourly_rate', 'event_daily_rate', 'event_hourly_rate',
                  'rental_daily_rate', 'rental_hourly_rate', 'rental_weekly_rate', 'rental_monthly_rate',
                  'available_quantity', 'current_quantity_out', 'actual_available_quantity',
                  'checkout_status', 'condition', 'maintenance_status', 'next_maintenance_date',
                  'tags', 'usage_type', 'equipment_code', 'serial_number', 'brand', 'model',
                  'purchase_date', 'purchase_price', 'location', 'department', 'department_name',
                  'assigned_to', 'notes', 'is_active', 'created_by', 'created_at', 'updated_at']
        # Counters are maintained by the checkout workflow
        read_only_fields = ['current_quantity_out', 'is_active', 'created_at', 'updated_at']

    def get_maintenance_status(self, obj):
        annotated = getattr(obj, 'effective_maintenance_status', None)
        return annotated or obj.current_maintenance_status()

    def validate_tags(self, value):
        if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
            raise serializers.ValidationError('Tags must be a list of strings')
        return [tag.strip() for tag in value if tag.strip()]

    def validate_usage_type(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError('Usage type must be a list')
        invalid = [usage for usage in value if usage not in Equipment.USAGE_TYPES]
        if invalid:
            raise serializers.ValidationError(f"Invalid usage types: {', '.join(map(str, invalid))}")
        return list(dict.fromkeys(value))

    def validate_equipment_code(self, value):
        if not value:
            return None
        value = value.strip().upper()
        queryset = Equipment.objects.filter(equipment_code=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('Equipment code already exists')
        return value

    def validate_checkout_status(self, value):
        if value == 'checked_out':
            raise serializers.ValidationError('Checked out is set by the checkout workflow')
        return value

    def validate_available_quantity(self, value):
        if self.instance is not None:
            # Re-read the counter; the instance may be stale
            current_out = Equipment.objects.filter(pk=self.instance.pk).values_list(
                'current_quantity_out', flat=True
            ).first() or 0
            if value < current_out:
                raise serializers.ValidationError(
                    f"Cannot set available quantity below the {current_out} units currently checked out"
                )
        return value

    def create(self, validated_data):
        if 'usage_type' not in validated_data:
            validated_data['usage_type'] = list(Equipment.USAGE_TYPES)
        return super().create(validated_data)

    def update(self, instance, validated_data):
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        update_fields = list(validated_data.keys())
        try:
            with transaction.atomic():
                if 'checkout_status' in validated_data or 'available_quantity' in validated_data:
                    # Outside maintenance/damaged/retired the label follows the counters
                    locked = Equipment.objects.select_for_update().get(pk=instance.pk)
                    instance.current_quantity_out = locked.current_quantity_out
                    if instance.checkout_status not in Equipment.UNAVAILABLE_STATUSES:
                        instance.checkout_status = instance.settled_checkout_status()
                        update_fields.append('checkout_status')
                # Never write current_quantity_out from a possibly stale instance
                instance.save(update_fields=list(dict.fromkeys(update_fields + ['updated_at'])))
        except IntegrityError:
            raise serializers.ValidationError(
                {'available_quantity': 'Available quantity cannot be lower than the units checked out'}
            )
        instance.refresh_from_db(fields=['current_quantity_out'])
        return instance


class EquipmentSummarySerializer(serializers.ModelSerializer):
    actual_available_quantity = serializers.IntegerField(read_only=True)

    class Meta:
        model = Equipment
        fields = ['id', 'name', 'category', 'equipment_code', 'available_quantity',
                  'current_quantity_out', 'actual_available_quantity', 'checkout_status', 'condition']


class CheckoutItemSerializer(serializers.ModelSerializer):
    equipment = EquipmentSummarySerializer(read_only=True)

    class Meta:
        model = CheckoutItem
        fields = ['id', 'equipment', 'quantity', 'checkout_condition', 'return_condition',
                  'return_notes', 'damage_description']


class CheckoutExtensionSerializer(serializers.ModelSerializer):
    requested_by = UserSummarySerializer(read_only=True)
    decided_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = CheckoutExtension
        fields = ['id', 'requested_by', 'new_return_date', 'reason', 'status', 'decided_by',
                  'decided_at', 'decision_notes', 'created_at']


class EquipmentCheckoutSerializer(serializers.ModelSerializer):
    # Overdue is reported from the expected return date, whatever is stored
    status = serializers.CharField(source='effective_status', read_only=True)
    stored_status = serializers.CharField(source='status', read_only=True)
    is_overdue = serializers.BooleanField(read_only=True)
    days_overdue = serializers.IntegerField(read_only=True)
    duration_days = serializers.IntegerField(read_only=True)
    total_quantity = serializers.IntegerField(read_only=True)
    requester = UserSummarySerializer(read_only=True)
    approved_by = UserSummarySerializer(read_only=True)
    checked_out_by = UserSummarySerializer(read_only=True)
    returned_by = UserSummarySerializer(read_only=True)
    department_name = serializers.CharField(source='department.name', read_only=True)
    items = CheckoutItemSerializer(many=True, read_only=True)
    extensions = CheckoutExtensionSerializer(many=True, read_only=True)

    class Meta:
        model = EquipmentCheckout
        fields = ['id', 'checkout_number', 'status', 'stored_status', 'is_overdue', 'days_overdue',
                  'duration_days', 'total_quantity', 'requester', 'department', 'department_name',
                  'purpose', 'project', 'location', 'expected_return_date', 'request_notes',
                  'approved_by', 'approved_at', 'approval_notes', 'checked_out_by', 'checked_out_at',
                  'returned_by', 'returned_at', 'return_notes', 'cancelled_at', 'cancellation_notes',
                  'reminders_sent', 'last_reminder_at', 'items', 'extensions', 'created_at', 'updated_at']


# --- Request payloads ---

class CheckoutLineSerializer(serializers.Serializer):
    equipment = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1, default=1)
    condition = serializers.ChoiceField(choices=Equipment.CONDITION_CHOICES, required=False, allow_blank=True)


class CheckoutRequestSerializer(serializers.Serializer):
    items = CheckoutLineSerializer(many=True, allow_empty=False)
    purpose = serializers.CharField(max_length=500)
    expected_return_date = serializers.DateTimeField()
    project = serializers.CharField(max_length=200, required=False, allow_blank=True)
    location = serializers.CharField(max_length=200, required=False, allow_blank=True)
    department = serializers.IntegerField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class CheckoutApprovalSerializer(serializers.Serializer):
    approved = serializers.BooleanField()
    notes = serializers.CharField(required=False, allow_blank=True)
    handoff = serializers.BooleanField(required=False, default=False)


class ReturnLineSerializer(serializers.Serializer):
    equipment = serializers.IntegerField()
    condition = serializers.ChoiceField(choices=Equipment.CONDITION_CHOICES, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    damage_description = serializers.CharField(required=False, allow_blank=True)


class CheckoutReturnSerializer(serializers.Serializer):
    items = ReturnLineSerializer(many=True, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class CheckoutCancelSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True)


class ExtensionRequestSerializer(serializers.Serializer):
    new_return_date = serializers.DateTimeField()
    reason = serializers.CharField(required=False, allow_blank=True)


class ExtensionDecisionSerializer(serializers.Serializer):
    approved = serializers.BooleanField()
    notes = serializers.CharField(required=False, allow_blank=True)


class MaintenanceRecordSerializer(serializers.ModelSerializer):
    performed_by = UserSummarySerializer(read_only=True)
    equipment_name = serializers.CharField(source='equipment.name', read_only=True)

    class Meta:
        model = MaintenanceRecord
        fields = ['id', 'equipment', 'equipment_name', 'maintenance_type', 'description', 'cost',
                  'performed_date', 'next_maintenance_date', 'status', 'notes', 'performed_by', 'created_at']
        read_only_fields = ['equipment', 'created_at']

    def validate(self, attrs):
        performed = attrs.get('performed_date')
        next_date = attrs.get('next_maintenance_date')
        if performed and next_date and next_date < performed:
            raise serializers.ValidationError(
                {'next_maintenance_date': 'Next maintenance date cannot be before the performed date'}
            )
        return attrs
