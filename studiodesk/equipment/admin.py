from django.contrib import admin
from .models import Equipment, EquipmentCheckout, CheckoutItem, CheckoutExtension, MaintenanceRecord


@admin.register(Equipment)
class EquipmentAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'equipment_code', 'available_quantity', 'current_quantity_out',
                    'checkout_status', 'maintenance_status', 'is_active']
    list_filter = ['category', 'checkout_status', 'maintenance_status', 'condition', 'is_active']
    search_fields = ['name', 'equipment_code', 'brand', 'model', 'serial_number']
    # Counters change only through the checkout workflow
    readonly_fields = ['current_quantity_out', 'maintenance_status', 'created_at', 'updated_at']


class CheckoutItemInline(admin.TabularInline):
    model = CheckoutItem
    extra = 0
    readonly_fields = ['equipment', 'quantity', 'checkout_condition', 'return_condition']


class CheckoutExtensionInline(admin.TabularInline):
    model = CheckoutExtension
    extra = 0
    fk_name = 'checkout'
    readonly_fields = ['requested_by', 'new_return_date', 'status', 'decided_by', 'decided_at']


@admin.register(EquipmentCheckout)
class EquipmentCheckoutAdmin(admin.ModelAdmin):
    list_display = ['checkout_number', 'requester', 'status', 'expected_return_date', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['checkout_number', 'requester__username', 'purpose']
    readonly_fields = ['checkout_number', 'status', 'created_at', 'updated_at']
    inlines = [CheckoutItemInline, CheckoutExtensionInline]


@admin.register(MaintenanceRecord)
class MaintenanceRecordAdmin(admin.ModelAdmin):
    list_display = ['equipment', 'maintenance_type', 'status', 'performed_date', 'next_maintenance_date', 'cost']
    list_filter = ['maintenance_type', 'status', 'performed_date']
    search_fields = ['equipment__name', 'description']

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
