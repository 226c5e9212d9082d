import django_filters
from django.db.models import F, Q
from .models import Equipment, EquipmentCheckout


class EquipmentFilter(django_filters.FilterSet):
    """Filter for the equipment catalog using django-filter"""

    # Searches name, code, brand, model and tags
    search = django_filters.CharFilter(method='filter_search', label='Search')

    category = django_filters.ChoiceFilter(choices=Equipment.CATEGORY_CHOICES)
    checkout_status = django_filters.ChoiceFilter(choices=Equipment.CHECKOUT_STATUS_CHOICES)
    # Matches the date-derived maintenance status
    maintenance_status = django_filters.ChoiceFilter(
        choices=Equipment.MAINTENANCE_STATUS_CHOICES, method='filter_maintenance_status'
    )
    condition = django_filters.ChoiceFilter(choices=Equipment.CONDITION_CHOICES)
    department = django_filters.NumberFilter(field_name='department_id', lookup_expr='exact')
    available = django_filters.CharFilter(method='filter_available', label='Available')

    class Meta:
        model = Equipment
        fields = ['search', 'category', 'checkout_status', 'maintenance_status', 'condition',
                  'department', 'available']

    def filter_search(self, queryset, name, value):
        search = (value or '').strip()
        if not search:
            return queryset
        return queryset.filter(
            Q(name__icontains=search) |
            Q(equipment_code__icontains=search) |
            Q(brand__icontains=search) |
            Q(model__icontains=search) |
            Q(tags__icontains=search)
        )

    def filter_maintenance_status(self, queryset, name, value):
        return queryset.filter_maintenance_status(value)

    def filter_available(self, queryset, name, value):
        """Only items with at least one unit that can be requested"""
        if str(value).lower() not in ('true', '1', 'yes'):
            return queryset
        return queryset.filter(
            current_quantity_out__lt=F('available_quantity'),
        ).exclude(checkout_status__in=Equipment.UNAVAILABLE_STATUSES)


class CheckoutFilter(django_filters.FilterSet):
    """Filter for checkout history; `status` matches the effective (overdue-aware) status"""

    status = django_filters.ChoiceFilter(choices=EquipmentCheckout.STATUS_CHOICES, method='filter_status')
    requester = django_filters.NumberFilter(field_name='requester_id', lookup_expr='exact')
    equipment = django_filters.NumberFilter(method='filter_equipment', label='Equipment ID')
    department = django_filters.NumberFilter(field_name='department_id', lookup_expr='exact')
    start_date = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    end_date = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = EquipmentCheckout
        fields = ['status', 'requester', 'equipment', 'department', 'start_date', 'end_date']

    def filter_status(self, queryset, name, value):
        return queryset.filter_effective_status(value)

    def filter_equipment(self, queryset, name, value):
        return queryset.filter(items__equipment_id=value).distinct()
