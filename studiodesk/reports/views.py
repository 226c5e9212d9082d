import logging
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Sum, Count, Q, F
from django.db.models.functions import TruncDate
from django.utils import timezone
from datetime import datetime, timedelta
from decimal import Decimal

from studiodesk.core.cache_utils import (
    get_cached, set_cached, DASHBOARD_PREFIX, REPORTS_PREFIX, DASHBOARD_CACHE_TTL, REPORTS_CACHE_TTL
)
from studiodesk.core.permissions import CanViewReports
from studiodesk.equipment.models import Equipment, EquipmentCheckout, CheckoutItem, MaintenanceRecord
from studiodesk.notifications.models import Notification

logger = logging.getLogger('studiodesk.reports')

MAINTENANCE_STATUSES = [choice for choice, _ in Equipment.MAINTENANCE_STATUS_CHOICES]


def _parse_date(value, field):
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except (TypeError, ValueError):
        raise ValidationError({field: 'Date must be in YYYY-MM-DD format'})


def _date_range(request, from_param='date_from', to_param='date_to', default_days=30):
    """Parse a date range from query params, defaulting to the last `default_days` days"""
    date_from = request.query_params.get(from_param)
    date_to = request.query_params.get(to_param)

    if not date_from:
        date_from = (timezone.now() - timedelta(days=default_days)).date()
    else:
        date_from = _parse_date(date_from, from_param)

    if not date_to:
        date_to = timezone.now().date()
    else:
        date_to = _parse_date(date_to, to_param)

    if date_from > date_to:
        raise ValidationError({from_param: f"{from_param} must be on or before {to_param}"})
    return date_from, date_to


@api_view(['GET'])
@permission_classes([IsAuthenticated, CanViewReports])
def dashboard(request):
    """Equipment and checkout summary cards"""
    now = timezone.now()
    # Maintenance labels are date based, so the equipment cards are cached per day
    data, cache_key = get_cached(DASHBOARD_PREFIX, timezone.localdate())
    if data is None:
        data = _equipment_cards(now)
        set_cached(cache_key, data, DASHBOARD_CACHE_TTL)

    # Overdue moves with the clock; checkout counts are never served from cache
    checkouts = EquipmentCheckout.objects.all()
    return Response({
        **data,
        'checkouts': {
            'pending': checkouts.filter(status='pending_approval').count(),
            'approved': checkouts.filter(status='approved').count(),
            'active': checkouts.active().count(),
            'overdue': checkouts.overdue(now).count(),
        },
        'unread_notifications': Notification.objects.filter(recipient=request.user, read=False).count(),
    })


def _equipment_cards(now):
    equipment = Equipment.objects.filter(is_active=True)
    totals = equipment.aggregate(
        items=Count('id'),
        units_owned=Sum('available_quantity'),
        units_out=Sum('current_quantity_out'),
    )
    units_owned = totals['units_owned'] or 0
    units_out = totals['units_out'] or 0

    by_checkout_status = {choice: 0 for choice, _ in Equipment.CHECKOUT_STATUS_CHOICES}
    for row in equipment.values('checkout_status').annotate(count=Count('id')):
        by_checkout_status[row['checkout_status']] = row['count']

    by_maintenance_status = {choice: 0 for choice in MAINTENANCE_STATUSES}
    for row in equipment.with_effective_maintenance().values(
        'effective_maintenance_status'
    ).annotate(count=Count('id')):
        by_maintenance_status[row['effective_maintenance_status']] = row['count']

    return {
        'equipment': {
            'total_items': totals['items'] or 0,
            'units_owned': units_owned,
            'units_out': units_out,
            'units_available': units_owned - units_out,
            'by_checkout_status': by_checkout_status,
            'by_maintenance_status': by_maintenance_status,
        },
        'generated_at': now.isoformat(),
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated, CanViewReports])
def maintenance_report(request):
    """Maintenance statistics, items needing attention and recent maintenance"""
    start_date = request.query_params.get('start_date')
    end_date = request.query_params.get('end_date')
    status_filter = request.query_params.get('status')
    type_filter = request.query_params.get('type')

    cached_data, cache_key = get_cached(
        REPORTS_PREFIX, 'maintenance', timezone.localdate(), start_date, end_date, status_filter, type_filter
    )
    if cached_data is not None:
        return Response(cached_data)

    equipment = Equipment.objects.filter(is_active=True).with_effective_maintenance()
    counts = equipment.aggregate(
        total=Count('id'),
        **{status: Count('id', filter=Q(effective_maintenance_status=status)) for status in MAINTENANCE_STATUSES}
    )

    needing = equipment.filter(
        effective_maintenance_status__in=['due_soon', 'overdue', 'in_maintenance']
    ).order_by(F('next_maintenance_date').asc(nulls_last=True), 'name')

    records = MaintenanceRecord.objects.select_related('equipment', 'performed_by')
    if start_date:
        records = records.filter(performed_date__gte=_parse_date(start_date, 'start_date'))
    if end_date:
        records = records.filter(performed_date__lte=_parse_date(end_date, 'end_date'))
    if status_filter:
        records = records.filter(status=status_filter)
    if type_filter:
        records = records.filter(maintenance_type=type_filter)

    total_cost = records.aggregate(total=Sum('cost'))['total'] or Decimal('0.00')

    data = {
        'statistics': {
            'total': counts['total'] or 0,
            'up_to_date': counts['up_to_date'],
            'due_soon': counts['due_soon'],
            'overdue': counts['overdue'],
            'in_maintenance': counts['in_maintenance'],
        },
        'needing_maintenance': [
            {
                'id': item.id,
                'name': item.name,
                'category': item.category,
                'maintenance_status': item.effective_maintenance_status,
                'next_maintenance_date': item.next_maintenance_date.isoformat() if item.next_maintenance_date else None,
                'checkout_status': item.checkout_status,
            }
            for item in needing
        ],
        'recent_maintenance': [
            {
                'id': record.id,
                'equipment': record.equipment_id,
                'equipment_name': record.equipment.name,
                'maintenance_type': record.maintenance_type,
                'status': record.status,
                'description': record.description,
                'cost': float(record.cost),
                'performed_date': record.performed_date.isoformat(),
                'next_maintenance_date': record.next_maintenance_date.isoformat() if record.next_maintenance_date else None,
                'performed_by': record.performed_by.display_name if record.performed_by else None,
            }
            for record in records.order_by('-performed_date', '-id')[:50]
        ],
        'total_cost': float(total_cost),
    }

    set_cached(cache_key, data, REPORTS_CACHE_TTL)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, CanViewReports])
def equipment_utilization(request):
    """Per item checkout counts and utilization over a period"""
    date_from, date_to = _date_range(request)
    category = request.query_params.get('category')

    cached_data, cache_key = get_cached(REPORTS_PREFIX, 'utilization', date_from, date_to, category)
    if cached_data is not None:
        return Response(cached_data)

    # Lines handed off within the period
    usage = CheckoutItem.objects.filter(
        checkout__checked_out_at__date__gte=date_from,
        checkout__checked_out_at__date__lte=date_to,
    ).values('equipment_id').annotate(
        checkout_count=Count('checkout', distinct=True),
        units_checked_out=Sum('quantity'),
    )
    usage_by_equipment = {row['equipment_id']: row for row in usage}

    equipment = Equipment.objects.filter(is_active=True)
    if category:
        equipment = equipment.filter(category=category)

    items = []
    for item in equipment.order_by('name'):
        row = usage_by_equipment.get(item.id, {})
        items.append({
            'id': item.id,
            'name': item.name,
            'category': item.category,
            'available_quantity': item.available_quantity,
            'current_quantity_out': item.current_quantity_out,
            'actual_available_quantity': item.actual_available_quantity,
            'checkout_count': row.get('checkout_count', 0),
            'units_checked_out': row.get('units_checked_out') or 0,
            'utilization_rate': round(item.current_quantity_out / item.available_quantity, 4)
            if item.available_quantity else 0.0,
        })
    items.sort(key=lambda entry: (-entry['checkout_count'], entry['name']))

    data = {
        'period': {
            'from': date_from.isoformat(),
            'to': date_to.isoformat(),
        },
        'items': items,
    }
    set_cached(cache_key, data, REPORTS_CACHE_TTL)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, CanViewReports])
def checkout_summary(request):
    """Checkout counts by effective status, daily breakdown and top requesters"""
    date_from, date_to = _date_range(request)
    checkouts = EquipmentCheckout.objects.filter(
        created_at__date__gte=date_from,
        created_at__date__lte=date_to,
    )

    data, cache_key = get_cached(REPORTS_PREFIX, 'checkouts', date_from, date_to)
    if data is None:
        data = _checkout_breakdown(checkouts, date_from, date_to)
        set_cached(cache_key, data, REPORTS_CACHE_TTL)

    # Overdue moves with the clock; status counts are never served from cache
    by_status = {choice: 0 for choice, _ in EquipmentCheckout.STATUS_CHOICES}
    for row in checkouts.with_effective_status().values('effective_status').annotate(count=Count('id')):
        by_status[row['effective_status']] = row['count']

    return Response({**data, 'summary': {**data['summary'], 'by_status': by_status}})


def _checkout_breakdown(checkouts, date_from, date_to):
    daily = checkouts.annotate(
        date=TruncDate('created_at')
    ).values('date').annotate(
        count=Count('id')
    ).order_by('date')

    top_requesters = checkouts.values(
        'requester_id', 'requester__username', 'requester__first_name', 'requester__last_name'
    ).annotate(
        count=Count('id')
    ).order_by('-count', 'requester__username')[:10]

    return {
        'period': {
            'from': date_from.isoformat(),
            'to': date_to.isoformat(),
        },
        'summary': {
            'total_checkouts': checkouts.count(),
            'units_requested': CheckoutItem.objects.filter(checkout__in=checkouts).aggregate(
                total=Sum('quantity')
            )['total'] or 0,
        },
        'daily_breakdown': [
            {'date': row['date'].isoformat(), 'count': row['count']} for row in daily
        ],
        'top_requesters': [
            {
                'id': row['requester_id'],
                'username': row['requester__username'],
                'name': f"{row['requester__first_name']} {row['requester__last_name']}".strip()
                or row['requester__username'],
                'count': row['count'],
            }
            for row in top_requesters
        ],
    }
