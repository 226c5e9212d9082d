"""
Maintenance status derivation
The status label is a function of the latest maintenance record and today's date.
"""
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

UP_TO_DATE = 'up_to_date'
DUE_SOON = 'due_soon'
OVERDUE = 'overdue'
IN_MAINTENANCE = 'in_maintenance'

DEFAULT_DUE_SOON_DAYS = 7


def get_due_soon_days():
    return int(getattr(settings, 'MAINTENANCE_DUE_SOON_DAYS', DEFAULT_DUE_SOON_DAYS))


def status_for_date(next_date, today, lookahead_days):
    """Date-based label for a next maintenance date"""
    if next_date is None:
        return UP_TO_DATE
    if next_date < today:
        return OVERDUE
    if next_date <= today + timedelta(days=lookahead_days):
        return DUE_SOON
    return UP_TO_DATE


def derive_maintenance_status(latest_record, today, lookahead_days, fallback_date=None):
    """
    Compute the maintenance status label.

    Args:
        latest_record: most recent MaintenanceRecord (or anything with `status`
            and `next_maintenance_date`), or None when there is no history
        today: date to compare against
        lookahead_days: width of the due-soon window in days
        fallback_date: next maintenance date to use when there is no record

    Returns:
        (status, next_maintenance_date)
    """
    if latest_record is None:
        return status_for_date(fallback_date, today, lookahead_days), fallback_date

    next_date = latest_record.next_maintenance_date
    if latest_record.status == 'in_progress':
        return IN_MAINTENANCE, next_date
    return status_for_date(next_date, today, lookahead_days), next_date


def latest_record_for(equipment):
    return equipment.maintenance_records.order_by('-performed_date', '-id').first()


def compute_equipment_maintenance(equipment, today=None, lookahead_days=None):
    """Status and next date for an equipment item from its stored history"""
    today = today or timezone.localdate()
    if lookahead_days is None:
        lookahead_days = get_due_soon_days()
    return derive_maintenance_status(
        latest_record_for(equipment),
        today,
        lookahead_days,
        fallback_date=equipment.next_maintenance_date,
    )
