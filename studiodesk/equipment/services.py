"""
Equipment checkout workflow and maintenance log

Unit accounting is done with guarded single-statement updates on the
equipment row, so the number of units out can never exceed the number owned
even when two approvals race.
"""
import logging
from collections import OrderedDict
from datetime import timedelta

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from studiodesk.core.cache_utils import invalidate_report_caches
from studiodesk.core.permissions import CHECKOUT_APPROVER_ROLES, can_approve_checkouts
from studiodesk.notifications.services import get_notification_service
from .maintenance import compute_equipment_maintenance, OVERDUE
from .models import Equipment, EquipmentCheckout, CheckoutItem, CheckoutExtension, MaintenanceRecord

logger = logging.getLogger(__name__)

# Equipment statuses under which units may be reserved
RESERVABLE_STATUSES = ('available', 'checked_out')


# --- Unit accounting ---

def reserve_units(equipment_id, quantity):
    """
    Atomically add `quantity` to the units out of an equipment item.
    Returns False (and changes nothing) when fewer than `quantity` units are free.
    """
    now = timezone.now()
    updated = Equipment.objects.filter(
        pk=equipment_id,
        is_active=True,
        checkout_status__in=RESERVABLE_STATUSES,
        current_quantity_out__lte=F('available_quantity') - quantity,
    ).update(current_quantity_out=F('current_quantity_out') + quantity, updated_at=now)
    if not updated:
        return False

    # Fully allocated items flip to checked_out
    Equipment.objects.filter(
        pk=equipment_id,
        checkout_status='available',
        current_quantity_out__gte=F('available_quantity'),
    ).update(checkout_status='checked_out', updated_at=now)
    return True


def release_units(equipment_id, quantity):
    """Atomically take `quantity` back from the units out, never going below zero"""
    now = timezone.now()
    updated = Equipment.objects.filter(
        pk=equipment_id,
        current_quantity_out__gte=quantity,
    ).update(current_quantity_out=F('current_quantity_out') - quantity, updated_at=now)
    if not updated:
        logger.warning(
            f"Releasing {quantity} units of equipment {equipment_id} exceeds units out, clamping to 0"
        )
        Equipment.objects.filter(pk=equipment_id).update(current_quantity_out=0, updated_at=now)


def _reopen_if_units_free(equipment_id):
    Equipment.objects.filter(
        pk=equipment_id,
        checkout_status='checked_out',
        current_quantity_out__lt=F('available_quantity'),
    ).update(checkout_status='available', updated_at=timezone.now())


def status_after_return(equipment, condition):
    """Checkout status for an item after units come back in `condition`"""
    if condition == 'damaged':
        return 'damaged'
    if condition == 'poor':
        return 'maintenance'
    if equipment.checkout_status in Equipment.UNAVAILABLE_STATUSES:
        # Held for maintenance/damage by someone else; leave it
        return equipment.checkout_status
    return equipment.settled_checkout_status()


def _describe_items(checkout):
    return ', '.join(f"{item.equipment.name} x{item.quantity}" for item in checkout.items.all())


def _merge_lines(items):
    """Merge duplicate equipment lines, summing quantities"""
    merged = OrderedDict()
    for line in items:
        equipment_id = line.get('equipment')
        if hasattr(equipment_id, 'pk'):
            equipment_id = equipment_id.pk
        quantity = int(line.get('quantity', 1))
        if equipment_id in merged:
            merged[equipment_id]['quantity'] += quantity
        else:
            merged[equipment_id] = {
                'equipment': equipment_id,
                'quantity': quantity,
                'condition': line.get('condition', ''),
            }
    return list(merged.values())


class CheckoutService:
    """Checkout lifecycle: request, approve/reject, hand off, cancel, return, extend"""

    def __init__(self, notifications=None):
        self.notifications = notifications or get_notification_service()

    def _get_locked(self, checkout_id):
        try:
            return EquipmentCheckout.objects.select_for_update().get(pk=checkout_id)
        except EquipmentCheckout.DoesNotExist:
            raise NotFound('Checkout not found')

    def _require_status(self, checkout, allowed, action):
        if checkout.status not in allowed:
            raise ValidationError({
                'detail': f"Cannot {action} a checkout that is {checkout.status.replace('_', ' ')}",
                'status': checkout.status,
            })

    def _notify_requester(self, checkout, title, message, notification_type='equipment_checkout', priority='medium'):
        self.notifications.create_notification(
            recipient=checkout.requester,
            notification_type=notification_type,
            title=title,
            message=message,
            priority=priority,
            related_model='EquipmentCheckout',
            related_id=checkout.id,
            metadata={'checkout_number': checkout.checkout_number, 'status': checkout.status},
        )

    def _notify_approvers(self, checkout, title, message, exclude=None):
        self.notifications.notify_roles(
            CHECKOUT_APPROVER_ROLES,
            exclude=exclude,
            notification_type='equipment_checkout',
            title=title,
            message=message,
            priority='medium',
            related_model='EquipmentCheckout',
            related_id=checkout.id,
            metadata={'checkout_number': checkout.checkout_number, 'status': checkout.status},
        )

    # --- Request ---

    def check_availability(self, lines):
        """
        Validate merged lines against current stock.
        Returns (equipment_by_id, unavailable) where unavailable lists every failing line.
        """
        equipment_by_id = Equipment.objects.in_bulk([line['equipment'] for line in lines])
        unavailable = []
        for line in lines:
            equipment = equipment_by_id.get(line['equipment'])
            if equipment is None or not equipment.is_active:
                unavailable.append({
                    'equipment': line['equipment'],
                    'name': equipment.name if equipment else None,
                    'requested': line['quantity'],
                    'available': 0,
                    'reason': 'Equipment not found',
                })
            elif equipment.checkout_status in Equipment.UNAVAILABLE_STATUSES:
                unavailable.append({
                    'equipment': equipment.id,
                    'name': equipment.name,
                    'requested': line['quantity'],
                    'available': 0,
                    'reason': f"Equipment is {equipment.checkout_status}",
                })
            elif line['quantity'] > equipment.actual_available_quantity:
                unavailable.append({
                    'equipment': equipment.id,
                    'name': equipment.name,
                    'requested': line['quantity'],
                    'available': equipment.actual_available_quantity,
                    'reason': f"Only {equipment.actual_available_quantity} available",
                })
        return equipment_by_id, unavailable

    def request_checkout(self, requester, items, purpose, expected_return_date, department=None,
                         project='', location='', request_notes=''):
        errors = {}
        if not items:
            errors['items'] = 'At least one equipment item is required'
        if not purpose:
            errors['purpose'] = 'Purpose is required'
        if not expected_return_date:
            errors['expected_return_date'] = 'Expected return date is required'
        elif expected_return_date < timezone.now():
            errors['expected_return_date'] = 'Expected return date cannot be in the past'
        if errors:
            raise ValidationError(errors)

        lines = _merge_lines(items)
        if any(line['quantity'] < 1 for line in lines):
            raise ValidationError({'items': 'Quantity must be at least 1'})

        equipment_by_id, unavailable = self.check_availability(lines)
        if unavailable:
            raise ValidationError({
                'detail': 'Some requested equipment is not available',
                'unavailable': unavailable,
            })

        with transaction.atomic():
            checkout = EquipmentCheckout.objects.create(
                requester=requester,
                department=department or requester.department,
                purpose=purpose,
                project=project or '',
                location=location or '',
                expected_return_date=expected_return_date,
                request_notes=request_notes or '',
            )
            CheckoutItem.objects.bulk_create([
                CheckoutItem(
                    checkout=checkout,
                    equipment=equipment_by_id[line['equipment']],
                    quantity=line['quantity'],
                    checkout_condition=line['condition'] or '',
                )
                for line in lines
            ])

            self._notify_approvers(
                checkout,
                title='Equipment checkout requested',
                message=f"{requester.display_name} requested {_describe_items(checkout)} for {purpose}",
                exclude=requester,
            )

        logger.info(f"Checkout {checkout.checkout_number} requested by user {requester.id}")
        return checkout

    # --- Approval ---

    def approve_checkout(self, checkout_id, approver, approved=True, notes='', handoff=False):
        """
        Approve or reject a pending checkout.
        Approval reserves every line inside one transaction; if any line cannot be
        reserved, nothing is reserved and the checkout stays pending.
        """
        with transaction.atomic():
            checkout = self._get_locked(checkout_id)
            self._require_status(checkout, ('pending_approval',), 'approve' if approved else 'reject')

            now = timezone.now()
            checkout.approved_by = approver
            checkout.approved_at = now
            checkout.approval_notes = notes or ''

            if not approved:
                checkout.status = 'cancelled'
                checkout.save()
                self._notify_requester(
                    checkout,
                    title='Equipment checkout rejected',
                    message=f"Your checkout {checkout.checkout_number} was rejected. {notes or ''}".strip(),
                )
                logger.info(f"Checkout {checkout.checkout_number} rejected by user {approver.id}")
                return checkout

            # Lock rows in a stable order
            lines = list(checkout.items.select_related('equipment').order_by('equipment_id'))
            failed = []
            for line in lines:
                if not reserve_units(line.equipment_id, line.quantity):
                    line.equipment.refresh_from_db()
                    failed.append({
                        'equipment': line.equipment_id,
                        'name': line.equipment.name,
                        'requested': line.quantity,
                        'available': line.equipment.actual_available_quantity
                        if line.equipment.checkout_status in RESERVABLE_STATUSES else 0,
                    })
            if failed:
                logger.warning(
                    f"Approval of checkout {checkout.checkout_number} refused, insufficient units: {failed}"
                )
                raise ValidationError({
                    'detail': 'Not enough equipment available to approve this checkout',
                    'unavailable': failed,
                })

            checkout.status = 'approved'
            checkout.save()
            transaction.on_commit(invalidate_report_caches)

            if handoff:
                self._hand_off(checkout, approver)
            else:
                self._notify_requester(
                    checkout,
                    title='Equipment checkout approved',
                    message=f"Your checkout {checkout.checkout_number} was approved and is ready for pickup.",
                )

        logger.info(f"Checkout {checkout.checkout_number} approved by user {approver.id}")
        return checkout

    # --- Hand-off ---

    def _hand_off(self, checkout, user):
        now = timezone.now()
        checkout.status = 'checked_out'
        checkout.checked_out_by = user
        checkout.checked_out_at = now
        checkout.save()

        for line in checkout.items.select_related('equipment'):
            if not line.checkout_condition:
                line.checkout_condition = line.equipment.condition
                line.save(update_fields=['checkout_condition'])
        Equipment.objects.filter(
            pk__in=checkout.items.values_list('equipment_id', flat=True)
        ).update(assigned_to=checkout.requester, updated_at=now)

        self._notify_requester(
            checkout,
            title='Equipment checked out',
            message=f"{_describe_items(checkout)} handed over. Please return by "
                    f"{timezone.localtime(checkout.expected_return_date):%Y-%m-%d %H:%M}.",
        )
        logger.info(f"Checkout {checkout.checkout_number} handed off by user {user.id}")

    def hand_off(self, checkout_id, user):
        with transaction.atomic():
            checkout = self._get_locked(checkout_id)
            self._require_status(checkout, ('approved',), 'hand off')
            self._hand_off(checkout, user)
        return checkout

    # --- Cancel ---

    def cancel_checkout(self, checkout_id, user, notes=''):
        with transaction.atomic():
            checkout = self._get_locked(checkout_id)
            if checkout.requester_id != user.id and not can_approve_checkouts(user):
                raise PermissionDenied('You can only cancel your own checkout requests')
            self._require_status(checkout, ('pending_approval', 'approved'), 'cancel')

            if checkout.status == 'approved':
                for line in checkout.items.order_by('equipment_id'):
                    release_units(line.equipment_id, line.quantity)
                    _reopen_if_units_free(line.equipment_id)
                transaction.on_commit(invalidate_report_caches)

            checkout.status = 'cancelled'
            checkout.cancelled_by = user
            checkout.cancelled_at = timezone.now()
            checkout.cancellation_notes = notes or ''
            checkout.save()

            if checkout.requester_id != user.id:
                self._notify_requester(
                    checkout,
                    title='Equipment checkout cancelled',
                    message=f"Checkout {checkout.checkout_number} was cancelled. {notes or ''}".strip(),
                )

        logger.info(f"Checkout {checkout.checkout_number} cancelled by user {user.id}")
        return checkout

    # --- Return ---

    def return_equipment(self, checkout_id, user, item_conditions=None, notes=''):
        """
        Return every line of an active checkout.

        Args:
            item_conditions: list of {'equipment', 'condition', 'notes', 'damage_description'}
                keyed by equipment id; lines without a reported condition keep the item's condition
        """
        conditions = {}
        for entry in item_conditions or []:
            equipment_id = entry.get('equipment')
            if hasattr(equipment_id, 'pk'):
                equipment_id = equipment_id.pk
            conditions[equipment_id] = entry

        with transaction.atomic():
            checkout = self._get_locked(checkout_id)
            self._require_status(checkout, EquipmentCheckout.ACTIVE_STATUSES, 'return')

            lines = list(checkout.items.select_related('equipment').order_by('equipment_id'))
            unknown = set(conditions) - {line.equipment_id for line in lines}
            if unknown:
                raise ValidationError({'items': f"Equipment {sorted(unknown)} is not part of this checkout"})

            damaged = []
            for line in lines:
                entry = conditions.get(line.equipment_id, {})
                reported = entry.get('condition') or ''
                # Unreported lines come back as they went out
                condition = reported or line.checkout_condition or line.equipment.condition
                line.return_condition = condition
                line.return_notes = entry.get('notes', '') or ''
                line.damage_description = entry.get('damage_description', '') or ''
                line.save(update_fields=['return_condition', 'return_notes', 'damage_description'])

                release_units(line.equipment_id, line.quantity)

                equipment = line.equipment
                equipment.refresh_from_db()
                equipment.checkout_status = status_after_return(equipment, reported)
                if reported:
                    equipment.condition = reported
                if equipment.current_quantity_out == 0:
                    equipment.assigned_to = None
                # Counters are owned by the guarded updates above
                equipment.save(update_fields=['checkout_status', 'condition', 'assigned_to', 'updated_at'])
                if reported in ('poor', 'damaged'):
                    damaged.append(equipment.name)

            checkout.status = 'returned'
            checkout.returned_by = user
            checkout.returned_at = timezone.now()
            checkout.return_notes = notes or ''
            checkout.save()
            transaction.on_commit(invalidate_report_caches)

            self._notify_requester(
                checkout,
                title='Equipment returned',
                message=f"Checkout {checkout.checkout_number} has been returned.",
                notification_type='equipment_return',
            )
            if damaged:
                self._notify_approvers(
                    checkout,
                    title='Equipment returned in poor condition',
                    message=f"{', '.join(damaged)} returned in poor or damaged condition "
                            f"({checkout.checkout_number}).",
                )

        logger.info(f"Checkout {checkout.checkout_number} returned to user {user.id}")
        return checkout

    # --- Extensions ---

    def request_extension(self, checkout_id, user, new_return_date, reason=''):
        with transaction.atomic():
            checkout = self._get_locked(checkout_id)
            if checkout.requester_id != user.id and not can_approve_checkouts(user):
                raise PermissionDenied('You can only extend your own checkouts')
            self._require_status(checkout, EquipmentCheckout.ACTIVE_STATUSES, 'extend')

            if new_return_date <= checkout.expected_return_date:
                raise ValidationError({'new_return_date': 'New return date must be after the current expected return date'})
            if new_return_date <= timezone.now():
                raise ValidationError({'new_return_date': 'New return date must be in the future'})
            if checkout.extensions.filter(status='pending').exists():
                raise ValidationError({'detail': 'An extension request is already pending for this checkout'})

            extension = CheckoutExtension.objects.create(
                checkout=checkout,
                requested_by=user,
                new_return_date=new_return_date,
                reason=reason or '',
            )
            self._notify_approvers(
                checkout,
                title='Checkout extension requested',
                message=f"{user.display_name} asked to extend {checkout.checkout_number} to "
                        f"{timezone.localtime(new_return_date):%Y-%m-%d %H:%M}.",
                exclude=user,
            )
        logger.info(f"Extension requested for checkout {checkout.checkout_number} by user {user.id}")
        return extension

    def decide_extension(self, checkout_id, extension_id, user, approved, notes=''):
        with transaction.atomic():
            checkout = self._get_locked(checkout_id)
            try:
                extension = checkout.extensions.select_for_update().get(pk=extension_id)
            except CheckoutExtension.DoesNotExist:
                raise NotFound('Extension request not found')
            if extension.status != 'pending':
                raise ValidationError({'detail': f"Extension request is already {extension.status}"})
            if approved:
                self._require_status(checkout, EquipmentCheckout.ACTIVE_STATUSES, 'extend')

            extension.status = 'approved' if approved else 'rejected'
            extension.decided_by = user
            extension.decided_at = timezone.now()
            extension.decision_notes = notes or ''
            extension.save()

            if approved:
                checkout.expected_return_date = extension.new_return_date
                if checkout.status == 'overdue' and extension.new_return_date > timezone.now():
                    checkout.status = 'checked_out'
                checkout.save()

            self._notify_requester(
                checkout,
                title=f"Checkout extension {extension.status}",
                message=f"Your extension for {checkout.checkout_number} was {extension.status}.",
            )
        logger.info(f"Extension {extension.id} {extension.status} by user {user.id}")
        return extension

    # --- Overdue reminders ---

    def send_overdue_reminders(self, interval_hours=24, now=None):
        """Remind requesters of overdue checkouts at most once per interval; returns reminders sent"""
        now = now or timezone.now()
        cutoff = now - timedelta(hours=interval_hours)
        due = EquipmentCheckout.objects.overdue(now).filter(
            Q(last_reminder_at__isnull=True) | Q(last_reminder_at__lte=cutoff)
        )

        sent = 0
        for checkout in due.select_related('requester').order_by('expected_return_date'):
            with transaction.atomic():
                # Claim the reminder slot so concurrent runs don't both send
                claimed = EquipmentCheckout.objects.filter(
                    pk=checkout.pk,
                    status__in=EquipmentCheckout.ACTIVE_STATUSES,
                    reminders_sent=checkout.reminders_sent,
                ).update(
                    status='overdue',
                    reminders_sent=F('reminders_sent') + 1,
                    last_reminder_at=now,
                    updated_at=now,
                )
                if not claimed:
                    continue
                checkout.refresh_from_db()
                self._notify_requester(
                    checkout,
                    title='Equipment overdue',
                    message=f"{_describe_items(checkout)} ({checkout.checkout_number}) is {checkout.days_overdue} "
                            f"day(s) overdue. Please return it as soon as possible.",
                    notification_type='equipment_overdue',
                    priority='high',
                )
                sent += 1
        if sent:
            invalidate_report_caches()
        logger.info(f"Sent {sent} overdue checkout reminders")
        return sent


class MaintenanceService:
    """Append-only maintenance log and the status it derives"""

    def __init__(self, notifications=None):
        self.notifications = notifications or get_notification_service()

    def refresh_status(self, equipment, today=None):
        """Recompute maintenance status and next date; returns (previous, current) status"""
        previous = equipment.maintenance_status
        status, next_date = compute_equipment_maintenance(equipment, today=today)
        if status != previous or next_date != equipment.next_maintenance_date:
            equipment.maintenance_status = status
            equipment.next_maintenance_date = next_date
            equipment.save(update_fields=['maintenance_status', 'next_maintenance_date', 'updated_at'])
        return previous, status

    def record_maintenance(self, equipment_id, performed_by, **data):
        with transaction.atomic():
            try:
                equipment = Equipment.objects.select_for_update().get(pk=equipment_id, is_active=True)
            except Equipment.DoesNotExist:
                raise NotFound('Equipment not found')

            record = MaintenanceRecord.objects.create(equipment=equipment, performed_by=performed_by, **data)
            self.refresh_status(equipment)

            # The status of the latest record drives whether the item is held for maintenance
            latest = equipment.maintenance_records.order_by('-performed_date', '-id').first()
            if latest.status == 'in_progress' and equipment.checkout_status == 'available':
                equipment.checkout_status = 'maintenance'
                equipment.save(update_fields=['checkout_status', 'updated_at'])
            elif latest.status == 'completed' and equipment.checkout_status == 'maintenance':
                equipment.refresh_from_db(fields=['current_quantity_out', 'available_quantity'])
                equipment.checkout_status = equipment.settled_checkout_status()
                equipment.save(update_fields=['checkout_status', 'updated_at'])

        logger.info(f"Maintenance record {record.id} added for equipment {equipment.id}")
        return record

    def refresh_all(self, today=None):
        """Recompute every active item; notifies creators of items that just became overdue"""
        changed = 0
        newly_overdue = []
        for equipment in Equipment.objects.filter(is_active=True).select_related('created_by'):
            previous, status = self.refresh_status(equipment, today=today)
            if previous != status:
                changed += 1
                if status == OVERDUE:
                    newly_overdue.append(equipment)

        for equipment in newly_overdue:
            if equipment.created_by is None:
                continue
            self.notifications.create_notification(
                recipient=equipment.created_by,
                notification_type='maintenance',
                title='Maintenance overdue',
                message=f"{equipment.name} was due for maintenance on {equipment.next_maintenance_date}.",
                priority='high',
                related_model='Equipment',
                related_id=equipment.id,
            )
        if changed:
            invalidate_report_caches()
        return changed
