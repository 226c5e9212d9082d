"""
Test suite for the equipment module
Tests: quantity accounting, checkout workflow, overdue derivation, maintenance log and status,
management commands and the REST endpoints
"""
import re
from datetime import timedelta
from io import StringIO
from types import SimpleNamespace
from unittest.mock import patch

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.management import call_command
from django.db import IntegrityError, transaction
from django.db.models import F
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.exceptions import PermissionDenied, ValidationError

from studiodesk.core.test_utils import (
    TestDataFactory, AuthenticatedAPIClient, RecordingNotificationPublisher, RECORDING_NOTIFICATIONS
)
from studiodesk.equipment.maintenance import derive_maintenance_status, compute_equipment_maintenance
from studiodesk.equipment.models import Equipment, EquipmentCheckout, CheckoutItem, MaintenanceRecord
from studiodesk.equipment.serializers import EquipmentSerializer
from studiodesk.equipment.services import CheckoutService, MaintenanceService, release_units
from studiodesk.notifications.models import Notification


def in_days(days):
    return timezone.now() + timedelta(days=days)


class EquipmentModelTests(TestCase):
    """Test Equipment and checkout model behaviour"""

    def test_actual_available_quantity(self):
        equipment = TestDataFactory.create_equipment(available_quantity=5, current_quantity_out=2)
        self.assertEqual(equipment.actual_available_quantity, 3)

    def test_quantity_out_cannot_exceed_owned(self):
        equipment = TestDataFactory.create_equipment(available_quantity=2)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Equipment.objects.filter(pk=equipment.pk).update(
                    current_quantity_out=F('available_quantity') + 1
                )

    def test_equipment_code_is_upper_cased(self):
        equipment = TestDataFactory.create_equipment(equipment_code=' cam-01 ')
        self.assertEqual(equipment.equipment_code, 'CAM-01')

    def test_blank_equipment_codes_do_not_collide(self):
        TestDataFactory.create_equipment(equipment_code='')
        equipment = TestDataFactory.create_equipment(equipment_code='')
        self.assertIsNone(equipment.equipment_code)

    def test_checkout_number_format(self):
        user = TestDataFactory.create_user()
        equipment = TestDataFactory.create_equipment()
        checkout = TestDataFactory.create_checkout(user, [(equipment, 1)])
        self.assertRegex(checkout.checkout_number, r'^CHK-\d{8}-[0-9A-F]{8}$')

    def test_maintenance_records_are_append_only(self):
        equipment = TestDataFactory.create_equipment()
        record = TestDataFactory.create_maintenance_record(equipment)

        record.description = 'changed'
        with self.assertRaises(DjangoValidationError):
            record.save()
        with self.assertRaises(DjangoValidationError):
            record.delete()
        self.assertTrue(MaintenanceRecord.objects.filter(pk=record.pk, description='Test routine').exists())


class OverdueDerivationTests(TestCase):
    """Overdue is derived from the expected return date"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.equipment = TestDataFactory.create_equipment(available_quantity=3)
        self.late = TestDataFactory.create_checkout(
            self.user, [(self.equipment, 1)], status='checked_out',
            expected_return_date=in_days(-2) + timedelta(hours=1),
        )
        self.on_time = TestDataFactory.create_checkout(
            self.user, [(self.equipment, 1)], status='checked_out', expected_return_date=in_days(2)
        )
        self.pending_late = TestDataFactory.create_checkout(
            self.user, [(self.equipment, 1)], status='pending_approval', expected_return_date=in_days(-2)
        )

    def test_model_properties(self):
        self.assertEqual(self.late.effective_status, 'overdue')
        self.assertTrue(self.late.is_overdue)
        self.assertEqual(self.late.days_overdue, 2)
        self.assertFalse(self.on_time.is_overdue)
        self.assertEqual(self.on_time.days_overdue, 0)
        self.assertEqual(self.pending_late.effective_status, 'pending_approval')

    def test_queryset_annotation_matches_property(self):
        rows = dict(EquipmentCheckout.objects.with_effective_status().values_list('id', 'effective_status'))
        self.assertEqual(rows[self.late.id], 'overdue')
        self.assertEqual(rows[self.on_time.id], 'checked_out')
        self.assertEqual(rows[self.pending_late.id], 'pending_approval')

    def test_filter_effective_status(self):
        overdue_ids = set(EquipmentCheckout.objects.filter_effective_status('overdue').values_list('id', flat=True))
        self.assertEqual(overdue_ids, {self.late.id})
        checked_out_ids = set(
            EquipmentCheckout.objects.filter_effective_status('checked_out').values_list('id', flat=True)
        )
        self.assertEqual(checked_out_ids, {self.on_time.id})
        self.assertEqual(set(EquipmentCheckout.objects.overdue().values_list('id', flat=True)), {self.late.id})


class MaintenanceDerivationTests(TestCase):
    """Maintenance status from the latest record and today's date"""

    def setUp(self):
        self.today = timezone.localdate()

    def record(self, next_date, record_status='completed'):
        return SimpleNamespace(status=record_status, next_maintenance_date=next_date)

    def derive(self, record, fallback_date=None):
        return derive_maintenance_status(record, self.today, 7, fallback_date=fallback_date)[0]

    def test_no_history_is_up_to_date(self):
        self.assertEqual(self.derive(None), 'up_to_date')

    def test_no_date_is_up_to_date(self):
        self.assertEqual(self.derive(self.record(None)), 'up_to_date')

    def test_tomorrow_is_due_soon(self):
        self.assertEqual(self.derive(self.record(self.today + timedelta(days=1))), 'due_soon')

    def test_today_and_window_edge_are_due_soon(self):
        self.assertEqual(self.derive(self.record(self.today)), 'due_soon')
        self.assertEqual(self.derive(self.record(self.today + timedelta(days=7))), 'due_soon')

    def test_beyond_window_is_up_to_date(self):
        self.assertEqual(self.derive(self.record(self.today + timedelta(days=8))), 'up_to_date')

    def test_yesterday_is_overdue(self):
        self.assertEqual(self.derive(self.record(self.today - timedelta(days=1))), 'overdue')

    def test_in_progress_overrides_dates(self):
        record = self.record(self.today - timedelta(days=10), record_status='in_progress')
        self.assertEqual(self.derive(record), 'in_maintenance')

    def test_fallback_date_without_history(self):
        self.assertEqual(self.derive(None, fallback_date=self.today - timedelta(days=1)), 'overdue')

    def test_latest_record_wins(self):
        equipment = TestDataFactory.create_equipment()
        TestDataFactory.create_maintenance_record(
            equipment, performed_date=self.today - timedelta(days=30),
            next_maintenance_date=self.today - timedelta(days=1),
        )
        TestDataFactory.create_maintenance_record(
            equipment, performed_date=self.today - timedelta(days=2),
            next_maintenance_date=self.today + timedelta(days=60),
        )
        # Same performed date as the previous record; the later id wins
        TestDataFactory.create_maintenance_record(
            equipment, performed_date=self.today - timedelta(days=2),
            next_maintenance_date=self.today + timedelta(days=3),
        )
        status_label, next_date = compute_equipment_maintenance(equipment, today=self.today, lookahead_days=7)
        self.assertEqual(status_label, 'due_soon')
        self.assertEqual(next_date, self.today + timedelta(days=3))

    def test_stored_label_is_rederived_against_today(self):
        equipment = TestDataFactory.create_equipment(
            maintenance_status='due_soon', next_maintenance_date=self.today + timedelta(days=1)
        )
        later = self.today + timedelta(days=3)
        self.assertEqual(equipment.current_maintenance_status(today=later), 'overdue')
        annotated = Equipment.objects.with_effective_maintenance(today=later).get(pk=equipment.pk)
        self.assertEqual(annotated.effective_maintenance_status, 'overdue')

    def test_open_maintenance_job_wins_over_dates(self):
        equipment = TestDataFactory.create_equipment(
            maintenance_status='in_maintenance', next_maintenance_date=self.today - timedelta(days=5)
        )
        self.assertEqual(equipment.current_maintenance_status(), 'in_maintenance')
        self.assertEqual(
            list(Equipment.objects.filter_maintenance_status('in_maintenance').values_list('id', flat=True)),
            [equipment.id],
        )


@override_settings(NOTIFICATIONS=RECORDING_NOTIFICATIONS)
class CheckoutServiceTests(TestCase):
    """Test the checkout workflow and unit accounting"""

    def setUp(self):
        RecordingNotificationPublisher.reset()
        self.requester = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.approver = TestDataFactory.create_reception()
        self.service = CheckoutService()

    def request(self, lines, user=None, days=3):
        return self.service.request_checkout(
            requester=user or self.requester,
            items=[{'equipment': equipment.id, 'quantity': quantity} for equipment, quantity in lines],
            purpose='Product shoot',
            expected_return_date=in_days(days),
        )

    def test_quantity_scenario(self):
        """5 owned: take 3, a second request for 3 fails, returning brings everything back"""
        camera = TestDataFactory.create_equipment(available_quantity=5)

        first = self.request([(camera, 3)])
        self.assertEqual(first.status, 'pending_approval')
        self.service.approve_checkout(first.id, self.approver, approved=True, handoff=True)

        camera.refresh_from_db()
        self.assertEqual(camera.current_quantity_out, 3)
        self.assertEqual(camera.actual_available_quantity, 2)
        self.assertEqual(camera.checkout_status, 'available')

        with self.assertRaises(ValidationError):
            self.request([(camera, 3)], user=self.other)

        self.service.return_equipment(first.id, self.approver)
        camera.refresh_from_db()
        self.assertEqual(camera.current_quantity_out, 0)
        self.assertEqual(camera.checkout_status, 'available')
        first.refresh_from_db()
        self.assertEqual(first.status, 'returned')

    def test_failed_approval_changes_nothing(self):
        light = TestDataFactory.create_equipment(available_quantity=2)
        tripod = TestDataFactory.create_equipment(available_quantity=1)
        checkout = self.request([(light, 1), (tripod, 1)])

        # Another checkout takes the only tripod meanwhile
        competing = self.request([(tripod, 1)], user=self.other)
        self.service.approve_checkout(competing.id, self.approver, approved=True)

        with self.assertRaises(ValidationError) as ctx:
            self.service.approve_checkout(checkout.id, self.approver, approved=True)
        self.assertIn('unavailable', ctx.exception.detail)

        light.refresh_from_db()
        tripod.refresh_from_db()
        checkout.refresh_from_db()
        self.assertEqual(light.current_quantity_out, 0)
        self.assertEqual(tripod.current_quantity_out, 1)
        self.assertEqual(checkout.status, 'pending_approval')

    def test_full_allocation_flips_status(self):
        mixer = TestDataFactory.create_equipment(available_quantity=2)
        checkout = self.request([(mixer, 2)])
        self.service.approve_checkout(checkout.id, self.approver, approved=True)
        mixer.refresh_from_db()
        self.assertEqual(mixer.checkout_status, 'checked_out')
        self.assertEqual(mixer.actual_available_quantity, 0)

    def test_request_validates_fields(self):
        camera = TestDataFactory.create_equipment()
        with self.assertRaises(ValidationError):
            self.service.request_checkout(self.requester, [], 'Shoot', in_days(1))
        with self.assertRaises(ValidationError):
            self.service.request_checkout(self.requester, [{'equipment': camera.id, 'quantity': 1}], '', in_days(1))
        with self.assertRaises(ValidationError):
            self.request([(camera, 1)], days=-1)

    def test_request_merges_duplicate_lines(self):
        camera = TestDataFactory.create_equipment(available_quantity=3)
        checkout = self.service.request_checkout(
            self.requester,
            [{'equipment': camera.id, 'quantity': 1}, {'equipment': camera.id, 'quantity': 2}],
            'Shoot',
            in_days(1),
        )
        self.assertEqual(checkout.items.count(), 1)
        self.assertEqual(checkout.items.get().quantity, 3)

    def test_request_refuses_unavailable_equipment(self):
        broken = TestDataFactory.create_equipment(available_quantity=3, checkout_status='maintenance')
        with self.assertRaises(ValidationError) as ctx:
            self.request([(broken, 1)])
        self.assertEqual(len(ctx.exception.detail['unavailable']), 1)
        self.assertFalse(EquipmentCheckout.objects.exists())

    def test_approve_only_from_pending(self):
        camera = TestDataFactory.create_equipment(available_quantity=2)
        checkout = self.request([(camera, 1)])
        self.service.approve_checkout(checkout.id, self.approver, approved=True)
        with self.assertRaises(ValidationError):
            self.service.approve_checkout(checkout.id, self.approver, approved=True)
        camera.refresh_from_db()
        self.assertEqual(camera.current_quantity_out, 1)

    def test_rejection_cancels_without_reserving(self):
        camera = TestDataFactory.create_equipment(available_quantity=2)
        checkout = self.request([(camera, 2)])
        checkout = self.service.approve_checkout(checkout.id, self.approver, approved=False, notes='Booked')
        self.assertEqual(checkout.status, 'cancelled')
        self.assertEqual(checkout.approval_notes, 'Booked')
        camera.refresh_from_db()
        self.assertEqual(camera.current_quantity_out, 0)

    def test_cancel_after_approval_releases_units(self):
        camera = TestDataFactory.create_equipment(available_quantity=1)
        checkout = self.request([(camera, 1)])
        self.service.approve_checkout(checkout.id, self.approver, approved=True)
        camera.refresh_from_db()
        self.assertEqual(camera.checkout_status, 'checked_out')

        self.service.cancel_checkout(checkout.id, self.requester, notes='Shoot moved')
        camera.refresh_from_db()
        self.assertEqual(camera.current_quantity_out, 0)
        self.assertEqual(camera.checkout_status, 'available')

    def test_cancel_requires_owner_or_approver(self):
        camera = TestDataFactory.create_equipment()
        checkout = self.request([(camera, 1)])
        with self.assertRaises(PermissionDenied):
            self.service.cancel_checkout(checkout.id, self.other)

    def test_cannot_cancel_after_hand_off(self):
        camera = TestDataFactory.create_equipment()
        checkout = self.request([(camera, 1)])
        self.service.approve_checkout(checkout.id, self.approver, approved=True, handoff=True)
        with self.assertRaises(ValidationError):
            self.service.cancel_checkout(checkout.id, self.requester)

    def test_hand_off_assigns_and_return_clears(self):
        camera = TestDataFactory.create_equipment(condition='excellent')
        checkout = self.request([(camera, 1)])
        self.service.approve_checkout(checkout.id, self.approver, approved=True)
        checkout = self.service.hand_off(checkout.id, self.approver)

        self.assertEqual(checkout.status, 'checked_out')
        self.assertIsNotNone(checkout.checked_out_at)
        self.assertEqual(checkout.items.get().checkout_condition, 'excellent')
        camera.refresh_from_db()
        self.assertEqual(camera.assigned_to, self.requester)

        self.service.return_equipment(checkout.id, self.approver)
        camera.refresh_from_db()
        self.assertIsNone(camera.assigned_to)

    def test_unreported_condition_is_kept(self):
        camera = TestDataFactory.create_equipment(condition='excellent')
        lens = TestDataFactory.create_equipment(condition='excellent')
        checkout = self.request([(camera, 1), (lens, 1)])
        self.service.approve_checkout(checkout.id, self.approver, approved=True, handoff=True)

        self.service.return_equipment(checkout.id, self.approver, item_conditions=[
            {'equipment': lens.id, 'condition': 'fair'},
        ])

        camera.refresh_from_db()
        lens.refresh_from_db()
        self.assertEqual(camera.condition, 'excellent')
        self.assertEqual(camera.checkout_status, 'available')
        self.assertEqual(lens.condition, 'fair')
        self.assertEqual(checkout.items.get(equipment=camera).return_condition, 'excellent')

    def test_zero_quantity_is_rejected(self):
        camera = TestDataFactory.create_equipment(available_quantity=2)
        with self.assertRaises(ValidationError):
            self.request([(camera, 0)])
        camera.refresh_from_db()
        self.assertEqual(camera.current_quantity_out, 0)
        self.assertFalse(EquipmentCheckout.objects.exists())

    def test_hand_off_requires_approval(self):
        camera = TestDataFactory.create_equipment()
        checkout = self.request([(camera, 1)])
        with self.assertRaises(ValidationError):
            self.service.hand_off(checkout.id, self.approver)

    def test_return_requires_active_checkout(self):
        camera = TestDataFactory.create_equipment()
        checkout = self.request([(camera, 1)])
        with self.assertRaises(ValidationError):
            self.service.return_equipment(checkout.id, self.approver)

    def test_return_damaged_and_poor_conditions(self):
        camera = TestDataFactory.create_equipment(available_quantity=2)
        lens = TestDataFactory.create_equipment(available_quantity=2)
        checkout = self.request([(camera, 1), (lens, 1)])
        self.service.approve_checkout(checkout.id, self.approver, approved=True, handoff=True)

        self.service.return_equipment(checkout.id, self.approver, item_conditions=[
            {'equipment': camera.id, 'condition': 'damaged', 'damage_description': 'Cracked screen'},
            {'equipment': lens.id, 'condition': 'poor'},
        ])
        camera.refresh_from_db()
        lens.refresh_from_db()
        self.assertEqual(camera.checkout_status, 'damaged')
        self.assertEqual(lens.checkout_status, 'maintenance')
        self.assertEqual(camera.current_quantity_out, 0)
        line = CheckoutItem.objects.get(checkout=checkout, equipment=camera)
        self.assertEqual(line.return_condition, 'damaged')
        self.assertEqual(line.damage_description, 'Cracked screen')

    def test_return_rejects_foreign_equipment(self):
        camera = TestDataFactory.create_equipment()
        stranger = TestDataFactory.create_equipment()
        checkout = self.request([(camera, 1)])
        self.service.approve_checkout(checkout.id, self.approver, approved=True, handoff=True)
        with self.assertRaises(ValidationError):
            self.service.return_equipment(checkout.id, self.approver, item_conditions=[
                {'equipment': stranger.id, 'condition': 'good'},
            ])
        camera.refresh_from_db()
        self.assertEqual(camera.current_quantity_out, 1)

    def test_partial_return_reopens_item(self):
        mixer = TestDataFactory.create_equipment(available_quantity=2)
        first = self.request([(mixer, 1)])
        second = self.request([(mixer, 1)], user=self.other)
        self.service.approve_checkout(first.id, self.approver, approved=True, handoff=True)
        self.service.approve_checkout(second.id, self.approver, approved=True, handoff=True)
        mixer.refresh_from_db()
        self.assertEqual(mixer.checkout_status, 'checked_out')

        self.service.return_equipment(first.id, self.approver)
        mixer.refresh_from_db()
        self.assertEqual(mixer.current_quantity_out, 1)
        self.assertEqual(mixer.checkout_status, 'available')
        # The other checkout still holds a unit
        self.assertEqual(mixer.assigned_to, self.other)

    def test_overdue_checkout_can_be_returned(self):
        camera = TestDataFactory.create_equipment()
        checkout = self.request([(camera, 1)])
        self.service.approve_checkout(checkout.id, self.approver, approved=True, handoff=True)
        EquipmentCheckout.objects.filter(pk=checkout.pk).update(expected_return_date=in_days(-1))

        checkout.refresh_from_db()
        self.assertEqual(checkout.effective_status, 'overdue')
        self.service.return_equipment(checkout.id, self.approver)
        checkout.refresh_from_db()
        self.assertEqual(checkout.status, 'returned')

    def test_release_never_goes_negative(self):
        camera = TestDataFactory.create_equipment(available_quantity=3, current_quantity_out=1)
        release_units(camera.id, 2)
        camera.refresh_from_db()
        self.assertEqual(camera.current_quantity_out, 0)

    def test_extension_moves_return_date(self):
        camera = TestDataFactory.create_equipment()
        checkout = self.request([(camera, 1)])
        self.service.approve_checkout(checkout.id, self.approver, approved=True, handoff=True)

        new_date = in_days(10)
        extension = self.service.request_extension(checkout.id, self.requester, new_date, reason='Reshoot')
        with self.assertRaises(ValidationError):
            self.service.request_extension(checkout.id, self.requester, in_days(12))

        self.service.decide_extension(checkout.id, extension.id, self.approver, approved=True)
        checkout.refresh_from_db()
        extension.refresh_from_db()
        self.assertEqual(extension.status, 'approved')
        self.assertEqual(checkout.expected_return_date, new_date)

    def test_extension_requires_active_checkout(self):
        camera = TestDataFactory.create_equipment()
        checkout = self.request([(camera, 1)])
        with self.assertRaises(ValidationError):
            self.service.request_extension(checkout.id, self.requester, in_days(10))

    def test_extension_must_move_date_forward(self):
        camera = TestDataFactory.create_equipment()
        checkout = self.request([(camera, 1)], days=5)
        self.service.approve_checkout(checkout.id, self.approver, approved=True, handoff=True)
        with self.assertRaises(ValidationError):
            self.service.request_extension(checkout.id, self.requester, in_days(2))

    def test_request_notifies_approvers_on_commit(self):
        admin = TestDataFactory.create_admin()
        camera = TestDataFactory.create_equipment()
        with self.captureOnCommitCallbacks(execute=True):
            checkout = self.request([(camera, 1)])

        recipients = set(
            Notification.objects.filter(related_id=str(checkout.id)).values_list('recipient_id', flat=True)
        )
        self.assertEqual(recipients, {self.approver.id, admin.id})
        self.assertTrue(RecordingNotificationPublisher.events_for(self.approver.id, 'new_notification'))
        self.assertTrue(RecordingNotificationPublisher.events_for(self.approver.id, 'unread_count'))
        self.assertFalse(RecordingNotificationPublisher.events_for(self.requester.id))

    def test_workflow_notifies_requester(self):
        camera = TestDataFactory.create_equipment()
        checkout = self.request([(camera, 1)])
        self.service.approve_checkout(checkout.id, self.approver, approved=True, handoff=True)
        self.service.return_equipment(checkout.id, self.approver)

        types = list(
            Notification.objects.filter(recipient=self.requester).values_list('notification_type', flat=True)
        )
        self.assertIn('equipment_checkout', types)
        self.assertIn('equipment_return', types)

    def test_failed_approval_sends_nothing(self):
        camera = TestDataFactory.create_equipment(available_quantity=1)
        checkout = self.request([(camera, 1)])
        Equipment.objects.filter(pk=camera.pk).update(current_quantity_out=1)
        RecordingNotificationPublisher.reset()

        with self.captureOnCommitCallbacks(execute=True):
            with self.assertRaises(ValidationError):
                self.service.approve_checkout(checkout.id, self.approver, approved=True)
        self.assertEqual(RecordingNotificationPublisher.events, [])
        self.assertFalse(Notification.objects.filter(recipient=self.requester).exists())


@override_settings(NOTIFICATIONS=RECORDING_NOTIFICATIONS)
class OverdueReminderTests(TestCase):
    """Test overdue reminders and the reminder command"""

    def setUp(self):
        RecordingNotificationPublisher.reset()
        self.requester = TestDataFactory.create_user()
        self.approver = TestDataFactory.create_reception()
        self.service = CheckoutService()
        camera = TestDataFactory.create_equipment()
        self.checkout = self.service.request_checkout(
            self.requester, [{'equipment': camera.id, 'quantity': 1}], 'Shoot', in_days(1)
        )
        self.service.approve_checkout(self.checkout.id, self.approver, approved=True, handoff=True)
        EquipmentCheckout.objects.filter(pk=self.checkout.pk).update(expected_return_date=in_days(-2))

    def test_reminder_sent_once_per_interval(self):
        self.assertEqual(self.service.send_overdue_reminders(interval_hours=24), 1)
        self.checkout.refresh_from_db()
        self.assertEqual(self.checkout.reminders_sent, 1)
        self.assertEqual(self.checkout.status, 'overdue')
        self.assertIsNotNone(self.checkout.last_reminder_at)
        self.assertTrue(Notification.objects.filter(
            recipient=self.requester, notification_type='equipment_overdue'
        ).exists())

        self.assertEqual(self.service.send_overdue_reminders(interval_hours=24), 0)
        self.assertEqual(self.service.send_overdue_reminders(interval_hours=24, now=in_days(2)), 1)

    def test_on_time_checkouts_are_not_reminded(self):
        EquipmentCheckout.objects.filter(pk=self.checkout.pk).update(expected_return_date=in_days(2))
        self.assertEqual(self.service.send_overdue_reminders(), 0)

    def test_extension_clears_stored_overdue(self):
        self.service.send_overdue_reminders()
        extension = self.service.request_extension(self.checkout.id, self.requester, in_days(5))
        self.service.decide_extension(self.checkout.id, extension.id, self.approver, approved=True)
        self.checkout.refresh_from_db()
        self.assertEqual(self.checkout.status, 'checked_out')
        self.assertFalse(self.checkout.is_overdue)

    def test_command(self):
        out = StringIO()
        call_command('send_overdue_reminders', '--interval-hours', '12', stdout=out)
        self.assertIn('Sent 1 overdue reminders', out.getvalue())


@override_settings(NOTIFICATIONS=RECORDING_NOTIFICATIONS)
class MaintenanceServiceTests(TestCase):
    """Test the maintenance log and derived status"""

    def setUp(self):
        RecordingNotificationPublisher.reset()
        self.manager = TestDataFactory.create_department_admin()
        self.service = MaintenanceService()
        self.today = timezone.localdate()

    def test_record_updates_status_and_next_date(self):
        camera = TestDataFactory.create_equipment()
        self.service.record_maintenance(
            camera.id, self.manager, maintenance_type='inspection', description='Sensor check',
            next_maintenance_date=self.today + timedelta(days=1),
        )
        camera.refresh_from_db()
        self.assertEqual(camera.maintenance_status, 'due_soon')
        self.assertEqual(camera.next_maintenance_date, self.today + timedelta(days=1))

    def test_in_progress_holds_item_until_completed(self):
        camera = TestDataFactory.create_equipment()
        self.service.record_maintenance(camera.id, self.manager, description='Repair', status='in_progress')
        camera.refresh_from_db()
        self.assertEqual(camera.maintenance_status, 'in_maintenance')
        self.assertEqual(camera.checkout_status, 'maintenance')

        self.service.record_maintenance(
            camera.id, self.manager, description='Repair done', status='completed',
            next_maintenance_date=self.today + timedelta(days=90),
        )
        camera.refresh_from_db()
        self.assertEqual(camera.maintenance_status, 'up_to_date')
        self.assertEqual(camera.checkout_status, 'available')

    def test_refresh_command_marks_overdue_and_notifies_creator(self):
        camera = TestDataFactory.create_equipment(created_by=self.manager)
        TestDataFactory.create_maintenance_record(camera, next_maintenance_date=self.today - timedelta(days=1))

        out = StringIO()
        call_command('refresh_maintenance_status', stdout=out)
        camera.refresh_from_db()
        self.assertEqual(camera.maintenance_status, 'overdue')
        self.assertIn('1 items changed', out.getvalue())
        self.assertTrue(Notification.objects.filter(
            recipient=self.manager, notification_type='maintenance'
        ).exists())

    def test_refresh_command_with_date(self):
        camera = TestDataFactory.create_equipment()
        TestDataFactory.create_maintenance_record(camera, next_maintenance_date=self.today + timedelta(days=30))
        call_command('refresh_maintenance_status', '--date', (self.today + timedelta(days=25)).isoformat(),
                     stdout=StringIO())
        camera.refresh_from_db()
        self.assertEqual(camera.maintenance_status, 'due_soon')


class EquipmentSerializerTests(TestCase):
    """Equipment updates never clobber the checkout counter"""

    def test_stale_instance_keeps_counter(self):
        camera = TestDataFactory.create_equipment(available_quantity=3)
        stale = Equipment.objects.get(pk=camera.pk)
        Equipment.objects.filter(pk=camera.pk).update(current_quantity_out=2)

        serializer = EquipmentSerializer(stale, data={'location': 'Studio B'}, partial=True)
        self.assertTrue(serializer.is_valid(), serializer.errors)
        serializer.save()

        camera.refresh_from_db()
        self.assertEqual(camera.location, 'Studio B')
        self.assertEqual(camera.current_quantity_out, 2)

    def test_available_quantity_below_units_out(self):
        camera = TestDataFactory.create_equipment(available_quantity=3, current_quantity_out=2)
        serializer = EquipmentSerializer(camera, data={'available_quantity': 1}, partial=True)
        self.assertFalse(serializer.is_valid())
        self.assertIn('available_quantity', serializer.errors)

    def test_invalid_usage_type(self):
        serializer = EquipmentSerializer(data={'name': 'Drone', 'category': 'video', 'usage_type': ['space']})
        self.assertFalse(serializer.is_valid())
        self.assertIn('usage_type', serializer.errors)

    def test_checked_out_cannot_be_written(self):
        camera = TestDataFactory.create_equipment(available_quantity=2)
        serializer = EquipmentSerializer(camera, data={'checkout_status': 'checked_out'}, partial=True)
        self.assertFalse(serializer.is_valid())
        self.assertIn('checkout_status', serializer.errors)

    def test_status_follows_counters_outside_holds(self):
        camera = TestDataFactory.create_equipment(available_quantity=1)
        stale = Equipment.objects.get(pk=camera.pk)
        Equipment.objects.filter(pk=camera.pk).update(current_quantity_out=1, checkout_status='checked_out')

        serializer = EquipmentSerializer(stale, data={'checkout_status': 'available'}, partial=True)
        self.assertTrue(serializer.is_valid(), serializer.errors)
        serializer.save()
        camera.refresh_from_db()
        self.assertEqual(camera.checkout_status, 'checked_out')

        serializer = EquipmentSerializer(camera, data={'available_quantity': 2}, partial=True)
        self.assertTrue(serializer.is_valid(), serializer.errors)
        serializer.save()
        camera.refresh_from_db()
        self.assertEqual(camera.checkout_status, 'available')
        self.assertEqual(camera.current_quantity_out, 1)


@override_settings(NOTIFICATIONS=RECORDING_NOTIFICATIONS)
class EquipmentAPITests(TestCase):
    """Test equipment catalog and maintenance endpoints"""

    def setUp(self):
        self.staff = TestDataFactory.create_user()
        self.manager = TestDataFactory.create_department_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.staff)

    def test_list_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/equipment/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_list_equipment(self):
        TestDataFactory.create_equipment(name='Camera A', available_quantity=4, current_quantity_out=1)
        response = self.client.get('/api/v1/equipment/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['actual_available_quantity'], 3)

    def test_filters(self):
        TestDataFactory.create_equipment(name='Camera A', category='video', tags=['4k', 'cinema'])
        TestDataFactory.create_equipment(name='Mic B', category='audio', available_quantity=1,
                                         current_quantity_out=1, checkout_status='checked_out')
        TestDataFactory.create_equipment(name='Old Mixer', category='audio', is_active=False)

        response = self.client.get('/api/v1/equipment/', {'category': 'audio'})
        self.assertEqual([item['name'] for item in response.data['results']], ['Mic B'])

        response = self.client.get('/api/v1/equipment/', {'available': 'true'})
        self.assertEqual([item['name'] for item in response.data['results']], ['Camera A'])

        response = self.client.get('/api/v1/equipment/', {'search': 'cinema'})
        self.assertEqual([item['name'] for item in response.data['results']], ['Camera A'])

        response = self.client.get('/api/v1/equipment/', {'include_inactive': 'true', 'category': 'audio'})
        self.assertEqual(response.data['count'], 2)

    def test_staff_cannot_create(self):
        response = self.client.post('/api/v1/equipment/', {'name': 'Drone', 'category': 'video'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_manager_creates_equipment(self):
        self.client.authenticate_user(self.manager)
        data = {
            'name': 'Drone',
            'category': 'video',
            'available_quantity': 2,
            'equipment_code': 'drn-1',
            'tags': ['aerial'],
            'rental_daily_rate': '250.00',
        }
        response = self.client.post('/api/v1/equipment/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['equipment_code'], 'DRN-1')
        self.assertEqual(response.data['actual_available_quantity'], 2)
        self.assertEqual(response.data['usage_type'], ['studio', 'event', 'rental'])
        self.assertEqual(response.data['created_by']['id'], self.manager.id)

    def test_negative_rate_rejected(self):
        self.client.authenticate_user(self.manager)
        response = self.client.post('/api/v1/equipment/', {
            'name': 'Drone', 'category': 'video', 'studio_daily_rate': '-1.00'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])

    def test_update_below_units_out(self):
        camera = TestDataFactory.create_equipment(available_quantity=3, current_quantity_out=2)
        self.client.authenticate_user(self.manager)
        response = self.client.patch(f'/api/v1/equipment/{camera.id}/', {'available_quantity': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('available_quantity', response.data['errors'])

    def test_delete_is_soft_and_refused_while_out(self):
        camera = TestDataFactory.create_equipment(available_quantity=2, current_quantity_out=1)
        self.client.authenticate_user(self.manager)
        response = self.client.delete(f'/api/v1/equipment/{camera.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        Equipment.objects.filter(pk=camera.pk).update(current_quantity_out=0)
        response = self.client.delete(f'/api/v1/equipment/{camera.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        camera.refresh_from_db()
        self.assertFalse(camera.is_active)

    def test_maintenance_requires_role(self):
        camera = TestDataFactory.create_equipment()
        response = self.client.post(f'/api/v1/equipment/{camera.id}/maintenance/', {
            'description': 'Cleaning', 'maintenance_type': 'cleaning'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_add_and_list_maintenance(self):
        camera = TestDataFactory.create_equipment()
        self.client.authenticate_user(self.manager)
        tomorrow = timezone.localdate() + timedelta(days=1)
        response = self.client.post(f'/api/v1/equipment/{camera.id}/maintenance/', {
            'description': 'Sensor cleaning',
            'maintenance_type': 'cleaning',
            'cost': '45.50',
            'next_maintenance_date': tomorrow.isoformat(),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['equipment']['maintenance_status'], 'due_soon')
        self.assertEqual(response.data['record']['performed_by']['id'], self.manager.id)

        self.client.authenticate_user(self.staff)
        response = self.client.get(f'/api/v1/equipment/{camera.id}/maintenance/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['cost'], '45.50')

    def test_maintenance_status_moves_with_the_calendar(self):
        camera = TestDataFactory.create_equipment(name='Camera')
        self.client.authenticate_user(self.manager)
        today = timezone.localdate()
        self.client.post(f'/api/v1/equipment/{camera.id}/maintenance/', {
            'description': 'Sensor cleaning',
            'maintenance_type': 'cleaning',
            'next_maintenance_date': (today + timedelta(days=1)).isoformat(),
        }, format='json')

        with patch('django.utils.timezone.localdate', return_value=today + timedelta(days=3)):
            response = self.client.get(f'/api/v1/equipment/{camera.id}/')
            self.assertEqual(response.data['maintenance_status'], 'overdue')

            response = self.client.get('/api/v1/equipment/', {'maintenance_status': 'overdue'})
            self.assertEqual([item['name'] for item in response.data['results']], ['Camera'])
            self.assertEqual(response.data['results'][0]['maintenance_status'], 'overdue')

            response = self.client.get('/api/v1/equipment/', {'maintenance_status': 'due_soon'})
            self.assertEqual(response.data['count'], 0)

    def test_checkout_status_cannot_contradict_units_out(self):
        mixer = TestDataFactory.create_equipment(available_quantity=1)
        service = CheckoutService()
        checkout = service.request_checkout(
            requester=self.staff,
            items=[{'equipment': mixer.id, 'quantity': 1}],
            purpose='Podcast',
            expected_return_date=in_days(2),
        )
        service.approve_checkout(checkout.id, TestDataFactory.create_reception(), approved=True, handoff=True)

        self.client.authenticate_user(self.manager)
        response = self.client.patch(f'/api/v1/equipment/{mixer.id}/', {'checkout_status': 'available'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['checkout_status'], 'checked_out')
        self.assertEqual(response.data['current_quantity_out'], 1)

        response = self.client.patch(f'/api/v1/equipment/{mixer.id}/', {'checkout_status': 'retired'}, format='json')
        self.assertEqual(response.data['checkout_status'], 'retired')

        spare = TestDataFactory.create_equipment(available_quantity=2)
        response = self.client.patch(f'/api/v1/equipment/{spare.id}/', {'checkout_status': 'checked_out'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('checkout_status', response.data['errors'])

    def test_history(self):
        camera = TestDataFactory.create_equipment()
        TestDataFactory.create_checkout(self.staff, [(camera, 1)])
        TestDataFactory.create_maintenance_record(camera)
        response = self.client.get(f'/api/v1/equipment/{camera.id}/history/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['checkouts']), 1)
        self.assertEqual(len(response.data['maintenance']), 1)


@override_settings(NOTIFICATIONS=RECORDING_NOTIFICATIONS)
class CheckoutAPITests(TestCase):
    """Test checkout endpoints end to end"""

    def setUp(self):
        RecordingNotificationPublisher.reset()
        self.staff = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.reception = TestDataFactory.create_reception()
        self.camera = TestDataFactory.create_equipment(name='Camera', available_quantity=5)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.staff)

    def request_checkout(self, quantity, days=3):
        return self.client.post('/api/v1/equipment/checkout/request/', {
            'items': [{'equipment': self.camera.id, 'quantity': quantity}],
            'purpose': 'Interview shoot',
            'expected_return_date': in_days(days).isoformat(),
        }, format='json')

    def test_full_lifecycle(self):
        response = self.request_checkout(3)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'pending_approval')
        checkout_id = response.data['id']

        # Requester cannot approve
        response = self.client.put(f'/api/v1/equipment/checkout/{checkout_id}/approve/', {'approved': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(self.reception)
        response = self.client.put(f'/api/v1/equipment/checkout/{checkout_id}/approve/', {'approved': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'approved')
        self.assertEqual(response.data['items'][0]['equipment']['actual_available_quantity'], 2)

        response = self.client.put(f'/api/v1/equipment/checkout/{checkout_id}/handoff/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'checked_out')

        self.client.authenticate_user(self.other)
        response = self.request_checkout(3)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertIn('unavailable', response.data['errors'])

        self.client.authenticate_user(self.reception)
        response = self.client.put(f'/api/v1/equipment/checkout/{checkout_id}/return/', {
            'items': [{'equipment': self.camera.id, 'condition': 'good'}],
            'notes': 'All fine',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'returned')
        self.camera.refresh_from_db()
        self.assertEqual(self.camera.current_quantity_out, 0)
        self.assertEqual(self.camera.checkout_status, 'available')

    def test_invalid_transition_returns_400(self):
        response = self.request_checkout(1)
        self.client.authenticate_user(self.reception)
        response = self.client.put(f"/api/v1/equipment/checkout/{response.data['id']}/return/", {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])

    def test_unknown_checkout_returns_404(self):
        self.client.authenticate_user(self.reception)
        response = self.client.put('/api/v1/equipment/checkout/9999/handoff/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_requester_can_cancel(self):
        response = self.request_checkout(1)
        response = self.client.put(f"/api/v1/equipment/checkout/{response.data['id']}/cancel/", {'notes': 'No longer needed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'cancelled')

    def test_history_is_scoped_and_reports_overdue(self):
        late = TestDataFactory.create_checkout(
            self.staff, [(self.camera, 1)], status='checked_out', expected_return_date=in_days(-1)
        )
        TestDataFactory.create_checkout(self.other, [(self.camera, 1)])

        response = self.client.get('/api/v1/equipment/checkout/history/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['status'], 'overdue')
        self.assertTrue(response.data['results'][0]['is_overdue'])

        response = self.client.get('/api/v1/equipment/checkout/history/', {'status': 'overdue'})
        self.assertEqual([row['id'] for row in response.data['results']], [late.id])

        self.client.authenticate_user(self.reception)
        response = self.client.get('/api/v1/equipment/checkout/history/')
        self.assertEqual(response.data['count'], 2)

        response = self.client.get('/api/v1/equipment/checkout/overdue/')
        self.assertEqual([row['id'] for row in response.data], [late.id])

    def test_pending_list_requires_approver(self):
        self.request_checkout(1)
        response = self.client.get('/api/v1/equipment/checkout/pending/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(self.reception)
        response = self.client.get('/api/v1/equipment/checkout/pending/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_detail_of_other_users_checkout_is_forbidden(self):
        checkout = TestDataFactory.create_checkout(self.other, [(self.camera, 1)])
        response = self.client.get(f'/api/v1/equipment/checkout/{checkout.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_extension_endpoints(self):
        response = self.request_checkout(1)
        checkout_id = response.data['id']
        self.client.authenticate_user(self.reception)
        self.client.put(f'/api/v1/equipment/checkout/{checkout_id}/approve/', {'approved': True, 'handoff': True}, format='json')

        self.client.authenticate_user(self.staff)
        response = self.client.post(f'/api/v1/equipment/checkout/{checkout_id}/extensions/', {
            'new_return_date': in_days(7).isoformat(), 'reason': 'Extra day of shooting',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        extension_id = response.data['id']

        self.client.authenticate_user(self.reception)
        response = self.client.put(
            f'/api/v1/equipment/checkout/{checkout_id}/extensions/{extension_id}/', {'approved': False}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'rejected')

    def test_checkout_number_in_response(self):
        response = self.request_checkout(1)
        self.assertTrue(re.match(r'^CHK-\d{8}-', response.data['checkout_number']))
        self.assertEqual(response.data['total_quantity'], 1)
