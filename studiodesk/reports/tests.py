"""
Test suite for the reports module
Tests: dashboard, maintenance report, equipment utilization, checkout summary, caching
"""
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from studiodesk.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from studiodesk.equipment.models import EquipmentCheckout


class ReportsTests(TestCase):
    """Test report endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_reception()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

        today = timezone.localdate()
        self.range = {
            'date_from': (today - timedelta(days=1)).isoformat(),
            'date_to': (today + timedelta(days=1)).isoformat(),
        }

    def test_staff_cannot_view_reports(self):
        """Reports are limited to admins and reception"""
        self.client.authenticate_user(TestDataFactory.create_user())
        for url in ('/api/v1/reports/dashboard/', '/api/v1/reports/maintenance/',
                    '/api/v1/reports/equipment-utilization/', '/api/v1/reports/checkouts/'):
            response = self.client.get(url)
            self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN, url)

    def test_dashboard(self):
        """Test dashboard counts"""
        camera = TestDataFactory.create_equipment(available_quantity=4, current_quantity_out=3)
        TestDataFactory.create_equipment(available_quantity=1, checkout_status='maintenance')
        TestDataFactory.create_checkout(self.user, [(camera, 1)])
        TestDataFactory.create_checkout(
            self.user, [(camera, 2)], status='checked_out',
            expected_return_date=timezone.now() - timedelta(days=1),
        )

        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['equipment']['total_items'], 2)
        self.assertEqual(response.data['equipment']['units_owned'], 5)
        self.assertEqual(response.data['equipment']['units_available'], 2)
        self.assertEqual(response.data['equipment']['by_checkout_status']['maintenance'], 1)
        self.assertEqual(response.data['checkouts']['pending'], 1)
        self.assertEqual(response.data['checkouts']['active'], 1)
        self.assertEqual(response.data['checkouts']['overdue'], 1)

    def test_dashboard_cache_invalidated_on_change(self):
        """Test cached dashboard is refreshed when equipment changes"""
        TestDataFactory.create_equipment()
        first = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(first.data['equipment']['total_items'], 1)

        cached = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(cached.data['generated_at'], first.data['generated_at'])

        TestDataFactory.create_equipment()
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.data['equipment']['total_items'], 2)

    def test_dashboard_overdue_count_is_never_stale(self):
        """Cached equipment cards are reused but overdue follows the clock"""
        camera = TestDataFactory.create_equipment(available_quantity=2, current_quantity_out=1)
        checkout = TestDataFactory.create_checkout(
            self.user, [(camera, 1)], status='checked_out',
            expected_return_date=timezone.now() + timedelta(hours=1),
        )
        first = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(first.data['checkouts']['overdue'], 0)

        # Queryset update skips the invalidation signals, like a deadline passing
        EquipmentCheckout.objects.filter(pk=checkout.pk).update(
            expected_return_date=timezone.now() - timedelta(minutes=5)
        )
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.data['generated_at'], first.data['generated_at'])
        self.assertEqual(response.data['checkouts']['overdue'], 1)
        self.assertEqual(response.data['checkouts']['active'], 1)

    def test_checkout_summary_overdue_count_is_never_stale(self):
        camera = TestDataFactory.create_equipment(available_quantity=2)
        checkout = TestDataFactory.create_checkout(
            self.user, [(camera, 1)], status='checked_out',
            expected_return_date=timezone.now() + timedelta(hours=1),
        )
        response = self.client.get('/api/v1/reports/checkouts/', self.range)
        self.assertEqual(response.data['summary']['by_status']['checked_out'], 1)

        EquipmentCheckout.objects.filter(pk=checkout.pk).update(
            expected_return_date=timezone.now() - timedelta(minutes=5)
        )
        response = self.client.get('/api/v1/reports/checkouts/', self.range)
        self.assertEqual(response.data['summary']['by_status']['overdue'], 1)
        self.assertEqual(response.data['summary']['by_status']['checked_out'], 0)
        self.assertEqual(response.data['summary']['total_checkouts'], 1)

    def test_maintenance_report_uses_todays_date(self):
        """A stored label left behind by the calendar is re-derived"""
        today = timezone.localdate()
        TestDataFactory.create_equipment(name='Stale light', maintenance_status='up_to_date',
                                         next_maintenance_date=today + timedelta(days=2))

        response = self.client.get('/api/v1/reports/maintenance/')
        self.assertEqual(response.data['statistics']['due_soon'], 1)
        self.assertEqual(response.data['statistics']['up_to_date'], 0)
        self.assertEqual(response.data['needing_maintenance'][0]['maintenance_status'], 'due_soon')

        with patch('django.utils.timezone.localdate', return_value=today + timedelta(days=5)):
            response = self.client.get('/api/v1/reports/maintenance/')
            self.assertEqual(response.data['statistics']['overdue'], 1)

            response = self.client.get('/api/v1/reports/dashboard/')
            self.assertEqual(response.data['equipment']['by_maintenance_status']['overdue'], 1)

    def test_maintenance_report(self):
        """Test maintenance statistics and cost totals"""
        today = timezone.localdate()
        overdue = TestDataFactory.create_equipment(name='Overdue light', maintenance_status='overdue',
                                                   next_maintenance_date=today - timedelta(days=2))
        TestDataFactory.create_equipment(name='Fine mic')
        TestDataFactory.create_maintenance_record(overdue, cost=Decimal('120.50'), maintenance_type='repair')
        TestDataFactory.create_maintenance_record(overdue, cost=Decimal('30.00'))

        response = self.client.get('/api/v1/reports/maintenance/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['statistics']['total'], 2)
        self.assertEqual(response.data['statistics']['overdue'], 1)
        self.assertEqual(response.data['statistics']['up_to_date'], 1)
        self.assertEqual([item['name'] for item in response.data['needing_maintenance']], ['Overdue light'])
        self.assertEqual(response.data['total_cost'], 150.5)

        response = self.client.get('/api/v1/reports/maintenance/', {'type': 'repair'})
        self.assertEqual(len(response.data['recent_maintenance']), 1)
        self.assertEqual(response.data['total_cost'], 120.5)

    def test_maintenance_report_invalid_date(self):
        response = self.client.get('/api/v1/reports/maintenance/', {'start_date': '2024-13-01'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])

    def test_equipment_utilization(self):
        """Test utilization counts handed-off lines in the period"""
        camera = TestDataFactory.create_equipment(name='Camera', available_quantity=4, current_quantity_out=2)
        TestDataFactory.create_equipment(name='Tripod', available_quantity=2)
        checkout = TestDataFactory.create_checkout(self.user, [(camera, 2)], status='checked_out')
        EquipmentCheckout.objects.filter(pk=checkout.pk).update(checked_out_at=timezone.now())

        response = self.client.get('/api/v1/reports/equipment-utilization/', self.range)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['period']['from'], self.range['date_from'])
        items = {item['name']: item for item in response.data['items']}
        self.assertEqual(items['Camera']['checkout_count'], 1)
        self.assertEqual(items['Camera']['units_checked_out'], 2)
        self.assertEqual(items['Camera']['utilization_rate'], 0.5)
        self.assertEqual(items['Tripod']['checkout_count'], 0)
        self.assertEqual(response.data['items'][0]['name'], 'Camera')

    def test_utilization_rejects_inverted_range(self):
        response = self.client.get('/api/v1/reports/equipment-utilization/', {
            'date_from': self.range['date_to'], 'date_to': self.range['date_from'],
        })
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_checkout_summary(self):
        """Test checkout summary by effective status"""
        camera = TestDataFactory.create_equipment(available_quantity=5)
        other = TestDataFactory.create_user()
        TestDataFactory.create_checkout(self.user, [(camera, 1)])
        TestDataFactory.create_checkout(self.user, [(camera, 2)], status='checked_out',
                                        expected_return_date=timezone.now() - timedelta(hours=2))
        TestDataFactory.create_checkout(other, [(camera, 1)], status='returned')

        response = self.client.get('/api/v1/reports/checkouts/', self.range)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        summary = response.data['summary']
        self.assertEqual(summary['total_checkouts'], 3)
        self.assertEqual(summary['units_requested'], 4)
        self.assertEqual(summary['by_status']['overdue'], 1)
        self.assertEqual(summary['by_status']['checked_out'], 0)
        self.assertEqual(summary['by_status']['pending_approval'], 1)
        self.assertEqual(sum(day['count'] for day in response.data['daily_breakdown']), 3)
        self.assertEqual(response.data['top_requesters'][0]['id'], self.user.id)
        self.assertEqual(response.data['top_requesters'][0]['count'], 2)
