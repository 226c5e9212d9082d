"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from studiodesk.core.models import Department
from studiodesk.equipment.models import Equipment, EquipmentCheckout, CheckoutItem, MaintenanceRecord
from decimal import Decimal
from datetime import timedelta
from django.utils import timezone
import random
import string

User = get_user_model()

RECORDING_PUBLISHER = 'studiodesk.core.test_utils.RecordingNotificationPublisher'
RECORDING_NOTIFICATIONS = {
    'PUBLISHER': RECORDING_PUBLISHER,
    'CHANNEL_PREFIX': 'notifications:user:',
}


class RecordingNotificationPublisher:
    """Publisher that keeps every published event in memory"""
    events = []

    def publish(self, user_id, event, data):
        RecordingNotificationPublisher.events.append((user_id, event, data))
        return 1

    @classmethod
    def reset(cls):
        cls.events = []

    @classmethod
    def events_for(cls, user_id, event=None):
        return [
            (uid, name, data) for uid, name, data in cls.events
            if uid == user_id and (event is None or name == event)
        ]


class FailingNotificationPublisher:
    """Publisher whose channel is down"""

    def publish(self, user_id, event, data):
        raise ConnectionError('live channel unavailable')


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role='department_staff',
                    department=None, is_superuser=False, is_active=True):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        user = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            department=department,
            is_superuser=is_superuser,
            is_active=is_active,
        )
        return user

    @staticmethod
    def create_admin(**kwargs):
        return TestDataFactory.create_user(role='super_admin', **kwargs)

    @staticmethod
    def create_reception(**kwargs):
        return TestDataFactory.create_user(role='reception', **kwargs)

    @staticmethod
    def create_department_admin(**kwargs):
        return TestDataFactory.create_user(role='department_admin', **kwargs)

    @staticmethod
    def create_department(name=None):
        """Create a test department"""
        if not name:
            name = f'Department_{TestDataFactory.random_string(6)}'
        return Department.objects.create(name=name, description=f'Test department {name}')

    @staticmethod
    def create_equipment(name=None, category='video', available_quantity=1, current_quantity_out=0,
                         checkout_status='available', created_by=None, **kwargs):
        """Create a test equipment item"""
        if not name:
            name = f'Equipment_{TestDataFactory.random_string(6)}'
        return Equipment.objects.create(
            name=name,
            category=category,
            available_quantity=available_quantity,
            current_quantity_out=current_quantity_out,
            checkout_status=checkout_status,
            studio_daily_rate=Decimal('100.00'),
            created_by=created_by,
            **kwargs
        )

    @staticmethod
    def create_checkout(requester, lines, status='pending_approval', expected_return_date=None, purpose='Shoot'):
        """
        Create a checkout directly, bypassing the workflow.
        `lines` is a list of (equipment, quantity) pairs; counters are not touched.
        """
        if expected_return_date is None:
            expected_return_date = timezone.now() + timedelta(days=3)
        checkout = EquipmentCheckout.objects.create(
            requester=requester,
            purpose=purpose,
            expected_return_date=expected_return_date,
            status=status,
        )
        for equipment, quantity in lines:
            CheckoutItem.objects.create(checkout=checkout, equipment=equipment, quantity=quantity)
        return checkout

    @staticmethod
    def create_maintenance_record(equipment, status='completed', next_maintenance_date=None,
                                  performed_date=None, maintenance_type='routine', cost=Decimal('0.00')):
        """Create a test maintenance record"""
        return MaintenanceRecord.objects.create(
            equipment=equipment,
            maintenance_type=maintenance_type,
            description=f'Test {maintenance_type}',
            cost=cost,
            performed_date=performed_date or timezone.localdate(),
            next_maintenance_date=next_maintenance_date,
            status=status,
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
