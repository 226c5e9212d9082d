"""
Test suite for the notifications module
Tests: service, live channel publishing, endpoints, system notifications
"""
from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.exceptions import NotFound, ValidationError

from studiodesk.core.test_utils import (
    TestDataFactory, AuthenticatedAPIClient, RecordingNotificationPublisher,
    FailingNotificationPublisher, RECORDING_NOTIFICATIONS,
)
from studiodesk.notifications.models import Notification
from studiodesk.notifications.publishers import channel_for_user, NullNotificationPublisher
from studiodesk.notifications.services import NotificationService, get_notification_service


class NotificationServiceTests(TestCase):
    """Test NotificationService with an in-memory publisher"""

    def setUp(self):
        RecordingNotificationPublisher.reset()
        self.service = NotificationService(RecordingNotificationPublisher())
        self.user = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()

    def notify(self, user=None, title='Hello'):
        return self.service.create_notification(
            recipient=user or self.user,
            notification_type='system',
            title=title,
            message='Message body',
        )

    def test_publishes_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            notification = self.notify()

        events = RecordingNotificationPublisher.events_for(self.user.id)
        self.assertEqual([name for _, name, _ in events], ['new_notification', 'unread_count'])
        self.assertEqual(events[0][2]['id'], notification.id)
        self.assertEqual(events[0][2]['type'], 'system')
        self.assertEqual(events[1][2], {'count': 1})

    def test_nothing_published_before_commit(self):
        with self.captureOnCommitCallbacks() as callbacks:
            self.notify()
        self.assertEqual(len(callbacks), 1)
        self.assertEqual(RecordingNotificationPublisher.events, [])

    def test_publisher_failure_keeps_notification(self):
        service = NotificationService(FailingNotificationPublisher())
        with self.captureOnCommitCallbacks(execute=True):
            notification = service.create_notification(
                recipient=self.user, notification_type='system', title='Down', message='Channel down'
            )
        self.assertTrue(Notification.objects.filter(pk=notification.pk).exists())

    def test_related_id_is_stored_as_text(self):
        notification = self.service.create_notification(
            recipient=self.user, notification_type='maintenance', title='Due', message='Due soon',
            related_model='Equipment', related_id=42,
        )
        self.assertEqual(notification.related_id, '42')

    def test_notify_users_skips_duplicates(self):
        created = self.service.notify_users(
            [self.user, self.user, None, self.other],
            notification_type='system', title='Hi', message='There',
        )
        self.assertEqual(len(created), 2)

    def test_notify_roles_includes_superusers(self):
        reception = TestDataFactory.create_reception()
        superuser = TestDataFactory.create_user(is_superuser=True)
        TestDataFactory.create_reception(is_active=False)

        created = self.service.notify_roles(
            ['super_admin', 'reception'], exclude=None,
            notification_type='system', title='Hi', message='There',
        )
        self.assertEqual({n.recipient_id for n in created}, {reception.id, superuser.id})

    def test_unread_count_and_mark_read(self):
        first = self.notify()
        self.notify()
        self.notify(user=self.other)
        self.assertEqual(self.service.unread_count(self.user), 2)

        with self.captureOnCommitCallbacks(execute=True):
            self.service.mark_read(first.id, self.user)
        self.assertEqual(self.service.unread_count(self.user), 1)
        self.assertEqual(RecordingNotificationPublisher.events_for(self.user.id, 'unread_count')[-1][2], {'count': 1})

        first.refresh_from_db()
        self.assertTrue(first.read)
        self.assertIsNotNone(first.read_at)

        self.service.mark_unread(first.id, self.user)
        first.refresh_from_db()
        self.assertFalse(first.read)
        self.assertIsNone(first.read_at)

    def test_mark_all_read(self):
        self.notify()
        self.notify()
        self.notify(user=self.other)
        self.assertEqual(self.service.mark_all_read(self.user), 2)
        self.assertEqual(self.service.unread_count(self.user), 0)
        self.assertEqual(self.service.unread_count(self.other), 1)

    def test_cannot_touch_other_users_notifications(self):
        foreign = self.notify(user=self.other)
        with self.assertRaises(NotFound):
            self.service.mark_read(foreign.id, self.user)
        with self.assertRaises(NotFound):
            self.service.delete(foreign.id, self.user)
        foreign.refresh_from_db()
        self.assertFalse(foreign.read)

    def test_list_for_user_is_newest_first(self):
        self.notify(title='First')
        self.notify(title='Second')
        self.notify(user=self.other, title='Foreign')
        page = self.service.list_for_user(self.user, page=1, limit=1)
        self.assertEqual(page.paginator.count, 2)
        self.assertEqual(page.object_list[0].title, 'Second')

    def test_system_notification_defaults_to_super_admins(self):
        admin = TestDataFactory.create_admin()
        self.assertEqual(self.service.send_system_notification('Backup', 'Backup finished'), 1)
        self.assertTrue(Notification.objects.filter(recipient=admin, notification_type='system').exists())

    def test_system_notification_requires_text(self):
        with self.assertRaises(ValidationError):
            self.service.send_system_notification('', 'Body')

    @override_settings(NOTIFICATIONS=RECORDING_NOTIFICATIONS)
    def test_factory_uses_configured_publisher(self):
        self.assertIsInstance(get_notification_service().publisher, RecordingNotificationPublisher)

    @override_settings(NOTIFICATIONS={})
    def test_factory_defaults_to_null_publisher(self):
        service = get_notification_service()
        self.assertIsInstance(service.publisher, NullNotificationPublisher)
        self.assertEqual(service.publisher.publish(self.user.id, 'unread_count', {'count': 0}), 0)

    @override_settings(NOTIFICATIONS={'CHANNEL_PREFIX': 'studio:user:'})
    def test_channel_name(self):
        self.assertEqual(channel_for_user(7), 'studio:user:7')


@override_settings(NOTIFICATIONS=RECORDING_NOTIFICATIONS)
class NotificationAPITests(TestCase):
    """Test notification endpoints"""

    def setUp(self):
        RecordingNotificationPublisher.reset()
        self.user = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.admin = TestDataFactory.create_admin()
        self.service = get_notification_service()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

        self.own = [
            self.service.create_notification(self.user, 'system', f'Note {i}', 'Body') for i in range(3)
        ]
        self.foreign = self.service.create_notification(self.other, 'system', 'Foreign', 'Body')

    def test_list_notifications(self):
        response = self.client.get('/api/v1/notifications/', {'limit': 2})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(len(response.data['results']), 2)
        self.assertEqual(response.data['unread_count'], 3)
        self.assertEqual(response.data['next'], 2)
        self.assertEqual(response.data['results'][0]['type'], 'system')

    def test_unread_only(self):
        self.service.mark_read(self.own[0].id, self.user)
        response = self.client.get('/api/v1/notifications/', {'unread_only': 'true'})
        self.assertEqual(response.data['count'], 2)

    def test_unread_count(self):
        response = self.client.get('/api/v1/notifications/unread-count/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)

    def test_mark_read_and_unread(self):
        response = self.client.put(f'/api/v1/notifications/{self.own[0].id}/read/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['read'])

        response = self.client.put(f'/api/v1/notifications/{self.own[0].id}/unread/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['read'])

    def test_mark_all_read(self):
        response = self.client.put('/api/v1/notifications/read-all/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['updated'], 3)
        self.assertEqual(Notification.objects.filter(recipient=self.other, read=False).count(), 1)

    def test_delete(self):
        response = self.client.delete(f'/api/v1/notifications/{self.own[0].id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Notification.objects.filter(pk=self.own[0].id).exists())

    def test_foreign_notification_is_not_found(self):
        response = self.client.put(f'/api/v1/notifications/{self.foreign.id}/read/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['success'])

        response = self.client.delete(f'/api/v1/notifications/{self.foreign.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertTrue(Notification.objects.filter(pk=self.foreign.id).exists())

    def test_system_notification_requires_super_admin(self):
        response = self.client.post('/api/v1/notifications/system/', {'title': 'Hi', 'message': 'All'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_send_system_notification_to_roles(self):
        reception = TestDataFactory.create_reception()
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/notifications/system/', {
            'title': 'Studio closed',
            'message': 'Studio A is closed on Friday',
            'roles': ['reception'],
            'priority': 'high',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['sent'], 1)
        notification = Notification.objects.get(recipient=reception)
        self.assertEqual(notification.priority, 'high')

    def test_send_system_notification_to_users(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/notifications/system/', {
            'title': 'Reminder',
            'message': 'Timesheets due',
            'recipients': [self.user.id, self.other.id],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['sent'], 2)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/notifications/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
