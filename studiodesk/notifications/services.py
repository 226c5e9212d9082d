"""
Notification service
Persists notifications and pushes them to the recipient's live channel once
the surrounding transaction commits.
"""
import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.paginator import Paginator
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from django.utils.module_loading import import_string
from rest_framework.exceptions import NotFound, ValidationError

from .models import Notification

logger = logging.getLogger(__name__)

User = get_user_model()


class NotificationService:
    def __init__(self, publisher):
        self.publisher = publisher

    # --- Live channel ---

    def _publish(self, user_id, event, data):
        try:
            self.publisher.publish(user_id, event, data)
        except Exception as e:
            # Publishers are expected not to raise; the stored row is the durable record
            logger.warning(f"Publisher failed for {event} to user {user_id}: {str(e)}")

    def _push_new_notification(self, notification):
        self._publish(notification.recipient_id, 'new_notification', {
            'id': notification.id,
            'type': notification.notification_type,
            'title': notification.title,
            'message': notification.message,
            'priority': notification.priority,
            'created_at': notification.created_at.isoformat(),
        })
        self._push_unread_count(notification.recipient_id)

    def _push_unread_count(self, user_id):
        self._publish(user_id, 'unread_count', {'count': self.unread_count(user_id)})

    # --- Creation ---

    def create_notification(self, recipient, notification_type, title, message, priority='medium',
                            related_model=None, related_id=None, metadata=None):
        notification = Notification.objects.create(
            recipient=recipient,
            notification_type=notification_type,
            title=title,
            message=message,
            priority=priority,
            related_model=related_model,
            related_id=str(related_id) if related_id is not None else None,
            metadata=metadata or {},
        )
        transaction.on_commit(lambda: self._push_new_notification(notification))
        return notification

    def notify_users(self, users, **kwargs):
        notifications = []
        seen = set()
        for user in users:
            if user is None or user.pk in seen:
                continue
            seen.add(user.pk)
            notifications.append(self.create_notification(recipient=user, **kwargs))
        return notifications

    def users_with_roles(self, roles):
        query = Q(role__in=roles)
        if 'super_admin' in roles:
            query |= Q(is_superuser=True)
        return User.objects.filter(query, is_active=True).order_by('id')

    def notify_roles(self, roles, exclude=None, **kwargs):
        users = self.users_with_roles(roles)
        if exclude is not None:
            users = users.exclude(pk=exclude.pk)
        return self.notify_users(users, **kwargs)

    def send_system_notification(self, title, message, recipients=None, roles=None, priority='medium', metadata=None):
        """Send a system notification to explicit users, to roles, or to super admins by default"""
        if not title or not message:
            raise ValidationError({'message': 'Title and message are required'})

        if recipients:
            users = User.objects.filter(pk__in=recipients, is_active=True).order_by('id')
        elif roles:
            users = self.users_with_roles(roles)
        else:
            users = self.users_with_roles(['super_admin'])

        created = self.notify_users(
            users,
            notification_type='system',
            title=title,
            message=message,
            priority=priority,
            metadata=metadata,
        )
        logger.info(f"System notification '{title}' sent to {len(created)} users")
        return len(created)

    # --- Reading ---

    def queryset_for(self, user, unread_only=False):
        queryset = Notification.objects.filter(recipient=user)
        if unread_only:
            queryset = queryset.filter(read=False)
        return queryset.order_by('-created_at', '-id')

    def list_for_user(self, user, page=1, limit=20, unread_only=False):
        """Return one page of the user's notifications, newest first"""
        paginator = Paginator(self.queryset_for(user, unread_only), limit)
        return paginator.get_page(page)

    def unread_count(self, user):
        user_id = getattr(user, 'pk', user)
        return Notification.objects.filter(recipient_id=user_id, read=False).count()

    def _get_own(self, notification_id, user):
        try:
            return Notification.objects.get(pk=notification_id, recipient=user)
        except Notification.DoesNotExist:
            # Someone else's notification looks the same as a missing one
            raise NotFound('Notification not found')

    # --- Mutations ---

    def mark_read(self, notification_id, user):
        notification = self._get_own(notification_id, user)
        if not notification.read:
            notification.read = True
            notification.read_at = timezone.now()
            notification.save(update_fields=['read', 'read_at'])
            transaction.on_commit(lambda: self._push_unread_count(user.pk))
        return notification

    def mark_unread(self, notification_id, user):
        notification = self._get_own(notification_id, user)
        if notification.read:
            notification.read = False
            notification.read_at = None
            notification.save(update_fields=['read', 'read_at'])
            transaction.on_commit(lambda: self._push_unread_count(user.pk))
        return notification

    def mark_all_read(self, user):
        updated = Notification.objects.filter(recipient=user, read=False).update(
            read=True, read_at=timezone.now()
        )
        transaction.on_commit(lambda: self._publish(user.pk, 'unread_count', {'count': 0}))
        return updated

    def delete(self, notification_id, user):
        notification = self._get_own(notification_id, user)
        notification.delete()
        transaction.on_commit(lambda: self._push_unread_count(user.pk))
        return True


def get_notification_service():
    """Build a service around the publisher configured in settings.NOTIFICATIONS"""
    publisher_path = settings.NOTIFICATIONS.get(
        'PUBLISHER', 'studiodesk.notifications.publishers.NullNotificationPublisher'
    )
    publisher_class = import_string(publisher_path)
    return NotificationService(publisher_class())
