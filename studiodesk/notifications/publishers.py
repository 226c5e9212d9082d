"""
Live notification channel publishers
Delivery is fire-and-forget: a publisher never raises, it reports how many
subscribers received the message (0 on failure).
"""
import json
import logging

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_PREFIX = 'notifications:user:'


def channel_for_user(user_id):
    prefix = settings.NOTIFICATIONS.get('CHANNEL_PREFIX', DEFAULT_CHANNEL_PREFIX)
    return f"{prefix}{user_id}"


class NullNotificationPublisher:
    """Publisher used when no live channel is configured"""

    def publish(self, user_id, event, data):
        logger.debug(f"Live channel disabled, dropping {event} for user {user_id}")
        return 0


class RedisNotificationPublisher:
    """PUBLISH a JSON envelope on the recipient's Redis channel"""

    def __init__(self, connection_alias='default'):
        self.connection_alias = connection_alias

    def get_connection(self):
        from django_redis import get_redis_connection
        return get_redis_connection(self.connection_alias)

    def publish(self, user_id, event, data):
        channel = channel_for_user(user_id)
        try:
            payload = json.dumps({'event': event, 'data': data}, cls=DjangoJSONEncoder)
            receivers = self.get_connection().publish(channel, payload)
            logger.debug(f"Published {event} to {channel} ({receivers} receivers)")
            return receivers
        except Exception as e:
            logger.warning(f"Could not publish {event} to {channel}: {str(e)}")
            return 0
