from rest_framework import serializers
from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    type = serializers.CharField(source='notification_type', read_only=True)

    class Meta:
        model = Notification
        fields = ['id', 'type', 'title', 'message', 'read', 'read_at', 'related_model', 'related_id',
                  'priority', 'metadata', 'created_at']
        read_only_fields = fields


class SystemNotificationSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    message = serializers.CharField()
    recipients = serializers.ListField(child=serializers.IntegerField(), required=False, allow_empty=True)
    roles = serializers.ListField(child=serializers.CharField(), required=False, allow_empty=True)
    priority = serializers.ChoiceField(choices=Notification.PRIORITY_CHOICES, default='medium')
    metadata = serializers.DictField(required=False)
