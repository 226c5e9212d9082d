from django.contrib import admin
from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['recipient', 'notification_type', 'title', 'priority', 'read', 'created_at']
    list_filter = ['notification_type', 'priority', 'read', 'created_at']
    search_fields = ['title', 'message', 'recipient__username']
    ordering = ['-created_at']
