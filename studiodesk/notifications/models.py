from django.db import models


class Notification(models.Model):
    """Persisted notification feed entry; the durable record of every event"""
    TYPE_CHOICES = [
        ('task_assignment', 'Task Assignment'),
        ('task_status', 'Task Status'),
        ('deadline_reminder', 'Deadline Reminder'),
        ('overdue_task', 'Overdue Task'),
        ('progress_update', 'Progress Update'),
        ('client_feedback', 'Client Feedback'),
        ('system', 'System'),
        ('equipment_checkout', 'Equipment Checkout'),
        ('equipment_return', 'Equipment Return'),
        ('equipment_overdue', 'Equipment Overdue'),
        ('maintenance', 'Maintenance'),
    ]

    RELATED_MODEL_CHOICES = [
        ('Task', 'Task'),
        ('StudioBooking', 'Studio Booking'),
        ('Invoice', 'Invoice'),
        ('User', 'User'),
        ('Equipment', 'Equipment'),
        ('EquipmentCheckout', 'Equipment Checkout'),
    ]

    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]

    recipient = models.ForeignKey('core.User', on_delete=models.CASCADE, related_name='notifications')
    notification_type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    title = models.CharField(max_length=255)
    message = models.TextField()
    read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    related_model = models.CharField(max_length=30, choices=RELATED_MODEL_CHOICES, null=True, blank=True)
    related_id = models.CharField(max_length=100, null=True, blank=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='medium')
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.recipient_id}: {self.title}"

    class Meta:
        db_table = 'notifications'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['recipient', 'read'], name='idx_notification_unread'),
            models.Index(fields=['recipient', '-created_at'], name='idx_notification_recent'),
            models.Index(fields=['related_model', 'related_id'], name='idx_notification_related'),
        ]
