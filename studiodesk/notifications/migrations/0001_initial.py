# Generated manually

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('notification_type', models.CharField(choices=[('task_assignment', 'Task Assignment'), ('task_status', 'Task Status'), ('deadline_reminder', 'Deadline Reminder'), ('overdue_task', 'Overdue Task'), ('progress_update', 'Progress Update'), ('client_feedback', 'Client Feedback'), ('system', 'System'), ('equipment_checkout', 'Equipment Checkout'), ('equipment_return', 'Equipment Return'), ('equipment_overdue', 'Equipment Overdue'), ('maintenance', 'Maintenance')], max_length=30)),
                ('title', models.CharField(max_length=255)),
                ('message', models.TextField()),
                ('read', models.BooleanField(default=False)),
                ('read_at', models.DateTimeField(blank=True, null=True)),
                ('related_model', models.CharField(blank=True, choices=[('Task', 'Task'), ('StudioBooking', 'Studio Booking'), ('Invoice', 'Invoice'), ('User', 'User'), ('Equipment', 'Equipment'), ('EquipmentCheckout', 'Equipment Checkout')], max_length=30, null=True)),
                ('related_id', models.CharField(blank=True, max_length=100, null=True)),
                ('priority', models.CharField(choices=[('low', 'Low'), ('medium', 'Medium'), ('high', 'High'), ('urgent', 'Urgent')], default='medium', max_length=10)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('recipient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'notifications',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['recipient', 'read'], name='idx_notification_unread'),
                    models.Index(fields=['recipient', '-created_at'], name='idx_notification_recent'),
                    models.Index(fields=['related_model', 'related_id'], name='idx_notification_related'),
                ],
            },
        ),
    ]
