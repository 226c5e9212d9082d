from django.contrib.auth.models import AbstractUser
from django.db import models


class Department(models.Model):
    """Studio departments (video, audio, events, ...)"""
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'departments'
        ordering = ['name']


class User(AbstractUser):
    """Extended user model with a studio role"""
    ROLE_CHOICES = [
        ('super_admin', 'Super Admin'),
        ('department_admin', 'Department Admin'),
        ('reception', 'Reception'),
        ('department_staff', 'Department Staff'),
        ('client', 'Client'),
    ]

    phone = models.CharField(max_length=20, blank=True, null=True)
    role = models.CharField(max_length=30, choices=ROLE_CHOICES, default='department_staff')
    department = models.ForeignKey(Department, on_delete=models.SET_NULL, null=True, blank=True, related_name='users')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def effective_role(self):
        # Superusers created from the shell carry the default role
        if self.is_superuser:
            return 'super_admin'
        return self.role

    @property
    def display_name(self):
        return self.get_full_name() or self.username

    class Meta:
        db_table = 'users'


class ActivityLog(models.Model):
    """Activity log for state-changing operations"""
    ACTION_CHOICES = [
        ('equipment_create', 'Equipment Created'),
        ('equipment_update', 'Equipment Updated'),
        ('equipment_delete', 'Equipment Deleted'),
        ('equipment_checkout_request', 'Checkout Requested'),
        ('equipment_checkout_approve', 'Checkout Approved'),
        ('equipment_checkout_reject', 'Checkout Rejected'),
        ('equipment_checkout_cancel', 'Checkout Cancelled'),
        ('equipment_handoff', 'Equipment Handed Off'),
        ('equipment_return', 'Equipment Returned'),
        ('equipment_extension_request', 'Extension Requested'),
        ('equipment_extension_approve', 'Extension Approved'),
        ('equipment_extension_reject', 'Extension Rejected'),
        ('maintenance_create', 'Maintenance Recorded'),
        ('user_create', 'User Created'),
        ('user_update', 'User Updated'),
        ('user_delete', 'User Deleted'),
        ('department_create', 'Department Created'),
        ('department_update', 'Department Updated'),
        ('department_delete', 'Department Deleted'),
        ('notification_system', 'System Notification Sent'),
        ('view', 'View'),
        ('export', 'Export'),
    ]

    RESOURCE_CHOICES = [
        ('equipment', 'Equipment'),
        ('equipment_checkout', 'Equipment Checkout'),
        ('maintenance', 'Maintenance'),
        ('user', 'User'),
        ('department', 'Department'),
        ('notification', 'Notification'),
        ('report', 'Report'),
        ('system', 'System'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='activity_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    resource = models.CharField(max_length=30, choices=RESOURCE_CHOICES)
    resource_id = models.CharField(max_length=100, blank=True)
    description = models.CharField(max_length=255, blank=True, help_text="Human-readable summary (e.g. checkout number, equipment name)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=255, blank=True)
    success = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'activity_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='idx_activity_created'),
            models.Index(fields=['action'], name='idx_activity_action'),
            models.Index(fields=['resource', 'resource_id'], name='idx_activity_resource'),
            models.Index(fields=['user', '-created_at'], name='idx_activity_user'),
        ]
