# Generated manually for the custom user model

import django.contrib.auth.models
import django.contrib.auth.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='Department',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, unique=True)),
                ('description', models.TextField(blank=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'departments',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('email', models.EmailField(blank=True, max_length=254, verbose_name='email address')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('phone', models.CharField(blank=True, max_length=20, null=True)),
                ('role', models.CharField(choices=[('super_admin', 'Super Admin'), ('department_admin', 'Department Admin'), ('reception', 'Reception'), ('department_staff', 'Department Staff'), ('client', 'Client')], default='department_staff', max_length=30)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('department', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='users', to='core.department')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'db_table': 'users',
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='ActivityLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(choices=[('equipment_create', 'Equipment Created'), ('equipment_update', 'Equipment Updated'), ('equipment_delete', 'Equipment Deleted'), ('equipment_checkout_request', 'Checkout Requested'), ('equipment_checkout_approve', 'Checkout Approved'), ('equipment_checkout_reject', 'Checkout Rejected'), ('equipment_checkout_cancel', 'Checkout Cancelled'), ('equipment_handoff', 'Equipment Handed Off'), ('equipment_return', 'Equipment Returned'), ('equipment_extension_request', 'Extension Requested'), ('equipment_extension_approve', 'Extension Approved'), ('equipment_extension_reject', 'Extension Rejected'), ('maintenance_create', 'Maintenance Recorded'), ('user_create', 'User Created'), ('user_update', 'User Updated'), ('user_delete', 'User Deleted'), ('department_create', 'Department Created'), ('department_update', 'Department Updated'), ('department_delete', 'Department Deleted'), ('notification_system', 'System Notification Sent'), ('view', 'View'), ('export', 'Export')], max_length=50)),
                ('resource', models.CharField(choices=[('equipment', 'Equipment'), ('equipment_checkout', 'Equipment Checkout'), ('maintenance', 'Maintenance'), ('user', 'User'), ('department', 'Department'), ('notification', 'Notification'), ('report', 'Report'), ('system', 'System')], max_length=30)),
                ('resource_id', models.CharField(blank=True, max_length=100)),
                ('description', models.CharField(blank=True, help_text='Human-readable summary (e.g. checkout number, equipment name)', max_length=255)),
                ('changes', models.JSONField(blank=True, default=dict)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.CharField(blank=True, max_length=255)),
                ('success', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='activity_logs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'activity_logs',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['-created_at'], name='idx_activity_created'),
                    models.Index(fields=['action'], name='idx_activity_action'),
                    models.Index(fields=['resource', 'resource_id'], name='idx_activity_resource'),
                    models.Index(fields=['user', '-created_at'], name='idx_activity_user'),
                ],
            },
        ),
    ]
