# Generated manually

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models

CONDITION_CHOICES = [('excellent', 'Excellent'), ('good', 'Good'), ('fair', 'Fair'), ('poor', 'Poor'), ('damaged', 'Damaged')]


def rate_field():
    return models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('core', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Equipment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200, unique=True)),
                ('category', models.CharField(choices=[('audio', 'Audio'), ('video', 'Video'), ('lighting', 'Lighting'), ('presentation', 'Presentation'), ('streaming', 'Streaming'), ('accessories', 'Accessories')], max_length=20)),
                ('description', models.TextField(blank=True)),
                ('specifications', models.TextField(blank=True)),
                ('studio_daily_rate', rate_field()),
                ('studio_hourly_rate', rate_field()),
                ('event_daily_rate', rate_field()),
                ('event_hourly_rate', rate_field()),
                ('rental_daily_rate', rate_field()),
                ('rental_hourly_rate', rate_field()),
                ('rental_weekly_rate', rate_field()),
                ('rental_monthly_rate', rate_field()),
                ('available_quantity', models.PositiveIntegerField(default=1, help_text='Total units owned')),
                ('current_quantity_out', models.PositiveIntegerField(default=0, help_text='Units reserved or handed out')),
                ('checkout_status', models.CharField(choices=[('available', 'Available'), ('checked_out', 'Checked Out'), ('maintenance', 'Maintenance'), ('damaged', 'Damaged'), ('retired', 'Retired')], default='available', max_length=20)),
                ('condition', models.CharField(choices=CONDITION_CHOICES, default='good', max_length=20)),
                ('maintenance_status', models.CharField(choices=[('up_to_date', 'Up to Date'), ('due_soon', 'Due Soon'), ('overdue', 'Overdue'), ('in_maintenance', 'In Maintenance')], default='up_to_date', max_length=20)),
                ('next_maintenance_date', models.DateField(blank=True, null=True)),
                ('tags', models.JSONField(blank=True, default=list)),
                ('usage_type', models.JSONField(blank=True, default=list, help_text='Subset of studio/event/rental')),
                ('equipment_code', models.CharField(blank=True, max_length=50, null=True, unique=True)),
                ('serial_number', models.CharField(blank=True, max_length=100)),
                ('brand', models.CharField(blank=True, max_length=100)),
                ('model', models.CharField(blank=True, max_length=100)),
                ('purchase_date', models.DateField(blank=True, null=True)),
                ('purchase_price', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('location', models.CharField(default='storage', max_length=200)),
                ('notes', models.TextField(blank=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('assigned_to', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='assigned_equipment', to=settings.AUTH_USER_MODEL)),
                ('created_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_equipment', to=settings.AUTH_USER_MODEL)),
                ('department', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='equipment', to='core.department')),
            ],
            options={
                'db_table': 'equipment',
                'ordering': ['name'],
                'indexes': [
                    models.Index(fields=['category', 'is_active'], name='idx_equipment_category'),
                    models.Index(fields=['checkout_status'], name='idx_equipment_checkout_status'),
                    models.Index(fields=['maintenance_status'], name='idx_equipment_maint_status'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('current_quantity_out__lte', models.F('available_quantity'))), name='equipment_quantity_out_within_owned'),
                ],
            },
        ),
        migrations.CreateModel(
            name='EquipmentCheckout',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('checkout_number', models.CharField(max_length=100, unique=True)),
                ('purpose', models.CharField(max_length=500)),
                ('project', models.CharField(blank=True, max_length=200)),
                ('location', models.CharField(blank=True, max_length=200)),
                ('expected_return_date', models.DateTimeField()),
                ('status', models.CharField(choices=[('pending_approval', 'Pending Approval'), ('approved', 'Approved'), ('checked_out', 'Checked Out'), ('overdue', 'Overdue'), ('returned', 'Returned'), ('cancelled', 'Cancelled')], default='pending_approval', max_length=20)),
                ('request_notes', models.TextField(blank=True)),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('approval_notes', models.TextField(blank=True)),
                ('checked_out_at', models.DateTimeField(blank=True, null=True)),
                ('returned_at', models.DateTimeField(blank=True, null=True)),
                ('return_notes', models.TextField(blank=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('cancellation_notes', models.TextField(blank=True)),
                ('reminders_sent', models.PositiveIntegerField(default=0)),
                ('last_reminder_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('approved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='approved_checkouts', to=settings.AUTH_USER_MODEL)),
                ('cancelled_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='cancelled_checkouts', to=settings.AUTH_USER_MODEL)),
                ('checked_out_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='handed_off_checkouts', to=settings.AUTH_USER_MODEL)),
                ('department', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='equipment_checkouts', to='core.department')),
                ('requester', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='equipment_checkouts', to=settings.AUTH_USER_MODEL)),
                ('returned_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='received_returns', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'equipment_checkouts',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'expected_return_date'], name='idx_checkout_status_due'),
                    models.Index(fields=['requester', 'status'], name='idx_checkout_requester'),
                    models.Index(fields=['-created_at'], name='idx_checkout_created'),
                ],
            },
        ),
        migrations.CreateModel(
            name='CheckoutItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.PositiveIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)])),
                ('checkout_condition', models.CharField(blank=True, choices=CONDITION_CHOICES, max_length=20)),
                ('return_condition', models.CharField(blank=True, choices=CONDITION_CHOICES, max_length=20)),
                ('return_notes', models.TextField(blank=True)),
                ('damage_description', models.TextField(blank=True)),
                ('checkout', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='equipment.equipmentcheckout')),
                ('equipment', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='checkout_items', to='equipment.equipment')),
            ],
            options={
                'db_table': 'equipment_checkout_items',
                'unique_together': {('checkout', 'equipment')},
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('quantity__gte', 1)), name='checkout_item_quantity_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='CheckoutExtension',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('new_return_date', models.DateTimeField()),
                ('reason', models.TextField(blank=True)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='pending', max_length=20)),
                ('decided_at', models.DateTimeField(blank=True, null=True)),
                ('decision_notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('checkout', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='extensions', to='equipment.equipmentcheckout')),
                ('decided_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='decided_extensions', to=settings.AUTH_USER_MODEL)),
                ('requested_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='checkout_extensions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'equipment_checkout_extensions',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='MaintenanceRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('maintenance_type', models.CharField(choices=[('routine', 'Routine'), ('repair', 'Repair'), ('inspection', 'Inspection'), ('calibration', 'Calibration'), ('cleaning', 'Cleaning')], default='routine', max_length=20)),
                ('description', models.TextField()),
                ('cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('performed_date', models.DateField(default=django.utils.timezone.localdate)),
                ('next_maintenance_date', models.DateField(blank=True, null=True)),
                ('status', models.CharField(choices=[('completed', 'Completed'), ('pending', 'Pending'), ('in_progress', 'In Progress')], default='completed', max_length=20)),
                ('notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('equipment', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='maintenance_records', to='equipment.equipment')),
                ('performed_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='maintenance_records', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'equipment_maintenance_records',
                'ordering': ['-performed_date', '-id'],
                'indexes': [
                    models.Index(fields=['equipment', '-performed_date'], name='idx_maintenance_equipment'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('cost__gte', 0)), name='maintenance_cost_non_negative'),
                ],
            },
        ),
    ]
