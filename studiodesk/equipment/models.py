import math
import uuid
from datetime import timedelta

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Case, CharField, F, Q, Value, When
from django.utils import timezone
from decimal import Decimal

from studiodesk.core.models import Department
from .maintenance import (
    UP_TO_DATE, DUE_SOON, OVERDUE, IN_MAINTENANCE, get_due_soon_days, status_for_date
)


class EquipmentQuerySet(models.QuerySet):
    """Maintenance status is re-derived against today's date at query time"""

    def with_effective_maintenance(self, today=None, lookahead_days=None):
        if 'effective_maintenance_status' in self.query.annotations:
            return self
        today = today or timezone.localdate()
        if lookahead_days is None:
            lookahead_days = get_due_soon_days()
        return self.annotate(
            effective_maintenance_status=Case(
                When(maintenance_status=IN_MAINTENANCE, then=Value(IN_MAINTENANCE)),
                When(next_maintenance_date__isnull=True, then=Value(UP_TO_DATE)),
                When(next_maintenance_date__lt=today, then=Value(OVERDUE)),
                When(next_maintenance_date__lte=today + timedelta(days=lookahead_days), then=Value(DUE_SOON)),
                default=Value(UP_TO_DATE),
                output_field=CharField(),
            )
        )

    def filter_maintenance_status(self, status, today=None):
        return self.with_effective_maintenance(today).filter(effective_maintenance_status=status)


class Equipment(models.Model):
    """Equipment catalog entry; quantities are counted in units"""
    CATEGORY_CHOICES = [
        ('audio', 'Audio'),
        ('video', 'Video'),
        ('lighting', 'Lighting'),
        ('presentation', 'Presentation'),
        ('streaming', 'Streaming'),
        ('accessories', 'Accessories'),
    ]

    CHECKOUT_STATUS_CHOICES = [
        ('available', 'Available'),
        ('checked_out', 'Checked Out'),
        ('maintenance', 'Maintenance'),
        ('damaged', 'Damaged'),
        ('retired', 'Retired'),
    ]

    CONDITION_CHOICES = [
        ('excellent', 'Excellent'),
        ('good', 'Good'),
        ('fair', 'Fair'),
        ('poor', 'Poor'),
        ('damaged', 'Damaged'),
    ]

    MAINTENANCE_STATUS_CHOICES = [
        ('up_to_date', 'Up to Date'),
        ('due_soon', 'Due Soon'),
        ('overdue', 'Overdue'),
        ('in_maintenance', 'In Maintenance'),
    ]

    USAGE_TYPES = ('studio', 'event', 'rental')
    # Statuses under which units cannot be requested or reserved
    UNAVAILABLE_STATUSES = ('maintenance', 'damaged', 'retired')

    name = models.CharField(max_length=200, unique=True)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES)
    description = models.TextField(blank=True)
    specifications = models.TextField(blank=True)

    # Pricing tiers
    studio_daily_rate = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    studio_hourly_rate = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    event_daily_rate = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    event_hourly_rate = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    rental_daily_rate = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    rental_hourly_rate = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    rental_weekly_rate = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    rental_monthly_rate = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])

    available_quantity = models.PositiveIntegerField(default=1, help_text="Total units owned")
    current_quantity_out = models.PositiveIntegerField(default=0, help_text="Units reserved or handed out")
    checkout_status = models.CharField(max_length=20, choices=CHECKOUT_STATUS_CHOICES, default='available')
    condition = models.CharField(max_length=20, choices=CONDITION_CHOICES, default='good')
    maintenance_status = models.CharField(max_length=20, choices=MAINTENANCE_STATUS_CHOICES, default='up_to_date')
    next_maintenance_date = models.DateField(null=True, blank=True)

    tags = models.JSONField(default=list, blank=True)
    usage_type = models.JSONField(default=list, blank=True, help_text="Subset of studio/event/rental")
    equipment_code = models.CharField(max_length=50, unique=True, null=True, blank=True)
    serial_number = models.CharField(max_length=100, blank=True)
    brand = models.CharField(max_length=100, blank=True)
    model = models.CharField(max_length=100, blank=True)
    purchase_date = models.DateField(null=True, blank=True)
    purchase_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True, validators=[MinValueValidator(Decimal('0.00'))])
    location = models.CharField(max_length=200, default='storage')
    department = models.ForeignKey(Department, on_delete=models.SET_NULL, null=True, blank=True, related_name='equipment')
    assigned_to = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='assigned_equipment')
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, related_name='created_equipment')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = EquipmentQuerySet.as_manager()

    def __str__(self):
        return self.name

    def current_maintenance_status(self, today=None):
        """Maintenance label relative to today; an open maintenance job wins"""
        if self.maintenance_status == IN_MAINTENANCE:
            return IN_MAINTENANCE
        return status_for_date(self.next_maintenance_date, today or timezone.localdate(), get_due_soon_days())

    def settled_checkout_status(self):
        """Checkout status implied by the unit counters"""
        if self.current_quantity_out > 0 and self.actual_available_quantity == 0:
            return 'checked_out'
        return 'available'

    @property
    def actual_available_quantity(self):
        """Units that can still be requested"""
        return max(self.available_quantity - self.current_quantity_out, 0)

    @property
    def is_available_for_checkout(self):
        return (
            self.is_active
            and self.checkout_status not in self.UNAVAILABLE_STATUSES
            and self.actual_available_quantity > 0
        )

    def save(self, *args, **kwargs):
        if self.equipment_code:
            self.equipment_code = self.equipment_code.strip().upper()
        else:
            self.equipment_code = None
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'equipment'
        ordering = ['name']
        indexes = [
            models.Index(fields=['category', 'is_active'], name='idx_equipment_category'),
            models.Index(fields=['checkout_status'], name='idx_equipment_checkout_status'),
            models.Index(fields=['maintenance_status'], name='idx_equipment_maint_status'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(current_quantity_out__lte=F('available_quantity')),
                name='equipment_quantity_out_within_owned',
            ),
        ]


class CheckoutQuerySet(models.QuerySet):
    """Overdue is derived from the expected return date, never stored by a timer"""

    def _overdue_q(self, now):
        return Q(status='overdue') | Q(status='checked_out', expected_return_date__lt=now)

    def with_effective_status(self, now=None):
        now = now or timezone.now()
        return self.annotate(
            effective_status=Case(
                When(status='checked_out', expected_return_date__lt=now, then=Value('overdue')),
                default=F('status'),
                output_field=CharField(),
            )
        )

    def active(self):
        """Checkouts whose units are physically out"""
        return self.filter(status__in=EquipmentCheckout.ACTIVE_STATUSES)

    def overdue(self, now=None):
        return self.filter(self._overdue_q(now or timezone.now()))

    def filter_effective_status(self, status, now=None):
        now = now or timezone.now()
        if status == 'overdue':
            return self.filter(self._overdue_q(now))
        if status == 'checked_out':
            return self.filter(status='checked_out', expected_return_date__gte=now)
        return self.filter(status=status)


class EquipmentCheckout(models.Model):
    """Checkout request covering one or more equipment lines"""
    STATUS_CHOICES = [
        ('pending_approval', 'Pending Approval'),
        ('approved', 'Approved'),
        ('checked_out', 'Checked Out'),
        ('overdue', 'Overdue'),
        ('returned', 'Returned'),
        ('cancelled', 'Cancelled'),
    ]

    ACTIVE_STATUSES = ('checked_out', 'overdue')
    # Statuses holding reserved units
    RESERVED_STATUSES = ('approved', 'checked_out', 'overdue')
    TERMINAL_STATUSES = ('returned', 'cancelled')

    checkout_number = models.CharField(max_length=100, unique=True)
    requester = models.ForeignKey('core.User', on_delete=models.PROTECT, related_name='equipment_checkouts')
    department = models.ForeignKey(Department, on_delete=models.SET_NULL, null=True, blank=True, related_name='equipment_checkouts')
    purpose = models.CharField(max_length=500)
    project = models.CharField(max_length=200, blank=True)
    location = models.CharField(max_length=200, blank=True)
    expected_return_date = models.DateTimeField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending_approval')
    request_notes = models.TextField(blank=True)

    approved_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='approved_checkouts')
    approved_at = models.DateTimeField(null=True, blank=True)
    approval_notes = models.TextField(blank=True)
    checked_out_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='handed_off_checkouts')
    checked_out_at = models.DateTimeField(null=True, blank=True)
    returned_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='received_returns')
    returned_at = models.DateTimeField(null=True, blank=True)
    return_notes = models.TextField(blank=True)
    cancelled_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='cancelled_checkouts')
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_notes = models.TextField(blank=True)

    reminders_sent = models.PositiveIntegerField(default=0)
    last_reminder_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = CheckoutQuerySet.as_manager()

    def __str__(self):
        return self.checkout_number

    @staticmethod
    def generate_checkout_number():
        checkout_number = f"CHK-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
        while EquipmentCheckout.objects.filter(checkout_number=checkout_number).exists():
            checkout_number = f"CHK-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
        return checkout_number

    def save(self, *args, **kwargs):
        if not self.checkout_number:
            self.checkout_number = self.generate_checkout_number()
        super().save(*args, **kwargs)

    def get_effective_status(self, now=None):
        now = now or timezone.now()
        if self.status == 'checked_out' and self.expected_return_date and self.expected_return_date < now:
            return 'overdue'
        return self.status

    @property
    def effective_status(self):
        return self.get_effective_status()

    @property
    def is_overdue(self):
        return self.effective_status == 'overdue'

    @property
    def days_overdue(self):
        if not self.is_overdue:
            return 0
        delta = timezone.now() - self.expected_return_date
        return max(math.ceil(delta.total_seconds() / 86400), 0)

    @property
    def duration_days(self):
        """Days since hand-off, up to the return if there was one"""
        if not self.checked_out_at:
            return 0
        end = self.returned_at or timezone.now()
        return max(math.ceil((end - self.checked_out_at).total_seconds() / 86400), 0)

    @property
    def total_quantity(self):
        return sum(item.quantity for item in self.items.all())

    class Meta:
        db_table = 'equipment_checkouts'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'expected_return_date'], name='idx_checkout_status_due'),
            models.Index(fields=['requester', 'status'], name='idx_checkout_requester'),
            models.Index(fields=['-created_at'], name='idx_checkout_created'),
        ]


class CheckoutItem(models.Model):
    """One equipment line of a checkout"""
    checkout = models.ForeignKey(EquipmentCheckout, on_delete=models.CASCADE, related_name='items')
    equipment = models.ForeignKey(Equipment, on_delete=models.PROTECT, related_name='checkout_items')
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    checkout_condition = models.CharField(max_length=20, choices=Equipment.CONDITION_CHOICES, blank=True)
    return_condition = models.CharField(max_length=20, choices=Equipment.CONDITION_CHOICES, blank=True)
    return_notes = models.TextField(blank=True)
    damage_description = models.TextField(blank=True)

    def __str__(self):
        return f"{self.checkout.checkout_number} - {self.equipment.name} x{self.quantity}"

    class Meta:
        db_table = 'equipment_checkout_items'
        unique_together = [['checkout', 'equipment']]
        constraints = [
            models.CheckConstraint(condition=Q(quantity__gte=1), name='checkout_item_quantity_positive'),
        ]


class CheckoutExtension(models.Model):
    """Request to push back a checkout's expected return date"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
    ]

    checkout = models.ForeignKey(EquipmentCheckout, on_delete=models.CASCADE, related_name='extensions')
    requested_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, related_name='checkout_extensions')
    new_return_date = models.DateTimeField()
    reason = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    decided_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='decided_extensions')
    decided_at = models.DateTimeField(null=True, blank=True)
    decision_notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'equipment_checkout_extensions'
        ordering = ['-created_at']


class MaintenanceRecord(models.Model):
    """Append-only maintenance log entry"""
    TYPE_CHOICES = [
        ('routine', 'Routine'),
        ('repair', 'Repair'),
        ('inspection', 'Inspection'),
        ('calibration', 'Calibration'),
        ('cleaning', 'Cleaning'),
    ]

    STATUS_CHOICES = [
        ('completed', 'Completed'),
        ('pending', 'Pending'),
        ('in_progress', 'In Progress'),
    ]

    equipment = models.ForeignKey(Equipment, on_delete=models.PROTECT, related_name='maintenance_records')
    maintenance_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='routine')
    description = models.TextField()
    cost = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    performed_date = models.DateField(default=timezone.localdate)
    next_maintenance_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='completed')
    notes = models.TextField(blank=True)
    performed_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, related_name='maintenance_records')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.equipment.name} - {self.get_maintenance_type_display()} ({self.performed_date})"

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ValidationError('Maintenance records cannot be modified once created')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError('Maintenance records cannot be deleted')

    class Meta:
        db_table = 'equipment_maintenance_records'
        ordering = ['-performed_date', '-id']
        indexes = [
            models.Index(fields=['equipment', '-performed_date'], name='idx_maintenance_equipment'),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(cost__gte=0), name='maintenance_cost_non_negative'),
        ]
