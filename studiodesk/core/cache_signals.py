"""
Cache invalidation signals
Automatically invalidate report caches when equipment data changes
"""
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging

from studiodesk.equipment.models import Equipment, EquipmentCheckout, CheckoutItem, MaintenanceRecord
from .cache_utils import invalidate_report_caches

logger = logging.getLogger(__name__)


@receiver([post_save, post_delete], sender=Equipment)
def invalidate_on_equipment_change(sender, instance, **kwargs):
    logger.debug(f"Equipment {instance.pk} changed, invalidating report caches")
    invalidate_report_caches()


@receiver([post_save, post_delete], sender=EquipmentCheckout)
@receiver([post_save, post_delete], sender=CheckoutItem)
def invalidate_on_checkout_change(sender, instance, **kwargs):
    invalidate_report_caches()


@receiver(post_save, sender=MaintenanceRecord)
def invalidate_on_maintenance_change(sender, instance, **kwargs):
    invalidate_report_caches()

