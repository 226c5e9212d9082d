"""
Django management command to remind requesters about overdue equipment
"""
from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from studiodesk.equipment.services import CheckoutService


class Command(BaseCommand):
    help = 'Notify requesters of overdue equipment checkouts'

    def add_arguments(self, parser):
        parser.add_argument(
            '--interval-hours',
            type=int,
            default=getattr(settings, 'CHECKOUT_REMINDER_INTERVAL_HOURS', 24),
            help='Minimum hours between reminders for the same checkout (default: 24)',
        )

    def handle(self, *args, **options):
        interval_hours = options['interval_hours']
        if interval_hours < 0:
            raise CommandError('--interval-hours must not be negative')

        sent = CheckoutService().send_overdue_reminders(interval_hours=interval_hours)
        self.stdout.write(self.style.SUCCESS(f"Sent {sent} overdue reminders"))
