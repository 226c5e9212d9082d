"""
Django management command to recompute equipment maintenance status.
Dates drift even when no record is added, so schedule this daily.
"""
from datetime import date

from django.core.management.base import BaseCommand, CommandError

from studiodesk.equipment.services import MaintenanceService


class Command(BaseCommand):
    help = 'Recompute maintenance status for all active equipment'

    def add_arguments(self, parser):
        parser.add_argument(
            '--date',
            type=str,
            help='Evaluate as of this date (YYYY-MM-DD), defaults to today',
        )

    def handle(self, *args, **options):
        today = None
        if options.get('date'):
            try:
                today = date.fromisoformat(options['date'])
            except ValueError:
                raise CommandError(f"Invalid date: {options['date']}")

        changed = MaintenanceService().refresh_all(today=today)
        self.stdout.write(self.style.SUCCESS(f"Maintenance status refreshed, {changed} items changed"))
