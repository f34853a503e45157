"""
management command: preview_slots

Prints the appointment grid the slot step would show for the week
containing a given date, bucketed into Morning / Afternoon / Evening.

Usage:
    python manage.py preview_slots
    python manage.py preview_slots --date 2026-03-04
    python manage.py preview_slots --date 2026-03-04 --available-only
"""
from datetime import datetime

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from apps.bookings.engine import (
    bucket_slots,
    build_time_labels,
    day_has_slots,
    generate_slots,
    week_days,
    week_start,
)


class Command(BaseCommand):
    help = 'Print the bookable slot grid for one week'

    def add_arguments(self, parser):
        parser.add_argument(
            '--date',
            help='Any date inside the week to preview (YYYY-MM-DD). Defaults to today.',
        )
        parser.add_argument(
            '--available-only', action='store_true',
            help='Hide slots that are already taken',
        )

    def handle(self, *args, **options):
        if options['date']:
            try:
                target = datetime.strptime(options['date'], '%Y-%m-%d').date()
            except ValueError:
                raise CommandError(f"Invalid --date {options['date']!r}; expected YYYY-MM-DD")
        else:
            target = timezone.localdate()

        days = week_days(target)
        matrix = generate_slots(build_time_labels(), days)
        self.stdout.write(f"Week of {week_start(target):%a %d %b %Y}")

        total = 0
        for day, day_slots in zip(days, matrix):
            available = [slot for slot in day_slots if slot['is_available']]
            total += len(available)
            self.stdout.write('')
            self.stdout.write(self.style.MIGRATE_HEADING(
                f"{day:%a %d %b}: {len(available)}/{len(day_slots)} available"
            ))
            if not day_has_slots(day_slots):
                self.stdout.write('  (no slots)')
                continue

            for bucket, slots in bucket_slots(day_slots).items():
                if options['available_only']:
                    slots = [slot for slot in slots if slot['is_available']]
                if not slots:
                    continue
                labels = ', '.join(
                    slot['time_label'] if slot['is_available'] else f"({slot['time_label']})"
                    for slot in slots
                )
                self.stdout.write(f"  {bucket:<9} {labels}")

        self.stdout.write('')
        self.stdout.write(self.style.SUCCESS(f'preview_slots: {total} slots available this week'))
