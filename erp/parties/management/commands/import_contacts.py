"""
Management command to import contacts from a CSV file
"""
import os
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from erp.core.cache_signals import suspend_cache_signals
from erp.core.csv_utils import parse_csv
from erp.parties.utils import map_contact_row, save_imported_contact


class Command(BaseCommand):
    help = "Imports customers and suppliers from a CSV file (columns: name, email, phone, company, role, ...)"

    def add_arguments(self, parser):
        parser.add_argument('csv_file', type=str, help='Path to the CSV file')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Validate the file and report errors without saving anything',
        )

    def handle(self, *args, **options):
        csv_file = options['csv_file']
        dry_run = options['dry_run']

        if not os.path.exists(csv_file):
            raise CommandError(f"CSV file not found at {csv_file}")

        with open(csv_file, 'r', encoding='utf-8-sig') as f:
            result = parse_csv(f.read(), map_contact_row, required_headers=['name'])

        self.stdout.write(f"Rows: {result.total_rows}, valid: {result.valid_rows}, errors: {len(result.errors)}")
        for error in result.errors:
            self.stdout.write(self.style.WARNING(f"  {error}"))

        if dry_run:
            self.stdout.write(self.style.SUCCESS("Dry run, nothing saved."))
            return

        created = updated = 0
        with suspend_cache_signals(), transaction.atomic():
            for row in result.data:
                _, was_created = save_imported_contact(row)
                if was_created:
                    created += 1
                else:
                    updated += 1

        self.stdout.write(self.style.SUCCESS(f"Imported contacts: {created} created, {updated} updated"))
