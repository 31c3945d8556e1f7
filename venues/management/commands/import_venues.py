"""
Import venues and aliases from a seed file.

Usage:
    python manage.py import_venues venues.csv
    python manage.py import_venues venues.json
    python manage.py import_venues venues.csv --dry-run

CSV columns: canonical_name,address,place_id,aliases (aliases separated by '|').
JSON: a list of {"canonical_name", "address", "place_id", "aliases"} objects.
"""

import json
import logging
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from venues.errors import RecordValidationError
from venues.importer import import_venues, read_csv_records, split_aliases, validate_record

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Import canonical venues and their aliases from a CSV or JSON seed file'

    def add_arguments(self, parser):
        parser.add_argument('path', type=str, help='Seed file (.csv or .json)')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Validate records without saving to database',
        )

    def handle(self, *args, **options):
        records = self._read_records(Path(options['path']))
        self.stdout.write(f"Read {len(records)} records")

        if options['dry_run']:
            self._dry_run(records)
            return

        summary = import_venues(records)
        for error in summary.errors:
            self.stdout.write(self.style.WARNING(f"  {error}"))

        self.stdout.write(
            self.style.SUCCESS(
                f"Import complete: {summary.venues_imported} venues imported, "
                f"{summary.venues_updated} updated, {summary.aliases_imported} aliases, "
                f"{summary.skipped} unchanged, {len(summary.errors)} errors"
            )
        )

    def _read_records(self, path: Path) -> list:
        if not path.exists():
            raise CommandError(f"File not found: {path}")

        content = path.read_text(encoding='utf-8')
        if path.suffix == '.json':
            try:
                records = json.loads(content)
            except json.JSONDecodeError as e:
                raise CommandError(f"Invalid JSON: {e}")
            if not isinstance(records, list):
                raise CommandError("JSON seed file must contain a list of records")
            return records
        if path.suffix == '.csv':
            return read_csv_records(content)
        raise CommandError(f"Unsupported file type: {path.suffix}")

    def _dry_run(self, records: list):
        valid = 0
        errors = 0
        for i, record in enumerate(records):
            try:
                name, address = validate_record(record)
            except RecordValidationError as e:
                self.stdout.write(self.style.WARNING(f"  [DRY RUN] record {i}: {e}"))
                errors += 1
                continue
            aliases = split_aliases(record.get('aliases'))
            self.stdout.write(f"  [DRY RUN] {name} ({address}) aliases: {len(aliases)}")
            valid += 1

        self.stdout.write(self.style.SUCCESS(f"Dry run complete: {valid} valid, {errors} errors"))
