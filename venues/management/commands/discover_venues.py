"""
Run venue discovery over scraped venue names.

Usage:
    python manage.py discover_venues names.txt --source=scaha
    cat names.txt | python manage.py discover_venues - --source=scaha
    python manage.py discover_venues names.txt --auto-approve

One venue name per line; blank lines are ignored.
"""

import sys
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from venues.discovery import run_discovery
from venues.errors import GeocodeFatalFailure
from venues.review import auto_approve


class Command(BaseCommand):
    help = 'Resolve, geocode and queue scraped venue names for review'

    def add_arguments(self, parser):
        parser.add_argument('path', type=str, help="File with one venue name per line, or '-' for stdin")
        parser.add_argument('--source', type=str, default='', help='Feed tag recorded on queued entries')
        parser.add_argument(
            '--auto-approve',
            action='store_true',
            help='Auto-approve high-confidence review entries afterwards',
        )

    def handle(self, *args, **options):
        names = self._read_names(options['path'])
        self.stdout.write(f"Discovering {len(names)} venue names...")

        try:
            summary = run_discovery(names, source=options['source'])
        except GeocodeFatalFailure as e:
            raise CommandError(f"Place search failed: {e}")

        self.stdout.write(
            self.style.SUCCESS(
                f"Discovery complete: {summary.auto_resolved} resolved, {summary.auto_created} auto-created, "
                f"{summary.queued} queued, {summary.skipped} skipped, {summary.failed} failed"
            )
        )

        if options['auto_approve']:
            approved = auto_approve()
            self.stdout.write(self.style.SUCCESS(f"Auto-approved {approved} review entries"))

    def _read_names(self, path: str) -> list:
        if path == '-':
            content = sys.stdin.read()
        else:
            file_path = Path(path)
            if not file_path.exists():
                raise CommandError(f"File not found: {file_path}")
            content = file_path.read_text(encoding='utf-8')
        return [line.strip() for line in content.splitlines() if line.strip()]
