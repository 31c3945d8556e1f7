"""
Bulk venue import.

Loads seed records of the form:
    {"canonical_name": ..., "address": ..., "place_id": ..., "aliases": [...] | "a|b"}

Every record is applied in its own savepoint, so one bad row never blocks the
rest. Re-running an import with the same records creates nothing new.
"""

import csv
import io
import logging
from dataclasses import asdict, dataclass, field
from typing import Iterable, List, Tuple

from django.db import IntegrityError, transaction

from venues.addresses import parse_address, to_decimal
from venues.errors import RecordValidationError
from venues.models import VenueAlias
from venues.store import add_alias, upsert_venue

logger = logging.getLogger(__name__)

CSV_COLUMNS = ['canonical_name', 'address', 'place_id', 'aliases']
ALIAS_SEPARATOR = '|'


@dataclass
class ImportSummary:
    venues_imported: int = 0
    venues_updated: int = 0
    aliases_imported: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def split_aliases(value) -> List[str]:
    """Accept a list of aliases or a single '|'-separated string."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(ALIAS_SEPARATOR)
    return [alias.strip() for alias in value if alias and str(alias).strip()]


def validate_record(record: dict) -> Tuple[str, str]:
    if not isinstance(record, dict):
        raise RecordValidationError("Record is not an object")

    name = (record.get('canonical_name') or '').strip()
    address = (record.get('address') or '').strip()
    if not name:
        raise RecordValidationError("Missing canonical_name")
    if not address:
        raise RecordValidationError(f"Missing address for '{name}'")
    return name, address


def _import_record(record: dict, summary: ImportSummary) -> None:
    name, address = validate_record(record)
    aliases = split_aliases(record.get('aliases'))

    fields = parse_address(address)
    fields['place_id'] = (record.get('place_id') or '').strip() or None
    fields['latitude'] = to_decimal(record.get('latitude'))
    fields['longitude'] = to_decimal(record.get('longitude'))

    venue, created, changed = upsert_venue(name, **fields)
    if created:
        summary.venues_imported += 1
    elif changed:
        summary.venues_updated += 1
    else:
        summary.skipped += 1

    for alias_text in aliases:
        try:
            _, alias_created = add_alias(venue, alias_text, source=VenueAlias.Source.IMPORT)
        except RecordValidationError as e:
            logger.warning(f"Skipping alias for '{name}': {e}")
            continue
        if alias_created:
            summary.aliases_imported += 1


def import_venues(records: Iterable[dict]) -> ImportSummary:
    """
    Upsert venues and their aliases.

    Returns an ImportSummary; malformed records land in summary.errors with
    the reason, prefixed by their position in the input.
    """
    summary = ImportSummary()

    for i, record in enumerate(records):
        try:
            with transaction.atomic():
                _import_record(record, summary)
        except RecordValidationError as e:
            logger.warning(f"Skipping record {i}: {e}")
            summary.errors.append(f"record {i}: {e}")
        except IntegrityError as e:
            logger.error(f"Conflict importing record {i}: {e}")
            summary.errors.append(f"record {i}: conflict ({e})")

    logger.info(
        f"Venue import complete: {summary.venues_imported} imported, {summary.venues_updated} updated, "
        f"{summary.aliases_imported} aliases, {len(summary.errors)} errors"
    )
    return summary


def read_csv_records(content: str) -> List[dict]:
    """Parse seed CSV content (canonical_name,address,place_id,aliases)."""
    reader = csv.DictReader(io.StringIO(content))
    records = []
    for row in reader:
        records.append({key.strip(): (value or '').strip() for key, value in row.items() if key})
    return records
