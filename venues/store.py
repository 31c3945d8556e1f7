"""
Venue store access layer.

All reads used for matching and all catalog writes go through here so that
fuzzy search and idempotent upserts live in one place.

Fuzzy search uses pg_trgm (TrigramSimilarity over the GIN-indexed normalized
columns) on PostgreSQL and the equivalent Python trigram computation on other
backends.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from django.contrib.postgres.search import TrigramSimilarity
from django.db import InterfaceError, OperationalError, connection, transaction

from venues.errors import RecordValidationError, StoreUnavailable
from venues.models import RejectedMatch, Venue, VenueAlias
from venues.normalization import normalize_text, trigram_similarity

logger = logging.getLogger(__name__)

# Canonical names are trusted fully
CANONICAL_WEIGHT = 1.0

# Score precision; keeps PostgreSQL float4 and Python scores comparable
SCORE_PLACES = 6


@dataclass(frozen=True)
class Candidate:
    """A venue scored against a normalized query."""
    venue_id: int
    canonical_name: str
    address: str
    score: float
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    place_id: Optional[str] = None

    @property
    def coordinates(self) -> Optional[dict]:
        if self.latitude is None or self.longitude is None:
            return None
        return {"lat": self.latitude, "lng": self.longitude}

    @classmethod
    def from_venue(cls, venue: Venue, score: float) -> "Candidate":
        return cls(
            venue_id=venue.id,
            canonical_name=venue.canonical_name,
            address=venue.get_full_address(),
            score=score,
            latitude=float(venue.latitude) if venue.latitude is not None else None,
            longitude=float(venue.longitude) if venue.longitude is not None else None,
            place_id=venue.place_id,
        )


def _clamp(score: float) -> float:
    return round(min(1.0, max(0.0, float(score))), SCORE_PLACES)


def _scores_postgres(normalized: str) -> List[Tuple[int, float]]:
    """(venue_id, score) rows from pg_trgm."""
    rows = []
    venue_rows = (
        Venue.objects.annotate(similarity=TrigramSimilarity('normalized_name', normalized))
        .filter(similarity__gt=0)
        .values_list('id', 'similarity')
    )
    for venue_id, similarity in venue_rows:
        rows.append((venue_id, similarity * CANONICAL_WEIGHT))

    alias_rows = (
        VenueAlias.objects.annotate(similarity=TrigramSimilarity('normalized_alias', normalized))
        .filter(similarity__gt=0)
        .values_list('venue_id', 'similarity', 'confidence_weight')
    )
    for venue_id, similarity, weight in alias_rows:
        rows.append((venue_id, similarity * weight))
    return rows


def _scores_python(normalized: str) -> List[Tuple[int, float]]:
    """(venue_id, score) rows computed in-process."""
    rows = []
    for venue_id, name in Venue.objects.values_list('id', 'normalized_name'):
        similarity = trigram_similarity(name, normalized)
        if similarity > 0:
            rows.append((venue_id, similarity * CANONICAL_WEIGHT))

    for venue_id, alias, weight in VenueAlias.objects.values_list('venue_id', 'normalized_alias', 'confidence_weight'):
        similarity = trigram_similarity(alias, normalized)
        if similarity > 0:
            rows.append((venue_id, similarity * weight))
    return rows


def search_candidates(normalized: str, limit: Optional[int] = None) -> List[Candidate]:
    """
    Return venues similar to a normalized query, best first.

    Venue-name and alias matches are merged, deduplicated by venue keeping the
    highest score, and ordered by score then canonical name. Pairings a
    reviewer rejected for this exact text are left out.

    Raises:
        StoreUnavailable: the database could not be reached
    """
    if not normalized:
        return []

    try:
        if connection.vendor == 'postgresql':
            rows = _scores_postgres(normalized)
        else:
            rows = _scores_python(normalized)

        best = {}
        for venue_id, score in rows:
            score = _clamp(score)
            if score > best.get(venue_id, 0.0):
                best[venue_id] = score

        rejected = set(
            RejectedMatch.objects.filter(normalized_alias=normalized).values_list('venue_id', flat=True)
        )
        for venue_id in rejected:
            best.pop(venue_id, None)

        venues = Venue.objects.in_bulk(list(best))
    except (OperationalError, InterfaceError) as exc:
        logger.error(f"Venue store unavailable during search: {exc}")
        raise StoreUnavailable(str(exc)) from exc

    candidates = [Candidate.from_venue(venues[venue_id], score) for venue_id, score in best.items() if venue_id in venues]
    candidates.sort(key=lambda c: (-c.score, c.canonical_name, c.venue_id))

    if limit is not None:
        candidates = candidates[:limit]
    return candidates


def add_alias(
    venue: Venue,
    alias_text: str,
    source: str = VenueAlias.Source.IMPORT,
    weight: float = 1.0,
) -> Tuple[VenueAlias, bool]:
    """
    Attach an alias to a venue.

    Keyed on (venue, normalized alias): repeating the call, or racing another
    writer, returns the existing row instead of failing.
    """
    normalized = normalize_text(alias_text)
    if not normalized:
        raise RecordValidationError(f"Alias '{alias_text}' normalizes to an empty string")

    try:
        alias, created = VenueAlias.objects.get_or_create(
            venue=venue,
            normalized_alias=normalized,
            defaults={
                'alias_text': alias_text.strip(),
                'source': source,
                'confidence_weight': weight,
            },
        )
    except (OperationalError, InterfaceError) as exc:
        raise StoreUnavailable(str(exc)) from exc

    if created:
        logger.info(f"Added alias '{alias.alias_text}' to venue {venue.id} (source={source})")
    return alias, created


def upsert_venue(canonical_name: str, **fields) -> Tuple[Venue, bool, bool]:
    """
    Insert or update a venue keyed on canonical name.

    Only non-None fields are applied on update. Returns (venue, created, changed).
    """
    canonical_name = (canonical_name or "").strip()
    if not canonical_name:
        raise RecordValidationError("Missing canonical_name")

    fields = {key: value for key, value in fields.items() if value is not None}

    try:
        with transaction.atomic():
            venue, created = Venue.objects.select_for_update().get_or_create(
                canonical_name=canonical_name,
                defaults=fields,
            )
            if created:
                logger.info(f"Created venue {venue.id}: {canonical_name}")
                return venue, True, False

            changed = [key for key, value in fields.items() if _differs(getattr(venue, key), value)]
            if changed:
                for key in changed:
                    setattr(venue, key, fields[key])
                venue.save(update_fields=changed + ['updated_at'])
                logger.info(f"Updated venue {venue.id} fields: {', '.join(changed)}")
            return venue, False, bool(changed)
    except (OperationalError, InterfaceError) as exc:
        raise StoreUnavailable(str(exc)) from exc


def _differs(current, new) -> bool:
    if isinstance(current, Decimal) or isinstance(new, Decimal):
        if current is None or new is None:
            return current != new
        return Decimal(str(current)) != Decimal(str(new))
    return current != new


def find_by_place_id(place_id: Optional[str]) -> Optional[Venue]:
    if not place_id:
        return None
    try:
        return Venue.objects.filter(place_id=place_id).first()
    except (OperationalError, InterfaceError) as exc:
        raise StoreUnavailable(str(exc)) from exc
