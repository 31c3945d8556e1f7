"""
Venue discovery pipeline.

Takes distinct raw venue names seen in scraped schedules and, for each one:
1. resolve() against the catalog; resolved names need nothing else
2. otherwise search places (batched, rate limited)
3. merge place and catalog candidates
4. auto-create an alias for a single high-confidence place that is already a
   known venue, or queue the name for review

A cache of names already handled keeps repeated runs from
spending geocoding calls on the same strings.
"""

import hashlib
import logging
import time
from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional

from django.conf import settings
from django.core.cache import cache

from venues import review
from venues.errors import GeocodeFatalFailure
from venues.geocoding import GeocodeResult, PlacesClient
from venues.models import RejectedMatch, ReviewQueueEntry
from venues.normalization import normalize_text
from venues.resolver import Ambiguous, LowConfidenceResolved, Resolved, resolve
from venues.store import Candidate, add_alias, find_by_place_id, search_candidates

logger = logging.getLogger(__name__)

CACHE_PREFIX = "venue-discovery:"
GENERATION_KEY = CACHE_PREFIX + "generation"


@dataclass
class DiscoverySummary:
    auto_resolved: int = 0
    auto_created: int = 0
    queued: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _conf(key: str, default):
    return settings.VENUE_RESOLUTION.get(key, default)


def _generation() -> int:
    # Clearing bumps the generation; markers from older generations are ignored
    cache.add(GENERATION_KEY, 1, None)
    return cache.get(GENERATION_KEY, 1)


def _cache_key(normalized: str, generation: int) -> str:
    return f"{CACHE_PREFIX}{generation}:{hashlib.sha1(normalized.encode('utf-8')).hexdigest()}"


def _count_key(generation: int) -> str:
    return f"{CACHE_PREFIX}{generation}:count"


def mark_seen(normalized: str) -> None:
    ttl = _conf('DISCOVERY_CACHE_TTL', 24 * 60 * 60)
    generation = _generation()
    if cache.add(_cache_key(normalized, generation), True, ttl):
        count_key = _count_key(generation)
        cache.add(count_key, 0, ttl)
        cache.incr(count_key)


def was_seen(normalized: str) -> bool:
    return bool(cache.get(_cache_key(normalized, _generation())))


def clear_seen_cache() -> int:
    """Forget every name handled so far. Returns how many were cleared."""
    generation = _generation()
    cleared = cache.get(_count_key(generation), 0)
    cache.incr(GENERATION_KEY)
    cache.delete(_count_key(generation))
    logger.info(f"Cleared discovery cache ({cleared} names)")
    return cleared

def _store_candidate(candidate: Candidate) -> dict:
    return {
        'venue_id': candidate.venue_id,
        'place_id': candidate.place_id,
        'name': candidate.canonical_name,
        'address': candidate.address,
        'latitude': candidate.latitude,
        'longitude': candidate.longitude,
        'confidence': candidate.score,
        'origin': 'store',
    }


def merge_candidates(internal: List[Candidate], geocoded: GeocodeResult, normalized: str) -> List[dict]:
    """
    Combine catalog and place-search candidates on a 0-1 scale.

    A place whose id is already in the catalog becomes a candidate for that
    venue. Rejected pairings are dropped.
    """
    merged = [_store_candidate(c) for c in internal]
    place_confidence = geocoded.confidence / 100.0

    for place in geocoded.candidates:
        venue = find_by_place_id(place.place_id)
        # The derived confidence speaks for the top result only
        confidence = place_confidence if place is geocoded.candidates[0] else min(place_confidence, place.similarity)
        merged.append({
            'venue_id': venue.id if venue else None,
            'place_id': place.place_id,
            'name': venue.canonical_name if venue else place.name,
            'address': venue.get_full_address() if venue else place.formatted_address,
            'latitude': place.latitude,
            'longitude': place.longitude,
            'confidence': round(confidence, 6),
            'origin': 'geocode',
        })

    rejected = set(RejectedMatch.objects.filter(normalized_alias=normalized).values_list('venue_id', flat=True))
    return [c for c in merged if c['venue_id'] is None or c['venue_id'] not in rejected]


def _should_skip(normalized: str) -> bool:
    if was_seen(normalized):
        return True
    return ReviewQueueEntry.objects.filter(normalized_alias=normalized, status=ReviewQueueEntry.Status.PENDING).exists()


def _auto_create(name: str, geocoded: GeocodeResult, source: str) -> bool:
    """Attach the name to the known venue behind a single strong place match."""
    threshold = _conf('GEOCODE_AUTO_CREATE_CONFIDENCE', 90)
    if not (geocoded.auto_save_eligible and geocoded.confidence >= threshold and len(geocoded.candidates) == 1):
        return False

    venue = find_by_place_id(geocoded.candidates[0].place_id)
    if venue is None:
        return False

    normalized = normalize_text(name)
    if RejectedMatch.objects.filter(normalized_alias=normalized, venue=venue).exists():
        return False

    add_alias(venue, name, source=source or 'discovery')
    logger.info(f"Discovery linked '{name}' to venue {venue.id} via place id")
    return True


def _process_geocoded(name: str, internal: List[Candidate], geocoded: GeocodeResult, source: str,
                      summary: DiscoverySummary) -> None:
    normalized = normalize_text(name)

    if _auto_create(name, geocoded, source):
        summary.auto_created += 1
        mark_seen(normalized)
        return

    # An empty merge (every pairing rejected) is queued as manual entry
    candidates = merge_candidates(internal, geocoded, normalized)
    review.enqueue(
        name,
        candidates,
        source=source,
        needs_manual_entry=geocoded.needs_manual_entry,
        top_confidence=None if geocoded.available else 0.0,
    )
    summary.queued += 1
    mark_seen(normalized)


def _unique_names(raw_names: Iterable[str]) -> List[str]:
    seen = set()
    names = []
    for raw in raw_names:
        normalized = normalize_text(raw)
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        names.append(raw.strip())
    return names


def run_discovery(raw_names: Iterable[str], source: str = "", client: Optional[PlacesClient] = None) -> DiscoverySummary:
    """
    Resolve, geocode and queue a batch of scraped venue names.

    Raises:
        GeocodeFatalFailure: the place-search API rejected the configuration.
            The name being processed is queued for manual entry first.
    """
    summary = DiscoverySummary()
    pending = []

    for name in _unique_names(raw_names):
        normalized = normalize_text(name)
        if _should_skip(normalized):
            summary.skipped += 1
            continue

        result = resolve(name)
        if isinstance(result, Resolved) and not isinstance(result, LowConfidenceResolved):
            summary.auto_resolved += 1
            mark_seen(normalized)
            continue

        if isinstance(result, Ambiguous):
            internal = result.candidates
        else:
            internal = search_candidates(result.normalized_query, limit=_conf('MAX_CANDIDATES', 3))
        pending.append((name, internal))

    if not pending:
        return summary

    client = client or PlacesClient()
    batch_size = _conf('GEOCODE_BATCH_SIZE', 10)
    batch_delay = _conf('GEOCODE_BATCH_DELAY', 2.0)

    for start in range(0, len(pending), batch_size):
        if start:
            time.sleep(batch_delay)
        for name, internal in pending[start:start + batch_size]:
            try:
                geocoded = client.geocode(name)
            except GeocodeFatalFailure:
                review.enqueue(
                    name,
                    [_store_candidate(c) for c in internal],
                    source=source,
                    needs_manual_entry=True,
                    top_confidence=0.0,
                )
                summary.failed += 1
                logger.error(f"Discovery stopped: place search rejected the request for '{name}'")
                raise
            _process_geocoded(name, internal, geocoded, source, summary)

    logger.info(f"Discovery run ({source or 'unknown source'}): {summary.to_dict()}")
    return summary
