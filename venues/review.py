"""
Review queue for unresolved venue names.

State machine: pending -> approved | rejected | created_new. Terminal states
accept no further transition. Every action is an idempotent command: replaying
the exact action that closed an entry returns the entry unchanged, so a
retried request never produces a duplicate alias or an error.
"""

import logging
from datetime import timedelta
from typing import Iterable, List, Optional, Tuple

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import QuerySet
from django.utils import timezone

from venues.addresses import parse_address, to_decimal
from venues.errors import InvalidTransition, ReviewEntryNotFound, VenueConflict, VenueNotFound
from venues.models import RejectedMatch, ReviewQueueEntry, Venue, VenueAlias
from venues.normalization import normalize_text
from venues.store import add_alias, upsert_venue

logger = logging.getLogger(__name__)

AUTO_REVIEWER = "auto"

Status = ReviewQueueEntry.Status


def _max_candidates() -> int:
    return settings.VENUE_RESOLUTION.get('MAX_CANDIDATES', 3)


def _auto_approve_ceiling() -> float:
    return settings.VENUE_RESOLUTION.get('AUTO_APPROVE_CEILING', 0.9)


def _tie_epsilon() -> float:
    return settings.VENUE_RESOLUTION.get('TIE_EPSILON', 0.05)


def rank_candidates(candidates: Iterable[dict]) -> List[dict]:
    """Order candidate dicts by confidence, dropping duplicates of the same venue/place."""
    seen = set()
    ranked = []
    for candidate in sorted(candidates, key=lambda c: (-c.get('confidence', 0.0), c.get('name', ''))):
        key = (candidate.get('venue_id'), None) if candidate.get('venue_id') else (None, candidate.get('place_id'))
        if key in seen:
            continue
        seen.add(key)
        ranked.append(candidate)
    return ranked[:_max_candidates()]


def enqueue(
    alias_text: str,
    candidates: Iterable[dict],
    source: str = "",
    needs_manual_entry: bool = False,
    top_confidence: Optional[float] = None,
) -> Tuple[ReviewQueueEntry, bool]:
    """
    Upsert the pending entry for a scraped name.

    Keyed on normalized alias while pending: concurrent discovery runs update
    the same row instead of creating a second one. top_confidence overrides
    the best candidate's score (0 when geocoding failed).
    """
    normalized = normalize_text(alias_text)
    ranked = rank_candidates(candidates)
    if top_confidence is None:
        top_confidence = ranked[0]['confidence'] if ranked else 0.0

    fields = {
        'alias_text': alias_text.strip(),
        'candidates': ranked,
        'top_confidence': top_confidence,
        'source': source,
        'needs_manual_entry': needs_manual_entry or not ranked,
    }

    with transaction.atomic():
        entry, created = ReviewQueueEntry.objects.get_or_create(
            normalized_alias=normalized,
            status=Status.PENDING,
            defaults=fields,
        )
        if not created:
            for key, value in fields.items():
                setattr(entry, key, value)
            entry.save(update_fields=list(fields))

    logger.info(
        f"{'Queued' if created else 'Refreshed'} review entry {entry.id} "
        f"({len(ranked)} candidates, top={top_confidence:.2f})"
    )
    return entry, created


def list_pending(
    min_confidence: Optional[float] = None,
    max_confidence: Optional[float] = None,
    source: Optional[str] = None,
    older_than: Optional[timedelta] = None,
    newer_than: Optional[timedelta] = None,
) -> QuerySet:
    """Pending entries, highest confidence first, with optional filters."""
    queryset = ReviewQueueEntry.objects.filter(status=Status.PENDING)

    if min_confidence is not None:
        queryset = queryset.filter(top_confidence__gte=min_confidence)
    if max_confidence is not None:
        queryset = queryset.filter(top_confidence__lt=max_confidence)
    if source:
        queryset = queryset.filter(source=source)
    if older_than is not None:
        queryset = queryset.filter(created_at__lte=timezone.now() - older_than)
    if newer_than is not None:
        queryset = queryset.filter(created_at__gte=timezone.now() - newer_than)

    return queryset.order_by('-top_confidence', 'created_at', 'id')


def _locked_entry(entry_id: int) -> ReviewQueueEntry:
    try:
        return ReviewQueueEntry.objects.select_for_update().get(id=entry_id)
    except ReviewQueueEntry.DoesNotExist:
        raise ReviewEntryNotFound(f"Review entry {entry_id} not found")


def _get_venue(venue_id: int) -> Venue:
    try:
        return Venue.objects.get(id=venue_id)
    except Venue.DoesNotExist:
        raise VenueNotFound(f"Venue {venue_id} not found")


def _ensure_pending(entry: ReviewQueueEntry, action: str) -> None:
    if entry.is_terminal:
        raise InvalidTransition(f"Cannot {action} review entry {entry.id}: already {entry.status}")


def _close(entry: ReviewQueueEntry, status: str, reviewed_by: str, **fields) -> None:
    entry.status = status
    entry.reviewed_by = reviewed_by
    entry.resolved_at = timezone.now()
    for key, value in fields.items():
        setattr(entry, key, value)
    entry.save()


def approve(entry_id: int, venue_id: int, reviewed_by: str = "", auto: bool = False) -> ReviewQueueEntry:
    """
    Link the entry's alias to the chosen venue and close it as approved.

    Raises:
        ReviewEntryNotFound, VenueNotFound
        InvalidTransition: the entry was already closed by a different action
    """
    with transaction.atomic():
        entry = _locked_entry(entry_id)
        if entry.status == Status.APPROVED and entry.chosen_venue_id == venue_id:
            logger.debug(f"Review entry {entry_id} already approved for venue {venue_id}")
            return entry
        _ensure_pending(entry, "approve")

        venue = _get_venue(venue_id)
        add_alias(venue, entry.alias_text, source=VenueAlias.Source.REVIEW)
        _close(entry, Status.APPROVED, reviewed_by, chosen_venue=venue, auto_approved=auto)

    logger.info(f"Review entry {entry_id} approved -> venue {venue_id}{' (auto)' if auto else ''}")
    return entry


def reject(entry_id: int, venue_id: int, reviewed_by: str = "") -> ReviewQueueEntry:
    """
    Record that the (alias, venue) pairing is wrong and close the entry.

    The alias text itself is kept; only the pairing is excluded from future
    candidate lists.
    """
    with transaction.atomic():
        entry = _locked_entry(entry_id)
        if entry.status == Status.REJECTED and entry.rejected_venue_id == venue_id:
            return entry
        _ensure_pending(entry, "reject")

        venue = _get_venue(venue_id)
        RejectedMatch.objects.get_or_create(normalized_alias=entry.normalized_alias, venue=venue)
        _close(entry, Status.REJECTED, reviewed_by, rejected_venue=venue)

    logger.info(f"Review entry {entry_id} rejected venue {venue_id}")
    return entry


def create_venue(
    entry_id: int,
    canonical_name: str,
    address: str,
    reviewed_by: str = "",
    place_id: Optional[str] = None,
    latitude=None,
    longitude=None,
) -> ReviewQueueEntry:
    """Create a venue from reviewer input, link the alias to it and close the entry."""
    canonical_name = (canonical_name or "").strip()

    with transaction.atomic():
        entry = _locked_entry(entry_id)
        if (
            entry.status == Status.CREATED_NEW
            and entry.chosen_venue is not None
            and entry.chosen_venue.canonical_name == canonical_name
        ):
            return entry
        _ensure_pending(entry, "create a venue for")

        components = parse_address(address)
        try:
            venue, created, _ = upsert_venue(
                canonical_name,
                place_id=place_id or None,
                latitude=to_decimal(latitude),
                longitude=to_decimal(longitude),
                **components,
            )
        except IntegrityError as exc:
            raise VenueConflict(f"Place id {place_id} already belongs to another venue") from exc
        add_alias(venue, entry.alias_text, source=VenueAlias.Source.REVIEW)
        _close(entry, Status.CREATED_NEW, reviewed_by, chosen_venue=venue)

    logger.info(f"Review entry {entry_id} closed with {'new' if created else 'existing'} venue {venue.id}")
    return entry


def auto_approve(ceiling: Optional[float] = None) -> int:
    """
    Approve pending entries whose top candidate is an existing venue scoring
    above the ceiling. Writes the same audit fields as a manual approval.

    Entries where a runner-up is within the tie epsilon of the top candidate
    stay pending: a tie is for a reviewer to break.
    """
    ceiling = _auto_approve_ceiling() if ceiling is None else ceiling
    epsilon = _tie_epsilon()
    approved = 0

    pending = ReviewQueueEntry.objects.filter(
        status=Status.PENDING,
        needs_manual_entry=False,
        top_confidence__gt=ceiling,
    ).order_by('created_at', 'id')

    for entry in pending:
        top = entry.candidates[0] if entry.candidates else None
        if not top or not top.get('venue_id'):
            continue
        if len(entry.candidates) > 1 and top['confidence'] - entry.candidates[1]['confidence'] <= epsilon:
            logger.info(f"Auto-approval left entry {entry.id} pending: top candidates are tied")
            continue
        try:
            approve(entry.id, top['venue_id'], reviewed_by=AUTO_REVIEWER, auto=True)
        except (InvalidTransition, VenueNotFound) as exc:
            logger.warning(f"Auto-approval skipped entry {entry.id}: {exc}")
            continue
        approved += 1

    if approved:
        logger.info(f"Auto-approved {approved} review entries above {ceiling}")
    return approved
