"""
Celery tasks for the venues app.

Handles discovery runs, review auto-approval and coordinate backfill.
"""

import logging
from celery import shared_task

from venues.errors import GeocodeFatalFailure, StoreUnavailable

logger = logging.getLogger(__name__)

# Rate limiting for Nominatim (1 request per 1.5 seconds)
GEOCODE_DELAY = 1.5


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def run_discovery_task(self, names: list, source: str = ""):
    """
    Run the discovery pipeline over scraped venue names, then auto-approve
    whatever cleared the ceiling.

    Args:
        names: Raw venue names from a scrape
        source: Feed tag recorded on aliases and review entries
    """
    from venues.discovery import run_discovery
    from venues.review import auto_approve

    try:
        summary = run_discovery(names, source=source)
    except StoreUnavailable as exc:
        logger.warning(f"Discovery deferred, venue store unavailable: {exc}")
        raise self.retry(exc=exc)
    except GeocodeFatalFailure as exc:
        # Configuration problem; retrying will not help
        logger.error(f"Discovery aborted: {exc}")
        return {'status': 'failed', 'error': str(exc)}

    approved = auto_approve()
    result = summary.to_dict()
    result.update({'status': 'success', 'auto_approved': approved})
    return result


@shared_task
def auto_approve_review_queue():
    """Periodic sweep of the review queue (scheduled through celery beat)."""
    from venues.review import auto_approve

    approved = auto_approve()
    return {'status': 'success', 'approved': approved}


@shared_task
def geocode_venue_task(venue_id: int):
    """
    Backfill coordinates for a venue created without them.

    Rate limiting is handled by Celery worker concurrency settings plus a
    fixed delay before each Nominatim call.

    Args:
        venue_id: ID of the Venue to geocode
    """
    from venues.geocoding import backfill_coordinates

    return backfill_coordinates(venue_id, delay=GEOCODE_DELAY)


@shared_task
def bulk_geocode_venues(limit: int = 100):
    """
    Queue coordinate backfill for venues missing coordinates.

    Args:
        limit: Maximum venues to geocode in this batch
    """
    from venues.models import Venue

    venue_ids = list(
        Venue.objects.filter(latitude__isnull=True, longitude__isnull=True)
        .exclude(street_address='', city='', formatted_address='')
        .values_list('id', flat=True)[:limit]
    )

    if not venue_ids:
        logger.info("No venues need geocoding")
        return {'status': 'success', 'count': 0}

    logger.info(f"Queueing geocoding for {len(venue_ids)} venues")

    for venue_id in venue_ids:
        geocode_venue_task.delay(venue_id)

    return {'status': 'queued', 'count': len(venue_ids)}
