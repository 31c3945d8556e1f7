"""
Geocoding for venues.

Two services:
- PlacesClient: Google Places text search, used to turn an unresolved venue
  name into place candidates. The API has no confidence signal, so one is
  derived from result count and name similarity.
- geocode_address(): OpenStreetMap/Nominatim lookup used to backfill
  coordinates for venues created with only a postal address.
"""

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

import requests
from django.conf import settings
from geopy.exc import GeocoderServiceError, GeocoderTimedOut
from geopy.geocoders import Nominatim

from venues.addresses import to_decimal
from venues.errors import GeocodeFatalFailure, GeocodeTransientFailure
from venues.normalization import name_similarity

logger = logging.getLogger(__name__)

PLACES_SEARCH_URL = "https://places.googleapis.com/v1/places:searchText"

# Only the attributes we store; anything more raises the per-request SKU cost
FIELD_MASK = "places.id,places.displayName,places.formattedAddress,places.location"

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

# Confidence tiers (0-100 scale)
STRONG_MATCH = 0.85
GOOD_MATCH = 0.70
CONFIDENCE_SINGLE_STRONG = 95
CONFIDENCE_SINGLE_GOOD = 80
CONFIDENCE_MULTIPLE_STRONG = 75
CONFIDENCE_REVIEW = 40
CONFIDENCE_NONE = 0

# User agent for Nominatim (required by their usage policy)
USER_AGENT = "rinkside-venue-resolver"


@dataclass(frozen=True)
class Region:
    """Circular location bias for place search."""
    latitude: float
    longitude: float
    radius_meters: float = 50000.0

    def to_request(self) -> dict:
        return {
            "circle": {
                "center": {"latitude": self.latitude, "longitude": self.longitude},
                "radius": self.radius_meters,
            }
        }

    @classmethod
    def default(cls) -> "Region":
        return cls(
            latitude=settings.GEOCODE_BIAS_LAT,
            longitude=settings.GEOCODE_BIAS_LNG,
            radius_meters=settings.GEOCODE_BIAS_RADIUS_METERS,
        )


@dataclass(frozen=True)
class PlaceCandidate:
    place_id: str
    name: str
    formatted_address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    similarity: float = 0.0


@dataclass(frozen=True)
class GeocodeResult:
    """Place candidates plus the derived 0-100 confidence."""
    query: str
    candidates: List[PlaceCandidate] = field(default_factory=list)
    confidence: int = CONFIDENCE_NONE
    auto_save_eligible: bool = False
    available: bool = True

    @property
    def needs_manual_entry(self) -> bool:
        return not self.available or not self.candidates

    @classmethod
    def unavailable(cls, query: str) -> "GeocodeResult":
        """Result used when the service could not be reached."""
        return cls(query=query, available=False)


def score_confidence(query: str, display_names: List[str]) -> Tuple[int, bool]:
    """
    Derive (confidence, auto_save_eligible) from result count and name similarity.

    - one result, similarity >= 0.85 -> 95, eligible
    - one result, similarity >= 0.70 -> 80, eligible
    - several results, top similarity >= 0.85 -> 75, not eligible
    - anything else -> 40, manual review
    - no results -> 0
    """
    if not display_names:
        return CONFIDENCE_NONE, False

    top = max(name_similarity(query, name) for name in display_names)

    if len(display_names) == 1:
        if top >= STRONG_MATCH:
            return CONFIDENCE_SINGLE_STRONG, True
        if top >= GOOD_MATCH:
            return CONFIDENCE_SINGLE_GOOD, True
    elif top >= STRONG_MATCH:
        return CONFIDENCE_MULTIPLE_STRONG, False

    return CONFIDENCE_REVIEW, False


class PlacesClient:
    """
    Client for the Places text-search endpoint.

    Retries rate limits, server errors and network failures with capped
    exponential backoff; other client errors raise GeocodeFatalFailure.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        search_url: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self.session = session or requests.Session()
        self.max_attempts = max_attempts or settings.GEOCODE_MAX_ATTEMPTS
        self.base_delay = base_delay if base_delay is not None else settings.GEOCODE_BASE_DELAY
        self.max_delay = max_delay if max_delay is not None else settings.GEOCODE_MAX_DELAY
        self.timeout = timeout or settings.GEOCODE_TIMEOUT
        self.search_url = search_url or getattr(settings, 'GOOGLE_PLACES_SEARCH_URL', PLACES_SEARCH_URL)

    def _backoff(self, attempt: int) -> float:
        return min(self.max_delay, self.base_delay * (2 ** attempt))

    def _post(self, body: dict) -> dict:
        if not self.api_key:
            raise GeocodeFatalFailure("GOOGLE_MAPS_API_KEY is not set")

        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": FIELD_MASK,
        }

        last_error = None
        for attempt in range(self.max_attempts):
            try:
                response = self.session.post(self.search_url, json=body, headers=headers, timeout=self.timeout)
            except (requests.ConnectionError, requests.Timeout) as exc:
                last_error = GeocodeTransientFailure(f"Network error: {exc}")
            else:
                if response.status_code == 200:
                    return response.json()
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    raise GeocodeFatalFailure(
                        f"Places API error (status {response.status_code}): {response.text[:200]}",
                        status_code=response.status_code,
                    )
                last_error = GeocodeTransientFailure(
                    f"Places API status {response.status_code}", status_code=response.status_code
                )

            if attempt + 1 < self.max_attempts:
                delay = self._backoff(attempt)
                logger.warning(
                    f"Place search attempt {attempt + 1}/{self.max_attempts} failed ({last_error}); "
                    f"retrying in {delay:.1f}s"
                )
                time.sleep(delay)

        raise last_error

    def geocode(self, venue_name: str, location_bias: Optional[Region] = None) -> GeocodeResult:
        """
        Search places for a venue name.

        Returns GeocodeResult.unavailable() when retries are exhausted.

        Raises:
            GeocodeFatalFailure: bad request, auth failure or missing key
        """
        if not venue_name or not venue_name.strip():
            return GeocodeResult(query=venue_name or "")

        region = location_bias or Region.default()
        body = {"textQuery": venue_name.strip(), "locationBias": region.to_request()}

        try:
            data = self._post(body)
        except GeocodeTransientFailure as exc:
            logger.error(f"Place search gave up for '{venue_name}': {exc}")
            return GeocodeResult.unavailable(venue_name)

        places = data.get("places") or []
        candidates = [self._parse_place(venue_name, place) for place in places]
        candidates = [c for c in candidates if c.place_id]
        candidates.sort(key=lambda c: -c.similarity)

        confidence, eligible = score_confidence(venue_name, [c.name for c in candidates])
        logger.info(f"Place search '{venue_name}': {len(candidates)} results, confidence {confidence}")
        return GeocodeResult(
            query=venue_name,
            candidates=candidates,
            confidence=confidence,
            auto_save_eligible=eligible,
        )

    @staticmethod
    def _parse_place(query: str, place: dict) -> PlaceCandidate:
        name = (place.get("displayName") or {}).get("text", "")
        location = place.get("location") or {}
        return PlaceCandidate(
            place_id=place.get("id", ""),
            name=name,
            formatted_address=place.get("formattedAddress", ""),
            latitude=location.get("latitude"),
            longitude=location.get("longitude"),
            similarity=name_similarity(query, name),
        )


def geocode_address(address: str) -> Tuple[Optional[Decimal], Optional[Decimal]]:
    """
    Geocode an address string to latitude/longitude.

    Args:
        address: Full address string to geocode

    Returns:
        Tuple of (latitude, longitude) as Decimals, or (None, None) if not found
    """
    if not address or not address.strip():
        return (None, None)

    try:
        geocoder = Nominatim(user_agent=getattr(settings, 'GEOPY_USER_AGENT', USER_AGENT), timeout=10)
        location = geocoder.geocode(address)
    except (GeocoderTimedOut, GeocoderServiceError) as e:
        logger.error(f"Geocoding service error for '{address}': {e}")
        return (None, None)

    if location:
        lat = to_decimal(location.latitude)
        lon = to_decimal(location.longitude)
        logger.info(f"Geocoded '{address}' to ({lat}, {lon})")
        return (lat, lon)

    logger.warning(f"No geocoding result for: {address}")
    return (None, None)


def backfill_coordinates(venue_id: int, delay: float = 0.0) -> dict:
    """
    Backfill coordinates for a venue by ID.

    Args:
        venue_id: ID of the Venue to geocode
        delay: Seconds to wait before calling Nominatim (its usage policy
            allows one request per second)

    Returns:
        Dict with the venue id and a status of success, not_found,
        already_geocoded, no_address or no_result
    """
    from venues.models import Venue

    try:
        venue = Venue.objects.get(id=venue_id)
    except Venue.DoesNotExist:
        logger.warning(f"Venue {venue_id} not found for geocoding")
        return {'venue_id': venue_id, 'status': 'not_found'}

    # Skip if already geocoded
    if venue.latitude is not None and venue.longitude is not None:
        logger.debug(f"Venue {venue_id} already has coordinates, skipping")
        return {'venue_id': venue_id, 'status': 'already_geocoded'}

    address = venue.get_full_address()
    if not address:
        logger.warning(f"Venue {venue_id} has no address to geocode")
        return {'venue_id': venue_id, 'status': 'no_address'}

    if delay:
        time.sleep(delay)
    lat, lon = geocode_address(address)

    if lat is None or lon is None:
        return {'venue_id': venue_id, 'status': 'no_result'}

    venue.latitude = lat
    venue.longitude = lon
    venue.save(update_fields=['latitude', 'longitude', 'updated_at'])
    logger.info(f"Updated venue {venue_id} coordinates: ({lat}, {lon})")
    return {'venue_id': venue_id, 'status': 'success', 'lat': float(lat), 'lon': float(lon)}


def geocode_venue(venue_id: int) -> bool:
    """Backfill coordinates for a venue. True if coordinates were updated."""
    return backfill_coordinates(venue_id)['status'] == 'success'
