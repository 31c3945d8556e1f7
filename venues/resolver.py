"""
Venue resolution service.

Provides:
- resolve(): raw scraped name -> Resolved | LowConfidenceResolved | Ambiguous
- resolve_venue(): the JSON payload consumed by the chat/travel-time service

Read-only and deterministic: for a fixed catalog the same input always gives
the same result. Store failures surface as StoreUnavailable.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from django.conf import settings

from venues.normalization import normalize
from venues.store import Candidate, search_candidates

logger = logging.getLogger(__name__)

STATUS_RESOLVED = "resolved"
STATUS_LOW_CONFIDENCE = "low_confidence"
STATUS_AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class ResolverConfig:
    """Tunable thresholds for the tiered confidence policy."""
    auto_threshold: float = 0.7
    review_threshold: float = 0.5
    tie_epsilon: float = 0.05
    max_candidates: int = 3

    @classmethod
    def from_settings(cls) -> "ResolverConfig":
        conf = getattr(settings, 'VENUE_RESOLUTION', {})
        return cls(
            auto_threshold=conf.get('AUTO_RESOLVE_THRESHOLD', cls.auto_threshold),
            review_threshold=conf.get('REVIEW_THRESHOLD', cls.review_threshold),
            tie_epsilon=conf.get('TIE_EPSILON', cls.tie_epsilon),
            max_candidates=conf.get('MAX_CANDIDATES', cls.max_candidates),
        )


@dataclass(frozen=True)
class Resolved:
    """Single venue at or above the auto-resolve threshold."""
    venue_id: int
    canonical_name: str
    address: str
    coordinates: Optional[dict]
    place_id: Optional[str]
    confidence: float
    normalized_query: str = ""
    rink_identifier: Optional[str] = None
    year_context: Optional[str] = None

    status = STATUS_RESOLVED
    flagged = False


@dataclass(frozen=True)
class LowConfidenceResolved(Resolved):
    """Single venue between the review floor and the auto-resolve threshold."""

    status = STATUS_LOW_CONFIDENCE
    flagged = True


@dataclass(frozen=True)
class Ambiguous:
    """
    No safe single answer: near-tied or below-floor candidates.

    An empty candidate list means nothing matched at all.
    """
    candidates: List[Candidate] = field(default_factory=list)
    normalized_query: str = ""
    rink_identifier: Optional[str] = None
    year_context: Optional[str] = None

    status = STATUS_AMBIGUOUS

    @property
    def is_not_found(self) -> bool:
        return not self.candidates


ResolutionResult = Union[Resolved, LowConfidenceResolved, Ambiguous]


def _is_tied(candidates: List[Candidate], epsilon: float) -> bool:
    """True if a second venue scores within epsilon of the top one."""
    if len(candidates) < 2:
        return False
    return candidates[0].score - candidates[1].score <= epsilon


def resolve(raw_name: str, config: Optional[ResolverConfig] = None) -> ResolutionResult:
    """
    Resolve a raw venue name against the catalog.

    Policy against the top score s:
    - s >= auto_threshold and no tie -> Resolved
    - review_threshold <= s < auto_threshold and no tie -> LowConfidenceResolved
    - s < review_threshold, or a near-tie -> Ambiguous (up to max_candidates)
    - no candidates -> Ambiguous with an empty list

    Raises:
        StoreUnavailable: the venue store could not be queried
    """
    config = config or ResolverConfig.from_settings()
    name = normalize(raw_name)
    context = {
        "normalized_query": name.normalized,
        "rink_identifier": name.rink_identifier,
        "year_context": name.year_context,
    }

    if not name.normalized:
        logger.debug("Empty venue query after normalization")
        return Ambiguous(candidates=[], **context)

    candidates = search_candidates(name.normalized)

    if not candidates:
        logger.info(f"No venue candidates for '{name.normalized}'")
        return Ambiguous(candidates=[], **context)

    top = candidates[0]

    if _is_tied(candidates, config.tie_epsilon) or top.score < config.review_threshold:
        logger.info(
            f"Venue '{name.normalized}' ambiguous: top={top.score:.3f}, "
            f"{len(candidates)} candidates"
        )
        return Ambiguous(candidates=candidates[:config.max_candidates], **context)

    result_class = Resolved if top.score >= config.auto_threshold else LowConfidenceResolved
    logger.info(f"Venue '{name.normalized}' -> {top.canonical_name} ({result_class.status}, {top.score:.3f})")
    return result_class(
        venue_id=top.venue_id,
        canonical_name=top.canonical_name,
        address=top.address,
        coordinates=top.coordinates,
        place_id=top.place_id,
        confidence=top.score,
        **context,
    )


def _candidate_payload(candidate: Candidate) -> dict:
    return {
        "venueId": candidate.venue_id,
        "name": candidate.canonical_name,
        "address": candidate.address,
        "confidence": candidate.score,
    }


def to_payload(result: ResolutionResult) -> dict:
    """Serialize a resolution result into the external response shape."""
    payload = {"status": result.status}

    if isinstance(result, Ambiguous):
        payload["candidates"] = [_candidate_payload(c) for c in result.candidates]
    else:
        payload.update({
            "venueId": result.venue_id,
            "name": result.canonical_name,
            "address": result.address,
            "coordinates": result.coordinates,
            "placeId": result.place_id,
            "confidence": result.confidence,
        })

    if result.rink_identifier:
        payload["rinkIdentifier"] = result.rink_identifier
    if result.year_context:
        payload["yearContext"] = result.year_context
    return payload


def resolve_venue(name: str) -> dict:
    """Resolve a venue name and return the external response payload."""
    return to_payload(resolve(name))
