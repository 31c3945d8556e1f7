from datetime import timedelta
from typing import List
import logging

from django.shortcuts import get_object_or_404
from ninja import Field, ModelSchema, Query, Router, Schema
from ninja_jwt.authentication import JWTAuth

from api.auth import ServiceTokenAuth, StaffJWTAuth
from venues import discovery, review
from venues.importer import import_venues
from venues.models import ReviewQueueEntry, Venue, VenueAlias
from venues.resolver import resolve, to_payload
from venues.store import add_alias

logger = logging.getLogger(__name__)

router = Router()


class ResolveRequestSchema(Schema):
    name: str


class CandidateSchema(Schema):
    venue_id: int | None = None
    place_id: str | None = None
    name: str = ""
    address: str = ""
    latitude: float | None = None
    longitude: float | None = None
    confidence: float = 0.0
    origin: str = ""


class ReviewEntrySchema(ModelSchema):
    candidates: List[CandidateSchema] = []

    class Meta:
        model = ReviewQueueEntry
        fields = [
            "id",
            "alias_text",
            "normalized_alias",
            "top_confidence",
            "source",
            "needs_manual_entry",
            "status",
            "chosen_venue",
            "rejected_venue",
            "reviewed_by",
            "auto_approved",
            "created_at",
            "resolved_at",
        ]


class VenueChoiceSchema(Schema):
    venue_id: int


class CreateVenueSchema(Schema):
    canonical_name: str
    address: str
    place_id: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class VenueRecordSchema(Schema):
    canonical_name: str = ""
    address: str = ""
    place_id: str | None = None
    aliases: List[str] | str | None = None
    latitude: float | None = None
    longitude: float | None = None


class ImportRequestSchema(Schema):
    records: List[VenueRecordSchema]


class ImportSummarySchema(Schema):
    venues_imported: int
    venues_updated: int
    aliases_imported: int
    skipped: int
    errors: List[str]


class DiscoverRequestSchema(Schema):
    names: List[str]
    source: str = ""
    background: bool = False


class AliasCreateSchema(Schema):
    alias_text: str
    confidence_weight: float = Field(1.0, ge=0.0, le=1.0)


class AliasSchema(ModelSchema):
    class Meta:
        model = VenueAlias
        fields = ["id", "venue", "alias_text", "normalized_alias", "source", "confidence_weight", "created_at"]


def _reviewer(request) -> str:
    user = getattr(request, "user", None)
    return getattr(user, "username", "") or ""


@router.post("/venues/resolve", auth=[ServiceTokenAuth(), JWTAuth()])
def resolve_venue_name(request, payload: ResolveRequestSchema):
    result = resolve(payload.name)
    # Caller text may originate from a user's chat message; log the outcome only
    logger.info(f"Venue resolution: {result.status}")
    return to_payload(result)


@router.get("/venues/review", auth=StaffJWTAuth(), response=List[ReviewEntrySchema])
def list_review_queue(
    request,
    min_confidence: float | None = Query(None),
    max_confidence: float | None = Query(None),
    source: str | None = Query(None),
    older_than_hours: float | None = Query(None, description="Only entries queued at least this long ago"),
    newer_than_hours: float | None = Query(None, description="Only entries queued within this window"),
):
    return review.list_pending(
        min_confidence=min_confidence,
        max_confidence=max_confidence,
        source=source,
        older_than=timedelta(hours=older_than_hours) if older_than_hours is not None else None,
        newer_than=timedelta(hours=newer_than_hours) if newer_than_hours is not None else None,
    )


@router.post("/venues/review/{entry_id}/approve", auth=StaffJWTAuth(), response=ReviewEntrySchema)
def approve_review_entry(request, entry_id: int, payload: VenueChoiceSchema):
    return review.approve(entry_id, payload.venue_id, reviewed_by=_reviewer(request))


@router.post("/venues/review/{entry_id}/reject", auth=StaffJWTAuth(), response=ReviewEntrySchema)
def reject_review_entry(request, entry_id: int, payload: VenueChoiceSchema):
    return review.reject(entry_id, payload.venue_id, reviewed_by=_reviewer(request))


@router.post("/venues/review/{entry_id}/create-venue", auth=StaffJWTAuth(), response=ReviewEntrySchema)
def create_venue_from_review(request, entry_id: int, payload: CreateVenueSchema):
    return review.create_venue(
        entry_id,
        payload.canonical_name,
        payload.address,
        reviewed_by=_reviewer(request),
        place_id=payload.place_id,
        latitude=payload.latitude,
        longitude=payload.longitude,
    )


@router.post("/venues/import", auth=ServiceTokenAuth(), response=ImportSummarySchema)
def import_venue_records(request, payload: ImportRequestSchema):
    records = [record.dict() for record in payload.records]
    return import_venues(records).to_dict()


@router.post("/venues/discover", auth=ServiceTokenAuth())
def discover_venues(request, payload: DiscoverRequestSchema):
    if payload.background:
        from venues.tasks import run_discovery_task

        task = run_discovery_task.delay(payload.names, payload.source)
        return {"status": "queued", "task_id": task.id}

    summary = discovery.run_discovery(payload.names, source=payload.source)
    return summary.to_dict()


@router.post("/venues/{venue_id}/aliases", auth=StaffJWTAuth(), response={200: AliasSchema, 201: AliasSchema})
def add_venue_alias(request, venue_id: int, payload: AliasCreateSchema):
    venue = get_object_or_404(Venue, id=venue_id)
    alias, created = add_alias(
        venue,
        payload.alias_text,
        source=VenueAlias.Source.ADMIN,
        weight=payload.confidence_weight,
    )
    return (201 if created else 200), alias


@router.post("/venues/refresh-cache", auth=[ServiceTokenAuth(), StaffJWTAuth()])
def refresh_discovery_cache(request):
    cleared = discovery.clear_seen_cache()
    return {"status": "ok", "cleared": cleared}
