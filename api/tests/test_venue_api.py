"""
Tests for the venue resolution API.

Covers resolve, the review queue endpoints, import, discovery, alias
management and the error mapping.
"""

from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase
from model_bakery import baker
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from api.models import ServiceToken
from venues import review
from venues.errors import GeocodeFatalFailure, StoreUnavailable
from venues.geocoding import GeocodeResult
from venues.models import RejectedMatch, ReviewQueueEntry, Venue, VenueAlias


def jwt_client(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {str(refresh.access_token)}")
    return client


class VenueApiTestCase(TestCase):

    def setUp(self):
        cache.clear()
        User = get_user_model()
        self.staff = User.objects.create_user(username="reviewer", password="pass", is_staff=True)
        self.user = User.objects.create_user(username="player", password="pass")
        self.staff_client = jwt_client(self.staff)
        self.user_client = jwt_client(self.user)

        self.svc_client = APIClient()
        self.svc_token = baker.make(ServiceToken)
        self.svc_client.credentials(HTTP_AUTHORIZATION=f"Bearer {self.svc_token.token}")

        self.anon_client = APIClient()

        self.yorba = Venue.objects.create(
            canonical_name="Yorba Linda ICE",
            street_address="23641 La Palma Ave",
            city="Yorba Linda",
            state="CA",
            postal_code="92887",
            place_id="place-yorba",
        )
        self.pickwick = Venue.objects.create(canonical_name="Pickwick Ice Center", city="Burbank", state="CA")
        self.lakeside = Venue.objects.create(canonical_name="Lakeside Ice Center", city="Lake Forest", state="CA")


class ResolveEndpointTests(VenueApiTestCase):

    def test_resolved_with_service_token(self):
        resp = self.svc_client.post("/api/v1/venues/resolve", {"name": "YLICE Rink 2"}, format="json")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "resolved"
        assert data["venueId"] == self.yorba.id
        assert data["address"] == "23641 La Palma Ave, Yorba Linda, CA 92887"
        assert data["rinkIdentifier"] == "rink 2"

    def test_resolve_with_user_jwt(self):
        resp = self.user_client.post("/api/v1/venues/resolve", {"name": "Yorba Linda ICE"}, format="json")

        assert resp.status_code == 200
        assert resp.json()["status"] == "resolved"

    def test_ambiguous(self):
        resp = self.svc_client.post("/api/v1/venues/resolve", {"name": "Ice Center"}, format="json")

        data = resp.json()
        assert data["status"] == "ambiguous"
        assert [c["venueId"] for c in data["candidates"]][:2] == [self.pickwick.id, self.lakeside.id]

    def test_requires_auth(self):
        resp = self.anon_client.post("/api/v1/venues/resolve", {"name": "Yorba Linda ICE"}, format="json")

        assert resp.status_code == 401

    @patch('venues.resolver.search_candidates')
    def test_store_unavailable_maps_to_503(self, mock_search):
        mock_search.side_effect = StoreUnavailable("connection refused")

        resp = self.svc_client.post("/api/v1/venues/resolve", {"name": "Yorba Linda ICE"}, format="json")

        assert resp.status_code == 503
        assert resp.json() == {"error": "store_unavailable", "detail": "connection refused", "retryable": True}


class ReviewEndpointTests(VenueApiTestCase):

    def setUp(self):
        super().setUp()
        self.entry, _ = review.enqueue(
            "Ice Center",
            [
                {'venue_id': self.pickwick.id, 'name': "Pickwick Ice Center", 'confidence': 0.58},
                {'venue_id': self.lakeside.id, 'name': "Lakeside Ice Center", 'confidence': 0.55},
            ],
            source="scaha",
        )
        self.low, _ = review.enqueue("Zzyzx Arena", [], source="ahf")

    def test_list_pending(self):
        resp = self.staff_client.get("/api/v1/venues/review")

        assert resp.status_code == 200
        data = resp.json()
        assert [e["id"] for e in data] == [self.entry.id, self.low.id]
        assert data[0]["candidates"][0]["venue_id"] == self.pickwick.id
        assert data[1]["needs_manual_entry"] is True

    def test_list_filters(self):
        resp = self.staff_client.get("/api/v1/venues/review?min_confidence=0.5&source=scaha")

        assert [e["id"] for e in resp.json()] == [self.entry.id]

    def test_list_requires_staff(self):
        assert self.user_client.get("/api/v1/venues/review").status_code == 403
        assert self.anon_client.get("/api/v1/venues/review").status_code == 401

    def test_approve(self):
        resp = self.staff_client.post(
            f"/api/v1/venues/review/{self.entry.id}/approve", {"venue_id": self.pickwick.id}, format="json"
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "approved"
        assert data["chosen_venue"] == self.pickwick.id
        assert data["reviewed_by"] == "reviewer"
        assert VenueAlias.objects.filter(venue=self.pickwick, normalized_alias="ice center").exists()

    def test_approve_replay_is_idempotent(self):
        url = f"/api/v1/venues/review/{self.entry.id}/approve"
        self.staff_client.post(url, {"venue_id": self.pickwick.id}, format="json")

        resp = self.staff_client.post(url, {"venue_id": self.pickwick.id}, format="json")

        assert resp.status_code == 200
        assert VenueAlias.objects.filter(venue=self.pickwick).count() == 1

    def test_conflicting_action_is_409(self):
        self.staff_client.post(
            f"/api/v1/venues/review/{self.entry.id}/approve", {"venue_id": self.pickwick.id}, format="json"
        )

        resp = self.staff_client.post(
            f"/api/v1/venues/review/{self.entry.id}/reject", {"venue_id": self.lakeside.id}, format="json"
        )

        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_transition"
        assert resp.json()["retryable"] is False

    def test_reject(self):
        resp = self.staff_client.post(
            f"/api/v1/venues/review/{self.entry.id}/reject", {"venue_id": self.lakeside.id}, format="json"
        )

        assert resp.status_code == 200
        assert resp.json()["status"] == "rejected"
        assert RejectedMatch.objects.filter(normalized_alias="ice center", venue=self.lakeside).exists()

    def test_create_venue(self):
        resp = self.staff_client.post(
            f"/api/v1/venues/review/{self.low.id}/create-venue",
            {"canonical_name": "Zzyzx Ice Arena", "address": "1 Zzyzx Rd, Baker, CA 92309"},
            format="json",
        )

        assert resp.status_code == 200
        assert resp.json()["status"] == "created_new"
        venue = Venue.objects.get(canonical_name="Zzyzx Ice Arena")
        assert venue.city == "Baker"
        assert VenueAlias.objects.filter(venue=venue, normalized_alias="zzyzx arena").exists()

    def test_create_venue_with_taken_place_id_is_409(self):
        resp = self.staff_client.post(
            f"/api/v1/venues/review/{self.low.id}/create-venue",
            {"canonical_name": "Zzyzx Ice Arena", "address": "1 Zzyzx Rd, Baker, CA 92309", "place_id": "place-yorba"},
            format="json",
        )

        assert resp.status_code == 409
        assert resp.json()["error"] == "conflict"
        assert not Venue.objects.filter(canonical_name="Zzyzx Ice Arena").exists()
        self.low.refresh_from_db()
        assert self.low.status == "pending"

    def test_unknown_entry_is_404(self):
        resp = self.staff_client.post(
            "/api/v1/venues/review/999999/approve", {"venue_id": self.pickwick.id}, format="json"
        )

        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"


class ImportEndpointTests(VenueApiTestCase):

    def test_import(self):
        records = [
            {
                "canonical_name": "Anaheim ICE",
                "address": "300 W Lincoln Ave, Anaheim, CA 92805",
                "aliases": ["The Rinks Anaheim"],
            },
            {"canonical_name": "Broken Record"},
        ]

        resp = self.svc_client.post("/api/v1/venues/import", {"records": records}, format="json")

        assert resp.status_code == 200
        data = resp.json()
        assert data["venues_imported"] == 1
        assert data["aliases_imported"] == 1
        assert len(data["errors"]) == 1
        assert data["errors"][0].startswith("record 1:")

    def test_import_requires_service_token(self):
        resp = self.staff_client.post("/api/v1/venues/import", {"records": []}, format="json")

        assert resp.status_code == 401


class DiscoverEndpointTests(VenueApiTestCase):

    @patch('venues.discovery.PlacesClient')
    def test_discover(self, mock_client_class):
        mock_client_class.return_value.geocode.side_effect = lambda name, location_bias=None: GeocodeResult(query=name)

        resp = self.svc_client.post(
            "/api/v1/venues/discover", {"names": ["Yorba Linda ICE", "Zzyzx Arena"], "source": "scaha"}, format="json"
        )

        assert resp.status_code == 200
        assert resp.json() == {"auto_resolved": 1, "auto_created": 0, "queued": 1, "skipped": 0, "failed": 0}
        assert ReviewQueueEntry.objects.get().source == "scaha"

    @patch('venues.discovery.PlacesClient')
    def test_fatal_geocode_failure_maps_to_502(self, mock_client_class):
        mock_client_class.return_value.geocode.side_effect = GeocodeFatalFailure("GOOGLE_MAPS_API_KEY is not set")

        resp = self.svc_client.post("/api/v1/venues/discover", {"names": ["Zzyzx Arena"]}, format="json")

        assert resp.status_code == 502
        assert resp.json()["error"] == "geocode_failed"

    @patch('venues.tasks.run_discovery_task.delay')
    def test_background(self, mock_delay):
        mock_delay.return_value.id = "task-123"

        resp = self.svc_client.post(
            "/api/v1/venues/discover", {"names": ["Zzyzx Arena"], "background": True}, format="json"
        )

        assert resp.json() == {"status": "queued", "task_id": "task-123"}
        mock_delay.assert_called_once_with(["Zzyzx Arena"], "")


class AliasEndpointTests(VenueApiTestCase):

    def test_add_alias(self):
        url = f"/api/v1/venues/{self.pickwick.id}/aliases"

        first = self.staff_client.post(url, {"alias_text": "Burbank Rinkside", "confidence_weight": 0.8}, format="json")
        second = self.staff_client.post(url, {"alias_text": "burbank rinkside"}, format="json")

        assert first.status_code == 201
        assert first.json()["source"] == "admin"
        assert first.json()["confidence_weight"] == 0.8
        assert second.status_code == 200
        assert second.json()["id"] == first.json()["id"]

    def test_weight_out_of_range(self):
        resp = self.staff_client.post(
            f"/api/v1/venues/{self.pickwick.id}/aliases",
            {"alias_text": "Burbank Rinkside", "confidence_weight": 1.5},
            format="json",
        )

        assert resp.status_code == 422

    def test_unknown_venue(self):
        resp = self.staff_client.post("/api/v1/venues/999999/aliases", {"alias_text": "X Rink"}, format="json")

        assert resp.status_code == 404


class RefreshCacheEndpointTests(VenueApiTestCase):

    @patch('venues.discovery.PlacesClient')
    def test_refresh_clears_seen_names(self, mock_client_class):
        self.svc_client.post("/api/v1/venues/discover", {"names": ["Yorba Linda ICE"]}, format="json")

        resp = self.svc_client.post("/api/v1/venues/refresh-cache")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "cleared": 1}

    def test_refresh_with_staff(self):
        assert self.staff_client.post("/api/v1/venues/refresh-cache").status_code == 200


class HealthEndpointTests(TestCase):

    def test_live(self):
        resp = self.client.get("/api/live")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_ready(self):
        resp = self.client.get("/api/ready")

        assert resp.status_code == 200
        assert resp.json()["checks"]["db"]["ok"] is True
