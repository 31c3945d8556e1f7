"""Tests for the venue resolver and its tiered confidence policy."""

from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase, override_settings

from venues.errors import StoreUnavailable
from venues.models import RejectedMatch, Venue, VenueAlias
from venues.resolver import (
    Ambiguous,
    LowConfidenceResolved,
    Resolved,
    ResolverConfig,
    resolve,
    resolve_venue,
    to_payload,
)


class ResolverTestMixin:
    """Shared catalog of Southern California rinks."""

    @classmethod
    def setUpTestData(cls):
        cls.yorba = Venue.objects.create(
            canonical_name="Yorba Linda ICE",
            street_address="23641 La Palma Ave",
            city="Yorba Linda",
            state="CA",
            postal_code="92887",
            latitude=Decimal("33.862700"),
            longitude=Decimal("-117.787400"),
            place_id="place-yorba",
        )
        cls.toyota = Venue.objects.create(canonical_name="Toyota Sports Performance Center", city="El Segundo", state="CA")
        cls.pickwick = Venue.objects.create(canonical_name="Pickwick Ice Center", city="Burbank", state="CA")
        cls.lakeside = Venue.objects.create(canonical_name="Lakeside Ice Center", city="Lake Forest", state="CA")


class ResolveTests(ResolverTestMixin, TestCase):
    """Tests for resolve()."""

    def test_exact_name_resolves(self):
        result = resolve("Yorba Linda ICE")

        self.assertIsInstance(result, Resolved)
        self.assertNotIsInstance(result, LowConfidenceResolved)
        self.assertEqual(result.venue_id, self.yorba.id)
        self.assertEqual(result.confidence, 1.0)
        self.assertFalse(result.flagged)

    def test_sponsor_abbreviation_resolves(self):
        result = resolve("TSPC")

        self.assertIsInstance(result, Resolved)
        self.assertEqual(result.venue_id, self.toyota.id)
        self.assertEqual(result.confidence, 1.0)

    def test_rink_and_year_are_carried_through(self):
        result = resolve("YLICE Rink 2 2025")

        self.assertEqual(result.venue_id, self.yorba.id)
        self.assertEqual(result.rink_identifier, "rink 2")
        self.assertEqual(result.year_context, "2025")
        self.assertEqual(result.normalized_query, "yorba linda ice")

    def test_resolved_carries_address_and_coordinates(self):
        result = resolve("Yorba Linda ICE")

        self.assertEqual(result.address, "23641 La Palma Ave, Yorba Linda, CA 92887")
        self.assertEqual(result.coordinates, {"lat": 33.8627, "lng": -117.7874})
        self.assertEqual(result.place_id, "place-yorba")

    def test_near_tie_is_ambiguous(self):
        # pickwick 11/19 vs lakeside 11/20: within 0.05
        result = resolve("Ice Center")

        self.assertIsInstance(result, Ambiguous)
        self.assertEqual([c.venue_id for c in result.candidates][:2], [self.pickwick.id, self.lakeside.id])
        self.assertFalse(result.is_not_found)

    def test_low_confidence_when_no_tie(self):
        RejectedMatch.objects.create(normalized_alias="ice center", venue=self.lakeside)

        result = resolve("Ice Center")

        self.assertIsInstance(result, LowConfidenceResolved)
        self.assertEqual(result.venue_id, self.pickwick.id)
        self.assertTrue(result.flagged)
        self.assertEqual(result.status, "low_confidence")

    def test_below_review_floor_is_ambiguous(self):
        result = resolve("Center")

        self.assertIsInstance(result, Ambiguous)
        self.assertTrue(result.candidates)
        self.assertLess(result.candidates[0].score, 0.5)

    def test_no_candidates_is_not_found(self):
        result = resolve("Zzyzx")

        self.assertIsInstance(result, Ambiguous)
        self.assertTrue(result.is_not_found)

    def test_empty_input(self):
        result = resolve("   ")

        self.assertIsInstance(result, Ambiguous)
        self.assertEqual(result.candidates, [])

    def test_alias_weight_at_auto_threshold_resolves(self):
        VenueAlias.objects.create(venue=self.pickwick, alias_text="Burbank Rinkside", confidence_weight=0.7)

        result = resolve("Burbank Rinkside")

        self.assertIsInstance(result, Resolved)
        self.assertNotIsInstance(result, LowConfidenceResolved)
        self.assertEqual(result.confidence, 0.7)

    def test_alias_weight_between_thresholds_is_low_confidence(self):
        VenueAlias.objects.create(venue=self.pickwick, alias_text="Burbank Rinkside", confidence_weight=0.6)

        result = resolve("Burbank Rinkside")

        self.assertIsInstance(result, LowConfidenceResolved)

    def test_alias_weight_below_floor_is_ambiguous(self):
        VenueAlias.objects.create(venue=self.pickwick, alias_text="Burbank Rinkside", confidence_weight=0.49)

        result = resolve("Burbank Rinkside")

        self.assertIsInstance(result, Ambiguous)

    def test_candidates_capped(self):
        for name in ("Valley Ice Center", "Culver Ice Center", "Ontario Ice Center"):
            Venue.objects.create(canonical_name=name)

        result = resolve("Ice Center")

        self.assertIsInstance(result, Ambiguous)
        self.assertEqual(len(result.candidates), 3)

    def test_custom_config(self):
        config = ResolverConfig(auto_threshold=0.5, review_threshold=0.3, tie_epsilon=0.01)

        result = resolve("Ice Center", config=config)

        self.assertIsInstance(result, Resolved)
        self.assertEqual(result.venue_id, self.pickwick.id)

    def test_deterministic(self):
        self.assertEqual(resolve("Ice Center"), resolve("Ice Center"))

    @override_settings(VENUE_RESOLUTION={'AUTO_RESOLVE_THRESHOLD': 0.95})
    def test_config_from_settings(self):
        config = ResolverConfig.from_settings()

        self.assertEqual(config.auto_threshold, 0.95)
        self.assertEqual(config.review_threshold, 0.5)

    @patch('venues.resolver.search_candidates')
    def test_store_failure_propagates(self, mock_search):
        mock_search.side_effect = StoreUnavailable("down")

        with self.assertRaises(StoreUnavailable):
            resolve("Yorba Linda ICE")


class PayloadTests(ResolverTestMixin, TestCase):
    """Tests for the external response payload."""

    def test_resolved_payload(self):
        payload = resolve_venue("Yorba Linda ICE (Rink 2)")

        self.assertEqual(payload["status"], "resolved")
        self.assertEqual(payload["venueId"], self.yorba.id)
        self.assertEqual(payload["name"], "Yorba Linda ICE")
        self.assertEqual(payload["address"], "23641 La Palma Ave, Yorba Linda, CA 92887")
        self.assertEqual(payload["placeId"], "place-yorba")
        self.assertEqual(payload["confidence"], 1.0)
        self.assertEqual(payload["rinkIdentifier"], "rink 2")
        self.assertNotIn("yearContext", payload)

    def test_ambiguous_payload(self):
        payload = to_payload(resolve("Ice Center"))

        self.assertEqual(payload["status"], "ambiguous")
        self.assertEqual(payload["candidates"][0]["venueId"], self.pickwick.id)
        self.assertEqual(payload["candidates"][0]["name"], "Pickwick Ice Center")
        self.assertNotIn("venueId", payload)

    def test_not_found_payload(self):
        payload = resolve_venue("Zzyzx")

        self.assertEqual(payload, {"status": "ambiguous", "candidates": []})
