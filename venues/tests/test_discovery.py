"""Tests for the venue discovery pipeline."""

from decimal import Decimal
from unittest.mock import patch

from django.core.cache import cache
from django.test import TestCase, override_settings

from venues import review
from venues.discovery import (
    DiscoverySummary,
    clear_seen_cache,
    mark_seen,
    merge_candidates,
    run_discovery,
    was_seen,
)
from venues.errors import GeocodeFatalFailure
from venues.geocoding import GeocodeResult, PlaceCandidate
from venues.models import RejectedMatch, ReviewQueueEntry, Venue, VenueAlias


class FakePlacesClient:
    """Returns canned results per name and records every lookup."""

    def __init__(self, results=None, error=None):
        self.results = results or {}
        self.error = error
        self.calls = []

    def geocode(self, venue_name, location_bias=None):
        self.calls.append(venue_name)
        if self.error is not None:
            raise self.error
        return self.results.get(venue_name, GeocodeResult(query=venue_name))


def single_place(query, place_id, name, confidence=95):
    return GeocodeResult(
        query=query,
        candidates=[PlaceCandidate(place_id=place_id, name=name, formatted_address="", similarity=0.9)],
        confidence=confidence,
        auto_save_eligible=confidence >= 80,
    )


class DiscoveryTestCase(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.anaheim = Venue.objects.create(
            canonical_name="Anaheim ICE",
            street_address="300 W Lincoln Ave",
            city="Anaheim",
            state="CA",
            postal_code="92805",
            latitude=Decimal("33.835300"),
            longitude=Decimal("-117.917000"),
            place_id="place-anaheim",
        )
        cls.pickwick = Venue.objects.create(canonical_name="Pickwick Ice Center", city="Burbank", state="CA")
        cls.lakeside = Venue.objects.create(canonical_name="Lakeside Ice Center", city="Lake Forest", state="CA")

    def setUp(self):
        cache.clear()


class RunDiscoveryTests(DiscoveryTestCase):
    """Tests for run_discovery()."""

    def test_known_name_resolves_without_geocoding(self):
        client = FakePlacesClient()

        summary = run_discovery(["Anaheim ICE"], client=client)

        self.assertEqual(summary, DiscoverySummary(auto_resolved=1))
        self.assertEqual(client.calls, [])
        self.assertTrue(was_seen("anaheim ice"))

    def test_single_strong_place_for_known_venue_adds_alias(self):
        client = FakePlacesClient({
            "The Rinks Anaheim": single_place("The Rinks Anaheim", "place-anaheim", "Anaheim ICE"),
        })

        summary = run_discovery(["The Rinks Anaheim"], source="scaha", client=client)

        self.assertEqual(summary.auto_created, 1)
        self.assertEqual(summary.queued, 0)
        alias = VenueAlias.objects.get(venue=self.anaheim)
        self.assertEqual(alias.alias_text, "The Rinks Anaheim")
        self.assertEqual(alias.source, "scaha")
        self.assertFalse(ReviewQueueEntry.objects.exists())

    def test_new_place_is_queued_for_review(self):
        client = FakePlacesClient({
            "Great Park Ice": single_place("Great Park Ice", "place-gpi", "Great Park Ice & FivePoint Arena"),
        })

        summary = run_discovery(["Great Park Ice"], source="scaha", client=client)

        self.assertEqual(summary.queued, 1)
        entry = ReviewQueueEntry.objects.get(normalized_alias="great park ice")
        self.assertEqual(entry.status, ReviewQueueEntry.Status.PENDING)
        self.assertEqual(entry.source, "scaha")
        self.assertFalse(entry.needs_manual_entry)
        self.assertEqual(entry.top_confidence, 0.95)
        self.assertEqual(entry.candidates[0]['place_id'], "place-gpi")
        self.assertIsNone(entry.candidates[0]['venue_id'])
        self.assertEqual(entry.candidates[0]['origin'], "geocode")

    def test_no_place_results_needs_manual_entry(self):
        client = FakePlacesClient()

        summary = run_discovery(["Zzyzx Arena"], client=client)

        self.assertEqual(summary.queued, 1)
        entry = ReviewQueueEntry.objects.get(normalized_alias="zzyzx arena")
        self.assertTrue(entry.needs_manual_entry)

    def test_unavailable_geocoder_needs_manual_entry(self):
        client = FakePlacesClient({"Zzyzx Arena": GeocodeResult.unavailable("Zzyzx Arena")})

        run_discovery(["Zzyzx Arena"], client=client)

        entry = ReviewQueueEntry.objects.get(normalized_alias="zzyzx arena")
        self.assertTrue(entry.needs_manual_entry)
        self.assertEqual(entry.top_confidence, 0.0)

    def test_seen_names_are_skipped(self):
        client = FakePlacesClient()
        run_discovery(["Zzyzx Arena"], client=client)
        ReviewQueueEntry.objects.all().delete()

        summary = run_discovery(["Zzyzx Arena"], client=client)

        self.assertEqual(summary.skipped, 1)
        self.assertEqual(client.calls, ["Zzyzx Arena"])

    def test_pending_review_entry_is_skipped(self):
        ReviewQueueEntry.objects.create(alias_text="Zzyzx Arena", normalized_alias="zzyzx arena")
        client = FakePlacesClient()

        summary = run_discovery(["zzyzx arena"], client=client)

        self.assertEqual(summary.skipped, 1)
        self.assertEqual(client.calls, [])

    def test_duplicate_names_processed_once(self):
        client = FakePlacesClient()

        run_discovery(["Zzyzx Arena", "ZZYZX ARENA", "  zzyzx   arena "], client=client)

        self.assertEqual(len(client.calls), 1)
        self.assertEqual(ReviewQueueEntry.objects.count(), 1)

    @override_settings(VENUE_RESOLUTION={'GEOCODE_BATCH_SIZE': 2, 'GEOCODE_BATCH_DELAY': 1.5})
    @patch('venues.discovery.time.sleep')
    def test_geocoding_is_batched(self, mock_sleep):
        client = FakePlacesClient()

        run_discovery(["Zzyzx Arena", "Quartzsite Rink", "Bombay Beach Ice"], client=client)

        self.assertEqual(len(client.calls), 3)
        mock_sleep.assert_called_once_with(1.5)

    def test_fatal_geocode_failure_queues_and_raises(self):
        client = FakePlacesClient(error=GeocodeFatalFailure("bad key", status_code=403))

        with self.assertRaises(GeocodeFatalFailure):
            run_discovery(["Zzyzx Arena", "Quartzsite Rink"], client=client)

        self.assertEqual(client.calls, ["Zzyzx Arena"])
        entry = ReviewQueueEntry.objects.get(normalized_alias="zzyzx arena")
        self.assertTrue(entry.needs_manual_entry)
        self.assertEqual(entry.top_confidence, 0.0)
        self.assertFalse(ReviewQueueEntry.objects.filter(normalized_alias="quartzsite rink").exists())

    def test_rejected_pairing_blocks_alias_creation(self):
        RejectedMatch.objects.create(normalized_alias="rinks anaheim", venue=self.anaheim)
        client = FakePlacesClient({
            "The Rinks Anaheim": single_place("The Rinks Anaheim", "place-anaheim", "Anaheim ICE"),
        })

        summary = run_discovery(["The Rinks Anaheim"], client=client)

        self.assertEqual(summary.auto_created, 0)
        self.assertFalse(VenueAlias.objects.filter(venue=self.anaheim).exists())
        entry = ReviewQueueEntry.objects.get(normalized_alias="rinks anaheim")
        self.assertNotIn(self.anaheim.id, [c['venue_id'] for c in entry.candidates])
        self.assertTrue(entry.needs_manual_entry)

    def test_tied_catalog_candidates_are_not_auto_approved(self):
        VenueAlias.objects.create(venue=self.pickwick, alias_text="Ice Center")
        VenueAlias.objects.create(venue=self.lakeside, alias_text="Ice Center")
        client = FakePlacesClient({
            "Ice Center": single_place("Ice Center", "place-other", "Ice Center Of Somewhere", confidence=40),
        })

        run_discovery(["Ice Center"], client=client)
        approved = review.auto_approve()

        self.assertEqual(approved, 0)
        entry = ReviewQueueEntry.objects.get(normalized_alias="ice center")
        self.assertEqual(entry.status, ReviewQueueEntry.Status.PENDING)
        self.assertEqual(entry.top_confidence, 1.0)
        self.assertEqual(
            {c["venue_id"] for c in entry.candidates[:2]}, {self.pickwick.id, self.lakeside.id}
        )

    def test_blank_names_ignored(self):
        client = FakePlacesClient()

        summary = run_discovery(["", "   ", "🏒"], client=client)

        self.assertEqual(summary, DiscoverySummary())
        self.assertEqual(client.calls, [])


class MergeCandidatesTests(DiscoveryTestCase):
    """Tests for merge_candidates()."""

    def test_known_place_maps_to_venue(self):
        geocoded = single_place("The Rinks Anaheim", "place-anaheim", "Anaheim ICE", confidence=75)

        merged = merge_candidates([], geocoded, "rinks anaheim")

        self.assertEqual(merged[0]['venue_id'], self.anaheim.id)
        self.assertEqual(merged[0]['name'], "Anaheim ICE")
        self.assertEqual(merged[0]['confidence'], 0.75)

    def test_secondary_places_capped_by_similarity(self):
        geocoded = GeocodeResult(
            query="Ice Town",
            candidates=[
                PlaceCandidate(place_id="a", name="Ice Town Riverside", formatted_address="", similarity=0.9),
                PlaceCandidate(place_id="b", name="Icetown Carlsbad", formatted_address="", similarity=0.6),
            ],
            confidence=75,
        )

        merged = merge_candidates([], geocoded, "ice town")

        self.assertEqual([c['confidence'] for c in merged], [0.75, 0.6])


class SeenCacheTests(DiscoveryTestCase):

    def test_clear_seen_cache(self):
        run_discovery(["Anaheim ICE", "Pickwick Ice Center"], client=FakePlacesClient())

        self.assertEqual(clear_seen_cache(), 2)
        self.assertFalse(was_seen("anaheim ice"))
        self.assertEqual(clear_seen_cache(), 0)

    def test_marks_from_separate_runs_are_all_cleared(self):
        mark_seen("zzyzx arena")
        mark_seen("quartzsite rink")
        mark_seen("zzyzx arena")

        self.assertEqual(clear_seen_cache(), 2)
        self.assertFalse(was_seen("zzyzx arena"))
        self.assertFalse(was_seen("quartzsite rink"))

    def test_names_seen_after_clear_are_tracked(self):
        mark_seen("zzyzx arena")
        clear_seen_cache()

        mark_seen("quartzsite rink")

        self.assertTrue(was_seen("quartzsite rink"))
        self.assertFalse(was_seen("zzyzx arena"))
        self.assertEqual(clear_seen_cache(), 1)
