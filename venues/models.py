"""
Venue catalog models.

Canonical rink venues, their observed aliases, and the review queue for
scraped names that could not be resolved with confidence.
"""

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q

from venues.normalization import normalize_text


class Venue(models.Model):
    """
    Canonical physical facility.

    normalized_name is always derived from canonical_name on save and is
    only used for matching.
    """

    # Core identity
    canonical_name = models.CharField(max_length=200, unique=True, help_text="Display name (e.g., 'Yorba Linda ICE')")
    normalized_name = models.CharField(max_length=200, db_index=True, editable=False, help_text="Derived matching key")

    # Structured address components
    street_address = models.CharField(max_length=255, blank=True, help_text="Street address (e.g., '23641 La Palma Ave')")
    city = models.CharField(max_length=100, blank=True, help_text="City name")
    state = models.CharField(max_length=50, blank=True, help_text="State/region abbreviation")
    postal_code = models.CharField(max_length=20, blank=True, help_text="ZIP/postal code")
    country = models.CharField(max_length=2, default='US', help_text="ISO 3166-1 alpha-2 country code")
    formatted_address = models.CharField(max_length=400, blank=True, help_text="Single-line address as supplied or geocoded")

    # Geocoding
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True, help_text="Latitude coordinate")
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True, help_text="Longitude coordinate")
    place_id = models.CharField(max_length=255, null=True, blank=True, unique=True, help_text="External place identifier")

    # Free-form facility data (e.g., {"rinks": 2})
    metadata = models.JSONField(default=dict, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['canonical_name']
        indexes = [
            models.Index(fields=['city', 'state'], name='venue_city_state_idx'),
        ]

    def __str__(self) -> str:
        return self.canonical_name

    def get_full_address(self) -> str:
        """Return formatted full address."""
        if not (self.street_address or self.city):
            return self.formatted_address
        parts = []
        if self.street_address:
            parts.append(self.street_address)
        if self.city:
            parts.append(f"{self.city}, {self.state}".rstrip(", "))
        if self.postal_code:
            parts[-1] = f"{parts[-1]} {self.postal_code}"
        return ", ".join(parts)

    @property
    def coordinates(self):
        if self.latitude is None or self.longitude is None:
            return None
        return {"lat": float(self.latitude), "lng": float(self.longitude)}

    def save(self, *args, **kwargs):
        """Recompute normalized_name from canonical_name."""
        self.normalized_name = normalize_text(self.canonical_name)
        if not self.place_id:
            self.place_id = None
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and 'canonical_name' in update_fields:
            kwargs['update_fields'] = set(update_fields) | {'normalized_name'}
        super().save(*args, **kwargs)


class VenueAlias(models.Model):
    """Alternate spelling, abbreviation or historical name observed for a venue."""

    class Source(models.TextChoices):
        IMPORT = 'import', 'Import'
        ADMIN = 'admin', 'Admin'
        REVIEW = 'review', 'Review'
        DISCOVERY = 'discovery', 'Discovery'

    venue = models.ForeignKey(Venue, on_delete=models.PROTECT, related_name='aliases')
    alias_text = models.CharField(max_length=200, help_text="Alias as observed")
    normalized_alias = models.CharField(max_length=200, db_index=True, editable=False)
    # Free text: a feed tag such as "scaha" or one of Source
    source = models.CharField(max_length=100, default=Source.IMPORT)
    confidence_weight = models.FloatField(
        default=1.0,
        validators=[MinValueValidator(0.0), MaxValueValidator(1.0)],
        help_text="Trust relative to the canonical name (0-1)",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['venue_id', 'alias_text']
        constraints = [
            models.UniqueConstraint(fields=['venue', 'normalized_alias'], name='unique_alias_per_venue'),
        ]

    def __str__(self) -> str:
        return f"{self.alias_text} -> {self.venue_id}"

    def save(self, *args, **kwargs):
        self.normalized_alias = normalize_text(self.alias_text)
        super().save(*args, **kwargs)


class RejectedMatch(models.Model):
    """A reviewer-rejected (alias, venue) pairing that must not be suggested again."""

    normalized_alias = models.CharField(max_length=200, db_index=True)
    venue = models.ForeignKey(Venue, on_delete=models.CASCADE, related_name='rejected_matches')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['normalized_alias', 'venue'], name='unique_rejected_match'),
        ]

    def __str__(self) -> str:
        return f"{self.normalized_alias} !-> {self.venue_id}"


class ReviewQueueEntry(models.Model):
    """
    Scraped venue name awaiting human adjudication.

    Holds only scraped strings and system-computed candidates. Terminal
    entries are kept as the audit trail.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        APPROVED = 'approved', 'Approved'
        REJECTED = 'rejected', 'Rejected'
        CREATED_NEW = 'created_new', 'Created new venue'

    alias_text = models.CharField(max_length=200)
    normalized_alias = models.CharField(max_length=200, db_index=True)
    # Ranked list of up to 3 dicts: venue_id, place_id, name, address,
    # latitude, longitude, confidence (0-1), origin ("store" or "geocode")
    candidates = models.JSONField(default=list, blank=True)
    top_confidence = models.FloatField(default=0.0, db_index=True)
    source = models.CharField(max_length=100, blank=True)
    needs_manual_entry = models.BooleanField(default=False)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    chosen_venue = models.ForeignKey(
        Venue, null=True, blank=True, on_delete=models.SET_NULL, related_name='approved_entries'
    )
    rejected_venue = models.ForeignKey(
        Venue, null=True, blank=True, on_delete=models.SET_NULL, related_name='rejected_entries'
    )
    reviewed_by = models.CharField(max_length=150, blank=True)
    auto_approved = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-top_confidence', 'created_at']
        verbose_name_plural = 'review queue entries'
        indexes = [
            models.Index(fields=['status', 'created_at'], name='review_status_created_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['normalized_alias'],
                condition=Q(status='pending'),
                name='unique_pending_alias',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.alias_text} [{self.status}]"

    @property
    def is_terminal(self) -> bool:
        return self.status != self.Status.PENDING
