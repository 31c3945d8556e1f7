"""
Venue admin configuration with Grappelli styling.
"""

from django.contrib import admin
from django.db.models import Count

from venues import review
from venues.errors import InvalidTransition, VenueNotFound
from venues.geocoding import geocode_venue
from venues.models import RejectedMatch, ReviewQueueEntry, Venue, VenueAlias


def geolocate_venues(modeladmin, request, queryset):
    """Trigger geocoding for selected venues."""
    success = 0
    skipped = 0
    failed = 0

    for venue in queryset:
        if venue.latitude and venue.longitude:
            skipped += 1
            continue
        if geocode_venue(venue.id):
            success += 1
        else:
            failed += 1

    modeladmin.message_user(request, f"Geocoded: {success}, Skipped (already has coords): {skipped}, Failed: {failed}")
geolocate_venues.short_description = "Geolocate selected venues"


def force_geolocate_venues(modeladmin, request, queryset):
    """Force re-geocoding for selected venues (clears existing coords first)."""
    success = 0
    failed = 0

    for venue in queryset:
        # Clear existing coordinates so geocode_venue will run
        venue.latitude = None
        venue.longitude = None
        venue.save(update_fields=['latitude', 'longitude', 'updated_at'])

        if geocode_venue(venue.id):
            success += 1
        else:
            failed += 1

    modeladmin.message_user(request, f"Re-geocoded: {success}, Failed: {failed}")
force_geolocate_venues.short_description = "Force re-geolocate (overwrite existing)"


class VenueAliasInline(admin.TabularInline):
    model = VenueAlias
    extra = 1
    fields = ['alias_text', 'normalized_alias', 'source', 'confidence_weight', 'created_at']
    readonly_fields = ['normalized_alias', 'created_at']

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Venue)
class VenueAdmin(admin.ModelAdmin):
    """Admin interface for the canonical venue catalog."""

    list_display = ['id', 'canonical_name', 'city', 'state', 'postal_code', 'place_id', 'alias_count', 'latitude', 'longitude']
    list_filter = ['state', 'city', 'created_at']
    search_fields = ['canonical_name', 'normalized_name', 'city', 'street_address', 'place_id', 'aliases__alias_text']
    readonly_fields = ['normalized_name', 'created_at', 'updated_at']
    ordering = ['canonical_name']
    actions = [geolocate_venues, force_geolocate_venues]
    inlines = [VenueAliasInline]

    fieldsets = (
        ('Venue Identity', {
            'fields': ('canonical_name', 'normalized_name', 'place_id')
        }),
        ('Address', {
            'fields': ('formatted_address', 'street_address', 'city', 'state', 'postal_code', 'country')
        }),
        ('Geocoding', {
            'fields': ('latitude', 'longitude'),
            'classes': ('collapse',)
        }),
        ('Facility', {
            'fields': ('metadata',),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def has_delete_permission(self, request, obj=None):
        # Venues are referenced by aliases and the review audit trail
        return False

    def save_formset(self, request, form, formset, change):
        instances = formset.save(commit=False)
        for instance in instances:
            if isinstance(instance, VenueAlias) and not instance.pk:
                instance.source = instance.source or VenueAlias.Source.ADMIN
            instance.save()
        formset.save_m2m()

    def get_queryset(self, request):
        """Annotate queryset with alias count."""
        queryset = super().get_queryset(request)
        return queryset.annotate(_alias_count=Count('aliases'))

    def alias_count(self, obj):
        return getattr(obj, '_alias_count', obj.aliases.count())
    alias_count.short_description = 'Aliases'
    alias_count.admin_order_field = '_alias_count'


def _top_venue_id(entry):
    top = entry.candidates[0] if entry.candidates else None
    return top.get('venue_id') if top else None


def approve_top_candidate(modeladmin, request, queryset):
    """Approve each selected entry against its best candidate venue."""
    approved = 0
    skipped = 0

    for entry in queryset:
        venue_id = _top_venue_id(entry)
        if venue_id is None:
            skipped += 1
            continue
        try:
            review.approve(entry.id, venue_id, reviewed_by=request.user.get_username())
        except (InvalidTransition, VenueNotFound):
            skipped += 1
            continue
        approved += 1

    modeladmin.message_user(request, f"Approved: {approved}, Skipped: {skipped}")
approve_top_candidate.short_description = "Approve top candidate"


def reject_top_candidate(modeladmin, request, queryset):
    """Reject the pairing with each selected entry's best candidate venue."""
    rejected = 0
    skipped = 0

    for entry in queryset:
        venue_id = _top_venue_id(entry)
        if venue_id is None:
            skipped += 1
            continue
        try:
            review.reject(entry.id, venue_id, reviewed_by=request.user.get_username())
        except (InvalidTransition, VenueNotFound):
            skipped += 1
            continue
        rejected += 1

    modeladmin.message_user(request, f"Rejected: {rejected}, Skipped: {skipped}")
reject_top_candidate.short_description = "Reject top candidate"


def run_auto_approval(modeladmin, request, queryset):
    """Auto-approve every pending entry above the configured ceiling."""
    approved = review.auto_approve()
    modeladmin.message_user(request, f"Auto-approved: {approved}")
run_auto_approval.short_description = "Run auto-approval over the whole queue"


@admin.register(ReviewQueueEntry)
class ReviewQueueEntryAdmin(admin.ModelAdmin):
    """Admin interface for adjudicating unresolved venue names."""

    list_display = ['id', 'alias_text', 'top_confidence', 'status', 'needs_manual_entry', 'source', 'chosen_venue', 'reviewed_by', 'created_at']
    list_filter = ['status', 'needs_manual_entry', 'auto_approved', 'source', 'created_at']
    search_fields = ['alias_text', 'normalized_alias']
    readonly_fields = [
        'alias_text', 'normalized_alias', 'candidates', 'top_confidence', 'source', 'needs_manual_entry',
        'status', 'chosen_venue', 'rejected_venue', 'reviewed_by', 'auto_approved', 'created_at', 'resolved_at',
    ]
    ordering = ['-top_confidence', 'created_at']
    actions = [approve_top_candidate, reject_top_candidate, run_auto_approval]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(RejectedMatch)
class RejectedMatchAdmin(admin.ModelAdmin):
    list_display = ['normalized_alias', 'venue', 'created_at']
    search_fields = ['normalized_alias', 'venue__canonical_name']
    readonly_fields = ['created_at']
