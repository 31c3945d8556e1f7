"""
Error taxonomy for venue resolution.

No-match, ambiguous and low-confidence outcomes are result variants, not
exceptions. Only store, configuration and workflow problems raise.
"""

from enum import Enum


class VenueErrorCode(str, Enum):
    """Machine-readable error codes for venue endpoints."""

    STORE_UNAVAILABLE = "store_unavailable"  # Database unreachable, retry later
    GEOCODE_FAILED = "geocode_failed"  # Place-search misconfigured or rejected the request
    INVALID_TRANSITION = "invalid_transition"  # Review entry already closed
    NOT_FOUND = "not_found"  # Entry or venue does not exist
    CONFLICT = "conflict"  # Write collides with an existing venue
    INVALID_REQUEST = "invalid_request"  # Bad request format


ERROR_STATUS_CODES = {
    VenueErrorCode.STORE_UNAVAILABLE: 503,
    VenueErrorCode.GEOCODE_FAILED: 502,
    VenueErrorCode.INVALID_TRANSITION: 409,
    VenueErrorCode.NOT_FOUND: 404,
    VenueErrorCode.CONFLICT: 409,
    VenueErrorCode.INVALID_REQUEST: 400,
}


def get_status_code(error_code: VenueErrorCode) -> int:
    """Get HTTP status code for an error code."""
    return ERROR_STATUS_CODES.get(error_code, 500)


class VenueResolutionError(Exception):
    code = VenueErrorCode.INVALID_REQUEST
    retryable = False


class StoreUnavailable(VenueResolutionError):
    """The venue store could not be reached. Safe to retry."""
    code = VenueErrorCode.STORE_UNAVAILABLE
    retryable = True


class GeocodeTransientFailure(VenueResolutionError):
    """Rate limit, server error or network failure from the place-search API."""
    code = VenueErrorCode.GEOCODE_FAILED
    retryable = True

    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class GeocodeFatalFailure(VenueResolutionError):
    """Bad request, auth failure or missing API key. Never retried."""
    code = VenueErrorCode.GEOCODE_FAILED

    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class RecordValidationError(VenueResolutionError):
    """Malformed import record."""


class InvalidTransition(VenueResolutionError):
    """Review action attempted on an entry that is already terminal."""
    code = VenueErrorCode.INVALID_TRANSITION


class ReviewEntryNotFound(VenueResolutionError):
    code = VenueErrorCode.NOT_FOUND


class VenueNotFound(VenueResolutionError):
    code = VenueErrorCode.NOT_FOUND


class VenueConflict(VenueResolutionError):
    """A venue write collided with another venue (duplicate place id)."""
    code = VenueErrorCode.CONFLICT
