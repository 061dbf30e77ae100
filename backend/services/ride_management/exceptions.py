"""Custom exceptions for ride management.

Each exception carries the ``error_code`` and HTTP status the API layer
returns for it.
"""


class RideServiceError(Exception):
    """Base class for errors surfaced to API/WebSocket callers."""
    error_code = "error"
    http_status = 400


class RideNotFoundError(RideServiceError):
    """Raised when a ride cannot be found (or does not belong to the caller)."""
    error_code = "not_found"
    http_status = 404


class NotificationNotFoundError(RideServiceError):
    """Raised when a notification does not exist or does not belong to the caller."""
    error_code = "not_found"
    http_status = 404


class RideNotAvailableError(RideServiceError):
    """Raised when the ride already left the state the operation needs.

    For accept this is the "Conflict" outcome: another driver won, or the ride
    was cancelled/expired first.
    """
    error_code = "conflict"
    http_status = 409


class NotificationExpiredError(RideServiceError):
    """Raised when the driver's own notification is no longer pending."""
    error_code = "expired"
    http_status = 409


class ActiveRideExistsError(RideServiceError):
    """Raised when user already has an active ride."""
    error_code = "active_ride_exists"
    http_status = 400
