"""
Ride management service - Core ride lifecycle operations.

This module handles:
    - Creating ride requests
    - Resolving the accept race between notified drivers
    - Declining offers
    - Expiring unclaimed rides at their deadline
    - Cancelling, starting and completing rides
    - Querying ride and offer state
"""

from .ride_lifecycle import (
    RideResult,
    create_ride_request,
    accept_notification,
    decline_notification,
    cancel_ride_by_passenger,
    start_ride,
    complete_ride,
    get_current_passenger_ride,
    get_current_driver_ride,
    get_pending_notifications,
)

from .expiry import (
    schedule_ride_deadline,
    expire_pending_notifications,
    expire_unclaimed_ride,
    on_ride_deadline,
    reap_overdue_rides,
)

from .exceptions import (
    RideServiceError,
    RideNotFoundError,
    RideNotAvailableError,
    NotificationExpiredError,
    NotificationNotFoundError,
    ActiveRideExistsError,
)

__all__ = [
    # Lifecycle operations
    "RideResult",
    "create_ride_request",
    "accept_notification",
    "decline_notification",
    "cancel_ride_by_passenger",
    "start_ride",
    "complete_ride",
    "get_current_passenger_ride",
    "get_current_driver_ride",
    "get_pending_notifications",
    # Deadline handling
    "schedule_ride_deadline",
    "expire_pending_notifications",
    "expire_unclaimed_ride",
    "on_ride_deadline",
    "reap_overdue_rides",
    # Exceptions
    "RideServiceError",
    "RideNotFoundError",
    "RideNotAvailableError",
    "NotificationExpiredError",
    "NotificationNotFoundError",
    "ActiveRideExistsError",
]
