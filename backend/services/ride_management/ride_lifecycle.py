"""
Core ride lifecycle operations.

This module contains the business logic for rides after they are created:
the accept race between notified drivers, declines, passenger cancellation
and the in-progress/completed transitions. Every status change is a
conditional UPDATE on the current status (compare-and-swap), so concurrent
callers never both succeed.
"""

import logging
from functools import partial
from typing import Optional, Dict, Any, List, Tuple
from dataclasses import dataclass

from django.db import transaction
from django.utils import timezone

from rides.models import Ride, RideNotification
from .exceptions import (
    RideNotFoundError,
    RideNotAvailableError,
    NotificationExpiredError,
    NotificationNotFoundError,
    ActiveRideExistsError,
)
from .expiry import expire_pending_notifications

logger = logging.getLogger(__name__)


@dataclass
class RideResult:
    """Result object for ride operations."""
    success: bool
    ride: Optional[Ride] = None
    notification: Optional[RideNotification] = None
    message: str = ""
    error_code: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


# ===================== Passenger Operations =====================

def check_active_ride(user) -> Optional[Ride]:
    """Check if user has an active ride."""
    return Ride.objects.filter(
        passenger=user,
        status__in=Ride.ACTIVE_STATUSES,
    ).first()


@transaction.atomic
def create_ride_request(
    passenger,
    pickup_latitude,
    pickup_longitude,
    pickup_address: str = "",
    dropoff_latitude=None,
    dropoff_longitude=None,
    dropoff_address: str = "",
    estimated_price=None,
    distance_km=None,
    estimated_duration_minutes: Optional[int] = None,
) -> RideResult:
    """
    Create a new ride request and queue its dispatch.
    
    The dispatch task is enqueued only after the ride row is committed, so
    the worker always finds it.
    
    Raises:
        ActiveRideExistsError: If passenger already has an active ride
    """
    if check_active_ride(passenger):
        raise ActiveRideExistsError("You already have an active ride request")

    ride = Ride.objects.create(
        passenger=passenger,
        pickup_latitude=pickup_latitude,
        pickup_longitude=pickup_longitude,
        pickup_address=pickup_address or "",
        dropoff_latitude=dropoff_latitude,
        dropoff_longitude=dropoff_longitude,
        dropoff_address=dropoff_address or "",
        estimated_price=estimated_price,
        distance_km=distance_km,
        estimated_duration_minutes=estimated_duration_minutes,
        status=Ride.REQUESTED,
    )

    from rides.tasks import dispatch_ride_task
    transaction.on_commit(partial(dispatch_ride_task.delay, ride.id))

    logger.info("Ride %s requested by passenger %s", ride.id, passenger.id)
    return RideResult(
        success=True,
        ride=ride,
        message="Notifying nearby drivers...",
    )


def get_current_passenger_ride(passenger) -> Optional[Ride]:
    """Get passenger's current active ride."""
    return (
        Ride.objects.filter(passenger=passenger, status__in=Ride.ACTIVE_STATUSES)
        .select_related('driver')
        .first()
    )


@transaction.atomic
def cancel_ride_by_passenger(
    passenger,
    ride_id: int,
    reason: str = "No reason provided"
) -> RideResult:
    """
    Cancel a requested or accepted ride.
    
    Pending notifications are closed and every driver who still held an
    offer, plus the assigned driver, is told.
    
    Raises:
        RideNotFoundError: If the ride does not exist or is not the passenger's
        RideNotAvailableError: If the ride can no longer be cancelled
    """
    try:
        ride = Ride.objects.get(id=ride_id, passenger=passenger)
    except Ride.DoesNotExist:
        raise RideNotFoundError("Ride not found")

    now = timezone.now()
    changed = Ride.objects.filter(
        id=ride.id,
        status__in=[Ride.REQUESTED, Ride.ACCEPTED],
    ).update(status=Ride.CANCELLED, cancelled_at=now, cancellation_reason=reason)
    if not changed:
        ride.refresh_from_db(fields=['status'])
        raise RideNotAvailableError(f"Cannot cancel - ride is already {ride.status}")

    superseded = expire_pending_notifications(ride.id, now=now)
    ride.refresh_from_db()
    transaction.on_commit(partial(_after_passenger_cancel, ride, superseded))

    logger.info("Ride %s cancelled by passenger %s", ride.id, passenger.id)
    return RideResult(
        success=True,
        ride=ride,
        message="Ride cancelled successfully",
        extra={"was_assigned": ride.driver_id is not None}
    )


def _after_passenger_cancel(ride: Ride, superseded: List[Tuple[int, int]]):
    from realtime.notifications import notify_driver_event, notify_ride_group

    if ride.driver_id:
        notify_driver_event('ride_cancelled', ride.driver_id, ride, 'Passenger cancelled this ride.')
    for notification_id, driver_id in superseded:
        notify_driver_event(
            'notification_superseded',
            driver_id,
            extra={'notification_id': notification_id, 'ride_id': ride.id},
            message='Ride request cancelled.',
        )
    notify_ride_group(ride, 'ride_cancelled', 'Passenger cancelled this ride.')


# ===================== Driver Operations =====================

@transaction.atomic
def accept_notification(driver, notification_id: int, now=None) -> RideResult:
    """
    Accept a ride through the notification that was offered to this driver.

    Claims the ride with a conditional update (only while it is still
    requested and before its deadline), then claims the notification the
    same way, then expires every sibling. The three writes commit together;
    if the notification claim fails the ride claim is rolled back.
    
    Args:
        driver: User model instance (driver)
        notification_id: ID of the driver's notification
    
    Returns:
        RideResult with the accepted ride and notification
    
    Raises:
        NotificationNotFoundError: Unknown notification or not this driver's
        RideNotAvailableError: Another driver won, or the ride was cancelled
        NotificationExpiredError: This offer is no longer pending
    """
    try:
        notification = RideNotification.objects.get(id=notification_id, driver=driver)
    except RideNotification.DoesNotExist:
        raise NotificationNotFoundError("Ride notification not found")

    now = now or timezone.now()

    claimed = Ride.objects.filter(
        id=notification.ride_id,
        status=Ride.REQUESTED,
        broadcast_deadline__gt=now,
    ).update(status=Ride.ACCEPTED, driver=driver, accepted_at=now)

    if not claimed:
        current = Ride.objects.filter(id=notification.ride_id).values_list('status', flat=True).first()
        if current == Ride.REQUESTED:
            raise NotificationExpiredError("This ride offer has timed out")
        logger.info(
            "Driver %s lost ride %s (status %s)", driver.id, notification.ride_id, current
        )
        raise RideNotAvailableError("This ride is no longer available")

    won = RideNotification.objects.filter(
        id=notification.id,
        status=RideNotification.PENDING,
    ).update(status=RideNotification.ACCEPTED, responded_at=now)
    if not won:
        # Raising rolls back the ride claim above
        raise NotificationExpiredError("This ride offer is no longer active for you")

    superseded = expire_pending_notifications(notification.ride_id, exclude_id=notification.id, now=now)

    ride = Ride.objects.select_related('passenger', 'driver').get(id=notification.ride_id)
    notification.refresh_from_db()
    transaction.on_commit(partial(_after_accept, ride, notification, superseded))

    logger.info(
        "Ride %s accepted by driver %s, %d sibling notification(s) expired",
        ride.id, driver.id, len(superseded)
    )
    return RideResult(
        success=True,
        ride=ride,
        notification=notification,
        message="Ride Accepted Successfully! Navigate to pickup location.",
        extra={"superseded": len(superseded)},
    )


def _after_accept(ride: Ride, notification: RideNotification, superseded: List[Tuple[int, int]]):
    from realtime.notifications import notify_driver_event, notify_passenger_event, notify_ride_group

    notify_passenger_event(
        'ride_accepted',
        ride,
        'Your ride has been accepted! The driver is on the way.',
        extra={'driver_id': ride.driver_id},
    )
    notify_ride_group(ride, 'ride_status_changed')

    for notification_id, driver_id in superseded:
        notify_driver_event(
            'notification_superseded',
            driver_id,
            extra={'notification_id': notification_id, 'ride_id': ride.id},
            message='This ride was accepted by another driver.',
        )


@transaction.atomic
def decline_notification(driver, notification_id: int, now=None) -> RideResult:
    """
    Decline a ride offer.
    
    Idempotent: declining an offer that is already terminal succeeds without
    changing anything. The ride itself stays open for the other drivers
    until its deadline.
    
    Raises:
        NotificationNotFoundError: Unknown notification or not this driver's
    """
    now = now or timezone.now()
    changed = RideNotification.objects.filter(
        id=notification_id,
        driver=driver,
        status=RideNotification.PENDING,
    ).update(status=RideNotification.CANCELLED, responded_at=now)

    try:
        notification = RideNotification.objects.get(id=notification_id, driver=driver)
    except RideNotification.DoesNotExist:
        raise NotificationNotFoundError("Ride notification not found")

    if changed:
        logger.info("Driver %s declined notification %s for ride %s", driver.id, notification.id, notification.ride_id)

    return RideResult(
        success=True,
        notification=notification,
        message="Offer declined.",
        extra={"changed": bool(changed)},
    )


def _transition_assigned_ride(driver, ride_id: int, from_status: str, to_status: str, **fields) -> Ride:
    try:
        ride = Ride.objects.get(id=ride_id, driver=driver)
    except Ride.DoesNotExist:
        raise RideNotFoundError("Ride not found or not accepted by you")

    changed = Ride.objects.filter(id=ride.id, driver=driver, status=from_status).update(
        status=to_status, **fields
    )
    if not changed:
        ride.refresh_from_db(fields=['status'])
        raise RideNotAvailableError(f"Ride is {ride.status}, expected {from_status}")

    ride.refresh_from_db()
    return ride


@transaction.atomic
def start_ride(driver, ride_id: int) -> RideResult:
    """Passenger picked up: accepted -> in_progress."""
    ride = _transition_assigned_ride(
        driver, ride_id, Ride.ACCEPTED, Ride.IN_PROGRESS, started_at=timezone.now()
    )

    from realtime.notifications import notify_passenger_event, notify_ride_group
    transaction.on_commit(partial(notify_passenger_event, 'ride_status_changed', ride, 'Your ride has started.'))
    transaction.on_commit(partial(notify_ride_group, ride, 'ride_status_changed'))

    return RideResult(success=True, ride=ride, message="Ride started")


@transaction.atomic
def complete_ride(driver, ride_id: int) -> RideResult:
    """Passenger reached destination: in_progress -> completed."""
    ride = _transition_assigned_ride(
        driver, ride_id, Ride.IN_PROGRESS, Ride.COMPLETED, completed_at=timezone.now()
    )

    from realtime.notifications import notify_passenger_event, notify_ride_group
    transaction.on_commit(partial(
        notify_passenger_event,
        'ride_status_changed',
        ride,
        'Your ride has been completed. Thank you for riding with us!',
    ))
    transaction.on_commit(partial(notify_ride_group, ride, 'ride_status_changed'))

    return RideResult(success=True, ride=ride, message="Ride completed successfully")


def get_current_driver_ride(driver) -> Optional[Ride]:
    """Get driver's current assigned ride."""
    return Ride.objects.filter(
        driver=driver,
        status__in=[Ride.ACCEPTED, Ride.IN_PROGRESS],
    ).select_related('passenger').first()


def get_pending_notifications(driver, now=None):
    """
    Driver's open offers, nearest first.

    Offers past their deadline are hidden even before the reaper has
    expired them.
    """
    now = now or timezone.now()
    return (
        RideNotification.objects.filter(
            driver=driver,
            status=RideNotification.PENDING,
            expires_at__gt=now,
            ride__status=Ride.REQUESTED,
        )
        .select_related('ride')
        .order_by('distance_km', 'id')
    )
