"""
Deadline handling and reconciliation for unclaimed rides.

Every transition here is a conditional UPDATE keyed on the current status, so
a deadline racing an accept or a passenger cancel resolves to whichever write
lands first; the loser matches zero rows and does nothing.
"""

import logging
from functools import partial
from typing import List, Optional, Tuple

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from rides.models import Ride, RideNotification

logger = logging.getLogger(__name__)


def schedule_ride_deadline(ride: Ride) -> bool:
    """
    Arm the single deadline task for a ride at its broadcast deadline.

    A failure to enqueue is logged, not raised: the periodic reaper picks up
    overdue rides regardless.
    """
    from rides.tasks import ride_deadline_task

    try:
        ride_deadline_task.apply_async((ride.id,), eta=ride.broadcast_deadline)
    except Exception:
        logger.exception("Failed to arm deadline for ride %s; reaper will recover it", ride.id)
        return False
    logger.debug("Armed deadline for ride %s at %s", ride.id, ride.broadcast_deadline.isoformat())
    return True


def expire_pending_notifications(
    ride_id: int,
    exclude_id: Optional[int] = None,
    now=None,
) -> List[Tuple[int, int]]:
    """
    Move every still-pending notification of a ride to expired.
    
    Args:
        ride_id: Ride whose notifications are settled
        exclude_id: Notification to leave untouched (the winner)
        now: Response timestamp
    
    Returns:
        (notification_id, driver_id) pairs that were moved
    """
    now = now or timezone.now()
    pending = RideNotification.objects.filter(ride_id=ride_id, status=RideNotification.PENDING)
    if exclude_id is not None:
        pending = pending.exclude(id=exclude_id)

    moved = list(pending.values_list("id", "driver_id"))
    if not moved:
        return []

    # Conditional on status again: a concurrent decline may have landed in between
    RideNotification.objects.filter(
        id__in=[notification_id for notification_id, _ in moved],
        status=RideNotification.PENDING,
    ).update(status=RideNotification.EXPIRED, responded_at=now)
    return moved


def expire_unclaimed_ride(ride_id: int, now=None, event_type: str = "ride_expired") -> bool:
    """
    Expire a ride that is still requested, together with its pending notifications.
    
    Args:
        ride_id: Ride to expire
        now: Transition timestamp
        event_type: Passenger event to emit (ride_expired or no_drivers_available)
    
    Returns:
        True if this call moved the ride to expired, False if it had already
        left the requested state
    """
    now = now or timezone.now()
    with transaction.atomic():
        changed = Ride.objects.filter(id=ride_id, status=Ride.REQUESTED).update(
            status=Ride.EXPIRED,
            expired_at=now,
        )
        if not changed:
            return False
        superseded = expire_pending_notifications(ride_id, now=now)
        transaction.on_commit(partial(_after_expiry, ride_id, superseded, event_type))

    logger.info("Ride %s expired, %d pending notification(s) closed", ride_id, len(superseded))
    return True


def _after_expiry(ride_id: int, superseded: List[Tuple[int, int]], event_type: str):
    from realtime.notifications import notify_driver_event, notify_passenger_event, notify_ride_group

    ride = Ride.objects.filter(id=ride_id).first()
    if ride is None:
        return

    if event_type == "no_drivers_available":
        message = "No drivers available nearby. Please try again later."
    else:
        message = "No drivers accepted your ride request. Please try again later."
    notify_passenger_event(event_type, ride, message)
    notify_ride_group(ride, "ride_status_changed")

    for notification_id, driver_id in superseded:
        notify_driver_event(
            "notification_expired",
            driver_id,
            extra={"notification_id": notification_id, "ride_id": ride_id},
            message="This ride request has expired.",
        )


def on_ride_deadline(ride_id: int, now=None) -> bool:
    """
    Deadline callback for one ride.

    Expires the ride if it is still requested and its deadline has passed.
    A ride that already left requested is left alone, so a late timer never
    undoes an acceptance or a cancellation. A timer that fires early is
    re-armed for the stored deadline.

    Returns:
        True if the ride was expired by this call
    """
    now = now or timezone.now()
    ride = Ride.objects.filter(id=ride_id).first()
    if ride is None:
        logger.warning("Deadline fired for unknown ride %s", ride_id)
        return False

    if ride.status != Ride.REQUESTED:
        logger.debug("Deadline for ride %s ignored, status is %s", ride_id, ride.status)
        return False

    if ride.broadcast_deadline > now:
        logger.info("Deadline for ride %s fired early, re-arming", ride_id)
        schedule_ride_deadline(ride)
        return False

    return expire_unclaimed_ride(ride_id, now=now)


def reap_overdue_rides(now=None) -> Tuple[int, int]:
    """
    Recovery scan: expire overdue requested rides and settle orphaned notifications.

    Returns a tuple of (rides_expired, notifications_expired).
    """
    now = now or timezone.now()

    overdue_ids = list(
        Ride.objects.filter(status=Ride.REQUESTED, broadcast_deadline__lte=now)
        .order_by("broadcast_deadline")
        .values_list("id", flat=True)
    )
    rides_expired = 0
    for ride_id in overdue_ids:
        if expire_unclaimed_ride(ride_id, now=now):
            rides_expired += 1

    # Pending rows whose ride resolved, or whose shared deadline already passed
    notifications_expired = RideNotification.objects.filter(
        status=RideNotification.PENDING,
    ).filter(
        ~Q(ride__status=Ride.REQUESTED) | Q(expires_at__lte=now)
    ).update(status=RideNotification.EXPIRED, responded_at=now)

    return rides_expired, notifications_expired
