"""
Broadcast a ride to every candidate driver at once.

All notifications of a ride are written in one transaction and share the
ride's broadcast deadline; a single deadline timer is armed per ride.
"""

import logging
from functools import partial
from typing import List, Sequence

from django.db import transaction
from django.utils import timezone

from rides.models import Ride, RideNotification
from .locator import Candidate

logger = logging.getLogger(__name__)


def broadcast(ride: Ride, candidates: Sequence[Candidate]) -> int:
    """
    Create one pending notification per candidate and push them to drivers.
    
    Args:
        ride: Ride instance, expected to still be requested
        candidates: Nearest-first candidates from the locator
    
    Returns:
        Number of notifications created. 0 when there were no candidates
        (the ride is expired instead) or the ride was already processed.
    """
    from services.ride_management.expiry import expire_unclaimed_ride

    if not candidates:
        expire_unclaimed_ride(ride.id, event_type="no_drivers_available")
        return 0

    with transaction.atomic():
        locked = Ride.objects.select_for_update().filter(pk=ride.pk).first()
        if locked is None or locked.status != Ride.REQUESTED or locked.broadcast_at is not None:
            logger.info("Ride %s already processed, skipping broadcast", ride.pk)
            return 0

        now = timezone.now()
        seen = set()
        rows = []
        for candidate in candidates:
            if candidate.driver_id in seen:
                continue
            seen.add(candidate.driver_id)
            rows.append(RideNotification(
                ride=locked,
                driver_id=candidate.driver_id,
                distance_km=round(candidate.distance_km, 3),
                status=RideNotification.PENDING,
                created_at=now,
                expires_at=locked.broadcast_deadline,
            ))
        RideNotification.objects.bulk_create(rows)

        Ride.objects.filter(pk=locked.pk).update(broadcast_at=now)
        locked.broadcast_at = now

        # Re-read for primary keys; not every backend returns them from bulk_create
        notifications = list(locked.notifications.filter(status=RideNotification.PENDING))
        transaction.on_commit(partial(_after_broadcast, locked, notifications))

    logger.info(
        "Broadcast ride %s to %d driver(s), deadline %s",
        locked.id, len(notifications), locked.broadcast_deadline.isoformat()
    )
    return len(notifications)


def _after_broadcast(ride: Ride, notifications: List[RideNotification]):
    """Push offers and arm the deadline once the batch is committed."""
    from realtime.notifications import notify_driver_event
    from services.ride_management.expiry import schedule_ride_deadline

    for notification in notifications:
        notify_driver_event(
            "ride_notification",
            notification.driver_id,
            ride,
            extra={
                "notification_id": notification.id,
                "distance_km": notification.distance_km,
                "expires_at": notification.expires_at.isoformat(),
            },
        )

    schedule_ride_deadline(ride)
