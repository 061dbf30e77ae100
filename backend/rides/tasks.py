"""Celery tasks for ride dispatch background processing."""

import logging

from celery import shared_task
from django.db import InterfaceError, OperationalError

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    acks_late=True,
    autoretry_for=(OperationalError, InterfaceError),
    retry_backoff=True,
    retry_backoff_max=60,
    max_retries=5,
)
def dispatch_ride_task(self, ride_id: int):
    """
    Run the dispatch pipeline for a newly created ride.

    Enqueued once per ride creation. Delivery is at-least-once: transient
    database errors are retried, and re-running against an already processed
    ride is a no-op.
    """
    from services.matching import dispatch_ride
    from services.ride_management import RideNotFoundError

    try:
        result = dispatch_ride(ride_id)
    except RideNotFoundError:
        logger.warning("Dispatch requested for unknown ride %s", ride_id)
        return None

    logger.info("Dispatch for ride %s finished: %s (%d notified)", ride_id, result.outcome, result.notified)
    return result.outcome


@shared_task(acks_late=True)
def ride_deadline_task(ride_id: int):
    """
    Fired at the ride's broadcast deadline.

    Expires the ride and its pending notifications if nobody accepted it;
    a no-op otherwise.
    """
    from services.ride_management import on_ride_deadline

    expired = on_ride_deadline(ride_id)
    if expired:
        logger.info("Ride %s expired at its broadcast deadline", ride_id)
    return expired


@shared_task
def reap_overdue_rides_task():
    """
    Periodic recovery scan (celery beat).

    Catches deadlines whose timer was lost, e.g. across a worker restart, and
    settles notifications left pending on rides that already resolved.
    """
    from services.ride_management import reap_overdue_rides

    rides_expired, notifications_expired = reap_overdue_rides()
    if rides_expired or notifications_expired:
        logger.info(
            "Reaper expired %s ride(s), settled %s notification(s)",
            rides_expired,
            notifications_expired,
        )
    return rides_expired, notifications_expired
