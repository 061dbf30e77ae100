"""
Dispatch pipeline for one ride: locate candidates, broadcast, arm the deadline.

Safe to run more than once per ride. The ride-created trigger is delivered
at-least-once, so every re-run against an already processed ride returns
``already_processed`` without side effects.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from django.utils import timezone

from rides.models import Ride
from .broadcaster import broadcast
from .locator import Candidate, find_candidates
from .policy import DispatchPolicy, get_dispatch_policy

logger = logging.getLogger(__name__)


BROADCAST = "broadcast"
ALREADY_PROCESSED = "already_processed"
NO_CANDIDATES = "no_candidates"
DEADLINE_PASSED = "deadline_passed"


@dataclass
class DispatchResult:
    """Outcome of one dispatch run."""
    ride_id: int
    outcome: str
    notified: int = 0
    candidates: Optional[List[Candidate]] = None


def dispatch_ride(ride_id: int, policy: Optional[DispatchPolicy] = None, now=None) -> DispatchResult:
    """
    Run the dispatch pipeline for a newly created ride.
    
    Args:
        ride_id: ID of the ride to dispatch
        policy: Dispatch policy override
        now: Reference time
    
    Returns:
        DispatchResult describing what happened
    
    Raises:
        RideNotFoundError: If the ride does not exist
    """
    from services.ride_management.exceptions import RideNotFoundError
    from services.ride_management.expiry import expire_unclaimed_ride

    try:
        ride = Ride.objects.get(id=ride_id)
    except Ride.DoesNotExist:
        raise RideNotFoundError(f"Ride {ride_id} not found")

    if ride.status != Ride.REQUESTED or ride.broadcast_at is not None:
        logger.info("Ride %s already processed (status=%s), skipping dispatch", ride.id, ride.status)
        return DispatchResult(ride_id=ride.id, outcome=ALREADY_PROCESSED)

    policy = policy or get_dispatch_policy()
    now = now or timezone.now()

    if ride.broadcast_deadline <= now:
        logger.warning("Ride %s reached dispatch after its deadline, expiring", ride.id)
        expire_unclaimed_ride(ride.id, now=now)
        return DispatchResult(ride_id=ride.id, outcome=DEADLINE_PASSED)

    candidates = find_candidates(
        ride.pickup_latitude,
        ride.pickup_longitude,
        now=now,
        policy=policy,
    )

    if not candidates:
        logger.warning(
            "NoCandidates: no drivers within %skm for ride %s",
            policy.search_radius_km, ride.id
        )
        broadcast(ride, candidates)
        return DispatchResult(ride_id=ride.id, outcome=NO_CANDIDATES, candidates=[])

    notified = broadcast(ride, candidates)
    if not notified:
        return DispatchResult(ride_id=ride.id, outcome=ALREADY_PROCESSED, candidates=candidates)

    return DispatchResult(
        ride_id=ride.id,
        outcome=BROADCAST,
        notified=notified,
        candidates=candidates,
    )
