"""
Nearby driver lookup for a pickup point.

Reads driver locations through ``DriverLocation.objects.fresh_online`` only;
the location feed that writes those rows lives in ``drivers.services``.
"""

import logging
from datetime import timedelta
from typing import Iterable, List, NamedTuple, Optional

from django.utils import timezone

from common.utils import calculate_distance, is_valid_coordinate
from drivers.models import DriverLocation
from .policy import DispatchPolicy, get_dispatch_policy

logger = logging.getLogger(__name__)


class Candidate(NamedTuple):
    driver_id: int
    distance_km: float


def find_candidates(
    pickup_lat,
    pickup_lng,
    max_radius_km: Optional[float] = None,
    max_candidates: Optional[int] = None,
    *,
    now=None,
    locations: Optional[Iterable[DriverLocation]] = None,
    policy: Optional[DispatchPolicy] = None,
) -> List[Candidate]:
    """
    Return online, recently-seen drivers within the radius, nearest first.
    
    Args:
        pickup_lat: Pickup latitude
        pickup_lng: Pickup longitude
        max_radius_km: Search radius, defaults to the dispatch policy
        max_candidates: Result cap, defaults to the dispatch policy
        now: Reference time for the freshness window
        locations: Location records to search instead of the database
        policy: Dispatch policy override
    
    Returns:
        List of Candidate(driver_id, distance_km), no duplicate drivers.
        An empty list means no drivers are available.
    
    Raises:
        ValueError: If the pickup is not a valid coordinate pair
    """
    if not is_valid_coordinate(pickup_lat, pickup_lng):
        raise ValueError(f"Invalid pickup coordinates: ({pickup_lat}, {pickup_lng})")

    policy = policy or get_dispatch_policy()
    radius = policy.search_radius_km if max_radius_km is None else float(max_radius_km)
    cap = policy.max_candidates if max_candidates is None else int(max_candidates)
    now = now or timezone.now()
    cutoff = now - timedelta(seconds=policy.location_freshness_seconds)

    if locations is None:
        locations = DriverLocation.objects.fresh_online(cutoff)

    nearest = {}
    for location in locations:
        # Also enforced here so injected records get the same treatment
        if not location.is_online or location.last_update < cutoff:
            continue
        distance = calculate_distance(
            float(pickup_lat),
            float(pickup_lng),
            float(location.latitude),
            float(location.longitude),
        )
        if distance > radius:
            continue
        previous = nearest.get(location.driver_id)
        if previous is None or distance < previous:
            nearest[location.driver_id] = distance

    candidates = sorted(
        (Candidate(driver_id, distance) for driver_id, distance in nearest.items()),
        key=lambda c: (c.distance_km, c.driver_id),
    )[:cap]

    logger.debug(
        "Found %d candidate(s) within %skm of (%s, %s)",
        len(candidates), radius, pickup_lat, pickup_lng
    )
    return candidates
