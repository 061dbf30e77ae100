"""
Dispatch tunables: search radius, candidate cap, location freshness and the
broadcast window shared by every notification of a ride.

Values come from the ``RIDE_DISPATCH`` Django setting; anything missing falls
back to the defaults below. No logic here beyond validation.
"""

from __future__ import annotations

from dataclasses import dataclass, fields

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


@dataclass(frozen=True)
class DispatchPolicy:
    """Central configuration for candidate search and broadcast deadlines."""

    # How long a ride stays open for acceptance after it is requested.
    dispatch_window_seconds: int = 50

    # Candidate search
    search_radius_km: float = 10.0
    max_candidates: int = 5

    # Pings older than this disqualify a driver even if flagged online.
    location_freshness_seconds: int = 120

    def validate(self) -> None:
        if self.dispatch_window_seconds <= 0:
            raise ImproperlyConfigured("dispatch_window_seconds must be > 0")
        if self.search_radius_km <= 0:
            raise ImproperlyConfigured("search_radius_km must be > 0")
        if self.max_candidates <= 0:
            raise ImproperlyConfigured("max_candidates must be > 0")
        if self.location_freshness_seconds <= 0:
            raise ImproperlyConfigured("location_freshness_seconds must be > 0")


def get_dispatch_policy() -> DispatchPolicy:
    """Build the policy from settings.RIDE_DISPATCH (keys are lower-case field names)."""
    configured = getattr(settings, "RIDE_DISPATCH", None) or {}
    known = {f.name for f in fields(DispatchPolicy)}
    unknown = set(configured) - known
    if unknown:
        raise ImproperlyConfigured(f"Unknown RIDE_DISPATCH keys: {', '.join(sorted(unknown))}")

    policy = DispatchPolicy(**configured)
    policy.validate()
    return policy
