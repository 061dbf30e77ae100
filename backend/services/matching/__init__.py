"""
Driver matching and broadcast dispatch service.

This module handles:
    - Finding nearby online drivers for a pickup point
    - Broadcasting a ride to all candidates at once
    - Sequencing both for a newly created ride
"""

from .policy import DispatchPolicy, get_dispatch_policy
from .locator import Candidate, find_candidates
from .broadcaster import broadcast
from .orchestrator import (
    DispatchResult,
    dispatch_ride,
    BROADCAST,
    ALREADY_PROCESSED,
    NO_CANDIDATES,
    DEADLINE_PASSED,
)

__all__ = [
    "DispatchPolicy",
    "get_dispatch_policy",
    "Candidate",
    "find_candidates",
    "broadcast",
    "DispatchResult",
    "dispatch_ride",
    "BROADCAST",
    "ALREADY_PROCESSED",
    "NO_CANDIDATES",
    "DEADLINE_PASSED",
]
