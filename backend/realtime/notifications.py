"""
Notification helpers for sending WebSocket messages to connected clients.

Groups:
    - driver_<driver_id>: offers and offer outcomes for one driver
    - user_<user_id>: ride status for the passenger who requested it
    - ride_<ride_id>: anyone tracking a specific ride

Delivery is best-effort. A failed push is logged and reported as False,
never raised: clients re-read their pending notifications on reconnect.
"""

from __future__ import annotations

import logging
from typing import Dict, Any, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def _ride_data(ride) -> Dict[str, Any]:
    from rides.serializers import RideSummarySerializer
    return dict(RideSummarySerializer(ride).data)


def send_to_group(group: str, payload: Dict[str, Any]) -> bool:
    """Fire-and-forget group_send. Returns True if the layer accepted the message."""
    try:
        channel_layer = get_channel_layer()
        if channel_layer is None:
            logger.warning("No channel layer available, dropping %s for %s", payload.get("type"), group)
            return False
        logger.debug("WS -> %s: %s", group, payload)
        async_to_sync(channel_layer.group_send)(group, payload)
        return True
    except Exception:
        logger.exception("Failed to push %s to %s", payload.get("type"), group)
        return False


# ---------------------- Ride Event Notifications ----------------------

def notify_driver_event(
    event_type: str,
    driver_id: Optional[int],
    ride=None,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send an event to a specific driver using their personal group: driver_<driver_id>
    
    Args:
        event_type: Handler name in consumer (ride_notification, notification_superseded,
            notification_expired, ride_cancelled)
        driver_id: Target driver's user ID
        ride: Ride model instance, serialized into ride_data when given
        message: Optional message to include
        extra: Additional payload data
    
    Returns:
        True if sent successfully, False otherwise
    """
    if not driver_id:
        return False

    payload = {
        "type": event_type,
        "driver_id": driver_id,
        **(extra or {}),
    }
    if ride is not None:
        payload["ride_id"] = ride.id
        payload["ride_data"] = _ride_data(ride)
    if message:
        payload["message"] = message

    return send_to_group(f"driver_{driver_id}", payload)


def notify_passenger_event(
    event_type: str,
    ride,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send ride-related event to the passenger through: user_<passenger_id>
    
    Args:
        event_type: Handler name in consumer (no_drivers_available, ride_accepted,
            ride_cancelled, ride_expired, ride_status_changed)
        ride: Ride model instance
        message: Optional message to include
        extra: Additional payload data
    
    Returns:
        True if sent successfully, False otherwise
    """
    passenger_id = ride.passenger_id
    if not passenger_id:
        return False

    payload = {
        "type": event_type,
        "ride_id": ride.id,
        "status": ride.status,
        "ride_data": _ride_data(ride),
        **(extra or {}),
    }
    if message:
        payload["message"] = message

    return send_to_group(f"user_{passenger_id}", payload)


def notify_ride_group(ride, event_type: str, message: str = "", extra: Dict[str, Any] = None) -> bool:
    """Send notification to all participants tracking a ride: ride_<ride_id>"""
    payload = {
        "type": event_type,
        "ride_id": ride.id,
        "status": ride.status,
        **(extra or {}),
    }
    if message:
        payload["message"] = message
    return send_to_group(f"ride_{ride.id}", payload)
