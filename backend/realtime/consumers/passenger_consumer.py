"""Passenger WebSocket consumer for ride status notifications."""

import logging

from .base import BaseConsumer

logger = logging.getLogger(__name__)


class PassengerConsumer(BaseConsumer):
    """
    WebSocket consumer for passengers.

    Receives the outcome of their ride's dispatch on user_<id>: accepted,
    expired, no drivers available, and later status changes.
    """

    required_role = "passenger"

    async def on_connect(self):
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Passenger connected successfully",
        })

    # ---------------------- Event Handlers (from group_send) ----------------------

    async def ride_accepted(self, event):
        """Sent when a driver wins the ride."""
        await self.send_json({
            "type": "ride_accepted",
            "ride_id": event.get("ride_id"),
            "driver_id": event.get("driver_id"),
            "message": event.get("message", ""),
            "ride": event.get("ride_data", {}),
        })

    async def ride_expired(self, event):
        """Sent when nobody accepted before the deadline."""
        await self.send_json({
            "type": "ride_expired",
            "ride_id": event.get("ride_id"),
            "message": event.get("message", "No drivers accepted your ride request"),
        })

    async def no_drivers_available(self, event):
        """Sent when no drivers were found at dispatch time."""
        await self.send_json({
            "type": "no_drivers_available",
            "ride_id": event.get("ride_id"),
            "message": event.get("message", "No drivers available"),
        })
