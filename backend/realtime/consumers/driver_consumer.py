"""Driver WebSocket consumer for location updates and ride offers."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from .base import BaseConsumer

logger = logging.getLogger(__name__)


class DriverConsumer(BaseConsumer):
    """
    WebSocket consumer for drivers.
    
    Handles:
        - Driver location pings (upserts the driver's location record)
        - Online/offline toggles
        - Accepting and declining offers
        - Forwarding offer events pushed to driver_<id>
    """

    required_role = "driver"

    async def on_connect(self):
        """Set up driver-specific groups on connection."""
        # Join driver-specific group for targeted notifications
        self.driver_group = f"driver_{self.user_id}"
        await self._join_group(self.driver_group)

        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Driver connected successfully",
        })

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle driver-specific messages."""
        
        if msg_type == "driver_location_update":
            await self._handle_location_update(data)
        elif msg_type == "driver_status_update":
            await self._handle_status_update(data)
        elif msg_type == "accept_notification":
            await self._handle_accept(data)
        elif msg_type == "decline_notification":
            await self._handle_decline(data)
        else:
            await super().handle_message(msg_type, data)

    # ---------------------- Message Handlers ----------------------

    async def _handle_location_update(self, data: Dict[str, Any]):
        lat = data.get("latitude")
        lon = data.get("longitude")

        if lat is None or lon is None:
            await self.send_error("driver_location_update requires latitude and longitude")
            return

        from common.utils import is_valid_coordinate
        if not is_valid_coordinate(lat, lon):
            await self.send_error("Invalid coordinates")
            return

        await self._update_location_db(data)
        logger.debug("Driver %s location update: lat=%s, lon=%s", self.user_id, lat, lon)

    async def _handle_status_update(self, data: Dict[str, Any]):
        """Handle driver availability change (online/offline)."""
        status = data.get("status")
        
        if status not in ["online", "offline"]:
            await self.send_error("Invalid status. Must be: online or offline")
            return

        updated = await self._set_online_db(status == "online")
        if not updated:
            await self.send_error("Send your location before going online")
            return

        await self.send_success("status_updated", status=status)

    async def _handle_accept(self, data: Dict[str, Any]):
        notification_id = data.get("notification_id")
        if notification_id is None:
            await self.send_error("accept_notification requires notification_id")
            return

        from services.ride_management import RideServiceError
        try:
            ride_id = await self._accept_db(int(notification_id))
        except RideServiceError as exc:
            await self.send_error(str(exc), error_code=exc.error_code, notification_id=notification_id)
            return

        await self.send_success("notification_accepted", notification_id=notification_id, ride_id=ride_id)

    async def _handle_decline(self, data: Dict[str, Any]):
        notification_id = data.get("notification_id")
        if notification_id is None:
            await self.send_error("decline_notification requires notification_id")
            return

        from services.ride_management import RideServiceError
        try:
            await self._decline_db(int(notification_id))
        except RideServiceError as exc:
            await self.send_error(str(exc), error_code=exc.error_code, notification_id=notification_id)
            return

        await self.send_success("notification_declined", notification_id=notification_id)

    # ---------------------- Event Handlers (from group_send) ----------------------

    async def ride_notification(self, event):
        """A new offer for this driver."""
        await self.send_json({
            "type": "new_ride_request",
            "notification_id": event.get("notification_id"),
            "ride_id": event.get("ride_id"),
            "distance_km": event.get("distance_km"),
            "expires_at": event.get("expires_at"),
            "ride": event.get("ride_data"),
        })

    async def notification_superseded(self, event):
        """Another driver won the ride, or the passenger cancelled it."""
        await self.send_json({
            "type": "notification_superseded",
            "notification_id": event.get("notification_id"),
            "ride_id": event.get("ride_id"),
            "message": event.get("message", "Ride no longer available"),
        })

    async def notification_expired(self, event):
        """The ride's deadline passed without an accept."""
        await self.send_json({
            "type": "notification_expired",
            "notification_id": event.get("notification_id"),
            "ride_id": event.get("ride_id"),
            "message": event.get("message", "Offer timed out"),
        })

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _update_location_db(self, data: Dict[str, Any]):
        from drivers.services import update_driver_location
        return update_driver_location(
            self.user,
            data["latitude"],
            data["longitude"],
            heading=data.get("heading"),
            speed=data.get("speed"),
            accuracy=data.get("accuracy"),
            is_online=data.get("is_online"),
        )

    @database_sync_to_async
    def _set_online_db(self, online: bool) -> bool:
        from drivers.services import set_driver_online
        return set_driver_online(self.user, online) is not None

    @database_sync_to_async
    def _accept_db(self, notification_id: int) -> int:
        from services.ride_management import accept_notification
        return accept_notification(self.user, notification_id).ride.id

    @database_sync_to_async
    def _decline_db(self, notification_id: int):
        from services.ride_management import decline_notification
        return decline_notification(self.user, notification_id)
