"""Base WebSocket consumer with shared functionality for all consumers."""

import logging
from typing import Dict, Any, Set

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

logger = logging.getLogger(__name__)


class BaseConsumer(AsyncJsonWebsocketConsumer):
    """
    Base consumer with shared connection management and helper methods.
    
    Subclasses should override:
        - required_role: role allowed to connect (None = any authenticated user)
        - on_connect(): join role-specific groups
        - handle_message(msg_type, data): handle incoming messages
    """

    required_role = None

    async def connect(self):
        self.user = self.scope.get("user")

        if self.user is None or self.user.is_anonymous:
            await self.close()
            return

        # Basic attributes available to all consumers
        self.user_id = getattr(self.user, "id", None)
        self.role = getattr(self.user, "role", None)
        
        # Track joined groups for cleanup
        self.joined_groups: Set[str] = set()

        await self.accept()

        if self.required_role and self.role != self.required_role:
            await self.send_error(f"This endpoint is for {self.required_role}s only")
            await self.close()
            return
        
        # Personal group (useful for targeted server->user messages)
        self.user_group = f"user_{self.user_id}"
        await self._join_group(self.user_group)

        await self.on_connect()

    async def on_connect(self):
        """Override in subclass for custom connect logic."""
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
        })

    async def disconnect(self, close_code):
        """Leave all joined groups on disconnect."""
        try:
            for group in list(getattr(self, "joined_groups", ())):
                await self._leave_group(group)
            await self.on_disconnect(close_code)
        except Exception:
            logger.exception("Error during disconnect for user %s", getattr(self, 'user_id', 'unknown'))

    async def on_disconnect(self, close_code):
        """Override in subclass for custom disconnect logic."""
        pass

    async def receive_json(self, data: Dict[str, Any]):
        """Route incoming messages to appropriate handlers."""
        msg_type = data.get("type")
        if not msg_type:
            await self.send_error("Message type is required")
            return
        
        try:
            await self.handle_message(msg_type, data)
        except Exception:
            logger.exception("Error handling message type %s", msg_type)
            await self.send_error(f"Error processing {msg_type}")

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Override in subclass to handle specific message types; call super() for the rest."""
        if msg_type == "start_tracking":
            await self._handle_start_tracking(data)
        elif msg_type == "stop_tracking":
            await self._handle_stop_tracking(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Ride Tracking ----------------------

    async def _handle_start_tracking(self, data: Dict[str, Any]):
        """Join ride_<ride_id> to receive status events for a ride the user takes part in."""
        ride_id = data.get("ride_id")
        if ride_id is None:
            await self.send_error("start_tracking requires ride_id")
            return

        if not await self._is_ride_participant(ride_id):
            await self.send_error("You are not authorized to track this ride")
            return

        await self._join_group(f"ride_{ride_id}")
        await self.send_success("tracking_started", ride_id=ride_id)

    async def _handle_stop_tracking(self, data: Dict[str, Any]):
        ride_id = data.get("ride_id")
        if ride_id is None:
            return

        await self._leave_group(f"ride_{ride_id}")
        await self.send_success("tracking_stopped", ride_id=ride_id)

    @database_sync_to_async
    def _is_ride_participant(self, ride_id) -> bool:
        from django.db.models import Q
        from rides.models import Ride
        return Ride.objects.filter(
            Q(passenger_id=self.user_id) | Q(driver_id=self.user_id),
            id=ride_id,
        ).exists()

    # ---------------------- Group Management Helpers ----------------------

    async def _join_group(self, group_name: str):
        """Join a channel group and track it."""
        await self.channel_layer.group_add(group_name, self.channel_name)
        self.joined_groups.add(group_name)

    async def _leave_group(self, group_name: str):
        """Leave a channel group and untrack it."""
        await self.channel_layer.group_discard(group_name, self.channel_name)
        self.joined_groups.discard(group_name)

    # ---------------------- Response Helpers ----------------------

    async def send_error(self, message: str, **kwargs):
        """Send an error message to the client."""
        await self.send_json({
            "type": "error",
            "message": message,
            **kwargs,
        })

    async def send_success(self, event_type: str, **kwargs):
        """Send a success response to the client."""
        await self.send_json({
            "type": event_type,
            **kwargs,
        })

    # ---------------------- Common Event Handlers ----------------------
    # These handle group_send events from server-side code

    async def ride_cancelled(self, event):
        """Sent when a ride is cancelled."""
        await self.send_json({
            "type": "ride_cancelled",
            "ride_id": event.get("ride_id"),
            "message": event.get("message", ""),
        })

    async def ride_status_changed(self, event):
        """Sent on any ride status transition."""
        await self.send_json({
            "type": "ride_status_changed",
            "ride_id": event.get("ride_id"),
            "status": event.get("status"),
            "message": event.get("message", ""),
            "ride": event.get("ride_data"),
        })
