from unittest.mock import AsyncMock, Mock, patch

from channels.layers import channel_layers, get_channel_layer
from channels.testing import WebsocketCommunicator
from django.test import SimpleTestCase

from accounts.models import User
from realtime.consumers import DriverConsumer, PassengerConsumer
from realtime.notifications import notify_driver_event, send_to_group


def communicator_for(consumer, user):
    communicator = WebsocketCommunicator(consumer.as_asgi(), "/ws/")
    communicator.scope["user"] = user
    return communicator


class ConsumerTests(SimpleTestCase):
    # Channels closes stale DB connections around each consumer dispatch
    databases = {"default"}

    def setUp(self):
        # Fresh in-memory layer per test; its queues belong to one event loop
        channel_layers.backends.clear()
        self.driver = User(id=7, username="driver", role=User.DRIVER)
        self.passenger = User(id=8, username="passenger", role=User.PASSENGER)

    async def test_driver_receives_offer_pushed_to_its_group(self):
        communicator = communicator_for(DriverConsumer, self.driver)
        connected, _ = await communicator.connect()
        self.assertTrue(connected)
        hello = await communicator.receive_json_from()
        self.assertEqual(hello["type"], "connection_established")

        await get_channel_layer().group_send("driver_7", {
            "type": "ride_notification",
            "notification_id": 11,
            "ride_id": 3,
            "distance_km": 1.25,
            "expires_at": "2026-01-01T00:00:50+00:00",
            "ride_data": {"id": 3},
        })

        message = await communicator.receive_json_from()
        self.assertEqual(message["type"], "new_ride_request")
        self.assertEqual(message["notification_id"], 11)
        self.assertEqual(message["distance_km"], 1.25)
        await communicator.disconnect()

    async def test_driver_receives_superseded(self):
        communicator = communicator_for(DriverConsumer, self.driver)
        await communicator.connect()
        await communicator.receive_json_from()

        await get_channel_layer().group_send("driver_7", {
            "type": "notification_superseded",
            "notification_id": 11,
            "ride_id": 3,
        })

        message = await communicator.receive_json_from()
        self.assertEqual(message["type"], "notification_superseded")
        self.assertEqual(message["ride_id"], 3)
        await communicator.disconnect()

    async def test_passenger_receives_acceptance_on_user_group(self):
        communicator = communicator_for(PassengerConsumer, self.passenger)
        await communicator.connect()
        await communicator.receive_json_from()

        await get_channel_layer().group_send("user_8", {
            "type": "ride_accepted",
            "ride_id": 3,
            "driver_id": 7,
            "ride_data": {"id": 3, "status": "accepted"},
        })

        message = await communicator.receive_json_from()
        self.assertEqual(message["type"], "ride_accepted")
        self.assertEqual(message["driver_id"], 7)
        await communicator.disconnect()

    async def test_wrong_role_is_rejected(self):
        communicator = communicator_for(DriverConsumer, self.passenger)
        await communicator.connect()

        message = await communicator.receive_json_from()
        self.assertEqual(message["type"], "error")
        output = await communicator.receive_output()
        self.assertEqual(output["type"], "websocket.close")
        await communicator.disconnect()

    async def test_accept_requires_notification_id(self):
        communicator = communicator_for(DriverConsumer, self.driver)
        await communicator.connect()
        await communicator.receive_json_from()

        await communicator.send_json_to({"type": "accept_notification"})

        message = await communicator.receive_json_from()
        self.assertEqual(message["type"], "error")
        await communicator.disconnect()

    async def test_unknown_message_type(self):
        communicator = communicator_for(PassengerConsumer, self.passenger)
        await communicator.connect()
        await communicator.receive_json_from()

        await communicator.send_json_to({"type": "teleport"})

        message = await communicator.receive_json_from()
        self.assertEqual(message["type"], "error")
        self.assertIn("teleport", message["message"])
        await communicator.disconnect()


class SendToGroupTests(SimpleTestCase):

    def test_layer_failure_is_swallowed(self):
        layer = Mock()
        layer.group_send = AsyncMock(side_effect=ConnectionError("redis down"))
        with patch("realtime.notifications.get_channel_layer", return_value=layer):
            self.assertFalse(send_to_group("driver_1", {"type": "ride_notification"}))

    def test_missing_layer(self):
        with patch("realtime.notifications.get_channel_layer", return_value=None):
            self.assertFalse(send_to_group("driver_1", {"type": "ride_notification"}))

    def test_sends_payload(self):
        layer = Mock()
        layer.group_send = AsyncMock()
        with patch("realtime.notifications.get_channel_layer", return_value=layer):
            self.assertTrue(send_to_group("user_1", {"type": "ride_expired"}))
        layer.group_send.assert_awaited_once_with("user_1", {"type": "ride_expired"})

    @patch("realtime.notifications.send_to_group", return_value=True)
    def test_driver_event_payload(self, mock_send):
        notify_driver_event("notification_expired", 5, extra={"notification_id": 2, "ride_id": 9})

        mock_send.assert_called_once_with("driver_5", {
            "type": "notification_expired",
            "driver_id": 5,
            "notification_id": 2,
            "ride_id": 9,
        })

    def test_driver_event_without_driver(self):
        self.assertFalse(notify_driver_event("ride_cancelled", None))
