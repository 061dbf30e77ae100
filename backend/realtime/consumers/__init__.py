"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .driver_consumer import DriverConsumer
from .passenger_consumer import PassengerConsumer

__all__ = [
    "BaseConsumer",
    "DriverConsumer",
    "PassengerConsumer",
]
