"""
Realtime app for WebSocket communication.

This app provides:
- WebSocket consumers for drivers and passengers
- Best-effort push helpers used by the dispatch services
- JWT/Cookie authentication middleware for WebSocket connections

Usage:
    from realtime.consumers import DriverConsumer, PassengerConsumer
    from realtime.notifications import notify_driver_event, notify_passenger_event
"""
