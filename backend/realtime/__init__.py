"""
Realtime app for WebSocket communication.

This app provides:
- WebSocket consumers for delivery persons and clients (admins included)
- Notification helpers used by the dispatcher and order lifecycle
- JWT authentication middleware for WebSocket connections

Usage:
    from realtime.consumers import CourierConsumer, ClientConsumer
    from realtime.notifications import notify_courier_event, notify_client_event
"""
