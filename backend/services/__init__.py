"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - pricing: Delivery fee / platform fee computation
    - geocoding: Maps provider gateway (geocode + route)
    - matching: Delivery person ranking and offer dispatch
    - order_management: Order lifecycle operations
"""
