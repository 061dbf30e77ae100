"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - matching: Candidate lookup, broadcast and the dispatch pipeline
    - ride_management: Accept/decline resolution, deadlines and ride lifecycle
"""
