"""
alerts — Proximity-based disaster alert notification.

Sub-modules:
    channels/       — Email and SMS senders with pluggable providers
    alert_service   — Dispatcher: escalation gate, message composition, fan-out
    geo_fence       — Subscription matching by category and radius
    repository      — SQLAlchemy-backed subscription lookup
    models          — Data structures shared across the package
"""
