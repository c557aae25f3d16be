"""Metric definitions for the signaling service."""

from __future__ import annotations

from .registry import registry


signaling_connections = registry.gauge(
    "signaling_active_connections",
    "Number of websocket connections attached to the signaling gateway.",
)

signaling_participants = registry.gauge(
    "signaling_registered_participants",
    "Number of participants currently held by the participant registry.",
)

signaling_rooms = registry.gauge(
    "signaling_active_rooms",
    "Number of rooms with at least one member.",
)

signaling_events_total = registry.counter(
    "signaling_events_total",
    "Count of signaling events processed, by direction and event type.",
    label_names=("direction", "type"),
)

signaling_delivery_failures_total = registry.counter(
    "signaling_delivery_failures_total",
    "Notifications that could not be delivered to a room member.",
    label_names=("reason",),
)

signaling_malformed_events_total = registry.counter(
    "signaling_malformed_events_total",
    "Inbound websocket payloads rejected as malformed.",
)
