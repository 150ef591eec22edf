"""Tracking core services."""
from little_bell.services.aggregator import Aggregator
from little_bell.services.recorder import EventRecorder, TrackingOutcome, parse_email_id

__all__ = [
    "Aggregator",
    "EventRecorder",
    "TrackingOutcome",
    "parse_email_id",
]
