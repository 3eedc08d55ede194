"""Logging and tracing for the automation service."""

from crmflow.shared.telemetry.logging import get_logger, setup_logging
from crmflow.shared.telemetry.telemetry import EngineTracing
from crmflow.shared.telemetry.tracing import add_span_attributes, add_span_event, traced

__all__ = [
    "EngineTracing",
    "add_span_attributes",
    "add_span_event",
    "get_logger",
    "setup_logging",
    "traced",
]
