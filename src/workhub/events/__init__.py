"""Hub event emission and metrics.

Event Emitters:
- EventEmitter: Abstract base class for event emission
- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- MetricsEventEmitter: Emits events as Prometheus metrics
- NullEventEmitter: Discards events
- RecordingEventEmitter: Keeps events in memory

Metrics:
- HubMetrics: Container for all Prometheus metrics
- get_metrics: Get or create the metrics instance
- generate_metrics_output: Prometheus format output for /metrics
"""

from src.workhub.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    LoggingEventEmitter,
    NullEventEmitter,
    RecordingEventEmitter,
)
from src.workhub.events.metrics import (
    HubMetrics,
    MetricsEventEmitter,
    generate_metrics_output,
    get_metrics,
)
from src.workhub.events.models import EventType, HubEvent

__all__ = [
    # Event models
    "EventType",
    "HubEvent",
    # Event emitters
    "EventEmitter",
    "LoggingEventEmitter",
    "CompositeEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    "RecordingEventEmitter",
    # Metrics
    "HubMetrics",
    "get_metrics",
    "generate_metrics_output",
]
