"""Prometheus metrics for hub observability.

Metrics are exposed at the `/metrics` endpoint in Prometheus format.

Metrics Defined:
- workhub_workflow_runs_total: Counter of workflow runs by kind and result
- workhub_workflow_step_failures_total: Counter of failed steps
- workhub_workflow_duration_seconds: Histogram of workflow run time
- workhub_cache_refreshes_total: Counter of cache refreshes by outcome
- workhub_discovery_item_failures_total: Counter of unreadable sessions/listings
- workhub_discovery_duration_seconds: Histogram of discovery pass time
- workhub_workspaces_discovered: Gauge of sessions seen by the last pass

The MetricsEventEmitter updates these from hub events.
"""

import logging
from typing import Any, Callable, Dict, Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from src.workhub.events.emitter import EventEmitter
from src.workhub.events.models import EventType, HubEvent


logger = logging.getLogger(__name__)


# Workflows clone and push, so they run from seconds to minutes
WORKFLOW_DURATION_BUCKETS = (
    1.0,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
    600.0,
)

# Discovery passes are subprocess-bound and should stay well under a second
DISCOVERY_DURATION_BUCKETS = (
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
)


class HubMetrics:
    """Container for all hub Prometheus metrics.

    Supports custom registries so tests do not collide on the default one.

    Metrics:
        workflow_runs_total: Labels workflow, result (success/failure).
        workflow_step_failures_total: Labels workflow, step.
        workflow_duration_seconds: Labels workflow.
        cache_refreshes_total: Labels cache, outcome (success/failure).
        discovery_item_failures_total: Labels reason (snapshot/listing/assembly).
        discovery_duration_seconds: No labels.
        workspaces_discovered: No labels.

    Example:
        >>> metrics = HubMetrics(registry=CollectorRegistry())
        >>> metrics.record_workflow("teardown", success=True, duration_seconds=1.2)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.workflow_runs_total = Counter(
            "workhub_workflow_runs_total",
            "Total number of workflow runs",
            labelnames=["workflow", "result"],
            registry=self.registry,
        )

        self.workflow_step_failures_total = Counter(
            "workhub_workflow_step_failures_total",
            "Total number of failed workflow steps",
            labelnames=["workflow", "step"],
            registry=self.registry,
        )

        self.workflow_duration_seconds = Histogram(
            "workhub_workflow_duration_seconds",
            "Time spent running workflows in seconds",
            labelnames=["workflow"],
            buckets=WORKFLOW_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.cache_refreshes_total = Counter(
            "workhub_cache_refreshes_total",
            "Total number of cache refreshes",
            labelnames=["cache", "outcome"],
            registry=self.registry,
        )

        self.discovery_item_failures_total = Counter(
            "workhub_discovery_item_failures_total",
            "Sessions or repository listings that could not be read",
            labelnames=["reason"],
            registry=self.registry,
        )

        self.discovery_duration_seconds = Histogram(
            "workhub_discovery_duration_seconds",
            "Time spent in one discovery pass in seconds",
            buckets=DISCOVERY_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.workspaces_discovered = Gauge(
            "workhub_workspaces_discovered",
            "Number of sessions seen by the last discovery pass",
            registry=self.registry,
        )

    def record_workflow(
        self,
        workflow: str,
        success: bool,
        duration_seconds: Optional[float] = None,
    ) -> None:
        """Record one finished workflow run.

        Args:
            workflow: Workflow kind.
            success: Whether every step succeeded or was skipped.
            duration_seconds: Run time, when known.
        """
        result = "success" if success else "failure"
        self.workflow_runs_total.labels(workflow=workflow, result=result).inc()
        if duration_seconds is not None:
            self.workflow_duration_seconds.labels(workflow=workflow).observe(
                duration_seconds
            )

    def record_step_failure(self, workflow: str, step: str) -> None:
        self.workflow_step_failures_total.labels(workflow=workflow, step=step).inc()

    def record_cache_refresh(self, cache: str, success: bool) -> None:
        outcome = "success" if success else "failure"
        self.cache_refreshes_total.labels(cache=cache, outcome=outcome).inc()

    def record_discovery(self, session_count: int, duration_seconds: float) -> None:
        self.workspaces_discovered.set(session_count)
        self.discovery_duration_seconds.observe(duration_seconds)

    def record_discovery_failure(self, reason: str) -> None:
        self.discovery_item_failures_total.labels(reason=reason).inc()


_default_metrics: Optional[HubMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> HubMetrics:
    """HubMetrics on ``registry``, or the process-wide instance on REGISTRY."""
    global _default_metrics

    if registry is not None:
        return HubMetrics(registry=registry)
    if _default_metrics is None:
        _default_metrics = HubMetrics()
    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Text exposition of ``registry`` (default REGISTRY) for GET /metrics."""
    return generate_latest(registry or REGISTRY)


def _float_or_none(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


class MetricsEventEmitter(EventEmitter):
    """Translates hub events into HubMetrics updates.

    Event types without a handler are ignored. A handler that fails is
    logged; metrics never break the caller that emitted the event.
    """

    def __init__(
        self,
        metrics: Optional[HubMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        self.metrics = metrics if metrics is not None else get_metrics(registry)
        self._handlers: Dict[EventType, Callable[[HubEvent], None]] = {
            EventType.STEP_FAILED: self._step_failed,
            EventType.WORKFLOW_COMPLETED: self._workflow_finished,
            EventType.WORKFLOW_FAILED: self._workflow_finished,
            EventType.CACHE_REFRESHED: self._cache_refreshed,
            EventType.CACHE_REFRESH_FAILED: self._cache_refreshed,
            EventType.DISCOVERY_COMPLETED: self._discovery_completed,
            EventType.DISCOVERY_ITEM_FAILED: self._discovery_item_failed,
        }

    def _step_failed(self, event: HubEvent) -> None:
        self.metrics.record_step_failure(
            workflow=event.details.get("workflow", "unknown"),
            step=event.details.get("step", "unknown"),
        )

    def _workflow_finished(self, event: HubEvent) -> None:
        self.metrics.record_workflow(
            workflow=event.details.get("workflow", event.subject),
            success=event.event_type == EventType.WORKFLOW_COMPLETED,
            duration_seconds=_float_or_none(event.details.get("duration_seconds")),
        )

    def _cache_refreshed(self, event: HubEvent) -> None:
        self.metrics.record_cache_refresh(
            cache=event.details.get("cache", event.subject),
            success=event.event_type == EventType.CACHE_REFRESHED,
        )

    def _discovery_completed(self, event: HubEvent) -> None:
        self.metrics.record_discovery(
            session_count=int(event.details.get("session_count", 0)),
            duration_seconds=float(event.details.get("duration_seconds", 0.0)),
        )

    def _discovery_item_failed(self, event: HubEvent) -> None:
        self.metrics.record_discovery_failure(reason=event.details.get("reason", "unknown"))

    async def emit(self, event: HubEvent) -> None:
        handler = self._handlers.get(event.event_type)
        if handler is None:
            return
        try:
            handler(event)
        except Exception as exc:
            logger.error(
                "Metrics update failed for %s",
                event.event_type.value,
                extra={"subject": event.subject, "error": str(exc)},
            )
