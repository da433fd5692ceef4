"""Tests for hub events, emitters and Prometheus metrics."""

from __future__ import annotations

import asyncio
import logging

from prometheus_client import CollectorRegistry

from src.workhub.events.emitter import (
    CompositeEventEmitter,
    LoggingEventEmitter,
    RecordingEventEmitter,
)
from src.workhub.events.metrics import HubMetrics, MetricsEventEmitter, generate_metrics_output
from src.workhub.events.models import EventType, HubEvent


def run_async(coro):
    return asyncio.run(coro)


def event(event_type, subject="teardown", **details):
    return HubEvent(event_type=event_type, subject=subject, repository="acme/widgets", details=details)


class TestHubEvent:
    def test_log_dict_flattens_details(self):
        log_dict = event(EventType.STEP_FAILED, step="push", error_message="boom").to_log_dict()

        assert log_dict["event_type"] == "step_failed"
        assert log_dict["repository"] == "acme/widgets"
        assert log_dict["step"] == "push"
        assert "T" in log_dict["timestamp"]


class TestMetricsEventEmitter:
    def _emitter(self):
        registry = CollectorRegistry()
        return registry, MetricsEventEmitter(metrics=HubMetrics(registry=registry))

    def test_workflow_runs_and_durations(self):
        registry, emitter = self._emitter()

        run_async(emitter.emit(event(EventType.WORKFLOW_COMPLETED, workflow="teardown", duration_seconds=2.0)))
        run_async(emitter.emit(event(EventType.WORKFLOW_FAILED, workflow="teardown", stage="close_review_request")))

        labels = {"workflow": "teardown"}
        assert registry.get_sample_value(
            "workhub_workflow_runs_total", {**labels, "result": "success"}
        ) == 1.0
        assert registry.get_sample_value(
            "workhub_workflow_runs_total", {**labels, "result": "failure"}
        ) == 1.0
        assert registry.get_sample_value("workhub_workflow_duration_seconds_count", labels) == 1.0

    def test_step_failures(self):
        registry, emitter = self._emitter()

        run_async(emitter.emit(event(EventType.STEP_FAILED, workflow="provision_new", step="push")))

        assert registry.get_sample_value(
            "workhub_workflow_step_failures_total", {"workflow": "provision_new", "step": "push"}
        ) == 1.0

    def test_cache_and_discovery(self):
        registry, emitter = self._emitter()

        run_async(emitter.emit(event(EventType.CACHE_REFRESHED, "workspaces", cache="workspaces")))
        run_async(emitter.emit(event(EventType.CACHE_REFRESH_FAILED, "workspaces", cache="workspaces")))
        run_async(emitter.emit(event(EventType.DISCOVERY_COMPLETED, "workspaces", session_count=4, duration_seconds=0.2)))
        run_async(emitter.emit(event(EventType.DISCOVERY_ITEM_FAILED, "wh-1", reason="snapshot")))

        assert registry.get_sample_value(
            "workhub_cache_refreshes_total", {"cache": "workspaces", "outcome": "success"}
        ) == 1.0
        assert registry.get_sample_value(
            "workhub_cache_refreshes_total", {"cache": "workspaces", "outcome": "failure"}
        ) == 1.0
        assert registry.get_sample_value("workhub_workspaces_discovered") == 4.0
        assert registry.get_sample_value(
            "workhub_discovery_item_failures_total", {"reason": "snapshot"}
        ) == 1.0

    def test_bad_details_do_not_raise(self):
        registry, emitter = self._emitter()

        run_async(emitter.emit(event(EventType.DISCOVERY_COMPLETED, "workspaces", session_count="many")))

        assert registry.get_sample_value("workhub_workspaces_discovered") == 0.0

    def test_metrics_output_is_prometheus_text(self):
        registry, emitter = self._emitter()
        run_async(emitter.emit(event(EventType.STEP_FAILED, workflow="teardown", step="remove_clone")))

        output = generate_metrics_output(registry).decode()

        assert "workhub_workflow_step_failures_total" in output


class TestEmitters:
    def test_logging_levels(self, caplog):
        emitter = LoggingEventEmitter(logger_name="workhub.test.events")

        with caplog.at_level(logging.DEBUG, logger="workhub.test.events"):
            run_async(emitter.emit(event(EventType.WORKFLOW_FAILED, stage="push")))
            run_async(emitter.emit(event(EventType.CACHE_REFRESHED, "workspaces")))

        assert [record.levelno for record in caplog.records] == [logging.ERROR, logging.DEBUG]
        assert caplog.records[0].stage == "push"

    def test_composite_continues_after_failing_child(self):
        class Broken(RecordingEventEmitter):
            async def emit(self, event):
                raise RuntimeError("down")

        recording = RecordingEventEmitter()
        composite = CompositeEventEmitter([Broken(), recording])

        run_async(composite.emit(event(EventType.STEP_COMPLETED)))

        assert len(recording.events) == 1
