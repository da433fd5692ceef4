"""Hub event models for observability.

This module defines the data models for hub events:
- EventType: Enum of all event types emitted by the hub
- HubEvent: Structured event with subject, repository and details

Events are emitted by the workflow orchestrator, the discovery engine and
the caches. They feed structured logs and Prometheus metrics.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the hub.

    Event Categories:
        STEP_*: One workflow step finished, failed or was skipped.
            Used for tracing a workflow run step by step.

        WORKFLOW_*: A workflow run finished or stopped at a failed step.
            Used for success/failure metrics per workflow kind.

        CACHE_*: A cache refresh finished or failed. A failed background
            refresh keeps serving stale data, so this event is the only
            signal that the data is aging.

        DISCOVERY_*: A discovery pass finished, or one session or
            repository could not be read during it.
    """

    STEP_COMPLETED = "step_completed"
    STEP_FAILED = "step_failed"
    STEP_SKIPPED = "step_skipped"
    WORKFLOW_COMPLETED = "workflow_completed"
    WORKFLOW_FAILED = "workflow_failed"
    CACHE_REFRESHED = "cache_refreshed"
    CACHE_REFRESH_FAILED = "cache_refresh_failed"
    DISCOVERY_COMPLETED = "discovery_completed"
    DISCOVERY_ITEM_FAILED = "discovery_item_failed"


class HubEvent(BaseModel):
    """Structured event emitted by the hub.

    Attributes:
        event_type: The category of event.
        subject: What the event is about, e.g. ``"provision_new"``,
            ``"workspaces"`` or a session id.
        repository: ``owner/repo`` when the event concerns one repository.
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For STEP_* events:
            - workflow: Workflow kind
            - step: Step name
            - error_message / error_type: On failure

        For WORKFLOW_* events:
            - workflow: Workflow kind
            - duration_seconds: Time from start to finish or failure
            - stage: Failing step (WORKFLOW_FAILED only)

        For CACHE_* events:
            - cache: Cache name
            - key: Cache key
            - error_message: On failure

        For DISCOVERY_* events:
            - reason: "snapshot" or "listing" for item failures
            - session_count / duration_seconds: On completion
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    subject: str = Field(
        ...,
        min_length=1,
        description="What the event is about",
    )

    repository: Optional[str] = Field(
        default=None,
        description='Repository in format "{owner}/{repo}", when relevant',
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten the event for structured logging.

        Returns:
            Dict[str, Any]: Event fields plus details, timestamp as ISO string.
        """
        return {
            "event_type": self.event_type.value,
            "subject": self.subject,
            "repository": self.repository,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
