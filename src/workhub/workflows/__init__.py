"""Workspace lifecycle workflows."""

from src.workhub.workflows.clones import CloneDirectories
from src.workhub.workflows.models import (
    StepResult,
    StepStatus,
    WorkflowKind,
    WorkflowResult,
    WorkflowStep,
)
from src.workhub.workflows.orchestrator import WorkflowOrchestrator

__all__ = [
    "CloneDirectories",
    "StepResult",
    "StepStatus",
    "WorkflowKind",
    "WorkflowOrchestrator",
    "WorkflowResult",
    "WorkflowStep",
]
