"""Workflow step and result records.

Every workflow run produces a WorkflowResult listing its steps in order.
On failure the partial result is attached to the raised error, so a
caller can see which steps landed before the abort.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from src.workhub.models import ReviewRequest, WorkspaceSession


class WorkflowKind(str, Enum):
    PROVISION_NEW = "provision_new"
    SETUP_EXISTING = "setup_existing"
    TEARDOWN = "teardown"
    CREATE_FROM_BRANCH = "create_from_branch"


class WorkflowStep(str, Enum):
    """Named steps across all workflows."""

    GENERATE_METADATA = "generate_metadata"
    FETCH_REVIEW_REQUEST = "fetch_review_request"
    CHECK_CLONE_PATH = "check_clone_path"
    CLONE = "clone"
    CREATE_BRANCH = "create_branch"
    COMMIT = "commit"
    PUSH = "push"
    CREATE_REVIEW_REQUEST = "create_review_request"
    RENAME_CLONE = "rename_clone"
    CREATE_SESSION = "create_session"
    HANDOVER = "handover"
    CLOSE_REVIEW_REQUEST = "close_review_request"
    DESTROY_SESSION = "destroy_session"
    REMOVE_CLONE = "remove_clone"


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StepResult:
    """Outcome of one workflow step.

    Attributes:
        step: Which step ran.
        status: SUCCEEDED, FAILED or SKIPPED.
        detail: Short human-readable note (skip reason, created path...).
        error: Error message when the step failed.
    """

    step: WorkflowStep
    status: StepStatus
    detail: str = ""
    error: Optional[str] = None


@dataclass
class WorkflowResult:
    """Ordered step outcomes plus what the workflow produced.

    Attributes:
        workflow: Which workflow ran.
        steps: Step outcomes in execution order.
        review_request: Created, fetched or closed review request.
        session: Session created by the workflow.
        clone_path: Final clone directory.
    """

    workflow: WorkflowKind
    steps: List[StepResult] = field(default_factory=list)
    review_request: Optional[ReviewRequest] = None
    session: Optional[WorkspaceSession] = None
    clone_path: Optional[Path] = None

    @property
    def succeeded(self) -> bool:
        return all(step.status != StepStatus.FAILED for step in self.steps)

    @property
    def failed_step(self) -> Optional[WorkflowStep]:
        for step in self.steps:
            if step.status == StepStatus.FAILED:
                return step.step
        return None

    def status_of(self, step: WorkflowStep) -> Optional[StepStatus]:
        for result in self.steps:
            if result.step == step:
                return result.status
        return None
