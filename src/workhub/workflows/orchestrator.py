"""Workflow orchestrator for workspace lifecycles.

Drives the fixed step sequences that create and remove workspaces:

- provision_new: task description -> new branch, review request, clone,
  session and assistant handover
- setup_existing: review request number -> clone, session and handover
- create_from_branch: existing branch -> review request, clone, session
  and handover
- teardown: review request number -> closed request, no session, no clone

Every step goes through _run_step, which records a StepResult and emits a
step event. The first failing step aborts the workflow: its error carries
the step name as ``stage`` and the partial WorkflowResult as ``result``.
Steps that already landed are not rolled back. In particular, a failure
after the review request is created leaves that request open with no
session; the next discovery pass shows it and setup_existing recovers it.

The orchestrator never reads or invalidates caches.
"""

import logging
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

from src.workhub.assistant.metadata import MetadataGenerator
from src.workhub.errors import (
    ConflictError,
    ExternalServiceError,
    InputValidationError,
    NotFoundError,
    WorkspaceHubError,
)
from src.workhub.events.emitter import EventEmitter, NullEventEmitter
from src.workhub.events.models import EventType, HubEvent
from src.workhub.handover.protocol import HandoverProtocol
from src.workhub.models import HandoverContext, ReviewRequest
from src.workhub.ports import ReviewSystemPort, SessionPort, VersionControlPort
from src.workhub.workflows.clones import CloneDirectories
from src.workhub.workflows.models import (
    StepResult,
    StepStatus,
    WorkflowKind,
    WorkflowResult,
    WorkflowStep,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_COMMIT_MESSAGE = "chore: initial commit"


def _require_text(value: Optional[str], name: str) -> str:
    if value is None or not value.strip():
        raise InputValidationError(f"{name} must not be empty")
    return value.strip()


def _require_number(number: object) -> int:
    if isinstance(number, bool) or not isinstance(number, int) or number <= 0:
        raise InputValidationError(
            f"Review request number must be a positive integer, got {number!r}"
        )
    return number


class WorkflowOrchestrator:
    """Runs the workspace workflows against the external ports.

    Attributes:
        sessions: Session port.
        vcs: Version control port.
        review_system: Review system port (real or simulated writes).
        metadata: Generates branch, title and body for new requests.
        handover: Starts the assistant in new sessions.
        clones: Clone directory layout.
        repository: ``owner/repo`` on the review system.
        repo_url: git URL clones are made from.
        base_branch: Default target branch.
        session_prefix: Prefix of session names.
        commit_message: Message of the initial empty commit.
        guidelines: Guidelines text passed to the handover.
        event_emitter: Receives step and workflow events.
    """

    def __init__(
        self,
        sessions: SessionPort,
        vcs: VersionControlPort,
        review_system: ReviewSystemPort,
        metadata: MetadataGenerator,
        handover: HandoverProtocol,
        clones: CloneDirectories,
        repository: str,
        repo_url: str,
        base_branch: str = "main",
        session_prefix: str = "wh-",
        commit_message: Optional[str] = None,
        guidelines: Optional[str] = None,
        event_emitter: Optional[EventEmitter] = None,
    ):
        self.sessions = sessions
        self.vcs = vcs
        self.review_system = review_system
        self.metadata = metadata
        self.handover = handover
        self.clones = clones
        self.repository = repository
        self.repo_url = repo_url
        self.base_branch = base_branch
        self.session_prefix = session_prefix
        self.commit_message = commit_message or DEFAULT_COMMIT_MESSAGE
        self.guidelines = guidelines or None
        self.event_emitter = event_emitter or NullEventEmitter()

    def session_id_for(self, number: int) -> str:
        return f"{self.session_prefix}{number}"

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    async def provision_new(
        self, task_description: str, base_branch: Optional[str] = None
    ) -> WorkflowResult:
        """Create a branch, review request, clone and session for a new task.

        Args:
            task_description: What the user wants done.
            base_branch: Target branch; defaults to the configured one.

        Returns:
            WorkflowResult with the request, session and clone path.

        Raises:
            InputValidationError: If the task description is blank.
            WorkspaceHubError: The failing step's error, with ``stage`` and
                ``result`` set.
        """
        task = _require_text(task_description, "Task description")
        base = _require_text(base_branch or self.base_branch, "Base branch")
        result = WorkflowResult(workflow=WorkflowKind.PROVISION_NEW)

        async def steps() -> None:
            metadata, used_fallback = await self._run_step(
                result,
                WorkflowStep.GENERATE_METADATA,
                lambda: self.metadata.generate(task),
            )
            if used_fallback:
                result.steps[-1].detail = "fallback metadata"

            temp_path = self.clones.temp_path()
            await self._run_step(
                result,
                WorkflowStep.CLONE,
                lambda: self._clone(temp_path, base),
                detail=str(temp_path),
            )
            await self._run_step(
                result,
                WorkflowStep.CREATE_BRANCH,
                lambda: self._create_and_checkout(temp_path, metadata.branch_name),
                detail=metadata.branch_name,
            )
            await self._run_step(
                result,
                WorkflowStep.COMMIT,
                lambda: self.vcs.commit(temp_path, self.commit_message, allow_empty=True),
            )
            await self._run_step(
                result,
                WorkflowStep.PUSH,
                lambda: self.vcs.push(
                    temp_path,
                    metadata.branch_name,
                    set_upstream=True,
                    force_with_lease=True,
                ),
            )
            request = await self._run_step(
                result,
                WorkflowStep.CREATE_REVIEW_REQUEST,
                lambda: self.review_system.create(
                    self.repository,
                    branch=metadata.branch_name,
                    base_branch=base,
                    title=metadata.title,
                    body=metadata.body,
                    draft=True,
                ),
            )
            result.review_request = request
            result.steps[-1].detail = f"#{request.number}"

            clone_path = self.clones.path_for(request.number)
            replaced = await self._run_step(
                result,
                WorkflowStep.RENAME_CLONE,
                lambda: self._move(temp_path, clone_path),
                detail=str(clone_path),
            )
            if replaced:
                result.steps[-1].detail = f"{clone_path} (replaced existing)"
            result.clone_path = clone_path

            await self._open_session(
                result,
                request.number,
                clone_path,
                HandoverContext(
                    request_number=request.number,
                    branch=metadata.branch_name,
                    base_branch=base,
                    task_description=task,
                    guidelines=self.guidelines,
                ),
            )

        return await self._execute(result, steps)

    async def setup_existing(self, number: int) -> WorkflowResult:
        """Recreate the clone and session of an existing review request.

        Raises:
            InputValidationError: If ``number`` is not a positive integer.
            NotFoundError: If the review request does not exist.
            ConflictError: If ``pr-<number>`` already exists; nothing is removed.
            WorkspaceHubError: Any other failing step's error.
        """
        number = _require_number(number)
        result = WorkflowResult(workflow=WorkflowKind.SETUP_EXISTING)

        async def steps() -> None:
            request = await self._run_step(
                result,
                WorkflowStep.FETCH_REVIEW_REQUEST,
                lambda: self._fetch(number),
            )
            result.review_request = request

            clone_path = self.clones.path_for(number)
            await self._run_step(
                result,
                WorkflowStep.CHECK_CLONE_PATH,
                lambda: self._check_free(clone_path),
                detail=str(clone_path),
            )
            await self._run_step(
                result,
                WorkflowStep.CLONE,
                lambda: self._clone(clone_path, request.branch),
                detail=str(clone_path),
            )
            result.clone_path = clone_path

            await self._open_session(
                result,
                number,
                clone_path,
                HandoverContext(
                    request_number=number,
                    branch=request.branch,
                    base_branch=request.base_branch,
                    task_description=f"Continue working on: {request.title}",
                    guidelines=self.guidelines,
                ),
            )

        return await self._execute(result, steps)

    async def create_from_branch(
        self,
        branch_name: str,
        title: str,
        base_branch: Optional[str] = None,
    ) -> WorkflowResult:
        """Open a review request for a pushed branch and set up its workspace.

        Raises:
            InputValidationError: If the branch name or title is blank.
            ConflictError: If the clone directory for the new request exists.
            WorkspaceHubError: Any other failing step's error.
        """
        branch = _require_text(branch_name, "Branch name")
        request_title = _require_text(title, "Title")
        base = _require_text(base_branch or self.base_branch, "Base branch")
        result = WorkflowResult(workflow=WorkflowKind.CREATE_FROM_BRANCH)

        async def steps() -> None:
            request = await self._run_step(
                result,
                WorkflowStep.CREATE_REVIEW_REQUEST,
                lambda: self.review_system.create(
                    self.repository,
                    branch=branch,
                    base_branch=base,
                    title=request_title,
                    body=f"PR created from existing branch: {branch}",
                    draft=False,
                ),
            )
            result.review_request = request
            result.steps[-1].detail = f"#{request.number}"

            clone_path = self.clones.path_for(request.number)
            await self._run_step(
                result,
                WorkflowStep.CHECK_CLONE_PATH,
                lambda: self._check_free(clone_path),
                detail=str(clone_path),
            )
            await self._run_step(
                result,
                WorkflowStep.CLONE,
                lambda: self._clone(clone_path, branch),
                detail=str(clone_path),
            )
            result.clone_path = clone_path

            await self._open_session(
                result,
                request.number,
                clone_path,
                HandoverContext(
                    request_number=request.number,
                    branch=branch,
                    base_branch=base,
                    task_description=f"Working on review request from existing branch: {branch}",
                    guidelines=self.guidelines,
                ),
            )

        return await self._execute(result, steps)

    async def teardown(self, number: int) -> WorkflowResult:
        """Close a review request and remove its session and clone.

        A missing session or clone directory is skipped, not an error.
        Failing to close the request aborts before anything is removed.

        Raises:
            InputValidationError: If ``number`` is not a positive integer.
            WorkspaceHubError: The failing step's error.
        """
        number = _require_number(number)
        result = WorkflowResult(workflow=WorkflowKind.TEARDOWN)

        async def steps() -> None:
            await self._run_step(
                result,
                WorkflowStep.CLOSE_REVIEW_REQUEST,
                lambda: self.review_system.close(self.repository, number),
                detail=f"#{number}",
            )

            session_id = self.session_id_for(number)
            if await self._attempt(
                result, WorkflowStep.DESTROY_SESSION, lambda: self.sessions.exists(session_id)
            ):
                await self._run_step(
                    result,
                    WorkflowStep.DESTROY_SESSION,
                    lambda: self.sessions.destroy_session(session_id),
                    detail=session_id,
                )
            else:
                await self._skip_step(
                    result, WorkflowStep.DESTROY_SESSION, f"no session {session_id}"
                )

            clone_path = self.clones.path_for(number)
            if self.clones.exists(clone_path):
                await self._run_step(
                    result,
                    WorkflowStep.REMOVE_CLONE,
                    lambda: self._remove(clone_path),
                    detail=str(clone_path),
                )
            else:
                await self._skip_step(
                    result, WorkflowStep.REMOVE_CLONE, f"no directory {clone_path}"
                )

        return await self._execute(result, steps)

    # ------------------------------------------------------------------
    # Step actions
    # ------------------------------------------------------------------

    async def _clone(self, target: Path, branch: str) -> None:
        self.clones.ensure_root()
        await self.vcs.clone(self.repo_url, target, branch=branch, depth=1)

    async def _create_and_checkout(self, directory: Path, branch: str) -> None:
        await self.vcs.create_branch(directory, branch)
        await self.vcs.checkout(directory, branch)

    async def _move(self, source: Path, target: Path) -> bool:
        return self.clones.move(source, target)

    async def _remove(self, path: Path) -> None:
        self.clones.remove(path)

    async def _fetch(self, number: int) -> ReviewRequest:
        request = await self.review_system.get(self.repository, number)
        if request is None:
            raise NotFoundError(f"Review request #{number} not found in {self.repository}")
        return request

    async def _check_free(self, clone_path: Path) -> None:
        if self.clones.exists(clone_path):
            raise ConflictError(f"Clone already exists at {clone_path}")

    async def _open_session(
        self,
        result: WorkflowResult,
        number: int,
        clone_path: Path,
        context: HandoverContext,
    ) -> None:
        session_id = self.session_id_for(number)
        result.session = await self._run_step(
            result,
            WorkflowStep.CREATE_SESSION,
            lambda: self.sessions.create_session(session_id, clone_path),
            detail=session_id,
        )
        await self._run_step(
            result,
            WorkflowStep.HANDOVER,
            lambda: self.handover.initialize(session_id, context),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _execute(
        self, result: WorkflowResult, steps: Callable[[], Awaitable[None]]
    ) -> WorkflowResult:
        workflow = result.workflow.value
        started = time.monotonic()
        logger.info("Starting workflow", extra={"workflow": workflow})

        try:
            await steps()
        except WorkspaceHubError as exc:
            duration = time.monotonic() - started
            logger.error(
                "Workflow failed",
                extra={"workflow": workflow, "stage": exc.stage, "error": exc.message},
            )
            await self._safe_emit(
                HubEvent(
                    event_type=EventType.WORKFLOW_FAILED,
                    subject=workflow,
                    repository=self.repository,
                    details={
                        "workflow": workflow,
                        "stage": exc.stage,
                        "error_message": exc.message,
                        "duration_seconds": duration,
                    },
                )
            )
            raise

        duration = time.monotonic() - started
        logger.info(
            "Workflow completed",
            extra={"workflow": workflow, "duration_seconds": duration},
        )
        await self._safe_emit(
            HubEvent(
                event_type=EventType.WORKFLOW_COMPLETED,
                subject=workflow,
                repository=self.repository,
                details={
                    "workflow": workflow,
                    "pr_number": result.review_request.number
                    if result.review_request
                    else None,
                    "duration_seconds": duration,
                },
            )
        )
        return result

    async def _run_step(
        self,
        result: WorkflowResult,
        step: WorkflowStep,
        action: Callable[[], Awaitable[T]],
        detail: str = "",
    ) -> T:
        """Run one step, record its outcome and emit a step event."""
        value = await self._attempt(result, step, action)
        result.steps.append(StepResult(step=step, status=StepStatus.SUCCEEDED, detail=detail))
        await self._emit_step(result, EventType.STEP_COMPLETED, step)
        return value

    async def _attempt(
        self,
        result: WorkflowResult,
        step: WorkflowStep,
        action: Callable[[], Awaitable[T]],
    ) -> T:
        """Await ``action``, failing ``step`` if it raises.

        Raises:
            WorkspaceHubError: The step's error with ``stage`` and ``result``
                attached. Other exceptions are wrapped in
                ExternalServiceError.
        """
        try:
            return await action()
        except WorkspaceHubError as exc:
            await self._fail_step(result, step, exc)
            raise
        except Exception as exc:
            wrapped = ExternalServiceError(f"{type(exc).__name__}: {exc}")
            await self._fail_step(result, step, wrapped)
            raise wrapped from exc

    async def _fail_step(
        self, result: WorkflowResult, step: WorkflowStep, error: WorkspaceHubError
    ) -> None:
        error.stage = step.value
        error.result = result
        result.steps.append(
            StepResult(step=step, status=StepStatus.FAILED, error=error.message)
        )
        await self._emit_step(
            result,
            EventType.STEP_FAILED,
            step,
            {"error_message": error.message, "error_type": type(error).__name__},
        )

    async def _skip_step(
        self, result: WorkflowResult, step: WorkflowStep, reason: str
    ) -> None:
        result.steps.append(StepResult(step=step, status=StepStatus.SKIPPED, detail=reason))
        await self._emit_step(result, EventType.STEP_SKIPPED, step, {"reason": reason})

    async def _emit_step(
        self,
        result: WorkflowResult,
        event_type: EventType,
        step: WorkflowStep,
        details: Optional[dict] = None,
    ) -> None:
        await self._safe_emit(
            HubEvent(
                event_type=event_type,
                subject=result.workflow.value,
                repository=self.repository,
                details={
                    "workflow": result.workflow.value,
                    "step": step.value,
                    **(details or {}),
                },
            )
        )

    async def _safe_emit(self, event: HubEvent) -> None:
        """Emit an event, swallowing exceptions to avoid disrupting the workflow."""
        try:
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit workflow event",
                extra={"event_type": event.event_type.value, "subject": event.subject},
            )
