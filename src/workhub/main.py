"""FastAPI application entry point for the workspace hub.

Thin HTTP surface over the discovery engine, the caches and the workflow
orchestrator. The handlers only translate requests, invalidate caches
after workflows and map hub errors to status codes:

- NOT_FOUND -> 404
- CONFLICT -> 409
- VALIDATION -> 400
- TRANSIENT_EXTERNAL -> 502
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry
from pydantic import BaseModel, Field

from src.workhub.assistant.cli import ClaudeCliAssistant
from src.workhub.assistant.llm import LLMAssistant
from src.workhub.assistant.metadata import MetadataGenerator
from src.workhub.cache import (
    WORKSPACES_KEY,
    ReviewRequestCache,
    WorkspaceCache,
    build_review_request_cache,
    build_workspace_cache,
)
from src.workhub.config import HubSettings, get_settings
from src.workhub.discovery.engine import DiscoveryEngine
from src.workhub.errors import (
    ErrorKind,
    InputValidationError,
    NotFoundError,
    WorkspaceHubError,
)
from src.workhub.events.emitter import CompositeEventEmitter, LoggingEventEmitter
from src.workhub.events.metrics import MetricsEventEmitter, generate_metrics_output
from src.workhub.handover.protocol import HandoverProtocol
from src.workhub.review.client import GitHubClient
from src.workhub.review.github import GitHubReviewSystem
from src.workhub.review.simulated import ReviewRequestStore, SimulatedWriteReviewSystem
from src.workhub.sessions.tmux import TmuxSessions
from src.workhub.vcs.git import GitCli
from src.workhub.workflows.clones import CloneDirectories
from src.workhub.workflows.models import WorkflowResult
from src.workhub.workflows.orchestrator import WorkflowOrchestrator

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION: 400,
    ErrorKind.TRANSIENT_EXTERNAL: 502,
}


@dataclass
class HubServices:
    """Everything the HTTP handlers need, wired once at startup.

    Attributes:
        discovery: Discovery engine (uncached single-session lookups).
        orchestrator: Workflow orchestrator.
        workspace_cache: Cached discovery results.
        review_cache: Cached open review requests per user.
        current_user: Default login for "my review requests".
        registry: Prometheus registry served at /metrics (None: default).
        github_client: Closed on shutdown when set.
    """

    discovery: DiscoveryEngine
    orchestrator: WorkflowOrchestrator
    workspace_cache: WorkspaceCache
    review_cache: ReviewRequestCache
    current_user: Optional[str] = None
    registry: Optional[CollectorRegistry] = None
    github_client: Optional[GitHubClient] = None


class ProvisionRequest(BaseModel):
    task_description: str = Field(..., min_length=1)
    base_branch: Optional[str] = None


class FromBranchRequest(BaseModel):
    branch_name: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    base_branch: Optional[str] = None


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: HubSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Workspace hub configuration:")
    logger.info(f"  Repository: {settings.repo_name} ({settings.repo_url})")
    logger.info(f"  Base Branch: {settings.base_branch}")
    logger.info(f"  Clones Dir: {settings.clones_dir}")
    logger.info(f"  Session Prefix: {settings.session_prefix}")
    logger.info(f"  GitHub Base URL: {settings.github_base_url}")
    logger.info(f"  GitHub Token: {_redact_secret(settings.github_token)}")
    logger.info(f"  Simulate Writes: {settings.simulate_writes}")
    logger.info(f"  Assistant Backend: {settings.assistant_backend}")
    if settings.assistant_backend == "llm":
        logger.info(f"  LLM URL: {settings.llm_url}")
        logger.info(f"  LLM Model: {settings.llm_model}")
    else:
        logger.info(f"  Assistant Command: {settings.assistant_command}")
        logger.info(f"  Assistant Model: {settings.assistant_model}")
    logger.info(f"  Workspace Cache TTL: {settings.workspace_cache_ttl_seconds}s")
    logger.info(f"  Review Cache TTL: {settings.review_cache_ttl_seconds}s")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")


def build_services(cfg: HubSettings) -> HubServices:
    """Wire adapters, engine, orchestrator and caches from settings."""
    event_emitter = CompositeEventEmitter(
        [LoggingEventEmitter(), MetricsEventEmitter()]
    )

    sessions = TmuxSessions(timeout_seconds=cfg.tmux_timeout_seconds)
    vcs = GitCli(timeout_seconds=cfg.git_timeout_seconds)

    github_client = GitHubClient(token=cfg.github_token, base_url=cfg.github_base_url)
    review_system = GitHubReviewSystem(github_client)
    if cfg.simulate_writes:
        logger.warning("Review-system writes are simulated in memory")
        review_system = SimulatedWriteReviewSystem(
            review_system,
            ReviewRequestStore(),
            author=cfg.current_user or "simulated",
        )

    if cfg.assistant_backend == "llm":
        assistant = LLMAssistant(
            llm_url=cfg.llm_url,
            model_name=cfg.llm_model,
            timeout=cfg.assistant_timeout_seconds,
        )
    else:
        assistant = ClaudeCliAssistant(
            command=cfg.assistant_command,
            model=cfg.assistant_model,
            timeout_seconds=cfg.assistant_timeout_seconds,
        )
    guidelines = cfg.guidelines_text() or None

    discovery = DiscoveryEngine(
        sessions,
        vcs,
        review_system,
        event_emitter=event_emitter,
        session_prefix=cfg.session_prefix,
    )
    orchestrator = WorkflowOrchestrator(
        sessions=sessions,
        vcs=vcs,
        review_system=review_system,
        metadata=MetadataGenerator(assistant, guidelines),
        handover=HandoverProtocol(sessions, launch_command=cfg.assistant_command),
        clones=CloneDirectories(cfg.clones_path),
        repository=cfg.repo_name,
        repo_url=cfg.repo_url,
        base_branch=cfg.base_branch,
        session_prefix=cfg.session_prefix,
        commit_message=cfg.commit_format,
        guidelines=guidelines,
        event_emitter=event_emitter,
    )

    return HubServices(
        discovery=discovery,
        orchestrator=orchestrator,
        workspace_cache=build_workspace_cache(
            discovery.discover,
            ttl_seconds=cfg.workspace_cache_ttl_seconds,
            event_emitter=event_emitter,
        ),
        review_cache=build_review_request_cache(
            review_system,
            cfg.repo_name,
            ttl_seconds=cfg.review_cache_ttl_seconds,
            event_emitter=event_emitter,
        ),
        current_user=cfg.current_user,
        github_client=github_client,
    )


def _workflow_payload(result: WorkflowResult) -> Dict[str, Any]:
    return {
        "workflow": result.workflow.value,
        "succeeded": result.succeeded,
        "steps": [
            {
                "step": step.step.value,
                "status": step.status.value,
                "detail": step.detail,
                "error": step.error,
            }
            for step in result.steps
        ],
        "review_request": result.review_request.model_dump(mode="json")
        if result.review_request
        else None,
        "session": result.session.model_dump(mode="json") if result.session else None,
        "clone_path": str(result.clone_path) if result.clone_path else None,
    }


async def _after_workflow(services: HubServices, user: Optional[str], requests_changed: bool) -> None:
    """Bring the caches up to date after a workflow.

    Failures are logged only: the workflow itself already succeeded.
    """
    if requests_changed and user:
        try:
            await services.review_cache.invalidate(user)
        except Exception as exc:
            logger.warning(
                "Review request cache refresh failed after workflow",
                extra={"user": user, "error": str(exc)},
            )
    try:
        await services.workspace_cache.refresh(WORKSPACES_KEY)
    except Exception as exc:
        logger.warning(
            "Workspace cache refresh failed after workflow",
            extra={"error": str(exc)},
        )


def create_app(services: Optional[HubServices] = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        services: Pre-wired services (tests). When None, services are
            built from environment settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Workspace hub starting up...")
        if services is not None:
            app.state.services = services
        else:
            settings = get_settings()
            _log_configuration(settings)
            app.state.services = build_services(settings)
        logger.info("Workspace hub started successfully")

        yield

        logger.info("Workspace hub shutting down...")
        client = app.state.services.github_client
        if client is not None:
            await client.close()
        logger.info("Workspace hub shutdown complete")

    app = FastAPI(
        title="Workspace Hub",
        description="Coordinates terminal sessions, git clones and review requests",
        version="1.0.0",
        lifespan=lifespan,
    )

    def _services(request: Request) -> HubServices:
        return request.app.state.services

    def _user(request: Request, user: Optional[str]) -> str:
        login = user or _services(request).current_user
        if not login:
            raise InputValidationError("user is required (no current user configured)")
        return login

    @app.exception_handler(WorkspaceHubError)
    async def hub_error_handler(request: Request, exc: WorkspaceHubError):
        body: Dict[str, Any] = {
            "error": str(exc),
            "kind": exc.kind.value,
            "stage": exc.stage,
        }
        if isinstance(exc.result, WorkflowResult):
            body["result"] = _workflow_payload(exc.result)
        return JSONResponse(status_code=STATUS_BY_KIND.get(exc.kind, 500), content=body)

    @app.get("/health")
    async def health():
        """Liveness check endpoint."""
        return {"status": "healthy"}

    @app.get("/metrics")
    async def metrics(request: Request):
        """Prometheus metrics endpoint."""
        return Response(
            content=generate_metrics_output(_services(request).registry),
            media_type=CONTENT_TYPE_LATEST,
        )

    @app.get("/api/workspaces")
    async def list_workspaces(request: Request):
        states = await _services(request).workspace_cache.get(WORKSPACES_KEY)
        return [state.model_dump(mode="json") for state in states]

    @app.post("/api/workspaces/refresh")
    async def refresh_workspaces(request: Request):
        states = await _services(request).workspace_cache.refresh(WORKSPACES_KEY)
        return [state.model_dump(mode="json") for state in states]

    @app.get("/api/workspaces/{session_id}")
    async def get_workspace(request: Request, session_id: str):
        state = await _services(request).discovery.discover_one(session_id)
        if state is None:
            raise NotFoundError(f"Session {session_id} not found")
        return state.model_dump(mode="json")

    @app.get("/api/review-requests")
    async def list_review_requests(request: Request, user: Optional[str] = None):
        login = _user(request, user)
        requests = await _services(request).review_cache.get(login)
        return [item.model_dump(mode="json") for item in requests]

    @app.post("/api/review-requests", status_code=201)
    async def provision_new(request: Request, body: ProvisionRequest, user: Optional[str] = None):
        services = _services(request)
        result = await services.orchestrator.provision_new(
            body.task_description, base_branch=body.base_branch
        )
        await _after_workflow(services, user or services.current_user, requests_changed=True)
        return _workflow_payload(result)

    @app.post("/api/review-requests/from-branch", status_code=201)
    async def create_from_branch(
        request: Request, body: FromBranchRequest, user: Optional[str] = None
    ):
        services = _services(request)
        result = await services.orchestrator.create_from_branch(
            body.branch_name, body.title, base_branch=body.base_branch
        )
        await _after_workflow(services, user or services.current_user, requests_changed=True)
        return _workflow_payload(result)

    @app.post("/api/review-requests/{number}/setup")
    async def setup_existing(request: Request, number: int):
        services = _services(request)
        result = await services.orchestrator.setup_existing(number)
        await _after_workflow(services, None, requests_changed=False)
        return _workflow_payload(result)

    @app.delete("/api/review-requests/{number}")
    async def teardown(request: Request, number: int, user: Optional[str] = None):
        services = _services(request)
        result = await services.orchestrator.teardown(number)
        await _after_workflow(services, user or services.current_user, requests_changed=True)
        return _workflow_payload(result)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.workhub.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
        reload=True,
    )
