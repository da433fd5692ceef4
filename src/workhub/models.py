"""Domain models for workspace coordination.

This module defines the data models shared by the discovery engine, the
caches and the workflow orchestrator:
- WorkspaceSession: a named terminal multiplexer session
- RepositorySnapshot: git state of a session's working directory
- ReviewRequest: a pull request as returned by the review system
- WorkspaceState: the derived join of the three, one per session
- AssistantMetadata: branch/title/body generated from a task description
- HandoverContext: fields delivered to the assistant in a new session

All models are snapshots: they are rebuilt from the external systems on
every query and never persisted. The models use Pydantic for validation,
consistent with config.py and events/models.py.
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class ReviewState(str, Enum):
    """Lifecycle state of a review request."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"
    MERGED = "MERGED"


class WorkspaceSession(BaseModel):
    """A terminal multiplexer session.

    Attributes:
        id: Session name, unique among sessions.
        working_dir: Current directory of the session's active pane.
        created: When the session was created.
        attached: True when a client is attached to the session.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    working_dir: Path
    created: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    attached: bool = False


class RepositorySnapshot(BaseModel):
    """Git state of a directory at query time.

    Attributes:
        remote: Full URL of the ``origin`` remote.
        repository: ``owner/repo`` parsed from the remote.
        branch: Currently checked-out branch.
        is_dirty: True when the working tree has uncommitted changes.
        ahead: Commits on HEAD not on the upstream.
        behind: Commits on the upstream not on HEAD.
    """

    model_config = ConfigDict(frozen=True)

    remote: str
    repository: str = Field(..., pattern=r"^[^/\s]+/[^/\s]+$")
    branch: str = Field(..., min_length=1)
    is_dirty: bool = False
    ahead: int = Field(default=0, ge=0)
    behind: int = Field(default=0, ge=0)


class ReviewRequest(BaseModel):
    """A pull request snapshot as returned by the review system.

    Attributes:
        number: Identifier assigned by the review system.
        title: Request title.
        branch: Source (head) branch.
        base_branch: Target (base) branch.
        repository: Owning repository as ``owner/repo``.
        state: Lifecycle state.
        url: Browser URL of the request.
        author: Login of the author.
        is_draft: True for draft requests.
        created: Creation timestamp.
        updated: Last update timestamp.
    """

    model_config = ConfigDict(frozen=True)

    number: int = Field(..., gt=0)
    title: str
    branch: str
    base_branch: str
    repository: str
    state: ReviewState = ReviewState.OPEN
    url: str = ""
    author: str = "unknown"
    is_draft: bool = False
    created: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class WorkspaceState(BaseModel):
    """Derived state of one session for a single discovery pass.

    A review request can only be present together with a snapshot whose
    repository and branch it matched.
    """

    model_config = ConfigDict(frozen=True)

    session: WorkspaceSession
    snapshot: Optional[RepositorySnapshot] = None
    review_request: Optional[ReviewRequest] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_valid_repo(self) -> bool:
        return self.snapshot is not None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_matched_request(self) -> bool:
        return self.review_request is not None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_active(self) -> bool:
        return self.session.attached

    @model_validator(mode="after")
    def _request_requires_matching_snapshot(self) -> "WorkspaceState":
        if self.review_request is None:
            return self
        if self.snapshot is None:
            raise ValueError("review_request requires a repository snapshot")
        if (
            self.review_request.repository != self.snapshot.repository
            or self.review_request.branch != self.snapshot.branch
        ):
            raise ValueError(
                "review_request does not match the snapshot repository/branch"
            )
        return self


class AssistantMetadata(BaseModel):
    """Branch name, title and body generated for a new review request."""

    branch_name: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=72)
    body: str = ""


class HandoverContext(BaseModel):
    """Context delivered to the assistant when a session starts.

    Attributes:
        request_number: Review request identifier.
        branch: Source branch of the request.
        base_branch: Target branch of the request.
        task_description: What the user asked for.
        guidelines: Optional project-specific guidelines text.
    """

    request_number: int = Field(..., gt=0)
    branch: str
    base_branch: str
    task_description: str
    guidelines: Optional[str] = None
