"""Capability interfaces for the external systems the hub coordinates.

The discovery engine, the caches and the workflow orchestrator only ever
talk to these protocols. Concrete adapters live in sessions/, vcs/,
review/ and assistant/; tests substitute in-memory fakes.
"""

from pathlib import Path
from typing import List, Optional, Protocol, runtime_checkable

from src.workhub.models import (
    AssistantMetadata,
    RepositorySnapshot,
    ReviewRequest,
    ReviewState,
    WorkspaceSession,
)


@runtime_checkable
class SessionPort(Protocol):
    """Terminal multiplexer sessions."""

    async def list_sessions(self, prefix: str = "") -> List[WorkspaceSession]:
        """List sessions whose name starts with ``prefix`` (all when empty)."""
        ...

    async def get_session(self, session_id: str) -> Optional[WorkspaceSession]:
        """Return the named session, or None when it does not exist."""
        ...

    async def exists(self, session_id: str) -> bool:
        ...

    async def create_session(
        self,
        session_id: str,
        working_dir: Path,
        command: Optional[str] = None,
    ) -> WorkspaceSession:
        """Create a detached session rooted at ``working_dir``."""
        ...

    async def destroy_session(self, session_id: str) -> None:
        ...

    async def send_text(self, session_id: str, text: str) -> None:
        """Type ``text`` into the session followed by Enter, in one injection."""
        ...


@runtime_checkable
class VersionControlPort(Protocol):
    """Git operations on local directories."""

    async def read_snapshot(self, directory: Path) -> RepositorySnapshot:
        """Read remote, branch and status of ``directory``.

        Raises:
            CommandError: If the directory is not a repository or git fails.
            RemoteURLError: If the remote is not a recognized hosting URL.
        """
        ...

    async def clone(
        self,
        url: str,
        target: Path,
        branch: Optional[str] = None,
        depth: Optional[int] = 1,
    ) -> None:
        ...

    async def create_branch(self, directory: Path, branch: str) -> None:
        ...

    async def checkout(self, directory: Path, branch: str) -> None:
        ...

    async def commit(
        self, directory: Path, message: str, allow_empty: bool = False
    ) -> None:
        ...

    async def push(
        self,
        directory: Path,
        branch: str,
        set_upstream: bool = True,
        force_with_lease: bool = False,
    ) -> None:
        ...


@runtime_checkable
class ReviewSystemPort(Protocol):
    """Review requests keyed by repository and branch."""

    async def list_open(
        self, repository: str, author: Optional[str] = None
    ) -> List[ReviewRequest]:
        """List open requests in listing order."""
        ...

    async def get(self, repository: str, number: int) -> Optional[ReviewRequest]:
        ...

    async def find(self, repository: str, branch: str) -> Optional[ReviewRequest]:
        """First open request whose source branch equals ``branch`` exactly."""
        ...

    async def create(
        self,
        repository: str,
        branch: str,
        base_branch: str,
        title: str,
        body: str,
        draft: bool = True,
    ) -> ReviewRequest:
        ...

    async def update(
        self,
        repository: str,
        number: int,
        title: Optional[str] = None,
        body: Optional[str] = None,
        state: Optional[ReviewState] = None,
    ) -> None:
        ...

    async def close(self, repository: str, number: int) -> None:
        ...


@runtime_checkable
class AssistantPort(Protocol):
    """Turns a free-text task description into review request metadata."""

    async def generate_metadata(
        self, task_description: str, guidelines: Optional[str] = None
    ) -> AssistantMetadata:
        """
        Raises:
            AssistantError: If the assistant fails or its answer cannot be parsed.
        """
        ...

    async def is_available(self) -> bool:
        ...
