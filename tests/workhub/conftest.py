"""In-memory port fakes shared by the workhub tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

from src.workhub.errors import AssistantError, CommandError, RemoteURLError, ReviewSystemError
from src.workhub.models import (
    AssistantMetadata,
    RepositorySnapshot,
    ReviewRequest,
    ReviewState,
    WorkspaceSession,
)


def make_session(session_id: str, working_dir: str = "/work", attached: bool = False) -> WorkspaceSession:
    return WorkspaceSession(
        id=session_id,
        working_dir=Path(working_dir),
        created=datetime(2024, 1, 1, tzinfo=timezone.utc),
        attached=attached,
    )


def make_request(
    number: int,
    branch: str,
    repository: str = "acme/widgets",
    title: str = "feat: something",
    author: str = "dev1",
    state: ReviewState = ReviewState.OPEN,
) -> ReviewRequest:
    return ReviewRequest(
        number=number,
        title=title,
        branch=branch,
        base_branch="main",
        repository=repository,
        state=state,
        url=f"https://github.com/{repository}/pull/{number}",
        author=author,
    )


class FakeSessions:
    """SessionPort keeping sessions in a dict."""

    def __init__(self) -> None:
        self.sessions: Dict[str, WorkspaceSession] = {}
        self.sent: List[tuple] = []
        self.destroyed: List[str] = []
        self.fail_create = False

    def add(self, session: WorkspaceSession) -> None:
        self.sessions[session.id] = session

    async def list_sessions(self, prefix: str = "") -> List[WorkspaceSession]:
        return [s for s in self.sessions.values() if s.id.startswith(prefix)]

    async def get_session(self, session_id: str) -> Optional[WorkspaceSession]:
        return self.sessions.get(session_id)

    async def exists(self, session_id: str) -> bool:
        return session_id in self.sessions

    async def create_session(self, session_id, working_dir, command=None) -> WorkspaceSession:
        if self.fail_create:
            raise CommandError(["tmux", "new-session"], "duplicate session")
        session = make_session(session_id, str(working_dir))
        self.sessions[session_id] = session
        return session

    async def destroy_session(self, session_id: str) -> None:
        self.destroyed.append(session_id)
        self.sessions.pop(session_id, None)

    async def send_text(self, session_id: str, text: str) -> None:
        self.sent.append((session_id, text))


class FakeVcs:
    """VersionControlPort with snapshots per directory and a call log.

    A directory mapped to an Exception raises it from read_snapshot.
    Clones create the target directory on disk so rename/remove steps see it.
    """

    def __init__(self) -> None:
        self.snapshots: Dict[str, object] = {}
        self.calls: List[tuple] = []
        self.fail_on: Optional[str] = None

    def set_repo(
        self,
        directory: str,
        repository: str,
        branch: str,
        remote: Optional[str] = None,
    ) -> None:
        self.snapshots[directory] = RepositorySnapshot(
            remote=remote or f"git@github.com:{repository}.git",
            repository=repository,
            branch=branch,
        )

    def set_not_a_repo(self, directory: str) -> None:
        self.snapshots[directory] = CommandError(
            ["git", "remote", "get-url"], "fatal: not a git repository", exit_code=128
        )

    def set_bad_remote(self, directory: str, remote: str) -> None:
        self.snapshots[directory] = RemoteURLError(remote)

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if self.fail_on == name:
            raise CommandError(["git", name], "simulated failure", exit_code=1)

    async def read_snapshot(self, directory: Path) -> RepositorySnapshot:
        value = self.snapshots.get(str(directory))
        if value is None:
            raise CommandError(["git", "remote"], "not a git repository", exit_code=128)
        if isinstance(value, Exception):
            raise value
        return value

    async def clone(self, url, target, branch=None, depth=1) -> None:
        self._record("clone", url, str(target), branch, depth)
        # Yield so concurrent workflows interleave here.
        await asyncio.sleep(0)
        Path(target).mkdir(parents=True, exist_ok=True)

    async def create_branch(self, directory, branch) -> None:
        self._record("create_branch", str(directory), branch)

    async def checkout(self, directory, branch) -> None:
        self._record("checkout", str(directory), branch)

    async def commit(self, directory, message, allow_empty=False) -> None:
        self._record("commit", str(directory), message, allow_empty)

    async def push(self, directory, branch, set_upstream=True, force_with_lease=False) -> None:
        self._record("push", str(directory), branch, set_upstream, force_with_lease)

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]


class FakeReviewSystem:
    """ReviewSystemPort over a per-repository list, counting listings."""

    def __init__(self) -> None:
        self.requests: Dict[str, List[ReviewRequest]] = {}
        self.list_calls: List[str] = []
        self.failing_repositories: set = set()
        self.closed: List[int] = []
        self.created: List[ReviewRequest] = []
        self.fail_close = False
        self.next_number = 100

    def add(self, request: ReviewRequest) -> None:
        self.requests.setdefault(request.repository, []).append(request)

    async def list_open(self, repository, author=None) -> List[ReviewRequest]:
        self.list_calls.append(repository)
        if repository in self.failing_repositories:
            raise ReviewSystemError("GitHub API error: 502", status_code=502)
        return [
            r
            for r in self.requests.get(repository, [])
            if r.state == ReviewState.OPEN and (author is None or r.author == author)
        ]

    async def get(self, repository, number) -> Optional[ReviewRequest]:
        for request in self.requests.get(repository, []):
            if request.number == number:
                return request
        return None

    async def find(self, repository, branch) -> Optional[ReviewRequest]:
        for request in await self.list_open(repository):
            if request.branch == branch:
                return request
        return None

    async def create(self, repository, branch, base_branch, title, body, draft=True) -> ReviewRequest:
        number = self.next_number
        self.next_number += 1
        request = ReviewRequest(
            number=number,
            title=title,
            branch=branch,
            base_branch=base_branch,
            repository=repository,
            is_draft=draft,
        )
        self.add(request)
        self.created.append(request)
        return request

    async def update(self, repository, number, title=None, body=None, state=None) -> None:
        pass

    async def close(self, repository, number) -> None:
        if self.fail_close:
            raise ReviewSystemError("GitHub API error: 404", status_code=404)
        self.closed.append(number)


class FakeAssistant:
    """AssistantPort returning fixed metadata, or failing."""

    def __init__(self, metadata: Optional[AssistantMetadata] = None, available: bool = True) -> None:
        self.metadata = metadata
        self.available = available
        self.calls: List[tuple] = []

    async def generate_metadata(self, task_description, guidelines=None) -> AssistantMetadata:
        self.calls.append((task_description, guidelines))
        if self.metadata is None:
            raise AssistantError("no answer")
        return self.metadata

    async def is_available(self) -> bool:
        return self.available


class FakeClock:
    """Manually advanced clock for cache tests."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def sessions() -> FakeSessions:
    return FakeSessions()


@pytest.fixture
def vcs() -> FakeVcs:
    return FakeVcs()


@pytest.fixture
def review_system() -> FakeReviewSystem:
    return FakeReviewSystem()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def new_session():
    return make_session


@pytest.fixture
def new_request():
    return make_request


@pytest.fixture(scope="session")
def fakes():
    """Fake classes and factories, for tests that build fresh fakes per example."""
    return SimpleNamespace(
        Sessions=FakeSessions,
        Vcs=FakeVcs,
        ReviewSystem=FakeReviewSystem,
        Assistant=FakeAssistant,
        Clock=FakeClock,
        session=make_session,
        request=make_request,
    )
