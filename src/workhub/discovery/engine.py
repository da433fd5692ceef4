"""Workspace discovery.

Derives one WorkspaceState per session by joining three sources:
sessions from the multiplexer, a git snapshot of each session's working
directory, and the open review requests of each repository seen.

Review requests are fetched in bulk: one listing per distinct repository,
never one lookup per session. Requests are matched to sessions by exact
``(repository, branch)``; when several open requests share a branch the
first one listed wins.

A session whose directory cannot be read, or whose repository listing
fails, is still reported, just without a snapshot or without a request.
A session whose state cannot be assembled at all is dropped; the rest of
the pass goes on.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

from src.workhub.events.emitter import EventEmitter, NullEventEmitter
from src.workhub.events.models import EventType, HubEvent
from src.workhub.models import RepositorySnapshot, ReviewRequest, WorkspaceSession, WorkspaceState
from src.workhub.ports import ReviewSystemPort, SessionPort, VersionControlPort

logger = logging.getLogger(__name__)

# {repository: {branch: request}}
RequestIndex = Dict[str, Dict[str, ReviewRequest]]


class DiscoveryEngine:
    """Builds WorkspaceState records from the external systems.

    Attributes:
        sessions: Session port.
        vcs: Version control port.
        review_system: Review system port.
        event_emitter: Receives per-item failures and pass summaries.
        session_prefix: Prefix of hub-created session names.
    """

    def __init__(
        self,
        sessions: SessionPort,
        vcs: VersionControlPort,
        review_system: ReviewSystemPort,
        event_emitter: Optional[EventEmitter] = None,
        session_prefix: str = "wh-",
    ):
        self.sessions = sessions
        self.vcs = vcs
        self.review_system = review_system
        self.event_emitter = event_emitter or NullEventEmitter()
        self.session_prefix = session_prefix

    async def discover(self) -> List[WorkspaceState]:
        """Discover the state of every session.

        Returns:
            One state per session, in session listing order. Sessions
            whose state cannot be assembled are left out.

        Raises:
            ExternalServiceError: If the sessions themselves cannot be listed.
        """
        started = time.monotonic()
        sessions = await self.sessions.list_sessions()

        snapshots = await asyncio.gather(
            *(self._read_snapshot(session) for session in sessions)
        )

        # Insertion ordered, so listings go out in first-seen order
        repositories = list(
            dict.fromkeys(
                snapshot.repository for snapshot in snapshots if snapshot is not None
            )
        )
        listings = await asyncio.gather(
            *(self._index_repository(repository) for repository in repositories)
        )
        index: RequestIndex = dict(zip(repositories, listings))

        states = []
        for session, snapshot in zip(sessions, snapshots):
            state = await self._assemble(session, snapshot, index)
            if state is not None:
                states.append(state)

        duration = time.monotonic() - started
        logger.debug(
            "Discovery pass finished",
            extra={
                "session_count": len(sessions),
                "repository_count": len(repositories),
                "duration_seconds": duration,
            },
        )
        await self._safe_emit(
            HubEvent(
                event_type=EventType.DISCOVERY_COMPLETED,
                subject="workspaces",
                details={"session_count": len(states), "duration_seconds": duration},
            )
        )
        return states

    async def discover_one(self, session_id: str) -> Optional[WorkspaceState]:
        """Discover a single session.

        Issues at most one review-system listing.

        Returns:
            The session's state, or None when no such session exists.
        """
        session = await self.sessions.get_session(session_id)
        if session is None:
            return None

        snapshot = await self._read_snapshot(session)
        index: RequestIndex = {}
        if snapshot is not None:
            index[snapshot.repository] = await self._index_repository(snapshot.repository)
        return await self._assemble(session, snapshot, index)

    async def discover_by_request_number(self, number: int) -> Optional[WorkspaceState]:
        """Discover the hub-created session of a review request."""
        return await self.discover_one(f"{self.session_prefix}{number}")

    async def _read_snapshot(self, session: WorkspaceSession) -> Optional[RepositorySnapshot]:
        try:
            return await self.vcs.read_snapshot(session.working_dir)
        except Exception as exc:
            logger.warning(
                "Could not read repository for session",
                extra={
                    "session_id": session.id,
                    "working_dir": str(session.working_dir),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            await self._safe_emit(
                HubEvent(
                    event_type=EventType.DISCOVERY_ITEM_FAILED,
                    subject=session.id,
                    details={"reason": "snapshot", "error_message": str(exc)},
                )
            )
            return None

    async def _index_repository(self, repository: str) -> Dict[str, ReviewRequest]:
        """Map branch to the first open request listed for it."""
        try:
            requests = await self.review_system.list_open(repository)
        except Exception as exc:
            logger.warning(
                "Could not list review requests",
                extra={
                    "repository": repository,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            await self._safe_emit(
                HubEvent(
                    event_type=EventType.DISCOVERY_ITEM_FAILED,
                    subject=repository,
                    repository=repository,
                    details={"reason": "listing", "error_message": str(exc)},
                )
            )
            return {}

        by_branch: Dict[str, ReviewRequest] = {}
        for request in requests:
            by_branch.setdefault(request.branch, request)
        return by_branch

    async def _assemble(
        self,
        session: WorkspaceSession,
        snapshot: Optional[RepositorySnapshot],
        index: RequestIndex,
    ) -> Optional[WorkspaceState]:
        try:
            request = None
            if snapshot is not None:
                request = index.get(snapshot.repository, {}).get(snapshot.branch)
            return WorkspaceState(session=session, snapshot=snapshot, review_request=request)
        except Exception as exc:
            logger.warning(
                "Dropping session whose state could not be assembled",
                extra={
                    "session_id": session.id,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            await self._safe_emit(
                HubEvent(
                    event_type=EventType.DISCOVERY_ITEM_FAILED,
                    subject=session.id,
                    repository=snapshot.repository if snapshot else None,
                    details={"reason": "assembly", "error_message": str(exc)},
                )
            )
            return None

    async def _safe_emit(self, event: HubEvent) -> None:
        """Emit an event, swallowing exceptions to avoid disrupting discovery."""
        try:
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit discovery event",
                extra={"event_type": event.event_type.value, "subject": event.subject},
            )


def filter_matched(states: List[WorkspaceState]) -> List[WorkspaceState]:
    """States with a matched review request."""
    return [state for state in states if state.has_matched_request]


def filter_by_repository(states: List[WorkspaceState], repository: str) -> List[WorkspaceState]:
    return [
        state
        for state in states
        if state.snapshot is not None and state.snapshot.repository == repository
    ]


def filter_active(states: List[WorkspaceState]) -> List[WorkspaceState]:
    """States whose session has a client attached."""
    return [state for state in states if state.is_active]


def group_by_request_number(states: List[WorkspaceState]) -> Dict[int, WorkspaceState]:
    """Index matched states by review request number.

    When two sessions matched the same request, the later one wins.
    """
    grouped: Dict[int, WorkspaceState] = {}
    for state in states:
        if state.review_request is not None:
            grouped[state.review_request.number] = state
    return grouped
