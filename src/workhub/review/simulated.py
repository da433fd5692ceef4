"""Simulated-write review system.

Reads go to the real review system; creates, updates and closes are
recorded in a ReviewRequestStore instead. The store is an explicit object
passed to the constructor, scoped by repository, so separate hubs (and
separate tests) never share simulated requests.

Simulated identifiers start at SIMULATED_NUMBER_BASE so they are easy to
tell apart from real ones.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from src.workhub.errors import ExternalServiceError
from src.workhub.models import ReviewRequest, ReviewState
from src.workhub.ports import ReviewSystemPort

logger = logging.getLogger(__name__)

SIMULATED_NUMBER_BASE = 10000


class ReviewRequestStore:
    """In-memory review requests keyed by repository.

    Attributes:
        next_number: Identifier handed to the next created request.
    """

    def __init__(self, number_base: int = SIMULATED_NUMBER_BASE):
        self._number_base = number_base
        self.next_number = number_base
        self._requests: Dict[str, List[ReviewRequest]] = {}

    def allocate_number(self) -> int:
        number = self.next_number
        self.next_number += 1
        return number

    def add(self, request: ReviewRequest) -> None:
        self._requests.setdefault(request.repository, []).append(request)

    def list(self, repository: str) -> List[ReviewRequest]:
        """All stored requests for a repository, in creation order."""
        return list(self._requests.get(repository, []))

    def get(self, repository: str, number: int) -> Optional[ReviewRequest]:
        for request in self._requests.get(repository, []):
            if request.number == number:
                return request
        return None

    def replace(self, request: ReviewRequest) -> bool:
        """Swap in an updated snapshot of a stored request.

        Returns:
            True if a request with that number was stored.
        """
        stored = self._requests.get(request.repository, [])
        for index, existing in enumerate(stored):
            if existing.number == request.number:
                stored[index] = request
                return True
        return False

    def clear(self) -> None:
        self._requests.clear()
        self.next_number = self._number_base


class SimulatedWriteReviewSystem:
    """ReviewSystemPort that records writes in memory.

    Attributes:
        reads: Review system used for reads.
        store: Where simulated requests live.
        author: Author recorded on simulated requests.
    """

    def __init__(
        self,
        reads: ReviewSystemPort,
        store: ReviewRequestStore,
        author: str = "simulated",
    ):
        self.reads = reads
        self.store = store
        self.author = author

    async def list_open(
        self, repository: str, author: Optional[str] = None
    ) -> List[ReviewRequest]:
        simulated = [
            request
            for request in self.store.list(repository)
            if request.state == ReviewState.OPEN
            and (author is None or request.author == author)
        ]
        try:
            real = await self.reads.list_open(repository, author=author)
        except ExternalServiceError as exc:
            logger.warning(
                "Real review listing failed, serving simulated requests only",
                extra={"repository": repository, "error": str(exc)},
            )
            return simulated
        return simulated + real

    async def get(self, repository: str, number: int) -> Optional[ReviewRequest]:
        stored = self.store.get(repository, number)
        if stored is not None:
            return stored
        return await self.reads.get(repository, number)

    async def find(self, repository: str, branch: str) -> Optional[ReviewRequest]:
        for request in await self.list_open(repository):
            if request.branch == branch:
                return request
        return None

    async def create(
        self,
        repository: str,
        branch: str,
        base_branch: str,
        title: str,
        body: str,
        draft: bool = True,
    ) -> ReviewRequest:
        number = self.store.allocate_number()
        now = datetime.now(timezone.utc)
        request = ReviewRequest(
            number=number,
            title=title,
            branch=branch,
            base_branch=base_branch,
            repository=repository,
            state=ReviewState.OPEN,
            url=f"https://github.com/{repository}/pull/{number}",
            author=self.author,
            is_draft=draft,
            created=now,
            updated=now,
        )
        self.store.add(request)
        logger.info(
            "Simulated review request created",
            extra={"repository": repository, "pr_number": number, "title": title},
        )
        return request

    async def update(
        self,
        repository: str,
        number: int,
        title: Optional[str] = None,
        body: Optional[str] = None,
        state: Optional[ReviewState] = None,
    ) -> None:
        stored = self.store.get(repository, number)
        if stored is None:
            # Writes never reach the real system in this mode.
            logger.info(
                "Simulated update of a real review request ignored",
                extra={"repository": repository, "pr_number": number},
            )
            return

        changes: Dict[str, object] = {"updated": datetime.now(timezone.utc)}
        if title is not None:
            changes["title"] = title
        if state is not None:
            changes["state"] = state
        self.store.replace(stored.model_copy(update=changes))
        logger.info(
            "Simulated review request updated",
            extra={"repository": repository, "pr_number": number},
        )

    async def close(self, repository: str, number: int) -> None:
        await self.update(repository, number, state=ReviewState.CLOSED)
