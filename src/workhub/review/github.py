"""ReviewSystemPort backed by the GitHub pulls API.

Translates raw pull request objects into ReviewRequest snapshots. Objects
that cannot be decoded are skipped with a warning instead of failing the
whole listing.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from src.workhub.errors import InputValidationError, ReviewSystemError
from src.workhub.models import ReviewRequest, ReviewState
from src.workhub.parsing import Parsed, ParseFailure, ParseResult
from src.workhub.review.client import GitHubClient

logger = logging.getLogger(__name__)


def split_repository(repository: str) -> Tuple[str, str]:
    """Split ``owner/repo`` into its parts.

    Raises:
        InputValidationError: If the identifier is not ``owner/repo``.
    """
    owner, sep, repo = repository.partition("/")
    if not sep or not owner or not repo or "/" in repo:
        raise InputValidationError(f"Invalid repository identifier: {repository!r}")
    return owner, repo


def _parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def parse_pull(data: Dict[str, Any], repository: str) -> "ParseResult[ReviewRequest]":
    """Decode a GitHub pull request object into a ReviewRequest.

    A closed pull request with ``merged_at`` set is reported as MERGED.

    Args:
        data: Pull request object from the REST API.
        repository: ``owner/repo`` the listing was made for.

    Returns:
        Parsed ReviewRequest, or ParseFailure.
    """
    try:
        state = ReviewState.OPEN
        if data.get("merged_at"):
            state = ReviewState.MERGED
        elif str(data.get("state", "")).lower() == "closed":
            state = ReviewState.CLOSED

        user = data.get("user") or {}
        return Parsed(
            ReviewRequest(
                number=data["number"],
                title=data.get("title") or "",
                branch=data["head"]["ref"],
                base_branch=data["base"]["ref"],
                repository=repository,
                state=state,
                url=data.get("html_url") or "",
                author=user.get("login") or "unknown",
                is_draft=bool(data.get("draft", False)),
                created=_parse_timestamp(data.get("created_at")),
                updated=_parse_timestamp(data.get("updated_at")),
            )
        )
    except (KeyError, TypeError, ValueError, ValidationError) as exc:
        return ParseFailure(f"malformed pull request: {exc}", raw=str(data.get("number")))


class GitHubReviewSystem:
    """Review requests stored on GitHub.

    Attributes:
        client: Authenticated GitHub API client.
    """

    def __init__(self, client: GitHubClient):
        self.client = client

    def _decode(self, data: Dict[str, Any], repository: str) -> Optional[ReviewRequest]:
        parsed = parse_pull(data, repository)
        if isinstance(parsed, ParseFailure):
            logger.warning(
                "Skipping undecodable pull request",
                extra={"repository": repository, "reason": parsed.reason},
            )
            return None
        return parsed.value

    async def list_open(
        self, repository: str, author: Optional[str] = None
    ) -> List[ReviewRequest]:
        owner, repo = split_repository(repository)
        requests = []
        for data in await self.client.list_pulls(owner, repo, state="open"):
            request = self._decode(data, repository)
            if request is None:
                continue
            if author is not None and request.author != author:
                continue
            requests.append(request)
        return requests

    async def get(self, repository: str, number: int) -> Optional[ReviewRequest]:
        owner, repo = split_repository(repository)
        try:
            data = await self.client.get_pull(owner, repo, number)
        except ReviewSystemError as exc:
            if exc.status_code == 404:
                return None
            raise
        return self._decode(data, repository)

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
        owner, repo = split_repository(repository)
        data = await self.client.create_pull(
            owner, repo, head=branch, base=base_branch, title=title, body=body, draft=draft
        )
        parsed = parse_pull(data, repository)
        if isinstance(parsed, ParseFailure):
            raise ReviewSystemError(
                f"Pull request created but response was unreadable: {parsed.reason}"
            )
        return parsed.value

    async def update(
        self,
        repository: str,
        number: int,
        title: Optional[str] = None,
        body: Optional[str] = None,
        state: Optional[ReviewState] = None,
    ) -> None:
        owner, repo = split_repository(repository)
        fields: Dict[str, Any] = {}
        if title is not None:
            fields["title"] = title
        if body is not None:
            fields["body"] = body
        if state is not None:
            if state == ReviewState.MERGED:
                raise InputValidationError("Review requests cannot be merged through update")
            fields["state"] = state.value.lower()
        if not fields:
            return
        await self.client.update_pull(owner, repo, number, fields)

    async def close(self, repository: str, number: int) -> None:
        await self.update(repository, number, state=ReviewState.CLOSED)
        logger.info(
            "Closed pull request",
            extra={"repository": repository, "pr_number": number},
        )
