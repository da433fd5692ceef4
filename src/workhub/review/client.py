"""Thin async client for the GitHub pulls API.

Only the calls the hub needs are exposed: list (following pagination),
get, create and patch. Transient failures (timeouts, connection errors,
5xx, 408) are retried with jittered exponential backoff; rate limiting is
reported immediately as RateLimitError so callers can decide what to do.
Discovery issues one listing per repository for the same reason.
"""

import asyncio
import logging
import random
import time
from typing import Any, Dict, List, Optional

import httpx

from src.workhub.errors import RateLimitError, ReviewSystemError
from src.workhub.parsing import Parsed, parse_int

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.github.com"
API_VERSION = "2022-11-28"
PAGE_SIZE = 100
MAX_PAGES = 10

_TRANSIENT_STATUS = frozenset({408, 500, 502, 503, 504})


def _header_int(response: httpx.Response, name: str) -> Optional[int]:
    value = response.headers.get(name)
    if value is None:
        return None
    parsed = parse_int(value)
    return parsed.value if isinstance(parsed, Parsed) else None


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    return response.status_code == 403 and _header_int(response, "x-ratelimit-remaining") == 0


class GitHubClient:
    """Pull request calls against github.com or a GitHub Enterprise host.

    Attributes:
        token: Bearer token; empty for anonymous reads.
        base_url: API root, e.g. ``https://github.example.com/api/v3``.
        max_retries: Extra attempts after the first for transient failures.
        base_delay: First backoff ceiling in seconds, doubled per attempt.
        max_delay: Upper bound for any single backoff.
    """

    def __init__(
        self,
        token: str = "",
        base_url: str = DEFAULT_BASE_URL,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._timeout = timeout
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    def _session(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            headers = {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": "workhub",
            }
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._http

    async def close(self) -> None:
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
        self._http = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _backoff(self, attempt: int) -> float:
        return random.uniform(0, min(self.base_delay * 2 ** attempt, self.max_delay))

    def _rate_limited(self, response: httpx.Response) -> RateLimitError:
        reset_at = _header_int(response, "x-ratelimit-reset")
        retry_after = _header_int(response, "retry-after")
        if retry_after is None and reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))
        logger.warning(
            "GitHub rate limit hit",
            extra={"reset_at": reset_at, "retry_after": retry_after, "url": str(response.url)},
        )
        return RateLimitError(
            "GitHub API rate limit exceeded",
            status_code=response.status_code,
            reset_at=reset_at,
            retry_after=retry_after,
            request_url=str(response.url),
        )

    async def _call(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Send one API call, retrying transient failures.

        Returns:
            The decoded JSON body.

        Raises:
            RateLimitError: On 429, or 403 with no remaining quota.
            ReviewSystemError: On any other error status, or when retries
                run out.
        """
        attempts = self.max_retries + 1
        failure = ""
        response: Optional[httpx.Response] = None

        for attempt in range(attempts):
            if attempt:
                delay = self._backoff(attempt - 1)
                logger.warning(
                    "Retrying GitHub call",
                    extra={"path": path, "attempt": attempt, "reason": failure, "delay": delay},
                )
                await asyncio.sleep(delay)

            try:
                response = await self._session().request(
                    method, path, params=params, json=payload
                )
            except httpx.RequestError as exc:
                response = None
                failure = f"{type(exc).__name__}: {exc}"
                continue

            if _is_rate_limited(response):
                raise self._rate_limited(response)
            if response.status_code in _TRANSIENT_STATUS:
                failure = f"HTTP {response.status_code}"
                continue
            if response.status_code >= 400:
                break
            return response.json()

        if response is None:
            logger.error(
                "GitHub call failed without a response",
                extra={"method": method, "path": path, "reason": failure},
            )
            raise ReviewSystemError(
                f"GitHub {method} {path} failed after {attempts} attempts: {failure}",
                request_url=f"{self.base_url}{path}",
            )

        logger.error(
            "GitHub call failed",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "response_body": response.text[:500],
            },
        )
        raise ReviewSystemError(
            f"GitHub API error: {response.status_code}",
            status_code=response.status_code,
            response_body=response.text,
            request_url=str(response.url),
        )

    async def list_pulls(self, owner: str, repo: str, state: str = "open") -> List[Dict[str, Any]]:
        """All pull requests in ``state``, in API order, up to MAX_PAGES pages."""
        pulls: List[Dict[str, Any]] = []
        for page in range(1, MAX_PAGES + 1):
            batch = await self._call(
                "GET",
                f"/repos/{owner}/{repo}/pulls",
                params={"state": state, "per_page": PAGE_SIZE, "page": page},
            )
            pulls.extend(batch)
            if len(batch) < PAGE_SIZE:
                break
        logger.debug(
            "Listed pull requests",
            extra={"repository": f"{owner}/{repo}", "state": state, "count": len(pulls)},
        )
        return pulls

    async def get_pull(self, owner: str, repo: str, number: int) -> Dict[str, Any]:
        return await self._call("GET", f"/repos/{owner}/{repo}/pulls/{number}")

    async def create_pull(
        self,
        owner: str,
        repo: str,
        head: str,
        base: str,
        title: str,
        body: str,
        draft: bool = True,
    ) -> Dict[str, Any]:
        created = await self._call(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            payload={"title": title, "body": body, "head": head, "base": base, "draft": draft},
        )
        logger.info(
            "Opened pull request",
            extra={
                "repository": f"{owner}/{repo}",
                "pr_number": created.get("number"),
                "head": head,
                "draft": draft,
            },
        )
        return created

    async def update_pull(
        self, owner: str, repo: str, number: int, fields: Dict[str, Any]
    ) -> Dict[str, Any]:
        """PATCH the given fields (title, body, state) of a pull request."""
        logger.info(
            "Updating pull request",
            extra={"repository": f"{owner}/{repo}", "pr_number": number, "fields": sorted(fields)},
        )
        return await self._call("PATCH", f"/repos/{owner}/{repo}/pulls/{number}", payload=fields)
