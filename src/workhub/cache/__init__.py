"""Cache instances used by the hub.

- WorkspaceCache: discovery results under one global key, short fixed TTL
- ReviewRequestCache: open review requests per user login, long sliding TTL

Both report refreshes and refresh failures to the event emitter.
"""

from typing import Awaitable, Callable, List, Optional

from src.workhub.cache.revalidating import CacheEntry, RevalidatingCache
from src.workhub.events.emitter import EventEmitter, NullEventEmitter
from src.workhub.events.models import EventType, HubEvent
from src.workhub.models import ReviewRequest, WorkspaceState
from src.workhub.ports import ReviewSystemPort

WORKSPACES_KEY = "all"

WorkspaceCache = RevalidatingCache[str, List[WorkspaceState]]
ReviewRequestCache = RevalidatingCache[str, List[ReviewRequest]]


def _event_callbacks(name: str, event_emitter: EventEmitter):
    async def on_refreshed(key: str) -> None:
        await event_emitter.emit(
            HubEvent(
                event_type=EventType.CACHE_REFRESHED,
                subject=name,
                details={"cache": name, "key": key},
            )
        )

    async def on_refresh_error(key: str, exc: Exception) -> None:
        await event_emitter.emit(
            HubEvent(
                event_type=EventType.CACHE_REFRESH_FAILED,
                subject=name,
                details={
                    "cache": name,
                    "key": key,
                    "error_message": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
        )

    return on_refreshed, on_refresh_error


def build_workspace_cache(
    discover: Callable[[], Awaitable[List[WorkspaceState]]],
    ttl_seconds: float = 30.0,
    event_emitter: Optional[EventEmitter] = None,
    clock: Optional[Callable[[], float]] = None,
) -> WorkspaceCache:
    """Cache discovery results under WORKSPACES_KEY.

    Args:
        discover: Usually ``DiscoveryEngine.discover``.
        ttl_seconds: Fixed TTL counted from the last refresh.
        event_emitter: Receives CACHE_* events.
        clock: Time source; defaults to ``time.monotonic``.
    """
    on_refreshed, on_refresh_error = _event_callbacks(
        "workspaces", event_emitter or NullEventEmitter()
    )

    async def refresh(_key: str) -> List[WorkspaceState]:
        return await discover()

    kwargs = {"clock": clock} if clock is not None else {}
    return RevalidatingCache(
        refresh,
        ttl_seconds=ttl_seconds,
        sliding_expiry=False,
        on_refresh_error=on_refresh_error,
        on_refreshed=on_refreshed,
        name="workspaces",
        **kwargs,
    )


def build_review_request_cache(
    review_system: ReviewSystemPort,
    repository: str,
    ttl_seconds: float = 3600.0,
    event_emitter: Optional[EventEmitter] = None,
    clock: Optional[Callable[[], float]] = None,
) -> ReviewRequestCache:
    """Cache open review requests of ``repository`` keyed by author login.

    Args:
        review_system: Source of the listings.
        repository: ``owner/repo`` the listings are for.
        ttl_seconds: Sliding TTL counted from the user's last read.
        event_emitter: Receives CACHE_* events.
        clock: Time source; defaults to ``time.monotonic``.
    """
    on_refreshed, on_refresh_error = _event_callbacks(
        "review_requests", event_emitter or NullEventEmitter()
    )

    async def refresh(user: str) -> List[ReviewRequest]:
        return await review_system.list_open(repository, author=user)

    kwargs = {"clock": clock} if clock is not None else {}
    return RevalidatingCache(
        refresh,
        ttl_seconds=ttl_seconds,
        sliding_expiry=True,
        on_refresh_error=on_refresh_error,
        on_refreshed=on_refreshed,
        name="review_requests",
        **kwargs,
    )


__all__ = [
    "CacheEntry",
    "ReviewRequestCache",
    "RevalidatingCache",
    "WORKSPACES_KEY",
    "WorkspaceCache",
    "build_review_request_cache",
    "build_workspace_cache",
]
