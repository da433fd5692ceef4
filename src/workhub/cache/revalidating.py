"""Stale-while-revalidate cache with one refresh in flight per key.

States of a key:

- absent: nothing stored; ``get`` refreshes and waits for the result
- fresh: within TTL; ``get`` returns the stored payload object as is
- stale: past TTL; ``get`` returns the stale payload and starts one
  background refresh
- refreshing: a refresh task exists; ``get`` and ``refresh`` join it

A failed refresh never removes the stored entry. Background failures are
logged and reported through ``on_refresh_error``; callers that were
served stale data never see them.

With ``sliding_expiry`` every fresh hit moves the expiry forward, so a key
in regular use never goes stale. Without it, the TTL counts from the last
successful refresh.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Dict, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")

RefreshErrorCallback = Callable[[K, Exception], Awaitable[None]]
RefreshedCallback = Callable[[K], Awaitable[None]]


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """Stored payload with its timestamps (clock seconds).

    Attributes:
        payload: Result of the last successful refresh.
        stored_at: When the payload was produced.
        last_interaction: Last fresh hit (sliding mode) or ``stored_at``.
    """

    payload: T
    stored_at: float
    last_interaction: float


class RevalidatingCache(Generic[K, T]):
    """Per-key cache in front of an async refresh function.

    Attributes:
        name: Used in logs and events.
        ttl_seconds: Freshness window.
        sliding_expiry: Measure freshness from the last interaction instead
            of the last refresh.
    """

    def __init__(
        self,
        refresh: Callable[[K], Awaitable[T]],
        ttl_seconds: float,
        sliding_expiry: bool = False,
        clock: Callable[[], float] = time.monotonic,
        on_refresh_error: Optional[RefreshErrorCallback] = None,
        on_refreshed: Optional[RefreshedCallback] = None,
        name: str = "cache",
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._refresh = refresh
        self.ttl_seconds = ttl_seconds
        self.sliding_expiry = sliding_expiry
        self._clock = clock
        self._on_refresh_error = on_refresh_error
        self._on_refreshed = on_refreshed
        self.name = name
        self._entries: Dict[K, CacheEntry[T]] = {}
        self._in_flight: Dict[K, "asyncio.Task[T]"] = {}

    async def get(self, key: K) -> T:
        """Return the payload for ``key``, refreshing as needed.

        Raises:
            Exception: Whatever the refresh raised, only when there is no
                stored payload to fall back to.
        """
        entry = self._entries.get(key)
        if entry is not None and self._fresh(entry):
            if self.sliding_expiry:
                self._entries[key] = replace(entry, last_interaction=self._clock())
            return entry.payload

        task = self._in_flight.get(key)
        if task is not None:
            try:
                return await asyncio.shield(task)
            except Exception:
                if entry is None:
                    raise
                return entry.payload

        if entry is not None:
            logger.debug(
                "Serving stale entry, refreshing in background",
                extra={"cache": self.name, "key": str(key)},
            )
            self._start_refresh(key)
            return entry.payload

        return await asyncio.shield(self._start_refresh(key))

    async def refresh(self, key: K) -> T:
        """Refresh now, joining a refresh that is already running."""
        return await asyncio.shield(self._start_refresh(key))

    async def invalidate(self, key: K) -> T:
        """Drop the entry and refresh.

        A refresh that was already running started before the
        invalidation, so it is waited out and a new one is started.
        """
        self._entries.pop(key, None)
        running = self._in_flight.get(key)
        if running is not None:
            await asyncio.wait({running})
            self._entries.pop(key, None)
        return await self.refresh(key)

    def invalidate_all(self) -> None:
        """Drop every entry without refreshing."""
        self._entries.clear()

    def age(self, key: K) -> Optional[float]:
        """Seconds since the stored payload was produced, or None."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry.stored_at

    def is_fresh(self, key: K) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._fresh(entry)

    def is_refreshing(self, key: K) -> bool:
        return key in self._in_flight

    def peek(self, key: K) -> Optional[CacheEntry[T]]:
        """The stored entry, without touching timestamps or refreshing."""
        return self._entries.get(key)

    def mark_interaction(self, key: K) -> None:
        """Record use of ``key`` without reading it (sliding mode only)."""
        entry = self._entries.get(key)
        if entry is not None and self.sliding_expiry:
            self._entries[key] = replace(entry, last_interaction=self._clock())

    def _fresh(self, entry: CacheEntry[T]) -> bool:
        since = entry.last_interaction if self.sliding_expiry else entry.stored_at
        return self._clock() - since < self.ttl_seconds

    def _start_refresh(self, key: K) -> "asyncio.Task[T]":
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._run_refresh(key))
            self._in_flight[key] = task
            task.add_done_callback(_consume_result)
        return task

    async def _run_refresh(self, key: K) -> T:
        try:
            payload = await self._refresh(key)
        except Exception as exc:
            logger.warning(
                "Cache refresh failed",
                extra={
                    "cache": self.name,
                    "key": str(key),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "has_stale_entry": key in self._entries,
                },
            )
            if self._on_refresh_error is not None:
                await self._notify(self._on_refresh_error(key, exc))
            raise
        finally:
            self._in_flight.pop(key, None)

        now = self._clock()
        self._entries[key] = CacheEntry(payload=payload, stored_at=now, last_interaction=now)
        if self._on_refreshed is not None:
            await self._notify(self._on_refreshed(key))
        return payload

    async def _notify(self, callback: Awaitable[None]) -> None:
        try:
            await callback
        except Exception:
            logger.exception("Cache callback failed", extra={"cache": self.name})


def _consume_result(task: "asyncio.Task") -> None:
    # Background refreshes nobody awaits: mark the exception as retrieved;
    # it was already logged by _run_refresh.
    if not task.cancelled():
        task.exception()
