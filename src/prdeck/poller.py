"""Generic polling engine shared by the PR queue and the build queue.

A Poller owns one queue's state (items, loading flag, error, last update)
and drives it from an interval timer plus manual refreshes. At most one fetch
runs at a time; triggers that arrive while a fetch is in flight are dropped.
Timer-driven fetches belong to the current cycle and are cancelled when the
poller is stopped or reconfigured; cancellation leaves the state untouched.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Generic, TypeVar

from prdeck.models import QueueState

logger = logging.getLogger(__name__)

T = TypeVar("T")

SECONDS_PER_MINUTE = 60

FetchFn = Callable[[], Awaitable[T]]
Listener = Callable[[QueueState[T]], None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Poller(Generic[T]):
    def __init__(
        self,
        name: str,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.name = name
        self.state: QueueState[T] = QueueState()
        self._clock = clock
        self._fetch: FetchFn[T] | None = None
        self._enabled = False
        self._interval_minutes = 0
        self._key: object = None
        self._current: asyncio.Task[None] | None = None
        self._timer: asyncio.Task[None] | None = None
        self._cycle_fetches: set[asyncio.Task[None]] = set()
        self._manual_fetches: set[asyncio.Task[None]] = set()
        self._listeners: list[Listener[T]] = []

    # -- Public API --

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def in_flight(self) -> bool:
        return self._current is not None

    def subscribe(self, listener: Listener[T]) -> None:
        self._listeners.append(listener)

    def configure(
        self,
        fetch: FetchFn[T] | None,
        *,
        enabled: bool,
        interval_minutes: int,
        key: object = None,
    ) -> None:
        """Apply a new fetch function, enable flag and interval.

        ``key`` identifies the fetch's dependencies (credentials, slug). When
        nothing changed the running cycle is left alone; otherwise the current
        cycle is torn down and, if enabled, a new one starts immediately.
        """
        enabled = enabled and fetch is not None
        unchanged = (enabled, interval_minutes, key) == (
            self._enabled,
            self._interval_minutes,
            self._key,
        )
        if unchanged and (self._timer is not None or not enabled):
            self._fetch = fetch
            return

        self.stop()
        self._fetch = fetch
        self._enabled = enabled
        self._interval_minutes = interval_minutes
        self._key = key
        if enabled:
            self._timer = asyncio.get_running_loop().create_task(self._run_timer())

    def refresh(self) -> None:
        """Manual refresh: same as a timer tick, but not cancelled by stop()."""
        task = self._trigger()
        if task is not None:
            self._manual_fetches.add(task)
            task.add_done_callback(self._manual_fetches.discard)

    def stop(self) -> None:
        """Disarm the timer, cancel timer-driven fetches, reset the in-flight flag."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in list(self._cycle_fetches):
            task.cancel()
        self._cycle_fetches.clear()
        self._current = None
        self._enabled = False

    async def wait_idle(self) -> None:
        """Wait until every outstanding fetch task has finished."""
        pending = self._cycle_fetches | self._manual_fetches
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        """Stop polling and cancel every fetch, manual refreshes included."""
        pending = self._cycle_fetches | self._manual_fetches
        self.stop()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # -- Internals --

    async def _run_timer(self) -> None:
        interval = self._interval_minutes * SECONDS_PER_MINUTE
        logger.info("%s: polling every %d min", self.name, self._interval_minutes)
        while True:
            task = self._trigger()
            if task is not None:
                self._cycle_fetches.add(task)
                task.add_done_callback(self._cycle_fetches.discard)
            await asyncio.sleep(interval)

    def _trigger(self) -> asyncio.Task[None] | None:
        if self._fetch is None:
            return None
        if self._current is not None:
            logger.debug("%s: fetch already in flight, dropping trigger", self.name)
            return None
        task = asyncio.get_running_loop().create_task(self._do_fetch(self._fetch))
        self._current = task
        return task

    async def _do_fetch(self, fetch: FetchFn[T]) -> None:
        self._update(is_loading=True, error=None)
        cancelled = False
        try:
            items = await fetch()
        except asyncio.CancelledError:
            cancelled = True
            raise
        except Exception as e:
            message = str(e) or "Unknown error"
            logger.warning("%s: fetch failed: %s", self.name, message)
            self._update(error=message)
        else:
            self._update(items=items, last_updated=self._clock())
        finally:
            if self._current is asyncio.current_task():
                self._current = None
            if not cancelled:
                self._update(is_loading=False)

    def _update(self, **changes: object) -> None:
        for name, value in changes.items():
            setattr(self.state, name, value)
        for listener in self._listeners:
            listener(self.state)
