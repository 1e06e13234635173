"""Adaptive re-poll scheduler.

Owns the in-memory state and the single pending timer. Each cycle collects
quotes, merges them into a new state, persists it, notifies publishers and
re-arms the timer with a delay that grows with consecutive failing cycles:

    delay = interval_sec * BACKOFF_FACTORS[failure_count]

``failure_count`` saturates at ``MAX_FAILURE_COUNT`` and resets after a
cycle in which every cascade succeeded.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import config
from models import PersistedState
from process import CycleOutcomes, collect_all_quotes, refresh_state
from state_store import JsonFileStorage, StateStore

logger = logging.getLogger(__name__)

Collector = Callable[[str | None], Awaitable[CycleOutcomes]]
Publisher = Callable[[PersistedState], None]


def backoff_factor(failure_count: int) -> int:
    index = max(0, min(failure_count, config.MAX_FAILURE_COUNT))
    return config.BACKOFF_FACTORS[index]


class QuoteScheduler:
    def __init__(
        self,
        store: StateStore,
        collector: Collector = collect_all_quotes,
        index_api_key: str | None = None,
        on_publish: Publisher | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.index_api_key = index_api_key
        self.failure_count = 0
        self._collector = collector
        self._sleep = sleep
        self._publishers: list[Publisher] = [on_publish] if on_publish else []
        self._state = store.load()
        self._timer: asyncio.Task | None = None
        self._running: set[asyncio.Task] = set()
        self._started = False

    @property
    def current(self) -> PersistedState:
        return self._state

    @property
    def interval_sec(self) -> int:
        return self._state.interval_sec

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def next_delay(self) -> int:
        return self.interval_sec * backoff_factor(self.failure_count)

    def add_publisher(self, publisher: Publisher) -> None:
        self._publishers.append(publisher)

    async def start(self) -> None:
        """Publish the persisted snapshot, then kick off the first cycle."""
        self._started = True
        if self._state.last_data is not None:
            self._publish()
        self._spawn(self.refresh())

    def stop(self) -> None:
        self._started = False
        self._cancel_timer()

    async def refresh(self) -> CycleOutcomes:
        """Run a cycle now and reschedule, replacing any pending timer."""
        self._cancel_timer()
        try:
            return await self.run_cycle()
        finally:
            if self._started:
                self._arm()

    async def run_cycle(self) -> CycleOutcomes:
        previous = self._state
        outcomes = await self._collector(self.index_api_key)

        # The interval may have changed while the cascades were in flight.
        merged = refresh_state(previous, outcomes)
        self._state = merged.model_copy(update={"interval_sec": self._state.interval_sec})
        if outcomes.all_ok:
            self.failure_count = 0
        else:
            self.failure_count = min(self.failure_count + 1, config.MAX_FAILURE_COUNT)

        self._save()
        self._publish()
        logger.info(
            "Cycle finished: all_ok=%s failure_count=%d next_delay=%ss",
            outcomes.all_ok,
            self.failure_count,
            self.next_delay(),
        )
        return outcomes

    def set_interval(self, seconds: int) -> None:
        if seconds <= 0:
            raise ValueError("interval must be greater than 0")
        self._state = self._state.model_copy(update={"interval_sec": int(seconds)})
        self._save()
        if self._started:
            self._arm()

    def set_index_api_key(self, api_key: str | None) -> None:
        self.index_api_key = api_key or None

    def _save(self) -> None:
        try:
            self.store.save(self._state)
        except OSError as err:
            logger.error("Failed to persist state: %s", err)

    def _publish(self) -> None:
        for publisher in self._publishers:
            try:
                publisher(self._state)
            except Exception:
                logger.exception("Publisher %r failed", publisher)

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def _arm(self) -> None:
        self._cancel_timer()
        delay = self.next_delay()
        self._timer = asyncio.create_task(self._fire_after(delay))

    async def _fire_after(self, delay: float) -> None:
        await self._sleep(delay)
        # From here on this is an in-flight cycle, not a pending timer.
        self._timer = None
        self._spawn(self.refresh())

    def _spawn(self, coro: Awaitable[CycleOutcomes]) -> None:
        task = asyncio.ensure_future(coro)
        self._running.add(task)
        task.add_done_callback(self._cycle_done)

    def _cycle_done(self, task: asyncio.Task) -> None:
        self._running.discard(task)
        if task.cancelled():
            return
        err = task.exception()
        if err is not None:
            logger.error("Refresh cycle failed: %s", err, exc_info=err)

    async def wait_idle(self) -> None:
        """Wait for in-flight cycles to settle."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)


def build_scheduler(index_api_key: str | None = None, on_publish: Publisher | None = None) -> QuoteScheduler:
    store = StateStore(JsonFileStorage(config.DATA_DIR))
    return QuoteScheduler(store, index_api_key=index_api_key, on_publish=on_publish)
