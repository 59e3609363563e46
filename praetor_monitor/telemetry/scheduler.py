"""
Periodic refresh primitive.

A SyncScheduler invokes an async fetch function immediately and then every
``interval`` seconds, handing each result to a synchronous apply callback.

Guarantees:
- At most one fetch is in flight. A tick that comes due while the previous
  fetch is still pending is skipped.
- Every issued tick carries an increasing id. A result is applied only if it
  belongs to the latest issued tick and the scheduler is still running.
- ``stop()`` is synchronous and idempotent. Once it returns, no result from
  this instance reaches the apply callback, even for a fetch issued earlier.
- Fetch failures go to the error sink and polling continues on the next
  tick, with no backoff.
"""

import asyncio
from typing import Awaitable, Callable, Generic, Optional, TypeVar

import structlog

from praetor_monitor.core.exceptions import SchedulerError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

ErrorSink = Callable[[str, BaseException], None]


def log_error_sink(source: str, error: BaseException) -> None:
    """Default error sink: log and carry on."""
    logger.warning(
        "sync_fetch_failed",
        source=source,
        error=str(error),
        error_type=type(error).__name__,
    )


class SyncScheduler(Generic[T]):
    """
    Fixed-cadence poller with a staleness guard.

    Instances are single-use: rebinding to a different fetch target means
    stopping this instance and starting a new one.
    """

    def __init__(self, name: str, error_sink: Optional[ErrorSink] = None):
        self.name = name
        self.error_sink = error_sink or log_error_sink

        self._interval: float = 0.0
        self._fetch_fn: Optional[Callable[[], Awaitable[T]]] = None
        self._apply_fn: Optional[Callable[[T], None]] = None

        self._started = False
        self._stopped = False
        self._tick_id = 0
        self._loop_task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None

        self.applied_ticks = 0
        self.skipped_ticks = 0

    @property
    def running(self) -> bool:
        return self._started and not self._stopped

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def last_tick_id(self) -> int:
        """Id of the most recently issued tick (0 before the first)."""
        return self._tick_id

    def start(
        self,
        interval: float,
        fetch_fn: Callable[[], Awaitable[T]],
        apply_fn: Callable[[T], None],
    ) -> None:
        """
        Start polling. Must be called from within a running event loop.

        Args:
            interval: Seconds between ticks
            fetch_fn: Async function producing a result; may raise
            apply_fn: Synchronous consumer of fresh results
        """
        if self._started:
            raise SchedulerError(f"Scheduler {self.name!r} has already been started")
        if interval <= 0:
            raise SchedulerError("interval must be positive")

        self._interval = interval
        self._fetch_fn = fetch_fn
        self._apply_fn = apply_fn
        self._started = True

        self._loop_task = asyncio.get_running_loop().create_task(self._run())
        logger.debug("sync_scheduler_started", source=self.name, interval=interval)

    def stop(self) -> None:
        """Stop polling. Safe to call more than once, or before start()."""
        if self._stopped:
            return
        self._stopped = True

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None

        # stop() may be called from inside apply_fn; the stopped flag already
        # covers the running tick, so only foreign tasks are cancelled
        for task in (self._loop_task, self._inflight):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._loop_task = None
        self._inflight = None

        if self._started:
            logger.debug("sync_scheduler_stopped", source=self.name, ticks=self._tick_id)

    async def tick(self, wait: bool = False) -> bool:
        """
        Run one tick now and wait for it.

        Args:
            wait: If a tick is already in flight, wait for it to finish and
                then issue a fresh one instead of skipping

        Returns:
            True if a result was applied
        """
        while self.running and self._inflight is not None and not self._inflight.done():
            if not wait:
                self.skipped_ticks += 1
                return False
            await asyncio.wait([self._inflight])
        if not self.running:
            return False
        self._tick_id += 1
        task = asyncio.get_running_loop().create_task(self._execute(self._tick_id))
        self._inflight = task
        return await task

    async def _run(self) -> None:
        """Timer loop: issue a tick every interval unless one is in flight."""
        loop = asyncio.get_running_loop()
        while not self._stopped:
            if self._inflight is None or self._inflight.done():
                self._tick_id += 1
                self._inflight = loop.create_task(self._execute(self._tick_id))
            else:
                self.skipped_ticks += 1
                logger.debug("sync_tick_skipped", source=self.name, inflight_tick=self._tick_id)
            await asyncio.sleep(self._interval)

    async def _execute(self, tick_id: int) -> bool:
        """Fetch, then apply if this tick is still current."""
        try:
            result = await self._fetch_fn()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._stopped:
                self.error_sink(self.name, e)
            return False

        if self._stopped or tick_id != self._tick_id:
            logger.debug("sync_result_discarded", source=self.name, tick_id=tick_id, latest=self._tick_id)
            return False

        try:
            self._apply_fn(result)
        except Exception as e:
            self.error_sink(self.name, e)
            return False

        self.applied_ticks += 1
        return True
