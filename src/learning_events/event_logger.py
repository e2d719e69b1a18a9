"""Batching event logger: queue, flush, retry and orderly shutdown.

Producers call :meth:`EventLogger.enqueue`, which never waits on the network.
Batches go out when the queue reaches ``batch_size``, on a periodic timer,
when a retry timer fires, on an explicit :meth:`EventLogger.flush`, and once
more from :meth:`EventLogger.destroy`. Rejected or undeliverable events are
retried with exponential backoff up to ``max_retries`` and then dropped.

All state lives on one event loop. The transport await is the only
suspension point inside a flush, so a single ``_flushing`` flag is enough to
keep exactly one flush in flight.
"""

import asyncio
import enum
import logging
from collections.abc import Mapping
from typing import Any

from learning_events.buffer import EventBuffer
from learning_events.config import EventLoggerOptions
from learning_events.models import BatchResult, EventLoggerStats, QueuedEvent
from learning_events.retry import RetryController
from learning_events.shutdown import ShutdownHook, SignalShutdownHook
from learning_events.transport import BatchTransport

logger = logging.getLogger(__name__)


class LoggerState(enum.Enum):
    ACTIVE = "active"
    DRAINING = "draining"
    DESTROYED = "destroyed"


class EventLogger:
    def __init__(
        self,
        transport: BatchTransport,
        options: EventLoggerOptions | None = None,
        shutdown_hook: ShutdownHook | None = None,
    ) -> None:
        self._transport = transport
        self._options = options or EventLoggerOptions()
        self._queue = EventBuffer()
        self._retry = RetryController(
            self._merge_retries,
            max_retries=self._options.max_retries,
            base_delay=self._options.retry_delay,
            max_delay=self._options.max_retry_delay,
            debug=self._options.debug,
        )
        self._state = LoggerState.ACTIVE
        self._flushing = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._flush_requested = False
        self._background: set[asyncio.Task] = set()
        self._stats = EventLoggerStats()

        self._flush_timer = asyncio.create_task(self._periodic_flush())
        self._shutdown_hook = shutdown_hook or SignalShutdownHook()
        self._shutdown_hook.register(self._on_shutdown_signal)

        self._debug("Initialized with options: %s", self._options.model_dump())

    def _debug(self, msg: str, *args: Any) -> None:
        if self._options.debug:
            logger.debug(msg, *args)

    # -- producer -----------------------------------------------------------

    def enqueue(self, event: Any) -> None:
        """Queue an event and return immediately."""
        if self._state is LoggerState.DESTROYED:
            self._stats.rejected_after_destroy += 1
            logger.warning("Cannot log event - logger is destroyed")
            return

        self._queue.add(event)
        self._stats.enqueued += 1
        self._debug("Event queued, queue size: %d", len(self._queue))

        if len(self._queue) >= self._options.batch_size:
            self._spawn_flush()

    log_event = enqueue

    # -- flush --------------------------------------------------------------

    async def flush(self) -> None:
        """Send everything currently queued in one batch.

        Returns without sending when destroyed, when another flush is in
        flight, or when nothing is queued. Transport errors are logged and
        routed to retry, never raised.
        """
        if self._state is LoggerState.DESTROYED:
            return
        if self._flushing:
            self._flush_requested = True
            return
        if self._queue.is_empty():
            return

        self._flushing = True
        self._idle.clear()
        batch = self._queue.drain()
        self._stats.flushes += 1
        try:
            self._debug("Flushing %d events", len(batch))
            try:
                raw = await self._transport([queued.payload for queued in batch])
                result = (
                    BatchResult.model_validate(dict(raw))
                    if isinstance(raw, Mapping)
                    else raw
                )
                if not isinstance(result, BatchResult):
                    raise TypeError(
                        f"Transport returned {type(result).__name__}, expected BatchResult"
                    )
            except Exception:
                self._stats.failed_flushes += 1
                logger.exception("Flush of %d events failed", len(batch))
                self._route_failures([(queued, None) for queued in batch])
            else:
                self._handle_result(batch, result)
        finally:
            self._flushing = False
            self._idle.set()

        self._flush_followup()

    def _handle_result(self, batch: list[QueuedEvent], result: BatchResult) -> None:
        self._debug(
            "Flush complete: %d created, %d failed", result.created, result.failed
        )
        rejected: dict[int, str] = {}
        for err in result.errors:
            if 0 <= err.index < len(batch):
                rejected.setdefault(err.index, err.error)
            else:
                logger.warning(
                    "Ignoring error for index %d outside batch of %d: %s",
                    err.index,
                    len(batch),
                    err.error,
                )

        self._stats.delivered += len(batch) - len(rejected)
        if rejected:
            self._route_failures(
                [(batch[index], reason) for index, reason in sorted(rejected.items())]
            )

    def _route_failures(self, failures: list[tuple[QueuedEvent, str | None]]) -> None:
        requeued, dropped = self._retry.handle_failures(failures)
        self._stats.retried += requeued
        self._stats.dropped += dropped

    def _flush_followup(self) -> None:
        """Run a coalesced flush for requests that hit the in-flight guard."""
        if self._state is not LoggerState.ACTIVE:
            self._flush_requested = False
            return
        requested = self._flush_requested or len(self._queue) >= self._options.batch_size
        self._flush_requested = False
        if requested and not self._queue.is_empty():
            self._spawn_flush()

    def _spawn_flush(self) -> asyncio.Task:
        task = asyncio.create_task(self.flush())
        self._background.add(task)
        task.add_done_callback(self._on_flush_done)
        return task

    def _on_flush_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background flush error: %s", exc, exc_info=exc)

    # -- timers -------------------------------------------------------------

    async def _periodic_flush(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._options.flush_interval)
                if not self._queue.is_empty():
                    self._spawn_flush()
        except asyncio.CancelledError:
            return

    def _merge_retries(self, events: list[QueuedEvent]) -> None:
        self._queue.append(events)
        if self._state is LoggerState.ACTIVE:
            self._debug("Retrying %d events", len(events))
            self._spawn_flush()

    def _on_shutdown_signal(self) -> asyncio.Task | None:
        if self._state is not LoggerState.ACTIVE or self._queue.is_empty():
            return None
        # Best effort: the process may exit before this completes.
        return self._spawn_flush()

    # -- lifecycle ----------------------------------------------------------

    async def destroy(self) -> None:
        """Cancel timers, flush what is left once, and go inert."""
        if self._state is not LoggerState.ACTIVE:
            return

        self._state = LoggerState.DRAINING
        self._debug("Destroying logger")

        self._flush_timer.cancel()
        try:
            await self._flush_timer
        except asyncio.CancelledError:
            pass
        self._retry.cancel()

        # In-flight sends finish; they are never cancelled.
        while self._background or self._flushing:
            if self._background:
                await asyncio.gather(*self._background, return_exceptions=True)
            else:
                await self._idle.wait()

        self._queue.append(self._retry.take_all())
        await self.flush()

        self._state = LoggerState.DESTROYED
        self._shutdown_hook.unregister()

        leftover = self._queue.drain() + self._retry.take_all()
        if leftover:
            self._stats.dropped += len(leftover)
            logger.error("Logger destroyed with %d undelivered events", len(leftover))

    # -- introspection ------------------------------------------------------

    def get_queue_size(self) -> int:
        return len(self._queue) + len(self._retry)

    @property
    def state(self) -> LoggerState:
        return self._state

    @property
    def stats(self) -> EventLoggerStats:
        return self._stats

    @property
    def options(self) -> EventLoggerOptions:
        return self._options
