"""Retry queue with a single exponential-backoff timer."""

import asyncio
import logging
from collections.abc import Callable, Iterable

from learning_events.models import QueuedEvent, event_type

logger = logging.getLogger(__name__)


def backoff_delay(base: float, retry_count: int, cap: float | None = None) -> float:
    """Delay before the retry numbered ``retry_count`` (1 for the first retry).

    Doubles per attempt: ``base``, ``2 * base``, ``4 * base``, ... and never
    exceeds ``cap`` when one is given.
    """
    delay = base * (2 ** max(retry_count - 1, 0))
    if cap is not None:
        delay = min(delay, cap)
    return delay


class RetryController:
    """Holds failed events until a backoff timer hands them back.

    At most one timer is outstanding. Its delay is computed from the head of
    the retry queue at scheduling time; when it fires, the whole queue is
    released through ``on_ready`` in order.
    """

    def __init__(
        self,
        on_ready: Callable[[list[QueuedEvent]], None],
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float | None = 60.0,
        debug: bool = False,
    ) -> None:
        self._on_ready = on_ready
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._debug = debug
        self._queue: list[QueuedEvent] = []
        self._timer: asyncio.Task | None = None
        self._pending_delay: float | None = None
        self._paused = False
        self.dropped = 0

    def handle_failures(
        self, failures: Iterable[tuple[QueuedEvent, str | None]]
    ) -> tuple[int, int]:
        """Requeue or drop each failed event, then arm the timer.

        Returns (requeued, dropped) for this call.
        """
        requeued = dropped = 0
        for queued, reason in failures:
            if queued.retry_count < self._max_retries:
                queued.retry_count += 1
                self._queue.append(queued)
                requeued += 1
                if self._debug:
                    logger.debug(
                        "Re-queuing %s for retry %d/%d (%s)",
                        event_type(queued.payload),
                        queued.retry_count,
                        self._max_retries,
                        reason or "transport failure",
                    )
            else:
                dropped += 1
                logger.error(
                    "Max retries reached, dropping %s event (%s)",
                    event_type(queued.payload),
                    reason or "transport failure",
                )
        self.dropped += dropped
        self.schedule()
        return requeued, dropped

    def schedule(self) -> None:
        if self._paused or self._timer is not None or not self._queue:
            return
        delay = backoff_delay(
            self._base_delay, self._queue[0].retry_count, self._max_delay
        )
        if self._debug:
            logger.debug("Scheduling retry of %d events in %.3fs", len(self._queue), delay)
        self._pending_delay = delay
        self._timer = asyncio.create_task(self._wait_and_release(delay))

    async def _wait_and_release(self, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return
        self._timer = None
        self._pending_delay = None
        events = self.take_all()
        if events:
            self._on_ready(events)

    def take_all(self) -> list[QueuedEvent]:
        events = self._queue
        self._queue = []
        return events

    def cancel(self) -> None:
        """Cancel the pending timer and stop scheduling new ones."""
        self._paused = True
        if self._timer and not self._timer.done():
            self._timer.cancel()
        self._timer = None
        self._pending_delay = None

    @property
    def pending_delay(self) -> float | None:
        return self._pending_delay

    @property
    def queued(self) -> list[QueuedEvent]:
        return list(self._queue)

    def __len__(self) -> int:
        return len(self._queue)
