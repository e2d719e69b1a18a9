"""Application-level owner of the event logger and its HTTP transport."""

import logging
from typing import Any

from learning_events.config import Settings, get_settings
from learning_events.event_logger import EventLogger
from learning_events.shutdown import ShutdownHook
from learning_events.transport import BatchTransport, LearningEventApi

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        force=True,
    )


class EventLoggingContext:
    """Built once at startup and handed to call sites; torn down at exit.

    Owns one :class:`EventLogger`. Unless a transport is injected, it also
    owns the :class:`LearningEventApi` client the logger sends through.
    """

    def __init__(
        self,
        settings: Settings,
        transport: BatchTransport | None = None,
        shutdown_hook: ShutdownHook | None = None,
    ) -> None:
        self._settings = settings
        self._shutdown_hook = shutdown_hook
        self._api: LearningEventApi | None = None
        if transport is None:
            self._api = LearningEventApi(settings.api_url, timeout=settings.api_timeout)
            transport = self._api.create_batch
        self._transport = transport
        self._logger: EventLogger | None = None

    @classmethod
    def from_env(cls, **kwargs: Any) -> "EventLoggingContext":
        settings = get_settings()
        setup_logging(settings.log_level)
        return cls(settings, **kwargs)

    async def start(self) -> EventLogger:
        """Create the logger; must run inside the application's event loop."""
        if self._logger is None:
            self._logger = EventLogger(
                self._transport,
                self._settings.logger_options(),
                shutdown_hook=self._shutdown_hook,
            )
            logger.info("Event logging started")
        return self._logger

    @property
    def logger(self) -> EventLogger:
        if self._logger is None:
            raise RuntimeError("EventLoggingContext.start() has not been called")
        return self._logger

    def log_event(self, event: Any) -> None:
        self.logger.enqueue(event)

    async def aclose(self) -> None:
        """Flush and destroy the logger, then release the HTTP client."""
        if self._logger is not None:
            await self._logger.destroy()
            stats = self._logger.stats
            logger.info(
                "Event logging stopped: %d delivered, %d dropped",
                stats.delivered,
                stats.dropped,
            )
        if self._api is not None:
            await self._api.close()
            self._api = None

    async def __aenter__(self) -> "EventLoggingContext":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
