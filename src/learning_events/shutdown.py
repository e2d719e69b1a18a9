"""Process-termination hooks used to trigger a best-effort final flush."""

import abc
import asyncio
import logging
import signal
import weakref
from collections.abc import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)

ShutdownCallback = Callable[[], Awaitable | None]

# Hooks sharing one loop-level handler, per loop and signal.
_registry: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[signal.Signals, list[SignalShutdownHook]]]" = (
    weakref.WeakKeyDictionary()
)
_terminating: set[asyncio.Task] = set()


class ShutdownHook(abc.ABC):
    """Delivers a single "about to terminate" notification to one callback."""

    @abc.abstractmethod
    def register(self, callback: ShutdownCallback) -> None: ...

    @abc.abstractmethod
    def unregister(self) -> None: ...


class NullShutdownHook(ShutdownHook):
    """Never fires; for applications that drive shutdown themselves."""

    def register(self, callback: ShutdownCallback) -> None:
        pass

    def unregister(self) -> None:
        pass


def _handled_elsewhere(sig: signal.Signals) -> bool:
    current = signal.getsignal(sig)
    return current not in (signal.SIG_DFL, signal.default_int_handler, None)


def _dispatch(loop: asyncio.AbstractEventLoop, sig: signal.Signals) -> None:
    hooks = list(_registry.get(loop, {}).get(sig, []))
    logger.info("Received %s, flushing queued events", sig.name)
    pending = []
    for hook in hooks:
        result = hook._notify()
        if result is not None:
            pending.append(asyncio.ensure_future(result))
    resignal = [hook for hook in hooks if hook._resignal]
    if resignal:
        grace = max(hook._grace for hook in resignal)
        task = loop.create_task(_terminate(hooks, sig, pending, grace))
        _terminating.add(task)
        task.add_done_callback(_terminating.discard)


async def _terminate(
    hooks: list["SignalShutdownHook"],
    sig: signal.Signals,
    pending: list[asyncio.Future],
    grace: float,
) -> None:
    if pending:
        await asyncio.wait(pending, timeout=grace)
    for hook in hooks:
        hook.unregister()
    # Handler is gone, so the default disposition applies again.
    signal.raise_signal(sig)


class SignalShutdownHook(ShutdownHook):
    """Fires on termination signals delivered to the running event loop.

    The hook only installs a loop handler when the signal still has its
    default disposition; a handler the application already owns is left
    alone and the hook stays inactive for that signal. Hooks on the same
    loop share one handler, which is removed when the last of them
    unregisters.

    With ``resignal`` set, once the callbacks' flushes settle (or ``grace``
    seconds pass) the handler is removed and the signal raised again, so the
    process still terminates the way it would have without the hook.
    """

    def __init__(
        self,
        signals: Iterable[signal.Signals] = (signal.SIGTERM,),
        resignal: bool = True,
        grace: float = 5.0,
    ) -> None:
        self._signals = tuple(signals)
        self._resignal = resignal
        self._grace = grace
        self._loop: asyncio.AbstractEventLoop | None = None
        self._installed: list[signal.Signals] = []
        self._callback: ShutdownCallback | None = None

    def register(self, callback: ShutdownCallback) -> None:
        self._callback = callback
        self._loop = asyncio.get_running_loop()
        table = _registry.setdefault(self._loop, {})
        for sig in self._signals:
            hooks = table.get(sig)
            if hooks is None:
                if _handled_elsewhere(sig):
                    logger.debug("%s already has a handler; hook inactive", sig.name)
                    continue
                try:
                    self._loop.add_signal_handler(sig, _dispatch, self._loop, sig)
                except (NotImplementedError, RuntimeError, ValueError):
                    logger.debug("Cannot install handler for %s; hook inactive", sig.name)
                    continue
                hooks = table[sig] = []
            hooks.append(self)
            self._installed.append(sig)

    def _notify(self) -> Awaitable | None:
        if self._callback is None:
            return None
        return self._callback()

    def unregister(self) -> None:
        if self._loop is not None:
            table = _registry.get(self._loop, {})
            for sig in self._installed:
                hooks = table.get(sig, [])
                if self in hooks:
                    hooks.remove(self)
                if not hooks and sig in table:
                    del table[sig]
                    if not self._loop.is_closed():
                        self._loop.remove_signal_handler(sig)
        self._installed = []
        self._callback = None

    @property
    def installed(self) -> tuple[signal.Signals, ...]:
        return tuple(self._installed)
