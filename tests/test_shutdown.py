"""Tests for learning_events.shutdown module."""

import asyncio
import signal
from unittest.mock import AsyncMock, patch

import pytest

from learning_events.config import EventLoggerOptions
from learning_events.event_logger import EventLogger
from learning_events.models import BatchResult
from learning_events.shutdown import NullShutdownHook, ShutdownHook, SignalShutdownHook


async def test_signal_invokes_callback():
    hook = SignalShutdownHook(signals=(signal.SIGUSR1,), resignal=False)
    called = []
    hook.register(lambda: called.append(True))
    assert hook.installed == (signal.SIGUSR1,)

    signal.raise_signal(signal.SIGUSR1)
    await asyncio.sleep(0.05)

    assert called == [True]
    hook.unregister()
    assert hook.installed == ()
    assert signal.getsignal(signal.SIGUSR1) == signal.SIG_DFL


async def test_resignal_removes_handler_and_reraises():
    real_raise = signal.raise_signal
    hook = SignalShutdownHook(signals=(signal.SIGUSR2,))
    called = []
    hook.register(lambda: called.append(True))

    with patch("learning_events.shutdown.signal.raise_signal") as mock_raise:
        real_raise(signal.SIGUSR2)
        await asyncio.sleep(0.05)

    assert called == [True]
    mock_raise.assert_called_once_with(signal.SIGUSR2)
    assert hook.installed == ()


async def test_resignal_waits_for_flush_within_grace():
    real_raise = signal.raise_signal
    done = []

    async def slow_flush():
        await asyncio.sleep(0.05)
        done.append(True)

    hook = SignalShutdownHook(signals=(signal.SIGUSR2,), grace=1.0)
    hook.register(lambda: asyncio.create_task(slow_flush()))

    with patch("learning_events.shutdown.signal.raise_signal") as mock_raise:
        real_raise(signal.SIGUSR2)
        await asyncio.sleep(0.02)
        mock_raise.assert_not_called()
        await asyncio.sleep(0.1)

    assert done == [True]
    mock_raise.assert_called_once_with(signal.SIGUSR2)


async def test_application_handler_survives_logger_destroy():
    loop = asyncio.get_running_loop()
    app_calls = []
    loop.add_signal_handler(signal.SIGTERM, lambda: app_calls.append(True))
    try:
        logger = EventLogger(AsyncMock(return_value=BatchResult()))
        await logger.destroy()

        signal.raise_signal(signal.SIGTERM)
        await asyncio.sleep(0.05)

        assert app_calls == [True]
    finally:
        loop.remove_signal_handler(signal.SIGTERM)


async def test_hook_stays_inactive_when_signal_already_handled():
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGUSR1, lambda: None)
    try:
        hook = SignalShutdownHook(signals=(signal.SIGUSR1,))
        hook.register(lambda: None)
        assert hook.installed == ()
        hook.unregister()
    finally:
        loop.remove_signal_handler(signal.SIGUSR1)


async def test_two_loggers_share_one_loop():
    options = EventLoggerOptions(flush_interval_ms=60_000)
    transport_a = AsyncMock(return_value=BatchResult(created=1))
    transport_b = AsyncMock(return_value=BatchResult(created=1))
    a = EventLogger(
        transport_a,
        options,
        shutdown_hook=SignalShutdownHook(signals=(signal.SIGUSR1,), resignal=False),
    )
    b = EventLogger(
        transport_b,
        options,
        shutdown_hook=SignalShutdownHook(signals=(signal.SIGUSR1,), resignal=False),
    )

    await a.destroy()
    b.enqueue({"type": "logout", "learnerId": "learner-1"})
    signal.raise_signal(signal.SIGUSR1)
    await asyncio.sleep(0.05)

    transport_b.assert_awaited_once()
    await b.destroy()
    assert signal.getsignal(signal.SIGUSR1) == signal.SIG_DFL


async def test_unregister_without_register():
    hook = SignalShutdownHook()
    # Should not raise
    hook.unregister()


async def test_null_hook_is_inert():
    hook = NullShutdownHook()
    hook.register(lambda: None)
    hook.unregister()


def test_incomplete_hook_cannot_be_built():
    class OnlyRegister(ShutdownHook):
        def register(self, callback) -> None:
            pass

    with pytest.raises(TypeError):
        OnlyRegister()
