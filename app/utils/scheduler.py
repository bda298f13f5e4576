"""
Clock and deferred-execution primitives

The engine never calls datetime.now() or asyncio directly; it receives a
Clock and a Scheduler so tests can swap in virtual time.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional, Protocol

from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class ScheduledHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def after(self, delay_seconds: float, fn: Callable[[], None]) -> ScheduledHandle:
        ...

    def every(
        self,
        interval_seconds: float,
        fn: Callable[[], None],
        initial_delay: Optional[float] = None,
    ) -> ScheduledHandle:
        ...


class SystemClock:
    """Wall-clock UTC time"""

    def now(self) -> datetime:
        return utcnow()


def _report_failure(future: asyncio.Future) -> None:
    """Done-callback for work handed to the executor"""
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error(f"Scheduled task failed: {str(exc)}", exc_info=exc)


def _dispatch(loop: asyncio.AbstractEventLoop, fn: Callable[[], None]) -> asyncio.Future:
    """Run blocking work (sessions, commits) on the default thread pool"""
    future = loop.run_in_executor(None, fn)
    future.add_done_callback(_report_failure)
    return future


class _RepeatingHandle:
    """
    Re-arms itself after each run finishes until cancelled

    The next run is armed only once the previous one has completed, so runs
    never overlap.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, fn: Callable[[], None]):
        self._loop = loop
        self._interval = interval
        self._fn = fn
        self._timer: Optional[asyncio.TimerHandle] = None
        self._cancelled = False

    def arm(self, delay: float) -> None:
        if not self._cancelled:
            self._timer = self._loop.call_later(delay, self._run)

    def _run(self) -> None:
        if self._cancelled:
            return
        _dispatch(self._loop, self._fn).add_done_callback(self._finished)

    def _finished(self, future: asyncio.Future) -> None:
        self.arm(self._interval)

    def cancel(self) -> None:
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()


class AsyncioScheduler:
    """
    Scheduler backed by the running asyncio event loop

    Timers live in process memory only: anything scheduled is lost on restart.
    The loop only keeps time; callbacks run on its default executor so a
    sweep or deferred grant never blocks request handling. Failures are
    logged, never raised.
    """

    def __init__(self):
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Attach to a loop (called on application startup)"""
        self._loop = loop or asyncio.get_running_loop()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def after(self, delay_seconds: float, fn: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._get_loop()
        return loop.call_later(delay_seconds, _dispatch, loop, fn)

    def every(
        self,
        interval_seconds: float,
        fn: Callable[[], None],
        initial_delay: Optional[float] = None,
    ) -> _RepeatingHandle:
        handle = _RepeatingHandle(self._get_loop(), interval_seconds, fn)
        handle.arm(interval_seconds if initial_delay is None else initial_delay)
        return handle


# Global instances
system_clock = SystemClock()
scheduler = AsyncioScheduler()
