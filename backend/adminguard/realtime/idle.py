"""Idle tracking for a live admin page connection.

The browser reports user activity over the presence WebSocket; the tracker
polls on a fixed interval and fires ``on_idle`` once the gap since the last
activity reaches the threshold. Detection can therefore lag the threshold by
up to one poll interval.
"""
import asyncio
import inspect
import time
from typing import Any, Callable, Optional

from adminguard.config import settings
from adminguard.middleware.monitoring import record_idle_timeout
from adminguard.utils.logger import logger

ACTIVITY_SIGNALS = frozenset({"mousedown", "mousemove", "keypress", "scroll", "touchstart"})


class Registration:
    """Handle returned by :meth:`IdleTracker.start`; disposing stops the tracker."""

    def __init__(self, tracker: "IdleTracker"):
        self._tracker = tracker

    def dispose(self) -> None:
        self._tracker.stop()

    def __enter__(self) -> "Registration":
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()


class IdleTracker:
    def __init__(
        self,
        on_idle: Callable[[], Any],
        threshold_seconds: Optional[float] = None,
        poll_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        admin_id: Optional[str] = None,
    ):
        self.on_idle = on_idle
        self.threshold_seconds = (
            settings.IDLE_TIMEOUT_MINUTES * 60 if threshold_seconds is None else threshold_seconds
        )
        self.poll_seconds = settings.IDLE_POLL_SECONDS if poll_seconds is None else poll_seconds
        self.clock = clock
        self.admin_id = admin_id
        self.last_activity = clock()
        self.fired = False
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopped

    def record_activity(self, signal: str) -> bool:
        """Reset the idle clock. Unknown signals are ignored."""
        if signal not in ACTIVITY_SIGNALS or self.fired:
            return False
        self.last_activity = self.clock()
        return True

    def idle_seconds(self) -> float:
        return self.clock() - self.last_activity

    async def check(self) -> bool:
        """Fire ``on_idle`` if the threshold has been reached. Fires at most once."""
        if self.fired:
            return True
        if self.idle_seconds() < self.threshold_seconds:
            return False

        self.fired = True
        self.stop()
        record_idle_timeout()
        logger.info(
            "Idle timeout reached",
            extra={"admin_id": self.admin_id, "reason": "idle"},
        )
        result = self.on_idle()
        if inspect.isawaitable(result):
            await result
        return True

    def start(self) -> Registration:
        """Begin polling on the running event loop."""
        if self._task is None and not self._stopped:
            self.last_activity = self.clock()
            self._task = asyncio.get_running_loop().create_task(self._poll())
        return Registration(self)

    def stop(self) -> None:
        """Stop polling. Safe to call repeatedly and from inside ``on_idle``."""
        self._stopped = True
        task = self._task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def _poll(self) -> None:
        try:
            while not self._stopped:
                await asyncio.sleep(self.poll_seconds)
                if self._stopped:
                    break
                if await self.check():
                    break
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            logger.error(
                f"Idle timeout handler failed: {exc}",
                extra={"admin_id": self.admin_id},
                exc_info=True,
            )
