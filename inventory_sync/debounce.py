"""
Per-channel debouncing of refresh triggers.

Rapid user actions (tab switching, warehouse switching) each call
`schedule`; only the most recent operation for a channel runs, once the
channel has been quiet for the debounce delay.
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Optional, Set

from config.settings import settings

logger = logging.getLogger("sync.debounce")


class ScheduledTask:
    """
    Cancel handle for one scheduled operation.

    Once the timer fires the operation runs to completion; cancelling the
    handle afterwards has no effect on it.
    """

    def __init__(self, channel: str):
        self.channel = channel
        self._timer: Optional[asyncio.TimerHandle] = None
        self._cancelled = False
        self._fired = False
        self.task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def pending(self) -> bool:
        return not (self._cancelled or self._fired)

    def cancel(self) -> bool:
        """Cancel the timer. Returns False if it already fired or was cancelled."""
        if not self.pending:
            return False
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
        return True


class DebounceScheduler:
    """
    Cancellable deferred operations, at most one pending per channel.

    Scheduling on a channel cancels whatever is pending there, so only the
    latest operation ever executes. Operations may be plain callables or
    coroutine functions; a coroutine is run as its own task.

    Usage:
        scheduler = DebounceScheduler()
        scheduler.schedule("warehouse-tab", service.load, ResourceType.INVENTORY)
    """

    def __init__(self, delay: Optional[float] = None):
        """
        Initialize the scheduler.

        Args:
            delay: Default quiet period in seconds (default from settings)
        """
        self._delay = settings.debounce_delay_seconds if delay is None else delay
        self._pending: Dict[str, ScheduledTask] = {}
        self._running: Set[asyncio.Task] = set()

    @property
    def delay(self) -> float:
        return self._delay

    def schedule(
        self,
        channel: str,
        operation: Callable[..., Any],
        *args: Any,
        delay: Optional[float] = None,
        **kwargs: Any,
    ) -> ScheduledTask:
        """
        (Re)schedule `operation(*args, **kwargs)` on `channel`.

        Must be called from a running event loop.

        Returns:
            Handle that can cancel this particular scheduling
        """
        loop = asyncio.get_running_loop()
        if self.cancel(channel):
            logger.debug(f"Rescheduling '{channel}', previous timer cleared")

        wait = self._delay if delay is None else delay
        handle = ScheduledTask(channel)
        handle._timer = loop.call_later(wait, self._fire, handle, operation, args, kwargs)
        self._pending[channel] = handle
        return handle

    def _fire(
        self,
        handle: ScheduledTask,
        operation: Callable[..., Any],
        args: tuple,
        kwargs: dict,
    ) -> None:
        if self._pending.get(handle.channel) is handle:
            del self._pending[handle.channel]
        if handle.cancelled:
            return

        handle._fired = True
        logger.debug(f"Debounce complete for '{handle.channel}', running operation")
        result = operation(*args, **kwargs)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            handle.task = task
            self._running.add(task)
            task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._running.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Debounced operation failed: {task.exception()!r}")

    def cancel(self, channel: str) -> bool:
        """Remove the pending timer for `channel`, if any."""
        handle = self._pending.pop(channel, None)
        if handle is None:
            return False
        return handle.cancel()

    def cancel_all(self) -> int:
        """Cancel every pending timer, e.g. when the owning view goes away."""
        count = 0
        for channel in list(self._pending):
            if self.cancel(channel):
                count += 1
        return count

    def is_pending(self, channel: str) -> bool:
        handle = self._pending.get(channel)
        return handle is not None and handle.pending

    async def drain(self) -> None:
        """Wait for operations that already fired to finish."""
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)
