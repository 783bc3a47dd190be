"""
One-shot flush scheduling.

A single pending timer triggers a flush attempt. The timer never repeats; it
is armed again only by an explicit call, e.g. when the user opts in.
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    """Lifecycle of the flush timer."""
    DISABLED = "disabled"  # No timer pending
    ARMED = "armed"        # One-shot timer pending
    FLUSHING = "flushing"  # Timer fired, flush running


class FlushScheduler:
    """Holds at most one pending flush timer.

    Arming replaces any pending timer. Cancelling stops a pending timer but
    leaves a flush that already started to run to completion.
    """

    def __init__(
        self,
        callback: Callable[[], Any],
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        """Initialize the scheduler.

        Args:
            callback: Flush action to run when the timer fires
            timer_factory: Builds a timer as ``timer_factory(seconds, function)``;
                the result needs ``start()`` and ``cancel()``
        """
        self._callback = callback
        self._timer_factory = timer_factory
        self._timer: Optional[Any] = None
        self._state = SchedulerState.DISABLED
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_armed(self) -> bool:
        return self._state == SchedulerState.ARMED

    def arm(self, delay_seconds: float) -> None:
        """Schedule a flush ``delay_seconds`` from now.

        Args:
            delay_seconds: Delay before the flush runs

        Raises:
            ValueError: If delay_seconds is negative
        """
        if delay_seconds < 0:
            raise ValueError("delay_seconds cannot be negative")

        logger.debug("Scheduling usage flush in %s seconds", delay_seconds)
        with self._lock:
            self._cancel_timer()
            self._generation += 1
            generation = self._generation
            timer = self._timer_factory(delay_seconds, lambda: self._fire(generation))
            if hasattr(timer, "daemon"):
                timer.daemon = True
            self._timer = timer
            self._state = SchedulerState.ARMED
            timer.start()

    def cancel(self) -> None:
        """Stop the pending timer, if any."""
        with self._lock:
            self._cancel_timer()
            self._state = SchedulerState.DISABLED

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, generation: int) -> None:
        # Drop the handle before flushing so the same timer cannot fire twice
        with self._lock:
            if generation != self._generation or self._timer is None:
                return
            self._timer = None
            self._state = SchedulerState.FLUSHING

        try:
            self._callback()
        except Exception:
            logger.debug("Usage flush failed", exc_info=True)
        finally:
            with self._lock:
                if self._state == SchedulerState.FLUSHING:
                    self._state = SchedulerState.DISABLED
