"""
Layer 2 — Countdown Sequencer
Turns a capture trigger into a capture signal after a fixed number of
one-second ticks.
"""
import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def timer_scheduler(interval: float, callback: Callable[[], None]):
    """Default scheduler: one-shot daemon threading.Timer."""
    timer = threading.Timer(interval, callback)
    timer.daemon = True
    timer.start()
    return timer


class CountdownSequencer:
    """
    Discrete tick timer.

    activate() schedules a tick every `interval` seconds. The counter starts
    at `duration` and drops by one per tick; when it would reach zero the
    sequencer stops, resets the counter and calls `on_complete` once.
    deactivate() cancels the pending tick without completing.

    The scheduler is any callable (interval, callback) -> handle with a
    cancel() method.
    """

    def __init__(
        self,
        on_complete: Callable[[], None],
        duration: int = 3,
        interval: float = 1.0,
        scheduler: Optional[Callable] = None,
        on_tick: Optional[Callable[[int], None]] = None,
    ):
        if duration < 1:
            raise ValueError(f"Countdown duration must be at least 1, got {duration}")

        self.on_complete = on_complete
        self.on_tick = on_tick
        self.duration = duration
        self.interval = interval
        self.scheduler = scheduler or timer_scheduler

        self.count = duration
        self._active = False
        self._pending = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def is_active(self) -> bool:
        return self._active

    def activate(self) -> bool:
        """
        Start counting down.

        Returns:
            bool: False if already active (no effect)
        """
        with self._lock:
            if self._active:
                return False
            self._active = True
            self.count = self.duration
            self._generation += 1
            self._schedule(self._generation)

        logger.info(f"Countdown started ({self.duration}s)")
        if self.on_tick:
            self.on_tick(self.duration)
        return True

    def deactivate(self) -> bool:
        """
        Cancel the countdown without completing.

        Returns:
            bool: False if it was not active
        """
        with self._lock:
            if not self._active:
                return False
            self._stop()

        logger.info("Countdown cancelled")
        return True

    def set_duration(self, duration: int):
        """Takes effect on the next activation."""
        if duration < 1:
            raise ValueError(f"Countdown duration must be at least 1, got {duration}")
        with self._lock:
            self.duration = duration
            if not self._active:
                self.count = duration

    def _schedule(self, generation: int):
        self._pending = self.scheduler(self.interval, lambda: self._tick(generation))

    def _stop(self):
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._active = False
        self.count = self.duration
        self._generation += 1

    def _tick(self, generation: int):
        with self._lock:
            # Tick from a cancelled activation
            if not self._active or generation != self._generation:
                return

            if self.count <= 1:
                self._stop()
                completed = True
                remaining = 0
            else:
                self.count -= 1
                remaining = self.count
                completed = False
                self._schedule(generation)

        # Callbacks run outside the lock; on_complete may re-enter the session
        if self.on_tick:
            self.on_tick(remaining)
        if completed:
            logger.info("Countdown complete")
            self.on_complete()
