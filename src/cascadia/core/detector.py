"""Periodic change detection over a configuration's merged view."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, List, Optional

from .changes import ChangeSet, ChangeSetBuilder
from .configuration import Configuration
from .errors import InvalidStateError
from .types import ConfigurationSnapshot

logger = logging.getLogger(__name__)

START_DELAY = 5.0
RESTART_DELAY = 0.5
DEFAULT_POLL_INTERVAL = 2.0

ChangeListener = Callable[[ChangeSet], None]


class DetectorState(str, Enum):
    IDLE = "idle"
    OBSERVING = "observing"
    SUSPENDED = "suspended"


class ChangeDetector:
    """Polls a configuration, diffs snapshots and publishes change-sets.

    Only the previous snapshot is kept; each tick compares it with a fresh
    one and then replaces it, whether or not anything changed.

    Args:
        configuration: Configuration to observe.
        poll_interval: Seconds between ticks.
        start_delay: Seconds before the first tick after ``enable()``.
    """

    def __init__(
        self,
        configuration: Configuration,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        start_delay: float = START_DELAY,
    ):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.configuration = configuration
        self._poll_interval = poll_interval
        self.start_delay = start_delay
        self._state = DetectorState.IDLE
        self._last_snapshot: Optional[ConfigurationSnapshot] = None
        self._listeners: List[ChangeListener] = []
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.RLock()
        self._tick_lock = threading.RLock()

    # ---- state ----
    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def is_observing(self) -> bool:
        return self._state is DetectorState.OBSERVING

    @property
    def last_snapshot(self) -> Optional[ConfigurationSnapshot]:
        return self._last_snapshot

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    def enable(self) -> None:
        """Start observing; the first tick runs after ``start_delay``."""
        with self._lock:
            if self._state is DetectorState.OBSERVING:
                return
            if self._state is DetectorState.SUSPENDED:
                raise InvalidStateError("Detector is suspended, use resume()")
            self._state = DetectorState.OBSERVING
            logger.info(
                "Observing configuration changes every %s s (first check in %s s)",
                self._poll_interval,
                self.start_delay,
            )
            self._schedule(self.start_delay)

    def disable(self) -> None:
        with self._lock:
            self._cancel()
            self._state = DetectorState.IDLE

    def suspend(self) -> None:
        with self._lock:
            if self._state is not DetectorState.OBSERVING:
                raise InvalidStateError(f"Cannot suspend a detector in state {self._state.value}")
            self._cancel()
            self._state = DetectorState.SUSPENDED

    def resume(self) -> None:
        with self._lock:
            if self._state is not DetectorState.SUSPENDED:
                raise InvalidStateError(f"Cannot resume a detector in state {self._state.value}")
            self._state = DetectorState.OBSERVING
            self._schedule(RESTART_DELAY)

    def reset(self) -> None:
        """Force the detector back to idle and forget the previous snapshot."""
        with self._lock:
            self._cancel()
            self._state = DetectorState.IDLE
            self._last_snapshot = None

    def close(self) -> None:
        self.disable()

    def set_poll_interval(self, seconds: float) -> None:
        """Change the tick period; a pending tick is rescheduled shortly."""
        if seconds <= 0:
            raise ValueError("poll_interval must be positive")
        with self._lock:
            logger.debug("Resetting poll interval to %s s", seconds)
            self._poll_interval = seconds
            if self._state is DetectorState.OBSERVING:
                self._cancel()
                self._schedule(RESTART_DELAY)

    # ---- listeners ----
    def add_listener(self, listener: ChangeListener) -> None:
        with self._lock:
            if not any(existing is listener for existing in self._listeners):
                self._listeners = self._listeners + [listener]

    def remove_listener(self, listener: ChangeListener) -> None:
        with self._lock:
            self._listeners = [existing for existing in self._listeners if existing is not listener]

    @property
    def listeners(self) -> List[ChangeListener]:
        return list(self._listeners)

    # ---- polling ----
    def _schedule(self, delay: float) -> None:
        # caller holds self._lock
        timer = threading.Timer(delay, self._run_tick)
        timer.daemon = True
        timer.name = "cascadia-change-detector"
        self._timer = timer
        timer.start()

    def _cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _run_tick(self) -> None:
        with self._lock:
            if self._state is not DetectorState.OBSERVING:
                return
            timer = self._timer
        try:
            self.check_for_changes()
        except Exception:
            logger.exception("Configuration change check failed")
        with self._lock:
            # reschedule only if nobody cancelled or replaced this timer meanwhile
            if self._state is DetectorState.OBSERVING and self._timer is timer:
                self._schedule(self._poll_interval)

    def check_for_changes(self) -> Optional[ChangeSet]:
        """Run one detection tick.

        Returns:
            The published change-set, or None if nothing changed or this was
            the first snapshot.
        """
        with self._tick_lock:
            logger.debug("Checking configuration for changes...")
            self.configuration.aggregator.invalidate()
            current = self.configuration.get_snapshot()
            previous = self._last_snapshot
            changes: Optional[ChangeSet] = None
            if previous is not None:
                built = ChangeSetBuilder.of(previous).add_changes(current).build()
                if not built.is_empty():
                    changes = built
            self._last_snapshot = current
            if changes is not None:
                logger.info("Identified configuration changes, publishing: %r", changes)
                self._publish(changes)
        return changes

    def _publish(self, changes: ChangeSet) -> None:
        for listener in self._listeners:
            try:
                listener(changes)
            except Exception:
                logger.exception("Change listener %r failed", listener)
