"""
Sync Scheduler

Background thread that runs the Synchronization Engine on a fixed interval
through the StateManager. One scheduler instance per process; start() is
idempotent and stop() leaves the last persisted snapshot untouched.
"""

import logging
import threading
from datetime import datetime
from typing import Optional

from control.state_manager import StateManager
from control.sync_engine import SyncEngine

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Drive SyncEngine ticks from a daemon thread.
    """

    def __init__(self, manager: StateManager, engine: SyncEngine, interval_seconds: float = 600):
        """
        Initialize sync scheduler.

        Args:
            manager: StateManager owning the canonical snapshot
            engine: SyncEngine applied on each tick
            interval_seconds: Seconds between ticks (default 600s)
        """
        self.manager = manager
        self.engine = engine
        self.interval = interval_seconds

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_tick_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

        logger.info(f"Sync scheduler initialized: interval={interval_seconds}s")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start the sync loop (no-op if already running)"""
        with self._lock:
            if self.running:
                logger.warning("Sync scheduler already running")
                return

            self._stop_event = threading.Event()
            self._thread = threading.Thread(target=self._run, args=(self._stop_event,), name="sync-scheduler", daemon=True)
            self._thread.start()

        logger.info("Sync scheduler started")

    def stop(self, timeout: float = 5):
        """
        Stop the sync loop; no state is written on the way out.

        If a tick is still in flight after `timeout`, the thread stays
        registered (running stays True) so start() cannot spawn a second loop.
        """
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()
            if thread is not threading.current_thread():
                thread.join(timeout=timeout)
                if thread.is_alive():
                    logger.warning(f"Sync scheduler did not stop within {timeout}s; tick still in flight")
                    return
            self._thread = None

        logger.info("Sync scheduler stopped")

    def tick(self):
        """
        Run one synchronization pass immediately.

        Usage is measured from a fresh snapshot before the state lock is
        taken, so slow upstream metering never blocks other writers.
        """
        increments = self.engine.measure(self.manager.current())
        state = self.manager.apply(self.engine.run_tick, increments=increments)
        self.last_tick_at = state.last_sync_time
        self.last_error = None
        logger.debug(f"Sync tick complete at {state.last_sync_time.isoformat()}")
        return state

    def _run(self, stop_event: threading.Event):
        """Main loop (runs in background thread)"""
        while not stop_event.wait(self.interval):
            try:
                self.tick()
            except Exception as e:
                self.last_error = str(e)
                logger.error(f"Sync tick error: {e}", exc_info=True)
