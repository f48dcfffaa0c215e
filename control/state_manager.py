"""
Single-writer owner of the canonical AppState.

Every mutation (admin action, user action or sync tick) goes through
apply(): under one lock it re-reads the latest persisted snapshot, runs the
pure operation, and persists the result only if the operation produced a new
object. Nothing computes from a cached snapshot, so a timer tick can never
overwrite an admin edit with stale data.

Operations run under the lock must not do network I/O; the sync scheduler
measures usage before calling apply().
"""

import logging
import threading
from typing import Callable

from control.models import AppState
from control.store import StateStore

logger = logging.getLogger(__name__)


class StateManager:

    def __init__(self, store: StateStore):
        self.store = store
        self._lock = threading.RLock()

    def current(self) -> AppState:
        with self._lock:
            return self.store.load_state()

    def apply(self, operation: Callable[..., AppState], *args, **kwargs) -> AppState:
        """
        Run `operation(latest_state, *args, **kwargs)` and persist its result.

        Returns the snapshot as persisted (equal to what current() returns next).

        Raises:
            ValidationError / ConflictError / AuthenticationError: from the operation; nothing is saved
            PersistenceError: the new snapshot could not be written
        """
        with self._lock:
            state = self.store.load_state()
            new_state = operation(state, *args, **kwargs)
            if new_state is state:
                return state
            return self.store.save_state(new_state)
