"""Per-notebook run exclusivity."""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from cellflow import NotebookLockedError

logger = logging.getLogger(__name__)


class NotebookLockRegistry:
    """Process-wide advisory locks keyed by notebook id.

    A notebook's lock is held for the whole of a run invocation so two runs
    never interleave their output maps or persisted state.
    """

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, notebook_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(notebook_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[notebook_id] = lock
            return lock

    def is_locked(self, notebook_id: str) -> bool:
        return self._lock_for(notebook_id).locked()

    @contextmanager
    def hold(self, notebook_id: str) -> Iterator[None]:
        """Hold the notebook's lock, failing fast if another run has it.

        Raises:
            NotebookLockedError: If a run of this notebook is already active
        """
        lock = self._lock_for(notebook_id)
        if not lock.acquire(blocking=False):
            raise NotebookLockedError(f"Notebook {notebook_id} already has an active run")
        logger.debug(f"Acquired run lock for notebook {notebook_id}")
        try:
            yield
        finally:
            lock.release()
            logger.debug(f"Released run lock for notebook {notebook_id}")


# Shared across coordinators in this process
_default_registry = NotebookLockRegistry()


def get_lock_registry() -> NotebookLockRegistry:
    return _default_registry
