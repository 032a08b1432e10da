"""Run coordination: state machine, locking and the run loop."""

from cellflow.run.coordinator import RunCoordinator
from cellflow.run.locks import NotebookLockRegistry

__all__ = ["NotebookLockRegistry", "RunCoordinator"]
