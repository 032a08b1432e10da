"""Persistence contract consulted by the run coordinator."""

import abc
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional

from cellflow.models import (
    Cell,
    CellResult,
    CellStatus,
    Notebook,
    NotebookStatus,
    Run,
    RunEvent,
    TriggerType,
)


class PersistenceAdapter(abc.ABC):
    """Records notebook, cell and run state.

    Implementations raise PersistenceError (or NotebookNotFoundError) on any
    failure; the coordinator treats those as fatal to the run.
    """

    @abc.abstractmethod
    def get_notebook(self, notebook_id: str) -> Notebook:
        ...

    @abc.abstractmethod
    def save_notebook(self, notebook: Notebook) -> Notebook:
        ...

    @abc.abstractmethod
    def list_notebooks(self) -> list[Notebook]:
        ...

    @abc.abstractmethod
    def update_notebook_status(
        self,
        notebook_id: str,
        status: NotebookStatus,
        last_run_at: Optional[datetime] = None,
        last_run_duration_ms: Optional[int] = None,
    ) -> None:
        ...

    @abc.abstractmethod
    def get_cell(self, cell_id: str) -> Cell:
        ...

    @abc.abstractmethod
    def update_cell_status(
        self,
        cell_id: str,
        status: CellStatus,
        output: Any = None,
        error_message: Optional[str] = None,
    ) -> Cell:
        ...

    @abc.abstractmethod
    def update_cell_result(self, cell_id: str, result: CellResult) -> Cell:
        ...

    @abc.abstractmethod
    def append_cell_log(self, cell_id: str, entry: dict) -> None:
        ...

    @abc.abstractmethod
    def get_completed_output(self, cell_id: str) -> Any:
        """Persisted output of a completed cell, or None."""
        ...

    @abc.abstractmethod
    def next_run_number(self, notebook_id: str) -> int:
        ...

    @abc.abstractmethod
    def create_run(
        self,
        notebook_id: str,
        run_number: int,
        cells_total: int,
        trigger_type: TriggerType = "manual",
    ) -> Run:
        ...

    @abc.abstractmethod
    def update_run(self, run_id: str, **fields: Any) -> Run:
        ...

    @abc.abstractmethod
    def get_run(self, run_id: str) -> Run:
        ...

    @abc.abstractmethod
    def list_runs(self, notebook_id: str) -> list[Run]:
        ...

    @abc.abstractmethod
    def append_event(self, event: RunEvent) -> None:
        ...

    @abc.abstractmethod
    def list_events(self, run_id: str) -> list[RunEvent]:
        ...

    def latest_paused_run(self, notebook_id: str, cell_id: Optional[str] = None) -> Optional[Run]:
        """Most recently started paused run of a notebook, if any.

        Args:
            notebook_id: Notebook whose runs to search
            cell_id: Only consider runs paused at this cell
        """
        paused = [
            run
            for run in self.list_runs(notebook_id)
            if run.status == "paused" and (cell_id is None or run.paused_cell_id == cell_id)
        ]
        if not paused:
            return None
        return max(paused, key=lambda r: r.started_at)

    @contextmanager
    def exclusive(self, notebook_id: str) -> Iterator[None]:
        """Hold a notebook exclusively for the duration of a run or resolution.

        Stores shared between processes override this with an OS-level lock
        and refresh the notebook from durable storage once it is held.
        """
        yield
