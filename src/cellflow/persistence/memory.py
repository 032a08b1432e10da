"""In-memory persistence adapter."""

import logging
import threading
import uuid
from datetime import UTC, datetime
from typing import Any, Optional

from pydantic import ValidationError

from cellflow import CellNotFoundError, NotebookNotFoundError, PersistenceError
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
from cellflow.persistence.base import PersistenceAdapter

logger = logging.getLogger(__name__)


class InMemoryStore(PersistenceAdapter):
    """Thread-safe store keeping notebooks, runs and events in memory.

    Callers always receive copies; mutations go through the adapter methods.
    Subclasses hook _persist_notebook / _persist_runs / _persist_event to
    write state through to durable storage.
    """

    def __init__(self) -> None:
        self._notebooks: dict[str, Notebook] = {}
        self._cell_owner: dict[str, str] = {}
        self._runs: dict[str, Run] = {}
        self._events: list[RunEvent] = []
        self._lock = threading.RLock()

    # Notebooks

    def get_notebook(self, notebook_id: str) -> Notebook:
        with self._lock:
            return self._get_notebook(notebook_id).model_copy(deep=True)

    def save_notebook(self, notebook: Notebook) -> Notebook:
        with self._lock:
            for cell in notebook.cells:
                owner = self._cell_owner.get(cell.id)
                if owner is not None and owner != notebook.id:
                    raise PersistenceError(f"Cell {cell.id} already belongs to notebook {owner}")

            previous = self._notebooks.get(notebook.id)
            if previous is not None:
                for cell in previous.cells:
                    self._cell_owner.pop(cell.id, None)

            stored = notebook.model_copy(deep=True)
            for cell in stored.cells:
                cell.notebook_id = stored.id
                self._cell_owner[cell.id] = stored.id
            self._notebooks[stored.id] = stored
            self._persist_notebook(stored.id)
            return stored.model_copy(deep=True)

    def list_notebooks(self) -> list[Notebook]:
        with self._lock:
            return [nb.model_copy(deep=True) for nb in self._notebooks.values()]

    def update_notebook_status(
        self,
        notebook_id: str,
        status: NotebookStatus,
        last_run_at: Optional[datetime] = None,
        last_run_duration_ms: Optional[int] = None,
    ) -> None:
        with self._lock:
            notebook = self._get_notebook(notebook_id)
            notebook.status = status
            if last_run_at is not None:
                notebook.last_run_at = last_run_at
            if last_run_duration_ms is not None:
                notebook.last_run_duration_ms = last_run_duration_ms
            self._persist_notebook(notebook_id)

    # Cells

    def get_cell(self, cell_id: str) -> Cell:
        with self._lock:
            return self._get_cell(cell_id).model_copy(deep=True)

    def update_cell_status(
        self,
        cell_id: str,
        status: CellStatus,
        output: Any = None,
        error_message: Optional[str] = None,
    ) -> Cell:
        with self._lock:
            cell = self._get_cell(cell_id)
            now = datetime.now(UTC)

            cell.status = status
            if status == "running":
                cell.started_at = now
                cell.error_message = None
            elif status == "completed":
                cell.completed_at = now
            if output is not None:
                cell.output = output
            if error_message is not None:
                cell.error_message = error_message

            self._persist_notebook(cell.notebook_id)
            return cell.model_copy(deep=True)

    def update_cell_result(self, cell_id: str, result: CellResult) -> Cell:
        with self._lock:
            cell = self._get_cell(cell_id)

            cell.status = "completed"
            cell.output = result.output
            cell.output_type = result.output_type
            cell.reasoning = result.reasoning
            cell.tokens_input = result.tokens_input
            cell.tokens_output = result.tokens_output
            cell.cost = result.cost
            cell.tools_used = list(result.tools_used)
            cell.duration_ms = result.duration_ms
            cell.completed_at = datetime.now(UTC)
            cell.error_message = None
            if result.provider_metrics:
                cell.execution_log.append({"type": "provider_call", **result.provider_metrics})

            self._persist_notebook(cell.notebook_id)
            return cell.model_copy(deep=True)

    def append_cell_log(self, cell_id: str, entry: dict) -> None:
        with self._lock:
            cell = self._get_cell(cell_id)
            cell.execution_log.append(dict(entry))
            self._persist_notebook(cell.notebook_id)

    def get_completed_output(self, cell_id: str) -> Any:
        with self._lock:
            owner = self._cell_owner.get(cell_id)
            if owner is None:
                return None
            cell = self._get_cell(cell_id)
            if cell.status != "completed" or cell.output is None:
                return None
            return cell.model_copy(deep=True).output

    # Runs

    def next_run_number(self, notebook_id: str) -> int:
        with self._lock:
            self._get_notebook(notebook_id)
            numbers = [r.run_number for r in self._runs.values() if r.notebook_id == notebook_id]
            return max(numbers, default=0) + 1

    def create_run(
        self,
        notebook_id: str,
        run_number: int,
        cells_total: int,
        trigger_type: TriggerType = "manual",
    ) -> Run:
        with self._lock:
            self._get_notebook(notebook_id)
            run = Run(
                id=str(uuid.uuid4()),
                notebook_id=notebook_id,
                run_number=run_number,
                cells_total=cells_total,
                trigger_type=trigger_type,
            )
            self._runs[run.id] = run
            self._persist_runs(notebook_id)
            return run.model_copy()

    def update_run(self, run_id: str, **fields: Any) -> Run:
        with self._lock:
            run = self._get_run(run_id)
            unknown = set(fields) - set(Run.model_fields)
            if unknown:
                raise PersistenceError(f"Unknown run fields: {sorted(unknown)}")

            data = run.model_dump()
            data.update(fields)
            try:
                updated = Run.model_validate(data)
            except ValidationError as e:
                raise PersistenceError(f"Invalid update for run {run_id}: {e}") from e

            self._runs[run_id] = updated
            self._persist_runs(updated.notebook_id)
            return updated.model_copy()

    def get_run(self, run_id: str) -> Run:
        with self._lock:
            return self._get_run(run_id).model_copy()

    def list_runs(self, notebook_id: str) -> list[Run]:
        with self._lock:
            runs = [r.model_copy() for r in self._runs.values() if r.notebook_id == notebook_id]
            return sorted(runs, key=lambda r: r.run_number)

    # Events

    def append_event(self, event: RunEvent) -> None:
        with self._lock:
            self._events.append(event)
            self._persist_event(event)

    def list_events(self, run_id: str) -> list[RunEvent]:
        with self._lock:
            return [e.model_copy() for e in self._events if e.run_id == run_id]

    # Internal helpers

    def _get_notebook(self, notebook_id: str) -> Notebook:
        notebook = self._notebooks.get(notebook_id)
        if notebook is None:
            raise NotebookNotFoundError(f"Notebook not found: {notebook_id}")
        return notebook

    def _get_cell(self, cell_id: str) -> Cell:
        owner = self._cell_owner.get(cell_id)
        if owner is None:
            raise CellNotFoundError(f"Cell not found: {cell_id}")
        cell = self._get_notebook(owner).get_cell(cell_id)
        if cell is None:
            raise PersistenceError(f"Cell index out of sync for {cell_id}")
        return cell

    def _get_run(self, run_id: str) -> Run:
        run = self._runs.get(run_id)
        if run is None:
            raise PersistenceError(f"Run not found: {run_id}")
        return run

    def _persist_notebook(self, notebook_id: str) -> None:
        pass

    def _persist_runs(self, notebook_id: str) -> None:
        pass

    def _persist_event(self, event: RunEvent) -> None:
        pass
