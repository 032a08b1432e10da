"""Run coordinator: executes a notebook's selected cells as one run."""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Optional

from cellflow import (
    CellNotFoundError,
    ConfigurationError,
    ExecutorError,
    RunCancelledError,
    UnresolvedPlaceholderError,
)
from cellflow.config import CellFlowConfig, get_config
from cellflow.execution.executor import CellExecutor
from cellflow.graph.cells import GraphModel, Selection
from cellflow.models import (
    CancelledResponse,
    Cell,
    CellResult,
    CompletedResponse,
    FailedResponse,
    PausedResponse,
    Run,
    RunEvent,
    RunRequest,
    RunResponse,
)
from cellflow.persistence.base import PersistenceAdapter
from cellflow.providers.base import TextProvider
from cellflow.run.locks import NotebookLockRegistry, get_lock_registry
from cellflow.run.state import check_cell_transition, check_run_transition
from cellflow.templating.interpolator import bind

logger = logging.getLogger(__name__)


@dataclass
class _RunState:
    """Mutable bookkeeping for one invocation."""

    run: Run
    started: float
    output_map: dict[str, Any] = field(default_factory=dict)
    cells_completed: int = 0
    cells_failed: int = 0
    cells_skipped: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0

    def counts(self) -> dict[str, Any]:
        return {
            "cells_completed": self.cells_completed,
            "cells_failed": self.cells_failed,
            "cells_skipped": self.cells_skipped,
            "total_tokens": self.total_tokens,
            "total_cost": self.total_cost,
        }

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)


class RunCoordinator:
    """Execute notebooks cell by cell, in index order, in a single pass.

    Cells whose dependencies have not completed are skipped. Approval cells
    pause the run unless the request bypasses approvals. The first cell that
    fails after its retries halts the run. Every status change is persisted
    and recorded as a run event.
    """

    def __init__(
        self,
        store: PersistenceAdapter,
        executor: CellExecutor,
        locks: Optional[NotebookLockRegistry] = None,
        strict_dependencies: bool = False,
        strict_placeholders: bool = False,
    ):
        """Initialize run coordinator.

        Args:
            store: Persistence adapter for notebooks, cells and runs
            executor: Cell executor
            locks: Per-notebook lock registry (process-wide default if None)
            strict_dependencies: Reject dependencies on unknown cells
            strict_placeholders: Fail cells whose content has unresolved placeholders
        """
        self.store = store
        self.executor = executor
        self.locks = locks or get_lock_registry()
        self.strict_dependencies = strict_dependencies
        self.strict_placeholders = strict_placeholders

    @classmethod
    def from_config(
        cls,
        store: PersistenceAdapter,
        provider: Optional[TextProvider] = None,
        config: Optional[CellFlowConfig] = None,
    ) -> "RunCoordinator":
        """Build a coordinator from configuration.

        A Claude provider is created when none is given.

        Raises:
            ConfigurationError: If no provider is given and no API key is configured
        """
        config = config or get_config()
        if provider is None:
            if not config.anthropic_api_key:
                raise ConfigurationError(
                    "API key not found. Set CELLFLOW_ANTHROPIC_API_KEY environment variable."
                )
            from cellflow.providers.claude import ClaudeProvider

            provider = ClaudeProvider(
                api_key=config.anthropic_api_key,
                model=config.model,
                max_tokens=config.max_tokens,
            )

        executor = CellExecutor(
            provider,
            chars_per_token=config.chars_per_token,
            cost_per_token=config.cost_per_token,
        )
        return cls(
            store,
            executor,
            strict_dependencies=config.strict_dependencies,
            strict_placeholders=config.strict_placeholders,
        )

    def run(
        self,
        notebook_id: str,
        request: Optional[RunRequest] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunResponse:
        """Execute a notebook run.

        Args:
            notebook_id: Notebook to run
            request: Full run (default), single cell, or run-from; approval bypass
            cancel_event: Set to cancel the run cooperatively

        Returns:
            RunResponse: Paused, failed, completed or cancelled

        Raises:
            NotebookLockedError: If the notebook already has an active run, here or in another process
            DependencyConfigError: If dependencies are cyclic (or unknown, when strict)
            CellNotFoundError: If the requested cell does not exist
            PersistenceError: If the store fails; the run cannot continue
        """
        request = request or RunRequest()

        with self.locks.hold(notebook_id), self.store.exclusive(notebook_id):
            notebook = self.store.get_notebook(notebook_id)
            if not notebook.cells:
                raise CellNotFoundError(f"Notebook {notebook_id} has no cells")

            graph = GraphModel(notebook.cells)
            graph.validate(strict=self.strict_dependencies)
            selected = graph.select(Selection.from_request(request))

            run = self.store.create_run(
                notebook_id,
                self.store.next_run_number(notebook_id),
                len(selected),
                trigger_type=request.trigger_type,
            )
            state = _RunState(run=run, started=time.monotonic())
            self._record(run.id, None, None, "running", f"Run {run.run_number} started")
            self.store.update_notebook_status(notebook_id, "running", last_run_at=datetime.now(UTC))

            logger.info(
                f"Run {run.id} (#{run.run_number}) of notebook {notebook_id}: "
                f"{len(selected)} cell(s) selected"
            )

            for cell in selected:
                self._move_cell(state, cell, "queued")

            # Completed outputs from earlier runs, in index order
            for cell in graph.cells:
                persisted = self.store.get_completed_output(cell.id)
                if persisted is not None:
                    state.output_map[cell.id] = persisted

            return self._run_cells(state, notebook_id, graph, selected, request, cancel_event)

    def resume(
        self,
        notebook_id: str,
        cell_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunResponse:
        """Continue from a paused approval cell, treating it as approved."""
        request = RunRequest(run_from_cell=cell_id, include_approved=True)
        return self.run(notebook_id, request, cancel_event=cancel_event)

    def _run_cells(
        self,
        state: _RunState,
        notebook_id: str,
        graph: GraphModel,
        selected: list[Cell],
        request: RunRequest,
        cancel_event: Optional[threading.Event],
    ) -> RunResponse:
        for cell in selected:
            if cancel_event is not None and cancel_event.is_set():
                return self._cancel(state, notebook_id, f"Run cancelled before cell {cell.id}")

            if not graph.is_ready(cell, state.output_map, self.store.get_completed_output):
                self._move_cell(state, cell, "skipped", error_message="Dependencies not met")
                state.cells_skipped += 1
                continue

            if cell.cell_type == "approve" and not request.include_approved:
                return self._pause(state, notebook_id, cell)

            try:
                result = self._execute_with_retry(state, cell, cancel_event)
            except RunCancelledError as e:
                self._move_cell(state, cell, "error", error_message=str(e))
                return self._cancel(state, notebook_id, str(e))
            except ExecutorError as e:
                self._move_cell(state, cell, "error", error_message=str(e))
                state.cells_failed += 1
                return self._fail(state, notebook_id, cell, str(e))

            self._complete_cell(state, cell, result)

        return self._complete(state, notebook_id)

    def _execute_with_retry(
        self,
        state: _RunState,
        cell: Cell,
        cancel_event: Optional[threading.Event],
    ) -> CellResult:
        """Execute a cell, retrying up to max_retries times if it allows retries.

        Every attempt uses the same interpolated content.
        """
        self._move_cell(state, cell, "running")

        binding = bind(cell.content, state.output_map)
        if binding.unresolved:
            message = f"Cell {cell.id} has unresolved placeholders: {', '.join(binding.unresolved)}"
            if self.strict_placeholders:
                raise UnresolvedPlaceholderError(message)
            logger.warning(message)

        attempts = cell.max_retries + 1 if cell.retry_on_error else 1
        attempt = 1
        while True:
            try:
                return self.executor.execute(cell, binding.text, cancel_event=cancel_event)
            except ExecutorError as e:
                if attempt >= attempts:
                    raise
                logger.warning(f"Cell {cell.id} attempt {attempt}/{attempts} failed: {e}")
                self.store.append_cell_log(
                    cell.id,
                    {
                        "type": "retry",
                        "attempt": attempt,
                        "error": str(e),
                        "timestamp": datetime.now(UTC).isoformat(),
                    },
                )
                self._record(state.run.id, cell.id, "running", "running", f"Retry after attempt {attempt}: {e}")
                if cancel_event is not None and cancel_event.is_set():
                    raise RunCancelledError(f"Run cancelled while retrying cell {cell.id}") from e
                attempt += 1

    def _move_cell(
        self,
        state: _RunState,
        cell: Cell,
        target: str,
        error_message: Optional[str] = None,
    ) -> None:
        check_cell_transition(cell.id, cell.status, target)
        self.store.update_cell_status(cell.id, target, error_message=error_message)
        self._record(state.run.id, cell.id, cell.status, target, error_message)
        cell.status = target

    def _complete_cell(self, state: _RunState, cell: Cell, result: CellResult) -> None:
        check_cell_transition(cell.id, cell.status, "completed")
        self.store.update_cell_result(cell.id, result)
        self._record(state.run.id, cell.id, cell.status, "completed", result.reasoning)
        cell.status = "completed"

        state.output_map[cell.id] = result.output
        state.total_tokens += result.tokens
        state.total_cost += result.cost
        state.cells_completed += 1

    def _move_run(self, state: _RunState, target: str, detail: Optional[str] = None, **fields: Any) -> Run:
        check_run_transition(state.run.id, state.run.status, target)
        updated = self.store.update_run(state.run.id, status=target, **state.counts(), **fields)
        self._record(state.run.id, None, state.run.status, target, detail)
        state.run = updated
        return updated

    def _pause(self, state: _RunState, notebook_id: str, cell: Cell) -> PausedResponse:
        self._move_cell(state, cell, "paused", error_message="Awaiting approval")
        self._move_run(state, "paused", detail=f"Awaiting approval of {cell.id}", paused_cell_id=cell.id)
        self.store.update_notebook_status(notebook_id, "paused")

        logger.info(f"Run {state.run.id} paused at approval cell {cell.id}")
        return PausedResponse(
            run_id=state.run.id,
            paused_at=cell.id,
            cells_completed=state.cells_completed,
            message=f"Paused at approval cell: {cell.label}",
        )

    def _fail(self, state: _RunState, notebook_id: str, cell: Cell, error: str) -> FailedResponse:
        duration_ms = state.elapsed_ms()
        self._move_run(
            state,
            "failed",
            detail=error,
            error_cell_id=cell.id,
            error_message=error,
            completed_at=datetime.now(UTC),
            duration_ms=duration_ms,
        )
        self.store.update_notebook_status(notebook_id, "error")

        logger.error(f"Run {state.run.id} failed at cell {cell.id}: {error}")
        return FailedResponse(
            run_id=state.run.id,
            failed_at=cell.id,
            error=error,
            cells_completed=state.cells_completed,
            cells_failed=state.cells_failed,
        )

    def _cancel(self, state: _RunState, notebook_id: str, message: str) -> CancelledResponse:
        self._move_run(
            state,
            "cancelled",
            detail=message,
            completed_at=datetime.now(UTC),
            duration_ms=state.elapsed_ms(),
        )
        self.store.update_notebook_status(notebook_id, "idle")

        logger.info(f"Run {state.run.id} cancelled: {message}")
        return CancelledResponse(
            run_id=state.run.id,
            cells_completed=state.cells_completed,
            message=message,
        )

    def _complete(self, state: _RunState, notebook_id: str) -> CompletedResponse:
        duration_ms = state.elapsed_ms()
        self._move_run(state, "completed", completed_at=datetime.now(UTC), duration_ms=duration_ms)
        self.store.update_notebook_status(notebook_id, "completed", last_run_duration_ms=duration_ms)

        logger.info(f"Run {state.run.id} completed in {duration_ms}ms")
        return CompletedResponse(
            run_id=state.run.id,
            cells_completed=state.cells_completed,
            cells_failed=state.cells_failed,
            cells_skipped=state.cells_skipped,
            total_tokens=state.total_tokens,
            total_cost=state.total_cost,
            duration_ms=duration_ms,
            outputs=dict(state.output_map),
        )

    def _record(
        self,
        run_id: str,
        cell_id: Optional[str],
        from_status: Optional[str],
        to_status: str,
        detail: Optional[str] = None,
    ) -> None:
        self.store.append_event(
            RunEvent(
                run_id=run_id,
                cell_id=cell_id,
                from_status=from_status,
                to_status=to_status,
                detail=detail,
            )
        )
