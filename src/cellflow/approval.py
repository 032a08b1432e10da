"""Human-in-the-loop decisions on paused approval cells."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal, Optional

from cellflow import ApprovalStateError, CellNotFoundError
from cellflow.models import RunEvent
from cellflow.persistence.base import PersistenceAdapter
from cellflow.run.state import check_run_transition

logger = logging.getLogger(__name__)

ApprovalAction = Literal["approve", "reject"]


@dataclass
class ApprovalOutcome:
    """Result of an approval decision.

    Attributes:
        action: approved or rejected
        cell_id: The approval cell
        continue_from: Next cell to run from, when approved and one exists
        message: Human-readable summary
    """

    action: Literal["approved", "rejected"]
    cell_id: str
    message: str
    continue_from: Optional[str] = None


class ApprovalService:
    """Approve or reject a paused approval cell.

    Rejecting fails the paused run. Approving completes the cell and points
    the caller at the next cell; a run-from invocation continues from there.
    """

    def __init__(self, store: PersistenceAdapter):
        self.store = store

    def resolve(
        self,
        notebook_id: str,
        cell_id: str,
        action: ApprovalAction,
        feedback: Optional[str] = None,
    ) -> ApprovalOutcome:
        """Apply a human decision to a paused cell.

        Args:
            notebook_id: Notebook containing the cell
            cell_id: Paused approval cell
            action: approve or reject
            feedback: Optional reviewer comment

        Returns:
            ApprovalOutcome: What happened and where to continue

        Raises:
            ValueError: If action is not approve/reject
            CellNotFoundError: If the cell is not in the notebook
            ApprovalStateError: If the cell is not paused
            NotebookLockedError: If another process holds the notebook
        """
        if action not in ("approve", "reject"):
            raise ValueError('action must be "approve" or "reject"')

        with self.store.exclusive(notebook_id):
            return self._resolve(notebook_id, cell_id, action, feedback)

    def _resolve(
        self,
        notebook_id: str,
        cell_id: str,
        action: ApprovalAction,
        feedback: Optional[str],
    ) -> ApprovalOutcome:
        notebook = self.store.get_notebook(notebook_id)
        cell = notebook.get_cell(cell_id)
        if cell is None:
            raise CellNotFoundError(f"Cell not found: {cell_id}")
        if cell.status != "paused":
            raise ApprovalStateError(f"Cell {cell_id} is not in paused state ({cell.status})")

        run = self.store.latest_paused_run(notebook_id, cell_id=cell_id)
        review = {
            "type": "human_review",
            "timestamp": datetime.now(UTC).isoformat(),
            "action": "rejected" if action == "reject" else "approved",
            "feedback": feedback,
        }

        if action == "reject":
            message = feedback or "Rejected by user"
            self.store.update_cell_status(cell_id, "error", error_message=message)
            self.store.append_cell_log(cell_id, review)

            if run is not None:
                check_run_transition(run.id, run.status, "failed")
                self.store.update_run(
                    run.id,
                    status="failed",
                    error_cell_id=cell_id,
                    error_message="Rejected by user",
                    completed_at=datetime.now(UTC),
                )
                self._record(run.id, cell_id, "paused", "error", message)
                self._record(run.id, None, "paused", "failed", "Rejected by user")

            self.store.update_notebook_status(notebook_id, "error")
            logger.info(f"Cell {cell_id} rejected by user")
            return ApprovalOutcome(
                action="rejected",
                cell_id=cell_id,
                message="Cell rejected. Notebook execution stopped.",
            )

        self.store.update_cell_status(cell_id, "completed", output="approved")
        self.store.append_cell_log(cell_id, review)
        if run is not None:
            self._record(run.id, cell_id, "paused", "completed", feedback or "Approved by user")
        logger.info(f"Cell {cell_id} approved by user")

        next_cell = notebook.next_cell(cell_id)
        if next_cell is not None:
            return ApprovalOutcome(
                action="approved",
                cell_id=cell_id,
                continue_from=next_cell.id,
                message="Cell approved. Continue execution from next cell.",
            )

        if run is not None:
            check_run_transition(run.id, run.status, "completed")
            self.store.update_run(
                run.id,
                status="completed",
                cells_completed=min(run.cells_completed + 1, run.cells_total),
                completed_at=datetime.now(UTC),
            )
            self._record(run.id, None, "paused", "completed", "Final approval cell approved")
        self.store.update_notebook_status(notebook_id, "completed")
        return ApprovalOutcome(
            action="approved",
            cell_id=cell_id,
            message="Cell approved. Notebook execution completed.",
        )

    def _record(self, run_id: str, cell_id: Optional[str], from_status: str, to_status: str, detail: str) -> None:
        self.store.append_event(
            RunEvent(
                run_id=run_id,
                cell_id=cell_id,
                from_status=from_status,
                to_status=to_status,
                detail=detail,
            )
        )
