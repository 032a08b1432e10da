"""Tests for approval decisions."""

import pytest

from cellflow import ApprovalStateError, CellNotFoundError
from cellflow.approval import ApprovalService
from cellflow.models import Cell, Notebook, RunRequest


@pytest.fixture
def paused_run(store, approval_notebook, make_coordinator, make_provider):
    """Approval notebook paused at C2."""
    return make_coordinator(make_provider(["Ada, Grace"])).run("nb-approval")


class TestReject:
    """Tests for rejecting an approval cell."""

    def test_reject_fails_run(self, store, paused_run):
        """Test rejecting stops the notebook and fails the paused run."""
        outcome = ApprovalService(store).resolve("nb-approval", "C2", "reject", feedback="Wrong segment")

        assert outcome.action == "rejected"
        assert outcome.continue_from is None
        assert outcome.message == "Cell rejected. Notebook execution stopped."

        cell = store.get_cell("C2")
        assert cell.status == "error"
        assert cell.error_message == "Wrong segment"
        assert cell.execution_log[-1]["type"] == "human_review"
        assert cell.execution_log[-1]["action"] == "rejected"

        run = store.get_run(paused_run.run_id)
        assert run.status == "failed"
        assert run.error_cell_id == "C2"
        assert run.error_message == "Rejected by user"
        assert store.get_notebook("nb-approval").status == "error"

    def test_reject_default_message(self, store, paused_run):
        """Test rejection without feedback records a default reason."""
        ApprovalService(store).resolve("nb-approval", "C2", "reject")

        assert store.get_cell("C2").error_message == "Rejected by user"


class TestApprove:
    """Tests for approving an approval cell."""

    def test_approve_points_at_next_cell(self, store, paused_run):
        """Test approving completes the cell and names where to continue."""
        outcome = ApprovalService(store).resolve("nb-approval", "C2", "approve")

        assert outcome.action == "approved"
        assert outcome.continue_from == "C3"
        assert outcome.message == "Cell approved. Continue execution from next cell."

        cell = store.get_cell("C2")
        assert cell.status == "completed"
        assert cell.output == "approved"
        assert store.get_completed_output("C2") == "approved"

    def test_continue_after_approve(self, store, paused_run, make_coordinator, make_provider):
        """Test a run-from invocation picks up after the approved cell."""
        outcome = ApprovalService(store).resolve("nb-approval", "C2", "approve")
        provider = make_provider(['{"orders": 3}'])

        response = make_coordinator(provider).run(
            "nb-approval", RunRequest(run_from_cell=outcome.continue_from)
        )

        assert response.status == "completed"
        assert response.outputs["C2"] == "approved"
        assert response.outputs["C3"] == {"orders": 3}

    def test_approve_last_cell_completes_run(self, store, make_coordinator, fake_provider):
        """Test approving a final approval cell completes the paused run."""
        store.save_notebook(
            Notebook(
                id="nb-final",
                cells=[
                    Cell(id="draft", cell_index=0, content="Draft the memo"),
                    Cell(id="sign-off", cell_index=1, cell_type="approve", content="Sign off"),
                ],
            )
        )
        paused = make_coordinator(fake_provider).run("nb-final")

        outcome = ApprovalService(store).resolve("nb-final", "sign-off", "approve")

        assert outcome.continue_from is None
        assert outcome.message == "Cell approved. Notebook execution completed."
        run = store.get_run(paused.run_id)
        assert run.status == "completed"
        assert run.cells_completed == 2
        assert store.get_notebook("nb-final").status == "completed"


class TestOverlappingPauses:
    """Tests for decisions when several runs are paused at different cells."""

    @pytest.fixture
    def two_gates(self, store, make_coordinator, fake_provider):
        """Full run paused at A1, then a run-from C2 paused at A2."""
        store.save_notebook(
            Notebook(
                id="nb-gates",
                cells=[
                    Cell(id="C1", cell_index=0, content="Collect leads"),
                    Cell(id="A1", cell_index=1, cell_type="approve", content="Check leads"),
                    Cell(id="C2", cell_index=2, content="Draft offers"),
                    Cell(id="A2", cell_index=3, cell_type="approve", content="Check offers"),
                ],
            )
        )
        coordinator = make_coordinator(fake_provider)
        first = coordinator.run("nb-gates")
        second = coordinator.run("nb-gates", RunRequest(run_from_cell="C2"))
        assert first.paused_at == "A1"
        assert second.paused_at == "A2"
        return first, second

    def test_reject_fails_run_paused_at_that_cell(self, store, two_gates):
        """Test rejecting the older gate fails its own run, not the newest one."""
        first, second = two_gates

        ApprovalService(store).resolve("nb-gates", "A1", "reject")

        assert store.get_run(first.run_id).status == "failed"
        assert store.get_run(first.run_id).error_cell_id == "A1"
        assert store.get_run(second.run_id).status == "paused"

    def test_approve_completes_run_paused_at_that_cell(self, store, two_gates):
        """Test approving the final gate completes the run that paused there."""
        first, second = two_gates

        ApprovalService(store).resolve("nb-gates", "A2", "approve")

        assert store.get_run(second.run_id).status == "completed"
        assert store.get_run(first.run_id).status == "paused"


class TestValidation:
    """Tests for invalid approval requests."""

    def test_invalid_action(self, store, paused_run):
        """Test actions other than approve/reject are rejected."""
        with pytest.raises(ValueError, match="approve"):
            ApprovalService(store).resolve("nb-approval", "C2", "maybe")

    def test_unknown_cell(self, store, paused_run):
        """Test unknown cells are reported."""
        with pytest.raises(CellNotFoundError):
            ApprovalService(store).resolve("nb-approval", "C9", "approve")

    def test_cell_not_paused(self, store, paused_run):
        """Test only paused cells can be decided."""
        with pytest.raises(ApprovalStateError, match="not in paused state"):
            ApprovalService(store).resolve("nb-approval", "C1", "approve")

    def test_cannot_decide_twice(self, store, paused_run):
        """Test a decided cell is no longer paused."""
        service = ApprovalService(store)
        service.resolve("nb-approval", "C2", "approve")

        with pytest.raises(ApprovalStateError):
            service.resolve("nb-approval", "C2", "reject")
