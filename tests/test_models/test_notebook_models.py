"""Tests for notebook and run models."""

import pytest
from pydantic import ValidationError

from cellflow.models import Cell, CompletedResponse, Notebook, PausedResponse, Run


class TestCell:
    """Tests for Cell model."""

    def test_defaults(self):
        """Test execution defaults."""
        cell = Cell(id="c1", cell_index=0)
        assert cell.cell_type == "command"
        assert cell.status == "idle"
        assert cell.timeout_ms == 60000
        assert cell.max_retries == 2
        assert cell.retry_on_error is False
        assert cell.dependencies == []

    def test_rejects_unknown_type(self):
        """Test cell types are restricted."""
        with pytest.raises(ValidationError):
            Cell(id="c1", cell_index=0, cell_type="shell")

    def test_rejects_non_positive_timeout(self):
        """Test timeouts must be positive."""
        with pytest.raises(ValidationError):
            Cell(id="c1", cell_index=0, timeout_ms=0)

    def test_label_prefers_title(self):
        """Test label uses the title, then the first 50 characters of content."""
        assert Cell(id="c1", cell_index=0, title="Review", content="x").label == "Review"
        assert Cell(id="c2", cell_index=1, content="y" * 80).label == "y" * 50


class TestNotebook:
    """Tests for Notebook model."""

    def test_cells_sorted_and_stamped(self):
        """Test cells are ordered by index and take the notebook id."""
        notebook = Notebook(
            id="nb",
            cells=[Cell(id="b", cell_index=5), Cell(id="a", cell_index=1)],
        )
        assert [c.id for c in notebook.cells] == ["a", "b"]
        assert all(c.notebook_id == "nb" for c in notebook.cells)

    def test_duplicate_index_rejected(self):
        """Test cell indexes are unique."""
        with pytest.raises(ValidationError, match="Duplicate cell_index"):
            Notebook(id="nb", cells=[Cell(id="a", cell_index=0), Cell(id="b", cell_index=0)])

    def test_duplicate_id_rejected(self):
        """Test cell ids are unique."""
        with pytest.raises(ValidationError, match="Duplicate cell id"):
            Notebook(id="nb", cells=[Cell(id="a", cell_index=0), Cell(id="a", cell_index=1)])

    def test_next_cell(self):
        """Test next_cell follows index order."""
        notebook = Notebook(id="nb", cells=[Cell(id="a", cell_index=0), Cell(id="b", cell_index=3)])
        assert notebook.next_cell("a").id == "b"
        assert notebook.next_cell("b") is None
        assert notebook.next_cell("zzz") is None


class TestRun:
    """Tests for Run model."""

    def test_counts_cannot_exceed_total(self):
        """Test processed cells never exceed the selection."""
        with pytest.raises(ValidationError, match="exceeds cells_total"):
            Run(id="r", notebook_id="nb", run_number=1, cells_total=2, cells_completed=2, cells_skipped=1)

    def test_terminal(self):
        """Test terminal statuses."""
        assert Run(id="r", notebook_id="nb", run_number=1, status="failed").is_terminal
        assert not Run(id="r", notebook_id="nb", run_number=1, status="paused").is_terminal


class TestResponses:
    """Tests for run responses."""

    def test_paused_wire_format(self):
        """Test responses serialize with camelCase keys."""
        response = PausedResponse(run_id="r1", paused_at="C2", cells_completed=1, message="Paused")
        assert response.to_dict() == {
            "runId": "r1",
            "cellsCompleted": 1,
            "status": "paused",
            "pausedAt": "C2",
            "message": "Paused",
        }

    def test_completed_wire_format(self):
        """Test completed responses carry aggregates and outputs."""
        response = CompletedResponse(
            run_id="r1",
            cells_completed=2,
            cells_failed=0,
            cells_skipped=1,
            total_tokens=40,
            total_cost=0.00004,
            duration_ms=12,
            outputs={"a": "x", "b": {"k": 1}},
        )
        data = response.to_dict()
        assert data["status"] == "completed"
        assert data["cellsSkipped"] == 1
        assert data["totalTokens"] == 40
        assert data["outputs"] == {"a": "x", "b": {"k": 1}}
