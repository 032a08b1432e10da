"""Data models for notebooks and their cells."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

CellType = Literal["command", "query", "transform", "visualize", "approve", "condition", "note"]
CellStatus = Literal["idle", "queued", "running", "paused", "completed", "error", "skipped"]
NotebookStatus = Literal["idle", "running", "paused", "completed", "error"]
OutputType = Literal["text", "json"]

CELL_TYPES: tuple[str, ...] = ("command", "query", "transform", "visualize", "approve", "condition", "note")


class Cell(BaseModel):
    """Represents a single notebook cell.

    Attributes:
        id: Cell identifier
        notebook_id: Owning notebook
        cell_index: Position within the notebook (unique, dependency-preserving)
        cell_type: What kind of work the cell performs
        title: Optional display title
        content: Instruction text, may contain {{cell_id}} / {{prev}} placeholders
        dependencies: Cells that must be completed before this one runs
        agent_preference: Opaque hint for the provider layer
        timeout_ms: Upper bound for one provider call
        retry_on_error: Retry failed executions before failing the run
        max_retries: Extra attempts allowed when retry_on_error is set
        status: Current execution status
        output: Result value once completed
        output_type: Whether output is plain text or structured JSON
        execution_log: Review and audit entries recorded against the cell
    """

    id: str
    notebook_id: str = ""
    cell_index: int
    cell_type: CellType = "command"
    title: Optional[str] = None
    content: str = ""
    dependencies: list[str] = Field(default_factory=list)
    agent_preference: Optional[str] = None
    timeout_ms: int = Field(default=60000, gt=0)
    retry_on_error: bool = False
    max_retries: int = Field(default=2, ge=0)

    status: CellStatus = "idle"
    output: Any = None
    output_type: Optional[OutputType] = None
    reasoning: Optional[str] = None
    tools_used: list[str] = Field(default_factory=list)
    execution_log: list[dict] = Field(default_factory=list)

    tokens_input: int = 0
    tokens_output: int = 0
    cost: float = 0.0
    duration_ms: Optional[int] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def label(self) -> str:
        """Short human-readable name for messages."""
        return self.title or self.content[:50]


class Notebook(BaseModel):
    """A notebook: an ordered collection of cells.

    Attributes:
        id: Notebook identifier
        title: Display title
        description: Optional description
        cells: Cells, kept sorted by cell_index
        status: Notebook-level execution status
        last_run_at: When the latest run started
        last_run_duration_ms: Duration of the latest completed run
    """

    id: str
    title: str = "Untitled Notebook"
    description: Optional[str] = None
    cells: list[Cell] = Field(default_factory=list)
    status: NotebookStatus = "idle"
    last_run_at: Optional[datetime] = None
    last_run_duration_ms: Optional[int] = None

    @field_validator("cells")
    @classmethod
    def validate_cells(cls, v: list[Cell]) -> list[Cell]:
        """Validate cell indexes are unique and sort cells by index."""
        seen_ids: set[str] = set()
        seen_indexes: set[int] = set()
        for cell in v:
            if cell.id in seen_ids:
                raise ValueError(f"Duplicate cell id: {cell.id}")
            if cell.cell_index in seen_indexes:
                raise ValueError(f"Duplicate cell_index: {cell.cell_index}")
            seen_ids.add(cell.id)
            seen_indexes.add(cell.cell_index)
        return sorted(v, key=lambda c: c.cell_index)

    def model_post_init(self, __context) -> None:
        """Stamp the owning notebook id onto every cell."""
        for cell in self.cells:
            if not cell.notebook_id:
                cell.notebook_id = self.id

    def get_cell(self, cell_id: str) -> Optional[Cell]:
        """Find a cell by id.

        Args:
            cell_id: Cell identifier

        Returns:
            Cell or None if not present
        """
        for cell in self.cells:
            if cell.id == cell_id:
                return cell
        return None

    def next_cell(self, cell_id: str) -> Optional[Cell]:
        """Return the cell immediately after cell_id by index, if any."""
        for position, cell in enumerate(self.cells):
            if cell.id == cell_id:
                if position + 1 < len(self.cells):
                    return self.cells[position + 1]
                return None
        return None
