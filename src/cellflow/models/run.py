"""Data models for notebook runs, requests and responses."""

from datetime import UTC, datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from cellflow.models.notebook import OutputType

RunStatus = Literal["running", "paused", "completed", "failed", "cancelled"]
TriggerType = Literal["manual", "scheduled", "webhook", "api"]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Run(BaseModel):
    """One execution attempt over a selected subset of a notebook's cells.

    Attributes:
        id: Run identifier
        notebook_id: Notebook being executed
        run_number: Monotonically increasing per notebook
        status: Run status
        cells_total: Number of cells selected for this run
        cells_completed: Cells that completed in this run
        cells_failed: Cells that errored in this run
        cells_skipped: Cells skipped for unmet dependencies
        paused_cell_id: Approval cell that paused the run
        error_cell_id: Cell that failed the run
        error_message: Failure message
    """

    id: str
    notebook_id: str
    run_number: int = Field(ge=1)
    trigger_type: TriggerType = "manual"
    status: RunStatus = "running"
    cells_total: int = Field(default=0, ge=0)
    cells_completed: int = 0
    cells_failed: int = 0
    cells_skipped: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    paused_cell_id: Optional[str] = None
    error_cell_id: Optional[str] = None
    error_message: Optional[str] = None
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None

    @model_validator(mode="after")
    def validate_counts(self) -> "Run":
        """Processed cells can never exceed the selection."""
        processed = self.cells_completed + self.cells_failed + self.cells_skipped
        if processed > self.cells_total:
            raise ValueError(
                f"cells_completed + cells_failed + cells_skipped ({processed}) "
                f"exceeds cells_total ({self.cells_total})"
            )
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed", "cancelled")


class RunEvent(BaseModel):
    """A single recorded status transition within a run."""

    run_id: str
    cell_id: Optional[str] = None
    from_status: Optional[str] = None
    to_status: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class CellResult(BaseModel):
    """Typed result of executing one cell.

    Attributes:
        output: Parsed output (plain text or structured data)
        output_type: text or json
        reasoning: Short explanation recorded with the cell
        tokens_input: Input tokens (reported or estimated)
        tokens_output: Output tokens (reported or estimated)
        cost: Cost of the call
        tools_used: Tools invoked by the provider (none for plain generation)
        duration_ms: Wall time of the provider call
        estimated: True when usage came from character counts
    """

    output: Any
    output_type: OutputType = "text"
    reasoning: str = ""
    tokens_input: int = 0
    tokens_output: int = 0
    cost: float = 0.0
    tools_used: list[str] = Field(default_factory=list)
    duration_ms: int = 0
    estimated: bool = False
    provider_metrics: Optional[dict] = None

    @property
    def tokens(self) -> int:
        return self.tokens_input + self.tokens_output


class RunRequest(BaseModel):
    """Invocation of a run against a notebook.

    Only one of cell_id / run_from_cell may be given; neither means a full run.
    """

    cell_id: Optional[str] = None
    run_from_cell: Optional[str] = None
    include_approved: bool = False
    trigger_type: TriggerType = "manual"

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @model_validator(mode="after")
    def validate_mode(self) -> "RunRequest":
        if self.cell_id and self.run_from_cell:
            raise ValueError("cell_id and run_from_cell are mutually exclusive")
        return self


class _Response(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    run_id: str
    cells_completed: int

    def to_dict(self) -> dict:
        """Wire representation with camelCase keys."""
        return self.model_dump(by_alias=True, mode="json")


class PausedResponse(_Response):
    status: Literal["paused"] = "paused"
    paused_at: str
    message: str


class FailedResponse(_Response):
    status: Literal["failed"] = "failed"
    failed_at: str
    error: str
    cells_failed: int


class CompletedResponse(_Response):
    status: Literal["completed"] = "completed"
    cells_failed: int
    cells_skipped: int
    total_tokens: int
    total_cost: float
    duration_ms: int
    outputs: dict[str, Any]


class CancelledResponse(_Response):
    status: Literal["cancelled"] = "cancelled"
    message: str


RunResponse = Union[PausedResponse, FailedResponse, CompletedResponse, CancelledResponse]
