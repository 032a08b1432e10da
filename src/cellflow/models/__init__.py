"""Data models for cellflow."""

from cellflow.models.notebook import (
    CELL_TYPES,
    Cell,
    CellStatus,
    CellType,
    Notebook,
    NotebookStatus,
    OutputType,
)
from cellflow.models.run import (
    CancelledResponse,
    CellResult,
    CompletedResponse,
    FailedResponse,
    PausedResponse,
    Run,
    RunEvent,
    RunRequest,
    RunResponse,
    RunStatus,
    TriggerType,
)
from cellflow.models.cost import (
    APICallMetrics,
    CostBreakdown,
    TokenUsage,
    MODEL_PRICING,
)

__all__ = [
    "CELL_TYPES",
    "Cell",
    "CellStatus",
    "CellType",
    "Notebook",
    "NotebookStatus",
    "OutputType",
    "CancelledResponse",
    "CellResult",
    "CompletedResponse",
    "FailedResponse",
    "PausedResponse",
    "Run",
    "RunEvent",
    "RunRequest",
    "RunResponse",
    "RunStatus",
    "TriggerType",
    "APICallMetrics",
    "CostBreakdown",
    "TokenUsage",
    "MODEL_PRICING",
]
