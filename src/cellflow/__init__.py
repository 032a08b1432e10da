"""cellflow - Notebook execution engine.

Runs notebooks of AI cells in order, chaining outputs, pausing at approval gates.
"""

__version__ = "0.1.0"


class CellFlowError(Exception):
    """Base exception for all cellflow errors."""

    pass


class ConfigurationError(CellFlowError):
    """Raised when configuration is invalid or missing."""

    pass


class PersistenceError(CellFlowError):
    """Raised when the store cannot read or record state.

    Always fatal to a run: the engine cannot proceed without recording progress.
    """

    pass


class NotebookNotFoundError(PersistenceError):
    """Raised when a notebook id does not resolve."""

    pass


class CellNotFoundError(CellFlowError):
    """Raised when a cell id does not resolve within a notebook."""

    pass


class DependencyConfigError(CellFlowError):
    """Raised when cell dependencies are cyclic or unresolvable."""

    pass


class NotebookLockedError(CellFlowError):
    """Raised when a run is already active for the notebook."""

    pass


class InvalidTransitionError(CellFlowError):
    """Raised when a cell or run status change is not allowed."""

    pass


class ExecutorError(CellFlowError):
    """Raised when a cell cannot be executed."""

    pass


class ProviderError(ExecutorError):
    """Raised when the text-generation provider fails."""

    pass


class CellTimeoutError(ExecutorError):
    """Raised when a provider call exceeds the cell's timeout."""

    pass


class UnresolvedPlaceholderError(ExecutorError):
    """Raised when cell content still references missing outputs."""

    pass


class RunCancelledError(CellFlowError):
    """Raised when a run is cancelled while a cell is in flight."""

    pass


class ApprovalStateError(CellFlowError):
    """Raised when an approval decision targets a cell that is not paused."""

    pass


class TemplateVariableError(CellFlowError):
    """Raised when a template is instantiated without a required variable."""

    pass
