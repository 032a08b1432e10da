"""Allowed status transitions for cells and runs."""

from cellflow import InvalidTransitionError

# Any cell may be queued again when a new run selects it
CELL_TRANSITIONS: dict[str, frozenset[str]] = {
    "idle": frozenset({"queued"}),
    "queued": frozenset({"queued", "running", "paused", "skipped"}),
    "running": frozenset({"queued", "completed", "error"}),
    "paused": frozenset({"queued", "running", "completed", "error"}),
    "completed": frozenset({"queued"}),
    "error": frozenset({"queued", "running"}),
    "skipped": frozenset({"queued"}),
}

RUN_TRANSITIONS: dict[str, frozenset[str]] = {
    "running": frozenset({"paused", "failed", "completed", "cancelled"}),
    "paused": frozenset({"failed", "completed"}),
    "completed": frozenset(),
    "failed": frozenset(),
    "cancelled": frozenset(),
}

TERMINAL_RUN_STATUSES = frozenset({"completed", "failed", "cancelled"})


def check_cell_transition(cell_id: str, current: str, target: str) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed for a cell."""
    if target not in CELL_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(f"Cell {cell_id} cannot move from {current} to {target}")


def check_run_transition(run_id: str, current: str, target: str) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed for a run."""
    if target not in RUN_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(f"Run {run_id} cannot move from {current} to {target}")
