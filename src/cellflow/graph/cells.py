"""Cell graph model: cell selection and dependency readiness."""

import logging
from dataclasses import dataclass
from graphlib import CycleError, TopologicalSorter
from typing import Any, Callable, Iterable, Literal, Optional

from cellflow import CellNotFoundError, DependencyConfigError
from cellflow.models import Cell, RunRequest

logger = logging.getLogger(__name__)

SelectionMode = Literal["full", "single", "from"]

# Returns the persisted output of a completed cell, or None
PersistedLookup = Callable[[str], Any]


@dataclass(frozen=True)
class Selection:
    """Which cells of a notebook an invocation runs."""

    mode: SelectionMode = "full"
    cell_id: Optional[str] = None

    @classmethod
    def full(cls) -> "Selection":
        return cls("full")

    @classmethod
    def single(cls, cell_id: str) -> "Selection":
        return cls("single", cell_id)

    @classmethod
    def run_from(cls, cell_id: str) -> "Selection":
        return cls("from", cell_id)

    @classmethod
    def from_request(cls, request: RunRequest) -> "Selection":
        """Build the selection implied by a run request."""
        if request.cell_id:
            return cls.single(request.cell_id)
        if request.run_from_cell:
            return cls.run_from(request.run_from_cell)
        return cls.full()


def select_cells(all_cells: Iterable[Cell], selection: Selection) -> list[Cell]:
    """Select the cells to execute for an invocation.

    Args:
        all_cells: Every cell of the notebook
        selection: Full run, single cell, or run-from

    Returns:
        list[Cell]: Selected cells in cell_index order

    Raises:
        CellNotFoundError: If the target cell of a single/run-from selection is unknown
    """
    ordered = sorted(all_cells, key=lambda c: c.cell_index)

    if selection.mode == "full":
        return ordered

    for position, cell in enumerate(ordered):
        if cell.id == selection.cell_id:
            if selection.mode == "single":
                return [cell]
            return ordered[position:]

    raise CellNotFoundError(f"Cell not found: {selection.cell_id}")


def dependencies_satisfied(
    cell: Cell,
    output_map: dict[str, Any],
    persisted_lookup: PersistedLookup,
    known_ids: Optional[set[str]] = None,
) -> bool:
    """Check whether every dependency of a cell has completed.

    A dependency is satisfied when it already produced output in this run,
    or when it is persisted as completed with an output from an earlier run.
    Persisted outputs found this way are recorded into output_map.
    Dependencies on ids outside known_ids are treated as satisfied.

    Args:
        cell: Cell about to run
        output_map: Outputs produced so far (cell id -> output)
        persisted_lookup: Returns a completed cell's persisted output, or None
        known_ids: Ids of all cells in the notebook (None disables the check)

    Returns:
        bool: True if the cell may run
    """
    for dep_id in cell.dependencies:
        if known_ids is not None and dep_id not in known_ids:
            logger.warning(f"Cell {cell.id} depends on unknown cell {dep_id}; treating as satisfied")
            continue

        if dep_id in output_map:
            continue

        persisted = persisted_lookup(dep_id)
        if persisted is None:
            return False
        output_map[dep_id] = persisted

    return True


def validate_dependencies(cells: Iterable[Cell], strict: bool = False) -> None:
    """Validate a notebook's dependency declarations before a run.

    Args:
        cells: Every cell of the notebook
        strict: Also reject dependencies on ids that match no cell

    Raises:
        DependencyConfigError: On self-references, cycles, or (strict) unknown ids
    """
    cells = list(cells)
    known_ids = {c.id for c in cells}
    graph: dict[str, set[str]] = {}

    for cell in cells:
        deps = set()
        for dep_id in cell.dependencies:
            if dep_id == cell.id:
                raise DependencyConfigError(f"Cell {cell.id} depends on itself")
            if dep_id not in known_ids:
                if strict:
                    raise DependencyConfigError(f"Cell {cell.id} depends on unknown cell {dep_id}")
                continue
            deps.add(dep_id)
        graph[cell.id] = deps

    try:
        TopologicalSorter(graph).prepare()
    except CycleError as exc:
        cycle = " -> ".join(exc.args[1]) if len(exc.args) > 1 else ""
        raise DependencyConfigError(f"Dependency cycle detected: {cycle}") from exc


class GraphModel:
    """In-memory view of a notebook's cells and their dependencies."""

    def __init__(self, cells: Iterable[Cell]):
        self.cells = sorted(cells, key=lambda c: c.cell_index)
        self.known_ids = {c.id for c in self.cells}

    def validate(self, strict: bool = False) -> None:
        validate_dependencies(self.cells, strict=strict)

    def select(self, selection: Selection) -> list[Cell]:
        return select_cells(self.cells, selection)

    def is_ready(
        self,
        cell: Cell,
        output_map: dict[str, Any],
        persisted_lookup: PersistedLookup,
    ) -> bool:
        return dependencies_satisfied(cell, output_map, persisted_lookup, self.known_ids)
