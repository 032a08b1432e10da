"""Cell graph model."""

from cellflow.graph.cells import (
    GraphModel,
    Selection,
    dependencies_satisfied,
    select_cells,
    validate_dependencies,
)

__all__ = [
    "GraphModel",
    "Selection",
    "dependencies_satisfied",
    "select_cells",
    "validate_dependencies",
]
