"""Notebook templates with fill-in variables."""

import uuid
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from cellflow import TemplateVariableError
from cellflow.models import Cell, CellType, Notebook
from cellflow.templating.interpolator import bind


class TemplateVariable(BaseModel):
    """A value the user supplies when instantiating a template."""

    name: str
    type: Literal["text", "number", "select", "date"] = "text"
    required: bool = False
    default: Any = None
    options: list[str] = Field(default_factory=list)


class TemplateCell(BaseModel):
    """Cell skeleton stored in a template (no execution state)."""

    type: CellType = "command"
    title: Optional[str] = None
    content: str


class NotebookTemplate(BaseModel):
    """Reusable notebook structure.

    Cell content may reference variables as {{variable_name}}.
    """

    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    cells_template: list[TemplateCell] = Field(default_factory=list)
    variables: list[TemplateVariable] = Field(default_factory=list)


def template_from_notebook(
    notebook: Notebook,
    name: Optional[str] = None,
    variables: Optional[list[TemplateVariable]] = None,
    category: Optional[str] = None,
) -> NotebookTemplate:
    """Capture a notebook's cell structure as a template.

    Args:
        notebook: Source notebook
        name: Template name (defaults to the notebook title)
        variables: Variables the template expects
        category: Optional category

    Returns:
        NotebookTemplate: Template without any execution state
    """
    return NotebookTemplate(
        name=name or notebook.title,
        description=notebook.description,
        category=category,
        cells_template=[
            TemplateCell(type=cell.cell_type, title=cell.title, content=cell.content)
            for cell in notebook.cells
        ],
        variables=list(variables or []),
    )


def instantiate(
    template: NotebookTemplate,
    values: Optional[dict[str, Any]] = None,
    notebook_id: Optional[str] = None,
    title: Optional[str] = None,
) -> Notebook:
    """Create a notebook from a template.

    Variable placeholders are filled from values, then defaults. Cell
    references and {{prev}} are left for the run to resolve.

    Raises:
        TemplateVariableError: If a required variable has no value
    """
    values = dict(values or {})
    bound: dict[str, Any] = {}
    for variable in template.variables:
        if variable.name in values:
            bound[variable.name] = values[variable.name]
        elif variable.default is not None:
            bound[variable.name] = variable.default
        elif variable.required:
            raise TemplateVariableError(f"Missing required template variable: {variable.name}")

    notebook_id = notebook_id or str(uuid.uuid4())
    cells = [
        Cell(
            id=str(uuid.uuid4()),
            notebook_id=notebook_id,
            cell_index=index,
            cell_type=skeleton.type,
            title=skeleton.title,
            content=bind(skeleton.content, bound, resolve_prev=False).text,
        )
        for index, skeleton in enumerate(template.cells_template)
    ]

    return Notebook(
        id=notebook_id,
        title=title or template.name,
        description=template.description,
        cells=cells,
    )
