"""Placeholder interpolation of cell content.

Cell content may reference earlier outputs with ``{{<cell_id>}}`` and the
reserved ``{{prev}}``, which resolves to the most recently produced output.
References are parsed once and bound against the output map; anything that
cannot be resolved is left verbatim and reported on the binding. Names are
matched literally, so ``{{ c1 }}`` does not refer to cell ``c1``.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

PREV_TOKEN = "prev"

_PLACEHOLDER = re.compile(r"\{\{([^{}]+)\}\}")


@dataclass(frozen=True)
class Placeholder:
    """One ``{{name}}`` reference found in content."""

    name: str
    start: int
    end: int

    @property
    def is_prev(self) -> bool:
        return self.name == PREV_TOKEN


@dataclass
class Binding:
    """Result of binding content against an output map.

    Attributes:
        text: Content with every resolvable placeholder substituted
        resolved: Names that were substituted
        unresolved: Names left verbatim because no output exists for them
    """

    text: str
    resolved: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.unresolved


def render_output(value: Any) -> str:
    """Canonical text form of a cell output.

    Strings are used verbatim; anything else is compact JSON.
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def parse_placeholders(content: str) -> list[Placeholder]:
    """Extract placeholder references in order of appearance.

    Args:
        content: Raw cell content

    Returns:
        list[Placeholder]: References with their spans in content
    """
    return [
        Placeholder(name=match.group(1), start=match.start(), end=match.end())
        for match in _PLACEHOLDER.finditer(content)
    ]


def bind(content: str, output_map: Mapping[str, Any], resolve_prev: bool = True) -> Binding:
    """Bind the placeholders of content against produced outputs.

    Explicit cell references are resolved first; ``{{prev}}`` takes the
    insertion-order last entry of output_map. Substituted text is never
    rescanned, so outputs that themselves contain braces are inserted as-is.

    Args:
        content: Raw cell content
        output_map: Cell id -> output, in production order
        resolve_prev: Substitute {{prev}}; off when binding non-output values

    Returns:
        Binding: Rendered text plus resolved/unresolved reference names
    """
    placeholders = parse_placeholders(content)
    if not placeholders:
        return Binding(text=content)

    prev_value = None
    has_prev = False
    if resolve_prev and output_map:
        prev_value = list(output_map.values())[-1]
        has_prev = True

    pieces = []
    resolved: list[str] = []
    unresolved: list[str] = []
    cursor = 0

    for placeholder in placeholders:
        pieces.append(content[cursor:placeholder.start])
        cursor = placeholder.end

        if placeholder.name in output_map:
            pieces.append(render_output(output_map[placeholder.name]))
            resolved.append(placeholder.name)
        elif placeholder.is_prev and has_prev:
            pieces.append(render_output(prev_value))
            resolved.append(placeholder.name)
        else:
            pieces.append(content[placeholder.start:placeholder.end])
            unresolved.append(placeholder.name)

    pieces.append(content[cursor:])
    return Binding(text="".join(pieces), resolved=resolved, unresolved=unresolved)


def interpolate(content: str, output_map: Mapping[str, Any]) -> str:
    """Substitute placeholders in content with produced outputs.

    Pure function of (content, output_map). Unresolved placeholders stay verbatim.

    Example:
        >>> interpolate("Summarize {{prev}}", {})
        'Summarize {{prev}}'
        >>> interpolate("Use {{a}}", {"a": {"x": 1}})
        'Use {"x":1}'
    """
    return bind(content, output_map).text
