"""Placeholder interpolation for cell content."""

from cellflow.templating.interpolator import Binding, bind, interpolate, parse_placeholders, render_output

__all__ = ["Binding", "bind", "interpolate", "parse_placeholders", "render_output"]
