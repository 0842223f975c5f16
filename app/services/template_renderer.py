"""
services/template_renderer.py
Placeholder substitution for {{name}} markers in template text.
"""
import html
import re
from typing import List, Mapping, Union

from app.utils.helpers import get_logger

logger = get_logger(__name__)

Scalar = Union[str, int, float, bool]

# Only the exact form {{name}} is substituted.
MARKER_RE = re.compile(r"\{\{([A-Za-z_][A-Za-z0-9_]*)\}\}")
SPACED_MARKER_RE = re.compile(r"\{\{\s*[A-Za-z_][A-Za-z0-9_]*\s*\}\}")


def format_value(value: Scalar) -> str:
    """
    Canonical text for a substituted value.

    Booleans render as true/false, and integral floats drop the ".0" that
    spreadsheet readers add to whole numbers.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, str):
        return value
    raise TypeError(f"Unsupported placeholder value type: {type(value).__name__}")


def render_template(body: str, data: Mapping[str, Scalar], escape: bool = False) -> str:
    """
    Replace every {{key}} in body with the value of data[key].

    Markers whose key is not in data are left untouched. Each key only
    targets its own literal marker, so the result does not depend on the
    order of data. With escape=True values are HTML-escaped first.
    """
    rendered = body
    for key, value in data.items():
        text = format_value(value)
        if escape:
            text = html.escape(text)
        rendered = rendered.replace("{{" + key + "}}", text)
    return rendered


def find_placeholders(body: str) -> List[str]:
    """Marker names used in body, in order of first appearance."""
    seen: List[str] = []
    for match in MARKER_RE.finditer(body):
        name = match.group(1)
        if name not in seen:
            seen.append(name)
    return seen


def undeclared_placeholders(body: str, declared: List[str]) -> List[str]:
    """Markers used in body that the template does not declare."""
    declared_set = set(declared)
    return [name for name in find_placeholders(body) if name not in declared_set]


def malformed_placeholders(body: str) -> List[str]:
    """Markers with inner whitespace, like {{ name }}; these are never substituted."""
    seen: List[str] = []
    for match in SPACED_MARKER_RE.finditer(body):
        marker = match.group(0)
        if not MARKER_RE.fullmatch(marker) and marker not in seen:
            seen.append(marker)
    return seen


def preview_template(body: str, placeholders: List[str], data: Mapping[str, Scalar] | None = None) -> str:
    """Render with sample data, showing [NAME] for anything not supplied."""
    sample = {name: f"[{name.upper()}]" for name in placeholders}
    if data:
        sample.update(data)
    return render_template(body, sample)
