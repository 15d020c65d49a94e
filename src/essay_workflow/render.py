"""Terminal rendering of annotated runs and error summaries with Rich."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from rich.table import Table
from rich.text import Text

from .annotator import color_rgb
from .models import AnnotatedRun, ErrorCategory, ErrorMatch


def _style(run: AnnotatedRun) -> str:
    # Terminals have no stripes: the first color is the background,
    # extra categories underline the run.
    r, g, b = color_rgb(run.colors[0])
    style = f"black on rgb({r},{g},{b})"
    if len(run.colors) > 1:
        style += " underline"
    return style


def runs_to_text(runs: Sequence[AnnotatedRun]) -> Text:
    """Build a ``rich.text.Text`` with highlighted runs styled by category color."""
    text = Text()
    for run in runs:
        if run.highlighted and run.colors:
            text.append(run.text, style=_style(run))
        else:
            text.append(run.text)
    return text


def error_table(errors: Mapping[ErrorCategory, Sequence[ErrorMatch]]) -> Table:
    """One row per reported error, grouped by category in display order."""
    table = Table(title="Writing issues", show_lines=False)
    table.add_column("Category", style="bold")
    table.add_column("Text")
    table.add_column("Message")
    table.add_column("Suggestions", style="green")
    for category in ErrorCategory:
        for match in errors.get(category, []):
            table.add_row(
                category.display_name,
                match.text,
                match.message,
                ", ".join(match.suggestions),
            )
    return table
