"""Rich console setup and session progress helpers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

if TYPE_CHECKING:
    from .models import GateDecision, Section

console = Console()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logger with Rich handler."""
    level = logging.DEBUG if verbose else (logging.ERROR if quiet else logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


logger = logging.getLogger("essay_workflow")


# ---------------------------------------------------------------------------
# Session callbacks protocol
# ---------------------------------------------------------------------------


class SessionCallbacks(Protocol):
    """Protocol for session progress reporting."""

    def on_section_change(self, section: Section) -> None: ...
    def on_check_start(self, section_id: str) -> None: ...
    def on_check_end(self, section_id: str, total_errors: int) -> None: ...
    def on_decision(self, decision: GateDecision) -> None: ...
    def on_warning(self, message: str) -> None: ...
    def on_error(self, message: str) -> None: ...


class RichCallbacks:
    """Rich-based implementation of SessionCallbacks."""

    def on_section_change(self, section: Section) -> None:
        console.rule(f"[bold blue]{section.title}[/]")

    def on_check_start(self, section_id: str) -> None:
        console.print(f"  [dim]Checking section:[/] {section_id}")

    def on_check_end(self, section_id: str, total_errors: int) -> None:
        if total_errors == 0:
            console.print("  [green]No errors found in this section.[/]")
        else:
            console.print(f"  [yellow]{total_errors} issue(s) found[/]")

    def on_decision(self, decision: GateDecision) -> None:
        status = "[green]complete[/]" if decision.is_complete else "[yellow]missing requirements[/]"
        console.print(f"  {decision.kind.value.title()}: {status} ({int(decision.completion)}%)")
        if decision.missing:
            table = Table(show_header=False, box=None, padding=(0, 2))
            for item in decision.missing:
                table.add_row("[red]•[/]", item)
            console.print(table)

    def on_warning(self, message: str) -> None:
        console.print(f"  [yellow]WARNING:[/] {message}")

    def on_error(self, message: str) -> None:
        console.print(f"  [red]ERROR:[/] {message}")


class SilentCallbacks:
    """No-op callbacks for embedding the session in another UI."""

    def on_section_change(self, section: Section) -> None:
        pass

    def on_check_start(self, section_id: str) -> None:
        pass

    def on_check_end(self, section_id: str, total_errors: int) -> None:
        pass

    def on_decision(self, decision: GateDecision) -> None:
        pass

    def on_warning(self, message: str) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass
