"""CLI entry point using Hydra.

Usage examples:
  essay-workflow mode=outline
  essay-workflow mode=write section=introduction text_file=intro.txt
  essay-workflow mode=check section=introduction
  essay-workflow mode=complete section=introduction action=expand_thesis
  essay-workflow mode=complete section=introduction action=regenerate_bodies confirm=true
  essay-workflow mode=delete_body section=3
  essay-workflow mode=complete section=conclusion action=finalize title="My essay" post_type=essay
  essay-workflow mode=assist section=2 message="How do I start this paragraph?"
  essay-workflow mode=preview
  essay-workflow mode=reset
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import hydra
from omegaconf import DictConfig, OmegaConf
from rich.table import Table

from ._hydra_conf import CLI_ONLY_KEYS, register_configs
from .config import apply_azure_fallbacks
from .exceptions import EssayWorkflowError, InvalidOperation, ValidationError
from .logging_config import RichCallbacks, console, setup_logging
from .models import GateDecision, ReviewSubmission, Section, SectionKind, WorkflowConfig

register_configs()

# ---------------------------------------------------------------------------
# Hydra DictConfig → Pydantic WorkflowConfig bridge
# ---------------------------------------------------------------------------


def _to_workflow_config(cfg: DictConfig) -> WorkflowConfig:
    """Convert a Hydra *DictConfig* to a Pydantic ``WorkflowConfig``.

    CLI-only keys (``mode``, ``section``, etc.) are stripped before validation.
    Azure credential env-var fallbacks are applied afterwards.
    """
    container: dict[str, Any] = OmegaConf.to_container(cfg, resolve=True)  # type: ignore[assignment]
    for key in CLI_ONLY_KEYS:
        container.pop(key, None)
    config = WorkflowConfig.model_validate(container)
    return apply_azure_fallbacks(config)


def _print_submission(submission: ReviewSubmission) -> None:
    console.print("[bold]Review post:[/]")
    console.print_json(json.dumps(submission.post_payload()))


def _open_session(cfg: DictConfig):
    from .analysis import AgentAnalysisService
    from .session import SessionOrchestrator
    from .storage import JsonFileStore

    config = _to_workflow_config(cfg)
    session = SessionOrchestrator(
        JsonFileStore(config.store_path),
        AgentAnalysisService(config),
        config,
        callbacks=RichCallbacks(),
        submitter=_print_submission,
    )
    if cfg.get("title") is not None or cfg.get("post_type") is not None:
        meta = session.meta.model_copy()
        if cfg.get("title") is not None:
            meta.title = str(cfg.title)
        if cfg.get("post_type") is not None:
            meta.post_type = str(cfg.post_type)
        session.set_meta(meta)
    if cfg.get("section"):
        session.select_section(_resolve_section(session.sections, str(cfg.section)).id)
    return session


def _resolve_section(sections: list[Section], ref: str) -> Section:
    """Find a section by id, kind (first match) or 1-based position."""
    for section in sections:
        if section.id == ref:
            return section
    try:
        kind = SectionKind(ref.lower())
    except ValueError:
        kind = None
    if kind is not None:
        for section in sections:
            if section.kind == kind:
                return section
        raise InvalidOperation(f"The essay has no {kind.value} section")
    if ref.isdigit() and 1 <= int(ref) <= len(sections):
        return sections[int(ref) - 1]
    raise InvalidOperation(f"No section matches {ref!r}")


def _print_outline(sections: list[Section], active_id: str | None = None) -> None:
    table = Table(title="Essay outline")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("Id", style="dim")
    table.add_column("Completion", justify="right")
    table.add_column("Missing")
    for i, section in enumerate(sections, 1):
        marker = "[bold]>[/] " if section.id == active_id else ""
        missing = len(section.requirements.missing) if section.requirements else 0
        table.add_row(
            str(i),
            f"{marker}{section.title}",
            section.id,
            f"{int(section.completion)}%",
            str(missing) if missing else "",
        )
    console.print(table)


def _print_decision(decision: GateDecision) -> None:
    if decision.improvements:
        console.print("[bold]Suggested improvements:[/]")
        for item in decision.improvements:
            console.print(f"  - {item}")
    console.print("[bold]Next steps:[/]")
    for action in decision.actions:
        note = " (requires confirm=true)" if action in decision.requires_confirmation else ""
        console.print(f"  action={action.value}{note}")
    if decision.kind == SectionKind.CONCLUSION and not decision.finalize_ready:
        console.print("  [yellow]The conclusion does not meet all requirements yet.[/]")


# ---------------------------------------------------------------------------
# Mode handlers
# ---------------------------------------------------------------------------


def _outline_mode(cfg: DictConfig) -> None:
    session = _open_session(cfg)
    _print_outline(session.sections, session.active_section_id)


def _write_mode(cfg: DictConfig) -> None:
    text_file = cfg.get("text_file")
    if not text_file:
        raise ValidationError("text_file is required for write mode")
    session = _open_session(cfg)
    session.update_content(Path(text_file).read_text(encoding="utf-8"))
    session.save()
    console.print(f"[green]Saved {session.active_section.title}[/]")


def _check_mode(cfg: DictConfig) -> None:
    from .render import error_table, runs_to_text

    session = _open_session(cfg)
    result = asyncio.run(session.check())
    if result is None:
        return
    console.print(runs_to_text(result.runs))
    if result.total_errors:
        console.print(error_table(result.errors))
    console.print(f"Score: {result.score}")


async def _complete_and_choose(session, cfg: DictConfig) -> None:
    decision = await session.complete()
    if decision is None:
        return
    action = cfg.get("action")
    if not action:
        _print_decision(decision)
        return
    outcome = await session.choose(str(action), confirm=bool(cfg.get("confirm", False)))
    if outcome is None:
        return
    if outcome.handoff:
        console.print("[bold green]Essay submitted for review.[/]")
        return
    if outcome.created:
        console.print(f"[green]Created {len(outcome.created)} section(s)[/]")
    _print_outline(session.sections, session.active_section_id)


def _complete_mode(cfg: DictConfig) -> None:
    session = _open_session(cfg)
    asyncio.run(_complete_and_choose(session, cfg))


def _add_body_mode(cfg: DictConfig) -> None:
    session = _open_session(cfg)
    if session.add_body() is not None:
        _print_outline(session.sections, session.active_section_id)


def _delete_body_mode(cfg: DictConfig) -> None:
    if not cfg.get("section"):
        raise ValidationError("section is required for delete_body mode")
    session = _open_session(cfg)
    sections = session.delete_body(session.active_section_id)
    _print_outline(sections, session.active_section_id)


def _preview_mode(cfg: DictConfig) -> None:
    session = _open_session(cfg)
    text = session.preview()
    console.print(text or "[dim]No content yet.[/]")


def _assist_mode(cfg: DictConfig) -> None:
    message = cfg.get("message")
    if not message:
        raise ValidationError("message is required for assist mode")
    session = _open_session(cfg)
    reply = asyncio.run(session.ask_assistant(str(message)))
    if reply:
        console.print(reply)


def _reset_mode(cfg: DictConfig) -> None:
    session = _open_session(cfg)
    removed = session.reset()
    console.print(f"[green]Cleared essay {session.essay_id!r} ({len(removed)} keys)[/]")


_MODE_DISPATCH: dict[str, Any] = {
    "outline": _outline_mode,
    "write": _write_mode,
    "check": _check_mode,
    "complete": _complete_mode,
    "add_body": _add_body_mode,
    "delete_body": _delete_body_mode,
    "preview": _preview_mode,
    "assist": _assist_mode,
    "reset": _reset_mode,
}


# ---------------------------------------------------------------------------
# Hydra entry point
# ---------------------------------------------------------------------------


@hydra.main(config_path="conf", config_name="config", version_base=None)
def hydra_entry(cfg: DictConfig) -> None:
    """Hydra-managed CLI entry point."""
    setup_logging(verbose=cfg.get("verbose", False), quiet=cfg.get("quiet", False))

    mode = cfg.get("mode", "outline")
    handler = _MODE_DISPATCH.get(mode)
    if handler is None:
        console.print(f"[red]Unknown mode: {mode!r}. Choose from: {', '.join(_MODE_DISPATCH)}[/]")
        sys.exit(1)

    try:
        handler(cfg)
    except EssayWorkflowError as e:
        console.print(f"[red]{e}[/]")
        sys.exit(1)


def main() -> None:
    """Package entry point (``[project.scripts]`` target)."""
    hydra_entry()  # pylint: disable=no-value-for-parameter
