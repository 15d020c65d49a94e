"""SessionOrchestrator — one editing session over a persisted essay.

The session owns the active section, its in-memory content buffer and the
ephemeral proofreading state (errors, runs, score). Every mutation of the
section sequence or of per-section completion goes through the
:class:`SectionGraph` and :class:`CompletionGate` it holds; persistence is a
side effect of those mutations.

Analysis requests are throttled: at most one check, one completeness request
and one choice are in flight, and successful checks are spaced by a cooldown.
Results that come back after the writer moved to another section are
discarded.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import math
import time
from collections.abc import Callable
from typing import Any

from .analysis import AnalysisService
from .annotator import annotate, count_errors, first_category_with_errors
from .completion_gate import EXPANSION_ACTIONS, CompletionGate
from .exceptions import InvalidOperation, StaleResponse, ThrottleError, ValidationError
from .logging_config import RichCallbacks, SessionCallbacks, logger
from .models import (
    AnnotatedRun,
    CheckResult,
    EssayManifest,
    EssayMeta,
    ErrorCategory,
    ErrorMatch,
    GateAction,
    GateDecision,
    GateOutcome,
    ReviewSubmission,
    Section,
    WorkflowConfig,
)
from .normalize import coerce_error_map, coerce_verdict, default_verdict, empty_error_map
from .section_graph import SectionGraph
from .storage import (
    Persistence,
    content_key,
    delete_essay,
    load_manifest,
    load_requirements,
    requirements_key,
    save_manifest,
)
from .thesis_expander import ThesisExpander

Submitter = Callable[[ReviewSubmission], Any]

PREVIEW_SEPARATOR = "\n\n---\n\n"


class SessionOrchestrator:
    """Caller-facing operations for writing one essay section by section."""

    def __init__(
        self,
        store: Persistence,
        analysis: AnalysisService,
        config: WorkflowConfig | None = None,
        *,
        essay_id: str | None = None,
        meta: EssayMeta | None = None,
        callbacks: SessionCallbacks | None = None,
        clock: Callable[[], float] = time.monotonic,
        submitter: Submitter | None = None,
    ) -> None:
        self.store = store
        self.analysis = analysis
        self.config = config or WorkflowConfig()
        self.essay_id = essay_id or self.config.essay_id
        self.callbacks = callbacks or RichCallbacks()
        self.clock = clock
        self.submitter = submitter
        self.expander = ThesisExpander(analysis, max_bodies=self.config.max_body_sections)

        # Ephemeral per-section state
        self.errors: dict[ErrorCategory, list[ErrorMatch]] = empty_error_map()
        self.runs: list[AnnotatedRun] = []
        self.score = 0
        self.active_category: ErrorCategory | None = None
        self.last_decision: GateDecision | None = None
        self.last_submission: ReviewSubmission | None = None

        # Throttling
        self._checking = False
        self._completing = False
        self._choosing = False
        self._last_check_at: float | None = None
        self._autosave_task: asyncio.Task | None = None

        self._open(meta)

    # -----------------------------------------------------------------------
    # Loading + persistence
    # -----------------------------------------------------------------------

    def _open(self, meta: EssayMeta | None) -> None:
        manifest = load_manifest(self.store, self.essay_id)
        max_bodies = self.config.max_body_sections
        if manifest is not None:
            self.graph = SectionGraph.from_sections(
                manifest.sections, max_bodies=max_bodies, retired_ids=manifest.retired_ids,
            )
            self.meta = meta or manifest.meta
            self._keys: list[str] = list(manifest.keys)
            # The per-section key is authoritative for requirement snapshots.
            for section in self.graph:
                section.requirements = load_requirements(self.store, section.id)
            logger.debug("Opened essay %r with %d sections", self.essay_id, len(self.graph))
        else:
            self.graph = SectionGraph(max_bodies=max_bodies)
            self.meta = meta or EssayMeta()
            self._keys = []
            logger.debug("Started new essay %r", self.essay_id)
        self.gate = CompletionGate(self.graph, self.expander)
        self.active_section_id = self.graph.introduction.id
        self._content = self.store.get(content_key(self.active_section_id)) or ""
        self._save_manifest()

    def _track(self, key: str) -> None:
        if key not in self._keys:
            self._keys.append(key)

    def _set(self, key: str, value: str) -> None:
        self.store.set(key, value)
        self._track(key)

    def _delete(self, key: str) -> None:
        self.store.delete(key)
        if key in self._keys:
            self._keys.remove(key)

    def _save_manifest(self) -> None:
        save_manifest(self.store, EssayManifest(
            essay_id=self.essay_id,
            meta=self.meta,
            sections=self.graph.sections,
            retired_ids=self.graph.retired_ids,
            keys=list(self._keys),
        ))

    def _save_requirements(self, section: Section) -> None:
        if section.requirements is None:
            self._delete(requirements_key(section.id))
        else:
            self._set(requirements_key(section.id), section.requirements.model_dump_json())

    def _forget_section(self, section_id: str) -> None:
        self._delete(content_key(section_id))
        self._delete(requirements_key(section_id))

    def save(self) -> None:
        """Persist the active section's content and the manifest."""
        self._set(content_key(self.active_section_id), self._content)
        self._save_manifest()

    def set_meta(self, meta: EssayMeta) -> None:
        self.meta = meta
        self._save_manifest()

    # -----------------------------------------------------------------------
    # Sections + content
    # -----------------------------------------------------------------------

    @property
    def sections(self) -> list[Section]:
        return self.graph.sections

    @property
    def active_section(self) -> Section:
        section = self.graph.get(self.active_section_id)
        if section is None:
            raise InvalidOperation(f"Unknown section {self.active_section_id!r}")
        return section

    @property
    def content(self) -> str:
        return self._content

    def content_of(self, section_id: str) -> str:
        if section_id == self.active_section_id:
            return self._content
        return self.store.get(content_key(section_id)) or ""

    def update_content(self, text: str) -> Section:
        """Replace the active section's text; autosave or ``save`` persists it."""
        self._content = text
        return self.gate.record_content(self.active_section_id, text)

    def _reset_check_state(self) -> None:
        self.errors = empty_error_map()
        self.runs = []
        self.score = 0
        self.active_category = None
        self.last_decision = None

    def _activate(self, section_id: str) -> Section:
        section = self.graph.get(section_id)
        if section is None:
            raise InvalidOperation(f"Unknown section {section_id!r}")
        self.active_section_id = section_id
        self._content = self.store.get(content_key(section_id)) or ""
        self._reset_check_state()
        self.callbacks.on_section_change(section)
        return section

    def select_section(self, section_id: str) -> Section:
        """Save the current section and make *section_id* active."""
        if self.graph.get(section_id) is None:
            raise InvalidOperation(f"Unknown section {section_id!r}")
        self.save()
        return self._activate(section_id)

    def add_body(self) -> Section | None:
        section = self.graph.insert_body(after_id=self.active_section_id)
        if section is None:
            self.callbacks.on_warning(
                f"Maximum {self.graph.max_bodies} body paragraphs allowed"
            )
            return None
        self._save_manifest()
        return section

    def delete_body(self, section_id: str) -> list[Section]:
        """Delete a Body and its stored keys; if it was active, move to the section now at its position."""
        index = self.graph.index_of(section_id)
        was_active = section_id == self.active_section_id
        if not was_active:
            self.save()
        sections = self.graph.delete_body(section_id)
        self._forget_section(section_id)
        if was_active:
            self._activate(sections[min(index, len(sections) - 1)].id)
        self._save_manifest()
        return sections

    # -----------------------------------------------------------------------
    # Proofreading check
    # -----------------------------------------------------------------------

    def check_cooldown_remaining(self) -> float:
        if self._last_check_at is None:
            return 0.0
        elapsed = self.clock() - self._last_check_at
        return max(0.0, self.config.check_cooldown_seconds - elapsed)

    def _ensure_current(self, section_id: str) -> None:
        if self.active_section_id != section_id:
            raise StaleResponse(section_id, self.active_section_id)

    def _discard(self, stale: StaleResponse) -> None:
        logger.debug("%s", stale)
        self.callbacks.on_warning("The section changed before the result arrived; the result was discarded.")

    async def check(self) -> CheckResult | None:
        """Run the error checker on the active section.

        Returns ``None`` when the writer switched sections before the result
        arrived. Raises ``ValidationError`` on empty content and
        ``ThrottleError`` when a check is running or the cooldown has not
        elapsed; neither contacts the analysis service.
        """
        section_id = self.active_section_id
        text = self._content
        if not text.strip():
            raise ValidationError("Please write some content before checking.")
        if self._checking:
            raise ThrottleError(ThrottleError.IN_PROGRESS)
        remaining = self.check_cooldown_remaining()
        if remaining > 0:
            raise ThrottleError(ThrottleError.COOLDOWN, remaining_seconds=math.ceil(remaining))

        self._checking = True
        self.callbacks.on_check_start(section_id)
        try:
            succeeded = True
            try:
                payload = await self.analysis.check_errors(text)
                errors = coerce_error_map(payload)
            except Exception as e:
                logger.warning("Error check failed for %s: %s", section_id, e)
                self.callbacks.on_error(f"Error checking text: {e}")
                errors = empty_error_map()
                succeeded = False

            if succeeded:
                self._last_check_at = self.clock()
            try:
                self._ensure_current(section_id)
            except StaleResponse as e:
                self._discard(e)
                return None

            total = count_errors(errors)
            self.errors = errors
            self.runs = annotate(text, errors)
            if succeeded:
                self.score = max(0, self.score + (10 - total))
            self.active_category = first_category_with_errors(errors)
            self.callbacks.on_check_end(section_id, total)
            return CheckResult(
                section_id=section_id,
                errors=errors,
                runs=self.runs,
                total_errors=total,
                score=self.score,
                active_category=self.active_category,
            )
        finally:
            self._checking = False

    # -----------------------------------------------------------------------
    # Completeness + gate
    # -----------------------------------------------------------------------

    async def complete(self) -> GateDecision | None:
        """Ask whether the active section is complete and decide the next actions."""
        section_id = self.active_section_id
        section = self.active_section
        text = self._content
        if not text.strip():
            raise ValidationError("Please write some content before checking completion.")
        if self._completing:
            raise ThrottleError(ThrottleError.IN_PROGRESS, operation="complete")

        previous = self.graph.find_previous(section_id)
        previous_content = self.content_of(previous.id) if previous is not None else ""

        self._completing = True
        try:
            try:
                payload = await self.analysis.check_completeness(
                    text, section.kind.value, previous_content or None,
                )
                verdict = coerce_verdict(payload)
            except Exception as e:
                logger.warning("Completeness check failed for %s: %s", section_id, e)
                self.callbacks.on_error(f"Error checking completion: {e}")
                verdict = default_verdict()

            try:
                self._ensure_current(section_id)
            except StaleResponse as e:
                self._discard(e)
                return None

            decision = self.gate.evaluate(section_id, verdict)
            self._save_requirements(self.active_section)
            self.save()
            self.last_decision = decision
            self.callbacks.on_decision(decision)
            return decision
        finally:
            self._completing = False

    async def choose(self, action: GateAction | str, *, confirm: bool = False) -> GateOutcome | None:
        """Apply one of the actions offered by the last completeness decision.

        Thesis expansion calls the analysis service; only one choice runs at a
        time, and an expansion that finishes after the writer moved on is
        discarded without touching the section sequence (returns ``None``).
        """
        decision = self.last_decision
        if decision is None:
            raise InvalidOperation("Run a completeness check before choosing a next step")
        try:
            action = GateAction(action)
        except ValueError:
            raise InvalidOperation(f"Unknown action {action!r}") from None
        if self._choosing:
            raise ThrottleError(ThrottleError.IN_PROGRESS, operation="complete")
        self.gate.validate(decision, action, confirm=confirm)

        section_id = decision.section_id
        self.save()
        self._choosing = True
        try:
            new_bodies = None
            if action in EXPANSION_ACTIONS:
                new_bodies = await self.expander.expand(self.content_of(self.graph.introduction.id))
                try:
                    self._ensure_current(section_id)
                    if self.last_decision is not decision:
                        raise StaleResponse(section_id, self.active_section_id)
                except StaleResponse as e:
                    self._discard(e)
                    return None

            old_bodies = {s.id for s in self.graph.bodies}
            outcome = self.gate.commit(decision, action, new_bodies=new_bodies)
            for body_id in old_bodies - {s.id for s in self.graph.bodies}:
                self._forget_section(body_id)
            self._save_manifest()
        finally:
            self._choosing = False

        if outcome.handoff:
            await self.submit()
            return outcome
        self.last_decision = None
        target = outcome.target_section_id
        if target and target != self.active_section_id:
            self._activate(target)
        return outcome

    # -----------------------------------------------------------------------
    # Composition + review handoff
    # -----------------------------------------------------------------------

    def compose_essay(self) -> str:
        """Non-empty section contents in order, separated by a blank line."""
        parts = [self.content_of(s.id) for s in self.graph]
        return "\n\n".join(p for p in parts if p)

    def preview(self) -> str:
        """Titled sections that have text, separated by a horizontal rule."""
        blocks = []
        for section in self.graph:
            text = self.content_of(section.id)
            if text.strip():
                blocks.append(f"{section.title}\n\n{text}")
        return PREVIEW_SEPARATOR.join(blocks)

    def build_submission(self) -> ReviewSubmission:
        content = self.compose_essay()
        if not content.strip():
            raise ValidationError("The essay has no content to submit.")
        if not self.meta.title.strip():
            raise ValidationError("Please enter a title for your essay.")
        if not self.meta.post_type:
            raise ValidationError("Please select a post type.")
        return ReviewSubmission(sections=self.graph.sections, essay_meta=self.meta, content=content)

    async def submit(self) -> ReviewSubmission:
        """Hand the composed essay to the submitter, then clear the essay."""
        submission = self.build_submission()
        if self.submitter is not None:
            result = self.submitter(submission)
            if inspect.isawaitable(result):
                await result
        logger.info("Submitted essay %r for review", self.essay_id)
        self.last_submission = submission
        self.reset()
        return submission

    def reset(self) -> list[str]:
        """Delete every stored key of this essay and start over with a fresh outline."""
        self._save_manifest()
        removed = delete_essay(self.store, self.essay_id)
        self.graph = SectionGraph(max_bodies=self.config.max_body_sections)
        self.gate = CompletionGate(self.graph, self.expander)
        self.meta = EssayMeta()
        self._keys = []
        self.active_section_id = self.graph.introduction.id
        self._content = ""
        self._reset_check_state()
        self._last_check_at = None
        return removed

    # -----------------------------------------------------------------------
    # Writing assistant
    # -----------------------------------------------------------------------

    async def ask_assistant(self, message: str) -> str:
        section = self.active_section
        try:
            return await self.analysis.ask_assistant(
                section.kind.value, self._content, self.meta, message,
            )
        except Exception as e:
            logger.warning("Writing assistant failed: %s", e)
            self.callbacks.on_error(f"Writing assistant unavailable: {e}")
            return ""

    # -----------------------------------------------------------------------
    # Autosave
    # -----------------------------------------------------------------------

    async def run_autosave(self) -> None:
        """Persist the active content every ``autosave_interval_seconds`` until cancelled."""
        interval = self.config.autosave_interval_seconds
        while True:
            await asyncio.sleep(interval)
            self.save()

    def start_autosave(self) -> asyncio.Task:
        if self._autosave_task is None or self._autosave_task.done():
            self._autosave_task = asyncio.get_running_loop().create_task(self.run_autosave())
        return self._autosave_task

    async def stop_autosave(self) -> None:
        task, self._autosave_task = self._autosave_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.save()
