"""CompletionGate — per-section completion state and next-action decisions.

The gate is the only place that writes a section's ``completion`` and
``requirements``. A verdict never blocks the writer: it only changes which
next actions are surfaced after a "complete this section" request.

Decision table::

    kind          complete  bodies  actions
    introduction  no        -       continue writing, add body
    introduction  yes       none    expand thesis, add body
    introduction  yes       >=1     keep existing, regenerate (confirm)
    body          no        -       continue writing, add body, next body
    body          yes       -       ... + move to conclusion
    conclusion    any       -       continue writing, finalize

"Add body" disappears once the body limit is reached and "next body" only
appears when a Body directly follows the section.
"""

from __future__ import annotations

import logging

from .exceptions import InvalidOperation
from .models import (
    Completion,
    CompletenessVerdict,
    GateAction,
    GateDecision,
    GateOutcome,
    Section,
    SectionKind,
    SectionRequirements,
)
from .section_graph import SectionGraph
from .thesis_expander import ThesisExpander

logger = logging.getLogger(__name__)

# Actions that call the thesis analyzer and replace every Body.
EXPANSION_ACTIONS = frozenset({GateAction.EXPAND_THESIS, GateAction.REGENERATE_BODIES})


class CompletionGate:
    def __init__(self, graph: SectionGraph, expander: ThesisExpander) -> None:
        self.graph = graph
        self.expander = expander

    # -----------------------------------------------------------------------
    # State transitions
    # -----------------------------------------------------------------------

    def _section(self, section_id: str) -> Section:
        section = self.graph.get(section_id)
        if section is None:
            raise InvalidOperation(f"Unknown section {section_id!r}")
        return section

    def record_verdict(self, section_id: str, verdict: CompletenessVerdict) -> Section:
        """Checked(complete) -> 100 and clear requirements; otherwise 50 + snapshot."""
        section = self._section(section_id)
        if verdict.is_complete:
            section.completion = Completion.COMPLETE
            section.requirements = None
        else:
            section.completion = Completion.DRAFTED
            section.requirements = SectionRequirements(
                missing=list(verdict.missing),
                improvements=list(verdict.improvements),
            )
        logger.debug("%s -> %d", section_id, section.completion)
        return section

    def record_content(self, section_id: str, content: str) -> Section:
        """Blank content drops the section to Draft; any text keeps at least 50."""
        section = self._section(section_id)
        if not content.strip():
            section.completion = Completion.EMPTY
        elif section.completion == Completion.EMPTY:
            section.completion = Completion.DRAFTED
        return section

    # -----------------------------------------------------------------------
    # Decisions
    # -----------------------------------------------------------------------

    def decide(self, section_id: str, verdict: CompletenessVerdict) -> GateDecision:
        section = self._section(section_id)
        graph = self.graph
        actions: list[GateAction] = []
        confirm: list[GateAction] = []
        next_body = None

        if section.kind == SectionKind.INTRODUCTION:
            if not verdict.is_complete:
                actions.append(GateAction.CONTINUE_WRITING)
                if graph.can_add_body:
                    actions.append(GateAction.ADD_BODY)
            elif graph.body_count == 0:
                actions.append(GateAction.EXPAND_THESIS)
                if graph.can_add_body:
                    actions.append(GateAction.ADD_BODY)
            else:
                actions.extend([GateAction.KEEP_EXISTING, GateAction.REGENERATE_BODIES])
                confirm.append(GateAction.REGENERATE_BODIES)

        elif section.kind == SectionKind.BODY:
            actions.append(GateAction.CONTINUE_WRITING)
            if graph.can_add_body:
                actions.append(GateAction.ADD_BODY)
            next_body = graph.next_body(section_id)
            if next_body is not None:
                actions.append(GateAction.CONTINUE_NEXT_BODY)
            if verdict.is_complete:
                actions.append(GateAction.MOVE_TO_CONCLUSION)

        else:
            actions.extend([GateAction.CONTINUE_WRITING, GateAction.FINALIZE])

        return GateDecision(
            section_id=section_id,
            kind=section.kind,
            is_complete=verdict.is_complete,
            completion=section.completion,
            missing=list(verdict.missing),
            improvements=list(verdict.improvements),
            actions=actions,
            finalize_ready=section.kind == SectionKind.CONCLUSION and verdict.is_complete,
            requires_confirmation=confirm,
            next_body_id=next_body.id if next_body else None,
            conclusion_id=graph.conclusion.id,
        )

    def evaluate(self, section_id: str, verdict: CompletenessVerdict) -> GateDecision:
        """Record *verdict* on the section, then decide the offered actions."""
        self.record_verdict(section_id, verdict)
        return self.decide(section_id, verdict)

    # -----------------------------------------------------------------------
    # Applying a choice
    # -----------------------------------------------------------------------

    def validate(self, decision: GateDecision, action: GateAction, *, confirm: bool = False) -> None:
        """Raise InvalidOperation unless *action* can be applied to *decision* now."""
        if action not in decision.actions:
            raise InvalidOperation(f"Action {action.value!r} is not available for this section")
        if action in decision.requires_confirmation and not confirm:
            raise InvalidOperation(
                "Regenerating replaces all existing body paragraphs; explicit confirmation is required"
            )
        if action == GateAction.EXPAND_THESIS and self.graph.body_count:
            raise InvalidOperation("Body paragraphs already exist; regenerate them instead")

    async def apply(
        self,
        decision: GateDecision,
        action: GateAction,
        *,
        intro_text: str = "",
        confirm: bool = False,
    ) -> GateOutcome:
        """Carry out *action*, which must be one the decision offered."""
        self.validate(decision, action, confirm=confirm)
        new_bodies = None
        if action in EXPANSION_ACTIONS:
            new_bodies = await self.expander.expand(intro_text)
        return self.commit(decision, action, new_bodies=new_bodies)

    def commit(
        self,
        decision: GateDecision,
        action: GateAction,
        *,
        new_bodies: list[Section] | None = None,
    ) -> GateOutcome:
        """Apply a validated *action* to the graph.

        Expansion actions take the already generated *new_bodies*; the graph
        is only touched here, so a caller can drop an expansion result
        without side effects by not committing it.
        """
        graph = self.graph

        if action == GateAction.CONTINUE_WRITING:
            return GateOutcome(action=action, target_section_id=decision.section_id, sections=graph.sections)

        if action == GateAction.ADD_BODY:
            created = graph.insert_body(after_id=decision.section_id)
            if created is None:
                raise InvalidOperation(f"An essay can have at most {graph.max_bodies} body paragraphs")
            return GateOutcome(
                action=action, target_section_id=created.id, sections=graph.sections, created=[created],
            )

        if action == GateAction.CONTINUE_NEXT_BODY:
            nxt = graph.next_body(decision.section_id)
            if nxt is None:
                raise InvalidOperation("There is no next body paragraph")
            return GateOutcome(action=action, target_section_id=nxt.id, sections=graph.sections)

        if action == GateAction.MOVE_TO_CONCLUSION:
            return GateOutcome(action=action, target_section_id=graph.conclusion.id, sections=graph.sections)

        if action == GateAction.KEEP_EXISTING:
            bodies = graph.bodies
            target = bodies[0].id if bodies else decision.section_id
            return GateOutcome(action=action, target_section_id=target, sections=graph.sections)

        if action in EXPANSION_ACTIONS:
            if action == GateAction.EXPAND_THESIS and graph.body_count:
                raise InvalidOperation("Body paragraphs already exist; regenerate them instead")
            sections = graph.replace_bodies_with(new_bodies or [])
            created = graph.bodies
            logger.info("Generated %d body paragraph(s) from the thesis", len(created))
            return GateOutcome(
                action=action,
                target_section_id=created[0].id if created else decision.section_id,
                sections=sections,
                created=created,
            )

        # FINALIZE: the session hands the essay to the review collaborator.
        return GateOutcome(action=action, sections=graph.sections, handoff=True)
