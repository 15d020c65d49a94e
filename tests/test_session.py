"""Tests for session.py — throttling, staleness, persistence and the gate flow."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from essay_workflow.exceptions import InvalidOperation, ThrottleError, ValidationError
from essay_workflow.logging_config import SilentCallbacks
from essay_workflow.models import Completion, ErrorCategory, GateAction, SectionKind, WorkflowConfig
from essay_workflow.session import SessionOrchestrator
from essay_workflow.storage import content_key, load_manifest, manifest_key, requirements_key

INCOMPLETE = json.dumps({
    "isComplete": False,
    "missing": ["Clear thesis statement present"],
    "improvements": ["State your position in one sentence"],
})
ERRORS = json.dumps([
    {"category": "spelling", "text": "teh", "message": "typo", "suggestions": ["the"]},
    {"category": "stylistic", "text": "really", "message": "filler word"},
])


async def _settle() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


class TestOpen:
    def test_new_essay_persists_manifest(self, session, store):
        manifest = load_manifest(store, "test-essay")
        assert manifest is not None
        assert [s.kind for s in manifest.sections] == [SectionKind.INTRODUCTION, SectionKind.CONCLUSION]
        assert session.active_section_id == session.graph.introduction.id

    def test_reopen_restores_sections_and_content(self, session, store, analysis, config):
        session.add_body()
        session.update_content("My introduction.")
        session.save()
        reopened = SessionOrchestrator(store, analysis, config, callbacks=SilentCallbacks())
        assert [s.id for s in reopened.sections] == [s.id for s in session.sections]
        assert reopened.content == "My introduction."
        assert reopened.meta.title == "School uniforms"

    @pytest.mark.asyncio
    async def test_reopen_reads_requirements_key(self, session, store, analysis, config):
        analysis.completeness_payload = INCOMPLETE
        session.update_content("An intro without a thesis.")
        await session.complete()
        intro_id = session.graph.introduction.id
        store.set(requirements_key(intro_id), json.dumps({"missing": ["Hook sentence"], "improvements": []}))
        reopened = SessionOrchestrator(store, analysis, config, callbacks=SilentCallbacks())
        assert reopened.active_section.requirements.missing == ["Hook sentence"]
        store.delete(requirements_key(intro_id))
        reopened = SessionOrchestrator(store, analysis, config, callbacks=SilentCallbacks())
        assert reopened.active_section.requirements is None


class TestContent:
    def test_update_content_tracks_completion(self, session):
        assert session.update_content("Some text").completion == Completion.DRAFTED
        assert session.update_content("").completion == Completion.EMPTY

    def test_select_saves_and_loads(self, session, store):
        session.update_content("intro text")
        conclusion = session.graph.conclusion
        session.select_section(conclusion.id)
        assert store.get(content_key(session.graph.introduction.id)) == "intro text"
        assert session.content == ""
        session.select_section(session.graph.introduction.id)
        assert session.content == "intro text"

    def test_select_unknown(self, session):
        with pytest.raises(InvalidOperation):
            session.select_section("nope")

    def test_add_body_limit_warns(self, session):
        for _ in range(5):
            assert session.add_body() is not None
        assert session.add_body() is None
        assert session.graph.body_count == 5


class TestCheck:
    @pytest.mark.asyncio
    async def test_empty_content_rejected_without_call(self, session, analysis):
        session.update_content("   ")
        with pytest.raises(ValidationError):
            await session.check()
        assert analysis.count("check_errors") == 0

    @pytest.mark.asyncio
    async def test_result_annotated_and_scored(self, session, analysis):
        analysis.errors_payload = ERRORS
        session.update_content("I really like teh idea.")
        result = await session.check()
        assert result.total_errors == 2
        assert result.score == 8
        assert result.active_category == ErrorCategory.SPELLING
        assert "".join(r.text for r in result.runs) == "I really like teh idea."
        assert [r.text for r in result.runs if r.highlighted] == ["really", "teh"]

    @pytest.mark.asyncio
    async def test_cooldown_rejects_second_check(self, session, analysis, clock):
        analysis.errors_payload = ERRORS
        session.update_content("I really like teh idea.")
        first = await session.check()
        clock.advance(10.2)
        analysis.errors_payload = "[]"
        with pytest.raises(ThrottleError) as exc:
            await session.check()
        assert exc.value.reason == ThrottleError.COOLDOWN
        assert exc.value.remaining_seconds == 20
        assert analysis.count("check_errors") == 1
        assert session.runs == first.runs
        assert session.errors[ErrorCategory.SPELLING][0].text == "teh"

    @pytest.mark.asyncio
    async def test_check_allowed_after_cooldown(self, session, analysis, clock):
        session.update_content("Fine text.")
        await session.check()
        clock.advance(30)
        result = await session.check()
        assert result.score == 20
        assert analysis.count("check_errors") == 2

    @pytest.mark.asyncio
    async def test_in_progress_rejected(self, session, analysis):
        analysis.gate = asyncio.Event()
        session.update_content("Some text.")
        task = asyncio.create_task(session.check())
        await _settle()
        with pytest.raises(ThrottleError) as exc:
            await session.check()
        assert exc.value.reason == ThrottleError.IN_PROGRESS
        analysis.gate.set()
        assert await task is not None
        assert analysis.count("check_errors") == 1

    @pytest.mark.asyncio
    async def test_failed_check_does_not_start_cooldown(self, session, analysis):
        analysis.errors_payload = RuntimeError("service down")
        session.update_content("Some text.")
        result = await session.check()
        assert result.total_errors == 0
        assert session.check_cooldown_remaining() == 0
        analysis.errors_payload = "[]"
        assert await session.check() is not None

    @pytest.mark.asyncio
    async def test_stale_result_discarded(self, session, analysis):
        analysis.gate = asyncio.Event()
        analysis.errors_payload = ERRORS
        session.update_content("I really like teh idea.")
        task = asyncio.create_task(session.check())
        await _settle()
        session.select_section(session.graph.conclusion.id)
        analysis.gate.set()
        assert await task is None
        assert session.runs == []
        assert all(not v for v in session.errors.values())

    @pytest.mark.asyncio
    async def test_stale_result_warns_caller(self, store, analysis, config, clock):
        callbacks = MagicMock()
        session = SessionOrchestrator(store, analysis, config, callbacks=callbacks, clock=clock)
        analysis.gate = asyncio.Event()
        session.update_content("Some text.")
        task = asyncio.create_task(session.check())
        await _settle()
        session.select_section(session.graph.conclusion.id)
        analysis.gate.set()
        assert await task is None
        callbacks.on_check_start.assert_called_once()
        callbacks.on_check_end.assert_not_called()
        callbacks.on_warning.assert_called_once()
        assert "discarded" in callbacks.on_warning.call_args.args[0]

    @pytest.mark.asyncio
    async def test_switching_sections_resets_score(self, session):
        session.update_content("Fine text.")
        await session.check()
        assert session.score == 10
        session.select_section(session.graph.conclusion.id)
        assert session.score == 0
        assert session.runs == []


class TestComplete:
    @pytest.mark.asyncio
    async def test_incomplete_persists_requirements(self, session, analysis, store):
        analysis.completeness_payload = INCOMPLETE
        session.update_content("An intro without a thesis.")
        decision = await session.complete()
        intro_id = session.graph.introduction.id
        assert decision.actions == [GateAction.CONTINUE_WRITING, GateAction.ADD_BODY]
        assert session.active_section.completion == Completion.DRAFTED
        assert json.loads(store.get(requirements_key(intro_id)))["missing"] == ["Clear thesis statement present"]
        assert requirements_key(intro_id) in load_manifest(store, "test-essay").keys

    @pytest.mark.asyncio
    async def test_complete_clears_requirements(self, session, analysis, store):
        analysis.completeness_payload = INCOMPLETE
        session.update_content("Draft.")
        await session.complete()
        analysis.completeness_payload = json.dumps({"isComplete": True, "missing": []})
        await session.complete()
        assert store.get(requirements_key(session.graph.introduction.id)) is None
        assert session.active_section.completion == Completion.COMPLETE

    @pytest.mark.asyncio
    async def test_previous_section_content_passed(self, session, analysis):
        session.update_content("The intro.")
        body = session.add_body()
        session.select_section(body.id)
        session.update_content("The body.")
        await session.complete()
        name, args = analysis.calls[-1]
        assert name == "check_completeness"
        assert args == ("The body.", "body", "The intro.")

    @pytest.mark.asyncio
    async def test_introduction_has_no_previous(self, session, analysis):
        session.update_content("The intro.")
        await session.complete()
        assert analysis.calls[-1][1][2] is None

    @pytest.mark.asyncio
    async def test_raising_collaborator_gives_default_verdict(self, session, analysis):
        analysis.completeness_payload = RuntimeError("boom")
        session.update_content("The intro.")
        decision = await session.complete()
        assert decision.is_complete is False
        assert decision.missing == ["Please review the section requirements"]

    @pytest.mark.asyncio
    async def test_second_complete_in_progress(self, session, analysis):
        analysis.gate = asyncio.Event()
        session.update_content("The intro.")
        task = asyncio.create_task(session.complete())
        await _settle()
        with pytest.raises(ThrottleError) as exc:
            await session.complete()
        assert exc.value.operation == "complete"
        analysis.gate.set()
        await task

    @pytest.mark.asyncio
    async def test_stale_verdict_discarded(self, session, analysis, store):
        analysis.gate = asyncio.Event()
        analysis.completeness_payload = INCOMPLETE
        session.update_content("An intro without a thesis.")
        intro = session.graph.introduction
        before = intro.completion
        task = asyncio.create_task(session.complete())
        await _settle()
        session.select_section(session.graph.conclusion.id)
        analysis.gate.set()
        assert await task is None
        assert store.get(requirements_key(intro.id)) is None
        assert intro.completion == before
        assert intro.requirements is None
        assert session.last_decision is None


class TestChoose:
    @pytest.mark.asyncio
    async def test_expand_thesis_creates_bodies_and_navigates(self, session, analysis):
        session.update_content("Uniforms cut cost, widen access and raise quality.")
        await session.complete()
        outcome = await session.choose("expand_thesis")
        bodies = session.graph.bodies
        assert [b.title for b in bodies] == [
            "Body Paragraph 1: Cost", "Body Paragraph 2: Access", "Body Paragraph 3: Quality",
        ]
        assert session.active_section_id == bodies[0].id == outcome.target_section_id
        assert analysis.calls[-1] == (
            "extract_thesis_points", ("Uniforms cut cost, widen access and raise quality.",),
        )

    @pytest.mark.asyncio
    async def test_regenerate_needs_confirm_and_drops_old_content(self, session, store):
        old = session.add_body()
        session.select_section(old.id)
        session.update_content("old body text")
        session.select_section(session.graph.introduction.id)
        session.update_content("Intro.")
        await session.complete()
        with pytest.raises(InvalidOperation):
            await session.choose(GateAction.REGENERATE_BODIES)
        assert [b.id for b in session.graph.bodies] == [old.id]
        await session.choose(GateAction.REGENERATE_BODIES, confirm=True)
        assert old.id not in {b.id for b in session.graph.bodies}
        assert store.get(content_key(old.id)) is None
        assert content_key(old.id) not in load_manifest(store, "test-essay").keys

    @pytest.mark.asyncio
    async def test_second_choice_while_expanding_rejected(self, session, analysis):
        session.update_content("Uniforms cut cost, widen access and raise quality.")
        await session.complete()
        analysis.gate = asyncio.Event()
        task = asyncio.create_task(session.choose(GateAction.EXPAND_THESIS))
        await _settle()
        with pytest.raises(ThrottleError) as exc:
            await session.choose(GateAction.EXPAND_THESIS)
        assert exc.value.reason == ThrottleError.IN_PROGRESS
        analysis.gate.set()
        outcome = await task
        assert analysis.count("extract_thesis_points") == 1
        assert session.graph.body_count == 3
        assert session.graph.retired_ids == []
        assert session.active_section_id == outcome.target_section_id

    @pytest.mark.asyncio
    async def test_expansion_after_navigation_discarded(self, session, analysis, store):
        session.update_content("Uniforms cut cost, widen access and raise quality.")
        await session.complete()
        analysis.gate = asyncio.Event()
        task = asyncio.create_task(session.choose(GateAction.EXPAND_THESIS))
        await _settle()
        conclusion_id = session.graph.conclusion.id
        session.select_section(conclusion_id)
        analysis.gate.set()
        assert await task is None
        assert session.graph.body_count == 0
        assert session.active_section_id == conclusion_id
        assert [s.kind for s in load_manifest(store, "test-essay").sections] == [
            SectionKind.INTRODUCTION, SectionKind.CONCLUSION,
        ]

    @pytest.mark.asyncio
    async def test_expansion_after_returning_to_section_discarded(self, session, analysis):
        session.update_content("Uniforms cut cost, widen access and raise quality.")
        await session.complete()
        intro_id = session.graph.introduction.id
        analysis.gate = asyncio.Event()
        task = asyncio.create_task(session.choose(GateAction.EXPAND_THESIS))
        await _settle()
        session.select_section(session.graph.conclusion.id)
        session.select_section(intro_id)
        analysis.gate.set()
        assert await task is None
        assert session.graph.body_count == 0
        assert session.active_section_id == intro_id

    @pytest.mark.asyncio
    async def test_choose_without_decision(self, session):
        with pytest.raises(InvalidOperation):
            await session.choose(GateAction.CONTINUE_WRITING)

    @pytest.mark.asyncio
    async def test_unknown_action(self, session):
        session.update_content("Intro.")
        await session.complete()
        with pytest.raises(InvalidOperation):
            await session.choose("publish_now")

    @pytest.mark.asyncio
    async def test_finalize_submits_and_resets(self, session, store, submitted):
        session.update_content("Intro text")
        session.select_section(session.graph.conclusion.id)
        session.update_content("Conclusion text")
        await session.complete()
        outcome = await session.choose(GateAction.FINALIZE)
        assert outcome.handoff is True
        assert len(submitted) == 1
        assert submitted[0].content == "Intro text\n\nConclusion text"
        assert submitted[0].post_payload()["postType"] == "essay"
        assert store.data == {}

    @pytest.mark.asyncio
    async def test_finalize_without_title_keeps_essay(self, session, store, submitted):
        session.set_meta(session.meta.model_copy(update={"title": ""}))
        session.select_section(session.graph.conclusion.id)
        session.update_content("Conclusion text")
        await session.complete()
        with pytest.raises(ValidationError):
            await session.choose(GateAction.FINALIZE)
        assert submitted == []
        assert store.get(manifest_key("test-essay")) is not None


class TestDeleteBody:
    def test_deleting_active_body_moves_to_same_position(self, session, store):
        bodies = [session.add_body() for _ in range(3)]
        session.select_section(bodies[1].id)
        session.update_content("to be deleted")
        sections = session.delete_body(bodies[1].id)
        assert session.active_section_id == bodies[2].id
        assert [s.title for s in sections if s.is_body] == ["Body Paragraph 1", "Body Paragraph 2"]
        assert store.get(content_key(bodies[1].id)) is None

    def test_deleting_last_body_moves_to_conclusion(self, session):
        body = session.add_body()
        session.select_section(body.id)
        session.delete_body(body.id)
        assert session.active_section_id == session.graph.conclusion.id

    def test_deleting_other_body_keeps_active(self, session):
        body = session.add_body()
        intro_id = session.active_section_id
        session.delete_body(body.id)
        assert session.active_section_id == intro_id

    def test_delete_introduction_rejected(self, session):
        with pytest.raises(InvalidOperation):
            session.delete_body(session.graph.introduction.id)


class TestComposition:
    def test_compose_and_preview(self, session):
        session.update_content("Intro text")
        body = session.add_body()
        session.select_section(session.graph.conclusion.id)
        session.update_content("Conclusion text")
        assert session.content_of(body.id) == ""
        assert session.compose_essay() == "Intro text\n\nConclusion text"
        assert session.preview() == "Introduction\n\nIntro text\n\n---\n\nConclusion\n\nConclusion text"


class TestReset:
    def test_reset_deletes_every_key(self, session, store):
        session.update_content("Intro")
        body = session.add_body()
        session.select_section(body.id)
        session.update_content("Body")
        session.save()
        removed = session.reset()
        assert store.data == {}
        assert manifest_key("test-essay") in removed
        assert session.graph.body_count == 0
        assert session.content == ""

    def test_reset_leaves_other_essays(self, session, store):
        store.set("content:other-section", "keep me")
        session.update_content("Intro")
        session.save()
        session.reset()
        assert store.data == {"content:other-section": "keep me"}


class TestAssistant:
    @pytest.mark.asyncio
    async def test_forwards_section_context(self, session, analysis):
        session.update_content("Draft intro")
        reply = await session.ask_assistant("How do I start?")
        assert reply == "What is your main claim?"
        name, args = analysis.calls[-1]
        assert args[0] == "introduction"
        assert args[1] == "Draft intro"
        assert args[2].title == "School uniforms"

    @pytest.mark.asyncio
    async def test_failure_returns_empty(self, session, analysis):
        analysis.assistant_reply = RuntimeError("offline")
        assert await session.ask_assistant("help") == ""


class TestAutosave:
    @pytest.mark.asyncio
    async def test_persists_periodically_even_when_empty(self, store, analysis):
        config = WorkflowConfig(essay_id="auto", autosave_interval_seconds=0.01)
        session = SessionOrchestrator(store, analysis, config, callbacks=SilentCallbacks())
        intro_key = content_key(session.active_section_id)
        session.start_autosave()
        session.update_content("typed")
        await asyncio.sleep(0.05)
        assert store.get(intro_key) == "typed"
        session.update_content("")
        await asyncio.sleep(0.05)
        assert store.get(intro_key) == ""
        await session.stop_autosave()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, store, analysis):
        session = SessionOrchestrator(
            store, analysis, WorkflowConfig(autosave_interval_seconds=0.01), callbacks=SilentCallbacks(),
        )
        assert session.start_autosave() is session.start_autosave()
        await session.stop_autosave()
        assert session._autosave_task is None
