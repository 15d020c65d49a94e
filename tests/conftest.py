"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest

from essay_workflow.logging_config import SilentCallbacks
from essay_workflow.models import EssayMeta, WorkflowConfig
from essay_workflow.session import SessionOrchestrator
from essay_workflow.storage import MemoryStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SAMPLE_CONFIG = FIXTURES_DIR / "sample_config.yaml"

COMPLETE = json.dumps({"isComplete": True, "missing": [], "improvements": []})
THREE_POINTS = json.dumps({"mainPoints": [
    {"point": "Cost", "keywords": ["price"], "suggestedEvidence": ["2023 survey"]},
    {"point": "Access", "keywords": [], "suggestedEvidence": []},
    {"point": "Quality", "keywords": ["outcomes"], "suggestedEvidence": []},
]})


class FakeClock:
    """Manually advanced replacement for ``time.monotonic``."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAnalysis:
    """Scripted AnalysisService; a payload that is an Exception is raised."""

    def __init__(self) -> None:
        self.errors_payload: Any = "[]"
        self.completeness_payload: Any = COMPLETE
        self.thesis_payload: Any = THREE_POINTS
        self.assistant_reply = "What is your main claim?"
        self.calls: list[tuple[str, tuple]] = []
        self.gate: asyncio.Event | None = None

    async def _reply(self, name: str, args: tuple, payload: Any) -> Any:
        self.calls.append((name, args))
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(payload, Exception):
            raise payload
        return payload

    def count(self, name: str) -> int:
        return sum(1 for n, _ in self.calls if n == name)

    async def check_errors(self, text):
        return await self._reply("check_errors", (text,), self.errors_payload)

    async def check_completeness(self, content, section_kind, previous_content):
        return await self._reply(
            "check_completeness", (content, section_kind, previous_content), self.completeness_payload,
        )

    async def extract_thesis_points(self, intro_text):
        return await self._reply("extract_thesis_points", (intro_text,), self.thesis_payload)

    async def ask_assistant(self, section_kind, content, essay_meta, message):
        return await self._reply(
            "ask_assistant", (section_kind, content, essay_meta, message), self.assistant_reply,
        )


@pytest.fixture
def sample_config_path() -> Path:
    return SAMPLE_CONFIG


@pytest.fixture
def config() -> WorkflowConfig:
    return WorkflowConfig(essay_id="test-essay")


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def analysis() -> FakeAnalysis:
    return FakeAnalysis()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def submitted() -> list:
    return []


@pytest.fixture
def session(store, analysis, config, clock, submitted) -> SessionOrchestrator:
    return SessionOrchestrator(
        store,
        analysis,
        config,
        meta=EssayMeta(title="School uniforms", prompt="Should schools require uniforms?", post_type="essay"),
        callbacks=SilentCallbacks(),
        clock=clock,
        submitter=submitted.append,
    )
