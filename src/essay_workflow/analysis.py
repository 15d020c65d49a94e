"""Analysis service contract and its AG2-backed implementation.

The engine only relies on the :class:`AnalysisService` protocol. Payloads it
returns are treated as untrusted and normalized by :mod:`.normalize`, so an
implementation may hand back raw LLM text.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Protocol

import autogen

from .agents import (
    make_completeness_checker,
    make_error_checker,
    make_thesis_analyzer,
    make_writing_assistant,
)
from .models import EssayMeta, SectionKind, WorkflowConfig

logger = logging.getLogger(__name__)


class AnalysisService(Protocol):
    """External content analysis consumed by the engine (all calls fallible)."""

    async def check_errors(self, text: str) -> Any: ...

    async def check_completeness(
        self, content: str, section_kind: str, previous_content: str | None,
    ) -> Any: ...

    async def extract_thesis_points(self, intro_text: str) -> Any: ...

    async def ask_assistant(
        self, section_kind: str, content: str, essay_meta: EssayMeta, message: str,
    ) -> str: ...


def _response_text(response: Any) -> str:
    """Extract the reply text from an AG2 chat result."""
    if hasattr(response, "summary") and response.summary:
        text = str(response.summary)
    elif hasattr(response, "chat_history") and response.chat_history:
        last = response.chat_history[-1]
        text = last.get("content", "") if isinstance(last, dict) else str(last)
    else:
        text = str(response)
    text = re.sub(r"```(?:json)?\n?", "", text)
    text = re.sub(r"```\s*$", "", text)
    return text.strip()


class AgentAnalysisService:
    """Runs each analysis as a one-turn chat with a dedicated AG2 agent."""

    def __init__(self, config: WorkflowConfig) -> None:
        self.config = config

    async def _ask(self, agent: autogen.AssistantAgent, message: str) -> str:
        proxy = autogen.UserProxyAgent(
            name="EssaySession",
            human_input_mode="NEVER",
            code_execution_config=False,
        )
        response = await proxy.a_initiate_chat(agent, message=message, max_turns=1)
        text = _response_text(response)
        logger.debug("%s replied with %d chars", agent.name, len(text))
        return text

    async def check_errors(self, text: str) -> str:
        return await self._ask(
            make_error_checker(self.config),
            f'Analyze this text for ALL errors and return ONLY a JSON array:\n"{text}"',
        )

    async def check_completeness(
        self, content: str, section_kind: str, previous_content: str | None,
    ) -> str:
        kind = SectionKind(section_kind)
        if previous_content:
            message = f'Previous section: "{previous_content}"\nCurrent section: "{content}"'
        else:
            message = f'Analyze this content: "{content}"'
        return await self._ask(make_completeness_checker(self.config, kind), message)

    async def extract_thesis_points(self, intro_text: str) -> str:
        return await self._ask(
            make_thesis_analyzer(self.config),
            f'Extract main points from this thesis: "{intro_text}"',
        )

    async def ask_assistant(
        self, section_kind: str, content: str, essay_meta: EssayMeta, message: str,
    ) -> str:
        context = (
            f"Essay title: {essay_meta.title or '(untitled)'}\n"
            f"Essay prompt: {essay_meta.prompt or '(none)'}\n"
            f"Section: {section_kind}\n"
            f"Current draft:\n{content or '(empty)'}\n\n"
            f"Student: {message}"
        )
        return await self._ask(make_writing_assistant(self.config), context)
