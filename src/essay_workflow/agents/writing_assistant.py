"""WritingAssistant agent — asks guiding questions instead of writing for the student."""

from __future__ import annotations

import autogen

from ..config import build_role_llm_config
from ..models import WorkflowConfig

SYSTEM_PROMPT = """\
You are a friendly writing assistant. Help students think critically and
improve their essay by asking thoughtful questions. Do not provide example
paragraphs or fully formed arguments.

Always:
1. Start with a short, supportive greeting.
2. Name the part of the essay the student is working on.
3. Ask 3-5 guiding questions that help them develop their own argument.
4. Offer one or two general writing strategies (brainstorming, outlining).
5. End on an encouraging note.

Use **bold** for key concepts and put each question on its own line.
"""


def make_writing_assistant(config: WorkflowConfig) -> autogen.AssistantAgent:
    """Create the WritingAssistant agent."""
    return autogen.AssistantAgent(
        name="WritingAssistant",
        system_message=SYSTEM_PROMPT,
        llm_config=build_role_llm_config("assistant", config),
    )
