"""ThesisAnalyzer agent — extracts main points for body paragraphs."""

from __future__ import annotations

import autogen

from ..config import build_role_llm_config
from ..models import WorkflowConfig

SYSTEM_PROMPT = """\
You are a JSON-only response analyzer. Analyze the thesis of an essay
introduction and extract the main points, one per body paragraph.

Return ONLY a valid JSON object with this exact structure:
{
  "mainPoints": [
    {
      "point": "short statement of the point",
      "keywords": ["keyword1", "keyword2"],
      "suggestedEvidence": ["evidence1", "evidence2"]
    }
  ]
}

Rules:
1. The response must be ONLY the JSON object.
2. Arrays can be empty but must be present.
3. Return between one and {max_points} main points.
"""


def make_thesis_analyzer(config: WorkflowConfig) -> autogen.AssistantAgent:
    """Create the ThesisAnalyzer agent."""
    return autogen.AssistantAgent(
        name="ThesisAnalyzer",
        system_message=SYSTEM_PROMPT.replace("{max_points}", str(config.max_body_sections)),
        llm_config=build_role_llm_config("thesis_analyzer", config),
    )
