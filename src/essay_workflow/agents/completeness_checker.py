"""CompletenessChecker agent — evaluates a section against its criteria."""

from __future__ import annotations

import autogen

from ..config import build_role_llm_config
from ..models import SectionKind, WorkflowConfig

SECTION_CRITERIA: dict[SectionKind, str] = {
    SectionKind.INTRODUCTION: """\
- Clear thesis statement present
- Sufficient background context
- Main points clearly outlined
- Engaging opening
""",
    SectionKind.BODY: """\
- Clear topic sentence that directly supports the thesis
- Strong supporting evidence and examples
- Thorough analysis explaining the evidence
- Clear connection back to thesis/main argument
- Smooth transitions between ideas
- Proper paragraph structure and organization
""",
    SectionKind.CONCLUSION: """\
- Effective restatement of thesis
- Comprehensive summary of main points
- Meaningful final insights or implications
- Strong closing statement
- Clear sense of closure
- No new arguments introduced
""",
}

SYSTEM_PROMPT = """\
You are a JSON-only essay section evaluator. Evaluate the given {kind}
section against these criteria:

{criteria}
Return ONLY a valid JSON object with NO additional text:
{{
  "isComplete": false,
  "missing": ["criterion not yet met"],
  "improvements": ["concrete improvement"]
}}

Rules:
1. "isComplete" is true only when every criterion is met; "missing" is then [].
2. All property names and string values in double quotes.
3. Arrays can be empty but must be present.
4. No comments, markdown or extra text.
"""


def make_completeness_checker(config: WorkflowConfig, kind: SectionKind) -> autogen.AssistantAgent:
    """Create a CompletenessChecker for one section kind."""
    return autogen.AssistantAgent(
        name="CompletenessChecker",
        system_message=SYSTEM_PROMPT.format(kind=kind.value, criteria=SECTION_CRITERIA[kind]),
        llm_config=build_role_llm_config("completeness_checker", config),
    )
