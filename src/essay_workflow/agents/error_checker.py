"""ErrorChecker agent — finds proofreading errors as verbatim substrings."""

from __future__ import annotations

import autogen

from ..config import build_role_llm_config
from ..models import WorkflowConfig

SYSTEM_PROMPT = """\
You are an essay error detection system. Analyze the text and identify ALL
errors, returning them ONLY as a JSON array. Check for these error types:

1. spelling — typing mistakes, incorrect noun endings, agreement errors,
   capitalization mistakes, compound word errors.
2. punctuation — missing or incorrect commas, colon and semicolon misuse,
   period issues, missing punctuation between clauses.
3. lexicoSemantic — phrases lacking clear meaning, missing words, incorrect
   possessives (its/it's), wrong word choices.
4. stylistic — informal register, repeated expressions, excessive passive
   voice, poor word order, overly long sentences, clumsy expressions.
5. typographical — spacing issues, layout and formatting problems.

For EACH error found, output an object:
{"category": "spelling|punctuation|lexicoSemantic|stylistic|typographical",
 "type": "specific subcategory",
 "message": "clear explanation of the error",
 "suggestions": ["specific correction"],
 "text": "the exact problematic text, copied verbatim"}

Rules:
- "text" must be an exact substring of the analyzed text.
- Include every instance of repeated errors.
- Return ONLY the JSON array ([] when there are no errors), no prose.

Example:
Text: "He go to the store but forgot his wallet"
[
  {"category": "spelling", "type": "verb form",
   "message": "The verb 'go' should be 'goes' to agree with the subject.",
   "suggestions": ["goes"], "text": "go"},
  {"category": "punctuation", "type": "missing comma",
   "message": "Missing comma between independent clauses.",
   "suggestions": ["store, but"], "text": "store but"}
]
"""


def make_error_checker(config: WorkflowConfig) -> autogen.AssistantAgent:
    """Create the ErrorChecker agent."""
    return autogen.AssistantAgent(
        name="ErrorChecker",
        system_message=SYSTEM_PROMPT,
        llm_config=build_role_llm_config("error_checker", config),
    )
