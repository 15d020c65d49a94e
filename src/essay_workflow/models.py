"""Pydantic models for the essay section workflow engine."""

from __future__ import annotations

from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SectionKind(str, Enum):
    INTRODUCTION = "introduction"
    BODY = "body"
    CONCLUSION = "conclusion"


class Completion(IntEnum):
    """Per-section progress: no content, drafted, verified complete."""
    EMPTY = 0
    DRAFTED = 50
    COMPLETE = 100


class ErrorCategory(str, Enum):
    SPELLING = "spelling"
    PUNCTUATION = "punctuation"
    LEXICO_SEMANTIC = "lexicoSemantic"
    STYLISTIC = "stylistic"
    TYPOGRAPHICAL = "typographical"

    @property
    def display_name(self) -> str:
        return CATEGORY_DISPLAY_NAMES[self]


CATEGORY_DISPLAY_NAMES: dict[ErrorCategory, str] = {
    ErrorCategory.SPELLING: "Spelling",
    ErrorCategory.PUNCTUATION: "Punctuation",
    ErrorCategory.LEXICO_SEMANTIC: "Meaning & Word Choice",
    ErrorCategory.STYLISTIC: "Style",
    ErrorCategory.TYPOGRAPHICAL: "Typography",
}


class HighlightPattern(str, Enum):
    SOLID = "solid"
    STRIPES_2 = "stripes_2"
    STRIPES_3 = "stripes_3"


class GateAction(str, Enum):
    CONTINUE_WRITING = "continue_writing"
    ADD_BODY = "add_body"
    CONTINUE_NEXT_BODY = "continue_next_body"
    MOVE_TO_CONCLUSION = "move_to_conclusion"
    EXPAND_THESIS = "expand_thesis"
    KEEP_EXISTING = "keep_existing"
    REGENERATE_BODIES = "regenerate_bodies"
    FINALIZE = "finalize"


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

class SectionRequirements(BaseModel):
    """Unresolved items from the last completeness check."""
    missing: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)


class Section(BaseModel):
    """One structural unit of the essay. Content lives in the store, not here."""
    id: str = Field(..., description="Opaque id, stable for the section's lifetime")
    kind: SectionKind = Field(...)
    title: str = Field(default="", description="Derived display label")
    heading: str | None = Field(default=None, description="Thesis point a generated body paragraph argues")
    completion: Completion = Field(default=Completion.EMPTY)
    requirements: SectionRequirements | None = Field(default=None)
    keywords: list[str] = Field(default_factory=list)
    suggested_evidence: list[str] = Field(default_factory=list)

    @property
    def is_body(self) -> bool:
        return self.kind == SectionKind.BODY


# ---------------------------------------------------------------------------
# Analysis contracts
# ---------------------------------------------------------------------------

class ErrorMatch(BaseModel):
    """A flagged substring reported by the error checker (text, not offsets)."""
    text: str = Field(..., description="Verbatim substring to locate")
    message: str = Field(default="")
    suggestions: list[str] = Field(default_factory=list)


class CompletenessVerdict(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_complete: bool = Field(default=False, alias="isComplete")
    missing: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)


class ThesisPoint(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    point: str = Field(...)
    keywords: list[str] = Field(default_factory=list)
    suggested_evidence: list[str] = Field(default_factory=list, alias="suggestedEvidence")


class ThesisAnalysis(BaseModel):
    """Main points extracted from an introduction's thesis."""
    model_config = ConfigDict(populate_by_name=True)

    main_points: list[ThesisPoint] = Field(default_factory=list, alias="mainPoints")


# ---------------------------------------------------------------------------
# Annotation output
# ---------------------------------------------------------------------------

class ErrorSpan(BaseModel):
    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)
    category: ErrorCategory
    message: str = ""
    suggestions: list[str] = Field(default_factory=list)
    color: str = ""


class AnnotatedRun(BaseModel):
    """A contiguous slice of the checked text, plain or highlighted."""
    text: str
    start: int
    end: int
    highlighted: bool = False
    categories: list[ErrorCategory] = Field(default_factory=list)
    colors: list[str] = Field(default_factory=list, description="One to three color names")
    pattern: HighlightPattern | None = None
    tooltip: str = ""
    suggestions: list[str] = Field(default_factory=list)


class CheckResult(BaseModel):
    """Outcome of one proofreading check on the active section."""
    section_id: str
    errors: dict[ErrorCategory, list[ErrorMatch]] = Field(default_factory=dict)
    runs: list[AnnotatedRun] = Field(default_factory=list)
    total_errors: int = 0
    score: int = 0
    active_category: ErrorCategory | None = None


# ---------------------------------------------------------------------------
# Gate decisions
# ---------------------------------------------------------------------------

class GateDecision(BaseModel):
    """Which next actions are surfaced after a completeness check."""
    section_id: str
    kind: SectionKind
    is_complete: bool
    completion: Completion
    missing: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    actions: list[GateAction] = Field(default_factory=list)
    finalize_ready: bool = Field(default=False, description="Conclusion requirements met")
    requires_confirmation: list[GateAction] = Field(default_factory=list)
    next_body_id: str | None = None
    conclusion_id: str | None = None


class GateOutcome(BaseModel):
    """Result of applying a chosen gate action."""
    action: GateAction
    target_section_id: str | None = Field(default=None, description="Section to navigate to")
    sections: list[Section] = Field(default_factory=list)
    created: list[Section] = Field(default_factory=list)
    handoff: bool = False


# ---------------------------------------------------------------------------
# Essay + review handoff
# ---------------------------------------------------------------------------

class EssayMeta(BaseModel):
    title: str = ""
    prompt: str = ""
    prompt_id: str | None = None
    post_type: str = ""


class EssayManifest(BaseModel):
    """Persisted under ``sections:{essay_id}``; lists every derived key."""
    essay_id: str
    meta: EssayMeta = Field(default_factory=EssayMeta)
    sections: list[Section] = Field(default_factory=list)
    retired_ids: list[str] = Field(default_factory=list)
    keys: list[str] = Field(default_factory=list)


class ReviewSubmission(BaseModel):
    sections: list[Section]
    essay_meta: EssayMeta
    content: str

    def post_payload(self) -> dict[str, str | None]:
        """Body of the post created by the submission collaborator."""
        return {
            "title": self.essay_meta.title,
            "content": self.content,
            "postType": self.essay_meta.post_type,
            "prompt": self.essay_meta.prompt_id,
        }


# ---------------------------------------------------------------------------
# Configuration (loaded from YAML / Hydra)
# ---------------------------------------------------------------------------

class ModelEndpointOverride(BaseModel):
    """Per-model endpoint settings that take precedence over ``azure``."""
    endpoint: str = Field(default="")
    api_key: str = Field(default="")
    api_version: str = Field(default="")
    api_type: str | None = Field(default=None, description="e.g. 'anthropic'; None = infer from endpoint")


class ModelConfig(BaseModel):
    """LLM model configuration per analysis role."""
    default: str = Field(default="gpt-4o-mini", description="Default model")
    error_checker: str | None = Field(default=None)
    completeness_checker: str | None = Field(default=None)
    thesis_analyzer: str | None = Field(default=None)
    assistant: str | None = Field(default=None)
    overrides: dict[str, ModelEndpointOverride] = Field(default_factory=dict)


class AzureConfig(BaseModel):
    """Azure OpenAI connection settings."""
    api_key: str = Field(default="", description="Azure OpenAI API key (or ${ENV_VAR})")
    api_version: str = Field(default="", description="API version")
    endpoint: str = Field(default="", description="Azure endpoint URL")


class WorkflowConfig(BaseModel):
    """Full workflow configuration loaded from config.yaml."""
    essay_id: str = Field(default="default")
    store_path: str = Field(default=".essay_store.json", description="JSON file backing the CLI store")

    # Throttling + autosave
    check_cooldown_seconds: float = Field(default=30.0, description="Minimum gap between successful checks")
    autosave_interval_seconds: float = Field(default=3.0)
    max_body_sections: int = Field(default=5, ge=0)

    # Azure OpenAI
    azure: AzureConfig = Field(default_factory=AzureConfig)

    # Models
    models: ModelConfig = Field(default_factory=ModelConfig)

    timeout: int = Field(default=120, description="LLM call timeout in seconds")
    seed: int = Field(default=42, description="LLM seed for reproducibility")
    temperature: float = Field(default=0.5)
    max_tokens: int = Field(default=1024)
