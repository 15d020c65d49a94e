"""Hydra structured config dataclasses.

These mirror the Pydantic ``WorkflowConfig`` for Hydra schema validation.
At runtime the Hydra DictConfig is converted to ``WorkflowConfig`` via
``cli._to_workflow_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from hydra.core.config_store import ConfigStore


@dataclass
class AzureConf:
    api_key: str = "${oc.env:AZURE_OPENAI_API_KEY,''}"
    api_version: str = "${oc.env:AZURE_OPENAI_API_VERSION,''}"
    endpoint: str = "${oc.env:AZURE_OPENAI_ENDPOINT,''}"


@dataclass
class ModelConf:
    default: str = "gpt-4o-mini"
    error_checker: str | None = None
    completeness_checker: str | None = None
    thesis_analyzer: str | None = None
    assistant: str | None = None


@dataclass
class EssayConf:
    # --- Dispatch + CLI-only fields ---
    mode: str = "outline"
    verbose: bool = False
    quiet: bool = False
    section: str | None = None
    text_file: str | None = None
    action: str | None = None
    confirm: bool = False
    message: str | None = None
    title: str | None = None
    post_type: str | None = None

    # --- WorkflowConfig fields (1:1 mapping) ---
    essay_id: str = "default"
    store_path: str = ".essay_store.json"

    check_cooldown_seconds: float = 30.0
    autosave_interval_seconds: float = 3.0
    max_body_sections: int = 5

    azure: AzureConf = field(default_factory=AzureConf)
    models: ModelConf = field(default_factory=ModelConf)

    timeout: int = 120
    seed: int = 42
    temperature: float = 0.5
    max_tokens: int = 1024


# Keys present in EssayConf that are NOT part of WorkflowConfig.
CLI_ONLY_KEYS = frozenset({
    "mode", "verbose", "quiet", "section", "text_file",
    "action", "confirm", "message", "title", "post_type",
})


def register_configs() -> None:
    """Register the structured config schema with Hydra's ConfigStore."""
    cs = ConfigStore.instance()
    cs.store(name="essay_schema", node=EssayConf)
