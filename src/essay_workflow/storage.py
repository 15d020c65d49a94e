"""Key-value persistence and the essay manifest.

Content and requirement snapshots are stored under per-section keys. The
manifest under ``sections:{essay_id}`` records the section list and every
key the essay has written, so a reset deletes exactly those keys.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from .models import EssayManifest, SectionRequirements

logger = logging.getLogger(__name__)


def content_key(section_id: str) -> str:
    return f"content:{section_id}"


def requirements_key(section_id: str) -> str:
    return f"requirements:{section_id}"


def manifest_key(essay_id: str) -> str:
    return f"sections:{essay_id}"


class Persistence(Protocol):
    """Persistence collaborator consumed by the session."""

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store for tests and embedding in a UI process."""

    def __init__(self, data: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self.data)


class JsonFileStore(MemoryStore):
    """Single JSON object on disk, rewritten on every change (single writer)."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        data: dict[str, str] = {}
        if self.path.exists():
            raw = self.path.read_text(encoding="utf-8")
            if raw.strip():
                loaded = json.loads(raw)
                if not isinstance(loaded, dict):
                    raise ValueError(f"Store file {self.path} does not contain a JSON object")
                data = {str(k): str(v) for k, v in loaded.items()}
        super().__init__(data)

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self.data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self.path)

    def set(self, key: str, value: str) -> None:
        super().set(key, value)
        self._flush()

    def delete(self, key: str) -> None:
        if key in self.data:
            super().delete(key)
            self._flush()


# ---------------------------------------------------------------------------
# Typed helpers
# ---------------------------------------------------------------------------

def load_manifest(store: Persistence, essay_id: str) -> EssayManifest | None:
    raw = store.get(manifest_key(essay_id))
    if not raw:
        return None
    try:
        return EssayManifest.model_validate_json(raw)
    except ValueError as e:
        logger.warning("Ignoring unreadable manifest for essay %r: %s", essay_id, e)
        return None


def save_manifest(store: Persistence, manifest: EssayManifest) -> None:
    store.set(manifest_key(manifest.essay_id), manifest.model_dump_json())


def load_requirements(store: Persistence, section_id: str) -> SectionRequirements | None:
    raw = store.get(requirements_key(section_id))
    if not raw:
        return None
    try:
        return SectionRequirements.model_validate_json(raw)
    except ValueError:
        return None


def delete_essay(store: Persistence, essay_id: str) -> list[str]:
    """Delete every key listed in the essay manifest, then the manifest itself."""
    manifest = load_manifest(store, essay_id)
    removed: list[str] = []
    if manifest is not None:
        for key in manifest.keys:
            store.delete(key)
            removed.append(key)
    store.delete(manifest_key(essay_id))
    removed.append(manifest_key(essay_id))
    logger.info("Reset essay %r (%d keys)", essay_id, len(removed))
    return removed
