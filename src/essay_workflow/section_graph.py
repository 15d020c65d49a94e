"""SectionGraph — the ordered Introduction / Body* / Conclusion sequence.

Every structural change goes through this class so that the invariants hold
after each call: the Introduction is first, the Conclusion last, Body
sections sit contiguously in between, there are at most ``max_bodies`` of
them, and each Body title carries its positional rank.
"""

from __future__ import annotations

import itertools
import logging
import time
from collections.abc import Iterable, Iterator

from .exceptions import InvalidOperation
from .models import Section, SectionKind

logger = logging.getLogger(__name__)

MAX_BODY_SECTIONS = 5

_id_counter = itertools.count(1)


def make_section_id(prefix: str) -> str:
    """Return a new id from the wall clock plus a process-wide counter."""
    return f"{prefix}-{int(time.time() * 1000)}-{next(_id_counter)}"


def body_title(rank: int, heading: str | None = None) -> str:
    if heading:
        return f"Body Paragraph {rank}: {heading}"
    return f"Body Paragraph {rank}"


def renumber(sections: Iterable[Section]) -> None:
    """Rewrite each Body title from its 1-based rank among Body sections."""
    rank = 0
    for section in sections:
        if section.kind == SectionKind.BODY:
            rank += 1
            section.title = body_title(rank, section.heading)


class SectionGraph:
    """Owns the section sequence of one essay."""

    def __init__(
        self,
        sections: list[Section] | None = None,
        *,
        max_bodies: int = MAX_BODY_SECTIONS,
        retired_ids: Iterable[str] = (),
    ) -> None:
        self.max_bodies = max_bodies
        if sections is None:
            sections = [
                Section(id=make_section_id("intro"), kind=SectionKind.INTRODUCTION, title="Introduction"),
                Section(id=make_section_id("conclusion"), kind=SectionKind.CONCLUSION, title="Conclusion"),
            ]
        self._check_sequence(sections)
        self._sections: list[Section] = list(sections)
        self._retired: set[str] = set(retired_ids)
        renumber(self._sections)

    @classmethod
    def from_sections(
        cls,
        sections: Iterable[Section],
        *,
        max_bodies: int = MAX_BODY_SECTIONS,
        retired_ids: Iterable[str] = (),
    ) -> SectionGraph:
        """Restore a persisted sequence; raises InvalidOperation if it is not well formed."""
        return cls(
            [s.model_copy(deep=True) for s in sections],
            max_bodies=max_bodies,
            retired_ids=retired_ids,
        )

    # -----------------------------------------------------------------------
    # Read access
    # -----------------------------------------------------------------------

    @property
    def sections(self) -> list[Section]:
        return list(self._sections)

    def __iter__(self) -> Iterator[Section]:
        return iter(list(self._sections))

    def __len__(self) -> int:
        return len(self._sections)

    @property
    def introduction(self) -> Section:
        return self._sections[0]

    @property
    def conclusion(self) -> Section:
        return self._sections[-1]

    @property
    def bodies(self) -> list[Section]:
        return [s for s in self._sections if s.kind == SectionKind.BODY]

    @property
    def body_count(self) -> int:
        return len(self.bodies)

    @property
    def can_add_body(self) -> bool:
        return self.body_count < self.max_bodies

    @property
    def retired_ids(self) -> list[str]:
        return sorted(self._retired)

    def get(self, section_id: str) -> Section | None:
        for section in self._sections:
            if section.id == section_id:
                return section
        return None

    def index_of(self, section_id: str) -> int:
        for i, section in enumerate(self._sections):
            if section.id == section_id:
                return i
        raise InvalidOperation(f"Unknown section {section_id!r}")

    def find_next(self, section_id: str) -> Section | None:
        i = self.index_of(section_id)
        return self._sections[i + 1] if i + 1 < len(self._sections) else None

    def find_previous(self, section_id: str) -> Section | None:
        i = self.index_of(section_id)
        return self._sections[i - 1] if i > 0 else None

    def next_body(self, section_id: str) -> Section | None:
        """The section right after *section_id*, if it is a Body."""
        nxt = self.find_next(section_id)
        return nxt if nxt is not None and nxt.kind == SectionKind.BODY else None

    # -----------------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------------

    def insert_body(self, after_id: str | None = None) -> Section | None:
        """Append a Body right before the Conclusion.

        *after_id* is accepted for call-site symmetry but new paragraphs
        always land after the existing ones. Returns ``None`` (and changes
        nothing) once ``max_bodies`` is reached.
        """
        if not self.can_add_body:
            logger.info("Body paragraph limit (%d) reached; insert ignored", self.max_bodies)
            return None
        section = Section(id=self._fresh_id("body"), kind=SectionKind.BODY)
        self._sections.insert(len(self._sections) - 1, section)
        renumber(self._sections)
        logger.debug("Inserted %s as %s", section.id, section.title)
        return section

    def delete_body(self, section_id: str) -> list[Section]:
        """Remove a Body section and renumber the rest."""
        section = self.get(section_id)
        if section is None:
            raise InvalidOperation(f"Unknown section {section_id!r}")
        if section.kind != SectionKind.BODY:
            raise InvalidOperation(f"Only body paragraphs can be deleted, not the {section.kind.value}")
        self._sections.remove(section)
        self._retired.add(section.id)
        renumber(self._sections)
        logger.debug("Deleted %s", section_id)
        return self.sections

    def preview_replacement(self, new_bodies: list[Section]) -> list[Section]:
        """Return the sequence ``replace_bodies_with`` would produce, without mutating."""
        return [s.model_copy(deep=True) for s in self._spliced(new_bodies)]

    def replace_bodies_with(self, new_bodies: list[Section]) -> list[Section]:
        """Swap every Body for *new_bodies* in a single assignment.

        Validation runs before anything changes, so a rejected replacement
        leaves the graph exactly as it was.
        """
        spliced = self._spliced(new_bodies)
        kept = {s.id for s in spliced}
        removed = [s.id for s in self.bodies if s.id not in kept]
        self._sections = spliced
        self._retired.update(removed)
        logger.info("Replaced %d body paragraph(s) with %d", len(removed), len(new_bodies))
        return self.sections

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _fresh_id(self, prefix: str) -> str:
        while True:
            candidate = make_section_id(prefix)
            if candidate not in self._retired and self.get(candidate) is None:
                return candidate

    def _spliced(self, new_bodies: list[Section]) -> list[Section]:
        if len(new_bodies) > self.max_bodies:
            raise InvalidOperation(
                f"Cannot hold {len(new_bodies)} body paragraphs (limit {self.max_bodies})"
            )
        fixed = {self.introduction.id, self.conclusion.id}
        seen: set[str] = set()
        for body in new_bodies:
            if body.kind != SectionKind.BODY:
                raise InvalidOperation(f"Section {body.id!r} is not a body paragraph")
            if body.id in seen or body.id in fixed:
                raise InvalidOperation(f"Duplicate section id {body.id!r}")
            if body.id in self._retired:
                raise InvalidOperation(f"Section id {body.id!r} was already used")
            seen.add(body.id)

        spliced = [self.introduction, *(b.model_copy(deep=True) for b in new_bodies), self.conclusion]
        renumber(spliced)
        return spliced

    def _check_sequence(self, sections: list[Section]) -> None:
        if len(sections) < 2:
            raise InvalidOperation("An essay needs an introduction and a conclusion")
        if sections[0].kind != SectionKind.INTRODUCTION:
            raise InvalidOperation("The first section must be the introduction")
        if sections[-1].kind != SectionKind.CONCLUSION:
            raise InvalidOperation("The last section must be the conclusion")
        middle = sections[1:-1]
        if any(s.kind != SectionKind.BODY for s in middle):
            raise InvalidOperation("Only body paragraphs may sit between introduction and conclusion")
        if len(middle) > self.max_bodies:
            raise InvalidOperation(f"Too many body paragraphs ({len(middle)} > {self.max_bodies})")
        ids = [s.id for s in sections]
        if len(set(ids)) != len(ids):
            raise InvalidOperation("Section ids must be unique")
