"""ThesisExpander — derive Body sections from a completed introduction."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from .models import Section, SectionKind, ThesisAnalysis
from .normalize import coerce_thesis_analysis, default_thesis_analysis
from .section_graph import MAX_BODY_SECTIONS, body_title, make_section_id

if TYPE_CHECKING:
    from .analysis import AnalysisService

logger = logging.getLogger(__name__)


class ThesisExpander:
    """Turns thesis main points into unsaved Body sections.

    ``expand`` never touches a graph; the caller decides whether to commit
    the result with ``SectionGraph.replace_bodies_with``.
    """

    def __init__(
        self,
        analysis: AnalysisService,
        *,
        max_bodies: int = MAX_BODY_SECTIONS,
        id_factory: Callable[[str], str] = make_section_id,
    ) -> None:
        self.analysis = analysis
        self.max_bodies = max_bodies
        self.id_factory = id_factory

    async def analyze(self, intro_text: str) -> ThesisAnalysis:
        try:
            payload = await self.analysis.extract_thesis_points(intro_text)
        except Exception as e:
            logger.warning("Thesis extraction failed, using default main point: %s", e)
            return default_thesis_analysis()
        return coerce_thesis_analysis(payload)

    async def expand(self, intro_text: str) -> list[Section]:
        analysis = await self.analyze(intro_text)
        points = analysis.main_points
        if len(points) > self.max_bodies:
            logger.info("Thesis yielded %d points; keeping the first %d", len(points), self.max_bodies)
            points = points[:self.max_bodies]
        return self.build_sections(points)

    def build_sections(self, points) -> list[Section]:
        return [
            Section(
                id=self.id_factory("body"),
                kind=SectionKind.BODY,
                title=body_title(rank, p.point),
                heading=p.point,
                keywords=list(p.keywords),
                suggested_evidence=list(p.suggested_evidence),
            )
            for rank, p in enumerate(points, 1)
        ]
