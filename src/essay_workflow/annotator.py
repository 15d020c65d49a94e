"""Error annotation — merge categorized error matches into highlighted runs.

The analysis service reports errors as verbatim substrings rather than
offsets, so every occurrence of each substring is located first. Overlapping
occurrences are then merged in a single left-to-right sweep into
renderer-agnostic runs: plain text, or a tagged run carrying up to three
category colors and the joined tooltip messages.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from .models import (
    AnnotatedRun,
    ErrorCategory,
    ErrorMatch,
    ErrorSpan,
    HighlightPattern,
)

ERROR_COLORS: dict[ErrorCategory, str] = {
    ErrorCategory.SPELLING: "red-200",
    ErrorCategory.PUNCTUATION: "yellow-200",
    ErrorCategory.LEXICO_SEMANTIC: "orange-200",
    ErrorCategory.STYLISTIC: "blue-200",
    ErrorCategory.TYPOGRAPHICAL: "green-200",
}

COLOR_RGB: dict[str, tuple[int, int, int]] = {
    "red-200": (254, 202, 202),
    "yellow-200": (255, 255, 0),
    "orange-200": (254, 128, 0),
    "blue-200": (191, 219, 254),
    "green-200": (187, 247, 208),
}

DEFAULT_RGB = (200, 200, 200)

MAX_COLORS = 3

_PATTERNS = {
    1: HighlightPattern.SOLID,
    2: HighlightPattern.STRIPES_2,
    3: HighlightPattern.STRIPES_3,
}


def color_rgb(color: str) -> tuple[int, int, int]:
    return COLOR_RGB.get(color, DEFAULT_RGB)


# ---------------------------------------------------------------------------
# Span discovery
# ---------------------------------------------------------------------------

def find_error_spans(
    text: str,
    errors: Mapping[ErrorCategory, Sequence[ErrorMatch]],
) -> list[ErrorSpan]:
    """Locate every occurrence of every error substring, sorted by start.

    The scan advances one character past each hit, so overlapping literal
    occurrences (``"aa"`` in ``"aaa"``) are all found. Substrings absent from
    *text* are skipped; the checker may have seen an older revision.
    """
    spans: list[ErrorSpan] = []
    for category, matches in errors.items():
        color = ERROR_COLORS.get(category, "")
        for match in matches:
            needle = match.text
            if not needle:
                continue
            index = text.find(needle)
            while index != -1:
                spans.append(ErrorSpan(
                    start=index,
                    end=index + len(needle),
                    category=category,
                    message=match.message,
                    suggestions=list(match.suggestions),
                    color=color,
                ))
                index = text.find(needle, index + 1)
    spans.sort(key=lambda s: s.start)
    return spans


# ---------------------------------------------------------------------------
# Sweep
# ---------------------------------------------------------------------------

def _tagged_run(text: str, start: int, end: int, active: list[ErrorSpan]) -> AnnotatedRun:
    shown = active[:MAX_COLORS]
    suggestions: list[str] = []
    for span in active:
        for s in span.suggestions:
            if s not in suggestions:
                suggestions.append(s)
    return AnnotatedRun(
        text=text[start:end],
        start=start,
        end=end,
        highlighted=True,
        categories=[s.category for s in active],
        colors=[s.color for s in shown],
        pattern=_PATTERNS[len(shown)],
        tooltip="\n".join(s.message for s in active),
        suggestions=suggestions,
    )


def merge_spans(text: str, spans: Sequence[ErrorSpan]) -> list[AnnotatedRun]:
    """Sweep *text* and emit plain and highlighted runs.

    *spans* must be sorted by ``start``. At each cursor position the spans
    covering it form the active set; a non-empty set produces one run up to
    the nearest active end, and the cursor jumps there.
    """
    runs: list[AnnotatedRun] = []
    plain_start: int | None = None
    pos = 0
    length = len(text)

    while pos < length:
        active = [s for s in spans if s.start <= pos < s.end]
        if not active:
            if plain_start is None:
                plain_start = pos
            pos += 1
            continue

        if plain_start is not None:
            runs.append(AnnotatedRun(text=text[plain_start:pos], start=plain_start, end=pos))
            plain_start = None

        # A cursor landing mid-span (after a shorter overlap closed) still
        # emits the remainder so that no characters are dropped.
        end = min(s.end for s in active)
        runs.append(_tagged_run(text, pos, end, active))
        pos = end

    if plain_start is not None:
        runs.append(AnnotatedRun(text=text[plain_start:], start=plain_start, end=length))
    return runs


def annotate(
    text: str,
    errors: Mapping[ErrorCategory, Sequence[ErrorMatch]],
) -> list[AnnotatedRun]:
    """Return the run list for *text* highlighted with *errors*."""
    if not text:
        return []
    return merge_spans(text, find_error_spans(text, errors))


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

def count_errors(errors: Mapping[ErrorCategory, Sequence[ErrorMatch]]) -> int:
    return sum(len(matches) for matches in errors.values())


def first_category_with_errors(
    errors: Mapping[ErrorCategory, Sequence[ErrorMatch]],
) -> ErrorCategory | None:
    """First category, in display order, that has at least one error."""
    for category in ErrorCategory:
        if errors.get(category):
            return category
    return None
