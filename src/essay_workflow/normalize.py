"""Defensive coercion of analysis payloads into models.

Every payload coming back from the analysis service is untrusted: it may be
raw LLM text, JSON with missing arrays, or not JSON at all. The ``parse_*``
functions raise :class:`AnalysisMalformed`; the ``coerce_*`` functions catch
it and substitute the safe default so the workflow never deadlocks.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from .exceptions import AnalysisMalformed
from .models import (
    CompletenessVerdict,
    ErrorCategory,
    ErrorMatch,
    ThesisAnalysis,
    ThesisPoint,
)

logger = logging.getLogger(__name__)

DEFAULT_MISSING = "Please review the section requirements"
DEFAULT_IMPROVEMENT = "Please try analyzing the section again"
DEFAULT_MAIN_POINT = "Main Argument"


def default_verdict() -> CompletenessVerdict:
    return CompletenessVerdict(
        is_complete=False,
        missing=[DEFAULT_MISSING],
        improvements=[DEFAULT_IMPROVEMENT],
    )


def default_thesis_analysis() -> ThesisAnalysis:
    return ThesisAnalysis(main_points=[ThesisPoint(point=DEFAULT_MAIN_POINT)])


def empty_error_map() -> dict[ErrorCategory, list[ErrorMatch]]:
    return {category: [] for category in ErrorCategory}


# ---------------------------------------------------------------------------
# JSON text handling (LLM output)
# ---------------------------------------------------------------------------

def _strip_fences(raw: str) -> str:
    """Remove markdown fences."""
    return re.sub(r"```(?:json)?|```", "", raw).strip()


def _attempt_repair(raw: str) -> str | None:
    """Lightweight repair for common LLM JSON mistakes."""
    txt = raw.strip()
    if not txt:
        return None
    txt = txt.replace("“", '"').replace("”", '"').replace("‘", "'").replace("’", "'")
    txt = re.sub(r",\s*([}\]])", r"\1", txt)
    return txt


def _outermost(text: str, open_ch: str, close_ch: str) -> str | None:
    if open_ch in text and close_ch in text:
        start, end = text.find(open_ch), text.rfind(close_ch)
        if start < end:
            return text[start:end + 1]
    return None


def load_json_payload(raw: str, *, prefer_array: bool = False) -> Any:
    """Parse a JSON value out of free-form LLM text.

    Tries the whole text, then the outermost object/array segment, then a
    repaired version of that segment.
    """
    stripped = _strip_fences(raw)
    candidates = [stripped]
    order = [("[", "]"), ("{", "}")] if prefer_array else [("{", "}"), ("[", "]")]
    for open_ch, close_ch in order:
        segment = _outermost(stripped, open_ch, close_ch)
        if segment:
            candidates.append(segment)
    errors: list[str] = []
    for candidate in candidates:
        for text in (candidate, _attempt_repair(candidate)):
            if not text:
                continue
            try:
                return json.loads(text)
            except ValueError as e:
                errors.append(str(e))
    raise AnalysisMalformed("; ".join(errors) or "Empty analysis response")


def _as_payload(payload: Any, *, prefer_array: bool = False) -> Any:
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        return load_json_payload(payload, prefer_array=prefer_array)
    return payload


def _string_list(value: Any) -> list[str]:
    """Absent or non-list arrays become empty; non-string items are dropped."""
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if isinstance(v, (str, int, float)) and str(v).strip()]


# ---------------------------------------------------------------------------
# Completeness
# ---------------------------------------------------------------------------

def parse_verdict(payload: Any) -> CompletenessVerdict:
    """Read either ``{isComplete, missing, improvements}`` or the
    ``{completionStatus: {missing}, suggestedImprovements}`` shape."""
    data = _as_payload(payload)
    if isinstance(data, CompletenessVerdict):
        return data
    if not isinstance(data, dict):
        raise AnalysisMalformed(f"Completeness payload is {type(data).__name__}, expected object")

    status = data.get("completionStatus")
    if isinstance(status, dict):
        # This shape carries a checklist; completeness is derived from it.
        if not isinstance(status.get("missing"), list):
            raise AnalysisMalformed("completionStatus has no missing array")
        missing = _string_list(status["missing"])
        improvements = _string_list(data.get("suggestedImprovements", data.get("improvements")))
        flag = not missing
    else:
        missing = _string_list(data.get("missing"))
        improvements = _string_list(data.get("improvements", data.get("suggestedImprovements")))
        flag = data.get("isComplete")

    if not isinstance(flag, bool):
        raise AnalysisMalformed("Completeness payload has no boolean isComplete")
    # A verdict that still lists missing items is not complete.
    return CompletenessVerdict(is_complete=flag and not missing, missing=missing, improvements=improvements)


def coerce_verdict(payload: Any) -> CompletenessVerdict:
    try:
        return parse_verdict(payload)
    except AnalysisMalformed as e:
        logger.warning("Malformed completeness verdict, using default: %s", e)
        return default_verdict()


# ---------------------------------------------------------------------------
# Thesis points
# ---------------------------------------------------------------------------

def parse_thesis_analysis(payload: Any) -> ThesisAnalysis:
    data = _as_payload(payload)
    if isinstance(data, ThesisAnalysis):
        points = data.main_points
    else:
        if not isinstance(data, dict):
            raise AnalysisMalformed(f"Thesis payload is {type(data).__name__}, expected object")
        raw_points = data.get("mainPoints", data.get("main_points"))
        if not isinstance(raw_points, list):
            raise AnalysisMalformed("Thesis payload has no mainPoints array")
        points = []
        for i, item in enumerate(raw_points, 1):
            if isinstance(item, str):
                item = {"point": item}
            if not isinstance(item, dict):
                continue
            text = item.get("point")
            points.append(ThesisPoint(
                point=text.strip() if isinstance(text, str) and text.strip() else f"Main Point {i}",
                keywords=_string_list(item.get("keywords")),
                suggested_evidence=_string_list(item.get("suggestedEvidence", item.get("suggested_evidence"))),
            ))
    if not points:
        raise AnalysisMalformed("Thesis payload contains no main points")
    return ThesisAnalysis(main_points=points)


def coerce_thesis_analysis(payload: Any) -> ThesisAnalysis:
    try:
        return parse_thesis_analysis(payload)
    except AnalysisMalformed as e:
        logger.warning("Malformed thesis analysis, using default main point: %s", e)
        return default_thesis_analysis()


# ---------------------------------------------------------------------------
# Error map
# ---------------------------------------------------------------------------

def _category(value: Any) -> ErrorCategory | None:
    if isinstance(value, ErrorCategory):
        return value
    if isinstance(value, str):
        try:
            return ErrorCategory(value)
        except ValueError:
            return None
    return None


def _match(item: Any) -> ErrorMatch | None:
    if isinstance(item, ErrorMatch):
        return item
    if not isinstance(item, dict):
        return None
    text = item.get("text")
    if not isinstance(text, str) or not text:
        return None
    message = item.get("message")
    return ErrorMatch(
        text=text,
        message=message if isinstance(message, str) else "",
        suggestions=_string_list(item.get("suggestions")),
    )


def parse_error_map(payload: Any) -> dict[ErrorCategory, list[ErrorMatch]]:
    """Accept a ``category -> [match]`` map or a flat ``[{category, ...}]`` list.

    Unknown categories and entries without a ``text`` string are dropped;
    every known category is present in the result.
    """
    data = _as_payload(payload, prefer_array=True)
    result = empty_error_map()
    if isinstance(data, dict):
        for key, items in data.items():
            category = _category(key)
            if category is None or not isinstance(items, list):
                continue
            result[category].extend(m for m in map(_match, items) if m is not None)
    elif isinstance(data, list):
        for item in data:
            category = _category(item.get("category")) if isinstance(item, dict) else None
            match = _match(item)
            if category is not None and match is not None:
                result[category].append(match)
    else:
        raise AnalysisMalformed(f"Error payload is {type(data).__name__}, expected object or array")
    return result


def coerce_error_map(payload: Any) -> dict[ErrorCategory, list[ErrorMatch]]:
    try:
        return parse_error_map(payload)
    except AnalysisMalformed as e:
        logger.warning("Malformed error-check payload, treating as no errors: %s", e)
        return empty_error_map()
