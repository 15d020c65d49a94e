"""Error taxonomy for the essay workflow engine."""

from __future__ import annotations


class EssayWorkflowError(Exception):
    """Base class for every error the engine reports to its caller."""


class ValidationError(EssayWorkflowError):
    """Input rejected before any state change (e.g. empty content on check)."""


class ThrottleError(EssayWorkflowError):
    """A check/complete request was refused without contacting the analysis service."""

    COOLDOWN = "cooldown"
    IN_PROGRESS = "in_progress"

    def __init__(self, reason: str, remaining_seconds: int = 0, operation: str = "check") -> None:
        self.reason = reason
        self.remaining_seconds = remaining_seconds
        self.operation = operation
        if reason == self.COOLDOWN:
            message = f"Please wait {remaining_seconds} seconds before running {operation} again."
        else:
            message = f"A {operation} request is already in progress."
        super().__init__(message)


class AnalysisMalformed(EssayWorkflowError):
    """Analysis payload was not JSON or did not match the expected structure."""


class InvalidOperation(EssayWorkflowError):
    """Structural change rejected as a no-op (never partially applied)."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class StaleResponse(EssayWorkflowError):
    """An analysis result arrived for a section that is no longer active."""

    def __init__(self, section_id: str, active_id: str | None) -> None:
        self.section_id = section_id
        self.active_id = active_id
        super().__init__(f"Discarding result for {section_id!r}; active section is {active_id!r}")
