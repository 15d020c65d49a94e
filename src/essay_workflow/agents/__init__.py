"""AG2 agent factories, one per analysis role."""

from .completeness_checker import make_completeness_checker
from .error_checker import make_error_checker
from .thesis_analyzer import make_thesis_analyzer
from .writing_assistant import make_writing_assistant

__all__ = [
    "make_completeness_checker",
    "make_error_checker",
    "make_thesis_analyzer",
    "make_writing_assistant",
]
