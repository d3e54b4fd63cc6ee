"""Review sessions built on top of the scheduling engines."""

from .pregeneration import PreGenerationReport, QuestionPreGenerator
from .workflow import QuestionResult, ReviewResult, ReviewWorkflow, SessionStart, SessionState

__all__ = [
    "PreGenerationReport",
    "QuestionPreGenerator",
    "QuestionResult",
    "ReviewResult",
    "ReviewWorkflow",
    "SessionStart",
    "SessionState",
]
