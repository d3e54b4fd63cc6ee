"""Service layer: LLM access and the job queue in front of it."""

from .ai_queue import AIJobQueue, JobPriority, JobType
from .openai_client import build_openai_client
from .question_service import Evaluation, GeneratedQuestion, QuestionService

__all__ = [
    "AIJobQueue",
    "Evaluation",
    "GeneratedQuestion",
    "JobPriority",
    "JobType",
    "QuestionService",
    "build_openai_client",
]
