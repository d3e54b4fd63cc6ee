"""Question generation, answer evaluation and hints backed by an OpenAI model."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple

from openai import APITimeoutError, AsyncOpenAI


LOGGER = logging.getLogger(__name__)

FALLBACK_MODEL_NAME = "fallback"
FALLBACK_FEEDBACK = "Automatic evaluation is unavailable. Your answer has been recorded."
FALLBACK_HINT = "Re-read the context of the note carefully."
MIN_HEURISTIC_ANSWER_LENGTH = 10

_CODE_KEYWORDS = (
    "function",
    "variable",
    "class",
    "method",
    "code",
    "javascript",
    "python",
    "const",
    "let",
    "var",
    "return",
)


class QuestionSource(Protocol):
    """What the service needs to know about a note."""

    title: Optional[str]
    description: str


class LLMTimeoutError(RuntimeError):
    """Raised when the model does not answer within the configured timeout."""


@dataclass(slots=True)
class GeneratedQuestion:
    question: str
    model: str


@dataclass(slots=True)
class Evaluation:
    is_correct: bool
    feedback: str
    confidence: float
    model: str


def extract_output_text(response: object) -> str:
    """Best-effort extraction of text from a Responses or Chat Completions result."""
    output_text = getattr(response, "output_text", None)
    if isinstance(output_text, str) and output_text.strip():
        return output_text

    output = getattr(response, "output", None)
    if isinstance(output, list):
        collected: List[str] = []
        for item in output:
            content = getattr(item, "content", None)
            parts = content if isinstance(content, list) else [content]
            for part in parts:
                value = getattr(part, "text", None)
                if isinstance(value, str) and value:
                    collected.append(value)
        if collected:
            return "\n".join(collected)

    choices = getattr(response, "choices", None)
    if isinstance(choices, list) and choices:
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if isinstance(content, str):
            return content

    return ""


def fallback_question(note: QuestionSource) -> GeneratedQuestion:
    """Template question used when no model can be reached."""
    return GeneratedQuestion(
        question=f"Explain in detail: {note.description[:100]}...",
        model=FALLBACK_MODEL_NAME,
    )


def fallback_evaluation(user_answer: str) -> Evaluation:
    """Length heuristic used when no model can grade the answer."""
    return Evaluation(
        is_correct=len(user_answer.strip()) > MIN_HEURISTIC_ANSWER_LENGTH,
        feedback=FALLBACK_FEEDBACK,
        confidence=0.5,
        model=FALLBACK_MODEL_NAME,
    )


def looks_like_code(note: QuestionSource) -> bool:
    content = f"{note.title or ''} {note.description or ''}".lower()
    return any(keyword in content for keyword in _CODE_KEYWORDS)


def parse_evaluation(response_text: str) -> bool:
    """Read the CORRECT/INCORRECT verdict from the first non-empty line."""
    for line in response_text.splitlines():
        verdict = line.strip().strip("*#:.-) 0123456789").upper()
        if not verdict:
            continue
        if verdict.startswith("INCORRECT"):
            return False
        return verdict.startswith("CORRECT")
    return False


class QuestionService:
    """Talks to the model for everything a review needs.

    Every call is bounded by ``timeout``. A failed call is retried once with
    ``fallback_model`` unless it timed out. When the model is still
    unavailable each operation returns a documented degraded answer instead of
    raising, so a review can always be completed.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        fallback_model: Optional[str] = None,
        timeout: float = 30.0,
        code_model: Optional[str] = None,
    ) -> None:
        self._client = client
        self._model = model
        self._fallback_model = fallback_model
        self._timeout = timeout
        self._code_model = code_model

    @property
    def model(self) -> str:
        return self._model

    def select_model(self, task: str, note: Optional[QuestionSource] = None) -> str:
        """Pick the model for a task; code-heavy notes may use a dedicated model."""
        if task == "generation" and note is not None and self._code_model and looks_like_code(note):
            return self._code_model
        return self._model

    async def _complete(self, model: str, prompt: str) -> str:
        try:
            response = await asyncio.wait_for(
                self._client.responses.create(
                    model=model,
                    input=[{"role": "user", "content": prompt}],
                ),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, APITimeoutError) as exc:
            raise LLMTimeoutError(f"Model {model} did not answer within {self._timeout}s.") from exc

        text = extract_output_text(response).strip()
        if not text:
            raise RuntimeError(f"Model {model} returned an empty response.")
        return text

    async def complete(self, task: str, prompt: str, note: Optional[QuestionSource] = None) -> Tuple[str, str]:
        """Return ``(text, model)``, retrying once with the fallback model on non-timeout errors."""
        model = self.select_model(task, note)
        try:
            return await self._complete(model, prompt), model
        except LLMTimeoutError:
            raise
        except Exception:
            fallback = self._fallback_model
            if not fallback or fallback == model:
                raise
            LOGGER.warning("Model %s failed for %s, retrying with %s.", model, task, fallback, exc_info=True)
            return await self._complete(fallback, prompt), fallback

    async def generate_question(self, note: QuestionSource) -> GeneratedQuestion:
        title_part = f"Title: {note.title}\n" if note.title else ""
        prompt = (
            "You are a teaching examiner. Write ONE short, precise question that checks whether "
            "the learner understood and remembers the following note.\n\n"
            f"{title_part}Content: {note.description}\n\n"
            "Reply with the question only, without introduction or explanation."
        )

        started = time.monotonic()
        try:
            question, model = await self.complete("generation", prompt, note)
        except Exception:
            LOGGER.exception("Question generation failed, using the template question.")
            return fallback_question(note)

        LOGGER.info("Generated question with %s in %.2fs.", model, time.monotonic() - started)
        return GeneratedQuestion(question=question, model=model)

    async def evaluate_answer(self, question: str, user_answer: str, context: str) -> Evaluation:
        prompt = (
            "Grade this student answer.\n\n"
            f"Question: {question}\n"
            f"Expected content: {context}\n"
            f"Student answer: {user_answer}\n\n"
            "Reply in at most 2 lines:\n"
            "1. First line: CORRECT or INCORRECT\n"
            "2. A short explanation (one sentence)"
        )

        started = time.monotonic()
        try:
            response, model = await self.complete("evaluation", prompt)
        except Exception:
            LOGGER.exception("Answer evaluation failed, using the length heuristic.")
            return fallback_evaluation(user_answer)

        is_correct = parse_evaluation(response)
        LOGGER.info(
            "Evaluated answer with %s in %.2fs: %s.",
            model,
            time.monotonic() - started,
            "CORRECT" if is_correct else "INCORRECT",
        )
        return Evaluation(
            is_correct=is_correct,
            feedback=response,
            confidence=0.9 if is_correct else 0.8,
            model=model,
        )

    async def generate_hint(self, note: QuestionSource) -> str:
        prompt = (
            "Give ONE short hint (one sentence) that helps answer a question about this topic:\n\n"
            f"{note.description}\n\nHint:"
        )
        try:
            hint, _ = await self.complete("hint", prompt, note)
        except Exception:
            LOGGER.exception("Hint generation failed.")
            return FALLBACK_HINT
        return hint

