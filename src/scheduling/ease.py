"""Ease-factor scheduling helpers (a simplified SM-2)."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from .errors import SchedulingValidationError


DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 2.5
PASSING_SCORE = 3


@dataclass(slots=True)
class EaseResult:
    """Interval (in days) and ease factor after a scored review."""

    interval: int
    ease_factor: float


@dataclass(slots=True)
class EaseSchedule:
    """Calculated review data for a note after receiving a score."""

    next_review_at: datetime
    ease_factor: float
    interval: int


def _clamp_ease(value: float) -> float:
    return max(MIN_EASE_FACTOR, min(MAX_EASE_FACTOR, value))


def compute_ease(score: int, current_interval: int, ease_factor: float) -> EaseResult:
    """Return the next interval and ease factor for a 0-5 quality score."""
    if isinstance(score, bool) or not 0 <= score <= 5:
        raise SchedulingValidationError(f"score must be between 0 and 5 (got {score!r}).")
    if current_interval < 0:
        raise SchedulingValidationError(f"current_interval cannot be negative (got {current_interval}).")

    if ease_factor is None:
        ease_factor = DEFAULT_EASE_FACTOR

    if score < PASSING_SCORE:
        return EaseResult(interval=1, ease_factor=_clamp_ease(ease_factor - 0.2))

    miss = 5 - score
    new_ease = _clamp_ease(ease_factor + (0.1 - miss * (0.08 + miss * 0.02)))

    if current_interval == 0:
        interval = 1
    elif current_interval == 1:
        interval = 6
    else:
        interval = max(1, round(current_interval * new_ease))

    return EaseResult(interval=interval, ease_factor=new_ease)


def schedule_ease_review(
    *,
    score: int,
    current_interval: int,
    ease_factor: float,
    now: Optional[datetime] = None,
) -> EaseSchedule:
    """Run ``compute_ease`` and anchor the resulting interval at ``now``."""
    if now is None:
        now = datetime.now(timezone.utc)

    result = compute_ease(score, current_interval, ease_factor)
    return EaseSchedule(
        next_review_at=now + timedelta(days=result.interval),
        ease_factor=result.ease_factor,
        interval=result.interval,
    )


def quality_from_outcome(was_correct: bool, difficulty_rating: float) -> int:
    """Map an evaluation and a 1-5 difficulty rating onto an SM-2 quality score.

    Correct answers score 3-5 following the rating; incorrect ones 0-2.
    """
    rating = int(math.floor(max(1.0, min(5.0, difficulty_rating)) + 0.5))
    if was_correct:
        return max(PASSING_SCORE, rating)
    return min(PASSING_SCORE - 1, rating - 1)
