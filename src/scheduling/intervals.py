"""Interval-multiplier scheduling driven by the note's intensity.

Two engines live here. The simple one grows or shrinks the previous interval
(in milliseconds) from a correct/incorrect outcome. The adaptive one derives
an interval in hours from the intensity, a 1-5 difficulty rating and how many
reviews the note already went through.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, List, Optional

from .config import DEFAULT_SCHEDULER_CONFIG, SchedulerConfig
from .errors import SchedulingValidationError
from .intensity import Intensity, parse_intensity


MIN_DIFFICULTY_RATING = 1
MAX_DIFFICULTY_RATING = 5
DEFAULT_DIFFICULTY_RATING = 3


class ReviewCountPolicy(str, Enum):
    """When a review bumps the note's review counter."""

    ON_SUCCESS = "on_success"
    EVERY_REVIEW = "every_review"

    def next_count(self, review_count: int, correct: bool) -> int:
        if self is ReviewCountPolicy.EVERY_REVIEW or correct:
            return review_count + 1
        return review_count


@dataclass(slots=True)
class IntervalReview:
    """Scheduling fields to store on a note after a simple-engine review."""

    last_interval_ms: int
    next_review_at: datetime
    last_reviewed: datetime
    review_count: int


@dataclass(slots=True)
class SchedulingSummary:
    interval_hours: float
    interval_days: float
    next_review_at: datetime
    difficulty_rating: float
    intensity: Intensity
    review_count: int


# ---------------------------------------------------------------------------
# Simple engine
# ---------------------------------------------------------------------------


def next_interval_ms(
    prev_interval_ms: Optional[int],
    intensity: Any,
    correct: bool,
    config: SchedulerConfig = DEFAULT_SCHEDULER_CONFIG,
) -> int:
    """Return the next interval in milliseconds.

    A missing previous interval starts from the intensity's base. Correct
    answers grow the interval up to ``max_interval_ms``; incorrect ones shrink
    it but never below half the base. The result is at least ``min_interval_ms``.
    """
    if prev_interval_ms is not None and prev_interval_ms < 0:
        raise SchedulingValidationError(f"prev_interval_ms cannot be negative (got {prev_interval_ms}).")

    base = config.base_ms_for(intensity)
    interval = prev_interval_ms or base
    if correct:
        interval = min(interval * config.success_growth, config.max_interval_ms)
    else:
        interval = max(base * config.failure_floor_ratio, interval * config.failure_shrink)
    return int(round(max(interval, config.min_interval_ms)))


def compute_next_review(
    *,
    intensity: Any,
    last_interval_ms: Optional[int],
    review_count: int,
    correct: bool,
    now: Optional[datetime] = None,
    policy: ReviewCountPolicy = ReviewCountPolicy.ON_SUCCESS,
    config: SchedulerConfig = DEFAULT_SCHEDULER_CONFIG,
) -> IntervalReview:
    """Compute the simple-engine state a note should carry after a review."""
    if now is None:
        now = datetime.now(timezone.utc)
    if review_count is None:
        review_count = 0
    if review_count < 0:
        raise SchedulingValidationError(f"review_count cannot be negative (got {review_count}).")

    interval = next_interval_ms(last_interval_ms, intensity, correct, config)
    return IntervalReview(
        last_interval_ms=interval,
        next_review_at=now + timedelta(milliseconds=interval),
        last_reviewed=now,
        review_count=policy.next_count(review_count, correct),
    )


# ---------------------------------------------------------------------------
# Adaptive engine
# ---------------------------------------------------------------------------


def clamp_difficulty_rating(rating: float) -> float:
    return max(float(MIN_DIFFICULTY_RATING), min(float(MAX_DIFFICULTY_RATING), float(rating)))


def difficulty_multiplier(
    difficulty_rating: float,
    config: SchedulerConfig = DEFAULT_SCHEDULER_CONFIG,
) -> float:
    """Look up the multiplier for a rating, rounding drifted half-step ratings."""
    rating = int(math.floor(clamp_difficulty_rating(difficulty_rating) + 0.5))
    return config.difficulty_multipliers[rating]


def next_interval_hours(
    *,
    intensity: Any,
    difficulty_rating: float,
    review_count: int = 0,
    was_correct: bool = True,
    config: SchedulerConfig = DEFAULT_SCHEDULER_CONFIG,
) -> float:
    """Return the adaptive interval in hours, clamped to the configured range."""
    if review_count < 0:
        raise SchedulingValidationError(f"review_count cannot be negative (got {review_count}).")

    base = config.base_hours_for(intensity)
    multiplier = difficulty_multiplier(difficulty_rating, config)

    if not was_correct:
        progression = config.regression_multiplier
    elif review_count > 0:
        progression = config.progression_multiplier ** min(review_count, config.progression_cap)
    else:
        progression = 1.0

    interval = base * multiplier * progression
    return max(config.min_interval_hours, min(interval, config.max_interval_hours))


def next_review_date(
    *,
    intensity: Any,
    difficulty_rating: float,
    review_count: int = 0,
    was_correct: bool = True,
    now: Optional[datetime] = None,
    config: SchedulerConfig = DEFAULT_SCHEDULER_CONFIG,
) -> datetime:
    if now is None:
        now = datetime.now(timezone.utc)
    hours = next_interval_hours(
        intensity=intensity,
        difficulty_rating=difficulty_rating,
        review_count=review_count,
        was_correct=was_correct,
        config=config,
    )
    return now + timedelta(hours=hours)


def estimate_difficulty_rating(was_correct: bool, response_time: float = 0) -> int:
    """Initial rating for a note without history, from correctness and speed."""
    if not was_correct:
        return 1 if response_time > 60 else 2
    if response_time < 10:
        return 5
    if response_time < 30:
        return 4
    if response_time < 60:
        return 3
    return 2


def adjust_difficulty_rating(current_rating: float, was_correct: bool) -> float:
    """Drift an existing rating by half a step towards easy or hard."""
    step = 0.5 if was_correct else -0.5
    return clamp_difficulty_rating(current_rating + step)


def is_due_for_review(next_review_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """A note with no scheduled date is due immediately."""
    if next_review_at is None:
        return True
    if now is None:
        now = datetime.now(timezone.utc)
    if next_review_at.tzinfo is None and now.tzinfo is not None:
        next_review_at = next_review_at.replace(tzinfo=timezone.utc)
    return next_review_at <= now


def scheduling_summary(
    *,
    intensity: Any,
    difficulty_rating: float,
    review_count: int = 0,
    was_correct: bool = True,
    now: Optional[datetime] = None,
    config: SchedulerConfig = DEFAULT_SCHEDULER_CONFIG,
) -> SchedulingSummary:
    if now is None:
        now = datetime.now(timezone.utc)
    hours = next_interval_hours(
        intensity=intensity,
        difficulty_rating=difficulty_rating,
        review_count=review_count,
        was_correct=was_correct,
        config=config,
    )
    return SchedulingSummary(
        interval_hours=round(hours, 2),
        interval_days=round(hours / 24, 2),
        next_review_at=now + timedelta(hours=hours),
        difficulty_rating=difficulty_rating,
        intensity=parse_intensity(intensity),
        review_count=review_count,
    )


def validate_scheduling_params(
    *,
    intensity: Any,
    difficulty_rating: float,
    review_count: int = 0,
) -> List[str]:
    """Return human-readable problems with the parameters (empty when valid)."""
    errors: List[str] = []
    try:
        parse_intensity(intensity)
    except SchedulingValidationError:
        errors.append(f"Invalid intensity: {intensity!r}")

    if difficulty_rating is None or not MIN_DIFFICULTY_RATING <= difficulty_rating <= MAX_DIFFICULTY_RATING:
        errors.append(f"difficulty_rating must be between 1 and 5 (got {difficulty_rating!r})")

    if review_count is None or review_count < 0:
        errors.append(f"review_count cannot be negative (got {review_count!r})")

    return errors
