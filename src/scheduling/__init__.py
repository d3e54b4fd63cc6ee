"""Pure review-scheduling engines."""

from .config import (
    DEFAULT_SCHEDULER_CONFIG,
    DEFAULT_SESSION_CONFIG,
    SchedulerConfig,
    SchedulerEngine,
    SessionConfig,
    SessionPlan,
    SessionWindow,
)
from .ease import EaseResult, EaseSchedule, compute_ease, quality_from_outcome, schedule_ease_review
from .errors import SchedulingValidationError
from .intensity import Intensity, coerce_intensity, parse_intensity
from .intervals import (
    IntervalReview,
    ReviewCountPolicy,
    adjust_difficulty_rating,
    compute_next_review,
    estimate_difficulty_rating,
    is_due_for_review,
    next_interval_hours,
    next_interval_ms,
    next_review_date,
    scheduling_summary,
    validate_scheduling_params,
)
from .sessions import (
    all_upcoming_sessions,
    is_session_active,
    next_session_time,
    record_review,
    select_priority_note,
    session_notes,
    upcoming_session_notes,
)

__all__ = [
    "DEFAULT_SCHEDULER_CONFIG",
    "DEFAULT_SESSION_CONFIG",
    "EaseResult",
    "EaseSchedule",
    "Intensity",
    "IntervalReview",
    "ReviewCountPolicy",
    "SchedulerConfig",
    "SchedulerEngine",
    "SchedulingValidationError",
    "SessionConfig",
    "SessionPlan",
    "SessionWindow",
    "adjust_difficulty_rating",
    "all_upcoming_sessions",
    "coerce_intensity",
    "compute_ease",
    "compute_next_review",
    "estimate_difficulty_rating",
    "is_due_for_review",
    "is_session_active",
    "next_interval_hours",
    "next_interval_ms",
    "next_review_date",
    "next_session_time",
    "parse_intensity",
    "quality_from_outcome",
    "record_review",
    "schedule_ease_review",
    "scheduling_summary",
    "select_priority_note",
    "session_notes",
    "upcoming_session_notes",
    "validate_scheduling_params",
]
