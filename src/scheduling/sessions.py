"""Session windows: when a review session is open and which note to show first.

This layer does no interval math. It gates presentation by clock time and
orders candidate notes; spacing is left to the interval engines.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional, Protocol, Sequence, Tuple

from .config import DEFAULT_SESSION_CONFIG, SessionConfig, SessionWindow
from .intensity import Intensity, coerce_intensity, parse_intensity
from .intervals import ReviewCountPolicy


DEFAULT_LOOKAHEAD = timedelta(hours=24)
UPCOMING_INTENSITIES: Tuple[Intensity, ...] = (
    Intensity.INTENSIVE,
    Intensity.MODERATE,
    Intensity.CHILL,
)


class SessionNote(Protocol):
    """Minimal interface the session engine needs from a note."""

    id: Any
    intensity: Any
    created_at: Optional[datetime]
    last_reviewed: Optional[datetime]
    review_count: int


@dataclass(slots=True)
class SessionReview:
    last_reviewed: datetime
    review_count: int


@dataclass(slots=True)
class UpcomingSession:
    intensity: Intensity
    next_session: datetime
    time_until: timedelta
    within_lookahead: bool
    notes: List[Any] = field(default_factory=list)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _next_occurrence(window: SessionWindow, from_: datetime) -> datetime:
    if window.every is not None:
        return from_ + window.every

    candidate = from_.replace(hour=window.hour, minute=window.minute, second=0, microsecond=0)
    if window.weekday is None:
        if candidate <= from_:
            candidate += timedelta(days=1)
        return candidate

    candidate += timedelta(days=(window.weekday - from_.weekday()) % 7)
    if candidate <= from_:
        candidate += timedelta(days=7)
    return candidate


def next_session_time(
    intensity: Any,
    from_: Optional[datetime] = None,
    config: SessionConfig = DEFAULT_SESSION_CONFIG,
) -> datetime:
    """Return the start of the next session for ``intensity`` after ``from_``.

    Clock times are read in the timezone of ``from_``.
    """
    if from_ is None:
        from_ = datetime.now(timezone.utc)
    plan = config.plan_for(intensity)
    return min(_next_occurrence(window, from_) for window in plan.windows)


def is_session_active(
    intensity: Any,
    now: Optional[datetime] = None,
    config: SessionConfig = DEFAULT_SESSION_CONFIG,
) -> bool:
    """True when ``now`` is within the tolerance of one of the intensity's windows."""
    if now is None:
        now = datetime.now(timezone.utc)
    plan = config.plan_for(intensity)

    for window in plan.windows:
        if window.is_periodic:
            return True
        if window.weekday is not None and now.weekday() != window.weekday:
            continue
        slot = now.replace(hour=window.hour, minute=window.minute, second=0, microsecond=0)
        if abs(now - slot) <= config.tolerance:
            return True
    return False


def _created_key(note: SessionNote) -> datetime:
    created_at = getattr(note, "created_at", None)
    if created_at is None:
        return datetime.max.replace(tzinfo=timezone.utc)
    return as_utc(created_at)


def select_priority_note(notes: Sequence[SessionNote]) -> Optional[SessionNote]:
    """Pick the note to show next.

    Never-reviewed notes win, oldest first. Otherwise the note reviewed the
    longest ago wins, with the lower review count breaking ties.
    """
    if not notes:
        return None

    never_reviewed = [note for note in notes if note.last_reviewed is None]
    if never_reviewed:
        return min(never_reviewed, key=_created_key)

    return min(
        notes,
        key=lambda note: (as_utc(note.last_reviewed), note.review_count or 0),
    )


def session_notes(
    all_notes: Iterable[SessionNote],
    intensity: Any,
    max_notes: Optional[int] = None,
    config: SessionConfig = DEFAULT_SESSION_CONFIG,
) -> List[SessionNote]:
    """Return the notes of ``intensity`` for one session, capped by priority."""
    target = parse_intensity(intensity)
    limit = max_notes or config.plan_for(target).max_notes

    candidates = [note for note in all_notes if coerce_intensity(note.intensity) is target]
    if len(candidates) <= limit:
        return candidates

    selected: List[SessionNote] = []
    remaining = list(candidates)
    while remaining and len(selected) < limit:
        winner = select_priority_note(remaining)
        if winner is None:
            break
        selected.append(winner)
        remaining = [note for note in remaining if note is not winner]
    return selected


def record_review(
    note: SessionNote,
    correct: bool,
    now: Optional[datetime] = None,
    policy: ReviewCountPolicy = ReviewCountPolicy.ON_SUCCESS,
) -> SessionReview:
    """Timestamp a review and bump the counter according to ``policy``."""
    if now is None:
        now = datetime.now(timezone.utc)
    return SessionReview(
        last_reviewed=now,
        review_count=policy.next_count(note.review_count or 0, correct),
    )


def upcoming_session_notes(
    all_notes: Sequence[SessionNote],
    intensity: Any,
    lookahead: timedelta = DEFAULT_LOOKAHEAD,
    now: Optional[datetime] = None,
    config: SessionConfig = DEFAULT_SESSION_CONFIG,
) -> UpcomingSession:
    """Describe the next session of ``intensity`` and, if close enough, its notes."""
    if now is None:
        now = datetime.now(timezone.utc)
    target = parse_intensity(intensity)
    next_session = next_session_time(target, now, config)
    time_until = next_session - now

    if time_until > lookahead:
        return UpcomingSession(target, next_session, time_until, within_lookahead=False)

    return UpcomingSession(
        target,
        next_session,
        time_until,
        within_lookahead=True,
        notes=session_notes(all_notes, target, config=config),
    )


def all_upcoming_sessions(
    all_notes: Sequence[SessionNote],
    lookahead: timedelta = DEFAULT_LOOKAHEAD,
    now: Optional[datetime] = None,
    config: SessionConfig = DEFAULT_SESSION_CONFIG,
    intensities: Sequence[Intensity] = UPCOMING_INTENSITIES,
) -> List[UpcomingSession]:
    """Upcoming sessions for every intensity, soonest first."""
    if now is None:
        now = datetime.now(timezone.utc)
    sessions = [
        upcoming_session_notes(all_notes, intensity, lookahead, now, config)
        for intensity in intensities
    ]
    return sorted(sessions, key=lambda session: session.time_until)
