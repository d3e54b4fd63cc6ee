"""Append-only review history and the statistics derived from it."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.scheduling import SchedulingValidationError
from src.scheduling.intervals import DEFAULT_DIFFICULTY_RATING, MAX_DIFFICULTY_RATING, MIN_DIFFICULTY_RATING

from . import ReviewEvent


_CORRECT_AS_INT = case((ReviewEvent.is_correct.is_(True), 1), else_=0)


@dataclass(slots=True)
class ReviewPayload:
    """Everything known about an answered question."""

    session_id: str
    note_id: int
    user_response: str
    is_correct: bool
    next_review_at: datetime
    question: Optional[str] = None
    model: Optional[str] = None
    feedback: str = ""
    difficulty_rating: float = DEFAULT_DIFFICULTY_RATING
    response_time: float = 0.0


@dataclass(slots=True)
class NoteStats:
    total: int
    correct: int
    incorrect: int
    success_rate: float
    average_difficulty: float
    last_reviewed: Optional[datetime]


@dataclass(slots=True)
class GlobalStats:
    total: int
    correct: int
    incorrect: int
    success_rate: float
    average_difficulty: float
    total_notes: int


def new_session_id(now: Optional[datetime] = None) -> str:
    """Identifier grouping the reviews of one sitting."""
    if now is None:
        now = datetime.now(timezone.utc)
    return f"session_{int(now.timestamp() * 1000)}"


async def create_review(
    session: AsyncSession,
    payload: ReviewPayload,
    now: Optional[datetime] = None,
) -> ReviewEvent:
    """Append a review event. Existing events are never modified."""
    if now is None:
        now = datetime.now(timezone.utc)

    if not MIN_DIFFICULTY_RATING <= payload.difficulty_rating <= MAX_DIFFICULTY_RATING:
        raise SchedulingValidationError(
            f"difficulty_rating must be between 1 and 5 (got {payload.difficulty_rating})."
        )
    if payload.response_time < 0:
        raise SchedulingValidationError(f"response_time cannot be negative (got {payload.response_time}).")

    review = ReviewEvent(
        session_id=payload.session_id or new_session_id(now),
        note_id=payload.note_id,
        question=payload.question,
        model=payload.model or "unknown",
        user_response=payload.user_response,
        is_correct=payload.is_correct,
        feedback=payload.feedback or "",
        difficulty_rating=payload.difficulty_rating,
        response_time=payload.response_time,
        next_review_at=payload.next_review_at,
        reviewed_at=now,
        created_at=now,
    )
    session.add(review)
    await session.flush()
    return review


async def get_reviews_by_note(session: AsyncSession, note_id: int) -> Sequence[ReviewEvent]:
    stmt = (
        select(ReviewEvent)
        .where(ReviewEvent.note_id == note_id)
        .order_by(ReviewEvent.reviewed_at, ReviewEvent.id)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_reviews_by_session(session: AsyncSession, session_id: str) -> Sequence[ReviewEvent]:
    stmt = (
        select(ReviewEvent)
        .where(ReviewEvent.session_id == session_id)
        .order_by(ReviewEvent.reviewed_at, ReviewEvent.id)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_last_review(session: AsyncSession, note_id: int) -> Optional[ReviewEvent]:
    """Return the most recent review of a note, if any."""
    stmt = (
        select(ReviewEvent)
        .where(ReviewEvent.note_id == note_id)
        .order_by(ReviewEvent.reviewed_at.desc(), ReviewEvent.id.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalars().first()


async def get_note_stats(session: AsyncSession, note_id: int) -> NoteStats:
    """Aggregate the review history of a single note."""
    stmt = select(
        func.count(ReviewEvent.id),
        func.sum(_CORRECT_AS_INT),
        func.avg(ReviewEvent.difficulty_rating),
        func.max(ReviewEvent.reviewed_at),
    ).where(ReviewEvent.note_id == note_id)
    total, correct, average, last_reviewed = (await session.execute(stmt)).one()

    total = total or 0
    if total == 0:
        return NoteStats(0, 0, 0, 0.0, float(DEFAULT_DIFFICULTY_RATING), None)

    correct = int(correct or 0)
    return NoteStats(
        total=total,
        correct=correct,
        incorrect=total - correct,
        success_rate=correct / total * 100,
        average_difficulty=round(float(average), 2),
        last_reviewed=last_reviewed,
    )


async def get_global_stats(session: AsyncSession) -> GlobalStats:
    """Aggregate every review on record."""
    stmt = select(
        func.count(ReviewEvent.id),
        func.sum(_CORRECT_AS_INT),
        func.avg(ReviewEvent.difficulty_rating),
        func.count(func.distinct(ReviewEvent.note_id)),
    )
    total, correct, average, total_notes = (await session.execute(stmt)).one()

    total = total or 0
    if total == 0:
        return GlobalStats(0, 0, 0, 0.0, float(DEFAULT_DIFFICULTY_RATING), 0)

    correct = int(correct or 0)
    return GlobalStats(
        total=total,
        correct=correct,
        incorrect=total - correct,
        success_rate=correct / total * 100,
        average_difficulty=round(float(average), 2),
        total_notes=total_notes,
    )


async def get_due_note_ids(session: AsyncSession, now: Optional[datetime] = None) -> List[int]:
    """Ids of notes whose latest review scheduled them at or before ``now``."""
    if now is None:
        now = datetime.now(timezone.utc)

    latest = (
        select(ReviewEvent.note_id, func.max(ReviewEvent.reviewed_at).label("last_reviewed_at"))
        .group_by(ReviewEvent.note_id)
        .subquery()
    )
    stmt = (
        select(ReviewEvent.note_id)
        .join(
            latest,
            (ReviewEvent.note_id == latest.c.note_id)
            & (ReviewEvent.reviewed_at == latest.c.last_reviewed_at),
        )
        .where(ReviewEvent.next_review_at <= now)
        .distinct()
        .order_by(ReviewEvent.note_id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
