"""Orchestrates note storage, LLM calls and the scheduling engines for reviews."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db import Note, ReviewEvent
from src.db.notes import (
    NotePayload,
    create_note,
    delete_note,
    list_notes,
    require_note,
    store_note_schedule,
    update_note,
)
from src.db.question_cache import (
    DEFAULT_CACHE_TTL,
    CacheMetrics,
    CacheStats,
    cache_question,
    clean_expired_cache,
    get_cache_stats,
    get_cached_question,
    invalidate_cache,
)
from src.db.reviews import (
    GlobalStats,
    NoteStats,
    ReviewPayload,
    create_review,
    get_global_stats,
    get_last_review,
    get_note_stats,
    get_reviews_by_session,
    new_session_id,
)
from src.scheduling import (
    DEFAULT_SCHEDULER_CONFIG,
    DEFAULT_SESSION_CONFIG,
    Intensity,
    ReviewCountPolicy,
    SchedulerConfig,
    SchedulerEngine,
    SchedulingValidationError,
    SessionConfig,
    adjust_difficulty_rating,
    coerce_intensity,
    compute_next_review,
    estimate_difficulty_rating,
    is_due_for_review,
    is_session_active,
    next_review_date,
    next_session_time,
    parse_intensity,
    quality_from_outcome,
    schedule_ease_review,
    session_notes,
)
from src.scheduling.sessions import as_utc
from src.services.ai_queue import AIJobQueue, JobPriority, JobType
from src.services.question_service import (
    FALLBACK_HINT,
    FALLBACK_MODEL_NAME,
    Evaluation,
    GeneratedQuestion,
    fallback_evaluation,
    fallback_question,
)

if TYPE_CHECKING:
    from src.app.preferences import PreferencesStore


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SessionStart:
    """Notes selected for a review session of one intensity."""

    session_id: str
    intensity: Intensity
    notes: List[Note]
    active: bool
    next_session: datetime
    interrogations_enabled: bool = True


@dataclass(slots=True)
class QuestionResult:
    note_id: int
    question: str
    model: str
    cached: bool


@dataclass(slots=True)
class ReviewResult:
    """What the caller learns after submitting an answer."""

    review_id: int
    note_id: int
    session_id: str
    is_correct: bool
    feedback: str
    model: str
    difficulty_rating: float
    review_count: int
    next_review_at: datetime


@dataclass(slots=True)
class SessionState:
    session_id: str
    reviewed: int
    correct: int
    incorrect: int
    note_ids: List[int] = field(default_factory=list)


@dataclass(slots=True)
class _ScheduleUpdate:
    next_review_at: datetime
    review_count: int
    difficulty_rating: float
    last_interval_ms: Optional[int] = None
    ease_factor: Optional[float] = None
    current_interval: Optional[int] = None


@dataclass(slots=True)
class _NoteLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class ReviewWorkflow:
    """Coordinates storage, the LLM job queue and one scheduling engine.

    Read-modify-write on a note is serialised with a per-note lock, so two
    answers for the same note never interleave while different notes proceed
    in parallel. The engine is chosen once per deployment.

    A failed or timed-out LLM job never blocks a review: questions, grading
    and hints fall back to the question service's degraded results.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        queue: AIJobQueue,
        *,
        engine: SchedulerEngine = SchedulerEngine.ADAPTIVE,
        policy: ReviewCountPolicy = ReviewCountPolicy.ON_SUCCESS,
        scheduler_config: SchedulerConfig = DEFAULT_SCHEDULER_CONFIG,
        session_config: SessionConfig = DEFAULT_SESSION_CONFIG,
        preferences: Optional["PreferencesStore"] = None,
        cache_ttl: Optional[timedelta] = None,
        session_timezone: tzinfo = timezone.utc,
        metrics: Optional[CacheMetrics] = None,
    ) -> None:
        self._session_factory = session_factory
        self._queue = queue
        self._engine = engine
        self._policy = policy
        self._scheduler_config = scheduler_config
        self._session_config = session_config
        self._preferences = preferences
        self._cache_ttl_override = cache_ttl
        self._timezone = session_timezone
        self._metrics = metrics or CacheMetrics()
        self._locks: Dict[int, _NoteLock] = {}

    @property
    def engine(self) -> SchedulerEngine:
        return self._engine

    @property
    def metrics(self) -> CacheMetrics:
        return self._metrics

    @property
    def session_config(self) -> SessionConfig:
        return self._session_config

    @asynccontextmanager
    async def _note_lock(self, note_id: int) -> AsyncIterator[None]:
        """Hold the note's lock; the entry is dropped once nobody holds or awaits it."""
        entry = self._locks.get(note_id)
        if entry is None:
            entry = self._locks[note_id] = _NoteLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(note_id) is entry:
                del self._locks[note_id]

    async def _submit(self, job_type: JobType, data: Dict[str, Any], priority: JobPriority) -> Any:
        """Run a queued LLM job; ``None`` when the queue could not deliver a result."""
        try:
            return await self._queue.submit(job_type, data, priority)
        except Exception as exc:
            LOGGER.warning(
                "AI job %s failed (%s), using the degraded result.",
                job_type.value,
                exc.__class__.__name__,
                exc_info=True,
            )
            return None

    def local_time(self, now: datetime) -> datetime:
        return as_utc(now).astimezone(self._timezone)

    def cache_ttl(self) -> timedelta:
        if self._preferences is not None:
            return self._preferences.cache_ttl(self._cache_ttl_override)
        return self._cache_ttl_override or DEFAULT_CACHE_TTL

    def interrogations_enabled(self) -> bool:
        if self._preferences is None:
            return True
        return self._preferences.load().interrogations_enabled

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    async def create_note(
        self,
        description: str,
        title: Optional[str] = None,
        intensity: Intensity | str | int = Intensity.MODERATE,
        now: Optional[datetime] = None,
    ) -> Note:
        async with self._session_factory() as session:
            async with session.begin():
                note = await create_note(
                    session,
                    NotePayload(description=description, title=title, intensity=intensity),
                    now=now,
                )
        LOGGER.info("Created note %s (%s).", note.id, note.intensity)
        return note

    async def update_note(
        self,
        note_id: int,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        intensity: Intensity | str | int | None = None,
        now: Optional[datetime] = None,
    ) -> Note:
        """Edit a note. Content changes drop the cached question."""
        async with self._note_lock(note_id):
            async with self._session_factory() as session:
                async with session.begin():
                    note = await require_note(session, note_id)
                    previous_content = (note.title, note.description)
                    changed = await update_note(
                        session,
                        note,
                        title=title,
                        description=description,
                        intensity=intensity,
                        now=now,
                    )
                    if changed and (note.title, note.description) != previous_content:
                        await invalidate_cache(session, note_id)
        return note

    async def delete_note(self, note_id: int) -> bool:
        async with self._note_lock(note_id):
            async with self._session_factory() as session:
                async with session.begin():
                    deleted = await delete_note(session, note_id)
        if deleted:
            LOGGER.info("Deleted note %s.", note_id)
        return deleted

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def start_session(
        self,
        intensity: Intensity | str | int,
        now: Optional[datetime] = None,
        max_notes: Optional[int] = None,
    ) -> SessionStart:
        """Open a session and pick the due notes of ``intensity`` by priority."""
        target = parse_intensity(intensity)
        if now is None:
            now = datetime.now(timezone.utc)
        local_now = self.local_time(now)
        session_id = new_session_id(now)
        next_session = next_session_time(target, local_now, self._session_config)
        active = is_session_active(target, local_now, self._session_config)

        if not self.interrogations_enabled():
            LOGGER.info("Interrogations are disabled; session %s starts empty.", session_id)
            return SessionStart(
                session_id=session_id,
                intensity=target,
                notes=[],
                active=active,
                next_session=next_session,
                interrogations_enabled=False,
            )

        async with self._session_factory() as session:
            notes = await list_notes(session, target)

        due = [note for note in notes if is_due_for_review(note.next_review_at, now)]
        selected = session_notes(due, target, max_notes=max_notes, config=self._session_config)
        LOGGER.info(
            "Session %s (%s): %s of %s due note(s) selected.",
            session_id,
            target.value,
            len(selected),
            len(due),
        )
        return SessionStart(
            session_id=session_id,
            intensity=target,
            notes=list(selected),
            active=active,
            next_session=next_session,
        )

    async def session_state(self, session_id: str) -> SessionState:
        async with self._session_factory() as session:
            reviews = await get_reviews_by_session(session, session_id)

        correct = sum(1 for review in reviews if review.is_correct)
        note_ids: List[int] = []
        for review in reviews:
            if review.note_id not in note_ids:
                note_ids.append(review.note_id)
        return SessionState(
            session_id=session_id,
            reviewed=len(reviews),
            correct=correct,
            incorrect=len(reviews) - correct,
            note_ids=note_ids,
        )

    # ------------------------------------------------------------------
    # Questions, answers and hints
    # ------------------------------------------------------------------

    async def next_question(
        self,
        note_id: int,
        now: Optional[datetime] = None,
        priority: JobPriority = JobPriority.HIGH,
    ) -> QuestionResult:
        """Return the cached question of a note or generate a fresh one."""
        if now is None:
            now = datetime.now(timezone.utc)

        async with self._session_factory() as session:
            async with session.begin():
                note = await require_note(session, note_id)
                cached = await get_cached_question(session, note_id, now=now)

        if cached is not None:
            self._metrics.record_hit()
            return QuestionResult(note_id, cached.question, cached.model, cached=True)

        self._metrics.record_miss()
        generated: Optional[GeneratedQuestion] = await self._submit(
            JobType.GENERATE_QUESTION,
            {"note": note},
            priority,
        )
        if generated is None:
            generated = fallback_question(note)
        self._metrics.record_generation()

        # Template questions are regenerated on the next request.
        if generated.model != FALLBACK_MODEL_NAME:
            await self.store_question(note_id, generated, now=now)
        return QuestionResult(note_id, generated.question, generated.model, cached=False)

    async def store_question(
        self,
        note_id: int,
        generated: GeneratedQuestion,
        now: Optional[datetime] = None,
    ) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await cache_question(
                    session,
                    note_id,
                    generated.question,
                    generated.model,
                    ttl=self.cache_ttl(),
                    now=now,
                )

    async def pregenerate_question(
        self,
        note_id: int,
        now: Optional[datetime] = None,
    ) -> Optional[GeneratedQuestion]:
        """Fill the cache for a note in the background.

        Returns ``None`` when a fresh question is already cached.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        async with self._session_factory() as session:
            async with session.begin():
                note = await require_note(session, note_id)
                cached = await get_cached_question(session, note_id, now=now)
        if cached is not None:
            return None

        generated: GeneratedQuestion = await self._queue.submit(
            JobType.PRE_GENERATE,
            {"note": note},
            JobPriority.LOW,
        )
        self._metrics.record_generation()
        if generated.model != FALLBACK_MODEL_NAME:
            await self.store_question(note_id, generated, now=now)
        return generated

    async def clean_expired_cache(self, now: Optional[datetime] = None) -> int:
        async with self._session_factory() as session:
            async with session.begin():
                return await clean_expired_cache(session, now=now)

    async def hint(self, note_id: int) -> str:
        async with self._session_factory() as session:
            note = await require_note(session, note_id)
        hint = await self._submit(JobType.GENERATE_HINT, {"note": note}, JobPriority.HIGH)
        return hint if hint is not None else FALLBACK_HINT

    async def submit_answer(
        self,
        note_id: int,
        user_answer: str,
        *,
        question: Optional[str] = None,
        session_id: Optional[str] = None,
        response_time: float = 0.0,
        now: Optional[datetime] = None,
    ) -> ReviewResult:
        """Evaluate an answer, reschedule the note and append a review event."""
        if response_time is None or response_time < 0:
            raise SchedulingValidationError(f"response_time cannot be negative (got {response_time!r}).")
        if now is None:
            now = datetime.now(timezone.utc)

        async with self._note_lock(note_id):
            async with self._session_factory() as session:
                note = await require_note(session, note_id)
                if question is None:
                    cached = await get_cached_question(session, note_id, now=now)
                    question = cached.question if cached is not None else note.description
                    await session.commit()

            context = f"{note.title}: {note.description}" if note.title else note.description
            evaluation: Optional[Evaluation] = await self._submit(
                JobType.EVALUATE_ANSWER,
                {"question": question, "user_answer": user_answer, "context": context},
                JobPriority.HIGH,
            )
            if evaluation is None:
                evaluation = fallback_evaluation(user_answer)

            async with self._session_factory() as session:
                async with session.begin():
                    note = await require_note(session, note_id)
                    last_review = await get_last_review(session, note_id)
                    update = self._compute_schedule(note, last_review, evaluation.is_correct, response_time, now)

                    await store_note_schedule(
                        session,
                        note,
                        next_review_at=update.next_review_at,
                        review_count=update.review_count,
                        last_reviewed=now,
                        difficulty_rating=update.difficulty_rating,
                        last_interval_ms=update.last_interval_ms,
                        ease_factor=update.ease_factor,
                        current_interval=update.current_interval,
                    )
                    review = await create_review(
                        session,
                        ReviewPayload(
                            session_id=session_id or new_session_id(now),
                            note_id=note_id,
                            user_response=user_answer,
                            is_correct=evaluation.is_correct,
                            next_review_at=update.next_review_at,
                            question=question,
                            model=evaluation.model,
                            feedback=evaluation.feedback,
                            difficulty_rating=update.difficulty_rating,
                            response_time=response_time,
                        ),
                        now=now,
                    )
                    await invalidate_cache(session, note_id)

        LOGGER.info(
            "Note %s answered %s; next review at %s (%s engine).",
            note_id,
            "correctly" if evaluation.is_correct else "incorrectly",
            update.next_review_at.isoformat(),
            self._engine.value,
        )
        return ReviewResult(
            review_id=review.id,
            note_id=note_id,
            session_id=review.session_id,
            is_correct=evaluation.is_correct,
            feedback=evaluation.feedback,
            model=evaluation.model,
            difficulty_rating=update.difficulty_rating,
            review_count=update.review_count,
            next_review_at=update.next_review_at,
        )

    def _compute_schedule(
        self,
        note: Note,
        last_review: Optional[ReviewEvent],
        was_correct: bool,
        response_time: float,
        now: datetime,
    ) -> _ScheduleUpdate:
        last_rating = last_review.difficulty_rating if last_review is not None else None
        if last_rating is not None:
            rating = adjust_difficulty_rating(last_rating, was_correct)
        else:
            rating = float(estimate_difficulty_rating(was_correct, response_time))

        intensity = coerce_intensity(note.intensity)
        previous_count = note.review_count or 0
        review_count = self._policy.next_count(previous_count, was_correct)

        if self._engine is SchedulerEngine.INTERVAL:
            result = compute_next_review(
                intensity=intensity,
                last_interval_ms=note.last_interval_ms,
                review_count=previous_count,
                correct=was_correct,
                now=now,
                policy=self._policy,
                config=self._scheduler_config,
            )
            return _ScheduleUpdate(
                next_review_at=result.next_review_at,
                review_count=result.review_count,
                difficulty_rating=rating,
                last_interval_ms=result.last_interval_ms,
            )

        if self._engine is SchedulerEngine.EASE:
            schedule = schedule_ease_review(
                score=quality_from_outcome(was_correct, rating),
                current_interval=note.current_interval or 0,
                ease_factor=note.ease_factor,
                now=now,
            )
            return _ScheduleUpdate(
                next_review_at=schedule.next_review_at,
                review_count=review_count,
                difficulty_rating=rating,
                ease_factor=schedule.ease_factor,
                current_interval=schedule.interval,
            )

        next_review_at = next_review_date(
            intensity=intensity,
            difficulty_rating=rating,
            review_count=previous_count,
            was_correct=was_correct,
            now=now,
            config=self._scheduler_config,
        )
        return _ScheduleUpdate(
            next_review_at=next_review_at,
            review_count=review_count,
            difficulty_rating=rating,
        )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def note_stats(self, note_id: int) -> NoteStats:
        async with self._session_factory() as session:
            await require_note(session, note_id)
            return await get_note_stats(session, note_id)

    async def global_stats(self) -> GlobalStats:
        async with self._session_factory() as session:
            return await get_global_stats(session)

    async def cache_stats(self, now: Optional[datetime] = None) -> CacheStats:
        async with self._session_factory() as session:
            return await get_cache_stats(session, ttl=self.cache_ttl(), now=now)

    async def notes(self, intensity: Intensity | str | int | None = None) -> Sequence[Note]:
        async with self._session_factory() as session:
            return await list_notes(session, intensity)
