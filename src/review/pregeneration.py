"""Background generation of questions ahead of upcoming review sessions."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence

from src.db import Note
from src.scheduling import (
    Intensity,
    all_upcoming_sessions,
    is_due_for_review,
    next_session_time,
    parse_intensity,
    session_notes,
)
from src.scheduling.sessions import DEFAULT_LOOKAHEAD, UpcomingSession, as_utc
from src.services.question_service import FALLBACK_MODEL_NAME

from .workflow import ReviewWorkflow


LOGGER = logging.getLogger(__name__)

IMMINENT_SESSION_WINDOW = timedelta(minutes=30)


@dataclass(slots=True)
class PreGenerationReport:
    """Counts from one pre-generation pass."""

    generated: int = 0
    already_cached: int = 0
    fallback: int = 0
    failed: int = 0
    intensities: List[Intensity] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.generated + self.already_cached + self.fallback + self.failed

    def merge(self, other: "PreGenerationReport") -> None:
        self.generated += other.generated
        self.already_cached += other.already_cached
        self.fallback += other.fallback
        self.failed += other.failed
        for intensity in other.intensities:
            if intensity not in self.intensities:
                self.intensities.append(intensity)


class QuestionPreGenerator:
    """Warms the question cache for notes that will be asked soon.

    At most ``max_questions`` notes are processed per pass so a single run
    never floods the LLM queue. Generation jobs use the lowest priority.
    """

    def __init__(
        self,
        workflow: ReviewWorkflow,
        max_questions: int = 20,
        lookahead: timedelta = DEFAULT_LOOKAHEAD,
        imminent_window: timedelta = IMMINENT_SESSION_WINDOW,
    ) -> None:
        if max_questions < 1:
            raise ValueError("max_questions must be a positive integer.")
        self._workflow = workflow
        self._max_questions = max_questions
        self._lookahead = lookahead
        self._imminent_window = imminent_window

    async def _generate(self, note_ids: Iterable[int], now: datetime, budget: int) -> PreGenerationReport:
        report = PreGenerationReport()
        for note_id in note_ids:
            if report.generated + report.fallback + report.failed >= budget:
                break
            try:
                generated = await self._workflow.pregenerate_question(note_id, now=now)
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Pre-generation failed for note %s.", note_id)
                report.failed += 1
                continue

            if generated is None:
                report.already_cached += 1
            elif generated.model == FALLBACK_MODEL_NAME:
                report.fallback += 1
            else:
                report.generated += 1
        return report

    async def pregenerate_for_intensity(
        self,
        intensity: Intensity | str | int,
        now: Optional[datetime] = None,
    ) -> PreGenerationReport:
        """Prepare questions for the notes the next session of ``intensity`` will show."""
        target = parse_intensity(intensity)
        if now is None:
            now = datetime.now(timezone.utc)
        if not self._workflow.interrogations_enabled():
            return PreGenerationReport()

        notes = await self._workflow.notes(target)
        session_at = next_session_time(target, self._workflow.local_time(now), self._workflow.session_config)
        selected = self._due_selection(notes, target, session_at)
        report = await self._generate((note.id for note in selected), now, self._max_questions)
        report.intensities.append(target)
        LOGGER.info(
            "Pre-generated %s question(s) for %s (%s cached, %s fallback, %s failed).",
            report.generated,
            target.value,
            report.already_cached,
            report.fallback,
            report.failed,
        )
        return report

    async def upcoming_sessions(self, now: Optional[datetime] = None) -> List[UpcomingSession]:
        if now is None:
            now = datetime.now(timezone.utc)
        notes = await self._workflow.notes()
        upcoming = all_upcoming_sessions(
            notes,
            lookahead=self._lookahead,
            now=self._workflow.local_time(now),
            config=self._workflow.session_config,
        )
        return [
            replace(session, notes=self._due_selection(notes, session.intensity, session.next_session))
            if session.within_lookahead
            else session
            for session in upcoming
        ]

    def _due_selection(self, notes: Sequence[Note], intensity: Intensity, session_at: datetime) -> List[Note]:
        """The notes a session starting at ``session_at`` will pick, as ``start_session`` picks them."""
        due = [note for note in notes if is_due_for_review(note.next_review_at, session_at)]
        return session_notes(due, intensity, config=self._workflow.session_config)

    async def pregenerate_upcoming(
        self,
        now: Optional[datetime] = None,
        within: Optional[timedelta] = None,
    ) -> PreGenerationReport:
        """Pre-generate for every session starting within ``within`` (the lookahead by default)."""
        if now is None:
            now = datetime.now(timezone.utc)
        if within is None:
            within = self._lookahead

        report = PreGenerationReport()
        if not self._workflow.interrogations_enabled():
            LOGGER.debug("Interrogations are disabled; skipping pre-generation.")
            return report

        for upcoming in await self.upcoming_sessions(now):
            if upcoming.time_until > within or not upcoming.notes:
                continue
            budget = self._max_questions - (report.generated + report.fallback + report.failed)
            if budget <= 0:
                break
            LOGGER.info(
                "Session %s starts at %s with %s note(s); pre-generating.",
                upcoming.intensity.value,
                upcoming.next_session.isoformat(),
                len(upcoming.notes),
            )
            partial = await self._generate((note.id for note in upcoming.notes), now, budget)
            partial.intensities.append(upcoming.intensity)
            report.merge(partial)
        return report

    async def pregenerate_before_upcoming_sessions(self, now: Optional[datetime] = None) -> PreGenerationReport:
        """Only the sessions starting within the imminent window."""
        return await self.pregenerate_upcoming(now, within=self._imminent_window)

    async def run_once(self, now: Optional[datetime] = None) -> PreGenerationReport:
        if now is None:
            now = datetime.now(timezone.utc)
        await self._workflow.clean_expired_cache(now=as_utc(now))
        return await self.pregenerate_before_upcoming_sessions(now)

    async def run_forever(self, interval: timedelta) -> None:
        """Run a pass every ``interval`` until cancelled."""
        LOGGER.info("Question pre-generation scheduled every %s.", interval)
        while True:
            try:
                report = await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Scheduled pre-generation failed.")
            else:
                if report.attempted:
                    LOGGER.info(
                        "Pre-generation pass done: %s generated, %s cached, %s failed.",
                        report.generated,
                        report.already_cached,
                        report.failed + report.fallback,
                    )
            await asyncio.sleep(interval.total_seconds())
