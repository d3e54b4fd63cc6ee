"""Helpers for working with note persistence."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.scheduling import Intensity, parse_intensity
from src.scheduling.ease import DEFAULT_EASE_FACTOR

from . import Note, QuestionCacheEntry, ReviewEvent


class NoteNotFoundError(LookupError):
    """Raised when a note id does not match any stored note."""

    def __init__(self, note_id: int) -> None:
        super().__init__(f"Note {note_id} not found.")
        self.note_id = note_id


class NoteValidationError(ValueError):
    """Raised when note content is missing or malformed."""


@dataclass(slots=True)
class NotePayload:
    """User-supplied note content before it is persisted."""

    description: str
    title: Optional[str] = None
    intensity: Intensity | str | int = Intensity.MODERATE

    def normalized(self) -> "NotePayload":
        """Return a payload with whitespace stripped and the intensity parsed."""
        description = (self.description or "").strip()
        if not description:
            raise NoteValidationError("Note description cannot be empty.")
        title = self.title.strip() if isinstance(self.title, str) else self.title
        return NotePayload(
            description=description,
            title=title or None,
            intensity=parse_intensity(self.intensity),
        )


async def create_note(
    session: AsyncSession,
    payload: NotePayload,
    now: Optional[datetime] = None,
) -> Note:
    """Persist a new note that is due immediately."""
    if now is None:
        now = datetime.now(timezone.utc)

    normalized = payload.normalized()
    note = Note(
        title=normalized.title,
        description=normalized.description,
        intensity=normalized.intensity.value,
        ease_factor=DEFAULT_EASE_FACTOR,
        current_interval=0,
        last_interval_ms=None,
        review_count=0,
        difficulty_rating=None,
        last_reviewed=None,
        next_review_at=now,
        created_at=now,
        updated_at=now,
    )
    session.add(note)
    await session.flush()
    return note


async def get_note(session: AsyncSession, note_id: int) -> Optional[Note]:
    return await session.get(Note, note_id)


async def require_note(session: AsyncSession, note_id: int) -> Note:
    """Return the note or raise ``NoteNotFoundError``."""
    note = await session.get(Note, note_id)
    if note is None:
        raise NoteNotFoundError(note_id)
    return note


async def list_notes(
    session: AsyncSession,
    intensity: Intensity | str | int | None = None,
) -> Sequence[Note]:
    """Return all notes, optionally restricted to one intensity, oldest first."""
    stmt = select(Note).order_by(Note.created_at, Note.id)
    if intensity is not None:
        stmt = stmt.where(Note.intensity == parse_intensity(intensity).value)
    result = await session.execute(stmt)
    return result.scalars().all()


async def list_due_notes(
    session: AsyncSession,
    now: Optional[datetime] = None,
    intensity: Intensity | str | int | None = None,
) -> Sequence[Note]:
    """Return notes whose next review is at or before ``now``, most overdue first."""
    if now is None:
        now = datetime.now(timezone.utc)

    stmt = select(Note).where(Note.next_review_at <= now).order_by(Note.next_review_at, Note.id)
    if intensity is not None:
        stmt = stmt.where(Note.intensity == parse_intensity(intensity).value)
    result = await session.execute(stmt)
    return result.scalars().all()


async def update_note(
    session: AsyncSession,
    note: Note,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    intensity: Intensity | str | int | None = None,
    now: Optional[datetime] = None,
) -> bool:
    """Apply content or intensity edits. Returns whether anything changed."""
    if now is None:
        now = datetime.now(timezone.utc)

    has_changes = False
    if title is not None:
        stripped_title = title.strip() or None
        if stripped_title != note.title:
            note.title = stripped_title
            has_changes = True
    if description is not None:
        stripped = description.strip()
        if not stripped:
            raise NoteValidationError("Note description cannot be empty.")
        if stripped != note.description:
            note.description = stripped
            has_changes = True
    if intensity is not None:
        parsed = parse_intensity(intensity).value
        if parsed != note.intensity:
            note.intensity = parsed
            has_changes = True

    if has_changes:
        note.updated_at = now
        await session.flush()
    return has_changes


async def delete_note(session: AsyncSession, note_id: int) -> bool:
    """Delete a note with its review history and cached question."""
    note = await session.get(Note, note_id)
    if note is None:
        return False

    await session.execute(delete(ReviewEvent).where(ReviewEvent.note_id == note_id))
    await session.execute(delete(QuestionCacheEntry).where(QuestionCacheEntry.note_id == note_id))
    await session.delete(note)
    await session.flush()
    return True


async def store_note_schedule(
    session: AsyncSession,
    note: Note,
    *,
    next_review_at: datetime,
    review_count: int,
    last_reviewed: datetime,
    difficulty_rating: Optional[float] = None,
    last_interval_ms: Optional[int] = None,
    ease_factor: Optional[float] = None,
    current_interval: Optional[int] = None,
) -> None:
    """Persist the scheduling state computed by one of the engines.

    Fields left as ``None`` belong to an engine that was not used and keep
    their stored value.
    """
    note.next_review_at = next_review_at
    note.review_count = review_count
    note.last_reviewed = last_reviewed
    if difficulty_rating is not None:
        note.difficulty_rating = difficulty_rating
    if last_interval_ms is not None:
        note.last_interval_ms = last_interval_ms
    if ease_factor is not None:
        note.ease_factor = ease_factor
    if current_interval is not None:
        note.current_interval = current_interval
    note.updated_at = last_reviewed
    await session.flush()
