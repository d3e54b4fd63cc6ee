"""Time-limited cache of generated questions, one entry per note."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.scheduling.sessions import as_utc

from . import QuestionCacheEntry


LOGGER = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = timedelta(days=7)


@dataclass(slots=True)
class CachedQuestion:
    question: str
    model: str
    generated_at: datetime


@dataclass(slots=True)
class CacheStats:
    total_entries: int
    expired_entries: int
    valid_entries: int
    ttl_days: float


@dataclass(slots=True)
class CacheMetrics:
    """In-process hit/miss counters, reset on restart."""

    hits: int = 0
    misses: int = 0
    generations: int = 0

    def record_hit(self) -> None:
        self.hits += 1

    def record_miss(self) -> None:
        self.misses += 1

    def record_generation(self) -> None:
        self.generations += 1

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        if not self.total_requests:
            return 0.0
        return round(self.hits / self.total_requests * 100, 2)

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0
        self.generations = 0


async def cache_question(
    session: AsyncSession,
    note_id: int,
    question: str,
    model: str,
    ttl: timedelta = DEFAULT_CACHE_TTL,
    now: Optional[datetime] = None,
) -> QuestionCacheEntry:
    """Store (or replace) the cached question of a note."""
    if not question or not question.strip():
        raise ValueError("question must be a non-empty string")
    if not model or not model.strip():
        raise ValueError("model must be a non-empty string")
    if ttl <= timedelta(0):
        raise ValueError("ttl must be positive")
    if now is None:
        now = datetime.now(timezone.utc)

    entry = await session.get(QuestionCacheEntry, note_id)
    if entry is None:
        entry = QuestionCacheEntry(note_id=note_id)
        session.add(entry)
    entry.question = question.strip()
    entry.model = model
    entry.generated_at = now
    entry.expires_at = now + ttl
    await session.flush()

    LOGGER.debug("Cached question for note %s until %s.", note_id, entry.expires_at.isoformat())
    return entry


async def get_cached_question(
    session: AsyncSession,
    note_id: int,
    now: Optional[datetime] = None,
) -> Optional[CachedQuestion]:
    """Return the cached question when present and fresh; expired entries are dropped."""
    if now is None:
        now = datetime.now(timezone.utc)

    entry = await session.get(QuestionCacheEntry, note_id)
    if entry is None:
        return None

    if as_utc(now) > as_utc(entry.expires_at):
        LOGGER.debug("Cached question for note %s expired at %s.", note_id, entry.expires_at)
        await session.delete(entry)
        await session.flush()
        return None

    return CachedQuestion(question=entry.question, model=entry.model, generated_at=entry.generated_at)


async def invalidate_cache(session: AsyncSession, note_id: int) -> bool:
    """Remove the cached question of a note. Returns whether one existed."""
    result = await session.execute(delete(QuestionCacheEntry).where(QuestionCacheEntry.note_id == note_id))
    return bool(result.rowcount)


async def clean_expired_cache(session: AsyncSession, now: Optional[datetime] = None) -> int:
    """Delete every expired entry and return how many were removed."""
    if now is None:
        now = datetime.now(timezone.utc)

    result = await session.execute(delete(QuestionCacheEntry).where(QuestionCacheEntry.expires_at < now))
    removed = result.rowcount or 0
    if removed:
        LOGGER.info("Removed %s expired cached question(s).", removed)
    return removed


async def get_cache_stats(
    session: AsyncSession,
    ttl: timedelta = DEFAULT_CACHE_TTL,
    now: Optional[datetime] = None,
) -> CacheStats:
    if now is None:
        now = datetime.now(timezone.utc)

    total = (await session.execute(select(func.count(QuestionCacheEntry.note_id)))).scalar_one()
    expired = (
        await session.execute(
            select(func.count(QuestionCacheEntry.note_id)).where(QuestionCacheEntry.expires_at < now)
        )
    ).scalar_one()
    return CacheStats(
        total_entries=total,
        expired_entries=expired,
        valid_entries=total - expired,
        ttl_days=ttl / timedelta(days=1),
    )
