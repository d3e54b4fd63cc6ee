from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.db.notes import NotePayload, create_note
from src.db.question_cache import (
    CacheMetrics,
    cache_question,
    clean_expired_cache,
    get_cache_stats,
    get_cached_question,
    invalidate_cache,
)


NOW = datetime(2025, 5, 14, 8, 0, tzinfo=timezone.utc)


async def _note_id(session, description: str = "text") -> int:
    async with session.begin():
        note = await create_note(session, NotePayload(description=description), now=NOW)
    return note.id


@pytest.mark.asyncio
async def test_cached_question_is_returned_until_expiry(session_factory) -> None:
    async with session_factory() as session:
        note_id = await _note_id(session)
        async with session.begin():
            await cache_question(session, note_id, "  What is a closure? ", "gpt-test", ttl=timedelta(days=1), now=NOW)

        async with session.begin():
            fresh = await get_cached_question(session, note_id, now=NOW + timedelta(hours=23))
        async with session.begin():
            expired = await get_cached_question(session, note_id, now=NOW + timedelta(days=2))
        async with session.begin():
            after_expiry = await get_cached_question(session, note_id, now=NOW)

    assert fresh is not None
    assert fresh.question == "What is a closure?"
    assert fresh.model == "gpt-test"
    assert expired is None
    # Expired entries are dropped on read.
    assert after_expiry is None


@pytest.mark.asyncio
async def test_cache_question_replaces_existing_entry(session_factory) -> None:
    async with session_factory() as session:
        note_id = await _note_id(session)
        async with session.begin():
            await cache_question(session, note_id, "First?", "gpt-test", now=NOW)
            await cache_question(session, note_id, "Second?", "gpt-other", now=NOW)
            cached = await get_cached_question(session, note_id, now=NOW)

    assert cached.question == "Second?"
    assert cached.model == "gpt-other"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("question", "model", "ttl"),
    [("", "gpt", timedelta(days=1)), ("Q?", " ", timedelta(days=1)), ("Q?", "gpt", timedelta(0))],
)
async def test_cache_question_validates_input(session_factory, question, model, ttl) -> None:
    async with session_factory() as session:
        note_id = await _note_id(session)
        with pytest.raises(ValueError):
            await cache_question(session, note_id, question, model, ttl=ttl, now=NOW)


@pytest.mark.asyncio
async def test_invalidate_and_clean_expired(session_factory) -> None:
    async with session_factory() as session:
        first = await _note_id(session, "first")
        second = await _note_id(session, "second")
        third = await _note_id(session, "third")
        async with session.begin():
            await cache_question(session, first, "Q1?", "gpt", ttl=timedelta(hours=1), now=NOW)
            await cache_question(session, second, "Q2?", "gpt", ttl=timedelta(days=7), now=NOW)
            await cache_question(session, third, "Q3?", "gpt", ttl=timedelta(days=7), now=NOW)

        async with session.begin():
            assert await invalidate_cache(session, third) is True
            assert await invalidate_cache(session, third) is False

        later = NOW + timedelta(hours=2)
        stats = await get_cache_stats(session, now=later)
        assert stats.total_entries == 2
        assert stats.expired_entries == 1
        assert stats.valid_entries == 1
        assert stats.ttl_days == 7

        async with session.begin():
            removed = await clean_expired_cache(session, now=later)
        assert removed == 1
        assert (await get_cache_stats(session, now=later)).total_entries == 1


def test_cache_metrics_hit_rate() -> None:
    metrics = CacheMetrics()
    assert metrics.hit_rate == 0.0

    metrics.record_hit()
    metrics.record_hit()
    metrics.record_hit()
    metrics.record_miss()
    metrics.record_generation()

    assert metrics.total_requests == 4
    assert metrics.hit_rate == 75.0
    assert metrics.generations == 1

    metrics.reset()
    assert metrics.total_requests == 0
