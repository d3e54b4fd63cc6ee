from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from src.scheduling import (
    Intensity,
    ReviewCountPolicy,
    all_upcoming_sessions,
    is_session_active,
    next_session_time,
    record_review,
    select_priority_note,
    session_notes,
    upcoming_session_notes,
)


# A Wednesday.
WEDNESDAY = datetime(2025, 5, 14, 8, 0, tzinfo=timezone.utc)


def _note(note_id, intensity="moderate", created_hours_ago=0, reviewed_hours_ago=None, review_count=0):
    return SimpleNamespace(
        id=note_id,
        intensity=intensity,
        created_at=WEDNESDAY - timedelta(hours=created_hours_ago),
        last_reviewed=None if reviewed_hours_ago is None else WEDNESDAY - timedelta(hours=reviewed_hours_ago),
        review_count=review_count,
    )


def test_moderate_session_is_next_nine_oclock() -> None:
    assert next_session_time(Intensity.MODERATE, WEDNESDAY) == WEDNESDAY.replace(hour=9)


def test_slot_at_reference_time_rolls_forward() -> None:
    nine = WEDNESDAY.replace(hour=9)
    assert next_session_time(Intensity.MODERATE, nine) == nine + timedelta(days=1)


def test_intensive_picks_earliest_of_three_windows() -> None:
    assert next_session_time("intensive", WEDNESDAY.replace(hour=10)) == WEDNESDAY.replace(hour=14)
    assert next_session_time("intensive", WEDNESDAY.replace(hour=21)) == WEDNESDAY.replace(hour=9) + timedelta(days=1)


def test_chill_session_waits_for_sunday() -> None:
    sunday = datetime(2025, 5, 18, 10, 0, tzinfo=timezone.utc)

    assert next_session_time(Intensity.CHILL, WEDNESDAY) == sunday
    assert next_session_time(Intensity.CHILL, sunday) == sunday + timedelta(days=7)


def test_soon_session_recurs_every_two_minutes() -> None:
    assert next_session_time(Intensity.SOON, WEDNESDAY) == WEDNESDAY + timedelta(minutes=2)
    assert is_session_active(Intensity.SOON, WEDNESDAY.replace(hour=3, minute=17)) is True


def test_unknown_intensity_uses_moderate_windows() -> None:
    assert next_session_time("unknown", WEDNESDAY) == WEDNESDAY.replace(hour=9)


def test_session_activity_tolerance() -> None:
    assert is_session_active(Intensity.MODERATE, WEDNESDAY.replace(hour=9, minute=25)) is True
    assert is_session_active(Intensity.MODERATE, WEDNESDAY.replace(hour=8, minute=31)) is True
    assert is_session_active(Intensity.MODERATE, WEDNESDAY.replace(hour=10, minute=5)) is False
    assert is_session_active(Intensity.INTENSIVE, WEDNESDAY.replace(hour=14, minute=10)) is True


def test_chill_session_is_only_active_on_sunday() -> None:
    assert is_session_active(Intensity.CHILL, datetime(2025, 5, 18, 10, 20, tzinfo=timezone.utc)) is True
    assert is_session_active(Intensity.CHILL, datetime(2025, 5, 19, 10, 0, tzinfo=timezone.utc)) is False


@pytest.mark.parametrize("intensity", list(Intensity))
@pytest.mark.parametrize("hour", [0, 9, 13, 23])
def test_next_session_is_always_active(intensity, hour) -> None:
    start = WEDNESDAY.replace(hour=hour, minute=41)
    assert is_session_active(intensity, next_session_time(intensity, start)) is True


def test_clock_times_follow_the_reference_timezone() -> None:
    paris = ZoneInfo("Europe/Paris")
    reference = datetime(2025, 5, 14, 6, 30, tzinfo=timezone.utc).astimezone(paris)

    upcoming = next_session_time(Intensity.MODERATE, reference)
    assert upcoming == datetime(2025, 5, 14, 7, 0, tzinfo=timezone.utc)


def test_select_priority_note_prefers_never_reviewed_oldest() -> None:
    reviewed = _note(1, created_hours_ago=100, reviewed_hours_ago=50)
    newer = _note(2, created_hours_ago=5)
    older = _note(3, created_hours_ago=10)

    assert select_priority_note([reviewed, newer, older]) is older


def test_select_priority_note_uses_last_review_then_count() -> None:
    recent = _note(1, reviewed_hours_ago=1, review_count=0)
    stale_many = _note(2, reviewed_hours_ago=30, review_count=4)
    stale_few = _note(3, reviewed_hours_ago=30, review_count=1)

    assert select_priority_note([recent, stale_many, stale_few]) is stale_few
    assert select_priority_note([]) is None


def test_session_notes_filters_and_caps() -> None:
    notes = [_note(index, reviewed_hours_ago=index, review_count=1) for index in range(1, 13)]
    notes.append(_note(99, intensity="chill"))
    notes.append(_note(100, created_hours_ago=3))

    selected = session_notes(notes, Intensity.MODERATE)

    assert len(selected) == 10
    assert selected[0].id == 100
    assert [note.id for note in selected[1:4]] == [12, 11, 10]
    assert all(note.intensity == "moderate" for note in selected)
    assert len(session_notes(notes, "moderate", max_notes=2)) == 2
    assert [note.id for note in session_notes(notes, Intensity.CHILL)] == [99]


def test_record_review_counts_according_to_policy() -> None:
    note = _note(1, review_count=2)

    assert record_review(note, False, WEDNESDAY).review_count == 2
    assert record_review(note, True, WEDNESDAY).review_count == 3
    assert record_review(note, False, WEDNESDAY, ReviewCountPolicy.EVERY_REVIEW).review_count == 3
    assert record_review(note, True, WEDNESDAY).last_reviewed == WEDNESDAY


def test_upcoming_session_lists_notes_only_within_lookahead() -> None:
    notes = [_note(1), _note(2, intensity="intensive")]

    close = upcoming_session_notes(notes, Intensity.MODERATE, timedelta(hours=2), WEDNESDAY)
    assert close.within_lookahead is True
    assert close.time_until == timedelta(hours=1)
    assert [note.id for note in close.notes] == [1]

    far = upcoming_session_notes(notes, Intensity.MODERATE, timedelta(minutes=30), WEDNESDAY)
    assert far.within_lookahead is False
    assert far.notes == []


def test_all_upcoming_sessions_sorted_by_start() -> None:
    sessions = all_upcoming_sessions([], timedelta(hours=24), WEDNESDAY.replace(hour=10))

    assert [session.intensity for session in sessions] == [
        Intensity.INTENSIVE,
        Intensity.MODERATE,
        Intensity.CHILL,
    ]
    assert sessions[0].time_until == timedelta(hours=4)
    assert sessions[-1].within_lookahead is False
