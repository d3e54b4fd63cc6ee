from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.scheduling import (
    DEFAULT_SCHEDULER_CONFIG,
    Intensity,
    ReviewCountPolicy,
    SchedulingValidationError,
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
from src.scheduling.config import DAY_MS, HOUR_MS


NOW = datetime(2025, 5, 14, 8, 0, tzinfo=timezone.utc)


def test_simple_engine_starts_from_base_interval() -> None:
    assert next_interval_ms(None, Intensity.MODERATE, True) == int(1.5 * DAY_MS)
    assert next_interval_ms(None, "chill", True) == int(7 * 1.5 * DAY_MS)


def test_simple_engine_shrinks_on_failure_but_keeps_floor_ratio() -> None:
    assert next_interval_ms(None, Intensity.INTENSIVE, False) == 12_960_000
    assert next_interval_ms(2 * HOUR_MS, Intensity.INTENSIVE, False) == 3 * HOUR_MS


def test_simple_engine_clamps_to_bounds() -> None:
    assert next_interval_ms(300 * DAY_MS, Intensity.CHILL, True) == 365 * DAY_MS

    config = DEFAULT_SCHEDULER_CONFIG.with_overrides(base_interval_ms={"intensive": HOUR_MS})
    assert next_interval_ms(HOUR_MS, Intensity.INTENSIVE, False, config) == HOUR_MS


def test_simple_engine_unknown_intensity_behaves_like_moderate() -> None:
    assert next_interval_ms(None, "mystery", True) == next_interval_ms(None, Intensity.MODERATE, True)


def test_compute_next_review_follows_count_policy() -> None:
    on_success = compute_next_review(
        intensity=Intensity.MODERATE,
        last_interval_ms=DAY_MS,
        review_count=2,
        correct=False,
        now=NOW,
    )
    every_review = compute_next_review(
        intensity=Intensity.MODERATE,
        last_interval_ms=DAY_MS,
        review_count=2,
        correct=False,
        now=NOW,
        policy=ReviewCountPolicy.EVERY_REVIEW,
    )

    assert on_success.review_count == 2
    assert every_review.review_count == 3
    assert on_success.last_reviewed == NOW
    assert on_success.next_review_at == NOW + timedelta(milliseconds=on_success.last_interval_ms)


def test_compute_next_review_rejects_negative_count() -> None:
    with pytest.raises(SchedulingValidationError):
        compute_next_review(
            intensity=Intensity.MODERATE,
            last_interval_ms=None,
            review_count=-1,
            correct=True,
            now=NOW,
        )


def test_adaptive_first_review_of_moderate_note() -> None:
    assert next_interval_hours(intensity="moderate", difficulty_rating=3, review_count=0, was_correct=True) == 12
    assert next_interval_hours(intensity="moderate", difficulty_rating=3, review_count=0, was_correct=False) == 6


def test_adaptive_progression_grows_and_caps() -> None:
    assert next_interval_hours(
        intensity=Intensity.INTENSIVE, difficulty_rating=5, review_count=3, was_correct=True
    ) == pytest.approx(81)

    capped = next_interval_hours(intensity=Intensity.CHILL, difficulty_rating=5, review_count=5, was_correct=True)
    beyond_cap = next_interval_hours(intensity=Intensity.CHILL, difficulty_rating=5, review_count=12, was_correct=True)
    assert capped == beyond_cap == pytest.approx(546.75)


def test_adaptive_interval_is_clamped_to_range() -> None:
    assert next_interval_hours(intensity=Intensity.SOON, difficulty_rating=1, review_count=0, was_correct=False) == 1

    config = DEFAULT_SCHEDULER_CONFIG.with_overrides(progression_multiplier=2.0)
    assert (
        next_interval_hours(
            intensity=Intensity.CHILL,
            difficulty_rating=5,
            review_count=5,
            was_correct=True,
            config=config,
        )
        == 720
    )


def test_adaptive_ratings_are_clamped_and_rounded() -> None:
    assert next_interval_hours(intensity="moderate", difficulty_rating=3.5) == 18
    assert next_interval_hours(intensity="moderate", difficulty_rating=2.5) == 12
    assert next_interval_hours(intensity="moderate", difficulty_rating=0) == 6
    assert next_interval_hours(intensity="moderate", difficulty_rating=9) == 36


def test_adaptive_rejects_negative_review_count() -> None:
    with pytest.raises(SchedulingValidationError):
        next_interval_hours(intensity="moderate", difficulty_rating=3, review_count=-2)


def test_next_review_date_adds_hours_to_now() -> None:
    result = next_review_date(intensity="intensive", difficulty_rating=3, review_count=0, now=NOW)
    assert result == NOW + timedelta(hours=8)


@pytest.mark.parametrize(
    ("was_correct", "response_time", "expected"),
    [
        (True, 5, 5),
        (True, 20, 4),
        (True, 45, 3),
        (True, 61, 2),
        (False, 10, 2),
        (False, 70, 1),
    ],
)
def test_estimate_difficulty_rating(was_correct, response_time, expected) -> None:
    assert estimate_difficulty_rating(was_correct, response_time) == expected


def test_adjust_difficulty_rating_drifts_by_half_step() -> None:
    assert adjust_difficulty_rating(3, True) == 3.5
    assert adjust_difficulty_rating(3, False) == 2.5
    assert adjust_difficulty_rating(5, True) == 5
    assert adjust_difficulty_rating(1, False) == 1


def test_is_due_for_review() -> None:
    assert is_due_for_review(None, NOW) is True
    assert is_due_for_review(NOW - timedelta(minutes=1), NOW) is True
    assert is_due_for_review(NOW, NOW) is True
    assert is_due_for_review(NOW + timedelta(minutes=1), NOW) is False
    # SQLite hands back naive timestamps.
    assert is_due_for_review(datetime(2025, 5, 14, 7, 0), NOW) is True


def test_scheduling_summary_reports_hours_and_days() -> None:
    summary = scheduling_summary(intensity="moderate", difficulty_rating=3, now=NOW)

    assert summary.interval_hours == 12
    assert summary.interval_days == 0.5
    assert summary.next_review_at == NOW + timedelta(hours=12)
    assert summary.intensity is Intensity.MODERATE


def test_validate_scheduling_params_lists_every_problem() -> None:
    assert validate_scheduling_params(intensity="moderate", difficulty_rating=3, review_count=0) == []

    errors = validate_scheduling_params(intensity="loud", difficulty_rating=7, review_count=-1)
    assert len(errors) == 3


@pytest.mark.parametrize("intensity", list(Intensity))
def test_simple_engine_repeated_success_never_shrinks_and_caps_at_a_year(intensity) -> None:
    previous = None
    intervals = []
    for _ in range(40):
        previous = next_interval_ms(previous, intensity, True)
        intervals.append(previous)

    assert intervals == sorted(intervals)
    assert max(intervals) <= 365 * DAY_MS
    assert intervals[-1] == 365 * DAY_MS


@pytest.mark.parametrize("intensity", list(Intensity))
def test_simple_engine_repeated_failure_respects_floors(intensity) -> None:
    base = DEFAULT_SCHEDULER_CONFIG.base_ms_for(intensity)
    floor = max(base * 0.5, HOUR_MS)

    for start in (None, 1, HOUR_MS, base, 365 * DAY_MS):
        previous = start
        for _ in range(10):
            previous = next_interval_ms(previous, intensity, False)
            assert previous >= floor


@pytest.mark.parametrize("intensity", list(Intensity))
def test_adaptive_repeated_success_never_shrinks_and_caps_at_thirty_days(intensity) -> None:
    rating = float(estimate_difficulty_rating(True, response_time=45))
    intervals = []
    for review_count in range(15):
        intervals.append(
            next_interval_hours(
                intensity=intensity,
                difficulty_rating=rating,
                review_count=review_count,
                was_correct=True,
            )
        )
        rating = adjust_difficulty_rating(rating, True)

    assert intervals == sorted(intervals)
    assert max(intervals) <= 720


@pytest.mark.parametrize("intensity", list(Intensity))
def test_adaptive_failure_never_drops_below_an_hour(intensity) -> None:
    rating = 5.0
    for review_count in range(10):
        rating = adjust_difficulty_rating(rating, False)
        hours = next_interval_hours(
            intensity=intensity,
            difficulty_rating=rating,
            review_count=review_count,
            was_correct=False,
        )
        assert hours >= 1
        assert hours <= DEFAULT_SCHEDULER_CONFIG.base_hours_for(intensity) * 3.0 * 0.5
