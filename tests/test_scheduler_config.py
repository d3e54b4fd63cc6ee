from __future__ import annotations

from datetime import timedelta

import pytest

from src.scheduling import (
    DEFAULT_SCHEDULER_CONFIG,
    DEFAULT_SESSION_CONFIG,
    Intensity,
    SchedulingValidationError,
    SessionPlan,
    SessionWindow,
)
from src.scheduling.config import DAY_MS, HOUR_MS


def test_with_overrides_returns_new_config_and_keeps_original() -> None:
    tuned = DEFAULT_SCHEDULER_CONFIG.with_overrides(
        base_interval_hours={"moderate": 6},
        progression_multiplier=2.0,
    )

    assert tuned is not DEFAULT_SCHEDULER_CONFIG
    assert tuned.base_hours_for(Intensity.MODERATE) == 6
    assert tuned.base_hours_for(Intensity.CHILL) == 24
    assert tuned.progression_multiplier == 2.0
    assert DEFAULT_SCHEDULER_CONFIG.base_hours_for(Intensity.MODERATE) == 12
    assert DEFAULT_SCHEDULER_CONFIG.progression_multiplier == 1.5


def test_config_tables_are_read_only() -> None:
    with pytest.raises(TypeError):
        DEFAULT_SCHEDULER_CONFIG.base_interval_hours[Intensity.CHILL] = 1  # type: ignore[index]


@pytest.mark.parametrize(
    "changes",
    [
        {"base_interval_ms": {"chill": 0}},
        {"difficulty_multipliers": {6: 2.0}},
        {"difficulty_multipliers": {3: -1}},
        {"not_a_field": 1},
    ],
)
def test_invalid_overrides_are_rejected(changes) -> None:
    with pytest.raises(SchedulingValidationError):
        DEFAULT_SCHEDULER_CONFIG.with_overrides(**changes)


def test_unknown_intensity_uses_moderate_tables() -> None:
    assert DEFAULT_SCHEDULER_CONFIG.base_ms_for("unknown") == DAY_MS
    assert DEFAULT_SCHEDULER_CONFIG.base_ms_for(Intensity.INTENSIVE) == 6 * HOUR_MS
    assert DEFAULT_SESSION_CONFIG.plan_for("unknown").max_notes == 10


def test_session_window_validation() -> None:
    with pytest.raises(SchedulingValidationError):
        SessionWindow(hour=24)
    with pytest.raises(SchedulingValidationError):
        SessionWindow(hour=9, weekday=7)
    with pytest.raises(SchedulingValidationError):
        SessionWindow(every=timedelta(0))


def test_with_plan_replaces_one_intensity() -> None:
    plan = SessionPlan((SessionWindow(hour=7, minute=30),), max_notes=2)
    config = DEFAULT_SESSION_CONFIG.with_plan("moderate", plan)

    assert config.plan_for(Intensity.MODERATE) == plan
    assert config.plan_for(Intensity.INTENSIVE).max_notes == 15
    assert DEFAULT_SESSION_CONFIG.plan_for(Intensity.MODERATE).max_notes == 10

    with pytest.raises(SchedulingValidationError):
        DEFAULT_SESSION_CONFIG.with_plan("moderate", SessionPlan((), max_notes=2))
