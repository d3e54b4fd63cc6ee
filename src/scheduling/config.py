"""Immutable tuning values shared by the scheduling engines."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

from .errors import SchedulingValidationError
from .intensity import DEFAULT_INTENSITY, Intensity, parse_intensity


HOUR_MS = 3600 * 1000
DAY_MS = 24 * HOUR_MS


def _frozen(mapping: Mapping[Any, Any]) -> Mapping[Any, Any]:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class SchedulerConfig:
    """Tuning for the interval engines.

    Instances never change; ``with_overrides`` returns a new configuration so a
    value captured by one review cannot be altered by another.
    """

    # Simple engine, milliseconds.
    base_interval_ms: Mapping[Intensity, int] = field(
        default_factory=lambda: _frozen(
            {
                Intensity.CHILL: 7 * DAY_MS,
                Intensity.MODERATE: 1 * DAY_MS,
                Intensity.INTENSIVE: 6 * HOUR_MS,
            }
        )
    )
    success_growth: float = 1.5
    failure_shrink: float = 0.6
    failure_floor_ratio: float = 0.5
    min_interval_ms: int = HOUR_MS
    max_interval_ms: int = 365 * DAY_MS

    # Adaptive engine, hours.
    base_interval_hours: Mapping[Intensity, float] = field(
        default_factory=lambda: _frozen(
            {
                Intensity.CHILL: 24.0,
                Intensity.MODERATE: 12.0,
                Intensity.INTENSIVE: 8.0,
                Intensity.SOON: 1.0,
            }
        )
    )
    difficulty_multipliers: Mapping[int, float] = field(
        default_factory=lambda: _frozen({1: 0.5, 2: 0.75, 3: 1.0, 4: 1.5, 5: 3.0})
    )
    progression_multiplier: float = 1.5
    progression_cap: int = 5
    regression_multiplier: float = 0.5
    min_interval_hours: float = 1.0
    max_interval_hours: float = 24.0 * 30

    def base_ms_for(self, intensity: Any) -> int:
        """Return the simple-engine base interval, defaulting to the moderate tier."""
        key = _lookup_key(intensity)
        if key in self.base_interval_ms:
            return self.base_interval_ms[key]
        return self.base_interval_ms[DEFAULT_INTENSITY]

    def base_hours_for(self, intensity: Any) -> float:
        """Return the adaptive-engine base interval, defaulting to the moderate tier."""
        key = _lookup_key(intensity)
        if key in self.base_interval_hours:
            return self.base_interval_hours[key]
        return self.base_interval_hours[DEFAULT_INTENSITY]

    def with_overrides(self, **changes: Any) -> "SchedulerConfig":
        """Return a copy with the given fields replaced.

        Mapping fields are merged into the current tables, so callers can
        override a single tier without restating the others.
        """
        for name in ("base_interval_ms", "base_interval_hours"):
            if name in changes:
                merged = dict(getattr(self, name))
                for raw_key, value in changes[name].items():
                    if value <= 0:
                        raise SchedulingValidationError(f"{name} values must be positive.")
                    merged[parse_intensity(raw_key)] = value
                changes[name] = _frozen(merged)

        if "difficulty_multipliers" in changes:
            merged_multipliers = dict(self.difficulty_multipliers)
            for rating, value in changes["difficulty_multipliers"].items():
                rating = int(rating)
                if rating < 1 or rating > 5:
                    raise SchedulingValidationError("difficulty_multipliers keys must be between 1 and 5.")
                if value <= 0:
                    raise SchedulingValidationError("difficulty_multipliers values must be positive.")
                merged_multipliers[rating] = value
            changes["difficulty_multipliers"] = _frozen(merged_multipliers)

        try:
            return replace(self, **changes)
        except TypeError as exc:
            raise SchedulingValidationError(str(exc)) from exc

    def as_dict(self) -> dict:
        """Plain representation for settings screens and logs."""
        return {
            "base_interval_ms": {key.value: value for key, value in self.base_interval_ms.items()},
            "base_interval_hours": {key.value: value for key, value in self.base_interval_hours.items()},
            "difficulty_multipliers": dict(self.difficulty_multipliers),
            "progression_multiplier": self.progression_multiplier,
            "regression_multiplier": self.regression_multiplier,
        }


def _lookup_key(intensity: Any) -> Optional[Intensity]:
    if isinstance(intensity, Intensity):
        return intensity
    try:
        return parse_intensity(intensity)
    except SchedulingValidationError:
        return None


@dataclass(frozen=True)
class SessionWindow:
    """A recurring slot: a weekday/clock time, a daily clock time, or a fixed period."""

    hour: Optional[int] = None
    minute: int = 0
    weekday: Optional[int] = None
    every: Optional[timedelta] = None

    def __post_init__(self) -> None:
        if self.every is not None:
            if self.every <= timedelta(0):
                raise SchedulingValidationError("Session period must be positive.")
            return
        if self.hour is None or not 0 <= self.hour <= 23:
            raise SchedulingValidationError(f"Session hour must be between 0 and 23 (got {self.hour}).")
        if not 0 <= self.minute <= 59:
            raise SchedulingValidationError(f"Session minute must be between 0 and 59 (got {self.minute}).")
        if self.weekday is not None and not 0 <= self.weekday <= 6:
            raise SchedulingValidationError(f"Session weekday must be between 0 and 6 (got {self.weekday}).")

    @property
    def is_periodic(self) -> bool:
        return self.every is not None


@dataclass(frozen=True)
class SessionPlan:
    windows: Tuple[SessionWindow, ...]
    max_notes: int


SUNDAY = 6


@dataclass(frozen=True)
class SessionConfig:
    """Session windows and per-session caps for every intensity."""

    plans: Mapping[Intensity, SessionPlan] = field(
        default_factory=lambda: _frozen(
            {
                Intensity.SOON: SessionPlan((SessionWindow(every=timedelta(minutes=2)),), max_notes=3),
                Intensity.CHILL: SessionPlan((SessionWindow(hour=10, weekday=SUNDAY),), max_notes=5),
                Intensity.MODERATE: SessionPlan((SessionWindow(hour=9),), max_notes=10),
                Intensity.INTENSIVE: SessionPlan(
                    (SessionWindow(hour=9), SessionWindow(hour=14), SessionWindow(hour=20)),
                    max_notes=15,
                ),
            }
        )
    )
    tolerance: timedelta = timedelta(minutes=30)

    def plan_for(self, intensity: Any) -> SessionPlan:
        key = _lookup_key(intensity)
        if key in self.plans:
            return self.plans[key]
        return self.plans[DEFAULT_INTENSITY]

    def with_plan(self, intensity: Any, plan: SessionPlan) -> "SessionConfig":
        """Return a copy where ``intensity`` uses ``plan``."""
        if not plan.windows:
            raise SchedulingValidationError("A session plan needs at least one window.")
        if plan.max_notes < 1:
            raise SchedulingValidationError("max_notes must be a positive integer.")
        plans = dict(self.plans)
        plans[parse_intensity(intensity)] = plan
        return replace(self, plans=_frozen(plans))


DEFAULT_SCHEDULER_CONFIG = SchedulerConfig()
DEFAULT_SESSION_CONFIG = SessionConfig()


class SchedulerEngine(str, Enum):
    """Which spacing model a deployment uses. Models are never mixed."""

    ADAPTIVE = "adaptive"
    INTERVAL = "interval"
    EASE = "ease"
