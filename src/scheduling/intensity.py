"""Review intensity tiers and the mapping from legacy representations."""

from __future__ import annotations

from enum import Enum
from typing import Union

from .errors import SchedulingValidationError


class Intensity(str, Enum):
    """How often the user wants a note to come back."""

    CHILL = "chill"
    MODERATE = "moderate"
    INTENSIVE = "intensive"
    SOON = "soon"


DEFAULT_INTENSITY = Intensity.MODERATE

# Older clients sent numeric codes or the display labels of the note form.
_LEGACY_CODES = {
    1: Intensity.CHILL,
    2: Intensity.MODERATE,
    3: Intensity.INTENSIVE,
}
_LABELS = {
    "chill": Intensity.CHILL,
    "moderate": Intensity.MODERATE,
    "sérieux": Intensity.MODERATE,
    "serieux": Intensity.MODERATE,
    "intensive": Intensity.INTENSIVE,
    "nécessaire": Intensity.INTENSIVE,
    "necessaire": Intensity.INTENSIVE,
    "soon": Intensity.SOON,
}


def parse_intensity(value: Union[Intensity, str, int, None]) -> Intensity:
    """Convert a name, display label or numeric code into an ``Intensity``."""
    if isinstance(value, Intensity):
        return value
    if value is None:
        raise SchedulingValidationError("Intensity is required.")
    if isinstance(value, bool):
        raise SchedulingValidationError(f"Invalid intensity: {value!r}")
    if isinstance(value, int):
        try:
            return _LEGACY_CODES[value]
        except KeyError:
            raise SchedulingValidationError(f"Invalid intensity code: {value}") from None

    normalized = str(value).strip().lower()
    if normalized.isdigit():
        return parse_intensity(int(normalized))
    try:
        return _LABELS[normalized]
    except KeyError:
        raise SchedulingValidationError(f"Invalid intensity: {value!r}") from None


def coerce_intensity(value: Union[Intensity, str, int, None]) -> Intensity:
    """Like ``parse_intensity`` but falls back to the default tier for unknown values."""
    try:
        return parse_intensity(value)
    except SchedulingValidationError:
        return DEFAULT_INTENSITY


def intensity_code(intensity: Intensity) -> int:
    """Return the legacy numeric code, ``0`` for tiers that never had one."""
    for code, candidate in _LEGACY_CODES.items():
        if candidate is intensity:
            return code
    return 0
