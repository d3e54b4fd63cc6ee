from __future__ import annotations

import pytest

from src.scheduling import Intensity, SchedulingValidationError, coerce_intensity, parse_intensity
from src.scheduling.intensity import intensity_code


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (Intensity.SOON, Intensity.SOON),
        ("chill", Intensity.CHILL),
        (" Moderate ", Intensity.MODERATE),
        ("sérieux", Intensity.MODERATE),
        ("nécessaire", Intensity.INTENSIVE),
        ("necessaire", Intensity.INTENSIVE),
        (1, Intensity.CHILL),
        (2, Intensity.MODERATE),
        ("3", Intensity.INTENSIVE),
    ],
)
def test_parse_intensity_accepts_names_labels_and_codes(raw, expected) -> None:
    assert parse_intensity(raw) is expected


@pytest.mark.parametrize("raw", [None, True, 0, 7, "urgent", ""])
def test_parse_intensity_rejects_unknown_values(raw) -> None:
    with pytest.raises(SchedulingValidationError):
        parse_intensity(raw)


def test_coerce_intensity_falls_back_to_moderate() -> None:
    assert coerce_intensity("whatever") is Intensity.MODERATE
    assert coerce_intensity("intensive") is Intensity.INTENSIVE


def test_intensity_code_round_trips_legacy_tiers() -> None:
    assert intensity_code(Intensity.CHILL) == 1
    assert intensity_code(Intensity.INTENSIVE) == 3
    assert intensity_code(Intensity.SOON) == 0
