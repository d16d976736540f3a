from datetime import datetime, timedelta, timezone

import pytest

from librelinkup_relay.models import Reading
from librelinkup_relay.trend import (
    UNKNOWN_GLYPH,
    arrow_glyph,
    classify_delta,
    color_name,
    device_model_name,
    since_last_trend,
    to_mmol,
)


@pytest.mark.parametrize(
    "diff, expected",
    [(0, 3), (1, 4), (5, 4), (6, 5), (200, 5), (-1, 2), (-5, 2), (-6, 1), (-200, 1)],
)
def test_classify_delta_thresholds(diff: int, expected: int) -> None:
    assert classify_delta(diff) == expected


def test_classify_delta_always_in_range() -> None:
    assert {classify_delta(d) for d in range(-50, 51)} == {1, 2, 3, 4, 5}


def test_to_mmol_rounding() -> None:
    assert to_mmol(180) == 10.0
    assert to_mmol(100) == 5.6
    assert to_mmol(99) == 5.5
    assert to_mmol(0) == 0.0


def test_glyph_and_color_fallbacks() -> None:
    assert arrow_glyph(3) == "➡️"
    assert arrow_glyph(99) == UNKNOWN_GLYPH
    assert arrow_glyph(None) == UNKNOWN_GLYPH
    assert color_name(3) == "orange"
    assert color_name(99) == "unknown"
    assert color_name(None) == "unknown"


def test_device_model_name() -> None:
    assert device_model_name(4) == "Freestyle Libre 3"
    assert device_model_name(0) == "Freestyle Libre 1"
    assert device_model_name(7) == "Unknown (pt=7)"


def _reading(minute: int, value: int) -> Reading:
    return Reading(datetime(2025, 1, 5, 10, minute, tzinfo=timezone.utc), value, 3)


def test_since_last_trend_within_window() -> None:
    assert since_last_trend(_reading(0, 100), _reading(5, 108)) == 5
    assert since_last_trend(_reading(0, 100), _reading(24, 97)) == 2


def test_since_last_trend_unavailable() -> None:
    assert since_last_trend(None, _reading(5, 100)) is None
    assert since_last_trend(_reading(0, 100), _reading(25, 120)) is None
    assert since_last_trend(_reading(0, 100), _reading(30, 120), window=timedelta(minutes=10)) is None


def test_since_last_trend_ignores_newer_previous() -> None:
    # stored reading is newer than the fetched one
    assert since_last_trend(_reading(10, 100), _reading(5, 120)) is None
