# -*- coding: utf-8 -*-
"""Trend arrows, unit conversion and lookup tables. No I/O in here."""

import math
from datetime import timedelta
from typing import Optional

from .models import Reading

MGDL_PER_MMOL = 18

SINCE_LAST_WINDOW = timedelta(minutes=24)

UNKNOWN_GLYPH = "❓"

ARROW_GLYPHS = {
    1: "⬇️",
    2: "↘️",
    3: "➡️",
    4: "↗️",
    5: "⬆️",
}

COLOR_NAMES = {
    1: "green",
    2: "yellow",
    3: "orange",
    4: "red",
}

DEVICE_MODELS = {
    0: "Freestyle Libre 1",
    1: "Freestyle Libre 2",
    4: "Freestyle Libre 3",
}


def classify_delta(diff: int) -> int:
    """mg/dL difference -> trend code 1 (fall) .. 5 (rise)."""
    if diff == 0:
        return 3
    if 0 < diff <= 5:
        return 4
    if diff > 5:
        return 5
    if -5 <= diff < 0:
        return 2
    return 1


def to_mmol(value_mgdl: int) -> float:
    # half-up at the tenths digit, values are never negative
    return math.floor(value_mgdl / MGDL_PER_MMOL * 10 + 0.5) / 10


def arrow_glyph(code: Optional[int]) -> str:
    return ARROW_GLYPHS.get(code, UNKNOWN_GLYPH)


def color_name(code: Optional[int]) -> str:
    return COLOR_NAMES.get(code, "unknown")


def device_model_name(code: Optional[int]) -> str:
    if code in DEVICE_MODELS:
        return DEVICE_MODELS[code]
    return f"Unknown (pt={code})"


def since_last_trend(
    previous: Optional[Reading],
    current: Reading,
    window: timedelta = SINCE_LAST_WINDOW,
) -> Optional[int]:
    """
    Trend code between two stored readings, or None when there is no
    previous reading or the gap is too large to say anything honest.
    """
    if previous is None:
        return None
    gap = current.timestamp - previous.timestamp
    if gap < timedelta(0) or gap > window:
        return None
    return classify_delta(current.value_mgdl - previous.value_mgdl)
