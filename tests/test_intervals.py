"""Tests for interval utilities and the timeframe sequencer."""

from __future__ import annotations

import pytest

from src.cascade.intervals import (
    categorize_timeframes,
    compare_intervals,
    highest_timeframe,
    interval_minutes,
    lowest_timeframe,
    normalize_interval,
    sequence_timeframes,
    sort_by_interval_ascending,
    timeframe_position,
)
from src.cascade.models import InsufficientTimeframesError, TimeframeInput


def _tf(interval: str, ref: str = "") -> TimeframeInput:
    return TimeframeInput(chart_reference=ref or f"https://charts.example/{interval}.png", interval=interval)


@pytest.mark.parametrize("raw,expected", [
    ("1d", "1D"), ("D", "1D"), ("4H", "4h"), ("15M", "15M"), ("15m", "15m"),
    ("1w", "1W"), ("W", "1W"), ("M", "1M"), ("1M", "1M"), ("weird", "weird"),
])
def test_normalize_interval(raw, expected):
    assert normalize_interval(raw) == expected


def test_interval_minutes():
    assert interval_minutes("1D") == 1440
    assert interval_minutes("4h") == 240
    assert interval_minutes("15m") == 15
    assert interval_minutes("1M") == 43200
    assert interval_minutes("7x") == 0


def test_intervals_outside_the_table_get_a_real_duration():
    assert interval_minutes("15M") == 15 * 43200
    assert interval_minutes("5M") == 5 * 43200
    assert interval_minutes("3h") == 180
    assert interval_minutes("2d") == 2880
    assert interval_minutes("20m") == 20


def test_month_multiples_sort_by_duration():
    ordered = sequence_timeframes([_tf("5M"), _tf("1D"), _tf("15M")])
    assert [t.interval for t in ordered] == ["15M", "5M", "1D"]


def test_compare_and_extremes():
    assert compare_intervals("1D", "4h") > 0
    assert compare_intervals("15m", "1h") < 0
    assert highest_timeframe(["15m", "1D", "4h"]) == "1D"
    assert lowest_timeframe(["15m", "1D", "4h"]) == "15m"
    assert highest_timeframe([]) is None


def test_timeframe_position():
    assert timeframe_position("4h", ["15m", "1D", "4h", "1h"]) == 1
    assert timeframe_position("1d", ["15m", "1D"]) == 0
    assert timeframe_position("5m", ["15m", "1D"]) == -1


def test_categorize_timeframes():
    groups = categorize_timeframes(["1W", "1D", "4h", "1h", "15m"])
    assert groups == {"high": ["1W", "1D"], "medium": ["4h", "1h"], "low": ["15m"]}


def test_sequence_orders_coarsest_first():
    ordered = sequence_timeframes([_tf("15m"), _tf("1D"), _tf("1h"), _tf("4h")])
    assert [t.interval for t in ordered] == ["1D", "4h", "1h", "15m"]


def test_sequence_is_stable_for_equal_durations():
    first = _tf("1D", "a.png")
    second = _tf("D", "b.png")
    ordered = sequence_timeframes([_tf("4h"), first, second])
    assert ordered[0] is first
    assert ordered[1] is second


def test_unknown_intervals_sort_last():
    ordered = sequence_timeframes([_tf("tick"), _tf("4h")])
    assert [t.interval for t in ordered] == ["4h", "tick"]


def test_sequence_rejects_single_timeframe():
    with pytest.raises(InsufficientTimeframesError):
        sequence_timeframes([_tf("1D")])
    with pytest.raises(InsufficientTimeframesError):
        sequence_timeframes([])


def test_ascending_sort():
    ordered = sort_by_interval_ascending([_tf("1D"), _tf("5m"), _tf("1h")])
    assert [t.interval for t in ordered] == ["5m", "1h", "1D"]
