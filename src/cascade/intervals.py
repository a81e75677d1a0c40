"""Interval parsing, comparison and the timeframe sequencer.

Intervals are compared by their duration in minutes. Malformed intervals
resolve to 0 minutes, so they sort after every well-formed one.
"""

from __future__ import annotations

import re
from typing import Iterable, Sequence, TypeVar

from src.cascade.models import InsufficientTimeframesError, TimeframeInput

T = TypeVar("T")

INTERVAL_MINUTES: dict[str, int] = {
    # Monthly
    "1M": 43200,
    "3M": 129600,
    # Weekly
    "1W": 10080,
    # Daily
    "1D": 1440,
    "D": 1440,
    # Hours
    "12h": 720,
    "8h": 480,
    "6h": 360,
    "4h": 240,
    "2h": 120,
    "1h": 60,
    # Minutes
    "45m": 45,
    "30m": 30,
    "15m": 15,
    "10m": 10,
    "5m": 5,
    "3m": 3,
    "1m": 1,
}

_INTERVAL_RE = re.compile(r"^(\d+)([mhdw])$", re.IGNORECASE)
_NORMALIZED_RE = re.compile(r"^(\d+)([mhDWM])$")

# Minutes per unit of a normalized interval; a month counts as 30 days
UNIT_MINUTES: dict[str, int] = {"m": 1, "h": 60, "D": 1440, "W": 10080, "M": 43200}

MIN_CASCADE_TIMEFRAMES = 2


def normalize_interval(interval: str) -> str:
    """Normalize case and aliases: '1d' -> '1D', '4H' -> '4h', 'D' -> '1D'."""
    interval = interval.strip()
    if interval in ("D", "d"):
        return "1D"
    if interval in ("W", "w"):
        return "1W"
    if interval in ("M", "m"):
        return "1M"

    match = _INTERVAL_RE.match(interval)
    if not match:
        return interval

    num, unit = match.group(1), match.group(2).lower()
    if unit == "d":
        return f"{num}D"
    if unit == "w":
        return f"{num}W"
    # Uppercase M is month; lowercase m past an hour is read as month too
    if unit == "m" and (match.group(2) == "M" or int(num) > 60):
        return f"{num}M"
    return f"{num}{unit}"


def interval_minutes(interval: str) -> int:
    """Duration of an interval in minutes, 0 when unknown.

    Any well-formed '<count><unit>' has a duration, so '5M' and '15M' order
    as five and fifteen months even though neither is in the table.
    """
    normalized = normalize_interval(interval)
    if normalized in INTERVAL_MINUTES:
        return INTERVAL_MINUTES[normalized]
    match = _NORMALIZED_RE.match(normalized)
    if not match:
        return 0
    return int(match.group(1)) * UNIT_MINUTES[match.group(2)]


def compare_intervals(a: str, b: str) -> int:
    """Negative if a is shorter than b, positive if longer, 0 if equal."""
    return interval_minutes(a) - interval_minutes(b)


def is_higher_timeframe(a: str, b: str) -> bool:
    return interval_minutes(a) > interval_minutes(b)


def sort_by_interval_descending(items: Iterable[T], key=lambda item: item.interval) -> list[T]:
    """Highest timeframe first. Stable: equal durations keep input order."""
    return sorted(items, key=lambda item: interval_minutes(key(item)), reverse=True)


def sort_by_interval_ascending(items: Iterable[T], key=lambda item: item.interval) -> list[T]:
    """Lowest timeframe first. Stable: equal durations keep input order."""
    return sorted(items, key=lambda item: interval_minutes(key(item)))


def timeframe_position(interval: str, all_intervals: Sequence[str]) -> int:
    """Position of `interval` among `all_intervals` (0 = highest), -1 if absent."""
    ordered = sort_by_interval_descending(all_intervals, key=lambda i: i)
    target = normalize_interval(interval)
    for idx, candidate in enumerate(ordered):
        if normalize_interval(candidate) == target:
            return idx
    return -1


def highest_timeframe(intervals: Sequence[str]) -> str | None:
    if not intervals:
        return None
    highest = intervals[0]
    for current in intervals[1:]:
        if is_higher_timeframe(current, highest):
            highest = current
    return highest


def lowest_timeframe(intervals: Sequence[str]) -> str | None:
    if not intervals:
        return None
    lowest = intervals[0]
    for current in intervals[1:]:
        if is_higher_timeframe(lowest, current):
            lowest = current
    return lowest


def categorize_timeframes(intervals: Iterable[str]) -> dict[str, list[str]]:
    """Group into high (>= 1D), medium (1h-12h) and low (< 1h)."""
    groups: dict[str, list[str]] = {"high": [], "medium": [], "low": []}
    for interval in intervals:
        minutes = interval_minutes(interval)
        if minutes >= 1440:
            groups["high"].append(interval)
        elif minutes >= 60:
            groups["medium"].append(interval)
        else:
            groups["low"].append(interval)
    return groups


def sequence_timeframes(inputs: Sequence[TimeframeInput]) -> list[TimeframeInput]:
    """Order cascade inputs coarsest to finest.

    Raises:
        InsufficientTimeframesError: fewer than two inputs. A single timeframe
            has no higher context to propagate.
    """
    if len(inputs) < MIN_CASCADE_TIMEFRAMES:
        raise InsufficientTimeframesError(len(inputs))
    return sort_by_interval_descending(inputs)
