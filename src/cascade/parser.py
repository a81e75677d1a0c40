"""Response parser — turns free-form model text into a TimeframeAnalysis.

The reasoning service is asked for one JSON object but may wrap it in prose or
a fenced code block, truncate it, or return something else entirely. Every
field is coerced on its own, and when no object can be decoded at all the
parser substitutes a fully neutral analysis instead of raising. A bad answer
for one timeframe must never inject a direction into the trade plan.
"""

from __future__ import annotations

import json
import math
from typing import Any, Iterator, Optional

import structlog

from src.cascade.models import (
    Bias,
    EntryZone,
    KeyLevels,
    ParseOutcome,
    TimeframeAnalysis,
    Trend,
    TrendStrength,
)

log = structlog.get_logger()

NO_REASONING = "No reasoning provided"


# --- Numeric extraction ---

def parse_number(value: Any) -> Optional[float]:
    """A finite float from a number or numeric string, else None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = value.strip().replace(",", "").lstrip("$")
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def parse_number_array(value: Any) -> list[float]:
    """Keep the well-formed numbers of a list; anything that is not a list yields []."""
    if not isinstance(value, (list, tuple)):
        return []
    numbers = []
    for item in value:
        number = parse_number(item)
        if number is not None:
            numbers.append(number)
    return numbers


# --- Keyword coercion ---

def coerce_trend(value: Any) -> Trend:
    text = str(value).lower()
    if "bull" in text or "up" in text:
        return Trend.BULLISH
    if "bear" in text or "down" in text:
        return Trend.BEARISH
    return Trend.NEUTRAL


def coerce_trend_strength(value: Any) -> TrendStrength:
    text = str(value).lower()
    if "strong" in text:
        return TrendStrength.STRONG
    if "moderate" in text or "medium" in text:
        return TrendStrength.MODERATE
    return TrendStrength.WEAK


def coerce_bias(value: Any) -> Bias:
    text = str(value).upper()
    if "LONG" in text or "BUY" in text:
        return Bias.LONG
    if "SHORT" in text or "SELL" in text:
        return Bias.SHORT
    return Bias.NEUTRAL


def coerce_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "y", "1")
    return bool(value)


def coerce_string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def coerce_entry_zone(value: Any) -> Optional[EntryZone]:
    if not isinstance(value, dict):
        return None
    low = parse_number(value.get("low"))
    high = parse_number(value.get("high"))
    if low is None and high is None:
        return None
    if low is None:
        low = high
    if high is None:
        high = low
    if low > high:
        low, high = high, low
    return EntryZone(low=low, high=high)


# --- JSON location ---

def _balanced_objects(text: str) -> Iterator[str]:
    """Yield each top-level balanced {...} span, honouring JSON string literals."""
    start = -1
    depth = 0
    in_string = False
    escaped = False
    for idx, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = idx
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start:idx + 1]


def extract_json_object(text: str) -> dict[str, Any]:
    """Decode the first balanced JSON object found in `text`.

    Raises:
        ValueError: no balanced object decodes to a JSON object.
    """
    if not isinstance(text, str) or not text.strip():
        raise ValueError("Empty response")

    last_error: Optional[str] = None
    for candidate in _balanced_objects(text):
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = str(e)
            continue
        except RecursionError:
            last_error = "nesting too deep"
            continue
        if isinstance(data, dict):
            return data

    if last_error:
        raise ValueError(f"Invalid JSON in response: {last_error}")
    raise ValueError("No JSON found in response")


# --- Analysis decoding ---

RAW_PREVIEW_CHARS = 200


def neutral_analysis(interval: str, position: int, reason: str) -> TimeframeAnalysis:
    """The conservative fallback used when a response cannot be decoded."""
    return TimeframeAnalysis(
        interval=interval,
        position=position,
        trend=Trend.NEUTRAL,
        trend_strength=TrendStrength.WEAK,
        key_levels=KeyLevels(),
        signals=(),
        aligns_with_higher_tf=position == 0,
        bias=Bias.NEUTRAL,
        reasoning=f"Failed to parse analysis: {reason}",
    )


def _analysis_from_object(data: dict[str, Any], interval: str, position: int) -> TimeframeAnalysis:
    signals = data.get("signals")
    if not isinstance(signals, list):
        signals = data.get("triggers")

    reasoning = data.get("reasoning")
    if not isinstance(reasoning, str) or not reasoning.strip():
        reasoning = NO_REASONING

    return TimeframeAnalysis(
        interval=interval,
        position=position,
        trend=coerce_trend(data.get("trend")),
        trend_strength=coerce_trend_strength(data.get("trendStrength")),
        key_levels=KeyLevels(
            support=tuple(parse_number_array(data.get("support"))),
            resistance=tuple(parse_number_array(data.get("resistance"))),
        ),
        signals=tuple(coerce_string_list(signals)),
        # The highest timeframe has nothing above it to disagree with
        aligns_with_higher_tf=True if position == 0 else coerce_flag(data.get("alignsWithHigherTF")),
        bias=coerce_bias(data.get("bias")),
        reasoning=reasoning,
        entry_zone=None if position == 0 else coerce_entry_zone(data.get("entryZone")),
    )


def decode_timeframe_response(response: str, interval: str, position: int) -> ParseOutcome:
    """Decode one timeframe response into a tagged ParseOutcome. Never raises."""
    raw = response if isinstance(response, str) else ""
    try:
        data = extract_json_object(response)
        # str() of a deeply nested field can still hit the recursion limit
        analysis = _analysis_from_object(data, interval, position)
    except (ValueError, RecursionError) as e:
        reason = str(e) or type(e).__name__
        outcome = ParseOutcome(
            analysis=neutral_analysis(interval, position, reason),
            defaulted=True,
            reason=reason,
            raw=raw,
        )
        log.warning("parser.defaulted", interval=interval, position=position, reason=reason,
                    raw=outcome.raw[:RAW_PREVIEW_CHARS])
        return outcome

    return ParseOutcome(analysis=analysis, raw=raw)


def parse_timeframe_response(response: str, interval: str, position: int) -> TimeframeAnalysis:
    return decode_timeframe_response(response, interval, position).analysis
