"""Tests for the response parser: JSON location, field coercion and the neutral fallback."""

from __future__ import annotations

import math

import pytest

from src.cascade.models import Bias, EntryZone, Trend, TrendStrength
from src.cascade.parser import (
    coerce_bias,
    coerce_trend,
    coerce_trend_strength,
    decode_timeframe_response,
    extract_json_object,
    parse_number_array,
    parse_timeframe_response,
)


FULL_RESPONSE = """Here is my analysis of the chart:

```json
{
  "trend": "Bullish",
  "trendStrength": "STRONG",
  "support": [92000, "90000", "n/a", null],
  "resistance": [100000, 105000],
  "signals": ["RSI bouncing from 40", "MACD bullish cross"],
  "alignsWithHigherTF": true,
  "bias": "long",
  "entryZone": {"low": "95000", "high": 96000},
  "reasoning": "Higher lows with {braces} inside a string"
}
```

Let me know if you need anything else."""


# --- Numeric extraction ---

def test_parse_number_array_filters_bad_entries():
    assert parse_number_array([1, "2.5", "abc", None, True, float("nan"), float("inf"), "$3,000"]) == [1.0, 2.5, 3000.0]


@pytest.mark.parametrize("value", [None, "92000", 42, {"a": 1}])
def test_parse_number_array_non_list_is_empty(value):
    assert parse_number_array(value) == []


# --- Keyword coercion ---

@pytest.mark.parametrize("raw,expected", [
    ("bullish", Trend.BULLISH), ("UPTREND", Trend.BULLISH), ("Bearish", Trend.BEARISH),
    ("down", Trend.BEARISH), ("ranging", Trend.NEUTRAL), (None, Trend.NEUTRAL),
])
def test_coerce_trend(raw, expected):
    assert coerce_trend(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    ("Strong", TrendStrength.STRONG), ("medium", TrendStrength.MODERATE),
    ("moderate", TrendStrength.MODERATE), ("", TrendStrength.WEAK), (3, TrendStrength.WEAK),
])
def test_coerce_trend_strength(raw, expected):
    assert coerce_trend_strength(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    ("LONG", Bias.LONG), ("buy", Bias.LONG), ("short", Bias.SHORT),
    ("Sell", Bias.SHORT), ("flat", Bias.NEUTRAL), (None, Bias.NEUTRAL),
])
def test_coerce_bias(raw, expected):
    assert coerce_bias(raw) == expected


# --- JSON location ---

def test_extract_json_skips_prose_and_fences():
    data = extract_json_object(FULL_RESPONSE)
    assert data["trend"] == "Bullish"
    assert data["reasoning"] == "Higher lows with {braces} inside a string"


def test_extract_json_takes_first_balanced_object():
    data = extract_json_object('first {"bias": "LONG"} then {"bias": "SHORT"}')
    assert data == {"bias": "LONG"}


def test_extract_json_falls_through_undecodable_candidate():
    data = extract_json_object('{not json} and then {"bias": "SHORT"}')
    assert data == {"bias": "SHORT"}


@pytest.mark.parametrize("text", ["", "Not valid JSON", '{"trend": "bullish", "support": [1,', "[1, 2, 3]"])
def test_extract_json_raises_value_error(text):
    with pytest.raises(ValueError):
        extract_json_object(text)


# --- Analysis decoding ---

def test_full_response_decodes_every_field():
    outcome = decode_timeframe_response(FULL_RESPONSE, "15m", 2)
    a = outcome.analysis

    assert not outcome.defaulted
    assert a.interval == "15m"
    assert a.position == 2
    assert a.trend == Trend.BULLISH
    assert a.trend_strength == TrendStrength.STRONG
    assert a.key_levels.support == (92000.0, 90000.0)
    assert a.key_levels.resistance == (100000.0, 105000.0)
    assert a.signals == ("RSI bouncing from 40", "MACD bullish cross")
    assert a.aligns_with_higher_tf is True
    assert a.bias == Bias.LONG
    assert a.entry_zone == EntryZone(low=95000.0, high=96000.0)


def test_position_zero_always_aligned_and_has_no_entry_zone():
    a = parse_timeframe_response(
        '{"alignsWithHigherTF": false, "entryZone": {"low": 1, "high": 2}, "bias": "SHORT"}', "1D", 0
    )
    assert a.aligns_with_higher_tf is True
    assert a.entry_zone is None
    assert a.bias == Bias.SHORT


def test_triggers_used_when_signals_missing():
    a = parse_timeframe_response('{"triggers": ["EMA reclaim"], "signals": "none"}', "1h", 1)
    assert a.signals == ("EMA reclaim",)


def test_entry_zone_partial_and_inverted():
    a = parse_timeframe_response('{"entryZone": {"low": 101, "high": 99}}', "1h", 1)
    assert a.entry_zone == EntryZone(low=99.0, high=101.0)
    b = parse_timeframe_response('{"entryZone": {"high": "250.5"}}', "1h", 1)
    assert b.entry_zone == EntryZone(low=250.5, high=250.5)
    c = parse_timeframe_response('{"entryZone": {"low": "x"}}', "1h", 1)
    assert c.entry_zone is None


def test_unexpected_types_fall_back_per_field():
    a = parse_timeframe_response(
        '{"trend": 7, "trendStrength": null, "support": "90000", "signals": {"a": 1},'
        ' "bias": ["LONG"], "alignsWithHigherTF": "no", "reasoning": 12}', "4h", 1
    )
    assert a.trend == Trend.NEUTRAL
    assert a.trend_strength == TrendStrength.WEAK
    assert a.key_levels.support == ()
    assert a.signals == ()
    assert a.bias == Bias.LONG
    assert a.aligns_with_higher_tf is False
    assert a.reasoning == "No reasoning provided"


def test_not_valid_json_returns_neutral_analysis():
    outcome = decode_timeframe_response("Not valid JSON", "4h", 1)
    a = outcome.analysis

    assert outcome.defaulted
    assert "No JSON found" in outcome.reason
    assert a.trend == Trend.NEUTRAL
    assert a.trend_strength == TrendStrength.WEAK
    assert a.bias == Bias.NEUTRAL
    assert a.key_levels.support == () and a.key_levels.resistance == ()
    assert a.signals == ()
    assert a.entry_zone is None
    assert a.aligns_with_higher_tf is False
    assert a.reasoning.startswith("Failed to parse analysis:")


@pytest.mark.parametrize("text", [
    "", "   ", "{", "}{", '{"trend": "bull', "plain prose only", '{"a": NaN}', "{{{{}}", "\x00\x01",
    '"{\\"quoted\\": 1}"', "[]", "null",
    '{"support": ' + "[" * 100_000 + "]" * 100_000 + "}",
])
def test_parser_never_raises(text):
    a = parse_timeframe_response(text, "1h", 1)
    assert a.interval == "1h"
    assert a.position == 1
    assert a.bias in tuple(Bias)
    for level in a.key_levels.support + a.key_levels.resistance:
        assert math.isfinite(level)


def test_deeply_nested_object_falls_back_to_neutral():
    text = '{"support": ' + "[" * 100_000 + "]" * 100_000 + "}"
    with pytest.raises(ValueError, match="nesting too deep"):
        extract_json_object(text)

    outcome = decode_timeframe_response(text, "1h", 1)
    assert outcome.defaulted
    assert outcome.analysis.bias == Bias.NEUTRAL
    assert outcome.analysis.key_levels.support == ()


def test_too_deep_candidate_is_skipped_for_a_later_object():
    text = 'noise {"x": ' + "[" * 100_000 + "]" * 100_000 + '} then {"bias": "SHORT"}'
    outcome = decode_timeframe_response(text, "4h", 1)
    assert not outcome.defaulted
    assert outcome.analysis.bias == Bias.SHORT


def test_outcome_keeps_the_raw_response():
    assert decode_timeframe_response(FULL_RESPONSE, "15m", 2).raw == FULL_RESPONSE
    fallback = decode_timeframe_response("Not valid JSON", "4h", 1)
    assert fallback.defaulted
    assert fallback.raw == "Not valid JSON"
    assert decode_timeframe_response(None, "4h", 1).raw == ""
