"""Synthesis engine — one weighted recommendation from every timeframe.

Confidence is accumulated from four independent contributions and clamped:

    alignment ratio * 0.4
  + highest-timeframe trend strength (strong 0.2, moderate 0.1, weak 0)
  + min(0.2, 0.03 * total signal count)
  + multi-timeframe confirmation (0.15 for >= 4 fully aligned, 0.10 for >= 3 not unaligned)

A trade plan is only drawn when the cascade is at least partially aligned,
the recommendation is directional, and the finest timeframe named an entry zone.
"""

from __future__ import annotations

from typing import Sequence

from src.cascade.context import is_aligned
from src.cascade.models import (
    Alignment,
    Bias,
    MultiTimeframeSynthesis,
    TimeframeAnalysis,
    TradePlan,
    TrendStrength,
)

MIN_DIRECTIONAL_CONFIDENCE = 0.3
MAX_TAKE_PROFITS = 3

# Fallback distances when no key level qualifies
FALLBACK_STOP_PCT = 0.02
FALLBACK_TARGET_PCT = 0.05

STRENGTH_BONUS = {
    TrendStrength.STRONG: 0.2,
    TrendStrength.MODERATE: 0.1,
    TrendStrength.WEAK: 0.0,
}


def alignment_ratio(analyses: Sequence[TimeframeAnalysis]) -> float:
    primary_bias = analyses[0].bias
    aligned = sum(1 for a in analyses if is_aligned(a, primary_bias))
    return aligned / len(analyses)


def classify_alignment(ratio: float) -> Alignment:
    if ratio == 1:
        return Alignment.FULL
    # An even split between agreeing and opposing timeframes is not alignment
    if ratio > 0.5:
        return Alignment.PARTIAL
    return Alignment.NONE


def score_confidence(analyses: Sequence[TimeframeAnalysis], ratio: float, alignment: Alignment) -> float:
    confidence = ratio * 0.4
    confidence += STRENGTH_BONUS[analyses[0].trend_strength]

    total_signals = sum(len(a.signals) for a in analyses)
    confidence += min(0.2, total_signals * 0.03)

    if len(analyses) >= 4 and alignment == Alignment.FULL:
        confidence += 0.15
    elif len(analyses) >= 3 and alignment != Alignment.NONE:
        confidence += 0.10

    return max(0.0, min(1.0, confidence))


def risk_percentage(confidence: float, risk_per_trade: float = 1.0) -> float:
    """Risk % by confidence band: 1.5 / 1.0 / 0.5.

    risk_per_trade is accepted but not applied; the middle band stays at 1.0
    whatever the caller passes. Possibly unintended, kept as is.
    """
    if confidence >= 0.7:
        return 1.5
    if confidence >= 0.5:
        return 1.0
    return 0.5


def build_trade_plan(
    analyses: Sequence[TimeframeAnalysis],
    recommendation: Bias,
    confidence: float,
    risk_per_trade: float = 1.0,
    include_position_size: bool = False,
) -> TradePlan | None:
    lowest = analyses[-1]
    if lowest.entry_zone is None or recommendation == Bias.NEUTRAL:
        return None

    is_long = recommendation == Bias.LONG
    entry = lowest.entry_zone.low if is_long else lowest.entry_zone.high

    # Levels pooled across every timeframe, not just the context's top five
    all_support = [s for a in analyses for s in a.key_levels.support]
    all_resistance = [r for a in analyses for r in a.key_levels.resistance]

    if is_long:
        below = sorted((s for s in all_support if s < entry), reverse=True)
        stop_loss = below[0] if below else entry * (1 - FALLBACK_STOP_PCT)
        targets = sorted({r for r in all_resistance if r > entry})[:MAX_TAKE_PROFITS]
        if not targets:
            targets = [entry * (1 + FALLBACK_TARGET_PCT)]
    else:
        above = sorted(r for r in all_resistance if r > entry)
        stop_loss = above[0] if above else entry * (1 + FALLBACK_STOP_PCT)
        targets = sorted({s for s in all_support if s < entry}, reverse=True)[:MAX_TAKE_PROFITS]
        if not targets:
            targets = [entry * (1 - FALLBACK_TARGET_PCT)]

    risk = risk_percentage(confidence, risk_per_trade)

    position_size = None
    if include_position_size and entry and stop_loss:
        distance_pct = abs(entry - stop_loss) / entry * 100
        position_size = f"Risk {risk}% per trade. Entry-SL distance: {distance_pct:.2f}%"

    return TradePlan(
        entry=entry,
        stop_loss=stop_loss,
        take_profit=tuple(targets),
        risk_percentage=risk,
        position_size=position_size,
    )


def position_label(position: int, total: int) -> str:
    if position == 0:
        return "HIGHEST"
    if position == total - 1:
        return "LOWEST"
    return f"POS-{position + 1}"


def build_reasoning(
    analyses: Sequence[TimeframeAnalysis], alignment: Alignment, confidence: float
) -> str:
    parts = []
    for a in analyses:
        part = f"{a.interval} ({position_label(a.position, len(analyses))}): {a.trend.value} {a.bias.value}"
        if a.position > 0:
            part += f", aligns: {'✓' if a.aligns_with_higher_tf else '✗'}"
        parts.append(part)
    parts.append(
        f"SUMMARY: {len(analyses)}TF cascade, alignment: {alignment.value.upper()}, "
        f"confidence: {confidence * 100:.0f}%"
    )
    return " | ".join(parts)


def synthesize_analyses(
    analyses: Sequence[TimeframeAnalysis],
    risk_per_trade: float = 1.0,
    include_position_size: bool = False,
) -> MultiTimeframeSynthesis:
    """Fold the ordered per-timeframe analyses into one recommendation."""
    if not analyses:
        return MultiTimeframeSynthesis(
            recommendation=Bias.NEUTRAL,
            confidence=0.0,
            alignment=Alignment.NONE,
            reasoning="No analyses to synthesize",
        )

    ratio = alignment_ratio(analyses)
    alignment = classify_alignment(ratio)
    confidence = score_confidence(analyses, ratio, alignment)

    if alignment == Alignment.NONE or confidence < MIN_DIRECTIONAL_CONFIDENCE:
        recommendation = Bias.NEUTRAL
    else:
        recommendation = analyses[0].bias

    trade_plan = None
    if alignment != Alignment.NONE:
        trade_plan = build_trade_plan(
            analyses, recommendation, confidence, risk_per_trade, include_position_size
        )

    return MultiTimeframeSynthesis(
        recommendation=recommendation,
        confidence=confidence,
        alignment=alignment,
        reasoning=build_reasoning(analyses, alignment, confidence),
        trade_plan=trade_plan,
    )
