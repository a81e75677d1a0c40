"""Higher-timeframe context — what the cascade knows before the next step.

Rebuilt from the full analysis prefix after every step; the coarsest timeframe
sets the directional bias for everything below it.
"""

from __future__ import annotations

from typing import Sequence

from src.cascade.models import Bias, HigherTimeframeContext, TimeframeAnalysis

MAX_CONTEXT_LEVELS = 5
SUMMARY_SEPARATOR = " | "


def empty_context() -> HigherTimeframeContext:
    """Zero-state seed used before the first timeframe is analyzed."""
    return HigherTimeframeContext(
        summary="",
        bias=Bias.NEUTRAL,
        support=(),
        resistance=(),
        all_aligned=True,
        timeframe_count=0,
    )


def is_aligned(analysis: TimeframeAnalysis, primary_bias: Bias) -> bool:
    return analysis.bias == primary_bias or analysis.bias == Bias.NEUTRAL


def summarize_analysis(analysis: TimeframeAnalysis) -> str:
    line = (
        f"{analysis.interval}: {analysis.trend.value} ({analysis.trend_strength.value}), "
        f"bias {analysis.bias.value}"
    )
    if analysis.position > 0:
        line += f", aligns: {'YES' if analysis.aligns_with_higher_tf else 'NO'}"
    return line


def _unique(levels) -> list[float]:
    seen: set[float] = set()
    unique = []
    for level in levels:
        if level not in seen:
            seen.add(level)
            unique.append(level)
    return unique


def build_higher_timeframe_context(analyses: Sequence[TimeframeAnalysis]) -> HigherTimeframeContext:
    if not analyses:
        return empty_context()

    primary_bias = analyses[0].bias
    support = sorted(
        _unique(level for a in analyses for level in a.key_levels.support), reverse=True
    )
    resistance = sorted(_unique(level for a in analyses for level in a.key_levels.resistance))

    return HigherTimeframeContext(
        summary=SUMMARY_SEPARATOR.join(summarize_analysis(a) for a in analyses),
        bias=primary_bias,
        support=tuple(support[:MAX_CONTEXT_LEVELS]),
        resistance=tuple(resistance[:MAX_CONTEXT_LEVELS]),
        all_aligned=all(is_aligned(a, primary_bias) for a in analyses),
        timeframe_count=len(analyses),
    )
