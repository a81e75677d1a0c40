"""Prompt construction for one cascade step."""

from __future__ import annotations

from typing import Optional

from src.cascade.models import Bias, HigherTimeframeContext

TRADING_STYLE_LABELS = {
    "day_trading": "day trading (intraday holds, closed before session end)",
    "swing_trading": "swing trading (holds of several days to weeks)",
    "scalping": "scalping (very short holds, tight stops)",
}

HIGHEST_TASK = """Your task (HIGHEST TIMEFRAME - Position {pos}/{total}):
1. **Trend Direction**: Is the market bullish, bearish, or neutral/ranging?
2. **Trend Strength**: Is the trend strong, moderate, or weak?
3. **Key Levels**: Identify major support and resistance levels (specific prices)
4. **Trade Bias**: Based on trend, should we look for LONG, SHORT, or NEUTRAL?
5. **Signals**: What technical signals are present? (e.g., "RSI overbought", "MACD bullish cross")"""

MIDDLE_TASK = """Your task (MIDDLE TIMEFRAME - Position {pos}/{total}):
1. **Alignment Check**: Does this timeframe confirm the higher timeframe bias?
2. **Trend Confirmation**: Is the trend direction consistent?
3. **Entry Zone Refinement**: Narrow down the entry zone from higher TF context
4. **Signals**: What confirming or conflicting signals are present?
5. **Key Levels**: Identify support/resistance relevant to this timeframe"""

LOWEST_TASK = """Your task (LOWEST TIMEFRAME - Position {pos}/{total}):
1. **Alignment Check**: Does this timeframe confirm the higher timeframe bias?
2. **Precise Entry Zone**: Identify the optimal entry price range
3. **Signals**: What entry triggers are present?
4. **Entry Refinement**: For the {bias} setup, find the precise entry level
5. **Stop Loss & Take Profit**: Identify the levels a stop and targets should sit behind"""


def _levels(levels) -> str:
    return ", ".join(f"{level:.10g}" for level in levels) or "None identified"


def context_section(context: HigherTimeframeContext) -> str:
    if context.bias != Bias.NEUTRAL:
        directive = f"Only look for {context.bias.value} setups aligned with higher timeframes."
    else:
        directive = "Higher timeframes show no clear bias - be cautious."
    return (
        f"**Higher Timeframe Context ({context.timeframe_count} timeframes analyzed):**\n"
        f"- Overall Bias: {context.bias.value}\n"
        f"- Summary: {context.summary}\n"
        f"- Key Support Levels: {_levels(context.support)}\n"
        f"- Key Resistance Levels: {_levels(context.resistance)}\n"
        f"- All Higher TFs Aligned: {'YES' if context.all_aligned else 'NO'}\n"
        f"\nCRITICAL: {directive}"
    )


def response_schema(include_entry_zone: bool) -> str:
    entry_zone = '\n  "entryZone": { "low": price, "high": price },' if include_entry_zone else ""
    return (
        "{\n"
        '  "trend": "bullish" | "bearish" | "neutral",\n'
        '  "trendStrength": "strong" | "moderate" | "weak",\n'
        '  "support": [price1, price2],\n'
        '  "resistance": [price1, price2],\n'
        '  "signals": ["signal1", "signal2"],\n'
        '  "alignsWithHigherTF": true | false,\n'
        '  "bias": "LONG" | "SHORT" | "NEUTRAL",'
        f"{entry_zone}\n"
        '  "reasoning": "Brief explanation of your analysis"\n'
        "}"
    )


def build_timeframe_prompt(
    symbol: str,
    interval: str,
    position: int,
    total: int,
    context: Optional[HigherTimeframeContext],
    extra_instructions: Optional[str] = None,
    trading_style: Optional[str] = None,
) -> str:
    """Prompt for timeframe `position` of `total`.

    Position 0 is analyzed unconstrained. Every later position gets the
    accumulated context and is told to prefer setups in its bias.
    """
    is_highest = position == 0
    is_lowest = position == total - 1

    if is_highest:
        task = HIGHEST_TASK.format(pos=position + 1, total=total)
    elif is_lowest:
        bias = context.bias.value if context else "the"
        task = LOWEST_TASK.format(pos=position + 1, total=total, bias=bias)
    else:
        task = MIDDLE_TASK.format(pos=position + 1, total=total)

    sections = [
        f"You are an expert technical analyst analyzing a {symbol} chart on the {interval} timeframe.\n"
        f"This is timeframe {position + 1} of {total} in a cascade analysis."
    ]
    if trading_style:
        label = TRADING_STYLE_LABELS.get(trading_style, trading_style)
        sections.append(f"Trading style: {label}.")
    if not is_highest and context is not None and context.timeframe_count > 0:
        sections.append(context_section(context))
    sections.append(task)
    if extra_instructions:
        sections.append(f"Trading Rules to follow:\n{extra_instructions}")
    sections.append(
        "IMPORTANT: Respond ONLY with valid JSON in this exact format:\n"
        + response_schema(include_entry_zone=not is_highest)
    )
    return "\n\n".join(sections)
