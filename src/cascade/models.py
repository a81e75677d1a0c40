"""Cascade data model — inputs, per-timeframe findings, context and synthesis.

Everything produced by the engine is a frozen dataclass. A cascade run builds
these values one step at a time and never mutates them after creation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


# --- Enums ---

class Trend(Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class TrendStrength(Enum):
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"


class Bias(Enum):
    LONG = "LONG"
    SHORT = "SHORT"
    NEUTRAL = "NEUTRAL"


class Alignment(Enum):
    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


class TimeframeRole(Enum):
    """Legacy fixed roles: higher, execution and lower timeframe."""
    HTF = "htf"
    ETF = "etf"
    LTF = "ltf"


# --- Errors ---

class CascadeError(Exception):
    """Base class for cascade engine errors."""


class InsufficientTimeframesError(CascadeError, ValueError):
    """Fewer than two timeframes were supplied."""

    def __init__(self, count: int) -> None:
        super().__init__(f"Cascade analysis needs at least 2 timeframes, got {count}")
        self.count = count


class MissingTimeframeRoleError(CascadeError, ValueError):
    """A mandatory fixed role (htf or etf) is absent."""

    def __init__(self, role: TimeframeRole) -> None:
        super().__init__(f"{role.value.upper()} chart is required for multi-timeframe analysis")
        self.role = role


class ReasoningServiceError(CascadeError):
    """The reasoning service answered without any usable text."""


# --- Input Types ---

@dataclass(frozen=True)
class TimeframeInput:
    chart_reference: str              # URL, base64/data URI, or local file path
    interval: str                     # "1D", "4h", "15m", ...
    role: Optional[TimeframeRole] = None


@dataclass(frozen=True)
class CascadeOptions:
    symbol: str = "the instrument"
    risk_per_trade: float = 1.0
    include_position_size: bool = False
    extra_instructions: Optional[str] = None   # user trading rules
    trading_style: Optional[str] = None
    system_prompt: Optional[str] = None
    temperature: float = 0.3


# --- Per-timeframe findings ---

@dataclass(frozen=True)
class KeyLevels:
    support: tuple[float, ...] = ()
    resistance: tuple[float, ...] = ()


@dataclass(frozen=True)
class EntryZone:
    low: float
    high: float


@dataclass(frozen=True)
class TimeframeAnalysis:
    interval: str
    position: int                     # 0 = coarsest, analyzed first
    trend: Trend
    trend_strength: TrendStrength
    key_levels: KeyLevels
    signals: tuple[str, ...]
    aligns_with_higher_tf: bool
    bias: Bias
    reasoning: str
    entry_zone: Optional[EntryZone] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "interval": self.interval,
            "position": self.position,
            "trend": self.trend.value,
            "trendStrength": self.trend_strength.value,
            "keyLevels": {
                "support": list(self.key_levels.support),
                "resistance": list(self.key_levels.resistance),
            },
            "signals": list(self.signals),
            "alignsWithHigherTF": self.aligns_with_higher_tf,
            "bias": self.bias.value,
            "reasoning": self.reasoning,
        }
        if self.entry_zone is not None:
            data["entryZone"] = {"low": self.entry_zone.low, "high": self.entry_zone.high}
        return data


@dataclass(frozen=True)
class HigherTimeframeContext:
    summary: str
    bias: Bias
    support: tuple[float, ...]
    resistance: tuple[float, ...]
    all_aligned: bool
    timeframe_count: int


# --- Output Types ---

@dataclass(frozen=True)
class TradePlan:
    entry: float
    stop_loss: float
    take_profit: tuple[float, ...]
    risk_percentage: float
    position_size: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "entry": self.entry,
            "stopLoss": self.stop_loss,
            "takeProfit": list(self.take_profit),
            "riskPercentage": self.risk_percentage,
        }
        if self.position_size is not None:
            data["positionSize"] = self.position_size
        return data


@dataclass(frozen=True)
class MultiTimeframeSynthesis:
    recommendation: Bias
    confidence: float                 # 0-1
    alignment: Alignment
    reasoning: str
    trade_plan: Optional[TradePlan] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "recommendation": self.recommendation.value,
            "confidence": self.confidence,
            "alignment": self.alignment.value,
            "reasoning": self.reasoning,
        }
        if self.trade_plan is not None:
            data["tradePlan"] = self.trade_plan.to_dict()
        return data


@dataclass(frozen=True)
class CascadeResult:
    request_id: str
    symbol: str
    analyses: tuple[TimeframeAnalysis, ...]
    synthesis: MultiTimeframeSynthesis
    analyzed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "requestId": self.request_id,
            "symbol": self.symbol,
            "analyses": [a.to_dict() for a in self.analyses],
            "synthesis": self.synthesis.to_dict(),
            "analyzedAt": self.analyzed_at.isoformat(),
        }


@dataclass(frozen=True)
class FixedRoleResult:
    request_id: str
    symbol: str
    htf: TimeframeAnalysis
    etf: TimeframeAnalysis
    synthesis: MultiTimeframeSynthesis
    analyzed_at: datetime
    ltf: Optional[TimeframeAnalysis] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "requestId": self.request_id,
            "symbol": self.symbol,
            "htf": self.htf.to_dict(),
            "etf": self.etf.to_dict(),
            "synthesis": self.synthesis.to_dict(),
            "analyzedAt": self.analyzed_at.isoformat(),
        }
        if self.ltf is not None:
            data["ltf"] = self.ltf.to_dict()
        return data


@dataclass(frozen=True)
class ParseOutcome:
    """Tagged decode result: `defaulted` is True when the neutral fallback was used."""
    analysis: TimeframeAnalysis
    defaulted: bool = False
    reason: Optional[str] = None
    raw: str = field(default="", repr=False)
