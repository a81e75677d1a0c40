"""Cascade engine — sequential, context-accumulating multi-timeframe analysis.

A run walks the timeframes coarsest to finest:

    seeded -> analyzing(0) -> parsed(0) -> ... -> analyzing(N-1) -> parsed(N-1) -> complete

Each step's prompt embeds the context built from every step before it, so the
steps cannot run in parallel. The only await per step is the reasoning-service
call. If that call fails, the run is aborted and the error propagates; a
partial cascade is never synthesized. Malformed model output is not a
failure: the parser substitutes a neutral analysis and the walk continues.

The engine holds no per-run state, so one instance can serve concurrent runs.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Mapping, Optional, Protocol, Sequence, Union

import structlog

from src.cascade.context import build_higher_timeframe_context, empty_context
from src.cascade.intervals import sequence_timeframes
from src.cascade.models import (
    CascadeOptions,
    CascadeResult,
    FixedRoleResult,
    HigherTimeframeContext,
    MissingTimeframeRoleError,
    ParseOutcome,
    TimeframeAnalysis,
    TimeframeInput,
    TimeframeRole,
)
from src.cascade.parser import decode_timeframe_response
from src.cascade.prompts import build_timeframe_prompt
from src.cascade.synthesis import synthesize_analyses
from src.shell.config import DEFAULT_SYSTEM_PROMPT, CascadeConfig
from src.utils.logging import cascade_log_context

log = structlog.get_logger()


class ReasoningService(Protocol):
    """Vision-capable model: chart reference + prompt in, free-form text out."""

    async def analyze_image(
        self,
        image: str,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str: ...


RoleKey = Union[str, TimeframeRole]


def options_from_config(config: CascadeConfig, **overrides) -> CascadeOptions:
    """CascadeOptions seeded from the [cascade] config section."""
    options = CascadeOptions(
        risk_per_trade=config.risk_per_trade,
        include_position_size=config.include_position_size,
        trading_style=config.trading_style or None,
        system_prompt=config.system_prompt,
        temperature=config.temperature,
    )
    return replace(options, **overrides) if overrides else options


class CascadeEngine:
    """Drives the cascade walk and hands the result to the synthesis engine."""

    def __init__(self, reasoning: ReasoningService) -> None:
        self._reasoning = reasoning

    async def analyze_timeframe(
        self,
        timeframe: TimeframeInput,
        position: int,
        total: int,
        context: HigherTimeframeContext,
        options: CascadeOptions,
    ) -> ParseOutcome:
        """One cascade step. Transport errors from the reasoning service propagate."""
        prompt = build_timeframe_prompt(
            symbol=options.symbol,
            interval=timeframe.interval,
            position=position,
            total=total,
            context=context,
            extra_instructions=options.extra_instructions,
            trading_style=options.trading_style,
        )
        response = await self._reasoning.analyze_image(
            timeframe.chart_reference,
            prompt,
            system_prompt=options.system_prompt or DEFAULT_SYSTEM_PROMPT,
            temperature=options.temperature,
        )
        return decode_timeframe_response(response, timeframe.interval, position)

    async def _walk(
        self, ordered: Sequence[TimeframeInput], options: CascadeOptions
    ) -> list[TimeframeAnalysis]:
        analyses: list[TimeframeAnalysis] = []
        context = empty_context()
        total = len(ordered)

        for position, timeframe in enumerate(ordered):
            log.info("cascade.step", position=position + 1, total=total, interval=timeframe.interval)
            try:
                outcome = await self.analyze_timeframe(timeframe, position, total, context, options)
            except BaseException as e:
                log.error("cascade.failed", position=position + 1, interval=timeframe.interval,
                          error=str(e) or type(e).__name__)
                raise

            analyses.append(outcome.analysis)
            log.info("cascade.step_complete", interval=timeframe.interval,
                     trend=outcome.analysis.trend.value, bias=outcome.analysis.bias.value,
                     defaulted=outcome.defaulted)
            context = build_higher_timeframe_context(analyses)

        return analyses

    async def run_cascade(
        self,
        timeframes: Sequence[TimeframeInput],
        options: Optional[CascadeOptions] = None,
    ) -> CascadeResult:
        """Analyze every timeframe coarsest to finest and synthesize a recommendation.

        Raises:
            InsufficientTimeframesError: fewer than two timeframes, before any call.
        """
        options = options or CascadeOptions()
        ordered = sequence_timeframes(timeframes)
        request_id = str(uuid.uuid4())
        started = time.monotonic()

        with cascade_log_context(request_id, options.symbol):
            log.info("cascade.started", timeframes=" -> ".join(t.interval for t in ordered))
            analyses = await self._walk(ordered, options)
            synthesis = synthesize_analyses(
                analyses,
                risk_per_trade=options.risk_per_trade,
                include_position_size=options.include_position_size,
            )
            log.info("cascade.complete", recommendation=synthesis.recommendation.value,
                     confidence=round(synthesis.confidence, 3), alignment=synthesis.alignment.value,
                     duration_ms=int((time.monotonic() - started) * 1000))

        return CascadeResult(
            request_id=request_id,
            symbol=options.symbol,
            analyses=tuple(analyses),
            synthesis=synthesis,
            analyzed_at=datetime.now(timezone.utc),
        )

    async def run_fixed_role_cascade(
        self,
        charts: Mapping[RoleKey, Union[TimeframeInput, str]],
        options: Optional[CascadeOptions] = None,
    ) -> FixedRoleResult:
        """Legacy three-role cascade: htf -> etf -> optional ltf.

        Roles map to positions 0/1/2 in role order and the walk is the same
        one run_cascade uses. `charts` values are TimeframeInput or, for
        convenience, "<interval>=<chart reference>" strings.

        Raises:
            MissingTimeframeRoleError: htf or etf absent, before any call.
        """
        options = options or CascadeOptions()
        by_role: dict[TimeframeRole, TimeframeInput] = {}
        for key, value in charts.items():
            if value is None:
                continue
            role = key if isinstance(key, TimeframeRole) else TimeframeRole(str(key).lower())
            by_role[role] = _as_input(value, role)

        for required in (TimeframeRole.HTF, TimeframeRole.ETF):
            if required not in by_role:
                raise MissingTimeframeRoleError(required)

        ordered = [by_role[r] for r in (TimeframeRole.HTF, TimeframeRole.ETF, TimeframeRole.LTF) if r in by_role]
        request_id = str(uuid.uuid4())

        with cascade_log_context(request_id, options.symbol):
            log.info("cascade.started", mode="fixed_role",
                     timeframes=" -> ".join(t.interval for t in ordered))
            analyses = await self._walk(ordered, options)
            synthesis = synthesize_analyses(
                analyses,
                risk_per_trade=options.risk_per_trade,
                include_position_size=options.include_position_size,
            )
            log.info("cascade.complete", recommendation=synthesis.recommendation.value,
                     confidence=round(synthesis.confidence, 3), alignment=synthesis.alignment.value)

        return FixedRoleResult(
            request_id=request_id,
            symbol=options.symbol,
            htf=analyses[0],
            etf=analyses[1],
            ltf=analyses[2] if len(analyses) > 2 else None,
            synthesis=synthesis,
            analyzed_at=datetime.now(timezone.utc),
        )


def _as_input(value: Union[TimeframeInput, str], role: TimeframeRole) -> TimeframeInput:
    if isinstance(value, TimeframeInput):
        return replace(value, role=role)
    interval, sep, reference = value.partition("=")
    if not sep or not interval or not reference:
        raise ValueError(f"{role.value} chart must be '<interval>=<chart reference>', got {value!r}")
    return TimeframeInput(chart_reference=reference, interval=interval, role=role)
