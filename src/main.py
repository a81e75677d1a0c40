"""Chart Cascade — command-line entry point.

Wires config, logging and the vision client, runs one cascade over the given
charts and prints the result as JSON.

    python -m src.main --symbol BTCUSDT 1D=https://.../daily.png 4h=./4h.png 15m=./15m.png
    python -m src.main --fixed-roles htf=1D=./d.png etf=4h=./4h.png
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Sequence

import structlog

from src.cascade.engine import CascadeEngine, options_from_config
from src.cascade.models import CascadeResult, FixedRoleResult, TimeframeInput
from src.orchestrator.ai_client import VisionClient
from src.shell.config import TRADING_STYLES, load_config
from src.utils.logging import setup_logging

log = structlog.get_logger()

EXIT_INPUT_ERROR = 2
EXIT_SERVICE_ERROR = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chart-cascade",
        description="Multi-timeframe chart cascade analysis",
    )
    parser.add_argument("charts", nargs="+",
                        help="<interval>=<chart reference>, or <role>=<interval>=<reference> with --fixed-roles")
    parser.add_argument("--symbol", default="the instrument")
    parser.add_argument("--risk-per-trade", type=float, default=None)
    parser.add_argument("--position-size", action="store_true", help="Report entry-to-stop distance")
    parser.add_argument("--rules", default=None, help="Extra trading rules appended to every prompt")
    parser.add_argument("--style", choices=TRADING_STYLES, default=None)
    parser.add_argument("--fixed-roles", action="store_true", help="Legacy htf/etf/ltf cascade")
    return parser


def parse_chart_args(charts: Sequence[str]) -> list[TimeframeInput]:
    inputs = []
    for arg in charts:
        interval, sep, reference = arg.partition("=")
        if not sep or not interval or not reference:
            raise ValueError(f"Chart must be '<interval>=<chart reference>', got {arg!r}")
        inputs.append(TimeframeInput(chart_reference=reference, interval=interval))
    return inputs


def parse_role_args(charts: Sequence[str]) -> dict[str, str]:
    roles = {}
    for arg in charts:
        role, sep, rest = arg.partition("=")
        if not sep:
            raise ValueError(f"Fixed-role chart must be '<role>=<interval>=<reference>', got {arg!r}")
        roles[role.lower()] = rest
    return roles


async def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    config = load_config()
    setup_logging(config.log_level)

    overrides = {"symbol": args.symbol, "extra_instructions": args.rules}
    if args.risk_per_trade is not None:
        overrides["risk_per_trade"] = args.risk_per_trade
    if args.position_size:
        overrides["include_position_size"] = True
    if args.style:
        overrides["trading_style"] = args.style
    options = options_from_config(config.cascade, **overrides)

    client = VisionClient(config.ai)
    await client.initialize()
    engine = CascadeEngine(client)

    try:
        result: CascadeResult | FixedRoleResult
        if args.fixed_roles:
            result = await engine.run_fixed_role_cascade(parse_role_args(args.charts), options)
        else:
            result = await engine.run_cascade(parse_chart_args(args.charts), options)
    except ValueError as e:
        # Validation failures: too few timeframes, missing role, bad chart argument
        log.error("cli.invalid_input", error=str(e))
        return EXIT_INPUT_ERROR
    except Exception as e:
        log.error("cli.reasoning_service_failed", error=str(e), error_type=type(e).__name__)
        return EXIT_SERVICE_ERROR
    finally:
        await client.close()
        log.info("cli.token_usage", **client.get_daily_usage())

    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0


def run() -> None:
    """Entry point for pyproject.toml script."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
