"""Configuration loading — merges settings.toml and .env."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"

DEFAULT_SYSTEM_PROMPT = "You are an expert technical analyst. Always respond with valid JSON only."
TRADING_STYLES = ("day_trading", "swing_trading", "scalping")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class AIConfig:
    provider: str = "anthropic"
    anthropic_api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 2048
    daily_token_limit: int = 1500000
    timeout_seconds: float = 120.0
    vertex_project_id: str = ""
    vertex_region: str = "us-east5"


@dataclass
class CascadeConfig:
    risk_per_trade: float = 1.0         # passed through to synthesis; bands are fixed at 1.5/1.0/0.5
    include_position_size: bool = False
    temperature: float = 0.3
    trading_style: str = ""
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


@dataclass
class Config:
    log_level: str = "INFO"
    ai: AIConfig = field(default_factory=AIConfig)
    cascade: CascadeConfig = field(default_factory=CascadeConfig)


def load_config(config_dir: Path | None = None) -> Config:
    """Load configuration from settings.toml and environment variables."""
    config_dir = config_dir or CONFIG_DIR
    load_dotenv(PROJECT_ROOT / ".env")

    config = Config()

    settings_path = config_dir / "settings.toml"
    if settings_path.exists():
        with open(settings_path, "rb") as f:
            settings = tomllib.load(f)

        general = settings.get("general", {})
        config.log_level = general.get("log_level", config.log_level)

        ai = settings.get("ai", {})
        config.ai.provider = ai.get("provider", config.ai.provider)
        config.ai.model = ai.get("model", config.ai.model)
        config.ai.max_tokens = ai.get("max_tokens", config.ai.max_tokens)
        config.ai.daily_token_limit = ai.get("daily_token_limit", config.ai.daily_token_limit)
        config.ai.timeout_seconds = ai.get("timeout_seconds", config.ai.timeout_seconds)

        vertex = ai.get("vertex", {})
        config.ai.vertex_project_id = vertex.get("project_id", config.ai.vertex_project_id)
        config.ai.vertex_region = vertex.get("region", config.ai.vertex_region)

        cascade = settings.get("cascade", {})
        config.cascade.risk_per_trade = cascade.get("risk_per_trade", config.cascade.risk_per_trade)
        config.cascade.include_position_size = cascade.get(
            "include_position_size", config.cascade.include_position_size
        )
        config.cascade.temperature = cascade.get("temperature", config.cascade.temperature)
        config.cascade.trading_style = cascade.get("trading_style", config.cascade.trading_style)
        config.cascade.system_prompt = cascade.get("system_prompt", config.cascade.system_prompt)

    # Environment variables (secrets + overrides)
    config.ai.anthropic_api_key = os.getenv("ANTHROPIC_API_KEY", "")
    config.log_level = os.getenv("LOG_LEVEL", config.log_level)

    _validate_config(config)

    return config


def _validate_config(config: Config) -> None:
    """Validate config values are within sane ranges."""
    errors = []

    if config.ai.provider not in ("anthropic", "vertex"):
        errors.append(f"ai.provider must be 'anthropic' or 'vertex', got '{config.ai.provider}'")
    if config.ai.provider == "vertex" and not config.ai.vertex_project_id:
        errors.append("ai.vertex.project_id is required when provider is 'vertex'")
    if not config.ai.model:
        errors.append("ai.model must be set")
    if config.ai.max_tokens < 1:
        errors.append(f"ai.max_tokens must be >= 1, got {config.ai.max_tokens}")
    if config.ai.daily_token_limit < 1:
        errors.append(f"ai.daily_token_limit must be >= 1, got {config.ai.daily_token_limit}")
    if config.ai.timeout_seconds <= 0:
        errors.append(f"ai.timeout_seconds must be > 0, got {config.ai.timeout_seconds}")
    if not (0 < config.cascade.risk_per_trade <= 5):
        errors.append(f"cascade.risk_per_trade must be 0-5, got {config.cascade.risk_per_trade}")
    if not (0 <= config.cascade.temperature <= 1):
        errors.append(f"cascade.temperature must be 0-1, got {config.cascade.temperature}")
    if config.cascade.trading_style and config.cascade.trading_style not in TRADING_STYLES:
        errors.append(
            f"cascade.trading_style must be one of {', '.join(TRADING_STYLES)}, "
            f"got '{config.cascade.trading_style}'"
        )
    if config.log_level.upper() not in LOG_LEVELS:
        errors.append(f"Invalid log_level: '{config.log_level}'")

    if errors:
        raise ValueError("Config validation failed:\n  " + "\n  ".join(errors))
