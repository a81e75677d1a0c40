"""Tests for configuration loading and validation."""

from __future__ import annotations

import pytest

from src.shell.config import Config, _validate_config, load_config


def test_config_loading_defaults_from_repo_settings():
    config = load_config()
    assert config.ai.provider in ("anthropic", "vertex")
    assert config.ai.daily_token_limit == 1500000
    assert config.cascade.risk_per_trade == 1.0
    assert config.cascade.temperature == 0.3
    assert config.cascade.include_position_size is False
    assert "JSON" in config.cascade.system_prompt


def test_config_loading_from_custom_dir(tmp_path, monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    (tmp_path / "settings.toml").write_text(
        '[general]\nlog_level = "DEBUG"\n'
        '[ai]\nmodel = "claude-opus-4-6"\nmax_tokens = 4096\n'
        '[cascade]\nrisk_per_trade = 2.0\ntrading_style = "scalping"\n'
    )
    config = load_config(tmp_path)
    assert config.log_level == "DEBUG"
    assert config.ai.model == "claude-opus-4-6"
    assert config.ai.max_tokens == 4096
    assert config.cascade.risk_per_trade == 2.0
    assert config.cascade.trading_style == "scalping"


def test_missing_settings_file_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    config = load_config(tmp_path)
    assert config.ai.model == Config().ai.model


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    config = load_config(tmp_path)
    assert config.ai.anthropic_api_key == "sk-test"
    assert config.log_level == "WARNING"


def test_validation_collects_every_error():
    config = Config()
    config.ai.provider = "openai"
    config.cascade.risk_per_trade = 0
    config.cascade.temperature = 1.5
    config.cascade.trading_style = "hodl"

    with pytest.raises(ValueError) as exc:
        _validate_config(config)
    message = str(exc.value)
    assert "ai.provider" in message
    assert "risk_per_trade" in message
    assert "temperature" in message
    assert "trading_style" in message


def test_vertex_requires_project_id():
    config = Config()
    config.ai.provider = "vertex"
    with pytest.raises(ValueError, match="project_id"):
        _validate_config(config)
    config.ai.vertex_project_id = "my-project"
    _validate_config(config)
