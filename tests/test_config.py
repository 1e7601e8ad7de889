"""Unit tests for Config and related Pydantic models (codefactory.config).

Tests cover:
- RunnerOptions and SessionConfig defaults and validation
- Config defaults and platform coercion
- Config.save / Config.load round trip and default_path
- Config.from_env
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from codefactory.agent.platforms import AgentPlatform
from codefactory.config import Config, RunnerOptions, SessionConfig


class TestRunnerOptions:
    @pytest.mark.unit
    def test_defaults(self):
        options = RunnerOptions()
        assert options.max_turns is None
        assert options.system_prompt is None
        assert options.working_directory is None

    @pytest.mark.unit
    def test_max_turns_must_be_positive(self):
        with pytest.raises(ValidationError):
            RunnerOptions(max_turns=0)

    @pytest.mark.unit
    def test_working_directory_coerced_to_path(self, tmp_path: Path):
        options = RunnerOptions(working_directory=str(tmp_path))
        assert options.working_directory == tmp_path


class TestSessionConfig:
    @pytest.mark.unit
    def test_defaults(self):
        session = SessionConfig()
        assert session.use_agent_naming is True
        assert session.naming_timeout == 30.0

    @pytest.mark.unit
    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            SessionConfig(naming_timeout=0)


class TestConfig:
    @pytest.mark.unit
    def test_defaults(self):
        config = Config()
        assert config.platform is AgentPlatform.CLAUDE
        assert isinstance(config.runner, RunnerOptions)
        assert isinstance(config.session, SessionConfig)

    @pytest.mark.unit
    def test_platform_from_string(self):
        assert Config(platform="codex").platform is AgentPlatform.CODEX

    @pytest.mark.unit
    def test_unknown_platform_rejected(self):
        with pytest.raises(ValidationError):
            Config(platform="copilot")

    @pytest.mark.unit
    def test_default_path(self, tmp_path: Path):
        assert Config.default_path(tmp_path) == tmp_path / ".codefactory" / "config.json"

    @pytest.mark.unit
    def test_save_and_load(self, tmp_path: Path):
        config = Config(
            platform=AgentPlatform.CODEX,
            runner=RunnerOptions(max_turns=12, system_prompt="Be brief."),
            session=SessionConfig(use_agent_naming=False),
        )
        path = config.save(Config.default_path(tmp_path))

        assert path.exists()
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["platform"] == "codex"

        loaded = Config.load(path)
        assert loaded == config


class TestConfigFromEnv:
    @pytest.mark.unit
    def test_empty_environment_gives_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = Config.from_env()
        assert config == Config()

    @pytest.mark.unit
    def test_reads_all_variables(self):
        env = {
            "CF_PLATFORM": "codex",
            "CF_MAX_TURNS": "7",
            "CF_SYSTEM_PROMPT": "Use TypeScript.",
            "CF_AGENT_NAMING": "false",
            "CF_NAMING_TIMEOUT": "5",
        }
        with patch.dict(os.environ, env, clear=True):
            config = Config.from_env()

        assert config.platform is AgentPlatform.CODEX
        assert config.runner.max_turns == 7
        assert config.runner.system_prompt == "Use TypeScript."
        assert config.session.use_agent_naming is False
        assert config.session.naming_timeout == 5.0

    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["1", "true", "yes", "on"])
    def test_agent_naming_truthy(self, value: str):
        with patch.dict(os.environ, {"CF_AGENT_NAMING": value}, clear=True):
            assert Config.from_env().session.use_agent_naming is True

    @pytest.mark.unit
    def test_invalid_platform_raises(self):
        with patch.dict(os.environ, {"CF_PLATFORM": "copilot"}, clear=True):
            with pytest.raises(ValueError):
                Config.from_env()
