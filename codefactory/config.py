"""CodeFactory configuration.

Typed settings for agent runners and task sessions. All settings use
Pydantic v2 models so they are validated at construction time and can be
serialised to/from JSON or read from environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from codefactory.agent.platforms import AgentPlatform

CONFIG_DIR = ".codefactory"
CONFIG_FILENAME = "config.json"


class RunnerOptions(BaseModel):
    """Settings fixed when an agent runner is constructed.

    Every call made through the runner reuses them; ``analyze`` and
    ``generate`` layer their own system-prompt fragments on top.
    """

    max_turns: int | None = Field(
        default=None, ge=1, description="Turn budget; None uses the per-operation default"
    )
    system_prompt: str | None = Field(default=None)
    working_directory: Path | None = Field(
        default=None, description="Directory the agent runs in; None means the current directory"
    )


class SessionConfig(BaseModel):
    """Tuning knobs for worktree sessions."""

    use_agent_naming: bool = Field(
        default=True, description="Ask the agent for a branch name before falling back to a slug"
    )
    naming_timeout: float = Field(
        default=30.0, gt=0, description="Hard limit in seconds for the branch-naming call"
    )


class Config(BaseModel):
    """Global CodeFactory configuration."""

    platform: AgentPlatform = Field(default=AgentPlatform.CLAUDE)
    runner: RunnerOptions = Field(default_factory=RunnerOptions)
    session: SessionConfig = Field(default_factory=SessionConfig)

    @staticmethod
    def default_path(repo_root: Path) -> Path:
        """Location of the config file inside a repository."""
        return Path(repo_root) / CONFIG_DIR / CONFIG_FILENAME

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file.

        Returns:
            The path where the file was written.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2) + "\n", encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            CF_PLATFORM, CF_MAX_TURNS, CF_SYSTEM_PROMPT,
            CF_AGENT_NAMING, CF_NAMING_TIMEOUT.
        """
        runner_kwargs: dict[str, Any] = {}
        if os.environ.get("CF_MAX_TURNS"):
            runner_kwargs["max_turns"] = int(os.environ["CF_MAX_TURNS"])
        if os.environ.get("CF_SYSTEM_PROMPT"):
            runner_kwargs["system_prompt"] = os.environ["CF_SYSTEM_PROMPT"]

        session_kwargs: dict[str, Any] = {}
        if os.environ.get("CF_AGENT_NAMING"):
            session_kwargs["use_agent_naming"] = (
                os.environ["CF_AGENT_NAMING"].strip().lower() not in ("0", "false", "no", "off")
            )
        if os.environ.get("CF_NAMING_TIMEOUT"):
            session_kwargs["naming_timeout"] = float(os.environ["CF_NAMING_TIMEOUT"])

        return cls(
            platform=AgentPlatform(os.environ.get("CF_PLATFORM", AgentPlatform.CLAUDE.value)),
            runner=RunnerOptions(**runner_kwargs),
            session=SessionConfig(**session_kwargs),
        )
