"""CodeFactory: hand a natural-language task to an AI coding agent running
in an isolated git worktree, and report back what it changed."""

from .agent import AgentPlatform, AgentRunner, GenerateResult, create_runner
from .config import Config, RunnerOptions, SessionConfig
from .session import WorktreeInfo, WorktreeManager, run_task

__version__ = "0.1.0"

__all__ = [
    "AgentPlatform",
    "AgentRunner",
    "GenerateResult",
    "create_runner",
    "Config",
    "RunnerOptions",
    "SessionConfig",
    "WorktreeInfo",
    "WorktreeManager",
    "run_task",
]
