"""CodeFactory session layer.

Isolated git worktree sessions for agent tasks.

Key classes:
    WorktreeManager - worktree create / remove and "what changed" queries
    run_task        - preflight, open a session, run the agent, report
"""

from .branch import generate_branch_name, slugify_task
from .task import TaskReport, run_task
from .worktree import (
    Commit,
    WorktreeError,
    WorktreeInfo,
    WorktreeManager,
    WorktreeNameInUseError,
    create_session,
)

__all__ = [
    "WorktreeManager",
    "WorktreeInfo",
    "WorktreeError",
    "WorktreeNameInUseError",
    "Commit",
    "create_session",
    "generate_branch_name",
    "slugify_task",
    "run_task",
    "TaskReport",
]
