"""End-to-end task runs.

:func:`run_task` is the whole flow in one call: check the repository and
the platform, open an isolated worktree session, let the agent work inside
it, and report what changed. The worktree is left in place for the caller
to inspect, open a PR from, or remove.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from codefactory.agent.platforms import get_platform, validate_platform_cli
from codefactory.agent.runner import AgentRunner
from codefactory.config import Config, RunnerOptions
from codefactory.git import has_uncommitted_changes
from codefactory.session.worktree import Commit, WorktreeInfo, WorktreeManager

console = Console()


@dataclass
class TaskReport:
    """What one task run produced."""

    worktree: WorktreeInfo
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    commits: list[Commit] = field(default_factory=list)
    changed_files: list[str] = field(default_factory=list)


async def run_task(
    task: str,
    config: Config | None = None,
    cwd: str | Path | None = None,
    system_prompt_append: str | None = None,
) -> TaskReport:
    """Run *task* with the configured agent inside a fresh worktree.

    Raises:
        NotAGitRepoError: If *cwd* is not inside a git repository.
        PlatformCLINotFoundError: If the platform's CLI is not installed.
        PlatformUnavailableError: If the platform's protocol is unsupported.
        ValueError: If *task* is blank.
        WorktreeNameInUseError / WorktreeError: If the session cannot be created.
        AgentRunnerError: If the agent run itself fails.
    """
    config = config or Config()

    # Preflight: nothing is spawned or created until all of these pass.
    manager = await WorktreeManager.discover(cwd)
    spec = get_platform(config.platform)
    validate_platform_cli(spec.platform)
    spec.require_verified()
    if not task.strip():
        raise ValueError("No task provided.")

    if await has_uncommitted_changes(manager.repo_root):
        console.print(
            "[bold yellow]You have uncommitted changes; they will not be "
            "part of the new worktree.[/bold yellow]"
        )

    naming_runner = None
    if config.session.use_agent_naming:
        naming_runner = AgentRunner(
            spec.platform,
            RunnerOptions(working_directory=manager.repo_root),
            echo=False,
        )
    info = await manager.open_session(
        task, runner=naming_runner, naming_timeout=config.session.naming_timeout
    )

    runner = AgentRunner(
        spec.platform,
        config.runner.model_copy(update={"working_directory": info.path}),
    )
    result = await runner.generate(task, system_prompt_append)

    report = TaskReport(
        worktree=info,
        files_created=result.files_created,
        files_modified=result.files_modified,
        commits=await manager.commits_since(info),
        changed_files=await manager.changed_files_since(info),
    )
    _display_report(report)
    return report


def _display_report(report: TaskReport) -> None:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("Worktree", str(report.worktree.path))
    table.add_row("Branch", report.worktree.branch_name)
    table.add_row("Files Created", str(len(report.files_created)))
    table.add_row("Files Modified", str(len(report.files_modified)))
    table.add_row("Commits", str(len(report.commits)))

    console.print(Panel(table, title="Task Complete", border_style="green"))
    console.print("[dim]When done, clean up with:[/dim]")
    console.print(f'[dim]  git worktree remove "{report.worktree.path}"[/dim]')
    console.print(f"[dim]  git branch -D {report.worktree.branch_name}[/dim]")
