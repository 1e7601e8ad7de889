"""Git worktree sessions for isolated agent runs.

Each task gets its own worktree on a fresh branch, created as a sibling of
the repository::

    <parent>/<repo>/                       the caller's checkout
    <parent>/<repo>-worktrees/<branch>/    one directory per session

The manager never removes a worktree on its own; :meth:`WorktreeManager.remove`
is always the caller's decision.
"""

from __future__ import annotations

import asyncio
import weakref
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console
from rich.panel import Panel

from codefactory.agent.runner import AgentRunner
from codefactory.git import (
    GitError,
    branch_exists,
    get_head_sha,
    get_repo_root,
    list_worktree_paths,
    run_git,
)
from codefactory.session.branch import BRANCH_NAMING_TIMEOUT, generate_branch_name

console = Console()

# One lock per repository root and event loop; held across reserve + create.
# Entries go away with their loop.
_repo_locks: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[Path, asyncio.Lock]] = (
    weakref.WeakKeyDictionary()
)


def _repo_lock(repo_root: Path) -> asyncio.Lock:
    locks = _repo_locks.setdefault(asyncio.get_running_loop(), {})
    lock = locks.get(repo_root)
    if lock is None:
        lock = locks[repo_root] = asyncio.Lock()
    return lock


@dataclass(frozen=True)
class WorktreeInfo:
    """An active task session."""

    path: Path
    branch_name: str
    starting_sha: str


@dataclass(frozen=True)
class Commit:
    sha: str
    message: str


class WorktreeError(GitError):
    """Raised when a worktree cannot be created or removed."""


class WorktreeNameInUseError(WorktreeError):
    """Raised when the branch or worktree path for a session is already taken."""

    def __init__(self, message: str, branch_name: str, path: Path):
        self.branch_name = branch_name
        self.path = path
        super().__init__(message)


def worktree_path_for(repo_root: Path, branch_name: str) -> Path:
    """Compute ``<repo-parent>/<repo-name>-worktrees/<branch-name>``."""
    root = Path(repo_root)
    return root.parent / f"{root.name}-worktrees" / branch_name


class WorktreeManager:
    """Creates and removes per-task worktrees for one repository."""

    def __init__(self, repo_root: str | Path):
        self.repo_root = Path(repo_root).resolve()
        self.worktrees_dir = self.repo_root.parent / f"{self.repo_root.name}-worktrees"

    @classmethod
    async def discover(cls, cwd: str | Path | None = None) -> "WorktreeManager":
        """Build a manager for the repository containing *cwd*.

        Raises:
            NotAGitRepoError: If *cwd* is not inside a git working tree.
        """
        return cls(await get_repo_root(cwd))

    async def open_session(
        self,
        task: str,
        runner: AgentRunner | None = None,
        naming_timeout: float = BRANCH_NAMING_TIMEOUT,
    ) -> WorktreeInfo:
        """Name a branch for *task* and create its worktree."""
        branch_name = await generate_branch_name(task, runner=runner, timeout=naming_timeout)
        console.print(f"[cyan]Branch:[/cyan] [bold]{branch_name}[/bold]")
        return await self.create(branch_name)

    async def create(self, branch_name: str) -> WorktreeInfo:
        """Create a worktree at the computed path on a new branch.

        Raises:
            WorktreeNameInUseError: If the branch exists or the path is already
                a registered worktree. Nothing is changed in that case.
            WorktreeError: If ``git worktree add`` fails.
        """
        worktree_path = worktree_path_for(self.repo_root, branch_name)

        async with _repo_lock(self.repo_root):
            await self._reserve(branch_name, worktree_path)
            starting_sha = await get_head_sha(self.repo_root)

            console.print(
                f"[cyan]Creating worktree[/cyan] [bold]{branch_name}[/bold] "
                f"at {worktree_path}..."
            )
            try:
                await run_git(
                    "worktree", "add", "-b", branch_name, str(worktree_path),
                    cwd=self.repo_root,
                )
            except GitError as exc:
                raise WorktreeError(
                    f"Failed to create worktree {worktree_path} on branch "
                    f"{branch_name}: {exc.stderr or exc}",
                    command=exc.command,
                    stderr=exc.stderr,
                ) from exc

        info = WorktreeInfo(
            path=worktree_path,
            branch_name=branch_name,
            starting_sha=starting_sha,
        )
        console.print(
            Panel(
                f"[green]Worktree created[/green]\n"
                f"  Path:   {info.path}\n"
                f"  Branch: {info.branch_name}\n"
                f"  Base:   {info.starting_sha[:12]}",
                title="Worktree Ready",
                border_style="green",
            )
        )
        return info

    async def _reserve(self, branch_name: str, worktree_path: Path) -> None:
        if await branch_exists(branch_name, cwd=self.repo_root):
            raise WorktreeNameInUseError(
                f'Branch "{branch_name}" already exists. Choose a different task '
                f"description or remove the existing branch.",
                branch_name=branch_name,
                path=worktree_path,
            )

        try:
            registered = await list_worktree_paths(self.repo_root)
        except GitError:
            registered = []
        target = worktree_path.resolve()
        if any(path.resolve() == target for path in registered):
            raise WorktreeNameInUseError(
                f"Worktree path already in use: {worktree_path}\n"
                f'Remove it first: git worktree remove "{worktree_path}"',
                branch_name=branch_name,
                path=worktree_path,
            )

    async def remove(self, info: WorktreeInfo) -> None:
        """Force-remove a session's worktree, then delete its branch.

        Branch deletion is best effort: a branch that is already gone only
        produces a warning.

        Raises:
            WorktreeError: If the worktree itself cannot be removed.
        """
        console.print(f"[yellow]Removing worktree[/yellow] [bold]{info.path}[/bold]...")
        try:
            await run_git(
                "worktree", "remove", "--force", str(info.path),
                cwd=self.repo_root,
            )
        except GitError as exc:
            raise WorktreeError(
                f"Failed to remove worktree {info.path}: {exc.stderr or exc}",
                command=exc.command,
                stderr=exc.stderr,
            ) from exc

        try:
            await run_git("branch", "-D", info.branch_name, cwd=self.repo_root)
        except GitError as exc:
            console.print(
                f"[yellow]Warning: Could not delete branch {info.branch_name}: "
                f"{exc.stderr}[/yellow]"
            )

        console.print(f"[green]Removed worktree:[/green] {info.branch_name}")

    async def list_worktrees(self) -> list[Path]:
        """Registered worktrees that live under this repository's worktrees dir."""
        try:
            paths = await list_worktree_paths(self.repo_root)
        except GitError:
            return []
        base = self.worktrees_dir.resolve()
        return [path for path in paths if path.resolve().is_relative_to(base)]

    async def commits_since(self, info: WorktreeInfo) -> list[Commit]:
        """Commits on the session branch since it was created (newest first).

        Returns an empty list if git fails.
        """
        try:
            stdout, _ = await run_git(
                "log", "--oneline", f"{info.starting_sha}..HEAD", cwd=info.path
            )
        except GitError:
            return []

        commits: list[Commit] = []
        for line in stdout.split("\n"):
            if not line.strip():
                continue
            sha, _, message = line.partition(" ")
            commits.append(Commit(sha=sha, message=message))
        return commits

    async def changed_files_since(self, info: WorktreeInfo) -> list[str]:
        """Files changed by commits since the session started.

        Returns an empty list if git fails.
        """
        try:
            stdout, _ = await run_git(
                "diff", "--name-only", f"{info.starting_sha}..HEAD", cwd=info.path
            )
        except GitError:
            return []
        return [line for line in stdout.split("\n") if line.strip()]


async def create_session(
    task: str,
    cwd: str | Path | None = None,
    runner: AgentRunner | None = None,
    naming_timeout: float = BRANCH_NAMING_TIMEOUT,
) -> tuple[WorktreeManager, WorktreeInfo]:
    """Validate *cwd*, then name and create a worktree for *task*."""
    manager = await WorktreeManager.discover(cwd)
    info = await manager.open_session(task, runner=runner, naming_timeout=naming_timeout)
    return manager, info
