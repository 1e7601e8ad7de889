"""Async git helpers shared by the agent and session layers.

Every git invocation goes through :func:`run_git`, which raises
:class:`GitError` with the command line and stderr attached whenever git
exits non-zero. The query helpers below decide for themselves whether a
failure is an error or simply a negative answer.
"""

from __future__ import annotations

import asyncio
from pathlib import Path


class GitError(Exception):
    """Raised when a git command fails."""

    def __init__(self, message: str, command: str = "", stderr: str = ""):
        self.command = command
        self.stderr = stderr
        super().__init__(message)


class NotAGitRepoError(GitError):
    """Raised when an operation requires a git repository and none is found."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path is not None else Path.cwd()
        super().__init__(
            f"Not a git repository: {self.path}. "
            "Run this command from inside a git working tree."
        )


async def run_git(
    *args: str,
    cwd: str | Path | None = None,
    timeout: float = 60.0,
) -> tuple[str, str]:
    """Run a git command asynchronously and return (stdout, stderr).

    Both streams are decoded as UTF-8 and stripped.

    Raises:
        GitError: If git cannot be started, times out, or exits non-zero.
    """
    cmd = ["git", *args]
    cmd_str = " ".join(cmd)

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
        )
    except OSError as exc:
        raise GitError(f"Could not run git: {exc}", command=cmd_str) from exc

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise GitError(
            f"Git command timed out after {timeout}s: {cmd_str}",
            command=cmd_str,
        )

    stdout = stdout_bytes.decode("utf-8", errors="replace").strip()
    stderr = stderr_bytes.decode("utf-8", errors="replace").strip()

    if process.returncode != 0:
        raise GitError(
            f"Git command failed (exit {process.returncode}): {cmd_str}\n{stderr}",
            command=cmd_str,
            stderr=stderr,
        )

    return stdout, stderr


def _lines(output: str) -> list[str]:
    return [line for line in output.split("\n") if line.strip()]


# ---------------------------------------------------------------------------
# Repository queries
# ---------------------------------------------------------------------------


async def is_git_repo(cwd: str | Path | None = None) -> bool:
    """Return ``True`` if *cwd* lies inside a git working tree."""
    try:
        stdout, _ = await run_git("rev-parse", "--is-inside-work-tree", cwd=cwd)
    except GitError:
        return False
    return stdout == "true"


async def get_repo_root(cwd: str | Path | None = None) -> Path:
    """Return the top-level directory of the repository containing *cwd*.

    Raises:
        NotAGitRepoError: If *cwd* is not inside a git working tree.
    """
    if not await is_git_repo(cwd):
        raise NotAGitRepoError(cwd)
    stdout, _ = await run_git("rev-parse", "--show-toplevel", cwd=cwd)
    return Path(stdout).resolve()


async def get_head_sha(cwd: str | Path | None = None) -> str:
    stdout, _ = await run_git("rev-parse", "HEAD", cwd=cwd)
    return stdout


async def get_current_branch(cwd: str | Path | None = None) -> str:
    stdout, _ = await run_git("rev-parse", "--abbrev-ref", "HEAD", cwd=cwd)
    return stdout


async def has_uncommitted_changes(cwd: str | Path | None = None) -> bool:
    stdout, _ = await run_git("status", "--porcelain", cwd=cwd)
    return bool(stdout)


async def branch_exists(branch_name: str, cwd: str | Path | None = None) -> bool:
    """Return ``True`` if a local branch named *branch_name* exists."""
    try:
        await run_git(
            "rev-parse", "--verify", "--quiet", f"refs/heads/{branch_name}",
            cwd=cwd,
        )
    except GitError:
        return False
    return True


async def list_worktree_paths(cwd: str | Path | None = None) -> list[Path]:
    """Return the path of every worktree registered with the repository.

    Parses ``git worktree list --porcelain``; the main working tree is
    included as the first entry.
    """
    stdout, _ = await run_git("worktree", "list", "--porcelain", cwd=cwd)
    return [
        Path(line[len("worktree "):])
        for line in stdout.split("\n")
        if line.startswith("worktree ")
    ]


# ---------------------------------------------------------------------------
# Working-tree snapshots (diff-derived change tracking)
# ---------------------------------------------------------------------------


async def snapshot_untracked_files(cwd: str | Path) -> set[str]:
    """Return the untracked, non-ignored files in the working tree."""
    stdout, _ = await run_git("ls-files", "--others", "--exclude-standard", cwd=cwd)
    return set(_lines(stdout))


async def snapshot_modified_files(cwd: str | Path) -> set[str]:
    """Return tracked files that differ from HEAD (staged or unstaged).

    A repository without any commit has no HEAD and therefore nothing
    modified, so that case yields an empty set instead of an error.
    """
    try:
        stdout, _ = await run_git("diff", "HEAD", "--name-only", cwd=cwd)
    except GitError:
        return set()
    return set(_lines(stdout))


async def diff_working_tree(
    before_untracked: set[str],
    cwd: str | Path,
    before_modified: set[str] | None = None,
) -> tuple[list[str], list[str]]:
    """Compare the working tree with a pre-run snapshot.

    Args:
        before_untracked: Result of :func:`snapshot_untracked_files` taken
            before the run.
        cwd: Working tree to inspect.
        before_modified: Optional result of :func:`snapshot_modified_files`
            taken before the run. Paths already differing then are not
            reported again.

    Returns:
        A ``(created, modified)`` pair of sorted path lists. A path never
        appears in both.
    """
    after_untracked = await snapshot_untracked_files(cwd)
    after_modified = await snapshot_modified_files(cwd)

    created = sorted(after_untracked - before_untracked)
    # Only paths that were tracked before the run count as modified.
    already = set(created) | before_untracked | (before_modified or set())
    modified = sorted(path for path in after_modified if path not in already)
    return created, modified
