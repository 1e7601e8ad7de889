"""File-change tracking for ``generate`` calls.

Three ways to learn what a run touched:

* :class:`ProtocolTracker` trusts the tool-use events the decoder already
  folded into the :class:`~codefactory.agent.stream.RunResult`.
* :class:`GitDiffTracker` snapshots the working tree before the run and
  diffs it afterwards, for platforms whose output carries no tool-use
  events. Concurrent writers to the same tree will show up in its result.
* :class:`FileWriter` records changes made by the caller's own writes.

All three report a path as either created or modified, never both.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from codefactory.agent.platforms import TrackingStrategy
from codefactory.agent.stream import RunResult
from codefactory.git import diff_working_tree, snapshot_modified_files, snapshot_untracked_files


@dataclass
class FileChanges:
    created: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)


def reconcile(created: Iterable[str], modified: Iterable[str]) -> FileChanges:
    """Deduplicate both lists and drop created paths from *modified*."""
    created_paths = list(dict.fromkeys(created))
    seen = set(created_paths)
    modified_paths = [path for path in dict.fromkeys(modified) if path not in seen]
    return FileChanges(created=created_paths, modified=modified_paths)


class ProtocolTracker:
    """Reads file changes straight from the decoded tool-use events."""

    strategy = TrackingStrategy.PROTOCOL

    async def begin(self) -> None:
        return None

    async def finish(self, run: RunResult) -> FileChanges:
        return reconcile(run.files_created, run.files_modified)


class GitDiffTracker:
    """Derives file changes from ``git`` snapshots taken around the run."""

    strategy = TrackingStrategy.GIT_DIFF

    def __init__(self, cwd: str | Path):
        self.cwd = Path(cwd)
        self._before_untracked: set[str] | None = None
        self._before_modified: set[str] = set()

    async def begin(self) -> None:
        self._before_untracked = await snapshot_untracked_files(self.cwd)
        self._before_modified = await snapshot_modified_files(self.cwd)

    async def finish(self, run: RunResult) -> FileChanges:
        if self._before_untracked is None:
            raise RuntimeError("GitDiffTracker.finish() called before begin()")
        created, modified = await diff_working_tree(
            self._before_untracked, self.cwd, self._before_modified
        )
        return reconcile(created, modified)


def create_tracker(
    strategy: TrackingStrategy, cwd: str | Path
) -> ProtocolTracker | GitDiffTracker:
    if strategy is TrackingStrategy.GIT_DIFF:
        return GitDiffTracker(cwd)
    return ProtocolTracker()


class FileWriter:
    """Writes files and remembers whether each one was new.

    A path first written while absent stays "created" even if it is written
    again later in the same session.
    """

    def __init__(self) -> None:
        self._created: dict[str, None] = {}
        self._modified: dict[str, None] = {}

    def write(self, path: str | Path, content: str) -> None:
        self._record(path, lambda target: target.write_text(content, encoding="utf-8"))

    def append(self, path: str | Path, content: str) -> None:
        def _append(target: Path) -> None:
            with target.open("a", encoding="utf-8") as handle:
                handle.write(content)

        self._record(path, _append)

    def _record(self, path: str | Path, do_write) -> None:
        target = Path(path)
        existed = target.exists()
        target.parent.mkdir(parents=True, exist_ok=True)
        do_write(target)

        key = str(path)
        if key in self._created:
            return
        if existed:
            self._modified.setdefault(key, None)
        else:
            self._created[key] = None
            self._modified.pop(key, None)

    @property
    def created(self) -> list[str]:
        return list(self._created)

    @property
    def modified(self) -> list[str]:
        return list(self._modified)

    def summary(self) -> FileChanges:
        return FileChanges(created=self.created, modified=self.modified)
