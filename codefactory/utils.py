"""Shared path and display helpers for CodeFactory.

Provides existence checks, optional file reads, directory walking and a
handful of formatting helpers used by the agent and session layers.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

DEFAULT_TREE_IGNORE: frozenset[str] = frozenset(
    {"node_modules", ".git", "dist", ".next", "__pycache__"}
)

# ---------------------------------------------------------------------------
# File-system helpers
# ---------------------------------------------------------------------------


def file_exists(path: str | Path) -> bool:
    """Return ``True`` if *path* exists (file, directory or symlink target)."""
    return Path(path).exists()


def read_file_if_exists(path: str | Path) -> str | None:
    """Read a UTF-8 text file, returning ``None`` when it cannot be read."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def ensure_dir(path: str | Path) -> Path:
    """Create a directory (and parents) if it does not exist.

    Returns:
        The resolved ``Path`` object.
    """
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path.resolve()


def _sorted_entries(directory: Path, ignore: frozenset[str]) -> list[Path]:
    entries = [entry for entry in directory.iterdir() if entry.name not in ignore]
    # Directories first, then files, each alphabetically.
    return sorted(entries, key=lambda e: (not e.is_dir(), e.name.lower()))


def walk_files(
    root: str | Path,
    ignore: Iterable[str] = DEFAULT_TREE_IGNORE,
) -> list[Path]:
    """Return every file under *root* as a path relative to *root*.

    Directories whose name is in *ignore* are skipped entirely.
    """
    root_path = Path(root)
    skip = frozenset(ignore)
    found: list[Path] = []

    def _walk(directory: Path) -> None:
        for entry in _sorted_entries(directory, skip):
            if entry.is_dir():
                _walk(entry)
            else:
                found.append(entry.relative_to(root_path))

    _walk(root_path)
    return found


def get_directory_tree(
    root: str | Path,
    max_depth: int = 3,
    ignore: Iterable[str] = DEFAULT_TREE_IGNORE,
) -> str:
    """Render a directory as an indented ASCII tree.

    Example::

        project
        ├── src/
        │   └── main.py
        └── README.md

    Args:
        root: Directory to render.
        max_depth: Deepest level to descend into (0 lists only *root*'s entries).
        ignore: Entry names to leave out.

    Returns:
        The rendered tree as a single string.
    """
    root_path = Path(root)
    skip = frozenset(ignore)
    lines: list[str] = [root_path.name or str(root_path)]

    def _walk(directory: Path, prefix: str, depth: int) -> None:
        if depth > max_depth:
            return
        entries = _sorted_entries(directory, skip)
        for index, entry in enumerate(entries):
            is_last = index == len(entries) - 1
            connector = "└── " if is_last else "├── "
            suffix = "/" if entry.is_dir() else ""
            lines.append(f"{prefix}{connector}{entry.name}{suffix}")
            if entry.is_dir():
                _walk(entry, prefix + ("    " if is_last else "│   "), depth + 1)

    _walk(root_path, "", 0)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def truncate(text: str, limit: int) -> str:
    """Shorten *text* to at most *limit* characters, ending in ``...`` if cut."""
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)] + "..."


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
        format_duration(3661.0) -> "1h 1m 1s"
    """
    if seconds < 0:
        return "0.0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")

    if hours > 0 or minutes > 0:
        parts.append(f"{int(secs)}s")
    else:
        parts.append(f"{secs:.1f}s")

    return " ".join(parts)
