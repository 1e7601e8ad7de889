"""Shared pytest fixtures for the CodeFactory test suite.

Provides reusable fixtures for:
- Temporary git repositories (real ``git``)
- Canned stream-json agent output
- Mock subprocess helpers for git and agent CLI processes
"""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest


# ---------------------------------------------------------------------------
# Git repositories
# ---------------------------------------------------------------------------

def _git(repo_dir: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=repo_dir, check=True, capture_output=True)


@pytest.fixture
def tmp_git_repo(tmp_path: Path) -> Path:
    """Temporary git repository with an initial commit.

    The repository lives one level below ``tmp_path`` so that the sibling
    ``<repo>-worktrees`` directory also ends up inside ``tmp_path``.
    """
    repo_dir = tmp_path / "test-repo"
    repo_dir.mkdir()
    _git(repo_dir, "init")
    _git(repo_dir, "config", "user.email", "test@codefactory.local")
    _git(repo_dir, "config", "user.name", "CodeFactory Test")
    _git(repo_dir, "config", "commit.gpgsign", "false")
    # An initial commit so branches and worktrees can be created
    (repo_dir / "README.md").write_text("# Test Project\n", encoding="utf-8")
    _git(repo_dir, "add", ".")
    _git(repo_dir, "commit", "-m", "Initial commit")
    yield repo_dir


# ---------------------------------------------------------------------------
# Agent output
# ---------------------------------------------------------------------------

def stream_line(event: dict[str, Any]) -> bytes:
    """Encode one stream-json event as a newline-terminated line."""
    return (json.dumps(event) + "\n").encode("utf-8")


def tool_use_event(name: str, **tool_input: Any) -> dict[str, Any]:
    return {
        "type": "assistant",
        "message": {
            "content": [{"type": "tool_use", "name": name, "input": tool_input}],
        },
    }


def result_event(result: str, cost: float | None = None) -> dict[str, Any]:
    event: dict[str, Any] = {"type": "result", "subtype": "success", "result": result}
    if cost is not None:
        event["total_cost_usd"] = cost
    return event


@pytest.fixture
def encode_events():
    """Join stream-json events into one bytes blob, one line per event."""
    def _encode(*events: dict[str, Any]) -> bytes:
        return b"".join(stream_line(event) for event in events)

    return _encode


@pytest.fixture
def sample_stream() -> bytes:
    """A short claude session: one text block, a write, an edit, a result."""
    events = [
        {"type": "system", "subtype": "init"},
        {
            "type": "assistant",
            "message": {"content": [{"type": "text", "text": "Adding the module."}]},
        },
        tool_use_event("Write", file_path="src/auth.ts", content="export {}"),
        tool_use_event("Edit", file_path="src/index.ts", old_string="a", new_string="b"),
        tool_use_event("Read", file_path="package.json"),
        result_event("Added JWT auth.", cost=0.0123),
    ]
    return b"".join(stream_line(event) for event in events)


# ---------------------------------------------------------------------------
# Subprocess mocks
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_subprocess():
    """Factory for a mocked process that answers ``communicate()``.

    Usage::

        proc = mock_subprocess(stdout=b"ok", returncode=0)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            ...
    """
    def _factory(
        stdout: bytes = b"",
        stderr: bytes = b"",
        returncode: int = 0,
    ) -> AsyncMock:
        proc = AsyncMock()
        proc.communicate = AsyncMock(return_value=(stdout, stderr))
        proc.returncode = returncode
        proc.kill = MagicMock()
        proc.wait = AsyncMock(return_value=returncode)
        return proc

    return _factory


@pytest.fixture
def mock_agent_process():
    """Factory for a mocked agent process whose stdout yields *chunks*.

    ``stdout.read`` returns each chunk in turn and then ``b""`` (EOF).
    """
    def _factory(chunks: list[bytes] | None = None, returncode: int = 0) -> MagicMock:
        proc = MagicMock()
        proc.stdout = MagicMock()
        proc.stdout.read = AsyncMock(side_effect=[*(chunks or []), b""])
        proc.returncode = returncode
        proc.kill = MagicMock()
        proc.wait = AsyncMock(return_value=returncode)
        return proc

    return _factory
