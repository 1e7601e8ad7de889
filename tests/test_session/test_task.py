"""Unit tests for end-to-end task runs (codefactory.session.task).

Tests cover:
- Happy path: naming runner, worktree-scoped generate, report contents
- Preflight failures (not a repo, missing CLI, unavailable platform, blank task)
- Agent naming disabled
- Uncommitted-changes warning
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from codefactory.agent.errors import PlatformCLINotFoundError, PlatformUnavailableError
from codefactory.agent.platforms import AgentPlatform
from codefactory.agent.runner import GenerateResult
from codefactory.config import Config, RunnerOptions, SessionConfig
from codefactory.git import NotAGitRepoError
from codefactory.session.task import TaskReport, run_task
from codefactory.session.worktree import Commit, WorktreeInfo

MODULE = "codefactory.session.task"


@pytest.fixture
def session_info(tmp_path: Path) -> WorktreeInfo:
    return WorktreeInfo(
        path=tmp_path / "myapp-worktrees" / "cf" / "add-auth-a3f2c1",
        branch_name="cf/add-auth-a3f2c1",
        starting_sha="0" * 40,
    )


@pytest.fixture
def manager(tmp_path: Path, session_info: WorktreeInfo) -> MagicMock:
    mgr = MagicMock()
    mgr.repo_root = tmp_path / "myapp"
    mgr.open_session = AsyncMock(return_value=session_info)
    mgr.commits_since = AsyncMock(return_value=[Commit(sha="abc1234", message="Add auth")])
    mgr.changed_files_since = AsyncMock(return_value=["src/auth.ts"])
    return mgr


@pytest.fixture
def patched(manager: MagicMock):
    """Patch every collaborator of run_task; yields the mocks by name."""
    manager_cls = MagicMock()
    manager_cls.discover = AsyncMock(return_value=manager)

    runner_cls = MagicMock()
    runner_cls.return_value.generate = AsyncMock(
        return_value=GenerateResult(files_created=["src/auth.ts"], files_modified=["README.md"])
    )

    with patch(f"{MODULE}.WorktreeManager", manager_cls), \
         patch(f"{MODULE}.AgentRunner", runner_cls), \
         patch(f"{MODULE}.validate_platform_cli", MagicMock(return_value="/usr/bin/claude")) as validate, \
         patch(f"{MODULE}.has_uncommitted_changes", AsyncMock(return_value=False)) as dirty, \
         patch(f"{MODULE}.console") as console_mock:
        yield {
            "manager_cls": manager_cls,
            "runner_cls": runner_cls,
            "validate": validate,
            "dirty": dirty,
            "console": console_mock,
        }


class TestRunTask:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_happy_path(self, patched, manager, session_info, tmp_path: Path):
        config = Config(runner=RunnerOptions(max_turns=9))
        report = await run_task("Add auth", config=config, cwd=tmp_path, system_prompt_append="Extra")

        assert report == TaskReport(
            worktree=session_info,
            files_created=["src/auth.ts"],
            files_modified=["README.md"],
            commits=[Commit(sha="abc1234", message="Add auth")],
            changed_files=["src/auth.ts"],
        )
        patched["manager_cls"].discover.assert_awaited_once_with(tmp_path)
        patched["validate"].assert_called_once_with(AgentPlatform.CLAUDE)

        runner_cls = patched["runner_cls"]
        naming_call, work_call = runner_cls.call_args_list
        assert naming_call.args == (
            AgentPlatform.CLAUDE,
            RunnerOptions(working_directory=manager.repo_root),
        )
        assert naming_call.kwargs == {"echo": False}
        options = work_call.args[1]
        assert options.working_directory == session_info.path
        assert options.max_turns == 9

        open_kwargs = manager.open_session.call_args.kwargs
        assert open_kwargs["runner"] is runner_cls.return_value
        assert open_kwargs["naming_timeout"] == 30.0
        runner_cls.return_value.generate.assert_awaited_once_with("Add auth", "Extra")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_agent_naming_disabled(self, patched, manager):
        config = Config(session=SessionConfig(use_agent_naming=False))
        await run_task("Add auth", config=config)

        assert manager.open_session.call_args.kwargs["runner"] is None
        assert patched["runner_cls"].call_count == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_uncommitted_changes_warn(self, patched):
        patched["dirty"].return_value = True
        await run_task("Add auth")

        printed = " ".join(str(c.args[0]) for c in patched["console"].print.call_args_list if c.args)
        assert "uncommitted changes" in printed


class TestPreflight:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_not_a_repo(self, patched, manager, tmp_path: Path):
        patched["manager_cls"].discover.side_effect = NotAGitRepoError(tmp_path)

        with pytest.raises(NotAGitRepoError):
            await run_task("Add auth", cwd=tmp_path)

        patched["validate"].assert_not_called()
        manager.open_session.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_cli(self, patched, manager):
        patched["validate"].side_effect = PlatformCLINotFoundError("claude", "claude")

        with pytest.raises(PlatformCLINotFoundError):
            await run_task("Add auth")

        manager.open_session.assert_not_called()
        patched["runner_cls"].assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unavailable_platform(self, patched, manager):
        with pytest.raises(PlatformUnavailableError):
            await run_task("Add auth", config=Config(platform=AgentPlatform.KIRO))

        manager.open_session.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("task", ["", "   \n"])
    async def test_blank_task(self, patched, manager, task: str):
        with pytest.raises(ValueError, match="No task provided"):
            await run_task(task)

        manager.open_session.assert_not_called()
