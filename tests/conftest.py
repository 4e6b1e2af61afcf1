"""
Shared fixtures: project graphs and per-path GitManager mocks.
"""

from pathlib import Path
from typing import Dict, Iterable, Optional
from unittest.mock import MagicMock

import pytest

from lockstep_sync.config import ProjectSettings, SubmoduleSettings
from lockstep_sync.git_manager import GitManager, GitManagerCache
from lockstep_sync.graph_builder import build_project


def make_project(
    name: str,
    root: Path,
    submodules: Iterable[str] = (),
    base_branch: str = "main",
    remote_name: str = "origin",
    repository_id: Optional[str] = None,
):
    settings = ProjectSettings(
        name=name,
        repository_id=repository_id or f"{name}-id",
        path=str(root / name),
        base_branch=base_branch,
        remote_name=remote_name,
        submodules=[SubmoduleSettings(name=s, base_branch="main") for s in submodules],
    )
    return build_project(settings)


def make_git_mock(path: Path, branches=("main",), current: str = "main", head: str = "head0") -> MagicMock:
    gm = MagicMock(spec=GitManager)
    gm.repo_path = Path(path)
    state = {"branches": set(branches)}
    gm.path_exists.return_value = True
    gm.list_local_branches.side_effect = lambda: sorted(state["branches"])
    gm.branch_exists.side_effect = lambda b: b in state["branches"]
    gm.get_current_branch.return_value = current
    gm.get_head_commit.return_value = head
    gm.branch_ahead_behind.return_value = (0, 0)
    gm.get_submodule_pointer.return_value = None
    gm.get_commit_log.return_value = []
    gm.commit.return_value = "c0ffee00"
    gm.get_remotes.return_value = []

    def _new_branch(name, start_point=None):
        state["branches"].add(name)

    gm.checkout_new_branch.side_effect = _new_branch
    gm.branch_state = state
    return gm


class FakeGitFactory:
    """Returns one GitManager mock per path, created on first use."""

    def __init__(self) -> None:
        self.managers: Dict[Path, MagicMock] = {}

    def __call__(self, path) -> MagicMock:
        key = Path(path)
        if key not in self.managers:
            self.managers[key] = make_git_mock(key)
        return self.managers[key]

    def for_path(self, path) -> MagicMock:
        return self(path)


@pytest.fixture()
def git_factory() -> FakeGitFactory:
    return FakeGitFactory()


@pytest.fixture()
def git_cache(git_factory) -> GitManagerCache:
    return GitManagerCache(factory=git_factory)
