"""
Tests for switching projects and submodules to a common branch.
"""

from conftest import make_project

from lockstep_sync.branch_switcher import BranchSwitcher
from lockstep_sync.models import GitRepositoryError


def test_switch_order_and_pulls(tmp_path, git_cache, git_factory):
    api = make_project("api", tmp_path, ["shared"])
    web = make_project("web", tmp_path, ["shared"])

    result = BranchSwitcher(git_cache).switch([api, web], None, "release/1.0", True, True)

    assert result.switched == ["api/shared", "api", "web", "web/shared"]
    assert result.updated == ["api/shared", "api", "web"]
    assert result.failed == {}

    primary = git_factory(api.submodules[0].path)
    primary.checkout_branch.assert_called_once_with("release/1.0")
    primary.pull.assert_called_once_with("origin", "main")
    other = git_factory(web.submodules[0].path)
    other.pull.assert_called_once_with("origin", "release/1.0")
    git_factory(api.path).pull.assert_called_once_with("origin", "main")


def test_switch_without_updates_skips_base_pulls(tmp_path, git_cache, git_factory):
    api = make_project("api", tmp_path, ["shared"])

    result = BranchSwitcher(git_cache).switch([api], None, "dev")

    assert result.updated == []
    git_factory(api.path).pull.assert_not_called()
    git_factory(api.submodules[0].path).pull.assert_not_called()


def test_failures_are_recorded_and_processing_continues(tmp_path, git_cache, git_factory):
    api = make_project("api", tmp_path)
    web = make_project("web", tmp_path)
    git_factory(api.path).checkout_branch.side_effect = GitRepositoryError("no such branch")

    result = BranchSwitcher(git_cache).switch([api, web], None, "dev")

    assert result.failed == {"api": "no such branch"}
    assert result.switched == ["web"]


def test_selection_limits_submodules(tmp_path, git_cache, git_factory):
    api = make_project("api", tmp_path, ["shared", "proto"])

    result = BranchSwitcher(git_cache).switch([api], {"api": ["proto"]}, "dev")

    assert result.switched == ["api/proto", "api"]
    git_factory(api.get_submodule("shared").path).checkout_branch.assert_not_called()
