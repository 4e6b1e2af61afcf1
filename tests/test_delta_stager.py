"""
Tests for SubmoduleDeltaStager.
"""

from pathlib import Path

import pytest

from lockstep_sync.delta_stager import SubmoduleDeltaStager
from lockstep_sync.models import (
    COMMIT_MESSAGE_HEADER,
    CommitSummary,
    GitRepositoryError,
    SharedSubmoduleSync,
    StagingError,
)

from conftest import make_project


@pytest.fixture()
def project(tmp_path: Path):
    return make_project("P", tmp_path, submodules=["S"])


def _advance(git_factory, project, name="S", previous="a1", current="b2", titles=()):
    sub = project.get_submodule(name)
    git_factory.for_path(project.path).get_submodule_pointer.side_effect = (
        lambda path, ref="HEAD": previous if path == sub.relative_path else None
    )
    sub_gm = git_factory.for_path(sub.path)
    sub_gm.get_head_commit.return_value = current
    sub_gm.get_commit_log.return_value = [
        CommitSummary(hash=f"{i:040d}", title=t) for i, t in enumerate(titles)
    ]
    return sub_gm


def test_three_new_commits_are_staged_with_bullets(project, git_factory, git_cache):
    sub_gm = _advance(git_factory, project, titles=["fix parser", "add lexer", "bump deps"])

    result = SubmoduleDeltaStager(git_cache).stage_project(project, ["S"])

    message = result.message.render()
    assert message.splitlines()[0] == COMMIT_MESSAGE_HEADER
    assert "S:\n- fix parser\n- add lexer\n- bump deps" in message
    assert result.total_commits == 3
    assert result.summary == "1 of 1 submodules staged"
    git_factory.for_path(project.path).add_paths.assert_called_once_with(["S"])
    sub_gm.checkout_branch.assert_called_once_with("main")
    sub_gm.pull.assert_called_once_with("origin", "main")
    sub_gm.get_commit_log.assert_called_once_with("a1", "b2")


def test_unchanged_pointer_stages_nothing(project, git_factory, git_cache):
    _advance(git_factory, project, previous="a1", current="a1")

    result = SubmoduleDeltaStager(git_cache).stage_project(project, ["S"])

    assert result.staged == []
    assert result.unchanged == ["S"]
    assert result.message.is_empty
    assert "S:" not in result.message.render()
    git_factory.for_path(project.path).add_paths.assert_not_called()


def test_pull_failure_does_not_block_other_submodules(tmp_path, git_factory, git_cache):
    project = make_project("P", tmp_path, submodules=["broken", "ok"])
    parent = git_factory.for_path(project.path)
    parent.get_submodule_pointer.return_value = "a1"
    git_factory.for_path(project.get_submodule("broken").path).pull.side_effect = GitRepositoryError("offline")
    ok_gm = git_factory.for_path(project.get_submodule("ok").path)
    ok_gm.get_head_commit.return_value = "b2"
    ok_gm.get_commit_log.return_value = [CommitSummary(hash="b2", title="new feature")]

    result = SubmoduleDeltaStager(git_cache).stage_project(project, ["broken", "ok"])

    assert result.staged == ["ok"]
    assert "broken" in result.failed
    assert result.summary == "1 of 2 submodules staged"
    parent.add_paths.assert_called_once_with(["ok"])


def test_missing_gitlink_is_a_staging_failure(project, git_factory, git_cache):
    stager = SubmoduleDeltaStager(git_cache)
    git_factory.for_path(project.get_submodule("S").path).get_head_commit.return_value = "b2"

    with pytest.raises(StagingError):
        stager.compute_delta(project, project.get_submodule("S"))

    result = stager.stage_project(project, ["S"])
    assert "S" in result.failed
    assert result.summary == "0 of 1 submodules staged"


def test_already_synced_submodule_is_not_pulled_again(project, git_factory, git_cache):
    sub_gm = _advance(git_factory, project, titles=["one"])
    sub = project.get_submodule("S")
    synced = {"S": SharedSubmoduleSync(name="S", primary=sub, references=[sub], synced_commit="b2")}

    result = SubmoduleDeltaStager(git_cache).stage_project(project, ["S"], synced)

    assert result.staged == ["S"]
    sub_gm.pull.assert_not_called()


def test_failed_shared_sync_skips_submodule(project, git_factory, git_cache):
    _advance(git_factory, project, titles=["one"])
    sub = project.get_submodule("S")
    synced = {"S": SharedSubmoduleSync(name="S", primary=sub, references=[sub], error="merge conflict")}

    result = SubmoduleDeltaStager(git_cache).stage_project(project, ["S"], synced)

    assert result.staged == []
    assert "merge conflict" in result.failed["S"]
    git_factory.for_path(project.path).add_paths.assert_not_called()


def test_unselected_submodules_are_ignored(tmp_path, git_factory, git_cache):
    project = make_project("P", tmp_path, submodules=["A", "B"])
    result = SubmoduleDeltaStager(git_cache).stage_project(project, ["B"])
    assert result.selected == ["B"]
    git_factory.for_path(project.get_submodule("A").path).pull.assert_not_called()
