"""
Tests for data models.
"""

import dataclasses
from pathlib import Path

import pytest

from lockstep_sync.models import (
    COMMIT_MESSAGE_HEADER,
    BranchStage,
    CommitMessage,
    CommitSummary,
    FeatureBranchState,
    ProjectNode,
    RepositoryRef,
    SharedSubmoduleSync,
    StageResult,
    SubmoduleDelta,
    SubmoduleRef,
    SyncError,
    PathNotFoundError,
    ConfigurationError,
    PrCreationError,
)


def _sub(name="S", project="P"):
    return SubmoduleRef(
        name=name, project_name=project, path=Path("/w") / project / name, relative_path=name, base_branch="main"
    )


class TestSnapshots:
    """Test immutable repository snapshots."""

    def test_repository_ref_is_frozen(self):
        """Snapshots cannot be changed in place."""
        ref = RepositoryRef(name="api", path=Path("/w/api"), base_branch="main")
        with pytest.raises(dataclasses.FrozenInstanceError):
            ref.remote_name = "upstream"

    def test_with_remote_returns_new_snapshot(self):
        """Remote reassignment produces a copy and leaves the original intact."""
        ref = RepositoryRef(name="api", path=Path("/w/api"), base_branch="main")
        changed = ref.with_remote("upstream", "git@example.test:api.git")

        assert changed is not ref
        assert changed.remote_name == "upstream"
        assert changed.remote_url == "git@example.test:api.git"
        assert ref.remote_name == "origin"
        assert ref.remote_url is None

    def test_submodule_key(self):
        assert _sub("lib", "api").key == "api/lib"

    def test_project_node_keeps_branch_state_across_snapshots(self):
        """Replacing snapshots keeps the same branch state object."""
        node = ProjectNode(
            repository=RepositoryRef(name="api", path=Path("/w/api"), base_branch="main"),
            submodules=(_sub("lib", "api"),),
        )
        node.branch_state.branch_name = "feature/x"
        updated = node.with_snapshots(node.repository.with_remote("up", "u"), node.submodules)

        assert updated.branch_state is node.branch_state
        assert updated.repository.remote_name == "up"
        assert node.repository.remote_name == "origin"
        assert updated.get_submodule("lib") is not None
        assert updated.get_submodule("missing") is None


class TestFeatureBranchState:
    """Test FeatureBranchState."""

    def test_default_is_unresolved(self):
        state = FeatureBranchState()
        assert state.branch_name == ""
        assert state.stage == BranchStage.UNRESOLVED
        assert not state.is_resolved
        assert not state.is_failed

    def test_resolved_requires_name(self):
        state = FeatureBranchState(stage=BranchStage.BRANCH_RESOLVED)
        assert not state.is_resolved
        state.branch_name = "feature/x"
        assert state.is_resolved


class TestDeltaAndMessage:
    """Test SubmoduleDelta and CommitMessage."""

    def test_delta_is_empty_when_pointer_unchanged(self):
        delta = SubmoduleDelta(submodule=_sub(), previous_commit="a1", current_commit="a1")
        assert delta.is_empty
        assert delta.total == 0

    def test_delta_with_commits(self):
        delta = SubmoduleDelta(
            submodule=_sub(),
            previous_commit="a1",
            current_commit="b2",
            commit_log=[CommitSummary("c1", "first"), CommitSummary("c2", "second")],
        )
        assert not delta.is_empty
        assert delta.total == 2

    def test_message_render(self):
        """Each staged submodule gets a section under the fixed header."""
        message = CommitMessage()
        message.add_delta(
            SubmoduleDelta(_sub("lib"), "a1", "b2", [CommitSummary("c1", "first"), CommitSummary("c2", "second")])
        )
        message.add_delta(SubmoduleDelta(_sub("ui"), "a1", "b2", [CommitSummary("c3", "third")]))

        assert str(message) == (
            f"{COMMIT_MESSAGE_HEADER}\n\nlib:\n- first\n- second\n\nui:\n- third\n"
        )

    def test_empty_message(self):
        message = CommitMessage()
        assert message.is_empty
        assert message.render() == f"{COMMIT_MESSAGE_HEADER}\n"


class TestStageResult:
    """Test StageResult summary."""

    def test_summary_counts(self):
        result = StageResult(project_name="P", selected=["a", "b", "c"], staged=["a"])
        assert result.summary == "1 of 3 submodules staged"
        assert result.has_changes

    def test_total_commits_counts_staged_only(self):
        staged = SubmoduleDelta(_sub("a"), "1", "2", [CommitSummary("x", "t")] * 2)
        failed = SubmoduleDelta(_sub("b"), "1", "2", [CommitSummary("y", "t")] * 5)
        result = StageResult(project_name="P", staged=["a"], deltas=[staged, failed])
        assert result.total_commits == 2


class TestSharedSubmoduleSync:
    """Test shared sync readiness."""

    def test_ready_only_after_successful_pull(self):
        sync = SharedSubmoduleSync(name="S", primary=_sub())
        assert not sync.ok
        sync.synced_commit = "b2"
        assert sync.is_ready_for("P")

    def test_global_failure_mentions_submodule(self):
        sync = SharedSubmoduleSync(name="S", primary=_sub(), error="conflict")
        assert not sync.is_ready_for("P")
        assert "shared update of 'S' failed" in sync.failure_for("Q")

    def test_reference_failure_is_per_project(self):
        sync = SharedSubmoduleSync(name="S", primary=_sub(), synced_commit="b2", failed_references={"Q": "nope"})
        assert sync.is_ready_for("P")
        assert not sync.is_ready_for("Q")
        assert sync.failure_for("Q") == "nope"
        assert sync.failure_for("P") is None


class TestExceptions:
    """Test exception hierarchy."""

    @pytest.mark.parametrize("exc", [PathNotFoundError, ConfigurationError, PrCreationError])
    def test_all_errors_are_sync_errors(self, exc):
        with pytest.raises(SyncError):
            raise exc("boom")
