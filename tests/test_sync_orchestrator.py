"""
Tests for SyncOrchestrator: per-project commit/push/PR sequencing and failure isolation.
"""

from unittest.mock import MagicMock

import pytest

from lockstep_sync.config import ProviderSettings
from lockstep_sync.decision_interface import PresetDecisions
from lockstep_sync.models import (
    CommitSummary,
    ConfigurationError,
    GitRepositoryError,
    OperationPresets,
)
from lockstep_sync.pr_gateway import PullRequestGateway
from lockstep_sync.sync_orchestrator import SyncOrchestrator, created_prs_markdown, default_pr_title

from conftest import make_project


@pytest.fixture()
def projects(tmp_path):
    return [
        make_project("A", tmp_path, submodules=["S"]),
        make_project("B", tmp_path, submodules=["S"]),
    ]


def _advance_shared(git_factory, projects, titles=("one", "two")):
    """Give every project an old pointer for S and make S's primary advance."""
    for project in projects:
        git_factory.for_path(project.path).get_submodule_pointer.return_value = "a1"
        sub_gm = git_factory.for_path(project.get_submodule("S").path)
        sub_gm.get_head_commit.return_value = "b2"
        sub_gm.get_commit_log.return_value = [CommitSummary(hash=f"h{i}", title=t) for i, t in enumerate(titles)]


def _gateway(provider):
    return PullRequestGateway(
        [ProviderSettings(provider="Fake", host="https://example.test")],
        factories={"Fake": lambda settings: provider},
    )


def _presets(**overrides):
    values = dict(branch_name="feature/links", update_feature_branch=False, create_pr=False)
    values.update(overrides)
    return PresetDecisions(OperationPresets(**values))


def test_full_run_commits_and_pushes_each_project(projects, git_factory, git_cache):
    _advance_shared(git_factory, projects)

    report = SyncOrchestrator(_presets(), git_cache=git_cache).run(projects)

    for project in projects:
        gm = git_factory.for_path(project.path)
        gm.checkout_new_branch.assert_called_once_with("feature/links", "origin/main")
        gm.commit.assert_called_once()
        assert gm.commit.call_args[0][0].startswith("feat(submodules): update links\n\nS:\n- one\n- two")
        gm.push.assert_called_once_with("origin", "feature/links")
        outcome = report.outcome_for(project.name)
        assert outcome.committed and outcome.pushed
        assert outcome.error is None
    # Shared submodule pulled once for both projects
    pulls = sum(git_factory.for_path(p.get_submodule("S").path).pull.call_count for p in projects)
    assert pulls == 1


def test_branch_failure_in_first_project_does_not_stop_second(projects, git_factory, git_cache):
    _advance_shared(git_factory, projects)
    git_factory.for_path(projects[0].path).path_exists.return_value = False

    report = SyncOrchestrator(_presets(), git_cache=git_cache).run(projects)

    first, second = report.outcomes
    assert "does not exist" in first.error
    assert not first.committed
    assert second.committed and second.pushed
    git_factory.for_path(projects[0].path).commit.assert_not_called()


def test_declined_commit_skips_push_and_pr(projects, git_factory, git_cache):
    _advance_shared(git_factory, projects)
    provider = MagicMock()

    orchestrator = SyncOrchestrator(_presets(commit_changes=False, create_pr=True), _gateway(provider), git_cache)
    report = orchestrator.run(projects)

    for project in projects:
        gm = git_factory.for_path(project.path)
        assert gm.commit.call_count == 0
        gm.push.assert_not_called()
        assert report.outcome_for(project.name).skipped_reason == "commit declined"
    provider.create_pull_request.assert_not_called()


def test_push_failure_stops_only_that_project(projects, git_factory, git_cache):
    _advance_shared(git_factory, projects)
    git_factory.for_path(projects[0].path).push.side_effect = GitRepositoryError("rejected")

    report = SyncOrchestrator(_presets(), git_cache=git_cache).run(projects)

    assert "rejected" in report.outcomes[0].error
    assert report.outcomes[0].committed
    assert not report.outcomes[0].pushed
    assert report.outcomes[1].pushed


def test_pr_without_url_is_a_warning_not_an_entry(projects, git_factory, git_cache):
    _advance_shared(git_factory, projects)
    provider = MagicMock()
    provider.create_pull_request.return_value = None

    report = SyncOrchestrator(_presets(create_pr=True), _gateway(provider), git_cache).run(projects)

    assert provider.create_pull_request.call_count == 2
    assert report.created_prs == []
    assert all(o.error is None for o in report.outcomes)


def test_created_prs_are_collected(projects, git_factory, git_cache):
    _advance_shared(git_factory, projects)
    provider = MagicMock()
    provider.create_pull_request.side_effect = lambda repo_id, *args: f"https://example.test/{repo_id}"

    orchestrator = SyncOrchestrator(_presets(create_pr=True, task_id="ABC-1"), _gateway(provider), git_cache)
    report = orchestrator.run(projects)

    assert [pr.url for pr in report.created_prs] == [
        "https://example.test/A-id",
        "https://example.test/B-id",
    ]
    args = provider.create_pull_request.call_args_list[0][0]
    assert args[1:4] == ("feature/links", "main", "ABC-1 Update submodules for A")
    assert created_prs_markdown(report.created_prs).splitlines()[0] == "- [A](https://example.test/A-id)"


def test_pr_creation_error_is_not_retried(projects, git_factory, git_cache):
    _advance_shared(git_factory, projects)
    provider = MagicMock()
    provider.create_pull_request.side_effect = RuntimeError("HTTP 500")

    report = SyncOrchestrator(_presets(create_pr=True), _gateway(provider), git_cache).run(projects)

    assert provider.create_pull_request.call_count == 2
    assert "HTTP 500" in report.outcomes[0].error
    assert report.outcomes[1].pushed


def test_unknown_provider_is_a_warning(projects, git_factory, git_cache):
    _advance_shared(git_factory, projects)
    provider = MagicMock()

    decisions = _presets(create_pr=True, pr_provider="Missing")
    report = SyncOrchestrator(decisions, _gateway(provider), git_cache).run(projects)

    provider.create_pull_request.assert_not_called()
    assert all(o.error is None and o.pushed for o in report.outcomes)


def test_no_changes_means_no_commit(projects, git_factory, git_cache):
    for project in projects:
        git_factory.for_path(project.path).get_submodule_pointer.return_value = "same"
        git_factory.for_path(project.get_submodule("S").path).get_head_commit.return_value = "same"

    report = SyncOrchestrator(_presets(), git_cache=git_cache).run(projects)

    for project in projects:
        git_factory.for_path(project.path).commit.assert_not_called()
        assert report.outcome_for(project.name).skipped_reason == "no submodule changes to commit"


def test_cancelled_plan_touches_nothing(projects, git_factory, git_cache):
    decisions = _presets()
    decisions.confirm_plan = MagicMock(return_value=False)

    report = SyncOrchestrator(decisions, git_cache=git_cache).run(projects)

    assert report.cancelled
    assert git_factory.managers == {}


def test_existing_common_branch_is_selected(projects, git_factory, git_cache):
    _advance_shared(git_factory, projects)
    git_factory.for_path(projects[0].path).branch_state["branches"].add("feature/links")

    SyncOrchestrator(_presets(), git_cache=git_cache).run(projects)

    first = git_factory.for_path(projects[0].path)
    first.checkout_branch.assert_called_once_with("feature/links")
    first.checkout_new_branch.assert_not_called()
    git_factory.for_path(projects[1].path).checkout_new_branch.assert_called_once()


def test_failed_branch_asks_fallback_for_new_name(projects, git_factory, git_cache):
    _advance_shared(git_factory, projects)
    gm = git_factory.for_path(projects[0].path)
    gm.checkout_new_branch.side_effect = [GitRepositoryError("bad ref"), None]
    fallback = MagicMock()
    fallback.new_branch_name.return_value = "feature/other"
    decisions = PresetDecisions(
        OperationPresets(branch_name="feature/links", update_feature_branch=False, create_pr=False),
        fallback=fallback,
    )

    report = SyncOrchestrator(decisions, git_cache=git_cache).run(projects)

    assert report.outcomes[0].branch_name == "feature/other"
    fallback.new_branch_name.assert_called_once()


def test_update_feature_branch_failure_skips_project(projects, git_factory, git_cache):
    _advance_shared(git_factory, projects)
    git_factory.for_path(projects[0].path).pull.side_effect = GitRepositoryError("conflict")

    report = SyncOrchestrator(_presets(update_feature_branch=True), git_cache=git_cache).run(projects)

    assert "conflict" in report.outcomes[0].error
    assert report.outcomes[1].pushed
    git_factory.for_path(projects[1].path).pull.assert_called_once_with("origin", "main")


def test_default_pr_title():
    assert default_pr_title("api") == "Update submodules for api"
    assert default_pr_title("api", "T-9") == "T-9 Update submodules for api"


def test_unknown_preset_project_is_rejected(projects, git_factory, git_cache):
    decisions = PresetDecisions(OperationPresets(branch_name="feature/links"), project_names=["A", "Z"])

    with pytest.raises(ConfigurationError, match="Z"):
        SyncOrchestrator(decisions, git_cache=git_cache).run(projects)

    assert git_factory.managers == {}


def test_preset_project_names_keep_graph_order(projects, git_factory, git_cache):
    _advance_shared(git_factory, projects)
    decisions = PresetDecisions(OperationPresets(branch_name="feature/links", update_feature_branch=False,
                                                 create_pr=False), project_names=["B", "A"])

    report = SyncOrchestrator(decisions, git_cache=git_cache).run(projects)

    assert [o.project_name for o in report.outcomes] == ["A", "B"]
