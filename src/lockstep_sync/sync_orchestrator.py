"""
Submodule-linking pipeline: branch, sync, stage, then commit, push and pull request.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .branch_manager import BranchLifecycleManager
from .decision_interface import DecisionProvider
from .delta_stager import SubmoduleDeltaStager
from .git_manager import GitManagerCache
from .graph_builder import select_projects
from .models import (
    BranchPolicy,
    CommitError,
    CreatedPullRequest,
    DuplicateBranchNameError,
    GitRepositoryError,
    PendingPullRequest,
    PrCreationError,
    ProjectNode,
    ProjectOutcome,
    ProviderConfigurationError,
    PushError,
    SyncError,
    SyncReport,
)
from .pr_gateway import PullRequestGateway
from .pr_providers import DEFAULT_DESCRIPTION
from .submodule_coordinator import DEFAULT_MAX_WORKERS, SubmoduleCoordinator


logger = logging.getLogger(__name__)


MAX_BRANCH_ATTEMPTS = 3


def default_pr_title(project_name: str, task_id: Optional[str] = None) -> str:
    title = f"Update submodules for {project_name}"
    return f"{task_id} {title}" if task_id else title


def created_prs_markdown(created: Sequence[CreatedPullRequest]) -> str:
    """Render created pull requests as a Markdown list."""
    return "\n".join(f"- [{pr.project_name}]({pr.url})" for pr in created)


class SyncOrchestrator:
    """Runs the submodule-linking pipeline over a set of projects.

    Every question is answered by the injected ``DecisionProvider``. A failure
    or a declined step stops the remaining steps of that project only.
    """

    def __init__(
        self,
        decisions: DecisionProvider,
        pr_gateway: Optional[PullRequestGateway] = None,
        git_cache: Optional[GitManagerCache] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        self.decisions = decisions
        self.pr_gateway = pr_gateway
        self.git_cache = git_cache or GitManagerCache()
        self.branch_manager = BranchLifecycleManager(self.git_cache)
        self.coordinator = SubmoduleCoordinator(self.git_cache, max_workers=max_workers)
        self.stager = SubmoduleDeltaStager(self.git_cache)

    def run(self, projects: Sequence[ProjectNode]) -> SyncReport:
        """
        Link submodules for the projects chosen by the decision provider.

        Returns:
            SyncReport with one outcome per chosen project
        """
        report = SyncReport()
        chosen = select_projects(projects, self.decisions.select_projects(projects))
        if not chosen:
            logger.info("No projects selected")
            return report

        selection: Dict[str, List[str]] = {
            p.name: list(self.decisions.select_submodules(p)) for p in chosen
        }
        if not self.decisions.confirm_plan(selection):
            logger.info("Run cancelled before any repository was changed")
            report.cancelled = True
            return report

        active: List[Tuple[ProjectNode, ProjectOutcome]] = []
        for project in chosen:
            outcome = ProjectOutcome(project_name=project.name)
            report.outcomes.append(outcome)
            if not selection[project.name]:
                outcome.skipped_reason = "no submodules selected"
                continue
            if self._prepare_project(project, outcome):
                active.append((project, outcome))

        if not active:
            return report

        active_projects = [p for p, _ in active]
        report.shared = self.coordinator.synchronize(
            active_projects,
            {p.name: selection[p.name] for p in active_projects},
            self.decisions,
        )

        for project, outcome in active:
            self._process_project(project, outcome, selection[project.name], report)

        logger.info(
            f"Run finished: {sum(1 for o in report.outcomes if o.committed)} committed, "
            f"{len(report.created_prs)} pull request(s) created"
        )
        return report

    # --- Branch preparation ---
    def _prepare_project(self, project: ProjectNode, outcome: ProjectOutcome) -> bool:
        try:
            branch = self._resolve_branch(project)
        except SyncError as e:
            outcome.error = str(e)
            return False
        if branch is None:
            outcome.skipped_reason = "no feature branch chosen"
            return False
        outcome.branch_name = branch

        if self.decisions.confirm_update_feature_branch(project, branch):
            try:
                self.git_cache.get(project.path).pull(project.repository.remote_name, project.base_branch)
                logger.info(f"Feature branch {branch} of {project.name} updated from {project.base_branch}")
            except GitRepositoryError as e:
                outcome.error = f"Failed to update {branch} from {project.base_branch}: {e}"
                logger.error(outcome.error)
                return False
        return True

    def _resolve_branch(self, project: ProjectNode) -> Optional[str]:
        """Ask for a branch policy and resolve it, asking for a new name after a failure."""
        candidates = self.branch_manager.candidate_branches(project)
        policy = self.decisions.choose_branch_policy(project, candidates)
        if policy == BranchPolicy.KEEP_CURRENT:
            return self.branch_manager.resolve_branch(project, policy)
        if policy == BranchPolicy.SELECT:
            name = self.decisions.choose_existing_branch(project, candidates)
        else:
            name = self.decisions.new_branch_name(project)

        attempts = 0
        while True:
            if not name:
                return None
            try:
                return self.branch_manager.resolve_branch(project, policy, name)
            except (DuplicateBranchNameError, GitRepositoryError) as e:
                attempts += 1
                if attempts >= MAX_BRANCH_ATTEMPTS:
                    raise
                logger.warning(f"Could not use branch {name} in {project.name}: {e}")
                name = self.decisions.new_branch_name(project, str(e))
                policy = BranchPolicy.CREATE

    # --- Per-project pipeline ---
    def _process_project(
        self, project: ProjectNode, outcome: ProjectOutcome, submodule_names: List[str], report: SyncReport
    ) -> None:
        result = self.stager.stage_project(project, submodule_names, report.shared)
        outcome.stage_result = result
        if not result.has_changes:
            outcome.skipped_reason = "no submodule changes to commit"
            return

        try:
            self._commit_push_pr(project, outcome, report)
        except (CommitError, PushError) as e:
            outcome.error = str(e)
            logger.error(f"{project.name}: {e}")

    def _commit_push_pr(self, project: ProjectNode, outcome: ProjectOutcome, report: SyncReport) -> None:
        result = outcome.stage_result
        branch = outcome.branch_name
        gm = self.git_cache.get(project.path)

        if not self.decisions.confirm_commit(project, result):
            outcome.skipped_reason = "commit declined"
            logger.info(f"{project.name}: commit declined, staged changes left in the index")
            return
        message = result.message.render()
        try:
            gm.commit(message)
        except GitRepositoryError as e:
            raise CommitError(f"Commit failed in {project.name}: {e}") from e
        outcome.committed = True

        if not self.decisions.confirm_push(project, branch):
            outcome.skipped_reason = "push declined"
            return
        remote = project.repository.remote_name
        try:
            gm.push(remote, branch)
        except GitRepositoryError as e:
            raise PushError(f"Push of {branch} to {remote} failed in {project.name}: {e}") from e
        outcome.pushed = True

        if not self.decisions.confirm_create_pr(project):
            return
        self._create_pull_request(project, outcome, report, message)

    def _create_pull_request(
        self, project: ProjectNode, outcome: ProjectOutcome, report: SyncReport, description: str
    ) -> None:
        names = self.pr_gateway.provider_names() if self.pr_gateway else []
        if not names:
            logger.warning(f"{project.name}: no PR provider configured, skipping pull request")
            return
        provider_name = self.decisions.choose_pr_provider(project, names)
        if not provider_name:
            logger.warning(f"{project.name}: no PR provider chosen, skipping pull request")
            return

        title = self.decisions.pr_title(
            project, default_pr_title(project.name, self.decisions.task_id(project))
        )
        pending = PendingPullRequest(
            source_branch=outcome.branch_name,
            target_branch=project.base_branch,
            title=title,
            description=description or DEFAULT_DESCRIPTION,
            repository_id=project.repository.repository_id or "",
        )
        try:
            url = self.pr_gateway.create_pull_request(provider_name, pending)
        except ProviderConfigurationError as e:
            logger.warning(f"{project.name}: {e}")
            return
        except PrCreationError as e:
            outcome.error = str(e)
            logger.error(f"{project.name}: {e}")
            return

        if not url:
            logger.warning(f"{project.name}: pull request may have been created, but no URL was returned")
            return
        outcome.pr_url = url
        report.created_prs.append(CreatedPullRequest(project_name=project.name, url=url))
        logger.info(f"{project.name}: pull request created at {url}")
