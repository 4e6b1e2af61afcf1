"""
Feature branch lifecycle: path and base branch checks, then create, select or keep.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .git_manager import GitManager, GitManagerCache
from .models import (
    BaseBranchMissingError,
    BranchOrigin,
    BranchPolicy,
    BranchStage,
    DuplicateBranchNameError,
    GitRepositoryError,
    PathNotFoundError,
    ProjectNode,
    SyncError,
)


logger = logging.getLogger(__name__)


class BranchLifecycleManager:
    """Resolves the feature branch of each project and records it on the project."""

    def __init__(self, git_cache: Optional[GitManagerCache] = None) -> None:
        self.git_cache = git_cache or GitManagerCache()

    def _get_gm(self, project: ProjectNode) -> GitManager:
        return self.git_cache.get(project.path)

    def check_repository(self, project: ProjectNode) -> None:
        """Verify the working tree path and the local base branch.

        Raises:
            PathNotFoundError: the project path does not exist
            BaseBranchMissingError: the base branch is not a local branch
        """
        state = project.branch_state
        if state.stage in (BranchStage.BASE_BRANCH_CHECKED, BranchStage.BRANCH_RESOLVED):
            return
        gm = self._get_gm(project)
        try:
            if not gm.path_exists():
                raise PathNotFoundError(f"Path {project.path} of project {project.name} does not exist")
            state.stage = BranchStage.PATH_CHECKED

            if not gm.branch_exists(project.base_branch):
                raise BaseBranchMissingError(
                    f"Base branch '{project.base_branch}' does not exist locally in {project.name}"
                )
            state.stage = BranchStage.BASE_BRANCH_CHECKED
        except SyncError as e:
            self._fail(project, e)
            raise

    def candidate_branches(self, project: ProjectNode) -> List[str]:
        """Local branches a feature branch can be selected from (base excluded)."""
        self.check_repository(project)
        return [b for b in self._get_gm(project).list_local_branches() if b != project.base_branch]

    def resolve_branch(
        self, project: ProjectNode, policy: BranchPolicy, branch_name: Optional[str] = None
    ) -> str:
        """
        Resolve the feature branch of a project according to policy.

        Args:
            project: Project whose branch state is updated in place
            policy: CREATE, SELECT or KEEP_CURRENT
            branch_name: Branch to create or select (ignored for KEEP_CURRENT)

        Returns:
            The resolved branch name

        Raises:
            PathNotFoundError, BaseBranchMissingError, DuplicateBranchNameError,
            GitRepositoryError: the project is left in the FAILED stage
        """
        state = project.branch_state
        if state.is_resolved:
            if branch_name and branch_name != state.branch_name and policy == BranchPolicy.CREATE:
                logger.warning(
                    f"{project.name} already uses branch {state.branch_name}; ignoring request for {branch_name}"
                )
            return state.branch_name

        if state.is_failed:
            # Retrying after a failed checkout
            logger.debug(f"Retrying branch resolution for {project.name}")
            state.stage = BranchStage.UNRESOLVED
            state.error = None

        self.check_repository(project)
        gm = self._get_gm(project)

        try:
            if policy == BranchPolicy.CREATE:
                name = self._create_branch(project, gm, branch_name)
                origin = BranchOrigin.CREATED
            elif policy == BranchPolicy.SELECT:
                name = self._select_branch(project, gm, branch_name)
                origin = BranchOrigin.SELECTED_EXISTING
            else:
                name = gm.get_current_branch()
                origin = BranchOrigin.KEPT_CURRENT
        except SyncError as e:
            self._fail(project, e)
            raise

        state.branch_name = name
        state.origin = origin
        state.stage = BranchStage.BRANCH_RESOLVED
        state.error = None
        logger.info(f"Feature branch of {project.name}: {name} ({origin.value})")
        return name

    def _create_branch(self, project: ProjectNode, gm: GitManager, branch_name: Optional[str]) -> str:
        if not branch_name:
            raise GitRepositoryError(f"No branch name given for {project.name}")
        if gm.branch_exists(branch_name):
            raise DuplicateBranchNameError(
                f"Branch '{branch_name}' already exists locally in {project.name}"
            )
        start_point = f"{project.repository.remote_name}/{project.base_branch}"
        try:
            gm.checkout_new_branch(branch_name, start_point)
        except GitRepositoryError:
            self._return_to_base(project, gm)
            raise
        return branch_name

    def _select_branch(self, project: ProjectNode, gm: GitManager, branch_name: Optional[str]) -> str:
        if not branch_name or not gm.branch_exists(branch_name):
            raise GitRepositoryError(f"Branch '{branch_name}' does not exist in {project.name}")
        gm.checkout_branch(branch_name)
        return branch_name

    def _return_to_base(self, project: ProjectNode, gm: GitManager) -> None:
        # Must never mask the original failure
        try:
            gm.checkout_branch(project.base_branch)
        except Exception as e:
            logger.debug(f"Could not return {project.name} to {project.base_branch}: {e}")

    def _fail(self, project: ProjectNode, error: Exception) -> None:
        state = project.branch_state
        state.stage = BranchStage.FAILED
        state.error = str(error)
        logger.error(f"Branch resolution failed for {project.name}: {error}")
