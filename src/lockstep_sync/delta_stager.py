"""
Pulls submodules, computes the delta against the parent's pinned pointer and stages it.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence

from .git_manager import GitManagerCache
from .models import (
    CommitMessage,
    GitRepositoryError,
    ProjectNode,
    SharedSubmoduleSync,
    StageResult,
    StagingError,
    SubmoduleDelta,
    SubmoduleRef,
    SubmoduleUpdateError,
)


logger = logging.getLogger(__name__)


class SubmoduleDeltaStager:
    """Stages changed submodule pointers of one project and accumulates the commit message."""

    def __init__(self, git_cache: Optional[GitManagerCache] = None) -> None:
        self.git_cache = git_cache or GitManagerCache()

    def update_submodule(self, submodule: SubmoduleRef) -> str:
        """Checkout the submodule's base branch, pull it and return the new HEAD."""
        gm = self.git_cache.get(submodule.path)
        try:
            gm.checkout_branch(submodule.base_branch)
            gm.pull(submodule.remote_name, submodule.base_branch)
            return gm.get_head_commit()
        except GitRepositoryError as e:
            raise SubmoduleUpdateError(f"Failed to update submodule {submodule.key}: {e}") from e

    def compute_delta(self, project: ProjectNode, submodule: SubmoduleRef) -> SubmoduleDelta:
        """Build the delta between the pointer recorded in the project and the submodule HEAD."""
        project_gm = self.git_cache.get(project.path)
        submodule_gm = self.git_cache.get(submodule.path)
        try:
            previous = project_gm.get_submodule_pointer(submodule.relative_path)
            current = submodule_gm.get_head_commit()
        except GitRepositoryError as e:
            raise StagingError(f"Cannot read pointers of {submodule.key}: {e}") from e

        if previous is None:
            raise StagingError(
                f"{project.name} has no submodule entry at '{submodule.relative_path}' in HEAD"
            )
        if previous == current:
            return SubmoduleDelta(submodule=submodule, previous_commit=previous, current_commit=current)

        try:
            log = submodule_gm.get_commit_log(previous, current)
        except GitRepositoryError as e:
            raise StagingError(f"Cannot read commit range of {submodule.key}: {e}") from e
        return SubmoduleDelta(
            submodule=submodule, previous_commit=previous, current_commit=current, commit_log=log
        )

    def stage_project(
        self,
        project: ProjectNode,
        submodule_names: Sequence[str],
        synced: Optional[Mapping[str, SharedSubmoduleSync]] = None,
    ) -> StageResult:
        """
        Stage every selected submodule of a project, in declaration order.

        Submodules present in ``synced`` were already pulled once for the whole
        run and are not pulled again; a failed shared sync skips them here.
        One failing submodule never stops the others.

        Args:
            project: The parent project, already on its feature branch
            submodule_names: Names of the submodules selected for update
            synced: Shared pull results keyed by submodule name

        Returns:
            StageResult with the accumulated commit message
        """
        synced = synced or {}
        result = StageResult(project_name=project.name, message=CommitMessage())
        wanted = set(submodule_names)
        project_gm = self.git_cache.get(project.path)

        for submodule in project.submodules:
            if submodule.name not in wanted:
                continue
            result.selected.append(submodule.name)

            shared = synced.get(submodule.name)
            try:
                if shared is not None:
                    if not shared.is_ready_for(project.name):
                        raise SubmoduleUpdateError(shared.failure_for(project.name) or "shared update failed")
                else:
                    self.update_submodule(submodule)

                delta = self.compute_delta(project, submodule)
                result.deltas.append(delta)
                if delta.is_empty:
                    logger.info(f"{submodule.key}: no new commits, nothing to stage")
                    result.unchanged.append(submodule.name)
                    continue

                try:
                    project_gm.add_paths([submodule.relative_path])
                except GitRepositoryError as e:
                    raise StagingError(f"Failed to stage {submodule.key}: {e}") from e
            except (SubmoduleUpdateError, StagingError) as e:
                logger.error(f"Skipping submodule {submodule.key}: {e}")
                result.failed[submodule.name] = str(e)
                continue

            result.message.add_delta(delta)
            result.staged.append(submodule.name)
            logger.info(
                f"{submodule.key}: staged {delta.total} commit(s) "
                f"{(delta.previous_commit or '')[:8]}..{delta.current_commit[:8]}"
            )

        logger.info(f"{project.name}: {result.summary}")
        return result
