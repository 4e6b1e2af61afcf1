"""
Switches projects and their submodules to a common branch.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence

from .git_manager import GitManagerCache
from .graph_builder import group_by_submodule, submodule_references
from .models import GitRepositoryError, ProjectNode, SwitchResult


logger = logging.getLogger(__name__)


class BranchSwitcher:
    """Checks out one branch everywhere, touching each distinct submodule's pull once."""

    def __init__(self, git_cache: Optional[GitManagerCache] = None) -> None:
        self.git_cache = git_cache or GitManagerCache()

    def switch(
        self,
        projects: Sequence[ProjectNode],
        selection: Optional[Mapping[str, Sequence[str]]],
        branch: str,
        update_projects: bool = False,
        update_submodules: bool = False,
    ) -> SwitchResult:
        """
        Switch the selected projects and submodules to branch.

        Order: one reference per distinct submodule (optionally pulled from its
        base branch), then every project (optionally pulled from its base),
        then every remaining submodule reference pulled from ``remote/branch``.
        Failures are recorded and processing continues.
        """
        result = SwitchResult(branch_name=branch)
        grouped = group_by_submodule(submodule_references(projects, selection))

        for name, refs in grouped.items():
            primary = refs[0]
            gm = self.git_cache.get(primary.path)
            try:
                gm.checkout_branch(branch)
                result.switched.append(primary.key)
                if update_submodules:
                    gm.pull(primary.remote_name, primary.base_branch)
                    result.updated.append(primary.key)
            except GitRepositoryError as e:
                result.failed[primary.key] = str(e)
                logger.error(f"Failed to switch submodule {name} to {branch}: {e}")

        for project in projects:
            gm = self.git_cache.get(project.path)
            try:
                gm.checkout_branch(branch)
                result.switched.append(project.name)
                if update_projects:
                    gm.pull(project.repository.remote_name, project.base_branch)
                    result.updated.append(project.name)
            except GitRepositoryError as e:
                result.failed[project.name] = str(e)
                logger.error(f"Failed to switch {project.name} to {branch}: {e}")

        for refs in grouped.values():
            for ref in refs[1:]:
                gm = self.git_cache.get(ref.path)
                try:
                    gm.checkout_branch(branch)
                    gm.pull(ref.remote_name, branch)
                    result.switched.append(ref.key)
                except GitRepositoryError as e:
                    result.failed[ref.key] = str(e)
                    logger.error(f"Failed to switch submodule {ref.key} to {branch}: {e}")

        logger.info(
            f"Switched {len(result.switched)} working tree(s) to {branch}; {len(result.failed)} failed"
        )
        return result
