"""
Pulls each distinct submodule once per run and fans the result out to every reference.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Tuple

from .decision_interface import DecisionProvider
from .git_manager import GitManager, GitManagerCache
from .graph_builder import group_by_submodule, submodule_references
from .models import (
    GitRepositoryError,
    ProjectNode,
    SharedSubmoduleSync,
    SubmoduleRef,
    SubmoduleUpdateError,
)


logger = logging.getLogger(__name__)


DEFAULT_MAX_WORKERS = 4


def _same_tree(a: Path, b: Path) -> bool:
    return Path(a).resolve() == Path(b).resolve()


class SubmoduleCoordinator:
    """Deduplicates submodule pulls across projects.

    Every distinct submodule name is checked out and pulled exactly once, in
    the working tree of its first reference (the primary). Pulls of different
    names run concurrently, bounded by ``max_workers``, and all of them finish
    before anything else happens. The primary's resulting commit is then
    optionally pushed once and fast-forwarded into every other reference.
    """

    def __init__(
        self, git_cache: Optional[GitManagerCache] = None, max_workers: int = DEFAULT_MAX_WORKERS
    ) -> None:
        self.git_cache = git_cache or GitManagerCache()
        self.max_workers = max(1, max_workers)

    def plan(
        self,
        projects: Sequence[ProjectNode],
        selection: Optional[Mapping[str, Sequence[str]]] = None,
    ) -> Dict[str, SharedSubmoduleSync]:
        """Group the selected references by submodule name; the first one is the primary."""
        grouped = group_by_submodule(submodule_references(projects, selection))
        return {
            name: SharedSubmoduleSync(name=name, primary=refs[0], references=list(refs))
            for name, refs in grouped.items()
        }

    def synchronize(
        self,
        projects: Sequence[ProjectNode],
        selection: Optional[Mapping[str, Sequence[str]]] = None,
        decisions: Optional[DecisionProvider] = None,
    ) -> Dict[str, SharedSubmoduleSync]:
        """
        Pull, optionally push, and fan out every distinct selected submodule.

        Args:
            projects: Projects taking part in the run
            selection: Project name -> submodule names (all submodules when absent)
            decisions: Asked before pushing a submodule that is ahead of its remote

        Returns:
            Sync results keyed by submodule name
        """
        syncs = self.plan(projects, selection)
        if not syncs:
            return syncs

        # GitManagers are created up front so workers never touch the cache
        jobs = [(sync, self.git_cache.get(sync.primary.path)) for sync in syncs.values()]
        workers = min(self.max_workers, len(jobs))
        logger.info(f"Pulling {len(jobs)} distinct submodule(s) with {workers} worker(s)")

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [(sync, pool.submit(self._pull_primary, sync.primary, gm)) for sync, gm in jobs]
            for sync, future in futures:
                try:
                    sync.synced_commit, sync.ahead = future.result()
                except (SubmoduleUpdateError, GitRepositoryError) as e:
                    sync.error = str(e)
        # Barrier: every pull above has completed

        for sync in syncs.values():
            if not sync.ok:
                affected = ", ".join(ref.project_name for ref in sync.references)
                logger.error(
                    f"Update of submodule '{sync.name}' failed; it will not be staged in any "
                    f"referencing project ({affected}): {sync.error}"
                )
                continue
            if sync.ahead > 0 and decisions is not None:
                self._maybe_push(sync, decisions)
            self._fan_out(sync)
        return syncs

    def _pull_primary(self, primary: SubmoduleRef, gm: GitManager) -> Tuple[str, int]:
        try:
            gm.checkout_branch(primary.base_branch)
            gm.pull(primary.remote_name, primary.base_branch)
        except GitRepositoryError as e:
            raise SubmoduleUpdateError(f"Failed to update submodule {primary.name}: {e}") from e
        head = gm.get_head_commit()
        ahead, _behind = gm.branch_ahead_behind(primary.base_branch, primary.remote_name)
        logger.info(f"Submodule {primary.name} at {head[:8]} ({ahead} ahead of {primary.remote_name})")
        return head, ahead

    def _maybe_push(self, sync: SharedSubmoduleSync, decisions: DecisionProvider) -> None:
        primary = sync.primary
        if not decisions.confirm_push_shared_submodule(sync.name, primary.base_branch, sync.ahead):
            logger.info(f"Not pushing submodule {sync.name} ({sync.ahead} local commit(s))")
            return
        try:
            self.git_cache.get(primary.path).push(primary.remote_name, primary.base_branch)
            sync.pushed = True
        except GitRepositoryError as e:
            logger.warning(f"Push of submodule {sync.name} failed; continuing with local commit: {e}")

    def _fan_out(self, sync: SharedSubmoduleSync) -> None:
        """Bring every non-primary reference to the synced commit without pulling again."""
        primary = sync.primary
        for ref in sync.references[1:]:
            if _same_tree(ref.path, primary.path):
                continue
            gm = self.git_cache.get(ref.path)
            try:
                gm.checkout_branch(ref.base_branch)
                try:
                    gm.fetch_remote(ref.remote_name)
                except GitRepositoryError as e:
                    logger.warning(f"Fetch refresh of {ref.key} failed: {e}")
                # git resolves a relative source against the fetching working tree
                gm.fetch_from(Path(primary.path).resolve(), primary.base_branch)
                gm.fast_forward_to(sync.synced_commit)
                logger.info(f"{ref.key} now at {sync.synced_commit[:8]}")
            except GitRepositoryError as e:
                sync.failed_references[ref.project_name] = f"could not sync {ref.key}: {e}"
                logger.error(f"Could not bring {ref.key} to {sync.synced_commit[:8]}: {e}")
