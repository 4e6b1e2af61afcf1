"""
Reassigns the remotes of projects and their submodules.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Union

from .decision_interface import DecisionProvider
from .git_manager import GitManagerCache
from .models import (
    GitRepositoryError,
    ProjectNode,
    RemoteChangeError,
    RemoteChangeResult,
    RemoteInfo,
    RepositoryRef,
    SubmoduleRef,
)


logger = logging.getLogger(__name__)


Snapshot = Union[RepositoryRef, SubmoduleRef]


class RemoteChanger:
    """Asks for a new remote for each selected repository and applies it.

    Projects are never modified in place: every change produces new
    ``RepositoryRef``/``SubmoduleRef`` snapshots and a new ``ProjectNode``.
    """

    def __init__(self, git_cache: Optional[GitManagerCache] = None) -> None:
        self.git_cache = git_cache or GitManagerCache()

    def change_remotes(
        self,
        projects: Sequence[ProjectNode],
        selected: Iterable[str],
        decisions: DecisionProvider,
    ) -> RemoteChangeResult:
        """
        Change remotes of the selected projects and all of their submodules.

        Args:
            projects: All projects, in configuration order
            selected: Names of the projects to change
            decisions: Supplies the new remote name and URL per repository

        Returns:
            RemoteChangeResult whose projects keep the original order
        """
        wanted = set(selected)
        result = RemoteChangeResult()
        for project in projects:
            if project.name not in wanted:
                result.projects.append(project)
                continue

            repository = self._change_one(project.name, project.repository, decisions, result)
            submodules = tuple(
                self._change_one(submodule.key, submodule, decisions, result)
                for submodule in project.submodules
            )
            result.projects.append(project.with_snapshots(repository, submodules))

        logger.info(f"Remotes changed for {len(result.changed)} repository(ies), {len(result.failed)} failed")
        return result

    def _change_one(
        self, label: str, ref: Snapshot, decisions: DecisionProvider, result: RemoteChangeResult
    ) -> Snapshot:
        gm = self.git_cache.get(ref.path)
        try:
            remotes = gm.get_remotes()
        except GitRepositoryError as e:
            result.failed[label] = str(e)
            logger.error(f"Cannot read remotes of {label}: {e}")
            return ref

        for remote in remotes:
            logger.info(f"{label}: {remote.name} -> {remote.url}")

        answer = decisions.new_remote(label, ref.remote_name or "origin", remotes)
        if answer is None or not answer.name or not answer.url:
            return ref

        try:
            self._apply(gm, answer, remotes)
        except RemoteChangeError as e:
            result.failed[label] = str(e)
            logger.error(f"{label}: {e}")
            return ref

        result.changed.append(label)
        logger.info(f"Remote for {label} changed to {answer.name} ({answer.url})")
        return ref.with_remote(answer.name, answer.url)

    @staticmethod
    def _apply(gm, answer: RemoteInfo, remotes: List[RemoteInfo]) -> None:
        try:
            if any(r.name == answer.name for r in remotes):
                gm.set_remote_url(answer.name, answer.url)
            else:
                gm.add_remote(answer.name, answer.url)
        except GitRepositoryError as e:
            raise RemoteChangeError(f"Failed to point {answer.name} at {answer.url}: {e}") from e
