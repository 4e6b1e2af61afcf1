"""
Builds the repository graph (projects and their submodule references) from configuration.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .config import ProjectSettings, SyncSettings
from .models import ConfigurationError, ProjectNode, RepositoryRef, SubmoduleRef


logger = logging.getLogger(__name__)


def build_project(settings: ProjectSettings) -> ProjectNode:
    """Build one project node, keeping submodule declaration order."""
    project_path = Path(settings.path).expanduser()
    repository = RepositoryRef(
        name=settings.name,
        path=project_path,
        base_branch=settings.base_branch,
        remote_name=settings.remote_name,
        remote_url=settings.remote_url,
        repository_id=settings.repository_id,
    )
    submodules = []
    for sub in settings.submodules:
        relative_path = sub.path or sub.name
        submodules.append(
            SubmoduleRef(
                name=sub.name,
                project_name=settings.name,
                path=project_path / relative_path,
                relative_path=relative_path,
                base_branch=sub.base_branch,
                remote_name=sub.remote_name,
                remote_url=sub.remote_url,
                repository_id=sub.repository_id,
            )
        )
    return ProjectNode(repository=repository, submodules=tuple(submodules))


def build_graph(settings: SyncSettings) -> List[ProjectNode]:
    """
    Resolve project configurations into project nodes.

    Only structural shape is checked here. Paths and branches are verified
    later, per repository, so that one broken project does not prevent the
    graph from being built for the others.
    """
    projects: List[ProjectNode] = []
    seen = set()
    for project_settings in settings.projects:
        if project_settings.name in seen:
            raise ConfigurationError(f"Duplicate project name in configuration: {project_settings.name}")
        seen.add(project_settings.name)
        node = build_project(project_settings)
        projects.append(node)
        logger.debug(
            f"Graph: {node.name} at {node.path} with {len(node.submodules)} submodule(s)"
        )
    logger.info(f"Built repository graph with {len(projects)} project(s)")
    return projects


def select_projects(projects: Sequence[ProjectNode], names: Optional[Iterable[str]]) -> List[ProjectNode]:
    """Return projects whose name is in names, in graph order (all when names is None)."""
    if names is None:
        return list(projects)
    wanted = set(names)
    unknown = wanted - {p.name for p in projects}
    if unknown:
        raise ConfigurationError(f"Unknown project(s): {', '.join(sorted(unknown))}")
    return [p for p in projects if p.name in wanted]


def submodule_references(
    projects: Sequence[ProjectNode],
    selection: Optional[Mapping[str, Sequence[str]]] = None,
) -> List[SubmoduleRef]:
    """Return every selected (project, submodule) reference in declaration order.

    `selection` maps project name to the submodule names chosen for it; a
    project missing from the mapping contributes all of its submodules.
    """
    refs: List[SubmoduleRef] = []
    for project in projects:
        chosen = None if selection is None else selection.get(project.name)
        for submodule in project.submodules:
            if chosen is None or submodule.name in chosen:
                refs.append(submodule)
    return refs


def group_by_submodule(references: Iterable[SubmoduleRef]) -> Dict[str, List[SubmoduleRef]]:
    """Group references by submodule name, ordered by first appearance."""
    grouped: Dict[str, List[SubmoduleRef]] = {}
    for ref in references:
        grouped.setdefault(ref.name, []).append(ref)
    return grouped


def unique_submodules(
    projects: Sequence[ProjectNode],
    selection: Optional[Mapping[str, Sequence[str]]] = None,
) -> List[str]:
    """Return the distinct submodule names referenced by the selected projects."""
    return list(group_by_submodule(submodule_references(projects, selection)).keys())


def shared_submodules(projects: Sequence[ProjectNode]) -> Dict[str, List[str]]:
    """Map submodule names referenced by two or more projects to those project names."""
    grouped = group_by_submodule(submodule_references(projects))
    return {
        name: [ref.project_name for ref in refs]
        for name, refs in grouped.items()
        if len(refs) > 1
    }
