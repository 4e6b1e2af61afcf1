"""
Task registry: each task is an ordered list of handlers sharing an immutable run context.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .branch_switcher import BranchSwitcher
from .config import SyncSettings, render_projects, save_projects
from .decision_interface import DecisionProvider
from .git_manager import GitManagerCache
from .graph_builder import select_projects
from .models import ProjectNode, RemoteChangeResult, SwitchResult, SyncReport
from .pr_gateway import PullRequestGateway
from .remote_changer import RemoteChanger
from .sync_orchestrator import SyncOrchestrator


logger = logging.getLogger(__name__)


class TaskName(Enum):
    """Tasks that can be run from the task menu."""

    LINK_SUBMODULES = "link-submodules"
    CHANGE_REMOTE = "change-remote"
    SWITCH_BRANCH = "switch-branch"

    @property
    def description(self) -> str:
        return {
            TaskName.LINK_SUBMODULES: "Update submodule links in projects",
            TaskName.CHANGE_REMOTE: "Change remotes of projects and submodules",
            TaskName.SWITCH_BRANCH: "Switch projects and submodules to a branch",
        }[self]


@dataclass(frozen=True)
class RunContext:
    """Snapshot passed from one handler to the next; handlers return a new one."""

    projects: Tuple[ProjectNode, ...]
    settings: SyncSettings
    decisions: DecisionProvider
    config_path: Optional[Path] = None
    git_cache: Optional[GitManagerCache] = None
    pr_gateway: Optional[PullRequestGateway] = None
    report: Optional[SyncReport] = None
    remote_change: Optional[RemoteChangeResult] = None
    switch_result: Optional[SwitchResult] = None
    backup_path: Optional[Path] = None
    rendered_config: Optional[str] = None

    def cache(self) -> GitManagerCache:
        return self.git_cache or GitManagerCache()


class TaskHandler(ABC):
    """One step of a task."""

    @abstractmethod
    def handle(self, context: RunContext) -> RunContext:
        pass


class LinkSubmodulesHandler(TaskHandler):
    def handle(self, context: RunContext) -> RunContext:
        gateway = context.pr_gateway or PullRequestGateway(context.settings.pr_providers)
        orchestrator = SyncOrchestrator(context.decisions, gateway, context.cache())
        report = orchestrator.run(context.projects)
        return replace(context, report=report)


class RemoteChangeHandler(TaskHandler):
    def handle(self, context: RunContext) -> RunContext:
        names = context.decisions.select_projects(context.projects)
        if not names:
            logger.info("No projects selected for a remote change")
            return context
        chosen = [p.name for p in select_projects(context.projects, names)]
        result = RemoteChanger(context.cache()).change_remotes(context.projects, chosen, context.decisions)
        return replace(context, projects=tuple(result.projects), remote_change=result)


class ConfigPersistHandler(TaskHandler):
    """Saves changed projects to the config file, or renders them for display."""

    def handle(self, context: RunContext) -> RunContext:
        if context.remote_change is None or not context.remote_change.changed:
            return context
        if context.config_path and context.decisions.confirm_save_config(str(context.config_path)):
            backup = save_projects(context.config_path, context.projects)
            return replace(context, backup_path=backup)
        return replace(context, rendered_config=render_projects(context.projects))


class BranchSwitchHandler(TaskHandler):
    def handle(self, context: RunContext) -> RunContext:
        decisions = context.decisions
        branch = decisions.switch_branch_name()
        if not branch:
            logger.info("No branch given, nothing to switch")
            return context
        update_projects = decisions.confirm_pull_projects(branch)
        update_submodules = decisions.confirm_pull_submodules(branch)
        chosen = select_projects(context.projects, decisions.select_projects(context.projects))
        selection = {p.name: list(decisions.select_submodules(p)) for p in chosen}
        if not chosen or not decisions.confirm_plan(selection):
            logger.info("Branch switch cancelled")
            return context
        result = BranchSwitcher(context.cache()).switch(
            chosen, selection, branch, update_projects, update_submodules
        )
        return replace(context, switch_result=result)


HandlerFactory = Callable[[], TaskHandler]


class TaskRegistry:
    """Maps each TaskName to the ordered handlers that implement it."""

    def __init__(self, handlers: Optional[Dict[TaskName, Sequence[HandlerFactory]]] = None) -> None:
        self._handlers: Dict[TaskName, List[HandlerFactory]] = {
            name: list(factories) for name, factories in (handlers or {}).items()
        }

    def register(self, task: TaskName, *factories: HandlerFactory) -> None:
        self._handlers[task] = list(factories)

    def tasks(self) -> List[TaskName]:
        return list(self._handlers.keys())

    def handlers_for(self, task: TaskName) -> List[TaskHandler]:
        if task not in self._handlers:
            raise KeyError(f"No handlers registered for task {task.value}")
        return [factory() for factory in self._handlers[task]]

    def run(self, task: TaskName, context: RunContext) -> RunContext:
        """Run every handler of task in order, threading the context through."""
        logger.info(f"Running task {task.value}")
        for handler in self.handlers_for(task):
            context = handler.handle(context)
        return context


def default_registry() -> TaskRegistry:
    return TaskRegistry(
        {
            TaskName.LINK_SUBMODULES: [LinkSubmodulesHandler],
            TaskName.CHANGE_REMOTE: [RemoteChangeHandler, ConfigPersistHandler],
            TaskName.SWITCH_BRANCH: [BranchSwitchHandler],
        }
    )
