"""
UI-agnostic decision interface for every choice the sync engine needs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from .models import (
    BranchPolicy,
    OperationPresets,
    ProjectNode,
    RemoteInfo,
    StageResult,
)


class DecisionProvider(ABC):
    """Abstract interface answering the engine's questions.

    Implementations may ask a human (see ``CliDecisions``) or return preset
    answers. The engine never renders prompts itself.
    """

    # --- Selection ---
    @abstractmethod
    def select_projects(self, projects: Sequence[ProjectNode]) -> List[str]:
        """Return the names of the projects to process."""
        pass

    @abstractmethod
    def select_submodules(self, project: ProjectNode) -> List[str]:
        """Return the names of the project's submodules to update."""
        pass

    @abstractmethod
    def confirm_plan(self, selection: Dict[str, List[str]]) -> bool:
        """
        Confirm the overall plan before any repository is touched.

        Args:
            selection: Mapping of project name to chosen submodule names

        Returns:
            True to proceed, False to cancel the run
        """
        pass

    # --- Branches ---
    @abstractmethod
    def choose_branch_policy(self, project: ProjectNode, candidates: List[str]) -> BranchPolicy:
        """
        Choose how the feature branch of a project is obtained.

        Args:
            project: The project being prepared
            candidates: Existing local branches other than the base branch

        Returns:
            The branch policy to apply
        """
        pass

    @abstractmethod
    def choose_existing_branch(self, project: ProjectNode, candidates: List[str]) -> str:
        pass

    @abstractmethod
    def new_branch_name(self, project: ProjectNode, previous_error: Optional[str] = None) -> Optional[str]:
        """
        Provide the name of a branch to create.

        Args:
            project: The project being prepared
            previous_error: Reason the last attempt failed, when retrying

        Returns:
            A branch name, or None to give up on this project
        """
        pass

    @abstractmethod
    def confirm_update_feature_branch(self, project: ProjectNode, branch_name: str) -> bool:
        """Ask whether to pull the base branch into the feature branch."""
        pass

    # --- Shared submodules ---
    @abstractmethod
    def confirm_push_shared_submodule(self, name: str, branch_name: str, ahead: int) -> bool:
        """Ask whether a shared submodule that is ahead of its remote should be pushed once."""
        pass

    # --- Commit / push / pull request ---
    @abstractmethod
    def confirm_commit(self, project: ProjectNode, result: StageResult) -> bool:
        pass

    @abstractmethod
    def confirm_push(self, project: ProjectNode, branch_name: str) -> bool:
        pass

    @abstractmethod
    def confirm_create_pr(self, project: ProjectNode) -> bool:
        pass

    @abstractmethod
    def choose_pr_provider(self, project: ProjectNode, provider_names: List[str]) -> Optional[str]:
        """Return a configured provider name, or None when none should be used."""
        pass

    @abstractmethod
    def task_id(self, project: ProjectNode) -> Optional[str]:
        pass

    @abstractmethod
    def pr_title(self, project: ProjectNode, default_title: str) -> str:
        pass

    # --- Remote change ---
    @abstractmethod
    def new_remote(self, label: str, current_name: str, remotes: List[RemoteInfo]) -> Optional[RemoteInfo]:
        """
        Ask for the remote a repository should use.

        Args:
            label: Display label of the repository (project or project/submodule)
            current_name: Remote name currently configured for it
            remotes: Remotes present in the working tree

        Returns:
            The new remote name and URL, or None to keep the current one
        """
        pass

    @abstractmethod
    def confirm_save_config(self, config_path: str) -> bool:
        """True to save updated projects to the config file, False to display them."""
        pass

    # --- Branch switch ---
    @abstractmethod
    def switch_branch_name(self) -> Optional[str]:
        pass

    @abstractmethod
    def confirm_pull_projects(self, branch_name: str) -> bool:
        pass

    @abstractmethod
    def confirm_pull_submodules(self, branch_name: str) -> bool:
        pass


class PresetDecisions(DecisionProvider):
    """Decision provider driven by ``OperationPresets`` instead of a human.

    Questions the presets cannot answer go to ``fallback`` when one is given;
    otherwise the safe answer is returned (keep, skip or give up).
    """

    def __init__(
        self,
        presets: Optional[OperationPresets] = None,
        project_names: Optional[Sequence[str]] = None,
        submodule_names: Optional[Sequence[str]] = None,
        fallback: Optional[DecisionProvider] = None,
    ) -> None:
        self.presets = presets or OperationPresets()
        self.project_names = list(project_names) if project_names else None
        self.submodule_names = list(submodule_names) if submodule_names else None
        self.fallback = fallback

    def select_projects(self, projects: Sequence[ProjectNode]) -> List[str]:
        if self.project_names is None:
            return [p.name for p in projects]
        # Unknown names are passed on so graph selection can reject them
        return list(self.project_names)

    def select_submodules(self, project: ProjectNode) -> List[str]:
        names = [s.name for s in project.submodules]
        if self.submodule_names is None:
            return names
        return [n for n in names if n in self.submodule_names]

    def confirm_plan(self, selection: Dict[str, List[str]]) -> bool:
        return True

    def choose_branch_policy(self, project: ProjectNode, candidates: List[str]) -> BranchPolicy:
        branch = self.presets.branch_name
        if not branch:
            return BranchPolicy.KEEP_CURRENT
        # A common branch name is reused where it already exists
        if branch in candidates:
            return BranchPolicy.SELECT
        return BranchPolicy.CREATE

    def choose_existing_branch(self, project: ProjectNode, candidates: List[str]) -> str:
        return self.presets.branch_name or ""

    def new_branch_name(self, project: ProjectNode, previous_error: Optional[str] = None) -> Optional[str]:
        if previous_error is None and self.presets.branch_name:
            return self.presets.branch_name
        if self.fallback is not None:
            return self.fallback.new_branch_name(project, previous_error)
        return None

    def confirm_update_feature_branch(self, project: ProjectNode, branch_name: str) -> bool:
        return self.presets.update_feature_branch

    def confirm_push_shared_submodule(self, name: str, branch_name: str, ahead: int) -> bool:
        return self.presets.push_shared_submodules

    def confirm_commit(self, project: ProjectNode, result: StageResult) -> bool:
        return self.presets.commit_changes

    def confirm_push(self, project: ProjectNode, branch_name: str) -> bool:
        return self.presets.push_to_remote

    def confirm_create_pr(self, project: ProjectNode) -> bool:
        return self.presets.create_pr

    def choose_pr_provider(self, project: ProjectNode, provider_names: List[str]) -> Optional[str]:
        if self.presets.pr_provider:
            return self.presets.pr_provider
        if len(provider_names) == 1:
            return provider_names[0]
        if self.fallback is not None and provider_names:
            return self.fallback.choose_pr_provider(project, provider_names)
        return None

    def task_id(self, project: ProjectNode) -> Optional[str]:
        return self.presets.task_id

    def pr_title(self, project: ProjectNode, default_title: str) -> str:
        return default_title

    def new_remote(self, label: str, current_name: str, remotes: List[RemoteInfo]) -> Optional[RemoteInfo]:
        if self.fallback is not None:
            return self.fallback.new_remote(label, current_name, remotes)
        return None

    def confirm_save_config(self, config_path: str) -> bool:
        return False

    def switch_branch_name(self) -> Optional[str]:
        return self.presets.branch_name

    def confirm_pull_projects(self, branch_name: str) -> bool:
        return self.presets.update_feature_branch

    def confirm_pull_submodules(self, branch_name: str) -> bool:
        return self.presets.update_feature_branch
