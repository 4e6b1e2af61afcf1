"""
Data models for the multi-repository submodule synchronization tool.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple


COMMIT_MESSAGE_HEADER = "feat(submodules): update links"


class BranchPolicy(Enum):
    """How a feature branch is obtained for a repository."""

    CREATE = "create"
    SELECT = "select"
    KEEP_CURRENT = "keep-current"


class BranchOrigin(Enum):
    """Where a resolved feature branch came from."""

    CREATED = "created"
    SELECTED_EXISTING = "selected-existing"
    KEPT_CURRENT = "kept-current"


class BranchStage(Enum):
    """Lifecycle stages of branch resolution for one repository."""

    UNRESOLVED = "unresolved"
    PATH_CHECKED = "path-checked"
    BASE_BRANCH_CHECKED = "base-branch-checked"
    BRANCH_RESOLVED = "branch-resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class RepositoryRef:
    """Identifies one git working tree tracked by the tool."""

    name: str
    path: Path
    base_branch: str
    remote_name: str = "origin"
    remote_url: Optional[str] = None
    repository_id: Optional[str] = None

    def with_remote(self, remote_name: str, remote_url: Optional[str]) -> RepositoryRef:
        """Return a new snapshot with the remote reassigned."""
        return replace(self, remote_name=remote_name, remote_url=remote_url)


@dataclass(frozen=True)
class SubmoduleRef:
    """A submodule working tree referenced by one project.

    `relative_path` is the gitlink path inside the parent repository and
    `project_name` is the back-reference to the owning project.
    """

    name: str
    project_name: str
    path: Path
    relative_path: str
    base_branch: str
    remote_name: str = "origin"
    remote_url: Optional[str] = None
    repository_id: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.project_name}/{self.name}"

    def with_remote(self, remote_name: str, remote_url: Optional[str]) -> SubmoduleRef:
        """Return a new snapshot with the remote reassigned."""
        return replace(self, remote_name=remote_name, remote_url=remote_url)


@dataclass
class FeatureBranchState:
    """Branch resolution state carried by a project for the duration of a run."""

    branch_name: str = ""
    origin: Optional[BranchOrigin] = None
    stage: BranchStage = BranchStage.UNRESOLVED
    error: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.stage == BranchStage.BRANCH_RESOLVED and bool(self.branch_name)

    @property
    def is_failed(self) -> bool:
        return self.stage == BranchStage.FAILED


@dataclass
class ProjectNode:
    """A project repository plus its ordered submodule references."""

    repository: RepositoryRef
    submodules: Tuple[SubmoduleRef, ...] = ()
    branch_state: FeatureBranchState = field(default_factory=FeatureBranchState)

    @property
    def name(self) -> str:
        return self.repository.name

    @property
    def path(self) -> Path:
        return self.repository.path

    @property
    def base_branch(self) -> str:
        return self.repository.base_branch

    def get_submodule(self, name: str) -> Optional[SubmoduleRef]:
        for submodule in self.submodules:
            if submodule.name == name:
                return submodule
        return None

    def with_snapshots(
        self, repository: RepositoryRef, submodules: Tuple[SubmoduleRef, ...]
    ) -> ProjectNode:
        """Return a new node carrying updated snapshots and the same branch state."""
        return ProjectNode(
            repository=repository, submodules=tuple(submodules), branch_state=self.branch_state
        )


@dataclass(frozen=True)
class CommitSummary:
    """One commit title within a submodule delta."""

    hash: str
    title: str


@dataclass
class SubmoduleDelta:
    """Commit range between a submodule's pinned pointer and its new head."""

    submodule: SubmoduleRef
    previous_commit: Optional[str]
    current_commit: str
    commit_log: List[CommitSummary] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.commit_log)

    @property
    def is_empty(self) -> bool:
        return self.previous_commit == self.current_commit or self.total == 0


@dataclass
class CommitMessage:
    """Aggregate commit message built from staged submodule deltas."""

    header: str = COMMIT_MESSAGE_HEADER
    sections: List[Tuple[str, List[str]]] = field(default_factory=list)

    def add_delta(self, delta: SubmoduleDelta) -> None:
        titles = [c.title for c in delta.commit_log]
        self.sections.append((delta.submodule.name, titles))

    @property
    def is_empty(self) -> bool:
        return not self.sections

    def render(self) -> str:
        lines = [self.header]
        for name, titles in self.sections:
            lines.append("")
            lines.append(f"{name}:")
            lines.extend(f"- {title}" for title in titles)
        return "\n".join(lines) + "\n"

    def __str__(self) -> str:
        return self.render()


@dataclass
class StageResult:
    """Outcome of staging submodule deltas for one project."""

    project_name: str
    message: CommitMessage = field(default_factory=CommitMessage)
    selected: List[str] = field(default_factory=list)
    staged: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    deltas: List[SubmoduleDelta] = field(default_factory=list)

    @property
    def total_commits(self) -> int:
        return sum(d.total for d in self.deltas if d.submodule.name in self.staged)

    @property
    def has_changes(self) -> bool:
        return bool(self.staged)

    @property
    def summary(self) -> str:
        return f"{len(self.staged)} of {len(self.selected)} submodules staged"


@dataclass(frozen=True)
class PendingPullRequest:
    """A pull/merge request ready to be handed to a provider."""

    source_branch: str
    target_branch: str
    title: str
    description: str
    repository_id: str


@dataclass(frozen=True)
class CreatedPullRequest:
    project_name: str
    url: str


@dataclass
class SharedSubmoduleSync:
    """Result of the single pull of a submodule shared by several projects."""

    name: str
    primary: SubmoduleRef
    references: List[SubmoduleRef] = field(default_factory=list)
    synced_commit: Optional[str] = None
    ahead: int = 0
    pushed: bool = False
    error: Optional[str] = None
    # project name -> reason, for references that could not observe the synced commit
    failed_references: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None and self.synced_commit is not None

    def is_ready_for(self, project_name: str) -> bool:
        return self.ok and project_name not in self.failed_references

    def failure_for(self, project_name: str) -> Optional[str]:
        if self.error:
            return f"shared update of '{self.name}' failed: {self.error}"
        return self.failed_references.get(project_name)


@dataclass
class OperationPresets:
    """Answers applied to every selected project in preset-driven runs."""

    branch_name: Optional[str] = None
    update_feature_branch: bool = True
    commit_changes: bool = True
    push_to_remote: bool = True
    create_pr: bool = True
    pr_provider: Optional[str] = None
    task_id: Optional[str] = None
    push_shared_submodules: bool = False


@dataclass
class ProjectOutcome:
    """What happened to one project during a run."""

    project_name: str
    branch_name: str = ""
    stage_result: Optional[StageResult] = None
    committed: bool = False
    pushed: bool = False
    pr_url: Optional[str] = None
    skipped_reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class SyncReport:
    """Summary of a submodule-linking run."""

    outcomes: List[ProjectOutcome] = field(default_factory=list)
    shared: Dict[str, SharedSubmoduleSync] = field(default_factory=dict)
    created_prs: List[CreatedPullRequest] = field(default_factory=list)
    cancelled: bool = False

    def outcome_for(self, project_name: str) -> Optional[ProjectOutcome]:
        for outcome in self.outcomes:
            if outcome.project_name == project_name:
                return outcome
        return None


@dataclass(frozen=True)
class RemoteInfo:
    """A configured git remote of a working tree."""

    name: str
    url: str


@dataclass
class SwitchResult:
    """Working trees switched (or pulled) by a branch switch, and the failures."""

    branch_name: str
    switched: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


@dataclass
class RemoteChangeResult:
    """New project snapshots after a remote change, in the original order."""

    projects: List[ProjectNode] = field(default_factory=list)
    changed: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


class SyncError(Exception):
    """Base exception for synchronization operations."""

    pass


class ConfigurationError(SyncError):
    """Malformed or unreadable configuration; fatal to the whole run."""

    pass


class GitRepositoryError(SyncError):
    """Exception raised for Git repository related errors."""

    pass


class PathNotFoundError(SyncError):
    """The working tree path of a repository does not exist."""

    pass


class BaseBranchMissingError(SyncError):
    """The configured base branch does not exist locally."""

    pass


class DuplicateBranchNameError(SyncError):
    """A branch to be created already exists locally."""

    pass


class SubmoduleUpdateError(SyncError):
    """Checkout or pull of a submodule failed."""

    pass


class StagingError(SyncError):
    pass


class CommitError(SyncError):
    pass


class PushError(SyncError):
    pass


class PrCreationError(SyncError):
    pass


class ProviderConfigurationError(SyncError):
    """A pull request provider is missing, unknown or incompletely configured."""

    pass


class RemoteChangeError(SyncError):
    pass
