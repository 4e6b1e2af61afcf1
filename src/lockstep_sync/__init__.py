"""
Lockstep Sync - keep submodule links of many projects up to date in one run.

This package pulls every distinct submodule once, stages the new submodule
pointers in each referencing project with an accumulated commit message, and
sequences commit, push and pull request creation per project.
"""

__version__ = "0.1.0"

from .models import (
    BranchPolicy,
    OperationPresets,
    ProjectNode,
    StageResult,
    SyncError,
    SyncReport,
)
from .git_manager import GitManager, GitManagerCache
from .graph_builder import build_graph
from .branch_manager import BranchLifecycleManager
from .delta_stager import SubmoduleDeltaStager
from .submodule_coordinator import SubmoduleCoordinator
from .sync_orchestrator import SyncOrchestrator
from .pr_gateway import PullRequestGateway
from .decision_interface import DecisionProvider, PresetDecisions

__all__ = [
    "BranchPolicy",
    "OperationPresets",
    "ProjectNode",
    "StageResult",
    "SyncError",
    "SyncReport",
    "GitManager",
    "GitManagerCache",
    "build_graph",
    "BranchLifecycleManager",
    "SubmoduleDeltaStager",
    "SubmoduleCoordinator",
    "SyncOrchestrator",
    "PullRequestGateway",
    "DecisionProvider",
    "PresetDecisions",
]
