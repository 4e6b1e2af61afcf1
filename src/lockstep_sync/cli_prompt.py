"""
CLI-specific implementation of the decision interface.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .decision_interface import DecisionProvider
from .models import BranchPolicy, ProjectNode, RemoteInfo, StageResult


def parse_multi_choice(raw: str, options: Sequence[str]) -> List[str]:
    """Parse a comma separated answer of numbers and/or names into option names.

    "all" (or an empty answer) selects every option; unknown tokens are ignored.
    Order follows ``options``.
    """
    raw = (raw or "").strip()
    if not raw or raw.lower() == "all":
        return list(options)
    picked = set()
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        if token.isdigit() and 1 <= int(token) <= len(options):
            picked.add(options[int(token) - 1])
        elif token in options:
            picked.add(token)
    return [o for o in options if o in picked]


class CliDecisions(DecisionProvider):
    """CLI implementation of the decision interface using click and rich."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def _multi_select(self, title: str, options: Sequence[str], labels: Optional[Sequence[str]] = None) -> List[str]:
        self.console.print(f"\n{title}", style="bold blue")
        for i, label in enumerate(labels or options, 1):
            self.console.print(f"  {i}. {label}")
        raw = click.prompt("Select (comma separated numbers or names, 'all')", default="all")
        return parse_multi_choice(raw, options)

    def _single_select(self, title: str, options: Sequence[str]) -> str:
        self.console.print(f"\n{title}", style="bold blue")
        for i, option in enumerate(options, 1):
            self.console.print(f"  {i}. {option}")
        valid = [str(i) for i in range(1, len(options) + 1)] + list(options)
        choice = click.prompt("Choose an option", type=click.Choice(valid), show_choices=False)
        if choice in options:
            return choice
        return options[int(choice) - 1]

    # --- Selection ---
    def select_projects(self, projects: Sequence[ProjectNode]) -> List[str]:
        names = [p.name for p in projects]
        labels = [f"{p.name} ({p.repository.repository_id or p.path})" for p in projects]
        return self._multi_select("📁 **Select projects**", names, labels)

    def select_submodules(self, project: ProjectNode) -> List[str]:
        if not project.submodules:
            return []
        names = [s.name for s in project.submodules]
        labels = [f"{s.name} ({s.base_branch})" for s in project.submodules]
        return self._multi_select(f"📦 **Submodules of {project.name} to update**", names, labels)

    def confirm_plan(self, selection: Dict[str, List[str]]) -> bool:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Project", style="cyan")
        table.add_column("Submodules", style="yellow")
        for project, submodules in selection.items():
            table.add_row(project, ", ".join(submodules) or "-")
        self.console.print(table)
        return click.confirm("Proceed?", default=True)

    # --- Branches ---
    def choose_branch_policy(self, project: ProjectNode, candidates: List[str]) -> BranchPolicy:
        self.console.print(f"\n🌿 **Feature branch for {project.name}**", style="bold yellow")
        choices = [
            ("create", f"Create a new feature branch from {project.base_branch}"),
            ("select", "Select an existing branch"),
            ("current", "Do not change the current branch"),
        ]
        if not candidates:
            choices = [c for c in choices if c[0] != "select"]
        for i, (_key, desc) in enumerate(choices, 1):
            self.console.print(f"  {i}. {desc}")

        keys = [key for key, _ in choices]
        choice = click.prompt(
            "Choose an option",
            type=click.Choice([str(i) for i in range(1, len(keys) + 1)] + keys),
            show_choices=False,
        )
        key = keys[int(choice) - 1] if choice.isdigit() else choice
        return {
            "create": BranchPolicy.CREATE,
            "select": BranchPolicy.SELECT,
            "current": BranchPolicy.KEEP_CURRENT,
        }[key]

    def choose_existing_branch(self, project: ProjectNode, candidates: List[str]) -> str:
        return self._single_select(f"Branches of {project.name}", candidates)

    def new_branch_name(self, project: ProjectNode, previous_error: Optional[str] = None) -> Optional[str]:
        if previous_error:
            self.console.print(f"⚠️  {previous_error}", style="yellow")
            if not click.confirm(f"Try another branch name for {project.name}?", default=True):
                return None
        name = click.prompt(f"Feature branch name for {project.name}", default="", show_default=False)
        return name.strip() or None

    def confirm_update_feature_branch(self, project: ProjectNode, branch_name: str) -> bool:
        return click.confirm(
            f"Update the feature branch {branch_name} from {project.base_branch}?", default=False
        )

    # --- Shared submodules ---
    def confirm_push_shared_submodule(self, name: str, branch_name: str, ahead: int) -> bool:
        panel = Panel(
            f"Submodule [cyan]{name}[/cyan] branch [green]{branch_name}[/green] is "
            f"[bold]{ahead}[/bold] commit(s) ahead of its remote.\n"
            "Pushing it once now lets every project reference a published commit.",
            title="Unpushed Submodule Commits",
            border_style="yellow",
        )
        self.console.print(panel)
        return click.confirm(f"Push {name}/{branch_name}?", default=True)

    # --- Commit / push / pull request ---
    def confirm_commit(self, project: ProjectNode, result: StageResult) -> bool:
        self.console.print(
            Panel(result.message.render().rstrip(), title=f"{project.name}: {result.summary}", border_style="green")
        )
        return click.confirm("Do you want to commit changes?", default=True)

    def confirm_push(self, project: ProjectNode, branch_name: str) -> bool:
        return click.confirm(
            f"Push {branch_name} to {project.repository.remote_name}?", default=True
        )

    def confirm_create_pr(self, project: ProjectNode) -> bool:
        return click.confirm("Do you want to create a pull request?", default=True)

    def choose_pr_provider(self, project: ProjectNode, provider_names: List[str]) -> Optional[str]:
        if not provider_names:
            return None
        if len(provider_names) == 1:
            return provider_names[0]
        return self._single_select("Select PR provider", provider_names)

    def task_id(self, project: ProjectNode) -> Optional[str]:
        value = click.prompt("Task id for the start of the title (Enter to skip)", default="", show_default=False)
        return value.strip() or None

    def pr_title(self, project: ProjectNode, default_title: str) -> str:
        return click.prompt("PR title", default=default_title).strip() or default_title

    # --- Remote change ---
    def new_remote(self, label: str, current_name: str, remotes: List[RemoteInfo]) -> Optional[RemoteInfo]:
        self.console.print(f"\n🔗 **Remotes of {label}**", style="bold blue")
        for remote in remotes:
            self.console.print(f"  • {remote.name} -> {remote.url}")
        name = click.prompt(f"Remote name for [{label}]", default=current_name or "origin").strip()
        url = click.prompt(f"New remote URL for [{label}] (Enter to keep)", default="", show_default=False).strip()
        if not name or not url:
            return None
        return RemoteInfo(name=name, url=url)

    def confirm_save_config(self, config_path: str) -> bool:
        return click.confirm(
            f"Save updated projects to {config_path}? (No displays them instead)", default=True
        )

    # --- Branch switch ---
    def switch_branch_name(self) -> Optional[str]:
        name = click.prompt("Branch to switch to").strip()
        return name or None

    def confirm_pull_projects(self, branch_name: str) -> bool:
        return click.confirm("Do you want to update project branches from their base?", default=False)

    def confirm_pull_submodules(self, branch_name: str) -> bool:
        return click.confirm("Do you want to update submodules?", default=False)
