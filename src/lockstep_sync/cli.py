"""
Command-line interface for the multi-repository submodule sync tool.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from pathlib import Path
from typing import Optional, Tuple, List
from datetime import datetime

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.tree import Tree

from .cli_prompt import CliDecisions
from .config import SyncSettings, load_config, resolve_config_path
from .decision_interface import DecisionProvider, PresetDecisions
from .git_manager import GitManagerCache
from .graph_builder import build_graph, select_projects, shared_submodules
from .models import OperationPresets, ProjectNode, SwitchResult, SyncError, SyncReport
from .pr_gateway import PullRequestGateway
from .branch_switcher import BranchSwitcher
from .sync_orchestrator import created_prs_markdown
from .tasks import RunContext, TaskName, default_registry
from . import __version__ as PACKAGE_VERSION


console = Console()
logger = logging.getLogger(__name__)


def _print_version(ctx, param, value):
    """Eager option callback to print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"lockstep-sync {PACKAGE_VERSION}")
    ctx.exit()


def _default_log_path() -> Path:
    """Determine default log file path (~/.lockstep-sync/lockstep-sync.log)."""
    env_path = os.environ.get("LOCKSTEP_SYNC_LOG")
    if env_path:
        p = Path(env_path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        return p
    base = Path.home() / ".lockstep-sync"
    base.mkdir(parents=True, exist_ok=True)
    return base / "lockstep-sync.log"


def setup_logging(verbose: bool = False, console_level: Optional[str] = None, log_file: Optional[Path] = None) -> Path:
    """Setup logging with a per-run file and a rotating aggregate file.

    Console logging is off unless --verbose or --log-level is given.
    Returns the aggregate log path.
    """
    provided = Path(log_file) if log_file else _default_log_path()
    if provided.exists() and provided.is_dir():
        base_dir = provided
        base_stem = "lockstep-sync"
        aggregate_path = base_dir / f"{base_stem}.log"
    else:
        base_dir = provided.parent
        base_stem = provided.stem or "lockstep-sync"
        aggregate_path = provided
    base_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    per_run_path = base_dir / f"{base_stem}-{timestamp}.log"

    root = logging.getLogger()
    # Clear existing handlers to avoid duplication in tests / repeated invocations
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    file_fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    run_file_handler = logging.FileHandler(str(per_run_path), encoding="utf-8")
    run_file_handler.setLevel(logging.DEBUG)
    run_file_handler.setFormatter(file_fmt)
    root.addHandler(run_file_handler)

    aggregate_handler = RotatingFileHandler(
        str(aggregate_path), maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    aggregate_handler.setLevel(logging.DEBUG)
    aggregate_handler.setFormatter(file_fmt)
    root.addHandler(aggregate_handler)

    if verbose or console_level:
        level_map = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warning": logging.WARNING,
            "error": logging.ERROR,
        }
        console_handler = RichHandler(console=console, rich_tracebacks=True)
        console_handler.setLevel(level_map.get((console_level or "info").lower(), logging.INFO))
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(console_handler)

    # GitPython is chatty at DEBUG
    logging.getLogger("git").setLevel(logging.INFO)
    return aggregate_path


def _maybe_print_log_notice(ctx: click.Context) -> None:
    """Inform user about logging destination and how to enable console logs."""
    if ctx.obj.get("verbose") or ctx.obj.get("console_level"):
        return
    console.print(
        f"[dim]Logs are written to {ctx.obj.get('log_path')}. Use -v or --log-level to see them here.[/dim]"
    )


def _load(ctx: click.Context) -> Tuple[SyncSettings, List[ProjectNode]]:
    settings = load_config(ctx.obj["config_path"])
    return settings, build_graph(settings)


@click.group()
@click.option(
    "--version",
    "-V",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose console logging (INFO)")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Console log level. By default, console logging is disabled.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (default: $LOCKSTEP_SYNC_CONFIG or ./config.json)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, log_level: Optional[str], config_path: Optional[Path]) -> None:
    """Lockstep Sync - update submodule links across many projects at once."""
    load_dotenv()
    log_path = setup_logging(verbose, console_level=log_level)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["console_level"] = log_level
    ctx.obj["log_path"] = log_path
    ctx.obj["config_path"] = resolve_config_path(config_path)
    logger.debug(f"CLI init: cwd={Path.cwd()} config={ctx.obj['config_path']}")


def _handle_errors(ctx: click.Context, action: str, error: BaseException) -> None:
    if isinstance(error, SyncError):
        console.print(f"\n❌ **{action} failed:** {error}", style="bold red")
        logger.debug(f"{action} aborted", exc_info=True)
        sys.exit(1)
    if isinstance(error, (click.Abort, KeyboardInterrupt)):
        console.print("\n\n🚫 **Operation cancelled by user**", style="bold yellow")
        logger.debug("Operation cancelled by user", exc_info=True)
        sys.exit(130)
    console.print(f"\n💥 **Unexpected Error:** {error}", style="bold red")
    if ctx.obj.get("verbose"):
        console.print_exception()
    logger.debug(f"Unexpected error during {action}", exc_info=True)
    sys.exit(1)


@cli.command()
@click.option("--project", "projects", multiple=True, help="Project to process. Repeatable.")
@click.option("--submodule", "submodules", multiple=True, help="Submodule to update. Repeatable.")
@click.option("--branch", default=None, help="Common feature branch: selected if it exists, created otherwise")
@click.option("--no-update-branch", is_flag=True, help="Do not pull the base branch into the feature branch")
@click.option("--no-commit", is_flag=True, help="Stage only; do not commit")
@click.option("--no-push", is_flag=True, help="Do not push the feature branch")
@click.option("--no-pr", is_flag=True, help="Do not create pull requests")
@click.option("--provider", default=None, help="PR provider name from prProviders")
@click.option("--task-id", default=None, help="Task id prefixed to the PR title")
@click.option(
    "--push-shared/--no-push-shared",
    default=None,
    help="Push submodules that are ahead of their remote after the shared pull",
)
@click.option("--yes", "-y", is_flag=True, help="Never prompt; use preset answers only")
@click.pass_context
def link(
    ctx: click.Context,
    projects: Tuple[str, ...],
    submodules: Tuple[str, ...],
    branch: Optional[str],
    no_update_branch: bool,
    no_commit: bool,
    no_push: bool,
    no_pr: bool,
    provider: Optional[str],
    task_id: Optional[str],
    push_shared: Optional[bool],
    yes: bool,
) -> None:
    """
    Pull submodules, stage their new links and commit, push and open PRs.

    Without options every step is asked interactively. Any option switches to
    preset answers; questions they do not cover are still asked unless --yes.

    Example: lockstep-sync link --branch feature/bump --task-id ABC-1
    """
    try:
        _maybe_print_log_notice(ctx)
        settings, graph = _load(ctx)
        interactive = CliDecisions(console)
        preset_mode = yes or any(
            [projects, submodules, branch, no_update_branch, no_commit, no_push, no_pr,
             provider, task_id, push_shared is not None]
        )
        decisions: DecisionProvider = interactive
        if preset_mode:
            presets = OperationPresets(
                branch_name=branch,
                update_feature_branch=not no_update_branch,
                commit_changes=not no_commit,
                push_to_remote=not no_push,
                create_pr=not no_pr,
                pr_provider=provider,
                task_id=task_id,
                push_shared_submodules=bool(push_shared),
            )
            decisions = PresetDecisions(
                presets,
                project_names=projects or None,
                submodule_names=submodules or None,
                fallback=None if yes else interactive,
            )

        context = RunContext(
            projects=tuple(graph),
            settings=settings,
            decisions=decisions,
            config_path=ctx.obj["config_path"],
            git_cache=GitManagerCache(),
            pr_gateway=PullRequestGateway(settings.pr_providers),
        )
        context = default_registry().run(TaskName.LINK_SUBMODULES, context)
        _display_report(context.report)
    except Exception as e:
        _handle_errors(ctx, "Link", e)


@cli.command()
@click.argument("branch")
@click.option("--project", "projects", multiple=True, help="Project to switch. Repeatable.")
@click.option("--submodule", "submodules", multiple=True, help="Submodule to switch. Repeatable.")
@click.option("--pull-projects", is_flag=True, help="Pull each project's base branch after switching")
@click.option("--pull-submodules", is_flag=True, help="Pull each distinct submodule's base branch once")
@click.pass_context
def switch(
    ctx: click.Context,
    branch: str,
    projects: Tuple[str, ...],
    submodules: Tuple[str, ...],
    pull_projects: bool,
    pull_submodules: bool,
) -> None:
    """Switch projects and their submodules to BRANCH."""
    try:
        _maybe_print_log_notice(ctx)
        _settings, graph = _load(ctx)
        selector = PresetDecisions(project_names=projects or None, submodule_names=submodules or None)
        chosen = select_projects(graph, selector.select_projects(graph))
        selection = {p.name: selector.select_submodules(p) for p in chosen}
        result = BranchSwitcher().switch(chosen, selection, branch, pull_projects, pull_submodules)
        _display_switch(result)
    except Exception as e:
        _handle_errors(ctx, "Switch", e)


@cli.command("change-remote")
@click.pass_context
def change_remote(ctx: click.Context) -> None:
    """Change remotes of projects and submodules, then save or display the config."""
    try:
        _maybe_print_log_notice(ctx)
        settings, graph = _load(ctx)
        context = RunContext(
            projects=tuple(graph),
            settings=settings,
            decisions=CliDecisions(console),
            config_path=ctx.obj["config_path"],
        )
        _display_task_result(default_registry().run(TaskName.CHANGE_REMOTE, context))
    except Exception as e:
        _handle_errors(ctx, "Remote change", e)


@cli.command()
@click.pass_context
def graph(ctx: click.Context) -> None:
    """Display projects, their submodules and the shared submodules."""
    try:
        _settings, projects = _load(ctx)
        shared = shared_submodules(projects)

        tree = Tree("📁 **Projects**")
        for project in projects:
            branch = tree.add(
                f"[cyan]{project.name}[/cyan] [dim]{project.path}[/dim] "
                f"({project.repository.remote_name}/{project.base_branch})"
            )
            for sub in project.submodules:
                marker = " [magenta](shared)[/magenta]" if sub.name in shared else ""
                branch.add(f"[yellow]{sub.name}[/yellow] ({sub.remote_name}/{sub.base_branch}){marker}")
        console.print(tree)

        if shared:
            table = Table(show_header=True, header_style="bold magenta")
            table.add_column("Shared submodule", style="yellow")
            table.add_column("Referenced by", style="cyan")
            for name, owners in shared.items():
                table.add_row(name, ", ".join(owners))
            console.print(table)
    except Exception as e:
        _handle_errors(ctx, "Graph", e)


@cli.command()
@click.pass_context
def tasks(ctx: click.Context) -> None:
    """Pick a task from a menu and run it interactively."""
    try:
        _maybe_print_log_notice(ctx)
        settings, projects = _load(ctx)
        registry = default_registry()
        names = registry.tasks()

        console.print("\n🧰 **Tasks**", style="bold blue")
        for i, task in enumerate(names, 1):
            console.print(f"  {i}. {task.description}")
        choice = click.prompt(
            "Choose a task", type=click.IntRange(1, len(names)), default=1
        )
        task = names[choice - 1]

        context = RunContext(
            projects=tuple(projects),
            settings=settings,
            decisions=CliDecisions(console),
            config_path=ctx.obj["config_path"],
            git_cache=GitManagerCache(),
        )
        _display_task_result(registry.run(task, context))
    except Exception as e:
        _handle_errors(ctx, "Task", e)


@cli.command()
def version() -> None:
    """Print the current lockstep-sync version."""
    console.print(f"lockstep-sync {PACKAGE_VERSION}")


def _display_task_result(context: RunContext) -> None:
    if context.report is not None:
        _display_report(context.report)
    if context.switch_result is not None:
        _display_switch(context.switch_result)
    if context.remote_change is not None:
        for label, reason in context.remote_change.failed.items():
            console.print(f"  ❌ {label}: {reason}", style="red")
        console.print(f"🔗 Changed remotes of {len(context.remote_change.changed)} repository(ies)")
    if context.backup_path is not None:
        console.print(f"💾 Configuration saved; backup at {context.backup_path}", style="green")
    if context.rendered_config is not None:
        console.print("\n📄 **Updated projects configuration**")
        console.print_json(context.rendered_config)


def _display_report(report: Optional[SyncReport]) -> None:
    """Display the per-project results of a link run."""
    if report is None:
        return
    if report.cancelled:
        console.print("Operation cancelled.")
        return

    failed_shared = [s for s in report.shared.values() if not s.ok]
    for sync in failed_shared:
        console.print(
            f"❌ Shared submodule [yellow]{sync.name}[/yellow] could not be updated; "
            f"skipped in every project: {sync.error}",
            style="red",
        )

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Project", style="cyan")
    table.add_column("Branch", style="green")
    table.add_column("Staged", justify="center")
    table.add_column("Commits", justify="right", style="yellow")
    table.add_column("Status", style="blue")

    for outcome in report.outcomes:
        result = outcome.stage_result
        if outcome.error:
            status = f"❌ {outcome.error}"
        elif outcome.pr_url:
            status = "✅ PR created"
        elif outcome.pushed:
            status = "✅ Pushed"
        elif outcome.committed:
            status = "✅ Committed"
        else:
            status = f"⏭️ {outcome.skipped_reason or 'Staged'}"
        table.add_row(
            outcome.project_name,
            outcome.branch_name or "-",
            result.summary if result else "-",
            str(result.total_commits) if result else "-",
            status,
        )
    console.print(table)

    if report.created_prs:
        console.print("\n🔀 **Created pull requests**")
        console.print(created_prs_markdown(report.created_prs), markup=False)


def _display_switch(result: SwitchResult) -> None:
    console.print(f"\n🌿 Switched {len(result.switched)} working tree(s) to {result.branch_name}")
    for label, reason in result.failed.items():
        console.print(f"  ❌ {label}: {reason}", style="red")


def main() -> None:
    """Main entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n\n🚫 **Operation cancelled by user**", style="bold yellow")
        logger.debug("Top-level cancellation (KeyboardInterrupt)", exc_info=True)
        sys.exit(130)
    except Exception as e:
        console.print(f"\n💥 **Unexpected error:** {e}", style="bold red")
        logger.debug("Unexpected error in main()", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
