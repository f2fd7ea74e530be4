"""CLI interface for specflow."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from specflow import __version__
from specflow.config import CONFIG_DIR_NAME, Config, get_specflow_dir
from specflow.core.documents import SpecDocumentStore
from specflow.core.models import EntityType, SpecPhase, TaskStatus
from specflow.core.state import StateManager
from specflow.git.status import detect_github_repo
from specflow.notifications.base import ConsoleNotifier
from specflow.sync.checkbox import format_change_summary
from specflow.sync.github_client import GitHubClientError
from specflow.sync.status import build_sync_report
from specflow.workflow.event_bus import HandlerRegistrationTimeoutError, configure_event_bus, get_event_bus_ready
from specflow.workflow.hints import remediation_hint
from specflow.workflow.orchestrator import PhaseOrchestrator, PhaseTransitionError, WorkflowError
from specflow.workflow.registration import WorkflowContext, register_builtin_handlers

app = typer.Typer(
    name="specflow",
    help="Move specs through their phases and keep git and GitHub in sync.",
    no_args_is_help=True,
)
console = Console()

PHASE_COLORS = {
    SpecPhase.REQUIREMENTS: "cyan",
    SpecPhase.DESIGN: "blue",
    SpecPhase.TASKS: "magenta",
    SpecPhase.IMPLEMENTATION: "yellow",
    SpecPhase.COMPLETED: "green",
}

TASK_COLORS = {
    TaskStatus.TODO: "dim",
    TaskStatus.IN_PROGRESS: "blue",
    TaskStatus.BLOCKED: "red",
    TaskStatus.REVIEW: "cyan",
    TaskStatus.DONE: "green",
}


def _config_path(project_root: Path) -> Path:
    return project_root / CONFIG_DIR_NAME / "config.yaml"


def _build_context(project_root: Path) -> WorkflowContext:
    config = Config.load(_config_path(project_root))
    state = StateManager(get_specflow_dir(project_root) / "state.db")
    return WorkflowContext(
        project_root=project_root,
        config=config,
        state=state,
        documents=SpecDocumentStore(project_root),
        notifier=ConsoleNotifier(console),
    )


async def _open_orchestrator(context: WorkflowContext) -> PhaseOrchestrator:
    """Register the built-in handlers on the process bus and wrap it in an orchestrator."""
    configure_event_bus(lambda bus: register_builtin_handlers(bus, context))
    bus = await get_event_bus_ready(context.config.registration_timeout)
    return PhaseOrchestrator(context.state, bus, context.documents, context.notifier)


def _fail(message: str, error: BaseException | None = None) -> typer.Exit:
    console.print(f"[red]Error:[/red] {message}")
    hint = remediation_hint(str(error) if error is not None else message)
    if hint:
        console.print(f"[dim]{hint}[/dim]")
    return typer.Exit(1)


def _root_cause(error: BaseException) -> BaseException:
    while error.__cause__ is not None:
        error = error.__cause__
    return error


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """specflow: spec-driven workflow automation."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=verbose)],
        force=True,
    )


@app.command()
def version() -> None:
    """Show the installed version."""
    console.print(f"specflow {__version__}")


@app.command()
def init(
    github_owner: Annotated[
        str | None,
        typer.Option("--github-owner", help="GitHub repository owner (default: from origin remote)"),
    ] = None,
    github_repo: Annotated[
        str | None,
        typer.Option("--github-repo", help="GitHub repository name (default: from origin remote)"),
    ] = None,
    project_number: Annotated[
        int | None,
        typer.Option("--project-number", help="GitHub Projects (v2) board number"),
    ] = None,
    base_branch: Annotated[
        str,
        typer.Option("--base-branch", help="Branch spec branches are cut from"),
    ] = "develop",
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing config"),
    ] = False,
) -> None:
    """Initialize specflow in the current project."""
    project_root = Path.cwd()
    config_path = _config_path(project_root)

    if config_path.exists() and not force:
        console.print(f"[yellow]Config already exists: {config_path}[/yellow]")
        console.print("[dim]Use --force to overwrite.[/dim]")
        return

    if not (github_owner and github_repo):
        detected = detect_github_repo(project_root)
        if detected:
            github_owner = github_owner or detected[0]
            github_repo = github_repo or detected[1]
            console.print(f"[dim]Detected GitHub repository {detected[0]}/{detected[1]}[/dim]")

    config = Config()
    config.branches.base_branch = base_branch
    config.github.owner = github_owner
    config.github.repo = github_repo
    config.github.project_number = project_number
    config.github.enabled = bool(github_owner and github_repo)
    config.save(config_path)

    StateManager(get_specflow_dir(project_root) / "state.db")
    console.print(f"[green]Created {config_path}[/green]")
    if config.github.enabled:
        console.print(f"GitHub sync enabled for {config.github.repo_slug}")
    else:
        console.print("[dim]GitHub sync disabled. Re-run with --github-owner and --github-repo to enable it.[/dim]")


@app.command()
def new(
    name: Annotated[str, typer.Argument(help="Spec name")],
    description: Annotated[
        str,
        typer.Option("--description", "-d", help="Short description"),
    ] = "",
) -> None:
    """Create a new spec in the requirements phase."""
    context = _build_context(Path.cwd())

    async def _create() -> None:
        orchestrator = await _open_orchestrator(context)
        spec = await orchestrator.create_spec(name, description)
        console.print(f"[green]Created spec {spec.id}[/green]")
        console.print(f"  Document: {context.documents.relative_path(spec.id)}")

    try:
        asyncio.run(_create())
    except HandlerRegistrationTimeoutError as e:
        raise _fail(str(e)) from e


@app.command()
def advance(
    spec_id: Annotated[str, typer.Argument(help="Spec ID")],
    phase: Annotated[SpecPhase, typer.Argument(help="Target phase")],
) -> None:
    """Move a spec to another phase and run its side effects."""
    context = _build_context(Path.cwd())

    async def _advance() -> None:
        orchestrator = await _open_orchestrator(context)
        result = await orchestrator.advance(spec_id, phase)
        if not result.changed:
            console.print(f"[yellow]Spec is already in {phase.value}[/yellow]")
            return

        color = PHASE_COLORS[result.new_phase]
        console.print(f"{result.old_phase.value} -> [{color}]{result.new_phase.value}[/{color}]")
        if result.spec.branch_name:
            console.print(f"  Branch: {result.spec.branch_name}")
        for error in result.handler_errors:
            console.print(f"  [yellow]Handler failed:[/yellow] {error}")

    try:
        asyncio.run(_advance())
    except PhaseTransitionError as e:
        raise _fail(f"{e} ({e.__cause__})", _root_cause(e)) from e
    except (WorkflowError, HandlerRegistrationTimeoutError) as e:
        raise _fail(str(e)) from e


@app.command()
def rename(
    spec_id: Annotated[str, typer.Argument(help="Spec ID")],
    name: Annotated[str, typer.Argument(help="New name")],
) -> None:
    """Rename a spec."""
    context = _build_context(Path.cwd())

    async def _rename() -> None:
        orchestrator = await _open_orchestrator(context)
        spec = await orchestrator.rename(spec_id, name)
        console.print(f"[green]Renamed spec to {spec.name}[/green]")

    try:
        asyncio.run(_rename())
    except (WorkflowError, HandlerRegistrationTimeoutError) as e:
        raise _fail(str(e)) from e


@app.command()
def show(
    spec_id: Annotated[str, typer.Argument(help="Spec ID")],
) -> None:
    """Show a spec with its tasks and GitHub links."""
    context = _build_context(Path.cwd())
    spec = context.state.get_spec(spec_id)
    if spec is None:
        raise _fail(f"Spec not found: {spec_id}")

    color = PHASE_COLORS[spec.phase]
    console.print(f"\n[bold]{spec.name}[/bold] ({spec.id})")
    console.print(f"  Phase: [{color}]{spec.phase.value}[/{color}]")
    if spec.description:
        console.print(f"  Description: {spec.description}")
    if spec.branch_name:
        console.print(f"  Branch: {spec.branch_name}")
    console.print(f"  Updated: {spec.updated_at.strftime('%Y-%m-%d %H:%M:%S')}")

    record = context.state.get_sync_record(EntityType.SPEC, spec_id)
    if record is not None:
        issue = f"#{record.github_number}" if record.github_number else "not linked"
        console.print(f"  Issue: {issue} [{record.sync_status.value}]")
        if record.pr_url:
            console.print(f"  Pull request: {record.pr_url}")
        if record.pr_merged_at:
            console.print(f"  Merged: {record.pr_merged_at.strftime('%Y-%m-%d %H:%M')}")

    tasks = context.state.list_tasks(spec_id)
    if tasks:
        table = Table(title="Tasks")
        table.add_column("Task ID")
        table.add_column("Title")
        table.add_column("Priority")
        table.add_column("Status")
        table.add_column("Issue")
        for task in tasks:
            t_color = TASK_COLORS.get(task.status, "white")
            table.add_row(
                task.id,
                task.title,
                str(task.priority),
                f"[{t_color}]{task.status.value}[/{t_color}]",
                f"#{task.github_issue_number}" if task.github_issue_number else "",
            )
        console.print(table)

    activity = context.state.get_activity(spec_id, limit=5)
    if activity:
        console.print("\n[bold]Recent activity[/bold]")
        for action, details, at in activity:
            console.print(f"  {at.strftime('%Y-%m-%d %H:%M')}  {action}  {details or ''}")


@app.command("list")
def list_specs(
    phase: Annotated[
        SpecPhase | None,
        typer.Option("--phase", "-p", help="Only specs in this phase"),
    ] = None,
) -> None:
    """List specs."""
    context = _build_context(Path.cwd())
    specs = context.state.list_specs(phase)
    if not specs:
        console.print("[yellow]No specs found[/yellow]")
        return

    table = Table(title="Specs")
    table.add_column("Spec ID")
    table.add_column("Name")
    table.add_column("Phase")
    table.add_column("Branch")
    table.add_column("Updated")

    for spec in specs:
        color = PHASE_COLORS[spec.phase]
        table.add_row(
            spec.short_id,
            spec.name,
            f"[{color}]{spec.phase.value}[/{color}]",
            spec.branch_name or "",
            spec.updated_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@app.command()
def sync(
    spec_id: Annotated[str, typer.Argument(help="Spec ID")],
    create: Annotated[
        bool,
        typer.Option("--create", help="Create the issue if the spec is not linked yet"),
    ] = False,
    from_issue: Annotated[
        bool,
        typer.Option("--from-issue", help="Pull name, state and checkboxes from the issue instead"),
    ] = False,
    sub_issues: Annotated[
        bool,
        typer.Option("--sub-issues", help="Also create a sub-issue for every task"),
    ] = False,
) -> None:
    """Synchronize a spec with its GitHub issue."""
    project_root = Path.cwd()
    if not _config_path(project_root).exists():
        raise _fail("specflow is not initialized in this directory")

    context = _build_context(project_root)
    sync_factory = context.sync_factory
    if sync_factory is None:
        raise _fail("GitHub sync is not initialized")

    async def _sync() -> bool:
        async with sync_factory() as service:
            if from_issue:
                result = await service.sync_issue_to_spec(spec_id)
            else:
                result = await service.sync_spec_to_issue(spec_id, create_if_missing=create)

            if not result.success:
                console.print(f"[red]{result.message}[/red]")
                if result.error and result.error != result.message:
                    console.print(f"[dim]{result.error}[/dim]")
                return False

            console.print(f"[green]{result.message}[/green]")
            if result.checkbox_changes:
                console.print(f"  Checkboxes: {format_change_summary(result.checkbox_changes)}")

            if sub_issues:
                sub = await service.sub_issues.create_sub_issues(spec_id)
                style = "green" if sub.success else "red"
                console.print(f"[{style}]{sub.message}[/{style}]")
                return sub.success
        return True

    try:
        ok = asyncio.run(_sync())
    except GitHubClientError as e:
        raise _fail(str(e), e) from e

    if not ok:
        raise typer.Exit(1)


@app.command()
def status() -> None:
    """Report how many specs are linked to a GitHub issue."""
    context = _build_context(Path.cwd())
    report = build_sync_report(context.state)

    rate_color = "green" if report.sync_rate == 100 else "yellow"
    console.print(f"Synced:      {report.synced}")
    console.print(f"Not synced:  {report.not_synced}")
    console.print(f"Sync errors: {len(report.errors)}")
    console.print(f"Sync rate:   [{rate_color}]{report.sync_rate}%[/{rate_color}]")
    if report.merged_pull_requests:
        console.print(f"Merged PRs:  {report.merged_pull_requests}")

    if report.errors:
        table = Table(title="Sync errors")
        table.add_column("Spec ID")
        table.add_column("Name")
        table.add_column("Error")
        for error in report.errors:
            table.add_row(error.spec_id[:8], error.spec_name, error.error_message)
        console.print(table)

    if report.not_synced_spec_ids:
        console.print("\n[bold]Not synced[/bold]")
        for not_synced_id in report.not_synced_spec_ids:
            console.print(f"  {not_synced_id}")


@app.command()
def cleanup(
    spec_id: Annotated[str, typer.Argument(help="Spec ID")],
) -> None:
    """Delete a spec's branch after its pull request has merged."""
    project_root = Path.cwd()
    if not _config_path(project_root).exists():
        raise _fail("specflow is not initialized in this directory")

    context = _build_context(project_root)
    branches = context.branches
    sync_factory = context.sync_factory
    if branches is None or sync_factory is None:
        raise _fail("GitHub sync is not initialized")

    async def _cleanup() -> bool:
        async with sync_factory() as service:
            result = await service.cleanup_merged_pull_request(spec_id, branches)

        if not result.success:
            console.print(f"[red]{result.message}[/red]")
            if result.error and result.error not in result.message:
                console.print(f"[dim]{result.error}[/dim]")
            return False

        console.print(f"[green]{result.message}[/green]")
        if result.branch_name and (result.local_deleted or result.remote_deleted):
            context.notifier.branch_removed(result.branch_name, local=result.local_deleted, remote=result.remote_deleted)
        return True

    try:
        ok = asyncio.run(_cleanup())
    except GitHubClientError as e:
        raise _fail(str(e), e) from e

    if not ok:
        raise typer.Exit(1)


@app.command("task-add")
def task_add(
    spec_id: Annotated[str, typer.Argument(help="Spec ID")],
    title: Annotated[str, typer.Argument(help="Task title")],
    description: Annotated[
        str,
        typer.Option("--description", "-d", help="Task description"),
    ] = "",
    priority: Annotated[
        int,
        typer.Option("--priority", "-p", min=1, max=5, help="1 (highest) to 5"),
    ] = 3,
) -> None:
    """Add a task to a spec."""
    context = _build_context(Path.cwd())

    async def _add() -> None:
        orchestrator = await _open_orchestrator(context)
        task = await orchestrator.add_task(spec_id, title, description, priority)
        console.print(f"[green]Created task {task.id}[/green]")

    try:
        asyncio.run(_add())
    except (WorkflowError, HandlerRegistrationTimeoutError) as e:
        raise _fail(str(e)) from e


@app.command("task-done")
def task_done(
    task_id: Annotated[str, typer.Argument(help="Task ID")],
) -> None:
    """Mark a task done (closes its sub-issue when linked)."""
    context = _build_context(Path.cwd())

    async def _done() -> None:
        orchestrator = await _open_orchestrator(context)
        task = await orchestrator.complete_task(task_id)
        console.print(f"[green]Task done:[/green] {task.title}")

    try:
        asyncio.run(_done())
    except (WorkflowError, HandlerRegistrationTimeoutError) as e:
        raise _fail(str(e)) from e


if __name__ == "__main__":
    app()
