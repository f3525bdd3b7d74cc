"""Command-line interface for dotlink."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import load_settings
from .editor import GroupEditor, parse_extract_spec, parse_platforms
from .engine import Reconciler, ReconcileResult
from .errors import DirtyWorkingTree, DotlinkError, GroupNotFound, ManifestMissing
from .manifest import load_manifest
from .models import Action, AddedPath, ExtractionState, GroupRemoval, LinkState, RemoveAction
from .platforms import describe_platform, resolve_platform
from .report import GroupListing, RunReport, describe_manifest
from .vcs import PullOutcome, require_git

app = typer.Typer(help="Manage dotfiles as symlinks into a version-controlled repository")
manage_app = typer.Typer(help="Add, remove and list configuration groups")
app.add_typer(manage_app, name="manage")

console = Console()
err_console = Console(stderr=True)

REPO_HELP = "Repository root (defaults to $DOTLINK_REPO or the current directory)"
DEBUG_HELP = "Show debug logging"


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Check that you can write to the home directory and repository.")
        raise typer.Exit(code=1)
    if isinstance(exc, ManifestMissing):
        console.print(f"[red]{exc}[/red]")
        console.print("[yellow]Use 'dotlink manage add <name> <path>...' to create the first group.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, DirtyWorkingTree):
        console.print("[yellow]Repository has uncommitted changes:[/yellow]")
        for line in exc.changes:
            console.print(f"  {line}", markup=False)
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    if isinstance(exc, DotlinkError):
        console.print(str(exc), style="red", markup=False)
        if isinstance(exc, GroupNotFound):
            console.print("[yellow]Run 'dotlink manage list' to see configured groups.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, OSError):
        console.print(f"Filesystem error: {exc}", style="red", markup=False)
        raise typer.Exit(code=1)
    raise exc


_ACTION_STYLES = {
    Action.LINKED: "green",
    Action.IMPORTED: "green",
    Action.EXTRACTED: "green",
    Action.INITIALIZED: "green",
    Action.SYNCED: "green",
    Action.UNCHANGED: "cyan",
    Action.VERIFIED: "cyan",
    Action.SKIPPED: "dim",
    Action.FAILED: "red",
}


def _format_outcomes(report: RunReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Group")
    table.add_column("Path", overflow="fold")
    table.add_column("Action")
    table.add_column("Issue")
    table.add_column("Details", overflow="fold")

    for outcome in report.outcomes():
        style = _ACTION_STYLES.get(outcome.action, "white")
        label = outcome.action.value
        if outcome.dry_run and outcome.action is Action.SYNCED:
            label = f"would {label}"
        table.add_row(
            outcome.group,
            str(outcome.home_path),
            f"[{style}]{label}[/{style}]",
            f"[red]{outcome.issue.value}[/red]" if outcome.issue else "",
            outcome.details or "",
        )

    console.print(table)


def _format_group_summary(report: RunReport) -> None:
    for group in report.groups:
        if group.ok:
            console.print(f"[green]Configuration '{group.name}' is in place ({group.processed} items)[/green]")
        else:
            console.print(
                f"[yellow]Configuration '{group.name}' has {group.issue_count} issue(s) "
                f"({group.processed} succeeded)[/yellow]"
            )


def _format_pruned(result: ReconcileResult) -> None:
    if result.pruned:
        console.print(f"Removed {len(result.pruned)} old backup(s)")


@app.command()
def install(
    repo: Path | None = typer.Option(None, "--repo", "-r", help=REPO_HELP),
    debug: bool = typer.Option(False, "--debug", help=DEBUG_HELP),
) -> None:
    """Link every configured source into the home directory, importing existing files on first run."""

    _configure_logging(debug)
    try:
        settings = load_settings(repo)
        manifest = load_manifest(settings.manifest_path)
        platform = resolve_platform()
        console.print(f"Repository: {settings.repo_root}", markup=False)
        console.print(f"Platform: {describe_platform(platform)}")
        result = Reconciler(settings, platform).install(manifest)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    _format_outcomes(result.report)
    _format_group_summary(result.report)
    _format_pruned(result)

    report = result.report
    console.print("Installation complete!")
    console.print(f"[green]Successful configurations: {report.succeeded}[/green]")
    if not report.ok:
        console.print(f"[yellow]Failed configurations: {report.total - report.succeeded}[/yellow]")
        raise typer.Exit(code=1)


@app.command()
def update(
    dry_run: bool = typer.Option(False, "--dry-run", "-d", help="Show what would be done without making changes"),
    force: bool = typer.Option(False, "--force", "-f", help="Update even if the repository has local changes"),
    skip_pull: bool = typer.Option(False, "--skip-pull", "-s", help="Skip git pull and only verify/sync"),
    repo: Path | None = typer.Option(None, "--repo", "-r", help=REPO_HELP),
    debug: bool = typer.Option(False, "--debug", help=DEBUG_HELP),
) -> None:
    """Pull the repository, verify symlinks and re-sync extracted fields."""

    _configure_logging(debug)
    try:
        if not skip_pull:
            require_git()
        settings = load_settings(repo)
        manifest = load_manifest(settings.manifest_path)
        if dry_run:
            console.print("[yellow]Running in dry-run mode (no changes will be made)[/yellow]")
        if skip_pull:
            console.print("Skipping git pull (--skip-pull specified)")
        result = Reconciler(settings, resolve_platform()).update(
            manifest, dry_run=dry_run, skip_pull=skip_pull, force=force
        )
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if result.pull is not None:
        if result.pull.outcome is PullOutcome.ALREADY_CURRENT:
            console.print("Already up to date")
        else:
            console.print(f"[green]Updated from {result.pull.before[:12]} to {result.pull.after[:12]}[/green]")
            for line in result.pull.log:
                console.print(f"  {line}", markup=False)
    elif dry_run and not skip_pull:
        console.print("[yellow]Would pull latest changes[/yellow]")

    _format_outcomes(result.report)
    _format_pruned(result)

    report = result.report
    if report.ok:
        console.print(f"[green]All configurations are up to date ({report.succeeded}/{report.total})[/green]")
        return

    console.print(f"[yellow]Some configurations need attention ({report.succeeded}/{report.total} successful)[/yellow]")
    console.print("Run 'dotlink install' to fix any issues")
    raise typer.Exit(code=1)


def _format_added(name: str, added: Iterable[AddedPath]) -> None:
    console.print(f"[green]Added configuration '{name}' to manifest[/green]")
    for item in added:
        if item.extract:
            console.print(f"Skipping copy of {item.path} (will use extraction instead)", markup=False)
        elif item.copied_to is not None:
            console.print(f"Copied {item.kind.value}: {item.path} -> {item.copied_to}", markup=False)
    console.print("Run 'dotlink install' to create symlinks")


def _format_removal(removal: GroupRemoval) -> None:
    for result in removal.results:
        if result.action is RemoveAction.UNLINKED:
            console.print(f"[green]Removed symlink:[/green] {result.path}")
        elif result.action is RemoveAction.KEPT:
            console.print(f"[yellow]Not a symlink, skipping:[/yellow] {result.path}")
    if removal.archive is not None:
        console.print(f"[green]Archived configuration to:[/green] {removal.archive}")
    console.print(f"[green]Removed configuration '{removal.name}' from manifest[/green]")


@manage_app.command("add")
def manage_add(
    name: str = typer.Argument(..., help="Configuration name (letters, digits, '_' and '-')"),
    paths: list[str] = typer.Argument(..., help="Files or directories to manage"),
    extract: list[str] = typer.Option(None, "--extract", help="Extract a JSON field into its own file (FIELD:TARGET)"),
    platform: list[str] = typer.Option(None, "--platform", help="Restrict to platforms (linux, darwin, wsl)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Keep paths that do not exist without asking"),
    repo: Path | None = typer.Option(None, "--repo", "-r", help=REPO_HELP),
    debug: bool = typer.Option(False, "--debug", help=DEBUG_HELP),
) -> None:
    """Add a new configuration group to the manifest."""

    _configure_logging(debug)

    def confirm_missing(path: Path) -> bool:
        if yes:
            return True
        return typer.confirm(f"Path does not exist: {path}. Continue anyway?", default=False)

    try:
        specs = [parse_extract_spec(raw) for raw in extract or []]
        platforms = parse_platforms(platform or [])
        editor = GroupEditor(load_settings(repo))
        added = editor.add(name, paths, extract=specs, platforms=platforms, confirm_missing=confirm_missing)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    _format_added(name, added)


@manage_app.command("remove")
def manage_remove(
    name: str = typer.Argument(..., help="Configuration to remove"),
    repo: Path | None = typer.Option(None, "--repo", "-r", help=REPO_HELP),
    debug: bool = typer.Option(False, "--debug", help=DEBUG_HELP),
) -> None:
    """Remove a configuration group, its symlinks, and archive its files."""

    _configure_logging(debug)
    try:
        removal = GroupEditor(load_settings(repo)).remove(name)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    _format_removal(removal)


_STATE_LABELS = {
    LinkState.OK: "[green]ok[/green]",
    LinkState.MISSING: "[yellow]missing[/yellow]",
    LinkState.INCORRECT: "[red]incorrect symlink[/red]",
    LinkState.NOT_SYMLINK: "[red]not a symlink[/red]",
    ExtractionState.POPULATED: "[green]extracted[/green]",
    ExtractionState.UNINITIALIZED: "[yellow]not extracted[/yellow]",
}


def _format_listing(listings: list[GroupListing], *, verbose: bool) -> None:
    if not verbose:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Group")
        table.add_column("Sources", justify="right")
        for listing in listings:
            table.add_row(listing.name, str(len(listing.sources)))
        console.print(table)
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Group")
    table.add_column("Path", overflow="fold")
    table.add_column("Type")
    table.add_column("Platforms")
    table.add_column("Status")
    table.add_column("Extract", overflow="fold")
    for listing in listings:
        for source in listing.sources:
            status = _STATE_LABELS[source.state]
            if not source.applies:
                status = f"{status} [dim](other platform)[/dim]"
            table.add_row(
                listing.name,
                source.path,
                source.kind.value,
                ",".join(p.value for p in source.platforms) or "all",
                status,
                f"{source.extract.field} -> {source.extract.target}" if source.extract else "",
            )
    console.print(table)


@manage_app.command("list")
def manage_list(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show detailed status for each configuration"),
    repo: Path | None = typer.Option(None, "--repo", "-r", help=REPO_HELP),
    debug: bool = typer.Option(False, "--debug", help=DEBUG_HELP),
) -> None:
    """List all configuration groups."""

    _configure_logging(debug)
    try:
        settings = load_settings(repo)
        manifest = load_manifest(settings.manifest_path)
        listings = describe_manifest(manifest, settings, resolve_platform())
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if not listings:
        console.print("No configurations found")
        return

    console.print("[cyan]Configured dotfiles:[/cyan]")
    _format_listing(listings, verbose=verbose)


def run() -> None:
    """Entry point used for the ``dotlink`` console script."""

    app()


def run_install() -> None:
    typer.run(install)


def run_update() -> None:
    typer.run(update)


def run_manage() -> None:
    manage_app()
