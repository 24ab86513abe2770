"""Command-line interface for smart-audit."""

import json
import logging
import sys
from contextlib import nullcontext
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import Config
from .core.capabilities import Capabilities
from .core.issues import Severity
from .core.process import ProcessRunner
from .engine.errors import FixSessionBusyError, SmartAuditError
from .engine.orchestration import AuditRun, PipelineOrchestrator
from .engine.phases import PHASE_CATALOG
from .fixers.confirmation import ConsoleConfirmer
from .fixers.fix_engine import SafeFixEngine
from .fixers.snapshots import SnapshotManager, ensure_state_dir
from .plugins import default_registry
from .utils.logging_setup import setup_from_config

AUDIT_RESULTS = "audit_results.json"

SEVERITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "blue",
}

console = Console()
logger = logging.getLogger(__name__)


def _load_config(project: Path, config_path: Optional[str], verbose: bool) -> Config:
    try:
        config = Config.from_file(config_path) if config_path else Config.find_and_load(project)
    except (ValueError, OSError) as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        sys.exit(2)
    setup_from_config(config, project, verbose=verbose)
    return config


def _run_audit(project: Path, config: Config, only: Tuple[str, ...] = (),
               skip: Tuple[str, ...] = (), show_progress: bool = True) -> AuditRun:
    registry = default_registry()
    capabilities = Capabilities.detect(project, registry)

    def on_phase(phase, result):
        if show_progress:
            console.print(f"[cyan]{phase.display_name}[/cyan]: {result.issue_count} issues "
                          f"[dim]({', '.join(result.tools_run)}, {result.duration_ms} ms)[/dim]")

    orchestrator = PipelineOrchestrator(
        project,
        config=config,
        registry=registry,
        capabilities=capabilities,
        runner=ProcessRunner(),
        only=list(only) or None,
        skip=list(skip) or None,
        on_phase=on_phase,
    )
    with console.status("Running audit...", spinner="dots") if show_progress else nullcontext():
        run = orchestrator.run()

    ensure_state_dir(config.state_path(project))
    run.save(config.state_path(project) / AUDIT_RESULTS)
    return run


def _print_audit(run: AuditRun) -> None:
    summary = run.summary

    table = Table(title=f"Audit Results ({summary.get('total_issues', 0)} issues)")
    table.add_column("Phase", style="cyan")
    table.add_column("Tools")
    table.add_column("Issues", justify="right")
    table.add_column("Duration", justify="right")
    for phase in run.phases:
        table.add_row(phase.display_name, ", ".join(phase.tools_run), str(phase.issue_count),
                      f"{phase.duration_ms} ms")
    console.print(table)

    severity_table = Table(title="Severity")
    severity_table.add_column("Severity")
    severity_table.add_column("Count", justify="right")
    for severity in Severity:
        style = SEVERITY_STYLES[severity.value]
        severity_table.add_row(f"[{style}]{severity.value}[/{style}]", str(summary.get(severity.value, 0)))
    severity_table.add_row("auto-fixable", str(summary.get("auto_fixable", 0)))
    console.print(severity_table)

    score_table = Table(title="Scores")
    score_table.add_column("Scope")
    score_table.add_column("Score", justify="right")
    for scope, value in run.score.items():
        color = "green" if value >= 80 else "yellow" if value >= 50 else "red"
        score_table.add_row(scope, f"[{color}]{value}[/{color}]")
    console.print(score_table)

    if run.stopped_early:
        console.print(f"\n[bold red]Stopped early: {run.stop_reason}[/bold red]")
        for issue in run.triggering_issues:
            console.print(f"  [red]{issue.tool}[/red] {issue.location}: {issue.message}")


@click.group()
@click.version_option(__version__, prog_name="smartaudit")
def cli():
    """Audit Python projects and apply fixes safely."""


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False), default=".")
@click.option("--only", multiple=True, metavar="PHASE",
              help=f"Run only these phases ({', '.join(p.id for p in PHASE_CATALOG)})")
@click.option("--skip", multiple=True, metavar="PHASE", help="Skip these phases")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Also write the results JSON here")
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Configuration file")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def audit(path, only, skip, output, as_json, config_path, verbose):
    """Run the audit pipeline on PATH."""
    project = Path(path).resolve()
    config = _load_config(project, config_path, verbose)

    try:
        run = _run_audit(project, config, only, skip, show_progress=not as_json)
    except SmartAuditError as e:
        console.print(f"[red]Audit failed: {e.message}[/red]")
        sys.exit(2)

    if output:
        run.save(output)
    if as_json:
        click.echo(json.dumps(run.to_dict(), indent=2))
    else:
        _print_audit(run)

    if run.stopped_early:
        sys.exit(1)


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False), default=".")
@click.option("--level", type=click.Choice(["safe", "risky", "all"]), default=None,
              help="Which fixes to apply (default: fix.safety_level)")
@click.option("--dry-run", is_flag=True, help="Show what would be fixed without changing anything")
@click.option("--rollback", "rollback_id", metavar="SNAPSHOT_ID", help="Restore a snapshot")
@click.option("--auto-apply-safe", is_flag=True, help="Apply safe fixes without asking")
@click.option("--yes-risky", is_flag=True, help="Apply risky fixes without asking")
@click.option("--list-snapshots", is_flag=True, help="List available snapshots")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Configuration file")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def fix(path, level, dry_run, rollback_id, auto_apply_safe, yes_risky, list_snapshots, config_path, verbose):
    """Apply automatic fixes to PATH using the last audit results."""
    project = Path(path).resolve()
    config = _load_config(project, config_path, verbose)
    engine = SafeFixEngine(
        project,
        config=config,
        confirmer=ConsoleConfirmer(console, assume_yes_risky=yes_risky),
    )

    if list_snapshots:
        _print_snapshots(engine.list_snapshots())
        return

    if rollback_id:
        if engine.rollback(rollback_id):
            console.print(f"[green]Restored snapshot {rollback_id}[/green]")
            return
        console.print(f"[bold red]Rollback to {rollback_id} failed; manual recovery required[/bold red]")
        sys.exit(1)

    results_file = config.state_path(project) / AUDIT_RESULTS
    if results_file.exists():
        run = AuditRun.load(results_file)
    else:
        console.print("[yellow]No audit results found; running a quick audit first[/yellow]")
        run = _run_audit(project, config, show_progress=False)
    issues = run.all_issues()

    if dry_run:
        result = engine.dry_run(issues)
        table = Table(title=f"Dry run ({result.summary['total_fixable']} fixable issues)")
        table.add_column("Risk")
        table.add_column("Tool")
        table.add_column("Location")
        table.add_column("Change")
        for preview in result.previews:
            style = "green" if preview.risk_level.value == "safe" else "red"
            table.add_row(f"[{style}]{preview.risk_level.value}[/{style}]", preview.issue.tool,
                          preview.issue.location, preview.estimated_changes)
        console.print(table)
        console.print(f"Estimated duration: {result.summary['estimated_duration']}s")
        return

    try:
        session = engine.apply_fixes(issues, level=level, auto_apply_safe=auto_apply_safe or None)
    except FixSessionBusyError as e:
        console.print(f"[red]{e.message}[/red]")
        sys.exit(1)

    if session.message:
        console.print(f"[yellow]{session.message}[/yellow]")
    for result in session.fixes:
        console.print(f"[green]fixed[/green] {result.tool}: {result.description}")
    for error in session.errors:
        style = "bold red" if error.error_type == "snapshot_restore_failure" else "red"
        console.print(f"[{style}]{error.error_type}[/{style}] {error.tool}: {error.reason}")

    summary = session.summary
    console.print(
        f"\n{summary.get('successful', 0)} applied, {summary.get('failed', 0)} failed, "
        f"{summary.get('declined', 0)} declined of {summary.get('total_attempted', 0)} fixable issues"
    )
    if session.errors:
        sys.exit(1)


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False), default=".")
@click.option("--cleanup", type=int, metavar="KEEP", help="Delete all but the newest KEEP snapshots")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Configuration file")
def snapshots(path, cleanup, config_path):
    """List or prune fix snapshots."""
    project = Path(path).resolve()
    config = _load_config(project, config_path, verbose=False)
    manager = SnapshotManager(
        project,
        state_dir=config.state_path(project),
        critical_patterns=config.get("snapshot.critical_patterns"),
        exclude_dirs=config.exclude_dirs,
    )

    if cleanup is not None:
        removed = manager.cleanup_old_snapshots(cleanup)
        console.print(f"Removed {removed} snapshots")
        return
    _print_snapshots(manager.list_snapshots())


def _print_snapshots(summaries) -> None:
    if not summaries:
        console.print("[dim]No snapshots[/dim]")
        return
    table = Table(title="Snapshots")
    table.add_column("ID", style="cyan")
    table.add_column("Created")
    table.add_column("Status")
    table.add_column("Files", justify="right")
    table.add_column("Description")
    for s in summaries:
        table.add_row(s["id"], s["timestamp"], s["status"], str(s["file_count"]), s["description"])
    console.print(table)


def main():
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
