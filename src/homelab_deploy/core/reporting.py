"""Run summaries, validation reports, exit codes and log setup."""

import logging
from enum import IntEnum
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from homelab_deploy.core.contracts import (
    OrchestrationRun,
    OverallStatus,
    PhaseStatus,
    RunStatus,
    Severity,
    ValidationReport,
)

RUN_LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
RUN_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class ExitCode(IntEnum):
    """Process exit codes of the CLI."""

    SUCCESS = 0
    ABORTED = 1
    UNHEALTHY = 2
    COMPLETED_WITH_WARNINGS = 3


def exit_code_for(
    run: Optional[OrchestrationRun] = None, report: Optional[ValidationReport] = None
) -> ExitCode:
    """Pick the exit code; aborted beats unhealthy beats warnings."""
    if run is not None and run.status == RunStatus.ABORTED:
        return ExitCode.ABORTED
    if report is not None and report.overall_status == OverallStatus.UNHEALTHY:
        return ExitCode.UNHEALTHY
    if run is not None and run.has_warnings:
        return ExitCode.COMPLETED_WITH_WARNINGS
    return ExitCode.SUCCESS


def configure_logging(level: str = "INFO", run_log: Optional[Path] = None, console: Optional[Console] = None) -> None:
    """Console logging through rich plus an append-only run log file."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)

    root.addHandler(RichHandler(console=console, show_path=False, markup=False))

    if run_log is not None:
        file_handler = logging.FileHandler(run_log, mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(RUN_LOG_FORMAT, RUN_LOG_DATEFMT))
        root.addHandler(file_handler)

    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


_PHASE_STYLE = {
    PhaseStatus.SUCCEEDED: ("OK", "green"),
    PhaseStatus.COMPLETED_WITH_WARNINGS: ("WARN", "yellow"),
    PhaseStatus.FAILED: ("FAIL", "red"),
}


def render_run(console: Console, run: OrchestrationRun) -> None:
    """Print a deployment run summary."""
    table = Table(title=f"Deployment ({run.environment})", show_lines=False)
    table.add_column("Phase", style="bold")
    table.add_column("Status")
    table.add_column("Applied", justify="right")
    table.add_column("Unchanged", justify="right")
    table.add_column("Gates", justify="right")

    for phase in run.phases:
        mark, style = _PHASE_STYLE.get(phase.status, (phase.status.value, "dim"))
        satisfied = sum(1 for g in phase.gates if g.satisfied)
        table.add_row(
            escape(phase.name),
            f"[{style}]{mark}[/{style}]",
            str(sum(a.applied for a in phase.actions)),
            str(sum(a.unchanged for a in phase.actions)),
            f"{satisfied}/{len(phase.gates)}",
        )
    console.print(table)

    if run.status == RunStatus.ABORTED:
        lines = [
            f"[bold red]Deployment aborted at phase {run.aborted_at}[/bold red]",
            f"Cause: {escape(run.abort_reason or '')}",
        ]
        if run.cancelled:
            lines.append("Interrupted by operator. Applied resources were left in place.")
        else:
            lines.append("Applied resources were left in place; re-run the phase once fixed.")
        console.print(Panel.fit("\n".join(lines), border_style="red"))
    elif run.warnings:
        body = "\n".join(f"- {escape(w)}" for w in run.warnings)
        console.print(Panel.fit(
            f"[bold yellow]Completed with {len(run.warnings)} warning(s)[/bold yellow]\n\n{body}",
            border_style="yellow",
        ))
    else:
        console.print(Panel.fit("[bold green]Deployment completed successfully[/bold green]", border_style="green"))


def render_report(console: Console, report: ValidationReport) -> None:
    """Print a validation report, every failed or warned check with its reason."""
    table = Table(title="Homelab Validation Report")
    table.add_column("Check", style="bold")
    table.add_column("Severity")
    table.add_column("Result")
    table.add_column("Message", overflow="fold")

    for result in report.results:
        if result.passed:
            mark = "[green]PASS[/green]"
        elif result.severity == Severity.CRITICAL:
            mark = "[red]FAIL[/red]"
        else:
            mark = "[yellow]WARN[/yellow]"
        table.add_row(escape(result.check_name), result.severity.value, mark, escape(result.message))
    console.print(table)

    summary = (
        f"Passed: {report.pass_count}  Failed: {report.fail_count}  "
        f"(non-blocking: {report.warn_count})"
    )
    if report.overall_status == OverallStatus.HEALTHY:
        console.print(Panel.fit(f"[bold green]Healthy[/bold green]\n{summary}", border_style="green"))
    else:
        blocking = "\n".join(f"- {escape(r.check_name)}: {escape(r.message)}" for r in report.results if r.blocking)
        console.print(Panel.fit(
            f"[bold red]Unhealthy[/bold red]\n{summary}\n\nCritical failures:\n{blocking}",
            border_style="red",
        ))
