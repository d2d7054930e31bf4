"""Main entry point for the homelab-deploy CLI."""

import asyncio
import json
import logging
import shutil
import signal
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from homelab_deploy import __version__
from homelab_deploy.cluster import HelmClient, KubectlClient, ResourceSetRenderer
from homelab_deploy.config import Settings, get_settings
from homelab_deploy.core.applier import ResourceApplier
from homelab_deploy.core.contracts import (
    HelmReleaseRef,
    KustomizeRef,
    OrchestrationRun,
    Phase,
    RunStatus,
    ValidationReport,
)
from homelab_deploy.core.errors import PlanError
from homelab_deploy.core.gate import ReadinessGate
from homelab_deploy.core.orchestrator import Orchestrator, select_phases
from homelab_deploy.core.phase import PhaseExecutor
from homelab_deploy.core.reporting import (
    ExitCode,
    configure_logging,
    exit_code_for,
    render_report,
    render_run,
)
from homelab_deploy.homelab import default_checks, default_plan
from homelab_deploy.plan import load_plan
from homelab_deploy.validation import Validator

logger = logging.getLogger(__name__)

console = Console()


def print_banner(settings: Settings, environment: str, dry_run: bool = False) -> None:
    """Print the application banner."""
    banner = Text()
    banner.append("Homelab Deploy", style="bold blue")
    banner.append(f" v{__version__}\n", style="dim")
    banner.append(f"Environment: {environment}  Domain: {settings.domain}", style="italic")
    if dry_run:
        banner.append("\nDry run: server-side validation only, nothing is persisted", style="yellow")

    console.print(Panel(banner, title="[bold]homelab-deploy[/bold]", border_style="blue"))


# =============================================================================
# Wiring
# =============================================================================


def make_cluster(settings: Settings) -> KubectlClient:
    """Create the cluster client for this invocation."""
    return KubectlClient(settings.kubectl_bin, settings.kube_context, settings.command_timeout_seconds)


def make_executor(settings: Settings, cluster, environment: str, dry_run: bool) -> PhaseExecutor:
    renderer = ResourceSetRenderer(
        settings.homelab_dir, settings.kustomize_bin, timeout=settings.command_timeout_seconds
    )
    helm = HelmClient(settings.helm_bin, settings.kube_context, settings.command_timeout_seconds)
    applier = ResourceApplier(cluster, renderer, helm, environment, dry_run=dry_run)
    gate = ReadinessGate(cluster, settings.gate_timeout_seconds, settings.gate_poll_interval_seconds)
    return PhaseExecutor(applier, gate)


def preflight(settings: Settings, cluster, phases: list[Phase]) -> list[str]:
    """
    Check required tools and cluster access before touching anything.

    Returns:
        Problems found; empty when the run can proceed
    """
    tools = {settings.kubectl_bin}
    for phase in phases:
        for ref in phase.actions:
            if isinstance(ref, HelmReleaseRef):
                tools.add(settings.helm_bin)
            elif isinstance(ref, KustomizeRef):
                tools.add(settings.kustomize_bin)

    problems = [f"{tool} is not installed" for tool in sorted(tools) if shutil.which(tool) is None]
    if shutil.which(settings.kubectl_bin) is None:
        return problems
    if not cluster.cluster_reachable():
        problems.append("cannot connect to Kubernetes cluster (check kubeconfig / context)")
    return problems


def resolve_plan(plan_file: Optional[Path], only: tuple[str, ...]) -> list[Phase]:
    phases = load_plan(plan_file) if plan_file else default_plan()
    return select_phases(phases, only)


async def run_deployment(orchestrator: Orchestrator, phases: list[Phase]) -> OrchestrationRun:
    """Run the plan with SIGINT/SIGTERM wired to orchestrator cancellation."""
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, orchestrator.cancel)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Signal handler for {sig.name} unavailable on this platform")
    try:
        return await orchestrator.run(phases)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def deploy_plan(
    settings: Settings, cluster, phases: list[Phase], environment: str, dry_run: bool
) -> OrchestrationRun:
    executor = make_executor(settings, cluster, environment, dry_run)

    async def _run() -> OrchestrationRun:
        orchestrator = Orchestrator(executor, environment, dry_run=dry_run)
        return await run_deployment(orchestrator, phases)

    return asyncio.run(_run())


def validate_cluster(settings: Settings, cluster, manifests_dir: Optional[Path]) -> ValidationReport:
    validator = Validator(
        default_checks(cluster, settings, manifests_dir),
        concurrency=settings.validation_concurrency,
    )
    return asyncio.run(validator.run())


# =============================================================================
# CLI
# =============================================================================


def plan_options(func):
    """Options shared by the commands that execute a plan."""
    func = click.option("--dry-run", is_flag=True, help="Server-side dry run; nothing is persisted")(func)
    func = click.option(
        "--only", multiple=True, metavar="PHASE", help="Run only the named phase (repeatable)"
    )(func)
    func = click.option(
        "--plan", "plan_file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
        help="YAML plan file instead of the built-in homelab plan",
    )(func)
    return func


def common_options(func):
    func = click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON on stdout")(func)
    func = click.option("--environment", "-e", default=None, help="Overlay/environment name")(func)
    return func


def setup(as_json: bool) -> Settings:
    """Load settings and route human-readable output away from JSON stdout."""
    global console
    settings = get_settings()
    console = Console(stderr=True) if as_json else Console()
    configure_logging(settings.log_level, settings.run_log, console=console)
    return settings


def fail(message: str, code: ExitCode = ExitCode.ABORTED) -> None:
    console.print(Panel.fit(Text(message, style="bold red"), border_style="red"))
    sys.exit(code)


def prepare_deployment(
    settings: Settings, plan_file: Optional[Path], only: tuple[str, ...]
) -> tuple[KubectlClient, list[Phase]]:
    try:
        phases = resolve_plan(plan_file, only)
    except (PlanError, ValueError) as e:
        fail(str(e))

    cluster = make_cluster(settings)
    problems = preflight(settings, cluster, phases)
    if problems:
        fail("Preflight failed:\n" + "\n".join(f"- {p}" for p in problems))
    return cluster, phases


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Homelab Deploy - phased Kubernetes deployment and health validation."""
    pass


@cli.command()
@common_options
@plan_options
def deploy(environment: Optional[str], as_json: bool, plan_file: Optional[Path], only: tuple, dry_run: bool) -> None:
    """Deploy the homelab phase by phase."""
    settings = setup(as_json)
    environment = environment or settings.environment
    print_banner(settings, environment, dry_run)

    cluster, phases = prepare_deployment(settings, plan_file, only)
    run = deploy_plan(settings, cluster, phases, environment, dry_run)

    render_run(console, run)
    if as_json:
        click.echo(run.model_dump_json(indent=2))
    sys.exit(exit_code_for(run=run))


@cli.command()
@common_options
@click.option(
    "--manifests-dir", type=click.Path(file_okay=False, path_type=Path),
    help="Directory scanned by the manifest checks",
)
def validate(environment: Optional[str], as_json: bool, manifests_dir: Optional[Path]) -> None:
    """Validate the health of a deployed homelab."""
    settings = setup(as_json)
    print_banner(settings, environment or settings.environment)

    cluster = make_cluster(settings)
    problems = preflight(settings, cluster, [])
    if problems:
        fail("Preflight failed:\n" + "\n".join(f"- {p}" for p in problems))

    report = validate_cluster(settings, cluster, manifests_dir)
    render_report(console, report)
    if as_json:
        click.echo(report.model_dump_json(indent=2))
    sys.exit(exit_code_for(report=report))


@cli.command()
@common_options
@plan_options
@click.option(
    "--manifests-dir", type=click.Path(file_okay=False, path_type=Path),
    help="Directory scanned by the manifest checks",
)
def up(
    environment: Optional[str],
    as_json: bool,
    plan_file: Optional[Path],
    only: tuple,
    dry_run: bool,
    manifests_dir: Optional[Path],
) -> None:
    """Deploy, then validate the result."""
    settings = setup(as_json)
    environment = environment or settings.environment
    print_banner(settings, environment, dry_run)

    cluster, phases = prepare_deployment(settings, plan_file, only)
    run = deploy_plan(settings, cluster, phases, environment, dry_run)
    render_run(console, run)

    report = None
    if run.status != RunStatus.ABORTED:
        console.print("\n[bold]Running post-deployment validation...[/bold]\n")
        report = validate_cluster(settings, cluster, manifests_dir)
        render_report(console, report)

    if as_json:
        payload = {
            "run": run.model_dump(mode="json"),
            "report": report.model_dump(mode="json") if report else None,
        }
        click.echo(json.dumps(payload, indent=2))
    sys.exit(exit_code_for(run=run, report=report))


@cli.command("phases")
@click.option(
    "--plan", "plan_file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML plan file instead of the built-in homelab plan",
)
def list_phases(plan_file: Optional[Path]) -> None:
    """List the phases of a deployment plan."""
    try:
        plan = resolve_plan(plan_file, ())
    except (PlanError, ValueError) as e:
        fail(str(e))

    table = Table(title="Deployment Plan")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Phase", style="bold")
    table.add_column("Policy")
    table.add_column("Actions")
    table.add_column("Gates")

    for i, phase in enumerate(plan, 1):
        policy = phase.failure_policy.value
        style = "red" if policy == "fatal" else "yellow"
        table.add_row(
            str(i),
            phase.name,
            f"[{style}]{policy}[/{style}]",
            "\n".join(escape(ref.describe()) for ref in phase.actions) or "-",
            "\n".join(escape(g.describe()) for g in phase.gates) or "-",
        )
    console.print(table)


if __name__ == "__main__":
    cli()
