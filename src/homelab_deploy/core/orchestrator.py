"""Orchestrator: executes an ordered deployment plan phase by phase."""

import asyncio
import logging
from typing import Iterable, Optional

from homelab_deploy.core.contracts import (
    OrchestrationRun,
    Phase,
    PhaseResult,
    PhaseStatus,
    RunStatus,
    utcnow,
)
from homelab_deploy.core.phase import PhaseExecutor

logger = logging.getLogger(__name__)


def select_phases(phases: list[Phase], only: Optional[Iterable[str]] = None) -> list[Phase]:
    """Restrict a plan to the named phases, keeping plan order.

    Raises:
        ValueError: a requested phase is not in the plan
    """
    if not only:
        return list(phases)
    wanted = set(only)
    known = {p.name for p in phases}
    unknown = sorted(wanted - known)
    if unknown:
        raise ValueError(f"Unknown phase(s): {', '.join(unknown)}")
    return [p for p in phases if p.name in wanted]


class Orchestrator:
    """
    Executes phases strictly in order with a barrier between them.

    A failed phase aborts the run; nothing after it executes and nothing
    already applied is rolled back. Phases that complete with warnings
    contribute their warnings to the run and the next phase starts.
    """

    def __init__(self, executor: PhaseExecutor, environment: str, dry_run: bool = False):
        self.executor = executor
        self.environment = environment
        self.dry_run = dry_run
        self._cancel_event = asyncio.Event()

    def cancel(self) -> None:
        """Request a prompt stop (operator interrupt)."""
        logger.warning("Cancellation requested, stopping at the current gate")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    async def run(self, phases: list[Phase]) -> OrchestrationRun:
        """
        Run a plan.

        Args:
            phases: Ordered phases; names must be unique

        Returns:
            OrchestrationRun with status completed or aborted

        Raises:
            ValueError: duplicate phase names
        """
        names = [p.name for p in phases]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate phase name(s): {', '.join(duplicates)}")

        run = OrchestrationRun(environment=self.environment, dry_run=self.dry_run)
        logger.info(f"Starting deployment of {len(phases)} phase(s) to environment {self.environment}")

        for phase in phases:
            if self.cancelled:
                self._abort(run, phase.name, "cancelled before phase started", cancelled=True)
                return run

            logger.info(f"=== Phase {phase.name} ({phase.failure_policy.value}) ===")
            try:
                result = await self.executor.execute(phase, self._cancel_event)
            except asyncio.CancelledError:
                self._abort(run, phase.name, "interrupted", cancelled=True)
                raise

            run.phases.append(result)
            self._log_phase(result)

            if result.status == PhaseStatus.FAILED:
                self._abort(run, phase.name, f"{result.failed_step}: {result.error}", cancelled=self.cancelled)
                return run

            run.warnings.extend(result.warnings)

        run.status = RunStatus.COMPLETED
        run.finished_at = utcnow()
        if run.warnings:
            logger.warning(f"Deployment completed with {len(run.warnings)} warning(s)")
        else:
            logger.info("Deployment completed successfully")
        return run

    def _abort(self, run: OrchestrationRun, phase_name: str, reason: str, cancelled: bool = False) -> None:
        run.status = RunStatus.ABORTED
        run.aborted_at = phase_name
        run.abort_reason = reason
        run.cancelled = cancelled
        run.finished_at = utcnow()
        logger.error(f"Deployment ABORTED at phase {phase_name}: {reason}")

    def _log_phase(self, result: PhaseResult) -> None:
        if result.status == PhaseStatus.SUCCEEDED:
            logger.info(f"Phase {result.name} succeeded")
        elif result.status == PhaseStatus.COMPLETED_WITH_WARNINGS:
            for warning in result.warnings:
                logger.warning(f"WARNING: {warning}")
            logger.warning(f"Phase {result.name} completed with warnings")
        else:
            logger.error(f"Phase {result.name} failed at {result.failed_step}: {result.error}")
