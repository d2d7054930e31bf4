"""Phase execution: apply actions in order, then wait on readiness gates."""

import asyncio
import logging
from typing import Optional

from homelab_deploy.core.applier import ResourceApplier
from homelab_deploy.core.contracts import (
    FailurePolicy,
    Phase,
    PhaseResult,
    PhaseStatus,
    utcnow,
)
from homelab_deploy.core.errors import PhaseStateError
from homelab_deploy.core.gate import ReadinessGate

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[PhaseStatus, set[PhaseStatus]] = {
    PhaseStatus.PENDING: {PhaseStatus.APPLYING},
    PhaseStatus.APPLYING: {PhaseStatus.GATING, PhaseStatus.FAILED},
    PhaseStatus.GATING: {
        PhaseStatus.SUCCEEDED,
        PhaseStatus.FAILED,
        PhaseStatus.COMPLETED_WITH_WARNINGS,
    },
}


def transition(result: PhaseResult, target: PhaseStatus) -> None:
    """Move a phase to ``target``, enforcing the lifecycle."""
    allowed = _TRANSITIONS.get(result.status, set())
    if target not in allowed:
        raise PhaseStateError(
            f"phase {result.name}: illegal transition {result.status.value} -> {target.value}"
        )
    result.status = target
    if target.is_terminal:
        result.finished_at = utcnow()


class PhaseExecutor:
    """Runs one phase through its lifecycle and records the outcome."""

    def __init__(self, applier: ResourceApplier, gate: ReadinessGate):
        self.applier = applier
        self.gate = gate

    async def execute(
        self, phase: Phase, cancel_event: Optional[asyncio.Event] = None
    ) -> PhaseResult:
        """
        Execute a phase.

        Cancellation is checked before every action; an action already
        sent to the cluster runs to completion. Render errors fail the
        phase under any policy. Apply errors fail a
        fatal phase; a warn phase records them and still evaluates its
        gates. Gate timeouts fail a fatal phase and downgrade a warn phase
        to completed_with_warnings. Cancellation always fails the phase.

        Args:
            phase: Phase definition
            cancel_event: Set by the orchestrator on operator interrupt

        Returns:
            PhaseResult in a terminal state
        """
        result = PhaseResult(name=phase.name, failure_policy=phase.failure_policy, started_at=utcnow())
        fatal = phase.failure_policy == FailurePolicy.FATAL

        transition(result, PhaseStatus.APPLYING)
        logger.info(f"Phase {phase.name}: applying {len(phase.actions)} action(s)")

        for ref in phase.actions:
            if cancel_event is not None and cancel_event.is_set():
                result.failed_step = f"action {ref.describe()}"
                result.error = f"cancelled before action '{ref.describe()}' started"
                transition(result, PhaseStatus.FAILED)
                return result

            apply_result = await asyncio.to_thread(self.applier.apply, ref)
            result.actions.append(apply_result)
            if apply_result.ok:
                continue

            cause = f"action '{apply_result.source}' failed: {apply_result.error}"
            if apply_result.error_kind == "render" or fatal:
                result.failed_step = f"action {apply_result.source}"
                result.error = cause
                transition(result, PhaseStatus.FAILED)
                return result

            result.warnings.append(f"{phase.name}: {cause}")
            break

        if cancel_event is not None and cancel_event.is_set():
            result.failed_step = "gates"
            result.error = "cancelled before readiness gates were evaluated"
            transition(result, PhaseStatus.FAILED)
            return result

        transition(result, PhaseStatus.GATING)
        timed_out = []

        for condition in phase.gates:
            gate_result = await self.gate.wait(condition, cancel_event)
            result.gates.append(gate_result)

            if gate_result.cancelled:
                result.failed_step = f"gate {gate_result.condition}"
                result.error = (
                    f"cancelled while waiting for {gate_result.condition} "
                    f"(last observation: {gate_result.last_observation})"
                )
                transition(result, PhaseStatus.FAILED)
                return result

            if gate_result.satisfied:
                continue

            cause = (
                f"gate '{gate_result.condition}' timed out after {gate_result.timeout_seconds:g}s "
                f"(last observation: {gate_result.last_observation})"
            )
            if fatal:
                result.failed_step = f"gate {gate_result.condition}"
                result.error = cause
                transition(result, PhaseStatus.FAILED)
                return result
            timed_out.append(cause)

        result.warnings.extend(f"{phase.name}: {cause}" for cause in timed_out)
        if result.warnings:
            transition(result, PhaseStatus.COMPLETED_WITH_WARNINGS)
        else:
            transition(result, PhaseStatus.SUCCEEDED)
        return result
