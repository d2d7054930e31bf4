from pathlib import Path

import pytest
from conftest import FakeCluster, configmap, write_manifest

from homelab_deploy.core.contracts import (
    ConditionKind,
    FailurePolicy,
    ManifestRef,
    Phase,
    PhaseResult,
    PhaseStatus,
    ReadinessCondition,
)
from homelab_deploy.core.errors import PhaseStateError
from homelab_deploy.core.phase import PhaseExecutor, transition


def _gate(selector: str = "app=x") -> ReadinessCondition:
    return ReadinessCondition(
        kind=ConditionKind.PODS_READY, namespace="ns-a", selector=selector, timeout_seconds=0.1
    )


def test_lifecycle_rejects_skipping_states() -> None:
    result = PhaseResult(name="p", failure_policy=FailurePolicy.FATAL)

    with pytest.raises(PhaseStateError):
        transition(result, PhaseStatus.SUCCEEDED)

    transition(result, PhaseStatus.APPLYING)
    transition(result, PhaseStatus.GATING)
    transition(result, PhaseStatus.SUCCEEDED)
    assert result.finished_at is not None

    with pytest.raises(PhaseStateError, match="succeeded -> applying"):
        transition(result, PhaseStatus.APPLYING)


async def test_phase_applies_then_gates(
    executor: PhaseExecutor, cluster: FakeCluster, homelab_dir: Path
) -> None:
    write_manifest(homelab_dir, "cm.yaml", configmap("a", namespace="ns-a"))
    cluster.add_pod("ns-a", "x-1", labels={"app": "x"})
    phase = Phase(name="p", actions=[ManifestRef(path="cm.yaml")], gates=[_gate()])

    result = await executor.execute(phase)

    assert result.status == PhaseStatus.SUCCEEDED
    assert result.actions[0].applied == 1
    assert result.gates[0].satisfied
    assert result.started_at <= result.finished_at


async def test_fatal_apply_error_skips_remaining_actions_and_gates(
    executor: PhaseExecutor, cluster: FakeCluster, homelab_dir: Path
) -> None:
    write_manifest(homelab_dir, "bad.yaml", configmap("bad"))
    write_manifest(homelab_dir, "later.yaml", configmap("later"))
    cluster.reject["configmap/bad"] = "forbidden"
    phase = Phase(
        name="p",
        actions=[ManifestRef(path="bad.yaml"), ManifestRef(path="later.yaml")],
        gates=[_gate()],
    )

    result = await executor.execute(phase)

    assert result.status == PhaseStatus.FAILED
    assert result.failed_step == "action manifest bad.yaml"
    assert "forbidden" in result.error
    assert len(result.actions) == 1
    assert result.gates == []
    assert cluster.get_object("configmap", "later") is None


async def test_warn_apply_error_still_evaluates_gates(
    executor: PhaseExecutor, cluster: FakeCluster, homelab_dir: Path
) -> None:
    write_manifest(homelab_dir, "bad.yaml", configmap("bad"))
    cluster.reject["configmap/bad"] = "forbidden"
    cluster.add_pod("ns-a", "x-1", labels={"app": "x"})
    phase = Phase(
        name="media",
        actions=[ManifestRef(path="bad.yaml")],
        gates=[_gate()],
        failure_policy=FailurePolicy.WARN,
    )

    result = await executor.execute(phase)

    assert result.status == PhaseStatus.COMPLETED_WITH_WARNINGS
    assert result.gates[0].satisfied
    assert result.warnings == ["media: action 'manifest bad.yaml' failed: forbidden"]


async def test_render_error_fails_even_a_warn_phase(executor: PhaseExecutor) -> None:
    phase = Phase(name="p", actions=[ManifestRef(path="missing.yaml")], failure_policy=FailurePolicy.WARN)

    result = await executor.execute(phase)

    assert result.status == PhaseStatus.FAILED
    assert "file not found" in result.error


async def test_fatal_gate_timeout_fails_phase_with_last_observation(executor: PhaseExecutor) -> None:
    phase = Phase(name="p", gates=[_gate(), _gate("app=y")])

    result = await executor.execute(phase)

    assert result.status == PhaseStatus.FAILED
    assert result.failed_step == "gate pods ready [app=x] in ns-a"
    assert "no pods matching app=x in ns-a" in result.error
    assert len(result.gates) == 1


async def test_warn_gate_timeouts_are_all_collected(executor: PhaseExecutor) -> None:
    phase = Phase(name="p", gates=[_gate(), _gate("app=y")], failure_policy=FailurePolicy.WARN)

    result = await executor.execute(phase)

    assert result.status == PhaseStatus.COMPLETED_WITH_WARNINGS
    assert len(result.gates) == 2
    assert len(result.warnings) == 2
    assert all("timed out" in w for w in result.warnings)
