from pathlib import Path

import pytest

from homelab_deploy.core.contracts import (
    FailurePolicy,
    HelmReleaseRef,
    KustomizeRef,
    NamespaceRef,
    UrlRef,
)
from homelab_deploy.core.errors import PlanError
from homelab_deploy.homelab import default_plan
from homelab_deploy.plan import load_plan

PLAN = """\
phases:
  - name: storage
    actions:
      - kind: kustomize
        path: kubernetes/storage
    gates:
      - kind: pods_ready
        namespace: local-path-storage
        selector: app=local-path-provisioner
        timeout_seconds: 120
  - name: media
    failure_policy: warn
    actions:
      - kind: helm
        release: jellyfin
        chart: jellyfin/jellyfin
        namespace: jellyfin
"""


def test_load_plan_builds_typed_phases(tmp_path: Path) -> None:
    path = tmp_path / "plan.yaml"
    path.write_text(PLAN, encoding="utf-8")

    phases = load_plan(path)

    assert [p.name for p in phases] == ["storage", "media"]
    assert isinstance(phases[0].actions[0], KustomizeRef)
    assert phases[0].failure_policy == FailurePolicy.FATAL
    assert phases[0].gates[0].timeout_seconds == 120
    assert isinstance(phases[1].actions[0], HelmReleaseRef)
    assert phases[1].failure_policy == FailurePolicy.WARN


def test_unknown_action_kind_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "plan.yaml"
    path.write_text("phases:\n  - name: x\n    actions:\n      - kind: terraform\n        path: x\n", encoding="utf-8")

    with pytest.raises(PlanError, match="Invalid phase definition"):
        load_plan(path)


def test_plan_without_phases_list_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "plan.yaml"
    path.write_text("name: not-a-plan\n", encoding="utf-8")

    with pytest.raises(PlanError, match="top-level 'phases'"):
        load_plan(path)


def test_unparseable_plan_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "plan.yaml"
    path.write_text("phases: [\n", encoding="utf-8")

    with pytest.raises(PlanError, match="Invalid YAML"):
        load_plan(path)


def test_default_plan_shape() -> None:
    phases = default_plan()
    names = [p.name for p in phases]

    assert len(names) == len(set(names))
    assert names[0] == "secrets-operator"
    assert names.index("infrastructure") < names.index("ingress") < names.index("authentication")

    by_name = {p.name: p for p in phases}
    for fatal in ("secrets-operator", "infrastructure", "storage", "ingress", "authentication", "gitops"):
        assert by_name[fatal].failure_policy == FailurePolicy.FATAL
    for optional in ("security", "media-services", "ai-services", "productivity-services", "dashboard"):
        assert by_name[optional].failure_policy == FailurePolicy.WARN

    gitops = by_name["gitops"]
    assert isinstance(gitops.actions[0], NamespaceRef)
    assert isinstance(gitops.actions[1], UrlRef)
    assert "v2.10.0" in gitops.actions[1].url
    assert gitops.gates[0].timeout_seconds == 600
