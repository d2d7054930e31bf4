import json
import subprocess
from pathlib import Path

import pytest

from homelab_deploy.cluster import HelmClient, KubectlClient, parse_apply_output
from homelab_deploy.cluster import helm as helm_module
from homelab_deploy.cluster import kubectl as kubectl_module
from homelab_deploy.core.contracts import HelmReleaseRef
from homelab_deploy.core.errors import ApplyError, ClusterError


class Recorder:
    """Stands in for subprocess.run, returning canned results in order."""

    def __init__(self, *results: subprocess.CompletedProcess) -> None:
        self.results = list(results)
        self.calls: list[dict] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append({"cmd": cmd, **kwargs})
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _done(stdout: str = "", stderr: str = "", returncode: int = 0) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def test_parse_apply_output_reads_each_object() -> None:
    stdout = (
        "namespace/monitoring unchanged\n"
        "deployment.apps/grafana configured\n"
        "service/grafana created\n"
        "Warning: resource is missing the last-applied annotation\n"
    )

    resources = parse_apply_output(stdout)

    assert [(r.name, r.action) for r in resources] == [
        ("namespace/monitoring", "unchanged"),
        ("deployment.apps/grafana", "configured"),
        ("service/grafana", "created"),
    ]
    assert [r.changed for r in resources] == [False, True, True]


def test_apply_uses_stdin_namespace_and_server_dry_run(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = Recorder(_done("configmap/a created (server dry run)\n"))
    monkeypatch.setattr(kubectl_module.subprocess, "run", recorder)

    client = KubectlClient(context="homelab")
    applied = client.apply_manifest("kind: ConfigMap", namespace="argocd", dry_run=True)

    call = recorder.calls[0]
    assert call["cmd"] == [
        "kubectl", "--context", "homelab", "apply", "-f", "-", "-n", "argocd", "--dry-run=server",
    ]
    assert call["input"] == "kind: ConfigMap"
    assert applied[0].name == "configmap/a"


def test_apply_rejection_carries_partial_progress(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = Recorder(_done("configmap/a created\n", "Error from server (Forbidden): quota exceeded", 1))
    monkeypatch.setattr(kubectl_module.subprocess, "run", recorder)

    with pytest.raises(ApplyError) as exc:
        KubectlClient().apply_manifest("...", source="manifest a.yaml")

    assert "quota exceeded" in exc.value.message
    assert [r.name for r in exc.value.applied] == ["configmap/a"]


def test_missing_kubectl_becomes_apply_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(kubectl_module.subprocess, "run", Recorder(FileNotFoundError()))

    with pytest.raises(ApplyError, match="kubectl not installed"):
        KubectlClient().apply_manifest("...")


def test_get_object_not_found_is_none(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = Recorder(_done(stderr='Error from server (NotFound): namespaces "foo" not found', returncode=1))
    monkeypatch.setattr(kubectl_module.subprocess, "run", recorder)

    assert KubectlClient().get_object("namespace", "foo") is None


def test_get_object_other_errors_raise(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = Recorder(_done(stderr="Unable to connect to the server", returncode=1))
    monkeypatch.setattr(kubectl_module.subprocess, "run", recorder)

    with pytest.raises(ClusterError, match="Unable to connect"):
        KubectlClient().get_object("namespace", "foo")


def test_list_objects_across_namespaces_with_selector(monkeypatch: pytest.MonkeyPatch) -> None:
    items = [{"metadata": {"name": "traefik-1", "namespace": "kube-system"}}]
    recorder = Recorder(_done(json.dumps({"items": items})))
    monkeypatch.setattr(kubectl_module.subprocess, "run", recorder)

    result = KubectlClient().list_objects("pods", selector="app=traefik")

    assert result == items
    assert recorder.calls[0]["cmd"] == ["kubectl", "get", "pods", "-o", "json", "-A", "-l", "app=traefik"]


def test_timeout_becomes_cluster_error(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = Recorder(subprocess.TimeoutExpired(cmd="kubectl", timeout=30))
    monkeypatch.setattr(kubectl_module.subprocess, "run", recorder)

    with pytest.raises(ClusterError, match="timed out"):
        KubectlClient().list_objects("pods", "default")


def test_helm_command_line() -> None:
    ref = HelmReleaseRef(
        release="cert-manager",
        chart="cert-manager",
        repo="https://charts.jetstack.io",
        namespace="cert-manager",
        version="v1.13.0",
        set_values={"installCRDs": "true"},
    )

    cmd = HelmClient(context="homelab", timeout=300).build_command(ref, [Path("values.yaml")], dry_run=True)

    assert cmd == [
        "helm", "upgrade", "--install", "cert-manager", "cert-manager",
        "--namespace", "cert-manager",
        "--kube-context", "homelab",
        "--create-namespace",
        "--repo", "https://charts.jetstack.io",
        "--version", "v1.13.0",
        "-f", "values.yaml",
        "--set", "installCRDs=true",
        "--wait", "--timeout", "300s",
        "--dry-run",
    ]


def test_helm_failure_is_apply_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(helm_module.subprocess, "run", Recorder(_done(stderr="chart not found", returncode=1)))
    ref = HelmReleaseRef(release="velero", chart="velero", namespace="velero")

    with pytest.raises(ApplyError, match="chart not found"):
        HelmClient().upgrade_install(ref, [])
