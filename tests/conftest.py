# --- test import path bootstrap (src/ layout) ---
import sys as _sys
from pathlib import Path as _Path

_SRC = _Path(__file__).resolve().parents[1] / "src"
if _SRC.is_dir():
    _p = str(_SRC)
    if _p not in _sys.path:
        _sys.path.insert(0, _p)
# --- end bootstrap ---

from pathlib import Path
from typing import Any, Optional

import pytest
import yaml

from homelab_deploy.cluster import HelmClient, ResourceSetRenderer
from homelab_deploy.config import get_settings
from homelab_deploy.core.applier import ResourceApplier
from homelab_deploy.core.contracts import AppliedResource
from homelab_deploy.core.errors import ApplyError, ClusterError
from homelab_deploy.core.gate import ReadinessGate
from homelab_deploy.core.phase import PhaseExecutor

_PLURALS = {
    "namespace": "namespaces",
    "pod": "pods",
    "secret": "secrets",
    "node": "nodes",
    "storageclass": "storageclasses",
    "networkpolicy": "networkpolicies",
    "configmap": "configmaps",
    "deployment": "deployments",
}


def _plural(kind: str) -> str:
    kind = kind.lower()
    return _PLURALS.get(kind, kind)


def _matches(labels: dict[str, str], selector: Optional[str]) -> bool:
    if not selector:
        return True
    for term in selector.split(","):
        key, _, value = term.partition("=")
        if labels.get(key.strip()) != value.strip():
            return False
    return True


class FakeCluster:
    """In-memory ClusterClient.

    Applied documents are stored and listable; re-applying an identical
    document reports it unchanged.
    """

    def __init__(self) -> None:
        self.objects: dict[str, list[dict[str, Any]]] = {}
        self.apply_calls: list[dict[str, Any]] = []
        self.list_calls = 0
        self.reject: dict[str, str] = {}
        self.observation_errors = 0

    # -- seeding ---------------------------------------------------------

    def add(self, kind: str, name: str, namespace: Optional[str] = None, **extra: Any) -> dict[str, Any]:
        metadata: dict[str, Any] = {"name": name, "labels": extra.pop("labels", {})}
        if namespace:
            metadata["namespace"] = namespace
        obj = {"kind": kind, "metadata": metadata, **extra}
        self._upsert(_plural(kind), obj)
        return obj

    def add_pod(
        self,
        namespace: str,
        name: str,
        labels: Optional[dict[str, str]] = None,
        ready: bool = True,
        phase: str = "Running",
    ) -> dict[str, Any]:
        status = {
            "phase": phase,
            "conditions": [{"type": "Ready", "status": "True" if ready else "False"}],
        }
        return self.add("Pod", name, namespace, labels=labels or {}, status=status)

    def add_node(self, name: str, ready: bool = True) -> dict[str, Any]:
        status = {"conditions": [{"type": "Ready", "status": "True" if ready else "False"}]}
        return self.add("Node", name, status=status)

    def set_ready(self, namespace: str, name: str, ready: bool = True) -> None:
        pod = self.get_object("pods", name, namespace)
        pod["status"]["conditions"] = [{"type": "Ready", "status": "True" if ready else "False"}]

    # -- ClusterClient ---------------------------------------------------

    def apply_manifest(
        self, manifest: str, *, source: str = "-", namespace: Optional[str] = None, dry_run: bool = False
    ) -> list[AppliedResource]:
        self.apply_calls.append({"source": source, "namespace": namespace, "dry_run": dry_run})
        applied: list[AppliedResource] = []
        for doc in yaml.safe_load_all(manifest):
            if not doc:
                continue
            name = doc["metadata"]["name"]
            ref = f"{doc['kind'].lower()}/{name}"
            if ref in self.reject:
                raise ApplyError(source, self.reject[ref], applied=applied)

            if namespace and "namespace" not in doc["metadata"] and doc["kind"] != "Namespace":
                doc["metadata"]["namespace"] = namespace
            plural = _plural(doc["kind"])
            existing = self.get_object(plural, name, doc["metadata"].get("namespace"))
            if existing is None:
                action = "created"
            elif existing == doc:
                action = "unchanged"
            else:
                action = "configured"
            if not dry_run:
                self._upsert(plural, doc)
            applied.append(AppliedResource(name=ref, action=action))
        return applied

    def get_object(self, kind: str, name: str, namespace: Optional[str] = None) -> Optional[dict[str, Any]]:
        for obj in self.objects.get(_plural(kind), []):
            meta = obj["metadata"]
            if meta["name"] == name and (namespace is None or meta.get("namespace") == namespace):
                return obj
        return None

    def list_objects(
        self, kind: str, namespace: Optional[str] = None, selector: Optional[str] = None
    ) -> list[dict[str, Any]]:
        self.list_calls += 1
        if self.observation_errors > 0:
            self.observation_errors -= 1
            raise ClusterError(["kubectl", "get", kind], "connection refused")
        return [
            obj for obj in self.objects.get(_plural(kind), [])
            if (namespace is None or obj["metadata"].get("namespace") == namespace)
            and _matches(obj["metadata"].get("labels", {}), selector)
        ]

    def namespace_exists(self, name: str) -> bool:
        return self.get_object("namespaces", name) is not None

    def _upsert(self, plural: str, obj: dict[str, Any]) -> None:
        bucket = self.objects.setdefault(plural, [])
        meta = obj["metadata"]
        for i, existing in enumerate(bucket):
            em = existing["metadata"]
            if em["name"] == meta["name"] and em.get("namespace") == meta.get("namespace"):
                bucket[i] = obj
                return
        bucket.append(obj)


class FakeHelm(HelmClient):
    """HelmClient that records releases instead of running helm."""

    def __init__(self) -> None:
        super().__init__(helm_bin="helm")
        self.releases: list[str] = []
        self.fail_with: Optional[str] = None

    def upgrade_install(self, ref, values_files, dry_run=False):
        if self.fail_with:
            raise ApplyError(ref.describe(), self.fail_with)
        self.releases.append(ref.release)
        return AppliedResource(name=f"release/{ref.release}", action="deployed")


def write_manifest(root: Path, relative: str, *docs: dict[str, Any]) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump_all(docs), encoding="utf-8")
    return path


def configmap(name: str, namespace: str = "default", **data: str) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name, "namespace": namespace},
        "data": data or {"key": "value"},
    }


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def helm() -> FakeHelm:
    return FakeHelm()


@pytest.fixture
def homelab_dir(tmp_path: Path) -> Path:
    root = tmp_path / "homelab"
    root.mkdir()
    return root


@pytest.fixture
def applier(cluster: FakeCluster, helm: FakeHelm, homelab_dir: Path) -> ResourceApplier:
    return ResourceApplier(cluster, ResourceSetRenderer(homelab_dir), helm, environment="test")


@pytest.fixture
def gate(cluster: FakeCluster) -> ReadinessGate:
    return ReadinessGate(cluster, default_timeout=0.3, default_poll_interval=0.05)


@pytest.fixture
def executor(applier: ResourceApplier, gate: ReadinessGate) -> PhaseExecutor:
    return PhaseExecutor(applier, gate)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("HOMELAB_RUN_LOG", str(tmp_path / "setup.log"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
