"""kubectl wrapper exposing the cluster capabilities the core needs.

All reads use ``-o json`` and return parsed objects; nothing downstream
scrapes kubectl's table output.
"""

import json
import logging
import re
import subprocess
from typing import Any, Optional, Protocol

from homelab_deploy.core.contracts import AppliedResource
from homelab_deploy.core.errors import ApplyError, ClusterError

logger = logging.getLogger(__name__)

_APPLY_LINE = re.compile(
    r"^(?P<name>\S+/\S+)\s+(?P<action>created|configured|unchanged|serverside-applied)\b"
)


class ClusterClient(Protocol):
    """Capability interface over the cluster API."""

    def apply_manifest(
        self, manifest: str, *, source: str = "-", namespace: Optional[str] = None, dry_run: bool = False
    ) -> list[AppliedResource]: ...

    def get_object(self, kind: str, name: str, namespace: Optional[str] = None) -> Optional[dict[str, Any]]: ...

    def list_objects(
        self, kind: str, namespace: Optional[str] = None, selector: Optional[str] = None
    ) -> list[dict[str, Any]]: ...

    def namespace_exists(self, name: str) -> bool: ...


def parse_apply_output(stdout: str) -> list[AppliedResource]:
    """Parse ``kubectl apply`` output lines into applied resources.

    Args:
        stdout: kubectl apply stdout, one ``kind/name verb`` line per object

    Returns:
        Applied resources in output order; unrecognised lines are skipped
    """
    resources = []
    for line in stdout.splitlines():
        match = _APPLY_LINE.match(line.strip())
        if match:
            resources.append(AppliedResource(name=match["name"], action=match["action"]))
    return resources


class KubectlClient:
    """Cluster client backed by the kubectl CLI."""

    def __init__(
        self,
        kubectl_bin: str = "kubectl",
        context: Optional[str] = None,
        timeout: float = 600.0,
    ):
        self.kubectl_bin = kubectl_bin
        self.context = context
        self.timeout = timeout

    def _command(self, args: list[str]) -> list[str]:
        cmd = [self.kubectl_bin]
        if self.context:
            cmd.extend(["--context", self.context])
        return cmd + args

    def _run(
        self, args: list[str], stdin: Optional[str] = None, timeout: Optional[float] = None
    ) -> subprocess.CompletedProcess:
        cmd = self._command(args)
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            return subprocess.run(
                cmd,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=timeout or self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise ClusterError(cmd, f"timed out after {timeout or self.timeout:g}s")
        except FileNotFoundError:
            raise ClusterError(cmd, f"{self.kubectl_bin} not installed")

    def apply_manifest(
        self,
        manifest: str,
        *,
        source: str = "-",
        namespace: Optional[str] = None,
        dry_run: bool = False,
    ) -> list[AppliedResource]:
        """Apply a rendered manifest through ``kubectl apply -f -``.

        Raises:
            ApplyError: kubectl rejected the manifest; carries whatever was
                applied before the rejection
        """
        args = ["apply", "-f", "-"]
        if namespace:
            args.extend(["-n", namespace])
        if dry_run:
            args.append("--dry-run=server")

        try:
            result = self._run(args, stdin=manifest)
        except ClusterError as e:
            raise ApplyError(source, e.message)

        applied = parse_apply_output(result.stdout)
        if result.returncode != 0:
            message = result.stderr.strip()[:500] or "kubectl apply failed"
            raise ApplyError(source, message, applied=applied)
        return applied

    def get_object(self, kind: str, name: str, namespace: Optional[str] = None) -> Optional[dict[str, Any]]:
        """Fetch one object, or None when it does not exist."""
        args = ["get", kind, name, "-o", "json"]
        if namespace:
            args.extend(["-n", namespace])

        result = self._run(args, timeout=30)
        if result.returncode != 0:
            if "NotFound" in result.stderr or "not found" in result.stderr:
                return None
            raise ClusterError(self._command(args), result.stderr.strip()[:300], result.returncode)
        return self._parse_json(args, result.stdout)

    def list_objects(
        self, kind: str, namespace: Optional[str] = None, selector: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """List objects of a kind, optionally namespaced and label-selected."""
        args = ["get", kind, "-o", "json"]
        if namespace:
            args.extend(["-n", namespace])
        else:
            args.append("-A")
        if selector:
            args.extend(["-l", selector])

        result = self._run(args, timeout=30)
        if result.returncode != 0:
            raise ClusterError(self._command(args), result.stderr.strip()[:300], result.returncode)
        return self._parse_json(args, result.stdout).get("items", [])

    def namespace_exists(self, name: str) -> bool:
        return self.get_object("namespace", name) is not None

    def cluster_reachable(self) -> bool:
        """Whether ``kubectl cluster-info`` succeeds."""
        try:
            return self._run(["cluster-info"], timeout=30).returncode == 0
        except ClusterError:
            return False

    def _parse_json(self, args: list[str], stdout: str) -> dict[str, Any]:
        try:
            return json.loads(stdout)
        except json.JSONDecodeError:
            raise ClusterError(self._command(args), "failed to parse kubectl JSON output")


def object_name(obj: dict[str, Any]) -> str:
    """``namespace/name`` (or ``name`` for cluster-scoped objects)."""
    metadata = obj.get("metadata", {})
    name = metadata.get("name", "<unnamed>")
    namespace = metadata.get("namespace")
    return f"{namespace}/{name}" if namespace else name


def condition_status(obj: dict[str, Any], condition_type: str) -> Optional[str]:
    """Status (``True``/``False``/``Unknown``) of a status condition, if present."""
    for condition in obj.get("status", {}).get("conditions", []) or []:
        if condition.get("type") == condition_type:
            return condition.get("status")
    return None
