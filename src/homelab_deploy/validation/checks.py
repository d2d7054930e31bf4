"""Typed health checks run by the Validator.

Each check is independent and read-only. Cluster checks evaluate
structured kubectl JSON; manifest checks scan the homelab checkout;
reachability checks probe service URLs with httpx.
"""

import asyncio
import fnmatch
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence

import httpx
import yaml

from homelab_deploy.cluster.kubectl import ClusterClient, condition_status, object_name
from homelab_deploy.core.contracts import CheckResult, Outcome, Severity

MANIFEST_PATTERNS = ("*.yaml", "*.yml")


class CheckRunner(ABC):
    """A single named health check."""

    def __init__(self, name: str, severity: Severity = Severity.CRITICAL):
        self.name = name
        self.severity = severity

    @abstractmethod
    async def run(self) -> CheckResult:
        """Evaluate the check."""

    def passed(self, message: str, details: Sequence[str] = ()) -> CheckResult:
        return CheckResult(
            check_name=self.name,
            severity=self.severity,
            outcome=Outcome.PASS,
            message=message,
            details=tuple(details),
        )

    def failed(
        self, message: str, details: Sequence[str] = (), severity: Optional[Severity] = None
    ) -> CheckResult:
        return CheckResult(
            check_name=self.name,
            severity=severity or self.severity,
            outcome=Outcome.FAIL,
            message=message,
            details=tuple(details),
        )


class ClusterCheck(CheckRunner):
    """Base for checks that read cluster state through a ClusterClient."""

    def __init__(self, name: str, cluster: ClusterClient, severity: Severity = Severity.CRITICAL):
        super().__init__(name, severity)
        self.cluster = cluster

    async def run(self) -> CheckResult:
        return await asyncio.to_thread(self.evaluate)

    @abstractmethod
    def evaluate(self) -> CheckResult:
        """Blocking evaluation, run in a worker thread."""


# =============================================================================
# Cluster Checks
# =============================================================================


class ExistenceCheck(ClusterCheck):
    """Does a named cluster object exist."""

    def __init__(
        self,
        name: str,
        cluster: ClusterClient,
        kind: str,
        object_name: str,
        namespace: Optional[str] = None,
        severity: Severity = Severity.CRITICAL,
    ):
        super().__init__(name, cluster, severity)
        self.kind = kind
        self.object_name = object_name
        self.namespace = namespace

    def evaluate(self) -> CheckResult:
        target = f"{self.kind}/{self.object_name}"
        if self.namespace:
            target += f" in {self.namespace}"

        if self.kind == "namespace":
            found = self.cluster.namespace_exists(self.object_name)
        else:
            found = self.cluster.get_object(self.kind, self.object_name, self.namespace) is not None

        if found:
            return self.passed(f"{target} exists")
        return self.failed(f"{target} not found")


class PhaseMatchCheck(ClusterCheck):
    """Are all objects matching a selector in an expected lifecycle phase.

    With ``condition_type`` set, the named status condition must be
    ``True`` instead (e.g. nodes ``Ready``).
    """

    def __init__(
        self,
        name: str,
        cluster: ClusterClient,
        kind: str = "pods",
        namespace: Optional[str] = None,
        selector: Optional[str] = None,
        expected_phases: Sequence[str] = ("Running", "Succeeded"),
        condition_type: Optional[str] = None,
        severity: Severity = Severity.CRITICAL,
    ):
        super().__init__(name, cluster, severity)
        self.kind = kind
        self.namespace = namespace
        self.selector = selector
        self.expected_phases = tuple(expected_phases)
        self.condition_type = condition_type

    def _scope(self) -> str:
        scope = self.kind
        if self.selector:
            scope += f" [{self.selector}]"
        return scope + (f" in {self.namespace}" if self.namespace else " in all namespaces")

    def evaluate(self) -> CheckResult:
        objects = self.cluster.list_objects(self.kind, self.namespace, self.selector)
        if not objects:
            return self.failed(f"no {self._scope()}")

        mismatched = []
        for obj in objects:
            if self.condition_type:
                status = condition_status(obj, self.condition_type) or "Unknown"
                if status != "True":
                    mismatched.append(f"{object_name(obj)} ({self.condition_type}={status})")
            else:
                phase = obj.get("status", {}).get("phase", "Unknown")
                if phase not in self.expected_phases:
                    mismatched.append(f"{object_name(obj)} ({phase})")

        expected = f"{self.condition_type}=True" if self.condition_type else "/".join(self.expected_phases)
        if mismatched:
            return self.failed(
                f"{len(mismatched)}/{len(objects)} {self._scope()} not {expected}: {', '.join(mismatched[:5])}",
                details=mismatched,
            )
        return self.passed(f"{len(objects)} {self._scope()} {expected}")


class CountThresholdCheck(ClusterCheck):
    """Is the number of matching objects at least ``minimum``.

    Below the minimum is a warn failure; none at all fails with
    ``severity`` (critical unless the objects are optional).
    """

    def __init__(
        self,
        name: str,
        cluster: ClusterClient,
        kind: str,
        minimum: int = 1,
        namespace: Optional[str] = None,
        selector: Optional[str] = None,
        hint: str = "",
        severity: Severity = Severity.CRITICAL,
    ):
        super().__init__(name, cluster, severity)
        self.kind = kind
        self.minimum = minimum
        self.namespace = namespace
        self.selector = selector
        self.hint = hint

    def evaluate(self) -> CheckResult:
        count = len(self.cluster.list_objects(self.kind, self.namespace, self.selector))
        where = f" in {self.namespace}" if self.namespace else ""
        suffix = f" ({self.hint})" if self.hint else ""

        if count == 0:
            return self.failed(f"no {self.kind} found{where}{suffix}")
        if count < self.minimum:
            return self.failed(
                f"only {count} {self.kind} found{where}, expected at least {self.minimum}{suffix}",
                severity=Severity.WARN,
            )
        return self.passed(f"{count} {self.kind} found{where}")


class AnyOfCheck(CheckRunner):
    """Passes when at least one of ``checks`` passes.

    The member checks keep their own severities when registered on
    their own; here only the aggregate outcome matters.
    """

    def __init__(
        self, name: str, checks: Sequence[CheckRunner], severity: Severity = Severity.CRITICAL
    ):
        super().__init__(name, severity)
        self.checks = list(checks)

    async def run(self) -> CheckResult:
        results = await asyncio.gather(*(check.run() for check in self.checks))
        healthy = [r.check_name for r in results if r.passed]
        details = [f"{r.check_name}: {r.message}" for r in results if not r.passed]

        if healthy:
            return self.passed(f"{len(healthy)}/{len(results)} healthy: {', '.join(healthy)}", details=details)
        names = ", ".join(check.name for check in self.checks)
        return self.failed(f"none of {names} is healthy", details=details)


# =============================================================================
# Network Checks
# =============================================================================


class ReachabilityCheck(CheckRunner):
    """
    Best-effort HTTP probe of a service URL.

    Always advisory: a test environment without DNS/hosts entries for
    the homelab domain is expected, not a deployment defect.
    """

    def __init__(
        self,
        name: str,
        url: str,
        expected_status: int = 200,
        timeout: float = 5.0,
        verify_tls: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(name, Severity.WARN)
        self.url = url
        self.expected_status = expected_status
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.transport = transport

    async def run(self) -> CheckResult:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, verify=self.verify_tls, transport=self.transport
            ) as client:
                response = await client.get(self.url)
        except httpx.HTTPError as e:
            return self.failed(f"{self.url} unreachable: {type(e).__name__}")

        if response.status_code == self.expected_status:
            return self.passed(f"{self.url} returned HTTP {response.status_code}")
        return self.failed(
            f"{self.url} returned HTTP {response.status_code} (expected {self.expected_status})"
        )


# =============================================================================
# Manifest Checks
# =============================================================================


def iter_manifests(root: Path) -> list[Path]:
    """All YAML files under ``root``, sorted."""
    return sorted(
        p for p in root.rglob("*")
        if p.is_file() and any(fnmatch.fnmatch(p.name, pattern) for pattern in MANIFEST_PATTERNS)
    )


class ContentPolicyCheck(CheckRunner):
    """
    Scan manifests for a disallowed literal.

    A file violates the policy when it matches ``pattern`` and never
    matches ``allowed`` (the secret-reference mechanism). Defaults flag
    inline passwords in files that do not use ``secretKeyRef``.
    """

    def __init__(
        self,
        name: str,
        root: Path,
        pattern: str = r"password.*:",
        allowed: Optional[str] = r"secretKeyRef",
    ):
        super().__init__(name, Severity.CRITICAL)
        self.root = Path(root)
        self.pattern = re.compile(pattern)
        self.allowed = re.compile(allowed) if allowed else None

    async def run(self) -> CheckResult:
        return await asyncio.to_thread(self.evaluate)

    def evaluate(self) -> CheckResult:
        if not self.root.is_dir():
            return self.failed(f"manifest directory {self.root} not found", severity=Severity.WARN)

        violations = []
        files = iter_manifests(self.root)
        for path in files:
            text = path.read_text(encoding="utf-8", errors="replace")
            if not self.pattern.search(text):
                continue
            if self.allowed is not None and self.allowed.search(text):
                continue
            violations.append(str(path.relative_to(self.root)))

        if violations:
            return self.failed(
                f"{len(violations)} manifest(s) contain '{self.pattern.pattern}' without "
                f"secret references: {', '.join(violations[:5])}",
                details=violations,
            )
        return self.passed(f"{len(files)} manifest(s) scanned, no inline '{self.pattern.pattern}'")


class ManifestSyntaxCheck(CheckRunner):
    """Every YAML manifest under ``root`` parses."""

    def __init__(self, name: str, root: Path):
        super().__init__(name, Severity.CRITICAL)
        self.root = Path(root)

    async def run(self) -> CheckResult:
        return await asyncio.to_thread(self.evaluate)

    def evaluate(self) -> CheckResult:
        if not self.root.is_dir():
            return self.failed(f"manifest directory {self.root} not found", severity=Severity.WARN)

        broken = []
        files = iter_manifests(self.root)
        for path in files:
            try:
                with open(path, encoding="utf-8") as f:
                    list(yaml.safe_load_all(f))
            except yaml.YAMLError as e:
                mark = getattr(e, "problem_mark", None)
                where = f":{mark.line + 1}" if mark is not None else ""
                broken.append(f"{path.relative_to(self.root)}{where}")
            except (OSError, UnicodeDecodeError) as e:
                broken.append(f"{path.relative_to(self.root)} (unreadable: {type(e).__name__})")

        if broken:
            return self.failed(
                f"{len(broken)} manifest(s) have YAML syntax errors: {', '.join(broken[:5])}",
                details=broken,
            )
        return self.passed(f"{len(files)} manifest(s) have valid YAML syntax")
