"""Contract definitions (Pydantic models) for orchestration and validation.

This module defines the data passed between the orchestration components:
- Resource set references: what an apply action submits to the cluster
- Readiness conditions: what a gate waits for before a phase completes
- Phase / OrchestrationRun: the deployment plan and its per-invocation results
- CheckResult / ValidationReport: health check outcomes and their aggregate
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from homelab_deploy.core.errors import GateTimeout


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


# =============================================================================
# Shared Types
# =============================================================================


class FailurePolicy(str, Enum):
    """What a phase failure does to the rest of the run."""

    FATAL = "fatal"
    WARN = "warn"


class PhaseStatus(str, Enum):
    """Lifecycle states of a phase."""

    PENDING = "pending"
    APPLYING = "applying"
    GATING = "gating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    COMPLETED_WITH_WARNINGS = "completed_with_warnings"

    @property
    def is_terminal(self) -> bool:
        return self in (
            PhaseStatus.SUCCEEDED,
            PhaseStatus.FAILED,
            PhaseStatus.COMPLETED_WITH_WARNINGS,
        )


class RunStatus(str, Enum):
    """Status of one orchestration run."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABORTED = "aborted"


class Severity(str, Enum):
    """Severity of a health check."""

    INFO = "info"
    WARN = "warn"
    CRITICAL = "critical"


class Outcome(str, Enum):
    """Outcome of a health check."""

    PASS = "pass"
    FAIL = "fail"


class OverallStatus(str, Enum):
    """Aggregate status of a validation pass."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


# =============================================================================
# Resource Sets
# =============================================================================


class ManifestRef(BaseModel):
    """A single YAML manifest file."""

    kind: Literal["manifest"] = "manifest"
    path: str = Field(description="Path relative to the homelab directory")

    def describe(self) -> str:
        return f"manifest {self.path}"


class DirectoryRef(BaseModel):
    """Every YAML file of a directory, applied in sorted order."""

    kind: Literal["directory"] = "directory"
    path: str = Field(description="Directory relative to the homelab directory")

    def describe(self) -> str:
        return f"directory {self.path}"


class KustomizeRef(BaseModel):
    """A kustomization; ``{environment}`` in the path selects the overlay."""

    kind: Literal["kustomize"] = "kustomize"
    path: str = Field(description="Kustomization directory, may contain {environment}")

    def describe(self) -> str:
        return f"kustomize {self.path}"


class NamespaceRef(BaseModel):
    """An inline Namespace object."""

    kind: Literal["namespace"] = "namespace"
    name: str
    labels: dict[str, str] = Field(default_factory=dict)

    def describe(self) -> str:
        return f"namespace {self.name}"


class UrlRef(BaseModel):
    """A remote manifest fetched over HTTP(S)."""

    kind: Literal["url"] = "url"
    url: str
    namespace: Optional[str] = Field(default=None, description="Namespace to apply into")

    def describe(self) -> str:
        return f"url {self.url}"


class HelmReleaseRef(BaseModel):
    """A Helm chart release installed with ``helm upgrade --install``."""

    kind: Literal["helm"] = "helm"
    release: str
    chart: str = Field(description="Chart reference (repo/chart or local path)")
    namespace: str
    repo: Optional[str] = Field(default=None, description="Chart repository URL")
    version: Optional[str] = None
    values_files: list[str] = Field(default_factory=list)
    set_values: dict[str, str] = Field(default_factory=dict)
    create_namespace: bool = True
    wait: bool = True

    def describe(self) -> str:
        return f"helm release {self.namespace}/{self.release} ({self.chart})"


ResourceSetRef = Annotated[
    Union[ManifestRef, DirectoryRef, KustomizeRef, NamespaceRef, UrlRef, HelmReleaseRef],
    Field(discriminator="kind"),
]


class AppliedResource(BaseModel):
    """One object reported back by an apply."""

    name: str = Field(description="kind/name as reported by the cluster")
    action: str = Field(description="created, configured, unchanged, deployed")

    @property
    def changed(self) -> bool:
        return self.action != "unchanged"


class ApplyResult(BaseModel):
    """Outcome of applying one resource set."""

    source: str
    resources: list[AppliedResource] = Field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[Literal["render", "apply"]] = None
    dry_run: bool = False
    applied_at: datetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def applied(self) -> int:
        return sum(1 for r in self.resources if r.changed)

    @computed_field
    @property
    def unchanged(self) -> int:
        return sum(1 for r in self.resources if not r.changed)

    @property
    def ok(self) -> bool:
        return self.error is None


# =============================================================================
# Readiness
# =============================================================================


class ConditionKind(str, Enum):
    """Predicates a readiness gate can wait for."""

    PODS_READY = "pods_ready"
    NAMESPACE_EXISTS = "namespace_exists"
    RESOURCE_EXISTS = "resource_exists"


class ReadinessCondition(BaseModel):
    """A read-only condition polled until it holds or times out."""

    kind: ConditionKind
    namespace: Optional[str] = None
    selector: Optional[str] = Field(default=None, description="Label selector, e.g. app=traefik")
    resource_kind: Optional[str] = Field(default=None, description="Object kind for resource_exists")
    name: Optional[str] = Field(default=None, description="Object name for resource_exists")
    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    poll_interval_seconds: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _check_target(self) -> "ReadinessCondition":
        if self.kind == ConditionKind.PODS_READY and not self.namespace:
            raise ValueError("pods_ready requires a namespace")
        if self.kind == ConditionKind.NAMESPACE_EXISTS and not self.namespace:
            raise ValueError("namespace_exists requires a namespace")
        if self.kind == ConditionKind.RESOURCE_EXISTS and not (self.resource_kind and self.name):
            raise ValueError("resource_exists requires resource_kind and name")
        return self

    def describe(self) -> str:
        if self.kind == ConditionKind.PODS_READY:
            target = self.selector or "all pods"
            return f"pods ready [{target}] in {self.namespace}"
        if self.kind == ConditionKind.NAMESPACE_EXISTS:
            return f"namespace {self.namespace} exists"
        where = f" in {self.namespace}" if self.namespace else ""
        return f"{self.resource_kind}/{self.name} exists{where}"


class GateResult(BaseModel):
    """Outcome of waiting on one readiness condition."""

    condition: str
    satisfied: bool
    elapsed_seconds: float
    timeout_seconds: float
    observations: int = 0
    last_observation: str = ""
    cancelled: bool = False
    resolved_at: datetime = Field(default_factory=utcnow)

    def raise_for_timeout(self) -> None:
        """Raise GateTimeout if the condition was not satisfied."""
        if not self.satisfied:
            raise GateTimeout(self.condition, self.timeout_seconds, self.last_observation)


# =============================================================================
# Phases and Runs
# =============================================================================


class Phase(BaseModel):
    """An ordered unit of apply-then-gate work."""

    name: str
    description: str = ""
    actions: list[ResourceSetRef] = Field(default_factory=list)
    gates: list[ReadinessCondition] = Field(default_factory=list)
    failure_policy: FailurePolicy = FailurePolicy.FATAL


class PhaseResult(BaseModel):
    """Per-phase record inside an OrchestrationRun."""

    name: str
    failure_policy: FailurePolicy
    status: PhaseStatus = PhaseStatus.PENDING
    actions: list[ApplyResult] = Field(default_factory=list)
    gates: list[GateResult] = Field(default_factory=list)
    failed_step: Optional[str] = Field(default=None, description="Offending action or gate")
    error: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class OrchestrationRun(BaseModel):
    """Results of one orchestration invocation."""

    environment: str
    status: RunStatus = RunStatus.IN_PROGRESS
    phases: list[PhaseResult] = Field(default_factory=list)
    aborted_at: Optional[str] = None
    abort_reason: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)
    cancelled: bool = False
    dry_run: bool = False
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    def phase(self, name: str) -> Optional[PhaseResult]:
        """Look up a phase result by name."""
        for result in self.phases:
            if result.name == name:
                return result
        return None

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


# =============================================================================
# Validation
# =============================================================================


class CheckResult(BaseModel):
    """Immutable outcome of one health check."""

    model_config = ConfigDict(frozen=True)

    check_name: str
    severity: Severity
    outcome: Outcome
    message: str
    details: tuple[str, ...] = ()
    observed_at: datetime = Field(default_factory=utcnow)

    @property
    def passed(self) -> bool:
        return self.outcome == Outcome.PASS

    @property
    def blocking(self) -> bool:
        """A critical failure, the only kind that makes a report unhealthy."""
        return self.outcome == Outcome.FAIL and self.severity == Severity.CRITICAL


class ValidationReport(BaseModel):
    """Aggregated results of one validation pass, in registration order."""

    results: list[CheckResult] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    @computed_field
    @property
    def pass_count(self) -> int:
        return sum(1 for r in self.results if r.outcome == Outcome.PASS)

    @computed_field
    @property
    def fail_count(self) -> int:
        return sum(1 for r in self.results if r.outcome == Outcome.FAIL)

    @computed_field
    @property
    def warn_count(self) -> int:
        return sum(
            1 for r in self.results
            if r.outcome == Outcome.FAIL and r.severity != Severity.CRITICAL
        )

    @computed_field
    @property
    def overall_status(self) -> OverallStatus:
        if any(r.blocking for r in self.results):
            return OverallStatus.UNHEALTHY
        return OverallStatus.HEALTHY

    @property
    def failures(self) -> list[CheckResult]:
        return [r for r in self.results if r.outcome == Outcome.FAIL]
