"""Health checks and the validator that aggregates them."""

from homelab_deploy.validation.checks import (
    AnyOfCheck,
    CheckRunner,
    ContentPolicyCheck,
    CountThresholdCheck,
    ExistenceCheck,
    ManifestSyntaxCheck,
    PhaseMatchCheck,
    ReachabilityCheck,
)
from homelab_deploy.validation.validator import Validator

__all__ = [
    "AnyOfCheck",
    "CheckRunner",
    "ContentPolicyCheck",
    "CountThresholdCheck",
    "ExistenceCheck",
    "ManifestSyntaxCheck",
    "PhaseMatchCheck",
    "ReachabilityCheck",
    "Validator",
]
