"""The built-in homelab validation suite."""

from pathlib import Path
from typing import Optional

from homelab_deploy.cluster.kubectl import ClusterClient
from homelab_deploy.config import Settings
from homelab_deploy.core.contracts import Severity
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

# (check name, namespace, selector)
OPTIONAL_WORKLOADS = [
    ("storage-provisioner", "local-path-storage", "app=local-path-provisioner"),
    ("cert-manager", "cert-manager", None),
    ("prometheus", "monitoring", "app.kubernetes.io/name=prometheus"),
    ("grafana", "monitoring", "app.kubernetes.io/name=grafana"),
    ("metallb", "metallb-system", "app.kubernetes.io/name=metallb"),
    ("velero", "velero", None),
    ("crowdsec-agent", "crowdsec", "app=crowdsec"),
    ("crowdsec-bouncer", "crowdsec", "component=bouncer"),
    ("authelia", "authelia", "app=authelia"),
    ("authelia-redis", "authelia", "app=authelia-redis"),
    ("nextcloud", "nextcloud", None),
    ("gitea", "gitea", None),
    ("vaultwarden", "vaultwarden", None),
    ("jellyfin", "jellyfin", None),
    ("arr-stack", "arr-stack", None),
    ("audiobookshelf", "audiobookshelf", None),
    ("immich", "immich", "app=immich-server"),
    ("ollama", "ollama", "app=ollama"),
    ("paperless-ngx", "paperless-ngx", None),
    ("n8n", "n8n", None),
    ("mealie", "mealie", None),
    ("linkwarden", "linkwarden", None),
    ("homepage", "homepage", None),
]

# At least one must be running
CORE_SERVICES = ["nextcloud", "gitea", "vaultwarden"]

# (check name, host prefix)
SERVICE_ENDPOINTS = [
    ("grafana", "grafana"),
    ("argocd", "argocd"),
    ("homepage", "home"),
    ("jellyfin", "jellyfin"),
    ("nextcloud", "nextcloud"),
    ("vaultwarden", "vault"),
    ("authelia", "auth"),
    ("gitea", "git"),
]


def default_checks(
    cluster: ClusterClient,
    settings: Settings,
    manifests_dir: Optional[Path] = None,
) -> list[CheckRunner]:
    """Build the standard check suite for a deployed homelab."""
    manifests_dir = manifests_dir or settings.manifests_dir

    checks: list[CheckRunner] = [
        ExistenceCheck("cluster-accessible", cluster, "namespace", "kube-system"),
        PhaseMatchCheck("nodes-ready", cluster, kind="nodes", condition_type="Ready"),
        PhaseMatchCheck(
            "external-secrets-operator",
            cluster,
            namespace="external-secrets",
            selector="app.kubernetes.io/name=external-secrets",
        ),
        ExistenceCheck("secrets-namespace", cluster, "namespace", "secrets"),
        CountThresholdCheck(
            "generated-secrets",
            cluster,
            "secrets",
            minimum=settings.min_secrets,
            namespace="secrets",
            hint="run scripts/generate-secrets.sh",
        ),
        ExistenceCheck("storage-class", cluster, "storageclass", "local-path"),
        PhaseMatchCheck(
            "traefik",
            cluster,
            namespace="kube-system",
            selector="app.kubernetes.io/name=traefik",
        ),
        CountThresholdCheck(
            "external-secrets",
            cluster,
            "externalsecrets",
            hint="secrets may not be properly configured",
            severity=Severity.WARN,
        ),
        CountThresholdCheck(
            "network-policies",
            cluster,
            "networkpolicies",
            hint="consider implementing network segmentation",
            severity=Severity.WARN,
        ),
        CountThresholdCheck(
            "metallb-ip-pools", cluster, "ipaddresspools", namespace="metallb-system", severity=Severity.WARN
        ),
        CountThresholdCheck(
            "velero-schedules", cluster, "schedules.velero.io", namespace="velero", severity=Severity.WARN
        ),
        AnyOfCheck(
            "core-services",
            [PhaseMatchCheck(name, cluster, namespace=name, severity=Severity.WARN) for name in CORE_SERVICES],
        ),
    ]

    for name, namespace, selector in OPTIONAL_WORKLOADS:
        checks.append(
            PhaseMatchCheck(name, cluster, namespace=namespace, selector=selector, severity=Severity.WARN)
        )

    checks.append(ContentPolicyCheck("no-inline-passwords", manifests_dir))
    checks.append(ManifestSyntaxCheck("manifest-syntax", manifests_dir))

    for name, host in SERVICE_ENDPOINTS:
        checks.append(
            ReachabilityCheck(
                f"reach-{name}",
                settings.service_url(host),
                timeout=settings.reachability_timeout_seconds,
            )
        )
    return checks
