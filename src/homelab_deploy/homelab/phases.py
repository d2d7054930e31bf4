"""The built-in homelab deployment plan.

Infrastructure the rest of the estate depends on (secrets, ingress,
storage, load balancing, authentication, GitOps) is fatal; optional
services only warn when they fail to come up.
"""

from typing import Optional

from homelab_deploy.core.contracts import (
    ConditionKind,
    DirectoryRef,
    FailurePolicy,
    HelmReleaseRef,
    KustomizeRef,
    ManifestRef,
    NamespaceRef,
    Phase,
    ReadinessCondition,
    UrlRef,
)

ARGOCD_VERSION = "v2.10.0"
ARGOCD_INSTALL_URL = f"https://raw.githubusercontent.com/argoproj/argo-cd/{ARGOCD_VERSION}/manifests/install.yaml"

FATAL = FailurePolicy.FATAL
WARN = FailurePolicy.WARN


def pods_ready(namespace: str, selector: Optional[str] = None, timeout: Optional[float] = None) -> ReadinessCondition:
    return ReadinessCondition(
        kind=ConditionKind.PODS_READY,
        namespace=namespace,
        selector=selector,
        timeout_seconds=timeout,
    )


def manifests(*paths: str) -> list[ManifestRef]:
    return [ManifestRef(path=p) for p in paths]


def default_plan() -> list[Phase]:
    """The homelab's hand-authored phase sequence."""
    return [
        Phase(
            name="secrets-operator",
            description="External Secrets Operator",
            actions=manifests("kubernetes/secrets/external-secrets-operator.yaml"),
            gates=[pods_ready("external-secrets", "app.kubernetes.io/name=external-secrets")],
            failure_policy=FATAL,
        ),
        Phase(
            name="secret-store",
            actions=manifests("kubernetes/secrets/secret-store.yaml"),
            failure_policy=FATAL,
        ),
        Phase(
            name="infrastructure",
            description="Core infrastructure overlay",
            actions=[KustomizeRef(path="kustomize/overlays/{environment}")],
            gates=[pods_ready("kube-system", "app=traefik")],
            failure_policy=FATAL,
        ),
        Phase(
            name="storage",
            actions=[KustomizeRef(path="kubernetes/storage")],
            gates=[pods_ready("local-path-storage", "app=local-path-provisioner")],
            failure_policy=FATAL,
        ),
        Phase(
            name="loadbalancer",
            description="MetalLB",
            actions=[
                HelmReleaseRef(
                    release="metallb",
                    chart="metallb",
                    repo="https://metallb.github.io/metallb",
                    namespace="metallb-system",
                ),
            ],
            gates=[pods_ready("metallb-system", "app.kubernetes.io/name=metallb")],
            failure_policy=FATAL,
        ),
        Phase(
            name="loadbalancer-config",
            actions=manifests(
                "kubernetes/loadbalancing/metallb/ipaddresspool.yaml",
                "kubernetes/loadbalancing/metallb/l2advertisement.yaml",
            ),
            failure_policy=FATAL,
        ),
        Phase(
            name="backup",
            description="Velero",
            actions=[
                ManifestRef(path="kubernetes/backup/velero/namespace.yaml"),
                HelmReleaseRef(
                    release="velero",
                    chart="velero",
                    repo="https://vmware-tanzu.github.io/helm-charts",
                    namespace="velero",
                    values_files=["kubernetes/backup/velero/values.yaml"],
                    create_namespace=False,
                ),
                ManifestRef(path="kubernetes/backup/velero/schedules.yaml"),
            ],
            failure_policy=FATAL,
        ),
        Phase(
            name="security",
            description="CrowdSec",
            actions=manifests(
                "kubernetes/security/crowdsec/namespace.yaml",
                "kubernetes/security/crowdsec/configmap.yaml",
                "kubernetes/security/crowdsec/deployment.yaml",
            ),
            gates=[pods_ready("crowdsec", "app=crowdsec")],
            failure_policy=WARN,
        ),
        Phase(
            name="network-policies",
            actions=manifests(
                "kubernetes/security/network-policies/namespace.yaml",
                "kubernetes/security/network-policies/default-deny-policies.yaml",
                "kubernetes/security/network-policies/egress-policies.yaml",
                "kubernetes/security/network-policies/database-policies.yaml",
                "kubernetes/security/network-policies/sensitive-services-policies.yaml",
                "kubernetes/security/network-policies/infrastructure-policies.yaml",
                "kubernetes/security/network-policies/media-services-policies.yaml",
            ),
            failure_policy=FATAL,
        ),
        Phase(
            name="guardrails",
            description="PodDisruptionBudgets, ResourceQuotas, Pod Security Standards",
            actions=manifests(
                "kubernetes/security/pod-disruption-budgets.yaml",
                "kubernetes/security/resource-quotas.yaml",
                "kubernetes/security/pod-security-standards.yaml",
            ),
            failure_policy=FATAL,
        ),
        Phase(
            name="ingress",
            description="cert-manager and issuers",
            actions=[
                HelmReleaseRef(
                    release="cert-manager",
                    chart="cert-manager",
                    repo="https://charts.jetstack.io",
                    namespace="cert-manager",
                    version="v1.13.0",
                    set_values={"installCRDs": "true"},
                ),
                DirectoryRef(path="kubernetes/ingress/cert-manager"),
            ],
            failure_policy=FATAL,
        ),
        Phase(
            name="monitoring",
            actions=[
                HelmReleaseRef(
                    release="kube-prometheus-stack",
                    chart="kube-prometheus-stack",
                    repo="https://prometheus-community.github.io/helm-charts",
                    namespace="monitoring",
                    values_files=["kubernetes/monitoring/prometheus/values.yaml"],
                ),
                DirectoryRef(path="kubernetes/monitoring/uptime-kuma"),
            ],
            failure_policy=WARN,
        ),
        Phase(
            name="core-services",
            actions=[
                HelmReleaseRef(release="nextcloud", chart="helm/nextcloud", namespace="nextcloud"),
                DirectoryRef(path="kubernetes/services/vaultwarden"),
                DirectoryRef(path="kubernetes/services/gitea"),
            ],
            failure_policy=FATAL,
        ),
        Phase(
            name="authentication-redis",
            actions=manifests(
                "kubernetes/services/authelia/namespace.yaml",
                "kubernetes/services/authelia/configmap.yaml",
                "kubernetes/services/authelia/redis-deployment.yaml",
            ),
            gates=[pods_ready("authelia", "app=authelia-redis")],
            failure_policy=FATAL,
        ),
        Phase(
            name="authentication",
            description="Authelia SSO/2FA",
            actions=manifests(
                "kubernetes/services/authelia/deployment.yaml",
                "kubernetes/services/authelia/middleware.yaml",
            ),
            failure_policy=FATAL,
        ),
        Phase(
            name="media-services",
            actions=manifests(
                "kubernetes/services/jellyfin/namespace.yaml",
                "kubernetes/services/jellyfin/deployment.yaml",
                "kubernetes/services/arr-stack/namespace.yaml",
                "kubernetes/services/arr-stack/shared-storage.yaml",
                "kubernetes/services/arr-stack/sonarr-deployment.yaml",
                "kubernetes/services/arr-stack/radarr-deployment.yaml",
                "kubernetes/services/arr-stack/prowlarr-deployment.yaml",
                "kubernetes/services/arr-stack/bazarr-deployment.yaml",
                "kubernetes/services/audiobookshelf/namespace.yaml",
                "kubernetes/services/audiobookshelf/deployment.yaml",
            ),
            failure_policy=WARN,
        ),
        Phase(
            name="network-services",
            actions=[
                DirectoryRef(path="kubernetes/services/pihole"),
                DirectoryRef(path="kubernetes/services/wireguard"),
                DirectoryRef(path="kubernetes/services/dnsmasq-dhcp"),
            ],
            failure_policy=WARN,
        ),
        Phase(
            name="development-services",
            actions=[
                DirectoryRef(path="kubernetes/services/harbor"),
                DirectoryRef(path="kubernetes/services/drone"),
            ],
            failure_policy=WARN,
        ),
        Phase(
            name="content-services",
            actions=[
                DirectoryRef(path="kubernetes/services/searxng"),
                DirectoryRef(path="kubernetes/services/calibre-web"),
                DirectoryRef(path="kubernetes/services/yarr"),
            ],
            failure_policy=WARN,
        ),
        Phase(
            name="ai-dependencies",
            description="Immich databases",
            actions=manifests(
                "kubernetes/services/immich/namespace.yaml",
                "kubernetes/services/immich/postgres-deployment.yaml",
                "kubernetes/services/immich/redis-deployment.yaml",
            ),
            gates=[
                pods_ready("immich", "app=immich-postgres"),
                pods_ready("immich", "app=immich-redis"),
            ],
            failure_policy=WARN,
        ),
        Phase(
            name="ai-services",
            description="Immich and Ollama",
            actions=manifests(
                "kubernetes/services/immich/server-deployment.yaml",
                "kubernetes/services/immich/microservices-deployment.yaml",
                "kubernetes/services/immich/machine-learning-deployment.yaml",
                "kubernetes/services/ollama/namespace.yaml",
                "kubernetes/services/ollama/deployment.yaml",
            ),
            failure_policy=WARN,
        ),
        Phase(
            name="productivity-dependencies",
            description="Paperless, n8n and Linkwarden databases",
            actions=manifests(
                "kubernetes/services/paperless-ngx/namespace.yaml",
                "kubernetes/services/paperless-ngx/postgres-deployment.yaml",
                "kubernetes/services/paperless-ngx/redis-deployment.yaml",
                "kubernetes/services/n8n/namespace.yaml",
                "kubernetes/services/n8n/postgres-deployment.yaml",
                "kubernetes/services/linkwarden/namespace.yaml",
                "kubernetes/services/linkwarden/postgres-deployment.yaml",
            ),
            gates=[
                pods_ready("paperless-ngx", "app=paperless-postgres"),
                pods_ready("n8n", "app=n8n-postgres"),
                pods_ready("linkwarden", "app=linkwarden-postgres"),
            ],
            failure_policy=WARN,
        ),
        Phase(
            name="productivity-services",
            actions=manifests(
                "kubernetes/services/paperless-ngx/deployment.yaml",
                "kubernetes/services/n8n/deployment.yaml",
                "kubernetes/services/mealie/namespace.yaml",
                "kubernetes/services/mealie/deployment.yaml",
                "kubernetes/services/linkwarden/deployment.yaml",
            ),
            failure_policy=WARN,
        ),
        Phase(
            name="dashboard",
            description="Homepage",
            actions=manifests(
                "kubernetes/services/homepage/namespace.yaml",
                "kubernetes/services/homepage/rbac.yaml",
                "kubernetes/services/homepage/configmap.yaml",
                "kubernetes/services/homepage/deployment.yaml",
            ),
            failure_policy=WARN,
        ),
        Phase(
            name="gitops",
            description=f"ArgoCD {ARGOCD_VERSION}",
            actions=[
                NamespaceRef(name="argocd"),
                UrlRef(url=ARGOCD_INSTALL_URL, namespace="argocd"),
            ],
            gates=[pods_ready("argocd", timeout=600)],
            failure_policy=FATAL,
        ),
        Phase(
            name="gitops-applications",
            actions=[DirectoryRef(path="kubernetes/gitops/argocd")],
            failure_policy=FATAL,
        ),
    ]
