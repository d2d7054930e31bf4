"""Thin wrappers around kubectl, helm and the manifest producers."""

from homelab_deploy.cluster.helm import HelmClient
from homelab_deploy.cluster.kubectl import ClusterClient, KubectlClient, parse_apply_output
from homelab_deploy.cluster.renderer import ResourceSetRenderer

__all__ = [
    "ClusterClient",
    "HelmClient",
    "KubectlClient",
    "ResourceSetRenderer",
    "parse_apply_output",
]
