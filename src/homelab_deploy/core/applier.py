"""Idempotent application of resource sets to the cluster."""

import logging

from homelab_deploy.cluster.helm import HelmClient
from homelab_deploy.cluster.kubectl import ClusterClient
from homelab_deploy.cluster.renderer import ResourceSetRenderer
from homelab_deploy.core.contracts import ApplyResult, HelmReleaseRef, UrlRef
from homelab_deploy.core.errors import ApplyError, RenderError

logger = logging.getLogger(__name__)


class ResourceApplier:
    """
    Renders and submits resource sets.

    Re-applying an unchanged set converges to the same cluster state and
    reports every object as unchanged. Render failures and cluster
    rejections are reported separately through ``ApplyResult.error_kind``
    so the phase executor can treat render failures as always fatal.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        renderer: ResourceSetRenderer,
        helm: HelmClient,
        environment: str,
        dry_run: bool = False,
    ):
        self.cluster = cluster
        self.renderer = renderer
        self.helm = helm
        self.environment = environment
        self.dry_run = dry_run

    def apply(self, ref) -> ApplyResult:
        """Apply one resource set.

        Args:
            ref: Any ResourceSetRef variant

        Returns:
            ApplyResult with per-object actions, or the error that stopped it
        """
        source = ref.describe()
        try:
            if isinstance(ref, HelmReleaseRef):
                values_files = self.renderer.resolve_values_files(ref)
                resources = [self.helm.upgrade_install(ref, values_files, dry_run=self.dry_run)]
            else:
                manifest = self.renderer.render(ref, self.environment)
                namespace = ref.namespace if isinstance(ref, UrlRef) else None
                resources = self.cluster.apply_manifest(
                    manifest, source=source, namespace=namespace, dry_run=self.dry_run
                )
        except RenderError as e:
            logger.error(f"Render failed: {e}")
            return ApplyResult(source=source, error=e.message, error_kind="render", dry_run=self.dry_run)
        except ApplyError as e:
            logger.error(f"Apply failed: {e}")
            return ApplyResult(
                source=source,
                resources=e.applied,
                error=e.message,
                error_kind="apply",
                dry_run=self.dry_run,
            )

        result = ApplyResult(source=source, resources=resources, dry_run=self.dry_run)
        logger.info(f"Applied {source}: {result.applied} changed, {result.unchanged} unchanged")
        return result
