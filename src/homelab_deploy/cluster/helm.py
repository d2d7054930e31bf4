"""Helm wrapper for chart releases."""

import logging
import subprocess
from pathlib import Path
from typing import Optional

from homelab_deploy.core.contracts import AppliedResource, HelmReleaseRef
from homelab_deploy.core.errors import ApplyError

logger = logging.getLogger(__name__)


class HelmClient:
    """Installs or upgrades chart releases with ``helm upgrade --install``."""

    def __init__(
        self,
        helm_bin: str = "helm",
        context: Optional[str] = None,
        timeout: float = 600.0,
    ):
        self.helm_bin = helm_bin
        self.context = context
        self.timeout = timeout

    def build_command(
        self, ref: HelmReleaseRef, values_files: list[Path], dry_run: bool = False
    ) -> list[str]:
        cmd = [
            self.helm_bin, "upgrade", "--install",
            ref.release, ref.chart,
            "--namespace", ref.namespace,
        ]
        if self.context:
            cmd.extend(["--kube-context", self.context])
        if ref.create_namespace:
            cmd.append("--create-namespace")
        if ref.repo:
            cmd.extend(["--repo", ref.repo])
        if ref.version:
            cmd.extend(["--version", ref.version])
        for values_file in values_files:
            cmd.extend(["-f", str(values_file)])
        for key, value in sorted(ref.set_values.items()):
            cmd.extend(["--set", f"{key}={value}"])
        if ref.wait:
            cmd.extend(["--wait", "--timeout", f"{int(self.timeout)}s"])
        if dry_run:
            cmd.append("--dry-run")
        return cmd

    def upgrade_install(
        self, ref: HelmReleaseRef, values_files: list[Path], dry_run: bool = False
    ) -> AppliedResource:
        """Install or upgrade a release.

        Raises:
            ApplyError: helm failed, timed out or is not installed
        """
        cmd = self.build_command(ref, values_files, dry_run=dry_run)
        source = ref.describe()
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout + 60,
            )
        except subprocess.TimeoutExpired:
            raise ApplyError(source, f"helm upgrade timed out for release {ref.release}")
        except FileNotFoundError:
            raise ApplyError(source, "Helm not installed")

        if result.returncode != 0:
            raise ApplyError(source, result.stderr.strip()[:500] or "helm upgrade failed")

        return AppliedResource(name=f"release/{ref.release}", action="deployed")
