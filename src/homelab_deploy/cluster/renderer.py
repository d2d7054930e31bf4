"""Resource-set producer: turns a ResourceSetRef into a concrete manifest."""

import logging
import subprocess
from pathlib import Path

import httpx
import yaml

from homelab_deploy.core.contracts import (
    DirectoryRef,
    HelmReleaseRef,
    KustomizeRef,
    ManifestRef,
    NamespaceRef,
    UrlRef,
)
from homelab_deploy.core.errors import RenderError

logger = logging.getLogger(__name__)


class ResourceSetRenderer:
    """Renders resource sets relative to a homelab checkout."""

    def __init__(
        self,
        homelab_dir: Path,
        kustomize_bin: str = "kustomize",
        timeout: float = 120.0,
    ):
        self.homelab_dir = Path(homelab_dir)
        self.kustomize_bin = kustomize_bin
        self.timeout = timeout

    def render(self, ref, environment: str) -> str:
        """Render a non-Helm resource set to manifest text.

        Args:
            ref: Resource set reference
            environment: Environment name used for overlay selection

        Returns:
            Multi-document YAML ready for ``kubectl apply -f -``

        Raises:
            RenderError: the set could not be produced or is not valid YAML
        """
        if isinstance(ref, ManifestRef):
            manifest = self._read(self.homelab_dir / ref.path, ref.describe())
        elif isinstance(ref, DirectoryRef):
            manifest = self._read_directory(self.homelab_dir / ref.path, ref.describe())
        elif isinstance(ref, KustomizeRef):
            manifest = self._kustomize_build(ref, environment)
        elif isinstance(ref, NamespaceRef):
            manifest = self._namespace(ref)
        elif isinstance(ref, UrlRef):
            manifest = self._fetch(ref)
        else:
            raise RenderError(ref.describe(), f"cannot render {ref.kind} as a manifest")

        self._validate_yaml(manifest, ref.describe())
        return manifest

    def resolve_values_files(self, ref: HelmReleaseRef) -> list[Path]:
        """Resolve a release's values files, failing if any is missing."""
        resolved = []
        for values_file in ref.values_files:
            path = self.homelab_dir / values_file
            if not path.is_file():
                raise RenderError(ref.describe(), f"values file not found: {values_file}")
            resolved.append(path)
        return resolved

    def _read(self, path: Path, source: str) -> str:
        if not path.is_file():
            raise RenderError(source, f"file not found: {path}")
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise RenderError(source, f"cannot read {path}: {e}")

    def _read_directory(self, path: Path, source: str) -> str:
        if not path.is_dir():
            raise RenderError(source, f"directory not found: {path}")
        files = sorted(
            [*path.glob("*.yaml"), *path.glob("*.yml")],
            key=lambda p: p.name,
        )
        if not files:
            raise RenderError(source, f"no manifests in {path}")
        return "\n---\n".join(self._read(f, source) for f in files)

    def _kustomize_build(self, ref: KustomizeRef, environment: str) -> str:
        path = self.homelab_dir / ref.path.replace("{environment}", environment)
        source = ref.describe()
        if not path.is_dir():
            raise RenderError(source, f"kustomization not found: {path}")

        cmd = [self.kustomize_bin, "build", str(path)]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise RenderError(source, "kustomize build timed out")
        except FileNotFoundError:
            raise RenderError(source, f"{self.kustomize_bin} not installed")

        if result.returncode != 0:
            raise RenderError(
                source,
                f"kustomize build failed for environment {environment}: {result.stderr.strip()[:300]}",
            )
        return result.stdout

    def _namespace(self, ref: NamespaceRef) -> str:
        metadata: dict = {"name": ref.name}
        if ref.labels:
            metadata["labels"] = dict(ref.labels)
        return yaml.safe_dump({"apiVersion": "v1", "kind": "Namespace", "metadata": metadata})

    def _fetch(self, ref: UrlRef) -> str:
        try:
            response = httpx.get(ref.url, timeout=30.0, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise RenderError(ref.describe(), f"fetch failed: {e}")
        return response.text

    def _validate_yaml(self, manifest: str, source: str) -> None:
        try:
            documents = [d for d in yaml.safe_load_all(manifest) if d is not None]
        except yaml.YAMLError as e:
            raise RenderError(source, f"invalid YAML: {e}")
        if not documents:
            raise RenderError(source, "resource set is empty")
