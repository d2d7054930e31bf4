"""Configuration management for homelab-deploy."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="HOMELAB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(default="production", description="Kustomize overlay / environment name")
    domain: str = Field(default="homelab.local", description="Base domain for service ingress hosts")
    homelab_dir: Path = Field(default=Path("."), description="Root of the homelab manifests checkout")

    # Tooling
    kubectl_bin: str = Field(default="kubectl", description="kubectl executable")
    helm_bin: str = Field(default="helm", description="helm executable")
    kustomize_bin: str = Field(default="kustomize", description="kustomize executable")
    kube_context: Optional[str] = Field(default=None, description="kubeconfig context to use")

    # Timeouts
    gate_timeout_seconds: float = Field(default=300.0, description="Default readiness gate timeout")
    gate_poll_interval_seconds: float = Field(default=5.0, description="Default readiness gate poll interval")
    command_timeout_seconds: float = Field(default=600.0, description="Timeout for a single kubectl/helm call")

    # Validation
    validation_concurrency: int = Field(default=8, ge=1, description="Max checks running at once")
    reachability_timeout_seconds: float = Field(default=5.0, description="HTTP probe timeout")
    min_secrets: int = Field(default=5, ge=0, description="Secrets expected in the secrets namespace")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    run_log: Path = Field(default=Path("setup.log"), description="Append-only human-readable run log")

    @property
    def manifests_dir(self) -> Path:
        """Directory holding the raw Kubernetes manifests."""
        return self.homelab_dir / "kubernetes"

    def service_url(self, host: str, scheme: str = "https") -> str:
        """Build the ingress URL for a service host prefix."""
        return f"{scheme}://{host}.{self.domain}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
