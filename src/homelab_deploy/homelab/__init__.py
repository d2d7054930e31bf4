"""Homelab-specific deployment plan and validation suite."""

from homelab_deploy.homelab.checks import default_checks
from homelab_deploy.homelab.phases import default_plan

__all__ = ["default_checks", "default_plan"]
