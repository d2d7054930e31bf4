"""Loading deployment plans from YAML files."""

from pathlib import Path

import yaml
from pydantic import TypeAdapter, ValidationError

from homelab_deploy.core.contracts import Phase
from homelab_deploy.core.errors import PlanError

_PHASES = TypeAdapter(list[Phase])


def load_plan(path: Path) -> list[Phase]:
    """Load a plan file.

    The file holds a top-level ``phases`` list; each entry is a Phase
    with ``actions`` tagged by ``kind``::

        phases:
          - name: storage
            failure_policy: fatal
            actions:
              - kind: kustomize
                path: kubernetes/storage
            gates:
              - kind: pods_ready
                namespace: local-path-storage
                selector: app=local-path-provisioner

    Raises:
        PlanError: unreadable file, invalid YAML or invalid phase definitions
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise PlanError(f"Cannot read plan {path}: {e}")
    except yaml.YAMLError as e:
        raise PlanError(f"Invalid YAML in plan {path}: {e}")

    if not isinstance(data, dict) or not isinstance(data.get("phases"), list):
        raise PlanError(f"Plan {path} must contain a top-level 'phases' list")

    try:
        return _PHASES.validate_python(data["phases"])
    except ValidationError as e:
        raise PlanError(f"Invalid phase definition in {path}: {e}")
