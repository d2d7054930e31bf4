"""Exception hierarchy for deployment orchestration and validation."""

from typing import Optional


class HomelabError(Exception):
    """Base class for all homelab-deploy errors."""


class RenderError(HomelabError):
    """A resource set could not be composed (file, overlay, chart, fetch).

    Always fatal for the phase that owns the action: nothing reached the
    cluster, so there is nothing to continue against.
    """

    def __init__(self, source: str, message: str):
        self.source = source
        self.message = message
        super().__init__(f"render failed for {source}: {message}")


class ApplyError(HomelabError):
    """The cluster rejected one or more objects of a resource set."""

    def __init__(self, source: str, message: str, applied: Optional[list] = None):
        self.source = source
        self.message = message
        self.applied = applied or []
        super().__init__(f"apply failed for {source}: {message}")


class ClusterError(HomelabError):
    """A kubectl or helm invocation failed or could not be run."""

    def __init__(self, command: list[str], message: str, returncode: Optional[int] = None):
        self.command = command
        self.message = message
        self.returncode = returncode
        super().__init__(f"{' '.join(command[:3])}: {message}")


class TransientObservationError(HomelabError):
    """A readiness or check observation could not be evaluated right now."""


class GateTimeout(HomelabError):
    """A readiness condition never held within its window."""

    def __init__(self, condition: str, timeout: float, last_observation: str):
        self.condition = condition
        self.timeout = timeout
        self.last_observation = last_observation
        super().__init__(
            f"{condition} not satisfied within {timeout:g}s (last observation: {last_observation})"
        )


class CheckFailure(HomelabError):
    """A validation check reported a failure."""

    def __init__(self, check_name: str, message: str):
        self.check_name = check_name
        self.message = message
        super().__init__(f"{check_name}: {message}")


class PhaseStateError(HomelabError):
    """An illegal phase lifecycle transition was requested."""


class PlanError(HomelabError):
    """A deployment plan file could not be loaded."""
