"""Readiness gates: poll a read-only condition until it holds or times out."""

import asyncio
import logging
import time
from typing import Callable, Optional

from homelab_deploy.cluster.kubectl import ClusterClient, condition_status, object_name
from homelab_deploy.core.contracts import ConditionKind, GateResult, ReadinessCondition
from homelab_deploy.core.errors import ClusterError, TransientObservationError

logger = logging.getLogger(__name__)


class ReadinessGate:
    """
    Wait-for-convergence primitive over the cluster.

    Observation errors count as "not yet satisfied"; only an elapsed
    timeout (or cancellation) ends a wait unsatisfied. The last
    observation is always taken at the timeout boundary, so an
    unsatisfied wait returns no earlier than the timeout and no later
    than one poll interval after it.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        default_timeout: float = 300.0,
        default_poll_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cluster = cluster
        self.default_timeout = default_timeout
        self.default_poll_interval = default_poll_interval
        self.clock = clock

    def observe(self, condition: ReadinessCondition) -> tuple[bool, str]:
        """Evaluate a condition once.

        Returns:
            (satisfied, human-readable observation)

        Raises:
            ClusterError: the cluster could not be queried
        """
        if condition.kind == ConditionKind.NAMESPACE_EXISTS:
            exists = self.cluster.namespace_exists(condition.namespace)
            return exists, f"namespace {condition.namespace} {'exists' if exists else 'not found'}"

        if condition.kind == ConditionKind.RESOURCE_EXISTS:
            obj = self.cluster.get_object(condition.resource_kind, condition.name, condition.namespace)
            found = obj is not None
            target = f"{condition.resource_kind}/{condition.name}"
            return found, f"{target} {'found' if found else 'not found'}"

        pods = self.cluster.list_objects("pods", condition.namespace, condition.selector)
        if not pods:
            selector = condition.selector or "any label"
            return False, f"no pods matching {selector} in {condition.namespace}"

        not_ready = [object_name(p) for p in pods if condition_status(p, "Ready") != "True"]
        if not_ready:
            shown = ", ".join(not_ready[:5])
            return False, f"{len(not_ready)}/{len(pods)} pods not ready: {shown}"
        return True, f"{len(pods)}/{len(pods)} pods ready"

    async def wait(
        self,
        condition: ReadinessCondition,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> GateResult:
        """Poll a condition until satisfied, timed out, or cancelled."""
        timeout = condition.timeout_seconds or self.default_timeout
        interval = condition.poll_interval_seconds or self.default_poll_interval
        description = condition.describe()
        start = self.clock()
        observations = 0
        last_observation = "not observed"

        logger.info(f"Waiting for {description} (timeout {timeout:g}s)")

        while True:
            if cancel_event is not None and cancel_event.is_set():
                return self._result(description, False, start, timeout, observations, last_observation, True)

            budget = max(timeout - (self.clock() - start), 0) + interval
            try:
                observed = await self._observe(condition, budget, cancel_event)
            except (ClusterError, TransientObservationError) as e:
                observed = (False, f"observation error: {e}")
            if observed is None:
                logger.warning(f"Gate cancelled: {description}")
                return self._result(description, False, start, timeout, observations, last_observation, True)
            satisfied, last_observation = observed
            observations += 1

            if satisfied:
                logger.info(f"Gate satisfied: {description} ({last_observation})")
                return self._result(description, True, start, timeout, observations, last_observation)

            remaining = timeout - (self.clock() - start)
            if remaining <= 0:
                if cancel_event is not None and cancel_event.is_set():
                    return self._result(description, False, start, timeout, observations, last_observation, True)
                logger.warning(f"Gate timed out: {description} ({last_observation})")
                return self._result(description, False, start, timeout, observations, last_observation)

            logger.debug(f"Not ready yet: {description} ({last_observation})")
            if await self._sleep(min(interval, remaining), cancel_event):
                logger.warning(f"Gate cancelled: {description}")
                return self._result(description, False, start, timeout, observations, last_observation, True)

    async def _observe(
        self,
        condition: ReadinessCondition,
        budget: float,
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[tuple[bool, str]]:
        """Observe once in a worker thread, bounded by ``budget`` seconds.

        Returns None if cancelled first. A kubectl call still running when
        the budget runs out is abandoned and counts as not satisfied.
        """
        observation = asyncio.ensure_future(asyncio.to_thread(self.observe, condition))
        waiters = {observation}
        cancelled = None
        if cancel_event is not None:
            cancelled = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancelled)

        try:
            await asyncio.wait(waiters, timeout=budget, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            observation.cancel()
            raise
        finally:
            if cancelled is not None:
                cancelled.cancel()

        if cancel_event is not None and cancel_event.is_set():
            observation.cancel()
            return None
        if not observation.done():
            observation.cancel()
            return False, f"observation still running after {budget:.2g}s"
        return observation.result()

    async def _sleep(self, delay: float, cancel_event: Optional[asyncio.Event]) -> bool:
        """Sleep for ``delay``; returns True if cancelled meanwhile."""
        if cancel_event is None:
            await asyncio.sleep(delay)
            return False
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    def _result(
        self,
        description: str,
        satisfied: bool,
        start: float,
        timeout: float,
        observations: int,
        last_observation: str,
        cancelled: bool = False,
    ) -> GateResult:
        return GateResult(
            condition=description,
            satisfied=satisfied,
            elapsed_seconds=self.clock() - start,
            timeout_seconds=timeout,
            observations=observations,
            last_observation=last_observation,
            cancelled=cancelled,
        )
