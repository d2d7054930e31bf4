"""Validator: runs registered checks concurrently and aggregates a report."""

import asyncio
import logging
from typing import Iterable, Optional

from homelab_deploy.core.contracts import CheckResult, Outcome, ValidationReport, utcnow
from homelab_deploy.core.errors import CheckFailure
from homelab_deploy.validation.checks import CheckRunner

logger = logging.getLogger(__name__)


class Validator:
    """
    Runs a registered collection of checks.

    Checks are read-only and independent, so they run concurrently up to
    ``concurrency`` at a time. Results keep registration order. A check
    that raises becomes a failed result at its own severity; the
    validator always completes the full set.
    """

    def __init__(self, checks: Optional[Iterable[CheckRunner]] = None, concurrency: int = 8):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self._checks: list[CheckRunner] = []
        for check in checks or []:
            self.register(check)

    @property
    def checks(self) -> list[CheckRunner]:
        return list(self._checks)

    def register(self, check: CheckRunner) -> None:
        """Register a check; names must be unique."""
        if any(c.name == check.name for c in self._checks):
            raise ValueError(f"Duplicate check name: {check.name}")
        self._checks.append(check)

    async def run(self) -> ValidationReport:
        """Run every registered check and build the report."""
        report = ValidationReport()
        semaphore = asyncio.Semaphore(self.concurrency)
        logger.info(f"Running {len(self._checks)} validation check(s)")

        results = await asyncio.gather(*(self._run_one(c, semaphore) for c in self._checks))
        report.results = list(results)
        report.finished_at = utcnow()

        logger.info(
            f"Validation {report.overall_status.value}: {report.pass_count} passed, "
            f"{report.fail_count} failed ({report.warn_count} non-blocking)"
        )
        return report

    async def _run_one(self, check: CheckRunner, semaphore: asyncio.Semaphore) -> CheckResult:
        async with semaphore:
            try:
                result = await check.run()
            except CheckFailure as e:
                result = check.failed(e.message)
            except Exception as e:
                logger.error(f"Check {check.name} raised: {e}")
                result = CheckResult(
                    check_name=check.name,
                    severity=check.severity,
                    outcome=Outcome.FAIL,
                    message=f"check could not be evaluated: {e}",
                )

        if result.outcome == Outcome.PASS:
            logger.info(f"SUCCESS: {check.name}: {result.message}")
        else:
            logger.warning(f"{result.severity.value.upper()}: {check.name}: {result.message}")
        return result
