import asyncio
import logging
import time
from typing import Optional

import httpx
from pydantic import BaseModel, Field

from abstractions.chaos_controller import ChaosController
from config.logging_config import setup_logging
from contracts.harness_report import HarnessReport, PhaseResult, RequestEvidence
from core.errors import ChaosControlError

setup_logging()
logger = logging.getLogger(__name__)


class HarnessSettings(BaseModel):
    """
    Parameters of one failover verification run.
    """

    target_url: str
    expected_primary: str
    # None: any identity other than the primary counts as standby
    expected_standby: Optional[str] = None
    request_count: int = Field(default=15, ge=1)
    min_standby_fraction: float = Field(default=0.95, ge=0.0, le=1.0)
    poll_timeout: float = Field(default=10.0, gt=0)
    poll_interval: float = Field(default=0.5, gt=0)
    request_timeout: float = Field(default=5.0, gt=0)
    chaos_mode: str = "error"
    verify_recovery: bool = False
    recovery_timeout: Optional[float] = Field(default=None, gt=0)
    pool_header: str = "X-App-Pool"
    release_header: str = "X-Release-Id"


class FailoverVerificationHarness:
    """
    Injects a failure into the primary and checks that clients never notice.

    Phases: baseline (primary serves), inject (chaos on), assert (every request
    200, enough served by standby), restore (chaos off, optionally wait for the
    primary to come back). Restore always runs once chaos has been started.
    """

    def __init__(
        self,
        settings: HarnessSettings,
        chaos_controller: ChaosController,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.chaos_controller = chaos_controller
        self.client = client

    async def run(self) -> HarnessReport:
        report = HarnessReport(
            target_url=self.settings.target_url,
            expected_primary=self.settings.expected_primary,
        )
        client = self.client or httpx.AsyncClient()
        try:
            await self._execute(client, report)
        finally:
            if self.client is None:
                await client.aclose()
        report.passed = (
            bool(report.phases)
            and all(phase.passed for phase in report.phases)
            and not report.failures
        )
        logger.info(f"Failover verification {'passed' if report.passed else 'failed'}")
        return report

    async def _execute(self, client: httpx.AsyncClient, report: HarnessReport):
        s = self.settings
        baseline = await self._poll_for_identity(client, "baseline", s.expected_primary, s.poll_timeout)
        report.phases.append(baseline)
        if not baseline.passed:
            report.failures.append(baseline.detail)
            return

        started = time.monotonic()
        try:
            await self.chaos_controller.start(s.chaos_mode)
        except ChaosControlError as e:
            detail = f"could not inject {s.chaos_mode} chaos: {e}"
            report.phases.append(PhaseResult(name="inject", passed=False, detail=detail,
                                             elapsed=time.monotonic() - started))
            report.failures.append(detail)
            return
        report.phases.append(PhaseResult(name="inject", passed=True, detail=f"mode={s.chaos_mode}",
                                         elapsed=time.monotonic() - started))

        try:
            report.phases.append(await self._assert_failover(client, report))
        finally:
            await self._restore(client, report)

    async def _poll_for_identity(
        self, client: httpx.AsyncClient, name: str, identity: str, timeout: float
    ) -> PhaseResult:
        s = self.settings
        started = time.monotonic()
        deadline = started + timeout
        last_seen = None
        while True:
            try:
                resp = await client.get(s.target_url, timeout=s.request_timeout)
                last_seen = resp.headers.get(s.pool_header)
                if last_seen == identity:
                    return PhaseResult(
                        name=name, passed=True, detail=f"{s.pool_header}={identity}",
                        elapsed=time.monotonic() - started,
                    )
            except httpx.RequestError as e:
                last_seen = f"error: {e!r}"
            if time.monotonic() + s.poll_interval > deadline:
                break
            await asyncio.sleep(s.poll_interval)
        return PhaseResult(
            name=name,
            passed=False,
            detail=f"{s.pool_header} never became {identity!r} within {timeout}s (last: {last_seen})",
            elapsed=time.monotonic() - started,
        )

    def _is_standby(self, pool: Optional[str]) -> bool:
        if self.settings.expected_standby is not None:
            return pool == self.settings.expected_standby
        return pool is not None and pool != self.settings.expected_primary

    async def _assert_failover(self, client: httpx.AsyncClient, report: HarnessReport) -> PhaseResult:
        s = self.settings
        started = time.monotonic()
        for index in range(1, s.request_count + 1):
            sent = time.monotonic()
            try:
                resp = await client.get(s.target_url, timeout=s.request_timeout)
                evidence = RequestEvidence(
                    index=index,
                    status_code=resp.status_code,
                    pool=resp.headers.get(s.pool_header),
                    release=resp.headers.get(s.release_header),
                    elapsed=time.monotonic() - sent,
                )
            except httpx.RequestError as e:
                evidence = RequestEvidence(index=index, error=repr(e), elapsed=time.monotonic() - sent)
            report.evidence.append(evidence)

        problems = []
        non_ok = [e for e in report.evidence if e.status_code != 200]
        if non_ok:
            problems.append(
                f"{len(non_ok)} of {s.request_count} request(s) were not 200: "
                + ", ".join(f"#{e.index}={e.status_code or e.error}" for e in non_ok)
            )
        standby = sum(1 for e in report.evidence if self._is_standby(e.pool))
        report.standby_fraction = standby / s.request_count
        if report.standby_fraction < s.min_standby_fraction:
            problems.append(
                f"standby fraction {report.standby_fraction:.2%} is below {s.min_standby_fraction:.2%}"
            )
        report.failures.extend(problems)
        return PhaseResult(
            name="assert",
            passed=not problems,
            detail="; ".join(problems) or f"{standby}/{s.request_count} served by standby",
            elapsed=time.monotonic() - started,
        )

    async def _restore(self, client: httpx.AsyncClient, report: HarnessReport):
        s = self.settings
        started = time.monotonic()
        try:
            await self.chaos_controller.stop()
        except ChaosControlError as e:
            detail = f"could not stop chaos: {e}"
            report.phases.append(PhaseResult(name="restore", passed=False, detail=detail,
                                             elapsed=time.monotonic() - started))
            report.failures.append(detail)
            return
        report.phases.append(PhaseResult(name="restore", passed=True, elapsed=time.monotonic() - started))
        if s.verify_recovery:
            recovery = await self._poll_for_identity(
                client, "recovery", s.expected_primary, s.recovery_timeout or s.poll_timeout
            )
            report.phases.append(recovery)
            if not recovery.passed:
                report.failures.append(recovery.detail)
