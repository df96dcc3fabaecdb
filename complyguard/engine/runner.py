"""Per-project audit runner."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping

from complyguard.engine.store import ComplianceStore
from complyguard.errors import ProbeError, RateLimited
from complyguard.models import (
    CheckResult,
    CheckStatus,
    CheckType,
    ComplianceStatus,
    EvidenceEntry,
    EvidenceStatus,
    is_inactive_status,
)
from complyguard.persistence.evidence_ledger import EvidenceLedger
from complyguard.probes import BaseProbe, MfaProbe, PitrProbe, RlsProbe
from complyguard.probes.base import default_project_name
from complyguard.providers.compliance_api import ComplianceApiClient
from complyguard.tracing.logger import log_audit_event

logger = logging.getLogger(__name__)

CHECK_ORDER = (CheckType.MFA, CheckType.RLS, CheckType.PITR)

_SUBJECTS = {
    CheckType.MFA: ("users", "MFA"),
    CheckType.RLS: ("tables", "RLS"),
    CheckType.PITR: ("projects", "PITR"),
}

_EVIDENCE_STATUS = {
    CheckStatus.PASSED: EvidenceStatus.PASSED,
    CheckStatus.FAILED: EvidenceStatus.FAILED,
    CheckStatus.ERROR: EvidenceStatus.ERROR,
}


@dataclass
class RetryConfig:
    """Configuration for retrying rate-limited probe calls."""

    max_retries: int = 2  # Maximum retry attempts
    base_delay: float = 1.0  # Base delay in seconds
    max_delay: float = 30.0  # Maximum delay in seconds
    exponential_base: float = 2.0  # Exponential backoff base
    jitter: bool = True  # Add random jitter to prevent thundering herd

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt using exponential backoff.

        Args:
            attempt: The current attempt number (0-indexed).

        Returns:
            Delay in seconds.
        """
        delay = min(
            self.base_delay * (self.exponential_base ** attempt),
            self.max_delay
        )
        if self.jitter:
            delay = delay * (0.5 + random.random())
        return delay


def build_probes(api: ComplianceApiClient) -> dict[CheckType, BaseProbe]:
    return {
        CheckType.MFA: MfaProbe(api),
        CheckType.RLS: RlsProbe(api),
        CheckType.PITR: PitrProbe(api),
    }


def evidence_for(
    check_type: CheckType,
    result: CheckResult,
    project_name: str,
    project_id: str,
) -> EvidenceEntry:
    """Build the evidence entry recorded after a probe completes."""
    subject, short = _SUBJECTS[check_type]
    if result.status is CheckStatus.ERROR:
        details = f"Error checking {short}: {result.error or 'Unknown error'}"
    else:
        details = f"{result.compliant_count}/{result.total_count} {subject} have {short} enabled"
    return EvidenceEntry(
        check=check_type.label,
        status=_EVIDENCE_STATUS[result.status],
        details=details,
        project=project_name,
        project_id=project_id,
    )


class ProjectAuditRunner:
    """Runs the three probes for one project and records the outcome.

    Results are written to the store one check at a time and each probe
    outcome is appended to the evidence ledger right after it completes.
    """

    def __init__(
        self,
        store: ComplianceStore,
        ledger: EvidenceLedger,
        probes: Mapping[CheckType, BaseProbe],
        retry_config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the runner.

        Args:
            store: Store receiving per-project results.
            ledger: Evidence log receiving one entry per probe.
            probes: Probe for each check type.
            retry_config: Backoff settings for rate-limited probes.
            sleep: Awaitable sleep, injectable for tests.
        """
        self.store = store
        self.ledger = ledger
        self.probes = dict(probes)
        self.retry_config = retry_config or RetryConfig()
        self._sleep = sleep
        self.rate_limited_projects: set[str] = set()

    @property
    def rate_limited(self) -> bool:
        """True if any check ran out of retries on the request budget."""
        return bool(self.rate_limited_projects)

    async def audit_project(
        self,
        token: str,
        project_id: str,
        project_name: str | None = None,
        project_status: str | None = None,
    ) -> None:
        """Audit one project.

        Inactive projects are never probed and read ``inactive`` for all
        three checks. Every other project ends with each check in a
        terminal state.
        """
        name = project_name or default_project_name(project_id)
        self.rate_limited_projects.discard(project_id)

        if is_inactive_status(project_status):
            await self.store.set_status(project_id, ComplianceStatus.inactive())
            log_audit_event(
                "skipped", "runner", f"Project {name} is {project_status}; skipping probes",
                {"project_id": project_id},
            )
            return

        await self.store.set_status(project_id, ComplianceStatus.checking())
        log_audit_event("start", "runner", f"Auditing project {name}", {"project_id": project_id})

        for check_type in CHECK_ORDER:
            result = await self._run_probe(check_type, token, project_id, name)
            await self.store.set_result(project_id, check_type, result)
            self.ledger.append(evidence_for(check_type, result, name, project_id))

        status = self.store.get(project_id)
        log_audit_event(
            "complete", "runner", f"Project {name}: {status.overall.value}",
            {"project_id": project_id},
        )

    async def _run_probe(
        self,
        check_type: CheckType,
        token: str,
        project_id: str,
        project_name: str,
    ) -> CheckResult:
        probe = self.probes[check_type]
        last_error: RateLimited | None = None

        for attempt in range(self.retry_config.max_retries + 1):
            try:
                return await probe.run(token, project_id, project_name)
            except RateLimited as e:
                last_error = e
                if attempt < self.retry_config.max_retries:
                    delay = max(self.retry_config.get_delay(attempt), e.retry_after or 0.0)
                    log_audit_event(
                        "retry", "runner",
                        f"{check_type.label} rate limited for {project_name}, "
                        f"retrying in {delay:.1f}s (attempt {attempt + 1}/{self.retry_config.max_retries})",
                    )
                    await self._sleep(delay)
            except Exception as e:
                error = ProbeError(check_type.value, project_id, e)
                logger.exception("%s", error)
                return CheckResult.failure(str(error))

        self.rate_limited_projects.add(project_id)
        log_audit_event(
            "retry_exhausted", "runner",
            f"{check_type.label} for {project_name} still rate limited after "
            f"{self.retry_config.max_retries} retries",
        )
        return CheckResult.failure(f"Rate limited: {last_error}")
