"""Tests for the per-project audit runner with retry logic."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from complyguard.engine.runner import ProjectAuditRunner, RetryConfig, evidence_for
from complyguard.engine.store import ComplianceStore
from complyguard.errors import RateLimited
from complyguard.models import (
    CheckResult,
    CheckStatus,
    CheckType,
    EvidenceStatus,
    UserFinding,
)
from complyguard.persistence.evidence_ledger import EvidenceLedger


def _passed() -> CheckResult:
    return CheckResult(status=CheckStatus.PASSED, percentage=100)


def _probes(**overrides) -> dict:
    probes = {}
    for check in CheckType:
        probe = MagicMock()
        probe.run = AsyncMock(return_value=_passed())
        if check.value in overrides:
            probe.run = overrides[check.value]
        probes[check] = probe
    return probes


def _runner(probes, retry_config=None):
    store = ComplianceStore()
    ledger = EvidenceLedger()
    sleep = AsyncMock()
    runner = ProjectAuditRunner(
        store, ledger, probes,
        retry_config=retry_config or RetryConfig(max_retries=2, jitter=False),
        sleep=sleep,
    )
    return runner, store, ledger, sleep


class TestRetryConfig:
    def test_default_values(self):
        config = RetryConfig()
        assert config.max_retries == 2
        assert config.base_delay == 1.0
        assert config.max_delay == 30.0
        assert config.exponential_base == 2.0
        assert config.jitter is True

    def test_exponential_backoff_without_jitter(self):
        config = RetryConfig(base_delay=1.0, exponential_base=2.0, jitter=False)

        assert config.get_delay(0) == 1.0
        assert config.get_delay(1) == 2.0
        assert config.get_delay(2) == 4.0

    def test_max_delay_cap(self):
        config = RetryConfig(base_delay=10.0, max_delay=15.0, jitter=False)

        assert config.get_delay(1) == 15.0

    def test_jitter_bounds(self):
        config = RetryConfig(base_delay=1.0, jitter=True)

        delays = [config.get_delay(0) for _ in range(20)]
        assert all(0.5 <= d <= 1.5 for d in delays)
        assert len(set(delays)) > 1


class TestProjectAuditRunner:
    @pytest.mark.parametrize("status", ["INACTIVE", "REMOVED", "PAUSE_FAILED"])
    @pytest.mark.asyncio
    async def test_inactive_project_is_never_probed(self, status):
        probes = _probes()
        runner, store, ledger, _ = _runner(probes)

        await runner.audit_project("sbp_token", "p1", "Alpha", status)

        for probe in probes.values():
            probe.run.assert_not_called()
        assert all(r.status == CheckStatus.INACTIVE for r in store.get("p1").results())
        assert ledger.entries == []

    @pytest.mark.asyncio
    async def test_runs_checks_in_order_and_records_evidence(self):
        order = []

        def _track(check):
            async def run(token, project_id, project_name=None):
                order.append(check)
                return _passed()
            return run

        probes = _probes(**{c.value: AsyncMock(side_effect=_track(c)) for c in CheckType})
        runner, store, ledger, _ = _runner(probes)

        await runner.audit_project("sbp_token", "p1", "Alpha", "ACTIVE_HEALTHY")

        assert order == [CheckType.MFA, CheckType.RLS, CheckType.PITR]
        assert store.get("p1").overall == CheckStatus.PASSED
        assert [e.check for e in ledger.entries] == [
            "MFA Verification", "RLS Verification", "PITR Verification",
        ]
        assert all(e.project_id == "p1" and e.project == "Alpha" for e in ledger.entries)

    @pytest.mark.asyncio
    async def test_probe_exception_marks_only_that_check_error(self):
        probes = _probes(rls=AsyncMock(side_effect=KeyError("details")))
        runner, store, ledger, _ = _runner(probes)

        await runner.audit_project("sbp_token", "p1")

        status = store.get("p1")
        assert status.mfa.status == CheckStatus.PASSED
        assert status.rls.status == CheckStatus.ERROR
        assert "rls probe failed for project p1" in status.rls.error
        assert status.pitr.status == CheckStatus.PASSED
        assert ledger.entries[1].status == EvidenceStatus.ERROR
        assert ledger.entries[1].details.startswith("Error checking RLS:")

    @pytest.mark.asyncio
    async def test_rate_limited_is_retried(self):
        mfa = AsyncMock(side_effect=[RateLimited(retry_after=None), _passed()])
        probes = _probes(mfa=mfa)
        runner, store, _, sleep = _runner(probes)

        await runner.audit_project("sbp_token", "p1")

        assert mfa.await_count == 2
        sleep.assert_awaited_once_with(1.0)
        assert store.get("p1").mfa.status == CheckStatus.PASSED
        assert not runner.rate_limited

    @pytest.mark.asyncio
    async def test_retry_honours_server_retry_after(self):
        mfa = AsyncMock(side_effect=[RateLimited(retry_after=12.0), _passed()])
        runner, _, _, sleep = _runner(_probes(mfa=mfa))

        await runner.audit_project("sbp_token", "p1")

        sleep.assert_awaited_once_with(12.0)

    @pytest.mark.asyncio
    async def test_exhausted_retries_end_in_error(self):
        mfa = AsyncMock(side_effect=RateLimited("budget exhausted"))
        runner, store, ledger, sleep = _runner(_probes(mfa=mfa))

        await runner.audit_project("sbp_token", "p1")

        assert mfa.await_count == 3
        assert sleep.await_count == 2
        assert store.get("p1").mfa.status == CheckStatus.ERROR
        assert "Rate limited" in store.get("p1").mfa.error
        assert runner.rate_limited
        assert ledger.entries[0].status == EvidenceStatus.ERROR

    @pytest.mark.asyncio
    async def test_clean_rerun_clears_rate_limited(self):
        mfa = AsyncMock(side_effect=[RateLimited("budget exhausted")] * 3 + [_passed()])
        runner, store, _, _ = _runner(_probes(mfa=mfa))

        await runner.audit_project("sbp_token", "p1")
        assert runner.rate_limited

        await runner.audit_project("sbp_token", "p1")

        assert not runner.rate_limited
        assert store.get("p1").mfa.status == CheckStatus.PASSED

    @pytest.mark.asyncio
    async def test_checking_is_never_final(self):
        runner, store, _, _ = _runner(_probes(pitr=AsyncMock(side_effect=RuntimeError("x"))))

        await runner.audit_project("sbp_token", "p1")

        assert all(r.status.is_terminal for r in store.get("p1").results())


class TestEvidenceFor:
    def test_counts_in_details(self):
        result = CheckResult.from_findings([
            UserFinding(id="a", email=None, mfa_enabled=True),
            UserFinding(id="b", email=None, mfa_enabled=True),
            UserFinding(id="c", email=None, mfa_enabled=False),
        ])

        entry = evidence_for(CheckType.MFA, result, "Alpha", "p1")

        assert entry.status == EvidenceStatus.FAILED
        assert entry.details == "2/3 users have MFA enabled"

    def test_error_details(self):
        entry = evidence_for(CheckType.PITR, CheckResult.failure("timeout"), "Alpha", "p1")

        assert entry.details == "Error checking PITR: timeout"
