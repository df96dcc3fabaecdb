"""Tests for the audit lifecycle state machine."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from complyguard.auth import AllProjects, ResolvedCredentials, SingleProject, TokenClass
from complyguard.engine.runner import ProjectAuditRunner, RetryConfig
from complyguard.engine.state_machine import AuditState, AuditStateMachine, ViewMode
from complyguard.engine.store import ComplianceStore
from complyguard.errors import DiscoveryError, InvalidScope
from complyguard.models import (
    CheckResult,
    CheckStatus,
    CheckType,
    EvidenceStatus,
    Project,
    TableFinding,
)
from complyguard.persistence.evidence_ledger import EvidenceLedger
from complyguard.remediation import FixPriority

ALL = ResolvedCredentials("sbp_token", AllProjects(), TokenClass.PERSONAL_ACCESS_TOKEN)
SINGLE = ResolvedCredentials("sbp_token", SingleProject("p1"), TokenClass.PERSONAL_ACCESS_TOKEN)

PROJECTS = [
    Project(id="p1", name="Alpha", status="ACTIVE_HEALTHY"),
    Project(id="p2", name="Beta", status="ACTIVE_HEALTHY"),
    Project(id="p3", name="Gamma", status="INACTIVE"),
]


def _passed() -> CheckResult:
    return CheckResult(status=CheckStatus.PASSED, percentage=100)


def _probes(**runs) -> dict:
    probes = {}
    for check in CheckType:
        probe = MagicMock()
        probe.run = runs.get(check.value) or AsyncMock(return_value=_passed())
        probes[check] = probe
    return probes


def _machine(credentials=ALL, projects=PROJECTS, probes=None, max_concurrency=4):
    store = ComplianceStore()
    ledger = EvidenceLedger()
    probes = probes or _probes()
    runner = ProjectAuditRunner(
        store, ledger, probes,
        retry_config=RetryConfig(max_retries=0, jitter=False),
        sleep=AsyncMock(),
    )
    resolver = MagicMock()
    resolver.resolve = AsyncMock(return_value=credentials)
    discovery = MagicMock()
    discovery.list = AsyncMock(return_value=list(projects))
    machine = AuditStateMachine(
        resolver, discovery, runner, store, ledger, max_concurrency=max_concurrency
    )
    return machine, probes, discovery


def _probe_calls(probes) -> int:
    return sum(p.run.await_count for p in probes.values())


class TestAuditStateMachine:
    @pytest.mark.asyncio
    async def test_start_audits_every_active_project(self):
        machine, probes, discovery = _machine()

        snapshot = await machine.start()

        assert machine.state == AuditState.READY
        assert machine.view_mode == ViewMode.OVERVIEW
        assert set(snapshot) == {"p1", "p2", "p3"}
        assert snapshot["p3"].overall == CheckStatus.INACTIVE
        assert _probe_calls(probes) == 6
        discovery.list.assert_awaited_once_with("sbp_token")
        assert machine.overall_status() == CheckStatus.PASSED
        assert machine.compliance_score() == 100

    @pytest.mark.asyncio
    async def test_single_project_scope_skips_discovery(self):
        machine, probes, discovery = _machine(credentials=SINGLE)

        await machine.start()

        discovery.list.assert_not_called()
        assert machine.view_mode == ViewMode.PROJECT
        assert machine.selected_project_id == "p1"
        assert machine.current_status().overall == CheckStatus.PASSED
        assert _probe_calls(probes) == 3

    @pytest.mark.asyncio
    async def test_credential_errors_propagate(self):
        machine, probes, _ = _machine()
        machine.resolver.resolve.side_effect = InvalidScope("narrow token")

        with pytest.raises(InvalidScope):
            await machine.start()

        assert machine.state == AuditState.IDLE
        assert _probe_calls(probes) == 0
        [entry] = machine.ledger.entries
        assert (entry.check, entry.status) == ("Compliance Check Run", EvidenceStatus.ERROR)
        assert "narrow token" in entry.details

    @pytest.mark.asyncio
    async def test_discovery_errors_propagate(self):
        machine, _, discovery = _machine()
        discovery.list.side_effect = DiscoveryError("Unauthorized", http_status=401)

        with pytest.raises(DiscoveryError):
            await machine.start()

        assert machine.state == AuditState.IDLE
        [entry] = machine.ledger.entries
        assert (entry.check, entry.status) == ("Projects Fetch", EvidenceStatus.ERROR)
        assert entry.details == "Failed to fetch available projects: Unauthorized"

    @pytest.mark.asyncio
    async def test_reselecting_cached_project_does_not_probe(self):
        machine, probes, _ = _machine()
        await machine.start()
        calls = _probe_calls(probes)

        status = await machine.select_project("p1")
        await machine.select_project("p2")
        machine.select_overview()
        await machine.select_project("p1")

        assert _probe_calls(probes) == calls
        assert status.overall == CheckStatus.PASSED

    @pytest.mark.asyncio
    async def test_selecting_uncached_project_audits_it(self):
        machine, probes, _ = _machine(credentials=SINGLE)
        await machine.start()

        await machine.select_project("p9")

        assert machine.store.has("p9")
        assert _probe_calls(probes) == 6

    @pytest.mark.asyncio
    async def test_inactive_project_reads_inactive(self):
        machine, _, _ = _machine()
        await machine.start()

        status = await machine.select_project("p3")

        assert all(r.status == CheckStatus.INACTIVE for r in status.results())

    @pytest.mark.asyncio
    async def test_rerun_single_project(self):
        machine, probes, _ = _machine()
        await machine.start()

        await machine.rerun("p2")

        assert _probe_calls(probes) == 9
        assert machine.state == AuditState.READY

    @pytest.mark.asyncio
    async def test_rerun_unknown_project_uses_discovered_status(self):
        machine, probes, discovery = _machine()
        await machine.start()
        calls = _probe_calls(probes)
        discovery.list.return_value = PROJECTS + [Project(id="p4", name="Delta", status="REMOVED")]

        await machine.rerun("p4")

        assert discovery.list.await_count == 2
        assert _probe_calls(probes) == calls
        assert machine.store.get("p4").overall == CheckStatus.INACTIVE

    @pytest.mark.asyncio
    async def test_single_project_scope_never_lists_projects(self):
        machine, _, discovery = _machine(credentials=SINGLE)
        await machine.start()

        await machine.rerun("p9")

        discovery.list.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_overlapping_run_cancels_previous(self):
        started = asyncio.Event()
        calls = []

        async def mfa_run(token, project_id, project_name=None):
            calls.append(project_id)
            if len(calls) == 1:
                started.set()
                await asyncio.Event().wait()
            return _passed()

        machine, probes, _ = _machine(
            credentials=SINGLE,
            probes=_probes(mfa=AsyncMock(side_effect=mfa_run)),
        )

        first = asyncio.create_task(machine.start())
        await started.wait()
        await machine.rerun("p1")
        await first

        assert calls == ["p1", "p1"]
        assert machine.store.get("p1").overall == CheckStatus.PASSED
        # Only the replacement run recorded evidence.
        assert [e.check for e in machine.ledger.entries] == [
            "MFA Verification", "RLS Verification", "PITR Verification",
        ]
        assert machine.state == AuditState.READY

    @pytest.mark.asyncio
    async def test_fan_out_respects_concurrency_bound(self):
        running = 0
        peak = 0

        async def slow_run(token, project_id, project_name=None):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0)
            running -= 1
            return _passed()

        projects = [Project(id=f"p{i}", name=f"P{i}", status="ACTIVE_HEALTHY") for i in range(5)]
        machine, _, _ = _machine(
            projects=projects,
            probes=_probes(mfa=AsyncMock(side_effect=slow_run)),
            max_concurrency=2,
        )

        await machine.start()

        assert peak <= 2
        assert len(machine.store) == 5

    @pytest.mark.asyncio
    async def test_apply_fixes_records_remediation_and_rechecks(self):
        failing_rls = CheckResult.from_findings([
            TableFinding("public", "profiles", False, project_id="p1"),
        ])
        rls = AsyncMock(return_value=failing_rls)
        machine, probes, _ = _machine(credentials=SINGLE, probes=_probes(rls=rls))
        await machine.start()

        fixes = await machine.apply_fixes()

        assert [f.check_type for f in fixes] == [CheckType.RLS]
        assert fixes[0].priority == FixPriority.REQUIRED
        statuses = [e.status for e in machine.ledger.entries if e.check == "Auto-Fix"]
        assert statuses == [EvidenceStatus.INITIATED, EvidenceStatus.COMPLETED]
        assert rls.await_count == 2

    @pytest.mark.asyncio
    async def test_record_action(self):
        machine, _, _ = _machine()
        await machine.start()

        entry = machine.record_action("MFA Enforcement", "Enforced MFA for user ID: u1", "p1")

        assert entry.status == EvidenceStatus.ACTION
        assert entry.project == "Alpha"
        assert machine.ledger.filter(status=EvidenceStatus.ACTION) == [entry]
