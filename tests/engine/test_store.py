"""Tests for the single-owner compliance store."""

import asyncio

import pytest

from complyguard.engine.store import ComplianceStore
from complyguard.models import CheckResult, CheckStatus, CheckType, ComplianceStatus


class TestComplianceStore:
    @pytest.mark.asyncio
    async def test_set_result_creates_complete_entry(self):
        store = ComplianceStore()

        await store.set_result("p1", CheckType.MFA, CheckResult(status=CheckStatus.PASSED))

        status = store.get("p1")
        assert status.mfa.status == CheckStatus.PASSED
        assert status.rls.status == CheckStatus.CHECKING
        assert status.pitr.status == CheckStatus.CHECKING

    @pytest.mark.asyncio
    async def test_snapshot_is_immutable_and_detached(self):
        store = ComplianceStore()
        await store.set_status("p1", ComplianceStatus.checking())

        snapshot = store.snapshot()
        await store.set_status("p2", ComplianceStatus.inactive())

        assert list(snapshot) == ["p1"]
        with pytest.raises(TypeError):
            snapshot["p3"] = ComplianceStatus.checking()

    @pytest.mark.asyncio
    async def test_concurrent_writes_keep_every_check(self):
        store = ComplianceStore()
        passed = CheckResult(status=CheckStatus.PASSED)

        await asyncio.gather(*(
            store.set_result("p1", check, passed) for check in CheckType
        ))

        assert store.get("p1").overall == CheckStatus.PASSED

    @pytest.mark.asyncio
    async def test_listeners_receive_snapshots(self):
        store = ComplianceStore()
        seen = []
        unsubscribe = store.subscribe(lambda snap: seen.append(dict(snap)))

        await store.set_status("p1", ComplianceStatus.inactive())
        unsubscribe()
        await store.set_status("p2", ComplianceStatus.inactive())

        assert len(seen) == 1
        assert "p1" in seen[0]

    def test_has_and_len(self):
        store = ComplianceStore()

        assert not store.has("p1")
        assert len(store) == 0
