"""Aggregation of per-project results into the all-projects view."""

from __future__ import annotations

from typing import Mapping

from complyguard.models import (
    CHECKING_PERCENTAGE,
    CheckResult,
    CheckStatus,
    CheckType,
    ComplianceStatus,
    percent,
)

# Higher rank wins when merging statuses across projects.
_PRECEDENCE = {
    CheckStatus.PASSED: 0,
    CheckStatus.CHECKING: 1,
    CheckStatus.FAILED: 2,
    CheckStatus.ERROR: 3,
}


def aggregate_check(results: list[CheckResult]) -> CheckResult:
    """Merge one check type across projects.

    Inactive results are excluded. With no active results left the merged
    check is ``inactive``.
    """
    active = [r for r in results if r.status is not CheckStatus.INACTIVE]
    if not active:
        return CheckResult.inactive()

    status = max((r.status for r in active), key=_PRECEDENCE.__getitem__)
    details = tuple(d for r in active for d in r.details)
    compliant = sum(1 for d in details if d.compliant)

    raw: list = []
    for r in active:
        if isinstance(r.raw_evidence, (list, tuple)):
            raw.extend(r.raw_evidence)

    error = next((r.error for r in active if r.status is CheckStatus.ERROR and r.error), None)

    return CheckResult(
        status=status,
        details=details,
        percentage=CHECKING_PERCENTAGE if status is CheckStatus.CHECKING else percent(compliant, len(details)),
        raw_evidence=tuple(raw) if raw else None,
        error=error,
    )


def aggregate(snapshot: Mapping[str, ComplianceStatus]) -> ComplianceStatus:
    """Build the all-projects status from a store snapshot.

    Pure: the same snapshot always yields an equal result.

    Args:
        snapshot: Mapping of project id to that project's status.

    Returns:
        The synthesized all-projects ComplianceStatus.
    """
    statuses = [snapshot[k] for k in sorted(snapshot)]
    merged = {
        check.value: aggregate_check([s.get(check) for s in statuses])
        for check in CheckType
    }
    return ComplianceStatus(**merged)


def overall_status(status: ComplianceStatus) -> CheckStatus:
    return status.overall


def compliance_score(status: ComplianceStatus) -> int:
    return status.score
