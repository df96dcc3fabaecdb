"""Check results and findings for the MFA, RLS and PITR controls."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Union


class CheckType(str, Enum):
    """The three compliance controls audited per project."""

    MFA = "mfa"
    RLS = "rls"
    PITR = "pitr"

    @property
    def label(self) -> str:
        """Evidence log label for this check."""
        return _CHECK_LABELS[self]


_CHECK_LABELS = {
    CheckType.MFA: "MFA Verification",
    CheckType.RLS: "RLS Verification",
    CheckType.PITR: "PITR Verification",
}


class CheckStatus(str, Enum):
    """Lifecycle of a single check."""

    CHECKING = "checking"  # In flight, never a final state
    PASSED = "passed"
    FAILED = "failed"  # Known non-compliant
    ERROR = "error"  # Could not determine
    INACTIVE = "inactive"  # Project excluded from probing

    @property
    def is_terminal(self) -> bool:
        return self is not CheckStatus.CHECKING


# Placeholder percentage shown while a check is in flight.
CHECKING_PERCENTAGE = 10


def percent(compliant: int, total: int) -> int:
    """Integer coverage percentage, rounded half up, 100 when total is 0."""
    if total <= 0:
        return 100
    return int(math.floor(compliant * 100 / total + 0.5))


@dataclass(frozen=True)
class UserFinding:
    """A project user and whether it has a verified second factor."""

    id: str
    email: str | None
    mfa_enabled: bool
    last_sign_in: str | None = None
    project_id: str | None = None
    project_name: str | None = None

    @property
    def compliant(self) -> bool:
        return self.mfa_enabled


@dataclass(frozen=True)
class TableFinding:
    """A database table and whether row-level security is enabled."""

    schema_name: str
    table_name: str
    rls_enabled: bool
    project_id: str | None = None
    project_name: str | None = None

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"

    @property
    def compliant(self) -> bool:
        return self.rls_enabled


@dataclass(frozen=True)
class ProjectBackupFinding:
    """Backup configuration of one project."""

    project_id: str
    pitr_enabled: bool
    backup_count: int = 0
    earliest_backup: int | None = None  # Unix timestamp
    latest_backup: int | None = None  # Unix timestamp
    project_name: str | None = None
    region: str | None = None
    error: str | None = None

    @property
    def compliant(self) -> bool:
        return self.pitr_enabled


Finding = Union[UserFinding, TableFinding, ProjectBackupFinding]


@dataclass(frozen=True)
class CheckResult:
    """Normalized outcome of one probe against one project."""

    status: CheckStatus
    details: tuple[Finding, ...] = ()
    percentage: int = 0
    raw_evidence: Any = None
    error: str | None = None

    @classmethod
    def checking(cls) -> "CheckResult":
        return cls(status=CheckStatus.CHECKING, percentage=CHECKING_PERCENTAGE)

    @classmethod
    def inactive(cls) -> "CheckResult":
        return cls(status=CheckStatus.INACTIVE)

    @classmethod
    def failure(cls, message: str) -> "CheckResult":
        """Result for a check whose outcome could not be determined."""
        return cls(status=CheckStatus.ERROR, percentage=0, error=message)

    @classmethod
    def from_findings(
        cls,
        findings: Iterable[Finding],
        raw_evidence: Any = None,
    ) -> "CheckResult":
        """Build a result from findings, failing when there are none."""
        details = tuple(findings)
        compliant = sum(1 for f in details if f.compliant)
        passed = len(details) > 0 and compliant == len(details)
        return cls(
            status=CheckStatus.PASSED if passed else CheckStatus.FAILED,
            details=details,
            percentage=percent(compliant, len(details)),
            raw_evidence=raw_evidence,
        )

    @property
    def compliant_count(self) -> int:
        return sum(1 for f in self.details if f.compliant)

    @property
    def total_count(self) -> int:
        return len(self.details)


@dataclass(frozen=True)
class ComplianceStatus:
    """The three check results for one project or for all projects."""

    mfa: CheckResult = field(default_factory=CheckResult.checking)
    rls: CheckResult = field(default_factory=CheckResult.checking)
    pitr: CheckResult = field(default_factory=CheckResult.checking)

    @classmethod
    def checking(cls) -> "ComplianceStatus":
        return cls()

    @classmethod
    def inactive(cls) -> "ComplianceStatus":
        return cls(
            mfa=CheckResult.inactive(),
            rls=CheckResult.inactive(),
            pitr=CheckResult.inactive(),
        )

    def get(self, check_type: CheckType) -> CheckResult:
        return getattr(self, check_type.value)

    def with_result(self, check_type: CheckType, result: CheckResult) -> "ComplianceStatus":
        """Return a copy with one check replaced."""
        return replace(self, **{check_type.value: result})

    def results(self) -> list[CheckResult]:
        return [self.mfa, self.rls, self.pitr]

    @property
    def overall(self) -> CheckStatus:
        """Derived status across the three checks."""
        statuses = [r.status for r in self.results()]
        if CheckStatus.ERROR in statuses:
            return CheckStatus.ERROR
        if CheckStatus.CHECKING in statuses:
            return CheckStatus.CHECKING
        if all(s is CheckStatus.INACTIVE for s in statuses):
            return CheckStatus.INACTIVE
        if all(s is CheckStatus.PASSED for s in statuses):
            return CheckStatus.PASSED
        return CheckStatus.FAILED

    @property
    def score(self) -> int:
        """Share of completed checks that passed, as a percentage."""
        completed = [r for r in self.results() if r.status is not CheckStatus.CHECKING]
        if not completed:
            return 0
        passed = sum(1 for r in completed if r.status is CheckStatus.PASSED)
        return round(passed * 100 / len(completed))
