"""Domain models for the ComplyGuard compliance engine."""

from complyguard.models.check import (
    CHECKING_PERCENTAGE,
    CheckResult,
    CheckStatus,
    CheckType,
    ComplianceStatus,
    Finding,
    ProjectBackupFinding,
    TableFinding,
    UserFinding,
    percent,
)
from complyguard.models.evidence import (
    EvidenceEntry,
    EvidenceStatus,
)
from complyguard.models.project import (
    INACTIVE_STATUSES,
    Project,
    is_inactive_status,
)

__all__ = [
    # Checks
    "CHECKING_PERCENTAGE",
    "CheckResult",
    "CheckStatus",
    "CheckType",
    "ComplianceStatus",
    "percent",
    # Findings
    "Finding",
    "ProjectBackupFinding",
    "TableFinding",
    "UserFinding",
    # Evidence
    "EvidenceEntry",
    "EvidenceStatus",
    # Projects
    "INACTIVE_STATUSES",
    "Project",
    "is_inactive_status",
]
