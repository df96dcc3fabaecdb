"""Evidence log entries for the audit trail."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import TypeAdapter, ValidationError

_DATETIME = TypeAdapter(datetime)


class EvidenceStatus(str, Enum):
    """Outcome recorded by an evidence entry."""

    PASSED = "PASSED"
    FAILED = "FAILED"
    ERROR = "ERROR"
    ACTION = "ACTION"  # Manual remediation applied
    INITIATED = "INITIATED"  # Remediation started
    COMPLETED = "COMPLETED"  # Remediation finished


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EvidenceEntry:
    """One immutable audit-log record.

    Entries are never mutated after creation; the ledger deduplicates
    on ``(timestamp, check, project_id)``.
    """

    check: str
    status: EvidenceStatus
    details: str
    timestamp: datetime = field(default_factory=utc_now)
    project: str | None = None
    project_id: str | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        """Identity key used for deduplication."""
        return (self.timestamp.isoformat(), self.check, self.project_id or "")

    def to_row(self, owner_id: str) -> dict[str, Any]:
        """Serialize into a ``compliance_logs`` row."""
        return {
            "user_id": owner_id,
            "created_at": self.timestamp.isoformat(),
            "check_type": self.check,
            "status": self.status.value,
            "details": self.details,
            "project_id": self.project_id,
            "project_name": self.project,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "EvidenceEntry":
        """Deserialize a ``compliance_logs`` row."""
        return cls(
            check=row["check_type"],
            status=EvidenceStatus(row["status"]),
            details=row.get("details") or "",
            timestamp=_parse_dt(row.get("created_at")),
            project=row.get("project_name"),
            project_id=row.get("project_id"),
        )


def _parse_dt(value: Any) -> datetime:
    """Parse a stored timestamp, assuming UTC when no offset is given.

    Raises:
        ValueError: If the value is missing or not a timestamp.
    """
    try:
        parsed = _DATETIME.validate_python(value)
    except ValidationError as e:
        raise ValueError(f"Invalid created_at value: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
