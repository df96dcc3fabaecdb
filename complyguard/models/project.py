"""Project model returned by project discovery."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

INACTIVE_STATUSES = frozenset({"INACTIVE", "REMOVED", "PAUSE_FAILED"})


@dataclass(frozen=True)
class Project:
    """Snapshot of a cloud database project at discovery time."""

    id: str
    name: str
    status: str
    organization_id: str | None = None
    region: str | None = None
    created_at: str | None = None
    ref: str | None = None

    @property
    def is_inactive(self) -> bool:
        """Check whether the project must be excluded from probing."""
        return is_inactive_status(self.status)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Project":
        """Build a project from a list-projects payload item."""
        project_id = data.get("id") or data.get("ref")
        if not project_id:
            raise ValueError(f"Project payload has no id: {data}")
        return cls(
            id=str(project_id),
            name=data.get("name") or str(project_id),
            status=data.get("status") or "UNKNOWN",
            organization_id=data.get("organization_id"),
            region=data.get("region"),
            created_at=data.get("created_at"),
            ref=data.get("ref"),
        )


def is_inactive_status(status: str | None) -> bool:
    """Check whether a lifecycle status marks a project inactive."""
    return (status or "").upper() in INACTIVE_STATUSES
