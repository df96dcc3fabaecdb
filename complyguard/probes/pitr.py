"""PITR enablement probe."""

from __future__ import annotations

import logging
from typing import Any

from complyguard.models import CheckResult, CheckType, ProjectBackupFinding
from complyguard.probes.base import BaseProbe
from complyguard.providers.compliance_api import ApiResponse

logger = logging.getLogger(__name__)

# Project details are cosmetic; backups alone decide the outcome.
METADATA_ERROR_PREFIX = "Failed to fetch project details"
UNKNOWN = "Unknown"


def is_metadata_error(message: str | None) -> bool:
    return bool(message) and message.startswith(METADATA_ERROR_PREFIX)


def _backup_finding(item: dict[str, Any], project_id: str, project_name: str) -> ProjectBackupFinding:
    backups = item.get("backups") or {}
    name = item.get("name")
    if not name or name == UNKNOWN:
        name = project_name
    return ProjectBackupFinding(
        project_id=str(item.get("id") or project_id),
        pitr_enabled=bool(item.get("pitr_enabled")),
        backup_count=int(backups.get("count") or 0),
        earliest_backup=backups.get("earliest"),
        latest_backup=backups.get("latest"),
        project_name=name,
        region=item.get("region") or UNKNOWN,
        error=item.get("error"),
    )


class PitrProbe(BaseProbe):
    """Checks that point-in-time recovery is enabled for the project."""

    check_type = CheckType.PITR

    async def _call(self, token: str, project_id: str) -> ApiResponse:
        return await self.api.check_pitr(token, project_id)

    def _interpret(self, response: ApiResponse, project_id: str, project_name: str) -> CheckResult:
        if not response.ok:
            return CheckResult.failure(response.error_message)

        payload = response.payload if isinstance(response.payload, dict) else {}
        raw_projects = payload.get("projects")

        if not isinstance(raw_projects, list):
            if payload.get("hasError") or payload.get("error"):
                return CheckResult.failure(response.error_message)
            # Older gateway responses only carry the summary counters.
            finding = ProjectBackupFinding(
                project_id=project_id,
                pitr_enabled=bool(payload.get("passed")),
                project_name=project_name,
                region=UNKNOWN,
            )
            return CheckResult.from_findings([finding])

        findings = [
            _backup_finding(item, project_id, project_name)
            for item in raw_projects
            if isinstance(item, dict)
        ]

        backup_errors = [f.error for f in findings if f.error and not is_metadata_error(f.error)]
        if backup_errors:
            return CheckResult.failure(backup_errors[0])
        if payload.get("error") and not findings:
            return CheckResult.failure(response.error_message)

        for f in findings:
            if f.error:
                logger.warning("PITR metadata unavailable for project %s: %s", f.project_id, f.error)

        return CheckResult.from_findings(findings)
