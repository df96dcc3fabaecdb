"""RLS coverage probe."""

from __future__ import annotations

import logging
from typing import Any

from complyguard.models import CheckResult, CheckType, TableFinding
from complyguard.probes.base import BaseProbe
from complyguard.providers.compliance_api import ApiResponse

logger = logging.getLogger(__name__)

RESERVED_SCHEMAS = frozenset({"pg_catalog", "information_schema"})


def _table_finding(table: dict[str, Any], project_id: str, project_name: str) -> TableFinding | None:
    schema = table.get("schema") or table.get("schema_name")
    name = table.get("name") or table.get("table_name")
    if not schema or not name:
        return None
    rls = table.get("rls_enabled")
    if rls is None:
        rls = table.get("relrowsecurity")
    return TableFinding(
        schema_name=str(schema),
        table_name=str(name),
        rls_enabled=bool(rls),
        project_id=project_id,
        project_name=project_name,
    )


class RlsProbe(BaseProbe):
    """Checks that every user table has row-level security enabled."""

    check_type = CheckType.RLS

    async def _call(self, token: str, project_id: str) -> ApiResponse:
        return await self.api.check_rls(token, project_id)

    def _interpret(self, response: ApiResponse, project_id: str, project_name: str) -> CheckResult:
        if response.has_error:
            return CheckResult.failure(response.error_message)

        payload = response.payload if isinstance(response.payload, dict) else {}
        findings = []
        for table in payload.get("details") or []:
            finding = _table_finding(table, project_id, project_name) if isinstance(table, dict) else None
            if finding is None:
                logger.warning("Skipping malformed table entry for project %s", project_id)
                continue
            if finding.schema_name in RESERVED_SCHEMAS:
                continue
            findings.append(finding)

        return CheckResult.from_findings(
            findings, raw_evidence=payload.get("rawTables") or []
        )
