"""MFA coverage probe."""

from __future__ import annotations

import logging
from typing import Any

from complyguard.models import CheckResult, CheckType, UserFinding
from complyguard.probes.base import BaseProbe
from complyguard.providers.compliance_api import ApiResponse

logger = logging.getLogger(__name__)


def has_verified_factor(user: dict[str, Any]) -> bool:
    """A user counts as MFA-enabled only with at least one verified factor.

    When the payload carries no factor list the gateway's ``mfa_enabled``
    flag is used instead. A failed factor lookup leaves the flag unset,
    so such users read as non-compliant.
    """
    if user.get("factors_error"):
        return False
    factors = user.get("factors")
    if isinstance(factors, list) and factors:
        return any(
            isinstance(f, dict) and f.get("status") == "verified" for f in factors
        )
    return bool(user.get("mfa_enabled"))


class MfaProbe(BaseProbe):
    """Checks that every project user has a second factor."""

    check_type = CheckType.MFA

    async def _call(self, token: str, project_id: str) -> ApiResponse:
        return await self.api.check_mfa(token, project_id)

    def _interpret(self, response: ApiResponse, project_id: str, project_name: str) -> CheckResult:
        if response.has_error:
            return CheckResult.failure(response.error_message)

        payload = response.payload if isinstance(response.payload, dict) else {}
        users = payload.get("details") or []
        findings = []
        for user in users:
            if not isinstance(user, dict) or "id" not in user:
                logger.warning("Skipping malformed user entry for project %s", project_id)
                continue
            findings.append(
                UserFinding(
                    id=str(user["id"]),
                    email=user.get("email"),
                    mfa_enabled=has_verified_factor(user),
                    last_sign_in=user.get("last_sign_in"),
                    project_id=project_id,
                    project_name=project_name,
                )
            )
        return CheckResult.from_findings(findings)
