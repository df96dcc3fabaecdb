"""Base class for compliance probes."""

from __future__ import annotations

from abc import ABC, abstractmethod

from complyguard.errors import GatewayError
from complyguard.models import CheckResult, CheckType
from complyguard.providers.compliance_api import ApiResponse, ComplianceApiClient
from complyguard.tracing.logger import log_audit_event


def default_project_name(project_id: str) -> str:
    return f"Project {project_id[:8]}"


class BaseProbe(ABC):
    """Abstract base class for the per-project compliance probes.

    A probe issues one gateway call and normalizes the payload into a
    ``CheckResult``. Upstream failures become ``error`` results and are
    never reported as ``failed``. ``RateLimited`` is raised to the caller
    so it can back off.
    """

    check_type: CheckType

    def __init__(self, api: ComplianceApiClient):
        """Initialize the probe.

        Args:
            api: Gateway client used for the check call.
        """
        self.api = api

    async def run(
        self,
        token: str,
        project_id: str,
        project_name: str | None = None,
    ) -> CheckResult:
        """Run the check against one project.

        Args:
            token: Access token for the management API.
            project_id: Project reference to audit.
            project_name: Display name used to tag findings.

        Returns:
            The normalized check result.
        """
        name = project_name or default_project_name(project_id)
        try:
            response = await self._call(token, project_id)
        except GatewayError as e:
            log_audit_event("error", self.check_type.value, str(e), {"project_id": project_id})
            return CheckResult.failure(str(e))

        result = self._interpret(response, project_id, name)
        log_audit_event(
            "checked",
            self.check_type.value,
            f"{self.check_type.label} for {name}: {result.status.value}",
            {"project_id": project_id, "percentage": result.percentage},
        )
        return result

    @abstractmethod
    async def _call(self, token: str, project_id: str) -> ApiResponse:
        """Issue the gateway request for this check."""
        pass

    @abstractmethod
    def _interpret(self, response: ApiResponse, project_id: str, project_name: str) -> CheckResult:
        """Convert a gateway response into a check result."""
        pass
