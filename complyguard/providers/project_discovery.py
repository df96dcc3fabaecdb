"""Project discovery for all-projects audits."""

from __future__ import annotations

import logging

from complyguard.errors import DiscoveryError, GatewayError
from complyguard.models import Project
from complyguard.providers.compliance_api import ComplianceApiClient
from complyguard.tracing.logger import log_audit_event

logger = logging.getLogger(__name__)


class ProjectDiscovery:
    """Lists every project reachable with a broad-scope token."""

    def __init__(self, api: ComplianceApiClient):
        self.api = api

    async def list(self, token: str) -> list[Project]:
        """Fetch the project list with a single call.

        Raises:
            DiscoveryError: On a non-2xx response or an error payload.
                A failure is never reported as an empty project list.
            RateLimited: When the request budget is exhausted.
        """
        try:
            response = await self.api.list_projects(token)
        except GatewayError as e:
            raise DiscoveryError(str(e), http_status=e.status_code) from e

        if response.has_error:
            raise DiscoveryError(
                f"Failed to list projects: {response.error_message}",
                http_status=response.status_code,
            )

        payload = response.payload if isinstance(response.payload, dict) else {}
        raw_projects = payload.get("projects")
        if not isinstance(raw_projects, list):
            raise DiscoveryError(
                "Project list response has no 'projects' array",
                http_status=response.status_code,
            )

        projects: list[Project] = []
        for item in raw_projects:
            try:
                projects.append(Project.from_api(item))
            except (TypeError, ValueError, AttributeError):
                logger.warning("Skipping malformed project entry: %r", item)

        inactive = sum(1 for p in projects if p.is_inactive)
        log_audit_event(
            "discovered",
            "discovery",
            f"Found {len(projects)} projects ({inactive} inactive)",
        )
        return projects
