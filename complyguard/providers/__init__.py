"""Remote API providers for ComplyGuard."""

from .compliance_api import ApiResponse, ComplianceApiClient
from .project_discovery import ProjectDiscovery
from .rate_limit import RateBudget

__all__ = [
    "ApiResponse",
    "ComplianceApiClient",
    "ProjectDiscovery",
    "RateBudget",
]
