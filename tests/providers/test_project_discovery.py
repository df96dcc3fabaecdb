"""Tests for project discovery."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from complyguard.errors import DiscoveryError, GatewayError, RateLimited
from complyguard.providers.compliance_api import ApiResponse
from complyguard.providers.project_discovery import ProjectDiscovery


def _discovery(response=None, side_effect=None) -> ProjectDiscovery:
    api = MagicMock()
    api.list_projects = AsyncMock(return_value=response, side_effect=side_effect)
    return ProjectDiscovery(api)


class TestProjectDiscovery:
    @pytest.mark.asyncio
    async def test_lists_projects(self):
        discovery = _discovery(ApiResponse(200, {"projects": [
            {"id": "p1", "name": "Alpha", "status": "ACTIVE_HEALTHY"},
            {"id": "p2", "name": "Beta", "status": "INACTIVE"},
        ]}))

        projects = await discovery.list("sbp_token")

        assert [p.id for p in projects] == ["p1", "p2"]
        assert projects[1].is_inactive

    @pytest.mark.asyncio
    async def test_error_payload_raises_instead_of_empty_list(self):
        discovery = _discovery(ApiResponse(200, {"error": "Unauthorized"}))

        with pytest.raises(DiscoveryError) as exc_info:
            await discovery.list("sbp_token")

        assert "Unauthorized" in exc_info.value.message
        assert exc_info.value.http_status == 200

    @pytest.mark.asyncio
    async def test_non_2xx_carries_status(self):
        discovery = _discovery(ApiResponse(401, {}))

        with pytest.raises(DiscoveryError) as exc_info:
            await discovery.list("sbp_token")

        assert exc_info.value.http_status == 401

    @pytest.mark.asyncio
    async def test_missing_projects_array(self):
        discovery = _discovery(ApiResponse(200, {}))

        with pytest.raises(DiscoveryError):
            await discovery.list("sbp_token")

    @pytest.mark.asyncio
    async def test_transport_failure_becomes_discovery_error(self):
        discovery = _discovery(side_effect=GatewayError("connection refused"))

        with pytest.raises(DiscoveryError):
            await discovery.list("sbp_token")

    @pytest.mark.asyncio
    async def test_rate_limited_is_not_wrapped(self):
        discovery = _discovery(side_effect=RateLimited(retry_after=5.0))

        with pytest.raises(RateLimited):
            await discovery.list("sbp_token")

    @pytest.mark.asyncio
    async def test_malformed_entries_are_skipped(self):
        discovery = _discovery(ApiResponse(200, {"projects": [
            {"name": "no id"},
            {"id": "p1", "name": "Alpha", "status": "ACTIVE_HEALTHY"},
        ]}))

        projects = await discovery.list("sbp_token")

        assert [p.id for p in projects] == ["p1"]
