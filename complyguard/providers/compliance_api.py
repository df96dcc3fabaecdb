"""HTTP client for the compliance gateway in front of the management API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from complyguard.errors import GatewayError, RateLimited
from complyguard.providers.rate_limit import RateBudget

logger = logging.getLogger(__name__)


@dataclass
class ApiResponse:
    """Decoded gateway response."""

    status_code: int
    payload: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def has_error(self) -> bool:
        """True when the gateway reports an upstream failure.

        The gateway answers 200 with an embedded ``hasError``/``error``
        field on upstream failure, so the payload must be inspected.
        """
        if not self.ok:
            return True
        if isinstance(self.payload, dict):
            return bool(self.payload.get("hasError")) or bool(self.payload.get("error"))
        return False

    @property
    def error_message(self) -> str:
        if isinstance(self.payload, dict):
            message = self.payload.get("error") or self.payload.get("message")
            if message:
                return str(message)
        if not self.ok:
            return f"HTTP {self.status_code}"
        return "Unknown error"


class ComplianceApiClient:
    """Client for the compliance gateway endpoints.

    Usage:
        async with ComplianceApiClient("https://app.example.com/api") as api:
            response = await api.check_mfa(token, "abcd1234")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        rate_limit_per_minute: int = 60,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._rate_limit = rate_limit_per_minute
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._budgets: dict[str, RateBudget] = {}

    async def __aenter__(self) -> "ComplianceApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    def _get_headers(self, token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "User-Agent": "ComplyGuard/1.0",
        }

    def budget_for(self, token: str) -> RateBudget:
        """Return the request budget tracked for a credential."""
        budget = self._budgets.get(token)
        if budget is None:
            budget = RateBudget(limit=self._rate_limit)
            self._budgets[token] = budget
        return budget

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> ApiResponse:
        budget = self.budget_for(token)
        budget.acquire()

        try:
            response = await self._get_client().request(
                method,
                path,
                headers=self._get_headers(token),
                params=params,
                json=json,
            )
        except httpx.HTTPError as e:
            raise GatewayError(f"{method} {path} failed: {e}") from e

        remaining = response.headers.get("x-ratelimit-remaining")
        if remaining is not None and remaining.isdigit():
            budget.reconcile(int(remaining))

        if response.status_code == 429:
            retry_after = _parse_retry_after(response.headers.get("retry-after"))
            raise RateLimited(
                f"{method} {path} was rate limited by the management API",
                retry_after=retry_after,
            )

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Non-JSON response from %s %s (HTTP %d)", method, path, response.status_code)
            payload = {}

        return ApiResponse(status_code=response.status_code, payload=payload)

    async def validate_credentials(
        self,
        token: str,
        project_ref: str | None,
        check_all_projects: bool,
    ) -> ApiResponse:
        """POST /validate-credentials."""
        return await self._request(
            "POST",
            "/validate-credentials",
            token,
            json={
                "apiKey": token,
                "projectRef": project_ref,
                "checkAllProjects": check_all_projects,
            },
        )

    async def list_projects(self, token: str) -> ApiResponse:
        """POST /list-projects."""
        return await self._request("POST", "/list-projects", token, json={"apiKey": token})

    async def check_mfa(self, token: str, project_ref: str) -> ApiResponse:
        """GET /check-mfa for one project."""
        return await self._request(
            "GET", "/check-mfa", token, params={"apiKey": token, "projectRef": project_ref}
        )

    async def check_rls(self, token: str, project_ref: str) -> ApiResponse:
        """GET /check-rls for one project."""
        return await self._request(
            "GET", "/check-rls", token, params={"apiKey": token, "projectRef": project_ref}
        )

    async def check_pitr(self, token: str, project_ref: str | None = None) -> ApiResponse:
        """GET /check-pitr; omitting ``project_ref`` means the home project."""
        params = {"apiKey": token}
        if project_ref:
            params["projectRef"] = project_ref
        return await self._request("GET", "/check-pitr", token, params=params)


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None
