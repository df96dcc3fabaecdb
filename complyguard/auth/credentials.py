"""Credential resolution and audit scope."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Union

from complyguard.errors import (
    CredentialRejected,
    CredentialSourceUnavailable,
    GatewayError,
    InvalidScope,
    MissingCredentials,
)
from complyguard.providers.compliance_api import ComplianceApiClient
from complyguard.tracing.logger import log_audit_event

logger = logging.getLogger(__name__)

PAT_PREFIX = "sbp_"


class TokenClass(str, Enum):
    """Kinds of access token accepted by the engine."""

    PERSONAL_ACCESS_TOKEN = "personal_access_token"  # Broad: every project
    PROJECT_KEY = "project_key"  # Narrow: exactly one project


def classify_token(token: str) -> TokenClass:
    if token.startswith(PAT_PREFIX):
        return TokenClass.PERSONAL_ACCESS_TOKEN
    return TokenClass.PROJECT_KEY


@dataclass(frozen=True)
class SingleProject:
    project_id: str


@dataclass(frozen=True)
class AllProjects:
    pass


Scope = Union[SingleProject, AllProjects]


@dataclass(frozen=True)
class StoredCredentials:
    """Raw credentials as held by a credential source."""

    api_key: str
    project_id: str | None = None
    check_all_projects: bool = False


@dataclass(frozen=True)
class ResolvedCredentials:
    """A token together with the audit scope it may serve."""

    token: str
    scope: Scope
    token_class: TokenClass

    @property
    def is_all_projects(self) -> bool:
        return isinstance(self.scope, AllProjects)


class CredentialSource(Protocol):
    """Anything that can produce stored credentials."""

    async def load(self) -> StoredCredentials | None: ...


@dataclass
class StaticCredentialSource:
    """Credential source holding fixed values."""

    api_key: str | None
    project_id: str | None = None
    check_all_projects: bool = False

    async def load(self) -> StoredCredentials | None:
        if not self.api_key:
            return None
        return StoredCredentials(
            api_key=self.api_key,
            project_id=self.project_id or None,
            check_all_projects=self.check_all_projects,
        )


class SettingsCredentialSource:
    """Credential source reading the application settings."""

    def __init__(self, settings: Any):
        self._settings = settings

    async def load(self) -> StoredCredentials | None:
        token = self._settings.supabase_access_token
        if not token:
            return None
        return StoredCredentials(
            api_key=token,
            project_id=self._settings.supabase_project_ref or None,
            check_all_projects=self._settings.check_all_projects,
        )


class SupabaseCredentialSource:
    """Credential source backed by the ``user_pats`` table."""

    TABLE = "user_pats"

    def __init__(self, client: Any, user_id: str):
        self.client = client
        self.user_id = user_id

    async def load(self) -> StoredCredentials | None:
        try:
            response = await (
                self.client.table(self.TABLE)
                .select("pat, project_id, check_all_projects")
                .eq("user_id", self.user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.exception("Failed to read stored credentials for user=%s", self.user_id)
            raise CredentialSourceUnavailable(f"Could not read stored credentials: {e}") from e

        rows = response.data or []
        if not rows or not rows[0].get("pat"):
            return None
        row = rows[0]
        return StoredCredentials(
            api_key=row["pat"],
            project_id=row.get("project_id") or None,
            check_all_projects=bool(row.get("check_all_projects")),
        )


class CredentialResolver:
    """Turns stored credentials into a token and an audit scope."""

    def __init__(
        self,
        source: CredentialSource,
        api: ComplianceApiClient | None = None,
        validate_remotely: bool = False,
    ):
        self.source = source
        self.api = api
        self.validate_remotely = validate_remotely

    async def resolve(self) -> ResolvedCredentials:
        """Resolve the configured credentials.

        Raises:
            MissingCredentials: If no token is configured.
            CredentialSourceUnavailable: If stored credentials cannot be read.
            InvalidScope: If the token class cannot serve the requested scope.
            CredentialRejected: If remote validation refuses the token.
            RateLimited: If remote validation hits the request budget.
        """
        stored = await self.source.load()
        if stored is None or not stored.api_key:
            raise MissingCredentials()

        resolved = self._resolve_scope(stored)

        if self.validate_remotely and self.api is not None:
            await self._validate(resolved)

        log_audit_event(
            "resolved",
            "credentials",
            f"Resolved {resolved.token_class.value} with "
            f"{'all-projects' if resolved.is_all_projects else 'single-project'} scope",
        )
        return resolved

    def _resolve_scope(self, stored: StoredCredentials) -> ResolvedCredentials:
        token_class = classify_token(stored.api_key)

        if stored.check_all_projects:
            if token_class is not TokenClass.PERSONAL_ACCESS_TOKEN:
                raise InvalidScope(
                    "Checking all projects requires a personal access token; "
                    "project keys can only audit a single project"
                )
            return ResolvedCredentials(stored.api_key, AllProjects(), token_class)

        if not stored.project_id:
            raise InvalidScope("A project reference is required when checking a single project")
        return ResolvedCredentials(stored.api_key, SingleProject(stored.project_id), token_class)

    async def _validate(self, resolved: ResolvedCredentials) -> None:
        project_ref = None if resolved.is_all_projects else resolved.scope.project_id
        try:
            response = await self.api.validate_credentials(
                resolved.token, project_ref, resolved.is_all_projects
            )
        except GatewayError as e:
            raise CredentialRejected(f"Could not validate credentials: {e}") from e

        payload = response.payload if isinstance(response.payload, dict) else {}
        if response.has_error or not payload.get("success", False):
            message = payload.get("message") or response.error_message
            raise CredentialRejected(message, status_code=response.status_code)
