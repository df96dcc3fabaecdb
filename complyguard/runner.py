"""Main runner wiring settings into the ComplyGuard engine."""

from __future__ import annotations

import logging
from typing import Any

from config.settings import Settings, settings as default_settings

from complyguard.auth.credentials import CredentialResolver, SettingsCredentialSource
from complyguard.engine.runner import ProjectAuditRunner, RetryConfig, build_probes
from complyguard.engine.state_machine import AuditStateMachine
from complyguard.engine.store import ComplianceStore
from complyguard.models import EvidenceEntry
from complyguard.persistence.evidence_ledger import EvidenceBackend, EvidenceLedger
from complyguard.providers.compliance_api import ComplianceApiClient
from complyguard.providers.project_discovery import ProjectDiscovery
from complyguard.tracing.logger import log_audit_event, setup_tracing

logger = logging.getLogger(__name__)


async def create_evidence_backend(config: Settings) -> EvidenceBackend | None:
    """Build the durable evidence backend selected in settings.

    Returns None (session-local evidence only) when the backend is
    disabled or not configured.
    """
    backend = config.evidence_backend.lower()
    if backend == "none" or not config.evidence_owner_id:
        return None

    if backend == "supabase":
        if not config.supabase_url or not config.supabase_service_role_key:
            logger.warning("Supabase evidence backend selected but not configured")
            return None
        from complyguard.persistence.supabase_store import SupabaseEvidenceStore
        from complyguard.supabase_client import get_async_supabase_client

        return SupabaseEvidenceStore(await get_async_supabase_client())

    if backend == "sql":
        if not config.database_url:
            logger.warning("SQL evidence backend selected but DATABASE_URL is not set")
            return None
        from complyguard.db import get_sessionmaker
        from complyguard.persistence.sql_store import SqlEvidenceStore

        return SqlEvidenceStore(get_sessionmaker(config.database_url))

    raise ValueError(f"Unknown evidence backend: {config.evidence_backend}")


class ComplyGuardRunner:
    """Main runner for the ComplyGuard compliance engine."""

    def __init__(
        self,
        config: Settings | None = None,
        api: ComplianceApiClient | None = None,
        evidence_backend: EvidenceBackend | None = None,
    ):
        """Initialize the runner.

        Args:
            config: Settings to use; defaults to the environment.
            api: Gateway client; built from settings when omitted.
            evidence_backend: Durable evidence store, if any.
        """
        self.config = config or default_settings
        if self.config.tracing_enabled:
            setup_tracing(self.config.log_level)

        self.api = api or ComplianceApiClient(
            self.config.compliance_api_url,
            timeout=self.config.request_timeout_seconds,
            rate_limit_per_minute=self.config.rate_limit_per_minute,
        )
        self.store = ComplianceStore()
        self.ledger = EvidenceLedger(
            backend=evidence_backend,
            owner_id=self.config.evidence_owner_id or None,
            page_size=self.config.evidence_page_size,
        )
        self.runner = ProjectAuditRunner(
            self.store,
            self.ledger,
            build_probes(self.api),
            retry_config=RetryConfig(
                max_retries=self.config.max_retries,
                base_delay=self.config.retry_base_delay,
                max_delay=self.config.retry_max_delay,
            ),
        )
        self.machine = AuditStateMachine(
            resolver=CredentialResolver(
                SettingsCredentialSource(self.config),
                api=self.api,
                validate_remotely=self.config.validate_credentials,
            ),
            discovery=ProjectDiscovery(self.api),
            runner=self.runner,
            store=self.store,
            ledger=self.ledger,
            max_concurrency=self.config.max_concurrent_projects,
        )

        log_audit_event("init", "runner", "ComplyGuard Runner initialized")

    @classmethod
    async def from_settings(cls, config: Settings | None = None) -> "ComplyGuardRunner":
        """Build a runner with the evidence backend selected in settings."""
        config = config or default_settings
        return cls(config, evidence_backend=await create_evidence_backend(config))

    async def run(self) -> dict[str, Any]:
        """Run a full audit and return a summary."""
        await self.machine.start()
        await self.ledger.flush()
        return self.summary()

    async def audit_project(self, project_id: str) -> dict[str, Any]:
        """Audit a single project and return a summary of it."""
        if self.machine.credentials is None:
            await self.machine.authenticate()
        await self.machine.rerun(project_id)
        await self.machine.select_project(project_id)
        await self.ledger.flush()
        return self.summary()

    async def evidence(self) -> list[EvidenceEntry]:
        """Persisted and session evidence, newest first."""
        await self.ledger.flush()
        await self.ledger.fetch_persisted()
        return self.ledger.merged()

    def summary(self) -> dict[str, Any]:
        status = self.machine.current_status()
        return {
            "state": self.machine.state.value,
            "view": self.machine.view_mode.value,
            "project_id": self.machine.selected_project_id,
            "overall": status.overall.value,
            "score": status.score,
            "rate_limited": self.machine.rate_limited,
            "checks": {
                check: {
                    "status": result.status.value,
                    "percentage": result.percentage,
                    "compliant": result.compliant_count,
                    "total": result.total_count,
                    "error": result.error,
                }
                for check, result in zip(("mfa", "rls", "pitr"), status.results())
            },
            "projects": {
                project_id: project_status.overall.value
                for project_id, project_status in self.store.snapshot().items()
            },
        }

    async def aclose(self) -> None:
        await self.machine.close()
        await self.ledger.flush()
        await self.api.aclose()
