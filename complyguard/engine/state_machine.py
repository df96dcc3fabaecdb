"""Audit lifecycle state machine exposed to presentation layers."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Iterable

from complyguard.auth.credentials import CredentialResolver, ResolvedCredentials
from complyguard.engine.aggregation import aggregate
from complyguard.engine.runner import ProjectAuditRunner
from complyguard.engine.store import ComplianceStore, Snapshot
from complyguard.models import (
    CheckStatus,
    ComplianceStatus,
    EvidenceEntry,
    EvidenceStatus,
    Project,
)
from complyguard.persistence.evidence_ledger import EvidenceLedger
from complyguard.probes.base import default_project_name
from complyguard.providers.project_discovery import ProjectDiscovery
from complyguard.remediation import AUTO_FIX_CHECK, Fix, required_fixes
from complyguard.tracing.logger import log_audit_event

logger = logging.getLogger(__name__)

ALL_PROJECTS_LABEL = "All Projects"
PROJECTS_FETCH_CHECK = "Projects Fetch"
CHECK_RUN_CHECK = "Compliance Check Run"


class AuditState(str, Enum):
    """Lifecycle of an audit session."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    AUDITING = "auditing"
    READY = "ready"


class ViewMode(str, Enum):
    """Which status the presentation layer is looking at."""

    OVERVIEW = "overview"
    PROJECT = "project"


class AuditStateMachine:
    """Drives discover -> audit -> aggregate -> publish.

    Overlapping audits of the same project cancel the earlier run; only
    the newest run writes results after the cancellation.
    """

    def __init__(
        self,
        resolver: CredentialResolver,
        discovery: ProjectDiscovery,
        runner: ProjectAuditRunner,
        store: ComplianceStore,
        ledger: EvidenceLedger,
        max_concurrency: int = 4,
    ):
        self.resolver = resolver
        self.discovery = discovery
        self.runner = runner
        self.store = store
        self.ledger = ledger
        self.state = AuditState.IDLE
        self.view_mode = ViewMode.OVERVIEW
        self.selected_project_id: str | None = None
        self.credentials: ResolvedCredentials | None = None
        self._projects: dict[str, Project] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))

    @property
    def projects(self) -> list[Project]:
        return list(self._projects.values())

    @property
    def rate_limited(self) -> bool:
        return self.runner.rate_limited

    def _transition(self, state: AuditState) -> None:
        if state is not self.state:
            log_audit_event("transition", "state", f"{self.state.value} -> {state.value}")
        self.state = state

    async def authenticate(self) -> ResolvedCredentials:
        """Resolve credentials without auditing anything."""
        self.credentials = await self.resolver.resolve()
        return self.credentials

    async def start(self) -> Snapshot:
        """Resolve credentials, discover projects and audit all of them.

        Raises:
            CredentialError: If credentials are missing or invalid.
            DiscoveryError: If the project list cannot be fetched.
            RateLimited: If discovery or validation exhausts the budget.
        """
        self._transition(AuditState.DISCOVERING)
        try:
            credentials = await self.authenticate()
        except Exception as e:
            self._abort(CHECK_RUN_CHECK, f"Error running compliance checks: {e}")
            raise
        try:
            projects = await self._discover(credentials)
        except Exception as e:
            self._abort(PROJECTS_FETCH_CHECK, f"Failed to fetch available projects: {e}")
            raise

        self._projects = {p.id: p for p in projects}
        if self.credentials.is_all_projects:
            self.view_mode = ViewMode.OVERVIEW
            self.selected_project_id = None
        else:
            self.view_mode = ViewMode.PROJECT
            self.selected_project_id = self.credentials.scope.project_id

        await self._audit(projects)
        return self.store.snapshot()

    async def rerun(self, project_id: str | None = None) -> Snapshot:
        """Re-run checks for one project or for every known project."""
        if self.credentials is None:
            return await self.start()

        if project_id is None:
            targets = self.projects
        else:
            targets = [await self._lookup(project_id)]
        await self._audit(targets)
        return self.store.snapshot()

    def select_overview(self) -> ComplianceStatus:
        self.view_mode = ViewMode.OVERVIEW
        self.selected_project_id = None
        return self.current_status()

    async def select_project(self, project_id: str) -> ComplianceStatus:
        """Switch to one project, auditing it only if nothing is cached."""
        self.view_mode = ViewMode.PROJECT
        self.selected_project_id = project_id

        if not self.store.has(project_id) and self.credentials is not None:
            await self._audit([await self._lookup(project_id)])
        return self.current_status()

    def current_status(self) -> ComplianceStatus:
        """Status for the current view."""
        if self.view_mode is ViewMode.PROJECT and self.selected_project_id:
            project = self._projects.get(self.selected_project_id)
            if project is not None and project.is_inactive:
                return ComplianceStatus.inactive()
            return self.store.get(self.selected_project_id) or ComplianceStatus.checking()
        return aggregate(self.store.snapshot())

    def overall_status(self) -> CheckStatus:
        return self.current_status().overall

    def compliance_score(self) -> int:
        return self.current_status().score

    def snapshot(self) -> Snapshot:
        return self.store.snapshot()

    async def apply_fixes(self, project_id: str | None = None) -> list[Fix]:
        """Record a remediation run and re-check the affected projects.

        Args:
            project_id: Project to remediate; defaults to the selected
                project, or every project in the overview.

        Returns:
            The fixes that applied before the re-check.
        """
        target = project_id or (
            self.selected_project_id if self.view_mode is ViewMode.PROJECT else None
        )
        status = self.store.get(target) if target else aggregate(self.store.snapshot())
        fixes = required_fixes(status) if status is not None else []
        label = self._project_label(target)

        self.ledger.record(
            AUTO_FIX_CHECK,
            EvidenceStatus.INITIATED,
            "Started automatic remediation of compliance issues",
            project=label,
            project_id=target,
        )
        self.ledger.record(
            AUTO_FIX_CHECK,
            EvidenceStatus.COMPLETED,
            "Completed automatic remediation of compliance issues",
            project=label,
            project_id=target,
        )
        await self.rerun(target)
        return fixes

    def record_action(
        self,
        check: str,
        details: str,
        project_id: str | None = None,
    ) -> EvidenceEntry:
        """Record a manual remediation action in the evidence log."""
        return self.ledger.record(
            check,
            EvidenceStatus.ACTION,
            details,
            project=self._project_label(project_id),
            project_id=project_id,
        )

    async def close(self) -> None:
        """Cancel any audits still running."""
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()

    async def _discover(self, credentials: ResolvedCredentials) -> list[Project]:
        if credentials.is_all_projects:
            return await self.discovery.list(credentials.token)
        project_id = credentials.scope.project_id
        known = self._projects.get(project_id)
        if known is not None:
            return [known]
        return [Project(id=project_id, name=default_project_name(project_id), status="UNKNOWN")]

    async def _lookup(self, project_id: str) -> Project:
        """Known project, refreshing the project list if it is missing.

        Only all-projects credentials can list projects; a single-project
        token keeps a placeholder with unknown status.
        """
        if project_id not in self._projects and self.credentials.is_all_projects:
            projects = await self.discovery.list(self.credentials.token)
            self._projects.update((p.id, p) for p in projects)
        return self._project(project_id)

    def _project(self, project_id: str) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            project = Project(id=project_id, name=default_project_name(project_id), status="UNKNOWN")
            self._projects[project_id] = project
        return project

    def _abort(self, check: str, details: str) -> None:
        self._transition(AuditState.IDLE)
        self.ledger.record(check, EvidenceStatus.ERROR, details, project=ALL_PROJECTS_LABEL)

    def _project_label(self, project_id: str | None) -> str:
        if project_id is None:
            return ALL_PROJECTS_LABEL
        return self._project(project_id).name

    async def _audit(self, projects: Iterable[Project]) -> None:
        self._transition(AuditState.AUDITING)
        for project in projects:
            self._schedule(project)
        await self._await_inflight()
        self._transition(AuditState.READY)

        overall = aggregate(self.store.snapshot())
        log_audit_event(
            "published", "state",
            f"Audit ready: {overall.overall.value} (score {overall.score}%)",
            {"projects": len(self.store), "rate_limited": self.rate_limited},
        )

    def _schedule(self, project: Project) -> asyncio.Task:
        previous = self._inflight.get(project.id)
        if previous is not None and not previous.done():
            previous.cancel()
            log_audit_event(
                "cancelled", "state", f"Restarting in-flight audit of {project.name}",
                {"project_id": project.id},
            )

        task = asyncio.create_task(self._run_audit(project, previous))
        self._inflight[project.id] = task

        def _cleanup(done: asyncio.Task, project_id: str = project.id) -> None:
            if self._inflight.get(project_id) is done:
                del self._inflight[project_id]

        task.add_done_callback(_cleanup)
        return task

    async def _run_audit(self, project: Project, previous: asyncio.Task | None) -> None:
        if previous is not None:
            await asyncio.gather(previous, return_exceptions=True)
        async with self._semaphore:
            await self.runner.audit_project(
                self.credentials.token,
                project.id,
                project.name,
                project.status,
            )

    async def _await_inflight(self) -> None:
        while True:
            pending = [t for t in self._inflight.values() if not t.done()]
            if not pending:
                return
            results = await asyncio.gather(*pending, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error("Project audit failed: %s", result)
