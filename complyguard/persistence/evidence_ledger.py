"""Append-only, deduplicated evidence log."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Protocol

from complyguard.errors import PersistenceUnavailable
from complyguard.models import EvidenceEntry, EvidenceStatus
from complyguard.models.evidence import utc_now
from complyguard.tracing.logger import log_audit_event

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


class EvidenceBackend(Protocol):
    """Durable storage for evidence entries."""

    async def insert(self, entry: EvidenceEntry, owner_id: str) -> None: ...

    async def count(self, owner_id: str) -> int: ...

    async def fetch_page(self, owner_id: str, offset: int, limit: int) -> list[EvidenceEntry]: ...


class EvidenceLedger:
    """Session evidence log with best-effort durable persistence.

    ``append`` always records locally first. Persistence runs as a
    background task; its failure never loses the local entry. When the
    backend reports a missing table the ledger logs it once and stays
    session-local for the rest of its life.
    """

    def __init__(
        self,
        backend: EvidenceBackend | None = None,
        owner_id: str | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.backend = backend
        self.owner_id = owner_id
        self.page_size = page_size
        self._local: list[EvidenceEntry] = []
        self._persisted: list[EvidenceEntry] = []
        self._pending: set[asyncio.Task] = set()
        self._unavailable = False
        self._last_stamp: datetime | None = None

    @property
    def durable(self) -> bool:
        """True while entries are being written to the backend."""
        return self.backend is not None and bool(self.owner_id) and not self._unavailable

    @property
    def entries(self) -> list[EvidenceEntry]:
        """Entries appended in this session, oldest first."""
        return list(self._local)

    def append(self, entry: EvidenceEntry) -> EvidenceEntry:
        """Record an entry and schedule its persistence."""
        self._local.append(entry)
        if self.durable:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running loop; evidence entry kept session-local")
                return entry
            task = loop.create_task(self._persist(entry))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return entry

    def record(
        self,
        check: str,
        status: EvidenceStatus,
        details: str,
        project: str | None = None,
        project_id: str | None = None,
    ) -> EvidenceEntry:
        """Create an entry stamped now and append it.

        Stamps strictly increase within a ledger, so entries recorded
        back to back never share a dedup key.
        """
        return self.append(
            EvidenceEntry(
                check=check,
                status=status,
                details=details,
                timestamp=self._stamp(),
                project=project,
                project_id=project_id,
            )
        )

    def _stamp(self) -> datetime:
        now = utc_now()
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = now
        return now

    async def flush(self) -> None:
        """Wait for scheduled persistence tasks to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def fetch_persisted(self, owner_id: str | None = None) -> list[EvidenceEntry]:
        """Read every persisted entry for an owner, page by page.

        A page that fails to load is logged and skipped; the remaining
        pages are still read. If the count itself fails nothing is read.

        Args:
            owner_id: Owner to read; defaults to the ledger's owner.

        Returns:
            All persisted entries that could be read.
        """
        owner = owner_id or self.owner_id
        if self.backend is None or not owner or self._unavailable:
            return []

        try:
            total = await self.backend.count(owner)
        except PersistenceUnavailable as e:
            self._mark_unavailable(e)
            return []
        except Exception:
            logger.exception("Failed to count persisted evidence for owner=%s", owner)
            return []

        entries: list[EvidenceEntry] = []
        for offset in range(0, total, self.page_size):
            try:
                page = await self.backend.fetch_page(owner, offset, self.page_size)
            except PersistenceUnavailable as e:
                self._mark_unavailable(e)
                break
            except Exception:
                logger.exception(
                    "Failed to fetch evidence page offset=%d size=%d", offset, self.page_size
                )
                continue
            entries.extend(page)

        self._persisted = entries
        log_audit_event(
            "fetched",
            "evidence",
            f"Loaded {len(entries)}/{total} persisted evidence entries",
        )
        return list(entries)

    def merged(self) -> list[EvidenceEntry]:
        """Persisted and local entries deduplicated, newest first.

        Local entries win when both sides share a key.
        """
        by_key: dict[tuple[str, str, str], EvidenceEntry] = {}
        for entry in self._persisted:
            by_key[entry.key] = entry
        for entry in self._local:
            by_key[entry.key] = entry
        return sorted(by_key.values(), key=lambda e: e.timestamp, reverse=True)

    def filter(
        self,
        status: EvidenceStatus | None = None,
        project_id: str | None = None,
        check: str | None = None,
    ) -> list[EvidenceEntry]:
        """Merged entries matching every given criterion."""
        return [
            e
            for e in self.merged()
            if (status is None or e.status == status)
            and (project_id is None or e.project_id == project_id)
            and (check is None or e.check == check)
        ]

    async def _persist(self, entry: EvidenceEntry) -> None:
        if self._unavailable:
            return
        try:
            await self.backend.insert(entry, self.owner_id)
        except PersistenceUnavailable as e:
            self._mark_unavailable(e)
        except Exception:
            logger.exception("Failed to persist evidence entry for check=%s", entry.check)

    def _mark_unavailable(self, error: PersistenceUnavailable) -> None:
        if self._unavailable:
            return
        self._unavailable = True
        logger.warning("Durable evidence disabled, keeping entries session-local: %s", error)
