"""Single-owner store for per-project compliance results."""

from __future__ import annotations

import asyncio
import logging
from types import MappingProxyType
from typing import Callable, Mapping

from complyguard.models import CheckResult, CheckType, ComplianceStatus

logger = logging.getLogger(__name__)

Snapshot = Mapping[str, ComplianceStatus]
Listener = Callable[[Snapshot], None]


class ComplianceStore:
    """Holds the project_id -> ComplianceStatus map for one session.

    All mutations go through an ``asyncio.Lock`` and replace whole
    ``ComplianceStatus`` values, so readers only ever see complete
    entries. Entries are created lazily and never deleted.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._statuses: dict[str, ComplianceStatus] = {}
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback invoked with a snapshot after each write.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def set_status(self, project_id: str, status: ComplianceStatus) -> None:
        """Install a complete status for a project."""
        async with self._lock:
            self._statuses[project_id] = status
        self._publish()

    async def set_result(self, project_id: str, check_type: CheckType, result: CheckResult) -> None:
        """Replace one check of a project's status."""
        async with self._lock:
            current = self._statuses.get(project_id) or ComplianceStatus.checking()
            self._statuses[project_id] = current.with_result(check_type, result)
        self._publish()

    def get(self, project_id: str) -> ComplianceStatus | None:
        return self._statuses.get(project_id)

    def has(self, project_id: str) -> bool:
        return project_id in self._statuses

    def snapshot(self) -> Snapshot:
        """Return an immutable view of the current map."""
        return MappingProxyType(dict(self._statuses))

    def __len__(self) -> int:
        return len(self._statuses)

    def _publish(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Compliance store listener failed")
