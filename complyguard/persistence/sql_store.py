"""Evidence persistence backed by a SQL database via SQLAlchemy."""

from __future__ import annotations

from datetime import timezone

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from complyguard.errors import PersistenceUnavailable
from complyguard.models import EvidenceEntry, EvidenceStatus
from complyguard.persistence.models import Base, ComplianceLogRecord

_MISSING_TABLE_MARKERS = ("no such table", "does not exist", "undefinedtable", "42p01")


def is_missing_table(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _MISSING_TABLE_MARKERS)


async def ensure_schema(engine: AsyncEngine) -> None:
    """Create tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _to_entry(record: ComplianceLogRecord) -> EvidenceEntry:
    created_at = record.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return EvidenceEntry(
        check=record.check_type,
        status=EvidenceStatus(record.status),
        details=record.details or "",
        timestamp=created_at,
        project=record.project_name,
        project_id=record.project_id,
    )


class SqlEvidenceStore:
    """SQL-backed store for evidence entries."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self.sessionmaker = sessionmaker

    async def insert(self, entry: EvidenceEntry, owner_id: str) -> None:
        record = ComplianceLogRecord(
            user_id=owner_id,
            created_at=entry.timestamp,
            check_type=entry.check,
            status=entry.status.value,
            details=entry.details,
            project_id=entry.project_id,
            project_name=entry.project,
        )
        try:
            async with self.sessionmaker() as session:
                session.add(record)
                await session.commit()
        except (OperationalError, ProgrammingError) as e:
            self._raise_if_missing(e)
            raise

    async def count(self, owner_id: str) -> int:
        stmt = select(func.count()).select_from(ComplianceLogRecord).where(
            ComplianceLogRecord.user_id == owner_id
        )
        try:
            async with self.sessionmaker() as session:
                return int((await session.execute(stmt)).scalar_one())
        except (OperationalError, ProgrammingError) as e:
            self._raise_if_missing(e)
            raise

    async def fetch_page(self, owner_id: str, offset: int, limit: int) -> list[EvidenceEntry]:
        stmt = (
            select(ComplianceLogRecord)
            .where(ComplianceLogRecord.user_id == owner_id)
            .order_by(ComplianceLogRecord.created_at.desc(), ComplianceLogRecord.id.desc())
            .offset(offset)
            .limit(limit)
        )
        try:
            async with self.sessionmaker() as session:
                records = (await session.execute(stmt)).scalars().all()
        except (OperationalError, ProgrammingError) as e:
            self._raise_if_missing(e)
            raise
        return [_to_entry(r) for r in records]

    @staticmethod
    def _raise_if_missing(error: Exception) -> None:
        if is_missing_table(error):
            raise PersistenceUnavailable("Table 'compliance_logs' does not exist") from error
