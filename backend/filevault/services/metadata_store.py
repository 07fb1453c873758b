"""Metadata store for file records.

Every operation opens its own short session and commits before returning, so
each call is one independent statement against the database. Counter updates
are single UPDATE ... RETURNING statements (ref_count = ref_count + delta),
never a read followed by a write.
"""
import logging
from typing import Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from filevault.models.file_record import FileRecord
from filevault.services.exceptions import ConstraintError

logger = logging.getLogger(__name__)


class FileMetadataStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def insert(self, **values) -> FileRecord:
        """Insert a new file row and return it with server defaults loaded."""
        record = FileRecord(**values)
        async with self.session_factory() as db:
            db.add(record)
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                raise ConstraintError(f"File record violates a constraint: {values.get('key')}") from e
            await db.refresh(record)
        return record

    async def get_by_id(self, file_id: str) -> Optional[FileRecord]:
        async with self.session_factory() as db:
            return await db.get(FileRecord, file_id)

    async def get_by_ids(self, file_ids: Sequence[str]) -> list[FileRecord]:
        if not file_ids:
            return []
        async with self.session_factory() as db:
            result = await db.execute(
                select(FileRecord).where(FileRecord.id.in_(list(file_ids)))
            )
            return list(result.scalars().all())

    async def update_counter_and_return(
        self,
        file_id: str,
        delta: int,
        purpose: Optional[str] = None,
    ) -> Optional[FileRecord]:
        """Atomically add delta to ref_count. Returns the updated row, or None
        if no row matched id (and purpose, when given)."""
        rows = await self._update_counters([FileRecord.id == file_id], delta, purpose)
        return rows[0] if rows else None

    async def update_counters_and_return(
        self,
        file_ids: Sequence[str],
        delta: int,
        purpose: Optional[str] = None,
    ) -> list[FileRecord]:
        if not file_ids:
            return []
        return await self._update_counters([FileRecord.id.in_(list(file_ids))], delta, purpose)

    async def _update_counters(self, criteria: list, delta: int, purpose: Optional[str]) -> list[FileRecord]:
        if purpose:
            criteria = [*criteria, FileRecord.purpose == purpose]
        stmt = (
            update(FileRecord)
            .where(*criteria)
            .values(ref_count=FileRecord.ref_count + delta)
            .returning(FileRecord)
        )
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            rows = list(result.scalars().all())
            await db.commit()
        return rows

    async def delete_by_id_and_return(self, file_id: str) -> Optional[FileRecord]:
        rows = await self._delete([FileRecord.id == file_id])
        return rows[0] if rows else None

    async def delete_by_ids_and_return(self, file_ids: Sequence[str]) -> list[FileRecord]:
        if not file_ids:
            return []
        return await self._delete([FileRecord.id.in_(list(file_ids))])

    async def _delete(self, criteria: list) -> list[FileRecord]:
        stmt = delete(FileRecord).where(*criteria).returning(FileRecord)
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            rows = list(result.scalars().all())
            await db.commit()
        logger.debug(f"Deleted {len(rows)} file row(s)")
        return rows
