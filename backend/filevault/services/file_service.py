"""Reference-counted file lifecycle over an object store and a metadata store.

Creation writes the object first and the metadata row second; deletion removes
the row first and the object second. The metadata row is the authority on
whether a file exists, so a crash between the two steps can only leave an
orphaned object behind, never a row that points at nothing. Orphans are left
for an out-of-process sweep.

Counter changes rely on the metadata store's single-statement updates; nothing
here serializes concurrent calls on the same id.
"""
import asyncio
import logging
import uuid
from pathlib import Path
from typing import Optional, Sequence

from filevault.models.file_record import DEFAULT_MIME_TYPE, FileRecord
from filevault.services.exceptions import NotFoundError
from filevault.services.metadata_store import FileMetadataStore
from filevault.services.object_store import ACL_PRIVATE, ACL_PUBLIC_READ, ObjectStore
from filevault.services.policies import Visibility

logger = logging.getLogger(__name__)

# A record whose ref_count drops below this after a release is deleted.
LIVE_THRESHOLD = 1


class FileService:
    """Upload, resolve, acquire, release and delete stored files."""

    def __init__(
        self,
        metadata: FileMetadataStore,
        storage: ObjectStore,
        public_base_url: str,
        key_prefix: str = "files",
        presign_expires_in: int = 3600,
    ):
        self.metadata = metadata
        self.storage = storage
        self.public_base_url = public_base_url.rstrip("/")
        self.key_prefix = key_prefix
        self.presign_expires_in = presign_expires_in

    def build_key(self, purpose: str, visibility: Visibility, filename: Optional[str]) -> str:
        ext = Path(filename).suffix if filename else ""
        return "/".join([self.key_prefix, Visibility(visibility).value, purpose, f"{uuid.uuid4().hex}{ext}"])

    # ── Create ────────────────────────────────────────────────────

    async def upload_file(
        self,
        content: bytes,
        filename: Optional[str],
        content_type: Optional[str],
        purpose: str,
        visibility: Visibility = Visibility.private,
    ) -> FileRecord:
        """Store the bytes, then record them. New records start at ref_count 0.

        If the metadata insert fails the object is deleted again (best effort)
        and the insert error is re-raised.
        """
        visibility = Visibility(visibility)
        key = self.build_key(purpose, visibility, filename)
        acl = ACL_PUBLIC_READ if visibility == Visibility.public else ACL_PRIVATE

        stored = await self.storage.put(key, content, content_type, acl, filename=filename)

        try:
            record = await self.metadata.insert(
                purpose=purpose,
                key=key,
                size=stored.size,
                name=stored.name,
                mime_type=stored.type or DEFAULT_MIME_TYPE,
                visibility=visibility,
            )
        except Exception:
            await self._discard_object(key)
            raise

        logger.info(f"Uploaded file {record.id} ({record.size} bytes) to {key}")
        return record

    async def _discard_object(self, key: str) -> None:
        """Compensating delete after a failed insert. Never raises."""
        try:
            await self.storage.delete(key)
            logger.warning(f"Removed object {key} after failed metadata insert")
        except Exception as e:
            logger.warning(f"Could not remove object {key} after failed metadata insert: {e}")

    # ── Read ──────────────────────────────────────────────────────

    async def get_file(self, file_id: str) -> FileRecord:
        record = await self.metadata.get_by_id(file_id)
        if record is None:
            raise NotFoundError(file_id)
        return record

    async def list_files(self, file_ids: Sequence[str]) -> list[FileRecord]:
        """Records for the given ids. Unknown ids are left out."""
        return await self.metadata.get_by_ids(file_ids)

    async def build_url(self, record: FileRecord) -> str:
        """Public files get a plain URL; private ones a presigned URL."""
        if record.visibility == Visibility.public:
            return f"{self.public_base_url}/{record.key}"
        return await self.storage.presigned_url(record.key, self.presign_expires_in)

    async def get_url(self, file_id: str) -> str:
        return await self.build_url(await self.get_file(file_id))

    async def get_urls(self, file_ids: Sequence[str]) -> dict[str, str]:
        records = await self.metadata.get_by_ids(file_ids)
        urls = await asyncio.gather(*(self.build_url(r) for r in records))
        return {r.id: url for r, url in zip(records, urls)}

    # ── Reference counting ────────────────────────────────────────

    async def acquire_file(self, file_id: str, purpose: Optional[str] = None) -> FileRecord:
        """Add one reference. When purpose is given the file must also match it."""
        record = await self.metadata.update_counter_and_return(file_id, 1, purpose=purpose)
        if record is None:
            raise NotFoundError(file_id)
        logger.debug(f"Acquired file {file_id} (ref_count={record.ref_count})")
        return record

    async def acquire_files(self, file_ids: Sequence[str], purpose: Optional[str] = None) -> list[FileRecord]:
        """Add one reference to each file. Ids that don't match are skipped."""
        return await self.metadata.update_counters_and_return(file_ids, 1, purpose=purpose)

    async def release_file(self, file_id: str) -> None:
        """Drop one reference, deleting the file once nothing holds it."""
        record = await self.metadata.update_counter_and_return(file_id, -1)
        if record is None:
            raise NotFoundError(file_id)
        logger.debug(f"Released file {file_id} (ref_count={record.ref_count})")
        if record.ref_count < LIVE_THRESHOLD:
            await self.delete_file(file_id)

    async def release_files(self, file_ids: Sequence[str]) -> None:
        updated = await self.metadata.update_counters_and_return(file_ids, -1)
        to_delete = [r.id for r in updated if r.ref_count < LIVE_THRESHOLD]
        if to_delete:
            await asyncio.gather(*(self.delete_file(fid) for fid in to_delete))

    # ── Delete ────────────────────────────────────────────────────

    async def delete_file(self, file_id: str) -> None:
        """Remove the row, then the object. Missing files are a no-op."""
        deleted = await self.metadata.delete_by_id_and_return(file_id)
        if deleted is None:
            return
        await self.storage.delete(deleted.key)
        logger.info(f"Deleted file {file_id} ({deleted.key})")

    async def delete_files(self, file_ids: Sequence[str]) -> None:
        deleted = await self.metadata.delete_by_ids_and_return(file_ids)
        if not deleted:
            return
        await asyncio.gather(*(self.storage.delete(r.key) for r in deleted))
        logger.info(f"Deleted {len(deleted)} file(s)")
